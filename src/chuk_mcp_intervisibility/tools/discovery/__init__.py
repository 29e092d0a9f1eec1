"""Discovery tools for the intervisibility server."""

from .api import register_discovery_tools

__all__ = ["register_discovery_tools"]
