"""Analysis tools for the intervisibility server."""

from .api import register_analysis_tools

__all__ = ["register_analysis_tools"]
