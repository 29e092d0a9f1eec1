"""Run tools for the intervisibility server."""

from .api import register_run_tools

__all__ = ["register_run_tools"]
