#!/usr/bin/env python3
"""
Async Intervisibility MCP Server using chuk-mcp-server

Determines which sites can see each other across Copernicus DEM terrain and
reports the resulting visibility network. Run reports are stored in
chuk-artifacts for downstream use.

Storage is managed through chuk-mcp-server's built-in artifact store context.
"""

import logging

from chuk_mcp_server import ChukMCPServer

from .config import AnalysisConfig
from .constants import ServerConfig
from .core.manager import IntervisibilityManager
from .tools.analysis import register_analysis_tools
from .tools.discovery import register_discovery_tools
from .tools.runs import register_run_tools

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create the MCP server instance
mcp = ChukMCPServer(ServerConfig.NAME)

# Create intervisibility manager instance
manager = IntervisibilityManager(config=AnalysisConfig.from_env())

# Register all tool modules
register_discovery_tools(mcp, manager)
register_run_tools(mcp, manager)
register_analysis_tools(mcp, manager)

# Run the server
if __name__ == "__main__":
    logger.info("Starting Intervisibility MCP Server...")
    logger.info("Storage: Using chuk-mcp-server artifact store context")
    mcp.run(stdio=True)
