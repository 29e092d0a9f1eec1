"""
Discovery tools: DEM source listing, server status and capabilities.

These tools require no network I/O and return information about
available DEM sources and server configuration.
"""

import logging
import os

from ...constants import (
    ANALYSIS_TOOLS,
    NETWORK_METRICS,
    RUN_TOOLS,
    EnvVar,
    ServerConfig,
    StorageProvider,
    SuccessMessages,
)
from ...models.responses import (
    CapabilitiesResponse,
    ErrorResponse,
    SourceInfo,
    SourcesResponse,
    StatusResponse,
    format_response,
)

logger = logging.getLogger(__name__)

DISCOVERY_TOOL_COUNT = 3


def register_discovery_tools(mcp, manager):
    """Register discovery tools with the MCP server."""

    @mcp.tool()
    async def iv_list_sources(output_mode: str = "json") -> str:
        """List the DEM sources available for terrain sampling.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            List of available DEM sources with metadata
        """
        try:
            sources = [SourceInfo(**s) for s in manager.list_sources()]
            response = SourcesResponse(
                sources=sources,
                default=manager.default_source,
                message=SuccessMessages.SOURCES_LIST.format(len(sources)),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_list_sources failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_status(output_mode: str = "json") -> str:
        """Get server status including version, runs, and storage configuration.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Server status information
        """
        try:
            provider = os.environ.get(EnvVar.ARTIFACTS_PROVIDER, StorageProvider.MEMORY)

            store_available = False
            try:
                manager._get_store()
                store_available = True
            except Exception:
                pass

            runs = manager.list_runs()
            response = StatusResponse(
                server=ServerConfig.NAME,
                version=ServerConfig.VERSION,
                default_source=manager.default_source,
                scan_radius_km=manager.config.scan_radius_km,
                active_runs=sum(1 for r in runs if not r.is_finished),
                total_runs=len(runs),
                storage_provider=provider,
                artifact_store_available=store_available,
                cache_size_mb=round(manager.cache_size_bytes() / (1024 * 1024), 1),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_status failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_capabilities(output_mode: str = "json") -> str:
        """Get full server capabilities including sources, tools, metrics, and defaults.

        Args:
            output_mode: "json" for structured data, "text" for human-readable summary

        Returns:
            Complete server capabilities
        """
        try:
            sources = [SourceInfo(**s) for s in manager.list_sources()]
            config = manager.config

            response = CapabilitiesResponse(
                server=ServerConfig.NAME,
                version=ServerConfig.VERSION,
                sources=sources,
                default_source=manager.default_source,
                run_tools=RUN_TOOLS,
                analysis_tools=ANALYSIS_TOOLS,
                network_metrics=NETWORK_METRICS,
                defaults={
                    "scan_radius_km": config.scan_radius_km,
                    "horizon_zoom": config.horizon_zoom,
                    "horizon_steps": config.horizon_steps,
                    "max_samples": config.max_samples,
                    "refraction_coefficient": config.refraction_coefficient,
                },
                tool_count=DISCOVERY_TOOL_COUNT + len(RUN_TOOLS) + len(ANALYSIS_TOOLS),
                llm_guidance=(
                    "Use iv_run_start with a list of sites ({lat, lon, name?}) to compute "
                    "which pairs can see each other. Poll iv_run_status until the state is "
                    "completed, then read iv_run_results for visible pairs and "
                    "iv_run_statistics for network metrics. Use iv_run_pause, iv_run_resume "
                    "and iv_run_cancel to control long runs; cancelled runs keep partial "
                    "results. Use iv_line_of_sight for a single observer/target check. "
                    "Pairs further apart than the scan radius are never visible."
                ),
                message=f"{ServerConfig.NAME} v{ServerConfig.VERSION} capabilities",
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_capabilities failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)
