"""
Run tools for starting and controlling intervisibility runs and reading their results.

Runs execute in the background; these tools return immediately with the
run's current state.
"""

import logging

from ...constants import SuccessMessages
from ...core.network_stats import NodeStatistics
from ...core.scheduler import CalculationSession
from ...models.responses import (
    ErrorResponse,
    NetworkStatisticsResponse,
    NodeStatisticsInfo,
    RunListResponse,
    RunResultsResponse,
    RunStatusResponse,
    SiteInput,
    VisiblePairInfo,
    format_response,
)

logger = logging.getLogger(__name__)


def _status_response(session: CalculationSession, message: str) -> RunStatusResponse:
    return RunStatusResponse(
        run_id=session.id,
        state=session.state,
        site_count=len(session.sites),
        profiles_completed=session.profiles_completed,
        failed_sites=sorted(session.failed_sites),
        pairs_checked=session.pairs_checked,
        total_pairs=session.total_pairs,
        visible_pairs=len(session.visible_pairs),
        percent_complete=round(session.percent_complete, 1),
        elapsed_s=round(session.elapsed_s, 2),
        progress=session.message,
        error=session.error,
        report_ref=session.report_ref,
        message=message,
    )


def _node_info(session: CalculationSession, node: NodeStatistics) -> NodeStatisticsInfo:
    return NodeStatisticsInfo(
        index=node.index,
        name=session.sites[node.index].display_name,
        degree=node.degree,
        clustering=round(node.clustering, 4),
        betweenness=round(node.betweenness, 4),
        closeness=round(node.closeness, 4),
    )


def register_run_tools(mcp, manager):
    """Register run tools with the MCP server."""

    @mcp.tool()
    async def iv_run_start(
        sites: list[dict],
        source: str | None = None,
        scan_radius_km: float | None = None,
        output_mode: str = "json",
    ) -> str:
        """Start an intervisibility run over a set of sites.

        Computes a horizon profile per site, then checks every pair for an
        unobstructed line of sight (with Earth curvature and refraction).
        Runs in the background; poll iv_run_status for progress.

        Args:
            sites: List of sites, each {"lat": float, "lon": float, "id"?: str,
                "name"?: str, "elevation"?: float}. At least 2 are required.
            source: DEM source (cop30, cop90); defaults to the server default
            scan_radius_km: Maximum distance considered for visibility (default 150)
            output_mode: "json" or "text"

        Returns:
            Run status including the run_id
        """
        try:
            records = [
                SiteInput.model_validate(s).model_dump(exclude_none=True) for s in sites
            ]
            session = manager.start_run(records, source=source, scan_radius_km=scan_radius_km)
            response = _status_response(
                session, SuccessMessages.RUN_STARTED.format(session.id, len(session.sites))
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_start failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_status(run_id: str, output_mode: str = "json") -> str:
        """Get state and progress of a run.

        Args:
            run_id: Run identifier returned by iv_run_start
            output_mode: "json" or "text"

        Returns:
            Run state, profile and pair counters, and latest progress text
        """
        try:
            session = manager.get_session(run_id)
            response = _status_response(
                session,
                SuccessMessages.RUN_STATUS.format(
                    session.id, session.state, session.pairs_checked, session.total_pairs
                ),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_status failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_pause(run_id: str, output_mode: str = "json") -> str:
        """Pause a run before its next pair check. Resume with iv_run_resume.

        Args:
            run_id: Run identifier
            output_mode: "json" or "text"

        Returns:
            Run status
        """
        try:
            session = manager.pause_run(run_id)
            response = _status_response(session, SuccessMessages.RUN_PAUSED.format(session.id))
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_pause failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_resume(run_id: str, output_mode: str = "json") -> str:
        """Resume a paused run from the next unchecked pair.

        Args:
            run_id: Run identifier
            output_mode: "json" or "text"

        Returns:
            Run status
        """
        try:
            session = manager.resume_run(run_id)
            response = _status_response(session, SuccessMessages.RUN_RESUMED.format(session.id))
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_resume failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_cancel(run_id: str, output_mode: str = "json") -> str:
        """Cancel a run. Pairs found so far are kept as a partial result.

        Args:
            run_id: Run identifier
            output_mode: "json" or "text"

        Returns:
            Run status
        """
        try:
            session = manager.cancel_run(run_id)
            response = _status_response(session, SuccessMessages.RUN_CANCELLED.format(session.id))
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_cancel failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_results(run_id: str, output_mode: str = "json") -> str:
        """Get the visible pairs found by a run (partial while it is running).

        Args:
            run_id: Run identifier
            output_mode: "json" or "text"

        Returns:
            Visible site pairs with distances
        """
        try:
            session = manager.get_session(run_id)
            pairs = [
                VisiblePairInfo(
                    i=p.i,
                    j=p.j,
                    site_a=session.sites[p.i].display_name,
                    site_b=session.sites[p.j].display_name,
                    distance_m=round(p.distance_m, 1),
                )
                for p in session.visible_pairs
            ]
            response = RunResultsResponse(
                run_id=session.id,
                state=session.state,
                pairs_checked=session.pairs_checked,
                visible_pairs=pairs,
                report_ref=session.report_ref,
                message=SuccessMessages.RUN_RESULTS.format(len(pairs), session.pairs_checked),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_results failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_run_statistics(
        run_id: str,
        include_nodes: bool = False,
        output_mode: str = "json",
    ) -> str:
        """Get visibility network statistics for a completed or cancelled run.

        Reports degree, clustering, connected components, diameter, average
        path length, betweenness and closeness centrality.

        Args:
            run_id: Run identifier
            include_nodes: Include the per-site metrics table
            output_mode: "json" or "text"

        Returns:
            Network statistics
        """
        try:
            session = manager.get_session(run_id)
            stats = manager.get_statistics(run_id)
            response = NetworkStatisticsResponse(
                run_id=session.id,
                state=session.state,
                node_count=stats.node_count,
                edge_count=stats.edge_count,
                intervisibility_ratio=round(stats.intervisibility_ratio, 1),
                average_degree=round(stats.average_degree, 4),
                average_clustering=round(stats.average_clustering, 4),
                components=stats.components,
                diameter=stats.diameter,
                average_path_length=round(stats.average_path_length, 4),
                degree_distribution={str(k): v for k, v in stats.degree_distribution.items()},
                top_sites=[_node_info(session, n) for n in stats.top_sites],
                nodes=[_node_info(session, n) for n in stats.nodes] if include_nodes else None,
                message=SuccessMessages.STATISTICS.format(
                    stats.node_count, stats.edge_count, stats.components
                ),
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_run_statistics failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)

    @mcp.tool()
    async def iv_list_runs(output_mode: str = "json") -> str:
        """List all runs known to the server, oldest first.

        Args:
            output_mode: "json" or "text"

        Returns:
            Run summaries
        """
        try:
            runs = [
                _status_response(
                    s,
                    SuccessMessages.RUN_STATUS.format(
                        s.id, s.state, s.pairs_checked, s.total_pairs
                    ),
                )
                for s in manager.list_runs()
            ]
            response = RunListResponse(runs=runs, message=f"{len(runs)} run(s)")
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_list_runs failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)
