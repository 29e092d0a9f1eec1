"""
Analysis tools: ad-hoc line of sight between two points.
"""

import logging

from ...constants import ErrorMessages, SuccessMessages
from ...models.responses import (
    ErrorResponse,
    LineOfSightResponse,
    format_response,
)

logger = logging.getLogger(__name__)


def _parse_point(point: list[float]) -> tuple[float, float]:
    """[lon, lat] -> (lat, lon)."""
    if len(point) != 2:
        raise ValueError(ErrorMessages.INVALID_POINT)
    lon, lat = float(point[0]), float(point[1])
    return lat, lon


def _round_or_none(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


def register_analysis_tools(mcp, manager):
    """Register analysis tools with the MCP server."""

    @mcp.tool()
    async def iv_line_of_sight(
        observer: list[float],
        target: list[float],
        observer_height_m: float = 0.0,
        target_height_m: float = 0.0,
        use_horizon: bool = False,
        source: str | None = None,
        output_mode: str = "json",
    ) -> str:
        """Check whether a target point is visible from an observer point.

        Samples terrain along the sightline and corrects for Earth curvature
        and atmospheric refraction beyond 10 km. Points further apart than
        the scan radius are reported as not visible.

        Args:
            observer: Observer location [lon, lat]
            target: Target location [lon, lat]
            observer_height_m: Observer height above ground in metres
            target_height_m: Target height above ground in metres
            use_horizon: Also compute the observer's 360° horizon profile and
                reject targets below it (slower; fetches a wide raster)
            source: DEM source (cop30, cop90)
            output_mode: "json" or "text"

        Returns:
            Visibility outcome with distance, bearing, and obstruction details
        """
        try:
            observer_pos = _parse_point(observer)
            target_pos = _parse_point(target)

            los = await manager.check_line_of_sight(
                observer=observer_pos,
                target=target_pos,
                observer_height_m=observer_height_m,
                target_height_m=target_height_m,
                use_horizon=use_horizon,
                source=source,
            )
            result = los.result

            if result.visible:
                message = SuccessMessages.LOS_VISIBLE.format(result.distance_m)
            else:
                message = SuccessMessages.LOS_BLOCKED.format(result.distance_m, result.reason)

            response = LineOfSightResponse(
                source=los.source,
                observer=[observer_pos[1], observer_pos[0]],
                target=[target_pos[1], target_pos[0]],
                visible=result.visible,
                reason=result.reason,
                distance_m=round(result.distance_m, 1),
                bearing_deg=result.bearing_deg,
                observer_elevation_m=_round_or_none(los.observer_ground_m),
                target_elevation_m=_round_or_none(los.target_ground_m),
                observer_height_m=observer_height_m,
                target_height_m=target_height_m,
                horizon_altitude_deg=result.horizon_altitude_deg,
                target_altitude_deg=result.target_altitude_deg,
                samples_checked=result.samples_checked,
                obstruction_distance_m=result.obstruction_distance_m,
                obstruction_height_m=result.obstruction_height_m,
                used_fallback=result.used_fallback,
                message=message,
            )
            return format_response(response, output_mode)

        except Exception as e:
            logger.error(f"iv_line_of_sight failed: {e}")
            return format_response(ErrorResponse(error=str(e)), output_mode)
