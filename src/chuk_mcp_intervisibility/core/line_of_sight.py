"""
Line-of-sight evaluation between two sites.

Standard terrestrial LOS test: a distance cap, an optional pre-filter
against the observer's horizon profile, then terrain sampled along the
sightline with an Earth-curvature and refraction correction beyond 10 km.
"""

import asyncio
import bisect
import logging
import math
from collections.abc import Callable, Sequence

from ..config import AnalysisConfig
from ..constants import VisibilityReason
from .geodesy import haversine_m, initial_bearing_deg, interpolate, midpoint
from .raster_cache import RasterCache, TerrainRaster
from .sites import HorizonSample, Site, VisibilityResult
from .terrain_provider import TerrainProvider

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


def _never_cancelled() -> bool:
    return False


def interpolate_horizon_altitude(
    azimuth: float, samples: Sequence[HorizonSample]
) -> float | None:
    """Horizon altitude at ``azimuth`` by linear interpolation over a circular profile.

    Azimuths are normalised to [0, 360) and sorted, then the profile is
    extended by one virtual sample on each end so the 0/360 seam brackets
    like any other gap. When a bracketing sample is not finite, or both sit
    at the same azimuth, the nearest finite sample is used instead.

    Returns:
        Altitude in degrees, or None if the profile has no finite samples
    """
    if not samples:
        return None

    target = azimuth % 360.0
    ordered = sorted(((s.azimuth % 360.0, s.altitude) for s in samples), key=lambda p: p[0])
    first_az, first_alt = ordered[0]
    last_az, last_alt = ordered[-1]
    extended = [(last_az - 360.0, last_alt), *ordered, (first_az + 360.0, first_alt)]

    azimuths = [az for az, _ in extended]
    hi = bisect.bisect_left(azimuths, target)
    hi = min(max(hi, 1), len(extended) - 1)
    az0, alt0 = extended[hi - 1]
    az1, alt1 = extended[hi]

    if math.isfinite(alt0) and math.isfinite(alt1) and az1 != az0:
        ratio = (target - az0) / (az1 - az0)
        return alt0 + (alt1 - alt0) * ratio

    return _nearest_altitude(target, ordered)


def _nearest_altitude(target: float, ordered: list[tuple[float, float]]) -> float | None:
    best: float | None = None
    best_dist = math.inf
    for az, alt in ordered:
        if not math.isfinite(alt):
            continue
        diff = abs(az - target)
        dist = min(diff, 360.0 - diff)
        if dist < best_dist:
            best_dist = dist
            best = alt
    return best


class LineOfSightEvaluator:
    """Decide visibility between two sites using the shared raster cache."""

    def __init__(
        self,
        provider: TerrainProvider,
        cache: RasterCache,
        config: AnalysisConfig,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.config = config

    def sample_count(self, distance_m: float) -> int:
        """Samples along a sightline: ~one per interval, clamped to the configured bounds."""
        wanted = math.ceil(distance_m / self.config.sample_interval_m)
        return min(self.config.max_samples, max(self.config.min_samples, wanted))

    def required_los_height(
        self, height_a: float, height_b: float, distance_m: float, fraction: float
    ) -> float:
        """Sightline height at ``fraction`` of the way from A to B, curvature-corrected."""
        h_los = height_a + (height_b - height_a) * fraction
        if distance_m > self.config.curvature_threshold_m:
            d_ox = fraction * distance_m
            drop = (d_ox * (distance_m - d_ox)) / (2.0 * self.config.earth_radius_m)
            lift = self.config.refraction_coefficient * drop
            h_los = h_los - drop + lift
        return h_los

    async def is_visible(
        self,
        site_a: Site,
        site_b: Site,
        height_a: float,
        height_b: float,
        profile_a: Sequence[HorizonSample] | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> bool:
        result = await self.evaluate(site_a, site_b, height_a, height_b, profile_a, should_cancel)
        return result.visible

    async def evaluate(
        self,
        site_a: Site,
        site_b: Site,
        height_a: float,
        height_b: float,
        profile_a: Sequence[HorizonSample] | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> VisibilityResult:
        """Evaluate the sightline from A to B.

        Args:
            site_a: Observer site
            site_b: Target site
            height_a: Observer absolute height (m)
            height_b: Target absolute height (m)
            profile_a: Observer horizon profile; enables the horizon pre-filter
            should_cancel: Polled between samples; a cancelled check is not visible

        Returns:
            VisibilityResult with the outcome and the geometry behind it
        """
        cancelled = should_cancel or _never_cancelled
        distance = haversine_m(site_a.lat, site_a.lon, site_b.lat, site_b.lon)

        if distance == 0:
            return VisibilityResult(visible=True, reason=VisibilityReason.SAME_POINT)

        if distance > self.config.scan_radius_m:
            return VisibilityResult(
                visible=False, reason=VisibilityReason.BEYOND_RANGE, distance_m=distance
            )

        bearing = initial_bearing_deg(site_a.lat, site_a.lon, site_b.lat, site_b.lon)
        target_alt = math.degrees(math.atan2(height_b - height_a, distance))
        result = VisibilityResult(
            visible=False,
            reason=VisibilityReason.CLEAR,
            distance_m=distance,
            bearing_deg=bearing,
            target_altitude_deg=target_alt,
        )

        if profile_a:
            horizon_alt = interpolate_horizon_altitude(bearing, profile_a)
            result.horizon_altitude_deg = horizon_alt
            if horizon_alt is not None and target_alt < horizon_alt:
                result.reason = VisibilityReason.BELOW_HORIZON
                return result

        if cancelled():
            result.reason = VisibilityReason.CANCELLED
            return result

        line_raster = await self._fetch_line_raster(site_a, site_b, distance, result)

        num_samples = self.sample_count(distance)
        for i in range(1, num_samples):
            if cancelled():
                result.reason = VisibilityReason.CANCELLED
                return result
            if i % self.config.sample_yield_interval == 0:
                await asyncio.sleep(0)

            fraction = i / num_samples
            lat, lon = interpolate(site_a.lat, site_a.lon, site_b.lat, site_b.lon, fraction)

            terrain = self._sample_terrain(line_raster, lat, lon, result)
            if terrain is None:
                continue
            result.samples_checked += 1

            h_los = self.required_los_height(height_a, height_b, distance, fraction)
            if terrain > h_los + self.config.obstruction_buffer_m:
                result.reason = VisibilityReason.BLOCKED
                result.obstruction_distance_m = fraction * distance
                result.obstruction_height_m = terrain
                return result

        if result.samples_checked == 0:
            logger.warning(
                f"No terrain available between {site_a.display_name} and "
                f"{site_b.display_name}; treating as not visible"
            )
            result.reason = VisibilityReason.NO_TERRAIN
            return result

        result.visible = True
        result.reason = VisibilityReason.CLEAR
        return result

    async def _fetch_line_raster(
        self, site_a: Site, site_b: Site, distance: float, result: VisibilityResult
    ) -> TerrainRaster | None:
        """Raster centred on the segment midpoint covering both ends plus a buffer."""
        center = midpoint(site_a.lat, site_a.lon, site_b.lat, site_b.lon)
        radius_km = (distance / 1000.0 / 2.0) * self.config.line_buffer_factor
        tile_radius = self.config.tile_radius_for(radius_km)
        try:
            return await self.cache.get_or_fetch(center, tile_radius, self.config.horizon_zoom)
        except Exception as e:
            logger.warning(
                f"Line raster fetch failed for {site_a.display_name} -> "
                f"{site_b.display_name}: {e}"
            )
            result.notes.append(f"line raster unavailable: {e}")
            return None

    def _sample_terrain(
        self,
        line_raster: TerrainRaster | None,
        lat: float,
        lon: float,
        result: VisibilityResult,
    ) -> float | None:
        if line_raster is not None and line_raster.is_valid:
            height = self.provider.sample_height(line_raster, lat, lon)
            if height is not None:
                return height

        # Any other cached raster covering the point, nearest centre first
        for raster in self.cache.covering(lat, lon):
            if raster is line_raster:
                continue
            height = self.provider.sample_height(raster, lat, lon)
            if height is not None:
                result.used_fallback = True
                return height
        return None
