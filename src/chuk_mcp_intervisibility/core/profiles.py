"""
Per-site horizon profile precomputation.

Each site gets one raster, one observer height and one horizon profile.
The raster is released straight after use so that only the small profile
stays in memory across the run.
"""

import logging
from collections.abc import Callable

from ..config import AnalysisConfig
from ..constants import ProgressMessages
from .raster_cache import RasterCache
from .sites import Site, SiteProfile
from .terrain_provider import TerrainProvider

logger = logging.getLogger(__name__)


class ProfilePrecomputer:
    """Compute ``SiteProfile`` records through the shared raster cache."""

    def __init__(
        self,
        provider: TerrainProvider,
        cache: RasterCache,
        config: AnalysisConfig,
        report: Callable[[str], None] | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.config = config
        self._report = report or (lambda _text: None)

    async def compute_profile(self, site: Site, index: int) -> SiteProfile:
        """Fetch a raster around ``site`` and derive its horizon profile.

        Raises whatever the fetch or viewshed collaborators raise; the
        scheduler decides what a failure means for the run.
        """
        label = site.display_name

        def on_progress(done: int, total: int) -> None:
            self._report(ProgressMessages.PROFILE_DOWNLOAD.format(label, done, total))

        raster = await self.cache.get_or_fetch(
            site.position,
            self.config.profile_tile_radius,
            self.config.horizon_zoom,
            on_progress,
        )
        try:
            sampled = self.provider.sample_height(raster, site.lat, site.lon)
            if sampled is not None:
                observer_height = sampled
            elif site.elevation is not None:
                logger.debug(f"No terrain under {label}; using stored elevation")
                observer_height = site.elevation
            else:
                logger.warning(f"No terrain or stored elevation for {label}; assuming 0 m")
                observer_height = 0.0

            self._report(ProgressMessages.PROFILE_VIEWSHED.format(label))
            horizon = await self.provider.compute_horizon_profile(
                raster,
                site.lat,
                site.lon,
                observer_height,
                self.config.horizon_steps,
                self.config.scan_radius_m,
            )
        finally:
            raster.release()

        return SiteProfile(index=index, horizon=list(horizon), observer_height=observer_height)
