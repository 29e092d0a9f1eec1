"""
Intervisibility Manager: central orchestrator for analysis runs.

Owns the run sessions, builds a scheduler and raster cache per run, and
persists finished run reports to the artifact store. Runs execute as
asyncio tasks on the server's event loop.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..config import AnalysisConfig
from ..constants import (
    DEM_SOURCES,
    MAX_FINISHED_RUNS,
    ErrorMessages,
    RunState,
    VisibilityReason,
)
from .geodesy import haversine_m, midpoint
from .line_of_sight import LineOfSightEvaluator
from .network_stats import NetworkStatistics
from .profiles import ProfilePrecomputer
from .raster_cache import RasterCache
from .scheduler import BatchScheduler, CalculationSession
from .sites import Site, VisibilityResult, load_sites
from .terrain_provider import CopernicusTerrainProvider, TerrainProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[AnalysisConfig], TerrainProvider]
RunCallback = Callable[[CalculationSession], Awaitable[None] | None]


@dataclass
class LineOfSightResult:
    """Result of an ad-hoc line-of-sight check."""

    result: VisibilityResult
    observer_ground_m: float | None
    target_ground_m: float | None
    observer_height_m: float
    target_height_m: float
    source: str


def _default_provider(config: AnalysisConfig) -> TerrainProvider:
    return CopernicusTerrainProvider(
        source=config.source,
        earth_radius_m=config.earth_radius_m,
        refraction_coefficient=config.refraction_coefficient,
    )


class IntervisibilityManager:
    """Central manager for intervisibility runs."""

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        provider_factory: ProviderFactory | None = None,
        progress_callback: Callable[[str], None] | None = None,
        on_run_finished: RunCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_finished_runs: int = MAX_FINISHED_RUNS,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.max_finished_runs = max(1, max_finished_runs)
        self.provider_factory = provider_factory or _default_provider
        self.progress_callback = progress_callback
        self.on_run_finished = on_run_finished
        self._clock = clock

        self._sessions: dict[str, CalculationSession] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        # Shared by ad-hoc checks only; each run gets its own cache
        self._providers: dict[str, TerrainProvider] = {}
        self._caches: dict[str, RasterCache] = {}
        self._run_caches: dict[str, RasterCache] = {}

    @property
    def default_source(self) -> str:
        return self.config.source

    # ------------------------------------------------------------------
    # Discovery (sync, no I/O)
    # ------------------------------------------------------------------

    def list_sources(self) -> list[dict]:
        """List all available DEM sources."""
        return [
            {
                "id": s["id"],
                "name": s["name"],
                "resolution_m": s["resolution_m"],
                "coverage": s["coverage"],
                "vertical_datum": s["vertical_datum"],
            }
            for s in DEM_SOURCES.values()
        ]

    def cache_size_bytes(self) -> int:
        caches = [*self._caches.values(), *self._run_caches.values()]
        return sum(c.total_bytes for c in caches)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def start_run(
        self,
        sites: Iterable[Site | Mapping[str, Any]],
        source: str | None = None,
        scan_radius_km: float | None = None,
    ) -> CalculationSession:
        """Validate the sites and launch a run in the background.

        Must be called from inside a running event loop.

        Raises:
            ValueError: invalid coordinates, duplicate ids, fewer than 2 sites,
                unknown source or radius
        """
        site_list = load_sites(sites)
        if len(site_list) < 2:
            raise ValueError(ErrorMessages.TOO_FEW_SITES.format(len(site_list)))

        config = self.config.with_overrides(source=source, scan_radius_km=scan_radius_km)
        provider = self.provider_factory(config)
        cache = RasterCache(
            provider.fetch_terrain_raster,
            max_entries=config.cache_max_entries,
            max_age_s=config.cache_max_age_s,
            clock=self._clock,
        )

        async def finished(session: CalculationSession) -> None:
            await self._on_finished(session, cache)

        scheduler = BatchScheduler(
            provider,
            cache,
            config,
            progress=self.progress_callback,
            on_finished=finished,
        )

        session = CalculationSession(sites=site_list)
        self._sessions[session.id] = session
        self._run_caches[session.id] = cache
        self._tasks[session.id] = asyncio.create_task(scheduler.run(session))
        logger.info(f"Run {session.id} started for {len(site_list)} sites ({config.source})")
        return session

    async def wait_for_run(self, session_id: str) -> CalculationSession:
        """Await the background task of a run."""
        session = self.get_session(session_id)
        task = self._tasks.get(session_id)
        if task is not None:
            await task
        return session

    def get_session(self, session_id: str) -> CalculationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise ValueError(ErrorMessages.UNKNOWN_SESSION.format(session_id))
        return session

    def list_runs(self) -> list[CalculationSession]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def pause_run(self, session_id: str) -> CalculationSession:
        session = self.get_session(session_id)
        session.pause()
        return session

    def resume_run(self, session_id: str) -> CalculationSession:
        session = self.get_session(session_id)
        session.resume()
        return session

    def cancel_run(self, session_id: str) -> CalculationSession:
        session = self.get_session(session_id)
        session.cancel()
        return session

    def get_statistics(self, session_id: str) -> NetworkStatistics:
        session = self.get_session(session_id)
        if session.statistics is None:
            raise ValueError(ErrorMessages.RUN_NOT_FINISHED.format(session_id, session.state))
        return session.statistics

    # ------------------------------------------------------------------
    # Ad-hoc line of sight
    # ------------------------------------------------------------------

    async def check_line_of_sight(
        self,
        observer: tuple[float, float],
        target: tuple[float, float],
        observer_height_m: float = 0.0,
        target_height_m: float = 0.0,
        use_horizon: bool = False,
        source: str | None = None,
        scan_radius_km: float | None = None,
    ) -> LineOfSightResult:
        """Check one sightline outside a batch run.

        Args:
            observer: Observer (lat, lon)
            target: Target (lat, lon)
            observer_height_m: Height above ground at the observer
            target_height_m: Height above ground at the target
            use_horizon: Also compute the observer's horizon profile and pre-filter with it
            source: DEM source override
            scan_radius_km: Scan radius override

        Returns:
            LineOfSightResult with the evaluation and the heights used
        """
        config = self.config.with_overrides(source=source, scan_radius_km=scan_radius_km)
        site_a = Site(id="observer", lat=observer[0], lon=observer[1])
        site_b = Site(id="target", lat=target[0], lon=target[1])
        provider, cache = self._shared_terrain(config)

        distance = haversine_m(site_a.lat, site_a.lon, site_b.lat, site_b.lon)
        if distance > config.scan_radius_m:
            # Out of range: answer without touching terrain
            return LineOfSightResult(
                result=VisibilityResult(
                    visible=False, reason=VisibilityReason.BEYOND_RANGE, distance_m=distance
                ),
                observer_ground_m=None,
                target_ground_m=None,
                observer_height_m=observer_height_m,
                target_height_m=target_height_m,
                source=config.source,
            )

        center = midpoint(site_a.lat, site_a.lon, site_b.lat, site_b.lon)
        radius_km = (distance / 1000.0 / 2.0) * config.line_buffer_factor
        raster = await cache.get_or_fetch(
            center, config.tile_radius_for(radius_km), config.horizon_zoom
        )

        ground_a = provider.sample_height(raster, site_a.lat, site_a.lon)
        ground_b = provider.sample_height(raster, site_b.lat, site_b.lon)
        if ground_a is None:
            raise ValueError(ErrorMessages.NO_TERRAIN_AT.format(site_a.lat, site_a.lon))
        if ground_b is None:
            raise ValueError(ErrorMessages.NO_TERRAIN_AT.format(site_b.lat, site_b.lon))

        horizon = None
        if use_horizon:
            precomputer = ProfilePrecomputer(provider, cache, config)
            profile = await precomputer.compute_profile(site_a, 0)
            horizon = profile.horizon

        evaluator = LineOfSightEvaluator(provider, cache, config)
        result = await evaluator.evaluate(
            site_a,
            site_b,
            ground_a + observer_height_m,
            ground_b + target_height_m,
            horizon,
        )
        return LineOfSightResult(
            result=result,
            observer_ground_m=ground_a,
            target_ground_m=ground_b,
            observer_height_m=observer_height_m,
            target_height_m=target_height_m,
            source=config.source,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _shared_terrain(self, config: AnalysisConfig) -> tuple[TerrainProvider, RasterCache]:
        provider = self._providers.get(config.source)
        if provider is None:
            provider = self.provider_factory(config)
            self._providers[config.source] = provider
            self._caches[config.source] = RasterCache(
                provider.fetch_terrain_raster,
                max_entries=config.cache_max_entries,
                max_age_s=config.cache_max_age_s,
                clock=self._clock,
            )
        return provider, self._caches[config.source]

    async def _on_finished(self, session: CalculationSession, cache: RasterCache) -> None:
        cache.clear()
        self._run_caches.pop(session.id, None)

        if session.state in (RunState.COMPLETED, RunState.CANCELLED):
            try:
                session.report_ref = await self._store_report(session)
            except Exception as e:
                logger.warning(f"Could not store report for run {session.id}: {e}")

        try:
            if self.on_run_finished is not None:
                outcome = self.on_run_finished(session)
                if asyncio.iscoroutine(outcome):
                    await outcome
        finally:
            self._tasks.pop(session.id, None)
            self._prune_finished()

    def _prune_finished(self) -> None:
        """Forget the oldest finished runs beyond ``max_finished_runs``."""
        finished = sorted(
            (s for s in self._sessions.values() if s.is_finished),
            key=lambda s: s.finished_at or s.created_at,
        )
        for session in finished[: max(0, len(finished) - self.max_finished_runs)]:
            del self._sessions[session.id]
            logger.debug(f"Dropped finished run {session.id}")

    def _get_store(self) -> Any:
        """Get the artifact store instance."""
        from chuk_mcp_server import get_artifact_store

        store = get_artifact_store()
        if store is None:
            raise RuntimeError(ErrorMessages.NO_ARTIFACT_STORE)
        return store

    async def _store_report(self, session: CalculationSession) -> str:
        """Store the JSON run report in the artifact store."""
        store = self._get_store()
        ref = f"intervisibility/{session.id}.json"
        report = build_run_report(session)
        await store.store(
            ref,
            json.dumps(report).encode("utf-8"),
            mime_type="application/json",
            metadata={
                "type": "intervisibility_report",
                "state": session.state,
                "sites": len(session.sites),
                "visible_pairs": len(session.visible_pairs),
            },
            summary=f"Intervisibility run {session.id} ({session.state})",
        )
        logger.info(f"Stored report for run {session.id} at {ref}")
        return ref


def build_run_report(session: CalculationSession) -> dict[str, Any]:
    """Serialisable summary of a run: sites, visible pairs and statistics."""
    return {
        "run_id": session.id,
        "state": session.state,
        "error": session.error,
        "sites": [
            {
                "index": i,
                "id": s.id,
                "name": s.display_name,
                "lat": s.lat,
                "lon": s.lon,
                "observer_height_m": (
                    session.profiles[i].observer_height if i in session.profiles else None
                ),
            }
            for i, s in enumerate(session.sites)
        ],
        "failed_sites": {str(k): v for k, v in session.failed_sites.items()},
        "pairs_checked": session.pairs_checked,
        "total_pairs": session.total_pairs,
        "visible_pairs": [
            {"i": p.i, "j": p.j, "distance_m": round(p.distance_m, 1)}
            for p in session.visible_pairs
        ],
        "statistics": session.statistics.to_dict() if session.statistics else None,
        "elapsed_s": round(session.elapsed_s, 2),
    }
