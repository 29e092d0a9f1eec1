"""
Batch scheduler for intervisibility runs.

Drives one ``CalculationSession`` through

    idle -> profile_phase -> pair_phase (<-> paused) -> completed | cancelled | failed

on a single event loop. Every site, every pair and every few samples is an
explicit ``await asyncio.sleep(0)``; pause and cancel are flags read only
at those points.
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..config import AnalysisConfig
from ..constants import (
    TERMINAL_STATES,
    ErrorMessages,
    ProgressMessages,
    RunState,
    VisibilityReason,
)
from .line_of_sight import LineOfSightEvaluator
from .network_stats import NetworkStatistics, VisibilityGraph, compute_statistics
from .profiles import ProfilePrecomputer
from .raster_cache import RasterCache
from .sites import Site, SiteProfile, VisibilityResult, VisiblePair
from .terrain_provider import TerrainProvider

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]
CompletionCallback = Callable[["CalculationSession"], Awaitable[None] | None]


@dataclass
class CalculationSession:
    """Mutable state of one run, addressed by ``id``."""

    sites: list[Site]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: str = RunState.IDLE
    profiles: dict[int, SiteProfile] = field(default_factory=dict)
    failed_sites: dict[int, str] = field(default_factory=dict)
    checked_pairs: set[tuple[int, int]] = field(default_factory=set)
    visible_pairs: list[VisiblePair] = field(default_factory=list)
    total_pairs: int = 0
    pause_requested: bool = False
    cancel_requested: bool = False
    message: str = ""
    error: str | None = None
    statistics: NetworkStatistics | None = None
    report_ref: str | None = None
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    finished_at: float | None = None

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self._require_active()
        self.pause_requested = True

    def resume(self) -> None:
        self._require_active()
        self.pause_requested = False

    def cancel(self) -> None:
        self._require_active()
        self.cancel_requested = True

    def _require_active(self) -> None:
        if self.is_finished:
            raise ValueError(ErrorMessages.RUN_NOT_ACTIVE.format(self.id, self.state))

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def pairs_checked(self) -> int:
        return len(self.checked_pairs)

    @property
    def profiles_completed(self) -> int:
        return len(self.profiles)

    @property
    def percent_complete(self) -> float:
        if self.state == RunState.COMPLETED:
            return 100.0
        if self.total_pairs:
            return 100.0 * self.pairs_checked / self.total_pairs
        return 0.0

    @property
    def elapsed_s(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at


class BatchScheduler:
    """Runs the profile phase then the pairwise phase for a session."""

    def __init__(
        self,
        provider: TerrainProvider,
        cache: RasterCache,
        config: AnalysisConfig,
        progress: ProgressSink | None = None,
        on_finished: CompletionCallback | None = None,
    ) -> None:
        self.cache = cache
        self.config = config
        self._progress = progress
        self._on_finished = on_finished
        self.precomputer = ProfilePrecomputer(provider, cache, config, report=self._report)
        self.evaluator = LineOfSightEvaluator(provider, cache, config)

    async def run(self, session: CalculationSession) -> CalculationSession:
        """Run ``session`` to a terminal state and return it."""
        session.started_at = time.time()

        if len(session.sites) < 2:
            self._fail(session, ErrorMessages.TOO_FEW_SITES.format(len(session.sites)))
        else:
            await self._profile_phase(session)

            if session.cancel_requested:
                await self._finish(session, RunState.CANCELLED, ProgressMessages.CANCELLED)
            elif len(session.profiles) < 2:
                self._fail(session, ErrorMessages.INSUFFICIENT_PROFILES.format(len(session.profiles)))
            else:
                await self._pair_phase(session)
                if session.cancel_requested:
                    await self._finish(session, RunState.CANCELLED, ProgressMessages.CANCELLED)
                else:
                    await self._finish(session, RunState.COMPLETED, ProgressMessages.COMPLETED)

        await self._notify_finished(session)
        return session

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _profile_phase(self, session: CalculationSession) -> None:
        session.state = RunState.PROFILE_PHASE
        self._report(ProgressMessages.PROFILE_PHASE, session)
        total = len(session.sites)
        completed = 0

        for index, site in enumerate(session.sites):
            if session.cancel_requested:
                break
            if index in session.profiles:
                continue

            self._report(
                ProgressMessages.PROFILE_SITE.format(index + 1, total, site.display_name), session
            )
            try:
                profile = await self.precomputer.compute_profile(site, index)
            except Exception as e:
                logger.warning(f"Profile failed for site {site.display_name}: {e}")
                session.failed_sites[index] = str(e)
                self._report(ProgressMessages.PROFILE_ERROR.format(site.display_name, e), session)
                if self.config.stop_on_profile_failure:
                    break
                continue

            session.profiles[index] = profile
            completed += 1
            if completed % self.config.profile_cleanup_interval == 0:
                self.cache.cleanup()
            await asyncio.sleep(0)

    async def _pair_phase(self, session: CalculationSession) -> None:
        indices = sorted(session.profiles)
        pairs = [(i, j) for pos, i in enumerate(indices) for j in indices[pos + 1 :]]
        session.total_pairs = len(pairs)
        session.state = RunState.PAIR_PHASE
        self._report(ProgressMessages.PAIR_PHASE.format(len(indices), len(pairs)), session)

        checked_this_pass = 0
        for i, j in pairs:
            await self._wait_while_paused(session)
            if session.cancel_requested:
                break
            if (i, j) in session.checked_pairs:
                continue

            result = await self._check_pair(session, i, j)
            if result.reason == VisibilityReason.CANCELLED:
                break

            session.checked_pairs.add((i, j))
            if result.visible:
                session.visible_pairs.append(VisiblePair(i, j, result.distance_m))

            self._report(
                ProgressMessages.PAIR_CHECK.format(
                    session.pairs_checked,
                    session.total_pairs,
                    session.sites[i].display_name,
                    session.sites[j].display_name,
                ),
                session,
            )
            await asyncio.sleep(0)

            checked_this_pass += 1
            if checked_this_pass % self.config.pair_cleanup_interval == 0:
                self.cache.cleanup()

    async def _wait_while_paused(self, session: CalculationSession) -> None:
        if not session.pause_requested or session.cancel_requested:
            return
        session.state = RunState.PAUSED
        self._report(ProgressMessages.PAUSED, session)
        while session.pause_requested and not session.cancel_requested:
            await asyncio.sleep(self.config.pause_poll_interval_s)
        session.state = RunState.PAIR_PHASE
        if not session.cancel_requested:
            self._report(ProgressMessages.RESUMED, session)

    async def _check_pair(self, session: CalculationSession, i: int, j: int) -> VisibilityResult:
        """Evaluate one pair; any fault degrades to not visible."""
        profile_i = session.profiles[i]
        profile_j = session.profiles[j]
        try:
            return await self.evaluator.evaluate(
                session.sites[i],
                session.sites[j],
                profile_i.observer_height,
                profile_j.observer_height,
                profile_i.horizon,
                should_cancel=lambda: session.cancel_requested,
            )
        except Exception as e:
            logger.warning(
                f"Visibility check failed for {session.sites[i].display_name} -> "
                f"{session.sites[j].display_name}: {e}"
            )
            return VisibilityResult(visible=False, reason=VisibilityReason.ERROR, notes=[str(e)])

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def _finish(self, session: CalculationSession, state: str, template: str) -> None:
        session.pause_requested = False
        graph = VisibilityGraph.from_pairs(len(session.sites), session.visible_pairs)
        # Worker thread: all-paths betweenness is exponential in the worst case
        session.statistics = await asyncio.to_thread(compute_statistics, graph)
        session.state = state
        session.finished_at = time.time()
        self._report(
            template.format(
                len(session.visible_pairs), session.pairs_checked, len(session.profiles)
            ),
            session,
        )

    def _fail(self, session: CalculationSession, message: str) -> None:
        logger.error(f"Run {session.id} failed: {message}")
        session.error = message
        session.state = RunState.FAILED
        session.finished_at = time.time()
        self._report(message, session)

    async def _notify_finished(self, session: CalculationSession) -> None:
        if self._on_finished is None:
            return
        try:
            outcome = self._on_finished(session)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Completion callback failed for run {session.id}: {e}")

    def _report(self, text: str, session: CalculationSession | None = None) -> None:
        """Fire-and-forget progress; a failing sink is logged, never raised."""
        if session is not None:
            session.message = text
        logger.info(text)
        if self._progress is None:
            return
        try:
            self._progress(text)
        except Exception as e:
            logger.debug(f"Progress sink raised: {e}")
