"""
Tests for the batch scheduler: phases, pause/resume, cancellation and
failure handling over synthetic terrain.
"""

import asyncio
import threading
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from chuk_mcp_intervisibility.constants import RunState, VisibilityReason
from chuk_mcp_intervisibility.core import scheduler as scheduler_module
from chuk_mcp_intervisibility.core.raster_cache import RasterCache
from chuk_mcp_intervisibility.core.scheduler import BatchScheduler, CalculationSession
from chuk_mcp_intervisibility.core.sites import Site


def _scheduler(provider, config, progress=None, on_finished=None):
    cache = RasterCache(
        provider.fetch_terrain_raster,
        max_entries=config.cache_max_entries,
        max_age_s=config.cache_max_age_s,
    )
    return BatchScheduler(provider, cache, config, progress=progress, on_finished=on_finished)


async def _wait_for_state(session, state, timeout=5.0):
    async def poll():
        while session.state != state:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


async def _wait_until(predicate, timeout=5.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


# ===================================================================
# Full runs
# ===================================================================


class TestCompletedRuns:
    @pytest.mark.asyncio
    async def test_flat_sites_all_visible(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config).run(session)

        assert session.state == RunState.COMPLETED
        assert session.total_pairs == 6
        assert session.pairs_checked == 6
        assert len(session.visible_pairs) == 6
        assert session.percent_complete == 100.0
        assert session.finished_at is not None
        assert session.statistics.edge_count == 6
        assert session.statistics.diameter == 1

    @pytest.mark.asyncio
    async def test_visible_pairs_ordered_and_unique(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config).run(session)

        keys = [p.key for p in session.visible_pairs]
        assert len(keys) == len(set(keys))
        assert all(i < j for i, j in keys)

    @pytest.mark.asyncio
    async def test_ridge_network(self, ridge_provider, test_config, ridge_sites):
        session = CalculationSession(sites=ridge_sites)
        await _scheduler(ridge_provider, test_config).run(session)

        assert session.state == RunState.COMPLETED
        assert {p.key for p in session.visible_pairs} == {(0, 2), (1, 2)}
        stats = session.statistics
        assert stats.diameter == 2
        assert stats.average_path_length == pytest.approx(4 / 3)
        assert stats.degrees == [1, 1, 2]
        assert stats.betweenness[2] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_profiles_hold_no_rasters(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)
        scheduler = _scheduler(flat_provider, test_config)
        await scheduler.run(session)

        assert len(session.profiles) == 4
        for profile in session.profiles.values():
            assert profile.observer_height == pytest.approx(100.0)
            assert len(profile.horizon) == test_config.horizon_steps

    @pytest.mark.asyncio
    async def test_statistics_computed_off_event_loop(self, flat_provider, test_config, flat_sites):
        threads = []
        original = scheduler_module.compute_statistics

        def recording(graph):
            threads.append(threading.get_ident())
            return original(graph)

        session = CalculationSession(sites=flat_sites)
        with patch.object(scheduler_module, "compute_statistics", recording):
            await _scheduler(flat_provider, test_config).run(session)

        assert threads and threads[0] != threading.get_ident()
        assert session.statistics.edge_count == 6

    @pytest.mark.asyncio
    async def test_progress_messages(self, flat_provider, test_config, flat_sites):
        messages = []
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config, progress=messages.append).run(session)

        assert messages[0] == "Phase 1: Calculating horizon profiles for all sites..."
        assert any(m.startswith("Phase 2: 6/6 pairs checked") for m in messages)
        assert messages[-1].startswith("Intervisibility matrix created. Found 6")
        assert session.message == messages[-1]


# ===================================================================
# Pause / resume
# ===================================================================


class TestPauseResume:
    @pytest.mark.asyncio
    async def test_pause_holds_then_resume_finishes(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)

        def progress(text):
            if text.startswith("Phase 2: 2/6"):
                session.pause()

        task = asyncio.create_task(_scheduler(flat_provider, test_config, progress).run(session))
        await _wait_for_state(session, RunState.PAUSED)

        held = session.pairs_checked
        assert held == 2
        await asyncio.sleep(0.02)
        assert session.pairs_checked == held

        session.resume()
        await asyncio.wait_for(task, 10)

        assert session.state == RunState.COMPLETED
        assert session.pairs_checked == 6
        assert len(session.visible_pairs) == 6

    @pytest.mark.asyncio
    async def test_already_checked_pairs_skipped(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)
        session.checked_pairs.add((0, 1))
        await _scheduler(flat_provider, test_config).run(session)

        assert session.pairs_checked == 6
        # (0, 1) was pre-marked, so it never reaches the visible list
        assert (0, 1) not in {p.key for p in session.visible_pairs}
        assert len(session.visible_pairs) == 5

    @pytest.mark.asyncio
    async def test_cancel_while_paused(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)

        def progress(text):
            if text.startswith("Phase 2: 1/6"):
                session.pause()

        task = asyncio.create_task(_scheduler(flat_provider, test_config, progress).run(session))
        await _wait_for_state(session, RunState.PAUSED)
        session.cancel()
        await asyncio.wait_for(task, 10)

        assert session.state == RunState.CANCELLED
        assert session.pairs_checked == 1
        assert not session.pause_requested


class TestRidgeResumability:
    """Interrupted runs over terrain with a blocked pair agree with an uninterrupted run."""

    async def _uninterrupted(self, provider, config, sites):
        session = CalculationSession(sites=sites)
        await _scheduler(provider, config).run(session)
        return {p.key for p in session.visible_pairs}

    @pytest.mark.asyncio
    async def test_pause_resume_matches_uninterrupted(self, ridge_provider, test_config, ridge_sites):
        expected = await self._uninterrupted(ridge_provider, test_config, ridge_sites)
        assert expected == {(0, 2), (1, 2)}

        session = CalculationSession(sites=ridge_sites)

        def progress(text):
            # Pause right after the blocked pair (0, 1), and again after (0, 2)
            if text.startswith(("Phase 2: 1/3", "Phase 2: 2/3")):
                session.pause()

        task = asyncio.create_task(_scheduler(ridge_provider, test_config, progress).run(session))
        for held in (1, 2):
            await _wait_until(
                lambda: session.state == RunState.PAUSED and session.pairs_checked == held
            )
            await asyncio.sleep(0.01)
            assert session.pairs_checked == held
            session.resume()
        await asyncio.wait_for(task, 10)

        assert session.state == RunState.COMPLETED
        assert session.pairs_checked == 3
        assert {p.key for p in session.visible_pairs} == expected
        assert len(session.visible_pairs) == len(expected)

    @pytest.mark.asyncio
    async def test_cancelled_run_is_subset_of_uninterrupted(
        self, ridge_provider, test_config, ridge_sites
    ):
        expected = await self._uninterrupted(ridge_provider, test_config, ridge_sites)
        session = CalculationSession(sites=ridge_sites)

        def progress(text):
            if text.startswith("Phase 2: 2/3"):
                session.cancel()

        await _scheduler(ridge_provider, test_config, progress).run(session)

        found = {p.key for p in session.visible_pairs}
        assert session.state == RunState.CANCELLED
        assert session.pairs_checked == 2
        assert found == {(0, 2)}
        assert found < expected
        assert (0, 1) not in found


# ===================================================================
# Cancellation
# ===================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_in_pair_phase_keeps_subset(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)

        def progress(text):
            if text.startswith("Phase 2: 3/6"):
                session.cancel()

        await _scheduler(flat_provider, test_config, progress).run(session)

        assert session.state == RunState.CANCELLED
        assert session.pairs_checked == 3
        assert {p.key for p in session.visible_pairs} <= session.checked_pairs
        assert session.statistics is not None
        assert session.statistics.node_count == 4
        assert session.statistics.edge_count == 3
        assert session.message.startswith("Calculation cancelled. Found 3")

    @pytest.mark.asyncio
    async def test_cancel_in_profile_phase(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)

        def progress(text):
            if text.startswith("Phase 1: Calculating profile 2/4"):
                session.cancel()

        await _scheduler(flat_provider, test_config, progress).run(session)

        assert session.state == RunState.CANCELLED
        assert len(session.profiles) == 2
        assert session.pairs_checked == 0
        assert session.statistics.edge_count == 0

    @pytest.mark.asyncio
    async def test_controls_rejected_after_finish(self, flat_provider, test_config, flat_sites):
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config).run(session)

        for control in (session.pause, session.resume, session.cancel):
            with pytest.raises(ValueError, match="is not active"):
                control()


# ===================================================================
# Failures
# ===================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_too_few_sites(self, flat_provider, test_config):
        session = CalculationSession(sites=[Site(id="solo", lat=46.0, lon=7.0)])
        await _scheduler(flat_provider, test_config).run(session)

        assert session.state == RunState.FAILED
        assert "at least 2 sites" in session.error
        assert flat_provider.fetches == []

    @pytest.mark.asyncio
    async def test_profile_failure_stops_phase(self, flat_provider, test_config, flat_sites):
        flat_provider.fail_when = lambda center: center != (46.0, 7.0)
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config).run(session)

        assert session.state == RunState.FAILED
        assert "Only 1 profile(s) completed" in session.error
        assert list(session.failed_sites) == [1]
        assert session.pairs_checked == 0

    @pytest.mark.asyncio
    async def test_profile_failure_skipped_when_configured(
        self, flat_provider, test_config, flat_sites
    ):
        flat_provider.fail_when = lambda center: center == (46.02, 7.00)
        config = replace(test_config, stop_on_profile_failure=False)
        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, config).run(session)

        assert session.state == RunState.COMPLETED
        assert list(session.failed_sites) == [2]
        assert session.total_pairs == 3
        assert {p.key for p in session.visible_pairs} == {(0, 1), (0, 3), (1, 3)}
        # failed site stays in the graph as an isolated node
        assert session.statistics.node_count == 4
        assert session.statistics.degrees[2] == 0
        assert session.statistics.components == 2

    @pytest.mark.asyncio
    async def test_pair_error_degrades_to_not_visible(self, flat_provider, test_config, flat_sites):
        scheduler = _scheduler(flat_provider, test_config)
        scheduler.evaluator.evaluate = AsyncMock(side_effect=RuntimeError("raster exploded"))
        session = CalculationSession(sites=flat_sites[:3])
        await scheduler.run(session)

        assert session.state == RunState.COMPLETED
        assert session.pairs_checked == 3
        assert session.visible_pairs == []

    @pytest.mark.asyncio
    async def test_check_pair_reports_error_reason(self, flat_provider, test_config, flat_sites):
        scheduler = _scheduler(flat_provider, test_config)
        session = CalculationSession(sites=flat_sites[:2])
        await scheduler.run(session)

        scheduler.evaluator.evaluate = AsyncMock(side_effect=RuntimeError("boom"))
        result = await scheduler._check_pair(session, 0, 1)
        assert result.reason == VisibilityReason.ERROR
        assert result.notes == ["boom"]

    @pytest.mark.asyncio
    async def test_raising_progress_sink_ignored(self, flat_provider, test_config, flat_sites):
        def progress(text):
            raise RuntimeError("sink down")

        session = CalculationSession(sites=flat_sites)
        await _scheduler(flat_provider, test_config, progress).run(session)
        assert session.state == RunState.COMPLETED


# ===================================================================
# Completion callback
# ===================================================================


class TestCompletionCallback:
    @pytest.mark.asyncio
    async def test_async_callback_called_once(self, flat_provider, test_config, flat_sites):
        finished = AsyncMock()
        session = CalculationSession(sites=flat_sites[:2])
        await _scheduler(flat_provider, test_config, on_finished=finished).run(session)

        finished.assert_awaited_once_with(session)

    @pytest.mark.asyncio
    async def test_sync_callback_on_failure(self, flat_provider, test_config):
        seen = []
        session = CalculationSession(sites=[])
        await _scheduler(flat_provider, test_config, on_finished=seen.append).run(session)
        assert seen == [session]
        assert session.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_callback_error_does_not_propagate(self, flat_provider, test_config, flat_sites):
        finished = AsyncMock(side_effect=RuntimeError("store down"))
        session = CalculationSession(sites=flat_sites[:2])
        result = await _scheduler(flat_provider, test_config, on_finished=finished).run(session)
        assert result is session
        assert session.state == RunState.COMPLETED
