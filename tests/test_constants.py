"""Tests for chuk_mcp_intervisibility.constants module."""

from pathlib import Path

import pytest

from chuk_mcp_intervisibility.constants import (
    ALL_SOURCE_IDS,
    ANALYSIS_TOOLS,
    DEFAULT_SOURCE,
    DEM_SOURCES,
    MAX_SAMPLES,
    MIN_SAMPLES,
    NETWORK_METRICS,
    RUN_TOOLS,
    TERMINAL_STATES,
    DEMSource,
    EnvVar,
    ErrorMessages,
    ProgressMessages,
    RunState,
    ServerConfig,
    SessionProvider,
    StorageProvider,
    SuccessMessages,
    VisibilityReason,
)

# ── ServerConfig ────────────────────────────────────────────────────


class TestServerConfig:
    def test_name(self):
        assert ServerConfig.NAME == "chuk-mcp-intervisibility"

    def test_version(self):
        assert ServerConfig.VERSION == "0.1.0"

    def test_only_name_and_version(self):
        assert {k for k in vars(ServerConfig) if k.isupper()} == {"NAME", "VERSION"}


# ── Providers / EnvVar ──────────────────────────────────────────────


class TestProviders:
    def test_storage(self):
        assert StorageProvider.MEMORY == "memory"
        assert StorageProvider.S3 == "s3"
        assert StorageProvider.FILESYSTEM == "filesystem"

    def test_session(self):
        assert SessionProvider.MEMORY == "memory"
        assert SessionProvider.REDIS == "redis"


class TestEnvVar:
    def test_artifacts_provider(self):
        assert EnvVar.ARTIFACTS_PROVIDER == "CHUK_ARTIFACTS_PROVIDER"

    def test_analysis_vars_prefixed(self):
        for name in (
            EnvVar.DEM_SOURCE,
            EnvVar.SCAN_RADIUS_KM,
            EnvVar.HORIZON_ZOOM,
            EnvVar.HORIZON_STEPS,
            EnvVar.CACHE_MAX_ENTRIES,
            EnvVar.CACHE_MAX_AGE_S,
        ):
            assert name.startswith("IV_")


# ── DEM sources ─────────────────────────────────────────────────────


class TestDEMSources:
    def test_ids(self):
        assert set(ALL_SOURCE_IDS) == {DEMSource.COP30, DEMSource.COP90}

    def test_default_source(self):
        assert DEFAULT_SOURCE == DEMSource.COP30
        assert DEFAULT_SOURCE in DEM_SOURCES

    @pytest.mark.parametrize("source_id", ALL_SOURCE_IDS)
    def test_source_entry(self, source_id):
        meta = DEM_SOURCES[source_id]
        assert meta["id"] == source_id
        assert meta["resolution_m"] > 0
        assert meta["tile_size_degrees"] == 1.0
        assert meta["access_url"].startswith("https://")


# ── Run state / reasons ─────────────────────────────────────────────


class TestRunState:
    def test_terminal_states(self):
        assert set(TERMINAL_STATES) == {
            RunState.COMPLETED,
            RunState.CANCELLED,
            RunState.FAILED,
        }

    def test_active_states_not_terminal(self):
        for state in (RunState.IDLE, RunState.PROFILE_PHASE, RunState.PAIR_PHASE, RunState.PAUSED):
            assert state not in TERMINAL_STATES


class TestVisibilityReason:
    def test_values_unique(self):
        values = [v for k, v in vars(VisibilityReason).items() if k.isupper()]
        assert len(values) == len(set(values)) == 8


# ── Tool lists ──────────────────────────────────────────────────────


class TestToolLists:
    def test_run_tools(self):
        assert len(RUN_TOOLS) == 8
        assert all(t.startswith("iv_") for t in RUN_TOOLS)

    def test_analysis_tools(self):
        assert ANALYSIS_TOOLS == ["iv_line_of_sight"]

    def test_network_metrics(self):
        assert "betweenness" in NETWORK_METRICS
        assert "diameter" in NETWORK_METRICS

    def test_sample_bounds(self):
        assert 1 <= MIN_SAMPLES < MAX_SAMPLES


# ── Messages ────────────────────────────────────────────────────────


class TestMessages:
    def test_error_templates_format(self):
        assert "3" in ErrorMessages.TOO_FEW_SITES.format(3)
        assert "abc" in ErrorMessages.UNKNOWN_SESSION.format("abc")
        assert "1 profile(s)" in ErrorMessages.INSUFFICIENT_PROFILES.format(1)

    def test_success_templates_format(self):
        assert SuccessMessages.RUN_RESULTS.format(2, 3).startswith("Found 2")
        assert "120m" in SuccessMessages.LOS_VISIBLE.format(120.4)

    def test_progress_templates_format(self):
        text = ProgressMessages.COMPLETED.format(4, 6, 4)
        assert "Found 4 intervisible connections out of 6 pairs" in text
        assert ProgressMessages.PAIR_CHECK.format(1, 3, "A", "B") == (
            "Phase 2: 1/3 pairs checked (A -> B)..."
        )


class TestMessagesInUse:
    """Every message template is referenced somewhere in the package."""

    @pytest.fixture(scope="class")
    def package_source(self):
        root = Path(__file__).parent.parent / "src" / "chuk_mcp_intervisibility"
        return "\n".join(
            p.read_text(encoding="utf-8")
            for p in root.rglob("*.py")
            if p.name != "constants.py"
        )

    @pytest.mark.parametrize("holder", [ErrorMessages, SuccessMessages, ProgressMessages])
    def test_no_unused_templates(self, holder, package_source):
        names = [n for n in vars(holder) if n.isupper()]
        unused = [n for n in names if f"{holder.__name__}.{n}" not in package_source]
        assert unused == []
