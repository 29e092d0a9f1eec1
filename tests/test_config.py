"""Tests for AnalysisConfig."""

import dataclasses

import pytest

from chuk_mcp_intervisibility.config import AnalysisConfig
from chuk_mcp_intervisibility.constants import DEFAULT_SCAN_RADIUS_KM, DEMSource


class TestDefaults:
    def test_defaults(self):
        config = AnalysisConfig()
        assert config.source == DEMSource.COP30
        assert config.scan_radius_km == DEFAULT_SCAN_RADIUS_KM
        assert config.scan_radius_m == DEFAULT_SCAN_RADIUS_KM * 1000.0
        assert config.stop_on_profile_failure is True

    def test_frozen(self):
        config = AnalysisConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.scan_radius_km = 1.0


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs, match",
        [
            ({"source": "srtm"}, "Unknown DEM source"),
            ({"scan_radius_km": 0}, "scan_radius_km"),
            ({"horizon_zoom": 25}, "zoom"),
            ({"horizon_steps": 2}, "horizon_steps"),
            ({"cache_max_entries": 0}, "cache_max_entries"),
            ({"cache_max_age_s": 0}, "cache_max_age_s"),
            ({"min_samples": 50, "max_samples": 10}, "sample bounds"),
        ],
    )
    def test_invalid_values(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            AnalysisConfig(**kwargs)


class TestTileRadius:
    def test_minimum_one_tile(self):
        assert AnalysisConfig().tile_radius_for(0.1) == 1

    def test_default_profile_radius(self):
        # 150 km at zoom 11 (~19.6 km tiles)
        assert AnalysisConfig().profile_tile_radius == 8

    def test_tile_width_halves_per_zoom(self):
        assert AnalysisConfig(horizon_zoom=12).tile_width_km == pytest.approx(
            AnalysisConfig(horizon_zoom=11).tile_width_km / 2
        )


class TestOverrides:
    def test_none_ignored(self):
        config = AnalysisConfig()
        assert config.with_overrides(source=None, scan_radius_km=None) is config

    def test_applied(self):
        config = AnalysisConfig().with_overrides(source=DEMSource.COP90, scan_radius_km=20.0)
        assert config.source == DEMSource.COP90
        assert config.scan_radius_km == 20.0


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("IV_SCAN_RADIUS_KM", "42.5")
        monkeypatch.setenv("IV_HORIZON_STEPS", "180")
        monkeypatch.setenv("IV_DEM_SOURCE", "cop90")
        config = AnalysisConfig.from_env()
        assert config.scan_radius_km == 42.5
        assert config.horizon_steps == 180
        assert config.source == "cop90"

    def test_unparseable_ignored(self, monkeypatch):
        monkeypatch.setenv("IV_HORIZON_ZOOM", "eleven")
        monkeypatch.setenv("IV_DEM_SOURCE", "nope")
        config = AnalysisConfig.from_env()
        assert config.horizon_zoom == AnalysisConfig().horizon_zoom
        assert config.source == DEMSource.COP30

    def test_invalid_combination_falls_back(self, monkeypatch):
        monkeypatch.setenv("IV_SCAN_RADIUS_KM", "-5")
        assert AnalysisConfig.from_env() == AnalysisConfig()
