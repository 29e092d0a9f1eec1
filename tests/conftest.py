"""Shared test fixtures for chuk-mcp-intervisibility."""

import math
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from rasterio.transform import Affine

from chuk_mcp_intervisibility.config import AnalysisConfig
from chuk_mcp_intervisibility.core import raster_io
from chuk_mcp_intervisibility.core.raster_cache import TerrainRaster
from chuk_mcp_intervisibility.core.sites import HorizonSample, Site
from chuk_mcp_intervisibility.core.terrain_provider import raster_bbox

GROUND_M = 100.0
RIDGE_M = 150.0
GRID_RES_DEG = 0.001

# Ridge: a 50 m wall along lon 7.02 between lat 45.99 and 46.01
RIDGE_LON = 7.02
RIDGE_HALF_WIDTH_DEG = 0.001
RIDGE_SOUTH = 45.99
RIDGE_NORTH = 46.01


def flat_terrain(lats, lons):
    return np.full(np.broadcast(lats, lons).shape, GROUND_M, dtype=np.float32)


def ridge_terrain(lats, lons):
    on_ridge = (
        (np.abs(lons - RIDGE_LON) <= RIDGE_HALF_WIDTH_DEG)
        & (lats >= RIDGE_SOUTH)
        & (lats <= RIDGE_NORTH)
    )
    return np.where(on_ridge, RIDGE_M, GROUND_M).astype(np.float32)


def make_grid(center, zoom, tile_radius, terrain, res_deg=GRID_RES_DEG):
    """Synthetic EPSG:4326 grid over the same footprint the real provider fetches."""
    west, south, east, north = raster_bbox(center, zoom, tile_radius)
    cols = int(math.ceil((east - west) / res_deg)) + 1
    rows = int(math.ceil((north - south) / res_deg)) + 1
    lons = west + np.arange(cols) * res_deg
    lats = north - np.arange(rows) * res_deg
    grid_lats, grid_lons = np.meshgrid(lats, lons, indexing="ij")
    elevation = terrain(grid_lats, grid_lons)
    transform = Affine(res_deg, 0.0, west, 0.0, -res_deg, north)
    return elevation, transform


class FakeTerrainProvider:
    """In-memory terrain provider over an analytic terrain function.

    Sampling and horizon ray casting use the real raster_io routines so the
    synthetic grids behave like fetched rasters.
    """

    def __init__(self, terrain=flat_terrain, fail_when=None):
        self.terrain = terrain
        self.fail_when = fail_when
        self.fetches = []
        self.horizon_calls = 0

    async def fetch_terrain_raster(self, center, zoom, tile_radius, on_progress=None):
        self.fetches.append((center, zoom, tile_radius))
        if self.fail_when is not None and self.fail_when(center):
            raise ConnectionError(f"tile fetch failed for {center}")
        if on_progress is not None:
            on_progress(1, 1)
        elevation, transform = make_grid(center, zoom, tile_radius, self.terrain)
        return TerrainRaster(elevation, transform, center, zoom, tile_radius)

    def sample_height(self, raster, lat, lon):
        if not raster.is_valid:
            return None
        return raster_io.sample_height(raster.elevation, raster.transform, lat, lon)

    async def compute_horizon_profile(
        self, raster, lat, lon, observer_height, sample_count, max_distance_m
    ):
        self.horizon_calls += 1
        samples = raster_io.compute_horizon_profile(
            raster.elevation,
            raster.transform,
            lat,
            lon,
            observer_height,
            sample_count,
            max_distance_m,
        )
        return [HorizonSample(azimuth=az, altitude=alt) for az, alt in samples]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def test_config():
    """Small-radius config so synthetic rasters stay small."""
    return AnalysisConfig(
        scan_radius_km=5.0,
        horizon_steps=72,
        pause_poll_interval_s=0.001,
    )


@pytest.fixture
def flat_provider():
    return FakeTerrainProvider(flat_terrain)


@pytest.fixture
def ridge_provider():
    return FakeTerrainProvider(ridge_terrain)


@pytest.fixture
def flat_sites():
    """Four sites ~2-3 km apart on flat ground."""
    return [
        Site(id="a", lat=46.00, lon=7.00),
        Site(id="b", lat=46.00, lon=7.03),
        Site(id="c", lat=46.02, lon=7.00),
        Site(id="d", lat=46.02, lon=7.03),
    ]


@pytest.fixture
def ridge_sites():
    """A and B either side of the ridge; C north of it, seeing both."""
    return [
        Site(id="A", lat=46.00, lon=7.00),
        Site(id="B", lat=46.00, lon=7.04),
        Site(id="C", lat=46.03, lon=7.02),
    ]


@pytest.fixture
def sample_elevation():
    """100x100 elevation array with values 100-500m."""
    np.random.seed(42)
    return np.random.uniform(100, 500, (100, 100)).astype(np.float32)


@pytest.fixture
def sample_elevation_with_voids(sample_elevation):
    """Elevation array with NaN voids."""
    arr = sample_elevation.copy()
    arr[10:15, 10:15] = np.nan
    return arr


@pytest.fixture
def sample_transform():
    """Affine transform for a 1-degree tile at N46 E007."""
    return Affine(0.01, 0.0, 7.0, 0.0, -0.01, 47.0)


@pytest.fixture
def mock_artifact_store():
    """Mock artifact store."""
    store = AsyncMock()
    store.store = AsyncMock(return_value=None)
    return store


@pytest.fixture
def mock_manager(mock_artifact_store, test_config, flat_provider):
    """IntervisibilityManager over flat synthetic terrain with a mocked store."""
    from chuk_mcp_intervisibility.core.manager import IntervisibilityManager

    manager = IntervisibilityManager(
        config=test_config, provider_factory=lambda config: flat_provider
    )
    manager._get_store = MagicMock(return_value=mock_artifact_store)
    return manager


@pytest.fixture
def mock_mcp():
    """Mock ChukMCPServer."""
    mcp = MagicMock()
    mcp.tool = MagicMock(return_value=lambda fn: fn)
    return mcp
