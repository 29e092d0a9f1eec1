"""Analysis core: raster cache, profiles, line of sight, scheduler, statistics."""

from .line_of_sight import LineOfSightEvaluator, interpolate_horizon_altitude
from .manager import IntervisibilityManager
from .network_stats import NetworkStatistics, VisibilityGraph, compute_statistics
from .profiles import ProfilePrecomputer
from .raster_cache import RasterCache, TerrainRaster
from .scheduler import BatchScheduler, CalculationSession
from .sites import HorizonSample, Site, SiteProfile, VisibilityResult, VisiblePair, load_sites
from .terrain_provider import CopernicusTerrainProvider, TerrainProvider

__all__ = [
    "BatchScheduler",
    "CalculationSession",
    "CopernicusTerrainProvider",
    "HorizonSample",
    "IntervisibilityManager",
    "LineOfSightEvaluator",
    "NetworkStatistics",
    "ProfilePrecomputer",
    "RasterCache",
    "Site",
    "SiteProfile",
    "TerrainProvider",
    "TerrainRaster",
    "VisibilityGraph",
    "VisibilityResult",
    "VisiblePair",
    "compute_statistics",
    "interpolate_horizon_altitude",
    "load_sites",
]
