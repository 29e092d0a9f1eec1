"""
Terrain collaborators: raster fetch, height sampling and horizon profiles.

The analysis core only talks to the ``TerrainProvider`` protocol. The default
``CopernicusTerrainProvider`` reads Copernicus GLO-30/GLO-90 COG tiles
anonymously from S3; blocking rasterio/numpy work runs in asyncio.to_thread().
"""

import asyncio
import logging
import math
from typing import Protocol, runtime_checkable

from ..constants import (
    DEFAULT_SOURCE,
    DEM_SOURCES,
    DEMSource,
    EARTH_RADIUS_M,
    EQUATOR_CIRCUMFERENCE_KM,
    EQUATOR_CIRCUMFERENCE_M,
    REFRACTION_COEFFICIENT,
    TILE_SIZE_PX,
    ErrorMessages,
)
from . import raster_io
from .geodesy import METERS_PER_DEG_LAT, degree_offsets
from .raster_cache import ProgressCallback, TerrainRaster
from .sites import HorizonSample

logger = logging.getLogger(__name__)


@runtime_checkable
class TerrainProvider(Protocol):
    """Collaborator interface consumed by the analysis core."""

    async def fetch_terrain_raster(
        self,
        center: tuple[float, float],
        zoom: int,
        tile_radius: int,
        on_progress: ProgressCallback | None = None,
    ) -> TerrainRaster: ...

    def sample_height(self, raster: TerrainRaster, lat: float, lon: float) -> float | None: ...

    async def compute_horizon_profile(
        self,
        raster: TerrainRaster,
        lat: float,
        lon: float,
        observer_height: float,
        sample_count: int,
        max_distance_m: float,
    ) -> list[HorizonSample]: ...


def zoom_resolution_m(zoom: int) -> float:
    """Nominal ground resolution of one pyramid pixel at ``zoom``."""
    return EQUATOR_CIRCUMFERENCE_M / (TILE_SIZE_PX * 2**zoom)


def tile_width_km(zoom: int) -> float:
    return EQUATOR_CIRCUMFERENCE_KM / (2**zoom)


def raster_bbox(center: tuple[float, float], zoom: int, tile_radius: int) -> list[float]:
    """[west, south, east, north] of the square covered by ``tile_radius`` tiles."""
    lat, lon = center
    half_width_m = (tile_radius + 0.5) * tile_width_km(zoom) * 1000.0
    dlat, dlon = degree_offsets(lat, half_width_m)
    return [
        max(lon - dlon, -180.0),
        max(lat - dlat, -90.0),
        min(lon + dlon, 180.0),
        min(lat + dlat, 90.0),
    ]


class CopernicusTerrainProvider:
    """Default terrain provider backed by Copernicus DEM COG tiles."""

    def __init__(
        self,
        source: str = DEFAULT_SOURCE,
        earth_radius_m: float = EARTH_RADIUS_M,
        refraction_coefficient: float = REFRACTION_COEFFICIENT,
    ) -> None:
        if source not in DEM_SOURCES:
            raise ValueError(
                ErrorMessages.UNKNOWN_SOURCE.format(source, ", ".join(DEM_SOURCES.keys()))
            )
        self.source = source
        self.earth_radius_m = earth_radius_m
        self.refraction_coefficient = refraction_coefficient

    async def fetch_terrain_raster(
        self,
        center: tuple[float, float],
        zoom: int,
        tile_radius: int,
        on_progress: ProgressCallback | None = None,
    ) -> TerrainRaster:
        bbox = raster_bbox(center, zoom, tile_radius)
        tile_urls = self._get_tile_urls(bbox)
        if not tile_urls:
            raise ValueError(ErrorMessages.NO_TILES.format(self.source, bbox))

        native_m = DEM_SOURCES[self.source]["resolution_m"]
        res_deg = max(zoom_resolution_m(zoom), native_m) / METERS_PER_DEG_LAT

        logger.debug(
            f"Fetching {len(tile_urls)} {self.source} tile(s) for {center} "
            f"(zoom={zoom}, tile_radius={tile_radius})"
        )
        elevation, _crs, transform = await asyncio.to_thread(
            raster_io.read_and_merge_tiles, tile_urls, bbox, res_deg, on_progress
        )
        elevation = await asyncio.to_thread(raster_io.fill_voids, elevation)

        return TerrainRaster(
            elevation=elevation,
            transform=transform,
            center=center,
            zoom=zoom,
            tile_radius=tile_radius,
        )

    def sample_height(self, raster: TerrainRaster, lat: float, lon: float) -> float | None:
        if not raster.is_valid:
            return None
        return raster_io.sample_height(raster.elevation, raster.transform, lat, lon)

    async def compute_horizon_profile(
        self,
        raster: TerrainRaster,
        lat: float,
        lon: float,
        observer_height: float,
        sample_count: int,
        max_distance_m: float,
    ) -> list[HorizonSample]:
        if not raster.is_valid:
            raise ValueError(ErrorMessages.RASTER_RELEASED)

        samples = await asyncio.to_thread(
            raster_io.compute_horizon_profile,
            raster.elevation,
            raster.transform,
            lat,
            lon,
            observer_height,
            sample_count,
            max_distance_m,
            self.earth_radius_m,
            self.refraction_coefficient,
        )
        return [HorizonSample(azimuth=az, altitude=alt) for az, alt in samples]

    # ------------------------------------------------------------------
    # Tile URL construction
    # ------------------------------------------------------------------

    def _get_tile_urls(self, bbox: list[float]) -> list[str]:
        """Get tile URLs covering a bbox."""
        tile_size = int(DEM_SOURCES[self.source]["tile_size_degrees"])

        west, south, east, north = bbox
        urls = []

        lat = math.floor(south)
        while lat < north:
            lon = math.floor(west)
            while lon < east:
                urls.append(self._make_tile_url(lat, lon))
                lon += tile_size
            lat += tile_size

        return urls

    def _make_tile_url(self, lat: int, lon: int) -> str:
        """Construct the URL for a DEM tile."""
        ns = "N" if lat >= 0 else "S"
        ew = "E" if lon >= 0 else "W"
        arcsec = "10" if self.source == DEMSource.COP30 else "30"
        tile_name = f"Copernicus_DSM_COG_{arcsec}_{ns}{abs(lat):02d}_00_{ew}{abs(lon):03d}_00_DEM"
        base = DEM_SOURCES[self.source]["access_url"]
        return f"{base}/{tile_name}/{tile_name}.tif"
