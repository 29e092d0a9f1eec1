"""
Raster I/O operations for terrain rasters.

All functions are synchronous; callers wrap them in asyncio.to_thread().
Handles COG reading and merging, void filling, height sampling and
horizon-profile ray casting.
"""

import logging
import math
from collections.abc import Callable
from typing import Any

import numpy as np
from numpy.typing import NDArray
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import (
    EARTH_RADIUS_M,
    RETRY_ATTEMPTS,
    RETRY_WAIT_MAX,
    RETRY_WAIT_MIN,
    REFRACTION_COEFFICIENT,
)
from .geodesy import METERS_PER_DEG_LAT

logger = logging.getLogger(__name__)

# Type aliases
FloatArray = NDArray[np.floating[Any]]
Transform = Any  # rasterio.Affine


# ---------------------------------------------------------------------------
# Retry decorator for network I/O
# ---------------------------------------------------------------------------

_retry_network = retry(
    stop=stop_after_attempt(RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
    retry=retry_if_exception_type((ConnectionError, TimeoutError, OSError)),
    reraise=True,
)


# ---------------------------------------------------------------------------
# DEM tile reading
# ---------------------------------------------------------------------------


@_retry_network
def read_and_merge_tiles(
    urls: list[str],
    bbox: list[float],
    res_deg: float | None = None,
    on_tile: Callable[[int, int], None] | None = None,
) -> tuple[FloatArray, Any, Transform]:
    """
    Read the DEM tiles covering a bbox and merge them into one grid.

    Only the bbox window is read, resampled to ``res_deg`` when given, so a
    wide scan radius does not pull whole 1-degree tiles into memory.

    Args:
        urls: List of COG URLs to read
        bbox: Crop bbox [west, south, east, north] in EPSG:4326
        res_deg: Optional output resolution in degrees
        on_tile: Optional progress callback (tiles_opened, total_tiles)

    Returns:
        Tuple of (merged_elevation, CRS, transform)
    """
    import rasterio
    from rasterio.merge import merge

    datasets = []
    try:
        for url in urls:
            datasets.append(rasterio.open(url))
            if on_tile is not None:
                on_tile(len(datasets), len(urls))

        crs = datasets[0].crs
        bounds = _reproject_bbox(bbox, crs)
        res = (res_deg, res_deg) if res_deg else None
        merged, merged_transform = merge(datasets, bounds=bounds, res=res)

        elevation = merged[0].astype(np.float32)

        nodata = datasets[0].nodata
        if nodata is not None:
            elevation[elevation == nodata] = np.nan

    finally:
        for ds in datasets:
            ds.close()

    return elevation, crs, merged_transform


# ---------------------------------------------------------------------------
# Void filling
# ---------------------------------------------------------------------------


def fill_voids(elevation: FloatArray) -> FloatArray:
    """
    Fill void pixels (NaN) using nearest-neighbour interpolation.

    Args:
        elevation: 2D array with NaN for voids

    Returns:
        Array with voids filled (unchanged copy if there are none or all are void)
    """
    from scipy.ndimage import distance_transform_edt

    result = elevation.copy()
    invalid = np.isnan(result)

    if not np.any(invalid) or np.all(invalid):
        return result

    indices = distance_transform_edt(invalid, return_distances=False, return_indices=True)
    return result[tuple(indices)]


# ---------------------------------------------------------------------------
# Point sampling
# ---------------------------------------------------------------------------


def sample_height(
    elevation: FloatArray | None,
    transform: Transform,
    lat: float,
    lon: float,
) -> float | None:
    """
    Sample terrain height at a point.

    Bilinear where all four neighbours exist, nearest cell at the grid edge.

    Returns:
        Height in metres, or None outside coverage / on void / released raster
    """
    if elevation is None:
        return None

    col_f, row_f = ~transform * (lon, lat)
    val = _bilinear_sample(elevation, row_f, col_f)
    if math.isnan(val):
        val = _nearest_sample(elevation, row_f, col_f)
    return None if math.isnan(val) else val


# ---------------------------------------------------------------------------
# Horizon profile
# ---------------------------------------------------------------------------


def compute_horizon_profile(
    elevation: FloatArray,
    transform: Transform,
    lat: float,
    lon: float,
    observer_height: float,
    sample_count: int,
    max_distance_m: float,
    earth_radius_m: float = EARTH_RADIUS_M,
    refraction_coefficient: float = REFRACTION_COEFFICIENT,
) -> list[tuple[float, float]]:
    """Ray-cast the horizon around an observer.

    For each of ``sample_count`` evenly spaced azimuths, steps outward one
    cell at a time and keeps the highest elevation angle of the terrain,
    lowered by the curvature drop ``d^2 / 2R`` less refraction.

    Args:
        elevation: 2D elevation array
        transform: Affine transform (EPSG:4326)
        lat, lon: Observer position
        observer_height: Observer absolute height in metres
        sample_count: Number of azimuths
        max_distance_m: Ray length in metres

    Returns:
        List of (azimuth_deg, altitude_deg); -90 where a ray saw no terrain
    """
    h, w = elevation.shape
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    cellsize_x_m = abs(transform.a) * METERS_PER_DEG_LAT * cos_lat
    cellsize_y_m = abs(transform.e) * METERS_PER_DEG_LAT
    step_m = max(min(cellsize_x_m, cellsize_y_m), 1.0)

    distances = np.arange(step_m, max_distance_m + step_m / 2, step_m)
    azimuths = np.arange(sample_count) * (360.0 / sample_count)
    az_rad = np.radians(azimuths)

    east_m = np.outer(np.sin(az_rad), distances)
    north_m = np.outer(np.cos(az_rad), distances)
    lons = lon + east_m / (METERS_PER_DEG_LAT * cos_lat)
    lats = lat + north_m / METERS_PER_DEG_LAT

    inv = ~transform
    cols = np.rint(inv.a * lons + inv.b * lats + inv.c).astype(np.int64)
    rows = np.rint(inv.d * lons + inv.e * lats + inv.f).astype(np.int64)
    inside = (rows >= 0) & (rows < h) & (cols >= 0) & (cols < w)

    heights = np.full(lons.shape, np.nan, dtype=np.float64)
    heights[inside] = elevation[rows[inside], cols[inside]]

    drop = distances**2 / (2.0 * earth_radius_m) * (1.0 - refraction_coefficient)
    angles = np.degrees(np.arctan2(heights - drop - observer_height, distances))
    angles = np.where(np.isnan(angles), -90.0, angles)
    altitudes = angles.max(axis=1) if angles.shape[1] else np.full(sample_count, -90.0)

    return [(float(az), float(alt)) for az, alt in zip(azimuths, altitudes)]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _reproject_bbox(bbox_4326: list[float], dst_crs: Any) -> tuple[float, float, float, float]:
    """Reproject EPSG:4326 bbox to another CRS."""
    from pyproj import Transformer

    dst_crs_str = str(dst_crs)

    if dst_crs_str in ("EPSG:4326", "epsg:4326"):
        return (bbox_4326[0], bbox_4326[1], bbox_4326[2], bbox_4326[3])

    transformer = Transformer.from_crs("EPSG:4326", dst_crs_str, always_xy=True)
    west, south = transformer.transform(bbox_4326[0], bbox_4326[1])
    east, north = transformer.transform(bbox_4326[2], bbox_4326[3])

    return (
        min(west, east),
        min(south, north),
        max(west, east),
        max(south, north),
    )


def _bilinear_sample(array: FloatArray, row_f: float, col_f: float) -> float:
    """Bilinear interpolation at fractional pixel coordinates."""
    r0, c0 = int(math.floor(row_f)), int(math.floor(col_f))
    r1, c1 = r0 + 1, c0 + 1
    h, w = array.shape

    if r0 < 0 or c0 < 0 or r1 >= h or c1 >= w:
        return float("nan")

    dr = row_f - r0
    dc = col_f - c0

    v00 = array[r0, c0]
    v01 = array[r0, c1]
    v10 = array[r1, c0]
    v11 = array[r1, c1]

    if any(np.isnan(v) for v in [v00, v01, v10, v11]):
        return float("nan")

    val = v00 * (1 - dr) * (1 - dc) + v01 * (1 - dr) * dc + v10 * dr * (1 - dc) + v11 * dr * dc
    return float(val)


def _nearest_sample(array: FloatArray, row_f: float, col_f: float) -> float:
    row, col = int(round(row_f)), int(round(col_f))
    if 0 <= row < array.shape[0] and 0 <= col < array.shape[1]:
        return float(array[row, col])
    return float("nan")
