"""
Bounded terrain raster cache.

Rasters are large (megabytes each) and the process is memory constrained, so
the cache keeps only a handful of entries and drops them by age and recency.
Every removal calls ``TerrainRaster.release()`` before the entry leaves the
map, so the elevation buffer is freed as soon as the last reference goes.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..constants import (
    CACHE_KEY_DECIMALS,
    DEFAULT_CACHE_MAX_AGE_S,
    DEFAULT_CACHE_MAX_ENTRIES,
    ErrorMessages,
)
from .geodesy import haversine_m

logger = logging.getLogger(__name__)

FloatArray = NDArray[np.floating[Any]]
Transform = Any  # rasterio.Affine
ProgressCallback = Callable[[int, int], None]
CacheKey = tuple[float, float, int, int]


class TerrainRaster:
    """A 2-D elevation grid around a centre point, with one owner reference.

    ``transform`` maps (col, row) to (lon, lat) in EPSG:4326. After
    ``release()`` the elevation buffer is gone and ``is_valid`` is False;
    the footprint (shape, bounds) is still known.
    """

    def __init__(
        self,
        elevation: FloatArray,
        transform: Transform,
        center: tuple[float, float],
        zoom: int | None,
        tile_radius: int,
    ) -> None:
        self.elevation: FloatArray | None = elevation
        self.transform = transform
        self.center = center
        self.zoom = zoom
        self.tile_radius = tile_radius
        self.shape: tuple[int, int] = tuple(elevation.shape)  # type: ignore[assignment]

    @property
    def is_valid(self) -> bool:
        return self.elevation is not None and self.zoom is not None

    @property
    def nbytes(self) -> int:
        return int(self.elevation.nbytes) if self.elevation is not None else 0

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(west, south, east, north) of the grid footprint."""
        h, w = self.shape
        x0, y0 = self.transform * (0, 0)
        x1, y1 = self.transform * (w, h)
        return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)

    def contains(self, lat: float, lon: float) -> bool:
        west, south, east, north = self.bounds
        return west <= lon <= east and south <= lat <= north

    def release(self) -> None:
        """Drop the elevation buffer."""
        self.elevation = None

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "released"
        return (
            f"TerrainRaster(center={self.center}, zoom={self.zoom}, "
            f"tile_radius={self.tile_radius}, shape={self.shape}, {state})"
        )


RasterFetcher = Callable[
    [tuple[float, float], int, int, ProgressCallback | None], Awaitable[TerrainRaster]
]


@dataclass
class CacheEntry:
    """A cached raster with recency bookkeeping."""

    raster: TerrainRaster
    last_used: float
    use_count: int = 1


def make_cache_key(center: tuple[float, float], tile_radius: int, zoom: int) -> CacheKey:
    """Round the centre to ~11 m so nearby requests share one raster."""
    lat, lon = center
    return (
        round(lat, CACHE_KEY_DECIMALS),
        round(lon, CACHE_KEY_DECIMALS),
        int(tile_radius),
        int(zoom),
    )


class RasterCache:
    """Small LRU + max-age cache of terrain rasters backed by a fetch collaborator."""

    def __init__(
        self,
        fetcher: RasterFetcher,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        max_age_s: float = DEFAULT_CACHE_MAX_AGE_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self.max_entries = max_entries
        self.max_age_s = max_age_s
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        # One miss fetched at a time; keeps len <= max_entries for concurrent callers
        self._fetch_lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def entries(self) -> dict[CacheKey, CacheEntry]:
        return dict(self._entries)

    @property
    def total_bytes(self) -> int:
        return sum(e.raster.nbytes for e in self._entries.values())

    async def get_or_fetch(
        self,
        center: tuple[float, float],
        tile_radius: int,
        zoom: int,
        on_progress: ProgressCallback | None = None,
    ) -> TerrainRaster:
        """Return a cached raster for the request or fetch and cache a new one.

        Fetch failures propagate; nothing is cached for them.
        """
        key = make_cache_key(center, tile_radius, zoom)

        cached = self._lookup(key)
        if cached is not None:
            return cached

        async with self._fetch_lock:
            # Another caller may have fetched this key while we waited
            cached = self._lookup(key)
            if cached is not None:
                return cached

            self.misses += 1
            self.cleanup()

            # Make room for the incoming raster
            while len(self._entries) >= self.max_entries:
                self._evict(self._least_recently_used())

            raster = await self.fetcher(center, zoom, tile_radius, on_progress)
            if raster is None or not raster.is_valid:
                raise ValueError(ErrorMessages.INVALID_RASTER.format(key))

            self._entries[key] = CacheEntry(raster=raster, last_used=self._clock())
            return raster

    def cleanup(self) -> int:
        """Evict entries older than the max age, then LRU entries over capacity.

        Returns:
            Number of entries evicted
        """
        now = self._clock()
        evicted = 0

        for key in [k for k, e in self._entries.items() if now - e.last_used > self.max_age_s]:
            self._evict(key)
            evicted += 1

        while len(self._entries) > self.max_entries:
            self._evict(self._least_recently_used())
            evicted += 1

        if evicted:
            logger.debug(f"Raster cache cleanup evicted {evicted} entries ({len(self)} left)")
        return evicted

    def covering(self, lat: float, lon: float) -> list[TerrainRaster]:
        """Valid cached rasters whose footprint contains the point, nearest centre first."""
        found = [
            e.raster
            for e in self._entries.values()
            if e.raster.is_valid and e.raster.contains(lat, lon)
        ]
        found.sort(key=lambda r: haversine_m(lat, lon, r.center[0], r.center[1]))
        return found

    def clear(self) -> None:
        for key in list(self._entries):
            self._evict(key)

    def _lookup(self, key: CacheKey) -> TerrainRaster | None:
        """Return a valid cached raster and mark it used; purge an invalid entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.raster.is_valid:
            entry.last_used = self._clock()
            entry.use_count += 1
            self.hits += 1
            return entry.raster
        logger.debug(f"Purging invalid cache entry {key}")
        self._evict(key)
        return None

    def _least_recently_used(self) -> CacheKey:
        return min(self._entries, key=lambda k: self._entries[k].last_used)

    def _evict(self, key: CacheKey) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.raster.release()
        del self._entries[key]
        self.evictions += 1

