"""Analysis configuration for intervisibility runs.

Bundles the numeric tunables from ``constants`` into one frozen object so a
run, its cache and its evaluator all agree on the same radius, zoom and
sampling limits.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, replace

from .constants import (
    CURVATURE_THRESHOLD_M,
    DEFAULT_CACHE_MAX_AGE_S,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_HORIZON_STEPS,
    DEFAULT_HORIZON_ZOOM,
    DEFAULT_SCAN_RADIUS_KM,
    DEFAULT_SOURCE,
    DEM_SOURCES,
    EARTH_RADIUS_M,
    EQUATOR_CIRCUMFERENCE_KM,
    LINE_RASTER_BUFFER_FACTOR,
    MAX_SAMPLES,
    MIN_SAMPLES,
    OBSTRUCTION_BUFFER_M,
    PAIR_CLEANUP_INTERVAL,
    PAUSE_POLL_INTERVAL_S,
    PROFILE_CLEANUP_INTERVAL,
    REFRACTION_COEFFICIENT,
    SAMPLE_INTERVAL_M,
    SAMPLE_YIELD_INTERVAL,
    EnvVar,
    ErrorMessages,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Tunables shared by the profile, line-of-sight and scheduler stages."""

    source: str = DEFAULT_SOURCE
    """DEM source id used by the default terrain provider."""

    scan_radius_km: float = DEFAULT_SCAN_RADIUS_KM
    """Horizon scan radius; pairs further apart than this are never visible."""

    horizon_zoom: int = DEFAULT_HORIZON_ZOOM
    """Tile pyramid zoom used for both horizon and sightline rasters."""

    horizon_steps: int = DEFAULT_HORIZON_STEPS
    """Number of azimuth samples in each horizon profile."""

    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    cache_max_age_s: float = DEFAULT_CACHE_MAX_AGE_S

    sample_interval_m: float = SAMPLE_INTERVAL_M
    min_samples: int = MIN_SAMPLES
    max_samples: int = MAX_SAMPLES

    curvature_threshold_m: float = CURVATURE_THRESHOLD_M
    earth_radius_m: float = EARTH_RADIUS_M
    refraction_coefficient: float = REFRACTION_COEFFICIENT
    obstruction_buffer_m: float = OBSTRUCTION_BUFFER_M
    line_buffer_factor: float = LINE_RASTER_BUFFER_FACTOR

    sample_yield_interval: int = SAMPLE_YIELD_INTERVAL
    profile_cleanup_interval: int = PROFILE_CLEANUP_INTERVAL
    pair_cleanup_interval: int = PAIR_CLEANUP_INTERVAL
    pause_poll_interval_s: float = PAUSE_POLL_INTERVAL_S

    stop_on_profile_failure: bool = True
    """Stop the profile phase at the first failing site instead of skipping it."""

    def __post_init__(self) -> None:
        if self.source not in DEM_SOURCES:
            raise ValueError(
                ErrorMessages.UNKNOWN_SOURCE.format(self.source, ", ".join(DEM_SOURCES.keys()))
            )
        if self.scan_radius_km <= 0:
            raise ValueError(ErrorMessages.INVALID_RADIUS.format(self.scan_radius_km))
        if not 0 <= self.horizon_zoom <= 20:
            raise ValueError(ErrorMessages.INVALID_ZOOM.format(self.horizon_zoom))
        if self.horizon_steps < 4:
            raise ValueError(ErrorMessages.INVALID_STEPS.format(self.horizon_steps))
        if self.cache_max_entries < 1:
            raise ValueError(ErrorMessages.INVALID_CACHE_ENTRIES.format(self.cache_max_entries))
        if self.cache_max_age_s <= 0:
            raise ValueError(ErrorMessages.INVALID_CACHE_AGE.format(self.cache_max_age_s))
        if not 1 <= self.min_samples <= self.max_samples:
            raise ValueError(
                ErrorMessages.INVALID_SAMPLE_BOUNDS.format(self.min_samples, self.max_samples)
            )

    @property
    def scan_radius_m(self) -> float:
        return self.scan_radius_km * 1000.0

    @property
    def tile_width_km(self) -> float:
        return EQUATOR_CIRCUMFERENCE_KM / (2**self.horizon_zoom)

    def tile_radius_for(self, radius_km: float) -> int:
        """Number of pyramid tiles needed to cover ``radius_km`` at the configured zoom."""
        return max(1, math.ceil(radius_km / self.tile_width_km))

    @property
    def profile_tile_radius(self) -> int:
        return self.tile_radius_for(self.scan_radius_km)

    def with_overrides(self, **overrides) -> "AnalysisConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Build a config from ``IV_*`` environment variables.

        Unparseable values are logged and ignored rather than failing startup.
        """
        overrides: dict[str, object] = {}
        specs = [
            (EnvVar.SCAN_RADIUS_KM, "scan_radius_km", float),
            (EnvVar.HORIZON_ZOOM, "horizon_zoom", int),
            (EnvVar.HORIZON_STEPS, "horizon_steps", int),
            (EnvVar.CACHE_MAX_ENTRIES, "cache_max_entries", int),
            (EnvVar.CACHE_MAX_AGE_S, "cache_max_age_s", float),
        ]
        for env_name, field_name, parse in specs:
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {env_name}={raw!r}")

        source = os.environ.get(EnvVar.DEM_SOURCE)
        if source:
            if source in DEM_SOURCES:
                overrides["source"] = source
            else:
                logger.warning(f"Ignoring unknown {EnvVar.DEM_SOURCE}={source!r}")

        try:
            return cls(**overrides)
        except ValueError as e:
            logger.warning(f"Invalid analysis configuration from environment ({e}); using defaults")
            return cls()
