"""
Site, horizon profile and visible-pair records.

Sites are immutable once loaded and are addressed by their index (0..n-1)
for the lifetime of one analysis run.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..constants import ErrorMessages
from .geodesy import validate_lat_lon


@dataclass(frozen=True)
class Site:
    """A geographic site taking part in an intervisibility run."""

    id: str
    lat: float
    lon: float
    name: str | None = None
    elevation: float | None = None

    def __post_init__(self) -> None:
        validate_lat_lon(self.lat, self.lon)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def position(self) -> tuple[float, float]:
        return self.lat, self.lon


@dataclass(frozen=True)
class HorizonSample:
    """One (azimuth, altitude) sample of a horizon profile, in degrees."""

    azimuth: float
    altitude: float


@dataclass
class SiteProfile:
    """Long-lived per-site data kept after the profile phase: never the raster."""

    index: int
    horizon: list[HorizonSample]
    observer_height: float


@dataclass(frozen=True)
class VisiblePair:
    """An unordered visible pair, stored with i < j."""

    i: int
    j: int
    distance_m: float = 0.0

    def __post_init__(self) -> None:
        if self.i >= self.j:
            raise ValueError(f"VisiblePair requires i < j, got ({self.i}, {self.j})")

    @property
    def key(self) -> tuple[int, int]:
        return self.i, self.j


@dataclass
class VisibilityResult:
    """Outcome of one line-of-sight evaluation plus the geometry behind it."""

    visible: bool
    reason: str
    distance_m: float = 0.0
    bearing_deg: float | None = None
    horizon_altitude_deg: float | None = None
    target_altitude_deg: float | None = None
    samples_checked: int = 0
    obstruction_distance_m: float | None = None
    obstruction_height_m: float | None = None
    used_fallback: bool = False
    notes: list[str] = field(default_factory=list)


def pair_key(i: int, j: int) -> tuple[int, int]:
    """Canonical (low, high) key for an unordered pair."""
    return (i, j) if i < j else (j, i)


def load_sites(records: Iterable[Site | Mapping[str, Any]]) -> list[Site]:
    """Build a validated site list from Site objects or plain dicts.

    Dicts accept ``id``/``lat``/``lon`` plus optional ``name`` and ``elevation``.
    A missing id defaults to the record's position in the input.
    """
    sites: list[Site] = []
    seen: set[str] = set()
    for idx, record in enumerate(records):
        if isinstance(record, Site):
            site = record
        else:
            elevation = record.get("elevation")
            site = Site(
                id=str(record.get("id", idx)),
                lat=float(record["lat"]),
                lon=float(record["lon"]),
                name=record.get("name"),
                elevation=float(elevation) if elevation is not None else None,
            )
        if site.id in seen:
            raise ValueError(ErrorMessages.DUPLICATE_SITE_ID.format(site.id))
        seen.add(site.id)
        sites.append(site)
    return sites
