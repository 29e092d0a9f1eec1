"""
Response models for chuk-mcp-intervisibility tools.

All tool responses are Pydantic models for type safety and consistent API.
"""

from pydantic import BaseModel, ConfigDict, Field


def format_response(model: BaseModel, output_mode: str = "json") -> str:
    """Format a response model as JSON or human-readable text.

    Args:
        model: Pydantic response model instance
        output_mode: "json" (default) or "text"

    Returns:
        Formatted string
    """
    if output_mode == "text" and hasattr(model, "to_text"):
        return str(model.to_text())
    return str(model.model_dump_json())


class ErrorResponse(BaseModel):
    """Error response model for tool failures."""

    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., description="Error message describing what went wrong")

    def to_text(self) -> str:
        return f"Error: {self.error}"


# ---------------------------------------------------------------------------
# Discovery responses
# ---------------------------------------------------------------------------


class SourceInfo(BaseModel):
    """Summary information about a DEM source."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Source identifier (e.g., cop30)")
    name: str = Field(..., description="Human-readable source name")
    resolution_m: int = Field(..., description="Native resolution in metres")
    coverage: str = Field(..., description="Coverage description (e.g., global)")
    vertical_datum: str = Field(..., description="Vertical datum (e.g., EGM2008)")

    def to_text(self) -> str:
        return f"{self.id}: {self.name} ({self.resolution_m}m, {self.coverage})"


class SourcesResponse(BaseModel):
    """Response model for listing available DEM sources."""

    model_config = ConfigDict(extra="forbid")

    sources: list[SourceInfo] = Field(..., description="Available DEM sources")
    default: str = Field(..., description="Default source identifier")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [self.message, f"Default: {self.default}", ""]
        for s in self.sources:
            lines.append(f"  {s.to_text()}")
        return "\n".join(lines)


class StatusResponse(BaseModel):
    """Response model for server status queries."""

    model_config = ConfigDict(extra="forbid")

    server: str = Field(default="chuk-mcp-intervisibility", description="Server name")
    version: str = Field(default="0.1.0", description="Server version")
    default_source: str = Field(..., description="Default DEM source")
    scan_radius_km: float = Field(..., description="Default horizon scan radius in km")
    active_runs: int = Field(..., description="Runs not yet in a terminal state", ge=0)
    total_runs: int = Field(..., description="Runs known to this server", ge=0)
    storage_provider: str = Field(..., description="Active storage provider (memory/filesystem/s3)")
    artifact_store_available: bool = Field(
        default=False, description="Whether artifact store is available"
    )
    cache_size_mb: float = Field(default=0.0, description="Current raster cache size in megabytes")

    def to_text(self) -> str:
        store_status = "available" if self.artifact_store_available else "not available"
        lines = [
            f"{self.server} v{self.version}",
            f"Default source: {self.default_source}",
            f"Scan radius: {self.scan_radius_km:.0f} km",
            f"Runs: {self.active_runs} active / {self.total_runs} total",
            f"Storage: {self.storage_provider}",
            f"Artifact store: {store_status}",
            f"Cache: {self.cache_size_mb:.1f} MB",
        ]
        return "\n".join(lines)


class CapabilitiesResponse(BaseModel):
    """Response model for server capabilities listing."""

    model_config = ConfigDict(extra="forbid")

    server: str = Field(..., description="Server name")
    version: str = Field(..., description="Server version")
    sources: list[SourceInfo] = Field(..., description="Available DEM sources")
    default_source: str = Field(..., description="Default DEM source identifier")
    run_tools: list[str] = Field(..., description="Batch run tools")
    analysis_tools: list[str] = Field(..., description="Ad-hoc analysis tools")
    network_metrics: list[str] = Field(..., description="Computed network metrics")
    defaults: dict[str, float] = Field(..., description="Default analysis parameters")
    tool_count: int = Field(..., description="Number of available tools", ge=0)
    llm_guidance: str = Field(..., description="LLM-friendly usage guidance for the server")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [
            f"{self.server} v{self.version}",
            f"Tools: {self.tool_count}",
            f"Default source: {self.default_source}",
            f"Sources: {', '.join(s.id for s in self.sources)}",
            f"Run tools: {', '.join(self.run_tools)}",
            f"Analysis tools: {', '.join(self.analysis_tools)}",
            f"Network metrics: {', '.join(self.network_metrics)}",
            f"Defaults: {', '.join(f'{k}={v:g}' for k, v in self.defaults.items())}",
            f"Guidance: {self.llm_guidance}",
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Run responses
# ---------------------------------------------------------------------------


class SiteInput(BaseModel):
    """A site supplied to iv_run_start."""

    model_config = ConfigDict(extra="forbid")

    lat: float = Field(..., description="Latitude in degrees", ge=-90, le=90)
    lon: float = Field(..., description="Longitude in degrees", ge=-180, le=180)
    id: str | None = Field(None, description="Unique site id (defaults to its position)")
    name: str | None = Field(None, description="Display name")
    elevation: float | None = Field(
        None, description="Elevation hint in metres, used when terrain cannot be sampled"
    )


class RunStatusResponse(BaseModel):
    """Progress and state of one run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run identifier")
    state: str = Field(..., description="Run state")
    site_count: int = Field(..., description="Number of sites in the run", ge=0)
    profiles_completed: int = Field(..., description="Sites with a horizon profile", ge=0)
    failed_sites: list[int] = Field(default_factory=list, description="Sites whose profile failed")
    pairs_checked: int = Field(..., description="Pairs evaluated so far", ge=0)
    total_pairs: int = Field(..., description="Pairs to evaluate in the pair phase", ge=0)
    visible_pairs: int = Field(..., description="Visible pairs found so far", ge=0)
    percent_complete: float = Field(..., description="Pair phase progress", ge=0, le=100)
    elapsed_s: float = Field(..., description="Seconds since the run started", ge=0)
    progress: str = Field("", description="Latest progress text")
    error: str | None = Field(None, description="Failure reason for failed runs")
    report_ref: str | None = Field(None, description="Artifact reference of the run report")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [
            f"Run {self.run_id}: {self.state}",
            f"Profiles: {self.profiles_completed}/{self.site_count}",
            f"Pairs: {self.pairs_checked}/{self.total_pairs} ({self.percent_complete:.1f}%)",
            f"Visible: {self.visible_pairs}",
            f"Elapsed: {self.elapsed_s:.1f}s",
        ]
        if self.failed_sites:
            lines.append(f"Failed sites: {', '.join(str(i) for i in self.failed_sites)}")
        if self.progress:
            lines.append(f"Progress: {self.progress}")
        if self.error:
            lines.append(f"Error: {self.error}")
        if self.report_ref:
            lines.append(f"Report: {self.report_ref}")
        return "\n".join(lines)


class RunListResponse(BaseModel):
    """All runs known to the server."""

    model_config = ConfigDict(extra="forbid")

    runs: list[RunStatusResponse] = Field(..., description="Run summaries, oldest first")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [self.message]
        for r in self.runs:
            lines.append(
                f"  {r.run_id}: {r.state} ({r.pairs_checked}/{r.total_pairs} pairs, "
                f"{r.visible_pairs} visible)"
            )
        return "\n".join(lines)


class VisiblePairInfo(BaseModel):
    """One visible pair."""

    model_config = ConfigDict(extra="forbid")

    i: int = Field(..., description="Index of the first site")
    j: int = Field(..., description="Index of the second site")
    site_a: str = Field(..., description="Display name of the first site")
    site_b: str = Field(..., description="Display name of the second site")
    distance_m: float = Field(..., description="Great-circle distance in metres")


class RunResultsResponse(BaseModel):
    """Visible pairs found by a run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run identifier")
    state: str = Field(..., description="Run state")
    pairs_checked: int = Field(..., description="Pairs evaluated", ge=0)
    visible_pairs: list[VisiblePairInfo] = Field(..., description="Visible pairs (i < j)")
    report_ref: str | None = Field(None, description="Artifact reference of the run report")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [self.message, f"Run {self.run_id}: {self.state}"]
        for p in self.visible_pairs:
            lines.append(f"  {p.site_a} <-> {p.site_b} ({p.distance_m / 1000:.1f} km)")
        if self.report_ref:
            lines.append(f"Report: {self.report_ref}")
        return "\n".join(lines)


class NodeStatisticsInfo(BaseModel):
    """Per-site network metrics."""

    model_config = ConfigDict(extra="forbid")

    index: int = Field(..., description="Site index")
    name: str = Field(..., description="Site display name")
    degree: int = Field(..., description="Number of visible neighbours", ge=0)
    clustering: float = Field(..., description="Clustering coefficient", ge=0, le=1)
    betweenness: float = Field(..., description="Betweenness centrality", ge=0)
    closeness: float = Field(..., description="Closeness centrality", ge=0)


class NetworkStatisticsResponse(BaseModel):
    """Visibility network statistics for a finished run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run identifier")
    state: str = Field(..., description="Run state (completed or cancelled)")
    node_count: int = Field(..., description="Number of sites", ge=0)
    edge_count: int = Field(..., description="Number of visible pairs", ge=0)
    intervisibility_ratio: float = Field(
        ..., description="Visible pairs as a percentage of possible pairs", ge=0, le=100
    )
    average_degree: float = Field(..., description="Mean node degree", ge=0)
    average_clustering: float = Field(..., description="Mean clustering coefficient", ge=0)
    components: int = Field(..., description="Connected components", ge=0)
    diameter: int | None = Field(
        None, description="Longest shortest path; null if no two sites are connected"
    )
    average_path_length: float = Field(
        ..., description="Mean shortest path over reachable pairs", ge=0
    )
    degree_distribution: dict[str, int] = Field(..., description="Degree -> node count")
    top_sites: list[NodeStatisticsInfo] = Field(..., description="Sites ranked by degree")
    nodes: list[NodeStatisticsInfo] | None = Field(
        None, description="Per-site metrics (when requested)"
    )
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        diameter = "undefined" if self.diameter is None else str(self.diameter)
        lines = [
            self.message,
            f"Intervisibility ratio: {self.intervisibility_ratio:.1f}%",
            f"Average degree: {self.average_degree:.2f}",
            f"Average clustering: {self.average_clustering:.3f}",
            f"Components: {self.components}",
            f"Diameter: {diameter}",
            f"Average path length: {self.average_path_length:.2f}",
            "Top sites:",
        ]
        for s in self.top_sites:
            lines.append(f"  {s.name}: degree {s.degree}, clustering {s.clustering:.2f}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Analysis responses
# ---------------------------------------------------------------------------


def _ground(elevation_m: float | None) -> str:
    return "n/a" if elevation_m is None else f"{elevation_m:.1f}m"


class LineOfSightResponse(BaseModel):
    """Response model for an ad-hoc line-of-sight check."""

    model_config = ConfigDict(extra="forbid")

    source: str = Field(..., description="DEM source used")
    observer: list[float] = Field(..., description="Observer point [lon, lat]")
    target: list[float] = Field(..., description="Target point [lon, lat]")
    visible: bool = Field(..., description="Whether the target is visible")
    reason: str = Field(..., description="Outcome reason code")
    distance_m: float = Field(..., description="Great-circle distance in metres", ge=0)
    bearing_deg: float | None = Field(None, description="Bearing from observer to target")
    observer_elevation_m: float | None = Field(
        None, description="Ground elevation at observer (not sampled when out of range)"
    )
    target_elevation_m: float | None = Field(
        None, description="Ground elevation at target (not sampled when out of range)"
    )
    observer_height_m: float = Field(..., description="Observer height above ground")
    target_height_m: float = Field(..., description="Target height above ground")
    horizon_altitude_deg: float | None = Field(
        None, description="Observer horizon altitude toward the target"
    )
    target_altitude_deg: float | None = Field(
        None, description="Geometric altitude of the target from the observer"
    )
    samples_checked: int = Field(..., description="Terrain samples tested", ge=0)
    obstruction_distance_m: float | None = Field(
        None, description="Distance from observer to the first obstruction"
    )
    obstruction_height_m: float | None = Field(None, description="Terrain height of obstruction")
    used_fallback: bool = Field(False, description="Whether a fallback raster was sampled")
    message: str = Field(..., description="Operation result message")

    def to_text(self) -> str:
        lines = [
            f"Line of sight: {self.source}",
            f"Observer: ({self.observer[0]:.6f}, {self.observer[1]:.6f}) "
            f"ground {_ground(self.observer_elevation_m)} + {self.observer_height_m:.1f}m",
            f"Target: ({self.target[0]:.6f}, {self.target[1]:.6f}) "
            f"ground {_ground(self.target_elevation_m)} + {self.target_height_m:.1f}m",
            f"Distance: {self.distance_m:.0f}m",
            f"Visible: {'yes' if self.visible else 'no'} ({self.reason})",
            f"Samples: {self.samples_checked}",
        ]
        if self.bearing_deg is not None:
            lines.append(f"Bearing: {self.bearing_deg:.1f}°")
        if self.horizon_altitude_deg is not None:
            lines.append(f"Horizon altitude: {self.horizon_altitude_deg:.2f}°")
        if self.obstruction_distance_m is not None:
            lines.append(
                f"Obstruction: {self.obstruction_height_m:.1f}m at {self.obstruction_distance_m:.0f}m"
            )
        return "\n".join(lines)
