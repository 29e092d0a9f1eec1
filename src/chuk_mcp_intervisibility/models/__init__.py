"""Response models for chuk-mcp-intervisibility."""

from .responses import (
    CapabilitiesResponse,
    ErrorResponse,
    LineOfSightResponse,
    NetworkStatisticsResponse,
    NodeStatisticsInfo,
    RunListResponse,
    RunResultsResponse,
    RunStatusResponse,
    SiteInput,
    SourceInfo,
    SourcesResponse,
    StatusResponse,
    VisiblePairInfo,
    format_response,
)

__all__ = [
    "ErrorResponse",
    "SourceInfo",
    "SourcesResponse",
    "StatusResponse",
    "CapabilitiesResponse",
    "SiteInput",
    "RunStatusResponse",
    "RunListResponse",
    "VisiblePairInfo",
    "RunResultsResponse",
    "NodeStatisticsInfo",
    "NetworkStatisticsResponse",
    "LineOfSightResponse",
    "format_response",
]
