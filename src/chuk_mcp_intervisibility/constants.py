"""
Constants for chuk-mcp-intervisibility server.

All magic strings, source metadata, and configuration values live here.
"""


class ServerConfig:
    NAME = "chuk-mcp-intervisibility"
    VERSION = "0.1.0"


class StorageProvider:
    MEMORY = "memory"
    S3 = "s3"
    FILESYSTEM = "filesystem"


class SessionProvider:
    MEMORY = "memory"
    REDIS = "redis"


class EnvVar:
    ARTIFACTS_PROVIDER = "CHUK_ARTIFACTS_PROVIDER"
    BUCKET_NAME = "BUCKET_NAME"
    REDIS_URL = "REDIS_URL"
    ARTIFACTS_PATH = "CHUK_ARTIFACTS_PATH"
    AWS_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
    AWS_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
    AWS_ENDPOINT_URL_S3 = "AWS_ENDPOINT_URL_S3"
    MCP_STDIO = "MCP_STDIO"

    # Analysis tunables
    DEM_SOURCE = "IV_DEM_SOURCE"
    SCAN_RADIUS_KM = "IV_SCAN_RADIUS_KM"
    HORIZON_ZOOM = "IV_HORIZON_ZOOM"
    HORIZON_STEPS = "IV_HORIZON_STEPS"
    CACHE_MAX_ENTRIES = "IV_CACHE_MAX_ENTRIES"
    CACHE_MAX_AGE_S = "IV_CACHE_MAX_AGE_S"


class DEMSource:
    COP30 = "cop30"
    COP90 = "cop90"


DEFAULT_SOURCE = DEMSource.COP30

# Only sources with anonymous COG access are listed; the provider builds
# tile URLs for these directly.
DEM_SOURCES: dict[str, dict] = {
    DEMSource.COP30: {
        "id": DEMSource.COP30,
        "name": "Copernicus GLO-30",
        "resolution_m": 30,
        "coverage": "global",
        "vertical_datum": "EGM2008",
        "tile_size_degrees": 1.0,
        "nodata_value": -9999.0,
        "access_url": "https://copernicus-dem-30m.s3.amazonaws.com",
        "license": "CC-BY-4.0",
    },
    DEMSource.COP90: {
        "id": DEMSource.COP90,
        "name": "Copernicus GLO-90",
        "resolution_m": 90,
        "coverage": "global",
        "vertical_datum": "EGM2008",
        "tile_size_degrees": 1.0,
        "nodata_value": -9999.0,
        "access_url": "https://copernicus-dem-90m.s3.amazonaws.com",
        "license": "CC-BY-4.0",
    },
}

ALL_SOURCE_IDS = list(DEM_SOURCES.keys())


class RunState:
    IDLE = "idle"
    PROFILE_PHASE = "profile_phase"
    PAIR_PHASE = "pair_phase"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)


class VisibilityReason:
    SAME_POINT = "same_point"
    BEYOND_RANGE = "beyond_range"
    BELOW_HORIZON = "below_horizon"
    BLOCKED = "blocked"
    CLEAR = "clear"
    NO_TERRAIN = "no_terrain"
    CANCELLED = "cancelled"
    ERROR = "error"


# Tile pyramid geometry
EQUATOR_CIRCUMFERENCE_KM = 40075.0
EQUATOR_CIRCUMFERENCE_M = 40075016.686
TILE_SIZE_PX = 256

# Profile precomputation
DEFAULT_SCAN_RADIUS_KM = 150.0
DEFAULT_HORIZON_ZOOM = 11
DEFAULT_HORIZON_STEPS = 360
PROFILE_CLEANUP_INTERVAL = 2  # force cache cleanup every N completed profiles

# Raster cache
DEFAULT_CACHE_MAX_ENTRIES = 3
DEFAULT_CACHE_MAX_AGE_S = 120.0
CACHE_KEY_DECIMALS = 4  # ~11 m

# Line of sight
SAMPLE_INTERVAL_M = 50.0
MIN_SAMPLES = 10
MAX_SAMPLES = 200
CURVATURE_THRESHOLD_M = 10000.0
EARTH_RADIUS_M = 6370000.0
REFRACTION_COEFFICIENT = 0.13
OBSTRUCTION_BUFFER_M = 1.0
LINE_RASTER_BUFFER_FACTOR = 1.1
SAMPLE_YIELD_INTERVAL = 5

# Batch scheduler
PAIR_CLEANUP_INTERVAL = 5
PAUSE_POLL_INTERVAL_S = 0.1
MAX_FINISHED_RUNS = 50

# Network statistics
UNREACHABLE = -1
DEFAULT_TOP_SITES = 10

# Retry
RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 1
RETRY_WAIT_MAX = 10

RUN_TOOLS = [
    "iv_run_start",
    "iv_run_status",
    "iv_run_pause",
    "iv_run_resume",
    "iv_run_cancel",
    "iv_run_results",
    "iv_run_statistics",
    "iv_list_runs",
]
ANALYSIS_TOOLS = ["iv_line_of_sight"]
NETWORK_METRICS = [
    "degree",
    "clustering",
    "components",
    "diameter",
    "average_path_length",
    "betweenness",
    "closeness",
]


class ErrorMessages:
    UNKNOWN_SOURCE = "Unknown DEM source '{}'. Available: {}"
    INVALID_LATITUDE = "Invalid latitude {}: must be between -90 and 90"
    INVALID_LONGITUDE = "Invalid longitude {}: must be between -180 and 180"
    INVALID_POINT = "Invalid point: must be [lon, lat]"
    TOO_FEW_SITES = "Need at least 2 sites to create an intervisibility matrix, got {}"
    DUPLICATE_SITE_ID = "Duplicate site id '{}'"
    INSUFFICIENT_PROFILES = (
        "Need at least 2 completed profiles to check intervisibility. "
        "Only {} profile(s) completed."
    )
    UNKNOWN_SESSION = "Unknown run '{}'"
    RUN_NOT_ACTIVE = "Run '{}' is not active (state: {})"
    RUN_NOT_FINISHED = "Run '{}' has no statistics yet (state: {})"
    INVALID_RASTER = "Invalid terrain raster returned for {}"
    RASTER_RELEASED = "Terrain raster has been released"
    NO_TILES = "{} has no tiles covering {}"
    INVALID_RADIUS = "scan_radius_km must be > 0, got {}"
    INVALID_ZOOM = "zoom must be between 0 and 20, got {}"
    INVALID_STEPS = "horizon_steps must be >= 4, got {}"
    INVALID_CACHE_ENTRIES = "cache_max_entries must be >= 1, got {}"
    INVALID_CACHE_AGE = "cache_max_age_s must be > 0, got {}"
    INVALID_SAMPLE_BOUNDS = "sample bounds must satisfy 1 <= min <= max, got {}..{}"
    NO_ARTIFACT_STORE = (
        "No artifact store available. Configure CHUK_ARTIFACTS_PROVIDER "
        "environment variable (memory, filesystem, or s3)."
    )
    NO_TERRAIN_AT = "No terrain height available at ({}, {})"


class SuccessMessages:
    SOURCES_LIST = "{} DEM sources available"
    RUN_STARTED = "Run {} started for {} sites"
    RUN_PAUSED = "Run {} pause requested"
    RUN_RESUMED = "Run {} resumed"
    RUN_CANCELLED = "Run {} cancel requested"
    RUN_STATUS = "Run {}: {} ({}/{} pairs checked)"
    RUN_RESULTS = "Found {} intervisible connections out of {} pairs checked"
    STATISTICS = "Network of {} sites: {} edges, {} component(s)"
    LOS_VISIBLE = "Line of sight clear over {:.0f}m"
    LOS_BLOCKED = "Line of sight not clear over {:.0f}m ({})"


class ProgressMessages:
    PROFILE_PHASE = "Phase 1: Calculating horizon profiles for all sites..."
    PROFILE_SITE = "Phase 1: Calculating profile {}/{}: {}..."
    PROFILE_DOWNLOAD = "Calculating profile for {}: Downloading tiles {}/{}..."
    PROFILE_VIEWSHED = "Calculating profile for {}: Computing viewshed..."
    PROFILE_ERROR = "Error calculating profile for site {}: {}"
    PAIR_PHASE = "Phase 2: Checking intervisibility between {} sites ({} pairs)..."
    PAIR_CHECK = "Phase 2: {}/{} pairs checked ({} -> {})..."
    PAUSED = "Calculation paused. Resume to continue..."
    RESUMED = "Calculation resumed."
    CANCELLED = (
        "Calculation cancelled. Found {} intervisible connections out of "
        "{} pairs checked (from {} completed site profiles)."
    )
    COMPLETED = (
        "Intervisibility matrix created. Found {} intervisible connections out of "
        "{} pairs checked (from {} completed site profiles)."
    )
