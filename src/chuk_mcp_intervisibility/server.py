#!/usr/bin/env python3
"""
Intervisibility MCP Server - Entry Point

This module provides the async MCP server for terrain intervisibility runs,
line-of-sight checks, and visibility network statistics.
Supports both stdio (for Claude Desktop) and HTTP (for API access) transports.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .constants import ALL_SOURCE_IDS, EnvVar, ServerConfig, SessionProvider, StorageProvider

# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

logger = logging.getLogger(__name__)


def _resolve_storage_provider() -> str | None:
    """Pick the storage provider from the environment.

    Returns:
        Provider name, or None if the configured provider cannot be used
    """
    provider = os.environ.get(EnvVar.ARTIFACTS_PROVIDER, StorageProvider.MEMORY)

    if provider == StorageProvider.S3:
        required = [EnvVar.BUCKET_NAME, EnvVar.AWS_ACCESS_KEY_ID, EnvVar.AWS_SECRET_ACCESS_KEY]
        missing = [name for name in required if not os.environ.get(name)]
        if missing:
            logger.warning(
                f"S3 provider configured but missing credentials. Set {', '.join(missing)}."
            )
            return None
        logger.info(
            f"Initializing artifact store with S3 provider "
            f"(bucket: {os.environ.get(EnvVar.BUCKET_NAME)}, "
            f"endpoint: {os.environ.get(EnvVar.AWS_ENDPOINT_URL_S3)})"
        )

    elif provider == StorageProvider.FILESYSTEM:
        artifacts_path = os.environ.get(EnvVar.ARTIFACTS_PATH)
        if not artifacts_path:
            logger.warning(
                f"Filesystem provider configured but {EnvVar.ARTIFACTS_PATH} not set. "
                "Defaulting to memory provider."
            )
            return StorageProvider.MEMORY
        Path(artifacts_path).mkdir(parents=True, exist_ok=True)
        logger.info(f"Initializing artifact store with filesystem provider (path: {artifacts_path})")

    return provider


def _init_artifact_store() -> bool:
    """
    Initialize the artifact store used for run reports.

    Returns:
        True if artifact store was initialized, False otherwise
    """
    provider = _resolve_storage_provider()
    if provider is None:
        return False

    redis_url = os.environ.get(EnvVar.REDIS_URL)

    try:
        from chuk_artifacts import ArtifactStore
        from chuk_mcp_server import set_global_artifact_store

        store_kwargs: dict[str, Any] = {
            "storage_provider": provider,
            "session_provider": SessionProvider.REDIS if redis_url else SessionProvider.MEMORY,
        }
        if provider == StorageProvider.S3:
            store_kwargs["bucket"] = os.environ.get(EnvVar.BUCKET_NAME)
        elif provider == StorageProvider.FILESYSTEM:
            store_kwargs["bucket"] = os.environ.get(EnvVar.ARTIFACTS_PATH)

        set_global_artifact_store(ArtifactStore(**store_kwargs))

        logger.info(f"Artifact store initialized successfully (provider: {provider})")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize artifact store: {e}")
        return False


# Import mcp instance and all registered tools from async server
from .async_server import manager, mcp  # noqa: F401, E402


def _apply_overrides(source: str | None, scan_radius_km: float | None) -> None:
    """Apply command-line analysis defaults to the shared manager."""
    manager.config = manager.config.with_overrides(source=source, scan_radius_km=scan_radius_km)
    if source or scan_radius_km:
        logger.info(
            f"Analysis defaults: source={manager.config.source}, "
            f"scan_radius_km={manager.config.scan_radius_km}"
        )


def main() -> None:
    """Main entry point for the MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="Intervisibility MCP Server")
    parser.add_argument(
        "mode",
        nargs="?",
        choices=["stdio", "http"],
        default=None,
        help="Transport mode (stdio for Claude Desktop, http for API)",
    )
    parser.add_argument(
        "--host", default="0.0.0.0", help="Host for HTTP mode (default: 0.0.0.0)"
    )
    parser.add_argument("--port", type=int, default=8004, help="Port for HTTP mode (default: 8004)")
    parser.add_argument(
        "--source", choices=ALL_SOURCE_IDS, default=None, help="Default DEM source"
    )
    parser.add_argument(
        "--scan-radius-km", type=float, default=None, help="Default scan radius in km"
    )

    args = parser.parse_args()

    # Initialize artifact store at startup, not at import time
    _init_artifact_store()
    _apply_overrides(args.source, args.scan_radius_km)

    stdio = args.mode == "stdio" or (
        args.mode is None and (os.environ.get(EnvVar.MCP_STDIO) or not sys.stdin.isatty())
    )
    if stdio:
        detected = " (auto-detected)" if args.mode is None else ""
        print(f"{ServerConfig.NAME} starting in STDIO mode{detected}", file=sys.stderr)
        mcp.run(stdio=True)
    else:
        print(
            f"{ServerConfig.NAME} starting in HTTP mode on {args.host}:{args.port}",
            file=sys.stderr,
        )
        mcp.run(host=args.host, port=args.port, stdio=False)


if __name__ == "__main__":
    main()
