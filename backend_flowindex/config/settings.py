"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate required settings and provide defaults for optional ones.
- Expose typed settings (network, access URL, poll interval, start height)
  and build the explicit NetworkConfig / ConversionOptions per call site.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from functools import lru_cache

from backend_flowindex.cadence.values import ConversionOptions
from backend_flowindex.config.env import (
    NetworkConfig,
    get_access_url,
    get_flow_network,
    get_network_config,
    load_flowindex_env,
)

DEFAULT_POLL_INTERVAL_SEC = 1.0
DEFAULT_RETRY_INTERVAL_SEC = 0.05
DEFAULT_CHANNEL_SIZE = 1


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Typed, validated settings for the stream and normalizer."""

    network: str
    access_url: str
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    retry_interval_sec: float = DEFAULT_RETRY_INTERVAL_SEC
    start_height: int = 0
    channel_size: int = DEFAULT_CHANNEL_SIZE
    skip_empty_fields: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        if self.retry_interval_sec <= 0:
            raise ValueError("retry_interval_sec must be positive")
        if self.start_height < 0:
            raise ValueError("start_height must be non-negative")
        if self.channel_size < 1:
            raise ValueError("channel_size must be at least 1")

    def network_config(self) -> NetworkConfig:
        return get_network_config(self.network)

    def conversion_options(self) -> ConversionOptions:
        return ConversionOptions(skip_empty_fields=self.skip_empty_fields)

    def new_channel(self) -> asyncio.Queue:
        """Output queue for one stream; channel_size bounds how far the stream runs ahead of its consumer."""
        return asyncio.Queue(maxsize=self.channel_size)


def load_settings() -> Settings:
    """Read settings from the environment (uncached)."""
    load_flowindex_env()
    return Settings(
        network=get_flow_network(),
        access_url=get_access_url(),
        poll_interval_sec=_env_float("FLOWINDEX_POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
        retry_interval_sec=_env_float("FLOWINDEX_RETRY_INTERVAL_SEC", DEFAULT_RETRY_INTERVAL_SEC),
        start_height=_env_int("FLOWINDEX_START_HEIGHT", 0),
        channel_size=_env_int("FLOWINDEX_CHANNEL_SIZE", DEFAULT_CHANNEL_SIZE),
        skip_empty_fields=_env_bool("FLOWINDEX_SKIP_EMPTY_FIELDS"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings.

    Cached after the first call; use load_settings() to re-read the environment.
    """
    return load_settings()
