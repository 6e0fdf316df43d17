"""
chirpstream Configuration
=========================

This module handles configuration loading for the streaming client.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. chirpstream.yaml / config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CHIRPSTREAM_BEARER_TOKEN          -> auth.bearer_token
    CHIRPSTREAM_USER                  -> auth.user
    CHIRPSTREAM_PASSWORD              -> auth.password
    CHIRPSTREAM_STREAM_BASE_URL       -> stream.base_url
    CHIRPSTREAM_STALL_WARNINGS        -> stream.stall_warnings_enabled
    CHIRPSTREAM_THREAD_NAME           -> stream.thread_name
    CHIRPSTREAM_STREAMING_READ_TIMEOUT_MS -> http.streaming_read_timeout_ms
    CHIRPSTREAM_CONNECTION_TIMEOUT_MS -> http.connection_timeout_ms
    CHIRPSTREAM_ASYNC_NUM_THREADS     -> dispatcher.num_threads
    CHIRPSTREAM_LOG_LEVEL             -> logging.level

Example:
    from chirpstream.config import load_config

    settings = load_config()
    print(settings.stream.base_url)
    print(settings.backoff.network_cap_ms)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AuthConfig(BaseModel):
    """Credentials used to authorize streaming requests."""

    bearer_token: Optional[str] = Field(default=None, description="OAuth2 bearer token")
    user: Optional[str] = Field(default=None, description="Basic auth user")
    password: Optional[str] = Field(default=None, description="Basic auth password")


class HttpConfig(BaseModel):
    """HTTP transport configuration."""

    connection_timeout_ms: int = Field(
        default=20_000,
        gt=0,
        description="Connect timeout in milliseconds",
    )
    read_timeout_ms: int = Field(
        default=120_000,
        gt=0,
        description="Read timeout for non-streaming calls",
    )
    streaming_read_timeout_ms: int = Field(
        default=40_000,
        gt=0,
        description="Read timeout while waiting for the next streamed line",
    )
    gzip_enabled: bool = Field(default=True, description="Request gzip encoding")
    user_agent: str = Field(
        default="chirpstream/0.1.0",
        description="User-Agent header sent with every request",
    )


class StreamConfig(BaseModel):
    """Streaming endpoint configuration."""

    base_url: str = Field(
        default="https://stream.twitter.com/1.1/",
        description="Base URL of the streaming API (trailing slash)",
    )
    stall_warnings_enabled: bool = Field(
        default=True,
        description="Ask the server for stall warnings",
    )
    thread_name: str = Field(
        default="",
        description="Label included in consumer thread names",
    )
    daemon: bool = Field(
        default=True,
        description="Run consumer and dispatcher threads as daemons",
    )
    chunk_size: int = Field(
        default=512,
        ge=1,
        description="Bytes read from the socket per chunk",
    )


class DispatcherConfig(BaseModel):
    """Listener dispatcher configuration."""

    num_threads: int = Field(
        default=1,
        ge=1,
        description="Worker threads in the shared dispatcher pool",
    )


class BackoffConfig(BaseModel):
    """Reconnect backoff configuration (milliseconds)."""

    network_initial_ms: int = Field(default=250, ge=0)
    network_cap_ms: int = Field(default=16_000, ge=0)
    protocol_initial_ms: int = Field(default=10_000, ge=0)
    protocol_cap_ms: int = Field(default=240_000, ge=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for chirpstream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    auth: AuthConfig = Field(default_factory=AuthConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to a YAML file. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("chirpstream.yaml"),
            Path("chirpstream.yml"),
            Path("config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Auth settings
    if env_token := os.environ.get("CHIRPSTREAM_BEARER_TOKEN"):
        config_data.setdefault("auth", {})["bearer_token"] = env_token
    if env_user := os.environ.get("CHIRPSTREAM_USER"):
        config_data.setdefault("auth", {})["user"] = env_user
    if env_password := os.environ.get("CHIRPSTREAM_PASSWORD"):
        config_data.setdefault("auth", {})["password"] = env_password

    # Stream settings
    if env_url := os.environ.get("CHIRPSTREAM_STREAM_BASE_URL"):
        config_data.setdefault("stream", {})["base_url"] = env_url
    if env_stall := os.environ.get("CHIRPSTREAM_STALL_WARNINGS"):
        config_data.setdefault("stream", {})["stall_warnings_enabled"] = _env_flag(env_stall)
    if env_name := os.environ.get("CHIRPSTREAM_THREAD_NAME"):
        config_data.setdefault("stream", {})["thread_name"] = env_name

    # HTTP settings
    if env_read := os.environ.get("CHIRPSTREAM_STREAMING_READ_TIMEOUT_MS"):
        config_data.setdefault("http", {})["streaming_read_timeout_ms"] = int(env_read)
    if env_connect := os.environ.get("CHIRPSTREAM_CONNECTION_TIMEOUT_MS"):
        config_data.setdefault("http", {})["connection_timeout_ms"] = int(env_connect)

    # Dispatcher settings
    if env_threads := os.environ.get("CHIRPSTREAM_ASYNC_NUM_THREADS"):
        config_data.setdefault("dispatcher", {})["num_threads"] = int(env_threads)

    # Logging settings
    if env_log := os.environ.get("CHIRPSTREAM_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "thread": "%(threadName)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
