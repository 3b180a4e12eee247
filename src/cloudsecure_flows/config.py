"""
Configuration module for CloudSecure Flows.
"""

import json
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Final, Optional

from .errors import ConfigError, FatalIOError


class DefaultConfiguration:
    """Provides default configuration values."""

    SEGMENT_HOURS: Final[int] = 2
    MAX_WORKERS: Final[int] = 3
    MAX_ATTEMPTS: Final[int] = 3
    BACKOFF_STEP_SECONDS: Final[float] = 2.0
    MAX_RESULTS: Final[int] = 10_000_000  # effectively "every flow in the window"
    REQUEST_TIMEOUT: Final[Optional[float]] = None

    CONFIG_FILE: Final[str] = "csconfig.json"
    S3_CONFIG_FILE: Final[str] = "s3config.json"
    PRESETS_FILE: Final[str] = "presets.json"

    @classmethod
    def get_default_config(cls) -> dict[str, Any]:
        """Get default configuration dictionary."""
        return {
            "segment_hours": cls.SEGMENT_HOURS,
            "max_workers": cls.MAX_WORKERS,
            "max_attempts": cls.MAX_ATTEMPTS,
            "backoff_step": cls.BACKOFF_STEP_SECONDS,
            "max_results": cls.MAX_RESULTS,
            "config_file": cls.CONFIG_FILE,
            "s3_config_file": cls.S3_CONFIG_FILE,
            "presets_file": cls.PRESETS_FILE,
        }


class FlowColumns:
    """Fixed layout of the tabular flow file."""

    HEADER: Final[tuple[str, ...]] = (
        "FlowStatus",
        "FirstDetected",
        "LastDetected",
        "Source_IP",
        "Destination_IP",
        "DestinationPort",
        "Protocol",
        "ByteCount",
    )

    # Keys of the upstream flow object, in column order
    API_KEYS: Final[tuple[str, ...]] = (
        "status",
        "start_time",
        "end_time",
        "src",
        "dst",
        "dst_port",
        "protocol",
        "bytes",
    )

    STATUS_INDEX: Final[int] = 0
    SOURCE_IP_INDEX: Final[int] = 3
    DEST_IP_INDEX: Final[int] = 4
    MIN_FILTER_COLUMNS: Final[int] = 5


class UpstreamApi:
    """CloudSecure flow API constants."""

    BASE_URL: Final[str] = "https://cloud.illum.io"
    FLOWS_PATH: Final[str] = "/api/v1/flows"
    FILE_FORMAT: Final[str] = "FILE_FORMAT_CSV"
    IP_ADDRESS_PATTERN: Final[str] = r"ip_address:([\d\.]+)"

    ENV_API_KEY: Final[str] = "CLOUDSECURE_API_KEY"
    ENV_API_SECRET: Final[str] = "CLOUDSECURE_API_SECRET"
    ENV_TENANT_ID: Final[str] = "CLOUDSECURE_TENANT_ID"
    ENV_BASE_URL: Final[str] = "CLOUDSECURE_BASE_URL"


@dataclass
class RetrievalConfig:
    """Structured configuration for a day export."""

    segment_hours: int = DefaultConfiguration.SEGMENT_HOURS
    max_workers: int = DefaultConfiguration.MAX_WORKERS
    max_attempts: int = DefaultConfiguration.MAX_ATTEMPTS
    backoff_step: float = DefaultConfiguration.BACKOFF_STEP_SECONDS
    max_results: int = DefaultConfiguration.MAX_RESULTS

    @property
    def segment_width(self) -> timedelta:
        return timedelta(hours=self.segment_hours)

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.segment_hours <= 0 or 24 % self.segment_hours:
            raise ConfigError(
                f"Segment width must evenly divide 24 hours, got {self.segment_hours}h"
            )
        if self.max_workers < 1:
            raise ConfigError("Worker count must be at least 1")
        if self.max_attempts < 1:
            raise ConfigError("Max attempts must be at least 1")
        if self.backoff_step < 0:
            raise ConfigError("Backoff step cannot be negative")
        if self.max_results <= 0:
            raise ConfigError("Max results must be positive")


@dataclass(frozen=True)
class CloudSecureCredentials:
    """API credentials for one CloudSecure tenant."""

    api_key: str
    api_secret: str
    tenant_id: str
    name: str = "default"

    def __repr__(self) -> str:
        return f"CloudSecureCredentials(name={self.name!r}, tenant_id={self.tenant_id!r})"


def load_cloud_secure_config(path: str) -> dict[str, Any]:
    """Load the tenant configuration file."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file '{path}' not found")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file '{path}' is not valid JSON: {e}")
    except OSError as e:
        raise FatalIOError(f"Cannot read config file '{path}': {e}")

    if not isinstance(data, dict) or not isinstance(data.get("cloud_secures"), dict):
        raise ConfigError(f"Config file '{path}' has no 'cloud_secures' section")
    return data


def _credentials_from_env() -> Optional[CloudSecureCredentials]:
    api_key = os.environ.get(UpstreamApi.ENV_API_KEY)
    api_secret = os.environ.get(UpstreamApi.ENV_API_SECRET)
    tenant_id = os.environ.get(UpstreamApi.ENV_TENANT_ID)
    if api_key and api_secret and tenant_id:
        return CloudSecureCredentials(api_key, api_secret, tenant_id, name="env")
    return None


def resolve_credentials(
    config_path: str, tenant: Optional[str] = None
) -> CloudSecureCredentials:
    """
    Resolve API credentials.

    Environment variables win when all three are set; otherwise the named
    tenant (or the file's default tenant) is read from the config file.
    """
    if env_credentials := _credentials_from_env():
        return env_credentials

    data = load_cloud_secure_config(config_path)
    name = tenant or data.get("default_cloud_name", "")
    if not name:
        raise ConfigError("No tenant given and no default_cloud_name in config")

    entry = data["cloud_secures"].get(name)
    if entry is None:
        raise ConfigError(f"CloudSecure '{name}' not found in config")

    try:
        return CloudSecureCredentials(
            api_key=entry["api_key"],
            api_secret=entry["api_secret"],
            tenant_id=entry["tenant_id"],
            name=name,
        )
    except KeyError as e:
        raise ConfigError(f"CloudSecure '{name}' is missing {e}")


def resolve_base_url(base_url: Optional[str] = None) -> str:
    """Resolve API base URL from parameter, environment, or default."""
    return (
        base_url
        or os.environ.get(UpstreamApi.ENV_BASE_URL)
        or UpstreamApi.BASE_URL
    ).rstrip("/")


def ensure_parent_dir(path: str) -> None:
    """Create the parent directory of an output file if needed."""
    parent = Path(path).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FatalIOError(f"Cannot create directory '{parent}': {e}")


# Public API - module level shortcuts
DEFAULT_CONFIG = DefaultConfiguration.get_default_config()
FLOW_HEADER = FlowColumns.HEADER
API_FLOW_KEYS = FlowColumns.API_KEYS
