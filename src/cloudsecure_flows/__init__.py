"""
CloudSecure Flows package.

Retrieves a day of CloudSecure flow logs into one ordered CSV file and
filters it against IP/CIDR lists using named presets.
"""

from typing import Final

# Package metadata
__version__: Final[str] = "1.0.0"
__author__: Final[str] = "CloudSecure Flows Team"
__description__: Final[str] = "CloudSecure flow log retrieval and IP list filtering"

# Public API exports
from .codec import FlowRecord, FlowStatus, decode, encode_row, write_csv
from .config import DEFAULT_CONFIG, FLOW_HEADER, RetrievalConfig
from .errors import (
    CloudSecureFlowsError,
    ConfigError,
    DecodeError,
    FatalIOError,
    ParseError,
    PresetNotFoundError,
    RetryableTransportError,
    RetryExhaustedError,
    UploadError,
)
from .filter_engine import (
    FilterCondition,
    FilterResult,
    Preset,
    apply_preset,
    filter_csv,
    output_file_name,
)
from .ip_sets import IPSet, contains, is_globally_routable, parse_list
from .presets import PresetStore
from .retriever import SegmentedRetriever, retrieve_day, with_retry
from .time_utils import TimeSegment, build_segments, parse_target_date

__all__ = [
    # Codec
    "FlowRecord",
    "FlowStatus",
    "decode",
    "encode_row",
    "write_csv",
    # Configuration
    "DEFAULT_CONFIG",
    "FLOW_HEADER",
    "RetrievalConfig",
    # Errors
    "CloudSecureFlowsError",
    "ConfigError",
    "DecodeError",
    "FatalIOError",
    "ParseError",
    "PresetNotFoundError",
    "RetryableTransportError",
    "RetryExhaustedError",
    "UploadError",
    # Filtering
    "FilterCondition",
    "FilterResult",
    "Preset",
    "PresetStore",
    "apply_preset",
    "filter_csv",
    "output_file_name",
    # IP sets
    "IPSet",
    "contains",
    "is_globally_routable",
    "parse_list",
    # Retrieval
    "SegmentedRetriever",
    "TimeSegment",
    "build_segments",
    "parse_target_date",
    "retrieve_day",
    "with_retry",
]
