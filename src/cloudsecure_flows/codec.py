"""
Flow record codec: upstream JSON schema, tabular rows and CSV files.
"""

import csv
import logging
import re
from enum import Enum
from typing import Any, Iterator, NamedTuple, Optional, TextIO

from pydantic import BaseModel, ValidationError, field_validator

from .config import FLOW_HEADER, UpstreamApi, ensure_parent_dir
from .errors import DecodeError, FatalIOError

logger = logging.getLogger(__name__)

IP_ADDRESS_RE = re.compile(UpstreamApi.IP_ADDRESS_PATTERN)


class FlowStatus(str, Enum):
    ALLOWED = "ALLOWED"
    DENIED = "DENIED"


class FlowRecord(NamedTuple):
    """One flow; field order is the on-disk column order."""

    flow_status: str
    first_detected: str
    last_detected: str
    source_ip: str
    dest_ip: str
    dest_port: str
    protocol: str
    byte_count: str


def _describe(value: Any) -> str:
    """Render a raw API value as text; nested objects become 'key:value' tokens."""
    if value is None:
        return ""
    if isinstance(value, dict):
        return " ".join(f"{key}:{_describe(value[key])}" for key in sorted(value))
    if isinstance(value, list):
        return " ".join(_describe(item) for item in value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class ApiFlow(BaseModel):
    """A single flow object as returned by the flow API."""

    status: str
    start_time: str
    end_time: str
    src: str
    dst: str
    dst_port: str
    protocol: str
    bytes: str

    @field_validator("*", mode="before")
    @classmethod
    def _to_text(cls, value: Any) -> str:
        return _describe(value)


class FlowReportResponse(BaseModel):
    """Body of a successful flow report call."""

    flows: list[ApiFlow] = []

    @field_validator("flows", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def extract_ip(descriptor: str) -> str:
    """Pull the dotted-quad out of an endpoint descriptor, or '' if absent."""
    if match := IP_ADDRESS_RE.search(descriptor):
        return match.group(1)
    return ""


def parse_response(payload: Any) -> FlowReportResponse:
    """Validate a decoded JSON body against the flow report schema."""
    try:
        return FlowReportResponse.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"Unexpected flow report format: {e}") from e


def decode(api_flow: ApiFlow | dict[str, Any]) -> FlowRecord:
    """Map an upstream flow object into a FlowRecord."""
    if not isinstance(api_flow, ApiFlow):
        try:
            api_flow = ApiFlow.model_validate(api_flow)
        except ValidationError as e:
            raise DecodeError(f"Unexpected flow object: {e}") from e

    return FlowRecord(
        flow_status=api_flow.status,
        first_detected=api_flow.start_time,
        last_detected=api_flow.end_time,
        source_ip=extract_ip(api_flow.src),
        dest_ip=extract_ip(api_flow.dst),
        dest_port=api_flow.dst_port,
        protocol=api_flow.protocol,
        byte_count=api_flow.bytes,
    )


def encode_row(record: FlowRecord) -> list[str]:
    """Tabular form of a record, in fixed column order."""
    return list(record)


def decode_row(row: list[str]) -> FlowRecord:
    """Parse a full 8-column CSV row back into a FlowRecord."""
    if len(row) != len(FLOW_HEADER):
        raise DecodeError(f"Expected {len(FLOW_HEADER)} columns, got {len(row)}")
    return FlowRecord(*row)


class FlowCsvWriter:
    """
    Writes FlowRecords to a CSV file.

    With write_header the file is truncated and the header emitted; otherwise
    rows are appended and no header is written. The caller owns that choice.
    """

    def __init__(self, path: str, write_header: bool):
        self.path = path
        self.write_header = write_header
        self._file: Optional[TextIO] = None
        self._writer: Any = None
        self.rows_written = 0

    def __enter__(self) -> "FlowCsvWriter":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def open(self) -> None:
        mode = "w" if self.write_header else "a"
        ensure_parent_dir(self.path)
        try:
            self._file = open(self.path, mode, newline="")
        except OSError as e:
            raise FatalIOError(f"Error creating/opening file {self.path}: {e}")

        self._writer = csv.writer(self._file)
        if self.write_header:
            self._writer.writerow(FLOW_HEADER)

    def write_records(self, records: list[FlowRecord]) -> int:
        for record in records:
            self._writer.writerow(encode_row(record))
        self.rows_written += len(records)
        return len(records)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def write_csv(path: str, records: list[FlowRecord], append: bool) -> int:
    """Write records to path; header only when not appending."""
    with FlowCsvWriter(path, write_header=not append) as writer:
        return writer.write_records(records)


class FlowCsvReader:
    """Reads a flow CSV file: header first, then raw rows."""

    def __init__(self, path: str):
        self.path = path
        self.header: list[str] = []
        self._file: Optional[TextIO] = None
        self._reader: Any = None

    def __enter__(self) -> "FlowCsvReader":
        try:
            self._file = open(self.path, "r", newline="")
        except OSError as e:
            raise FatalIOError(f"Error opening input file {self.path}: {e}")

        self._reader = csv.reader(self._file)
        try:
            self.header = next(self._reader)
        except StopIteration:
            self.close()
            raise FatalIOError(f"Error reading CSV header: {self.path} is empty")
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __iter__(self) -> Iterator[list[str]]:
        """Yield rows; a row the csv module cannot parse is logged and dropped."""
        while True:
            try:
                yield next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                logger.warning(f"Error reading CSV record: {e}")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def read_rows(path: str) -> Iterator[list[str]]:
    """Yield every row of a flow CSV file after the header."""
    with FlowCsvReader(path) as reader:
        yield from reader
