"""
Segmented retrieval of one day of flows into a single ordered CSV file.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, TypeVar

from .api_client import FlowApiClient
from .codec import FlowCsvWriter, FlowRecord, write_csv
from .config import CloudSecureCredentials, RetrievalConfig
from .errors import FatalIOError, RetryableTransportError, RetryExhaustedError
from .time_utils import TimeSegment, build_segments, format_target_date

logger = logging.getLogger(__name__)

T = TypeVar("T")

SegmentFetcher = Callable[[TimeSegment], list[FlowRecord]]


def with_retry(
    operation: Callable[[], T],
    max_attempts: int,
    backoff_step: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
) -> T:
    """
    Run operation up to max_attempts times.

    Attempt i (0-based) waits i * backoff_step seconds first, so the delays
    are 0, 2s, 4s, ... Only RetryableTransportError is retried; after the
    last attempt RetryExhaustedError is raised from the final error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    prefix = f"{label}: " if label else ""
    last_error: Optional[Exception] = None

    for attempt in range(max_attempts):
        if attempt > 0:
            wait_time = attempt * backoff_step
            logger.info(f"{prefix}Retry attempt {attempt} after {wait_time:g}s")
            sleep(wait_time)

        try:
            return operation()
        except RetryableTransportError as e:
            last_error = e
            logger.warning(f"{prefix}Attempt {attempt + 1} failed: {e}")

    assert last_error is not None
    raise RetryExhaustedError(max_attempts, last_error) from last_error


@dataclass
class SegmentResult:
    """Outcome of one segment, tagged with its position in output order."""

    index: int
    segment: TimeSegment
    records: list[FlowRecord] = field(default_factory=list)
    error: Optional[Exception] = None
    elapsed: float = 0.0


@dataclass
class RetrievalSummary:
    """What a retrieval run wrote."""

    output_file: str
    target_date: date
    segment_counts: list[int]

    @property
    def total_records(self) -> int:
        return sum(self.segment_counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_file": self.output_file,
            "target_date": format_target_date(self.target_date),
            "segments": len(self.segment_counts),
            "segment_counts": self.segment_counts,
            "records": self.total_records,
        }


class SegmentAssembler:
    """
    The only writer of the output file.

    Results arrive in any order; they are buffered until every lower index
    has been written, so the file always follows segment order. Index 0
    writes the header, every later index appends.
    """

    def __init__(self, output_path: str, total: int):
        self.output_path = output_path
        self.total = total
        self.segment_counts: list[int] = [0] * total
        self._pending: dict[int, list[FlowRecord]] = {}
        self._next_index = 0

    @property
    def complete(self) -> bool:
        return self._next_index == self.total

    def prepare(self) -> None:
        """Create the output file up front; raises FatalIOError if it cannot be."""
        with FlowCsvWriter(self.output_path, write_header=False):
            pass

    def accept(self, index: int, records: list[FlowRecord]) -> None:
        if not 0 <= index < self.total:
            raise IndexError(f"Segment index {index} out of range")
        if index < self._next_index or index in self._pending:
            raise ValueError(f"Segment {index} delivered twice")

        self._pending[index] = records
        while self._next_index in self._pending:
            self._flush(self._next_index, self._pending.pop(self._next_index))
            self._next_index += 1

    def _flush(self, index: int, records: list[FlowRecord]) -> None:
        write_csv(self.output_path, records, append=index > 0)
        self.segment_counts[index] = len(records)
        logger.info(
            f"Wrote segment {index + 1}/{self.total}: {len(records)} records"
        )


class SegmentedRetriever:
    """Fetches a day segment by segment and merges the results in order."""

    def __init__(
        self,
        fetch: SegmentFetcher,
        config: Optional[RetrievalConfig] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.fetch = fetch
        self.config = config or RetrievalConfig()
        self.config.validate()
        self.sleep = sleep or time.sleep

    def fetch_with_retry(self, segment: TimeSegment, label: str = "") -> list[FlowRecord]:
        return with_retry(
            lambda: self.fetch(segment),
            self.config.max_attempts,
            self.config.backoff_step,
            sleep=self.sleep,
            label=label,
        )

    def _run_segment(self, index: int, total: int, segment: TimeSegment) -> SegmentResult:
        label = f"Segment {index + 1}/{total}"
        logger.info(f"Started processing segment {index + 1}/{total} ({segment})")
        started = time.monotonic()
        result = SegmentResult(index=index, segment=segment)
        try:
            result.records = self.fetch_with_retry(segment, label)
        except Exception as e:
            # Reported to the orchestrator, which fails the run once all
            # workers have finished
            result.error = e
        result.elapsed = time.monotonic() - started
        logger.info(f"Segment {index + 1} processed in {result.elapsed:.2f}s")
        return result

    def retrieve(self, target_date: date, output_path: str) -> RetrievalSummary:
        """Export target_date to output_path, latest segment first."""
        segments = build_segments(target_date, self.config.segment_width)
        assembler = SegmentAssembler(output_path, len(segments))
        assembler.prepare()

        if self.config.max_workers == 1:
            self._retrieve_sequential(segments, assembler)
        else:
            self._retrieve_concurrent(segments, assembler)

        return RetrievalSummary(
            output_file=output_path,
            target_date=target_date,
            segment_counts=assembler.segment_counts,
        )

    def _retrieve_sequential(
        self, segments: list[TimeSegment], assembler: SegmentAssembler
    ) -> None:
        for index, segment in enumerate(segments):
            result = self._run_segment(index, len(segments), segment)
            if result.error is not None:
                raise result.error
            assembler.accept(index, result.records)

    def _retrieve_concurrent(
        self, segments: list[TimeSegment], assembler: SegmentAssembler
    ) -> None:
        failures: list[SegmentResult] = []

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [
                executor.submit(self._run_segment, index, len(segments), segment)
                for index, segment in enumerate(segments)
            ]
            # Only this thread touches the assembler
            for future in as_completed(futures):
                result = future.result()
                if result.error is not None:
                    logger.error(
                        f"Error processing segment {result.index + 1}: {result.error}"
                    )
                    failures.append(result)
                elif not failures:
                    try:
                        assembler.accept(result.index, result.records)
                    except FatalIOError:
                        executor.shutdown(wait=False, cancel_futures=True)
                        raise

        if failures:
            raise min(failures, key=lambda r: r.index).error  # type: ignore[misc]


def retrieve_day(
    credentials: CloudSecureCredentials,
    target_date: date,
    output_path: str,
    config: Optional[RetrievalConfig] = None,
    base_url: Optional[str] = None,
) -> RetrievalSummary:
    """Retrieve one day of flows from the CloudSecure API into output_path."""
    config = config or RetrievalConfig()
    client = FlowApiClient(
        credentials,
        base_url=base_url,
        file_name=os.path.basename(output_path),
        max_results=config.max_results,
    )
    try:
        retriever = SegmentedRetriever(client.fetch_segment, config)
        return retriever.retrieve(target_date, output_path)
    finally:
        client.close()
