"""
Client for the CloudSecure flow API.
"""

import base64
import logging
import threading
from typing import Any, Optional

import requests

from .codec import FlowRecord, decode, parse_response
from .config import (
    CloudSecureCredentials,
    DefaultConfiguration,
    UpstreamApi,
    resolve_base_url,
)
from .errors import RetryableTransportError
from .time_utils import TimeSegment

logger = logging.getLogger(__name__)


class FlowApiClient:
    """Issues one flow report request per time segment."""

    def __init__(
        self,
        credentials: CloudSecureCredentials,
        base_url: Optional[str] = None,
        file_name: str = "flows.csv",
        max_results: int = DefaultConfiguration.MAX_RESULTS,
        timeout: Optional[float] = DefaultConfiguration.REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.credentials = credentials
        self.url = resolve_base_url(base_url) + UpstreamApi.FLOWS_PATH
        self.file_name = file_name
        self.max_results = max_results
        self.timeout = timeout
        # One session per worker thread unless a session is injected
        self._shared_session = session
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session

        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def _headers(self) -> dict[str, str]:
        token = base64.b64encode(
            f"{self.credentials.api_key}:{self.credentials.api_secret}".encode()
        ).decode()
        return {
            "accept": "*/*",
            "content-type": "application/json",
            "Authorization": f"Basic {token}",
            "x-tenant-id": self.credentials.tenant_id,
        }

    def _payload(self, segment: TimeSegment) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "fileFormat": UpstreamApi.FILE_FORMAT,
            "period": {
                "start_time": segment.start_rfc3339,
                "end_time": segment.end_rfc3339,
            },
            "max_results": self.max_results,
        }

    def fetch_segment(self, segment: TimeSegment) -> list[FlowRecord]:
        """Fetch every flow in one segment."""
        try:
            response = self.session.post(
                self.url,
                json=self._payload(segment),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RetryableTransportError(f"error making request: {e}") from e

        if response.status_code != 200:
            raise RetryableTransportError(
                f"request failed with status code: {response.status_code}",
                status_code=response.status_code,
            )

        # A body that is not JSON at all is treated as a truncated transfer;
        # JSON with the wrong shape fails fast in parse_response
        try:
            body = response.json()
        except ValueError as e:
            raise RetryableTransportError(f"error unmarshaling response: {e}") from e

        report = parse_response(body)
        logger.debug(f"Segment {segment}: {len(report.flows)} flows")
        return [decode(flow) for flow in report.flows]

    def close(self) -> None:
        if self._shared_session is not None:
            self._shared_session.close()
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
