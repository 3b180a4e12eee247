"""
Pytest configuration and fixtures for CloudSecure Flows tests.
"""

import csv
import json
from pathlib import Path

import pytest

from cloudsecure_flows.config import FLOW_HEADER
from cloudsecure_flows.logging_utils import reset_package_logging


SAMPLE_ROWS = [
    ["ALLOWED", "2024-05-01T23:10:00Z", "2024-05-01T23:11:00Z", "10.0.0.5", "8.8.8.8", "443", "tcp", "100"],
    ["ALLOWED", "2024-05-01T22:00:00Z", "2024-05-01T22:05:00Z", "10.1.2.3", "93.184.216.34", "80", "tcp", "2048"],
    ["DENIED", "2024-05-01T21:00:00Z", "2024-05-01T21:01:00Z", "10.0.0.5", "1.1.1.1", "53", "udp", "512"],
    ["ALLOWED", "2024-05-01T20:00:00Z", "2024-05-01T20:01:00Z", "192.168.1.10", "10.0.0.7", "22", "tcp", "4096"],
]


def write_flow_csv(path: Path, rows: list[list[str]], header=FLOW_HEADER) -> Path:
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


def read_csv(path: Path) -> list[list[str]]:
    with open(path, newline="") as f:
        return list(csv.reader(f))


@pytest.fixture
def sample_rows():
    """Sample flow rows in on-disk column order."""
    return [list(row) for row in SAMPLE_ROWS]


@pytest.fixture
def flow_csv(tmp_path, sample_rows):
    """Flow CSV file with a header and the sample rows."""
    return write_flow_csv(tmp_path / "20240501.csv", sample_rows)


@pytest.fixture
def ip_lists(tmp_path):
    """Directory with two IP list files."""
    (tmp_path / "internal.txt").write_text("10.0.0.0/8\n192.168.1.10\n")
    (tmp_path / "dns.txt").write_text("8.8.8.0/24\n1.1.1.1\n")
    return tmp_path


@pytest.fixture
def api_flow():
    """One flow object as returned by the flow API."""
    return {
        "status": "ALLOWED",
        "start_time": "2024-05-01T23:10:00Z",
        "end_time": "2024-05-01T23:11:00Z",
        "src": {"ip_address": "10.0.0.5", "workload": "web-1"},
        "dst": {"ip_address": "8.8.8.8"},
        "dst_port": 443,
        "protocol": "tcp",
        "bytes": 100,
    }


@pytest.fixture
def preset_file(tmp_path):
    """Preset store file in the on-disk format written by the filter tools."""
    path = tmp_path / "presets.json"
    path.write_text(
        json.dumps(
            [
                {
                    "name": "internal-to-dns",
                    "conditions": [
                        {"Field": "sourceIP", "Operator": "==", "ListFiles": ["internal.txt"]},
                        {"Field": "destIP", "Operator": "==", "ListFiles": ["dns.txt"]},
                    ],
                    "flow_status": "ALLOWED",
                },
                {
                    "name": "outbound-internet",
                    "conditions": [
                        {"Field": "destIP", "Operator": "==", "ListFiles": ["Internet"]},
                    ],
                    "flow_status": "ALLOWED",
                },
            ],
            indent=2,
        )
    )
    return path


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point the log directory at a temporary home with fresh handlers."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    reset_package_logging()
    yield home
    reset_package_logging()
