"""Pytest fixtures for dos-finder-mcp tests."""

import gzip
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

BASE_TIME = datetime(2024, 6, 7, 0, 0, 0, tzinfo=timezone.utc)
BASE_EPOCH = int(BASE_TIME.timestamp())


def format_line(ip: str, offset: int, url: str, log_format: int = 0, method: str = "GET") -> str:
    timestamp = (BASE_TIME + timedelta(seconds=offset)).strftime("%d/%b/%Y:%H:%M:%S +0000")
    tail = f'- - [{timestamp}] "{method} {url} HTTP/1.1" 200 1234 "-" "Mozilla/5.0"'
    if log_format == 1:
        return f"www.example.com:443 {ip} {tail}"
    if log_format == 2:
        return f"{ip} example.com www.example.com {tail}"
    return f"{ip} {tail}"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_log(temp_dir: Path):
    """Write (ip, offset_seconds, url) requests to a log file, optionally gzipped."""
    def _make(name: str, requests, log_format: int = 0) -> Path:
        log_path = temp_dir / name
        text = "\n".join(format_line(ip, offset, url, log_format) for ip, offset, url in requests) + "\n"
        if name.endswith(".gz"):
            with gzip.open(log_path, "wt") as f:
                f.write(text)
        else:
            log_path.write_text(text)
        return log_path
    return _make


@pytest.fixture
def sample_log_file(make_log) -> Path:
    """Normal traffic: 10 visitors, one request every 36 seconds overall."""
    return make_log("access.log", [
        (f"192.168.1.{(i % 10) + 1}", i * 36, f"/page{i % 5}.html")
        for i in range(100)
    ])


@pytest.fixture
def flood_attack_log(make_log) -> Path:
    """One IP hammering the same URL 4 times a second for 30s, plus normal traffic."""
    requests = [("10.0.0.100", i // 4, "/api/data") for i in range(120)]
    requests += [(f"192.168.1.{i % 10 + 1}", i * 6, "/index.html") for i in range(10)]
    requests.sort(key=lambda r: r[1])
    return make_log("flood.log", requests)


@pytest.fixture
def slow_crawler_log(make_log) -> Path:
    """A crawler spaced 2 seconds apart: trips a 3s renewing timer, never a 3s window."""
    return make_log("crawler.log", [("10.0.0.7", i * 2, "/feed") for i in range(20)])


@pytest.fixture
def query_string_log(make_log) -> Path:
    """Twelve quick requests to one page, each with a different query string."""
    return make_log("query.log", [("10.3.3.3", i, f"/product?id={i}") for i in range(12)])


@pytest.fixture
def empty_log_file(temp_dir: Path) -> Path:
    """Create an empty log file."""
    log_path = temp_dir / "empty.log"
    log_path.write_text("")
    return log_path


@pytest.fixture
def malformed_log_file(temp_dir: Path) -> Path:
    """Create a log file with malformed entries."""
    log_path = temp_dir / "malformed.log"
    lines = [
        "This is not a valid log line",
        "Neither is this one",
        "192.168.1.1 - - invalid timestamp format",
        "",
        '192.168.1.1 - - [99/Foo/2024:00:00:00 +0000] "GET / HTTP/1.1" 200 0',
        '192.168.1.1 - - [07/Jun/2024:00:00:00 +0000] "-" 408 0',
    ]
    log_path.write_text("\n".join(lines))
    return log_path
