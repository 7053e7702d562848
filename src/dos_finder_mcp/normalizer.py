"""
Turn Apache-style access log files into a stream of Events.

Only a few hard-coded layouts are understood. Any line that can't be
parsed, or whose request matches an ignore pattern, is dropped as if it
wasn't there.
"""

import gzip
import logging
import re
import zlib
from datetime import datetime
from typing import Iterable, Iterator, Optional

from .config import SimulationConfig
from .errors import FatalInputError
from .models import Event

logger = logging.getLogger(__name__)

# host id user [date] "request" status rest
_TAIL = (
    r'(?P<ident>\S+) (?P<user>\S+) '
    r'\[(?P<timestamp>.*?)\] "(?P<request>.*?)" (?P<status>\S+) (?P<rest>.*)$'
)

LOG_PATTERNS = {
    # Apache2 'common' or 'combined'
    0: re.compile(r'^(?P<ip>\S+) ' + _TAIL),
    # Apache2 'vhost_combined': vhost:port first
    1: re.compile(r'^(?P<vhost>\S+) (?P<ip>\S+) ' + _TAIL),
    # 'combined' with domain and full domain after the host (seen at 34SP)
    2: re.compile(r'^(?P<ip>\S+) (?P<domain>\S+) (?P<fulldomain>\S+) ' + _TAIL),
}

REQUEST_PATTERN = re.compile(r'^[A-Z]+ ')

DATE_FORMAT = '%d/%b/%Y:%H:%M:%S %z'


def parse_log_line(line: str, log_format: int = 0) -> Optional[dict]:
    """Parse a single log line. Returns None if the layout doesn't match."""
    # Protection against malformed bot junk
    line = line.rstrip('\r\n').replace('\\"', '&quot;')
    match = LOG_PATTERNS[log_format].match(line)
    if match:
        return match.groupdict()
    return None


def parse_timestamp(value: str) -> Optional[int]:
    """Epoch seconds for a date like "07/Jun/2024:00:36:26 +0000"."""
    try:
        return int(datetime.strptime(value, DATE_FORMAT).timestamp())
    except ValueError:
        return None


def normalize_url(url: str, include_query: bool = False) -> str:
    if not include_query:
        url = url.split('?', 1)[0]
    # Strip trailing / unless the path is "/"
    if len(url) > 1 and url.endswith('/'):
        url = url[:-1]
    return url


class EventNormalizer:
    """Stateful line -> Event converter for one simulation run."""

    def __init__(self, config: SimulationConfig):
        self.log_format = config.log_format
        self.include_query = config.include_query
        self.ignore = [re.compile(p) for p in config.ignore_patterns]
        self.lines_read = 0
        self.events = 0
        self.skipped = 0

    def normalize(self, line: str, source_label: str) -> Optional[Event]:
        self.lines_read += 1
        event = self._normalize(line, source_label)
        if event is None:
            self.skipped += 1
        else:
            self.events += 1
        return event

    def _normalize(self, line: str, source_label: str) -> Optional[Event]:
        parsed = parse_log_line(line, self.log_format)
        if not parsed:
            return None
        request = parsed['request']
        if not REQUEST_PATTERN.match(request):
            return None
        if any(pattern.search(request) for pattern in self.ignore):
            return None

        parts = request.split(' ')
        if len(parts) < 2 or not parts[1]:
            return None
        timestamp = parse_timestamp(parsed['timestamp'])
        if timestamp is None:
            logger.debug("Unparseable date %r in %s", parsed['timestamp'], source_label)
            return None

        return Event(
            timestamp=timestamp,
            actor_id=parsed['ip'],
            resource_key=normalize_url(parts[1], self.include_query),
            source_label=source_label,
        )

    def read_file(self, log_path: str) -> Iterator[Event]:
        """Events from one file, gzipped when the name ends in .gz."""
        logger.info("Analysing file: %s...", log_path,
                    extra={"event": "file_start", "log_file": log_path})
        try:
            if log_path.lower().endswith('.gz'):
                handle = gzip.open(log_path, 'rt', errors='ignore')
            else:
                handle = open(log_path, 'r', errors='ignore')
        except OSError as e:
            raise FatalInputError(f"cannot open file {log_path}: {e}") from e

        with handle:
            try:
                for line in handle:
                    event = self.normalize(line, log_path)
                    if event is not None:
                        yield event
            except (OSError, EOFError, zlib.error) as e:
                raise FatalInputError(f"cannot read file {log_path}: {e}") from e

    def read_files(self, log_paths: Iterable[str]) -> Iterator[Event]:
        """Events from several files, which must be given oldest first."""
        for log_path in log_paths:
            yield from self.read_file(log_path)

    def stats(self) -> dict:
        return {
            "lines_read": self.lines_read,
            "events": self.events,
            "lines_skipped": self.skipped,
        }
