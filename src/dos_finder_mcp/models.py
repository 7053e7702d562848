"""
Data types shared by the counting core, the normalizer and the report.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class CountingMode(str, Enum):
    """How hits are counted for a key."""

    # Renewing single timer, like classic mod_evasive
    DECAY = "decay"
    # Timestamps still within the interval of the newest one
    WINDOW = "window"


class Category(str, Enum):
    PAGE = "page"
    SITE = "site"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class Event:
    """A single normalized request."""

    timestamp: int
    actor_id: str
    resource_key: str
    source_label: str


@dataclass
class CounterState:
    """Decay mode entry. `hit_count` is never below 1."""

    window_start: int
    hit_count: int
    last_seen: int

    @property
    def last_timestamp(self) -> int:
        return self.last_seen

    @property
    def duration(self) -> int:
        # One-second log granularity: a lone request still spans a second, so a
        # key's first request reports 1 here, not 0
        return 1 + self.last_seen - self.window_start


@dataclass
class WindowState:
    """Sliding window entry: ascending timestamps, duplicates kept."""

    timestamps: deque = field(default_factory=deque)

    @property
    def last_timestamp(self) -> int:
        return self.timestamps[-1]

    @property
    def hit_count(self) -> int:
        return len(self.timestamps)

    @property
    def duration(self) -> int:
        return 1 + self.timestamps[-1] - self.timestamps[0]


KeyEntry = Union[CounterState, WindowState]


@dataclass(frozen=True)
class HighScore:
    count: int
    duration: int


@dataclass
class ActorAggregate:
    """Everything remembered about one actor that tripped a category."""

    last_trip_time: int
    last_trip_source: str
    high_score: Optional[HighScore] = None
    recurrence_count: int = 0

    def to_dict(self) -> dict:
        return {
            "last_trip_time": self.last_trip_time,
            "last_trip_source": self.last_trip_source,
            "high_score": {
                "count": self.high_score.count,
                "duration": self.high_score.duration,
            } if self.high_score else None,
            "recurrence_count": self.recurrence_count,
        }
