"""
Per-key rate state and its garbage collector.

Two counting modes are supported:

* DECAY mirrors classic mod_evasive. A single timer is kept per key and it
  restarts on EVERY request, whether or not the request fell inside the
  interval. The hit count only resets when two consecutive requests are at
  least `interval` seconds apart. With an interval of 2s and a threshold of
  10, ten requests 1.9s apart (over 17s in total) still trip the detector.
* WINDOW keeps every timestamp that is less than `interval` seconds older
  than the newest one, which is how most people expect mod_evasive to work.

Timestamps have one-second granularity and must arrive in non-decreasing
order. Nothing here checks that; see `DosSimulation`.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator

from .models import CounterState, CountingMode, KeyEntry, WindowState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateUpdate:
    entry_added: bool
    hit_count: int
    duration: int


class RateStateStore:
    """Mapping of key -> KeyEntry for one detection category."""

    def __init__(self, interval: int, mode: CountingMode = CountingMode.DECAY):
        self.interval = interval
        self.mode = mode
        self._entries: Dict[str, KeyEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, key: str):
        return self._entries.get(key)

    def update(self, key: str, timestamp: int) -> StateUpdate:
        """Record a request for `key` at `timestamp` and return the new counts."""
        entry = self._entries.get(key)
        if entry is None:
            if self.mode is CountingMode.WINDOW:
                entry = WindowState()
                entry.timestamps.append(timestamp)
            else:
                entry = CounterState(window_start=timestamp, hit_count=1, last_seen=timestamp)
            self._entries[key] = entry
            return StateUpdate(True, entry.hit_count, entry.duration)

        if self.mode is CountingMode.WINDOW:
            self._slide(entry, timestamp)
        else:
            self._decay(entry, timestamp)
        return StateUpdate(False, entry.hit_count, entry.duration)

    def _decay(self, entry: CounterState, timestamp: int) -> None:
        if timestamp - entry.last_seen < self.interval:
            entry.hit_count += 1
        else:
            entry.window_start = timestamp
            entry.hit_count = 1
        # The timer renews even when the count was reset
        entry.last_seen = timestamp

    def _slide(self, entry: WindowState, timestamp: int) -> None:
        stamps = entry.timestamps
        while stamps and timestamp - stamps[0] >= self.interval:
            stamps.popleft()
        stamps.append(timestamp)

    def expired_keys(self, expire_stamp: int) -> list:
        return [key for key, entry in self._entries.items()
                if entry.last_timestamp <= expire_stamp]

    def evict(self, keys) -> None:
        for key in keys:
            del self._entries[key]


class GarbageCollector:
    """
    Keeps a RateStateStore within bounds by dropping idle keys.

    Scanning is expensive, so nothing happens while the store holds at most
    `scan_size` keys, and above that a sweep only runs on every
    `prune_period`-th new key. A sweep drops every key whose newest timestamp
    is at least one interval older than the request that triggered it. The
    store's single interval is used for all keys.
    """

    def __init__(self, scan_size: int = 160, prune_period: int = 10):
        self.scan_size = scan_size
        self.prune_period = prune_period
        self.insertions = 0
        self.sweeps = 0
        self.evicted = 0

    def collect(self, store: RateStateStore, update: StateUpdate, timestamp: int) -> int:
        """Run after each store update. Returns the number of evicted keys."""
        if len(store) <= self.scan_size:
            return 0
        if not update.entry_added:
            return 0
        self.insertions += 1
        if self.insertions % self.prune_period:
            return 0

        # Collect first, delete afterwards: never mutate while iterating
        condemned = store.expired_keys(timestamp - store.interval)
        store.evict(condemned)
        self.sweeps += 1
        self.evicted += len(condemned)
        logger.debug(
            "Swept %d idle keys, %d left",
            len(condemned), len(store),
            extra={"event": "gc_sweep", "evicted": len(condemned)},
        )
        return len(condemned)
