"""
Threshold evaluation and per-actor aggregation.

A CategoryDetector owns everything for one category (page or site): its
rate state store, the store's garbage collector and the map of actors that
tripped the threshold. DosSimulation drives one detector per category.
"""

import logging
from typing import Dict, Iterable, Optional

from .config import SimulationConfig
from .models import ActorAggregate, Category, CountingMode, Event, HighScore
from .rate_state import GarbageCollector, RateStateStore

logger = logging.getLogger(__name__)


class CategoryDetector:
    def __init__(
        self,
        category: Category,
        interval: int,
        threshold: int,
        mode: CountingMode = CountingMode.DECAY,
        scan_size: int = 160,
        prune_period: int = 10,
    ):
        self.category = category
        self.interval = interval
        self.threshold = threshold
        self.store = RateStateStore(interval, mode)
        self.collector = GarbageCollector(scan_size, prune_period)
        self.aggregates: Dict[str, ActorAggregate] = {}
        self.events_observed = 0
        self.breaches = 0
        self.peak_store_size = 0

    def key_for(self, event: Event) -> str:
        if self.category is Category.PAGE:
            return f"{event.actor_id},{event.resource_key}"
        return event.actor_id

    def observe(self, event: Event) -> bool:
        """Feed one event through the store. Returns True on a breach."""
        self.events_observed += 1
        update = self.store.update(self.key_for(event), event.timestamp)
        self.peak_store_size = max(self.peak_store_size, len(self.store))

        # A threshold of 1 flags every single request; that is the user's call
        breached = update.hit_count >= self.threshold
        if breached:
            self.breaches += 1
            self._record_breach(event, update.hit_count, update.duration)

        self.collector.collect(self.store, update, event.timestamp)
        return breached

    def _record_breach(self, event: Event, hit_count: int, duration: int) -> None:
        aggregate = self.aggregates.get(event.actor_id)
        if aggregate is None:
            aggregate = ActorAggregate(event.timestamp, event.source_label)
            self.aggregates[event.actor_id] = aggregate
            logger.debug(
                "%s tripped %s threshold at %d",
                event.actor_id, self.category.value, event.timestamp,
                extra={"event": "first_breach", "category": self.category.value,
                       "actor": event.actor_id},
            )
        elif event.timestamp - aggregate.last_trip_time > self.interval:
            # Came back after cooling down
            aggregate.recurrence_count += 1

        aggregate.last_trip_time = event.timestamp
        aggregate.last_trip_source = event.source_label
        if aggregate.high_score is None or hit_count > aggregate.high_score.count:
            aggregate.high_score = HighScore(hit_count, duration)

    def stats(self) -> dict:
        return {
            "events_observed": self.events_observed,
            "breaches": self.breaches,
            "actors_flagged": len(self.aggregates),
            "store_size": len(self.store),
            "peak_store_size": self.peak_store_size,
            "gc_sweeps": self.collector.sweeps,
            "gc_evicted": self.collector.evicted,
        }


class DosSimulation:
    """
    Runs the page and site detectors side by side over one event stream.

    Events must be supplied in non-decreasing timestamp order, across all
    input files. Out-of-order events are still processed (counting results
    for them are undefined) but they are counted and logged.
    """

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.page = CategoryDetector(
            Category.PAGE, config.page_interval, config.page_threshold,
            config.mode, config.scan_size, config.prune_period,
        )
        self.site = CategoryDetector(
            Category.SITE, config.site_interval, config.site_threshold,
            config.mode, config.scan_size, config.prune_period,
        )
        self.last_timestamp: Optional[int] = None
        self.out_of_order = 0
        self._warned_sources = set()

    @property
    def detectors(self):
        return (self.page, self.site)

    def detector(self, category: Category) -> CategoryDetector:
        return self.page if category is Category.PAGE else self.site

    def feed(self, event: Event) -> None:
        if self.last_timestamp is not None and event.timestamp < self.last_timestamp:
            self.out_of_order += 1
            if event.source_label not in self._warned_sources:
                self._warned_sources.add(event.source_label)
                logger.warning(
                    "Timestamps go backwards in %s (%d < %d); give log files oldest first",
                    event.source_label, event.timestamp, self.last_timestamp,
                    extra={"event": "out_of_order", "log_file": event.source_label},
                )
        else:
            self.last_timestamp = event.timestamp

        self.page.observe(event)
        self.site.observe(event)

    def run(self, events: Iterable[Event]) -> "DosSimulation":
        for event in events:
            self.feed(event)
        if self.out_of_order:
            logger.warning("%d events were out of chronological order", self.out_of_order)
        return self

    def stats(self) -> dict:
        return {
            "out_of_order_events": self.out_of_order,
            "page": self.page.stats(),
            "site": self.site.stats(),
        }
