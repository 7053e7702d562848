"""
Simulation parameters.

Defaults follow mod_evasive's Page/Site settings loosened to values that
don't punish real visitors who double-click or cause a short burst. Every
default can be overridden through a DOS_FINDER_* environment variable.
"""

import os
import re
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from .errors import ConfigurationError
from .models import CountingMode

LOG_FORMATS = (0, 1, 2)


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_patterns(value: Optional[str]) -> Tuple[str, ...]:
    # One regex per line
    if not value:
        return ()
    return tuple(item for item in value.splitlines() if item.strip())


@dataclass(frozen=True)
class SimulationConfig:
    # Same actor, same URL (DOSPageInterval / DOSPageCount)
    page_interval: int = 3
    page_threshold: int = 12
    # Same actor, any URL (DOSSiteInterval / DOSSiteCount)
    site_interval: int = 2
    site_threshold: int = 240
    mode: CountingMode = CountingMode.DECAY
    # Store size above which pruning starts, and how many new keys between sweeps
    scan_size: int = 160
    prune_period: int = 10
    log_format: int = 0
    include_query: bool = False
    ignore_patterns: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def windowed(self) -> bool:
        return self.mode is CountingMode.WINDOW

    def with_overrides(self, **changes) -> "SimulationConfig":
        """Copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> "SimulationConfig":
        """Raise ConfigurationError on values the simulation can't work with."""
        for name in ("page_interval", "page_threshold", "site_interval",
                     "site_threshold", "scan_size", "prune_period"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a strictly positive integer, got {value!r}")
        if not isinstance(self.mode, CountingMode):
            raise ConfigurationError(f"Unknown counting mode: {self.mode!r}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"log_format must be one of {', '.join(map(str, LOG_FORMATS))}, got {self.log_format!r}"
            )
        for pattern in self.ignore_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid ignore pattern {pattern!r}: {e}") from e
        return self


def load_config() -> SimulationConfig:
    """Build the default configuration, honouring environment overrides."""
    defaults = SimulationConfig()
    return SimulationConfig(
        page_interval=_as_int(os.getenv("DOS_FINDER_PAGE_INTERVAL"), defaults.page_interval),
        page_threshold=_as_int(os.getenv("DOS_FINDER_PAGE_COUNT"), defaults.page_threshold),
        site_interval=_as_int(os.getenv("DOS_FINDER_SITE_INTERVAL"), defaults.site_interval),
        site_threshold=_as_int(os.getenv("DOS_FINDER_SITE_COUNT"), defaults.site_threshold),
        mode=CountingMode.WINDOW if _as_bool(os.getenv("DOS_FINDER_WINDOWED"), False) else CountingMode.DECAY,
        scan_size=_as_int(os.getenv("DOS_FINDER_SCAN_SIZE"), defaults.scan_size),
        prune_period=_as_int(os.getenv("DOS_FINDER_PRUNE_PERIOD"), defaults.prune_period),
        log_format=_as_int(os.getenv("DOS_FINDER_LOG_FORMAT"), defaults.log_format),
        include_query=_as_bool(os.getenv("DOS_FINDER_INCLUDE_QUERY"), defaults.include_query),
        ignore_patterns=_as_patterns(os.getenv("DOS_FINDER_IGNORE")),
    )


LOG_LEVEL = os.getenv("DOS_FINDER_LOG_LEVEL", "WARNING").strip().upper()
LOG_JSON = _as_bool(os.getenv("DOS_FINDER_LOG_JSON"), False)
