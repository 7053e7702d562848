#!/usr/bin/env python3
"""
DoS Finder MCP Server

Replays web server access logs through mod_evasive style rate counters to
help choose DOSPageCount/DOSPageInterval and DOSSiteCount/DOSSiteInterval
(or fail2ban) parameters that catch bad bots without banning real visitors.
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import LOG_JSON, SimulationConfig, load_config
from .detector import CategoryDetector, DosSimulation
from .errors import DosFinderError
from .logging_utils import configure_logging
from .models import Category, CountingMode, Event
from .normalizer import EventNormalizer
from .report import build_report, latest_rows

logger = logging.getLogger(__name__)

mcp = FastMCP("dos-finder")


def _error(message: str) -> str:
    return json.dumps({"success": False, "error": message})


def _check_paths(log_paths: list) -> Optional[str]:
    if not log_paths:
        return "At least one log file is required"
    for log_path in log_paths:
        if not Path(log_path).exists():
            return f"Log file not found: {log_path}"
    return None


def _config_for(
    page_interval: Optional[int] = None,
    page_count: Optional[int] = None,
    site_interval: Optional[int] = None,
    site_count: Optional[int] = None,
    windowed: Optional[bool] = None,
    include_query: Optional[bool] = None,
    log_format: Optional[int] = None,
) -> SimulationConfig:
    mode = None
    if windowed is not None:
        mode = CountingMode.WINDOW if windowed else CountingMode.DECAY
    return load_config().with_overrides(
        page_interval=page_interval,
        page_threshold=page_count,
        site_interval=site_interval,
        site_threshold=site_count,
        mode=mode,
        include_query=include_query,
        log_format=log_format,
    ).validate()


def run_simulation(log_paths: list, config: SimulationConfig) -> dict:
    """Replay the given files (oldest first) and return the full report."""
    start = time.monotonic()
    normalizer = EventNormalizer(config)
    simulation = DosSimulation(config).run(normalizer.read_files(log_paths))
    elapsed = round(time.monotonic() - start, 3)

    report = build_report(simulation)
    report["normalizer"] = normalizer.stats()
    report["elapsed_seconds"] = elapsed
    logger.info("Analysed a total of %d lines in %s seconds", normalizer.lines_read, elapsed)
    return report


@mcp.tool()
async def find_dos_events(
    log_paths: list[str],
    page_interval: Optional[int] = None,
    page_count: Optional[int] = None,
    site_interval: Optional[int] = None,
    site_count: Optional[int] = None,
    windowed: Optional[bool] = None,
    include_query: Optional[bool] = None,
    log_format: Optional[int] = None,
    top_n: int = 50
) -> str:
    """
    Find actors that would trip DoS detector thresholds in access logs.

    Args:
        log_paths: Access log files (plain or .gz), oldest first
        page_interval: Seconds for same-IP same-URL counting (default 3)
        page_count: Same-URL requests that count as a hit (default 12)
        site_interval: Seconds for same-IP any-URL counting (default 2)
        site_count: Requests on any URL that count as a hit (default 240)
        windowed: Use a true sliding window instead of mod_evasive's renewing timer
            (default from DOS_FINDER_WINDOWED, else off)
        include_query: Keep query strings in URLs for same-URL matches
        log_format: 0 combined/common, 1 vhost_combined, 2 combined with 2 extra fields
        top_n: Number of most recently tripped actors to return per category,
            0 for none

    Returns:
        JSON with flagged actors per category and run statistics
    """
    problem = _check_paths(log_paths)
    if problem:
        return _error(problem)
    if top_n < 0:
        return _error("top_n must not be negative")

    try:
        config = _config_for(page_interval, page_count, site_interval, site_count,
                             windowed, include_query, log_format)
        report = run_simulation(log_paths, config)
    except DosFinderError as e:
        return _error(str(e))

    for category in Category:
        report[category.value]["actors"] = latest_rows(report[category.value]["actors"], top_n)

    return json.dumps({"success": True, "log_files": log_paths, **report}, indent=2)


@mcp.tool()
async def simulate_key_timeline(
    timestamps: list[int],
    interval: int = 3,
    threshold: int = 12,
    windowed: bool = False
) -> str:
    """
    Show how a single IP/URL key is counted for a hand-made request sequence.

    Useful to see how mod_evasive's renewing timer differs from a sliding
    window: requests spaced just under the interval keep adding up forever
    in the default mode.

    Args:
        timestamps: Request times in seconds, non-decreasing
        interval: Counting interval in seconds
        threshold: Hit count that trips the detector
        windowed: Use a true sliding window

    Returns:
        JSON with hit count, duration and breach flag per request
    """
    if interval < 1 or threshold < 1:
        return _error("interval and threshold must be strictly positive")
    if any(later < earlier for earlier, later in zip(timestamps, timestamps[1:])):
        return _error("timestamps must be in non-decreasing order")

    mode = CountingMode.WINDOW if windowed else CountingMode.DECAY
    detector = CategoryDetector(Category.SITE, interval, threshold, mode)
    timeline = []
    for stamp in timestamps:
        breached = detector.observe(Event(stamp, "simulated", "/", "timeline"))
        entry = detector.store.get("simulated")
        timeline.append({
            "timestamp": stamp,
            "hit_count": entry.hit_count,
            "duration": entry.duration,
            "breach": breached,
        })

    aggregate = detector.aggregates.get("simulated")
    return json.dumps({
        "success": True,
        "mode": mode.value,
        "interval": interval,
        "threshold": threshold,
        "timeline": timeline,
        "summary": aggregate.to_dict() if aggregate else None,
    }, indent=2)


@mcp.tool()
async def compare_counting_modes(
    log_paths: list[str],
    page_interval: Optional[int] = None,
    page_count: Optional[int] = None,
    site_interval: Optional[int] = None,
    site_count: Optional[int] = None,
    include_query: Optional[bool] = None,
    log_format: Optional[int] = None
) -> str:
    """
    Run the same logs in renewing-timer and sliding-window mode.

    Args:
        log_paths: Access log files (plain or .gz), oldest first
        page_interval: Seconds for same-IP same-URL counting
        page_count: Same-URL requests that count as a hit
        site_interval: Seconds for same-IP any-URL counting
        site_count: Requests on any URL that count as a hit
        include_query: Keep query strings in URLs for same-URL matches
        log_format: 0 combined/common, 1 vhost_combined, 2 combined with 2 extra fields

    Returns:
        JSON with, per category, actors flagged by both modes or only one
    """
    problem = _check_paths(log_paths)
    if problem:
        return _error(problem)

    try:
        reports = {}
        for windowed in (False, True):
            config = _config_for(page_interval, page_count, site_interval, site_count,
                                 windowed, include_query, log_format)
            reports[config.mode] = run_simulation(log_paths, config)
    except DosFinderError as e:
        return _error(str(e))

    comparison = {}
    for category in Category:
        decay = {row["actor"] for row in reports[CountingMode.DECAY][category.value]["actors"]}
        window = {row["actor"] for row in reports[CountingMode.WINDOW][category.value]["actors"]}
        comparison[category.value] = {
            "both_modes": sorted(decay & window),
            "decay_only": sorted(decay - window),
            "window_only": sorted(window - decay),
        }

    return json.dumps({
        "success": True,
        "log_files": log_paths,
        "parameters": reports[CountingMode.DECAY]["parameters"],
        "comparison": comparison,
        "note": "decay_only actors trip mod_evasive's renewing timer without ever "
                "exceeding the count inside a true window"
    }, indent=2)


def main():
    """Run the DoS finder MCP server."""
    configure_logging(json_format=LOG_JSON)
    mcp.run()


if __name__ == "__main__":
    main()
