"""Summaries of a finished simulation, as JSON-ready dicts or plain text."""

import time
from datetime import datetime, timezone
from typing import Optional

from .detector import DosSimulation
from .models import Category


def _other(category: Category) -> Category:
    return Category.SITE if category is Category.PAGE else Category.PAGE


def category_rows(simulation: DosSimulation, category: Category) -> list:
    """Flagged actors of one category, oldest last trip first."""
    aggregates = simulation.detector(category).aggregates
    other = simulation.detector(_other(category)).aggregates
    rows = []
    for actor, aggregate in sorted(aggregates.items(), key=lambda x: (x[1].last_trip_time, x[0])):
        rows.append({
            "actor": actor,
            **aggregate.to_dict(),
            "last_trip_utc": datetime.fromtimestamp(aggregate.last_trip_time, timezone.utc).isoformat(),
            "also_in_other_category": actor in other,
        })
    return rows


def latest_rows(rows: list, top_n: Optional[int]) -> list:
    """The `top_n` most recently tripped rows; all of them when top_n is None."""
    if top_n is None:
        return rows
    return rows[-top_n:] if top_n > 0 else []


def describe_rule(count: int, interval: int, windowed: bool, what: str) -> str:
    if windowed:
        return f"Detecting {count} {what} or more within a window of {interval}s."
    return f"Detecting {count} {what} or more occurring with less than {interval}s between each other."


def build_report(simulation: DosSimulation, top_n: Optional[int] = None) -> dict:
    config = simulation.config
    report = {
        "mode": config.mode.value,
        "parameters": {
            "page_interval": config.page_interval,
            "page_count": config.page_threshold,
            "site_interval": config.site_interval,
            "site_count": config.site_threshold,
            "include_query": config.include_query,
            "log_format": config.log_format,
        },
        "rules": [
            describe_rule(config.page_threshold, config.page_interval, config.windowed, "same-URL requests"),
            describe_rule(config.site_threshold, config.site_interval, config.windowed, "requests"),
        ],
        "statistics": simulation.stats(),
    }
    for category in Category:
        rows = category_rows(simulation, category)
        report[category.value] = {
            "actors_flagged": len(rows),
            "actors": latest_rows(rows, top_n),
        }
    return report


def _gmtime(stamp: int) -> str:
    return time.asctime(time.gmtime(stamp))


def render_text(report: dict, verbose: bool = False) -> str:
    """Plain text report, one block of lines per flagged actor."""
    lines = []
    if verbose:
        normalizer = report.get("normalizer")
        if normalizer:
            elapsed = report.get("elapsed_seconds", 0)
            lines.append(f"Analysed a total of {normalizer['lines_read']} lines in {elapsed} seconds.")
        lines.extend(report["rules"])

    for category in Category:
        rows = report[category.value]["actors"]
        if category is Category.SITE and rows and report[Category.PAGE.value]["actors"]:
            lines.append("")
        other = _other(category)
        where = "above" if other is Category.PAGE else "below"
        for row in rows:
            high = row["high_score"]
            lines.append(
                f"{row['actor']} last reached {category.label} threshold at "
                f"{_gmtime(row['last_trip_time'])}  in log file {row['last_trip_source']}"
            )
            lines.append(f"    It scored a maximum of {high['count']} requests within {high['duration']}s")
            if row["recurrence_count"]:
                lines.append(f"    It came back {row['recurrence_count']} times.")
            if row["also_in_other_category"]:
                lines.append(f"    It also scored in the {other.label} category, see {where}.")
    return "\n".join(lines) + ("\n" if lines else "")
