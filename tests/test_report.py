"""Tests for report building and text rendering."""

import sys
sys.path.insert(0, str(__file__).replace("/tests/test_report.py", "/src"))

from dos_finder_mcp.config import SimulationConfig
from dos_finder_mcp.detector import DosSimulation
from dos_finder_mcp.models import CountingMode, Event
from dos_finder_mcp.report import build_report, describe_rule, latest_rows, render_text


def burst(actor, start, count, url="/x", source="access.log"):
    return [Event(start + i, actor, url, source) for i in range(count)]


def simulate(events, **kwargs):
    config = SimulationConfig(page_threshold=3, site_threshold=5, **kwargs)
    return DosSimulation(config).run(sorted(events, key=lambda e: e.timestamp))


class TestBuildReport:
    """Tests for the JSON-ready report."""

    def test_rows_sorted_by_last_trip(self):
        """Test actors are listed oldest last trip first."""
        events = burst("b", 0, 3) + burst("a", 100, 3) + burst("c", 50, 3)
        report = build_report(simulate(events))

        assert [row["actor"] for row in report["page"]["actors"]] == ["b", "c", "a"]
        assert report["page"]["actors_flagged"] == 3

    def test_cross_category_flag(self):
        """Test actors tripping both categories are flagged."""
        events = burst("both", 0, 5) + burst("page-only", 100, 3)
        report = build_report(simulate(events))

        rows = {row["actor"]: row for row in report["page"]["actors"]}
        assert rows["both"]["also_in_other_category"] is True
        assert rows["page-only"]["also_in_other_category"] is False
        assert report["site"]["actors"][0]["also_in_other_category"] is True

    def test_row_contents(self):
        """Test each row carries the aggregate fields."""
        report = build_report(simulate(burst("a", 0, 4, source="old.log")))
        row = report["page"]["actors"][0]

        assert row["last_trip_time"] == 3
        assert row["last_trip_source"] == "old.log"
        assert row["high_score"] == {"count": 4, "duration": 4}
        assert row["recurrence_count"] == 0
        assert row["last_trip_utc"] == "1970-01-01T00:00:03+00:00"

    def test_top_n_keeps_most_recent(self):
        """Test top_n keeps the most recently tripped actors."""
        events = burst("b", 0, 3) + burst("a", 100, 3)
        report = build_report(simulate(events), top_n=1)

        assert [row["actor"] for row in report["page"]["actors"]] == ["a"]
        assert report["page"]["actors_flagged"] == 2

    def test_latest_rows_bounds(self):
        """Test zero keeps nothing and None keeps everything."""
        rows = [{"actor": "a"}, {"actor": "b"}, {"actor": "c"}]

        assert latest_rows(rows, None) == rows
        assert latest_rows(rows, 0) == []
        assert latest_rows(rows, 2) == rows[1:]
        assert latest_rows(rows, 10) == rows

        report = build_report(simulate(burst("a", 0, 3)), top_n=0)
        assert report["page"]["actors"] == []
        assert report["page"]["actors_flagged"] == 1

    def test_rules_describe_mode(self):
        """Test rule descriptions depend on the counting mode."""
        assert "between each other" in describe_rule(12, 3, False, "requests")
        assert "within a window of 3s" in describe_rule(12, 3, True, "requests")

        report = build_report(simulate([], mode=CountingMode.WINDOW))
        assert report["mode"] == "window"
        assert all("window" in rule for rule in report["rules"])


class TestRenderText:
    """Tests for the plain text layout."""

    def test_render_empty(self):
        """Test no findings gives an empty report."""
        assert render_text(build_report(simulate([]))) == ""

    def test_render_lines(self):
        """Test the classic text layout."""
        events = burst("10.0.0.1", 0, 5)
        events += burst("10.0.0.1", 60, 3, source="new.log")
        text = render_text(build_report(simulate(events)))

        assert "10.0.0.1 last reached Page threshold at Thu Jan  1 00:01:02 1970  in log file new.log" in text
        assert "    It scored a maximum of 5 requests within 5s" in text
        assert "    It came back 1 times." in text
        assert "    It also scored in the Site category, see below." in text
        assert "    It also scored in the Page category, see above." in text
        assert "\n\n10.0.0.1 last reached Site threshold" in text

    def test_no_recurrence_line_when_zero(self):
        """Test the recurrence line is left out when the actor never came back."""
        text = render_text(build_report(simulate(burst("a", 0, 3))))

        assert "came back" not in text
        assert "also scored" not in text

    def test_verbose_header(self):
        """Test verbose mode prints statistics and rules first."""
        report = build_report(simulate([]))
        report["normalizer"] = {"lines_read": 42}
        report["elapsed_seconds"] = 0.5
        text = render_text(report, verbose=True)

        assert text.startswith("Analysed a total of 42 lines in 0.5 seconds.")
        assert "Detecting 3 same-URL requests or more" in text
