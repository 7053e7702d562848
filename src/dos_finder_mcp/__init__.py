"""Replay web server logs through mod_evasive style DoS counters."""

__version__ = "0.1.0"
