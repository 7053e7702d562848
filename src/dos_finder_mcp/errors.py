"""Exceptions raised outside the counting core."""


class DosFinderError(Exception):
    """Base class for all dos-finder errors."""


class ConfigurationError(DosFinderError):
    """A parameter is out of range; raised before any input is read."""


class FatalInputError(DosFinderError):
    """A log file cannot be opened, read or decompressed."""
