"""SearchSync — Keep external search indexes in sync with a canonical data source."""

__version__ = "0.1.0"
