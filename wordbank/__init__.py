"""Wordbank delivery scheduling and quota enforcement engine."""

__version__ = "0.1.0"
