"""Bulk export service for TimeFly activity data."""

__version__ = "0.1.0"
