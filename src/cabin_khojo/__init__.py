"""Cabin Khojo: campus gate pass service."""

__version__ = "0.1.0"
