"""Bulk domain analysis and qualification controller."""

__version__ = "0.1.0"
