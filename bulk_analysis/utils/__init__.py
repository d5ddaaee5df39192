"""Utility modules for the bulk-analysis controller."""

from .messages import StatusMessage, MessageKind
from .csv_export import export_csv, export_filename, write_csv
from .domains import clean_domain, parse_domain_text, parse_keywords

__all__ = [
    "StatusMessage",
    "MessageKind",
    "export_csv",
    "export_filename",
    "write_csv",
    "clean_domain",
    "parse_domain_text",
    "parse_keywords",
]
