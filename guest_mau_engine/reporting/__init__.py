"""Reporting package: console and file output of the estimate."""

from .console import print_summary, print_warnings
from .json_export import export_json
from .csv_export import export_csv
from .markdown_report import export_markdown, render_markdown

__all__ = [
    "print_summary",
    "print_warnings",
    "export_json",
    "export_csv",
    "export_markdown",
    "render_markdown",
]
