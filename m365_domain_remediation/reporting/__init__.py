"""Reporting package — multi-format output of a remediation run."""

from .csv_export import export_csv
from .json_export import export_json
from .markdown_report import export_markdown
from .html_report import export_html

__all__ = [
    "export_csv",
    "export_json",
    "export_markdown",
    "export_html",
]
