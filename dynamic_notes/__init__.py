"""Rule-driven account note generation for spreadsheet workbooks."""

__version__ = "0.1.0"
