"""Spreadsheet -> company registry bulk importer."""

__version__ = "0.1.0"
