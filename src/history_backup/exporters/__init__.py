"""Exporter implementations."""

from .base import Exporter
from .csv_exporter import CSV_HEADER, CsvExporter

__all__ = ["CSV_HEADER", "CsvExporter", "Exporter"]
