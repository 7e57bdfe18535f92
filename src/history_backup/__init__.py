"""Merge browser history from Safari, Firefox and Chrome into one SQLite database."""

__version__ = "0.1.0"
