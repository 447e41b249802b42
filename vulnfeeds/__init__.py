"""Parsers that load public vulnerability feeds into an in-memory keyed vulnerability store."""

__version__ = "0.1.0"