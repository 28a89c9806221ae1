"""Parsers that turn local copies of public vulnerability feeds into a uniform in-memory advisory store."""

__version__ = "0.1.0"