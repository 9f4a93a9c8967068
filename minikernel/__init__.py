"""Configuration, plugin discovery, dependency ordering, messaging and SQLite storage for a plugin host."""

__version__ = "0.1.0"