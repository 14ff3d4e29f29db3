"""Realtime conversation synchronization and fan-out engine."""

__version__ = "1.0.0"
