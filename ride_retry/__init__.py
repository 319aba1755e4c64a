"""Retry queue and trigger scheduling for ride calendar synchronization."""

__version__ = "0.1.0"
