"""procwatch - process count health check."""

__version__ = "0.2.0"
