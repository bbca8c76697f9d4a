"""PDF rule checking service."""

__version__ = "0.1.0"
