"""UK property listing ingestion and caching service."""

__version__ = "0.1.0"
