"""Teacher and content-creator portal backend."""

__version__ = "0.1.0"
