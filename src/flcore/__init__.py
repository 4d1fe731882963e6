"""Access control, query filtering and service objects for SQLAlchemy models."""

__version__ = "0.1.0"
