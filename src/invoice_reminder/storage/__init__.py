"""Storage layer for database operations."""

from .database import DatabaseClient

__all__ = ["DatabaseClient"]
