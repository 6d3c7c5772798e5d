"""Email processing module."""

from .email_parser import EmailParser

__all__ = ["EmailParser"]
