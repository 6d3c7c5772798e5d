"""Email ingestion module."""

from .base import UnreadMessage
from .gmail import GmailAttachmentFetcher, GmailSource, match_attachment, match_definition

__all__ = [
    "GmailAttachmentFetcher",
    "GmailSource",
    "UnreadMessage",
    "match_attachment",
    "match_definition",
]
