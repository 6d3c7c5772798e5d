"""Shared types for email ingestion."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UnreadMessage:
    """Unread mailbox message, addressed by its IMAP UID in the selected folder."""

    uid: int
    raw: bytes
