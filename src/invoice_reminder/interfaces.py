"""Abstract collaborator interfaces consumed by the dispatch core."""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from .models import EmailAuthToken, Invoice, JobSchedule, User


class UserStore(ABC):
    """Read access to users and their nested records."""

    @abstractmethod
    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """Fetch a user with tokens, scan definitions and schedules.

        Args:
            user_id: User ID to fetch

        Returns:
            Optional[User]: User if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address, compared case-insensitively.

        Returns:
            Optional[User]: User if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_telegram_chat_id(self, user_id: UUID, chat_id: int) -> None:
        """Link a Telegram chat to a user."""
        pass


class InvoiceStore(ABC):
    """Write access to invoices."""

    @abstractmethod
    async def bulk_insert(self, invoices: list[Invoice]) -> int:
        """Insert a batch of invoices.

        Args:
            invoices: Invoices to insert

        Returns:
            int: Number of rows actually written; entries the store already
                held (same payment code) are skipped and not counted
        """
        pass


class AuthTokenStore(ABC):
    """Write access to mailbox OAuth2 tokens."""

    @abstractmethod
    async def update_email_auth_token(self, token: EmailAuthToken) -> EmailAuthToken:
        """Persist a refreshed token (access token, expiry, encrypted refresh token, nonce)."""
        pass

    @abstractmethod
    async def delete_email_auth_token(self, token_id: UUID) -> None:
        """Remove a token that can no longer be refreshed."""
        pass


class ScheduleStore(ABC):
    """CRUD for persisted job schedules."""

    @abstractmethod
    async def get_all_job_schedules(self) -> list[JobSchedule]:
        pass

    @abstractmethod
    async def get_job_schedule_by_id(self, schedule_id: UUID) -> Optional[JobSchedule]:
        pass

    @abstractmethod
    async def get_job_schedules_by_user_id(self, user_id: UUID) -> list[JobSchedule]:
        pass

    @abstractmethod
    async def add_job_schedule(self, schedule: JobSchedule) -> JobSchedule:
        pass

    @abstractmethod
    async def update_job_schedule(self, schedule: JobSchedule) -> JobSchedule:
        pass

    @abstractmethod
    async def delete_job_schedule(self, schedule_id: UUID) -> None:
        pass


class AttachmentFetcher(ABC):
    """Source of invoice attachments from a user's mailbox."""

    @abstractmethod
    async def get_attachments(self, user: User) -> dict[str, bytes]:
        """Fetch unread attachments that match the user's scan definitions.

        Args:
            user: User with email auth tokens and scan definitions

        Returns:
            dict[str, bytes]: Attachment bytes keyed by beneficiary label
        """
        pass


class ChatSender(ABC):
    """Outbound chat notifications."""

    @abstractmethod
    async def send_message(self, chat_id: int, message: str) -> None:
        """Send an HTML formatted message to a chat.

        Args:
            chat_id: Destination chat ID
            message: HTML message body
        """
        pass
