"""Gmail IMAP ingestion with OAuth2."""

import asyncio
import imaplib
import logging
import ssl
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests

from ..interfaces import AttachmentFetcher, AuthTokenStore
from ..models import EmailAttachment, EmailAuthToken, ParsedEmail, ScanEmailDefinition, User
from ..processing import EmailParser
from ..security import decrypt, encrypt
from .base import UnreadMessage

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_TOKEN_LIFETIME = 3600  # seconds, when the token endpoint omits expires_in


class GmailSource:
    """Gmail mailbox accessed over IMAP with OAuth2."""

    def __init__(
        self,
        email_address: str,
        access_token: str,
        client_id: str = None,
        client_secret: str = None,
        refresh_token: str = None,
    ):
        """Initialize Gmail source.

        Args:
            email_address: Gmail email address
            access_token: OAuth2 access token
            client_id: OAuth2 client ID (for token refresh)
            client_secret: OAuth2 client secret (for token refresh)
            refresh_token: OAuth2 refresh token (for token refresh)
        """
        self.email_address = email_address
        self.access_token = access_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self._imap: Optional[imaplib.IMAP4_SSL] = None

    def _connect(self):
        """Connect to Gmail IMAP if not already connected."""
        if self._imap is not None:
            return

        self._imap = imaplib.IMAP4_SSL("imap.gmail.com", ssl_context=ssl.create_default_context())

        auth_string = f"user={self.email_address}\x01auth=Bearer {self.access_token}\x01\x01"
        self._imap.authenticate("XOAUTH2", lambda x: auth_string)

    def fetch_unread(self, folder: str = "INBOX") -> list[UnreadMessage]:
        """Fetch unread messages without marking them as read.

        Args:
            folder: Folder name (e.g., "INBOX")

        Returns:
            list[UnreadMessage]: Unread messages with UID and RFC822 data
        """
        self._connect()
        self._imap.select(folder)

        status, data = self._imap.uid("SEARCH", None, "UNSEEN")
        if status != "OK":
            raise imaplib.IMAP4.error(f"Failed to search: {status}")

        messages = []
        for uid_bytes in data[0].split() if data and data[0] else []:
            # BODY.PEEK leaves the \Seen flag untouched
            status, fetched = self._imap.uid("FETCH", uid_bytes, "(BODY.PEEK[])")
            if status != "OK" or not fetched or fetched[0] is None:
                continue

            messages.append(UnreadMessage(uid=int(uid_bytes.decode()), raw=fetched[0][1]))

        return messages

    def mark_as_read(self, uid: int):
        """Set the \\Seen flag on a message in the selected folder."""
        self._connect()
        self._imap.uid("STORE", str(uid).encode(), "+FLAGS", "(\\Seen)")

    def close(self):
        """Close IMAP connection."""
        if self._imap is not None:
            try:
                self._imap.close()
                self._imap.logout()
            except imaplib.IMAP4.error as e:
                logger.debug(f"Ignoring error on IMAP close: {e}")
            self._imap = None

    def refresh_access_token(self) -> dict:
        """Refresh OAuth2 access token.

        The new access token (and the new refresh token, when the provider
        rotates it) replace the ones held by this source.

        Returns:
            dict: Token endpoint response (access_token, expires_in, ...)

        Raises:
            ValueError: If the refresh credentials are missing
            requests.HTTPError: If token refresh fails
        """
        if not self.refresh_token or not self.client_id or not self.client_secret:
            raise ValueError("Missing OAuth2 credentials for token refresh")

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }

        response = requests.post(TOKEN_URL, data=data, timeout=30)
        response.raise_for_status()

        payload = response.json()
        self.access_token = payload["access_token"]
        if payload.get("refresh_token"):
            self.refresh_token = payload["refresh_token"]
        return payload


def match_definition(
    parsed: ParsedEmail, definitions: list[ScanEmailDefinition]
) -> Optional[ScanEmailDefinition]:
    """Return the first scan definition whose sender appears in the From header."""
    for definition in definitions:
        if definition.sender_email_address and definition.sender_email_address in parsed.from_address:
            return definition
    return None


def match_attachment(
    parsed: ParsedEmail, definitions: list[ScanEmailDefinition]
) -> Optional[EmailAttachment]:
    """Return the first attachment whose name contains a configured file name."""
    names = [d.attachment_file_name.lower() for d in definitions if d.attachment_file_name]
    for attachment in parsed.attachments:
        filename = attachment.filename.lower()
        if any(name in filename for name in names):
            return attachment
    return None


class GmailAttachmentFetcher(AttachmentFetcher):
    """Fetch invoice attachments from unread Gmail messages."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        encryption_key: bytes,
        token_store: AuthTokenStore,
        folder: str = "INBOX",
    ):
        """Initialize the fetcher.

        Args:
            client_id: OAuth2 client ID
            client_secret: OAuth2 client secret
            encryption_key: Key the stored refresh tokens are encrypted with
            token_store: Where refreshed tokens are written back
            folder: Mailbox folder to scan
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.encryption_key = encryption_key
        self.token_store = token_store
        self.folder = folder
        self.parser = EmailParser()

    async def get_attachments(self, user: User) -> dict[str, bytes]:
        if not user.scan_email_definitions:
            return {}

        gmail = await self._open_source(user)
        return await asyncio.to_thread(self._scan, user, gmail)

    def _select_token(self, user: User) -> EmailAuthToken:
        for token in user.email_auth_tokens:
            if token.token_provider.lower() == "google":
                return token
        return user.email_auth_tokens[0]

    async def _open_source(self, user: User) -> GmailSource:
        token = self._select_token(user)

        gmail = GmailSource(
            email_address=user.email,
            access_token=token.access_token,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

        if token.is_stale:
            logger.info(f"Refreshing access token for user {user.id}")
            await self._refresh(token, gmail)

        return gmail

    async def _refresh(self, token: EmailAuthToken, gmail: GmailSource) -> EmailAuthToken:
        """Refresh a stale token and write the result back to the token store.

        A token that cannot be refreshed is deleted, so the user has to grant
        access again; the error is re-raised.
        """
        try:
            gmail.refresh_token = decrypt(token.refresh_token, token.nonce_value, self.encryption_key)
            payload = await asyncio.to_thread(gmail.refresh_access_token)

            # Re-encrypted under a fresh nonce on every refresh
            encrypted, nonce = encrypt(gmail.refresh_token, self.encryption_key)
            lifetime = payload.get("expires_in") or DEFAULT_TOKEN_LIFETIME

            refreshed = token.model_copy(update={
                "access_token": gmail.access_token,
                "refresh_token": encrypted,
                "nonce_value": nonce,
                "access_token_expiry": datetime.now(timezone.utc) + timedelta(seconds=int(lifetime)),
            })
            return await self.token_store.update_email_auth_token(refreshed)

        except Exception as e:
            logger.error(f"Could not refresh token {token.id} for user {token.user_id}, removing it - {e}")
            await self.token_store.delete_email_auth_token(token.id)
            raise

    def _scan(self, user: User, gmail: GmailSource) -> dict[str, bytes]:
        definitions = user.scan_email_definitions
        result: dict[str, bytes] = {}

        logger.info(f"Scanning {self.folder} of {user.email}")

        try:
            for message in gmail.fetch_unread(self.folder):
                parsed = self.parser.parse(message.raw)

                definition = match_definition(parsed, definitions)
                if definition is None:
                    continue

                # One attachment per beneficiary per run; later ones stay unread for the next run
                if definition.beneficiary in result:
                    continue

                attachment = match_attachment(parsed, definitions)
                if attachment is None:
                    logger.debug(f"Message {message.uid} from {parsed.from_address} has no matching attachment")
                    continue

                result[definition.beneficiary] = attachment.data
                gmail.mark_as_read(message.uid)
        finally:
            gmail.close()

        logger.info(f"Found {len(result)} invoice attachment(s) for user {user.id}")
        return result
