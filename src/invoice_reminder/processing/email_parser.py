"""RFC822 parsing for invoice emails."""

import email
from email import policy
from email.message import EmailMessage
from typing import Iterator

from ..models import EmailAttachment, ParsedEmail


class EmailParser:
    """Turn raw message bytes into headers plus named attachments.

    Uses the ``default`` email policy, so RFC2047 encoded headers and
    filenames come back already decoded. Message bodies are not kept.
    """

    @staticmethod
    def parse(email_bytes: bytes) -> ParsedEmail:
        msg = email.message_from_bytes(email_bytes, policy=policy.default)

        return ParsedEmail(
            subject=str(msg.get("Subject", "")),
            from_address=str(msg.get("From", "")),
            to_address=str(msg.get("To", "")),
            date=str(msg.get("Date", "")),
            attachments=list(EmailParser.iter_attachments(msg)),
            message_id=str(msg["Message-ID"]) if msg["Message-ID"] else None,
        )

    @staticmethod
    def iter_attachments(msg: EmailMessage) -> Iterator[EmailAttachment]:
        """Yield every part that carries a filename, nested messages included."""
        for part in msg.walk():
            if part.is_multipart():
                continue

            filename = part.get_filename()
            payload = part.get_payload(decode=True)
            if not filename or payload is None:
                continue

            yield EmailAttachment(
                filename=filename,
                content_type=part.get_content_type(),
                data=payload,
                size_bytes=len(payload),
            )
