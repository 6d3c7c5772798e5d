"""Tests for email parsing and Gmail attachment selection."""

import logging
import os
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage as MimeMessage

import pytest
import requests

from fakes import FakeAuthTokenStore
from invoice_reminder.errors import TokenIntegrityError
from invoice_reminder.ingestion import (
    GmailAttachmentFetcher,
    UnreadMessage,
    match_attachment,
    match_definition,
)
from invoice_reminder.processing import EmailParser
from invoice_reminder.security import decrypt, encrypt


def build_email(sender: str, filename: str = None, data: bytes = b"%PDF-1.4 fake", subject: str = "Boleto") -> bytes:
    message = MimeMessage()
    message["From"] = sender
    message["To"] = "maria@gmail.com"
    message["Subject"] = subject
    message["Date"] = "Mon, 07 Apr 2025 09:00:00 -0300"
    message["Message-ID"] = "<abc@mail>"
    message.set_content("Segue o boleto em anexo.")
    if filename:
        message.add_attachment(data, maintype="application", subtype="pdf", filename=filename)
    return message.as_bytes()


class FakeGmailSource:
    def __init__(self, messages: list[UnreadMessage]):
        self.messages = messages
        self.marked: list[int] = []
        self.closed = False

    def fetch_unread(self, folder: str = "INBOX") -> list[UnreadMessage]:
        return self.messages

    def mark_as_read(self, uid: int):
        self.marked.append(uid)

    def close(self):
        self.closed = True


# ============================================================================
# Parsing
# ============================================================================


def test_parse_extracts_headers_and_attachments():
    parsed = EmailParser.parse(build_email("Sabesp <contas@sabesp.com.br>", "fatura-032025.pdf", b"pdf-bytes"))

    assert parsed.from_address == "Sabesp <contas@sabesp.com.br>"
    assert parsed.subject == "Boleto"
    assert parsed.message_id == "<abc@mail>"
    assert len(parsed.attachments) == 1
    assert parsed.attachments[0].filename == "fatura-032025.pdf"
    assert parsed.attachments[0].data == b"pdf-bytes"
    assert parsed.attachments[0].size_bytes == len(b"pdf-bytes")


def test_parse_decodes_encoded_subject():
    parsed = EmailParser.parse(build_email("x@y.com", subject="Condomínio - março"))

    assert parsed.subject == "Condomínio - março"
    assert parsed.attachments == []


# ============================================================================
# Matching
# ============================================================================


def test_match_definition_by_sender(scan_definitions):
    parsed = EmailParser.parse(build_email("Sabesp <contas@sabesp.com.br>"))

    assert match_definition(parsed, scan_definitions).beneficiary == "Sabesp"


def test_match_definition_unknown_sender(scan_definitions):
    parsed = EmailParser.parse(build_email("promo@loja.com"))

    assert match_definition(parsed, scan_definitions) is None


def test_match_attachment_is_case_insensitive(scan_definitions):
    parsed = EmailParser.parse(build_email("contas@sabesp.com.br", "FATURA_0325.PDF"))

    assert match_attachment(parsed, scan_definitions).filename == "FATURA_0325.PDF"


def test_match_attachment_ignores_other_files(scan_definitions):
    parsed = EmailParser.parse(build_email("contas@sabesp.com.br", "propaganda.pdf"))

    assert match_attachment(parsed, scan_definitions) is None


# ============================================================================
# Fetcher
# ============================================================================


@pytest.fixture
def token_store() -> FakeAuthTokenStore:
    return FakeAuthTokenStore()


@pytest.fixture
def fetcher(token_store) -> GmailAttachmentFetcher:
    return GmailAttachmentFetcher("client-id", "client-secret", os.urandom(32), token_store)


def test_first_matching_attachment_per_beneficiary(fetcher, user):
    source = FakeGmailSource([
        UnreadMessage(uid=1, raw=build_email("contas@sabesp.com.br", "fatura-marco.pdf", b"march")),
        UnreadMessage(uid=2, raw=build_email("promo@loja.com", "fatura.pdf", b"spam")),
        UnreadMessage(uid=3, raw=build_email("contas@sabesp.com.br", "fatura-abril.pdf", b"april")),
        UnreadMessage(uid=4, raw=build_email("cobranca@condominio.com.br", "boleto.pdf", b"condo")),
    ])

    attachments = fetcher._scan(user, source)

    assert attachments == {"Sabesp": b"march", "Condomínio Jardim": b"condo"}
    assert source.marked == [1, 4]
    assert source.closed


def test_message_without_matching_attachment_stays_unread(fetcher, user):
    source = FakeGmailSource([
        UnreadMessage(uid=7, raw=build_email("contas@sabesp.com.br")),
    ])

    assert fetcher._scan(user, source) == {}
    assert source.marked == []


async def test_user_without_definitions_is_not_scanned(fetcher, user):
    user.scan_email_definitions = []

    async def open_source(_):
        pytest.fail("mailbox should not be opened")

    fetcher._open_source = open_source

    assert await fetcher.get_attachments(user) == {}


async def test_get_attachments_scans_opened_mailbox(fetcher, user):
    source = FakeGmailSource([
        UnreadMessage(uid=1, raw=build_email("contas@sabesp.com.br", "fatura.pdf", b"bill")),
    ])

    async def open_source(_):
        return source

    fetcher._open_source = open_source

    assert await fetcher.get_attachments(user) == {"Sabesp": b"bill"}
    assert source.closed


async def test_fresh_token_is_used_as_is(fetcher, user, token_store):
    source = await fetcher._open_source(user)

    assert source.access_token == "ya29.access"
    assert token_store.updated == []
    assert token_store.deleted == []


class FakeTokenResponse:
    def __init__(self, payload: dict, status_error: Exception = None):
        self.payload = payload
        self.status_error = status_error

    def raise_for_status(self):
        if self.status_error is not None:
            raise self.status_error

    def json(self):
        return self.payload


@pytest.fixture
def stale_token(fetcher, user):
    cipher_text, nonce = encrypt("1//refresh", fetcher.encryption_key)
    token = user.email_auth_tokens[0]
    token.refresh_token, token.nonce_value = cipher_text, nonce
    token.access_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=5)
    return token


async def test_stale_token_is_refreshed_and_persisted(fetcher, user, stale_token, token_store, monkeypatch):
    requests_made = []

    def fake_post(url, data, timeout):
        requests_made.append((url, data))
        return FakeTokenResponse({"access_token": "ya29.fresh", "expires_in": 1800})

    monkeypatch.setattr("invoice_reminder.ingestion.gmail.requests.post", fake_post)
    before = datetime.now(timezone.utc)

    source = await fetcher._open_source(user)

    assert source.access_token == "ya29.fresh"
    assert requests_made[0][1]["refresh_token"] == "1//refresh"
    assert requests_made[0][1]["grant_type"] == "refresh_token"

    [stored] = token_store.updated
    assert stored.id == stale_token.id
    assert stored.access_token == "ya29.fresh"
    assert not stored.is_stale
    assert before + timedelta(seconds=1800) <= stored.access_token_expiry <= datetime.now(timezone.utc) + timedelta(seconds=1800)

    # Same refresh token, new ciphertext under a new nonce
    assert stored.nonce_value != stale_token.nonce_value
    assert decrypt(stored.refresh_token, stored.nonce_value, fetcher.encryption_key) == "1//refresh"
    assert token_store.deleted == []


async def test_rotated_refresh_token_is_stored(fetcher, user, stale_token, token_store, monkeypatch):
    monkeypatch.setattr(
        "invoice_reminder.ingestion.gmail.requests.post",
        lambda url, data, timeout: FakeTokenResponse({"access_token": "ya29.fresh", "refresh_token": "1//rotated"}),
    )

    await fetcher._open_source(user)

    [stored] = token_store.updated
    assert decrypt(stored.refresh_token, stored.nonce_value, fetcher.encryption_key) == "1//rotated"
    assert stored.access_token_expiry > datetime.now(timezone.utc) + timedelta(minutes=59)


async def test_failed_refresh_deletes_token(fetcher, user, stale_token, token_store, monkeypatch, caplog):
    error = requests.HTTPError("400 Client Error: invalid_grant")
    monkeypatch.setattr(
        "invoice_reminder.ingestion.gmail.requests.post",
        lambda url, data, timeout: FakeTokenResponse({}, status_error=error),
    )

    with pytest.raises(requests.HTTPError):
        await fetcher._open_source(user)

    assert token_store.deleted == [stale_token.id]
    assert token_store.updated == []
    assert any(r.levelno == logging.ERROR and str(stale_token.id) in r.getMessage() for r in caplog.records)


async def test_undecryptable_refresh_token_deletes_token(fetcher, user, stale_token, token_store):
    stale_token.nonce_value = "bm90LWEtbm9uY2U="

    with pytest.raises(TokenIntegrityError):
        await fetcher._open_source(user)

    assert token_store.deleted == [stale_token.id]
