from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from invoice_reminder.models import DocumentType, EmailAuthToken, ScanEmailDefinition, User


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_token(user_id) -> EmailAuthToken:
    return EmailAuthToken(
        user_id=user_id,
        access_token="ya29.access",
        refresh_token="encrypted-refresh",
        nonce_value="nonce",
        access_token_expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def scan_definitions(user_id) -> list[ScanEmailDefinition]:
    return [
        ScanEmailDefinition(
            user_id=user_id,
            invoice_type=DocumentType.BANK_INVOICE,
            beneficiary="Condomínio Jardim",
            sender_email_address="cobranca@condominio.com.br",
            attachment_file_name="boleto",
        ),
        ScanEmailDefinition(
            user_id=user_id,
            invoice_type=DocumentType.ACCOUNT_INVOICE,
            beneficiary="Sabesp",
            sender_email_address="contas@sabesp.com.br",
            attachment_file_name="fatura",
        ),
    ]


@pytest.fixture
def user(user_id, auth_token, scan_definitions) -> User:
    return User(
        id=user_id,
        name="Maria Silva",
        email="maria@gmail.com",
        telegram_chat_id=123456789,
        email_auth_tokens=[auth_token],
        scan_email_definitions=scan_definitions,
    )
