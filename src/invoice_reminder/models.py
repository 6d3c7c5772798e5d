"""Pydantic models aligned with PostgreSQL schema and internal processing."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


class DocumentType(str, Enum):
    """Payment document layout, selects the barcode handler."""

    BANK_INVOICE = "BankInvoice"
    ACCOUNT_INVOICE = "AccountInvoice"


# ============================================================================
# Database Models (aligned with PostgreSQL schema)
# ============================================================================


class Invoice(BaseModel):
    """Invoice record decoded from a payment slip."""

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None

    bank: str
    beneficiary: str
    amount: Decimal
    due_date: date
    barcode: str

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScanEmailDefinition(BaseModel):
    """Rule describing which inbound emails carry a payment slip."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    invoice_type: DocumentType
    beneficiary: str
    description: Optional[str] = None
    sender_email_address: str
    attachment_file_name: str

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EmailAuthToken(BaseModel):
    """OAuth2 credentials for a user's mailbox; refresh_token is AES-GCM encrypted with nonce_value."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    access_token: str
    refresh_token: str
    nonce_value: str
    token_provider: str = "Google"
    access_token_expiry: datetime

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_stale(self) -> bool:
        expiry = self.access_token_expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry < datetime.now(timezone.utc)


class JobSchedule(BaseModel):
    """Per-user cron definition driving recurring dispatch runs."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    cron_expression: str

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
    """User account with the nested records a dispatch run needs."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    email: str
    telegram_chat_id: int

    email_auth_tokens: list[EmailAuthToken] = Field(default_factory=list)
    scan_email_definitions: list[ScanEmailDefinition] = Field(default_factory=list)
    job_schedules: list[JobSchedule] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Internal Processing Models (not stored in database)
# ============================================================================


class EmailAttachment(BaseModel):
    """Email attachment with raw data (internal processing)."""

    filename: str
    content_type: str
    data: bytes
    size_bytes: int


class ParsedEmail(BaseModel):
    """Parsed email data (internal processing)."""

    subject: str
    from_address: str
    to_address: Optional[str] = None
    date: str
    attachments: list[EmailAttachment] = Field(default_factory=list)
    message_id: Optional[str] = None
