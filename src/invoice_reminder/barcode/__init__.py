"""Payment code extraction from invoice PDFs."""

from .handlers import (
    HANDLERS,
    KNOWN_BANKS,
    create_account_invoice,
    create_bank_invoice,
    get_handler,
)
from .reader import BarcodeReaderService

__all__ = [
    "HANDLERS",
    "KNOWN_BANKS",
    "create_account_invoice",
    "create_bank_invoice",
    "get_handler",
    "BarcodeReaderService",
]
