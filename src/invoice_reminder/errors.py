"""Exception types raised by the invoice reminder core."""

import asyncio


class UnsupportedDocumentTypeError(ValueError):
    """Raised when no barcode handler exists for a document type."""


class BarcodeNotFoundError(ValueError):
    """Raised when the extracted text holds no recognisable payment code."""


class UnknownBankError(KeyError):
    """Raised when a bank slip carries a bank id outside the known table."""

    def __init__(self, bank_id: int):
        super().__init__(bank_id)
        self.bank_id = bank_id

    def __str__(self) -> str:
        return f"Unknown bank id: {self.bank_id}"


class InvalidCronExpressionError(ValueError):
    """Raised when a job schedule carries an unparseable cron expression."""


class DispatchError(RuntimeError):
    """Raised when a dispatch run fails; the original error is the __cause__."""


class OperationCanceledError(asyncio.CancelledError):
    """Cancellation observed during a dispatch run, with context attached."""


class DataLayerError(RuntimeError):
    """Raised when a database operation fails."""


class TokenIntegrityError(Exception):
    """Raised when an encrypted token fails authentication or is malformed."""
