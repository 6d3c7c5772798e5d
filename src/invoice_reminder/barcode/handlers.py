"""Payment code decoders for the two supported invoice layouts.

Each handler is a pure function ``(content, beneficiary) -> Invoice`` over the
text extracted from a PDF. ``HANDLERS`` maps a ``DocumentType`` to its handler.
"""

import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable

from ..errors import BarcodeNotFoundError, UnknownBankError, UnsupportedDocumentTypeError
from ..models import DocumentType, Invoice

BarcodeHandler = Callable[[str, str], Invoice]

KNOWN_BANKS: dict[int, str] = {
    1: "Banco do Brasil",
    237: "Bradesco",
    341: "Itaú",
    104: "Caixa Econômica Federal",
    33: "Santander",
    422: "Safra",
    745: "Citibank",
    208: "BTG Pactual",
}

BANK_SLIP_PATTERN = re.compile(
    r"(\d{3}-\d)\s(\d+\.\d{5})\s(\d+\.\d{6})\s(\d+\.\d{6})\s(\d)\s(\d+)"
)
ACCOUNT_PATTERN = re.compile(
    r"(\d{11}\s\d)\s(\d{11}\s\d)\s(\d{11}\s\d)\s(\d{11}\s\d)"
)

BANK_SLIP_DIGITS = 47
ACCOUNT_DIGITS = 48

# Due-date factor 0 of the bank slip layout
BANK_SLIP_BASE_DATE = date(2022, 5, 29)


def _require_content(content: str) -> None:
    if content is None or not content.strip():
        raise ValueError("Barcode content must not be empty")


def _filter(pattern: re.Pattern, content: str) -> str:
    match = pattern.search(content)
    if match is None:
        raise BarcodeNotFoundError("No payment code found in document text")
    return match.group(0)


def _require_length(digits: str, expected: int) -> None:
    if len(digits) != expected:
        raise BarcodeNotFoundError(f"Payment code has {len(digits)} digits, expected {expected}")


# ============================================================================
# Bank slip (boleto bancário)
# ============================================================================


def create_bank_invoice(content: str, beneficiary: str) -> Invoice:
    """Decode a bank slip linha digitável.

    The matched text starts with ``<bank>-<digit>`` followed by a newline and
    the dotted payment code, e.g.
    ``341-7\\n34191.09008 14292.880391 20803.050002 4 10770000016165``.

    Args:
        content: Text extracted from the PDF
        beneficiary: Payee label of the scan definition that matched the email

    Returns:
        Invoice: Decoded invoice (id and user_id are placeholders)

    Raises:
        ValueError: If content is empty or holds no complete payment code
        UnknownBankError: If the bank id is not in KNOWN_BANKS
    """
    _require_content(content)

    barcode = _filter(BANK_SLIP_PATTERN, content)
    header, _, payment_code = barcode.partition("\n")
    bank_id = int(header[:3])

    if bank_id not in KNOWN_BANKS:
        raise UnknownBankError(bank_id)

    digits = payment_code.replace(".", "").replace(" ", "")
    _require_length(digits, BANK_SLIP_DIGITS)

    return Invoice(
        bank=f"[{bank_id}] - {KNOWN_BANKS[bank_id]}",
        beneficiary=beneficiary,
        amount=Decimal(int(digits[37:47])) / 100,
        due_date=BANK_SLIP_BASE_DATE + timedelta(days=int(digits[33:37])),
        barcode=payment_code,
    )


# ============================================================================
# Utility account bill
# ============================================================================


def _account_due_date(digits: str) -> date:
    code = digits[24:30]
    year = 2000 + int(code[:2]) // 2
    month = int(code[2:4][::-1])
    day = int(code[4:6][::-1])
    return date(year, month, day)


def create_account_invoice(content: str, beneficiary: str) -> Invoice:
    """Decode a utility account bill made of four ``11 digits + check`` groups.

    The issuer is not encoded in this layout, so ``bank`` is the beneficiary.

    Args:
        content: Text extracted from the PDF
        beneficiary: Payee label of the scan definition that matched the email

    Returns:
        Invoice: Decoded invoice (id and user_id are placeholders)

    Raises:
        ValueError: If content is empty or holds no complete payment code
    """
    _require_content(content)

    barcode = _filter(ACCOUNT_PATTERN, content)
    digits = barcode.replace(" ", "")
    _require_length(digits, ACCOUNT_DIGITS)

    return Invoice(
        bank=beneficiary,
        beneficiary=beneficiary,
        amount=Decimal(int(digits[12:16])) / 100,
        due_date=_account_due_date(digits),
        barcode=barcode,
    )


HANDLERS: dict[DocumentType, BarcodeHandler] = {
    DocumentType.BANK_INVOICE: create_bank_invoice,
    DocumentType.ACCOUNT_INVOICE: create_account_invoice,
}


def get_handler(invoice_type: DocumentType) -> BarcodeHandler:
    """Return the handler for a document type.

    Raises:
        UnsupportedDocumentTypeError: If no handler is registered for the type
    """
    try:
        return HANDLERS[DocumentType(invoice_type)]
    except (KeyError, ValueError):
        raise UnsupportedDocumentTypeError(f"Unsupported document type: {invoice_type!r}") from None
