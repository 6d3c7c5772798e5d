"""Text extraction from invoice PDFs using pypdf."""

import io
import logging

from pypdf import PdfReader

from ..models import DocumentType, Invoice
from .handlers import get_handler

logger = logging.getLogger(__name__)


class BarcodeReaderService:
    """Read the payment code out of an invoice PDF and decode it."""

    def __init__(self, source_encoding: str = "cp1252"):
        """Initialize the reader.

        Args:
            source_encoding: Legacy code page used to undo mis-decoded accents
        """
        self.source_encoding = source_encoding

    def read_text_content_from_pdf(
        self,
        data: bytes,
        beneficiary: str,
        invoice_type: DocumentType,
    ) -> Invoice:
        """Extract the text of every page and decode it into an Invoice.

        Args:
            data: PDF file contents
            beneficiary: Payee label of the matching scan definition
            invoice_type: Layout of the payment code

        Returns:
            Invoice: Decoded invoice

        Raises:
            ValueError: If data is empty or the document type is unsupported
        """
        if not data:
            error = ValueError("Empty document byte stream")
            logger.error(str(error))
            raise error

        handler = get_handler(invoice_type)
        reader = PdfReader(io.BytesIO(data))
        content = ""

        for page in reader.pages:
            page_text = self._recover_accents(page.extract_text() or "")
            content = (content + page_text).replace(" \n", "\n").replace(" \r\n", "\r\n")

        logger.debug(f"Extracted {len(content)} chars from {len(reader.pages)} page(s)")

        return handler(content, beneficiary)

    def _recover_accents(self, text: str) -> str:
        """Undo UTF-8 text that was decoded with the legacy code page.

        Text that does not round-trip is returned unchanged.
        """
        try:
            return text.encode(self.source_encoding).decode("utf-8")
        except UnicodeError:
            return text
