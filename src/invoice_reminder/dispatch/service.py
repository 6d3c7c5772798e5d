"""Invoice notification dispatch - mailbox attachments in, chat messages out."""

import asyncio
import logging
from typing import Optional
from uuid import UUID, uuid4

from ..barcode import BarcodeReaderService
from ..errors import DispatchError, OperationCanceledError
from ..interfaces import AttachmentFetcher, ChatSender, InvoiceStore, UserStore
from ..models import DocumentType, Invoice, User

logger = logging.getLogger(__name__)


def format_invoice_message(invoice: Invoice) -> str:
    """Build the HTML chat message announcing a new invoice."""
    return (
        "Um novo boleto de pagamento foi emitido:\n"
        f"<b>• Emissor:</b> {invoice.bank}\n"
        f"<b>• Beneficiário:</b> {invoice.beneficiary}\n"
        f"<b>• Cód. Pagamento:</b> {invoice.barcode}\n"
        f"<b>• Vencimento:</b> {invoice.due_date:%d/%m/%Y}\n"
        f"<b>• Valor:</b> R${invoice.amount}"
    )


class SendMessageService:
    """Run one dispatch for a user: fetch, decode, notify, persist."""

    def __init__(
        self,
        barcode_reader: BarcodeReaderService,
        attachment_fetcher: AttachmentFetcher,
        chat_sender: ChatSender,
        invoice_store: InvoiceStore,
        user_store: UserStore,
    ):
        self.barcode_reader = barcode_reader
        self.attachment_fetcher = attachment_fetcher
        self.chat_sender = chat_sender
        self.invoice_store = invoice_store
        self.user_store = user_store

    async def send_message(self, user_id: UUID) -> str:
        """Notify a user about every new invoice found in their mailbox.

        Steps:
        1. Load the user; stop with a message if it is missing or has no
           tokens or no scan definitions
        2. Fetch unread matching attachments keyed by beneficiary
        3. Decode each attachment and send one chat message per invoice;
           attachments that fail to decode are logged and skipped
        4. Bulk insert all decoded invoices

        The returned count is the number of attachments fetched, not the
        number of messages the chat provider confirmed.

        Args:
            user_id: User to dispatch for

        Returns:
            str: Summary of the run, or the reason nothing was done

        Raises:
            OperationCanceledError: If the run was cancelled
            DispatchError: If any step failed; the original error is chained
        """
        try:
            invoices: list[Invoice] = []
            user = await self.user_store.get_user_by_id(user_id)

            is_valid, validation_message = self._validate_user(user)
            if not is_valid:
                return validation_message

            attachments = await self.attachment_fetcher.get_attachments(user)

            for beneficiary, data in attachments.items():
                invoice_type = self._resolve_invoice_type(user, beneficiary)

                try:
                    invoice = self.barcode_reader.read_text_content_from_pdf(data, beneficiary, invoice_type)
                except Exception as e:
                    # Any decode failure skips this attachment only; cancellation still propagates
                    logger.error(
                        f"Could not decode attachment from '{beneficiary}' for userId: {user_id} - {e}",
                        exc_info=True,
                    )
                    continue

                invoice.id = uuid4()
                invoice.user_id = user_id
                invoices.append(invoice)

                await self.chat_sender.send_message(user.telegram_chat_id, format_invoice_message(invoice))

            await self.invoice_store.bulk_insert(invoices)

        except asyncio.CancelledError as e:
            contextual_info = (
                f"Method {type(self).__name__}.send_message execution was interrupted by a cancellation request..."
            )
            logger.warning(f"{contextual_info} - Exception: {e}")
            raise OperationCanceledError(contextual_info) from e

        except Exception as e:
            contextual_info = f"Error occurred while sending messages for userId: {user_id}"
            logger.error(f"{contextual_info} - Exception: {e}", exc_info=True)
            raise DispatchError(contextual_info) from e

        return f"Total messages sent: {len(attachments)}"

    @staticmethod
    def _resolve_invoice_type(user: User, beneficiary: str) -> Optional[DocumentType]:
        for definition in user.scan_email_definitions:
            if definition.beneficiary == beneficiary:
                return definition.invoice_type
        return None

    @staticmethod
    def _validate_user(user: Optional[User]) -> tuple[bool, str]:
        if user is None:
            message = "User not found!"
            logger.warning(message)
            return False, message

        if not user.email_auth_tokens:
            message = f"No Authentication Token found for userId: {user.id}"
            logger.warning(message)
            return False, message

        if not user.scan_email_definitions:
            message = f"No Scan Email Definition found for userId: {user.id}"
            logger.warning(message)
            return False, message

        return True, ""
