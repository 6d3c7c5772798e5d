"""Invoice notification dispatch."""

from .service import SendMessageService, format_invoice_message

__all__ = ["SendMessageService", "format_invoice_message"]
