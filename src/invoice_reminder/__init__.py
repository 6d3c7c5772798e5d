"""Invoice reminder - mailbox payment slips in, chat notifications out."""

# Models
from .models import (
    DocumentType,
    Invoice,
    ScanEmailDefinition,
    EmailAuthToken,
    JobSchedule,
    User,
    ParsedEmail,
    EmailAttachment,
)

# Barcode decoding
from .barcode import BarcodeReaderService

# Dispatch
from .dispatch import SendMessageService

# Scheduling
from .scheduling import CronJob, JobSchedulerService

# Configuration
from .config import Config

__version__ = "0.1.0"

__all__ = [
    # Models
    "DocumentType",
    "Invoice",
    "ScanEmailDefinition",
    "EmailAuthToken",
    "JobSchedule",
    "User",
    "ParsedEmail",
    "EmailAttachment",
    # Components
    "BarcodeReaderService",
    "SendMessageService",
    "CronJob",
    "JobSchedulerService",
    "Config",
]
