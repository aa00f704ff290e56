"""IMAP/SMTP mail driver: provider-agnostic mailbox operations over IMAP and SMTP."""

from imap_mail_driver.config import ConnectionConfig, DriverSettings, configure_logging, get_settings
from imap_mail_driver.driver import ImapMailDriver
from imap_mail_driver.errors import ClassifiedError, ErrorKind, classify
from imap_mail_driver.identifiers import MessageId, PageToken, normalize_folder
from imap_mail_driver.models import (
    Attachment,
    DraftData,
    DraftResult,
    EmailAddress,
    FolderCount,
    Label,
    ListResult,
    NormalizedMessage,
    OutgoingAttachment,
    OutgoingMessage,
    ParsedDraft,
    SendResult,
    ThreadSummary,
    ThreadView,
)
from imap_mail_driver.session import ImapSession
from imap_mail_driver.store import ConnectionStore
from imap_mail_driver.verify import VerificationResult, verify_connection

__all__ = [
    "Attachment",
    "ClassifiedError",
    "ConnectionConfig",
    "ConnectionStore",
    "DraftData",
    "DraftResult",
    "DriverSettings",
    "EmailAddress",
    "ErrorKind",
    "FolderCount",
    "ImapMailDriver",
    "ImapSession",
    "Label",
    "ListResult",
    "MessageId",
    "NormalizedMessage",
    "OutgoingAttachment",
    "OutgoingMessage",
    "PageToken",
    "ParsedDraft",
    "SendResult",
    "ThreadSummary",
    "ThreadView",
    "VerificationResult",
    "classify",
    "configure_logging",
    "get_settings",
    "normalize_folder",
    "verify_connection",
]
