"""Data model shared by the driver and its callers."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """Lifecycle states of the IMAP session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERRORED = "errored"


class EmailAddress(BaseModel):
    """Mailbox address with optional display name."""

    email: str = ""
    name: str = ""

    def display(self) -> str:
        """Recipient display string: ``Name <email>`` when named, bare email otherwise."""
        return f"{self.name} <{self.email}>" if self.name else self.email


class Attachment(BaseModel):
    filename: str
    mime_type: str
    size: int = Field(ge=0)
    attachment_id: str
    body: str = Field(default="", description="Base64-encoded content")


class Label(BaseModel):
    """Provider mailbox exposed as a folder-typed tag."""

    id: str
    name: str
    type: Literal["folder"] = "folder"


class NormalizedMessage(BaseModel):
    """Canonical message shape produced for every fetched item.

    Built fresh on every fetch; ``unread`` is true unless the server reported
    the ``\\Seen`` flag.
    """

    id: str
    thread_id: str
    message_id: str
    subject: str = "(no subject)"
    sender: EmailAddress = Field(default_factory=EmailAddress)
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] | None = None
    body_text: str = ""
    body_html: str = ""
    unread: bool = True
    received_on: datetime | None = None
    references: str = ""
    in_reply_to: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    tags: list[Label] = Field(default_factory=list)
    tls: bool = True
    total_replies: int = 1

    @property
    def decoded_body(self) -> str:
        return self.body_html or self.body_text


class ThreadView(BaseModel):
    """Single-message thread; IMAP has no native conversation threading."""

    messages: list[NormalizedMessage]
    latest: NormalizedMessage
    has_unread: bool
    total_replies: int = 1
    labels: list[Label] = Field(default_factory=list)


class ThreadSummary(BaseModel):
    """Listing entry: the id plus header-level data only."""

    id: str
    message: NormalizedMessage


class ListResult(BaseModel):
    threads: list[ThreadSummary] = Field(default_factory=list)
    next_page_token: str | None = None


class OutgoingAttachment(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class OutgoingMessage(BaseModel):
    to: list[EmailAddress]
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    subject: str = ""
    message: str = Field(default="", description="Rich-text (HTML) body")
    from_email: str | None = None
    attachments: list[OutgoingAttachment] = Field(default_factory=list)
    headers: dict[str, str | None] = Field(default_factory=dict)
    in_reply_to: str | None = None
    references: str | None = None


class DraftData(BaseModel):
    """Draft payload; recipients are comma-separated address strings."""

    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    message: str = ""
    attachments: list[OutgoingAttachment] = Field(default_factory=list)


class DraftResult(BaseModel):
    id: str
    success: bool = True


class ParsedDraft(BaseModel):
    id: str
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    content: str = ""
    message: NormalizedMessage | None = None


class SendResult(BaseModel):
    id: str | None = None


class FolderCount(BaseModel):
    label: str
    count: int = 0


class FolderInfo(BaseModel):
    """One entry of an IMAP LIST response."""

    name: str
    delimiter: str | None = None
    flags: list[str] = Field(default_factory=list)
    has_children: bool = False


class UserInfo(BaseModel):
    address: str
    name: str = ""
    photo: str = ""


class EmailAlias(BaseModel):
    email: str
    name: str | None = None
    primary: bool = False


class TokenSet(BaseModel):
    access_token: str
    refresh_token: str
    expiry_date: int
