"""RFC 822 parsing into ``NormalizedMessage``."""

import base64
import hashlib
from collections.abc import Iterable
from datetime import datetime
from email import message_from_bytes
from email.message import Message
from email.policy import default as email_policy
from email.utils import getaddresses, parsedate_to_datetime

from loguru import logger

from imap_mail_driver.models import Attachment, EmailAddress, Label, NormalizedMessage

SEEN_FLAG = "\\Seen"


def flag_names(flags: Iterable[bytes | str] | None) -> set[str]:
    return {flag.decode() if isinstance(flag, bytes) else str(flag) for flag in flags or ()}


def is_unread(flags: Iterable[bytes | str] | None) -> bool:
    """Unread unless the server-reported flag set contains ``\\Seen``."""
    return SEEN_FLAG not in flag_names(flags)


def parse_addresses(header_value: str | None) -> list[EmailAddress]:
    if not header_value:
        return []
    return [
        EmailAddress(email=addr, name=name or "")
        for name, addr in getaddresses([str(header_value)])
        if addr
    ]


def _header(msg: Message, name: str) -> str:
    value = msg.get(name)
    return str(value).strip() if value is not None else ""


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.debug("Unparseable Date header: {!r}", value)
        return None


def _decode_text(part: Message) -> str:
    try:
        content = part.get_content()
    except (KeyError, LookupError, UnicodeError, AssertionError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode(part.get_content_charset() or "utf-8", errors="replace")
    if isinstance(content, bytes):
        return content.decode(part.get_content_charset() or "utf-8", errors="replace")
    return content


def attachment_id_for(part: Message, payload: bytes) -> str:
    """Content-ID if present, else filename, else a digest of the content."""
    content_id = _header(part, "Content-ID").strip("<>").strip()
    if content_id:
        return content_id
    filename = part.get_filename()
    if filename:
        return filename
    return hashlib.sha256(payload).hexdigest()[:32]


def extract_attachments(msg: Message) -> list[Attachment]:
    attachments: list[Attachment] = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        disposition = part.get_content_disposition()
        filename = part.get_filename()
        if disposition != "attachment" and not (disposition == "inline" and filename):
            continue

        payload = part.get_payload(decode=True) or b""
        attachments.append(
            Attachment(
                filename=filename or "attachment.bin",
                mime_type=part.get_content_type(),
                size=len(payload),
                attachment_id=attachment_id_for(part, payload),
                body=base64.b64encode(payload).decode("ascii"),
            )
        )
    return attachments


def _extract_bodies(msg: Message) -> tuple[str, str]:
    text, html = "", ""
    for part in msg.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain" and not text:
            text = _decode_text(part)
        elif content_type == "text/html" and not html:
            html = _decode_text(part)
    return text, html


def parse_message(
    raw: bytes,
    message_id: str,
    mailbox: str,
    flags: Iterable[bytes | str] | None = None,
    headers_only: bool = False,
) -> NormalizedMessage:
    """Parse raw message bytes into a ``NormalizedMessage``.

    Args:
        raw: RFC 822 bytes (full message, or just the header block)
        message_id: Driver id of the message (``mailbox:uid``)
        mailbox: Owning mailbox, exposed as a folder tag
        flags: FLAGS reported by the server for this UID
        headers_only: Skip body and attachment extraction (listing mode)
    """
    msg = message_from_bytes(raw, policy=email_policy)

    senders = parse_addresses(_header(msg, "From"))
    header_message_id = _header(msg, "Message-ID")
    subject = _header(msg, "Subject")

    text, html = ("", "") if headers_only else _extract_bodies(msg)
    attachments = [] if headers_only else extract_attachments(msg)
    cc = parse_addresses(_header(msg, "Cc"))

    return NormalizedMessage(
        id=message_id,
        thread_id=header_message_id or message_id,
        message_id=header_message_id or message_id,
        subject=subject or "(no subject)",
        sender=senders[0] if senders else EmailAddress(),
        to=parse_addresses(_header(msg, "To")),
        cc=cc or None,
        body_text=text,
        body_html=html,
        unread=is_unread(flags),
        received_on=_parse_date(_header(msg, "Date")),
        references=_header(msg, "References"),
        in_reply_to=_header(msg, "In-Reply-To"),
        attachments=attachments,
        tags=[Label(id=mailbox, name=mailbox)],
    )
