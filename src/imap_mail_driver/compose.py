"""Outgoing message assembly: rich-text sanitising and MIME construction."""

from email.message import EmailMessage
from email.utils import formatdate, make_msgid

import html2text
from bs4 import BeautifulSoup

from imap_mail_driver.models import DraftData, EmailAddress, OutgoingAttachment, OutgoingMessage
from imap_mail_driver.parsing import parse_addresses

# Elements removed together with their content
_DROPPED_TAGS = ["script", "style", "iframe", "object", "embed", "frame", "frameset", "form", "base", "meta", "link"]
_URL_ATTRIBUTES = ("href", "src", "action", "formaction", "xlink:href")
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:text/html")

# Headers the composer owns; callers cannot override them
_RESERVED_HEADERS = frozenset({"from", "to", "cc", "bcc", "subject", "message-id", "date", "mime-version", "content-type"})


def sanitize_html(html: str) -> str:
    """Strip active content from an editor-produced HTML body.

    Removes script-like elements, ``on*`` event handler attributes and
    javascript/vbscript URLs; everything else is preserved.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_DROPPED_TAGS):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            name = attr.lower()
            if name.startswith("on"):
                del tag.attrs[attr]
            elif name in _URL_ATTRIBUTES:
                value = "".join(str(tag.attrs[attr]).split()).lower()
                if value.startswith(_UNSAFE_SCHEMES):
                    del tag.attrs[attr]
    return str(soup)


def html_to_text(html: str) -> str:
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ignore_images = True
    return converter.handle(html).strip()


def format_recipients(recipients: list[EmailAddress]) -> list[str]:
    """Display strings: ``Name <email>`` when a name is present, bare email otherwise."""
    return [recipient.display() for recipient in recipients if recipient.email]


def _add_attachments(msg: EmailMessage, attachments: list[OutgoingAttachment]) -> None:
    for attachment in attachments:
        maintype, _, subtype = (attachment.content_type or "application/octet-stream").partition("/")
        if not subtype:
            maintype, subtype = "application", "octet-stream"
        msg.add_attachment(attachment.content, maintype=maintype, subtype=subtype, filename=attachment.filename)


def _build(
    sender: str,
    to: list[str],
    cc: list[str],
    subject: str,
    html: str,
    attachments: list[OutgoingAttachment],
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    if to:
        msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    domain = sender.rpartition("@")[2].rstrip(">") or None
    msg["Message-ID"] = make_msgid(domain=domain)

    msg.set_content(html_to_text(html) if html else "")
    if html:
        msg.add_alternative(html, subtype="html")
    _add_attachments(msg, attachments)
    return msg


def build_outgoing(data: OutgoingMessage, default_sender: str) -> tuple[EmailMessage, list[str]]:
    """Assemble an outgoing message.

    BCC recipients are returned in the envelope list but never written to the
    headers.

    Returns:
        Tuple of (MIME message, envelope recipient addresses)
    """
    msg = _build(
        sender=data.from_email or default_sender,
        to=format_recipients(data.to),
        cc=format_recipients(data.cc),
        subject=data.subject,
        html=sanitize_html(data.message),
        attachments=data.attachments,
    )
    if data.in_reply_to:
        msg["In-Reply-To"] = data.in_reply_to
    if data.references:
        msg["References"] = data.references
    for key, value in data.headers.items():
        if value and key.lower() not in _RESERVED_HEADERS:
            msg[key] = str(value)

    envelope = [r.email for r in (*data.to, *data.cc, *data.bcc) if r.email]
    return msg, envelope


def build_draft(data: DraftData, sender: str) -> EmailMessage:
    """Assemble a draft for APPEND into the Drafts mailbox (BCC kept in headers)."""
    msg = _build(
        sender=sender,
        to=format_recipients(parse_addresses(data.to)),
        cc=format_recipients(parse_addresses(data.cc)),
        subject=data.subject or "",
        html=sanitize_html(data.message),
        attachments=data.attachments,
    )
    bcc = format_recipients(parse_addresses(data.bcc))
    if bcc:
        msg["Bcc"] = ", ".join(bcc)
    return msg
