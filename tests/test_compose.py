"""Unit tests for outgoing message assembly."""

from imap_mail_driver.compose import build_draft, build_outgoing, format_recipients, sanitize_html
from imap_mail_driver.models import DraftData, EmailAddress, OutgoingAttachment, OutgoingMessage


def test_format_recipients_uses_display_name_when_present():
    recipients = [
        EmailAddress(email="jane@example.com", name="Jane Doe"),
        EmailAddress(email="bob@example.com"),
    ]

    assert format_recipients(recipients) == ["Jane Doe <jane@example.com>", "bob@example.com"]


def test_sanitize_html_strips_active_content():
    html = (
        '<p onclick="steal()">Hi</p><script>alert(1)</script>'
        '<a href="javascript:alert(1)">x</a><a href="https://example.com">ok</a>'
    )

    clean = sanitize_html(html)

    assert "<script" not in clean
    assert "onclick" not in clean
    assert "javascript:" not in clean
    assert 'href="https://example.com"' in clean
    assert "<p>Hi</p>" in clean


def test_build_outgoing_keeps_bcc_out_of_headers():
    data = OutgoingMessage(
        to=[EmailAddress(email="jane@example.com", name="Jane Doe")],
        cc=[EmailAddress(email="carl@example.com")],
        bcc=[EmailAddress(email="hidden@example.com")],
        subject="Hello",
        message="<p>Hi there</p>",
    )

    msg, envelope = build_outgoing(data, "me@example.com")

    assert msg["From"] == "me@example.com"
    assert msg["To"] == "Jane Doe <jane@example.com>"
    assert msg["Cc"] == "carl@example.com"
    assert msg["Bcc"] is None
    assert msg["Message-ID"]
    assert envelope == ["jane@example.com", "carl@example.com", "hidden@example.com"]


def test_build_outgoing_has_text_and_html_parts():
    data = OutgoingMessage(to=[EmailAddress(email="jane@example.com")], subject="Hi", message="<p>Hi <b>there</b></p>")

    msg, _ = build_outgoing(data, "me@example.com")

    plain = msg.get_body(("plain",)).get_content()
    assert "there" in plain
    assert "<b>" not in plain
    assert "<b>there</b>" in msg.get_body(("html",)).get_content()


def test_build_outgoing_threads_replies_and_custom_headers():
    data = OutgoingMessage(
        to=[EmailAddress(email="jane@example.com")],
        subject="Re: Hello",
        message="ok",
        in_reply_to="<orig@example.com>",
        references="<orig@example.com>",
        headers={"X-Campaign": "42", "From": "spoof@example.com", "X-Empty": None},
    )

    msg, _ = build_outgoing(data, "me@example.com")

    assert msg["In-Reply-To"] == "<orig@example.com>"
    assert msg["References"] == "<orig@example.com>"
    assert msg["X-Campaign"] == "42"
    assert msg["From"] == "me@example.com"
    assert msg["X-Empty"] is None


def test_build_outgoing_attaches_raw_bytes():
    data = OutgoingMessage(
        to=[EmailAddress(email="jane@example.com")],
        message="see attached",
        attachments=[OutgoingAttachment(filename="a.pdf", content=b"%PDF", content_type="application/pdf")],
    )

    msg, _ = build_outgoing(data, "me@example.com")

    attachments = list(msg.iter_attachments())
    assert [a.get_filename() for a in attachments] == ["a.pdf"]
    assert attachments[0].get_content() == b"%PDF"


def test_build_draft_keeps_bcc_header():
    data = DraftData(to="jane@example.com, Bob <bob@example.com>", bcc="hidden@example.com", subject="Draft", message="wip")

    msg = build_draft(data, "me@example.com")

    assert msg["To"] == "jane@example.com, Bob <bob@example.com>"
    assert msg["Bcc"] == "hidden@example.com"
    assert msg["Subject"] == "Draft"
