"""MIME builder: turns an email's fields and content into RFC 5322 bytes.

The body tree is assembled with the `email.mime` classes:

    text/plain or text/html                  one body variant
    multipart/alternative [plain, html]      both variants
    multipart/related [html, inline...]      HTML with embedded images
    multipart/mixed [body, attachment...]    attachments present

Every multipart node gets its own random boundary, checked against the
already serialized children before it is used.
"""

import logging
from email import encoders
from email.charset import QP, Charset
from email.header import Header
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.policy import compat32
from email.utils import formataddr, formatdate, make_msgid, parseaddr
from uuid import uuid4

from .body import Attachment
from .utils import sanitize_header, validate_line

logger = logging.getLogger(__name__)

POLICY = compat32.clone(linesep="\r\n")

# Headers written by the builder itself; custom headers may not replace them.
RESERVED_HEADERS = {
    "from",
    "mime-version",
    "date",
    "message-id",
    "reply-to",
    "subject",
    "to",
    "cc",
    "bcc",
    "content-type",
    "content-transfer-encoding",
}

_UTF8_QP = Charset("utf-8")
_UTF8_QP.body_encoding = QP


def _encode_header(value: str) -> str | Header:
    value = sanitize_header(value)
    if value.isascii():
        return value
    return Header(value, "utf-8")


def _text_part(content: bytes, subtype: str) -> MIMEText:
    part = MIMEText(content.decode("utf-8", errors="replace"), subtype, _UTF8_QP)
    del part["MIME-Version"]
    return part


def _multipart(subtype: str) -> MIMEMultipart:
    part = MIMEMultipart(subtype)
    del part["MIME-Version"]
    return part


class MimeBuilder:
    """Builds the raw MIME message for an email.

    Args:
        write_bcc_header (bool): Write the Bcc recipients into a `Bcc` header.
            Off by default, Bcc recipients only belong to the SMTP envelope.

    Example:
        raw = MimeBuilder().build(mail)
    """

    def __init__(self, write_bcc_header: bool = False):
        self.write_bcc_header = write_bcc_header
        self._boundaries: set[str] = set()

    def build(self, mail) -> bytes:
        """Serializes `mail` into a CRLF terminated MIME document.

        Args:
            mail: An object exposing the `Email` fields (`from_addr`,
                `from_name`, `reply_to`, `subject`, `to_addrs`, `cc_addrs`,
                `bcc_addrs`, `plain`, `html`, `attachments`, `headers`).

        Returns:
            bytes: The complete message.

        Raises:
            HeaderInjectionError: If an address contains CR or LF.
            MimeEncodingError: If an attachment cannot be read.
        """
        self._validate_addresses(mail)
        self._boundaries = set()

        root = self._build_body(mail)
        content_headers = [(k, v) for k, v in root.items() if k.lower() != "mime-version"]
        for name in {k for k, _ in root.items()}:
            del root[name]

        self._write_headers(root, mail)
        for name, value in content_headers:
            root[name] = value

        raw = root.as_bytes(policy=POLICY)
        logger.debug(
            "Built MIME message",
            extra={"size": len(raw), "content_type": root.get_content_type()},
        )
        return raw

    def _validate_addresses(self, mail) -> None:
        for addr in (mail.from_addr, mail.reply_to):
            if addr:
                validate_line(addr)
        for addr in (*mail.to_addrs, *mail.cc_addrs, *mail.bcc_addrs):
            validate_line(addr)

    def _write_headers(self, root, mail) -> None:
        if mail.from_name:
            root["From"] = formataddr((sanitize_header(mail.from_name), mail.from_addr))
        else:
            root["From"] = mail.from_addr or ""
        if mail.reply_to:
            root["Reply-To"] = mail.reply_to
        if mail.to_addrs:
            root["To"] = ", ".join(mail.to_addrs)
        if mail.cc_addrs:
            root["Cc"] = ", ".join(mail.cc_addrs)
        if self.write_bcc_header and mail.bcc_addrs:
            root["Bcc"] = ", ".join(mail.bcc_addrs)
        root["Subject"] = _encode_header(mail.subject or "")

        root["MIME-Version"] = "1.0"
        root["Date"] = formatdate(localtime=True)
        domain = parseaddr(mail.from_addr or "")[1].rpartition("@")[2]
        root["Message-ID"] = make_msgid(domain=domain or "localhost")

        for name, value in mail.headers:
            root[name] = _encode_header(value)

    def _build_body(self, mail):
        inline = [a for a in mail.attachments if a.inline]
        attached = [a for a in mail.attachments if not a.inline]

        html = None
        if mail.html:
            html = _text_part(bytes(mail.html), "html")
            if inline:
                related = _multipart("related")
                related.attach(html)
                for attachment in inline:
                    related.attach(self._attachment_part(attachment))
                self._assign_boundary(related)
                html = related
                inline = []

        plain = _text_part(bytes(mail.plain), "plain") if mail.plain else None

        if plain is not None and html is not None:
            body = _multipart("alternative")
            body.attach(plain)
            body.attach(html)
            self._assign_boundary(body)
        elif html is not None:
            body = html
        elif plain is not None:
            body = plain
        else:
            body = None

        # Inline attachments without an HTML body are carried as plain parts.
        attached = inline + attached
        if not attached:
            return body if body is not None else _text_part(b"", "plain")

        mixed = _multipart("mixed")
        if body is not None:
            mixed.attach(body)
        for attachment in attached:
            mixed.attach(self._attachment_part(attachment))
        self._assign_boundary(mixed)
        return mixed

    def _attachment_part(self, attachment: Attachment) -> MIMEBase:
        content = attachment.read()
        filename = sanitize_header(attachment.filename)

        part = MIMEBase(attachment.maintype, attachment.subtype, name=filename)
        del part["MIME-Version"]
        part.set_payload(content)
        encoders.encode_base64(part)

        if attachment.inline:
            part.add_header("Content-ID", f"<{filename}>")
            part.add_header("Content-Disposition", "inline", filename=filename)
        else:
            part.add_header("Content-Disposition", "attachment", filename=filename)
        return part

    def _assign_boundary(self, part: MIMEMultipart) -> None:
        """Sets a boundary that occurs in none of the part's serialized children."""
        content = b"".join(child.as_bytes(policy=POLICY) for child in part.get_payload())
        while True:
            boundary = f"=_{uuid4().hex}"
            if boundary not in self._boundaries and boundary.encode("ascii") not in content:
                break
        self._boundaries.add(boundary)
        part.set_boundary(boundary)
