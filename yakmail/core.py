import logging
from smtplib import SMTP
from typing import BinaryIO, Callable

from jinja2 import Template  # type: ignore

from .auth import Auth
from .body import Attachment, BodyPart
from .config import SessionConfig
from .errors import ValidationError
from .mime import RESERVED_HEADERS, MimeBuilder
from .smtp import SMTPSession
from .utils import validate_header_name, validate_path, validate_template

logger = logging.getLogger(__name__)


def _address_list(addresses: tuple[str, ...]) -> list[str]:
    return [a.strip() for a in addresses if a and a.strip()]


class Email:
    """Composes an email and delivers it through an SMTP server.

    The message is built when `send()` or `render()` is called: attachment
    files and readers are read at that point, and an invalid address is
    rejected before any connection is opened.

    Example:
        smtp = {"server": "smtp.domain.com", "port": 587}
        auth = PlainAuth("", "me@domain.com", "secret", "smtp.domain.com")

        mail = Email(smtp, auth)
        mail.from_addr = "me@domain.com"
        mail.subject = "Welcome!"
        mail.to("user@domain.com")
        mail.plain.set("Welcome to our platform.")
        mail.add_text("<h1>Hello!</h1><p>Welcome to our platform.</p>")
        mail.add_attachment("report.pdf")
        mail.send()
    """

    def __init__(self, smtp: SessionConfig | dict, auth: Auth | None = None, smtp_factory: Callable[..., SMTP] = SMTP):
        """Initializes the email with the server it will be sent through.

        Args:
            smtp (SessionConfig | dict): Session config, or a dict with keys:
                - `server` (str): SMTP server hostname or IP.
                - `port` (int): SMTP port.
                - optional `insecure_skip_verify`, `write_bcc_header`,
                  `local_name` and `timeout` (see `SessionConfig`).
            auth (Auth | None): Credentials, or None for servers that relay
                without authentication.
            smtp_factory (Callable, optional): Creates the SMTP client;
                `smtplib.SMTP` unless replaced.

        Raises:
            ValidationError: If the SMTP config is invalid.
        """
        self.config = smtp if isinstance(smtp, SessionConfig) else SessionConfig.from_dict(smtp)
        self.auth = auth
        self.smtp_factory = smtp_factory

        self.subject = ""
        self.from_addr = ""
        self.from_name = ""
        self.reply_to = ""

        self.to_addrs: list[str] = []
        self.cc_addrs: list[str] = []
        self.bcc_addrs: list[str] = []

        self.plain = BodyPart()
        self.html = BodyPart()
        self.attachments: list[Attachment] = []
        self.headers: list[tuple[str, str]] = []

        self._write_bcc_header = self.config.write_bcc_header

    def to(self, *addresses: str) -> None:
        """Sets the To recipients, replacing any previous ones.

        Surrounding whitespace is trimmed and empty entries are ignored.

        Example:
            to("user1@domain.com", "User Two <user2@domain.com>")
        """
        self.to_addrs = _address_list(addresses)

    def cc(self, *addresses: str) -> None:
        """Sets the Cc recipients, replacing any previous ones."""
        self.cc_addrs = _address_list(addresses)

    def bcc(self, *addresses: str) -> None:
        """Sets the Bcc recipients, replacing any previous ones.

        Bcc recipients receive the message through the SMTP envelope only;
        no `Bcc` header is written unless `write_bcc_header(True)` is called.
        """
        self.bcc_addrs = _address_list(addresses)

    def write_bcc_header(self, enabled: bool) -> None:
        """Turns writing of the `Bcc` header on or off for this email."""
        self._write_bcc_header = enabled

    def add_text(self, html: str) -> None:
        """Appends HTML content to the HTML body.

        Args:
            html (str): HTML fragment to append.

        Raises:
            ValidationError: If `html` is not a string.

        Example:
            add_text("<p>Hello, this is a test message.</p>")
        """
        if not isinstance(html, str):
            raise ValidationError("Text must be a string.")
        self.html.write(html)

    def use_template(self, file: str, **variables) -> None:
        """Renders a Jinja2 template and appends it to the HTML body.

        Args:
            file (str): Path to the template file.
            **variables: Values for the template placeholders.

        Raises:
            ValidationError: If the file is not a template file.
            FileNotFoundError: If the file does not exist.

        Example:
            use_template("templates/welcome.html", name="John", version="1.0.0")
        """
        validate_template(file)

        with open(file, "r", encoding="utf-8") as f:
            html = Template(f.read()).render(**variables)
        self.add_text(html)

    def attach(self, filename: str, data: bytes | BinaryIO, content_type: str | None = None) -> None:
        """Adds an attachment from bytes or a binary reader.

        A reader is only read when the message is built.

        Args:
            filename (str): Name shown to the recipient.
            data (bytes | BinaryIO): Attachment content.
            content_type (str, optional): MIME type; guessed from `filename` when omitted.

        Example:
            attach("report.csv", b"a,b\\n1,2\\n", "text/csv")
        """
        self.attachments.append(Attachment(filename, data=data, content_type=content_type))

    def attach_inline(self, filename: str, data: bytes | BinaryIO, content_type: str | None = None) -> None:
        """Adds an attachment embedded in the HTML body.

        The HTML refers to it as `cid:<filename>`.

        Example:
            attach_inline("logo.png", logo_bytes)
            add_text('<img src="cid:logo.png">')
        """
        self.attachments.append(Attachment(filename, data=data, content_type=content_type, inline=True))

    def add_attachment(self, attachment_path: str) -> None:
        """Adds a file from disk as an attachment.

        Args:
            attachment_path (str): Path to the file to be attached.

        Raises:
            ValidationError: If the path is invalid.
            FileNotFoundError: If the file does not exist.

        Example:
            add_attachment("reports/monthly_report.pdf")
        """
        validate_path(attachment_path)
        self.attachments.append(Attachment.from_path(attachment_path))

    def add_header(self, name: str, value: str) -> None:
        """Adds a custom header; line breaks in `value` become spaces.

        Raises:
            ValidationError: If `name` is invalid or is a header the builder writes itself.

        Example:
            add_header("List-Unsubscribe", "<mailto:unsubscribe@domain.com>")
        """
        validate_header_name(name)
        if name.lower() in RESERVED_HEADERS:
            raise ValidationError(f"Header {name!r} is set by the message builder.")
        self.headers.append((name, value))

    def clear_body(self) -> None:
        """Clears both body parts, keeping recipients and attachments."""
        self.plain.clear()
        self.html.clear()

    def clear_attachments(self) -> None:
        self.attachments = []

    def envelope_recipients(self) -> list[str]:
        """Returns the SMTP envelope recipients: To followed by Bcc."""
        return [*self.to_addrs, *self.bcc_addrs]

    def render(self) -> bytes:
        """Builds the raw MIME message without sending it.

        Used with delivery channels that take a raw message, such as an HTTP
        mail API.

        Raises:
            HeaderInjectionError: If an address contains CR or LF.
            MimeEncodingError: If an attachment cannot be read.
        """
        return MimeBuilder(write_bcc_header=self._write_bcc_header).build(self)

    def send(self) -> None:
        """Builds the message and delivers it in a single SMTP session.

        Raises:
            HeaderInjectionError: If an address contains CR or LF; nothing is sent.
            MimeEncodingError: If an attachment cannot be read; nothing is sent.
            SendError: The `ConnectError`, `TLSError`, `AuthError`,
                `EnvelopeError`, `RecipientError` or `TransferError` of the
                step that failed.
        """
        message = self.render()

        session = SMTPSession(self.config, self.auth, self.smtp_factory)
        recipients = self.envelope_recipients()
        session.send(self.from_addr, recipients, message)
        logger.info(
            "Email sent",
            extra={"server": self.config.address, "recipients": len(recipients), "size": len(message)},
        )

    def describe(self) -> str:
        """Returns a summary of the email for logs and debugging.

        Credentials are never included, only whether they are set. Bodies
        are summarized by size and attachments by filename.
        """
        attachments = [f"{{filename: {a.filename}}}" for a in self.attachments]
        return (
            f"<Email from={self.from_addr!r} from_name={self.from_name!r} "
            f"html={len(self.html)} bytes plain={len(self.plain)} bytes "
            f"to={self.to_addrs} cc={self.cc_addrs} bcc={self.bcc_addrs} "
            f"subject={self.subject!r} host={self.config.address!r} "
            f"attachments ({len(attachments)}): {attachments} auth set: {self.auth is not None}>"
        )

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return self.describe()
