"""yakmail package initialization module.

This package composes emails (plain and HTML bodies, inline images and
file attachments) into MIME messages and delivers them over SMTP, with
STARTTLS and authentication used whenever the server offers them.

Modules:
    core (module): The `Email` facade used to compose, render and send.
    mime (module): Builds the raw MIME message.
    smtp (module): Drives the SMTP session for one message.
    auth (module): PLAIN, LOGIN, CRAM-MD5 and XOAUTH2 credentials.
    body (module): Body parts and attachments.
    config (module): Per-session settings.
    errors (module): Exceptions raised by the package.
    utils (module): Validation helpers.

Example:
    from yakmail import Email, PlainAuth

    smtp = {"server": "smtp.domain.com", "port": 587}
    auth = PlainAuth("", "me@domain.com", "secret", "smtp.domain.com")

    mail = Email(smtp, auth)
    mail.from_addr = "me@domain.com"
    mail.subject = "Hello!"
    mail.to("recipient@domain.com")
    mail.add_text("<p>This is a test email.</p>")
    mail.send()
"""

import logging

from .auth import Auth, CramMD5Auth, LoginAuth, PlainAuth, ServerInfo, XOAuth2Auth
from .body import Attachment, BodyPart
from .config import SessionConfig
from .core import Email
from .errors import (
    AuthError,
    BuildError,
    ConnectError,
    EnvelopeError,
    HeaderInjectionError,
    MailError,
    MimeEncodingError,
    RecipientError,
    SendError,
    TLSError,
    TransferError,
    ValidationError,
)
from .mime import MimeBuilder
from .smtp import SessionState, SMTPSession

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Email",
    "SessionConfig",
    "SMTPSession",
    "SessionState",
    "MimeBuilder",
    "BodyPart",
    "Attachment",
    "Auth",
    "ServerInfo",
    "PlainAuth",
    "LoginAuth",
    "CramMD5Auth",
    "XOAuth2Auth",
    "MailError",
    "ValidationError",
    "HeaderInjectionError",
    "BuildError",
    "MimeEncodingError",
    "SendError",
    "ConnectError",
    "TLSError",
    "AuthError",
    "EnvelopeError",
    "RecipientError",
    "TransferError",
]
