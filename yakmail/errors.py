"""Exceptions raised while building or sending an email.

Every failure has its own class so callers can tell a rejected address from
a refused recipient or a broken connection. Validation errors derive from
``ValueError`` and delivery errors from ``RuntimeError``.
"""


class MailError(Exception):
    """Base exception for all yakmail errors."""


class ValidationError(MailError, ValueError):
    """Raised when an input value is not acceptable."""


class HeaderInjectionError(ValidationError):
    """Raised when a value bound for a header or SMTP command contains CR or LF."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Line break found in value: {value!r}")


class BuildError(MailError):
    """Raised when the MIME message cannot be assembled."""


class MimeEncodingError(BuildError):
    """Raised when an attachment's content cannot be read."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(f"Cannot read attachment {filename!r}: {reason}")


class SendError(MailError, RuntimeError):
    """Base class for failures during the SMTP session.

    Attributes:
        code (int | None): SMTP reply code, when the server sent one.
        response (str | None): SMTP reply text, when the server sent one.
    """

    def __init__(self, message: str, code: int | None = None, response: str | None = None):
        self.code = code
        self.response = response
        if code is not None:
            message = f"{message} ({code} {response or ''})".rstrip()
        super().__init__(message)


class ConnectError(SendError):
    """Raised when the server cannot be reached or refuses the connection."""


class TLSError(SendError):
    """Raised when the STARTTLS upgrade fails."""


class AuthError(SendError):
    """Raised when authentication is refused or cannot be attempted safely."""


class EnvelopeError(SendError):
    """Raised when the server refuses the MAIL FROM command."""


class RecipientError(SendError):
    """Raised when the server refuses a RCPT TO command, or cannot take the address at all.

    Attributes:
        address (str): The refused recipient.
    """

    def __init__(self, address: str, code: int | None = None, response: str | None = None):
        self.address = address
        super().__init__(f"Recipient refused: {address}", code, response)


class TransferError(SendError):
    """Raised when the DATA transfer or the closing QUIT fails."""


__all__ = [
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
