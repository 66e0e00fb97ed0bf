"""SMTP session driver.

One `SMTPSession.send()` call opens one connection and walks it through

    CONNECTED -> GREETED -> [TLS_UPGRADED] -> [AUTHENTICATED]
        -> ENVELOPE_FROM_SET -> RECIPIENT_ACCEPTED -> PAYLOAD_SENT -> TERMINATED

STARTTLS is used whenever the server offers it, AUTH whenever credentials
were given and the server offers it. Any failure ends the session with
the matching `SendError` subclass; the connection is closed exactly once,
whatever happened after it was opened.
"""

import logging
import ssl
from enum import Enum
from re import MULTILINE, compile
from smtplib import SMTP, SMTPResponseException
from typing import Callable, Iterable

from .auth import Auth, ServerInfo
from .config import SessionConfig
from .errors import (
    AuthError,
    ConnectError,
    EnvelopeError,
    RecipientError,
    TLSError,
    TransferError,
)
from .utils import validate_line

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
_EOL = compile(rb"\r\n|\n|\r(?!\n)")
_LEADING_DOT = compile(rb"^\.", MULTILINE)


class SessionState(Enum):
    NEW = "new"
    CONNECTED = "connected"
    GREETED = "greeted"
    TLS_UPGRADED = "tls_upgraded"
    AUTHENTICATED = "authenticated"
    ENVELOPE_FROM_SET = "envelope_from_set"
    RECIPIENT_ACCEPTED = "recipient_accepted"
    PAYLOAD_SENT = "payload_sent"
    TERMINATED = "terminated"


def quote_data(data: bytes) -> bytes:
    """Normalizes line endings to CRLF and doubles leading dots (RFC 5321, 4.5.2)."""
    return _LEADING_DOT.sub(b"..", _EOL.sub(CRLF, data))


def _text(response) -> str:
    if isinstance(response, bytes):
        return response.decode("utf-8", errors="replace")
    return str(response)


def _reply(exc: Exception) -> tuple[int | None, str | None]:
    if isinstance(exc, SMTPResponseException):
        return exc.smtp_code, _text(exc.smtp_error)
    return None, None


class SMTPSession:
    """Drives a single SMTP transaction over one connection.

    Args:
        config (SessionConfig): Server address and session options.
        auth (Auth | None): Credentials, or None to skip authentication.
        smtp_factory (Callable): Builds the unconnected client; `smtplib.SMTP`
            unless a test replaces it.

    Attributes:
        state (SessionState): Last state reached.
        capabilities (set[str]): Lowercased ESMTP extensions from the last EHLO.
        server_name (str | None): Name used for certificate checks and credentials.
        tls (bool): Whether STARTTLS succeeded.
        accepted (list[str]): Recipients accepted so far.

    Example:
        session = SMTPSession(SessionConfig("smtp.domain.com", 587), auth)
        session.send("me@domain.com", ["you@domain.com"], raw_message)
    """

    def __init__(self, config: SessionConfig, auth: Auth | None = None, smtp_factory: Callable[..., SMTP] = SMTP):
        self.config = config
        self.auth = auth
        self._factory = smtp_factory
        self._client: SMTP | None = None
        self._reset()

    def _reset(self) -> None:
        self.state = SessionState.NEW
        self.capabilities: set[str] = set()
        self.server_name: str | None = None
        self.tls = False
        self.accepted: list[str] = []

    def send(self, from_addr: str, recipients: Iterable[str], message: bytes) -> None:
        """Delivers `message` to `recipients` in one SMTP session.

        Args:
            from_addr (str): Envelope sender.
            recipients (Iterable[str]): Envelope recipients, in order.
            message (bytes): Complete MIME message.

        Raises:
            HeaderInjectionError: If an address contains CR or LF; raised before connecting.
            ConnectError, TLSError, AuthError, EnvelopeError, RecipientError, TransferError:
                When the matching protocol step fails.
        """
        recipients = list(recipients)
        validate_line(from_addr)
        for recipient in recipients:
            validate_line(recipient)

        self._reset()
        self._connect()
        try:
            self._greet()
            if "starttls" in self.capabilities:
                self._starttls()
            if self.auth is not None and "auth" in self.capabilities:
                self._authenticate()
            self._mail(from_addr, self._mail_options(from_addr, recipients))
            for recipient in recipients:
                self._rcpt(recipient)
            self._data(message)
            self._quit()
        finally:
            self._close()

    def _connect(self) -> None:
        host, port = self.config.host, self.config.port
        logger.debug("Connecting to SMTP server", extra={"server": host, "port": port})

        client = self._factory(local_hostname=self.config.local_name, timeout=self.config.timeout)
        try:
            code, response = client.connect(host, port)
        except OSError as exc:
            client.close()
            raise ConnectError(f"Failed to connect to SMTP server at {self.config.address}: {exc}") from exc

        if code != 220:
            client.close()
            raise ConnectError(f"SMTP server at {self.config.address} refused the connection", code, _text(response))

        self._client = client
        self.server_name = host
        self.state = SessionState.CONNECTED

    def _greet(self) -> None:
        client = self._client
        try:
            code, response = client.ehlo()
            if not 200 <= code < 300:
                logger.debug("EHLO refused, falling back to HELO", extra={"code": code})
                code, response = client.helo()
        except OSError as exc:
            raise ConnectError(f"Greeting failed: {exc}") from exc

        if not 200 <= code < 300:
            raise ConnectError("Server refused the greeting", code, _text(response))

        self.capabilities = set(client.esmtp_features) if client.does_esmtp else set()
        self.state = SessionState.GREETED
        logger.debug("Greeted SMTP server", extra={"capabilities": sorted(self.capabilities)})

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self.config.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _starttls(self) -> None:
        client = self._client
        try:
            client.starttls(context=self._tls_context())
            code, response = client.ehlo()
        except (OSError, ValueError) as exc:
            code, response = _reply(exc)
            raise TLSError(f"STARTTLS failed: {exc}", code, response) from exc

        if not 200 <= code < 300:
            raise TLSError("Server refused EHLO after STARTTLS", code, _text(response))

        self.tls = True
        self.capabilities = set(client.esmtp_features)
        self.state = SessionState.TLS_UPGRADED
        logger.debug("Upgraded SMTP session to TLS", extra={"verify": not self.config.insecure_skip_verify})

    def _authenticate(self) -> None:
        client = self._client
        server = ServerInfo(
            name=self.server_name,
            tls=self.tls,
            auth=client.esmtp_features.get("auth", "").upper().split(),
        )
        initial = self.auth.start(server)

        def respond(challenge: bytes | None = None) -> str | None:
            if challenge is None:
                return initial
            return self.auth.next(challenge)

        try:
            client.auth(self.auth.mechanism, respond)
        except (OSError, UnicodeError) as exc:
            code, response = _reply(exc)
            logger.warning("SMTP authentication failed", extra={"server": self.server_name, "code": code})
            raise AuthError(f"{self.auth.mechanism} authentication failed: {exc}", code, response) from exc

        self.state = SessionState.AUTHENTICATED
        logger.debug("Authenticated", extra={"mechanism": self.auth.mechanism})

    def _mail_options(self, from_addr: str, recipients: list[str]) -> list[str]:
        """Returns the MAIL FROM options needed for the envelope addresses.

        Non-ASCII addresses need the SMTPUTF8 extension; without it they are
        refused here, before MAIL FROM is sent.
        """
        if from_addr.isascii() and all(r.isascii() for r in recipients):
            return []
        if "smtputf8" in self.capabilities:
            return ["SMTPUTF8"]
        if not from_addr.isascii():
            raise EnvelopeError(f"Server does not support SMTPUTF8, cannot send from {from_addr}")
        recipient = next(r for r in recipients if not r.isascii())
        logger.warning("Recipient needs SMTPUTF8", extra={"recipient": recipient})
        raise RecipientError(recipient)

    def _mail(self, from_addr: str, options: list[str]) -> None:
        try:
            code, response = self._client.mail(from_addr, options)
        except (OSError, UnicodeEncodeError) as exc:
            raise EnvelopeError(f"MAIL FROM failed: {exc}") from exc

        if code != 250:
            logger.warning("Sender refused", extra={"sender": from_addr, "code": code})
            raise EnvelopeError(f"Sender refused: {from_addr}", code, _text(response))
        self.state = SessionState.ENVELOPE_FROM_SET

    def _rcpt(self, recipient: str) -> None:
        try:
            code, response = self._client.rcpt(recipient)
        except (OSError, UnicodeEncodeError) as exc:
            raise RecipientError(recipient) from exc

        if code not in (250, 251):
            logger.warning("Recipient refused", extra={"recipient": recipient, "code": code})
            raise RecipientError(recipient, code, _text(response))
        self.accepted.append(recipient)
        self.state = SessionState.RECIPIENT_ACCEPTED

    def _data(self, message: bytes) -> None:
        client = self._client
        try:
            client.putcmd("data")
            code, response = client.getreply()
        except OSError as exc:
            raise TransferError(f"DATA command failed: {exc}") from exc
        if code != 354:
            raise TransferError("Server refused DATA", code, _text(response))

        payload = quote_data(message)
        if not payload.endswith(CRLF):
            payload += CRLF
        try:
            client.send(payload)
        except OSError as exc:
            raise TransferError(f"Failed to write message data: {exc}") from exc

        try:
            client.send(b"." + CRLF)
            code, response = client.getreply()
        except OSError as exc:
            raise TransferError(f"Failed to finish message data: {exc}") from exc
        if code != 250:
            logger.warning("Message data rejected", extra={"code": code})
            raise TransferError("Server rejected the message", code, _text(response))

        self.state = SessionState.PAYLOAD_SENT
        logger.debug("Message data accepted", extra={"size": len(payload)})

    def _quit(self) -> None:
        try:
            code, response = self._client.docmd("quit")
        except OSError as exc:
            raise TransferError(f"QUIT failed: {exc}") from exc
        if code != 221:
            raise TransferError("Server refused QUIT", code, _text(response))
        self.state = SessionState.TERMINATED

    def _close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except OSError as exc:
            logger.debug("Error closing SMTP connection", extra={"error": str(exc)})


__all__ = ["SMTPSession", "SessionState", "quote_data"]
