"""SMTP credentials.

A credential is any object with a `mechanism` name and the two methods
of `Auth`: `start()` returns the optional initial response once the
server is known, `next()` answers each server challenge. The session
driver handles the base64 framing of the exchange.
"""

import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .errors import AuthError


@dataclass
class ServerInfo:
    """What the credential knows about the server when the exchange starts.

    Attributes:
        name (str): Server host name the session connected to.
        tls (bool): Whether the session is encrypted.
        auth (list[str]): Mechanisms advertised in the EHLO `AUTH` line.
    """

    name: str
    tls: bool = False
    auth: list[str] = field(default_factory=list)


def _is_localhost(name: str) -> bool:
    return name in ("localhost", "127.0.0.1", "::1")


class Auth(ABC):
    """Base class for SMTP credentials."""

    mechanism: str = ""

    @abstractmethod
    def start(self, server: ServerInfo) -> str | None:
        """Returns the initial response, or None to wait for a first challenge.

        Raises:
            AuthError: If the credential must not be used with this server.
        """

    @abstractmethod
    def next(self, challenge: bytes) -> str:
        """Returns the response to a decoded server challenge."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mechanism={self.mechanism}>"


class _PasswordAuth(Auth):
    """Shared checks for mechanisms that send the password in the clear."""

    def __init__(self, username: str, password: str, host: str):
        self.username = username
        self.password = password
        self.host = host

    def _check_server(self, server: ServerInfo) -> None:
        if not server.tls and not _is_localhost(server.name):
            raise AuthError(f"Refusing {self.mechanism} authentication over an unencrypted connection")
        if server.name != self.host:
            raise AuthError(f"Wrong host name for {self.mechanism} authentication: {server.name}")


class PlainAuth(_PasswordAuth):
    """PLAIN authentication (RFC 4616).

    The credential is only sent over TLS or to localhost, and only to the
    host it was created for.

    Example:
        auth = PlainAuth("", "me@domain.com", "secret", "smtp.domain.com")
    """

    mechanism = "PLAIN"

    def __init__(self, identity: str, username: str, password: str, host: str):
        super().__init__(username, password, host)
        self.identity = identity

    def start(self, server: ServerInfo) -> str | None:
        self._check_server(server)
        return f"{self.identity}\0{self.username}\0{self.password}"

    def next(self, challenge: bytes) -> str:
        raise AuthError("Unexpected server challenge during PLAIN authentication")


class LoginAuth(_PasswordAuth):
    """LOGIN authentication: username and password sent as two challenge answers."""

    mechanism = "LOGIN"

    def start(self, server: ServerInfo) -> str | None:
        self._check_server(server)
        return None

    def next(self, challenge: bytes) -> str:
        prompt = challenge.lower()
        if prompt.startswith(b"username"):
            return self.username
        if prompt.startswith(b"password"):
            return self.password
        raise AuthError(f"Unexpected server challenge during LOGIN authentication: {challenge!r}")


class CramMD5Auth(Auth):
    """CRAM-MD5 authentication (RFC 2195); the secret never leaves the client."""

    mechanism = "CRAM-MD5"

    def __init__(self, username: str, secret: str):
        self.username = username
        self.secret = secret

    def start(self, server: ServerInfo) -> str | None:
        return None

    def next(self, challenge: bytes) -> str:
        digest = hmac.new(self.secret.encode("utf-8"), challenge, "md5").hexdigest()
        return f"{self.username} {digest}"


class XOAuth2Auth(Auth):
    """XOAUTH2 authentication with an OAuth2 access token.

    Example:
        auth = XOAuth2Auth("user@gmail.com", access_token)
    """

    mechanism = "XOAUTH2"

    def __init__(self, username: str, access_token: str):
        self.username = username
        self.access_token = access_token

    def start(self, server: ServerInfo) -> str | None:
        return f"user={self.username}\1auth=Bearer {self.access_token}\1\1"

    def next(self, challenge: bytes) -> str:
        # The server sends a JSON error as a challenge; an empty answer
        # makes it finish with the final error reply.
        return ""
