import base64
import socketserver
import threading
from smtplib import SMTPAuthenticationError, SMTPResponseException

import pytest

from yakmail import Email, SessionConfig


class FakeServer:
    """Scripted SMTP server; hands out FakeSMTP clients in place of smtplib.SMTP.

    `replies` maps a step ("connect", "ehlo", "helo", "starttls", "auth",
    "mail", ("rcpt", address), "data", "end_data", "send", "quit") to a
    `(code, message)` tuple or an exception to raise.
    """

    def __init__(self, features=None, tls_features=None, replies=None, auth_challenges=()):
        self.features = {"8bitmime": "", "size": "35882577"} if features is None else features
        self.tls_features = tls_features
        self.replies = dict(replies or {})
        self.auth_challenges = list(auth_challenges)
        self.calls = []
        self.clients = []
        self.data = b""
        self.close_count = 0
        self.tls = False
        self.mail_options = None

    def factory(self, local_hostname=None, timeout=None):
        client = FakeSMTP(self, local_hostname, timeout)
        self.clients.append(client)
        return client

    def reply(self, key, default):
        reply = self.replies.get(key, default)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def commands(self):
        return [call[0] for call in self.calls]


class FakeSMTP:
    """The part of the smtplib.SMTP surface the session driver uses."""

    def __init__(self, server, local_hostname, timeout):
        self.server = server
        self.local_hostname = local_hostname
        self.timeout = timeout
        self.esmtp_features = {}
        self.does_esmtp = False
        self._pending = None

    def _record(self, *call):
        self.server.calls.append(call)

    def connect(self, host, port):
        self._record("connect", host, port)
        return self.server.reply("connect", (220, b"fake.example ESMTP ready"))

    def ehlo(self, name=""):
        self._record("ehlo")
        code, msg = self.server.reply("ehlo", (250, b"fake.example"))
        if code == 250:
            features = self.server.features
            if self.server.tls and self.server.tls_features is not None:
                features = self.server.tls_features
            self.esmtp_features = dict(features)
            self.does_esmtp = True
        return code, msg

    def helo(self, name=""):
        self._record("helo")
        return self.server.reply("helo", (250, b"fake.example"))

    def starttls(self, context=None):
        self._record("starttls", context)
        code, msg = self.server.reply("starttls", (220, b"2.0.0 Ready to start TLS"))
        if code != 220:
            raise SMTPResponseException(code, msg)
        self.server.tls = True
        self.esmtp_features = {}
        self.does_esmtp = False
        return code, msg

    def auth(self, mechanism, authobject, *, initial_response_ok=True):
        initial = authobject() if initial_response_ok else None
        self._record("auth", mechanism, initial)
        for challenge in self.server.auth_challenges:
            self._record("auth_response", authobject(challenge))
        code, msg = self.server.reply("auth", (235, b"2.7.0 Authentication successful"))
        if code not in (235, 503):
            raise SMTPAuthenticationError(code, msg)
        return code, msg

    def mail(self, sender, options=()):
        self._record("mail", sender)
        self.server.mail_options = list(options)
        return self.server.reply("mail", (250, b"2.1.0 Ok"))

    def rcpt(self, recipient, options=()):
        self._record("rcpt", recipient)
        return self.server.reply(("rcpt", recipient), (250, b"2.1.5 Ok"))

    def putcmd(self, cmd, args=""):
        self._record("putcmd", cmd)
        self._pending = cmd

    def getreply(self):
        pending, self._pending = self._pending, None
        if pending == "data":
            return self.server.reply("data", (354, b"End data with <CR><LF>.<CR><LF>"))
        return self.server.reply("end_data", (250, b"2.0.0 Ok: queued"))

    def send(self, data):
        if data == b".\r\n":
            self._record("end_data")
            self._pending = "end_data"
            return
        self._record("send", len(data))
        self.server.reply("send", None)
        self.server.data += data

    def docmd(self, cmd, args=""):
        self._record(cmd)
        return self.server.reply(cmd, (221, b"2.0.0 Bye"))

    def close(self):
        self._record("close")
        self.server.close_count += 1


class _SMTPHandler(socketserver.StreamRequestHandler):
    """Answers one client connection for a SocketSMTPServer."""

    def write(self, line):
        self.wfile.write(line.encode("utf-8") + b"\r\n")

    def readline(self):
        return self.rfile.readline().decode("utf-8").rstrip("\r\n")

    def handle(self):
        state = self.server.state
        self.write("220 local.test ESMTP ready")
        while True:
            line = self.readline()
            if not line:
                return
            state.lines.append(line)
            verb = line.split(" ", 1)[0].upper()
            if verb == "EHLO":
                replies = ["local.test", *state.extensions]
                for reply in replies[:-1]:
                    self.write(f"250-{reply}")
                self.write(f"250 {replies[-1]}")
            elif verb == "AUTH":
                self.login(line)
            elif verb in ("MAIL", "RCPT"):
                self.write("250 2.1.0 Ok")
            elif verb == "DATA":
                self.write("354 End data with <CR><LF>.<CR><LF>")
                state.messages.append(self.read_data())
                self.write("250 2.0.0 Ok: queued")
            elif verb == "QUIT":
                self.write("221 2.0.0 Bye")
                return
            else:
                self.write("502 5.5.2 Command not recognized")

    def read_data(self):
        lines = []
        while True:
            raw = self.rfile.readline()
            if raw in (b".\r\n", b""):
                return b"".join(lines)
            lines.append(raw[1:] if raw.startswith(b".") else raw)

    def login(self, line):
        state = self.server.state
        if line.split()[1].upper() != "LOGIN":
            self.write("504 5.5.4 Unrecognized authentication type")
            return
        answers = []
        for prompt in (b"Username:", b"Password:"):
            self.write("334 " + base64.b64encode(prompt).decode("ascii"))
            answers.append(base64.b64decode(self.readline()).decode("utf-8"))
        state.logins.append(tuple(answers))
        if tuple(answers) == state.credentials:
            self.write("235 2.7.0 Authentication successful")
        else:
            self.write("535 5.7.8 Authentication credentials invalid")


class SocketSMTPServer:
    """Minimal SMTP server on a local socket, for tests with the real smtplib client.

    Speaks EHLO, AUTH LOGIN, MAIL, RCPT, DATA and QUIT. `lines` keeps every
    command line received, `messages` the unstuffed DATA payloads.
    """

    def __init__(self, extensions=(), credentials=None):
        self.extensions = list(extensions)
        self.credentials = credentials
        self.lines = []
        self.messages = []
        self.logins = []

        self._server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _SMTPHandler)
        self._server.daemon_threads = True
        self._server.state = self
        self.host, self.port = self._server.server_address
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def config(self, **options):
        options.setdefault("local_name", "client.test")
        options.setdefault("timeout", 5)
        return SessionConfig(self.host, self.port, **options)

    def commands(self):
        return [line.lower() for line in self.lines]

    def stop(self):
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def smtp_server():
    """Starts SocketSMTPServer instances and stops them after the test."""
    servers = []

    def start(**kwargs):
        server = SocketSMTPServer(**kwargs)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def config():
    return SessionConfig("smtp.example.com", 587)


@pytest.fixture
def mail(config, server):
    mail = Email(config, smtp_factory=server.factory)
    mail.from_addr = "sender@example.com"
    mail.subject = "Test Subject"
    mail.to("to@example.com")
    return mail
