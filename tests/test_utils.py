import io

import pytest

from yakmail import Attachment, BodyPart, HeaderInjectionError, MimeEncodingError, SessionConfig, ValidationError
from yakmail.utils import (
    sanitize_header,
    validate_header_name,
    validate_line,
    validate_protocol_config,
)


class TestLineGuard:
    @pytest.mark.parametrize("value", ["a@example.com\r", "a@example.com\n", "a\r\nb", "\n"])
    def test_rejects_line_breaks(self, value):
        with pytest.raises(HeaderInjectionError) as exc_info:
            validate_line(value)
        assert exc_info.value.value == value

    @pytest.mark.parametrize("value", ["a@example.com", "Name <a@example.com>", ""])
    def test_accepts_single_lines(self, value):
        validate_line(value)

    def test_injection_is_a_validation_error(self):
        with pytest.raises(ValueError):
            validate_line("a\nb")

    def test_sanitize_header(self):
        assert sanitize_header("one\r\ntwo\n\nthree\rfour") == "one two three four"
        assert sanitize_header("plain") == "plain"

    def test_header_name(self):
        validate_header_name("X-Mailer")
        with pytest.raises(ValidationError):
            validate_header_name("X:Mailer")


class TestProtocolConfig:
    def test_valid(self):
        validate_protocol_config({"server": "smtp.example.com", "port": 587})

    @pytest.mark.parametrize(
        "config",
        [
            {"port": 587},
            {"server": "smtp.example.com"},
            {"server": "", "port": 587},
            {"server": "smtp.example.com", "port": 0},
            {"server": "smtp.example.com", "port": 70000},
            {"server": "smtp.example.com", "port": "587"},
            {"server": "smtp.example.com", "port": True},
            ["smtp.example.com", 587],
        ],
    )
    def test_invalid(self, config):
        with pytest.raises(ValidationError):
            validate_protocol_config(config)

    def test_session_config_from_dict(self):
        config = SessionConfig.from_dict({"server": "smtp.example.com", "port": 465, "timeout": 10})
        assert config.host == "smtp.example.com"
        assert config.port == 465
        assert config.timeout == 10
        assert config.insecure_skip_verify is False
        assert config.write_bcc_header is False
        assert config.address == "smtp.example.com:465"

    def test_session_config_unknown_key(self):
        with pytest.raises(ValidationError):
            SessionConfig.from_dict({"server": "smtp.example.com", "port": 25, "tls": True})

    def test_session_config_defaults(self):
        config = SessionConfig("smtp.example.com")
        assert config.port == 25
        assert config.local_name is None

    def test_session_config_rejects_bad_timeout(self):
        with pytest.raises(ValidationError):
            SessionConfig("smtp.example.com", timeout=0)


class TestBodyPart:
    def test_write_and_set(self):
        part = BodyPart()
        assert not part
        assert part.write("Olá") == 4
        part.write(b" mundo")
        assert str(part) == "Olá mundo"
        assert len(part) == 10

        part.set("reset")
        assert bytes(part) == b"reset"

    def test_clear(self):
        part = BodyPart()
        part.set("text")
        part.clear()
        assert len(part) == 0


class TestAttachment:
    def test_content_type_guessed(self):
        assert Attachment("photo.png", data=b"").content_type == "image/png"
        assert Attachment("unknown.zzz", data=b"").content_type == "application/octet-stream"
        assert Attachment("x.png", data=b"", content_type="text/plain").content_type == "text/plain"

    def test_text_reader_is_rejected(self):
        attachment = Attachment("notes.txt", data=io.StringIO("text"))
        with pytest.raises(MimeEncodingError):
            attachment.read()

    def test_from_path(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF")
        attachment = Attachment.from_path(str(path))

        assert attachment.filename == "report.pdf"
        assert attachment.content_type == "application/pdf"
        assert attachment.read() == b"%PDF"
