"""Validation helpers shared by the builder, the session driver and the facade."""

from os.path import isfile, isdir, splitext
from re import compile

from .errors import HeaderInjectionError, ValidationError

_LINE_BREAKS = compile(r"[\r\n]+")
_HEADER_NAME = compile(r"^[!-9;-~]+$")

TEMPLATE_EXTENSIONS = {".html", ".htm", ".j2", ".jinja", ".jinja2", ".txt"}


def validate_line(value: str) -> None:
    """Rejects a value that would break out of a single protocol or header line.

    Args:
        value (str): Address or other value written into an SMTP command
            or a MIME header.

    Raises:
        HeaderInjectionError: If `value` contains a carriage return or line feed.
    """
    if "\r" in value or "\n" in value:
        raise HeaderInjectionError(value)


def sanitize_header(value: str) -> str:
    """Collapses every run of CR/LF characters into a single space.

    Example:
        sanitize_header("Monthly\\r\\nreport")  # "Monthly report"
    """
    return _LINE_BREAKS.sub(" ", value)


def validate_header_name(name: str) -> None:
    """Checks a custom header field name (RFC 5322 ftext).

    Raises:
        HeaderInjectionError: If the name contains a line break.
        ValidationError: If the name is empty or has a colon, space or control character.
    """
    validate_line(name)
    if not _HEADER_NAME.match(name):
        raise ValidationError(f"Invalid header name: {name!r}")


def validate_protocol_config(config: dict) -> None:
    """Validates a `{"server": ..., "port": ...}` connection dict.

    Raises:
        ValidationError: If a key is missing, the server is empty or the port is out of range.
    """
    if not isinstance(config, dict):
        raise ValidationError("Protocol config must be a dict.")
    for key in ("server", "port"):
        if key not in config:
            raise ValidationError(f"Protocol config is missing the '{key}' key.")

    server = config["server"]
    if not isinstance(server, str) or not server.strip():
        raise ValidationError("Server must be a non-empty string.")
    validate_line(server)

    port = config["port"]
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValidationError(f"Port must be an integer between 1 and 65535, got {port!r}.")


def validate_path(path: str) -> None:
    """Checks that `path` points to an existing regular file.

    Raises:
        ValidationError: If `path` is not a string or is a directory.
        FileNotFoundError: If the file does not exist.
    """
    if not isinstance(path, str) or not path:
        raise ValidationError("Path must be a non-empty string.")
    if isdir(path):
        raise ValidationError(f"Path is a directory: {path}")
    if not isfile(path):
        raise FileNotFoundError(f"File not found: {path}")


def validate_template(path: str) -> None:
    """Checks that `path` is an existing template file with a known extension.

    Raises:
        ValidationError: If the extension is not a template extension.
        FileNotFoundError: If the file does not exist.
    """
    validate_path(path)
    if splitext(path)[1].lower() not in TEMPLATE_EXTENSIONS:
        raise ValidationError(f"Not a template file: {path}")
