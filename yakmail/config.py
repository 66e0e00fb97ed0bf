"""Per-session settings for the SMTP driver and the MIME builder."""

from dataclasses import dataclass, fields

from .errors import ValidationError
from .utils import validate_protocol_config

DEFAULT_PORT = 25
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class SessionConfig:
    """Connection settings for one SMTP server.

    Attributes:
        host (str): SMTP server hostname or IP; also the name checked
            against the server certificate after STARTTLS.
        port (int): SMTP port (default: 25).
        insecure_skip_verify (bool): Accept any certificate during STARTTLS.
            Only for test servers; off by default.
        write_bcc_header (bool): Write a `Bcc` header into the message.
        local_name (str | None): Name sent with EHLO/HELO; defaults to the
            local fully qualified domain name.
        timeout (float): Socket timeout in seconds for every step.
    """

    host: str
    port: int = DEFAULT_PORT
    insecure_skip_verify: bool = False
    write_bcc_header: bool = False
    local_name: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        validate_protocol_config({"server": self.host, "port": self.port})
        if self.timeout is not None and self.timeout <= 0:
            raise ValidationError("Timeout must be a positive number of seconds.")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_dict(cls, smtp: dict) -> "SessionConfig":
        """Builds a config from a `{"server": ..., "port": ...}` dict.

        The optional keys `insecure_skip_verify`, `write_bcc_header`,
        `local_name` and `timeout` are passed through.

        Raises:
            ValidationError: If the dict is invalid or has unknown keys.

        Example:
            SessionConfig.from_dict({"server": "smtp.domain.com", "port": 587})
        """
        validate_protocol_config(smtp)
        options = {f.name for f in fields(cls)} - {"host", "port"}
        unknown = set(smtp) - options - {"server", "port"}
        if unknown:
            raise ValidationError(f"Unknown SMTP config keys: {', '.join(sorted(unknown))}")

        extra = {key: smtp[key] for key in options if key in smtp}
        return cls(host=smtp["server"], port=smtp["port"], **extra)
