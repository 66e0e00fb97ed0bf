"""Content model: the two body variants and the attachment list."""

from dataclasses import dataclass, field
from mimetypes import guess_type
from os.path import basename
from typing import BinaryIO

from .errors import MimeEncodingError

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BodyPart:
    """A writable text buffer holding one body variant (plain or HTML).

    Text is stored UTF-8 encoded. The part behaves like a small file, so it
    can be handed to anything that calls `write()`.

    Example:
        mail.html.write("<p>Hello</p>")
        mail.plain.set("Hello")
    """

    def __init__(self):
        self._buf = bytearray()

    def write(self, data: str | bytes) -> int:
        """Appends `data` to the part and returns the number of bytes written."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buf.extend(data)
        return len(data)

    def set(self, data: str | bytes) -> None:
        """Replaces the content of the part with `data`."""
        self.clear()
        self.write(data)

    def clear(self) -> None:
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)

    def __bool__(self) -> bool:
        return len(self._buf) > 0

    def __bytes__(self) -> bytes:
        return bytes(self._buf)

    def __str__(self) -> str:
        return self._buf.decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return f"<BodyPart {len(self)} bytes>"


@dataclass
class Attachment:
    """A file attached to the email.

    Exactly one of `data` and `path` is set. Content behind a reader or a
    path is only read when the message is built.

    Attributes:
        filename (str): Name announced in `Content-Disposition`; also the
            `Content-ID` of inline attachments.
        data (bytes | BinaryIO | None): Raw bytes or a binary reader.
        path (str | None): File read at build time.
        content_type (str | None): MIME type; guessed from the filename when omitted.
        inline (bool): Embedded in the HTML body instead of attached.
    """

    filename: str
    data: bytes | BinaryIO | None = None
    path: str | None = None
    content_type: str | None = None
    inline: bool = False
    _content: bytes | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if not self.content_type:
            self.content_type = guess_type(self.filename)[0] or DEFAULT_CONTENT_TYPE

    @classmethod
    def from_path(cls, path: str, content_type: str | None = None, inline: bool = False) -> "Attachment":
        return cls(filename=basename(path), path=path, content_type=content_type, inline=inline)

    @property
    def maintype(self) -> str:
        return self.content_type.split("/", 1)[0]

    @property
    def subtype(self) -> str:
        parts = self.content_type.split("/", 1)
        return parts[1] if len(parts) == 2 else "octet-stream"

    def read(self) -> bytes:
        """Returns the attachment bytes, reading the reader or file on first use.

        A reader is consumed once; its bytes are kept for later builds.

        Raises:
            MimeEncodingError: If the content cannot be read or is not bytes.
        """
        if self._content is not None:
            return self._content

        try:
            if self.path is not None:
                with open(self.path, "rb") as f:
                    content = f.read()
            elif isinstance(self.data, (bytes, bytearray, memoryview)):
                content = bytes(self.data)
            elif self.data is not None and hasattr(self.data, "read"):
                content = self.data.read()
            else:
                raise MimeEncodingError(self.filename, "no content")
        except (OSError, ValueError) as exc:
            raise MimeEncodingError(self.filename, str(exc)) from exc

        if not isinstance(content, (bytes, bytearray)):
            raise MimeEncodingError(self.filename, f"expected bytes, got {type(content).__name__}")

        self._content = bytes(content)
        return self._content
