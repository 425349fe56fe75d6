"""
Multipart body encoder matching the app's own wire format byte for byte.

The remote parser is order sensitive (signed fields must sit next to each
other), so parts are written exactly in the order given. File parts never
carry the caller's filename: the app always sends a freshly minted
"pending_media_<upload id>.<ext>" name, and so do we.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Callable

from .signatures import generate_upload_id

CRLF = b"\r\n"


@dataclass(frozen=True)
class MultipartPart:
    name: str
    data: bytes | str
    filename: str | None = None
    headers: tuple[str, ...] = field(default_factory=tuple)
    # Disposition type written into the Content-Disposition line.
    kind: str = "form-data"

    @property
    def is_file(self) -> bool:
        return self.filename is not None


def _extension(filename: str) -> str:
    # Same rule as PHP's pathinfo(): no dot in the basename means no extension.
    base = posixpath.basename(filename)
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1]


def pending_media_filename(filename: str, upload_id_factory: Callable[[], str] = generate_upload_id) -> str:
    return f"pending_media_{upload_id_factory()}.{_extension(filename)}"


def encode_multipart(
    parts: list[MultipartPart],
    boundary: str,
    upload_id_factory: Callable[[], str] = generate_upload_id,
) -> bytes:
    """Serialize `parts` in order, terminated by `--<boundary>--` (no trailing CRLF)."""
    marker = f"--{boundary}".encode("utf-8")
    chunks: list[bytes] = []
    for part in parts:
        head = f'Content-Disposition: {part.kind}; name="{part.name}"'
        if part.is_file:
            head += f'; filename="{pending_media_filename(part.filename, upload_id_factory)}"'
        for header in part.headers:
            head += "\r\n" + header

        data = part.data.encode("utf-8") if isinstance(part.data, str) else bytes(part.data)
        chunks += [marker, CRLF, head.encode("utf-8"), CRLF, CRLF, data, CRLF]
    chunks.append(marker + b"--")
    return b"".join(chunks)


def multipart_content_type(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"
