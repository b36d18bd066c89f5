"""
Material content: extracted text or a reference to the stored file.

A material whose text could not be extracted is still retrievable. Its
``content`` column then holds a file-reference sentinel, and consumers hand
the file itself to the generation model instead of quoting text.

Wire format in ``content`` columns (materials and embedding chunks):

    FILE_URL:<url>

e.g. ``FILE_URL:https://bucket.s3.amazonaws.com/materials/ab12.pdf``.

Readers never inspect the raw string themselves; they call
:func:`decode_content` and branch on the returned type.
"""

from dataclasses import dataclass
from typing import Optional, Union


FILE_URL_PREFIX = "FILE_URL:"


@dataclass(frozen=True)
class TextContent:
    """Plain extracted text (may be empty)."""

    text: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class FileReference:
    """No usable text: the consumer must read the file at ``url`` directly."""

    url: str


Content = Union[TextContent, FileReference]


def encode_content(value: Content) -> str:
    """Serialize a Content value for storage in a ``content`` column."""
    if isinstance(value, FileReference):
        return f"{FILE_URL_PREFIX}{value.url}"
    if isinstance(value, TextContent):
        return value.text
    raise TypeError(f"Unsupported content value: {type(value).__name__}")


def decode_content(raw: Optional[str]) -> Content:
    """
    Parse a stored ``content`` string.

    Only a leading, exact ``FILE_URL:`` prefix with a non-empty URL is a
    file reference; everything else (including None) is text.
    """
    if raw and raw.startswith(FILE_URL_PREFIX):
        url = raw[len(FILE_URL_PREFIX):].strip()
        if url:
            return FileReference(url=url)
    return TextContent(text=raw or "")


def resolve_material_content(raw: Optional[str], file_url: Optional[str]) -> Content:
    """
    Effective content of a material.

    - sentinel → FileReference from the sentinel
    - non-blank text → TextContent
    - blank text with a stored file → FileReference(file_url)
    - blank text, no file → empty TextContent
    """
    decoded = decode_content(raw)
    if isinstance(decoded, FileReference):
        return decoded
    if decoded.is_empty and file_url:
        return FileReference(url=file_url)
    return decoded
