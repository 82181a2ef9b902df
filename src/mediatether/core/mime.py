from __future__ import annotations

import mimetypes
from enum import Enum

DEFAULT_MIME_TYPE = "application/octet-stream"
SNIFF_BYTES = 4096


class FileKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ZIP = "zip"
    FILE = "file"


# Mime types the engine knows how to name and proxy, with their canonical extension.
SUPPORTED_MIME_TYPES: dict[str, str] = {
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/svg+xml": "svg",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "application/zip": "zip",
    "video/mp4": "mp4",
    "audio/mpeg": "mp3",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
    "audio/webm": "weba",
}

MIME_ALIASES: dict[str, str] = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "audio/mp3": "audio/mpeg",
    "application/x-zip-compressed": "application/zip",
    "application/x-pdf": "application/pdf",
}

KIND_MIME_TYPES: dict[FileKind, frozenset[str]] = {
    FileKind.IMAGE: frozenset({"image/jpeg", "image/png", "image/gif"}),
    FileKind.AUDIO: frozenset({"audio/mpeg", "audio/aac", "audio/ogg", "audio/webm"}),
    FileKind.VIDEO: frozenset({"video/mp4"}),
    FileKind.ZIP: frozenset({"application/zip"}),
}


def normalize_mime_type(raw: str | None) -> str:
    """Lower-case a Content-Type value, drop parameters and resolve aliases."""
    if not raw:
        return ""
    value = raw.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(value, value)


def guess_mime_type(name: str) -> str:
    guessed = mimetypes.guess_type(name)[0]
    return normalize_mime_type(guessed) or DEFAULT_MIME_TYPE


def extension_for_mime(mime_type: str | None) -> str:
    normalized = normalize_mime_type(mime_type)
    if normalized in SUPPORTED_MIME_TYPES:
        return SUPPORTED_MIME_TYPES[normalized]
    guessed = mimetypes.guess_extension(normalized) if normalized else None
    return guessed.lstrip(".") if guessed else ""


def kind_for_mime(mime_type: str | None) -> FileKind:
    normalized = normalize_mime_type(mime_type)
    for kind, members in KIND_MIME_TYPES.items():
        if normalized in members:
            return kind
    return FileKind.FILE


_SIGNATURES: tuple[tuple[int, bytes, str], ...] = (
    (0, b"%PDF-", "application/pdf"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"PK\x05\x06", "application/zip"),
    (0, b"ID3", "audio/mpeg"),
    (0, b"OggS", "audio/ogg"),
    (4, b"ftyp", "video/mp4"),
)


def sniff_mime_type(head: bytes) -> str:
    """Detect a mime type from the leading bytes of a payload.

    Only formats with a reliable magic number are recognized. Anything else is
    reported as plain text when it decodes cleanly, and as
    ``application/octet-stream`` otherwise.
    """
    if not head:
        return DEFAULT_MIME_TYPE
    for offset, magic, mime_type in _SIGNATURES:
        if head[offset : offset + len(magic)] == magic:
            return mime_type
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[:4] == b"\x1a\x45\xdf\xa3":
        return "audio/webm"
    if len(head) > 1 and head[0] == 0xFF and head[1] & 0xF6 == 0xF0:
        return "audio/aac"
    if len(head) > 1 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0:
        return "audio/mpeg"

    text = _decode_text(head)
    if text is None:
        return DEFAULT_MIME_TYPE
    lowered = text.lstrip("\ufeff \t\r\n").lower()
    if lowered.startswith("<svg") or (lowered.startswith("<?xml") and "<svg" in lowered):
        return "image/svg+xml"
    if lowered.startswith("<!doctype html") or lowered.startswith("<html"):
        return "text/html"
    return "text/plain"


def mime_types_match(claimed: str | None, detected: str | None) -> bool:
    left = normalize_mime_type(claimed)
    right = normalize_mime_type(detected)
    if left == right:
        return True
    # Content sniffing cannot tell text dialects apart.
    return left.startswith("text/") and right == "text/plain"


def _decode_text(head: bytes) -> str | None:
    if b"\x00" in head:
        return None
    try:
        return head.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut off by the sniff window is still text.
        if exc.start >= len(head) - 3:
            return head[: exc.start].decode("utf-8")
        return None
