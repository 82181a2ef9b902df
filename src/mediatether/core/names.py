from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from mediatether.core.mime import extension_for_mime

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_REPEATED_DASHES = re.compile(r"-{2,}")
MAX_NAME_LENGTH = 180


def url_basename(url: str) -> str:
    path = urlparse(url).path
    return PurePosixPath(unquote(path)).name


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", name.strip())
    cleaned = _REPEATED_DASHES.sub("-", cleaned).strip("-.")
    if len(cleaned) > MAX_NAME_LENGTH:
        stem, dot, suffix = cleaned.rpartition(".")
        if dot and len(suffix) <= 8:
            cleaned = stem[: MAX_NAME_LENGTH - len(suffix) - 1] + "." + suffix
        else:
            cleaned = cleaned[:MAX_NAME_LENGTH]
    return cleaned


def derive_display_name(url: str, mime_type: str | None, filename: str | None = None) -> str:
    """Build a filesystem-safe label for a remote file.

    The label is taken from the explicit ``filename`` when the transport supplied
    one (e.g. Content-Disposition), otherwise from the URL basename. It is
    URL-decoded and sanitized, and gets the canonical extension for
    ``mime_type`` when it has none.
    """
    raw = filename or url_basename(url) or urlparse(url).netloc
    name = sanitize_filename(unquote(raw)) or "resource"
    extension = extension_for_mime(mime_type)
    if extension and not PurePosixPath(name).suffix:
        name = f"{name}.{extension}"
    return name


def numbered_variant(name: str, number: int) -> str:
    path = PurePosixPath(name)
    if path.suffix:
        return f"{path.stem}-{number}{path.suffix}"
    return f"{name}-{number}"
