"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import posixpath
import re
from typing import Tuple
from urllib.parse import quote, unquote

# Characters ``encodeURI`` leaves untouched besides alphanumerics.
_URI_SAFE = ";,/?:@&=+$-_.!~*'()#"
_RELATIVE_PREFIX = re.compile(r"^(?:(?:\.\./)+|\./)")


def encode_uri(value: str) -> str:
    """Percent-encode a path the way browsers encode a full URI."""
    return quote(value, safe=_URI_SAFE)


def decode_uri(value: str) -> str:
    """Decode percent escapes; malformed sequences are kept verbatim."""
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def to_posix(path: str) -> str:
    return path.replace("\\", "/")


def split_relative_prefix(path: str) -> Tuple[str, str]:
    """Split a leading ``./`` or run of ``../`` from a link path."""
    path = to_posix(path)
    match = _RELATIVE_PREFIX.match(path)
    if not match:
        return "", path
    return match.group(0), path[match.end():]


def join_vault_path(*parts: str) -> str:
    """Join vault-relative segments with forward slashes, dropping empties."""
    cleaned = [to_posix(part) for part in parts if part and part != "/"]
    if not cleaned:
        return ""
    joined = posixpath.normpath(posixpath.join(*cleaned))
    return "" if joined == "." else joined.lstrip("/")


def shorten(value: str, limit: int = 80) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."
