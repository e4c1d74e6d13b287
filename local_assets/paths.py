"""Asset folder and filename derivation."""

from __future__ import annotations

import logging
import posixpath
import re
import time
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from .config import TITLE_PLACEHOLDER
from .models import NoteFile
from .utils import join_vault_path, to_posix

logger = logging.getLogger("local_assets")

ILLEGAL_FILENAME_PATTERN = re.compile(r'[<>:"/\\|?*\s]+')
FORMAT_PARAM_PATTERN = re.compile(r"[?&]format=([A-Za-z0-9]+)(?:&|$)", re.IGNORECASE)
EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]+$")
MAX_BASENAME_CHARS = 100
DEFAULT_EXTENSION = ".png"


class StampClock:
    """Millisecond wall-clock stamps that never repeat within a process."""

    def __init__(self, now: Callable[[], float] = time.time) -> None:
        self._now = now
        self._last = 0

    def next(self) -> int:
        stamp = int(self._now() * 1000)
        if stamp <= self._last:
            stamp = self._last + 1
        self._last = stamp
        return stamp


_default_clock = StampClock()


def asset_folder_for(parent: str, basename: str, template: str) -> str:
    """Return the vault path of the asset folder for a note."""
    folder = template.replace(TITLE_PLACEHOLDER, basename)
    joined = join_vault_path("" if parent in ("", "/", ".") else parent, folder)
    return to_posix(joined).rstrip("/")


def asset_folder_from_path(note_path: str, template: str) -> str:
    """Asset folder for a note given only its (possibly former) path."""
    note = NoteFile(to_posix(note_path))
    return asset_folder_for(note.parent, note.basename, template)


def unique_filename(url: str, clock: Optional[StampClock] = None) -> str:
    """Derive a collision-resistant local filename from an image URL."""
    clock = clock or _default_clock
    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"not an absolute URL: {url!r}")
        path = unquote(parsed.path, errors="strict")
        name, extension = posixpath.splitext(posixpath.basename(path))
        if extension and not EXTENSION_PATTERN.match(extension):
            name, extension = name + extension, ""
        if not extension:
            match = FORMAT_PARAM_PATTERN.search("?" + parsed.query)
            extension = "." + match.group(1).lower() if match else DEFAULT_EXTENSION
        name = ILLEGAL_FILENAME_PATTERN.sub("_", name)[:MAX_BASENAME_CHARS]
        return f"{name}_{clock.next()}{extension}"
    except (ValueError, UnicodeDecodeError) as exc:
        logger.error("Failed to derive a filename from %s: %s", url, exc)
        return f"image_{clock.next()}{DEFAULT_EXTENSION}"


def relative_link(target_path: str, note_path: str) -> str:
    """Path to ``target_path`` as seen from the folder holding ``note_path``."""
    start = posixpath.dirname(to_posix(note_path)) or "."
    return posixpath.relpath(to_posix(target_path), start)
