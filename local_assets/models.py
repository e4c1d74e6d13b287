"""Data models used throughout the localization pipeline."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import DownloadError


class SyntaxKind(str, Enum):
    WIKI_LINK = "wiki"
    MARKDOWN_LINK = "markdown"
    HTML_IMG = "html"


@dataclass(frozen=True)
class AssetReference:
    """Embedded image reference discovered while scanning note text."""

    raw_match: str
    syntax_kind: SyntaxKind
    url: str
    alt_text: Optional[str] = None


@dataclass(frozen=True)
class RefererRule:
    """Host pattern (exact or ``*.``-prefixed) mapped to a forged Referer."""

    pattern: str
    referer_url: str


@dataclass(frozen=True)
class NoteFile:
    """A note inside the vault, addressed by its vault-relative path."""

    path: str

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def basename(self) -> str:
        return posixpath.splitext(self.name)[0]

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.name)[1].lstrip(".").lower()

    @property
    def parent(self) -> str:
        return posixpath.dirname(self.path)


@dataclass
class AttemptSuccess:
    body: bytes
    content_type: str


@dataclass
class HttpFailure:
    status: int


@dataclass
class NetworkFailure:
    cause: BaseException


@dataclass
class InvalidContentType:
    content_type: Optional[str]


AttemptOutcome = Union[AttemptSuccess, HttpFailure, NetworkFailure, InvalidContentType]


@dataclass
class DownloadAttempt:
    """A single request made while downloading one URL."""

    url: str
    attempt_index: int
    headers: Dict[str, str]
    outcome: Optional[AttemptOutcome] = None


@dataclass
class DownloadResult:
    """Durable outcome of downloading one URL: a local path or an error."""

    url: str
    local_path: Optional[str] = None
    error: Optional[DownloadError] = None
    attempts: List[DownloadAttempt] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if (self.local_path is None) == (self.error is None):
            raise ValueError("DownloadResult needs exactly one of local_path or error")

    @property
    def ok(self) -> bool:
        return self.local_path is not None


@dataclass
class PasteEvent:
    html: str
    plain_text: str = ""


@dataclass
class RenameEvent:
    file: NoteFile
    old_path: str


@dataclass
class DeleteEvent:
    file: NoteFile


@dataclass
class LocalizeReport:
    """Result of localizing the images of a pasted HTML fragment."""

    html: str
    results: List[DownloadResult]

    @property
    def failures(self) -> List[DownloadResult]:
        return [result for result in self.results if not result.ok]


@dataclass
class NoteLocalizeReport:
    """Result of localizing the external images already inside a note."""

    results: List[DownloadResult]
    updated: bool

    @property
    def failures(self) -> List[DownloadResult]:
        return [result for result in self.results if not result.ok]


class RenameOutcome(str, Enum):
    INACTIVE = "inactive"
    UNCHANGED = "unchanged"
    NO_SOURCE_FOLDER = "no_source_folder"
    TARGET_EXISTS = "target_exists"
    MOVED = "moved"
    FAILED = "failed"


@dataclass
class RenameReport:
    outcome: RenameOutcome
    old_folder: str = ""
    new_folder: str = ""
    links_updated: bool = False
    error: Optional[BaseException] = None


@dataclass
class CleanupReport:
    """Orphans found in a note's asset folder and what happened to them."""

    orphans: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
