"""Capabilities the engine expects from its host application."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from .models import NoteFile

if TYPE_CHECKING:
    from .dialogs import ExternalImagesDialog


@dataclass
class TransportResponse:
    """HTTP response with lower-cased header names and the full body."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")


class Transport(Protocol):
    async def request(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        """Perform a request; raise ``TransportError`` only on transport failure."""
        ...


class Storage(Protocol):
    async def exists(self, path: str) -> bool: ...

    async def is_folder(self, path: str) -> bool: ...

    async def mkdir(self, path: str) -> None: ...

    async def write_binary(self, path: str, data: bytes) -> str: ...

    async def read_text(self, note: NoteFile) -> str: ...

    async def write_text(self, note: NoteFile, text: str) -> None: ...

    async def list_directory(self, path: str) -> List[str]: ...

    async def move(self, path: str, new_path: str) -> None: ...

    async def remove_recursive(self, path: str) -> None: ...

    async def trash(self, path: str) -> None:
        """Move a file to a reversible trash; ``NotImplementedError`` if unsupported."""
        ...

    async def remove(self, path: str) -> None: ...


class LinkResolver(Protocol):
    def resolve_embedded_path(self, raw_reference: str, note: NoteFile) -> Optional[str]: ...


class UserInterface(Protocol):
    def notify(self, message: str, duration: Optional[int] = None) -> None:
        """Show a message; ``duration`` is in milliseconds, ``0`` keeps it visible."""
        ...

    async def confirm(
        self,
        title: str,
        items: Sequence[str],
        on_confirm: Callable[[], Awaitable[None]],
    ) -> None: ...

    async def present_external_images(self, dialog: "ExternalImagesDialog") -> None: ...
