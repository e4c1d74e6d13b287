"""Local-directory host: storage, link resolution, transport, and console UI."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import requests

from .dialogs import ConfirmDeletionDialog, ExternalImagesDialog
from .errors import TransportError
from .host import TransportResponse
from .models import NoteFile
from .utils import join_vault_path, split_relative_prefix, to_posix

logger = logging.getLogger("local_assets.vault")

TRASH_FOLDER = ".trash"


class LocalVault:
    """A directory on disk addressed with vault-relative POSIX paths."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _abs(self, path: str) -> Path:
        target = (self.root / join_vault_path(path)).resolve()
        if target != self.root and self.root not in target.parents:
            raise PermissionError(f"Path is outside the vault: {path}")
        return target

    def _rel(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def note(self, path: str) -> NoteFile:
        """Accept a vault-relative or absolute path to a note."""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return NoteFile(self._rel(candidate.resolve()))
        return NoteFile(join_vault_path(path))

    async def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    async def is_folder(self, path: str) -> bool:
        return self._abs(path).is_dir()

    async def mkdir(self, path: str) -> None:
        self._abs(path).mkdir(parents=True, exist_ok=True)

    async def write_binary(self, path: str, data: bytes) -> str:
        target = self._abs(path)
        target.write_bytes(data)
        return self._rel(target)

    async def read_text(self, note: NoteFile) -> str:
        return self._abs(note.path).read_text(encoding="utf-8")

    async def write_text(self, note: NoteFile, text: str) -> None:
        self._abs(note.path).write_text(text, encoding="utf-8")

    async def list_directory(self, path: str) -> List[str]:
        folder = self._abs(path)
        return sorted(self._rel(child) for child in folder.iterdir() if child.is_file())

    async def move(self, path: str, new_path: str) -> None:
        target = self._abs(new_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self._abs(path).rename(target)

    async def remove_recursive(self, path: str) -> None:
        shutil.rmtree(self._abs(path))

    async def trash(self, path: str) -> None:
        source = self._abs(path)
        trash_dir = self.root / TRASH_FOLDER
        trash_dir.mkdir(exist_ok=True)
        target = trash_dir / source.name
        counter = 1
        while target.exists():
            target = trash_dir / f"{source.stem} {counter}{source.suffix}"
            counter += 1
        source.rename(target)

    async def remove(self, path: str) -> None:
        self._abs(path).unlink()

    def _iter_files(self):
        for candidate in self.root.rglob("*"):
            if candidate.is_file() and TRASH_FOLDER not in candidate.relative_to(self.root).parts:
                yield candidate

    def resolve_embedded_path(self, raw_reference: str, note: NoteFile) -> Optional[str]:
        """Find the file an embed points to, the way the editor resolves links.

        Tries the path relative to the note, then relative to the vault root,
        then falls back to the first file in the vault with the same name.
        """
        target = to_posix(raw_reference).split("#", 1)[0].strip()
        if not target:
            return None
        _, bare = split_relative_prefix(target)
        candidates = [posixpath.join(note.parent, target) if note.parent else target, bare]
        for candidate in candidates:
            normalized = join_vault_path(candidate)
            if normalized and not normalized.startswith("..") and self._abs(normalized).is_file():
                return normalized
        name = posixpath.basename(bare)
        for candidate in sorted(self._iter_files()):
            if candidate.name == name:
                return self._rel(candidate)
        return None


class RequestsTransport:
    """HTTP transport backed by a shared ``requests.Session``."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.session = session or requests.Session()

    def _get(self, url: str, headers: Dict[str, str], timeout: float) -> TransportResponse:
        try:
            resp = self.session.request("GET", url, headers=headers, timeout=timeout)
        except requests.Timeout as exc:
            raise TransportError(f"Request timeout: {exc}", timeout=True) from exc
        except requests.RequestException as exc:
            raise TransportError(str(exc)) from exc
        return TransportResponse(
            status=resp.status_code,
            headers={key.lower(): value for key, value in resp.headers.items()},
            body=resp.content,
        )

    async def request(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        if method.upper() != "GET":
            raise ValueError(f"Unsupported method {method}")
        return await asyncio.to_thread(self._get, url, headers, timeout)


class ConsoleInterface:
    """Terminal host UI: notifications go to the log, prompts to stdin."""

    def __init__(
        self,
        assume_yes: bool = False,
        ask: Callable[[str], str] = input,
        echo: Callable[[str], None] = print,
    ) -> None:
        self.assume_yes = assume_yes
        self._ask = ask
        self._echo = echo

    def notify(self, message: str, duration: Optional[int] = None) -> None:
        logger.info("%s", message)

    def _agree(self, question: str) -> bool:
        if self.assume_yes:
            return True
        answer = self._ask(f"{question} [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    async def confirm(
        self,
        title: str,
        items: Sequence[str],
        on_confirm: Callable[[], Awaitable[None]],
    ) -> None:
        dialog = ConfirmDeletionDialog(list(items), title=title)
        for line in dialog.lines():
            self._echo(line)
        if self._agree("Proceed?"):
            await on_confirm()

    async def present_external_images(self, dialog: ExternalImagesDialog) -> None:
        for line in dialog.prompt_lines():
            self._echo(line)
        if not self._agree("Download images?"):
            return
        await dialog.download_all()
        for line in dialog.summary_lines():
            self._echo(line)
        if dialog.can_replace and self._agree("Replace with local links?"):
            await dialog.replace()
