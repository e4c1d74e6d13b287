"""UI components with explicit state, independent of any toolkit."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Sequence

from .models import DownloadResult

logger = logging.getLogger("local_assets.dialogs")

MAX_LISTED_FILES = 15


@dataclass
class ConfirmDeletionDialog:
    """Prompt asking the user to approve deleting unreferenced images."""

    paths: Sequence[str]
    title: str = "Delete unused images?"

    def lines(self) -> List[str]:
        names = [f"- {path.rsplit('/', 1)[-1]}" for path in self.paths[:MAX_LISTED_FILES]]
        lines = [
            self.title,
            "The following images are not referenced by the current note and will be removed:",
            *names,
        ]
        if len(self.paths) > MAX_LISTED_FILES:
            lines.append(f"...{len(self.paths)} files in total.")
        return lines


@dataclass
class ExternalImagesDialog:
    """Offer to download the external images of a note, then to relink them.

    The dialog only holds state; the host decides how to render it and calls
    :meth:`download_all` and :meth:`replace` in response to the user.
    """

    urls: List[str]
    on_download: Callable[[str], Awaitable[DownloadResult]]
    on_replace: Callable[[Dict[str, str]], Awaitable[bool]]
    downloaded: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, DownloadResult] = field(default_factory=dict)
    finished: bool = False

    def prompt_lines(self) -> List[str]:
        return [
            "External images found",
            f"Found {len(self.urls)} external image(s) in the note. Download them locally?",
            *self.urls,
        ]

    async def download_all(self) -> None:
        for url in self.urls:
            result = await self.on_download(url)
            if result.ok:
                self.downloaded[url] = result.local_path
            else:
                self.failed[url] = result
        self.finished = True

    def summary_lines(self) -> List[str]:
        lines = [f"Downloaded {len(self.downloaded)} image(s)"]
        if self.failed:
            lines[0] += f", {len(self.failed)} failed"
        for url, local_path in self.downloaded.items():
            lines.append(f"original: {url}")
            lines.append(f"local: {local_path}")
        return lines

    @property
    def can_replace(self) -> bool:
        return self.finished and bool(self.downloaded)

    async def replace(self) -> bool:
        """Rewrite the note's links to the downloaded copies."""
        if not self.can_replace:
            logger.debug("Nothing to replace")
            return False
        return await self.on_replace(dict(self.downloaded))
