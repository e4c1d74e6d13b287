"""High-level workflows: localize, rename and delete propagation, cleanup."""

from __future__ import annotations

import asyncio
import logging
import posixpath
from typing import Dict, List, Optional, Sequence

from .config import AssetsConfig
from .content import (
    has_remote_images,
    mark_failed,
    mark_localized,
    parse_fragment,
    remote_images,
    render_fragment,
)
from .dialogs import ExternalImagesDialog
from .errors import LocalAssetsError, describe_failure
from .host import LinkResolver, Storage, Transport, UserInterface
from .images import Fetcher, Sleeper
from .markdown import embedded_targets, find_external_images, replace_folder_prefix, replace_remote_urls
from .models import (
    CleanupReport,
    DeleteEvent,
    DownloadResult,
    LocalizeReport,
    NoteFile,
    NoteLocalizeReport,
    PasteEvent,
    RenameEvent,
    RenameOutcome,
    RenameReport,
)
from .paths import StampClock, asset_folder_for, asset_folder_from_path, relative_link
from .utils import decode_uri, shorten

logger = logging.getLogger("local_assets")

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".svg"}
MAX_REPORTED_FAILURES = 5
ERROR_NOTICE_MS = 15_000

# Failures a workflow reports through notify instead of raising to the host.
WORKFLOW_ERRORS = (OSError, UnicodeDecodeError, LocalAssetsError)


def summarize_failures(
    failures: Sequence[DownloadResult], limit: int = MAX_REPORTED_FAILURES
) -> str:
    """Human-readable digest of failed downloads, bounded to ``limit`` entries."""
    lines = [f"{len(failures)} image(s) failed to download:", ""]
    for result in failures[:limit]:
        reason = describe_failure(result.error) if result.error else "unknown error"
        lines.append(f"- {shorten(result.url)}")
        lines.append(f"  reason: {reason}")
    if len(failures) > limit:
        lines.append("")
        lines.append(f"...and {len(failures) - limit} other error(s).")
    lines.append("")
    lines.append("See the log for details.")
    return "\n".join(lines)


def is_image_path(path: str) -> bool:
    return posixpath.splitext(path.lower())[1] in IMAGE_EXTENSIONS


class ReconciliationEngine:
    """Keeps a note's images local and its image links consistent."""

    def __init__(
        self,
        config: AssetsConfig,
        transport: Transport,
        storage: Storage,
        resolver: LinkResolver,
        ui: UserInterface,
        sleep: Optional[Sleeper] = None,
        clock: Optional[StampClock] = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.resolver = resolver
        self.ui = ui
        self.fetcher = Fetcher(transport, storage, config, sleep=sleep or asyncio.sleep, clock=clock)

    def asset_folder(self, note: NoteFile) -> str:
        return asset_folder_for(note.parent, note.basename, self.config.image_folder)

    def _report_failures(self, failures: Sequence[DownloadResult]) -> None:
        for index, result in enumerate(failures, start=1):
            error = result.error
            logger.error(
                "[%d] %s failed: %s (reason=%s, status=%s, cause=%r)",
                index,
                result.url,
                error,
                error.reason.value if error else None,
                error.status if error else None,
                error.cause if error else None,
            )
        self.ui.notify(summarize_failures(failures), ERROR_NOTICE_MS)

    # -- bulk localize ---------------------------------------------------

    async def localize_html(self, html: str, note: NoteFile) -> LocalizeReport:
        """Download every remote ``<img>`` of a fragment and relink it.

        Images are handled one at a time in document order. A failed image is
        marked in place and the batch continues; only a failure to create the
        asset folder aborts the whole batch.
        """
        soup = parse_fragment(html)
        images = remote_images(soup)
        results: List[DownloadResult] = []
        self.ui.notify(f"Processing {len(images)} image(s)...")

        for img in images:
            url = img["src"]
            logger.info("Processing image %s", url)
            result = await self.fetcher.download(url, note)
            results.append(result)
            if result.ok:
                mark_localized(img, result.local_path, url, self.config.keep_original_url)
            else:
                mark_failed(soup, img, url)

        report = LocalizeReport(html=render_fragment(soup), results=results)
        if report.failures:
            self._report_failures(report.failures)
        elif images:
            self.ui.notify(f"All {len(images)} image(s) processed.")
        else:
            self.ui.notify("No remote images to download.")
        return report

    async def handle_paste(self, event: PasteEvent, note: Optional[NoteFile]) -> Optional[str]:
        """Return the HTML to paste instead of the original, or ``None`` to keep it.

        Once the paste has been taken over, a failure yields the plain-text
        form of the clipboard, which is ``""`` (paste nothing) when the host
        supplied none.
        """
        if not event.html or not has_remote_images(event.html):
            logger.debug("Paste carries no remote images")
            return None
        if note is None:
            self.ui.notify("Open or create a note before pasting.")
            return None

        processing = "Processing pasted content and downloading images..."
        self.ui.notify(processing, 0)
        try:
            report = await self.localize_html(event.html, note)
        except WORKFLOW_ERRORS as exc:
            logger.exception("Failed to process pasted content")
            self.ui.notify(f"Failed to process pasted content: {exc}")
            return event.plain_text
        return report.html

    async def localize_note(self, note: NoteFile) -> NoteLocalizeReport:
        """Download the external images a note already links and relink them."""
        try:
            return await self._localize_note(note)
        except WORKFLOW_ERRORS as exc:
            logger.error("Failed to localize images of %s: %s", note.path, exc)
            self.ui.notify(f"Failed to download external images: {exc}", ERROR_NOTICE_MS)
            return NoteLocalizeReport(results=[], updated=False)

    async def _localize_note(self, note: NoteFile) -> NoteLocalizeReport:
        text = await self.storage.read_text(note)
        urls = find_external_images(text)
        if not urls:
            self.ui.notify("No external images found.")
            return NoteLocalizeReport(results=[], updated=False)

        self.ui.notify(f"Downloading {len(urls)} image(s)...", 0)
        results = [await self.fetcher.download(url, note) for url in urls]
        mapping = {result.url: result.local_path for result in results if result.ok}
        updated = await self.replace_links(note, mapping)

        report = NoteLocalizeReport(results=results, updated=updated)
        if report.failures:
            self._report_failures(report.failures)
        if updated:
            self.ui.notify(f"Downloaded {len(mapping)} image(s) and updated links.")
        else:
            self.ui.notify("No image links were updated.")
        return report

    async def replace_links(self, note: NoteFile, mapping: Dict[str, str]) -> bool:
        """Rewrite remote image links in ``note``; persist only on change."""
        if not mapping:
            return False
        text = await self.storage.read_text(note)
        new_text, changed = replace_remote_urls(text, mapping)
        if changed:
            await self.storage.write_text(note, new_text)
            logger.info("Replaced %d image link(s) in %s", len(mapping), note.path)
        return changed

    async def check_external_images(self, note: NoteFile) -> Optional[ExternalImagesDialog]:
        """Offer the interactive download-then-relink flow for a note."""
        try:
            return await self._check_external_images(note)
        except WORKFLOW_ERRORS as exc:
            logger.error("Failed to check external images of %s: %s", note.path, exc)
            self.ui.notify(f"Failed to check external images: {exc}", ERROR_NOTICE_MS)
            return None

    async def _check_external_images(self, note: NoteFile) -> Optional[ExternalImagesDialog]:
        text = await self.storage.read_text(note)
        urls = find_external_images(text)
        if not urls:
            self.ui.notify("No external image links found.")
            return None

        async def _download(url: str) -> DownloadResult:
            return await self.fetcher.download(url, note)

        async def _replace(mapping: Dict[str, str]) -> bool:
            changed = await self.replace_links(note, mapping)
            if changed:
                self.ui.notify("Replaced image links with local paths.")
            return changed

        dialog = ExternalImagesDialog(urls=urls, on_download=_download, on_replace=_replace)
        await self.ui.present_external_images(dialog)
        return dialog

    # -- rename / delete propagation ---------------------------------------

    async def handle_rename(self, event: RenameEvent) -> RenameReport:
        """Move a renamed note's asset folder and repoint its embeds."""
        note = event.file
        if note.extension != "md" or not self.config.per_note_folders:
            return RenameReport(RenameOutcome.INACTIVE)

        old_folder = asset_folder_from_path(event.old_path, self.config.image_folder)
        new_folder = self.asset_folder(note)
        if old_folder == new_folder:
            return RenameReport(RenameOutcome.UNCHANGED, old_folder, new_folder)
        if not await self.storage.is_folder(old_folder):
            return RenameReport(RenameOutcome.NO_SOURCE_FOLDER, old_folder, new_folder)
        if await self.storage.exists(new_folder):
            logger.warning("Cannot rename asset folder, target path already exists: %s", new_folder)
            self.ui.notify(f"Asset folder not moved: {new_folder} already exists.")
            return RenameReport(RenameOutcome.TARGET_EXISTS, old_folder, new_folder)

        try:
            await self.storage.move(old_folder, new_folder)
            self.ui.notify(f"Updated asset folder: {new_folder}")
            links_updated = await self._repoint_embeds(note, event.old_path, old_folder, new_folder)
        except WORKFLOW_ERRORS as exc:
            logger.error("Failed to update asset folder or note links: %s", exc)
            self.ui.notify(f"Failed to update asset folder or links: {exc}")
            return RenameReport(RenameOutcome.FAILED, old_folder, new_folder, error=exc)
        if links_updated:
            self.ui.notify(f"Updated image links in {note.basename}")
        return RenameReport(RenameOutcome.MOVED, old_folder, new_folder, links_updated)

    async def _repoint_embeds(
        self, note: NoteFile, old_path: str, old_folder: str, new_folder: str
    ) -> bool:
        text = await self.storage.read_text(note)
        text, changed = replace_folder_prefix(text, old_folder, new_folder)
        # Relative links are written against the note's own folder.
        old_relative = relative_link(old_folder, old_path)
        new_relative = relative_link(new_folder, note.path)
        if old_relative != old_folder:
            text, relative_changed = replace_folder_prefix(text, old_relative, new_relative)
            changed = changed or relative_changed
        if changed:
            await self.storage.write_text(note, text)
            logger.info("Links updated in note %s", note.path)
        else:
            logger.info("No links needed updating in note %s", note.path)
        return changed

    async def handle_delete(self, event: DeleteEvent) -> bool:
        """Remove the asset folder of a deleted note; return whether it existed."""
        if not self.config.delete_assets_with_note or not self.config.per_note_folders:
            return False
        folder = asset_folder_from_path(event.file.path, self.config.image_folder)
        if not await self.storage.exists(folder):
            return False
        try:
            await self.storage.remove_recursive(folder)
        except WORKFLOW_ERRORS as exc:
            logger.error("Failed to delete asset folder %s: %s", folder, exc)
            self.ui.notify(f"Failed to delete asset folder: {exc}")
            return False
        self.ui.notify(f"Deleted asset folder: {folder}")
        return True

    # -- orphan cleanup ----------------------------------------------------

    async def find_orphans(self, note: NoteFile) -> List[str]:
        """Images in the note's asset folder that the note no longer embeds."""
        folder = self.asset_folder(note)
        if not await self.storage.exists(folder):
            return []
        files = [
            path.replace("\\", "/")
            for path in await self.storage.list_directory(folder)
            if is_image_path(path)
        ]
        if not files:
            return []

        text = await self.storage.read_text(note)
        referenced = set()
        for target in embedded_targets(text):
            resolved = self.resolver.resolve_embedded_path(decode_uri(target), note)
            if resolved:
                referenced.add(resolved)
        return [path for path in files if path not in referenced]

    async def delete_orphans(self, paths: Sequence[str]) -> CleanupReport:
        """Delete each path independently, preferring the trash."""
        report = CleanupReport(orphans=list(paths))
        for path in paths:
            try:
                try:
                    await self.storage.trash(path)
                except NotImplementedError:
                    logger.warning("Trash unavailable; removing %s permanently", path)
                    await self.storage.remove(path)
            except OSError as exc:
                logger.error("Failed to delete %s: %s", path, exc)
                report.failed.append(path)
            else:
                report.deleted.append(path)

        message = f"Moved {len(report.deleted)} unused image(s) to the trash."
        if report.failed:
            message += f"\n{len(report.failed)} file(s) could not be deleted."
        self.ui.notify(message)
        return report

    async def cleanup_orphans(self, note: NoteFile) -> CleanupReport:
        """Find unreferenced images and delete them once the user confirms."""
        try:
            return await self._cleanup_orphans(note)
        except WORKFLOW_ERRORS as exc:
            logger.error("Failed to clean up images of %s: %s", note.path, exc)
            self.ui.notify(f"Failed to clean up images: {exc}", ERROR_NOTICE_MS)
            return CleanupReport()

    async def _cleanup_orphans(self, note: NoteFile) -> CleanupReport:
        if not self.config.per_note_folders:
            self.ui.notify("Cleanup is only available when the image folder contains {title}.")
            return CleanupReport()
        self.ui.notify("Looking for unused images...")
        folder = self.asset_folder(note)
        if not await self.storage.exists(folder):
            self.ui.notify("No asset folder for this note; nothing to clean up.")
            return CleanupReport()

        orphans = await self.find_orphans(note)
        if not orphans:
            self.ui.notify("No unused local images found for this note.")
            return CleanupReport()

        logger.info("Found unused images: %s", orphans)
        report = CleanupReport(orphans=orphans)

        async def _confirmed() -> None:
            outcome = await self.delete_orphans(orphans)
            report.deleted.extend(outcome.deleted)
            report.failed.extend(outcome.failed)

        await self.ui.confirm("Delete unused images?", orphans, _confirmed)
        return report
