"""Image downloading with retry, header rotation, and persistence."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .config import AssetsConfig
from .errors import DownloadError, FailureReason, StorageError, TransportError
from .headers import headers_for
from .host import Storage, Transport
from .models import (
    AttemptSuccess,
    DownloadAttempt,
    DownloadResult,
    HttpFailure,
    InvalidContentType,
    NetworkFailure,
    NoteFile,
)
from .paths import StampClock, asset_folder_for, relative_link, unique_filename
from .utils import join_vault_path

logger = logging.getLogger("local_assets")

MAX_ATTEMPTS = 3
FORBIDDEN_BACKOFF_SECONDS = 1.0
STATUS_BACKOFF_SECONDS = 0.5
NETWORK_BACKOFF_SECONDS = 1.0

Sleeper = Callable[[float], Awaitable[None]]


def is_image_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.strip().lower().startswith("image/")


class Fetcher:
    """Download one remote image at a time into a note's asset folder."""

    def __init__(
        self,
        transport: Transport,
        storage: Storage,
        config: AssetsConfig,
        sleep: Sleeper = asyncio.sleep,
        clock: Optional[StampClock] = None,
    ) -> None:
        self.transport = transport
        self.storage = storage
        self.config = config
        self._sleep = sleep
        self._clock = clock

    async def _attempt(self, url: str, attempt_index: int) -> DownloadAttempt:
        headers = headers_for(url, attempt_index, self.config.referer_rules)
        attempt = DownloadAttempt(url=url, attempt_index=attempt_index, headers=headers)
        logger.debug("Downloading %s (attempt %d)", url, attempt_index + 1)
        try:
            response = await asyncio.wait_for(
                self.transport.request(url, "GET", headers, self.config.timeout_seconds),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            attempt.outcome = NetworkFailure(
                TransportError(f"Request timeout after {self.config.download_timeout}ms", timeout=True)
            )
            return attempt
        except TransportError as exc:
            attempt.outcome = NetworkFailure(exc)
            return attempt

        if 200 <= response.status < 300:
            if is_image_content_type(response.content_type):
                attempt.outcome = AttemptSuccess(response.body, response.content_type or "")
            else:
                attempt.outcome = InvalidContentType(response.content_type)
        else:
            attempt.outcome = HttpFailure(response.status)
        return attempt

    @staticmethod
    def _classify(url: str, attempt: DownloadAttempt) -> DownloadError:
        outcome = attempt.outcome
        if isinstance(outcome, InvalidContentType):
            return DownloadError(
                url,
                FailureReason.INVALID_CONTENT_TYPE,
                f"Invalid Content-Type: {outcome.content_type}",
                content_type=outcome.content_type,
            )
        if isinstance(outcome, HttpFailure):
            if outcome.status == 403:
                return DownloadError(
                    url,
                    FailureReason.HTTP_FORBIDDEN,
                    "HTTP 403 Forbidden (anti-hotlinking?)",
                    status=403,
                )
            return DownloadError(
                url,
                FailureReason.HTTP_STATUS,
                f"HTTP error! status: {outcome.status}",
                status=outcome.status,
            )
        assert isinstance(outcome, NetworkFailure)
        cause = outcome.cause
        reason = FailureReason.NETWORK
        if isinstance(cause, TransportError) and cause.timeout:
            reason = FailureReason.TIMEOUT
        return DownloadError(url, reason, str(cause), cause=cause)

    @staticmethod
    def _backoff(attempt: DownloadAttempt) -> float:
        outcome = attempt.outcome
        if isinstance(outcome, HttpFailure) and outcome.status != 403:
            base = STATUS_BACKOFF_SECONDS
        elif isinstance(outcome, HttpFailure):
            base = FORBIDDEN_BACKOFF_SECONDS
        else:
            base = NETWORK_BACKOFF_SECONDS
        return base * (attempt.attempt_index + 1)

    async def fetch(
        self, url: str
    ) -> Tuple[Optional[AttemptSuccess], Optional[DownloadError], List[DownloadAttempt]]:
        """Run the retry loop; return ``(success, error, attempts)``."""
        attempts: List[DownloadAttempt] = []
        last_error: Optional[DownloadError] = None
        for attempt_index in range(MAX_ATTEMPTS):
            attempt = await self._attempt(url, attempt_index)
            attempts.append(attempt)
            if isinstance(attempt.outcome, AttemptSuccess):
                return attempt.outcome, None, attempts

            last_error = self._classify(url, attempt)
            if isinstance(attempt.outcome, InvalidContentType):
                logger.warning("Download failed for %s: %s", url, last_error)
                break
            logger.warning(
                "Download attempt %d failed for %s: %s", attempt_index + 1, url, last_error
            )
            if attempt_index + 1 < MAX_ATTEMPTS:
                await self._sleep(self._backoff(attempt))

        logger.error("Failed to download %s after %d attempt(s): %s", url, len(attempts), last_error)
        return None, last_error, attempts

    async def _ensure_folder(self, note: NoteFile) -> str:
        folder = asset_folder_for(note.parent, note.basename, self.config.image_folder)
        try:
            await self.storage.mkdir(folder)
        except OSError as exc:
            raise StorageError(f"Cannot create asset folder {folder}: {exc}", folder, exc) from exc
        return folder

    def _link_for(self, written: str, note: NoteFile) -> str:
        if not self.config.use_relative_path:
            return written
        try:
            return relative_link(written, note.path)
        except ValueError as exc:
            logger.warning("Cannot build a relative link for %s (%s); using vault path", written, exc)
            return written

    async def download(self, url: str, note: NoteFile) -> DownloadResult:
        """Download ``url`` into the asset folder of ``note``.

        A failure to create the asset folder raises ``StorageError`` so that a
        batch can stop; every other failure is returned inside the result.
        """
        success, error, attempts = await self.fetch(url)
        if success is None:
            return DownloadResult(url=url, error=error, attempts=attempts)

        folder = await self._ensure_folder(note)
        save_path = join_vault_path(folder, unique_filename(url, self._clock))
        try:
            written = await self.storage.write_binary(save_path, success.body)
        except OSError as exc:
            cause = StorageError(f"Cannot write {save_path}: {exc}", save_path, exc)
            logger.error("Failed to save %s for %s: %s", url, note.path, cause)
            return DownloadResult(
                url=url,
                error=DownloadError(url, FailureReason.STORAGE, str(cause), cause=cause),
                attempts=attempts,
            )
        logger.info("Saved %s to %s", url, written)
        return DownloadResult(url=url, local_path=self._link_for(written, note), attempts=attempts)
