"""Adapter wiring host events and commands to the engine workflows."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from .config import AssetsConfig
from .engine import ReconciliationEngine
from .models import (
    CleanupReport,
    DeleteEvent,
    NoteFile,
    PasteEvent,
    RenameEvent,
    RenameReport,
)
from .vault import ConsoleInterface, LocalVault, RequestsTransport

logger = logging.getLogger("local_assets.plugin")


class EventSource(Protocol):
    def on(self, name: str, handler: Callable[[Any], Awaitable[Any]]) -> None: ...


class LocalAssetsPlugin:
    """Routes paste/rename/delete notifications and commands to the engine."""

    def __init__(
        self,
        engine: ReconciliationEngine,
        active_note: Callable[[], Optional[NoteFile]] = lambda: None,
    ) -> None:
        self.engine = engine
        self.active_note = active_note

    def register(self, events: EventSource) -> None:
        events.on("paste", self.on_paste)
        events.on("rename", self.on_rename)
        events.on("delete", self.on_delete)
        logger.debug("Registered paste, rename and delete handlers")

    async def on_paste(self, event: PasteEvent) -> Optional[str]:
        return await self.engine.handle_paste(event, self.active_note())

    async def on_rename(self, event: RenameEvent) -> RenameReport:
        return await self.engine.handle_rename(event)

    async def on_delete(self, event: DeleteEvent) -> bool:
        return await self.engine.handle_delete(event)

    async def cleanup_current_note(self) -> Optional[CleanupReport]:
        note = self.active_note()
        if note is None:
            return None
        return await self.engine.cleanup_orphans(note)

    async def check_current_note(self) -> None:
        note = self.active_note()
        if note is not None:
            await self.engine.check_external_images(note)


def create_local_engine(
    vault_root: Path,
    config: AssetsConfig,
    ui: Optional[ConsoleInterface] = None,
) -> ReconciliationEngine:
    """Engine bound to a directory vault, the requests transport and a console UI."""
    vault = LocalVault(vault_root)
    return ReconciliationEngine(
        config=config,
        transport=RequestsTransport(),
        storage=vault,
        resolver=vault,
        ui=ui or ConsoleInterface(),
    )
