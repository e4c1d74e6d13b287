"""Command-line entry point for the local asset manager."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Sequence

from .config import load_config
from .engine import ReconciliationEngine
from .errors import LocalAssetsError
from .models import DeleteEvent, PasteEvent, RenameEvent, RenameOutcome
from .plugin import create_local_engine
from .vault import ConsoleInterface, LocalVault

logger = logging.getLogger("local_assets.cli")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("vault", type=Path, help="Root directory of the vault")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON settings file (defaults to <vault>/.local-assets.json)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download remote images into per-note asset folders and keep image links consistent.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    paste_parser = subparsers.add_parser(
        "paste", help="Localize the remote images of an HTML fragment for a note"
    )
    _add_common_arguments(paste_parser)
    paste_parser.add_argument("note", help="Note the content is pasted into")
    paste_parser.add_argument("html", type=Path, help="File holding the pasted HTML")
    paste_parser.add_argument(
        "--append",
        action="store_true",
        help="Append the processed HTML to the note instead of printing it",
    )

    for name, help_text in (
        ("localize", "Download the external images of a note and relink them"),
        ("check", "Interactively download external images of a note"),
        ("delete", "Delete a note together with its asset folder"),
        ("cleanup", "Remove images in a note's asset folder that the note no longer uses"),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        _add_common_arguments(command_parser)
        command_parser.add_argument("note", help="Vault-relative path of the note")

    rename_parser = subparsers.add_parser(
        "rename", help="Rename a note and move its asset folder along"
    )
    _add_common_arguments(rename_parser)
    rename_parser.add_argument("note", help="Current vault-relative path of the note")
    rename_parser.add_argument("new_path", help="New vault-relative path of the note")

    argv = list(sys.argv[1:] if argv is None else argv)
    return parser.parse_args(argv)


async def _run_paste(engine: ReconciliationEngine, vault: LocalVault, args: argparse.Namespace) -> int:
    note = vault.note(args.note)
    html = Path(args.html).read_text(encoding="utf-8")
    processed = await engine.handle_paste(PasteEvent(html=html), note)
    if processed is None:
        processed = html
    if args.append:
        text = await vault.read_text(note) if await vault.exists(note.path) else ""
        separator = "" if not text or text.endswith("\n") else "\n"
        await vault.write_text(note, text + separator + processed + "\n")
    else:
        sys.stdout.write(processed if processed.endswith("\n") else processed + "\n")
        sys.stdout.flush()
    return 0


async def _run_rename(engine: ReconciliationEngine, vault: LocalVault, args: argparse.Namespace) -> int:
    note = vault.note(args.note)
    renamed = vault.note(args.new_path)
    if await vault.exists(renamed.path):
        logger.error("Cannot rename %s: %s already exists", note.path, renamed.path)
        return 1
    await vault.move(note.path, renamed.path)
    report = await engine.handle_rename(RenameEvent(file=renamed, old_path=note.path))
    logger.info("Renamed %s -> %s (assets: %s)", note.path, renamed.path, report.outcome.value)
    return 1 if report.outcome is RenameOutcome.FAILED else 0


async def _run_delete(engine: ReconciliationEngine, vault: LocalVault, args: argparse.Namespace) -> int:
    note = vault.note(args.note)
    await vault.remove(note.path)
    await engine.handle_delete(DeleteEvent(file=note))
    logger.info("Deleted %s", note.path)
    return 0


async def _run(args: argparse.Namespace) -> int:
    vault_root = Path(args.vault).expanduser().resolve()
    config_path = args.config or vault_root / ".local-assets.json"
    config, warnings = load_config(config_path)
    ui = ConsoleInterface(assume_yes=args.yes)
    for warning in warnings:
        ui.notify(warning, 5000)

    engine = create_local_engine(vault_root, config, ui)
    vault = engine.storage
    if args.command == "paste":
        return await _run_paste(engine, vault, args)
    if args.command == "rename":
        return await _run_rename(engine, vault, args)
    if args.command == "delete":
        return await _run_delete(engine, vault, args)

    note = vault.note(args.note)
    if args.command == "localize":
        report = await engine.localize_note(note)
        return 1 if report.failures else 0
    if args.command == "check":
        await engine.check_external_images(note)
        return 0
    report = await engine.cleanup_orphans(note)
    return 1 if report.failed else 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    overall_start = time.perf_counter()
    try:
        status = asyncio.run(_run(args))
    except (LocalAssetsError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        status = 1
    logger.debug("Finished %s in %.2fs", args.command, time.perf_counter() - overall_start)
    sys.exit(status)


if __name__ == "__main__":
    main()
