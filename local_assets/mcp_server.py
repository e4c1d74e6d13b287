"""MCP server exposing note image localization tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .plugin import create_local_engine
from .vault import ConsoleInterface

logger = logging.getLogger("local_assets.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="local-assets")


def _engine_for(vault: str):
    root = Path(vault).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Vault directory does not exist: {root}")
    config, warnings = load_config(root / ".local-assets.json")
    for warning in warnings:
        logger.warning("%s", warning)
    return create_local_engine(root, config, ConsoleInterface(assume_yes=False))


@mcp.tool()
async def localize_note(vault: str, note: str) -> str:
    """Download the remote images a note links and point the links at local copies."""
    engine = _engine_for(vault)
    report = await engine.localize_note(engine.storage.note(note))
    lines = [f"{result.url} -> {result.local_path}" for result in report.results if result.ok]
    lines.extend(
        f"{result.url} failed: {result.error}" for result in report.failures
    )
    if not lines:
        return "No external images found."
    status = "Note updated." if report.updated else "Note unchanged."
    return "\n".join([status, *lines])


@mcp.tool()
async def find_unused_images(vault: str, note: str) -> List[str]:
    """List images in a note's asset folder that the note no longer embeds."""
    engine = _engine_for(vault)
    return await engine.find_orphans(engine.storage.note(note))


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
