"""Configuration objects and constants for the asset manager."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from .errors import ConfigError
from .models import RefererRule

logger = logging.getLogger("local_assets.config")

TITLE_PLACEHOLDER = "{title}"
DEFAULT_IMAGE_FOLDER = "assets/{title}"
DEFAULT_DOWNLOAD_TIMEOUT_MS = 30_000


@dataclass(frozen=True)
class AssetsConfig:
    """Settings consumed by the localization engine."""

    use_relative_path: bool = True
    keep_original_url: bool = False
    image_folder: str = DEFAULT_IMAGE_FOLDER
    delete_assets_with_note: bool = True
    download_timeout: int = DEFAULT_DOWNLOAD_TIMEOUT_MS
    referer_rules: Tuple[RefererRule, ...] = field(default_factory=tuple)

    @property
    def per_note_folders(self) -> bool:
        """Folder operations are only safe when each note owns its folder."""
        return TITLE_PLACEHOLDER in self.image_folder

    @property
    def timeout_seconds(self) -> float:
        return self.download_timeout / 1000.0


def parse_referer_rules(raw: Any) -> Tuple[RefererRule, ...]:
    """Turn a JSON object (or its string form) into ordered referer rules."""
    if raw is None or raw == "":
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Referer rules are not valid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigError("Referer rules must be a JSON object of host pattern -> referer URL")
    rules: List[RefererRule] = []
    for pattern, referer in raw.items():
        if not isinstance(pattern, str) or not isinstance(referer, str):
            raise ConfigError(f"Invalid referer rule for {pattern!r}")
        rules.append(RefererRule(pattern=pattern.strip(), referer_url=referer.strip()))
    return tuple(rules)


def config_from_settings(data: Mapping[str, Any]) -> Tuple[AssetsConfig, List[str]]:
    """Build a config from persisted host settings, collecting warnings."""
    warnings: List[str] = []
    defaults = AssetsConfig()

    def _bool(key: str, default: bool) -> bool:
        value = data.get(key, default)
        if isinstance(value, bool):
            return value
        warnings.append(f"Setting {key} must be true or false; using {default}.")
        return default

    image_folder = data.get("imageFolder", defaults.image_folder)
    if not isinstance(image_folder, str) or not image_folder.strip():
        warnings.append("Setting imageFolder is empty; using the default folder template.")
        image_folder = defaults.image_folder

    timeout = data.get("downloadTimeout", defaults.download_timeout)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        warnings.append(
            f"Setting downloadTimeout must be a positive number of milliseconds; using {defaults.download_timeout}."
        )
        timeout = defaults.download_timeout

    try:
        rules = parse_referer_rules(data.get("refererRules"))
    except ConfigError as exc:
        logger.error("Failed to load referer rules: %s", exc)
        warnings.append("Failed to load referer rules; falling back to the default strategy.")
        rules = ()

    config = AssetsConfig(
        use_relative_path=_bool("useRelativePath", defaults.use_relative_path),
        keep_original_url=_bool("keepOriginalUrl", defaults.keep_original_url),
        image_folder=image_folder.strip(),
        delete_assets_with_note=_bool("deleteAssetsWithNote", defaults.delete_assets_with_note),
        download_timeout=timeout,
        referer_rules=rules,
    )
    return config, warnings


def load_config(path: Optional[Path]) -> Tuple[AssetsConfig, List[str]]:
    """Read a JSON settings file; a missing path yields the defaults."""
    if path is None:
        return AssetsConfig(), []
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug("Settings file %s not found; using defaults", path)
        return AssetsConfig(), []
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read settings from {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    return config_from_settings(data)
