"""Scanning and rewriting of embedded image references in note text.

Three syntaxes are recognised: wiki embeds (``![[path]]``), Markdown images
(``![alt](path)``) and raw ``<img src="...">`` tags. Rewrites are anchored to
those grammars, so a URL that merely appears in prose is never touched.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import AssetReference, SyntaxKind
from .utils import decode_uri, encode_uri, split_relative_prefix, to_posix

WIKI_EMBED_PATTERN = re.compile(r"!\[\[([^\]]+)\]\]")
MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
HTML_IMG_PATTERN = re.compile(
    r"(<img\b[^>]*?(?<![\w-])src\s*=\s*)([\"'])(.*?)\2([^>]*>)", re.IGNORECASE | re.DOTALL
)
HTML_ALT_PATTERN = re.compile(r"(?<![\w-])alt\s*=\s*([\"'])(.*?)\1", re.IGNORECASE | re.DOTALL)
REMOTE_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

ALL_SYNTAXES: Tuple[SyntaxKind, ...] = (
    SyntaxKind.WIKI_LINK,
    SyntaxKind.MARKDOWN_LINK,
    SyntaxKind.HTML_IMG,
)
EMBED_SYNTAXES: Tuple[SyntaxKind, ...] = (SyntaxKind.WIKI_LINK, SyntaxKind.MARKDOWN_LINK)

_PATTERNS: Dict[SyntaxKind, "re.Pattern[str]"] = {
    SyntaxKind.WIKI_LINK: WIKI_EMBED_PATTERN,
    SyntaxKind.MARKDOWN_LINK: MARKDOWN_IMAGE_PATTERN,
    SyntaxKind.HTML_IMG: HTML_IMG_PATTERN,
}

# Returns replacement text for the whole match, or None to keep it.
Rewrite = Callable[[AssetReference], Optional[str]]


def _reference_from_match(kind: SyntaxKind, match: "re.Match[str]") -> AssetReference:
    if kind is SyntaxKind.WIKI_LINK:
        return AssetReference(match.group(0), kind, match.group(1))
    if kind is SyntaxKind.MARKDOWN_LINK:
        return AssetReference(match.group(0), kind, match.group(2), match.group(1))
    alt_match = HTML_ALT_PATTERN.search(match.group(0))
    alt = alt_match.group(2) if alt_match else None
    return AssetReference(match.group(0), kind, match.group(3), alt)


def scan_references(
    text: str, kinds: Sequence[SyntaxKind] = ALL_SYNTAXES
) -> List[AssetReference]:
    """Return every embedded reference in ``text`` in order of appearance."""
    found: List[Tuple[int, AssetReference]] = []
    for kind in kinds:
        for match in _PATTERNS[kind].finditer(text):
            found.append((match.start(), _reference_from_match(kind, match)))
    found.sort(key=lambda item: item[0])
    return [reference for _, reference in found]


def rewrite_references(
    text: str, rewrite: Rewrite, kinds: Sequence[SyntaxKind] = ALL_SYNTAXES
) -> Tuple[str, bool]:
    """Apply ``rewrite`` to each reference, one left-to-right pass per syntax."""
    changed = False

    def _replace(kind: SyntaxKind, match: "re.Match[str]") -> str:
        nonlocal changed
        replacement = rewrite(_reference_from_match(kind, match))
        if replacement is None or replacement == match.group(0):
            return match.group(0)
        changed = True
        return replacement

    for kind in kinds:
        text = _PATTERNS[kind].sub(lambda match, kind=kind: _replace(kind, match), text)
    return text, changed


def replace_remote_urls(text: str, mapping: Dict[str, str]) -> Tuple[str, bool]:
    """Point Markdown and HTML images at their downloaded local copies."""
    if not mapping:
        return text, False

    def _rewrite(reference: AssetReference) -> Optional[str]:
        local_path = mapping.get(reference.url)
        if local_path is None:
            return None
        encoded = encode_uri(local_path)
        if reference.syntax_kind is SyntaxKind.MARKDOWN_LINK:
            return f"![{reference.alt_text}]({encoded})"
        match = HTML_IMG_PATTERN.fullmatch(reference.raw_match)
        if match is None:
            return None
        quote = match.group(2)
        return f"{match.group(1)}{quote}{encoded}{quote}{match.group(4)}"

    return rewrite_references(text, _rewrite, (SyntaxKind.MARKDOWN_LINK, SyntaxKind.HTML_IMG))


def _relocate(path: str, old_folder: str, new_folder: str) -> Optional[str]:
    prefix, remainder = split_relative_prefix(path)
    decoded = decode_uri(remainder)
    if decoded != old_folder and not decoded.startswith(old_folder + "/"):
        return None
    return prefix + new_folder + decoded[len(old_folder):]


def replace_folder_prefix(text: str, old_folder: str, new_folder: str) -> Tuple[str, bool]:
    """Move wiki and Markdown embeds from ``old_folder`` to ``new_folder``."""
    _, old_folder = split_relative_prefix(to_posix(old_folder).rstrip("/"))
    _, new_folder = split_relative_prefix(to_posix(new_folder).rstrip("/"))
    if not old_folder or old_folder == new_folder:
        return text, False

    def _rewrite(reference: AssetReference) -> Optional[str]:
        if reference.syntax_kind is SyntaxKind.WIKI_LINK:
            target, pipe, label = reference.url.partition("|")
            moved = _relocate(target, old_folder, new_folder)
            if moved is None:
                return None
            return f"![[{encode_uri(moved)}{pipe}{label}]]"
        moved = _relocate(reference.url, old_folder, new_folder)
        if moved is None:
            return None
        return f"![{reference.alt_text}]({encode_uri(moved)})"

    return rewrite_references(text, _rewrite, EMBED_SYNTAXES)


def embedded_targets(text: str, kinds: Iterable[SyntaxKind] = ALL_SYNTAXES) -> List[str]:
    """Link targets of embedded references, stripped of wiki aliases."""
    targets: List[str] = []
    for reference in scan_references(text, tuple(kinds)):
        target = reference.url
        if reference.syntax_kind is SyntaxKind.WIKI_LINK:
            target = target.split("|", 1)[0]
        target = target.strip()
        if target:
            targets.append(target)
    return targets


def find_external_images(text: str) -> List[str]:
    """Distinct remote image URLs in Markdown images and ``<img>`` tags."""
    urls: List[str] = []
    for reference in scan_references(text, (SyntaxKind.MARKDOWN_LINK, SyntaxKind.HTML_IMG)):
        url = reference.url.strip()
        if REMOTE_URL_PATTERN.match(url) and url not in urls:
            urls.append(url)
    return urls
