"""HTML fragment inspection and mutation for pasted content."""

from __future__ import annotations

import re
from typing import List

from bs4 import BeautifulSoup, Comment, Tag

from .utils import encode_uri

REMOTE_IMG_PATTERN = re.compile(r"<img\b[^>]*?(?<![\w-])src\s*=\s*[\"']https?://", re.IGNORECASE)
FAILED_IMAGE_STYLE = "border: 2px dashed red; opacity: 0.7"
FAILURE_NOTE_STYLE = "color: red; font-size: small"


def has_remote_images(html: str) -> bool:
    """Cheap check used before deciding to take over a paste."""
    return bool(html) and bool(REMOTE_IMG_PATTERN.search(html))


def parse_fragment(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def is_remote(src: str) -> bool:
    return src.startswith("http://") or src.startswith("https://")


def remote_images(soup: BeautifulSoup) -> List[Tag]:
    """``<img>`` tags whose ``src`` points at an http(s) URL, in document order."""
    return [img for img in soup.find_all("img") if is_remote(img.get("src") or "")]


def mark_localized(img: Tag, local_path: str, original_url: str, keep_original: bool) -> None:
    """Point ``img`` at its local copy, optionally recording the original URL."""
    img["src"] = encode_uri(local_path)
    if img.has_attr("srcset"):
        del img["srcset"]
    if keep_original:
        img.insert_after(Comment(f" Original URL: {original_url} "))


def mark_failed(soup: BeautifulSoup, img: Tag, url: str) -> None:
    """Flag an image that could not be downloaded and leave an inline note."""
    style = (img.get("style") or "").strip().rstrip(";")
    img["style"] = f"{style}; {FAILED_IMAGE_STYLE}" if style else FAILED_IMAGE_STYLE
    note = soup.new_tag("span", attrs={"style": FAILURE_NOTE_STYLE})
    note.string = f" [download failed: {url[:50]}...] "
    img.insert_after(note)


def render_fragment(soup: BeautifulSoup) -> str:
    if soup.body is not None:
        return soup.body.decode_contents()
    return soup.decode()
