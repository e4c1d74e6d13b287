"""Request header policy used to get past hotlink protection."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import RefererRule

logger = logging.getLogger("local_assets")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
)
MINIMAL_HEADERS = {"User-Agent": "Mozilla/5.0"}

# Consulted only when no configured rule matches the host.
FALLBACK_REFERERS: Tuple[RefererRule, ...] = (
    RefererRule(pattern="*.aliyuncs.com", referer_url="https://www.52audio.com/"),
)


def match_domain(hostname: str, pattern: str) -> bool:
    """Match a hostname against an exact host or a ``*.``-prefixed wildcard."""
    if pattern.startswith("*."):
        base = pattern[2:]
        return hostname == base or hostname.endswith("." + base)
    return hostname == pattern


def _origin_of(url: str) -> Optional[str]:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def _find_rule(hostname: str, rules: Sequence[RefererRule]) -> Optional[RefererRule]:
    for rule in rules:
        if match_domain(hostname, rule.pattern):
            return rule
    return None


def _base_headers() -> Dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Sec-Fetch-Dest": "image",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }


def headers_for(
    url: str,
    attempt_index: int = 0,
    rules: Sequence[RefererRule] = (),
) -> Dict[str, str]:
    """Build request headers for ``url`` on the given attempt.

    Attempt 0 sends the Referer/Origin resolved from the configured rules (or
    the built-in fallback table), attempt 1 claims the image itself as the
    Referer, attempt 2 sends an empty Referer. Later attempts repeat the first
    policy. Never raises; on a bad URL only a user agent is returned.
    """
    try:
        origin = _origin_of(url)
        hostname = urlparse(url).hostname
        if origin is None or not hostname:
            raise ValueError(f"cannot derive an origin from {url!r}")

        headers = _base_headers()
        rule = _find_rule(hostname, rules)
        source = "configured"
        if rule is None:
            rule = _find_rule(hostname, FALLBACK_REFERERS)
            source = "fallback"
        if rule is not None:
            logger.debug("Applying %s Referer rule %s for %s", source, rule.pattern, url)
            headers["Referer"] = rule.referer_url
            rule_origin = _origin_of(rule.referer_url)
            if rule_origin is None:
                logger.warning(
                    "Cannot derive an Origin from referer %s; using %s", rule.referer_url, origin
                )
                rule_origin = origin
            headers["Origin"] = rule_origin

        if attempt_index == 1:
            headers["Referer"] = url
            headers.pop("Origin", None)
        elif attempt_index == 2:
            headers["Referer"] = ""
            headers.pop("Origin", None)
        else:
            headers.setdefault("Referer", "")
            headers.setdefault("Origin", "")

        logger.debug("Headers for %s (attempt %d): %s", url, attempt_index, headers)
        return headers
    except ValueError as exc:
        logger.error("Failed to build request headers for %s: %s", url, exc)
        return dict(MINIMAL_HEADERS)
