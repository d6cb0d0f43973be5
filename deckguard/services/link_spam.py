"""
deckguard/services/link_spam.py — Link / domain spam detection
Any URL scheme, "www." prefix or bare `word.tld` token rejects a submission.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

SPAM_TLDS: tuple[str, ...] = (
    "com", "net", "org", "io", "co", "ai", "gg",
    "app", "dev", "info", "biz", "link",
)

_URL_RE = re.compile(r"(https?://|www\.)", re.IGNORECASE)
_BARE_DOMAIN_RE = re.compile(
    r"\b[a-z0-9-]+\.(?:" + "|".join(SPAM_TLDS) + r")\b",
    re.IGNORECASE,
)


def has_link_spam(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_URL_RE.search(value) or _BARE_DOMAIN_RE.search(value))


def any_link_spam(values: Iterable[Optional[str]]) -> bool:
    return any(has_link_spam(v) for v in values)
