"""
deckguard/services/profanity.py — Fuzzy profanity detection
Catches deliberately obfuscated profanity: leet-speak, spacing ("f u c k"),
punctuation insertion ("s.h.i.t"), repeated letters ("fuuuuck") and accents.

Pipeline per input string:
  1. tokenize the raw text
  2. normalize the whole text (lowercase, fold accents, strip zero-width,
     strip . - _ * #, leet map, join single-letter spacing, cap repeats at 2)
  3. tokenize the normalized text
  4. candidates = raw tokens + normalized tokens; joined candidates = 2..6
     token windows (≤20 chars) + the concatenated text. Each gets a
     letters-only strict variant and an l→i look-alike variant
  5. flag if any non-safe candidate is in the base blocklist (better_profanity),
     in the phonetic-miss set, ≥0.78 similar to a phonetic entry (4–12 chars),
     or contains a curated substring (≥4 chars). Joined candidates must
     start with the substring, so word endings running into the next word
     ("finish it") are not read as profanity
"""
from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from typing import Iterable, Optional

import Levenshtein
from better_profanity import Profanity

from deckguard.config import Settings, get_settings

# Legitimate words that trip the fuzzy or substring checks.
# "god" is in the base wordlist but is everyday vocabulary for the Prayer category.
SAFE_WORDS: frozenset[str] = frozenset({
    "scunthorpe",
    "penistone",
    "god",
    "shift",
    "shirt",
    "sheet",
    "batch",
    "botch",
    "blotch",
    "horse",
    "shore",
    "chore",
    "horde",
    "datum",
    "dickens",
    "shiitake",
    "shitake",
})

# Variants the leet map does not produce
PHONETIC_BAD_WORDS: frozenset[str] = frozenset({
    "biatch", "biotch", "beeyotch", "byatch",
    "phuck", "fuk", "fuq", "fvck", "phuk", "fck", "fk", "fcuk",
    "shyt", "sht", "chit", "shiit", "sheeet",
    "azz", "asz", "a55",
    "cnt", "kunt", "khunt",
    "dik", "dck", "d1ck",
    "hore", "wh0re", "ho3",
    "slvt", "sl00t", "slutt",
    "btch", "bltch", "b!tch", "b1tch", "biitch",
    "dammit", "dayum",
})

SUBSTRING_BAD_WORDS: tuple[str, ...] = (
    "bitch",
    "shit",
    "fuck",
    "cunt",
    "dick",
    "pussy",
    "penis",
    "whore",
    "slut",
    "bastard",
    "asshole",
)

_LEET_TABLE = str.maketrans({
    "0": "o",
    "1": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
    "9": "g",
    "@": "a",
    "$": "s",
    "!": "i",
    "+": "t",
    "|": "i",
    "(": "c",
    "<": "c",
})

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_SEPARATOR_RE = re.compile(r"[.\-_]")
_MASK_RE = re.compile(r"[*#]")
_SPACED_LETTER_RE = re.compile(r"\b(\w)\s+(?=\w)")
_TRIPLE_REPEAT_RE = re.compile(r"(.)\1{2,}")
_ANY_REPEAT_RE = re.compile(r"(.)\1+")
_NON_LETTER_RE = re.compile(r"[^a-z]")
_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[A-Za-z0-9@$!+|()<>]+")
_SAFE_WORD_RE = re.compile(r"\b(?:" + "|".join(sorted(SAFE_WORDS)) + r")\b")


# ──────────────────────────────────────────────────────────────────────────────
# Normalization
# ──────────────────────────────────────────────────────────────────────────────

def fold_accents(value: str) -> str:
    """NFKD-decompose and drop combining marks: "fück" → "fuck"."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: str) -> str:
    normalized = fold_accents(value.lower())
    normalized = _ZERO_WIDTH_RE.sub("", normalized)
    normalized = _SEPARATOR_RE.sub("", normalized)
    normalized = _MASK_RE.sub("", normalized)
    normalized = normalized.translate(_LEET_TABLE)
    normalized = _SPACED_LETTER_RE.sub(r"\1", normalized)
    normalized = _TRIPLE_REPEAT_RE.sub(r"\1\1", normalized)
    return normalized


def normalize_token(value: str) -> str:
    """Normalized text reduced to a-z only."""
    return _NON_LETTER_RE.sub("", normalize_text(value))


def normalize_strict(value: str) -> str:
    """Letters only, every repeat run collapsed to one: "fuuck" → "fuck"."""
    return _ANY_REPEAT_RE.sub(r"\1", normalize_token(value))


def tokenize(value: str) -> list[str]:
    return _TOKEN_RE.findall(value)


def similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length. 1.0 is identical."""
    if not a or not b:
        return 0.0
    a, b = a.lower(), b.lower()
    return 1.0 - Levenshtein.distance(a, b) / max(len(a), len(b))


# ──────────────────────────────────────────────────────────────────────────────
# Detector
# ──────────────────────────────────────────────────────────────────────────────

class ProfanityDetector:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        base_filter: Optional[Profanity] = None,
    ) -> None:
        s = settings or get_settings()
        self.fuzzy_threshold = s.fuzzy_match_threshold
        self.fuzzy_min_length = s.fuzzy_min_length
        self.fuzzy_max_length = s.fuzzy_max_length
        self.substring_min_length = s.substring_min_length
        self.max_window = s.candidate_max_window
        self.max_combined_length = s.candidate_max_combined_length
        self._filter = base_filter or build_base_filter()

    def _variants(self, token: str) -> set[str]:
        """A token plus its normalized, strict and l→i look-alike forms."""
        lower = token.lower()
        if not lower:
            return set()
        found = {lower}
        normalized = normalize_token(lower)
        if not normalized:
            return found
        found.add(normalized)
        strict = normalize_strict(normalized)
        if strict:
            found.add(strict)
        lookalike = normalized.replace("l", "i")
        if lookalike != normalized:
            found.add(lookalike)
            strict_lookalike = normalize_strict(lookalike)
            if strict_lookalike:
                found.add(strict_lookalike)
        return found

    def candidates(self, value: str) -> set[str]:
        """Single-token candidates from the raw and the normalized text."""
        normalized_text = normalize_text(value)
        found: set[str] = set()
        for token in _without_safe_words(tokenize(value)) + _without_safe_words(tokenize(normalized_text)):
            found |= self._variants(token)
        return found

    def joined_candidates(self, value: str) -> set[str]:
        """
        Candidates built across token boundaries: every 1..N window of
        consecutive normalized tokens, plus the whole text with whitespace
        removed. Each one starts at the start of a token.
        """
        normalized_text = normalize_text(value)
        tokens = _without_safe_words(tokenize(normalized_text)) or _without_safe_words(tokenize(value))
        found: set[str] = set()

        concatenated = _WHITESPACE_RE.sub("", _SAFE_WORD_RE.sub(" ", normalized_text))
        if concatenated:
            found |= self._variants(concatenated)

        # Windows over consecutive tokens defeat spacing / insertion evasion
        for start in range(len(tokens)):
            combined = ""
            for end in range(start, min(len(tokens), start + self.max_window)):
                combined += tokens[end]
                if len(combined) > self.max_combined_length:
                    break
                if end > start:
                    found |= self._variants(combined)
        return found

    def is_profane_candidate(self, candidate: str, joined: bool = False) -> bool:
        """
        `joined` candidates only match curated substrings at their start, so
        "finish it" → "finishit" does not read as "shit" while "sh it" still does.
        """
        if candidate in SAFE_WORDS:
            return False
        if candidate in PHONETIC_BAD_WORDS:
            return True
        length = len(candidate)
        if self.fuzzy_min_length <= length <= self.fuzzy_max_length:
            for bad_word in PHONETIC_BAD_WORDS:
                if similarity(candidate, bad_word) >= self.fuzzy_threshold:
                    return True
        if length >= self.substring_min_length:
            for bad_word in SUBSTRING_BAD_WORDS:
                if candidate.startswith(bad_word) if joined else bad_word in candidate:
                    return True
        return self._filter.contains_profanity(candidate)

    def contains_profanity(self, value: Optional[str]) -> bool:
        if not value:
            return False
        if any(self.is_profane_candidate(c) for c in self.candidates(value)):
            return True
        return any(self.is_profane_candidate(c, joined=True) for c in self.joined_candidates(value))

    def any_profane(self, values: Iterable[Optional[str]]) -> bool:
        return any(self.contains_profanity(v) for v in values)


def _without_safe_words(tokens: list[str]) -> list[str]:
    return [t for t in tokens if t.lower() not in SAFE_WORDS]


def build_base_filter() -> Profanity:
    """better_profanity wordlist minus our safe words."""
    base = Profanity()
    base.load_censor_words(whitelist_words=sorted(SAFE_WORDS))
    return base


@lru_cache()
def get_detector() -> ProfanityDetector:
    """Shared detector; the wordlist load is the expensive part."""
    return ProfanityDetector()
