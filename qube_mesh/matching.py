"""Free-text to UI-label matching helpers.

Scenario rows carry human-written reasons ("terms & conditions changed",
"Termination – for cause") that rarely equal the option labels exactly. These
helpers turn such text into ordered regex candidates, most specific first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

DASHES = "—–-"


def escaped_pattern(text: str) -> Optional[Pattern[str]]:
    """Literal text, whitespace-tolerant, case-insensitive."""
    words = (text or "").split()
    if not words:
        return None
    return re.compile(r"\s+".join(re.escape(word) for word in words), re.IGNORECASE)


def flexible_pattern(text: str, separators: str = rf"[\s{DASHES}]+") -> Optional[Pattern[str]]:
    """Words of ``text`` joined by any run of whitespace or dashes."""
    words = [word for word in re.split(rf"[\s{DASHES}]+", (text or "").strip()) if word]
    if not words:
        return None
    return re.compile(separators.join(re.escape(word) for word in words), re.IGNORECASE)


def keywords(text: str, min_length: int = 3) -> List[str]:
    return [
        word.lower()
        for word in re.split(rf"[^\w]+", text or "")
        if len(word) >= min_length
    ]


def last_keywords_pattern(text: str, count: int = 2) -> Optional[Pattern[str]]:
    """The last ``count`` significant words, in order, anything in between."""
    words = keywords(text)[-count:]
    if not words:
        return None
    return re.compile(".*".join(re.escape(word) for word in words), re.IGNORECASE)


def all_words_pattern(text: str) -> Optional[Pattern[str]]:
    """Every significant word present, in any order."""
    words = keywords(text)
    if not words:
        return None
    return re.compile("".join(rf"(?=.*{re.escape(word)})" for word in words), re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class KeywordRule:
    """Maps free text to an option label when every keyword group is present.

    Each group is a tuple of alternatives; all groups must match.
    """

    groups: Tuple[Tuple[str, ...], ...]
    label: Pattern[str]

    def matches(self, text: str) -> bool:
        lowered = (text or "").lower()
        return all(any(word in lowered for word in group) for group in self.groups)


def rule(label: str, *groups: Iterable[str]) -> KeywordRule:
    return KeywordRule(
        groups=tuple(tuple(group) for group in groups),
        label=re.compile(label, re.IGNORECASE),
    )


def mapped_patterns(text: str, rules: Sequence[KeywordRule]) -> List[Pattern[str]]:
    return [item.label for item in rules if item.matches(text)]


def unique(patterns: Iterable[Optional[Pattern[str]]]) -> List[Pattern[str]]:
    """Drop ``None`` entries and repeated regexes, keeping order."""
    seen = set()
    result: List[Pattern[str]] = []
    for pattern in patterns:
        if pattern is None:
            continue
        key = (pattern.pattern, pattern.flags)
        if key in seen:
            continue
        seen.add(key)
        result.append(pattern)
    return result
