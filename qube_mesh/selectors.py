"""Matcher table: semantic UI intent -> ordered list of typed locator strategies.

The table is kept in ``selectors.yaml`` so the patterns can be tuned when the
application's markup changes without touching workflow code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Pattern, Tuple, Union

import yaml
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from qube_mesh.waits import first_visible, is_enabled

DEFAULT_TABLE_PATH = Path(__file__).parent / "selectors.yaml"

Root = Union[Page, Locator]


def compile_pattern(text: str, case_sensitive: bool = False) -> Pattern[str]:
    return re.compile(text, 0 if case_sensitive else re.IGNORECASE)


def _filtered(
    locator: Locator,
    root: Root,
    has_text: Optional[Pattern[str]],
    has_not_text: Optional[Pattern[str]],
    has: Optional["Matcher"],
) -> Locator:
    if has_text is not None:
        locator = locator.filter(has_text=has_text)
    if has_not_text is not None:
        locator = locator.filter(has_not_text=has_not_text)
    if has is not None:
        locator = locator.filter(has=has.locate(root))
    return locator


@dataclass(frozen=True)
class RoleMatcher:
    role: str
    name: Optional[Pattern[str]] = None
    has_text: Optional[Pattern[str]] = None
    has_not_text: Optional[Pattern[str]] = None
    has: Optional["Matcher"] = None

    def locate(self, root: Root) -> Locator:
        if self.name is None:
            locator = root.get_by_role(self.role)
        else:
            locator = root.get_by_role(self.role, name=self.name)
        return _filtered(locator, root, self.has_text, self.has_not_text, self.has)


@dataclass(frozen=True)
class TextMatcher:
    pattern: Pattern[str]
    exclude_code: bool = False
    has_text: Optional[Pattern[str]] = None
    has_not_text: Optional[Pattern[str]] = None
    has: Optional["Matcher"] = None

    def locate(self, root: Root) -> Locator:
        locator = root.get_by_text(self.pattern)
        if self.exclude_code:
            locator = locator.filter(has_not=root.locator("code"))
        return _filtered(locator, root, self.has_text, self.has_not_text, self.has)


@dataclass(frozen=True)
class PlaceholderMatcher:
    pattern: Pattern[str]
    has_text: Optional[Pattern[str]] = None
    has_not_text: Optional[Pattern[str]] = None
    has: Optional["Matcher"] = None

    def locate(self, root: Root) -> Locator:
        locator = root.get_by_placeholder(self.pattern)
        return _filtered(locator, root, self.has_text, self.has_not_text, self.has)


@dataclass(frozen=True)
class LabelMatcher:
    pattern: Pattern[str]
    has_text: Optional[Pattern[str]] = None
    has_not_text: Optional[Pattern[str]] = None
    has: Optional["Matcher"] = None

    def locate(self, root: Root) -> Locator:
        locator = root.get_by_label(self.pattern)
        return _filtered(locator, root, self.has_text, self.has_not_text, self.has)


@dataclass(frozen=True)
class CssMatcher:
    selector: str
    has_text: Optional[Pattern[str]] = None
    has_not_text: Optional[Pattern[str]] = None
    has: Optional["Matcher"] = None

    def locate(self, root: Root) -> Locator:
        locator = root.locator(self.selector)
        return _filtered(locator, root, self.has_text, self.has_not_text, self.has)


Matcher = Union[RoleMatcher, TextMatcher, PlaceholderMatcher, LabelMatcher, CssMatcher]


@dataclass(frozen=True)
class CandidateSet:
    """Ordered matcher strategies for one intent, evaluated lazily."""

    intent: str
    matchers: Tuple[Matcher, ...]

    def locators(self, root: Root) -> Iterator[Locator]:
        for matcher in self.matchers:
            yield matcher.locate(root)

    async def first_match(self, root: Root, require_enabled: bool = False) -> Optional[Locator]:
        """First visible (and optionally enabled) element over all strategies."""
        for locator in self.locators(root):
            if not require_enabled:
                found = await first_visible(locator)
                if found is not None:
                    return found
                continue
            count = await _safe_count(locator)
            for index in range(min(count, 20)):
                item = locator.nth(index)
                if await first_visible(item) is not None and await is_enabled(item):
                    return item
        return None

    def union(self, root: Root) -> Locator:
        """All strategies as one locator, for waits that only need "any"."""
        combined: Optional[Locator] = None
        for locator in self.locators(root):
            combined = locator if combined is None else combined.or_(locator)
        if combined is None:
            raise ValueError(f"Candidate set '{self.intent}' has no matchers")
        return combined

    def __add__(self, other: CandidateSet) -> CandidateSet:
        return CandidateSet(f"{self.intent}+{other.intent}", self.matchers + other.matchers)


async def _safe_count(locator: Locator) -> int:
    try:
        return await locator.count()
    except PlaywrightError:
        return 0


def _format(value: Any, kwargs: Dict[str, Any]) -> Any:
    if kwargs and isinstance(value, str):
        return value.format(**kwargs)
    return value


def build_matcher(entry: Dict[str, Any], **kwargs: Any) -> Matcher:
    """Build one typed matcher from a YAML strategy entry."""
    case_sensitive = bool(entry.get("case_sensitive", False))

    def pattern(key: str) -> Optional[Pattern[str]]:
        if entry.get(key) is None:
            return None
        return compile_pattern(_format(str(entry[key]), kwargs), case_sensitive)

    filters = {
        "has_text": pattern("has_text"),
        "has_not_text": pattern("has_not_text"),
        "has": build_matcher(entry["has"], **kwargs) if entry.get("has") else None,
    }
    by = entry.get("by")
    if by == "role":
        return RoleMatcher(role=entry["role"], name=pattern("name"), **filters)
    if by == "text":
        return TextMatcher(
            pattern=pattern("pattern"),
            exclude_code=bool(entry.get("exclude_code", False)),
            **filters,
        )
    if by == "placeholder":
        return PlaceholderMatcher(pattern=pattern("pattern"), **filters)
    if by == "label":
        return LabelMatcher(pattern=pattern("pattern"), **filters)
    if by == "css":
        return CssMatcher(selector=_format(entry["selector"], kwargs), **filters)
    raise ValueError(f"Unknown matcher strategy: {by!r}")


class MatcherTable:
    """Intent lookup over the YAML matcher table.

    Example:
        table = MatcherTable()
        proceed = table.candidates("actions.proceed")
        cell = table.candidates("dates.cell", text="2025")
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else DEFAULT_TABLE_PATH
        self.entries = _load_table(str(self.path))

    def candidates(self, intent: str, **kwargs: Any) -> CandidateSet:
        """Get the candidate set for a dot-notation intent path."""
        value: Any = self.entries
        for part in intent.split("."):
            try:
                value = value[part]
            except (KeyError, TypeError):
                raise KeyError(f"Unknown intent '{intent}' in {self.path}") from None
        if not isinstance(value, list):
            raise KeyError(f"Intent '{intent}' is a group, not a strategy list")
        return CandidateSet(intent, tuple(build_matcher(entry, **kwargs) for entry in value))

    def intents(self) -> List[str]:
        """All leaf intent paths, in table order."""
        found: List[str] = []

        def walk(node: Any, prefix: str) -> None:
            if isinstance(node, list):
                found.append(prefix)
                return
            for key, child in node.items():
                walk(child, f"{prefix}.{key}" if prefix else key)

        walk(self.entries, "")
        return found


@lru_cache(maxsize=8)
def _load_table(path: str) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def text_candidates(pattern: Pattern[str], exclude_code: bool = False) -> CandidateSet:
    """Single-strategy candidate set for visible text."""
    return CandidateSet(f"text /{pattern.pattern}/", (TextMatcher(pattern, exclude_code=exclude_code),))


def choice_candidates(pattern: Pattern[str], roles: Tuple[str, ...] = ("button", "link")) -> CandidateSet:
    """A clickable choice by accessible name, falling back to its text."""
    matchers: Tuple[Matcher, ...] = tuple(RoleMatcher(role, name=pattern) for role in roles)
    return CandidateSet(
        f"choice /{pattern.pattern}/",
        matchers + (TextMatcher(pattern, exclude_code=True),),
    )
