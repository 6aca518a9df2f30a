"""Exception types raised by the Qube Mesh workflow engine.

Mandatory UI steps that never become available raise ``RequiredElementTimeout``
(or its resolver-level subclass ``ElementNotFound``) carrying a snapshot of the
page so a headless CI failure can be triaged from the error message alone.
Optional steps never raise: they return ``None`` from their bounded wait and log.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from playwright.async_api import Error as PlaywrightError

BODY_SNIPPET_LENGTH = 400


@dataclass(frozen=True)
class PageDiagnostics:
    """Last known state of the page when a step failed."""

    url: str = ""
    title: str = ""
    body_snippet: str = ""

    @classmethod
    async def capture(cls, page: Any) -> PageDiagnostics:
        """Best-effort snapshot of url, title and a truncated body text."""
        url = getattr(page, "url", "") or ""
        try:
            title = await page.title()
        except PlaywrightError:
            title = ""
        try:
            body = await page.locator("body").inner_text(timeout=2_000)
        except PlaywrightError:
            body = ""
        snippet = re.sub(r"\s+", " ", body or "").strip()[:BODY_SNIPPET_LENGTH]
        return cls(url=str(url), title=title or "", body_snippet=snippet)

    def __str__(self) -> str:
        return f"url={self.url} title={self.title!r} body={self.body_snippet!r}"


class QubeMeshError(Exception):
    """Base class for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        *,
        workflow: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.workflow = workflow
        self.step = step

    def attach(self, workflow: str, step: Optional[str]) -> QubeMeshError:
        """Record where the error happened unless an inner layer already did."""
        if self.workflow is None:
            self.workflow = workflow
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        prefix = ""
        if self.workflow:
            prefix += f"[{self.workflow}] "
        if self.step:
            prefix += f"step '{self.step}': "
        return prefix + self.message


class RequiredElementTimeout(QubeMeshError):
    """A mandatory control never became visible or enabled in its bounded wait."""

    def __init__(
        self,
        intent: str,
        timeout_ms: int,
        diagnostics: Optional[PageDiagnostics] = None,
        *,
        message: Optional[str] = None,
        workflow: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        self.intent = intent
        self.timeout_ms = timeout_ms
        self.diagnostics = diagnostics or PageDiagnostics()
        text = message or f"'{intent}' was not available within {timeout_ms}ms"
        super().__init__(f"{text} ({self.diagnostics})", workflow=workflow, step=step)


class ElementNotFound(RequiredElementTimeout):
    """No candidate of an intent's candidate set became interactable."""


class UnsupportedScenarioKey(QubeMeshError, KeyError):
    """A scenario key or branch selector has no handler."""

    def __init__(
        self,
        key: Any,
        supported: Iterable[Any],
        *,
        message: Optional[str] = None,
    ) -> None:
        self.key = key
        self.supported = [str(item) for item in supported]
        text = message or (
            f'Unsupported value "{key}". Expected one of: {", ".join(self.supported)}'
        )
        super().__init__(text)


class ScenarioDataError(QubeMeshError, ValueError):
    """A scenario row lacks a mandatory field."""


class DateFormatError(QubeMeshError, ValueError):
    """A date string is neither ``YYYY-MM-DD`` nor ``DD/MM/YYYY``."""


class DateSelectionError(QubeMeshError):
    """The date widget never displayed the selected date."""

    def __init__(self, message: str, diagnostics: Optional[PageDiagnostics] = None) -> None:
        self.diagnostics = diagnostics or PageDiagnostics()
        super().__init__(f"{message} ({self.diagnostics})")


class ConfigurationError(QubeMeshError):
    """Required settings are missing."""

    def __init__(self, missing: Iterable[str], message: Optional[str] = None) -> None:
        self.missing = list(missing)
        super().__init__(
            message or f"Missing required environment variables: {', '.join(self.missing)}"
        )
