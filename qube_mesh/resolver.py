"""Element resolver: semantic intent -> interactable element, with robust clicks.

Intents are looked up in the matcher table and evaluated strategy by strategy.
Clicks escalate from a plain click to a forced click to a pointer event at
the element's bounding-box centre; each tier runs only if the previous one
raised.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from qube_mesh.errors import ElementNotFound, PageDiagnostics, RequiredElementTimeout
from qube_mesh.selectors import CandidateSet, MatcherTable, Root
from qube_mesh.waits import POLL_INTERVAL_MS, poll, wait_enabled

logger = logging.getLogger(__name__)

Intent = Union[str, CandidateSet]

DEFAULT_CLICK_TIMEOUT_MS = 30_000
SCROLL_SETTLE_MS = 200


class ClickTier(str, Enum):
    """How a click finally landed."""

    PLAIN = "plain"
    FORCED = "forced"
    COORDINATE = "coordinate"


class ElementResolver:
    """Resolve intents on one page and interact with the results.

    Args:
        page: The page this resolver is bound to (exclusively owned by one workflow).
        table: Matcher table; defaults to the packaged ``selectors.yaml``.
        timeout_scale: Multiplier applied to every bounded wait.
    """

    def __init__(
        self,
        page: Page,
        table: Optional[MatcherTable] = None,
        timeout_scale: float = 1.0,
    ) -> None:
        self.page = page
        self.table = table or MatcherTable()
        self.timeout_scale = timeout_scale

    def scaled(self, timeout_ms: int) -> int:
        return int(timeout_ms * self.timeout_scale)

    def candidates(self, intent: Intent, **kwargs: Any) -> CandidateSet:
        if isinstance(intent, CandidateSet):
            return intent
        return self.table.candidates(intent, **kwargs)

    async def diagnostics(self) -> PageDiagnostics:
        return await PageDiagnostics.capture(self.page)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def find(
        self,
        intent: Intent,
        *,
        scope: Optional[Root] = None,
        timeout_ms: int = 0,
        require_enabled: bool = False,
        **kwargs: Any,
    ) -> Optional[Locator]:
        """Bounded present-or-absent lookup: a locator, or ``None``."""
        candidate_set = self.candidates(intent, **kwargs)
        root = scope if scope is not None else self.page

        async def check() -> Optional[Locator]:
            return await candidate_set.first_match(root, require_enabled=require_enabled)

        return await poll(self.page, check, self.scaled(timeout_ms))

    async def resolve(
        self,
        intent: Intent,
        *,
        scope: Optional[Root] = None,
        timeout_ms: int,
        require_enabled: bool = False,
        **kwargs: Any,
    ) -> Locator:
        """Like :meth:`find`, but a missing element is fatal."""
        found = await self.find(
            intent,
            scope=scope,
            timeout_ms=timeout_ms,
            require_enabled=require_enabled,
            **kwargs,
        )
        if found is None:
            name = self.candidates(intent, **kwargs).intent
            raise ElementNotFound(name, self.scaled(timeout_ms), await self.diagnostics())
        return found

    async def race(
        self,
        intents: Mapping[str, Intent],
        *,
        timeout_ms: int,
        scope: Optional[Root] = None,
    ) -> Optional[str]:
        """Return the key of the first intent to show a visible element.

        Every intent is checked on each poll, in mapping order.
        """
        sets = {key: self.candidates(intent) for key, intent in intents.items()}
        root = scope if scope is not None else self.page

        async def check() -> Optional[str]:
            for key, candidate_set in sets.items():
                if await candidate_set.first_match(root) is not None:
                    return key
            return None

        return await poll(self.page, check, self.scaled(timeout_ms))

    async def is_present(self, intent: Intent, *, scope: Optional[Root] = None, **kwargs: Any) -> bool:
        return await self.find(intent, scope=scope, **kwargs) is not None

    async def count(self, intent: Intent, *, scope: Optional[Root] = None, **kwargs: Any) -> int:
        """Element count of the first strategy that matches anything."""
        root = scope if scope is not None else self.page
        for locator in self.candidates(intent, **kwargs).locators(root):
            try:
                found = await locator.count()
            except PlaywrightError:
                continue
            if found:
                return found
        return 0

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    async def ensure_enabled(self, locator: Locator, *, intent: str, timeout_ms: int) -> None:
        if not await wait_enabled(self.page, locator, self.scaled(timeout_ms)):
            raise RequiredElementTimeout(
                intent,
                self.scaled(timeout_ms),
                await self.diagnostics(),
                message=f"'{intent}' never became enabled within {self.scaled(timeout_ms)}ms",
            )

    async def click(
        self,
        locator: Locator,
        *,
        intent: str = "element",
        timeout_ms: int = DEFAULT_CLICK_TIMEOUT_MS,
    ) -> ClickTier:
        """Click with escalation: plain, then forced, then at the box centre."""
        try:
            await locator.scroll_into_view_if_needed(timeout=5_000)
            await self.page.wait_for_timeout(SCROLL_SETTLE_MS)
        except PlaywrightError:
            pass

        try:
            await locator.click(timeout=timeout_ms)
            return ClickTier.PLAIN
        except PlaywrightError as e:
            logger.info("Plain click on '%s' failed, forcing: %s", intent, e)

        try:
            await locator.click(force=True, timeout=timeout_ms)
            return ClickTier.FORCED
        except PlaywrightError as e:
            logger.info("Forced click on '%s' failed, using pointer event: %s", intent, e)

        box = await locator.bounding_box()
        if not box:
            raise ElementNotFound(
                intent,
                timeout_ms,
                await self.diagnostics(),
                message=f"'{intent}' has no bounding box for a coordinate click",
            )
        await self.page.mouse.click(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
        return ClickTier.COORDINATE

    async def click_intent(
        self,
        intent: Intent,
        *,
        visible_timeout_ms: int,
        enabled_timeout_ms: Optional[int] = None,
        scope: Optional[Root] = None,
        **kwargs: Any,
    ) -> Locator:
        """Resolve a mandatory control, wait until enabled, then click it."""
        name = self.candidates(intent, **kwargs).intent
        locator = await self.resolve(intent, scope=scope, timeout_ms=visible_timeout_ms, **kwargs)
        await self.ensure_enabled(
            locator,
            intent=name,
            timeout_ms=enabled_timeout_ms if enabled_timeout_ms is not None else visible_timeout_ms,
        )
        await self.click(locator, intent=name)
        return locator

    async def click_if_present(
        self,
        intent: Intent,
        *,
        timeout_ms: int,
        scope: Optional[Root] = None,
        **kwargs: Any,
    ) -> bool:
        """Click an optional control when it turns visible and enabled in time."""
        locator = await self.find(
            intent, scope=scope, timeout_ms=timeout_ms, require_enabled=True, **kwargs
        )
        if locator is None:
            return False
        await self.click(locator, intent=self.candidates(intent, **kwargs).intent)
        return True

    async def fill(self, locator: Locator, text: str, *, submit: bool = False) -> None:
        await locator.click()
        await locator.fill(text)
        if submit:
            await locator.press("Enter")

    async def click_yes_for(
        self,
        question: Locator,
        *,
        levels: int = 8,
        fallback_timeout_ms: int = 60_000,
    ) -> ClickTier:
        """Click the enabled "Yes" button that belongs to ``question``.

        Walks up the question's ancestors looking for a Yes button inside the
        same message block, so an older, already-answered question further up
        the chat is never clicked. Falls back to any enabled Yes on the page.
        """
        yes = self.candidates("actions.yes")
        container = question
        for _ in range(levels):
            container = container.locator("xpath=..")
            button = await yes.first_match(container, require_enabled=True)
            if button is not None:
                return await self.click(button, intent="Yes for question")
        logger.info("No scoped Yes button near the question, using the page-wide one")
        button = await self.resolve(yes, timeout_ms=fallback_timeout_ms, require_enabled=True)
        return await self.click(button, intent="Yes")

    async def dismiss_blocking_dialog(self) -> bool:
        """Close the FAQ overlay if it is covering the page."""
        closed = await self.click_if_present("navigation.close_faq", timeout_ms=0)
        if closed:
            logger.info("Dismissed blocking FAQ dialog")
        return closed

    async def wait_gone(self, locator: Locator, timeout_ms: int) -> bool:
        """True once ``locator`` is no longer visible."""

        async def check() -> bool:
            try:
                return not await locator.is_visible()
            except PlaywrightError:
                return True

        return bool(await poll(self.page, check, self.scaled(timeout_ms), POLL_INTERVAL_MS))
