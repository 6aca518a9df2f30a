"""Listbox and multi-select handling.

Selection never fails just because a label did not match: after the exact and
mapped candidates are exhausted it picks the documented default index and logs
a warning. Multi-select options toggle, so selection first checks whether the
option already reads as selected.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Pattern, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator

from qube_mesh.errors import ElementNotFound
from qube_mesh.resolver import ElementResolver
from qube_mesh.selectors import CandidateSet, CssMatcher, RoleMatcher
from qube_mesh.waits import first_visible, poll, safe_press

logger = logging.getLogger(__name__)

DEFAULT_OPTION_INDEX = 1
OPEN_RETRY_PAUSE_MS = 350
OPEN_CHECK_MS = 1_000
LOADER_TIMEOUT_MS = 60_000
CLOSE_SETTLE_MS = 1_000
TOGGLE_ATTEMPTS = 3
SELECTED_VERIFY_MS = 30_000
CHEVRON_INSET_PX = 12
CHECKBOX_INSET_PX = 16

SELECTED_TEXT = re.compile(r"checkbox\s+checked", re.IGNORECASE)
SELECTED_CLASS = re.compile(r"\bselected\b|\bchecked\b", re.IGNORECASE)


def option_candidates(pattern: Pattern[str]) -> CandidateSet:
    """Where an option label may live, most specific first."""
    return CandidateSet(
        f"option {pattern.pattern}",
        (
            RoleMatcher("checkbox", name=pattern),
            RoleMatcher("option", name=pattern),
            CssMatcher("mat-option, option, [role=\"menuitem\"], li, label", has_text=pattern),
            CssMatcher("div", has_text=pattern),
        ),
    )


async def is_option_selected(option: Locator) -> bool:
    """Whether a toggle-style option currently reads as selected."""
    try:
        if (await option.get_attribute("aria-selected") or "").lower() == "true":
            return True
        if (await option.get_attribute("aria-checked") or "").lower() == "true":
            return True
        if SELECTED_CLASS.search(await option.get_attribute("class") or ""):
            return True
        return bool(SELECTED_TEXT.search(await option.inner_text(timeout=2_000) or ""))
    except PlaywrightError:
        return False


async def ensure_option_selected(
    resolver: ElementResolver,
    option: Locator,
    *,
    attempts: int = TOGGLE_ATTEMPTS,
    verify_timeout_ms: int = SELECTED_VERIFY_MS,
) -> bool:
    """Select a multi-select option exactly once.

    Clicking an already selected option would deselect it, so the option is
    only clicked while it does not read as selected.
    """
    if await is_option_selected(option):
        logger.info("Option already selected, not toggling it")
        return True

    for attempt in range(1, attempts + 1):
        box = None
        try:
            box = await option.bounding_box()
        except PlaywrightError:
            pass
        if box:
            await resolver.page.mouse.click(box["x"] + CHECKBOX_INSET_PX, box["y"] + box["height"] / 2)
        else:
            await resolver.click(option, intent="multi-select option")
        if await is_option_selected(option):
            return True
        logger.debug("Option not selected after attempt %d", attempt)

    async def selected() -> bool:
        return await is_option_selected(option)

    return bool(await poll(resolver.page, selected, resolver.scaled(verify_timeout_ms)))


class Dropdown:
    """A listbox that opens into an overlay panel (or renders options inline).

    Args:
        resolver: Resolver bound to the page.
        trigger: The listbox / combobox element.
        name: Name used in logs.
    """

    def __init__(self, resolver: ElementResolver, trigger: Locator, name: str) -> None:
        self.resolver = resolver
        self.page = resolver.page
        self.trigger = trigger
        self.name = name

    async def panel(self) -> Optional[Locator]:
        return await self.resolver.find("dropdown.panel")

    def _option_locator(self, root) -> Locator:
        return next(self.resolver.candidates("dropdown.option").locators(root))

    async def options(self) -> Locator:
        """Options of the open panel, or of the inline listbox."""
        panel = await self.panel()
        if panel is not None:
            return self._option_locator(panel)
        return self._option_locator(self.trigger)

    async def option_count(self) -> int:
        try:
            return await (await self.options()).count()
        except PlaywrightError:
            return 0

    async def is_open(self) -> bool:
        return await first_visible(await self.options()) is not None

    async def wait_for_loader(self) -> None:
        """Wait (best-effort) for spinners and busy markers to go away."""
        loader = await self.resolver.find("dropdown.loader")
        if loader is None:
            return
        if not await self.resolver.wait_gone(loader, LOADER_TIMEOUT_MS):
            logger.info("Loader still visible after %sms, continuing", LOADER_TIMEOUT_MS)

    async def _click_chevron(self) -> None:
        box = None
        try:
            box = await self.trigger.bounding_box()
        except PlaywrightError:
            pass
        if box:
            await self.page.mouse.click(box["x"] + box["width"] - CHEVRON_INSET_PX, box["y"] + box["height"] / 2)
        else:
            await self.resolver.click(self.trigger, intent=self.name)

    async def open(self, attempts: int = 1) -> bool:
        """Open the dropdown; each attempt clicks, waits out loaders and re-checks."""
        for attempt in range(1, attempts + 1):
            if await self.is_open():
                return True
            await self._click_chevron()
            await safe_press(self.trigger, "Enter")
            await self.wait_for_loader()
            if not await self.is_open():
                await self._click_chevron()
            if await poll(self.page, self.is_open, OPEN_CHECK_MS):
                logger.debug("%s opened on attempt %d", self.name, attempt)
                return True
            await self.page.wait_for_timeout(OPEN_RETRY_PAUSE_MS)
            logger.info("%s not open after attempt %d/%d", self.name, attempt, attempts)
        return False

    async def find_option(self, pattern: Pattern[str]) -> Optional[Locator]:
        """Option matching ``pattern`` inside the open panel or the listbox itself.

        Chat text elsewhere on the page never counts as an option.
        """
        candidates = option_candidates(pattern)
        panel = await self.panel()
        for root in (panel, self.trigger):
            if root is None:
                continue
            found = await candidates.first_match(root)
            if found is not None:
                return found
        return None

    async def option_at(self, index: int) -> Optional[Locator]:
        options = await self.options()
        count = await self.option_count()
        if count == 0:
            return None
        if index >= count:
            logger.warning("%s has %d options, using the last one instead of #%d", self.name, count, index + 1)
            index = count - 1
        return options.nth(max(index, 0))

    async def select(
        self,
        wanted: str,
        patterns: Sequence[Pattern[str]],
        *,
        default_index: int = DEFAULT_OPTION_INDEX,
    ) -> str:
        """Click the option for ``wanted`` and return how it was chosen.

        A numeric ``wanted`` is a 1-based index. Blank text and text that
        matches nothing fall back to ``default_index`` (0-based).
        """
        text = (wanted or "").strip()
        if text.isdigit():
            option = await self.option_at(int(text) - 1)
            if option is not None:
                await self.resolver.click(option, intent=f"{self.name} option #{text}")
                return f"index:{int(text) - 1}"

        for pattern in patterns:
            option = await self.find_option(pattern)
            if option is not None:
                await self.resolver.click(option, intent=f"{self.name} option")
                logger.info("%s: selected option matching /%s/", self.name, pattern.pattern)
                return pattern.pattern

        if text:
            logger.warning(
                "%s: no option matches %r, falling back to option #%d",
                self.name, text, default_index + 1,
            )
        else:
            logger.info("%s: no value given, using option #%d", self.name, default_index + 1)
        option = await self.option_at(default_index)
        if option is None:
            raise ElementNotFound(
                f"{self.name} options",
                0,
                await self.resolver.diagnostics(),
                message=f"{self.name} has no options to fall back to",
            )
        await self.resolver.click(option, intent=f"{self.name} default option")
        return f"index:{default_index}"

    async def close(self) -> None:
        """Close by clicking outside the panel."""
        await self.page.mouse.click(10, 10)
        await self.page.wait_for_timeout(CLOSE_SETTLE_MS)

    async def close_with_escape(self, timeout_ms: int = 5_000) -> None:
        await safe_press(self.page.keyboard, "Escape")
        if not await self.resolver.wait_gone((await self.options()).first, timeout_ms):
            await self.close()


def labels_from(text: str) -> List[str]:
    """Split a delimited option list (``a, b; c``)."""
    return [part.strip() for part in re.split(r"[,;]", text or "") if part.strip()]
