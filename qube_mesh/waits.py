"""Bounded, cooperative wait helpers.

All waits suspend through ``page.wait_for_timeout`` between checks, so every
poll is bounded both by a number of checks and by wall-clock time.
Optional waits return ``None`` instead of raising when nothing shows up.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

POLL_INTERVAL_MS = 250

T = TypeVar("T")


async def poll(
    page: Page,
    check: Callable[[], Awaitable[T]],
    timeout_ms: int,
    interval_ms: int = POLL_INTERVAL_MS,
) -> Optional[T]:
    """Call ``check`` until it returns something truthy or the timeout elapses.

    The check always runs at least once. Returns the first truthy result, or
    ``None`` on timeout.
    """
    interval_ms = max(1, int(interval_ms))
    attempts = max(1, int(timeout_ms) // interval_ms + 1)
    deadline = time.monotonic() + max(0, timeout_ms) / 1000
    for attempt in range(attempts):
        result = await check()
        if result:
            return result
        if attempt == attempts - 1 or time.monotonic() >= deadline:
            break
        await page.wait_for_timeout(interval_ms)
    return None


async def is_visible(locator: Locator) -> bool:
    try:
        return await locator.is_visible()
    except PlaywrightError:
        return False


async def is_enabled(locator: Locator) -> bool:
    try:
        return await locator.is_enabled()
    except PlaywrightError:
        return False


async def is_hidden_or_disabled(locator: Locator) -> bool:
    if not await is_visible(locator):
        return True
    return not await is_enabled(locator)


async def first_visible(locator: Locator, limit: int = 20) -> Optional[Locator]:
    """Return the first visible element matched by ``locator``, if any."""
    try:
        count = await locator.count()
    except PlaywrightError:
        return None
    for index in range(min(count, limit)):
        item = locator.nth(index)
        if await is_visible(item):
            return item
    return None


async def wait_visible(page: Page, locator: Locator, timeout_ms: int) -> Optional[Locator]:
    """Present-or-absent wait: the first visible match, or ``None`` on timeout."""

    async def check() -> Optional[Locator]:
        return await first_visible(locator)

    return await poll(page, check, timeout_ms)


async def wait_enabled(page: Page, locator: Locator, timeout_ms: int) -> bool:
    async def check() -> bool:
        return await is_enabled(locator)

    return bool(await poll(page, check, timeout_ms))


async def race_visible(
    page: Page,
    candidates: Mapping[str, Locator],
    timeout_ms: int,
) -> Optional[str]:
    """Return the key of the first candidate to become visible.

    Candidates are checked in mapping order on every poll, so ties go to the
    earlier key.
    """

    async def check() -> Optional[str]:
        for key, locator in candidates.items():
            if await first_visible(locator):
                return key
        return None

    return await poll(page, check, timeout_ms)


async def settle(page: Page, timeout_ms: int = 5_000, state: str = "domcontentloaded") -> None:
    """Best-effort load-state wait; never raises."""
    try:
        await page.wait_for_load_state(state, timeout=timeout_ms)
    except PlaywrightError:
        pass


async def safe_press(target: Any, key: str) -> bool:
    """Press a key on a locator or keyboard, ignoring failures."""
    try:
        await target.press(key)
    except PlaywrightError:
        return False
    return True
