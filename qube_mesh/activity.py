"""Heartbeat on the "AI Events (N)" counter shown by the chat UI.

The counter is advisory: it may be missing entirely, and an unchanged value does
not prove the app is idle. Callers always follow up with a wait for the next
specific control.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from qube_mesh.waits import is_visible, poll, settle

logger = logging.getLogger(__name__)

ACTIVITY_COUNTER_PATTERN = re.compile(r"AI Events\s*\((\d+)\)", re.IGNORECASE)
DEFAULT_ACTIVITY_TIMEOUT_MS = 180_000
ABSENT_SETTLE_MS = 750
VISIBLE_WAIT_MS = 5_000
CHANGE_WAIT_MS = 10_000


def activity_indicator(page: Page) -> Locator:
    return page.get_by_text(ACTIVITY_COUNTER_PATTERN).first


async def read_activity_count(page: Page) -> Optional[int]:
    """Current counter value, or ``None`` when the counter is not readable."""
    indicator = activity_indicator(page)
    try:
        if not await indicator.count():
            return None
        text = await indicator.inner_text(timeout=2_000)
    except PlaywrightError:
        return None
    match = ACTIVITY_COUNTER_PATTERN.search(text or "")
    return int(match.group(1)) if match else None


async def wait_for_activity(
    page: Page,
    previous: Optional[int] = None,
    timeout_ms: int = DEFAULT_ACTIVITY_TIMEOUT_MS,
) -> Optional[int]:
    """Wait (bounded) for the activity counter to move past ``previous``.

    Never raises. Without a counter on the page this is a short settle delay
    that returns ``previous`` unchanged, as does a page that closes or
    navigates mid-wait.
    """
    try:
        return await _wait_for_change(page, previous, timeout_ms)
    except PlaywrightError as e:
        logger.debug("Activity wait interrupted: %s", e)
        return previous


async def _wait_for_change(page: Page, previous: Optional[int], timeout_ms: int) -> Optional[int]:
    indicator = activity_indicator(page)
    try:
        present = await indicator.count() > 0
    except PlaywrightError:
        present = False

    if not present:
        await settle(page)
        await page.wait_for_timeout(ABSENT_SETTLE_MS)
        return previous

    async def visible() -> bool:
        return await is_visible(indicator)

    if not await poll(page, visible, min(VISIBLE_WAIT_MS, timeout_ms)):
        logger.debug("Activity counter present but not visible; continuing")
        return previous

    current = await read_activity_count(page)
    if previous is None:
        return current if current is not None else previous

    async def changed() -> Optional[int]:
        value = await read_activity_count(page)
        if value is not None and value != previous:
            return value
        return None

    moved = await poll(page, changed, min(CHANGE_WAIT_MS, timeout_ms))
    if moved is None:
        logger.debug("Activity counter stayed at %s", previous)
        latest = await read_activity_count(page)
        return latest if latest is not None else previous
    return moved


class ActivityWaiter:
    """Tracks the last seen counter value for one page.

    Call :meth:`mark` before an action and :meth:`wait` after it.
    """

    def __init__(self, page: Page, timeout_ms: int = DEFAULT_ACTIVITY_TIMEOUT_MS) -> None:
        self.page = page
        self.timeout_ms = timeout_ms
        self.last_count: Optional[int] = None

    async def mark(self) -> Optional[int]:
        self.last_count = await read_activity_count(self.page)
        return self.last_count

    async def wait(self, timeout_ms: Optional[int] = None) -> Optional[int]:
        self.last_count = await wait_for_activity(
            self.page, self.last_count, timeout_ms or self.timeout_ms
        )
        return self.last_count
