"""Browser session provider shared by every workflow of a run.

One provider is created per test run and handed to whatever needs a page.
It owns the browser (relaunching it if it disconnects) and the
authenticated storage-state file; each workflow invocation gets its own
isolated context and page built from that file.
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from playwright.async_api import Browser, Error as PlaywrightError, Page, Playwright, async_playwright

from qube_mesh.config import Settings
from qube_mesh.errors import ConfigurationError

logger = logging.getLogger(__name__)

Authenticator = Callable[[Page, Settings], Awaitable[None]]

EMPTY_STORAGE_STATE = {"cookies": [], "origins": []}
LOGIN_NAVIGATION_TIMEOUT_MS = 120_000


def ensure_storage_state_file(path: Path) -> None:
    """Create the directory and an empty storage-state file if missing."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(json.dumps(EMPTY_STORAGE_STATE), encoding="utf-8")


def storage_state_is_authenticated(path: Path) -> bool:
    """A storage state counts as authenticated once it holds any cookie or origin."""
    try:
        state = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    if not isinstance(state, dict):
        return False
    return bool(state.get("cookies") or state.get("origins"))


class SessionProvider:
    """Async context manager handing out isolated pages.

    Args:
        settings: Run settings (headless flag, storage-state path, URLs).
        authenticate: Coroutine ``(page, settings)`` that logs in on a fresh
            page. Only needed when the storage state is not authenticated yet.

    Example::

        async with SessionProvider(settings, authenticate=login) as session:
            async with session.page() as page:
                ...
    """

    def __init__(self, settings: Settings, authenticate: Optional[Authenticator] = None) -> None:
        self.settings = settings
        self.authenticate = authenticate
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> SessionProvider:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> None:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        ensure_storage_state_file(self.settings.storage_state)
        await self.ensure_authenticated()

    async def browser(self) -> Browser:
        """The shared browser, launched again if the previous one went away."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser
        if self._playwright is None:
            raise RuntimeError("SessionProvider used before start()")
        logger.info("Launching Chromium (headless=%s)", self.settings.headless)
        self._browser = await self._playwright.chromium.launch(headless=self.settings.headless)
        return self._browser

    async def ensure_authenticated(self) -> None:
        """Write an authenticated storage state unless one already exists."""
        path = self.settings.storage_state
        if storage_state_is_authenticated(path):
            logger.debug("Reusing storage state %s", path)
            return
        if self.authenticate is None:
            raise ConfigurationError(
                ["authenticate"],
                message=f"Storage state {path} holds no session and no authenticator was provided",
            )
        browser = await self.browser()
        context = await browser.new_context()
        try:
            page = await context.new_page()
            await page.goto(
                self.settings.base_url, wait_until="domcontentloaded", timeout=LOGIN_NAVIGATION_TIMEOUT_MS
            )
            await self.authenticate(page, self.settings)
            await context.storage_state(path=str(path))
            logger.info("Saved authenticated storage state to %s", path)
        finally:
            await context.close()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """A fresh context and page, closed again on exit."""
        browser = await self.browser()
        context = await browser.new_context(storage_state=str(self.settings.storage_state))
        try:
            yield await context.new_page()
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug("Closing context failed: %s", e)

    async def close(self) -> None:
        if self._browser is not None and self._browser.is_connected():
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug("Closing browser failed: %s", e)
        self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


async def capture_failure_artifacts(page: Page, directory: Path, name: str) -> List[Path]:
    """Save a screenshot and the page HTML for a failed step.

    Best-effort: whatever could be written is returned.
    """
    directory.mkdir(parents=True, exist_ok=True)
    stem = re.sub(r"[^\w.-]+", "_", name).strip("_") or "failure"
    written: List[Path] = []

    screenshot = directory / f"{stem}.png"
    try:
        await page.screenshot(path=str(screenshot), full_page=True)
        written.append(screenshot)
    except PlaywrightError as e:
        logger.warning("Screenshot for %s failed: %s", name, e)

    snapshot = directory / f"{stem}.html"
    try:
        snapshot.write_text(await page.content(), encoding="utf-8")
        written.append(snapshot)
    except PlaywrightError as e:
        logger.warning("HTML snapshot for %s failed: %s", name, e)

    return written
