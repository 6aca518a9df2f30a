"""File-attachment sub-protocol.

The attachment widget lives inside a chat message next to the chat composer,
which has its own file input. The file must go to the widget's control, so
both the file-chooser trigger and the ``input[type=file]`` fallback are looked
up inside the widget's container only.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from qube_mesh.errors import RequiredElementTimeout
from qube_mesh.resolver import ElementResolver
from qube_mesh.waits import first_visible

logger = logging.getLogger(__name__)

CONTAINER_SEARCH_LEVELS = 15
FILE_CHOOSER_TIMEOUT_MS = 15_000
CONFIRM_TIMEOUT_MS = 15_000


class AttachmentUploader:
    """Upload one file through the attachment widget anchored at a label."""

    def __init__(self, resolver: ElementResolver) -> None:
        self.resolver = resolver
        self.page = resolver.page

    async def _is_message(self, node: Locator) -> bool:
        for message in self.resolver.candidates("uploads.message").locators(self.page):
            try:
                if await node.and_(message).count():
                    return True
            except PlaywrightError:
                continue
        return False

    async def container_for(self, anchor: Locator) -> Locator:
        """``anchor`` or its nearest ancestor that holds an upload control.

        The search never leaves the chat message around ``anchor`` and never
        climbs into an ancestor that also holds the chat composer.
        """
        trigger = self.resolver.candidates("actions.choose_file") + self.resolver.candidates("actions.add")
        composer = self.resolver.candidates("prompt_input")
        node = anchor
        for _ in range(CONTAINER_SEARCH_LEVELS):
            if await composer.first_match(node) is not None:
                break
            if await trigger.first_match(node) is not None:
                return node
            try:
                if await node.locator('input[type="file"]').count():
                    return node
            except PlaywrightError:
                break
            if await self._is_message(node):
                break
            node = node.locator("xpath=..")
        raise RequiredElementTimeout(
            "attachment widget",
            0,
            await self.resolver.diagnostics(),
            message="No upload control found in the attachment message",
        )

    async def _via_file_chooser(self, container: Locator, path: Path) -> bool:
        trigger = await self.resolver.find("actions.choose_file", scope=container)
        if trigger is None:
            return False
        try:
            async with self.page.expect_file_chooser(timeout=FILE_CHOOSER_TIMEOUT_MS) as chooser_info:
                await self.resolver.click(trigger, intent="Choose File")
            chooser = await chooser_info.value
        except PlaywrightTimeoutError:
            logger.info("Clicking Choose File did not open a file chooser")
            return False
        await chooser.set_files(str(path))
        return True

    async def _via_scoped_input(self, container: Locator, path: Path) -> bool:
        file_input = container.locator('input[type="file"]')
        try:
            if not await file_input.count():
                return False
            await file_input.first.set_input_files(str(path))
        except PlaywrightError as e:
            logger.info("Setting files on the widget's input failed: %s", e)
            return False
        return True

    async def upload(self, anchor: Locator, path: Path) -> None:
        """Attach ``path`` via the widget around ``anchor``, then confirm."""
        container = await self.container_for(anchor)
        if not await self._via_file_chooser(container, path):
            if not await self._via_scoped_input(container, path):
                raise RequiredElementTimeout(
                    "attachment input",
                    FILE_CHOOSER_TIMEOUT_MS,
                    await self.resolver.diagnostics(),
                    message=f"Could not attach {path.name}: no file chooser and no input in the widget",
                )
        logger.info("Attached %s", path.name)

        done = await self.resolver.click_if_present("actions.done", scope=container, timeout_ms=CONFIRM_TIMEOUT_MS)
        added = await self.resolver.click_if_present("actions.add", scope=container, timeout_ms=CONFIRM_TIMEOUT_MS)
        if not done and not added:
            logger.warning("Neither Done nor Add appeared after attaching %s", path.name)

    async def skip(self) -> bool:
        """Decline the attachment step when the UI offers a Skip button."""
        skipped = await self.resolver.click_if_present("actions.skip", timeout_ms=CONFIRM_TIMEOUT_MS)
        if skipped:
            logger.info("Skipped the attachment step")
        return skipped


def resolve_upload_path(name: Optional[str], base_dir: Optional[Path] = None) -> Optional[Path]:
    """Absolute path for a row's upload file, or ``None`` if it does not exist."""
    if not name or not name.strip():
        return None
    candidate = Path(name.strip()).expanduser()
    if not candidate.is_absolute() and base_dir is not None:
        candidate = base_dir / candidate
    if not candidate.is_file():
        logger.warning("Upload file %s does not exist", candidate)
        return None
    return candidate.resolve()
