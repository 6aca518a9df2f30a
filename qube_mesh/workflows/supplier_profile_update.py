"""Agent 5: supplier profile update (scenarios 5 and 5.1)."""

from __future__ import annotations

import logging

from qube_mesh.data import SupplierProfileUpdateRow
from qube_mesh.dropdowns import Dropdown, ensure_option_selected
from qube_mesh.errors import ElementNotFound, RequiredElementTimeout
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.matching import flexible_pattern
from qube_mesh.uploads import AttachmentUploader, resolve_upload_path
from qube_mesh.workflows.base import AgentWorkflow

logger = logging.getLogger(__name__)

UPDATE_PROMPT_MS = 180_000
LISTBOX_SETTLE_MS = 1_500
DETAIL_PROMPT_MS = 1_200_000
UPLOAD_PROMPT_MS = 120_000
SUMMARY_TIMEOUT_MS = 240_000
UPDATE_TYPE_SEPARATORS = r"[\s/—–-]+"


class SupplierProfileUpdateWorkflow(AgentWorkflow):
    name = "supplier-profile-update"
    data_key = "supplier_profile_update"
    agent_index = 4

    row: SupplierProfileUpdateRow

    async def execute(self) -> WorkflowEnd:
        self.phase("submit query")
        await self.submit_prompt(self.row.query)

        self.phase("select supplier row")
        await self.select_grid_row(self.row.supplier_name, self.row.supplier_code)
        self.phase("proceed")
        await self.proceed()

        self.phase("open update options")
        shown = await self.resolver.race(
            {
                "proceed_with_request": "actions.proceed_with_request",
                "choose_option": "profile_update.choose_option_field",
                "prompt": "profile_update.update_prompt",
            },
            timeout_ms=UPDATE_PROMPT_MS,
        )
        if shown is None:
            raise RequiredElementTimeout(
                "update options", self.resolver.scaled(UPDATE_PROMPT_MS), await self.resolver.diagnostics()
            )
        if shown == "proceed_with_request":
            await self.proceed_with_request()

        self.phase("select update type")
        await self.select_update_type()

        self.phase("proceed")
        if not await self.proceed_if_present(30_000):
            await self.waiter.mark()
            if await self.resolver.click_if_present("actions.proceed_with_request", timeout_ms=10_000):
                await self.waiter.wait()
            else:
                logger.warning("[%s] neither Proceed nor Proceed with Request after the update type", self.name)

        self.phase("describe changes")
        await self.expect("profile_update.detail_prompt", DETAIL_PROMPT_MS)
        await self.submit_prompt(self.row.reason_action)

        self.phase("attachments")
        await self.handle_attachment()

        self.phase("review summary")
        await self.expect("profile_update.summary", SUMMARY_TIMEOUT_MS)

        self.phase("create request")
        await self.create_request()
        return await self.finalize()

    async def select_update_type(self) -> None:
        field = await self.expect("profile_update.choose_option_field", 60_000)
        await self.resolver.click(field, intent="Choose Option")
        await self.page.wait_for_timeout(LISTBOX_SETTLE_MS)
        dropdown = Dropdown(self.resolver, field, "Choose Option")

        option = None
        pattern = flexible_pattern(self.row.update_type, UPDATE_TYPE_SEPARATORS)
        if pattern is not None:
            option = await dropdown.find_option(pattern)
        if option is None:
            logger.warning(
                "[%s] no update option matches %r, using the first one", self.name, self.row.update_type
            )
            option = await dropdown.option_at(0)
        if option is None or not await ensure_option_selected(self.resolver, option):
            raise ElementNotFound(
                "update type option",
                0,
                await self.resolver.diagnostics(),
                message=f"Could not select update type {self.row.update_type!r}",
            )
        await dropdown.close_with_escape()

    async def handle_attachment(self) -> None:
        shown = await self.resolver.race(
            {
                "upload": "profile_update.upload_prompt",
                "skip": "actions.skip",
            },
            timeout_ms=UPLOAD_PROMPT_MS,
        )
        if shown is None:
            logger.info("[%s] optional step skipped: no attachment prompt", self.name)
            return
        path = resolve_upload_path(self.row.upload_file, self.assets_dir)
        uploader = AttachmentUploader(self.resolver)
        if path is None:
            await uploader.skip()
            return
        anchor = await self.optional("profile_update.upload_prompt", 30_000)
        if anchor is None:
            await uploader.skip()
            return
        await uploader.upload(anchor, path)
