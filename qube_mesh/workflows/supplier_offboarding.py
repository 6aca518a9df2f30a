"""Agent 1: supplier offboarding.

The app answers the offboarding query in one of three ways: a supplier grid to
pick from, a confirmation card for a single supplier, or straight away with the
"Proceed with Request" / reason step. The branch taken depends only on which of
those shows up first.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from playwright.async_api import Locator

from qube_mesh.data import SupplierOffboardingRow
from qube_mesh.errors import ElementNotFound, RequiredElementTimeout
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.matching import all_words_pattern, escaped_pattern, flexible_pattern, unique
from qube_mesh.selectors import CandidateSet, RoleMatcher, text_candidates
from qube_mesh.waits import poll
from qube_mesh.workflows.base import AgentWorkflow

logger = logging.getLogger(__name__)

RESPONSE_TIMEOUT_MS = 180_000
CONFIRM_TIMEOUT_MS = 120_000
REASONS_TIMEOUT_MS = 120_000
CREATE_SETTLE_MS = 2_000
REQUEST_SECTIONS = ("Basic Details", "Suppliers", "Attachments", "Team Members")
SECTION_CHECK_VARIANTS = {"1.3"}
DEFAULT_REASON = "Not approved by TPRM"


class SupplierOffboardingWorkflow(AgentWorkflow):
    name = "supplier-offboarding"
    data_key = "supplier_offboarding"
    agent_index = 0

    row: SupplierOffboardingRow

    async def execute(self) -> WorkflowEnd:
        self.phase("submit query")
        await self.submit_prompt(self.row.query)

        self.phase("identify supplier")
        shown = await self.resolver.race(
            {
                "grid": "grid.selectable_row",
                "card": "offboarding.confirmation_card",
                "proceed_with_request": "actions.proceed_with_request",
                "reasons": "offboarding.reason_button",
            },
            timeout_ms=RESPONSE_TIMEOUT_MS,
        )
        if shown is None:
            raise RequiredElementTimeout(
                "supplier grid or confirmation card",
                self.resolver.scaled(RESPONSE_TIMEOUT_MS),
                await self.resolver.diagnostics(),
            )
        logger.info("[%s] app answered with: %s", self.name, shown)

        if shown == "grid":
            self.phase("select supplier row")
            await self.select_grid_row()
            self.phase("proceed")
            await self.proceed()
        elif shown == "card" and self.row.supplier_code:
            self.phase("verify supplier code")
            await self.verify_supplier_code()

        self.phase("confirm request")
        following = await self.resolver.race(
            {
                "reasons": "offboarding.reason_button",
                "proceed_with_request": "actions.proceed_with_request",
                "radio": "offboarding.radio",
            },
            timeout_ms=CONFIRM_TIMEOUT_MS,
        )
        if following == "proceed_with_request":
            await self.proceed_with_request()

        self.phase("select offboarding reason")
        await self.select_reason()

        self.phase("create request")
        await self.create_request()
        await self.page.wait_for_timeout(CREATE_SETTLE_MS)

        if self.row.sno in SECTION_CHECK_VARIANTS:
            self.phase("verify request sections")
            await self.verify_request_sections()

        return await self.finalize()

    async def verify_supplier_code(self) -> None:
        code = self.row.supplier_code
        await self.expect(text_candidates(re.compile(re.escape(code))), CONFIRM_TIMEOUT_MS)

    async def wait_for_reason_buttons(self) -> None:
        candidate_set = self.resolver.candidates("offboarding.reason_button")

        async def loaded() -> bool:
            return await self.resolver.count(candidate_set) > 0

        if not await poll(self.page, loaded, self.resolver.scaled(REASONS_TIMEOUT_MS)):
            raise RequiredElementTimeout(
                "offboarding reason buttons",
                self.resolver.scaled(REASONS_TIMEOUT_MS),
                await self.resolver.diagnostics(),
            )

    async def select_reason(self) -> None:
        await self.wait_for_reason_buttons()
        wanted = self.row.offboard_reason.strip()
        if not wanted:
            logger.info("[%s] no offboarding reason given, using %r", self.name, DEFAULT_REASON)
            wanted = DEFAULT_REASON
        target: Optional[Locator] = None
        for pattern in unique([escaped_pattern(wanted), flexible_pattern(wanted), all_words_pattern(wanted)]):
            target = await self.resolver.find(
                CandidateSet(f"reason {pattern.pattern}", (RoleMatcher("button", name=pattern),))
            )
            if target is not None:
                break
        if target is None:
            logger.warning("[%s] no reason button matches %r, using the first one", self.name, wanted)
            target = await self.resolver.resolve("offboarding.reason_button", timeout_ms=0)
        await self.click_located(target, "offboarding reason")

    async def verify_request_sections(self) -> None:
        for section in REQUEST_SECTIONS:
            pattern = re.compile(rf"^\s*{re.escape(section)}\s*$", re.IGNORECASE)
            found = await self.resolver.find(text_candidates(pattern), timeout_ms=60_000)
            if found is None:
                raise ElementNotFound(
                    f"request section '{section}'", self.resolver.scaled(60_000), await self.resolver.diagnostics()
                )
