"""Agent 3: contract termination at a future date (3) or immediately (3.1)."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from playwright.async_api import Locator

from qube_mesh.data import ContractTerminationRow
from qube_mesh.errors import ScenarioDataError, UnsupportedScenarioKey
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.matching import escaped_pattern, flexible_pattern, last_keywords_pattern, unique
from qube_mesh.selectors import choice_candidates
from qube_mesh.workflows.base import AgentWorkflow

logger = logging.getLogger(__name__)

SUMMARY_PROMPT_MS = 60_000
MODE_PROMPT_MS = 240_000
DATE_PROMPT_MS = 240_000
REASON_PROMPT_MS = 240_000
REASON_SETTLE_MS = 1_000
CREATE_PROMPT_MS = 240_000
DATE_LABEL = r"termination\s+date|date"
FALLBACK_REASON = re.compile(r"termination\s+for\s+cause", re.IGNORECASE)


class TerminationMode(str, Enum):
    IMMEDIATE = "immediate"
    FUTURE = "future"


STATUS_MODES = {
    "future": TerminationMode.FUTURE,
    "future date": TerminationMode.FUTURE,
    "terminate for a future date": TerminationMode.FUTURE,
    "immediate": TerminationMode.IMMEDIATE,
    "terminate immediately": TerminationMode.IMMEDIATE,
}


def normalize_termination_status(status: Optional[str]) -> Optional[TerminationMode]:
    """Map a status phrase ("Immediate", "future date", ...) to a mode.

    Case, underscores and dashes are ignored; any other phrase, blank
    included, gives ``None``.
    """
    text = re.sub(r"[\s_-]+", " ", (status or "").strip().lower())
    return STATUS_MODES.get(text)


def termination_mode(row: ContractTerminationRow) -> TerminationMode:
    """Mode for a row; a blank status means a future-dated termination."""
    if not row.termination_status.strip():
        mode = TerminationMode.FUTURE
    else:
        mode = normalize_termination_status(row.termination_status)
    if mode is None:
        supported = [item.value for item in TerminationMode]
        raise UnsupportedScenarioKey(
            row.termination_status,
            supported,
            message=(
                f"Unsupported termination status {row.termination_status!r} for SNO=\"{row.sno}\". "
                f"Supported: {', '.join(supported)}"
            ),
        )
    if mode is TerminationMode.FUTURE and not row.termination_date.strip():
        raise ScenarioDataError(f'Future termination for SNO="{row.sno}" needs a termination date')
    return mode


class ContractTerminationWorkflow(AgentWorkflow):
    name = "contract-termination"
    data_key = "contract_termination"
    agent_index = 2

    row: ContractTerminationRow

    async def execute(self) -> WorkflowEnd:
        mode = termination_mode(self.row)
        logger.info("[%s] termination mode: %s", self.name, mode.value)

        self.phase("submit query")
        await self.submit_prompt(self.row.query)
        await self.optional("termination.summary_prompt", SUMMARY_PROMPT_MS)

        self.phase("proceed with request")
        await self.proceed_with_request()

        self.phase("choose termination mode")
        await self.expect("termination.mode_prompt", MODE_PROMPT_MS)
        if mode is TerminationMode.IMMEDIATE:
            await self.click_action("termination.terminate_immediately", visible_timeout_ms=60_000)
        else:
            await self.click_action("termination.terminate_future", visible_timeout_ms=60_000)
            self.phase("select termination date")
            await self.expect("termination.date_prompt", DATE_PROMPT_MS)
            await self.select_date(DATE_LABEL, self.row.termination_date)

        self.phase("select termination reason")
        await self.expect("termination.reason_prompt", REASON_PROMPT_MS)
        await self.click_located(await self.reason_option(), "termination reason")
        await self.page.wait_for_timeout(REASON_SETTLE_MS)

        self.phase("create request")
        await self.optional("termination.create_prompt", CREATE_PROMPT_MS)
        await self.create_request()
        return await self.finalize()

    async def reason_option(self) -> Locator:
        wanted = self.row.reason_terminate
        patterns = unique(
            [
                flexible_pattern(wanted),
                last_keywords_pattern(wanted, 2),
                escaped_pattern(wanted),
                FALLBACK_REASON,
            ]
        )
        for pattern in patterns:
            found = await self.resolver.find(choice_candidates(pattern), timeout_ms=2_000)
            if found is not None:
                logger.info("[%s] termination reason matched /%s/", self.name, pattern.pattern)
                return found
        logger.warning("[%s] no reason tile matches %r, using the first one", self.name, wanted)
        return await self.resolver.resolve("termination.reason_tile", timeout_ms=30_000)
