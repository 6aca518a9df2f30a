"""Agent 2: contract amendment (scenarios 2 and 2.1)."""

from __future__ import annotations

import logging

from qube_mesh.data import ContractAmendmentRow
from qube_mesh.dropdowns import Dropdown
from qube_mesh.errors import RequiredElementTimeout
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.matching import all_words_pattern, escaped_pattern, mapped_patterns, rule, unique
from qube_mesh.workflows.base import AgentWorkflow

logger = logging.getLogger(__name__)

DISCUSSION_SIGNAL_MS = 60_000
LISTBOX_TIMEOUT_MS = 180_000
LISTBOX_OPEN_ATTEMPTS = 6
DESCRIPTION_PROMPT_MS = 240_000
SUMMARY_TIMEOUT_MS = 1_200_000
DEFAULT_DISCUSSION = "Yes, I have discussed"
DEFAULT_DESCRIPTION = "Description: this is final description"

AMENDMENT_RULES = (
    rule(r"agreement\s+to\s+change\s+terms", ("terms",), ("condition",)),
    rule(r"change\s+in\s+payment\s+terms", ("payment",)),
    rule(r"addition\s+of\s+new\s+locations\s+or\s+regions", ("location", "region")),
    rule(r"addition\s+or\s+removal\s+of\s+parties", ("party", "parties")),
    rule(r"change\s+in\s+supplier\s+entity\s+or\s+ownership", ("supplier",), ("entity", "ownership")),
    rule(r"compliance\s+or\s+legal\s+requirement", ("compliance", "legal")),
)


class ContractAmendmentWorkflow(AgentWorkflow):
    name = "contract-amendment"
    data_key = "contract_amendment"
    agent_index = 1

    row: ContractAmendmentRow

    async def execute(self) -> WorkflowEnd:
        self.phase("submit query")
        await self.submit_prompt(self.row.query)

        self.phase("proceed with request")
        await self.proceed_with_request()

        self.phase("confirm supplier discussion")
        await self.optional("amendment.discussion_signal", DISCUSSION_SIGNAL_MS)
        await self.submit_prompt(self.row.discussion or DEFAULT_DISCUSSION)

        self.phase("select amendment reason")
        await self.select_reason()

        self.phase("proceed")
        if not await self.proceed_if_present(60_000):
            await self.proceed()

        self.phase("describe amendment")
        await self.expect("amendment.description_prompt", DESCRIPTION_PROMPT_MS)
        await self.submit_prompt(self.row.description or DEFAULT_DESCRIPTION)

        self.phase("answer data change question")
        await self.answer_optional_question("amendment.data_change_question")
        self.phase("answer products question")
        await self.answer_optional_question("amendment.products_question")

        self.phase("review summary")
        await self.expect("amendment.summary", SUMMARY_TIMEOUT_MS)

        self.phase("create request")
        await self.create_request()
        return await self.finalize()

    async def select_reason(self) -> str:
        listbox = await self.expect("amendment.reason_listbox", LISTBOX_TIMEOUT_MS)
        dropdown = Dropdown(self.resolver, listbox, "Amendment Reason")
        if not await dropdown.open(attempts=LISTBOX_OPEN_ATTEMPTS):
            raise RequiredElementTimeout(
                "Amendment Reason options",
                self.resolver.scaled(LISTBOX_TIMEOUT_MS),
                await self.resolver.diagnostics(),
                message=f"Amendment Reason did not open after {LISTBOX_OPEN_ATTEMPTS} attempts",
            )
        wanted = self.row.reason_amend
        patterns = unique(
            [escaped_pattern(wanted)]
            + mapped_patterns(wanted, AMENDMENT_RULES)
            + [all_words_pattern(wanted)]
        )
        chosen = await dropdown.select(wanted, patterns)
        logger.info("[%s] amendment reason %r -> %s", self.name, wanted, chosen)
        await dropdown.close()
        return chosen
