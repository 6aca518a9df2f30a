"""Agent 4: contract extension (scenarios 4 and 4.1).

The summary step of this agent is slow, so it finalizes with a longer end
timeout than the other workflows.
"""

from __future__ import annotations

import logging
from typing import Set

from playwright.async_api import Locator

from qube_mesh.data import ContractExtensionRow
from qube_mesh.dropdowns import Dropdown, ensure_option_selected, labels_from
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.matching import escaped_pattern, flexible_pattern, mapped_patterns, rule, unique
from qube_mesh.selectors import choice_candidates
from qube_mesh.waits import safe_press
from qube_mesh.workflows.base import AgentWorkflow

logger = logging.getLogger(__name__)

CONTRACT_FOUND_MS = 180_000
PROMPT_MS = 240_000
BUDGET_PROMPT_MS = 30_000
UPDATE_OPTION_PROMPT_MS = 60_000
QUESTION_MS = 60_000
MAX_QUESTIONS = 2
DATE_LABEL = r"extension\s+date|date"
DISCUSSION_ANSWER = "yes, i have discussed"
PROPOSE_MARKERS = ("propose", "mod")
APPROVAL_YES = {"yes", "y", "true", "approved"}

EXTENSION_RULES = (
    rule(r"administrative\s+or\s+budget\s+delays", ("admin", "budget")),
    rule(r"continuation\s+of\s+work\s+or\s+services", ("continuation", "work")),
    rule(r"performance\s+satisfaction", ("performance", "satisfaction")),
    rule(r"strategic\s+or\s+operation\s+reasons", ("strategic", "operation")),
)


def proposes_modifications(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in PROPOSE_MARKERS)


class ContractExtensionWorkflow(AgentWorkflow):
    name = "contract-extension"
    data_key = "contract_extension"
    agent_index = 3
    end_timeout_ms = 360_000

    row: ContractExtensionRow

    async def execute(self) -> WorkflowEnd:
        self.phase("submit query")
        await self.submit_prompt(self.row.query)

        self.phase("verify contract")
        await self.expect("extension.contract_found", CONTRACT_FOUND_MS)

        self.phase("proceed with request")
        await self.proceed_with_request()

        self.phase("select extension date")
        await self.expect("extension.date_prompt", PROMPT_MS)
        await self.select_date(DATE_LABEL, self.row.extension_date)

        self.phase("select extension reason")
        await self.expect("extension.reason_prompt", PROMPT_MS)
        await self.click_located(await self.reason_option(), "extension reason")

        self.phase("choose terms")
        await self.choose_terms()

        self.phase("proceed with selection")
        await self.click_action(
            "actions.proceed_with_selection", visible_timeout_ms=120_000, enabled_timeout_ms=60_000
        )

        self.phase("budget")
        budget_answered = await self.answer_budget()

        self.phase("confirm supplier discussion")
        await self.expect("extension.discussion_prompt", PROMPT_MS)
        await self.submit_prompt(self.discussion_answer())

        self.phase("answer follow-up questions")
        await self.answer_questions()

        self.phase("create request")
        await self.waiter.mark()
        if await self.resolver.click_if_present("actions.create_request", timeout_ms=60_000):
            await self.waiter.wait()

        self.phase("choose update option")
        if await self.choose_update_option() and not budget_answered:
            self.phase("budget")
            await self.answer_budget()
        return await self.finalize()

    async def reason_option(self) -> Locator:
        wanted = self.row.reason
        patterns = unique(mapped_patterns(wanted, EXTENSION_RULES) + [escaped_pattern(wanted)])
        for pattern in patterns:
            found = await self.resolver.find(
                choice_candidates(pattern, roles=("button", "radio")), timeout_ms=2_000
            )
            if found is not None:
                return found
        logger.warning("[%s] no extension reason matches %r, using the first option", self.name, wanted)
        return await self.resolver.resolve("extension.reason_option", timeout_ms=30_000)

    async def choose_terms(self) -> None:
        if not proposes_modifications(self.row.modifications):
            await self.click_action("extension.keep_terms", visible_timeout_ms=PROMPT_MS)
            return
        await self.click_action("extension.propose_terms", visible_timeout_ms=PROMPT_MS)
        await self.select_applicable_options()

    async def select_applicable_options(self) -> None:
        labels = labels_from(self.row.applicable_options)
        if not labels:
            logger.info("[%s] no applicable options in the row", self.name)
            return
        trigger = await self.expect("extension.applicable_options", 60_000)
        dropdown = Dropdown(self.resolver, trigger, "Select Applicable Options")
        await dropdown.open(attempts=3)
        for label in labels:
            option = await dropdown.find_option(flexible_pattern(label))
            if option is not None and await ensure_option_selected(self.resolver, option):
                logger.info("[%s] applicable option selected: %s", self.name, label)
                continue
            logger.info("[%s] typing applicable option %r", self.name, label)
            await self.page.keyboard.type(label)
            await self.page.keyboard.press("Enter")
        await safe_press(self.page.keyboard, "Escape")

    def discussion_answer(self) -> str:
        details = self.row.modification_details.strip()
        if details and proposes_modifications(self.row.modifications):
            return f"{DISCUSSION_ANSWER}. {details}"
        return DISCUSSION_ANSWER

    async def choose_update_option(self) -> bool:
        """Pick the reason for staying with the supplier when the app asks for it.

        An unmatched or blank ``update_option`` falls back to the default option.
        """
        if await self.optional("extension.update_option_prompt", UPDATE_OPTION_PROMPT_MS) is None:
            return False
        trigger = await self.expect("extension.update_options", 60_000)
        dropdown = Dropdown(self.resolver, trigger, "Choose Update Option(s)")
        await dropdown.open(attempts=3)
        wanted = self.row.update_option
        chosen = await dropdown.select(wanted, unique([flexible_pattern(wanted), escaped_pattern(wanted)]))
        logger.info("[%s] update option %r -> %s", self.name, wanted, chosen)
        await safe_press(self.page.keyboard, "Escape")
        await self.proceed_if_present(15_000)
        return True

    async def choose_currency(self, field: Locator) -> None:
        currency = self.row.currency.strip()
        trigger = await self.resolver.find("extension.currency_dropdown")
        if trigger is None:
            await self.resolver.fill(field, currency, submit=True)
            return
        dropdown = Dropdown(self.resolver, trigger, "Currency")
        await dropdown.open(attempts=2)
        option = await dropdown.find_option(escaped_pattern(currency))
        if option is not None:
            await self.resolver.click(option, intent="currency option")
            return
        logger.info("[%s] no currency option for %r, typing it", self.name, currency)
        await self.page.keyboard.type(currency)
        await self.page.keyboard.press("Enter")

    async def answer_budget(self) -> bool:
        """Fill the optional currency / cost / approval step when it is asked."""
        currency = await self.optional("extension.currency_field", BUDGET_PROMPT_MS)
        if currency is None:
            return False
        if self.row.currency.strip():
            await self.choose_currency(currency)
        cost = await self.resolver.find("extension.estimated_cost_field")
        if cost is not None and self.row.estimated_cost:
            await self.resolver.fill(cost, self.row.estimated_cost)
        if self.row.approval:
            answer = "actions.yes" if self.row.approval.strip().lower() in APPROVAL_YES else "actions.no"
            await self.resolver.click_if_present(answer, timeout_ms=10_000)
        await self.proceed_if_present(15_000)
        return True

    async def answer_questions(self) -> int:
        answered: Set[str] = set()
        for _ in range(MAX_QUESTIONS):
            found = await self.next_unanswered("extension.question", answered, QUESTION_MS)
            if found is None:
                logger.info("[%s] optional step skipped: no further questions", self.name)
                break
            question, text = found
            answered.add(text)
            logger.info("[%s] answering Yes to: %s", self.name, text)
            await self.answer_yes(question)
            await self.proceed_if_present(15_000)
        return len(answered)
