"""Building blocks shared by every agent workflow.

A workflow is a linear list of phases. Each phase submits input or clicks a
control, lets the activity heartbeat run, and then waits for the specific
prompt or control the next phase needs. Mandatory waits raise, optional ones
return ``None`` and log.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar, List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from qube_mesh.activity import ActivityWaiter
from qube_mesh.context import WorkflowContext
from qube_mesh.data import ScenarioRow
from qube_mesh.dates import DatePicker, TargetDate
from qube_mesh.errors import PageDiagnostics, QubeMeshError, RequiredElementTimeout
from qube_mesh.finalizer import DEFAULT_END_TIMEOUT_MS, WorkflowEnd, finalize
from qube_mesh.resolver import ElementResolver, Intent
from qube_mesh.selectors import CandidateSet, MatcherTable
from qube_mesh.waits import first_visible, is_visible, poll, settle

logger = logging.getLogger(__name__)

PROMPT_TIMEOUT_MS = 180_000
PRIME_SETTLE_MS = 2_500
PRE_TYPE_PAUSE_MS = 1_500
QUESTION_TIMEOUT_MS = 240_000
ROWS_TIMEOUT_MS = 60_000
DATE_PROCEED_TIMEOUT_MS = 30_000


class AgentWorkflow:
    """Base class for the per-agent state machines.

    Subclasses set ``name``, ``data_key`` and ``agent_index`` and implement
    :meth:`execute`.

    Args:
        page: Page exclusively owned by this invocation.
        ctx: Agent identity.
        row: Scenario row driving the inputs.
        table: Matcher table override.
        timeout_scale: Multiplier for every bounded wait.
        assets_dir: Base directory for relative attachment paths.
    """

    name: ClassVar[str] = "agent-workflow"
    data_key: ClassVar[str] = ""
    agent_index: ClassVar[int] = -1
    end_timeout_ms: ClassVar[int] = DEFAULT_END_TIMEOUT_MS

    def __init__(
        self,
        page: Page,
        ctx: WorkflowContext,
        row: ScenarioRow,
        *,
        table: Optional[MatcherTable] = None,
        timeout_scale: float = 1.0,
        assets_dir: Optional[Path] = None,
    ) -> None:
        self.page = page
        self.ctx = ctx
        self.row = row
        self.resolver = ElementResolver(page, table, timeout_scale)
        self.waiter = ActivityWaiter(page)
        self.dates = DatePicker(self.resolver)
        self.assets_dir = assets_dir
        self.current_step = "start"
        self.steps: List[str] = []
        self._primed = False

    async def run(self) -> WorkflowEnd:
        """Run every phase and return the terminal state."""
        logger.info("[%s] starting for %s (sno=%s)", self.name, self.ctx.agent_name, self.row.sno)
        try:
            end = await self.execute()
        except QubeMeshError as e:
            raise e.attach(self.name, self.current_step)
        except PlaywrightError as e:
            diagnostics = await PageDiagnostics.capture(self.page)
            raise RequiredElementTimeout(
                self.current_step,
                0,
                diagnostics,
                message=str(e),
                workflow=self.name,
                step=self.current_step,
            ) from e
        logger.info("[%s] finished: %s", self.name, end)
        return end

    async def execute(self) -> WorkflowEnd:
        raise NotImplementedError

    def phase(self, name: str) -> None:
        self.current_step = name
        self.steps.append(name)
        logger.info("[%s] %s", self.name, name)

    # ------------------------------------------------------------------
    # Prompt and actions
    # ------------------------------------------------------------------

    async def prime(self) -> None:
        """Let a freshly navigated page hydrate before the first interaction."""
        if self._primed:
            return
        await settle(self.page)
        await self.page.wait_for_timeout(PRIME_SETTLE_MS)
        await self.resolver.dismiss_blocking_dialog()
        self._primed = True

    async def submit_prompt(self, text: str, *, timeout_ms: int = PROMPT_TIMEOUT_MS) -> None:
        """Type into the chat prompt, press Enter and wait for the heartbeat."""
        await self.prime()
        box = await self.resolver.resolve("prompt_input", timeout_ms=timeout_ms)

        async def editable() -> bool:
            try:
                return await box.is_editable()
            except PlaywrightError:
                return False

        if not await poll(self.page, editable, self.resolver.scaled(timeout_ms)):
            logger.info("[%s] prompt box never reported editable, typing anyway", self.name)
        await self.page.wait_for_timeout(PRE_TYPE_PAUSE_MS)
        await self.waiter.mark()
        await self.resolver.fill(box, text, submit=True)
        await self.waiter.wait()

    async def click_action(
        self,
        intent: Intent,
        *,
        visible_timeout_ms: int,
        enabled_timeout_ms: Optional[int] = None,
    ) -> Locator:
        await self.waiter.mark()
        locator = await self.resolver.click_intent(
            intent,
            visible_timeout_ms=visible_timeout_ms,
            enabled_timeout_ms=enabled_timeout_ms,
        )
        await self.waiter.wait()
        return locator

    async def click_located(self, locator: Locator, intent: str) -> None:
        await self.waiter.mark()
        await self.resolver.click(locator, intent=intent)
        await self.waiter.wait()

    async def proceed(self) -> None:
        await self.click_action("actions.proceed", visible_timeout_ms=120_000, enabled_timeout_ms=60_000)

    async def proceed_with_request(self) -> None:
        await self.click_action(
            "actions.proceed_with_request", visible_timeout_ms=240_000, enabled_timeout_ms=240_000
        )

    async def create_request(self) -> None:
        await self.click_action(
            "actions.create_request", visible_timeout_ms=240_000, enabled_timeout_ms=240_000
        )

    async def proceed_if_present(self, timeout_ms: int = 10_000) -> bool:
        """Click a plain "Proceed" (never "Proceed with Request") if one shows up."""
        await self.waiter.mark()
        clicked = await self.resolver.click_if_present("actions.proceed_exact", timeout_ms=timeout_ms)
        if clicked:
            await self.waiter.wait()
        return clicked

    # ------------------------------------------------------------------
    # Waiting for the conversation
    # ------------------------------------------------------------------

    async def expect(self, intent: Intent, timeout_ms: int, **kwargs) -> Locator:
        """Mandatory wait for a prompt or control."""
        return await self.resolver.resolve(intent, timeout_ms=timeout_ms, **kwargs)

    async def optional(self, intent: Intent, timeout_ms: int, **kwargs) -> Optional[Locator]:
        """Optional wait: ``None`` (and a log line) when nothing shows up."""
        found = await self.resolver.find(intent, timeout_ms=timeout_ms, **kwargs)
        if found is None:
            name = self.resolver.candidates(intent, **kwargs).intent
            logger.info(
                "[%s] optional step skipped: '%s' not shown within %sms",
                self.name, name, self.resolver.scaled(timeout_ms),
            )
        return found

    async def answer_yes(self, question: Locator) -> None:
        await self.waiter.mark()
        await self.resolver.click_yes_for(question)
        await self.waiter.wait()

    async def answer_optional_question(
        self,
        intent: Intent,
        *,
        timeout_ms: int = QUESTION_TIMEOUT_MS,
        proceed_timeout_ms: int = 15_000,
    ) -> bool:
        """Answer Yes to a conditional question if the app asks it."""
        question = await self.optional(intent, timeout_ms)
        if question is None:
            return False
        await self.page.wait_for_timeout(500)
        await self.answer_yes(question)
        await self.proceed_if_present(proceed_timeout_ms)
        return True

    async def next_unanswered(
        self,
        intent: Intent,
        answered: Set[str],
        timeout_ms: int,
    ) -> Optional[Tuple[Locator, str]]:
        """Newest visible match of ``intent`` whose text was not seen before."""
        candidate_set = self.resolver.candidates(intent)

        async def check() -> Optional[Tuple[Locator, str]]:
            for locator in candidate_set.locators(self.page):
                try:
                    count = await locator.count()
                except PlaywrightError:
                    continue
                for index in reversed(range(count)):
                    item = locator.nth(index)
                    if not await is_visible(item):
                        continue
                    try:
                        text = (await item.inner_text(timeout=2_000)).strip()
                    except PlaywrightError:
                        continue
                    if text and text not in answered:
                        return item, text
            return None

        return await poll(self.page, check, self.resolver.scaled(timeout_ms))

    # ------------------------------------------------------------------
    # Shared sub-protocols
    # ------------------------------------------------------------------

    async def select_grid_row(
        self,
        name: str = "",
        code: str = "",
        *,
        timeout_ms: int = ROWS_TIMEOUT_MS,
    ) -> Locator:
        """Tick the checkbox of the supplier row matching name and code.

        Without both a name and a code the first selectable row is used.
        """
        grid = await self.expect("grid.supplier_grid", timeout_ms)
        row_sets: CandidateSet = self.resolver.candidates("grid.selectable_row")

        async def rows_loaded() -> Optional[Locator]:
            for rows in row_sets.locators(grid):
                try:
                    if await rows.count():
                        return rows
                except PlaywrightError:
                    continue
            return None

        rows = await poll(self.page, rows_loaded, self.resolver.scaled(timeout_ms))
        if rows is None:
            raise RequiredElementTimeout(
                "supplier grid rows", self.resolver.scaled(timeout_ms), await self.resolver.diagnostics()
            )

        target = rows.first
        if name and code:
            matching = rows.filter(has_text=name).filter(has_text=code)
            found = await first_visible(matching)
            if found is not None:
                target = found
            else:
                logger.warning("[%s] no row for %s / %s, using the first row", self.name, name, code)

        checkbox = await self.resolver.find("grid.row_checkbox", scope=target)
        if checkbox is not None:
            try:
                await checkbox.click(force=True)
                return target
            except PlaywrightError as e:
                logger.info("[%s] checkbox click failed: %s", self.name, e)
        logger.info("[%s] selecting the supplier row with Space", self.name)
        await self.resolver.click(target, intent="supplier row")
        await self.page.keyboard.press("Space")
        return target

    async def select_date(self, label: str, raw_date: str) -> TargetDate:
        """Run the date sub-protocol, then click the Proceed that confirms the date."""
        target = await self.dates.select(label, raw_date)
        if not await self.proceed_if_present(DATE_PROCEED_TIMEOUT_MS):
            await self.click_action("actions.proceed", visible_timeout_ms=DATE_PROCEED_TIMEOUT_MS)
        return target

    async def finalize(self) -> WorkflowEnd:
        self.phase("finalize")
        return await finalize(self.resolver, end_timeout_ms=self.end_timeout_ms)
