"""Qube Mesh Keywords for Robot Framework.

Keywords for running Qube Mesh agent workflows, aligned with BDD scenario steps.
Uses @keyword decorator to map clean function names to scenario step text.

Mirrors: tests/step_defs/navigation_steps.py, scenario_data_steps.py,
workflow_steps.py
"""

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Dict, Optional, TypeVar

from robot.api import SkipExecution
from robot.api.deco import keyword, library

from qube_mesh.config import Settings
from qube_mesh.context import WorkflowContext
from qube_mesh.data import ScenarioDataProvider, ScenarioRow, default_providers
from qube_mesh.errors import ConfigurationError, QubeMeshError, UnsupportedScenarioKey
from qube_mesh.finalizer import EndedBy, WorkflowEnd
from qube_mesh.pages import QubeMeshPage
from qube_mesh.session import SessionProvider, capture_failure_artifacts
from qube_mesh.workflows import default_scenario_key, run_agent_workflow

T = TypeVar("T")

ARTIFACTS_DIR = Path("artifacts")


@library(scope="SUITE", doc_format="TEXT")
class QubeMeshKeywords:
    """Keywords for Qube Mesh agent workflows matching BDD scenario steps.

    One browser session is shared by the suite; every test gets its own page.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        providers: Optional[Dict[str, ScenarioDataProvider]] = None,
    ) -> None:
        """Initialize QubeMeshKeywords."""
        self.settings = settings or Settings.from_env()
        self.providers = providers if providers is not None else default_providers(self.settings.data_dir)
        self.page: Optional[Any] = None
        self.agent_index: Optional[int] = None
        self.row: Optional[ScenarioRow] = None
        self.workflow_end: Optional[WorkflowEnd] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._session: Optional[SessionProvider] = None
        self._page_cm: Optional[Any] = None

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop.run_until_complete(coro)

    def _ctx(self) -> WorkflowContext:
        if self.agent_index is None:
            raise AssertionError("No agent selected yet (use 'Qube Mesh Is Open For Agent Index')")
        return WorkflowContext(
            agent_name=self.settings.agent_name(self.agent_index), agent_index=self.agent_index
        )

    def _app(self) -> QubeMeshPage:
        if self.page is None:
            raise AssertionError("Qube Mesh page is not open")
        return QubeMeshPage(self.page, timeout_scale=self.settings.timeout_scale)

    def _open_page(self) -> Any:
        if self.page is not None:
            return self.page
        if self._session is None:
            session = SessionProvider(self.settings)
            try:
                self._run(session.start())
            except ConfigurationError as e:
                self._run(session.close())
                raise SkipExecution(str(e)) from e
            self._session = session
        self._page_cm = self._session.page()
        self.page = self._run(self._page_cm.__aenter__())
        return self.page

    def _provider(self, workflow: str) -> ScenarioDataProvider:
        key = "_".join(workflow.replace("-", " ").lower().split())
        try:
            return self.providers[key]
        except KeyError:
            raise UnsupportedScenarioKey(key, sorted(self.providers)) from None

    # =========================================================================
    # Setup Keywords
    # =========================================================================

    @keyword("The Qube Mesh environment is configured")
    def verify_environment_configured(self) -> None:
        """Verify the live environment is configured.

        Maps to scenario step:
        - "Given the Qube Mesh environment is configured"

        Skips the test when BASE_URL, USER_ID, PASSWORD or QUBE_MESH_URL
        is missing.
        """
        missing = self.settings.missing_required()
        if missing:
            raise SkipExecution(f"Qube Mesh environment not configured (missing {', '.join(missing)})")
        print(f"✓ Qube Mesh environment is configured for {self.settings.qube_mesh_url}")

    @keyword("Qube Mesh is open for agent index")
    def open_for_agent(self, agent_index: int) -> str:
        """Open the app on a fresh page for the given agent.

        Maps to scenario step:
        - "Given Qube Mesh is open for agent index 0"

        Arguments:
            agent_index: Zero-based agent index (0: offboarding ... 4: profile update)

        Returns:
            The URL the app was loaded from
        """
        self.agent_index = int(agent_index)
        self._open_page()
        app = self._app()
        url = self._run(app.goto(self.settings.qube_mesh_url))
        self._run(app.dismiss_faq())
        print(f"✓ Qube Mesh loaded from {url} for {self._ctx().agent_name}")
        return url

    @keyword("The agent is chosen from the Auto Invoke picker")
    def choose_agent(self) -> None:
        """Open Auto Invoke and select the current agent by name.

        Maps to scenario step:
        - "Given the agent is chosen from the Auto Invoke picker"
        """
        app = self._app()
        name = self._ctx().agent_name
        self._run(app.start_auto_invoke())
        self._run(app.select_agent(name))
        print(f"✓ Agent selected: {name}")

    # =========================================================================
    # Scenario Data Keywords
    # =========================================================================

    @keyword("Load scenario data")
    def load_scenario_data(self, workflow: str, sno: str) -> ScenarioRow:
        """Load one row of a workflow's scenario data.

        Maps to scenario step:
        - 'Given the supplier offboarding data for SNO "1.2"'
        """
        self.row = self._provider(workflow).get_row(sno)
        print(f'✓ Loaded {workflow} data for SNO="{self.row.sno}": {self.row.query}')
        return self.row

    @keyword("Load default scenario data")
    def load_default_scenario_data(self, workflow: str) -> ScenarioRow:
        """Load the row the current agent runs when no SNO is given."""
        key = default_scenario_key(self._ctx())
        self.row = self._provider(workflow).get_row(key)
        print(f'✓ Loaded default {workflow} data (SNO="{key}")')
        return self.row

    # =========================================================================
    # Workflow Keywords
    # =========================================================================

    @keyword("The workflow runs for the selected agent")
    @keyword("Run workflow")
    def run_workflow(self) -> str:
        """Run the dispatched workflow on the current page.

        Maps to scenario step:
        - "When the workflow runs for the selected agent"

        On a workflow failure a screenshot and the page HTML are saved under
        artifacts/ before the error is re-raised.

        Returns:
            How the workflow ended
        """
        if self.page is None:
            raise AssertionError("Qube Mesh page is not open")
        try:
            self.workflow_end = self._run(
                run_agent_workflow(
                    self.page,
                    self._ctx(),
                    self.row,
                    providers=self.providers,
                    assets_dir=self.settings.upload_dir,
                    timeout_scale=self.settings.timeout_scale,
                )
            )
        except QubeMeshError:
            self._save_artifacts(f"agent-{self.agent_index}-{self.row.sno if self.row else 'default'}")
            raise
        print(f"✓ Workflow ended by: {self.workflow_end}")
        return str(self.workflow_end)

    @keyword("The workflow reaches a terminal state")
    def verify_terminal_state(self) -> str:
        """Verify the workflow finished in one of its three end states.

        Maps to scenario step:
        - "Then the workflow reaches a terminal state"
        """
        if not isinstance(self.workflow_end, WorkflowEnd):
            raise AssertionError(f"Workflow did not finish (got {self.workflow_end!r})")
        print(f"✓ Terminal state reached: {self.workflow_end}")
        return str(self.workflow_end)

    @keyword("The workflow should end by")
    def verify_ended_by(self, ended_by: str) -> None:
        """Verify how the workflow ended.

        Maps to scenario step:
        - 'Then the workflow ends by "send-for-validation"'

        Arguments:
            ended_by: congratulations, send-for-validation or edit-project-request-only
        """
        expected = EndedBy(ended_by)
        if self.workflow_end is None:
            raise AssertionError("Workflow has not run")
        if self.workflow_end.ended_by is not expected:
            raise AssertionError(f"Expected {expected.value}, got {self.workflow_end}")
        print(f"✓ Workflow ended by {expected.value}")

    @keyword("Send for Validation should have been clicked")
    def verify_sent_for_validation(self) -> None:
        """Maps to scenario step: "Then Send for Validation was clicked"."""
        if self.workflow_end is None or not self.workflow_end.clicked_send_for_validation:
            raise AssertionError(f"Validation was not sent (ended by {self.workflow_end})")
        print("✓ Send for Validation was clicked and confirmed")

    # =========================================================================
    # Teardown Keywords
    # =========================================================================

    @keyword("Close Qube Mesh page")
    def close_page(self) -> None:
        """Close the test's page and browser context."""
        if self._page_cm is not None:
            try:
                self._run(self._page_cm.__aexit__(None, None, None))
            finally:
                self._page_cm = None
        self.page = None
        self.agent_index = None
        self.row = None
        self.workflow_end = None

    @keyword("Close Qube Mesh session")
    def close_session(self) -> None:
        """Close the page, the browser and the event loop."""
        self.close_page()
        if self._session is not None:
            self._run(self._session.close())
            self._session = None
        if self._loop is not None and not self._loop.is_closed():
            self._loop.close()
        self._loop = None

    def _save_artifacts(self, name: str) -> None:
        try:
            written = self._run(capture_failure_artifacts(self.page, ARTIFACTS_DIR, name))
        except Exception as e:  # noqa: BLE001
            print(f"⚠ Could not save failure artifacts for '{name}': {e}")
            return
        for path in written:
            print(f"✗ Saved failure artifact: {path}")
