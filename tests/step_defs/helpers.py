"""Shared helpers for step definitions."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from qube_mesh.config import Settings
from qube_mesh.context import WorkflowContext
from qube_mesh.data import ScenarioDataProvider, ScenarioRow, default_providers
from qube_mesh.errors import UnsupportedScenarioKey
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.session import SessionProvider

T = TypeVar("T")


def workflow_key(name: str) -> str:
    """``"Supplier Offboarding"`` -> ``"supplier_offboarding"``."""
    return "_".join(name.replace("-", " ").lower().split())


class ScenarioContext:
    """State shared by the steps of one scenario (the ``qm_context`` fixture).

    pytest-bdd steps are synchronous, so every coroutine goes through
    :meth:`run` on the session's event loop. The page is opened lazily by the
    first step that needs it and closed by the root conftest after the
    scenario, pass or fail.
    """

    def __init__(
        self,
        settings: Settings,
        loop: asyncio.AbstractEventLoop,
        session_factory: Optional[Callable[[], SessionProvider]] = None,
        providers: Optional[Dict[str, ScenarioDataProvider]] = None,
    ) -> None:
        self.settings = settings
        self.loop = loop
        self.session_factory = session_factory
        self.providers = providers if providers is not None else default_providers(settings.data_dir)
        self.page: Optional[Any] = None
        self.agent_index: Optional[int] = None
        self.row: Optional[ScenarioRow] = None
        self.workflow_end: Optional[WorkflowEnd] = None
        self.scenario_start_time = datetime.now()
        self._page_cm: Optional[Any] = None

    @property
    def agent_name(self) -> str:
        if self.agent_index is None:
            raise AssertionError("No agent selected yet (use 'Qube Mesh is open for agent index N')")
        return self.settings.agent_name(self.agent_index)

    def workflow_context(self) -> WorkflowContext:
        return WorkflowContext(agent_name=self.agent_name, agent_index=self.agent_index)

    def provider(self, workflow: str) -> ScenarioDataProvider:
        key = workflow_key(workflow)
        try:
            return self.providers[key]
        except KeyError:
            raise UnsupportedScenarioKey(
                key,
                sorted(self.providers),
                message=f"No scenario data for workflow '{workflow}'. Supported: "
                + ", ".join(sorted(self.providers)),
            ) from None

    def run(self, coro: Awaitable[T]) -> T:
        return self.loop.run_until_complete(coro)

    def open_page(self) -> Any:
        """The scenario's page, created from the session provider on first use."""
        if self.page is None:
            if self.session_factory is None:
                raise AssertionError("No browser session available for this scenario")
            self._page_cm = self.session_factory().page()
            self.page = self.run(self._page_cm.__aenter__())
        return self.page

    def close_page(self) -> None:
        if self._page_cm is not None:
            try:
                self.run(self._page_cm.__aexit__(None, None, None))
            finally:
                self._page_cm = None
        self.page = None
