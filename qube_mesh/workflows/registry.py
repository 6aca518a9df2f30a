"""Dispatch from agent index to workflow class, with default scenario rows."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Type

from playwright.async_api import Page

from qube_mesh.context import WorkflowContext
from qube_mesh.data import DEFAULT_DATA_DIR, ScenarioDataProvider, ScenarioRow, default_providers
from qube_mesh.errors import UnsupportedScenarioKey
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.workflows.base import AgentWorkflow
from qube_mesh.workflows.contract_amendment import ContractAmendmentWorkflow
from qube_mesh.workflows.contract_extension import ContractExtensionWorkflow
from qube_mesh.workflows.contract_termination import ContractTerminationWorkflow
from qube_mesh.workflows.supplier_offboarding import SupplierOffboardingWorkflow
from qube_mesh.workflows.supplier_profile_update import SupplierProfileUpdateWorkflow

logger = logging.getLogger(__name__)

WORKFLOWS: Dict[int, Type[AgentWorkflow]] = {
    workflow.agent_index: workflow
    for workflow in (
        SupplierOffboardingWorkflow,
        ContractAmendmentWorkflow,
        ContractTerminationWorkflow,
        ContractExtensionWorkflow,
        SupplierProfileUpdateWorkflow,
    )
}
WORKFLOWS_BY_KEY: Dict[str, Type[AgentWorkflow]] = {
    workflow.data_key: workflow for workflow in WORKFLOWS.values()
}

# (default key, variant key picked when the agent name mentions it)
DEFAULT_KEYS = {
    0: ("1", None),
    1: ("2", "2.1"),
    2: ("3", "3.1"),
    3: ("4", None),
    4: ("5", "5.1"),
}


def workflow_for(agent_index: int) -> Type[AgentWorkflow]:
    try:
        return WORKFLOWS[agent_index]
    except KeyError:
        raise UnsupportedScenarioKey(
            agent_index,
            sorted(WORKFLOWS),
            message=f"No workflow for agent index {agent_index}. Supported: "
            + ", ".join(str(index) for index in sorted(WORKFLOWS)),
        ) from None


def default_scenario_key(ctx: WorkflowContext) -> str:
    """Scenario key used when the caller names none."""
    workflow_for(ctx.agent_index)
    default, variant = DEFAULT_KEYS[ctx.agent_index]
    if variant and variant in ctx.agent_name:
        return variant
    return default


async def run_agent_workflow(
    page: Page,
    ctx: WorkflowContext,
    row: Optional[ScenarioRow] = None,
    *,
    sno: Optional[str] = None,
    providers: Optional[Mapping[str, ScenarioDataProvider]] = None,
    assets_dir: Optional[Path] = None,
    **options,
) -> WorkflowEnd:
    """Run the workflow of ``ctx.agent_index`` on ``page``.

    Without ``row`` the row is looked up by ``sno`` (or the agent's default
    key) in ``providers``. Relative upload paths resolve against ``assets_dir``,
    the packaged scenario directory by default. ``options`` go to the workflow
    constructor.
    """
    workflow_type = workflow_for(ctx.agent_index)
    if row is None:
        providers = providers if providers is not None else default_providers()
        key = sno or default_scenario_key(ctx)
        row = providers[workflow_type.data_key].get_row(key)
    logger.info("Dispatching agent %d (%s) to %s", ctx.agent_number, ctx.agent_name, workflow_type.name)
    assets_dir = Path(assets_dir) if assets_dir is not None else DEFAULT_DATA_DIR
    return await workflow_type(page, ctx, row, assets_dir=assets_dir, **options).run()
