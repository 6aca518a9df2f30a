"""Unit tests for agent dispatch, default scenario keys and termination modes."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from qube_mesh.context import WorkflowContext
from qube_mesh.data import DEFAULT_DATA_DIR, ContractTerminationRow, ScenarioDataProvider, SupplierOffboardingRow
from qube_mesh.errors import ScenarioDataError, UnsupportedScenarioKey
from qube_mesh.finalizer import EndedBy, WorkflowEnd
from qube_mesh.workflows import (
    WORKFLOWS,
    WORKFLOWS_BY_KEY,
    ContractTerminationWorkflow,
    SupplierOffboardingWorkflow,
    SupplierProfileUpdateWorkflow,
    TerminationMode,
    default_scenario_key,
    normalize_termination_status,
    run_agent_workflow,
    workflow_for,
)
from qube_mesh.workflows.contract_termination import termination_mode


def test_every_agent_index_has_a_workflow():
    assert sorted(WORKFLOWS) == [0, 1, 2, 3, 4]
    assert workflow_for(0) is SupplierOffboardingWorkflow
    assert workflow_for(4) is SupplierProfileUpdateWorkflow
    assert WORKFLOWS_BY_KEY["contract_termination"] is ContractTerminationWorkflow


def test_unknown_agent_index_is_rejected():
    with pytest.raises(UnsupportedScenarioKey, match="No workflow for agent index 7") as excinfo:
        workflow_for(7)
    assert excinfo.value.supported == ["0", "1", "2", "3", "4"]


@pytest.mark.parametrize(
    "agent_index, agent_name, expected",
    [
        (0, "Agent 1", "1"),
        (1, "Agent 2", "2"),
        (1, "Agent 2.1 amendment", "2.1"),
        (2, "Agent 3", "3"),
        (2, "Agent 3.1", "3.1"),
        (3, "Agent 4.1", "4"),
        (4, "Agent 5.1 profile", "5.1"),
    ],
)
def test_default_scenario_key(agent_index, agent_name, expected):
    ctx = WorkflowContext(agent_name=agent_name, agent_index=agent_index)

    assert default_scenario_key(ctx) == expected


def test_run_agent_workflow_looks_up_the_default_row():
    provider = ScenarioDataProvider(
        "supplier offboarding",
        SupplierOffboardingRow,
        records=[{"sno": "1", "query": "Offboard Acme"}],
    )
    end = WorkflowEnd(EndedBy.CONGRATULATIONS)
    ctx = WorkflowContext(agent_name="Agent 1", agent_index=0)

    with patch.object(SupplierOffboardingWorkflow, "run", AsyncMock(return_value=end)) as run:
        result = asyncio.run(
            run_agent_workflow(object(), ctx, providers={"supplier_offboarding": provider})
        )

    assert result is end
    run.assert_awaited_once()


@pytest.mark.parametrize("assets_dir, expected", [(None, DEFAULT_DATA_DIR), ("/srv/uploads", Path("/srv/uploads"))])
def test_run_agent_workflow_hands_the_upload_directory_to_the_workflow(assets_dir, expected):
    provider = ScenarioDataProvider(
        "supplier offboarding",
        SupplierOffboardingRow,
        records=[{"sno": "1", "query": "Offboard Acme"}],
    )
    end = WorkflowEnd(EndedBy.CONGRATULATIONS)
    ctx = WorkflowContext(agent_name="Agent 1", agent_index=0)

    with patch.object(SupplierOffboardingWorkflow, "run", autospec=True, return_value=end) as run:
        asyncio.run(
            run_agent_workflow(
                object(), ctx, providers={"supplier_offboarding": provider}, assets_dir=assets_dir
            )
        )

    workflow = run.await_args.args[0]
    assert workflow.assets_dir == expected


def test_run_agent_workflow_reports_missing_sno():
    provider = ScenarioDataProvider("supplier offboarding", SupplierOffboardingRow, records=[])
    ctx = WorkflowContext(agent_name="Agent 1", agent_index=0)

    with pytest.raises(UnsupportedScenarioKey, match='No supplier offboarding data found for SNO="9"'):
        asyncio.run(
            run_agent_workflow(object(), ctx, sno="9", providers={"supplier_offboarding": provider})
        )


@pytest.mark.parametrize(
    "status, expected",
    [
        ("Immediate", TerminationMode.IMMEDIATE),
        ("terminate_immediately", TerminationMode.IMMEDIATE),
        ("future date", TerminationMode.FUTURE),
        ("Future-Date", TerminationMode.FUTURE),
        ("Terminate for a future date", TerminationMode.FUTURE),
        ("", None),
        ("later", None),
        ("not immediate", None),
        ("no future", None),
    ],
)
def test_normalize_termination_status(status, expected):
    assert normalize_termination_status(status) is expected


def _termination_row(status: str, date: str = "") -> ContractTerminationRow:
    return ContractTerminationRow(
        sno="3.9",
        query="Terminate",
        termination_status=status,
        termination_date=date,
        reason_terminate="Termination for Cause",
    )


def test_blank_status_means_future_date():
    assert termination_mode(_termination_row("", "2025-12-01")) is TerminationMode.FUTURE


def test_future_termination_needs_a_date():
    with pytest.raises(ScenarioDataError, match='SNO="3.9" needs a termination date'):
        termination_mode(_termination_row("future date"))


def test_unknown_termination_status_is_rejected():
    with pytest.raises(UnsupportedScenarioKey, match="Unsupported termination status 'someday'"):
        termination_mode(_termination_row("someday"))


def test_negated_status_is_not_read_as_a_mode():
    with pytest.raises(UnsupportedScenarioKey, match="Supported: immediate, future"):
        termination_mode(_termination_row("not immediate", "2025-12-01"))
