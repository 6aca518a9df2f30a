"""Step definitions for running an agent workflow and checking how it ended."""

from typing import Any

from pytest_bdd import parsers, then, when

from qube_mesh.finalizer import EndedBy, WorkflowEnd
from qube_mesh.workflows import run_agent_workflow


@when("the workflow runs for the selected agent")
def workflow_runs(qm_context: Any) -> None:
    """Run the dispatched workflow on the scenario's page.

    Any mandatory failure propagates and fails the step; the root conftest
    saves a screenshot and the page HTML for it.
    """
    end = qm_context.run(
        run_agent_workflow(
            qm_context.page,
            qm_context.workflow_context(),
            qm_context.row,
            providers=qm_context.providers,
            assets_dir=qm_context.settings.upload_dir,
            timeout_scale=qm_context.settings.timeout_scale,
        )
    )
    qm_context.workflow_end = end
    print(f"✓ Workflow ended by: {end}")


@then("the workflow reaches a terminal state")
def workflow_reaches_terminal_state(qm_context: Any) -> None:
    end = qm_context.workflow_end
    assert isinstance(end, WorkflowEnd), f"Workflow did not finish (got {end!r})"
    print(f"✓ Terminal state reached: {end}")


@then(parsers.parse('the workflow ends by "{ended_by}"'))
def workflow_ends_by(qm_context: Any, ended_by: str) -> None:
    expected = EndedBy(ended_by)
    end = qm_context.workflow_end
    assert end is not None, "Workflow has not run"
    assert end.ended_by is expected, f"Expected {expected.value}, got {end}"
    print(f"✓ Workflow ended by {expected.value}")


@then("Send for Validation was clicked")
def send_for_validation_clicked(qm_context: Any) -> None:
    end = qm_context.workflow_end
    assert end is not None and end.clicked_send_for_validation, f"Validation was not sent (ended by {end})"
    print("✓ Send for Validation was clicked and confirmed")
