"""Step definitions for reaching the Qube Mesh app and picking an agent."""

from typing import Any

import pytest
from pytest_bdd import given, parsers

from qube_mesh.pages import QubeMeshPage


# ============================================================================
# Background and Setup Steps
# ============================================================================


@given("the Qube Mesh environment is configured")
def qube_mesh_environment_configured(qm_context: Any) -> None:
    """Verify the live environment is configured.

    Skips the scenario when any required key (BASE_URL, USER_ID, PASSWORD,
    QUBE_MESH_URL) is missing.
    """
    missing = qm_context.settings.missing_required()
    if missing:
        pytest.skip(f"Qube Mesh environment not configured (missing {', '.join(missing)})")
    print(f"✓ Qube Mesh environment is configured for {qm_context.settings.qube_mesh_url}")


@given(parsers.parse("Qube Mesh is open for agent index {agent_index:d}"))
def qube_mesh_open_for_agent(qm_context: Any, agent_index: int) -> None:
    """Open the app on a fresh page and remember which agent the scenario drives."""
    qm_context.agent_index = agent_index
    page = qm_context.open_page()
    app = QubeMeshPage(page, timeout_scale=qm_context.settings.timeout_scale)
    url = qm_context.run(app.goto(qm_context.settings.qube_mesh_url))
    qm_context.run(app.dismiss_faq())
    print(f"✓ Qube Mesh loaded from {url} for {qm_context.agent_name}")


@given("the agent is chosen from the Auto Invoke picker")
def agent_chosen_from_picker(qm_context: Any) -> None:
    """Open Auto Invoke and select the scenario's agent by name."""
    app = QubeMeshPage(qm_context.page, timeout_scale=qm_context.settings.timeout_scale)
    qm_context.run(app.start_auto_invoke())
    qm_context.run(app.select_agent(qm_context.agent_name))
    print(f"✓ Agent selected: {qm_context.agent_name}")
