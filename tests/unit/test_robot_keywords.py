"""Unit tests for the Qube Mesh Robot Framework keyword library."""

import importlib.util
from pathlib import Path

import pytest
from robot.api import SkipExecution

from qube_mesh.config import Settings
from qube_mesh.errors import RequiredElementTimeout
from tests.unit.mocks import UNIT_SETTINGS, ChatUI, FakeElement, button

LIBRARY_PATH = Path(__file__).parents[2] / "robot" / "libraries" / "qube_mesh_keywords.py"


def _load_library_module():
    spec = importlib.util.spec_from_file_location("qube_mesh_keywords", LIBRARY_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


keywords_module = _load_library_module()


@pytest.fixture
def chat_ui() -> ChatUI:
    return ChatUI()


@pytest.fixture
def library(chat_ui: ChatUI):
    lib = keywords_module.QubeMeshKeywords(settings=UNIT_SETTINGS)
    lib.page = chat_ui.page
    yield lib
    lib.close_session()


def _script_reasons_first(ui: ChatUI) -> None:
    def ask_create() -> None:
        ui.say("Create the request?", button("Create Request", then=ui.end_screen))

    ui.on_submit(
        lambda text: ui.say(
            "Why is the supplier being offboarded?",
            button("No longer doing business"),
            button("Not approved by TPRM", then=ask_create),
        )
    )


def test_unconfigured_environment_skips():
    lib = keywords_module.QubeMeshKeywords(settings=Settings())
    with pytest.raises(SkipExecution, match="BASE_URL"):
        lib.verify_environment_configured()


def test_open_and_choose_agent(library, chat_ui: ChatUI):
    chat_ui.page.add(button("Auto Invoke"), button("Agent 1"))
    chat_ui.page.add(FakeElement("input", css=("#agent-search",)))

    url = library.open_for_agent(0)
    library.choose_agent()

    assert url == UNIT_SETTINGS.qube_mesh_url
    assert chat_ui.clicked() == ["Auto Invoke", "Agent 1"]


def test_run_workflow_to_validation(library, chat_ui: ChatUI):
    _script_reasons_first(chat_ui)
    library.agent_index = 0
    library.load_scenario_data("supplier offboarding", "1")

    ended_by = library.run_workflow()

    assert ended_by == "send-for-validation"
    assert library.verify_terminal_state() == "send-for-validation"
    library.verify_ended_by("send-for-validation")
    library.verify_sent_for_validation()
    with pytest.raises(AssertionError, match="Expected congratulations"):
        library.verify_ended_by("congratulations")


def test_failed_run_saves_artifacts(library, chat_ui: ChatUI, tmp_path, monkeypatch):
    monkeypatch.setattr(keywords_module, "ARTIFACTS_DIR", tmp_path)
    library.agent_index = 0
    library.load_scenario_data("supplier offboarding", "1")

    with pytest.raises(RequiredElementTimeout):
        library.run_workflow()

    assert sorted(path.name for path in tmp_path.iterdir()) == ["agent-0-1.html", "agent-0-1.png"]


def test_default_scenario_data(library):
    library.agent_index = 2

    row = library.load_default_scenario_data("contract termination")

    assert row.sno == "3"


def test_close_page_resets_the_test_state(library):
    library.agent_index = 1
    library.load_scenario_data("contract amendment", "2")

    library.close_page()

    assert library.page is None
    assert library.row is None
    with pytest.raises(AssertionError, match="Workflow did not finish"):
        library.verify_terminal_state()
