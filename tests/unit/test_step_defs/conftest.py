"""Unit test conftest for step definitions.

Step functions are exercised against the scripted chat UI from
tests/unit/mocks instead of a real Qube Mesh deployment.
"""

import pytest

from tests.unit.mocks import ChatUI, MockContext


@pytest.fixture
def chat_ui() -> ChatUI:
    """A scripted chat page with only the prompt box on it."""
    return ChatUI()


@pytest.fixture
def qm_context(chat_ui: ChatUI) -> MockContext:
    """Mock scenario context bound to the chat UI's fake page."""
    return MockContext(page=chat_ui.page)
