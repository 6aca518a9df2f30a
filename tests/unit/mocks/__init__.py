"""Mock classes for unit testing the workflow engine and step definitions."""

from .chat_ui import ChatUI, button, checkbox, date_widget, once, supplier_grid
from .fake_page import FakeElement, FakeLocator, FakePage
from .mock_context import UNIT_SETTINGS, MockContext

__all__ = [
    "ChatUI",
    "FakeElement",
    "FakeLocator",
    "FakePage",
    "MockContext",
    "UNIT_SETTINGS",
    "button",
    "checkbox",
    "date_widget",
    "once",
    "supplier_grid",
]
