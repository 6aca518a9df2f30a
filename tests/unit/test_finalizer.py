"""Unit tests for the shared end-of-workflow contract."""

import asyncio

import pytest

from qube_mesh.errors import RequiredElementTimeout
from qube_mesh.finalizer import EndedBy, WorkflowEnd, finalize
from qube_mesh.resolver import ElementResolver
from tests.unit.mocks import FakeElement, FakePage, button


def _finalize(page: FakePage, **kwargs) -> WorkflowEnd:
    return asyncio.run(finalize(ElementResolver(page), **kwargs))


def test_congratulations_ends_immediately():
    page = FakePage(FakeElement("div", "Congratulations! Your project request has been created."))

    end = _finalize(page)

    assert end.ended_by is EndedBy.CONGRATULATIONS
    assert str(end) == "congratulations"
    assert not end.clicked_send_for_validation
    assert page.clicks == []


def test_edit_without_send_is_request_only():
    """Edit Project Request without Send for Validation never clicks anything."""
    page = FakePage(button("Edit Project Request"))

    end = _finalize(page)

    assert end.ended_by is EndedBy.EDIT_PROJECT_REQUEST_ONLY
    assert page.clicks == []


def test_send_for_validation_is_clicked_and_confirmed():
    page = FakePage()
    send = button(
        "Send for Validation",
        then=lambda: page.add(FakeElement("div", "Congratulations! Sent for validation.")),
    )
    page.add(button("Edit Project Request"), send)

    end = _finalize(page)

    assert end.ended_by is EndedBy.SEND_FOR_VALIDATION
    assert end.clicked_send_for_validation
    assert page.clicks == [send]


def test_send_for_validation_confirmed_by_button_going_away():
    page = FakePage()
    send = button("Send for Validation")
    send.on_click = lambda: setattr(send, "visible", False)
    page.add(send)

    assert _finalize(page).ended_by is EndedBy.SEND_FOR_VALIDATION


def test_send_for_validation_waits_until_enabled():
    page = FakePage()
    send = button("Send for Validation", enabled=False)
    send.on_click = lambda: page.add(FakeElement("div", "Request submitted for validation"))
    page.add(send)
    page.after(2_000, lambda: setattr(send, "enabled", True))

    assert _finalize(page).ended_by is EndedBy.SEND_FOR_VALIDATION
    assert page.clicks == [send]


def test_unconfirmed_send_raises():
    """Clicking Send for Validation without any confirmation is a failure."""
    page = FakePage(button("Send for Validation"))

    with pytest.raises(RequiredElementTimeout, match="no confirmation appeared"):
        _finalize(page, confirmation_timeout_ms=1_000)


def test_no_end_screen_raises():
    page = FakePage(FakeElement("div", "Still thinking"))

    with pytest.raises(RequiredElementTimeout, match="did not reach end screen within 1000ms"):
        _finalize(page, end_timeout_ms=1_000)
