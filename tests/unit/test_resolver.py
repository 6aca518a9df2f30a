"""Unit tests for the element resolver and its click escalation."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Error as PlaywrightError

from qube_mesh.errors import ElementNotFound, RequiredElementTimeout
from qube_mesh.resolver import ClickTier, ElementResolver
from tests.unit.mocks import FakeElement, FakePage, button


def _failing_locator(box=None) -> Mock:
    locator = Mock()
    locator.scroll_into_view_if_needed = AsyncMock()
    locator.click = AsyncMock(side_effect=PlaywrightError("element intercepts pointer events"))
    locator.bounding_box = AsyncMock(return_value=box)
    return locator


def test_plain_click():
    proceed = button("Proceed")
    page = FakePage(proceed)
    resolver = ElementResolver(page)

    tier = asyncio.run(resolver.click(page.get_by_role("button", name="Proceed")))

    assert tier is ClickTier.PLAIN
    assert page.clicks == [proceed]


def test_click_escalates_to_forced():
    """A click swallowed by an overlay is retried with force."""
    covered = button("Create Request", blocks_plain_click=True)
    page = FakePage(covered)
    resolver = ElementResolver(page)

    tier = asyncio.run(resolver.click(page.get_by_role("button", name="Create Request"), intent="Create Request"))

    assert tier is ClickTier.FORCED
    assert page.clicks == [covered]


def test_click_escalates_to_coordinates():
    """When plain and forced clicks both fail, the box centre is clicked."""
    page = FakePage()
    resolver = ElementResolver(page)
    locator = _failing_locator({"x": 10, "y": 20, "width": 100, "height": 40})

    tier = asyncio.run(resolver.click(locator, intent="Yes"))

    assert tier is ClickTier.COORDINATE
    assert locator.click.await_count == 2
    assert page.mouse_clicks == [(60, 40)]


def test_click_without_bounding_box_raises():
    page = FakePage()
    resolver = ElementResolver(page)

    with pytest.raises(ElementNotFound, match="no bounding box"):
        asyncio.run(resolver.click(_failing_locator(None), intent="Yes"))


def test_find_returns_none_after_bounded_wait():
    page = FakePage()
    resolver = ElementResolver(page)

    assert asyncio.run(resolver.find("actions.proceed", timeout_ms=3_000)) is None
    assert page.clock_ms == 3_000


def test_timeout_scale_stretches_waits():
    page = FakePage()
    resolver = ElementResolver(page, timeout_scale=2.0)

    assert resolver.scaled(1_000) == 2_000
    asyncio.run(resolver.find("actions.proceed", timeout_ms=1_000))
    assert page.clock_ms == 2_000


def test_resolve_raises_with_diagnostics():
    """A missing mandatory control names the intent and the page state."""
    page = FakePage(FakeElement("div", "Thinking..."))
    resolver = ElementResolver(page)

    with pytest.raises(ElementNotFound) as excinfo:
        asyncio.run(resolver.resolve("actions.create_request", timeout_ms=1_000))

    error = excinfo.value
    assert error.intent == "actions.create_request"
    assert error.timeout_ms == 1_000
    assert "Thinking..." in error.diagnostics.body_snippet
    assert "Qube Mesh" in str(error)


def test_resolve_waits_for_late_element():
    page = FakePage()
    page.after(750, lambda: page.add(button("Proceed with Request")))
    resolver = ElementResolver(page)

    found = asyncio.run(resolver.resolve("actions.proceed_with_request", timeout_ms=5_000))

    assert asyncio.run(found.inner_text()) == "Proceed with Request"
    assert page.clock_ms == 750


def test_race_returns_first_intent_to_show():
    page = FakePage(FakeElement("div", "Congratulations! All done."))
    resolver = ElementResolver(page)

    shown = asyncio.run(
        resolver.race(
            {"send": "finalize.send_for_validation", "congratulations": "finalize.congratulations"},
            timeout_ms=1_000,
        )
    )

    assert shown == "congratulations"


def test_count_uses_first_matching_strategy():
    page = FakePage(
        button("No longer doing business"),
        button("Not approved by TPRM"),
        button("Something else"),
    )
    resolver = ElementResolver(page)

    assert asyncio.run(resolver.count("offboarding.reason_button")) == 2


def test_ensure_enabled_times_out_on_disabled_control():
    page = FakePage(button("Send for Validation", enabled=False))
    resolver = ElementResolver(page)
    send = page.get_by_role("button", name="Send for Validation")

    with pytest.raises(RequiredElementTimeout, match="never became enabled"):
        asyncio.run(resolver.ensure_enabled(send, intent="Send for Validation", timeout_ms=1_000))


def test_click_if_present_ignores_disabled_controls():
    page = FakePage(button("Proceed", enabled=False))
    resolver = ElementResolver(page)

    assert asyncio.run(resolver.click_if_present("actions.proceed", timeout_ms=500)) is False
    assert page.clicks == []


def test_click_intent_waits_until_enabled():
    create = button("Create Request", enabled=False)
    page = FakePage(create)
    page.after(500, lambda: setattr(create, "enabled", True))
    resolver = ElementResolver(page)

    asyncio.run(resolver.click_intent("actions.create_request", visible_timeout_ms=1_000, enabled_timeout_ms=2_000))

    assert page.clicks == [create]


def test_click_yes_for_stays_inside_the_question_block():
    """The Yes next to the asked question is clicked, not an older one."""
    old_yes = button("Yes")
    new_yes = button("Yes")
    page = FakePage(
        FakeElement("div", children=(FakeElement("p", "Is the data volume changing?"), old_yes)),
        FakeElement("div", children=(FakeElement("p", "Are there significant changes in products?"), new_yes)),
    )
    resolver = ElementResolver(page)
    question = page.get_by_text("significant changes")

    asyncio.run(resolver.click_yes_for(question))

    assert page.clicks == [new_yes]


def test_dismiss_blocking_dialog():
    close = button("Close FAQ")
    page = FakePage(close)
    resolver = ElementResolver(page)

    assert asyncio.run(resolver.dismiss_blocking_dialog()) is True
    assert page.clicks == [close]
    assert asyncio.run(ElementResolver(FakePage()).dismiss_blocking_dialog()) is False


def test_wait_gone():
    spinner = FakeElement("div", "Loading")
    page = FakePage(spinner)
    page.after(500, lambda: setattr(spinner, "visible", False))
    resolver = ElementResolver(page)

    assert asyncio.run(resolver.wait_gone(page.get_by_text("Loading"), 2_000)) is True
