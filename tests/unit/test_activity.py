"""Unit tests for the "AI Events (N)" activity heartbeat."""

import asyncio

from playwright.async_api import Error as PlaywrightError

from qube_mesh.activity import (
    ABSENT_SETTLE_MS,
    CHANGE_WAIT_MS,
    ActivityWaiter,
    read_activity_count,
    wait_for_activity,
)
from tests.unit.mocks import FakeElement, FakePage


def _counter(value: int) -> FakeElement:
    return FakeElement("span", f"AI Events ({value})")


def test_read_activity_count_without_counter():
    assert asyncio.run(read_activity_count(FakePage())) is None


def test_read_activity_count_parses_value():
    page = FakePage(_counter(12))

    assert asyncio.run(read_activity_count(page)) == 12


def test_wait_without_counter_is_a_short_settle():
    """Without a counter the wait is only the settle delay and returns previous."""
    page = FakePage()

    result = asyncio.run(wait_for_activity(page, previous=4))

    assert result == 4
    assert page.clock_ms == ABSENT_SETTLE_MS
    assert page.load_state_waits == 1


def test_wait_detects_counter_change():
    """The wait returns as soon as the counter moves past the previous value."""
    counter = _counter(3)
    page = FakePage(counter)
    page.after(1_000, lambda: setattr(counter, "text", "AI Events (5)"))

    result = asyncio.run(wait_for_activity(page, previous=3))

    assert result == 5
    assert page.clock_ms == 1_000


def test_unchanged_counter_times_out_without_raising():
    """An unchanged counter is advisory: the wait ends after its bound."""
    page = FakePage(_counter(7))

    result = asyncio.run(wait_for_activity(page, previous=7))

    assert result == 7
    assert page.clock_ms == CHANGE_WAIT_MS


def test_wait_without_previous_returns_current_value():
    page = FakePage(_counter(2))

    assert asyncio.run(wait_for_activity(page)) == 2
    assert page.clock_ms == 0


def test_hidden_counter_is_ignored():
    page = FakePage(FakeElement("span", "AI Events (9)", visible=False))

    assert asyncio.run(wait_for_activity(page, previous=1, timeout_ms=1_000)) == 1


def test_activity_waiter_tracks_last_count():
    """mark() reads the counter before an action, wait() follows it afterwards."""
    counter = _counter(1)
    page = FakePage(counter)
    waiter = ActivityWaiter(page)

    async def scenario():
        await waiter.mark()
        counter.text = "AI Events (2)"
        return await waiter.wait()

    assert asyncio.run(scenario()) == 2
    assert waiter.last_count == 2


class ClosingPage(FakePage):
    """A page whose timers fail as if the browser went away mid-wait."""

    async def wait_for_timeout(self, timeout: float) -> None:
        raise PlaywrightError("Target page, context or browser has been closed")


def test_wait_on_a_closed_page_returns_previous():
    assert asyncio.run(wait_for_activity(ClosingPage(_counter(3)), previous=3)) == 3
    assert asyncio.run(wait_for_activity(ClosingPage(), previous=4)) == 4


def test_activity_waiter_survives_a_closed_page():
    waiter = ActivityWaiter(ClosingPage(_counter(6)))

    async def scenario():
        await waiter.mark()
        return await waiter.wait()

    assert asyncio.run(scenario()) == 6
