import asyncio
import logging

import pytest

from animation_capture.bootstrap import BootstrapWaiter
from animation_capture.instrumentation import AutomationState

from conftest import FakePage


def tick_page(clock, ticks):
    """Page whose tick counter follows ``ticks`` (a list, last value repeats)."""
    values = list(ticks)

    def next_tick(_arg):
        return values.pop(0) if len(values) > 1 else values[0]

    return FakePage(handlers=[(".ticks()", next_tick)], clock=clock)


def test_waits_minimum_then_returns_when_ticks_already_reached(fake_clock):
    page = tick_page(fake_clock, [5])
    state = AutomationState.create()
    waiter = BootstrapWaiter(min_wait_ms=100, max_wait_ms=1000, min_ticks=2, monotonic=fake_clock)

    result = asyncio.run(waiter.wait(page, state))

    assert page.waits == [100]
    assert result.satisfied
    assert result.ticks == 5
    assert state.ticks == 5
    assert page.evaluated(".ticks()") == [state.namespace]


def test_polls_until_tick_threshold(fake_clock):
    page = tick_page(fake_clock, [0, 1, 2])
    waiter = BootstrapWaiter(min_wait_ms=50, max_wait_ms=1000, min_ticks=2, poll_ms=16, monotonic=fake_clock)

    result = asyncio.run(waiter.wait(page, AutomationState.create()))

    assert result.satisfied
    assert result.ticks == 2
    assert page.waits == [50, 16, 16]
    assert result.elapsed_ms == pytest.approx(82)


def test_unreachable_ticks_is_a_soft_timeout(fake_clock, caplog):
    page = tick_page(fake_clock, [0])
    waiter = BootstrapWaiter(min_wait_ms=100, max_wait_ms=200, min_ticks=3, poll_ms=16, monotonic=fake_clock)

    with caplog.at_level(logging.WARNING, logger="animation_capture.bootstrap"):
        result = asyncio.run(waiter.wait(page, AutomationState.create()))

    assert not result.satisfied
    assert result.ticks == 0
    assert sum(page.waits) == pytest.approx(200)
    assert result.elapsed_ms == pytest.approx(200)
    assert "continuing anyway" in caplog.text


def test_zero_ticks_needed_only_waits_minimum(fake_clock):
    page = tick_page(fake_clock, [0])
    waiter = BootstrapWaiter(min_wait_ms=30, max_wait_ms=30, min_ticks=0, monotonic=fake_clock)

    result = asyncio.run(waiter.wait(page, AutomationState.create()))

    assert result.satisfied
    assert page.waits == [30]


def test_no_minimum_wait_skips_the_initial_sleep(fake_clock):
    page = tick_page(fake_clock, [4])
    waiter = BootstrapWaiter(min_wait_ms=0, max_wait_ms=100, min_ticks=1, monotonic=fake_clock)

    result = asyncio.run(waiter.wait(page, AutomationState.create()))

    assert result.satisfied
    assert page.waits == []
