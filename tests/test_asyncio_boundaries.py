"""Boundaries crossed on a real event loop."""

import asyncio
import inspect
import sys

import pytest

from laeh import (
    BoundaryConfigurationError,
    LeanError,
    configure_formatter,
    future_callback,
    wrap_boundary,
)
from laeh.formatter import STACK_LIMIT


def _lineno() -> int:
    return sys._getframe(1).f_lineno


def _line_of(function: object, needle: str) -> int:
    lines, start = inspect.getsourcelines(function)
    for offset, line in enumerate(lines):
        if needle in line:
            return start + offset
    raise AssertionError(f"failed to find {needle!r} in source")


@pytest.mark.asyncio
async def test_call_soon_failure_reaches_handler():
    loop = asyncio.get_running_loop()
    done = loop.create_future()

    def parse(err, data):
        raise ValueError(f"bad {data}")

    loop.call_soon(wrap_boundary(done.set_result, True, parse), None, 7)
    err = await asyncio.wait_for(done, timeout=1)

    assert isinstance(err, LeanError)
    assert err.message == "bad 7"
    assert err.prev is not None


@pytest.mark.asyncio
async def test_error_first_value_from_loop_skips_logic():
    loop = asyncio.get_running_loop()
    done = loop.create_future()
    ran = []

    loop.call_soon(wrap_boundary(done.set_result, True, lambda err, data: ran.append(data)), "EOF", None)
    err = await asyncio.wait_for(done, timeout=1)

    assert err.message == "EOF"
    assert ran == []


@pytest.mark.asyncio
async def test_chain_across_two_loop_hops(lean):
    loop = asyncio.get_running_loop()
    done = loop.create_future()

    def explode():
        raise RuntimeError("x")

    outer, line_a = wrap_boundary(done.set_result, True, lambda err: None), _lineno()

    def schedule():
        loop.call_soon(wrap_boundary(outer, False, explode))

    loop.call_soon(schedule)
    err = await asyncio.wait_for(done, timeout=1)

    here = lean.shorten_path(__file__)
    line_b = _line_of(schedule, "wrap_boundary(outer")
    line_x = _line_of(explode, "raise RuntimeError")
    assert [link.frames[0].lineno for link in err.boundaries()] == [line_b, line_a]
    assert err.stack == f"x < {here}({line_x}) << {here}({line_b}) << {here}({line_a})"


@pytest.mark.asyncio
async def test_future_result_runs_logic():
    loop = asyncio.get_running_loop()
    source = loop.create_future()
    received, ran = [], []

    source.add_done_callback(future_callback(received.append, lambda err, result: ran.append(result)))
    source.set_result(3)
    await source
    await asyncio.sleep(0)

    assert ran == [3]
    assert received == []


@pytest.mark.asyncio
async def test_future_exception_is_delivered():
    loop = asyncio.get_running_loop()
    source = loop.create_future()
    done = loop.create_future()
    ran = []

    source.add_done_callback(future_callback(done.set_result, lambda err, result: ran.append(result)))
    cause = ConnectionRefusedError("refused")
    source.set_exception(cause)
    err = await asyncio.wait_for(done, timeout=1)

    assert err.message == "refused"
    assert err.__cause__ is cause
    assert ran == []


@pytest.mark.asyncio
async def test_future_cancellation_is_delivered():
    loop = asyncio.get_running_loop()
    source = loop.create_future()
    done = loop.create_future()

    source.add_done_callback(future_callback(done.set_result, lambda err, result: None))
    source.cancel()
    err = await asyncio.wait_for(done, timeout=1)

    assert err.message == "CancelledError"
    assert isinstance(err.__cause__, asyncio.CancelledError)


@pytest.mark.asyncio
async def test_future_logic_failure_is_delivered():
    loop = asyncio.get_running_loop()
    source = loop.create_future()
    done = loop.create_future()

    def handle(err, result):
        raise KeyError(result)

    on_done, line = future_callback(done.set_result, handle), _lineno()
    source.add_done_callback(on_done)
    source.set_result("user:7")
    err = await asyncio.wait_for(done, timeout=1)

    assert err.message == "'user:7'"
    assert err.prev.frames[0].lineno == line


def test_future_callback_requires_handler():
    with pytest.raises(BoundaryConfigurationError):
        future_callback(None, lambda err, result: None)


@pytest.mark.asyncio
async def test_hidden_render_leaves_out_event_loop_frames():
    formatter = configure_formatter(True)
    loop = asyncio.get_running_loop()
    done = loop.create_future()

    def parse(err, data):
        raise ValueError(data)

    def schedule():
        loop.call_soon(wrap_boundary(done.set_result, True, parse), None, "garbled")

    loop.call_soon(schedule)
    err = await asyncio.wait_for(done, timeout=1)

    here = formatter.shorten_path(__file__)
    line_b = _line_of(schedule, "wrap_boundary(done")
    assert formatter.config.stack_limit == STACK_LIMIT
    assert err.stack.split(" << ")[1].startswith(f"{here}({line_b})")
    assert "/asyncio/" not in err.stack
