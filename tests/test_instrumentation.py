import asyncio
import json
import logging

from animation_capture.instrumentation import (
    NAMESPACE_PREFIX,
    AutomationState,
    build_init_script,
    build_runtime_script,
    flush_frame_callbacks,
    install,
    read_adapter_report,
    read_tick_count,
)
from animation_capture.patches import FrameworkPatchRegistry, default_registry

from conftest import FakePage


class FakeContext:
    def __init__(self):
        self.init_scripts = []

    async def add_init_script(self, script=None, path=None):
        self.init_scripts.append(script)


def test_each_state_gets_its_own_namespace():
    first = AutomationState.create()
    second = AutomationState.create()
    assert first.namespace.startswith(NAMESPACE_PREFIX)
    assert first.namespace != second.namespace
    assert first.ticks == 0
    assert first.active_patches == []


def test_runtime_script_is_bound_to_namespace_and_options():
    state = AutomationState.create(override_clock=False)
    script = build_runtime_script(state)
    assert script.rstrip().endswith(f'({json.dumps(state.namespace)}, {{"overrideClock": false}});')
    assert "window.requestAnimationFrame = function" in script
    assert "%(" not in script


def test_init_script_registers_adapters_after_runtime():
    state = AutomationState.create()
    script = build_init_script(state, default_registry())
    runtime_at = script.index("const pendingFrames = new Map()")
    register_at = script.index("registerAdapter({")
    assert runtime_at < register_at
    assert '"anime"' in script[register_at:]


def test_init_script_without_adapters_is_just_the_runtime():
    state = AutomationState.create()
    assert build_init_script(state, FrameworkPatchRegistry()) == build_runtime_script(state)


def test_install_adds_one_init_script():
    context = FakeContext()
    state = AutomationState.create()
    asyncio.run(install(context, state, default_registry()))
    assert len(context.init_scripts) == 1
    assert state.namespace in context.init_scripts[0]


def test_read_tick_count_updates_state():
    page = FakePage(handlers=[(".ticks()", lambda ns: 7)])
    state = AutomationState.create()
    assert asyncio.run(read_tick_count(page, state)) == 7
    assert state.ticks == 7


def test_flush_report_is_parsed_and_kept():
    page = FakePage(handlers=[(
        "flushFrameCallbacks",
        lambda arg: {"invoked": 5, "iterations": 2, "remaining": 0, "truncated": False, "failures": ["TypeError"]},
    )])
    state = AutomationState.create()

    report = asyncio.run(flush_frame_callbacks(page, state, 400, max_iterations=4, drain=True))

    assert report.invoked == 5
    assert report.iterations == 2
    assert report.failures == ["TypeError"]
    assert state.last_flush is report
    assert page.evaluated("flushFrameCallbacks") == [[state.namespace, 400, 4, True]]


def test_flush_on_page_without_runtime_is_empty():
    page = FakePage(handlers=[("flushFrameCallbacks", lambda arg: None)])
    report = asyncio.run(flush_frame_callbacks(page, AutomationState.create(), 400, max_iterations=4))
    assert report.invoked == 0
    assert not report.truncated


def test_adapter_report_records_active_patches(caplog):
    page = FakePage(handlers=[(
        "adapterReport",
        lambda ns: [
            {"name": "anime.js", "globalName": "anime", "active": True, "error": None},
            {"name": "other", "globalName": "other", "active": False, "error": "Cannot redefine property"},
        ],
    )])
    state = AutomationState.create()

    with caplog.at_level(logging.WARNING, logger="animation_capture.instrumentation"):
        asyncio.run(read_adapter_report(page, state))

    assert state.active_patches == ["anime.js"]
    assert "Cannot redefine property" in caplog.text


def test_cancelling_during_a_flush_removes_the_handle_from_the_batch():
    script = build_runtime_script(AutomationState.create())
    cancel = script[script.index("window.cancelAnimationFrame = "):script.index("if (options.overrideClock)")]
    assert "flushingHandles.delete(handle)" in cancel
    flush = script[script.index("const flushFrameCallbacks"):script.index("const wrapOnce")]
    assert flush.index("if (!flushingHandles.has(handle))") < flush.index("callback(timestamp)")
