"""Frame-callback instrumentation injected into every capture context.

The runtime below is installed with ``context.add_init_script`` so it runs
before any page script. It replaces ``requestAnimationFrame`` and
``cancelAnimationFrame`` to count frame ticks and keep a table of pending
callbacks that can be forced to run on demand, optionally pins
``performance.now()``, and hosts the adapter registry used by
:mod:`animation_capture.patches`.

All of it lives under one non-enumerable global whose name is chosen per
context and carried by :class:`AutomationState`, so nothing leaks between
documents and the Python side never reaches for ambient page globals.
"""

import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "__animationCapture_"

RUNTIME_SCRIPT = """
(function (ns, options) {
  if (window[ns]) {
    return;
  }

  const nativeRequestFrame = window.requestAnimationFrame.bind(window);
  const nativeCancelFrame = window.cancelAnimationFrame.bind(window);
  const nativeNow = performance.now.bind(performance);

  const pendingFrames = new Map();
  const wrappedObjects = new WeakSet();
  const trackedSet = new WeakSet();
  const tracked = [];
  const adapters = [];
  let lastFrameTime = null;
  let nowOverride = null;
  let ticks = 0;
  let flushingHandles = new Set();

  window.requestAnimationFrame = function requestAnimationFrame(callback) {
    let handle = 0;
    handle = nativeRequestFrame((timestamp) => {
      if (!pendingFrames.has(handle)) {
        return;
      }
      pendingFrames.delete(handle);
      if (timestamp !== lastFrameTime) {
        lastFrameTime = timestamp;
        ticks += 1;
      }
      callback(timestamp);
    });
    pendingFrames.set(handle, callback);
    return handle;
  };

  window.cancelAnimationFrame = function cancelAnimationFrame(handle) {
    pendingFrames.delete(handle);
    flushingHandles.delete(handle);
    return nativeCancelFrame(handle);
  };

  if (options.overrideClock) {
    performance.now = function now() {
      return nowOverride === null ? nativeNow() : nowOverride;
    };
  }

  const describeError = (error) => (error && error.message ? error.message : String(error));

  const flushFrameCallbacks = (timestamp, maxIterations, drain) => {
    let invoked = 0;
    let iterations = 0;
    const failures = [];
    while (pendingFrames.size > 0 && iterations < maxIterations) {
      iterations += 1;
      const batch = Array.from(pendingFrames.entries());
      pendingFrames.clear();
      flushingHandles = new Set(batch.map(([handle]) => handle));
      for (const [handle, callback] of batch) {
        nativeCancelFrame(handle);
        // cancelled by an earlier callback in this batch
        if (!flushingHandles.has(handle)) {
          continue;
        }
        flushingHandles.delete(handle);
        try {
          callback(timestamp);
          invoked += 1;
        } catch (error) {
          failures.push(describeError(error));
        }
      }
      flushingHandles.clear();
      if (!drain) {
        break;
      }
    }
    const remaining = pendingFrames.size;
    return {
      invoked,
      iterations,
      remaining,
      truncated: Boolean(drain) && remaining > 0 && iterations >= maxIterations,
      failures,
    };
  };

  const wrapOnce = (target, wrap) => {
    if (!target || (typeof target !== 'object' && typeof target !== 'function')) {
      return target;
    }
    if (wrappedObjects.has(target)) {
      return target;
    }
    wrappedObjects.add(target);
    wrap(target);
    return target;
  };

  const registerAdapter = (adapter) => {
    const entry = { name: adapter.name, globalName: adapter.globalName, active: false, error: null };
    adapters.push(entry);

    const helpers = {
      nudge: Number.MIN_VALUE,
      wrapOnce,
      isWrapped: (value) => wrappedObjects.has(value),
      markWrapped: (value) => wrappedObjects.add(value),
      track: (instance) => {
        if (instance && !trackedSet.has(instance)) {
          trackedSet.add(instance);
          tracked.push({ instance, adapter });
        }
        return instance;
      },
    };
    helpers.wrapInstance = (instance, wrapOptions) => adapter.wrapInstance(instance, helpers, wrapOptions);
    entry.helpers = helpers;

    const activate = (value) => {
      if (value === undefined || value === null || wrappedObjects.has(value) || !adapter.detect(value)) {
        return value;
      }
      try {
        const wrapped = adapter.wrapFactory(value, helpers);
        entry.active = true;
        return wrapped;
      } catch (error) {
        entry.error = describeError(error);
        return value;
      }
    };

    let current = activate(window[adapter.globalName]);
    try {
      Object.defineProperty(window, adapter.globalName, {
        configurable: true,
        enumerable: true,
        get() {
          return current;
        },
        set(value) {
          current = activate(value);
        },
      });
    } catch (error) {
      entry.error = describeError(error);
    }
  };

  const findAdapter = (name) => adapters.find((entry) => entry.name === name);

  const seekLibraries = (time) => {
    let seeked = 0;
    const failures = [];
    for (const { instance, adapter } of tracked) {
      try {
        adapter.seek(instance, time);
        seeked += 1;
      } catch (error) {
        failures.push(`${adapter.name}: ${describeError(error)}`);
      }
    }
    return { seeked, failures };
  };

  Object.defineProperty(window, ns, {
    configurable: false,
    enumerable: false,
    writable: false,
    value: Object.freeze({
      ticks: () => ticks,
      pendingFrameCount: () => pendingFrames.size,
      setNow: (value) => {
        nowOverride = value === null || value === undefined ? null : Number(value);
      },
      flushFrameCallbacks,
      registerAdapter,
      wrapInstance: (name, instance) => {
        const entry = findAdapter(name);
        if (!entry) {
          throw new Error(`Unknown adapter ${name}`);
        }
        return entry.helpers.wrapInstance(instance);
      },
      seekLibraries,
      trackedCount: () => tracked.length,
      adapterReport: () => adapters.map(({ name, globalName, active, error }) => ({ name, globalName, active, error })),
    }),
  });
})(%(namespace)s, %(options)s);
"""


@dataclass
class FlushReport:
    invoked: int = 0
    iterations: int = 0
    remaining: int = 0
    truncated: bool = False
    failures: List[str] = field(default_factory=list)

    @classmethod
    def from_page(cls, data: Optional[Dict[str, Any]]) -> "FlushReport":
        data = data or {}
        return cls(
            invoked=int(data.get("invoked", 0)),
            iterations=int(data.get("iterations", 0)),
            remaining=int(data.get("remaining", 0)),
            truncated=bool(data.get("truncated", False)),
            failures=list(data.get("failures") or []),
        )


@dataclass
class AutomationState:
    """Python-side record of the automation state living in one context.

    Created alongside the browser context and dropped when it closes. The
    ``namespace`` is the only link to the in-page runtime.
    """

    namespace: str
    override_clock: bool = True
    ticks: int = 0
    active_patches: List[str] = field(default_factory=list)
    last_flush: Optional[FlushReport] = None

    @classmethod
    def create(cls, override_clock: bool = True) -> "AutomationState":
        return cls(namespace=NAMESPACE_PREFIX + secrets.token_hex(6), override_clock=override_clock)


def build_runtime_script(state: AutomationState) -> str:
    return RUNTIME_SCRIPT % {
        "namespace": json.dumps(state.namespace),
        "options": json.dumps({"overrideClock": state.override_clock}),
    }


def build_init_script(state: AutomationState, registry) -> str:
    """Runtime first, then one registration per adapter, in registry order."""
    parts = [build_runtime_script(state)]
    parts.extend(registry.build_registrations(state.namespace))
    return "\n".join(parts)


async def install(context: BrowserContext, state: AutomationState, registry) -> None:
    await context.add_init_script(script=build_init_script(state, registry))


async def read_tick_count(page: Page, state: AutomationState) -> int:
    ticks = await page.evaluate("(ns) => (window[ns] ? window[ns].ticks() : 0)", state.namespace)
    state.ticks = int(ticks or 0)
    return state.ticks


async def set_clock_override(page: Page, state: AutomationState, value_ms: Optional[float]) -> None:
    await page.evaluate(
        "([ns, value]) => { if (window[ns]) { window[ns].setNow(value); } }",
        [state.namespace, value_ms],
    )


async def flush_frame_callbacks(
    page: Page,
    state: AutomationState,
    timestamp_ms: float,
    max_iterations: int,
    drain: bool = True,
) -> FlushReport:
    data = await page.evaluate(
        """([ns, timestamp, maxIterations, drain]) => {
            if (!window[ns]) {
                return null;
            }
            return window[ns].flushFrameCallbacks(timestamp, maxIterations, drain);
        }""",
        [state.namespace, timestamp_ms, max_iterations, drain],
    )
    report = FlushReport.from_page(data)
    state.last_flush = report
    return report


async def seek_library_instances(page: Page, state: AutomationState, timestamp_ms: float) -> Dict[str, Any]:
    data = await page.evaluate(
        "([ns, time]) => (window[ns] ? window[ns].seekLibraries(time) : { seeked: 0, failures: [] })",
        [state.namespace, timestamp_ms],
    )
    return data or {"seeked": 0, "failures": []}


async def read_adapter_report(page: Page, state: AutomationState) -> List[Dict[str, Any]]:
    report = await page.evaluate(
        "(ns) => (window[ns] ? window[ns].adapterReport() : [])",
        state.namespace,
    )
    report = report or []
    state.active_patches = [entry["name"] for entry in report if entry.get("active")]
    for entry in report:
        if entry.get("error"):
            logger.warning("Patch %s failed to install: %s", entry.get("name"), entry["error"])
    return report
