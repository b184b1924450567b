"""Framework patch registry.

Each :class:`AnimationLibraryAdapter` describes, in JavaScript, how to
detect one animation library's global entry point, how to wrap the factory
assigned to it, how to wrap each instance the factory returns, and how to
seek an instance during state synchronization. Adapters are registered with
the in-page runtime from :mod:`animation_capture.instrumentation`, which
intercepts assignment to the global and only activates an adapter once its
library shows up.
"""

import json
from typing import Iterable, Iterator, List, Optional


class AnimationLibraryAdapter:
    name: str = ""
    global_name: str = ""

    # Each of these is the source of a JS method on the adapter object:
    #   detect(value) -> bool
    #   wrapInstance(instance, helpers, options) -> instance
    #   wrapFactory(factory, helpers) -> factory replacement
    #   seek(instance, time)
    detect_js: str = "detect(value) { return Boolean(value); }"
    wrap_instance_js: str = "wrapInstance(instance) { return instance; }"
    wrap_factory_js: str = "wrapFactory(factory) { return factory; }"
    seek_js: str = "seek(instance, time) {}"

    def build_script(self) -> str:
        return (
            "{\n"
            f"  name: {json.dumps(self.name)},\n"
            f"  globalName: {json.dumps(self.global_name)},\n"
            f"  {self.detect_js.strip()},\n"
            f"  {self.wrap_instance_js.strip()},\n"
            f"  {self.wrap_factory_js.strip()},\n"
            f"  {self.seek_js.strip()},\n"
            "}"
        )

    def build_registration(self, namespace: str) -> str:
        return (
            "(function (ns) {\n"
            "  if (!window[ns]) { return; }\n"
            f"  window[ns].registerAdapter({self.build_script()});\n"
            f"}})({json.dumps(namespace)});"
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} global={self.global_name!r}>"


class AnimeJsAdapter(AnimationLibraryAdapter):
    """anime.js (v3) patch.

    anime.js only sets ``began``/``loopBegan`` and fires ``begin``/``loopBegin``
    when it sees ``currentTime`` leave zero. Seeking a resting instance straight
    to a large time skips that. The wrapped ``seek`` first nudges a resting
    instance to the smallest positive time so the library runs its own update
    path and callback cascade, then seeks to the real target. ``reset`` and
    ``add`` are wrapped so timeline children created later get the same seek.
    """

    name = "anime.js"
    global_name = "anime"

    detect_js = """
    detect(value) {
      return typeof value === 'function' && typeof value.timeline === 'function';
    }"""

    wrap_instance_js = """
    wrapInstance(instance, h, options) {
      const shouldTrack = !options || options.track !== false;
      return h.wrapOnce(instance, (target) => {
        if (shouldTrack) {
          h.track(target);
        }
        const wrapChildren = (parent) => {
          if (Array.isArray(parent.children)) {
            for (const child of parent.children) {
              h.wrapInstance(child, { track: false });
            }
          }
        };
        if (typeof target.seek === 'function') {
          const originalSeek = target.seek;
          target.seek = function seek(time) {
            if (time > 0 && this.currentTime === 0 && !this.began) {
              originalSeek.call(this, h.nudge);
            }
            return originalSeek.call(this, time);
          };
        }
        if (typeof target.reset === 'function') {
          const originalReset = target.reset;
          target.reset = function reset(...args) {
            const result = originalReset.apply(this, args);
            wrapChildren(this);
            return result;
          };
        }
        if (typeof target.add === 'function') {
          const originalAdd = target.add;
          target.add = function add(...args) {
            const result = originalAdd.apply(this, args);
            wrapChildren(this);
            return result;
          };
        }
        wrapChildren(target);
      });
    }"""

    wrap_factory_js = """
    wrapFactory(factory, h) {
      const wrapped = function anime(...args) {
        return h.wrapInstance(factory.apply(this, args));
      };
      Object.setPrototypeOf(wrapped, Object.getPrototypeOf(factory));
      wrapped.prototype = factory.prototype;
      Object.assign(wrapped, factory);
      if (typeof factory.timeline === 'function') {
        const originalTimeline = factory.timeline;
        wrapped.timeline = function timeline(...args) {
          return h.wrapInstance(originalTimeline.apply(this, args));
        };
      }
      const running = factory.running;
      if (Array.isArray(running) && !h.isWrapped(running)) {
        h.markWrapped(running);
        const wrapAll = (items) => {
          for (const item of items) {
            h.wrapInstance(item);
          }
        };
        for (const method of ['push', 'unshift']) {
          const original = running[method];
          running[method] = function (...items) {
            wrapAll(items);
            return original.apply(this, items);
          };
        }
        const originalSplice = running.splice;
        running.splice = function splice(...args) {
          wrapAll(args.slice(2));
          const removed = originalSplice.apply(this, args);
          wrapAll(removed);
          return removed;
        };
        for (const method of ['pop', 'shift']) {
          const original = running[method];
          running[method] = function (...args) {
            const removed = original.apply(this, args);
            wrapAll([removed]);
            return removed;
          };
        }
        for (const item of running) {
          h.wrapInstance(item);
        }
      }
      h.markWrapped(factory);
      h.markWrapped(wrapped);
      return wrapped;
    }"""

    seek_js = """
    seek(instance, time) {
      if (typeof instance.seek === 'function') {
        instance.seek(time);
      } else if (typeof instance.tick === 'function') {
        instance.tick(time);
      }
      if (typeof instance.pause === 'function') {
        instance.pause();
      }
    }"""


class FrameworkPatchRegistry:
    """Ordered collection of adapters, injected in registration order."""

    def __init__(self, adapters: Optional[Iterable[AnimationLibraryAdapter]] = None):
        self._adapters: List[AnimationLibraryAdapter] = []
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: AnimationLibraryAdapter) -> AnimationLibraryAdapter:
        if not adapter.name or not adapter.global_name:
            raise ValueError(f"Adapter {adapter!r} needs a name and a global name")
        if adapter.name in self.names:
            raise ValueError(f"An adapter named {adapter.name!r} is already registered")
        self._adapters.append(adapter)
        return adapter

    @property
    def names(self) -> List[str]:
        return [adapter.name for adapter in self._adapters]

    def get(self, name: str) -> AnimationLibraryAdapter:
        for adapter in self._adapters:
            if adapter.name == name:
                return adapter
        raise KeyError(name)

    def build_registrations(self, namespace: str) -> List[str]:
        return [adapter.build_registration(namespace) for adapter in self._adapters]

    def __iter__(self) -> Iterator[AnimationLibraryAdapter]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)


def default_registry() -> FrameworkPatchRegistry:
    return FrameworkPatchRegistry([AnimeJsAdapter()])
