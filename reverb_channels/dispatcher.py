import asyncio
import inspect
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class Binding:
    __slots__ = ('callback', 'active')

    def __init__(self, callback):
        self.callback = callback
        self.active = True


class Dispatcher:
    """Registry of event callbacks.

    Exact bindings are called with ``(data, metadata)`` and global bindings
    with ``(event_name, data, metadata)``. Emitting iterates over a snapshot
    and skips bindings flagged inactive, so callbacks may bind or unbind
    while an emit is running. Callbacks added during an emit are not called
    by that emit.
    """

    def __init__(self, fail_through=None):
        self.callbacks = defaultdict(list)
        self.global_callbacks = []
        self.fail_through = fail_through
        self.tasks = set()

    def bind(self, event_name, callback):
        """Bind a callback to an event. Duplicates are kept and called twice"""
        self.callbacks[event_name].append(Binding(callback))
        return self

    def bind_global(self, callback):
        """Bind a callback to every event"""
        self.global_callbacks.append(Binding(callback))
        return self

    def unbind(self, event_name=None, callback=None):
        """Remove named bindings.

        With no arguments every named binding goes; with only an event name
        every binding of that event; with only a callback that callback from
        every event; with both only that pair.
        """
        names = [event_name] if event_name is not None else list(self.callbacks)
        for name in names:
            bindings = self.callbacks.get(name)
            if not bindings:
                continue
            kept = []
            for binding in bindings:
                if callback is None or binding.callback == callback:
                    binding.active = False
                else:
                    kept.append(binding)
            if kept:
                self.callbacks[name] = kept
            else:
                del self.callbacks[name]
        return self

    def unbind_global(self, callback=None):
        kept = []
        for binding in self.global_callbacks:
            if callback is None or binding.callback == callback:
                binding.active = False
            else:
                kept.append(binding)
        self.global_callbacks = kept
        return self

    def unbind_all(self):
        self.unbind()
        self.unbind_global()
        return self

    def emit(self, event_name, data=None, metadata=None):
        if metadata is None:
            metadata = {}

        bindings = list(self.callbacks.get(event_name, ()))
        global_bindings = list(self.global_callbacks)

        for binding in bindings:
            if binding.active:
                self._invoke(event_name, binding.callback, data, metadata)

        for binding in global_bindings:
            if binding.active:
                self._invoke(event_name, binding.callback, event_name, data, metadata)

        if not bindings and not global_bindings and self.fail_through:
            self.fail_through(event_name, data)
        return self

    def _invoke(self, event_name, callback, *args):
        result = callback(*args)
        if inspect.isawaitable(result):
            self._schedule(event_name, result)

    def _schedule(self, event_name, awaitable):
        """Run a coroutine callback on the running loop"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Coroutine callback for {event_name} needs a running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self.tasks.add(task)

        def done(task):
            self.tasks.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Callback for {event_name} failed: {task.exception()!r}")

        task.add_done_callback(done)
