"""Atoms — observable single values with synchronous listeners.

Writing an Atom stores the new value and then calls every listener, in the
order they were added, before the write returns. A listener that raises does
not stop the others; all failures are collected and re-raised together as an
AtomListenerError once every listener has run.

An "action" is just an Atom used as an event signal. Zero-payload actions hold
NO_VALUE and are fired with atom().
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from types import TracebackType
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[T], "None | Awaitable[None]"]
Disposer = Callable[[], None]
ErrorListener = Callable[[Exception, "TracebackType | None"], None]

logger = logging.getLogger("reduct.atom")

# ─── Debug checks ────────────────────────────────────────────────────────────
_debug_checks = True

# Pending tasks started by async listeners, held until done.
_background_tasks: set[asyncio.Future] = set()

_UNSET = object()


def set_debug_checks(enabled: bool) -> None:
    """Turn the reentrant-subscription guard on or off.

    Lifecycle checks (use after dispose) always run.
    """
    global _debug_checks
    _debug_checks = enabled


class ReductError(Exception):
    """Base class for errors raised by reduct."""


class LifecycleError(ReductError, RuntimeError):
    """An Atom was used after dispose() was called."""


class ReentrantSubscriptionError(ReductError, RuntimeError):
    """A listener tried to add another listener while being added itself."""


class AtomListenerError(ReductError):
    """Raised after a write when at least one listener threw."""

    def __init__(
        self,
        errors: list[Exception],
        tracebacks: list[TracebackType | None],
        atom: Atom,
    ) -> None:
        if len(errors) != len(tracebacks):
            raise ValueError("errors and tracebacks must match")
        super().__init__(errors, tracebacks, atom)
        self.errors = errors
        self.tracebacks = tracebacks
        self.atom = atom

    def __str__(self) -> str:
        parts = []
        for error, tb in zip(self.errors, self.tracebacks):
            parts.append("".join(traceback.format_exception(type(error), error, tb)))
        return (
            f"{len(self.errors)} listener(s) of {self.atom!r} raised "
            f"when the atom updated its value:\n\n" + "\n".join(parts)
        )


class NoValue:
    """Payload of zero-argument actions."""

    __slots__ = ()
    _instance: NoValue | None = None

    def __new__(cls) -> NoValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = NoValue()


class _ListenerEntry:
    __slots__ = ("listener",)

    def __init__(self, listener: Listener) -> None:
        self.listener = listener


class Atom(Generic[T]):
    """An observable class that stores a single value.

    Usage:
        counter = Atom(0)
        dispose = counter.add_listener(print)

        counter.value += 1   # prints 1
        dispose()
        counter.value += 1   # prints nothing
    """

    __slots__ = ("_value", "_listeners", "_mounted", "_can_add_listeners", "on_error")

    def __init__(self, value: T, *, on_error: ErrorListener | None = None) -> None:
        self._value = value
        # Insertion-ordered; values unused.
        self._listeners: dict[_ListenerEntry, None] = {}
        self._mounted = True
        self._can_add_listeners = True
        self.on_error = on_error

    @staticmethod
    def action() -> Atom[NoValue]:
        """Create a zero-payload action atom."""
        return Atom(NO_VALUE)

    @property
    def mounted(self) -> bool:
        """Whether dispose() has not been called yet."""
        return self._mounted

    def _check_mounted(self) -> None:
        if not self._mounted:
            raise LifecycleError(
                f"Tried to use {type(self).__name__} after dispose() was called. "
                "Consider checking `mounted`."
            )

    @property
    def value(self) -> T:
        """The current value. Assigning it synchronously calls every listener."""
        self._check_mounted()
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self._check_mounted()
        self._value = value

        errors: list[Exception] = []
        tracebacks: list[TracebackType | None] = []
        for entry in list(self._listeners):
            # Removed by an earlier listener in this same write.
            if entry not in self._listeners:
                continue
            try:
                self._invoke(entry.listener, value)
            except Exception as error:
                errors.append(error)
                tracebacks.append(error.__traceback__)
                self._report(error)
        if errors:
            raise AtomListenerError(errors, tracebacks, self)

    def get(self) -> T:
        return self.value

    def set(self, value: T) -> None:
        """Same as `atom.value = value`."""
        self.value = value

    def __call__(self, value: T = _UNSET) -> None:  # type: ignore[assignment]
        """Fire the atom like a function.

        Without an argument the current value is written again, which is how
        zero-payload actions are triggered.
        """
        self._check_mounted()
        self.value = self._value if value is _UNSET else value

    @property
    def has_listeners(self) -> bool:
        """Whether any listener is still registered. False once disposed."""
        return bool(self._listeners)

    def add_listener(self, listener: Listener[T], *, fire_immediately: bool = False) -> Disposer:
        """Subscribe to this atom. Returns a function that removes the listener.

        The listener is not called until the next write unless
        fire_immediately is set, in which case it runs once with the current
        value before add_listener returns. Listeners cannot add other
        listeners from inside that immediate call.

        Adding and removing listeners is constant time.
        """
        if _debug_checks and not self._can_add_listeners:
            raise ReentrantSubscriptionError(
                f"Cannot add a listener to {self!r} while another listener is being added"
            )
        self._check_mounted()

        entry = _ListenerEntry(listener)
        self._listeners[entry] = None
        self._can_add_listeners = False
        try:
            if fire_immediately:
                self._invoke(listener, self._value)
        except Exception as error:
            self._listeners.pop(entry, None)
            if self.on_error is not None:
                self.on_error(error, error.__traceback__)
            raise
        finally:
            self._can_add_listeners = True

        def dispose() -> None:
            self._listeners.pop(entry, None)

        return dispose

    subscribe = add_listener

    def dispose(self) -> None:
        """Free the listeners and mark the atom unusable.

        Everything besides `mounted` and `has_listeners` raises LifecycleError
        afterwards. Calling dispose() again is a no-op.
        """
        if not self._mounted:
            return
        self._listeners.clear()
        self._mounted = False

    def _invoke(self, listener: Listener[T], value: T) -> None:
        result = listener(value)
        if inspect.isawaitable(result):
            self._spawn(result)

    def _spawn(self, awaitable) -> None:
        """Run an async listener's result as a fire-and-forget task.

        Coroutines start eagerly: the body runs up to its first await inside
        this call, and an error raised before that await is raised here.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RuntimeError(
                f"Async listener of {self!r} needs a running event loop"
            ) from None
        if asyncio.iscoroutine(awaitable):
            task = asyncio.Task(awaitable, loop=loop, eager_start=True)
        else:
            task = asyncio.ensure_future(awaitable, loop=loop)
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
            return
        _background_tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        _background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, Exception):
            self._report(error)

    def _report(self, error: Exception) -> None:
        if self.on_error is not None:
            self.on_error(error, error.__traceback__)
        else:
            logger.error(
                "Listener of %r raised", self,
                exc_info=(type(error), error, error.__traceback__),
            )

    def __repr__(self) -> str:
        if not self._mounted:
            return f"Atom({self._value!r}, disposed)"
        return f"Atom({self._value!r})"


def action() -> Atom[NoValue]:
    """Create a zero-payload action atom.

    Usage:
        increment = action()
        increment.add_listener(lambda _: counter.set(counter.get() + 1))
        increment()
    """
    return Atom.action()
