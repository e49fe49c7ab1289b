"""Reducers — bind action atoms to the handlers that update state.

A Reducer owns the subscriptions it makes with on(). dispose() removes exactly
those subscriptions and leaves every other listener of the same atoms alone.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from reduct.atom import Atom, Disposer

T = TypeVar("T")

logger = logging.getLogger("reduct.reducer")


class Reducer:
    """Owner of a set of action subscriptions, torn down as a unit.

    Usage (subclass):
        counter = Atom(0)
        increment = action()

        class CounterReducer(Reducer):
            def __init__(self):
                super().__init__()
                self.on(increment, self._increment)

            def _increment(self, _):
                counter.value += 1

    Usage (composition):
        r = Reducer()
        r.on(increment, lambda _: counter.set(counter.get() + 1))
        ...
        r.dispose()
    """

    def __init__(self) -> None:
        self._disposers: list[Disposer] = []

    def on(self, atom: Atom[T], handler: Callable[[T], None | Awaitable[None]]) -> Disposer:
        """Call handler with the payload every time atom is written.

        Returns the disposer, which dispose() also calls.
        """
        disposer = atom.add_listener(handler)
        self._disposers.append(disposer)
        return disposer

    def dispose(self) -> None:
        """Remove every subscription made through on(), in registration order."""
        count = len(self._disposers)
        for disposer in self._disposers:
            disposer()
        self._disposers.clear()
        logger.debug("Disposed %s: %d subscriptions", type(self).__name__, count)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._disposers)} subscriptions)"


def reducer(setup: Callable[[Reducer], None]) -> Reducer:
    """Build a Reducer from a setup function instead of a subclass.

    If setup raises, the subscriptions it already made are removed.

    Usage:
        @reducer
        def counter_reducer(r):
            r.on(increment, lambda _: counter.set(counter.get() + 1))
            r.on(set_to, counter.set)

        increment()
        counter_reducer.dispose()
    """
    r = Reducer()
    try:
        setup(r)
    except Exception:
        r.dispose()
        raise
    return r
