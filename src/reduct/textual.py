"""Textual integration for reduct. Opt-in — requires textual.

Atom listeners often update widgets. The helpers here skip listener calls
while the app is not running or its widget tree is being replaced, ignore
NoMatches from widget queries, and hop onto the app thread when an atom is
written from a worker thread.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from reduct.atom import Atom, Disposer
from reduct.reducer import Reducer

logger = logging.getLogger("reduct.textual")

# Keyed by id(app) so several apps can coexist in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded listeners during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, listener):
    _main = threading.get_ident()

    def _guarded(value):
        if not is_safe(app):
            return None
        if threading.get_ident() != _main:
            return app.call_from_thread(_safe, value)
        return _safe(value)

    def _safe(value):
        try:
            return listener(value)
        except NoMatches as error:
            logger.debug("Skipped listener, widget not mounted: %s", error)
            return None

    return _guarded


def listen(app, atom: Atom, listener, *, fire_immediately: bool = False) -> Disposer:
    """add_listener() that safely bridges to Textual widgets.

    Errors other than NoMatches still reach the atom and are raised from the
    write as part of its AtomListenerError.
    """
    return atom.add_listener(_guard(app, listener), fire_immediately=fire_immediately)


class TextualReducer(Reducer):
    """Reducer whose handlers are guarded the same way as listen()."""

    def __init__(self, app) -> None:
        super().__init__()
        self.app = app

    def on(self, atom: Atom, handler) -> Disposer:
        return super().on(atom, _guard(self.app, handler))
