"""reduct: observable atoms and reducers for application state."""

from importlib.metadata import version as _version

__version__ = _version("reduct")

from reduct.atom import (
    NO_VALUE,
    Atom,
    AtomListenerError,
    Disposer,
    LifecycleError,
    NoValue,
    ReductError,
    ReentrantSubscriptionError,
    action,
    set_debug_checks,
)
from reduct.reducer import Reducer, reducer
# textual NOT auto-imported — opt-in only

__all__ = [
    "Atom",
    "NoValue",
    "NO_VALUE",
    "action",
    "Disposer",
    "set_debug_checks",
    "ReductError",
    "LifecycleError",
    "ReentrantSubscriptionError",
    "AtomListenerError",
    "Reducer",
    "reducer",
]
