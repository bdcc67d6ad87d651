"""Per-task logging context held in a contextvar."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator


_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the current log context."""
    context = _log_context.get()
    return dict(context) if context else {}


@contextmanager
def log_context(**values: Any) -> Iterator[Dict[str, Any]]:
    """Bind values for the duration of a block, restoring the previous context after."""
    token = _log_context.set({**get_log_context(), **values})
    try:
        yield get_log_context()
    finally:
        _log_context.reset(token)
