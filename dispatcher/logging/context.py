"""Scoped logging context.

Fields pushed here (``run_id``, ``group_key``, ``notification_type`` ...) are
copied onto every record emitted inside the scope by ``ContextualFilter``.
Backed by contextvars, so threads and the API's worker threads never see each
other's fields.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields active in the current scope."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the active context and return the token to undo it."""
    return LogContextVar.set({**LogContextVar.get(), **kwargs})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by ``push_log_context``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every field. Used by tests."""
    LogContextVar.set({})


class log_context:
    """Context manager form of push/pop.

    Example:
        >>> with log_context(run_id="9f1c", group_key="u1_n1_news"):
        ...     logger.info("Sending group")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
