from __future__ import annotations

from contextvars import ContextVar

# Correlates every log line emitted while a single search fan-out is running.
search_id_var: ContextVar[str | None] = ContextVar("search_id", default=None)


def get_search_id() -> str | None:
    return search_id_var.get()
