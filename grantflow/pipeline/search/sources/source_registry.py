from __future__ import annotations

from typing import Any, Callable

import httpx

from ....settings import Settings, settings as default_settings
from ..source_base import SourceAdapter
from .grants_gov import GrantsGovAdapter
from .state_portal import StatePortalAdapter
from .usaspending import UsaSpendingAdapter

AdapterFactory = Callable[[Settings, httpx.AsyncClient | None], SourceAdapter]

# Registry of available sources, in fan-out (and merge) order.
_SOURCES: dict[str, AdapterFactory] = {
    "grants_gov": lambda s, c: GrantsGovAdapter(
        search_url=s.grants_gov_search_url, client=c, timeout_s=s.adapter_timeout_s
    ),
    "usaspending": lambda s, c: UsaSpendingAdapter(
        search_url=s.usaspending_search_url, client=c, timeout_s=s.adapter_timeout_s
    ),
    "state_portal": lambda s, c: StatePortalAdapter(
        search_url=s.state_portal_search_url,
        resource_id=s.state_portal_resource_id,
        state_label=s.state_portal_label,
        client=c,
        timeout_s=s.adapter_timeout_s,
    ),
}

# Metadata about each source
_SOURCE_METADATA: dict[str, dict[str, Any]] = {
    "grants_gov": {
        "name": "Grants.gov",
        "description": "Forecasted and posted federal funding opportunities",
        "baseUrl": "https://www.grants.gov/search-grants",
        "requiresAuth": False,
    },
    "usaspending": {
        "name": "USASpending",
        "description": "Past federal grant awards matching the query",
        "baseUrl": "https://www.usaspending.gov/search",
        "requiresAuth": False,
    },
    "state_portal": {
        "name": "State grants portal",
        "description": "State-level grant listings via a CKAN datastore",
        "baseUrl": "https://www.grants.ca.gov/",
        "requiresAuth": False,
    },
    "sam_gov": {
        "name": "SAM.gov",
        "description": "Contract opportunities and entity registrations",
        "baseUrl": "https://sam.gov/search/",
        "requiresAuth": True,
        "available": False,  # Not yet implemented
    },
}


def get_available_sources() -> list[dict[str, Any]]:
    """List known sources with metadata and whether an adapter exists."""
    sources: list[dict[str, Any]] = []
    for source_id, metadata in _SOURCE_METADATA.items():
        available = metadata.get("available", source_id in _SOURCES)
        metadata_copy = {k: v for k, v in metadata.items() if k != "available"}
        sources.append({"id": source_id, **metadata_copy, "available": available})
    return sources


def is_source_available(source: str) -> bool:
    return source in _SOURCES


def get_adapter(
    source: str,
    *,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> SourceAdapter | None:
    factory = _SOURCES.get(source)
    if not factory:
        return None
    return factory(settings or default_settings, client)


def default_adapters(
    *,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    sources: list[str] | None = None,
) -> list[SourceAdapter]:
    """Adapters for `sources` (default: every registered source), in registry order."""
    wanted = list(_SOURCES) if sources is None else [s for s in _SOURCES if s in set(sources)]
    out: list[SourceAdapter] = []
    for sid in wanted:
        adapter = get_adapter(sid, settings=settings, client=client)
        if adapter is not None:
            out.append(adapter)
    return out
