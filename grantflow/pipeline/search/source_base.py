from __future__ import annotations

import contextlib
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, AsyncIterator

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ...domain.models import RawHit
from ...errors import MalformedResponse, UpstreamUnavailable
from ...observability.logging import get_logger

log = get_logger("source_adapter")

AdapterError = UpstreamUnavailable | MalformedResponse


class AdapterResult(BaseModel):
    """One page from one source. `error` set means the page is empty by failure."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    hits: list[RawHit] = Field(default_factory=list)
    total_count: int | None = None
    error: AdapterError | None = None

    @classmethod
    def failed(cls, error: AdapterError) -> "AdapterResult":
        return cls(hits=[], total_count=None, error=error)


class SourceAdapter(ABC):
    """
    Base class for opportunity sources.

    Subclasses implement `fetch` and may raise freely; `query` is the public entry
    point and never raises for upstream trouble: timeouts, non-2xx answers and
    unparseable payloads come back as `AdapterResult.error`.
    """

    source_name: str = ""
    display_name: str = ""

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout_s: float = 15.0):
        self._client = client
        self.timeout_s = float(timeout_s)

    @contextlib.asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as c:
            yield c

    async def query(self, term: str, *, limit: int, offset: int = 0) -> AdapterResult:
        try:
            return await self.fetch(term, limit=max(1, int(limit)), offset=max(0, int(offset)))
        except UpstreamStatus as e:
            log.warning("source_upstream_status", source=self.source_name, status_code=e.status_code)
            return AdapterResult.failed(
                UpstreamUnavailable(self.source_label, e.message, status_code=e.status_code)
            )
        except httpx.TimeoutException:
            log.warning("source_timeout", source=self.source_name)
            return AdapterResult.failed(UpstreamUnavailable(self.source_label, "request timed out"))
        except httpx.HTTPError as e:
            log.warning("source_transport_error", source=self.source_name, error=str(e))
            return AdapterResult.failed(UpstreamUnavailable(self.source_label, str(e) or e.__class__.__name__))
        except (ValueError, TypeError, KeyError) as e:
            log.warning("source_malformed_payload", source=self.source_name, error=str(e))
            return AdapterResult.failed(MalformedResponse(self.source_label, str(e) or "unreadable payload"))

    @property
    def source_label(self) -> str:
        return self.display_name or self.source_name

    @abstractmethod
    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        """Fetch one page and normalize it to RawHit records."""

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        async with self.http() as c:
            resp = await c.request(method, url, **kwargs)
        if resp.status_code == 429:
            raise UpstreamStatus(429, "rate limit reached, try again later")
        if not (200 <= resp.status_code < 300):
            raise UpstreamStatus(resp.status_code, f"HTTP {resp.status_code}")
        return resp.json() if resp.content else {}


class UpstreamStatus(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# ---- payload normalization helpers (tolerant: bad values become defaults) ----
_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%b %d, %Y")


def as_str(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return ", ".join(as_str(x) for x in v if as_str(x))
    if isinstance(v, dict):
        return as_str(v.get("description") or v.get("name") or v.get("label"))
    return str(v).strip()


def as_amount(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v) if v >= 0 else None
    s = re.sub(r"[,$\s]", "", str(v))
    m = re.match(r"^\d+(\.\d+)?", s)
    return float(m.group(0)) if m else None


def as_date(v: Any) -> date | None:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    s = as_str(v)
    if not s:
        return None
    # "2025-03-01T00:00:00Z", "2025-03-01 00:00:00 EST" -> first token the formats understand
    candidates = [s, s.replace("Z", ""), s.split(" ")[0], s.split("T")[0]]
    for c in candidates:
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(c, fmt).date()
            except ValueError:
                continue
    return None


def as_list(v: Any) -> list[Any]:
    return v if isinstance(v, list) else []
