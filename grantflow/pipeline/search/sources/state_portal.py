from __future__ import annotations

from typing import Any

from ....domain.models import RawHit
from ..source_base import AdapterResult, SourceAdapter, as_amount, as_date, as_list, as_str


class StatePortalAdapter(SourceAdapter):
    """
    CKAN `datastore_search` over a state grants portal resource (California's
    grants portal by default; any CKAN portal with the same columns works).
    """

    source_name = "state_portal"

    def __init__(self, *, search_url: str, resource_id: str, state_label: str = "CA", **kwargs: Any):
        super().__init__(**kwargs)
        self.search_url = search_url
        self.resource_id = resource_id
        self.state_label = state_label
        self.display_name = f"State portal ({state_label})"

    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        params = {"resource_id": self.resource_id, "q": term, "limit": limit, "offset": offset}
        data = await self.request_json("GET", self.search_url, params=params)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        if data.get("success") is False:
            err = data.get("error") if isinstance(data.get("error"), dict) else {}
            raise ValueError(as_str(err.get("message")) or "portal reported failure")

        result = data.get("result") if isinstance(data.get("result"), dict) else {}
        hits: list[RawHit] = []
        for rec in as_list(result.get("records")):
            if not isinstance(rec, dict):
                continue
            ext = as_str(rec.get("PortalID") or rec.get("GrantID") or rec.get("_id"))
            if not ext:
                continue
            hits.append(
                RawHit(
                    source=self.source_name,
                    external_id=ext,
                    title=as_str(rec.get("Title")) or "Untitled",
                    issuer=as_str(rec.get("AgencyDept")),
                    amount=as_amount(rec.get("EstAvailFunds") or rec.get("EstAmounts")),
                    close_date=as_date(rec.get("ApplicationDeadline")),
                    open_date=as_date(rec.get("OpenDate")),
                    description=as_str(rec.get("Description") or rec.get("Purpose")),
                    status=as_str(rec.get("Status")),
                    funding_instrument=as_str(rec.get("FundingMethod")),
                    category=as_str(rec.get("Categories")),
                    eligibility=as_str(rec.get("ApplicantType")),
                    url=as_str(rec.get("GrantURL")),
                )
            )
        total = result.get("total")
        return AdapterResult(hits=hits, total_count=int(total) if total is not None else len(hits))
