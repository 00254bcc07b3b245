from __future__ import annotations

from typing import Any

from ....domain.models import RawHit
from ..source_base import AdapterResult, SourceAdapter, as_amount, as_date, as_list, as_str


class GrantsGovAdapter(SourceAdapter):
    """
    Grants.gov opportunity search (forecasted + posted).

    Hits are keyed by the opportunity id; the human-facing opportunity number is
    kept in the URL.
    """

    source_name = "grants_gov"
    display_name = "Grants.gov"

    def __init__(self, *, search_url: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.search_url = search_url

    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        body = {
            "keyword": term,
            "oppStatuses": "forecasted|posted",
            "rows": limit,
            "startRecord": offset,
        }
        data = await self.request_json("POST", self.search_url, json=body)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")

        hits: list[RawHit] = []
        for it in as_list(data.get("oppHits")):
            hit = self._normalize(it)
            if hit is not None:
                hits.append(hit)
        total = data.get("totalCount") or data.get("hitCount")
        return AdapterResult(hits=hits, total_count=int(total) if total else len(hits))

    def _normalize(self, it: Any) -> RawHit | None:
        if not isinstance(it, dict):
            return None
        ext = as_str(it.get("id") or it.get("opportunityId") or it.get("number"))
        if not ext:
            return None
        return RawHit(
            source=self.source_name,
            external_id=ext,
            title=as_str(it.get("title") or it.get("opportunityTitle")) or "Untitled",
            issuer=as_str(it.get("agency") or it.get("agencyName")),
            amount=as_amount(it.get("awardCeiling") or it.get("estimatedFunding")),
            close_date=as_date(it.get("closeDate")),
            open_date=as_date(it.get("openDate")),
            description=as_str(it.get("description") or it.get("synopsis")),
            status=as_str(it.get("oppStatus")),
            funding_instrument=as_str(it.get("fundingInstrumentType")),
            category=as_str(it.get("categoryOfFundingActivity") or it.get("category")),
            doc_type=as_str(it.get("docType")),
            eligibility=as_str(it.get("eligibleApplicants") or it.get("additionalInformationOnEligibility")),
            url=f"https://www.grants.gov/search-results-detail/{ext}",
        )
