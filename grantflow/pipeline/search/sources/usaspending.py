from __future__ import annotations

from typing import Any

from ....domain.models import RawHit
from ..source_base import AdapterResult, SourceAdapter, as_amount, as_date, as_list, as_str

# Grant award types only (block, formula, project, cooperative agreement).
GRANT_AWARD_TYPE_CODES = ["02", "03", "04", "05"]
FIELDS = [
    "Award ID",
    "Recipient Name",
    "Award Amount",
    "Awarding Agency",
    "Start Date",
    "Description",
    "generated_internal_id",
]


class UsaSpendingAdapter(SourceAdapter):
    """
    Past federal grant awards from USASpending, surfaced as hits so applicants can
    see who funds work like theirs. Paged by page number, so offsets are rounded
    down to a page boundary.
    """

    source_name = "usaspending"
    display_name = "USASpending"

    def __init__(self, *, search_url: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.search_url = search_url

    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        body = {
            "filters": {"keywords": [term], "award_type_codes": GRANT_AWARD_TYPE_CODES},
            "fields": FIELDS,
            "limit": limit,
            "page": offset // limit + 1,
        }
        data = await self.request_json("POST", self.search_url, json=body)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")

        hits: list[RawHit] = []
        for it in as_list(data.get("results")):
            if not isinstance(it, dict):
                continue
            ext = as_str(it.get("generated_internal_id") or it.get("Award ID"))
            if not ext:
                continue
            recipient = as_str(it.get("Recipient Name")) or "Unknown Recipient"
            hits.append(
                RawHit(
                    source=self.source_name,
                    external_id=ext,
                    title=f"{as_str(it.get('Award ID')) or ext}: {recipient}",
                    issuer=as_str(it.get("Awarding Agency")),
                    amount=as_amount(it.get("Award Amount")),
                    open_date=as_date(it.get("Start Date")),
                    description=as_str(it.get("Description")),
                    status="awarded",
                    doc_type="award",
                    url=f"https://www.usaspending.gov/award/{ext}",
                )
            )

        meta = data.get("page_metadata") if isinstance(data.get("page_metadata"), dict) else {}
        # No total is reported; advertise one more row while the API says there is a next page.
        total = offset + len(hits) + (1 if meta.get("hasNext") else 0)
        return AdapterResult(hits=hits, total_count=total)
