from __future__ import annotations

from typing import TypedDict

from ..models import BudgetLine, Grant, Task


class TrackTaskTemplate(TypedDict):
    templateId: str
    title: str
    notes: str
    priority: str


class BudgetLineTemplate(TypedDict):
    templateId: str
    category: str
    description: str
    share: float
    justification: str


# Seeded once, when an opportunity is first tracked.
TRACK_TASK_TEMPLATES: list[TrackTaskTemplate] = [
    {
        "templateId": "track_rfp_deep_dive",
        "title": "RFP Deep Dive",
        "notes": "Initial review of requirements and eligibility.",
        "priority": "high",
    },
    {
        "templateId": "track_compliance_matrix",
        "title": "Compliance Matrix",
        "notes": "Draft the internal compliance and requirements matrix.",
        "priority": "medium",
    },
    {
        "templateId": "track_narrative_skeleton",
        "title": "Narrative Skeleton",
        "notes": "Build the initial draft framework based on the RFP.",
        "priority": "high",
    },
    {
        "templateId": "track_budget_alignment",
        "title": "Budget Alignment",
        "notes": "Cross-check budget placeholders against award limits.",
        "priority": "medium",
    },
]

# Shares must sum to 1.0; the last line absorbs rounding.
SEED_BUDGET_TEMPLATES: list[BudgetLineTemplate] = [
    {
        "templateId": "budget_lead",
        "category": "personnel",
        "description": "Program Director / Lead",
        "share": 0.4,
        "justification": "Estimated leadership for program implementation.",
    },
    {
        "templateId": "budget_operational_reserve",
        "category": "other",
        "description": "Operational Reserve",
        "share": 0.6,
        "justification": "Balance of award ceiling for program activities.",
    },
]


def default_tasks_for(grant: Grant) -> list[Task]:
    return [
        Task(
            grant_id=grant.id,
            title=t["title"],
            notes=t["notes"],
            priority=t["priority"],  # type: ignore[arg-type]
        )
        for t in TRACK_TASK_TEMPLATES
    ]


def seed_budget_for(grant: Grant) -> list[BudgetLine]:
    """
    Two-line starter budget for a newly tracked grant; empty when the amount is
    unknown or zero.
    """
    amount = float(grant.amount or 0)
    if amount <= 0:
        return []
    lines: list[BudgetLine] = []
    allocated = 0.0
    for i, t in enumerate(SEED_BUDGET_TEMPLATES):
        last = i == len(SEED_BUDGET_TEMPLATES) - 1
        value = amount - allocated if last else float(round(amount * t["share"]))
        allocated += value
        lines.append(
            BudgetLine(
                grant_id=grant.id,
                category=t["category"],
                description=t["description"],
                amount=value,
                quantity=1,
                justification=t["justification"],
            )
        )
    return lines
