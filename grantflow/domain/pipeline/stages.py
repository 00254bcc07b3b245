from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    """Pursuit lifecycle stages, in display order."""

    DISCOVERED = "discovered"
    RESEARCHING = "researching"
    QUALIFYING = "qualifying"
    PREPARING = "preparing"
    DRAFTING = "drafting"
    REVIEWING = "reviewing"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    AWARDED = "awarded"
    ACTIVE = "active"
    CLOSEOUT = "closeout"
    DECLINED = "declined"
    ARCHIVED = "archived"

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_LABELS: dict[Stage, str] = {
    Stage.DISCOVERED: "Discovered",
    Stage.RESEARCHING: "Researching",
    Stage.QUALIFYING: "Qualifying",
    Stage.PREPARING: "Preparing",
    Stage.DRAFTING: "Drafting",
    Stage.REVIEWING: "Reviewing",
    Stage.SUBMITTED: "Submitted",
    Stage.UNDER_REVIEW: "Under Review",
    Stage.AWARDED: "Awarded",
    Stage.ACTIVE: "Active",
    Stage.CLOSEOUT: "Closeout",
    Stage.DECLINED: "Declined",
    Stage.ARCHIVED: "Archived",
}

# Grants no longer competing for money; excluded from "active" portfolio sums.
INACTIVE_STAGES: frozenset[Stage] = frozenset({Stage.DECLINED, Stage.CLOSEOUT})
AWARDED_STAGES: frozenset[Stage] = frozenset({Stage.AWARDED, Stage.ACTIVE})


def parse_stage(value: str | Stage) -> Stage:
    """Strict parse; unknown stage names raise ValueError."""
    if isinstance(value, Stage):
        return value
    s = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    return Stage(s)
