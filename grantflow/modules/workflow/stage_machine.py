from __future__ import annotations

from datetime import datetime
from typing import Iterable

from ...domain.models import Grant, StageTransition
from ...domain.pipeline.stages import Stage, parse_stage


def transition(grant: Grant, new_stage: str | Stage, *, at: datetime) -> Grant | None:
    """
    Canonical stage change for a pursuit.

    Any stage may move to any other stage (users jump around the board), but every
    change is logged. Returns the updated grant, or None when `new_stage` equals the
    current stage so callers can skip persisting a no-op.
    """
    target = parse_stage(new_stage)
    if target == grant.stage:
        return None
    entry = StageTransition(from_stage=grant.stage, to_stage=target, timestamp=at)
    return grant.model_copy(
        update={
            "stage": target,
            "stage_history": [*grant.stage_history, entry],
            "updated_at": at,
        }
    )


def history_is_consistent(grant: Grant, *, initial: Stage = Stage.DISCOVERED) -> bool:
    """
    True when the history chains without gaps: each entry starts where the previous
    one ended, and the last entry ends at the grant's current stage.
    """
    cur: Stage | None = initial
    for entry in grant.stage_history:
        if entry.from_stage != cur or entry.to_stage == entry.from_stage:
            return False
        cur = entry.to_stage
    return cur == grant.stage


def stage_counts(grants: Iterable[Grant]) -> dict[Stage, int]:
    out: dict[Stage, int] = {s: 0 for s in Stage}
    for g in grants:
        out[g.stage] += 1
    return out
