from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from ...db.kv_store import KeyValueStore
from ...domain.models import BudgetLine, Grant, RawHit, ScoredHit, Task
from ...domain.pipeline.stages import Stage, parse_stage
from ...domain.pipeline.workflow_task_templates import default_tasks_for, seed_budget_for
from ...errors import NotFound
from ...observability.logging import get_logger
from ..workflow.stage_machine import stage_counts, transition

log = get_logger("pursuit_store")

GRANTS_KEY = "grants"
TASKS_KEY = "tasks"
BUDGETS_KEY = "budgets"

# Fields `update()` may merge. Identity and history are owned by the store.
_UPDATABLE_GRANT_FIELDS = {
    "title",
    "issuer",
    "amount",
    "deadline",
    "description",
    "category",
    "notes",
    "tags",
    "outcomes",
}
_UPDATABLE_TASK_FIELDS = {"title", "status", "priority", "notes"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _slug(s: str) -> str:
    return re.sub(r"\s+", "-", str(s or "").strip().lower())


class PursuitStore:
    """
    Single source of truth for tracked grants, their tasks and budgets.

    Every mutation goes through a named operation and runs to completion under a
    lock, so readers never observe a half-applied change. Deleting a grant leaves
    its tasks and budget lines in place (they only reference the grant); see
    `orphaned_tasks()` / `orphaned_budgets()`. Whether to cascade is a product call.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        clock: Callable[[], datetime] | None = None,
        autosave: bool = True,
    ):
        self._kv = kv
        self._clock = clock or _utcnow
        self._autosave = bool(autosave)
        self._lock = threading.RLock()
        self._dirty = False
        self._grants: dict[str, Grant] = {}
        self._tasks: dict[str, Task] = {}
        self._budgets: dict[str, list[BudgetLine]] = {}

    # ---- persistence ----
    @classmethod
    def load(
        cls,
        kv: KeyValueStore,
        *,
        clock: Callable[[], datetime] | None = None,
        autosave: bool = True,
    ) -> "PursuitStore":
        store = cls(kv, clock=clock, autosave=autosave)
        for raw in kv.get(GRANTS_KEY, []) or []:
            g = Grant.model_validate(raw)
            store._grants[g.id] = g
        for raw in kv.get(TASKS_KEY, []) or []:
            t = Task.model_validate(raw)
            store._tasks[t.id] = t
        for gid, entry in (kv.get(BUDGETS_KEY, {}) or {}).items():
            items = entry.get("items") if isinstance(entry, dict) else entry
            store._budgets[str(gid)] = [BudgetLine.model_validate(x) for x in items or []]
        log.info(
            "pursuit_store_loaded",
            grants=len(store._grants),
            tasks=len(store._tasks),
            budgets=len(store._budgets),
        )
        return store

    def flush(self) -> None:
        """Write all collections to the key/value store in one batch."""
        with self._lock:
            now = self._clock().isoformat()
            self._kv.set(GRANTS_KEY, [g.model_dump(mode="json") for g in self._grants.values()])
            self._kv.set(TASKS_KEY, [t.model_dump(mode="json") for t in self._tasks.values()])
            self._kv.set(
                BUDGETS_KEY,
                {
                    gid: {"items": [b.model_dump(mode="json") for b in lines], "updatedAt": now}
                    for gid, lines in self._budgets.items()
                },
            )
            self._dirty = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _changed(self) -> None:
        self._dirty = True
        if self._autosave:
            self.flush()

    # ---- reads ----
    def get(self, grant_id: str) -> Grant:
        g = self._grants.get(str(grant_id or ""))
        if g is None:
            raise NotFound("grant", str(grant_id))
        return g

    def list_grants(self, *, stage: str | Stage | None = None) -> list[Grant]:
        gs = list(self._grants.values())
        if stage is not None:
            want = parse_stage(stage)
            gs = [g for g in gs if g.stage == want]
        return gs

    def find_by_external_key(self, external_key: str | None) -> Grant | None:
        k = str(external_key or "").strip()
        if not k:
            return None
        for g in self._grants.values():
            if g.external_key == k:
                return g
        return None

    def tasks_for(self, grant_id: str) -> list[Task]:
        return [t for t in self._tasks.values() if t.grant_id == grant_id]

    def all_tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def budget_for(self, grant_id: str) -> list[BudgetLine]:
        return list(self._budgets.get(grant_id, []))

    def stage_counts(self) -> dict[Stage, int]:
        return stage_counts(self._grants.values())

    def orphaned_tasks(self) -> list[Task]:
        return [t for t in self._tasks.values() if t.grant_id not in self._grants]

    def orphaned_budgets(self) -> dict[str, list[BudgetLine]]:
        return {gid: list(lines) for gid, lines in self._budgets.items() if gid not in self._grants}

    # ---- lifecycle ----
    def track(self, hit_or_result: RawHit | ScoredHit) -> Grant:
        """
        Start pursuing a search hit. Idempotent on the hit's (source, external id):
        tracking it again returns the existing grant without new side effects.
        """
        if isinstance(hit_or_result, ScoredHit):
            hit, match = hit_or_result.hit, hit_or_result.match
        else:
            hit, match = hit_or_result, None

        with self._lock:
            existing = self.find_by_external_key(hit.external_key)
            if existing is not None:
                log.info("grant_track_noop", grant_id=existing.id, external_key=hit.external_key)
                return existing

            now = self._clock()
            fields: dict[str, Any] = {
                "external_key": hit.external_key,
                "title": hit.title or "Untitled",
                "issuer": hit.issuer,
                "amount": float(hit.amount or 0),
                "deadline": hit.close_date,
                "description": hit.description,
                "category": hit.category or hit.funding_instrument,
                "stage": Stage.DISCOVERED,
                "created_at": now,
                "updated_at": now,
            }
            if match is not None:
                fields["notes"] = f"Match Score: {match.score}/100 - {', '.join(match.reasons)}"
                fields["tags"] = [_slug(r) for r in match.reasons]
            return self._create(Grant(**fields))

    def add_grant(self, grant: Grant) -> Grant:
        """Manual creation; same idempotency rule as `track` on id and external key."""
        with self._lock:
            if grant.id in self._grants:
                return self._grants[grant.id]
            existing = self.find_by_external_key(grant.external_key)
            if existing is not None:
                return existing
            return self._create(grant)

    def _create(self, grant: Grant) -> Grant:
        self._grants[grant.id] = grant
        tasks = default_tasks_for(grant)
        for t in tasks:
            self._tasks[t.id] = t
        lines = seed_budget_for(grant)
        if lines:
            self._budgets[grant.id] = lines
        log.info(
            "grant_tracked",
            grant_id=grant.id,
            external_key=grant.external_key,
            seeded_tasks=len(tasks),
            seeded_budget_lines=len(lines),
        )
        self._changed()
        return grant

    def update_stage(self, grant_id: str, new_stage: str | Stage) -> Grant:
        with self._lock:
            cur = self.get(grant_id)
            moved = transition(cur, new_stage, at=self._clock())
            if moved is None:
                return cur
            self._grants[cur.id] = moved
            log.info(
                "grant_stage_changed",
                grant_id=cur.id,
                from_stage=cur.stage.value,
                to_stage=moved.stage.value,
            )
            self._changed()
            return moved

    def update(self, grant_id: str, **fields: Any) -> Grant:
        """
        Merge non-identity fields. A `stage` entry is applied through the same
        transition path as `update_stage`, so history stays complete.
        """
        stage = fields.pop("stage", None)
        unknown = set(fields) - _UPDATABLE_GRANT_FIELDS
        if unknown:
            raise ValueError(f"cannot update grant fields: {', '.join(sorted(unknown))}")

        with self._lock:
            cur = self.get(grant_id)
            now = self._clock()
            merged = Grant.model_validate({**cur.model_dump(), **fields, "updated_at": now})
            if stage is not None:
                merged = transition(merged, stage, at=now) or merged
            self._grants[cur.id] = merged
            self._changed()
            return merged

    def delete(self, grant_id: str) -> Grant:
        """
        Remove the grant only. Its tasks and budget lines stay, still carrying the
        old grant_id.
        """
        with self._lock:
            g = self.get(grant_id)
            del self._grants[g.id]
            log.info(
                "grant_deleted",
                grant_id=g.id,
                orphaned_tasks=len(self.tasks_for(g.id)),
                orphaned_budget_lines=len(self._budgets.get(g.id, [])),
            )
            self._changed()
            return g

    # ---- tasks ----
    def add_task(self, grant_id: str, title: str, **fields: Any) -> Task:
        with self._lock:
            g = self.get(grant_id)
            t = Task(grant_id=g.id, title=title, **fields)
            self._tasks[t.id] = t
            self._changed()
            return t

    def update_task(self, task_id: str, **fields: Any) -> Task:
        unknown = set(fields) - _UPDATABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"cannot update task fields: {', '.join(sorted(unknown))}")
        with self._lock:
            cur = self._tasks.get(str(task_id or ""))
            if cur is None:
                raise NotFound("task", str(task_id))
            t = Task.model_validate({**cur.model_dump(), **fields})
            self._tasks[t.id] = t
            self._changed()
            return t

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            if self._tasks.pop(str(task_id or ""), None) is None:
                raise NotFound("task", str(task_id))
            self._changed()

    # ---- budgets ----
    def set_budget(self, grant_id: str, lines: Iterable[BudgetLine]) -> list[BudgetLine]:
        with self._lock:
            g = self.get(grant_id)
            out = [ln.model_copy(update={"grant_id": g.id}) for ln in lines]
            self._budgets[g.id] = out
            self._changed()
            return list(out)
