from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .pipeline.stages import Stage


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


# --- applicant profile ---
class Business(BaseModel):
    name: str = ""
    sector: str = ""
    status: str = "active"
    naics: str = ""
    zip: str = ""
    description: str = ""


class Profile(BaseModel):
    """Applicant attributes the scorer and the AI features read. Never mutated by the core."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    location: str = ""
    zip: str = ""
    rural: bool = False
    disabled: bool = False
    poverty: bool = False
    self_employed: bool = False
    naics: str = ""
    tags: list[str] = Field(default_factory=list)
    businesses: list[Business] = Field(default_factory=list)
    narratives: dict[str, str] = Field(default_factory=dict)

    def state_token(self) -> str:
        # "Springfield, Illinois" -> "illinois"
        parts = str(self.location or "").split(",")
        return parts[-1].strip().lower() if parts else ""


# --- search results ---
class RawHit(BaseModel):
    """Source-agnostic opportunity record produced by a source adapter."""

    model_config = ConfigDict(frozen=True)

    source: str
    external_id: str
    title: str = ""
    issuer: str = ""
    amount: float | None = None
    close_date: date | None = None
    open_date: date | None = None
    description: str = ""
    status: str = ""
    funding_instrument: str = ""
    category: str = ""
    doc_type: str = ""
    eligibility: str = ""
    url: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.external_id)

    @property
    def external_key(self) -> str:
        return f"{self.source}:{self.external_id}"


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(default=0, ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)


class ScoredHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    hit: RawHit
    match: MatchResult


# --- pursuits ---
class StageTransition(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_stage: Stage | None = None
    to_stage: Stage
    timestamp: datetime


class Grant(BaseModel):
    """A tracked opportunity (pursuit). Replaced, never mutated, by PursuitStore."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    external_key: str | None = None
    title: str = "Untitled"
    issuer: str = ""
    amount: float = 0.0
    deadline: date | None = None
    description: str = ""
    category: str = ""
    stage: Stage = Stage.DISCOVERED
    stage_history: list[StageTransition] = Field(default_factory=list)
    notes: str = ""
    tags: list[str] = Field(default_factory=list)
    outcomes: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


TaskStatus = Literal["todo", "in_progress", "done"]
TaskPriority = Literal["high", "medium", "low"]


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    # Back-reference only; deleting the grant does not delete its tasks.
    grant_id: str
    title: str
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    notes: str = ""


class BudgetLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    grant_id: str
    category: str = "other"
    description: str = ""
    amount: float = 0.0
    quantity: int = 1
    justification: str = ""


# --- AI providers ---
class ModelInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    tier: str = "standard"


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    credential_key: str  # Settings field holding the environment-provided key
    local_key: str  # key/value store entry holding a locally saved key
    models: tuple[ModelInfo, ...]
    description: str = ""
    key_url: str = ""
    key_prefix: str = ""

    def model_ids(self) -> list[str]:
        return [m.id for m in self.models]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""
