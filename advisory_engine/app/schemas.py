import uuid
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["user", "assistant"]
RiskTolerance = Literal["low", "moderate", "high"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """One conversation message. Never mutated once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    role: Role
    content: str
    embedding: Optional[List[float]] = None  # absent until embedding completes
    created_at: datetime = Field(default_factory=_utcnow)

    def with_embedding(self, embedding: List[float]) -> "Turn":
        return self.model_copy(update={"embedding": list(embedding)})


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float = Field(..., ge=0)
    change: float = 0.0
    change_percent: float = 0.0
    fetched_at: datetime = Field(default_factory=_utcnow)


class MarketSnapshot(BaseModel):
    """Complete set of latest quotes, replaced as a whole on refresh."""

    model_config = ConfigDict(frozen=True)

    quotes: Tuple[Quote, ...] = Field(..., min_length=1)
    fetched_at: datetime = Field(default_factory=_utcnow)
    source: Literal["feed", "fallback"] = "feed"

    @model_validator(mode="after")
    def _one_quote_per_symbol(self) -> "MarketSnapshot":
        symbols = self.symbols()
        if len(set(symbols)) != len(symbols):
            raise ValueError(f"Duplicate symbols in snapshot: {symbols}")
        return self

    def symbols(self) -> List[str]:
        return [q.symbol for q in self.quotes]


class Profile(BaseModel):
    risk_tolerance: RiskTolerance = "moderate"
    current_age: int = Field(..., gt=0)
    target_retirement_age: int = Field(..., gt=0)
    monthly_contribution: float = Field(0.0, ge=0)
    retirement_goal: float = Field(0.0, ge=0)

    @model_validator(mode="after")
    def _retirement_after_current_age(self) -> "Profile":
        if self.target_retirement_age <= self.current_age:
            raise ValueError("target_retirement_age must be greater than current_age")
        return self


class AllocationResult(BaseModel):
    # Percentages; not re-normalized after clamping, so the sum may differ from 100.
    stocks: float
    bonds: float
    cash: float


class ProfileSummary(BaseModel):
    """What the profile form shows back to the user before saving."""

    profile: Profile
    years_to_retirement: int
    yearly_contribution: float
    allocation: AllocationResult


class ContextRequest(BaseModel):
    user_id: str
    question: str = Field(..., min_length=1)


class ContextResponse(BaseModel):
    user_id: str
    context: str


class ChatRequest(BaseModel):
    model_config = {"extra": "ignore"}

    user_id: str
    question: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    user_id: str
    answer: str
    question_turn_id: str
    answer_turn_id: str
    latency_ms: int = 0


class HistoryDay(BaseModel):
    date: str  # ISO calendar day, UTC
    turns: List[Turn]


class HistoryResponse(BaseModel):
    user_id: str
    days: List[HistoryDay]


class MarketResponse(BaseModel):
    source: str
    fetched_at: datetime
    quotes: List[Quote]
    last_error: Optional[str] = None


def group_turns_by_day(turns: List[Turn]) -> Dict[str, List[Turn]]:
    """Group turns by UTC calendar day, newest day first, oldest turn first within a day."""
    groups: Dict[str, List[Turn]] = {}
    for turn in sorted(turns, key=lambda t: t.created_at):
        groups.setdefault(turn.created_at.date().isoformat(), []).append(turn)
    return dict(sorted(groups.items(), key=lambda item: item[0], reverse=True))
