"""AI output schemas for the decision batch."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

VALID_ACTIONS: frozenset[str] = frozenset(
    {"open_long", "open_short", "close_long", "close_short", "hold", "wait"}
)
OPEN_ACTIONS: frozenset[str] = frozenset({"open_long", "open_short"})
CLOSE_ACTIONS: frozenset[str] = frozenset({"close_long", "close_short"})


class TradingDecision(BaseModel):
    """One atomic instruction from the model.

    ``action`` is kept as a plain string so that an unknown action reaches the
    validator and is rejected there with its value named.
    """

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    symbol: str
    action: str
    leverage: int | None = None
    position_size_usd: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    confidence: int | None = None
    risk_usd: float | None = None
    reasoning: str = ""

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("confidence", mode="before")
    @classmethod
    def round_confidence(cls, v: Any) -> Any:
        if isinstance(v, float):
            return round(v)
        return v

    @field_validator("reasoning", mode="before")
    @classmethod
    def none_reasoning_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_open(self) -> bool:
        return self.action in OPEN_ACTIONS

    @property
    def is_close(self) -> bool:
        return self.action in CLOSE_ACTIONS


class AIFullDecision(BaseModel):
    """Terminal output of one decision cycle."""

    reasoning_trace: str = ""
    decisions: list[TradingDecision] = Field(default_factory=list)
    system_prompt: str = ""
    user_prompt: str = ""
    raw_response: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
