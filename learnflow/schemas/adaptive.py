from typing import List, Literal
from pydantic import BaseModel, Field

PaceStatus = Literal["on_track", "falling_behind", "ahead"]
AdjustmentAction = Literal["reduce", "increase", "keep"]


class Adjustment(BaseModel):
    week: int = Field(ge=1)
    action: AdjustmentAction
    reason: str


class AdaptiveSuggestion(BaseModel):
    """Same shape whether the wording came from the AI coach or the rule-based fallback."""
    status: PaceStatus
    completion_rate: int = Field(ge=0, le=100)
    expected_rate: int = Field(ge=0, le=100)
    elapsed_weeks: int = Field(ge=1)
    suggestion: str
    adjustments: List[Adjustment]
    source: Literal["ai", "rules"] = "rules"
