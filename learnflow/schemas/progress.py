from typing import Dict, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict


# --- Requests ---
class CompletionToggle(BaseModel):
    completed: bool


class BatchCompletionToggle(BaseModel):
    completions: Dict[str, bool]


# --- Responses ---
class AITaskCompletionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    task_key: str
    completed: bool
    updated_at: Optional[datetime] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    title: str
    week: int
    day: int
    completed: bool
