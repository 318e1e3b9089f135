from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel


class AchievementStatus(BaseModel):
    id: int
    key: str
    title: str
    description: str
    icon: str
    condition: str
    category: str
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class AchievementList(BaseModel):
    achievements: List[AchievementStatus]
    unlocked_count: int
    total_count: int


class UnlockedAchievement(BaseModel):
    key: str
    title: str
    icon: str
