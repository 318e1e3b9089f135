import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from learnflow.db.base_class import Base


class GoalStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=GoalStatus.ACTIVE.value)

    # 0-100, recomputed from the goal's plans; never written by clients
    progress = Column(Integer, nullable=False, default=0)

    # Optimistic concurrency token, bumped by SQLAlchemy on every UPDATE
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="goals")
    plans = relationship("Plan", back_populates="goal", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}
