from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from learnflow.db.base_class import Base


class Plan(Base):
    """
    An AI-drafted multi-week learning plan.

    `content` holds the serialized week-by-week task catalog, e.g.
    [{"week": 1, "tasks": [{"day": 1, "title": "..."}, ...]}, ...].
    Those entries are the plan's virtual tasks; their completion lives in
    AITaskCompletion rows rather than in Task rows.
    """
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    duration_weeks = Column(Integer, nullable=False, default=1)
    content = Column(Text, nullable=True)

    # 0-100 based on virtual tasks completed
    progress = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    goal = relationship("Goal", back_populates="plans")
    tasks = relationship("Task", back_populates="plan", cascade="all, delete-orphan")
    ai_task_completions = relationship("AITaskCompletion", back_populates="plan", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    week = Column(Integer, nullable=False, default=1)
    day = Column(Integer, nullable=False, default=1)
    completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    plan = relationship("Plan", back_populates="tasks")


class AITaskCompletion(Base):
    __tablename__ = "ai_task_completions"
    __table_args__ = (
        UniqueConstraint("plan_id", "task_key", "user_id", name="uq_ai_task_completion"),
    )

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    task_key = Column(String(64), nullable=False) # e.g. "week-2-day-3-0"
    completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("Plan", back_populates="ai_task_completions")
