from sqlalchemy import Column, Integer, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from learnflow.db.base_class import Base


class Checkin(Base):
    __tablename__ = "checkins"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Streaks compare calendar days only; the time part is ignored
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    duration = Column(Integer, nullable=False, default=0) # minutes
    rating = Column(Integer, nullable=True) # 1-5
    notes = Column(Text, nullable=True)

    user = relationship("User", back_populates="checkins")
