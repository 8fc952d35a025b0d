from sqlalchemy import Column, String, Integer, Float, DateTime, Text, JSON
from app.core.database import Base
from app.models.subscription import _iso
from datetime import datetime
import uuid


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)  # User id or guest id
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String, nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    duration = Column(Integer, nullable=False, default=5)  # Seconds on screen
    custom_color = Column(String, nullable=True)
    times_reviewed = Column(Integer, nullable=False, default=0)
    last_reviewed = Column(DateTime, nullable=True)
    performance_score = Column(Float, nullable=False, default=0.5)  # In [0, 1]
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'userId': self.user_id,
            'question': self.question,
            'answer': self.answer,
            'category': self.category,
            'tags': list(self.tags or []),
            'duration': self.duration,
            'customColor': self.custom_color,
            'timesReviewed': self.times_reviewed,
            'lastReviewed': _iso(self.last_reviewed),
            'performanceScore': self.performance_score,
            'order': self.order,
        }
