from sqlalchemy import Column, String, Integer, DateTime
from app.core.database import Base
from app.models.subscription import _iso
import uuid


class StudySession(Base):
    __tablename__ = "study_sessions"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True, index=True)
    guest_id = Column(String, nullable=True, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=True)
    questions_reviewed = Column(Integer, nullable=False, default=0)
    total_duration = Column(Integer, nullable=False, default=0)  # Seconds

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'userId': self.user_id,
            'guestId': self.guest_id,
            'startTime': _iso(self.start_time),
            'endTime': _iso(self.end_time),
            'questionsReviewed': self.questions_reviewed,
            'totalDuration': self.total_duration,
        }
