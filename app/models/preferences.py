from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON
from app.core.database import Base
from app.models.subscription import _iso
from datetime import datetime
import uuid


class Preferences(Base):
    __tablename__ = "preferences"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, unique=True, index=True)  # User id or guest id
    default_duration = Column(Integer, nullable=False, default=5)
    banner_height = Column(Integer, nullable=False, default=48)
    font_size = Column(Integer, nullable=False, default=24)
    enable_sound_notifications = Column(Boolean, nullable=False, default=False)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    enable_spaced_repetition = Column(Boolean, nullable=False, default=False)
    color_scheme = Column(String, nullable=False, default="random")
    custom_colors = Column(JSON, nullable=False, default=list)
    selected_categories = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'userId': self.user_id,
            'defaultDuration': self.default_duration,
            'bannerHeight': self.banner_height,
            'fontSize': self.font_size,
            'enableSoundNotifications': bool(self.enable_sound_notifications),
            'shuffleQuestions': bool(self.shuffle_questions),
            'enableSpacedRepetition': bool(self.enable_spaced_repetition),
            'colorScheme': self.color_scheme,
            'customColors': list(self.custom_colors or []),
            'selectedCategories': list(self.selected_categories or []),
            'updatedAt': _iso(self.updated_at),
        }
