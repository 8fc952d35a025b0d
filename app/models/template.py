from sqlalchemy import Column, String, Text, DateTime, JSON
from app.core.database import Base
from datetime import datetime
import uuid


class Template(Base):
    """Shared bundle of question/answer pairs, not owned by any principal"""

    __tablename__ = "templates"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    questions = Column(JSON, nullable=False, default=list)  # [{"question": ..., "answer": ...}]
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'questions': list(self.questions or []),
        }
