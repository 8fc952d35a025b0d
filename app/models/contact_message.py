from sqlalchemy import Column, String, Text, DateTime
from app.core.database import Base
from datetime import datetime
import uuid


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="new", index=True)  # 'new', 'read', 'answered'
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
