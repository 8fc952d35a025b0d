from sqlalchemy.orm import Session
from app.models.study_session import StudySession
from app.core.exceptions import NotFoundError
from app.core.principal import Principal
from datetime import datetime
from typing import List
import logging

logger = logging.getLogger(__name__)

RECENT_SESSIONS_LIMIT = 10


class StudySessionService:
    """Append-only study interval records, scoped to the user or guest that created them"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def _owner_filter(self, principal: Principal):
        if principal.is_guest:
            return StudySession.guest_id == principal.id
        return StudySession.user_id == principal.id

    def create_session(
        self,
        db: Session,
        principal: Principal,
        start_time: datetime = None,
        end_time: datetime = None,
        questions_reviewed: int = 0,
        total_duration: int = 0,
    ) -> StudySession:
        self.logger.info(f"create_session: Entry - principal: {principal.id}")

        try:
            session = StudySession(
                user_id=None if principal.is_guest else principal.id,
                guest_id=principal.id if principal.is_guest else None,
                start_time=start_time or datetime.utcnow(),
                end_time=end_time,
                questions_reviewed=questions_reviewed,
                total_duration=total_duration,
            )
            db.add(session)
            db.commit()
            db.refresh(session)

            self.logger.info(f"create_session: Success - session: {session.id}")
            return session
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_session: Failure - {e}")
            raise

    def update_session(self, db: Session, session_id: str, principal: Principal, updates: dict) -> StudySession:
        """Close or update a session (end time and counters)"""
        self.logger.info(f"update_session: Entry - session: {session_id}, principal: {principal.id}")

        try:
            session = db.query(StudySession).filter(
                StudySession.id == session_id,
                self._owner_filter(principal)
            ).first()
            if not session:
                raise NotFoundError("Study session")

            for field in ('end_time', 'questions_reviewed', 'total_duration'):
                if updates.get(field) is not None:
                    setattr(session, field, updates[field])

            db.commit()
            db.refresh(session)

            self.logger.info(f"update_session: Success - session: {session_id}")
            return session
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_session: Failure - {e}")
            raise

    def recent_sessions(self, db: Session, principal: Principal, limit: int = RECENT_SESSIONS_LIMIT) -> List[StudySession]:
        """Most recent sessions first"""
        self.logger.info(f"recent_sessions: Entry - principal: {principal.id}, limit: {limit}")

        sessions = db.query(StudySession).filter(
            self._owner_filter(principal)
        ).order_by(StudySession.start_time.desc()).limit(limit).all()

        self.logger.info(f"recent_sessions: Success - count: {len(sessions)}")
        return sessions
