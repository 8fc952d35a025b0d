from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime, timezone
from typing import Optional
from app.core.middleware import get_principal
from app.core.database import get_db
from app.core.principal import Principal
from app.services.study_session_service import RECENT_SESSIONS_LIMIT, StudySessionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_time: Optional[datetime] = Field(None, alias="startTime")
    end_time: Optional[datetime] = Field(None, alias="endTime")
    questions_reviewed: int = Field(0, ge=0, alias="questionsReviewed")
    total_duration: int = Field(0, ge=0, alias="totalDuration")


class SessionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    end_time: Optional[datetime] = Field(None, alias="endTime")
    questions_reviewed: Optional[int] = Field(None, ge=0, alias="questionsReviewed")
    total_duration: Optional[int] = Field(None, ge=0, alias="totalDuration")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: SessionCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"create_session: Entry - principal: {principal.id}")

    try:
        session = StudySessionService().create_session(
            db,
            principal,
            start_time=_naive_utc(session_data.start_time),
            end_time=_naive_utc(session_data.end_time),
            questions_reviewed=session_data.questions_reviewed,
            total_duration=session_data.total_duration,
        )
        logger.info(f"create_session: Success - session: {session.id}")
        return session.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_session: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to create study session")


@router.get("/recent")
async def recent_sessions(
    limit: int = RECENT_SESSIONS_LIMIT,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"recent_sessions: Entry - principal: {principal.id}")

    try:
        sessions = StudySessionService().recent_sessions(db, principal, limit=max(1, min(limit, 100)))
        logger.info(f"recent_sessions: Success - {len(sessions)} sessions")
        return [s.to_dict() for s in sessions]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"recent_sessions: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch study sessions")


@router.patch("/{session_id}")
async def update_session(
    session_id: str,
    session_data: SessionUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"update_session: Entry - principal: {principal.id}, session: {session_id}")

    try:
        updates = session_data.model_dump(exclude_unset=True)
        if 'end_time' in updates:
            updates['end_time'] = _naive_utc(updates['end_time'])
        session = StudySessionService().update_session(db, session_id, principal, updates)
        logger.info(f"update_session: Success - session: {session_id}")
        return session.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"update_session: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to update study session")
