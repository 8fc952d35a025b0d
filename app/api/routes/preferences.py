from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from app.core.middleware import get_principal
from app.core.database import get_db
from app.core.principal import Principal
from app.services.preferences_service import PreferencesService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default_duration: Optional[int] = Field(None, ge=1, le=300, alias="defaultDuration")
    banner_height: Optional[int] = Field(None, ge=16, le=400, alias="bannerHeight")
    font_size: Optional[int] = Field(None, ge=8, le=96, alias="fontSize")
    enable_sound_notifications: Optional[bool] = Field(None, alias="enableSoundNotifications")
    shuffle_questions: Optional[bool] = Field(None, alias="shuffleQuestions")
    enable_spaced_repetition: Optional[bool] = Field(None, alias="enableSpacedRepetition")
    color_scheme: Optional[str] = Field(None, alias="colorScheme")
    custom_colors: Optional[List[str]] = Field(None, alias="customColors")
    selected_categories: Optional[List[str]] = Field(None, alias="selectedCategories")


@router.get("")
@router.get("/")
async def get_preferences(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Get preferences, created with defaults on first read"""
    logger.info(f"get_preferences: Entry - principal: {principal.id}")

    try:
        preferences = PreferencesService().get_preferences(db, principal.id)
        logger.info(f"get_preferences: Success - principal: {principal.id}")
        return preferences.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_preferences: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch preferences")


@router.patch("")
@router.patch("/")
async def update_preferences(
    preferences_data: PreferencesUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"update_preferences: Entry - principal: {principal.id}")

    try:
        preferences = PreferencesService().update_preferences(
            db,
            principal.id,
            preferences_data.model_dump(exclude_unset=True),
            tier=principal.tier,
        )
        logger.info(f"update_preferences: Success - principal: {principal.id}")
        return preferences.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"update_preferences: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to update preferences")
