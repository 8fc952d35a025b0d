from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from app.core.middleware import get_current_user
from app.core.database import get_db
from app.core.principal import UserPrincipal
from app.models.guest_premium import GuestPremium
from app.services.subscription_service import SubscriptionService, is_entitled
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class GuestLinkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guest_id: str = Field(..., min_length=1, alias="guestId")


@router.get("/premium/{guest_id}")
async def get_guest_premium(
    guest_id: str,
    db: Session = Depends(get_db),
):
    """Whether a guest id currently holds premium"""
    logger.info(f"get_guest_premium: Entry - guest: {guest_id}")

    try:
        guest = db.query(GuestPremium).filter(GuestPremium.guest_id == guest_id).first()
        if not guest:
            logger.info(f"get_guest_premium: Success - guest: {guest_id}, premium: False")
            return {"isPremium": False}

        premium = is_entitled(guest, datetime.utcnow())
        logger.info(f"get_guest_premium: Success - guest: {guest_id}, premium: {premium}")
        return {
            "isPremium": premium,
            "expiresAt": guest.subscription_expires_at.isoformat() if guest.subscription_expires_at else None,
            "status": guest.subscription_status,
        }
    except Exception as e:
        logger.error(f"get_guest_premium: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch guest premium status")


@router.post("/link")
async def link_guest(
    link_data: GuestLinkRequest,
    current_user: UserPrincipal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Move a guest's premium state onto the signed-in account"""
    logger.info(f"link_guest: Entry - user: {current_user.id}, guest: {link_data.guest_id}")

    try:
        service = SubscriptionService()
        user = service.link_guest_to_user(db, link_data.guest_id, current_user.id)
        info = service.check_status(db, current_user.id)
        logger.info(f"link_guest: Success - user: {current_user.id}")
        return {"user": user.to_dict(), "subscriptionInfo": info.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"link_guest: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to link guest premium")
