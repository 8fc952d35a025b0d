from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from app.core.middleware import get_principal
from app.core.database import get_db
from app.core.principal import Principal
from app.services.payment_service import PaymentService
from app.services.subscription_service import SubscriptionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    guest_id: Optional[str] = Field(None, alias="guestId")


class ConfirmPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: str = Field(..., alias="paymentIntentId")
    guest_id: Optional[str] = Field(None, alias="guestId")


@router.get("/status")
async def get_subscription_status(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Computed subscription info for the current principal"""
    logger.info(f"get_subscription_status: Entry - principal: {principal.id}")

    try:
        info = SubscriptionService().check_status(db, principal.id)
        logger.info(f"get_subscription_status: Success - active: {info.is_active}")
        return info.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_subscription_status: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscription status")


@router.post("/create-payment-intent")
async def create_payment_intent(
    request_data: Optional[PaymentIntentRequest] = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"create_payment_intent: Entry - principal: {principal.id}")

    try:
        email = request_data.email if request_data else None
        result = PaymentService().create_payment_intent(db, principal, email=email)
        logger.info(f"create_payment_intent: Success - intent: {result['paymentIntentId']}")
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_payment_intent: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to create payment intent")


@router.post("/confirm-payment")
async def confirm_payment(
    request_data: ConfirmPaymentRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"confirm_payment: Entry - principal: {principal.id}, intent: {request_data.payment_intent_id}")

    try:
        info = PaymentService().confirm_payment(db, principal, request_data.payment_intent_id)
        logger.info(f"confirm_payment: Success - principal: {principal.id}")
        return {"message": "Payment confirmed", "subscriptionInfo": info.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"confirm_payment: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to confirm payment")


@router.post("/cancel")
async def cancel_subscription(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Stop renewal; premium access continues until the current expiry"""
    logger.info(f"cancel_subscription: Entry - principal: {principal.id}")

    try:
        service = SubscriptionService()
        service.cancel(db, principal.id)
        info = service.check_status(db, principal.id)
        logger.info(f"cancel_subscription: Success - principal: {principal.id}")
        return {"message": "Subscription cancelled successfully", "subscriptionInfo": info.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"cancel_subscription: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to cancel subscription")
