from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
from typing import Optional
from app.core.database import get_db
from app.services.payment_service import PaymentService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """Receive a signed Stripe event. The raw body is needed for signature verification."""
    logger.info("stripe_webhook: Entry")

    try:
        payload = await request.body()
        service = PaymentService()
        event = service.construct_event(payload, stripe_signature)
        result = service.handle_stripe_event(db, event)
        logger.info(f"stripe_webhook: Success - event: {event.get('id')}, action: {result['action']}")
        return {"received": True, "action": result["action"]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"stripe_webhook: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to process webhook")
