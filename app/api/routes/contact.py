from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from app.core.database import get_db
from app.core.exceptions import BadRequestError
from app.core.security import is_valid_email
from app.services.contact_service import ContactService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str
    message: str = Field(..., min_length=1, max_length=5000)


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED)
async def submit_contact(
    contact_data: ContactRequest,
    db: Session = Depends(get_db),
):
    logger.info(f"submit_contact: Entry - email: {contact_data.email}")

    try:
        if not is_valid_email(contact_data.email):
            raise BadRequestError("Invalid email format")
        contact = ContactService().submit_message(db, contact_data.name, contact_data.email, contact_data.message)
        logger.info(f"submit_contact: Success - message: {contact.id}")
        return {"message": "Thank you for your message. We'll get back to you soon.", "id": contact.id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"submit_contact: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to send message")
