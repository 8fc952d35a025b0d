from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from app.core.config import settings
from app.core.middleware import get_current_user
from app.core.database import get_db
from app.core.principal import UserPrincipal
from app.core.rate_limiter import limiter
from app.services.auth_service import AuthService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    guest_id: Optional[str] = Field(None, alias="guestId")


class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str


class MagicLinkRequest(BaseModel):
    email: str


class VerifyMagicLinkRequest(BaseModel):
    token: str = Field(..., min_length=1)


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.auth_rate_limit)
async def register(
    request: Request,
    register_data: RegisterRequest,
    db: Session = Depends(get_db),
):
    logger.info(f"register: Entry - email: {register_data.email}")

    try:
        user, token = AuthService().register(
            db,
            register_data.email,
            register_data.password,
            first_name=register_data.first_name,
            last_name=register_data.last_name,
            guest_id=register_data.guest_id,
        )
        logger.info(f"register: Success - user: {user.id}")
        return {"user": user.to_dict(), "token": token}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"register: Failure - {e}")
        raise HTTPException(status_code=500, detail="Registration failed")


@router.post("/login")
@limiter.limit(settings.auth_rate_limit)
async def login(
    request: Request,
    login_data: LoginRequest,
    db: Session = Depends(get_db),
):
    logger.info(f"login: Entry - email: {login_data.email}")

    try:
        user, token = AuthService().login(db, login_data.email, login_data.password)
        logger.info(f"login: Success - user: {user.id}")
        return {"user": user.to_dict(), "token": token}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"login: Failure - {e}")
        raise HTTPException(status_code=500, detail="Login failed")


@router.get("/user")
async def get_user(
    current_user: UserPrincipal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The signed-in user with subscription info, after lazy expiry"""
    logger.info(f"get_user: Entry - user: {current_user.id}")

    try:
        user, info = AuthService().current_user(db, current_user.id)
        logger.info(f"get_user: Success - user: {user.id}")
        return {**user.to_dict(), "subscriptionInfo": info.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_user: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch user")


@router.post("/forgot-password")
@limiter.limit(settings.auth_rate_limit)
async def forgot_password(
    request: Request,
    forgot_data: ForgotPasswordRequest,
    db: Session = Depends(get_db),
):
    logger.info("forgot_password: Entry")
    message = AuthService().forgot_password(db, forgot_data.email)
    return {"message": message}


@router.post("/reset-password")
@limiter.limit(settings.auth_rate_limit)
async def reset_password(
    request: Request,
    reset_data: ResetPasswordRequest,
    db: Session = Depends(get_db),
):
    logger.info("reset_password: Entry")

    try:
        AuthService().reset_password(db, reset_data.token, reset_data.password)
        logger.info("reset_password: Success")
        return {"message": "Password reset successful. You can now log in with your new password."}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"reset_password: Failure - {e}")
        raise HTTPException(status_code=500, detail="Password reset failed")


@router.post("/send-magic-link")
@limiter.limit(settings.auth_rate_limit)
async def send_magic_link(
    request: Request,
    magic_link_data: MagicLinkRequest,
    db: Session = Depends(get_db),
):
    logger.info("send_magic_link: Entry")

    try:
        message = AuthService().send_magic_link(db, magic_link_data.email)
        return {"message": message}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"send_magic_link: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to send magic link")


@router.post("/verify-magic-link")
@limiter.limit(settings.auth_rate_limit)
async def verify_magic_link(
    request: Request,
    verify_data: VerifyMagicLinkRequest,
    db: Session = Depends(get_db),
):
    logger.info("verify_magic_link: Entry")

    try:
        result = AuthService().verify_magic_link(db, verify_data.token)
        logger.info("verify_magic_link: Success")
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"verify_magic_link: Failure - {e}")
        raise HTTPException(status_code=500, detail="Magic link verification failed")
