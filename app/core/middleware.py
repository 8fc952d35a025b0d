from datetime import datetime
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import MissingPrincipalError, UnauthorizedError
from app.core.principal import GuestPrincipal, Principal, UserPrincipal
from app.core.security import decode_access_token
from app.models.user import User
from app.services.subscription_service import SubscriptionService, effective_tier
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GUEST_HEADER = "X-Guest-Id"
GUEST_PARAM = "guestId"


def _user_principal(db: Session, payload: dict) -> UserPrincipal:
    """Tier comes from the stored account when there is one, else from the token claim"""
    user_id = payload["sub"]
    account = SubscriptionService().get_account(db, user_id)
    tier = effective_tier(account, datetime.utcnow()) if account else payload.get("tier", "free")
    return UserPrincipal(id=user_id, email=payload.get("email"), tier=tier)


async def _guest_id_from_request(request: Request) -> Optional[str]:
    """Guest id from the X-Guest-Id header, the guestId query parameter or a JSON body field"""
    guest_id = request.headers.get(GUEST_HEADER) or request.query_params.get(GUEST_PARAM)
    if guest_id:
        return guest_id

    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        try:
            body = await request.json()
        except Exception:
            return None
        if isinstance(body, dict) and isinstance(body.get(GUEST_PARAM), str):
            return body[GUEST_PARAM] or None
    return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> UserPrincipal:
    """
    Dependency for routes that require a registered user.
    Missing, expired or invalid tokens are rejected with 401.
    """
    logger.info("get_current_user: Entry")

    if credentials is None:
        raise UnauthorizedError()

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info(f"get_current_user: Failure - {e}")
        raise UnauthorizedError("Invalid or expired token")

    principal = _user_principal(db, payload)
    logger.info(f"get_current_user: Success - {principal.id}")
    return principal


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[UserPrincipal]:
    """The bearer user if a valid token is present, else None"""
    if credentials is None:
        return None
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info(f"get_optional_user: Ignoring invalid token - {e}")
        return None
    return _user_principal(db, payload)


async def get_principal(
    request: Request,
    user: Optional[UserPrincipal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Resolve the acting principal for routes that accept users or guests.

    A valid bearer token wins over any guest id. An invalid token counts as no
    token, after which a guest id is required.
    """
    if user is not None:
        request.state.principal_id = user.id
        return user

    guest_id = await _guest_id_from_request(request)
    if not guest_id:
        logger.info("get_principal: Failure - no token or guest id")
        raise MissingPrincipalError()

    if db.query(User.id).filter(User.id == guest_id).first() is not None:
        logger.warning(f"get_principal: Failure - guest id belongs to a registered user: {guest_id}")
        raise UnauthorizedError("Sign in to access this account")

    account = SubscriptionService().get_guest_account(db, guest_id)
    principal = GuestPrincipal(id=guest_id, tier=effective_tier(account, datetime.utcnow()))
    request.state.principal_id = guest_id
    logger.info(f"get_principal: Guest - {guest_id}, tier: {principal.tier}")
    return principal
