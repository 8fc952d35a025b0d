from fastapi import APIRouter
from app.api.routes import auth, questions, preferences, templates, sessions, subscriptions, guest, stripe_webhook, contact

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(questions.router, prefix="/questions", tags=["questions"])
api_router.include_router(preferences.router, prefix="/preferences", tags=["preferences"])
api_router.include_router(templates.router, prefix="/templates", tags=["templates"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(subscriptions.router, prefix="/subscription", tags=["subscription"])
api_router.include_router(guest.router, prefix="/guest", tags=["guest"])
api_router.include_router(stripe_webhook.router, prefix="/stripe", tags=["stripe"])
api_router.include_router(contact.router, prefix="/contact", tags=["contact"])
