from sqlalchemy.orm import Session
from app.models.preferences import Preferences
from app.core.exceptions import FeatureNotAvailableError
from app.services import tier_policy
import logging

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    'default_duration',
    'banner_height',
    'font_size',
    'enable_sound_notifications',
    'shuffle_questions',
    'enable_spaced_repetition',
    'color_scheme',
    'custom_colors',
    'selected_categories',
)


class PreferencesService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_preferences(self, db: Session, principal_id: str) -> Preferences:
        """Get the principal's preferences, creating the default row on first read"""
        self.logger.info(f"get_preferences: Entry - principal: {principal_id}")

        try:
            preferences = db.query(Preferences).filter(Preferences.user_id == principal_id).first()
            if preferences:
                self.logger.info(f"get_preferences: Success - principal: {principal_id}")
                return preferences

            preferences = Preferences(user_id=principal_id, custom_colors=[], selected_categories=[])
            db.add(preferences)
            db.commit()
            db.refresh(preferences)

            self.logger.info(f"get_preferences: Created defaults - principal: {principal_id}")
            return preferences
        except Exception as e:
            db.rollback()
            self.logger.error(f"get_preferences: Failure - {e}")
            raise

    def update_preferences(self, db: Session, principal_id: str, updates: dict, tier: str = tier_policy.FREE) -> Preferences:
        """Merge the given fields into the principal's preferences. Custom colors are a premium feature."""
        self.logger.info(f"update_preferences: Entry - principal: {principal_id}, fields: {list(updates)}")

        if updates.get('custom_colors') and not tier_policy.has_feature(tier, 'custom_colors'):
            raise FeatureNotAvailableError('custom_colors', tier_policy.normalize_tier(tier))

        try:
            preferences = self.get_preferences(db, principal_id)
            for field, value in updates.items():
                if field in UPDATABLE_FIELDS and value is not None:
                    setattr(preferences, field, value)

            db.commit()
            db.refresh(preferences)

            self.logger.info(f"update_preferences: Success - principal: {principal_id}")
            return preferences
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_preferences: Failure - {e}")
            raise
