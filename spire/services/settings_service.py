"""Settings service: the panel's singleton configuration record."""

import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from spire.models.settings import SpireSettings

logger = logging.getLogger("spire.settings")


def generate_api_key() -> str:
    return f"spire_{secrets.token_urlsafe(32)}"


class SettingsService:
    """Find-or-create access to the settings singleton."""

    @staticmethod
    def get_settings(db: Session) -> SpireSettings:
        """Return the singleton, creating it with onboarding incomplete on first use."""
        existing = db.query(SpireSettings).order_by(SpireSettings.id).first()
        if existing:
            return existing
        record = SpireSettings(onboarding_complete=False)
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info("Created settings record")
        return record

    @staticmethod
    def update_settings(
        db: Session,
        onboarding_complete: Optional[bool] = None,
        api_key: Optional[str] = None,
    ) -> SpireSettings:
        """Apply a partial update; onboarding never goes back to incomplete."""
        record = SettingsService.get_settings(db)
        record.onboarding_complete = bool(onboarding_complete) or bool(record.onboarding_complete)
        record.api_key = api_key or record.api_key
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def set_api_key(db: Session, key: str) -> SpireSettings:
        record = SettingsService.get_settings(db)
        record.api_key = key
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def rotate_api_key(db: Session) -> str:
        """Generate and store a new API key. Returns the raw key."""
        key = generate_api_key()
        SettingsService.set_api_key(db, key)
        logger.info("Rotated panel API key")
        return key


settings_service = SettingsService()
