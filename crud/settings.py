# crud/settings.py — the single settings record
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config import config
from database import commit
from models import SETTINGS_ID, LibrarySettings
from schemas import SettingsUpdate

logger = logging.getLogger(__name__)


async def get_settings(db: AsyncSession) -> LibrarySettings:
    """Return the settings record, creating it from the config seed on first use."""
    settings = await db.get(LibrarySettings, SETTINGS_ID)
    if settings is None:
        settings = LibrarySettings(
            id=SETTINGS_ID,
            default_loan_duration=config.default_loan_duration,
            max_books_per_member=config.max_books_per_member,
            fine_per_day=config.fine_per_day,
            theme="light",
            auto_notifications=False,
        )
        db.add(settings)
        await commit(db)
        await db.refresh(settings)
        logger.info("Default settings created")
    return settings


async def save_settings(db: AsyncSession, settings_data: SettingsUpdate) -> LibrarySettings:
    settings = await get_settings(db)
    changes = settings_data.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(settings, key, value)
    await commit(db)
    await db.refresh(settings)
    logger.info("Settings saved | fields=%s", sorted(changes))
    return settings
