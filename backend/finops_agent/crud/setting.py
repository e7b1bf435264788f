"""CRUD operations for persisted settings."""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.core.timeutils import as_utc, utcnow
from finops_agent.models.setting import EXECUTION_SETTINGS_KEY, Setting
from finops_agent.schemas.drift_tick import ExecutionMode

logger = structlog.get_logger()


async def get_setting(db: AsyncSession, key: str) -> Setting | None:
    """
    Get a setting by key.

    Args:
        db: Database session
        key: Setting key

    Returns:
        Setting or None if not found
    """
    result = await db.execute(
        select(Setting).where(Setting.key == key).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_setting(db: AsyncSession, key: str, value: dict) -> Setting:
    """
    Create or replace a setting. Last writer wins.

    Args:
        db: Database session
        key: Setting key
        value: JSON-serializable value

    Returns:
        Stored setting
    """
    setting = await get_setting(db, key)

    if setting:
        setting.value = value
    else:
        setting = Setting(key=key, value=value)
        db.add(setting)

    await db.commit()
    await db.refresh(setting)
    return setting


async def get_execution_mode(db: AsyncSession) -> tuple[ExecutionMode | None, datetime | None]:
    """
    Read the persisted execution mode.

    Returns:
        (mode, last_updated); mode is None when unset or unreadable
    """
    setting = await get_setting(db, EXECUTION_SETTINGS_KEY)
    if setting is None:
        return None, None

    raw_mode = (setting.value or {}).get("mode")
    try:
        mode = ExecutionMode(raw_mode)
    except ValueError:
        logger.warning("settings.invalid_execution_mode", value=raw_mode)
        return None, as_utc(setting.updated_at)

    return mode, as_utc(setting.updated_at)


async def set_execution_mode(db: AsyncSession, mode: ExecutionMode) -> Setting:
    """Persist the execution mode."""
    setting = await upsert_setting(
        db,
        EXECUTION_SETTINGS_KEY,
        {"mode": mode.value, "updated_at": utcnow().isoformat()},
    )
    logger.info("settings.execution_mode_updated", mode=mode.value)
    return setting
