"""Tests for settings CRUD."""

from finops_agent.crud import setting as crud_setting
from finops_agent.models.setting import EXECUTION_SETTINGS_KEY
from finops_agent.schemas.drift_tick import ExecutionMode


class TestExecutionMode:
    """Test persisted execution mode."""

    async def test_unset(self, db_session):
        """Test that an empty table has no mode."""
        mode, updated_at = await crud_setting.get_execution_mode(db_session)

        assert mode is None
        assert updated_at is None

    async def test_set_and_get(self, db_session):
        """Test that the last write wins."""
        await crud_setting.set_execution_mode(db_session, ExecutionMode.AUTOMATED)
        await crud_setting.set_execution_mode(db_session, ExecutionMode.MANUAL)

        mode, updated_at = await crud_setting.get_execution_mode(db_session)

        assert mode == ExecutionMode.MANUAL
        assert updated_at is not None
        assert updated_at.tzinfo is not None

    async def test_invalid_stored_mode(self, db_session):
        """Test that an unreadable stored value is treated as unset."""
        await crud_setting.upsert_setting(db_session, EXECUTION_SETTINGS_KEY, {"mode": "yolo"})

        mode, _ = await crud_setting.get_execution_mode(db_session)

        assert mode is None


class TestUpsertSetting:
    """Test generic settings storage."""

    async def test_replace(self, db_session):
        """Test that upsert replaces the existing value."""
        await crud_setting.upsert_setting(db_session, "banner", {"text": "hello"})
        await crud_setting.upsert_setting(db_session, "banner", {"text": "bye"})

        setting = await crud_setting.get_setting(db_session, "banner")

        assert setting.value == {"text": "bye"}

    async def test_missing(self, db_session):
        """Test reading a missing key."""
        assert await crud_setting.get_setting(db_session, "nope") is None
