"""Tests for audit log CRUD."""

from datetime import timedelta

from finops_agent.core.timeutils import utcnow
from finops_agent.crud import audit_log as crud_audit_log
from finops_agent.schemas.execution import ExecutionResult


def _result(resource_id: str, success: bool = True, minutes_ago: int = 0) -> ExecutionResult:
    return ExecutionResult(
        resource_id=resource_id,
        resource_type="elastic_ips",
        resource_name=resource_id,
        action="release_eip",
        scenario_id="orphaned_eip",
        success=success,
        message="ok" if success else "boom",
        new_state={"released": True} if success else None,
        executed_at=utcnow() - timedelta(minutes=minutes_ago),
        duration_ms=5,
    )


class TestAuditLog:
    """Test appending and listing audit entries."""

    async def test_append(self, db_session):
        """Test that an entry keeps the result fields and the actor."""
        entry = await crud_audit_log.append_audit_entry(db_session, _result("eipalloc-1"), "alice")

        assert entry.id is not None
        assert entry.executed_by == "alice"
        assert entry.success is True
        assert entry.new_state == {"released": True}

    async def test_newest_first(self, db_session):
        """Test listing order."""
        await crud_audit_log.append_audit_entry(db_session, _result("old", minutes_ago=10), "agent")
        await crud_audit_log.append_audit_entry(db_session, _result("new"), "agent")

        entries = await crud_audit_log.list_audit_entries(db_session)

        assert [e.resource_id for e in entries] == ["new", "old"]

    async def test_filters(self, db_session):
        """Test resource and outcome filters."""
        await crud_audit_log.append_audit_entry(db_session, _result("a"), "agent")
        await crud_audit_log.append_audit_entry(db_session, _result("a", success=False), "agent")
        await crud_audit_log.append_audit_entry(db_session, _result("b"), "agent")

        by_resource = await crud_audit_log.list_audit_entries(db_session, resource_id="a")
        failed = await crud_audit_log.list_audit_entries(db_session, success=False)

        assert len(by_resource) == 2
        assert [e.message for e in failed] == ["boom"]
