"""Tests for policy lock enforcement."""

from finops_agent.crud.resource_store import ResourceStore
from finops_agent.services.policy_enforcement import enforce_policy_locks


class TestEnforcePolicyLocks:
    """Test demotion of locked auto_safe resources."""

    async def test_demotes_prod_and_manually_locked(self, db_session, instance, volume, orphaned_eip):
        """Test that only locked auto_safe resources are demoted."""
        await instance(env="prod", optimization_policy="auto_safe")
        await volume(env="prod", optimization_policy="auto_safe")
        await orphaned_eip(optimization_policy="auto_safe", policy_locked=True)
        store = ResourceStore(db_session)

        demoted = await enforce_policy_locks(store)

        assert demoted == {"elastic_ips": 1, "instances": 1}
        assert (await store.get("instances", "i-0001")).optimization_policy == "recommend_only"
        assert (await store.get("volumes", "vol-0001")).optimization_policy == "auto_safe"

    async def test_nothing_to_do(self, db_session, instance):
        """Test an unlocked store."""
        await instance(optimization_policy="auto_safe")

        assert await enforce_policy_locks(ResourceStore(db_session)) == {}
