"""Tests for policy lock evaluation."""

import pytest

from finops_agent.models.resource import OptimizationPolicy, ResourceCategory
from finops_agent.schemas.resource import CacheClusterRecord, ResourceRecord, SnapshotRecord, VolumeRecord
from finops_agent.services import policy_lock
from tests.factories import make_instance_record


def _volume(**overrides) -> VolumeRecord:
    fields = {"id": "vol-1", "name": "data", "env": "prod", "volume_type": "gp2", "size_gb": 10, "state": "in-use"}
    fields.update(overrides)
    return VolumeRecord(**fields)


class TestIsPolicyLocked:
    """Test lock precedence."""

    def test_prod_locked_type_in_prod(self):
        """Test that compute resources in prod are locked."""
        record = make_instance_record(env="prod")

        assert policy_lock.is_policy_locked(record) is True
        assert policy_lock.get_lock_reason(record) == policy_lock.PRODUCTION_LOCK_REASON

    def test_prod_locked_type_outside_prod(self):
        """Test that the same type is unlocked in dev."""
        record = make_instance_record(env="dev")

        assert policy_lock.is_policy_locked(record) is False
        assert policy_lock.get_lock_reason(record) is None

    def test_always_toggleable_in_prod(self):
        """Test that storage types stay toggleable in prod."""
        record = _volume(env="prod")

        assert policy_lock.is_policy_locked(record) is False
        assert policy_lock.get_lock_reason(record) is None

    def test_manual_lock_wins(self):
        """Test that a manual lock applies even to always-toggleable types."""
        record = _volume(policy_locked=True)

        assert policy_lock.is_policy_locked(record) is True
        assert policy_lock.get_lock_reason(record) == policy_lock.MANUAL_LOCK_REASON

    def test_manual_lock_reason_before_production(self):
        """Test that a manually locked prod resource reports the manual reason."""
        record = make_instance_record(env="prod", policy_locked=True)

        assert policy_lock.get_lock_reason(record) == policy_lock.MANUAL_LOCK_REASON

    @pytest.mark.parametrize("env", [None, "", "production", "staging"])
    def test_only_exact_prod_env_locks(self, env):
        """Test that only env == 'prod' triggers production protection."""
        record = CacheClusterRecord(
            id="c-1", name="cache", env=env, node_type="cache.t3.small", state="available", num_cache_nodes=1
        )

        assert policy_lock.is_policy_locked(record) is False

    def test_snapshot_is_always_toggleable(self):
        """Test snapshots in prod."""
        record = SnapshotRecord(id="s-1", name="snap", env="prod", size_gb=5, state="completed")

        assert policy_lock.can_set_auto_safe(record) is True


class TestLockRule:
    """Test the lock rule over every category, environment and manual flag."""

    @pytest.mark.parametrize("locked", [True, False])
    @pytest.mark.parametrize("env", ["prod", "dev", None])
    @pytest.mark.parametrize("category", list(ResourceCategory))
    def test_every_combination(self, category, env, locked):
        """Test is_policy_locked and auto_safe validation agree with the rule."""
        record = ResourceRecord(category=category.value, id="r-1", name="r", env=env, policy_locked=locked)
        expected = locked or (
            env == policy_lock.PRODUCTION_ENV
            and category.value in policy_lock.PROD_LOCKED_TYPES
            and category.value not in policy_lock.ALWAYS_TOGGLEABLE_TYPES
        )

        first = policy_lock.is_policy_locked(record)
        second = policy_lock.is_policy_locked(record)
        validation = policy_lock.validate_policy_update(record, "auto_safe")

        assert first is expected
        assert second is first
        assert validation.valid is (not expected)
        assert policy_lock.validate_policy_update(record, "auto_safe") == validation
        assert (policy_lock.get_lock_reason(record) is None) is (not expected)
        assert record.policy_locked is locked


class TestValidatePolicyUpdate:
    """Test policy change validation."""

    def test_non_auto_safe_always_valid(self):
        """Test that moving away from auto_safe is never refused."""
        record = make_instance_record(env="prod", policy_locked=True)

        for policy in (OptimizationPolicy.RECOMMEND_ONLY, OptimizationPolicy.IGNORE):
            assert policy_lock.validate_policy_update(record, policy).valid is True

    def test_production_refused(self):
        """Test the production protection message."""
        result = policy_lock.validate_policy_update(make_instance_record(env="prod"), OptimizationPolicy.AUTO_SAFE)

        assert result.valid is False
        assert result.error == policy_lock.PRODUCTION_LOCK_ERROR

    def test_manual_lock_refused(self):
        """Test the manual lock message."""
        result = policy_lock.validate_policy_update(_volume(policy_locked=True), OptimizationPolicy.AUTO_SAFE)

        assert result.valid is False
        assert result.error == policy_lock.MANUAL_LOCK_ERROR

    def test_plain_string_policy(self):
        """Test that string policies compare like enum members."""
        result = policy_lock.validate_policy_update(make_instance_record(env="prod"), "auto_safe")

        assert result.valid is False

    def test_unlocked_accepted(self):
        """Test auto_safe on an unlocked dev instance."""
        result = policy_lock.validate_policy_update(make_instance_record(env="dev"), OptimizationPolicy.AUTO_SAFE)

        assert result.valid is True
        assert result.error is None


class TestPolicyLabels:
    """Test display helpers."""

    def test_labels(self):
        """Test labels for every policy."""
        assert policy_lock.get_policy_label("auto_safe") == "Auto-Safe"
        assert policy_lock.get_policy_label(OptimizationPolicy.RECOMMEND_ONLY) == "Recommend Only"
        assert policy_lock.get_policy_label("ignore") == "Ignore"

    def test_descriptions(self):
        """Test description lookup."""
        assert "approval" in policy_lock.get_policy_description("recommend_only")
