"""initial schema

Resource Store tables, recommendations, action audit log and settings.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_STATUS_CLAUSE = "status IN ('pending', 'approved', 'snoozed', 'scheduled')"


def _resource_columns() -> list[sa.Column]:
    """Columns shared by every resource table."""
    return [
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=True),
        sa.Column('region', sa.String(length=50), nullable=True),
        sa.Column('env', sa.String(length=50), nullable=True),
        sa.Column('optimization_policy', sa.String(length=20), nullable=False, server_default='recommend_only'),
        sa.Column('policy_locked', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('last_remediation', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('tags', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _create_resource_table(name: str, *columns: sa.Column) -> None:
    op.create_table(name, *_resource_columns(), *columns, sa.PrimaryKeyConstraint('id'))
    op.create_index(op.f(f'ix_{name}_account_id'), name, ['account_id'], unique=False)
    op.create_index(op.f(f'ix_{name}_env'), name, ['env'], unique=False)


RESOURCE_TABLES = (
    'instances',
    'autoscaling_groups',
    'rds_instances',
    'cache_clusters',
    'load_balancers',
    'lambda_functions',
    's3_buckets',
    'log_groups',
    'elastic_ips',
    'volumes',
    'snapshots',
)


def upgrade() -> None:
    """Create all tables and seed the execution settings row."""

    # 1. Resource Store
    _create_resource_table(
        'instances',
        sa.Column('instance_type', sa.String(length=50), nullable=False),
        sa.Column('state', sa.String(length=30), nullable=False, server_default='running'),
        sa.Column('avg_cpu_7d', sa.Float(), nullable=True),
        sa.Column('current_cpu', sa.Float(), nullable=True),
        sa.Column('avg_memory_7d', sa.Float(), nullable=True),
    )
    _create_resource_table(
        'autoscaling_groups',
        sa.Column('instance_type', sa.String(length=50), nullable=False),
        sa.Column('desired_capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('avg_utilization_7d', sa.Float(), nullable=True),
    )
    _create_resource_table(
        'rds_instances',
        sa.Column('instance_class', sa.String(length=50), nullable=False),
        sa.Column('engine', sa.String(length=30), nullable=True),
        sa.Column('state', sa.String(length=30), nullable=False, server_default='available'),
        sa.Column('multi_az', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('allocated_storage_gb', sa.Integer(), nullable=True),
        sa.Column('avg_cpu_7d', sa.Float(), nullable=True),
        sa.Column('current_cpu', sa.Float(), nullable=True),
        sa.Column('avg_connections_7d', sa.Float(), nullable=True),
    )
    _create_resource_table(
        'cache_clusters',
        sa.Column('node_type', sa.String(length=50), nullable=False),
        sa.Column('engine', sa.String(length=30), nullable=True),
        sa.Column('state', sa.String(length=30), nullable=False, server_default='available'),
        sa.Column('num_cache_nodes', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('avg_cpu_7d', sa.Float(), nullable=True),
        sa.Column('current_cpu', sa.Float(), nullable=True),
        sa.Column('avg_connections_7d', sa.Float(), nullable=True),
    )
    _create_resource_table(
        'load_balancers',
        sa.Column('lb_type', sa.String(length=20), nullable=False, server_default='application'),
        sa.Column('avg_request_count_7d', sa.Float(), nullable=True),
        sa.Column('current_request_count', sa.Float(), nullable=True),
        sa.Column('target_count', sa.Integer(), nullable=True),
        sa.Column('healthy_target_count', sa.Integer(), nullable=True),
    )
    _create_resource_table(
        'lambda_functions',
        sa.Column('runtime', sa.String(length=30), nullable=True),
        sa.Column('memory_mb', sa.Integer(), nullable=False, server_default='128'),
        sa.Column('timeout_seconds', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('invocations_7d', sa.Integer(), nullable=True),
        sa.Column('avg_duration_ms', sa.Float(), nullable=True),
        sa.Column('avg_memory_used_mb_7d', sa.Float(), nullable=True),
    )
    _create_resource_table(
        's3_buckets',
        sa.Column('size_gb', sa.Float(), nullable=True),
        sa.Column('versioning_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('lifecycle_rules', postgresql.JSON(astext_type=sa.Text()), nullable=True),
    )
    _create_resource_table(
        'log_groups',
        sa.Column('stored_gb', sa.Float(), nullable=True),
        sa.Column('retention_in_days', sa.Integer(), nullable=True),
    )
    _create_resource_table(
        'elastic_ips',
        sa.Column('public_ip', sa.String(length=45), nullable=True),
        sa.Column('associated_instance_id', sa.String(length=128), nullable=True),
    )
    _create_resource_table(
        'volumes',
        sa.Column('volume_type', sa.String(length=20), nullable=False, server_default='gp3'),
        sa.Column('size_gb', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('state', sa.String(length=30), nullable=False, server_default='in-use'),
        sa.Column('attached_instance_id', sa.String(length=128), nullable=True),
    )
    _create_resource_table(
        'snapshots',
        sa.Column('size_gb', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('source_volume_id', sa.String(length=128), nullable=True),
        sa.Column('state', sa.String(length=30), nullable=False, server_default='completed'),
    )

    # 2. Recommendations
    op.create_table(
        'recommendations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('detection_id', sa.String(length=300), nullable=False),
        sa.Column('scenario_id', sa.String(length=100), nullable=False),
        sa.Column('scenario_name', sa.String(length=255), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=128), nullable=False),
        sa.Column('resource_name', sa.String(length=255), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=True),
        sa.Column('region', sa.String(length=50), nullable=True),
        sa.Column('env', sa.String(length=50), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('impact_level', sa.String(length=20), nullable=False),
        sa.Column('risk_level', sa.String(length=20), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0'),
        sa.Column('current_monthly_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('potential_savings', sa.Float(), nullable=False, server_default='0'),
        sa.Column('details', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('snoozed_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('user_notes', sa.Text(), nullable=True),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('execution_result', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('last_detected_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=False, server_default='system'),
        sa.Column('actioned_by', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_recommendations_id'), 'recommendations', ['id'], unique=False)
    op.create_index(op.f('ix_recommendations_scenario_id'), 'recommendations', ['scenario_id'], unique=False)
    op.create_index(op.f('ix_recommendations_resource_type'), 'recommendations', ['resource_type'], unique=False)
    op.create_index(op.f('ix_recommendations_resource_id'), 'recommendations', ['resource_id'], unique=False)
    op.create_index(op.f('ix_recommendations_status'), 'recommendations', ['status'], unique=False)
    op.create_index(
        'uq_recommendations_open_resource_scenario',
        'recommendations',
        ['resource_id', 'scenario_id'],
        unique=True,
        postgresql_where=sa.text(OPEN_STATUS_CLAUSE),
        sqlite_where=sa.text(OPEN_STATUS_CLAUSE),
    )

    # 3. Action audit log
    op.create_table(
        'action_audit_log',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=128), nullable=False),
        sa.Column('resource_name', sa.String(length=255), nullable=True),
        sa.Column('scenario_id', sa.String(length=100), nullable=True),
        sa.Column('detection_id', sa.String(length=300), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('previous_state', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('new_state', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('executed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('executed_by', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_action_audit_log_id'), 'action_audit_log', ['id'], unique=False)
    op.create_index(op.f('ix_action_audit_log_action'), 'action_audit_log', ['action'], unique=False)
    op.create_index(op.f('ix_action_audit_log_resource_id'), 'action_audit_log', ['resource_id'], unique=False)
    op.create_index(op.f('ix_action_audit_log_executed_at'), 'action_audit_log', ['executed_at'], unique=False)

    # 4. Settings
    settings_table = op.create_table(
        'settings',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )
    op.bulk_insert(
        settings_table,
        [{'key': 'execution_settings', 'value': {'mode': 'manual', 'updated_at': None}}],
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('settings')

    op.drop_index(op.f('ix_action_audit_log_executed_at'), table_name='action_audit_log')
    op.drop_index(op.f('ix_action_audit_log_resource_id'), table_name='action_audit_log')
    op.drop_index(op.f('ix_action_audit_log_action'), table_name='action_audit_log')
    op.drop_index(op.f('ix_action_audit_log_id'), table_name='action_audit_log')
    op.drop_table('action_audit_log')

    op.drop_index('uq_recommendations_open_resource_scenario', table_name='recommendations')
    op.drop_index(op.f('ix_recommendations_status'), table_name='recommendations')
    op.drop_index(op.f('ix_recommendations_resource_id'), table_name='recommendations')
    op.drop_index(op.f('ix_recommendations_resource_type'), table_name='recommendations')
    op.drop_index(op.f('ix_recommendations_scenario_id'), table_name='recommendations')
    op.drop_index(op.f('ix_recommendations_id'), table_name='recommendations')
    op.drop_table('recommendations')

    for name in reversed(RESOURCE_TABLES):
        op.drop_index(op.f(f'ix_{name}_env'), table_name=name)
        op.drop_index(op.f(f'ix_{name}_account_id'), table_name=name)
        op.drop_table(name)
