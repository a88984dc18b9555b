"""initial inventory and compliance schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _account_fk(nullable: bool = False) -> sa.Column:
    return sa.Column('account_id', sa.Uuid(), nullable=nullable)


def _account_fk_constraint(table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ['account_id'], ['provider_accounts.id'],
        name=op.f(f'fk_{table}_account_id_provider_accounts'),
        ondelete='CASCADE',
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('provider_accounts',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('api_token', sa.String(length=1024), nullable=True),
    sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_evaluated_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_provider_accounts'))
    )

    op.create_table('account_events',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('event_id', sa.Integer(), nullable=False),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_id', sa.String(length=100), nullable=True),
    sa.Column('entity_type', sa.String(length=100), nullable=True),
    sa.Column('entity_label', sa.String(length=255), nullable=True),
    sa.Column('entity_url', sa.String(length=512), nullable=True),
    sa.Column('secondary_entity_id', sa.String(length=100), nullable=True),
    sa.Column('secondary_entity_type', sa.String(length=100), nullable=True),
    sa.Column('secondary_entity_label', sa.String(length=255), nullable=True),
    sa.Column('message', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('username', sa.String(length=255), nullable=True),
    sa.Column('duration', sa.Integer(), nullable=True),
    sa.Column('percent_complete', sa.Integer(), nullable=True),
    sa.Column('seen', sa.Boolean(), nullable=False),
    sa.Column('event_created', sa.DateTime(timezone=True), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('account_events'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_account_events')),
    sa.UniqueConstraint('account_id', 'event_id', name='uq_account_event')
    )
    op.create_index(op.f('ix_account_events_account_id'), 'account_events', ['account_id'], unique=False)
    op.create_index(op.f('ix_account_events_event_created'), 'account_events', ['event_created'], unique=False)

    op.create_table('resources',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('resource_type', sa.String(length=50), nullable=False),
    sa.Column('label', sa.String(length=255), nullable=True),
    sa.Column('region', sa.String(length=100), nullable=True),
    sa.Column('plan_type', sa.String(length=100), nullable=True),
    sa.Column('monthly_cost', sa.Numeric(precision=12, scale=4), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('specs', JSON_TYPE, nullable=False),
    sa.Column('provider_created_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('resources'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_resources')),
    sa.UniqueConstraint('account_id', 'resource_type', 'external_id', name='uq_resource_identity')
    )
    op.create_index(op.f('ix_resources_account_id'), 'resources', ['account_id'], unique=False)
    op.create_index(op.f('ix_resources_resource_type'), 'resources', ['resource_type'], unique=False)

    op.create_table('resource_relationships',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('source_id', sa.Uuid(), nullable=False),
    sa.Column('target_id', sa.Uuid(), nullable=False),
    sa.Column('relationship_type', sa.String(length=50), nullable=False),
    sa.Column('metadata', JSON_TYPE, nullable=False),
    sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('resource_relationships'),
    sa.ForeignKeyConstraint(['source_id'], ['resources.id'], name=op.f('fk_resource_relationships_source_id_resources'), ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['target_id'], ['resources.id'], name=op.f('fk_resource_relationships_target_id_resources'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_resource_relationships')),
    sa.UniqueConstraint('source_id', 'target_id', 'relationship_type', name='uq_resource_edge')
    )
    op.create_index(op.f('ix_resource_relationships_account_id'), 'resource_relationships', ['account_id'], unique=False)
    op.create_index(op.f('ix_resource_relationships_source_id'), 'resource_relationships', ['source_id'], unique=False)
    op.create_index(op.f('ix_resource_relationships_target_id'), 'resource_relationships', ['target_id'], unique=False)

    op.create_table('resource_snapshots',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('resource_id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('resource_type', sa.String(length=50), nullable=False),
    sa.Column('label', sa.String(length=255), nullable=True),
    sa.Column('region', sa.String(length=100), nullable=True),
    sa.Column('plan_type', sa.String(length=100), nullable=True),
    sa.Column('monthly_cost', sa.Numeric(precision=12, scale=4), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('specs', JSON_TYPE, nullable=False),
    sa.Column('diff', JSON_TYPE, nullable=True),
    sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('resource_snapshots'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_resource_snapshots'))
    )
    op.create_index(op.f('ix_resource_snapshots_account_id'), 'resource_snapshots', ['account_id'], unique=False)
    op.create_index('ix_resource_snapshots_resource_synced', 'resource_snapshots', ['resource_id', 'synced_at'], unique=False)

    op.create_table('cost_summaries',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('cost_date', sa.Date(), nullable=False),
    sa.Column('total_cost', sa.Numeric(precision=14, scale=4), nullable=False),
    sa.Column('resource_count', sa.Integer(), nullable=False),
    sa.Column('resource_breakdown', JSON_TYPE, nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('cost_summaries'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_cost_summaries')),
    sa.UniqueConstraint('account_id', 'cost_date', name='uq_cost_summary_day')
    )
    op.create_index(op.f('ix_cost_summaries_account_id'), 'cost_summaries', ['account_id'], unique=False)

    op.create_table('compliance_rules',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(nullable=True),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('resource_types', JSON_TYPE, nullable=False),
    sa.Column('condition_type', sa.String(length=100), nullable=False),
    sa.Column('condition_config', JSON_TYPE, nullable=False),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('is_builtin', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('compliance_rules'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_compliance_rules'))
    )
    op.create_index(op.f('ix_compliance_rules_account_id'), 'compliance_rules', ['account_id'], unique=False)

    op.create_table('compliance_results',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('rule_id', sa.Uuid(), nullable=False),
    sa.Column('resource_id', sa.Uuid(), nullable=True),
    sa.Column('subject', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('detail', sa.Text(), nullable=True),
    sa.Column('acknowledged', sa.Boolean(), nullable=False),
    sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('acknowledged_note', sa.Text(), nullable=True),
    sa.Column('acknowledged_by', sa.String(length=255), nullable=True),
    sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=False),
    _account_fk_constraint('compliance_results'),
    sa.ForeignKeyConstraint(['rule_id'], ['compliance_rules.id'], name=op.f('fk_compliance_results_rule_id_compliance_rules'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_compliance_results'))
    )
    op.create_index(op.f('ix_compliance_results_account_id'), 'compliance_results', ['account_id'], unique=False)
    op.create_index(op.f('ix_compliance_results_status'), 'compliance_results', ['status'], unique=False)
    op.create_index('ix_compliance_results_account_rule', 'compliance_results', ['account_id', 'rule_id'], unique=False)

    op.create_table('compliance_score_history',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('total_results', sa.Integer(), nullable=False),
    sa.Column('compliant_count', sa.Integer(), nullable=False),
    sa.Column('non_compliant_count', sa.Integer(), nullable=False),
    sa.Column('not_applicable_count', sa.Integer(), nullable=False),
    sa.Column('acknowledged_count', sa.Integer(), nullable=False),
    sa.Column('compliance_score', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.Column('total_rules_evaluated', sa.Integer(), nullable=False),
    sa.Column('rule_breakdown', JSON_TYPE, nullable=False),
    _account_fk_constraint('compliance_score_history'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_compliance_score_history'))
    )
    op.create_index('ix_score_history_account_evaluated', 'compliance_score_history', ['account_id', 'evaluated_at'], unique=False)

    op.create_table('resource_compliance_history',
    sa.Column('id', sa.Uuid(), nullable=False),
    _account_fk(),
    sa.Column('resource_id', sa.Uuid(), nullable=False),
    sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('results', JSON_TYPE, nullable=False),
    _account_fk_constraint('resource_compliance_history'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_resource_compliance_history'))
    )
    op.create_index(op.f('ix_resource_compliance_history_account_id'), 'resource_compliance_history', ['account_id'], unique=False)
    op.create_index('ix_resource_compliance_history_resource', 'resource_compliance_history', ['resource_id', 'evaluated_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('resource_compliance_history')
    op.drop_table('compliance_score_history')
    op.drop_table('compliance_results')
    op.drop_table('compliance_rules')
    op.drop_table('cost_summaries')
    op.drop_table('resource_snapshots')
    op.drop_table('resource_relationships')
    op.drop_table('resources')
    op.drop_table('account_events')
    op.drop_table('provider_accounts')
