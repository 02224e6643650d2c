"""Create commission engine tables

Revision ID: 20261001_000001
Revises: 
Create Date: 2026-10-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261001_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sponsor_id', sa.Integer(), nullable=True),
        sa.Column('rank', sa.String(20), nullable=False, server_default='bronze'),
        sa.Column('membership_tier', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('grace_periods_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('rank_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sponsor_id'], ['members.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('sponsor_id IS NULL OR sponsor_id != id', name='check_member_not_own_sponsor'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_members_sponsor_id', 'members', ['sponsor_id'])
    op.create_index('idx_member_sponsor_active', 'members', ['sponsor_id', 'is_active'])

    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('processing_fee', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('method', sa.String(20), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('entry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='check_payout_amount_positive'),
        sa.CheckConstraint('processing_fee >= 0', name='check_payout_fee_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payouts_member_id', 'payouts', ['member_id'])
    op.create_index('ix_payouts_period', 'payouts', ['period'])

    op.create_table(
        'payout_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('minimum_threshold', sa.DECIMAL(18, 2), nullable=False, server_default='50'),
        sa.Column('payment_method', sa.String(20), nullable=False, server_default='bank_transfer'),
        sa.Column('auto_payout', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('minimum_threshold > 0', name='check_payout_threshold_positive'),
        sa.UniqueConstraint('member_id'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'commission_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.String(128), nullable=False),
        sa.Column('source_member_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('event_type', sa.String(20), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['source_member_id'], ['members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='check_event_amount_positive'),
        sa.UniqueConstraint('event_id'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_commission_events_source_member_id', 'commission_events', ['source_member_id'])
    op.create_index('ix_commission_events_period', 'commission_events', ['period'])

    op.create_table(
        'commission_ledger',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('source_member_id', sa.Integer(), nullable=True),
        sa.Column('event_id', sa.String(128), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('rate', sa.DECIMAL(10, 4), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('cap_epoch', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('matured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payout_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['recipient_id'], ['members.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_member_id'], ['members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id'], ondelete='SET NULL'),
        sa.CheckConstraint('amount >= 0', name='check_ledger_amount_non_negative'),
        sa.CheckConstraint('level >= 0', name='check_ledger_level_non_negative'),
        sa.UniqueConstraint('idempotency_key'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_commission_ledger_recipient_id', 'commission_ledger', ['recipient_id'])
    op.create_index('ix_commission_ledger_event_id', 'commission_ledger', ['event_id'])
    op.create_index('ix_commission_ledger_status', 'commission_ledger', ['status'])
    op.create_index('ix_commission_ledger_period', 'commission_ledger', ['period'])
    op.create_index('ix_commission_ledger_payout_id', 'commission_ledger', ['payout_id'])
    op.create_index('idx_ledger_recipient_status', 'commission_ledger', ['recipient_id', 'status'])
    op.create_index('idx_ledger_recipient_epoch', 'commission_ledger', ['recipient_id', 'cap_epoch'])

    op.create_table(
        'earnings_cap_states',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('membership_tier', sa.String(20), nullable=True),
        sa.Column('current_plan_earnings', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('cap_limit', sa.DECIMAL(18, 2), nullable=True),
        sa.Column('warned', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('capped', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('warning_sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('cap_epoch', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('reset_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('current_plan_earnings >= 0', name='check_cap_earnings_non_negative'),
        sa.CheckConstraint('cap_limit IS NULL OR cap_limit > 0', name='check_cap_limit_positive'),
        sa.UniqueConstraint('member_id'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'rank_qualifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('personal_volume', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('direct_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('previous_rank', sa.String(20), nullable=False),
        sa.Column('computed_rank', sa.String(20), nullable=False),
        sa.Column('rank_achieved', sa.String(20), nullable=False),
        sa.Column('qualified', sa.Boolean(), nullable=False),
        sa.Column('demotion_pending', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('member_id', 'period', name='uq_rank_qualification_member_period'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rank_qualifications_member_id', 'rank_qualifications', ['member_id'])
    op.create_index('ix_rank_qualifications_period', 'rank_qualifications', ['period'])

    op.create_table(
        'rank_grace_periods',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('from_rank', sa.String(20), nullable=False),
        sa.Column('target_rank', sa.String(20), nullable=False),
        sa.Column('opened_period', sa.String(7), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rank_grace_periods_member_id', 'rank_grace_periods', ['member_id'])
    op.create_index('idx_grace_status_ends', 'rank_grace_periods', ['status', 'ends_at'])

    op.create_table(
        'member_volumes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('personal_volume', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('member_id', 'period', name='uq_member_volume_period'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_member_volumes_member_id', 'member_volumes', ['member_id'])


def downgrade() -> None:
    op.drop_index('ix_member_volumes_member_id', 'member_volumes')
    op.drop_table('member_volumes')

    op.drop_index('idx_grace_status_ends', 'rank_grace_periods')
    op.drop_index('ix_rank_grace_periods_member_id', 'rank_grace_periods')
    op.drop_table('rank_grace_periods')

    op.drop_index('ix_rank_qualifications_period', 'rank_qualifications')
    op.drop_index('ix_rank_qualifications_member_id', 'rank_qualifications')
    op.drop_table('rank_qualifications')

    op.drop_table('earnings_cap_states')

    op.drop_index('idx_ledger_recipient_epoch', 'commission_ledger')
    op.drop_index('idx_ledger_recipient_status', 'commission_ledger')
    op.drop_index('ix_commission_ledger_payout_id', 'commission_ledger')
    op.drop_index('ix_commission_ledger_period', 'commission_ledger')
    op.drop_index('ix_commission_ledger_status', 'commission_ledger')
    op.drop_index('ix_commission_ledger_event_id', 'commission_ledger')
    op.drop_index('ix_commission_ledger_recipient_id', 'commission_ledger')
    op.drop_table('commission_ledger')

    op.drop_index('ix_commission_events_period', 'commission_events')
    op.drop_index('ix_commission_events_source_member_id', 'commission_events')
    op.drop_table('commission_events')

    op.drop_table('payout_settings')

    op.drop_index('ix_payouts_period', 'payouts')
    op.drop_index('ix_payouts_member_id', 'payouts')
    op.drop_table('payouts')

    op.drop_index('idx_member_sponsor_active', 'members')
    op.drop_index('ix_members_sponsor_id', 'members')
    op.drop_table('members')
