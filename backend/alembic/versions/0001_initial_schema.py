"""initial schema: users, deposits, plan progress, referral rewards, withdrawals

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(18, 2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),
        sa.Column('referral_code', sa.String(64), nullable=True,
                  comment='Own 8-char code; legacy UUID codes are replaced once'),
        sa.Column('referred_by_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('referred_by_code', sa.String(64), nullable=True),
        sa.Column('referral_count', sa.Integer, server_default=sa.text('0'), nullable=False),
        sa.Column('balance', MONEY, server_default=sa.text('0'), nullable=False, comment='Withdrawable funds'),
        sa.Column('total_earned', MONEY, server_default=sa.text('0'), nullable=False,
                  comment='Monotonic sum of every balance credit'),
        *_timestamps(),
        sa.UniqueConstraint('referral_code', name='uq_users_referral_code'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referred_by_id', 'users', ['referred_by_id'])

    op.create_table(
        'deposits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('transaction_hash', sa.String(255), nullable=False),
        sa.Column('payment_proof_url', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_deposits_user_id', 'deposits', ['user_id'])
    op.create_index('ix_deposits_status', 'deposits', ['status'])
    op.create_index('ix_deposits_transaction_hash', 'deposits', ['transaction_hash'])
    # At most one pending deposit per user
    op.create_index(
        'uq_deposits_user_pending',
        'deposits',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'user_plan_progress',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('plan_amount', sa.Integer, nullable=False),
        sa.Column('profit', MONEY, server_default=sa.text('0'), nullable=False),
        sa.Column('round_count', sa.Integer, server_default=sa.text('0'), nullable=False),
        sa.Column('can_withdraw', sa.Boolean, server_default=sa.text('false'), nullable=False),
        sa.Column('last_round_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'plan_amount', name='uq_plan_progress_user_plan'),
    )
    op.create_index('ix_user_plan_progress_user_id', 'user_plan_progress', ['user_id'])

    op.create_table(
        'referral_rewards',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('referrer_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
                  comment='User who owns the referral code'),
        sa.Column('referred_user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
                  comment='User who registered with the code'),
        sa.Column('recipient_role', sa.String(20), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('plan_amount', sa.Integer, nullable=False),
        sa.Column('plan_type', sa.String(100), nullable=True, comment='Display label only'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('credited_at', sa.DateTime(timezone=True), nullable=True,
                  comment='Set once the amount has been added to the recipient balance'),
        *_timestamps(),
        # One reward of each kind per referral pair
        sa.UniqueConstraint('referrer_id', 'referred_user_id', 'recipient_role',
                            name='uq_referral_rewards_pair_role'),
    )
    op.create_index('ix_referral_rewards_referrer_id', 'referral_rewards', ['referrer_id'])
    op.create_index('ix_referral_rewards_referred_user_id', 'referral_rewards', ['referred_user_id'])
    op.create_index('ix_referral_rewards_status', 'referral_rewards', ['status'])

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('recipient_address', sa.String(255), nullable=False),
        sa.Column('top_up_amount', MONEY, nullable=False,
                  comment='Plan profit moved into balance to cover this request'),
        sa.Column('status', sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_withdrawals_user_id', 'withdrawals', ['user_id'])
    op.create_index('ix_withdrawals_status', 'withdrawals', ['status'])


def downgrade() -> None:
    op.drop_table('withdrawals')
    op.drop_table('referral_rewards')
    op.drop_table('user_plan_progress')
    op.drop_index('uq_deposits_user_pending', table_name='deposits')
    op.drop_table('deposits')
    op.drop_table('users')
