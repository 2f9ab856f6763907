"""initial schema: users, plans, investments, commissions, withdrawals, kyc

Revision ID: 4c1f2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:41.503118

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1f2a9d7e10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(length=150), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False, unique=True),
        sa.Column('mobile', sa.String(length=20), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='USER'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('referral_code', sa.String(length=20), nullable=False, unique=True),
        sa.Column('referred_by', sa.String(length=20), nullable=True),
        sa.Column('wallet_balance', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('total_earnings', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('kyc_status',
                  sa.Enum('NOT_SUBMITTED', 'PENDING', 'APPROVED', 'REJECTED', name='kycstatus'),
                  nullable=False, server_default='NOT_SUBMITTED'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('wallet_balance >= 0', name='chk_wallet_non_negative'),
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_referred_by', 'users', ['referred_by'])
    op.create_index('idx_user_referral_code', 'users', ['referral_code'])

    op.create_table(
        'investment_plans',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('daily_roi', sa.Numeric(18, 2), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='chk_plan_amount_positive'),
        sa.CheckConstraint('duration > 0', name='chk_plan_duration_positive'),
    )

    op.create_table(
        'investments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('plan_id', sa.Integer(), sa.ForeignKey('investment_plans.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('daily_roi', sa.Numeric(18, 2), nullable=False),
        sa.Column('total_days', sa.Integer(), nullable=False),
        sa.Column('remaining_days', sa.Integer(), nullable=False),
        sa.Column('total_earned', sa.Numeric(18, 2), nullable=False, server_default=sa.text('0.00')),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_investments_user_id', 'investments', ['user_id'])
    op.create_index('ix_investments_plan_id', 'investments', ['plan_id'])
    op.create_index('uq_investment_user_plan_active', 'investments', ['user_id', 'plan_id'], unique=True,
                    sqlite_where=sa.text("status = 'ACTIVE'"),
                    postgresql_where=sa.text("status = 'ACTIVE'"))

    op.create_table(
        'commission_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('level', sa.Integer(), nullable=False, unique=True),
        sa.Column('percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('description', sa.String(length=120)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('level >= 1 AND level <= 20', name='chk_level_range'),
        sa.CheckConstraint('percentage > 0 AND percentage <= 100', name='chk_percentage_range'),
    )

    op.create_table(
        'referral_commissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('from_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('investment_id', sa.Integer(), sa.ForeignKey('investments.id'), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('investment_id', 'level', name='uq_commission_investment_level'),
        sa.CheckConstraint('amount >= 0', name='chk_commission_amount'),
    )
    op.create_index('ix_referral_commissions_user_id', 'referral_commissions', ['user_id'])
    op.create_index('ix_referral_commissions_from_user_id', 'referral_commissions', ['from_user_id'])
    op.create_index('ix_referral_commissions_investment_id', 'referral_commissions', ['investment_id'])

    op.create_table(
        'commission_payouts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('investment_id', sa.Integer(), sa.ForeignKey('investments.id'), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('levels_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text()),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_commission_payouts_user_id', 'commission_payouts', ['user_id'])
    op.create_index('idx_payout_status', 'commission_payouts', ['status'])

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('details', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('admin_remark', sa.String(length=255)),
        sa.Column('processed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_withdrawals_user_id', 'withdrawals', ['user_id'])
    op.create_index('idx_withdrawal_user_status', 'withdrawals', ['user_id', 'status'])
    op.create_index('uq_withdrawal_user_pending', 'withdrawals', ['user_id'], unique=True,
                    sqlite_where=sa.text("status = 'PENDING'"),
                    postgresql_where=sa.text("status = 'PENDING'"))

    op.create_table(
        'fund_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('method', sa.String(length=50), nullable=False),
        sa.Column('transaction_id', sa.String(length=120)),
        sa.Column('screenshot', sa.String(length=255)),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('admin_remark', sa.String(length=255)),
        sa.Column('processed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_fund_requests_user_id', 'fund_requests', ['user_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('description', sa.String(length=255)),
        sa.Column('reference_id', sa.String(length=64)),
        sa.Column('metadata', sa.JSON()),
        *_timestamps(),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_reference_id', 'transactions', ['reference_id'])
    op.create_index('idx_transaction_reference_type', 'transactions', ['reference_id', 'type'])

    op.create_table(
        'kyc_documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('aadhar_number', sa.String(length=12), nullable=False),
        sa.Column('pan_number', sa.String(length=10), nullable=False),
        sa.Column('nominee_name', sa.String(length=150), nullable=False),
        sa.Column('nominee_relation', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('admin_remark', sa.String(length=255)),
        sa.Column('submitted_at', sa.DateTime(timezone=True)),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('reviewed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_kyc_documents_user_id', 'kyc_documents', ['user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=150), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade():
    for table in ('notifications', 'kyc_documents', 'transactions', 'fund_requests', 'withdrawals',
                  'commission_payouts', 'referral_commissions', 'commission_settings',
                  'investments', 'investment_plans', 'users'):
        op.drop_table(table)
    sa.Enum(name='kycstatus').drop(op.get_bind(), checkfirst=True)
