"""Create referral ledger schema

Revision ID: create_referral_ledger
Revises:
Create Date: 2026-10-19

Creates the attribution ledger, creator/CMO accounts, discount codes,
payout records, withdrawals, operation locks and the audit log. The
payments and profiles tables belong to checkout and are created here only
if the engine runs against its own database.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_referral_ledger'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _payout_table(name: str, key: str, target: str) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(key, sa.Uuid(), sa.ForeignKey(f'{target}.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payout_month', sa.Date(), nullable=False),
        sa.Column('total_paid_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(key, 'payout_month', name=f'uq_{name[:-1]}_month'),
    )
    op.create_index(f'ix_{name}_status', name, ['status'])


def upgrade() -> None:
    """Create referral ledger tables."""

    # ==================== Accounts ====================
    op.create_table(
        'cmo_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(200), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'creator_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(200), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False, unique=True),
        sa.Column('cmo_id', sa.Uuid(), sa.ForeignKey('cmo_accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('lifetime_paid_users', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_withdrawn', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('custom_commission_rate', sa.Numeric(6, 4), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_creator_accounts_cmo_id', 'creator_accounts', ['cmo_id'])

    op.create_table(
        'discount_codes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(30), nullable=False, unique=True),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creator_accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('paid_conversions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_discount_codes_creator_id', 'discount_codes', ['creator_id'])

    # ==================== Ledger ====================
    op.create_table(
        'payment_attributions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.String(100), nullable=False, unique=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=True),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creator_accounts.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('discount_code_id', sa.Uuid(), sa.ForeignKey('discount_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('original_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_applied', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('commission_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('tier', sa.String(50), nullable=False),
        sa.Column('payment_type', sa.String(20), nullable=False),
        sa.Column('payment_month', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_payment_attributions_user_id', 'payment_attributions', ['user_id'])
    op.create_index('ix_payment_attributions_creator_month', 'payment_attributions', ['creator_id', 'payment_month'])
    op.create_index('ix_payment_attributions_payment_month', 'payment_attributions', ['payment_month'])

    op.create_table(
        'user_attributions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, unique=True),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creator_accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('discount_code_id', sa.Uuid(), sa.ForeignKey('discount_codes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('referral_source', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_user_attributions_creator_id', 'user_attributions', ['creator_id'])

    # ==================== Payouts ====================
    _payout_table('creator_payouts', 'creator_id', 'creator_accounts')
    _payout_table('cmo_payouts', 'cmo_id', 'cmo_accounts')

    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creator_accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('fee_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('bank_details', sa.Text(), nullable=True),
        sa.Column('transaction_reference', sa.String(100), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.Uuid(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_withdrawal_requests_creator_status', 'withdrawal_requests', ['creator_id', 'status']
    )

    # ==================== Operations ====================
    op.create_table(
        'operation_locks',
        sa.Column('name', sa.String(100), primary_key=True),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('operator_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    # ==================== Checkout-owned ====================
    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.String(100), nullable=False, unique=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('enrollment_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('original_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('tier', sa.String(50), nullable=True),
        sa.Column('payment_type', sa.String(20), nullable=True),
        sa.Column('ref_creator', sa.String(20), nullable=True),
        sa.Column('discount_code', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'profiles',
        sa.Column('user_id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(200), nullable=True),
    )


def downgrade() -> None:
    """Drop referral ledger tables."""
    for table in (
        'profiles',
        'payments',
        'audit_logs',
        'operation_locks',
        'withdrawal_requests',
        'cmo_payouts',
        'creator_payouts',
        'user_attributions',
        'payment_attributions',
        'discount_codes',
        'creator_accounts',
        'cmo_accounts',
    ):
        op.drop_table(table)
