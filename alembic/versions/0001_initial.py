"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade():
    profile = lambda: [
        sa.Column('surname', sa.String(length=50), nullable=False),
        sa.Column('othernames', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('location', sa.String(length=100), nullable=False),
        sa.Column('address', sa.String(length=200), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
    ]

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        *profile(),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_user_id', 'users', ['user_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    op.create_table('user_temps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        *profile(),
        _created_at(),
        sa.UniqueConstraint('user_id', name='user_temps_user_id_key'),
    )
    op.create_index('ix_user_temps_email', 'user_temps', ['email'], unique=True)

    op.create_table('otps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('otp', sa.String(length=6), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index('ix_otps_email', 'otps', ['email'], unique=True)

    op.create_table('reset_otps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('otp', sa.String(length=6), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['email'], ['users.email'], ondelete='CASCADE'),
        sa.UniqueConstraint('email', name='reset_otps_email_key'),
    )

    op.create_table('wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', name='wallets_user_id_key'),
    )
    op.create_index('ix_wallets_wallet_id', 'wallets', ['wallet_id'], unique=True)

    op.create_table('transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('wallet_id', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('transaction_type', sa.String(length=10), nullable=False),
        sa.Column('payment_means', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='pending'),
        sa.Column('payment_reference', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('group_id', sa.String(length=64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.wallet_id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('transaction_id', name='transactions_transaction_id_key'),
        # one reference credits or debits once
        sa.UniqueConstraint('payment_reference', name='transactions_payment_reference_key'),
    )
    op.create_index('ix_transactions_wallet_id', 'transactions', ['wallet_id'], unique=False)
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'], unique=False)
    op.create_index('ix_transactions_status', 'transactions', ['status'], unique=False)
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'], unique=False)

    op.create_table('livestock',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('livestock_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('breed', sa.String(length=255), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('minimum_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['created_by'], ['users.user_id'], ondelete='SET NULL'),
        sa.UniqueConstraint('name', name='livestock_name_key'),
    )
    op.create_index('ix_livestock_livestock_id', 'livestock', ['livestock_id'], unique=True)
    op.create_index('ix_livestock_available', 'livestock', ['available'], unique=False)

    op.create_table('groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group_id', sa.String(length=64), nullable=False),
        sa.Column('livestock_id', sa.String(length=64), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('group_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('total_slot', sa.Integer(), nullable=False),
        sa.Column('slot_taken', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('slot_price', sa.Integer(), nullable=False),
        sa.Column('total_slot_left', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_slot_price_left', sa.Numeric(14, 2), nullable=False),
        sa.Column('final_slot_price_taken', sa.Numeric(14, 2), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=10), nullable=False, server_default='wallet'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['livestock_id'], ['livestock.livestock_id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('payment_reference', name='groups_payment_reference_key'),
    )
    op.create_index('ix_groups_group_id', 'groups', ['group_id'], unique=True)
    op.create_index('ix_groups_livestock_id', 'groups', ['livestock_id'], unique=False)
    op.create_index('ix_groups_created_by', 'groups', ['created_by'], unique=False)
    op.create_index('ix_groups_status', 'groups', ['status'], unique=False)
    op.create_index('ix_groups_created_at', 'groups', ['created_at'], unique=False)

    op.create_table('group_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('slots', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.group_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('group_id', 'user_id', name='uq_group_member'),
        sa.UniqueConstraint('payment_reference', name='group_members_payment_reference_key'),
    )
    op.create_index('ix_group_members_group_id', 'group_members', ['group_id'], unique=False)
    op.create_index('ix_group_members_user_id', 'group_members', ['user_id'], unique=False)

    op.create_table('pending_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=False),
        sa.Column('action_type', sa.String(length=20), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('payment_reference', name='pending_payments_payment_reference_key'),
    )
    op.create_index('ix_pending_payments_user_id', 'pending_payments', ['user_id'], unique=False)
    op.create_index('ix_pending_payments_action_type', 'pending_payments', ['action_type'], unique=False)
    op.create_index('ix_pending_payments_status', 'pending_payments', ['status'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('object_type', sa.String(length=128), nullable=True),
        sa.Column('object_id', sa.String(length=128), nullable=True),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['actor_id'], ['users.user_id'], ondelete='SET NULL'),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'], unique=False)


def downgrade():
    for table in (
        'audit_logs',
        'pending_payments',
        'group_members',
        'groups',
        'livestock',
        'transactions',
        'wallets',
        'reset_otps',
        'otps',
        'user_temps',
        'users',
    ):
        op.drop_table(table)
