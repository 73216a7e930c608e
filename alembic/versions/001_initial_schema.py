"""Deposit intents and transaction records.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Deposit intents
    op.create_table(
        'deposit_intents',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('network', sa.String(20), nullable=False),
        sa.Column('target_currency', sa.String(20), nullable=True),
        sa.Column('target_network', sa.String(20), nullable=True),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('memo', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('detection_mode', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deposit_intents_user_id', 'deposit_intents', ['user_id'])
    op.create_index(
        'ix_deposit_intents_status_created', 'deposit_intents', ['status', 'created_at']
    )

    # Transaction records (append-only)
    op.create_table(
        'deposit_transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('intent_id', sa.String(36), nullable=False),
        sa.Column('tx_hash', sa.String(255), nullable=False),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('confirmations', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['intent_id'], ['deposit_intents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tx_hash'),
    )
    op.create_index('ix_deposit_transactions_intent_id', 'deposit_transactions', ['intent_id'])


def downgrade() -> None:
    op.drop_index('ix_deposit_transactions_intent_id', table_name='deposit_transactions')
    op.drop_table('deposit_transactions')
    op.drop_index('ix_deposit_intents_status_created', table_name='deposit_intents')
    op.drop_index('ix_deposit_intents_user_id', table_name='deposit_intents')
    op.drop_table('deposit_intents')
