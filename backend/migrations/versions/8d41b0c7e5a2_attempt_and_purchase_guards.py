"""one live attempt per user and period, one credit per purchase reference

Revision ID: 8d41b0c7e5a2
Revises: 3a7c9e1f2b64
Create Date: 2026-10-19 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8d41b0c7e5a2'
down_revision = '3a7c9e1f2b64'
branch_labels = None
depends_on = None

LIVE_ATTEMPT = "status IN ('ACTIVE', 'PAUSED', 'COMPLETED')"
PURCHASE = "type = 'PURCHASE'"


def upgrade():
    op.create_index(
        'uq_game_session_live_attempt', 'game_sessions', ['user_id', 'period_id'], unique=True,
        postgresql_where=sa.text(LIVE_ATTEMPT), sqlite_where=sa.text(LIVE_ATTEMPT),
    )
    op.create_index(
        'uq_wallet_tx_purchase_reference', 'wallet_transactions', ['user_id', 'reference'], unique=True,
        postgresql_where=sa.text(PURCHASE), sqlite_where=sa.text(PURCHASE),
    )


def downgrade():
    op.drop_index('uq_wallet_tx_purchase_reference', table_name='wallet_transactions')
    op.drop_index('uq_game_session_live_attempt', table_name='game_sessions')
