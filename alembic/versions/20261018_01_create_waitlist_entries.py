"""create waitlist_entries with positions, referrals and milestones

Revision ID: waitlist_ranking_init
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'waitlist_ranking_init'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'waitlist_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('referral_code', sa.String(), nullable=False),
        sa.Column('referred_by', sa.String(), nullable=True),
        sa.Column('referral_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('milestones', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('notification_preferences', sa.JSON(), nullable=True),
        sa.Column('last_position_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_waitlist_entries_email', 'waitlist_entries', ['email'], unique=True)
    op.create_index('ix_waitlist_entries_referral_code', 'waitlist_entries', ['referral_code'], unique=True)
    op.create_index('ix_waitlist_entries_referred_by', 'waitlist_entries', ['referred_by'])
    op.create_index('ix_waitlist_entries_created_at', 'waitlist_entries', ['created_at'])


def downgrade():
    op.drop_index('ix_waitlist_entries_created_at', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_entries_referred_by', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_entries_referral_code', table_name='waitlist_entries')
    op.drop_index('ix_waitlist_entries_email', table_name='waitlist_entries')
    op.drop_table('waitlist_entries')
