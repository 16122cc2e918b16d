"""initial schema: users, plans, contracts, messages

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_STATUS_PREDICATE = sa.text("status IN ('pending', 'approved')")


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('advisor_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('data_allowance', sa.String(length=50), nullable=False),
        sa.Column('minutes_allowance', sa.String(length=50), nullable=False),
        sa.Column('sms_allowance', sa.String(length=50), nullable=False),
        sa.Column('speed_4g', sa.String(length=50), nullable=False),
        sa.Column('speed_5g', sa.String(length=50), nullable=True),
        sa.Column('free_messaging', sa.Boolean(), nullable=False),
        sa.Column('free_social_media', sa.Boolean(), nullable=False),
        sa.Column('international_calling', sa.Boolean(), nullable=False),
        sa.Column('roaming', sa.Boolean(), nullable=False),
        sa.Column('segment', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('image_path', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['advisor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_plans_id', 'plans', ['id'])
    op.create_index('ix_plans_advisor_id', 'plans', ['advisor_id'])
    op.create_index('ix_plans_name', 'plans', ['name'])
    op.create_index('ix_plans_segment', 'plans', ['segment'])
    op.create_index('ix_plans_is_active', 'plans', ['is_active'])

    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('advisor_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('advisor_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.ForeignKeyConstraint(['advisor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_contracts_id', 'contracts', ['id'])
    op.create_index('ix_contracts_customer_id', 'contracts', ['customer_id'])
    op.create_index('ix_contracts_plan_id', 'contracts', ['plan_id'])
    op.create_index('ix_contracts_advisor_id', 'contracts', ['advisor_id'])
    op.create_index('ix_contracts_status', 'contracts', ['status'])
    op.create_index('ix_contracts_expires_at', 'contracts', ['expires_at'])
    # At most one pending or approved contract per customer
    op.create_index(
        'uq_contracts_one_open_per_customer',
        'contracts',
        ['customer_id'],
        unique=True,
        postgresql_where=OPEN_STATUS_PREDICATE,
        sqlite_where=OPEN_STATUS_PREDICATE,
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['author_id'], ['users.id']),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_id', 'messages', ['id'])
    op.create_index('ix_messages_author_id', 'messages', ['author_id'])
    op.create_index('ix_messages_contract_created', 'messages', ['contract_id', 'created_at', 'id'])


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_index('uq_contracts_one_open_per_customer', table_name='contracts')
    op.drop_table('contracts')
    op.drop_table('plans')
    op.drop_table('users')
