"""Initial schema: users and payload-backed clinic records

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RECORD_TABLES = ("patients", "sessions", "medical_records", "clinic_settings", "financial_transactions")
SESSION_LINK_WHERE = "category = 'sessao' AND session_id IS NOT NULL"


def _record_columns():
    return [
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(36), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False, server_default='psicologo'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    for table in RECORD_TABLES:
        columns = _record_columns()
        if table == 'financial_transactions':
            columns += [
                sa.Column('category', sa.String(30), nullable=True),
                sa.Column('session_id', sa.String(36), nullable=True),
            ]
        op.create_table(table, *columns)
        op.create_index(f'ix_{table}_owner_id', table, ['owner_id'])
        op.create_index(f'ix_{table}_created_at', table, ['created_at'])

    op.create_index('ix_financial_transactions_category', 'financial_transactions', ['category'])
    op.create_index('ix_financial_transactions_session_id', 'financial_transactions', ['session_id'])
    op.create_index(
        'uq_financial_transactions_session_link',
        'financial_transactions',
        ['owner_id', 'session_id'],
        unique=True,
        sqlite_where=sa.text(SESSION_LINK_WHERE),
        postgresql_where=sa.text(SESSION_LINK_WHERE),
    )


def downgrade() -> None:
    op.drop_index('uq_financial_transactions_session_link', table_name='financial_transactions')
    for table in reversed(RECORD_TABLES):
        op.drop_table(table)
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
