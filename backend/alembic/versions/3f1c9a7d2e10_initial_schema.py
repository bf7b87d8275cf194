"""initial_schema

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-10-19 09:12:44.218311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FREQUENCY = ('DAILY', 'WEEKLY', 'BIWEEKLY', 'MONTHLY', 'QUARTERLY', 'YEARLY', 'CUSTOM')
CUSTOM_UNIT = ('DAYS', 'WEEKS', 'MONTHS', 'YEARS')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def _recurring_table(name: str) -> None:
    op.create_table(name,
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('account_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('category_id', sa.Uuid(), nullable=True),
    sa.Column('amount', sa.Float(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('summary', sa.String(length=255), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('frequency', sa.Enum(*FREQUENCY, name='frequency'), nullable=False),
    sa.Column('custom_interval', sa.Integer(), nullable=True),
    sa.Column('custom_unit', sa.Enum(*CUSTOM_UNIT, name='customunit'), nullable=True),
    sa.Column('day_of_week_mask', sa.Integer(), nullable=False),
    sa.Column('day_of_month', sa.Integer(), nullable=True),
    sa.Column('start_date', sa.Date(), nullable=False),
    sa.Column('end_date', sa.Date(), nullable=True),
    sa.Column('next_occurrence', sa.Date(), nullable=False),
    sa.Column('last_generated_date', sa.Date(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    *_timestamps(),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name=f'fk_{name}_account_id_accounts', ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=f'pk_{name}')
    )
    op.create_index(f'ix_{name}_account_id', name, ['account_id'])
    op.create_index(f'ix_{name}_user_id', name, ['user_id'])
    op.create_index(f'ix_{name}_next_occurrence', name, ['next_occurrence'])
    op.create_index(f'ix_{name}_is_active', name, ['is_active'])


def _transaction_table(name: str, back_reference: str, rule_table: str) -> None:
    op.create_table(name,
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('account_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('category_id', sa.Uuid(), nullable=True),
    sa.Column('amount', sa.Float(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('summary', sa.String(length=255), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('date', sa.Date(), nullable=False),
    sa.Column(back_reference, sa.Uuid(), nullable=True),
    sa.Column('converted_amount', sa.Float(), nullable=True),
    sa.Column('exchange_rate', sa.Float(), nullable=True),
    sa.Column('account_currency', sa.String(length=3), nullable=True),
    sa.Column('rate_date', sa.Date(), nullable=True),
    *_timestamps(),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name=f'fk_{name}_account_id_accounts', ondelete='CASCADE'),
    sa.ForeignKeyConstraint([back_reference], [f'{rule_table}.id'], name=f'fk_{name}_{back_reference}_{rule_table}', ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id', name=f'pk_{name}'),
    sa.UniqueConstraint(back_reference, 'date', name=f'uq_{name}_{back_reference}_date')
    )
    op.create_index(f'ix_{name}_account_id', name, ['account_id'])
    op.create_index(f'ix_{name}_user_id', name, ['user_id'])
    op.create_index(f'ix_{name}_category_id', name, ['category_id'])
    op.create_index(f'ix_{name}_date', name, ['date'])
    op.create_index(f'ix_{name}_{back_reference}', name, [back_reference])


def upgrade() -> None:
    op.create_table('accounts',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('created_by', sa.Uuid(), nullable=False),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name='pk_accounts')
    )
    op.create_table('account_members',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('account_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('role', sa.Enum('OWNER', 'MEMBER', name='memberrole'), nullable=False),
    *_timestamps(),
    sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name='fk_account_members_account_id_accounts', ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name='pk_account_members'),
    sa.UniqueConstraint('account_id', 'user_id', name='uq_account_members_account_id_user_id')
    )
    op.create_index('ix_account_members_account_id', 'account_members', ['account_id'])
    op.create_index('ix_account_members_user_id', 'account_members', ['user_id'])

    _recurring_table('recurring_expenses')
    _recurring_table('recurring_incomes')
    _transaction_table('expenses', 'recurring_expense_id', 'recurring_expenses')
    _transaction_table('income_entries', 'recurring_income_id', 'recurring_incomes')


def downgrade() -> None:
    op.drop_table('income_entries')
    op.drop_table('expenses')
    op.drop_table('recurring_incomes')
    op.drop_table('recurring_expenses')
    op.drop_table('account_members')
    op.drop_table('accounts')
