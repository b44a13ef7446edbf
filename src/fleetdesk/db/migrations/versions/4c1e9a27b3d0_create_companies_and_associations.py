"""Create companies, profiles and the two association tables

Dispatcher and driver associations share one column layout. A row starts as
an unused invite code (invitee NULL, status 'pending') and becomes the
membership record once redeemed.

Revision ID: 4c1e9a27b3d0
Revises:
Create Date: 2026-10-18 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Alembic identifiers
revision = '4c1e9a27b3d0'
down_revision = None
branch_labels = None
depends_on = None


def _association_columns(invitee_column):
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'company_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('companies.id', ondelete='CASCADE'),
            nullable=False,
        ),
        # NULL until the invite code is redeemed
        sa.Column(invitee_column, sa.String(255), nullable=True),
        sa.Column('invite_code', sa.String(16), nullable=True),
        sa.Column('redeemed_code', sa.String(16), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('joined_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('invited_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    ]


def _association_indexes(table, prefix, invitee_column):
    op.create_index(f'ix_{table}_company_id', table, ['company_id'])
    op.create_index(f'ix_{table}_{invitee_column}', table, [invitee_column])
    op.create_index(f'ix_{table}_invite_code', table, ['invite_code'], unique=True)
    op.create_index(f'ix_{table}_redeemed_code', table, ['redeemed_code'])
    op.create_index(f'ix_{prefix}_company_status', table, ['company_id', 'status'])

    # At most one active membership per (company, invitee)
    op.create_index(
        f'ix_{prefix}_company_{invitee_column.replace("_id", "")}_active',
        table,
        ['company_id', invitee_column],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )


def upgrade():
    # --- companies -------------------------------------------------------
    op.create_table(
        'companies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_companies_owner_id', 'companies', ['owner_id'])

    # --- profiles --------------------------------------------------------
    # company_id is a denormalized "current company" pointer
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(50), nullable=False, server_default='owner'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column(
            'company_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('companies.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    # --- dispatcher associations -----------------------------------------
    op.create_table(
        'dispatcher_company_associations',
        *_association_columns('dispatcher_id'),
        sa.Column('fee_percentage', sa.Numeric(5, 2), nullable=False, server_default='12'),
        sa.CheckConstraint(
            'fee_percentage >= 0 AND fee_percentage <= 100',
            name='ck_dispatcher_assoc_fee_range',
        ),
    )
    _association_indexes('dispatcher_company_associations', 'dispatcher_assoc', 'dispatcher_id')

    # --- driver associations ---------------------------------------------
    op.create_table(
        'driver_company_associations',
        *_association_columns('driver_id'),
    )
    _association_indexes('driver_company_associations', 'driver_assoc', 'driver_id')


def downgrade():
    op.drop_table('driver_company_associations')
    op.drop_table('dispatcher_company_associations')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
    op.drop_index('ix_companies_owner_id', table_name='companies')
    op.drop_table('companies')
