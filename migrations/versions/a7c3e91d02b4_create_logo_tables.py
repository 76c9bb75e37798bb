"""create quota, catalog, payment and reset token tables

Revision ID: a7c3e91d02b4
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7c3e91d02b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # quota records; column names match the Supabase table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('logosCreated', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column('logosLimit', sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column('subscription_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'subapp_credits',
        sa.Column('sub_app_id', sa.String(length=100), primary_key=True),
        sa.Column('logo_credits', sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column('description', sa.String(length=255), nullable=True),
    )

    op.create_table(
        'catalog_logos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('catalog_code', sa.String(length=20), nullable=False),
        sa.Column('logo_key_id', sa.String(length=255), nullable=False),
        sa.Column('image_data_uri', sa.Text(), nullable=False),
        sa.Column('parameters', sa.JSON(), nullable=True),
        sa.Column('original_company_name', sa.String(length=255), nullable=False),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_catalog_logos_catalog_code', 'catalog_logos', ['catalog_code'], unique=True)
    op.create_index('ix_catalog_logos_logo_key_id', 'catalog_logos', ['logo_key_id'], unique=True)
    op.create_index('ix_catalog_logos_created_by', 'catalog_logos', ['created_by'], unique=False)
    op.create_index('ix_catalog_logos_created_at', 'catalog_logos', ['created_at'], unique=False)

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('provider_response', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_payment_transactions_email', 'payment_transactions', ['email'], unique=False)
    op.create_index('ix_payment_transactions_provider_transaction_id', 'payment_transactions',
                    ['provider_transaction_id'], unique=True)

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('request_ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=256), nullable=True),
    )
    op.create_index('ix_password_reset_tokens_email', 'password_reset_tokens', ['email'], unique=False)
    op.create_index('ix_password_reset_tokens_token_hash', 'password_reset_tokens', ['token_hash'], unique=True)


def downgrade():
    op.drop_index('ix_password_reset_tokens_token_hash', table_name='password_reset_tokens')
    op.drop_index('ix_password_reset_tokens_email', table_name='password_reset_tokens')
    op.drop_table('password_reset_tokens')
    op.drop_index('ix_payment_transactions_provider_transaction_id', table_name='payment_transactions')
    op.drop_index('ix_payment_transactions_email', table_name='payment_transactions')
    op.drop_table('payment_transactions')
    op.drop_index('ix_catalog_logos_created_at', table_name='catalog_logos')
    op.drop_index('ix_catalog_logos_created_by', table_name='catalog_logos')
    op.drop_index('ix_catalog_logos_logo_key_id', table_name='catalog_logos')
    op.drop_index('ix_catalog_logos_catalog_code', table_name='catalog_logos')
    op.drop_table('catalog_logos')
    op.drop_table('subapp_credits')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
