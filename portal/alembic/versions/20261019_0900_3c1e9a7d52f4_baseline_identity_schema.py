"""baseline_identity_schema

Revision ID: 3c1e9a7d52f4
Revises:
Create Date: 2026-10-19 09:00:12.418305

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1e9a7d52f4'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _user_fk() -> sa.Column:
    return sa.Column('user_id', sa.BIGINT(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('mobile_number', sa.String(20), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('country_id', sa.INTEGER(), nullable=False, server_default='0'),
        sa.Column('type', sa.String(16), nullable=False, server_default='client'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('mobile_number', name='uq_users_mobile_number'),
        sa.CheckConstraint("type IN ('client', 'system')", name='ck_users_type'),
    )

    op.create_table(
        'user_passwords',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('salt', sa.String(64), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', name='uq_user_passwords_user_id'),
    )

    op.create_table(
        'tokens',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('value', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('value', name='uq_tokens_value'),
    )
    op.create_index('idx_tokens_user_id', 'tokens', ['user_id'])
    op.create_index('idx_tokens_expires_at', 'tokens', ['expires_at'])

    op.create_table(
        'tenants',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        sa.Column('company_guid', sa.String(50), nullable=False),
        sa.Column('company_name', sa.String(250), nullable=False),
        sa.Column('host', sa.String(250), nullable=True),
        sa.Column('bmrm_port', sa.INTEGER(), nullable=True),
        sa.Column('sg_biz_port', sa.INTEGER(), nullable=True),
        sa.Column('tally_sync_port', sa.INTEGER(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_guid', name='uq_tenants_company_guid'),
    )
    op.create_index('idx_tenants_company_name', 'tenants', ['company_name'])

    op.create_table(
        'user_tenant_mappings',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('tenant_id', sa.BIGINT(), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'tenant_id', name='uq_user_tenant_mappings_user_tenant'),
    )
    op.create_index('idx_user_tenant_mappings_tenant_id', 'user_tenant_mappings', ['tenant_id'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('code', name='uq_subscriptions_code'),
    )

    op.create_table(
        'features',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('permission', sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('permission', name='uq_features_permission'),
    )

    op.create_table(
        'user_feature_mappings',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('feature_id', sa.BIGINT(), sa.ForeignKey('features.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'feature_id', name='uq_user_feature_mappings_user_feature'),
    )
    op.create_index('idx_user_feature_mappings_feature_id', 'user_feature_mappings', ['feature_id'])

    op.create_table(
        'feature_subscription_mappings',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        sa.Column('feature_id', sa.BIGINT(), sa.ForeignKey('features.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscription_id', sa.BIGINT(), sa.ForeignKey('subscriptions.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'feature_id', 'subscription_id',
            name='uq_feature_subscription_mappings_feature_subscription',
        ),
    )
    op.create_index(
        'idx_feature_subscription_mappings_subscription_id',
        'feature_subscription_mappings',
        ['subscription_id'],
    )

    op.create_table(
        'user_subscription_mappings',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('subscription_id', sa.BIGINT(), sa.ForeignKey('subscriptions.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'user_id', 'subscription_id',
            name='uq_user_subscription_mappings_user_subscription',
        ),
    )
    op.create_index(
        'idx_user_subscription_mappings_subscription_id',
        'user_subscription_mappings',
        ['subscription_id'],
    )

    op.create_table(
        'user_subscription_histories',
        sa.Column('id', sa.BIGINT(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column('subscription_id', sa.BIGINT(), sa.ForeignKey('subscriptions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('renewal_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expiry_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('number_of_renewals', sa.INTEGER(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint(
            'user_id', 'subscription_id',
            name='uq_user_subscription_histories_user_subscription',
        ),
    )

    # Reserved rows that registration maps every new user to
    op.execute(
        "INSERT INTO tenants (company_guid, company_name) "
        "VALUES ('00000000-0000-0000-0000-000000000000', 'Default')"
    )
    op.execute("INSERT INTO subscriptions (name, code) VALUES ('Demo', 'demo')")


def downgrade() -> None:
    op.drop_table('user_subscription_histories')
    op.drop_index('idx_user_subscription_mappings_subscription_id', table_name='user_subscription_mappings')
    op.drop_table('user_subscription_mappings')
    op.drop_index('idx_feature_subscription_mappings_subscription_id', table_name='feature_subscription_mappings')
    op.drop_table('feature_subscription_mappings')
    op.drop_index('idx_user_feature_mappings_feature_id', table_name='user_feature_mappings')
    op.drop_table('user_feature_mappings')
    op.drop_table('features')
    op.drop_table('subscriptions')
    op.drop_index('idx_user_tenant_mappings_tenant_id', table_name='user_tenant_mappings')
    op.drop_table('user_tenant_mappings')
    op.drop_index('idx_tenants_company_name', table_name='tenants')
    op.drop_table('tenants')
    op.drop_index('idx_tokens_expires_at', table_name='tokens')
    op.drop_index('idx_tokens_user_id', table_name='tokens')
    op.drop_table('tokens')
    op.drop_table('user_passwords')
    op.drop_table('users')
