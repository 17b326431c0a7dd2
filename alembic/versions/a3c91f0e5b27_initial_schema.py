"""Initial schema: tenants, identity, audit log and people directory

Revision ID: a3c91f0e5b27
Revises:
Create Date: 2026-10-17 09:12:40.118204

This migration creates:
- tenants table (multi-tenant root)
- users and refresh_tokens tables (accounts and sessions)
- audit_logs table (append-only audit trail)
- persons, groups, group_memberships and documents tables (people directory)
- the seed "demo" tenant

Reference: https://alembic.sqlalchemy.org/en/latest/tutorial.html
"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a3c91f0e5b27'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEMO_TENANT_ID = uuid.UUID('00000000-0000-4000-8000-000000000001')

# JSONB on PostgreSQL, JSON elsewhere
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """
    Upgrade schema: create all tables and seed the demo tenant.

    Order matters:
    1. tenants (no dependencies)
    2. users, then refresh_tokens and audit_logs (depend on users/tenants)
    3. persons, groups (groups reference persons as leader and themselves as parent)
    4. group_memberships and documents (depend on persons/groups)
    """
    op.create_table(
        'tenants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subdomain', sa.String(length=100), nullable=False),
        sa.Column('schema_name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('settings', JSON_TYPE, nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('logo_url', sa.String(length=1000), nullable=True),
        sa.Column('user_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='tenants_pkey'),
        sa.UniqueConstraint('schema_name', name='uq_tenants_schema_name'),
    )
    op.create_index('ix_tenants_name', 'tenants', ['name'], unique=False)
    op.create_index('ix_tenants_subdomain', 'tenants', ['subdomain'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'], unique=False)
    op.create_index('ix_tenants_deleted_at', 'tenants', ['deleted_at'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=True),  # platform users have no tenant
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verification_token', sa.String(length=255), nullable=True),
        sa.Column('email_verification_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_reset_token', sa.String(length=255), nullable=True),
        sa.Column('password_reset_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('roles', JSON_TYPE, nullable=False),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_ip', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='users_tenant_id_fkey', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='users_pkey'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'], unique=False)
    op.create_index('ix_users_email_verification_token', 'users', ['email_verification_token'], unique=False)
    op.create_index('ix_users_password_reset_token', 'users', ['password_reset_token'], unique=False)
    op.create_index('ix_users_deleted_at', 'users', ['deleted_at'], unique=False)

    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='refresh_tokens_user_id_fkey', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='refresh_tokens_pkey'),
    )
    op.create_index('ix_refresh_tokens_token', 'refresh_tokens', ['token'], unique=True)
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'], unique=False)

    # Audit rows go with their tenant; deleting the acting user only clears the actor
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=100), nullable=True),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('old_values', JSON_TYPE, nullable=True),
        sa.Column('new_values', JSON_TYPE, nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='audit_logs_tenant_id_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='audit_logs_user_id_fkey', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='audit_logs_pkey'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'], unique=False)
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'], unique=False)
    op.create_index('ix_audit_logs_tenant_id_created_at', 'audit_logs', ['tenant_id', 'created_at'], unique=False)
    op.create_index('ix_audit_logs_user_id_created_at', 'audit_logs', ['user_id', 'created_at'], unique=False)

    # Email and national ID are unique across all tenants
    op.create_table(
        'persons',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=False),
        sa.Column('alternate_emails', JSON_TYPE, nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('alternate_phones', JSON_TYPE, nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=False),
        sa.Column('national_id', sa.String(length=20), nullable=False),
        sa.Column('national_id_type', sa.String(length=20), nullable=False),
        sa.Column('gender', sa.String(length=20), nullable=True),
        sa.Column('address', JSON_TYPE, nullable=False),
        sa.Column('emergency_contact', JSON_TYPE, nullable=False),
        sa.Column('preferred_language', sa.String(length=2), nullable=False, server_default='es'),
        sa.Column('communication_preferences', JSON_TYPE, nullable=False),
        sa.Column('photo_url', sa.String(length=1000), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('tags', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='persons_tenant_id_fkey', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='persons_pkey'),
    )
    op.create_index('ix_persons_tenant_id', 'persons', ['tenant_id'], unique=False)
    op.create_index('ix_persons_email', 'persons', ['email'], unique=True)
    op.create_index('ix_persons_national_id', 'persons', ['national_id'], unique=True)
    op.create_index('ix_persons_deleted_at', 'persons', ['deleted_at'], unique=False)

    op.create_table(
        'groups',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('parent_group_id', sa.Uuid(), nullable=True),
        sa.Column('leader_id', sa.Uuid(), nullable=True),
        sa.Column('max_members', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], name='groups_tenant_id_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_group_id'], ['groups.id'], name='groups_parent_group_id_fkey', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['leader_id'], ['persons.id'], name='groups_leader_id_fkey', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='groups_pkey'),
    )
    op.create_index('ix_groups_tenant_id', 'groups', ['tenant_id'], unique=False)
    op.create_index('ix_groups_parent_group_id', 'groups', ['parent_group_id'], unique=False)
    op.create_index('ix_groups_leader_id', 'groups', ['leader_id'], unique=False)
    op.create_index('ix_groups_deleted_at', 'groups', ['deleted_at'], unique=False)

    op.create_table(
        'group_memberships',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('group_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('added_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id'], name='group_memberships_person_id_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], name='group_memberships_group_id_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['added_by'], ['users.id'], name='group_memberships_added_by_fkey', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='group_memberships_pkey'),
        sa.UniqueConstraint('person_id', 'group_id', 'start_date', name='uq_group_memberships_person_group_start'),
    )
    op.create_index('ix_group_memberships_person_id', 'group_memberships', ['person_id'], unique=False)
    op.create_index('ix_group_memberships_group_id', 'group_memberships', ['group_id'], unique=False)
    op.create_index('ix_group_memberships_status', 'group_memberships', ['status'], unique=False)
    op.create_index('ix_group_memberships_added_by', 'group_memberships', ['added_by'], unique=False)
    op.create_index('ix_group_memberships_deleted_at', 'group_memberships', ['deleted_at'], unique=False)

    op.create_table(
        'documents',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id'], name='documents_person_id_fkey', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='documents_pkey'),
    )
    op.create_index('ix_documents_person_id', 'documents', ['person_id'], unique=False)
    op.create_index('ix_documents_type', 'documents', ['type'], unique=False)
    op.create_index('ix_documents_deleted_at', 'documents', ['deleted_at'], unique=False)

    # Seed tenant used by local development and the registration flow
    tenants = sa.table(
        'tenants',
        sa.column('id', sa.Uuid()),
        sa.column('name', sa.String()),
        sa.column('subdomain', sa.String()),
        sa.column('schema_name', sa.String()),
        sa.column('is_active', sa.Boolean()),
        sa.column('user_limit', sa.Integer()),
        sa.column('settings', JSON_TYPE),
    )
    op.bulk_insert(
        tenants,
        [
            {
                'id': DEMO_TENANT_ID,
                'name': 'Demo Academy',
                'subdomain': 'demo',
                'schema_name': 'public',
                'is_active': True,
                'user_limit': 100,
                'settings': {},
            }
        ],
    )


def downgrade() -> None:
    """
    Downgrade schema: drop all tables in reverse dependency order.

    WARNING: This will delete all data.
    """
    op.drop_table('documents')
    op.drop_table('group_memberships')
    op.drop_table('groups')
    op.drop_table('persons')
    op.drop_table('audit_logs')
    op.drop_table('refresh_tokens')
    op.drop_table('users')
    op.drop_table('tenants')
