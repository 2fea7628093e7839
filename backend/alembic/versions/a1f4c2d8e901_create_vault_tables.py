"""Create vault tables (organizations, device registrations, recovery backups, projects, secrets, audit log)

Revision ID: a1f4c2d8e901
Revises:
Create Date: 2026-10-19T09:12:44.310551
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1f4c2d8e901'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False, server_default=''),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # --- organizations ---
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('private_key_encrypted', sa.Text(), nullable=False),
        sa.Column('key_derivation_salt', sa.Text(), nullable=False),
        sa.Column('encryption_iv', sa.Text(), nullable=False),
        sa.Column('mkdf_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('required_factors', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('factor_config', sa.JSON(), nullable=False),
        sa.Column('recovery_threshold', sa.Integer(), nullable=True, server_default='2'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_owner_id', 'organizations', ['owner_id'])
    op.create_index('ix_organizations_created_at', 'organizations', ['created_at'])
    op.create_index('idx_org_owner_created', 'organizations', ['owner_id', 'created_at'])

    # --- device_registrations ---
    op.create_table(
        'device_registrations',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('organization_id', sa.String(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('device_name', sa.String(255), nullable=False),
        sa.Column('device_fingerprint', sa.Text(), nullable=False),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('encrypted_device_key', sa.Text(), nullable=False),
        sa.Column('key_derivation_salt', sa.Text(), nullable=False),
        sa.Column('encryption_iv', sa.Text(), nullable=False),
        sa.Column('combination_salt', sa.Text(), nullable=True),
        sa.Column('pin_salt', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_device_registrations_organization_id', 'device_registrations', ['organization_id'])
    op.create_index('ix_device_registrations_user_id', 'device_registrations', ['user_id'])
    op.create_index('idx_device_org_user_active', 'device_registrations', ['organization_id', 'user_id', 'is_active'])

    # --- recovery_backups ---
    op.create_table(
        'recovery_backups',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('organization_id', sa.String(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('backup_type', sa.String(50), nullable=False),
        sa.Column('encrypted_backup', sa.Text(), nullable=False),
        sa.Column('backup_metadata', sa.JSON(), nullable=True),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_recovery_backups_organization_id', 'recovery_backups', ['organization_id'])
    op.create_index('ix_recovery_backups_user_id', 'recovery_backups', ['user_id'])

    # --- projects ---
    op.create_table(
        'projects',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('organization_id', sa.String(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('wrapped_symmetric_key', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_organization_id', 'projects', ['organization_id'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    # --- secrets ---
    op.create_table(
        'secrets',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('key_name', sa.String(255), nullable=False),
        sa.Column('ciphertext', sa.Text(), nullable=False),
        sa.Column('nonce', sa.Text(), nullable=False),
        sa.Column('auth_tag', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_secrets_project_id', 'secrets', ['project_id'])

    # --- audit_logs ---
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('event_type', sa.Enum(
            'ORG_CREATED', 'ORG_UPDATED', 'ORG_DELETED', 'DEVICE_REVOKED', 'KEYS_RETRIEVED',
            'PROJECT_CREATED', 'PROJECT_UPDATED', 'PROJECT_DELETED',
            name='auditeventtype',
        ), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_request_id', 'audit_logs', ['request_id'])
    op.create_index('idx_audit_org_timestamp', 'audit_logs', ['organization_id', 'timestamp'])
    op.create_index('idx_audit_event_timestamp', 'audit_logs', ['event_type', 'timestamp'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    sa.Enum(name='auditeventtype').drop(op.get_bind(), checkfirst=True)
    op.drop_table('secrets')
    op.drop_table('projects')
    op.drop_table('recovery_backups')
    op.drop_table('device_registrations')
    op.drop_table('organizations')
    op.drop_table('users')
