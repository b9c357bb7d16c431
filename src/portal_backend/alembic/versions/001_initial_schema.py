"""Initial schema: users, groups, permissions, notifications, activity log, media and account sharing

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

UUID = sa.Uuid(as_uuid=False)
JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated=True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=False),
        sa.Column('password', sa.String(255)),
        sa.Column('phone', sa.String(64)),
        sa.Column('bio', sa.Text()),
        sa.Column('image', sa.String(1024)),
        sa.Column('auth_type', sa.String(32), nullable=False, server_default='EMAIL'),
        sa.Column('status', sa.String(32), nullable=False, server_default='INACTIVE'),
        sa.Column('gender', sa.String(32)),
        sa.Column('country', sa.String(64)),
        sa.Column('language', sa.String(16), server_default='en'),
        sa.Column('timezone', sa.String(64), server_default='UTC'),
        sa.Column('theme', sa.String(16), server_default='system'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_protected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_trashed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sign_in_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)
    op.create_index('ix_user_user_name', 'user', ['user_name'], unique=True)

    op.create_table(
        'permission',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('codename', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('category', sa.String(64), nullable=False, server_default='general'),
    )
    op.create_index('ix_permission_codename', 'permission', ['codename'], unique=True)
    op.create_index('ix_permission_category', 'permission', ['category'])

    op.create_table(
        'group',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('codename', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_group_codename', 'group', ['codename'], unique=True)

    op.create_table(
        'group_permission',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(updated=False),
        sa.Column('group_id', UUID, sa.ForeignKey('group.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', UUID, sa.ForeignKey('permission.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('group_id', 'permission_id', name='group_permission_group_id_permission_id_key'),
    )
    op.create_index('ix_group_permission_group_id', 'group_permission', ['group_id'])
    op.create_index('ix_group_permission_permission_id', 'group_permission', ['permission_id'])

    op.create_table(
        'user_group',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', UUID, sa.ForeignKey('group.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('assigned_by_user_id', UUID, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.UniqueConstraint('user_id', 'group_id', name='user_group_user_id_group_id_key'),
    )
    op.create_index('ix_user_group_user_id', 'user_group', ['user_id'])
    op.create_index('ix_user_group_group_id', 'user_group', ['group_id'])

    op.create_table(
        'notification',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('user_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_by', UUID, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(32), nullable=False, server_default='info'),
        sa.Column('priority', sa.String(16), nullable=False, server_default='normal'),
        sa.Column('link', sa.String(1024)),
        sa.Column('read_at', sa.DateTime(timezone=True)),
        sa.Column('metadata', JSONType),
    )
    op.create_index('ix_notification_user_id', 'notification', ['user_id'])
    op.create_index('notification_user_read_idx', 'notification', ['user_id', 'read_at'])

    op.create_table(
        'activity_log',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(updated=False),
        sa.Column('user_id', UUID, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('level', sa.String(16), nullable=False, server_default='INFO'),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('action', sa.String(128)),
        sa.Column('module', sa.String(128)),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('user_agent', sa.String(1024)),
        sa.Column('endpoint', sa.String(1024)),
        sa.Column('method', sa.String(16)),
        sa.Column('status_code', sa.Integer()),
        sa.Column('request_id', sa.String(64)),
        sa.Column('duration_ms', sa.Integer()),
        sa.Column('metadata', JSONType),
        sa.Column('error_details', JSONType),
    )
    op.create_index('ix_activity_log_created_at', 'activity_log', ['created_at'])
    op.create_index('ix_activity_log_user_id', 'activity_log', ['user_id'])
    op.create_index('activity_log_user_created_idx', 'activity_log', ['user_id', 'created_at'])
    op.create_index('activity_log_module_action_idx', 'activity_log', ['module', 'action'])

    op.create_table(
        'media',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('user_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False, unique=True),
        sa.Column('original_name', sa.String(255), nullable=False),
        sa.Column('file_type', sa.String(32), nullable=False, server_default='other'),
        sa.Column('mime_type', sa.String(255), nullable=False),
        sa.Column('file_extension', sa.String(32)),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('storage_path', sa.String(1024), nullable=False),
        sa.Column('folder', sa.String(255), nullable=False, server_default='general'),
        sa.Column('access_key', sa.String(64)),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('title', sa.String(255)),
        sa.Column('alt_text', sa.String(1024)),
        sa.Column('description', sa.Text()),
        sa.Column('tags', JSONType),
        sa.Column('checksum_sha256', sa.String(64)),
        sa.Column('last_accessed', sa.DateTime(timezone=True)),
        sa.Column('metadata', JSONType),
    )
    op.create_index('ix_media_user_id', 'media', ['user_id'])
    op.create_index('ix_media_folder', 'media', ['folder'])
    op.create_index('ix_media_access_key', 'media', ['access_key'], unique=True)

    op.create_table(
        'media_folder',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(updated=False),
        sa.Column('user_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.UniqueConstraint('user_id', 'name', name='media_folder_user_id_name_key'),
    )
    op.create_index('ix_media_folder_user_id', 'media_folder', ['user_id'])

    op.create_table(
        'account_share',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('owner_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recipient_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('access_level', sa.String(32), nullable=False, server_default='view_only'),
        sa.Column('custom_permissions', JSONType),
        sa.Column('status', sa.String(32), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True)),
        sa.Column('last_accessed', sa.DateTime(timezone=True)),
        sa.Column('revoked_at', sa.DateTime(timezone=True)),
        sa.Column('note', sa.Text()),
        sa.UniqueConstraint('owner_id', 'recipient_id', name='account_share_owner_id_recipient_id_key'),
    )
    op.create_index('ix_account_share_owner_id', 'account_share', ['owner_id'])
    op.create_index('ix_account_share_recipient_id', 'account_share', ['recipient_id'])

    op.create_table(
        'account_share_invitation',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(),
        sa.Column('invitation_type', sa.String(16), nullable=False, server_default='share'),
        sa.Column('sender_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recipient_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE')),
        sa.Column('recipient_email', sa.String(320)),
        sa.Column('target_owner_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE')),
        sa.Column('access_level', sa.String(32), nullable=False, server_default='view_only'),
        sa.Column('custom_permissions', JSONType),
        sa.Column('message', sa.Text()),
        sa.Column('invitation_token', sa.String(128), nullable=False, unique=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('share_expires_at', sa.DateTime(timezone=True)),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True)),
        sa.Column('share_id', UUID, sa.ForeignKey('account_share.id', ondelete='SET NULL')),
    )
    op.create_index('ix_account_share_invitation_sender_id', 'account_share_invitation', ['sender_id'])
    op.create_index('ix_account_share_invitation_recipient_id', 'account_share_invitation', ['recipient_id'])
    op.create_index('ix_account_share_invitation_target_owner_id', 'account_share_invitation', ['target_owner_id'])
    op.create_index('account_share_invitation_recipient_email_idx', 'account_share_invitation', ['recipient_email'])

    op.create_table(
        'account_share_activity',
        sa.Column('id', UUID, primary_key=True),
        *_timestamps(updated=False),
        sa.Column('share_id', UUID, sa.ForeignKey('account_share.id', ondelete='CASCADE')),
        sa.Column('invitation_id', UUID, sa.ForeignKey('account_share_invitation.id', ondelete='CASCADE')),
        sa.Column('actor_id', UUID, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('owner_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE')),
        sa.Column('recipient_id', UUID, sa.ForeignKey('user.id', ondelete='CASCADE')),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('action_type', sa.String(16), nullable=False, server_default='info'),
        sa.Column('description', sa.Text()),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('user_agent', sa.String(1024)),
        sa.Column('metadata', JSONType),
    )
    for column in ('created_at', 'share_id', 'invitation_id', 'actor_id', 'owner_id', 'recipient_id'):
        op.create_index(f'ix_account_share_activity_{column}', 'account_share_activity', [column])


def downgrade() -> None:
    op.drop_table('account_share_activity')
    op.drop_table('account_share_invitation')
    op.drop_table('account_share')
    op.drop_table('media_folder')
    op.drop_table('media')
    op.drop_table('activity_log')
    op.drop_table('notification')
    op.drop_table('user_group')
    op.drop_table('group_permission')
    op.drop_table('group')
    op.drop_table('permission')
    op.drop_table('user')
