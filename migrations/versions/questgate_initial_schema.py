"""Catalog, review workflow and notification tables

Revision ID: questgate_001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'questgate_001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _content_columns(json_type):
    # Enum columns are stored as plain strings (native_enum=False)
    return [
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('is_validated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('draft_data', json_type, nullable=True),
        sa.Column('edit_reason', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('row_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    dialect = bind.dialect.name
    json_type = postgresql.JSONB(astext_type=sa.Text()) if dialect == 'postgresql' else sa.JSON()

    op.create_table(
        'user',
        *_timestamps(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'organization',
        *_timestamps(),
        *_content_columns(json_type),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('website_url', sa.String(length=512), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=512), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_organization_created_by', 'organization', ['created_by'])

    op.create_table(
        'expedition',
        *_timestamps(),
        *_content_columns(json_type),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('summary', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=512), nullable=True),
        sa.Column('organization_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_expedition_created_by', 'expedition', ['created_by'])
    op.create_index('ix_expedition_organization_id', 'expedition', ['organization_id'])
    op.create_index('ix_expedition_status_validated', 'expedition', ['status', 'is_validated'])

    op.create_table(
        'quest',
        *_timestamps(),
        *_content_columns(json_type),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('summary', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=512), nullable=True),
        sa.Column('link_url', sa.String(length=1000), nullable=True),
        sa.Column('xp_reward', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expedition_id', sa.String(length=36), nullable=True),
        sa.Column('organization_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['expedition_id'], ['expedition.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_quest_created_by', 'quest', ['created_by'])
    op.create_index('ix_quest_expedition_id', 'quest', ['expedition_id'])
    op.create_index('ix_quest_organization_id', 'quest', ['organization_id'])
    op.create_index('ix_quest_status_validated', 'quest', ['status', 'is_validated'])

    op.create_table(
        'mission',
        *_timestamps(),
        sa.Column('quest_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['quest_id'], ['quest.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_mission_quest_id', 'mission', ['quest_id'])

    op.create_table(
        'quest_progress',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('quest_id', sa.String(length=36), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['quest_id'], ['quest.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'quest_id', name='uq_progress_user_quest'),
    )
    op.create_index('ix_quest_progress_user_id', 'quest_progress', ['user_id'])
    op.create_index('ix_quest_progress_quest_id', 'quest_progress', ['quest_id'])

    op.create_table(
        'edit_request',
        *_timestamps(),
        sa.Column('resource_type', sa.String(length=32), nullable=False),
        sa.Column('resource_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('data', json_type, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('reviewed_by_id', sa.String(length=36), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['user.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_edit_request_user_id', 'edit_request', ['user_id'])
    op.create_index('ix_edit_request_resource', 'edit_request', ['resource_type', 'resource_id'])
    op.create_index('ix_edit_request_status', 'edit_request', ['status'])

    op.create_table(
        'notification',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('link', sa.String(length=512), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_notification_user_id', 'notification', ['user_id'])

    op.create_table(
        'audit_log',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=128), nullable=False),
        sa.Column('entity_type', sa.String(length=128), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('meta', json_type, nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_audit_log_user_id', 'audit_log', ['user_id'])


def downgrade():
    op.drop_index('ix_audit_log_user_id', table_name='audit_log')
    op.drop_table('audit_log')
    op.drop_index('ix_notification_user_id', table_name='notification')
    op.drop_table('notification')
    op.drop_index('ix_edit_request_status', table_name='edit_request')
    op.drop_index('ix_edit_request_resource', table_name='edit_request')
    op.drop_index('ix_edit_request_user_id', table_name='edit_request')
    op.drop_table('edit_request')
    op.drop_index('ix_quest_progress_quest_id', table_name='quest_progress')
    op.drop_index('ix_quest_progress_user_id', table_name='quest_progress')
    op.drop_table('quest_progress')
    op.drop_index('ix_mission_quest_id', table_name='mission')
    op.drop_table('mission')
    op.drop_index('ix_quest_status_validated', table_name='quest')
    op.drop_index('ix_quest_organization_id', table_name='quest')
    op.drop_index('ix_quest_expedition_id', table_name='quest')
    op.drop_index('ix_quest_created_by', table_name='quest')
    op.drop_table('quest')
    op.drop_index('ix_expedition_status_validated', table_name='expedition')
    op.drop_index('ix_expedition_organization_id', table_name='expedition')
    op.drop_index('ix_expedition_created_by', table_name='expedition')
    op.drop_table('expedition')
    op.drop_index('ix_organization_created_by', table_name='organization')
    op.drop_table('organization')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
