"""create chat widget tables

Revision ID: create_chat_tables_001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_chat_tables_001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    # Agents and brands
    op.create_table(
        'agents',
        *_timestamps(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('presence_status', sa.String(length=20), nullable=False, server_default='offline'),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agents_tenant_id', 'agents', ['tenant_id'])
    op.create_index('ix_agents_email', 'agents', ['email'])

    op.create_table(
        'brands',
        *_timestamps(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('widget_key', sa.String(length=100), nullable=False),
        sa.Column('primary_color', sa.String(length=7), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_brands_tenant_id', 'brands', ['tenant_id'])
    op.create_index('ix_brands_widget_key', 'brands', ['widget_key'], unique=True)

    op.create_table(
        'brand_agents',
        *_timestamps(),
        sa.Column('brand_id', sa.Integer(), sa.ForeignKey('brands.id'), nullable=False),
        sa.Column('agent_id', sa.Integer(), sa.ForeignKey('agents.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('assigned_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('brand_id', 'agent_id', name='uq_brand_agent')
    )
    op.create_index('ix_brand_agents_tenant_id', 'brand_agents', ['tenant_id'])
    op.create_index('ix_brand_agents_brand_id', 'brand_agents', ['brand_id'])
    op.create_index('ix_brand_agents_agent_id', 'brand_agents', ['agent_id'])
    op.create_index('ix_brand_agents_status', 'brand_agents', ['status'])

    # Visitors
    op.create_table(
        'visitors',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),

        # Profile
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),

        # Presence
        sa.Column('status', sa.String(length=30), nullable=False, server_default='idle'),
        sa.Column('is_typing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),

        # Tracking
        sa.Column('current_page', sa.Text(), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('device', sa.JSON(), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('last_activity', sa.DateTime(), nullable=True),
        sa.Column('session_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('messages_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('visits_count', sa.Integer(), nullable=False, server_default='1'),

        # Attribution
        sa.Column('source', sa.String(length=255), nullable=True),
        sa.Column('medium', sa.String(length=255), nullable=True),
        sa.Column('campaign', sa.String(length=255), nullable=True),
        sa.Column('content', sa.String(length=255), nullable=True),
        sa.Column('term', sa.String(length=255), nullable=True),
        sa.Column('keyword', sa.String(length=500), nullable=True),
        sa.Column('search_engine', sa.String(length=255), nullable=True),
        sa.Column('landing_page', sa.Text(), nullable=True),

        # Widget UI
        sa.Column('widget_status', sa.String(length=20), nullable=True),
        sa.Column('last_widget_update', sa.DateTime(), nullable=True),

        # Routing
        sa.Column('brand_id', sa.Integer(), sa.ForeignKey('brands.id'), nullable=True),
        sa.Column('assigned_agent_id', sa.Integer(), sa.ForeignKey('agents.id'), nullable=True),
        sa.Column('meta_data', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_visitors_tenant_id', 'visitors', ['tenant_id'])
    op.create_index('ix_visitors_session_id', 'visitors', ['session_id'])
    op.create_index('ix_visitors_status', 'visitors', ['status'])
    op.create_index('ix_visitors_last_activity', 'visitors', ['last_activity'])
    op.create_index('ix_visitors_brand_id', 'visitors', ['brand_id'])
    op.create_index('ix_visitors_assigned_agent_id', 'visitors', ['assigned_agent_id'])
    op.create_index('idx_visitor_tenant_status', 'visitors', ['tenant_id', 'status'])

    op.create_table(
        'visitor_messages',
        *_timestamps(),
        sa.Column('visitor_id', sa.String(length=36), sa.ForeignKey('visitors.id'), nullable=False),
        sa.Column('sender_type', sa.String(length=20), nullable=False, server_default='visitor'),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('sender_name', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(length=20), nullable=False, server_default='text'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('meta_data', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_visitor_messages_tenant_id', 'visitor_messages', ['tenant_id'])
    op.create_index('ix_visitor_messages_visitor_id', 'visitor_messages', ['visitor_id'])
    op.create_index('ix_visitor_messages_sender_type', 'visitor_messages', ['sender_type'])

    op.create_table(
        'visitor_activities',
        *_timestamps(),
        sa.Column('visitor_id', sa.String(length=36), sa.ForeignKey('visitors.id'), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('activity_type', sa.String(length=100), nullable=False),
        sa.Column('activity_data', sa.JSON(), nullable=True),
        sa.Column('page_url', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_visitor_activities_tenant_id', 'visitor_activities', ['tenant_id'])
    op.create_index('ix_visitor_activities_visitor_id', 'visitor_activities', ['visitor_id'])

    # Settings and AI knowledge
    op.create_table(
        'widget_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('ai_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('ai_personality', sa.String(length=50), nullable=False, server_default='friendly'),
        sa.Column('auto_transfer_keywords', sa.JSON(), nullable=True),
        sa.Column('welcome_message', sa.Text(), nullable=True),
        sa.Column('ai_welcome_message', sa.Text(), nullable=True),
        sa.Column('offline_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_widget_settings_tenant_id', 'widget_settings', ['tenant_id'], unique=True)

    op.create_table(
        'system_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('setting_key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_system_settings_setting_key', 'system_settings', ['setting_key'], unique=True)
    op.create_index('ix_system_settings_category', 'system_settings', ['category'])

    op.create_table(
        'knowledge_docs',
        *_timestamps(),
        sa.Column('brand_id', sa.Integer(), sa.ForeignKey('brands.id'), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=False, server_default='general'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_knowledge_docs_tenant_id', 'knowledge_docs', ['tenant_id'])
    op.create_index('ix_knowledge_docs_brand_id', 'knowledge_docs', ['brand_id'])

    # Hand-off audit trail
    op.create_table(
        'handoff_events',
        *_timestamps(),
        sa.Column('visitor_id', sa.String(length=36), sa.ForeignKey('visitors.id'), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('from_agent_id', sa.Integer(), nullable=True),
        sa.Column('to_agent_id', sa.Integer(), nullable=True),
        sa.Column('handoff_type', sa.String(length=30), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_handoff_events_tenant_id', 'handoff_events', ['tenant_id'])
    op.create_index('ix_handoff_events_visitor_id', 'handoff_events', ['visitor_id'])
    op.create_index('ix_handoff_events_to_agent_id', 'handoff_events', ['to_agent_id'])


def downgrade():
    # Drop tables, dependents first
    for table in (
        'handoff_events', 'knowledge_docs', 'system_settings', 'widget_settings',
        'visitor_activities', 'visitor_messages', 'visitors',
        'brand_agents', 'brands', 'agents',
    ):
        op.drop_table(table)
