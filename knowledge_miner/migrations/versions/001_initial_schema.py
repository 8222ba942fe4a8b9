"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text('CURRENT_TIMESTAMP')


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verification_token', sa.String(255), nullable=True),
        sa.Column('reset_token', sa.String(255), nullable=True),
        sa.Column('reset_token_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='users_username_key'),
        sa.UniqueConstraint('email', name='users_email_key'),
    )

    op.create_table('anonymous_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('video_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', name='anonymous_sessions_session_id_key'),
    )

    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('is_global', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('videos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('youtube_id', sa.String(20), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('channel', sa.Text(), nullable=True),
        sa.Column('duration', sa.String(20), nullable=True),
        sa.Column('publish_date', sa.String(50), nullable=True, comment='Display date, e.g. "January 5, 2024"'),
        sa.Column('thumbnail', sa.Text(), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('summary', postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column('views', sa.String(50), nullable=True),
        sa.Column('likes', sa.String(50), nullable=True),
        sa.Column('tags', postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('anonymous_session_id', sa.String(100), nullable=True),
        sa.Column('user_type', sa.String(20), nullable=False, server_default='registered',
                  comment='registered or anonymous'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('is_favorite', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timestamps', postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('rating IS NULL OR rating BETWEEN 1 AND 5', name='videos_rating_range'),
        sa.CheckConstraint("user_type IN ('registered', 'anonymous')", name='videos_user_type_check'),
    )

    op.create_table('collections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('collection_videos',
        sa.Column('collection_id', sa.Integer(), sa.ForeignKey('collections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('collection_id', 'video_id'),
    )

    op.create_table('saved_searches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('filters', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('qa_conversations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('anonymous_session_id', sa.String(100), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('messages', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('export_preferences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('default_format', sa.String(10), nullable=False, server_default='txt'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='export_preferences_user_id_key'),
        sa.CheckConstraint("default_format IN ('txt', 'csv', 'json')", name='export_preferences_format_check'),
    )

    # Embedding vectors are plain float8 arrays, ranked in the application
    op.create_table('embeddings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('videos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('content_type', sa.String(20), nullable=False,
                  comment='transcript, summary, note, conversation'),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', postgresql.ARRAY(sa.Float()), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('search_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('search_type', sa.String(20), nullable=False, server_default='semantic'),
        sa.Column('results_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('idx_videos_user_id', 'videos', ['user_id'])
    op.create_index('idx_videos_anonymous_session', 'videos', ['anonymous_session_id'])
    op.create_index('idx_videos_category', 'videos', ['category_id'])
    op.create_index('idx_embeddings_video_type', 'embeddings', ['video_id', 'content_type'])
    op.create_index('idx_embeddings_user_id', 'embeddings', ['user_id'])
    op.create_index('idx_qa_conversations_video', 'qa_conversations', ['video_id'])
    op.create_index('idx_search_history_user', 'search_history', ['user_id', 'created_at'])
    op.create_index('idx_anonymous_sessions_last_active', 'anonymous_sessions', ['last_active_at'])


def downgrade() -> None:
    op.drop_table('search_history')
    op.drop_table('embeddings')
    op.drop_table('export_preferences')
    op.drop_table('qa_conversations')
    op.drop_table('saved_searches')
    op.drop_table('collection_videos')
    op.drop_table('collections')
    op.drop_table('videos')
    op.drop_table('categories')
    op.drop_table('anonymous_sessions')
    op.drop_table('users')
