"""live quiz schema: admin, quiz, question, lobby, participant, answer

Revision ID: 5c1d7e2a9b30
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1d7e2a9b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'admin',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_admin_email', 'admin', ['email'], unique=True)

    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admin.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('text', sa.String(length=500), nullable=False),
        sa.Column('options', sa.Text(), nullable=False),
        sa.Column('correct_option_id', sa.String(length=1), nullable=False),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
    )

    op.create_table(
        'lobby',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lobby_id', sa.String(length=16), nullable=False),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admin.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_lobby_lobby_id', 'lobby', ['lobby_id'], unique=True)

    op.create_table(
        'participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lobby_id', sa.String(length=16), sa.ForeignKey('lobby.lobby_id'), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('connection_id', sa.String(length=64), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('lobby_id', 'nickname', name='uq_participant_lobby_nickname'),
    )
    op.create_index('ix_participant_lobby_id', 'participant', ['lobby_id'])

    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lobby_id', sa.String(length=16), sa.ForeignKey('lobby.lobby_id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
        sa.Column('participant_id', sa.Integer(), sa.ForeignKey('participant.id'), nullable=False),
        sa.Column('option_id', sa.String(length=1), nullable=False),
        sa.Column('correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('lobby_id', 'question_id', 'participant_id', name='uq_answer_once'),
    )


def downgrade():
    op.drop_table('answer')
    op.drop_index('ix_participant_lobby_id', table_name='participant')
    op.drop_table('participant')
    op.drop_index('ix_lobby_lobby_id', table_name='lobby')
    op.drop_table('lobby')
    op.drop_table('question')
    op.drop_table('quiz')
    op.drop_index('ix_admin_email', table_name='admin')
    op.drop_table('admin')
