"""initial tables

Revision ID: 0001
Revises:
Create Date: 2025-09-01

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

STATUSES = (
    'PENDING', 'APPROVAL_REQUESTED', 'APPROVED', 'CONFIRMED', 'MODIFICATION_REQUESTED',
    'MODIFICATION_APPROVED', 'CANCELLATION_REQUESTED', 'CANCELLED', 'REJECTED', 'DELETED',
)


def upgrade():
    schedule_status = sa.Enum(*STATUSES, name='schedulestatus')

    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        schedule_status.create(bind, checkfirst=True)

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(120), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('studios',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table('shooting_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table('studio_shooting_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('studio_id', sa.Integer(), sa.ForeignKey('studios.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shooting_type_id', sa.Integer(), sa.ForeignKey('shooting_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('studio_id', 'shooting_type_id', name='uq_studio_shooting_type'),
    )
    op.create_index('ix_sst_shooting_type', 'studio_shooting_types', ['shooting_type_id'])

    op.create_table('schedules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shoot_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('professor_name', sa.String(120), nullable=False),
        sa.Column('course_name', sa.String(255), nullable=True),
        sa.Column('course_code', sa.String(50), nullable=True),
        sa.Column('shooting_type', sa.String(100), nullable=False),
        sa.Column('studio_id', sa.Integer(), sa.ForeignKey('studios.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approval_status', schedule_status, nullable=False),
        sa.Column('previous_status', schedule_status, nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('break_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('break_start', sa.Time(), nullable=True),
        sa.Column('break_end', sa.Time(), nullable=True),
        sa.Column('break_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('schedule_group_id', sa.String(32), nullable=True),
        sa.Column('is_split', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_split_schedule', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('parent_schedule_id', sa.Integer(), sa.ForeignKey('schedules.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('segment_order', sa.Integer(), nullable=True),
        sa.Column('split_reason', sa.Text(), nullable=True),
        sa.Column('split_at', sa.DateTime(), nullable=True),
        sa.Column('deletion_reason', sa.String(30), nullable=True),
        sa.Column('modification_reason', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('requested_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_schedules_shoot_date', 'schedules', ['shoot_date'])
    op.create_index('ix_schedules_studio_id', 'schedules', ['studio_id'])
    op.create_index('ix_schedules_schedule_group_id', 'schedules', ['schedule_group_id'])
    op.create_index('ix_schedules_parent_schedule_id', 'schedules', ['parent_schedule_id'])
    op.create_index('ix_schedules_date_studio', 'schedules', ['shoot_date', 'studio_id'])

    op.create_table('schedule_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('schedule_id', sa.Integer(), sa.ForeignKey('schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('change_type', sa.String(30), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_name', sa.String(120), nullable=True),
        sa.Column('actor_role', sa.String(20), nullable=True),
        sa.Column('source', sa.String(30), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_schedule_history_schedule_id', 'schedule_history', ['schedule_id'])


def downgrade():
    op.drop_table('schedule_history')
    op.drop_table('schedules')
    op.drop_table('studio_shooting_types')
    op.drop_table('shooting_types')
    op.drop_table('studios')
    op.drop_table('users')

    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        sa.Enum(name='schedulestatus').drop(bind, checkfirst=True)
