"""Add study_records and study_events tables

Revision ID: 3c7e91a2b5d4
Revises: 
Create Date: 2026-10-17 09:12:44.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7e91a2b5d4'
down_revision = None
branch_labels = None
depends_on = None


REPORT_STATUSES = (
    'NoReport', 'WaitingForQueue', 'Queued', 'InProgress',
    'ReportGenerated', 'Failed', 'Reviewed',
)


def upgrade():
    op.create_table(
        'study_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('archive_study_id', sa.String(length=64), nullable=False),
        sa.Column('study_instance_uid', sa.String(length=255), nullable=True),
        sa.Column('study_description', sa.String(length=255), nullable=True),
        sa.Column('study_date', sa.String(length=20), nullable=True),
        sa.Column('patient_id', sa.String(length=64), nullable=True),
        sa.Column('patient_name', sa.String(length=255), nullable=True),
        sa.Column('report_status', sa.Enum(*REPORT_STATUSES, name='report_status', native_enum=False, length=30),
                  nullable=False),
        sa.Column('report_queued_at', sa.DateTime(), nullable=True),
        sa.Column('report_generated_at', sa.DateTime(), nullable=True),
        sa.Column('generated_report_artifact_id', sa.String(length=64), nullable=True),
        sa.Column('report_generation_error', sa.Text(), nullable=True),
        sa.Column('report_generation_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('creator_id', sa.String(length=64), nullable=True),
        sa.Column('assigned_doctor_id', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('study_records', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_study_records_archive_study_id'), ['archive_study_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_study_records_study_instance_uid'), ['study_instance_uid'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_records_patient_id'), ['patient_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_records_report_status'), ['report_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_records_assigned_doctor_id'), ['assigned_doctor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_records_created_at'), ['created_at'], unique=False)

    op.create_table(
        'study_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('archive_study_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('status_before', sa.String(length=30), nullable=True),
        sa.Column('status_after', sa.String(length=30), nullable=True),
        sa.Column('artifact_id', sa.String(length=64), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('study_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_study_events_archive_study_id'), ['archive_study_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_events_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_events_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_study_events_created_at'), ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('study_events', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_study_events_created_at'))
        batch_op.drop_index(batch_op.f('ix_study_events_actor_id'))
        batch_op.drop_index(batch_op.f('ix_study_events_action'))
        batch_op.drop_index(batch_op.f('ix_study_events_archive_study_id'))
    op.drop_table('study_events')

    with op.batch_alter_table('study_records', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_study_records_created_at'))
        batch_op.drop_index(batch_op.f('ix_study_records_assigned_doctor_id'))
        batch_op.drop_index(batch_op.f('ix_study_records_report_status'))
        batch_op.drop_index(batch_op.f('ix_study_records_patient_id'))
        batch_op.drop_index(batch_op.f('ix_study_records_study_instance_uid'))
        batch_op.drop_index(batch_op.f('ix_study_records_archive_study_id'))
    op.drop_table('study_records')
