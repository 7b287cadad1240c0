"""initial_performance_schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # Create sites table
    op.create_table(
        'sites',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('category_url', sa.String(2048), nullable=True),
        sa.Column('product_url', sa.String(2048), nullable=True),
        sa.Column('is_shopify', sa.Boolean(), nullable=False),
        sa.Column('monitoring_enabled', sa.Boolean(), nullable=False),
        sa.Column('page_types', sa.JSON(), nullable=True),
        sa.Column('device_types', sa.JSON(), nullable=True),
        sa.Column('runs_per_combination', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sites_id'), 'sites', ['id'], unique=False)
    op.create_index(op.f('ix_sites_url'), 'sites', ['url'], unique=False)
    op.create_index('ix_sites_monitoring_name', 'sites', ['monitoring_enabled', 'name'], unique=False)

    # Create scheduled_jobs table
    op.create_table(
        'scheduled_jobs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('site_id', sa.String(), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column(
            'status',
            sa.Enum('queued', 'running', 'completed', 'failed', name='jobstatus'),
            nullable=False,
        ),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('batch_id', sa.String(36), nullable=True),
        sa.Column('groups_attempted', sa.Integer(), nullable=True),
        sa.Column('groups_succeeded', sa.Integer(), nullable=True),
        sa.Column('celery_task_id', sa.String(128), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_scheduled_jobs_id'), 'scheduled_jobs', ['id'], unique=False)
    op.create_index(op.f('ix_scheduled_jobs_site_id'), 'scheduled_jobs', ['site_id'], unique=False)
    op.create_index(op.f('ix_scheduled_jobs_status'), 'scheduled_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_scheduled_jobs_batch_id'), 'scheduled_jobs', ['batch_id'], unique=False)
    op.create_index(op.f('ix_scheduled_jobs_celery_task_id'), 'scheduled_jobs', ['celery_task_id'], unique=False)
    op.create_index('idx_scheduled_jobs_site_status', 'scheduled_jobs', ['site_id', 'status'], unique=False)

    # Create performance_test_runs table (raw runs)
    op.create_table(
        'performance_test_runs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('site_id', sa.String(), nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=False),
        sa.Column('page_type', sa.String(20), nullable=False),
        sa.Column('page_url', sa.String(2048), nullable=False),
        sa.Column('device_type', sa.String(20), nullable=False),
        sa.Column('run_number', sa.Integer(), nullable=False),
        sa.Column('performance', sa.Float(), nullable=True),
        sa.Column('fcp', sa.Float(), nullable=True),
        sa.Column('lcp', sa.Float(), nullable=True),
        sa.Column('cls', sa.Float(), nullable=True),
        sa.Column('tbt', sa.Float(), nullable=True),
        sa.Column('tti', sa.Float(), nullable=True),
        sa.Column('ttfb', sa.Float(), nullable=True),
        sa.Column('speed_index', sa.Float(), nullable=True),
        sa.Column('page_weight', sa.Float(), nullable=True),
        sa.Column('request_count', sa.Float(), nullable=True),
        sa.Column('diagnostics', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_performance_test_runs_id'), 'performance_test_runs', ['id'], unique=False)
    op.create_index(op.f('ix_performance_test_runs_site_id'), 'performance_test_runs', ['site_id'], unique=False)
    op.create_index(op.f('ix_performance_test_runs_batch_id'), 'performance_test_runs', ['batch_id'], unique=False)
    op.create_index(
        'idx_test_runs_batch_group', 'performance_test_runs', ['batch_id', 'page_type', 'device_type'], unique=False
    )

    # Create performance_metrics table (medians)
    op.create_table(
        'performance_metrics',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('site_id', sa.String(), nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=True),
        sa.Column('page_type', sa.String(20), nullable=False),
        sa.Column('page_url', sa.String(2048), nullable=True),
        sa.Column('device_type', sa.String(20), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('run_count', sa.Integer(), nullable=False),
        sa.Column('performance', sa.Integer(), nullable=True),
        sa.Column('fcp', sa.Float(), nullable=True),
        sa.Column('lcp', sa.Float(), nullable=True),
        sa.Column('cls', sa.Float(), nullable=True),
        sa.Column('tbt', sa.Float(), nullable=True),
        sa.Column('tti', sa.Float(), nullable=True),
        sa.Column('ttfb', sa.Float(), nullable=True),
        sa.Column('speed_index', sa.Float(), nullable=True),
        sa.Column('page_weight', sa.Integer(), nullable=True),
        sa.Column('request_count', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_performance_metrics_id'), 'performance_metrics', ['id'], unique=False)
    op.create_index(op.f('ix_performance_metrics_site_id'), 'performance_metrics', ['site_id'], unique=False)
    op.create_index(op.f('ix_performance_metrics_batch_id'), 'performance_metrics', ['batch_id'], unique=False)
    op.create_index(op.f('ix_performance_metrics_timestamp'), 'performance_metrics', ['timestamp'], unique=False)
    op.create_index(
        'idx_metrics_site_page_device_ts',
        'performance_metrics',
        ['site_id', 'page_type', 'device_type', 'timestamp'],
        unique=False,
    )

    # Create third_party_scripts table
    op.create_table(
        'third_party_scripts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('domain', sa.String(512), nullable=False),
        sa.Column('vendor', sa.String(255), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('is_blocking', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('url'),
    )
    op.create_index(op.f('ix_third_party_scripts_id'), 'third_party_scripts', ['id'], unique=False)
    op.create_index(op.f('ix_third_party_scripts_domain'), 'third_party_scripts', ['domain'], unique=False)
    op.create_index(op.f('ix_third_party_scripts_category'), 'third_party_scripts', ['category'], unique=False)

    # Create third_party_script_detections table
    op.create_table(
        'third_party_script_detections',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('site_id', sa.String(), nullable=False),
        sa.Column('script_id', sa.String(), nullable=False),
        sa.Column('metric_id', sa.String(), nullable=True),
        sa.Column('page_type', sa.String(20), nullable=False),
        sa.Column('page_url', sa.String(2048), nullable=True),
        sa.Column('device_type', sa.String(20), nullable=False),
        sa.Column('transfer_size', sa.Float(), nullable=True),
        sa.Column('blocking_time', sa.Float(), nullable=True),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['script_id'], ['third_party_scripts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['metric_id'], ['performance_metrics.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_third_party_script_detections_id'), 'third_party_script_detections', ['id'], unique=False)
    op.create_index(
        op.f('ix_third_party_script_detections_site_id'), 'third_party_script_detections', ['site_id'], unique=False
    )
    op.create_index(
        op.f('ix_third_party_script_detections_script_id'), 'third_party_script_detections', ['script_id'], unique=False
    )
    op.create_index(
        op.f('ix_third_party_script_detections_metric_id'), 'third_party_script_detections', ['metric_id'], unique=False
    )
    op.create_index(
        op.f('ix_third_party_script_detections_detected_at'),
        'third_party_script_detections',
        ['detected_at'],
        unique=False,
    )
    op.create_index(
        'idx_script_detections_site_ts', 'third_party_script_detections', ['site_id', 'detected_at'], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('third_party_script_detections')
    op.drop_table('third_party_scripts')
    op.drop_table('performance_metrics')
    op.drop_table('performance_test_runs')
    op.drop_table('scheduled_jobs')
    op.drop_table('sites')
    sa.Enum(name='jobstatus').drop(op.get_bind(), checkfirst=True)
