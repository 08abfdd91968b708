"""create assessment pipeline tables

Revision ID: ds_0001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'ds_0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'candidates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('first_name', sa.String(length=120), nullable=True),
        sa.Column('last_name', sa.String(length=120), nullable=True),
        sa.Column('email', sa.String(length=255), unique=True, nullable=True),
        sa.Column('assessment_status', sa.String(length=32), nullable=False, server_default='REGISTERING'),
        *_timestamps(),
    )

    op.create_table(
        'tech_experiences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stack_name', sa.String(length=100), nullable=False),
        sa.Column('months', sa.Integer(), nullable=False),
    )
    op.create_index(op.f('ix_tech_experiences_candidate_id'), 'tech_experiences', ['candidate_id'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('repository_url', sa.String(length=500), nullable=False),
        sa.Column('project_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tech_stack', sa.JSON(), nullable=False),
        sa.Column('saved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('candidate_id', 'repository_url', name='uq_projects_candidate_repository'),
    )
    op.create_index(op.f('ix_projects_candidate_id'), 'projects', ['candidate_id'])

    op.create_table(
        'project_analyses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('strengths', sa.JSON(), nullable=False),
        sa.Column('areas_for_improvement', sa.JSON(), nullable=False),
        sa.Column('code_organization', sa.Text(), nullable=True),
        sa.Column('raw_analysis', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f('ix_project_analyses_status'), 'project_analyses', ['status'])
    op.create_index(op.f('ix_project_analyses_created_at'), 'project_analyses', ['created_at'])

    op.create_table(
        'aggregate_reports',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('recommendation', sa.String(length=32), nullable=False),
        sa.Column('recommendation_reasons', sa.JSON(), nullable=False),
        sa.Column('junior_level', sa.String(length=32), nullable=False),
        sa.Column('junior_level_context', sa.Text(), nullable=True),
        sa.Column('technical_breakdown', sa.JSON(), nullable=True),
        sa.Column('risk_flags', sa.JSON(), nullable=False),
        sa.Column('authenticity_signal', sa.String(length=16), nullable=False),
        sa.Column('authenticity_explanation', sa.Text(), nullable=True),
        sa.Column('interview_questions', sa.JSON(), nullable=False),
        sa.Column('overall_score', sa.Integer(), nullable=False),
        sa.Column('score_band', sa.String(length=32), nullable=False),
        sa.Column('conclusion', sa.Text(), nullable=False, server_default=''),
        sa.Column('tech_proficiency', sa.JSON(), nullable=True),
        sa.Column('mentoring_needs', sa.JSON(), nullable=False),
        sa.Column('growth_potential', sa.Text(), nullable=True),
        sa.Column('raw_analysis', sa.JSON(), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'pipeline_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stage', sa.String(length=32), nullable=False, server_default='INVITED'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'candidate_id', name='uq_pipeline_org_candidate'),
    )
    op.create_index(op.f('ix_pipeline_entries_organization_id'), 'pipeline_entries', ['organization_id'])
    op.create_index(op.f('ix_pipeline_entries_candidate_id'), 'pipeline_entries', ['candidate_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_pipeline_entries_candidate_id'), table_name='pipeline_entries')
    op.drop_index(op.f('ix_pipeline_entries_organization_id'), table_name='pipeline_entries')
    op.drop_table('pipeline_entries')
    op.drop_table('aggregate_reports')
    op.drop_index(op.f('ix_project_analyses_created_at'), table_name='project_analyses')
    op.drop_index(op.f('ix_project_analyses_status'), table_name='project_analyses')
    op.drop_table('project_analyses')
    op.drop_index(op.f('ix_projects_candidate_id'), table_name='projects')
    op.drop_table('projects')
    op.drop_index(op.f('ix_tech_experiences_candidate_id'), table_name='tech_experiences')
    op.drop_table('tech_experiences')
    op.drop_table('candidates')
