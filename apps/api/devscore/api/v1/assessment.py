from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.api.v1.schemas import (
    AssessmentStatusRead,
    ProjectCreate,
    ProjectDeleted,
    ProjectRead,
    ProjectRename,
    RegenerateResponse,
)
from devscore.db.models import Project, ProjectAnalysis
from devscore.db.session import get_session
from devscore.services import assessment

router = APIRouter(prefix="/candidates/{candidate_id}", tags=["assessment"])


def _project_read(project: Project, analysis: Optional[ProjectAnalysis]) -> ProjectRead:
    return ProjectRead(
        id=project.id,
        candidate_id=project.candidate_id,
        name=project.name,
        repository_url=project.repository_url,
        project_type=project.project_type,
        description=project.description,
        tech_stack=project.tech_stack or [],
        saved_at=assessment.as_utc(project.saved_at),
        locked_until=assessment.as_utc(project.locked_until),
        is_locked=assessment.is_locked(project),
        lock_days_remaining=assessment.lock_days_remaining(project),
        analysis_status=analysis.status if analysis else None,
        score=analysis.score if analysis else None,
        strengths=(analysis.strengths or []) if analysis else [],
        areas_for_improvement=(analysis.areas_for_improvement or []) if analysis else [],
        code_organization=analysis.code_organization if analysis else None,
        error_message=analysis.error_message if analysis else None,
        retry_count=analysis.retry_count if analysis else 0,
    )


@router.post("/projects", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    candidate_id: int,
    body: ProjectCreate,
    session: AsyncSession = Depends(get_session),
):
    project, analysis = await assessment.create_project(
        session,
        candidate_id,
        name=body.name,
        repository_url=body.repository_url,
        project_type=body.project_type,
        description=body.description,
    )
    return _project_read(project, analysis)


@router.get("/projects", response_model=List[ProjectRead])
async def list_projects(candidate_id: int, session: AsyncSession = Depends(get_session)):
    rows = await assessment.list_projects(session, candidate_id)
    return [_project_read(p, a) for p, a in rows]


@router.get("/projects/{project_id}", response_model=ProjectRead)
async def get_project(candidate_id: int, project_id: int, session: AsyncSession = Depends(get_session)):
    project, analysis = await assessment.get_project(session, candidate_id, project_id)
    return _project_read(project, analysis)


@router.patch("/projects/{project_id}", response_model=ProjectRead)
async def rename_project(
    candidate_id: int,
    project_id: int,
    body: ProjectRename,
    session: AsyncSession = Depends(get_session),
):
    project, analysis = await assessment.rename_project(session, candidate_id, project_id, body.name)
    return _project_read(project, analysis)


@router.delete("/projects/{project_id}", response_model=ProjectDeleted)
async def delete_project(candidate_id: int, project_id: int, session: AsyncSession = Depends(get_session)):
    new_status = await assessment.delete_project(session, candidate_id, project_id)
    return ProjectDeleted(assessment_status=new_status)


@router.get("/assessment", response_model=AssessmentStatusRead)
async def get_assessment(candidate_id: int, session: AsyncSession = Depends(get_session)):
    summary = await assessment.get_assessment_status(session, candidate_id)
    return AssessmentStatusRead(**summary.__dict__)


@router.post("/assessment/regenerate", response_model=RegenerateResponse, status_code=status.HTTP_202_ACCEPTED)
async def regenerate(candidate_id: int, session: AsyncSession = Depends(get_session)):
    """Queue the candidate for a fresh report; only FAILED or missing analyses are re-run."""
    reset = await assessment.regenerate_report(session, candidate_id)
    candidate = await assessment.get_candidate(session, candidate_id)
    return RegenerateResponse(
        reset_analyses=reset,
        status=candidate.assessment_status,
        message="Report regeneration queued",
    )
