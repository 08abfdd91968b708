"""
Developer-facing project and assessment operations.

Project removal is a compensating action: it resets the candidate instead of
re-queueing analysis. Only ``regenerate_report`` re-arms failed analyses.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.core.error_handling import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from devscore.db.models import (
    MAX_PROJECTS_PER_CANDIDATE,
    AggregateReport,
    AssessmentStatus,
    Candidate,
    Project,
    ProjectAnalysis,
    ProjectAnalysisStatus,
    ProjectType,
)
from devscore.services.candidate_state import FAILED_DESCRIPTION, STATUS_DESCRIPTIONS, transition_candidate
from devscore.services.reporting import candidate_projects_with_analyses, get_report
from devscore.services.repository_content import parse_github_url

logger = logging.getLogger(__name__)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # sqlite hands back naive datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.timezone.utc)


def is_locked(project: Project, now: Optional[dt.datetime] = None) -> bool:
    locked_until = as_utc(project.locked_until)
    return locked_until is not None and locked_until > (now or utcnow())


def lock_days_remaining(project: Project, now: Optional[dt.datetime] = None) -> int:
    if not is_locked(project, now):
        return 0
    remaining = as_utc(project.locked_until) - (now or utcnow())
    return math.ceil(remaining.total_seconds() / 86400)


@dataclass
class AssessmentSummary:
    candidate_id: int
    status: AssessmentStatus
    description: str
    project_count: int
    analyzed_count: int
    pending_count: int
    failed_count: int
    has_report: bool
    overall_score: Optional[int]
    tech_stack: List[str] = field(default_factory=list)
    is_visible: bool = False
    visibility_reason: Optional[str] = None


async def get_candidate(session: AsyncSession, candidate_id: int) -> Candidate:
    candidate = await session.get(Candidate, candidate_id, populate_existing=True)
    if candidate is None:
        raise NotFoundError("Candidate", candidate_id)
    return candidate


async def count_projects(session: AsyncSession, candidate_id: int) -> int:
    result = await session.execute(select(func.count(Project.id)).where(Project.candidate_id == candidate_id))
    return int(result.scalar_one())


async def get_project(
    session: AsyncSession, candidate_id: int, project_id: int
) -> Tuple[Project, Optional[ProjectAnalysis]]:
    result = await session.execute(
        select(Project, ProjectAnalysis)
        .outerjoin(ProjectAnalysis, ProjectAnalysis.project_id == Project.id)
        .where(Project.id == project_id, Project.candidate_id == candidate_id)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Project", project_id)
    return row[0], row[1]


async def list_projects(session: AsyncSession, candidate_id: int) -> List[Tuple[Project, Optional[ProjectAnalysis]]]:
    await get_candidate(session, candidate_id)
    return await candidate_projects_with_analyses(session, candidate_id)


async def create_project(
    session: AsyncSession,
    candidate_id: int,
    name: str,
    repository_url: str,
    project_type: ProjectType,
    description: Optional[str] = None,
) -> Tuple[Project, ProjectAnalysis]:
    candidate = await get_candidate(session, candidate_id)

    if await count_projects(session, candidate_id) >= MAX_PROJECTS_PER_CANDIDATE:
        raise BadRequestError(f"Maximum {MAX_PROJECTS_PER_CANDIDATE} projects allowed per candidate")
    try:
        parse_github_url(repository_url)
    except ValueError as e:
        raise BadRequestError(str(e), details={"repository_url": repository_url}) from e

    repository_url = repository_url.strip().rstrip("/")
    existing = await session.execute(
        select(Project.id).where(Project.candidate_id == candidate_id, Project.repository_url == repository_url)
    )
    if existing.first() is not None:
        raise ConflictError("This repository has already been submitted")

    project = Project(
        candidate_id=candidate_id,
        name=name,
        repository_url=repository_url,
        project_type=project_type,
        description=description,
        tech_stack=[],
    )
    session.add(project)
    await session.flush()
    analysis = ProjectAnalysis(project_id=project.id, status=ProjectAnalysisStatus.PENDING, retry_count=0)
    session.add(analysis)

    if candidate.assessment_status in (AssessmentStatus.REGISTERING, AssessmentStatus.ASSESSED):
        await transition_candidate(session, candidate, AssessmentStatus.PROJECTS_SUBMITTED, reason="project submitted")

    await session.commit()
    await session.refresh(project)
    await session.refresh(analysis)
    logger.info(
        f"Project {project.id} submitted",
        extra={"candidate_id": candidate_id, "project_id": project.id},
    )
    return project, analysis


async def rename_project(
    session: AsyncSession, candidate_id: int, project_id: int, name: str
) -> Tuple[Project, Optional[ProjectAnalysis]]:
    """Only the display name is mutable, and it stays mutable while locked."""
    project, analysis = await get_project(session, candidate_id, project_id)
    project.name = name
    await session.commit()
    await session.refresh(project)
    return project, analysis


async def handle_project_removal(session: AsyncSession, candidate: Candidate) -> AssessmentStatus:
    """Reset the candidate after a project is gone. Does not commit."""
    remaining = await count_projects(session, candidate.id)
    if remaining == 0:
        await session.execute(delete(AggregateReport).where(AggregateReport.candidate_id == candidate.id))
        await transition_candidate(session, candidate, AssessmentStatus.REGISTERING, reason="last project removed")
    else:
        await transition_candidate(
            session, candidate, AssessmentStatus.PENDING_ANALYSIS, reason="project removed, report needs regeneration"
        )
    logger.info(
        "Compensated project removal",
        extra={"candidate_id": candidate.id, "remaining_projects": remaining},
    )
    return candidate.assessment_status


async def delete_project(session: AsyncSession, candidate_id: int, project_id: int) -> AssessmentStatus:
    candidate = await get_candidate(session, candidate_id)
    project, _ = await get_project(session, candidate_id, project_id)
    if is_locked(project):
        days = lock_days_remaining(project)
        raise ForbiddenError(
            f"Project is locked for {days} more days",
            details={"lock_days_remaining": days},
        )

    await session.execute(delete(ProjectAnalysis).where(ProjectAnalysis.project_id == project.id))
    await session.delete(project)
    await session.flush()
    status = await handle_project_removal(session, candidate)
    await session.commit()
    return status


async def regenerate_report(session: AsyncSession, candidate_id: int) -> int:
    """Re-arm FAILED or missing analyses and queue the candidate for a fresh report.

    COMPLETE analyses are left alone. Returns how many analyses were reset.
    """
    candidate = await get_candidate(session, candidate_id)
    rows = await candidate_projects_with_analyses(session, candidate_id)
    if not rows:
        raise BadRequestError("No projects to analyze")

    reset = 0
    for project, analysis in rows:
        if analysis is None:
            session.add(ProjectAnalysis(project_id=project.id, status=ProjectAnalysisStatus.PENDING, retry_count=0))
            reset += 1
        elif analysis.status == ProjectAnalysisStatus.FAILED:
            analysis.status = ProjectAnalysisStatus.PENDING
            analysis.retry_count = 0
            analysis.error_message = None
            analysis.score = None
            analysis.started_at = None
            reset += 1

    await transition_candidate(session, candidate, AssessmentStatus.PROJECTS_SUBMITTED, reason="report regeneration requested")
    await session.commit()
    logger.info(
        f"Report regeneration requested, {reset} analyses reset",
        extra={"candidate_id": candidate_id, "reset": reset},
    )
    return reset


async def get_assessment_status(session: AsyncSession, candidate_id: int) -> AssessmentSummary:
    candidate = await get_candidate(session, candidate_id)
    rows = await candidate_projects_with_analyses(session, candidate_id)
    report = await get_report(session, candidate_id)

    statuses = [a.status if a else None for _, a in rows]
    analyzed = statuses.count(ProjectAnalysisStatus.COMPLETE)
    failed = statuses.count(ProjectAnalysisStatus.FAILED)
    pending = len(statuses) - analyzed - failed

    tech_stack: List[str] = []
    for project, _ in rows:
        for tech in project.tech_stack or []:
            if tech not in tech_stack:
                tech_stack.append(tech)

    status = candidate.assessment_status
    is_visible = status == AssessmentStatus.ASSESSED and report is not None
    visibility_reason = None
    if not is_visible:
        if not rows:
            visibility_reason = "Submit at least one project to become visible to organizations"
        elif failed:
            visibility_reason = "Analysis failed, regenerate the report to retry"
        elif status == AssessmentStatus.PENDING_ANALYSIS:
            visibility_reason = "Projects changed, regenerate the report to become visible again"
        else:
            visibility_reason = "Assessment has not completed yet"

    return AssessmentSummary(
        candidate_id=candidate_id,
        status=status,
        description=FAILED_DESCRIPTION if failed else STATUS_DESCRIPTIONS[status],
        project_count=len(rows),
        analyzed_count=analyzed,
        pending_count=pending,
        failed_count=failed,
        has_report=report is not None,
        overall_score=report.overall_score if report else None,
        tech_stack=tech_stack,
        is_visible=is_visible,
        visibility_reason=visibility_reason,
    )
