from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.db.models import (
    AggregateReport,
    AssessmentStatus,
    Candidate,
    Project,
    ProjectAnalysis,
    ProjectAnalysisStatus,
)
from devscore.services.analysis import HiringReportResult, request_hiring_report, summarize_projects_for_report
from devscore.services.candidate_state import ASSESSABLE, transition_candidate_if
from devscore.services.llm_client import LLMClient
from devscore.services.project_analysis import load_experience
from devscore.services.prompt_registry import hiring_report_prompt

logger = logging.getLogger(__name__)

REPORT_ELIGIBLE_STATUSES = (AssessmentStatus.PROJECTS_SUBMITTED, AssessmentStatus.ANALYZING)


async def candidate_projects_with_analyses(
    session: AsyncSession, candidate_id: int
) -> List[Tuple[Project, Optional[ProjectAnalysis]]]:
    result = await session.execute(
        select(Project, ProjectAnalysis)
        .outerjoin(ProjectAnalysis, ProjectAnalysis.project_id == Project.id)
        .where(Project.candidate_id == candidate_id)
        .order_by(Project.created_at, Project.id)
    )
    return [(row[0], row[1]) for row in result.all()]


def all_complete(rows: List[Tuple[Project, Optional[ProjectAnalysis]]]) -> bool:
    return bool(rows) and all(a is not None and a.status == ProjectAnalysisStatus.COMPLETE for _, a in rows)


def _report_values(candidate_id: int, report: HiringReportResult) -> dict:
    return {
        "candidate_id": candidate_id,
        "recommendation": report.recommendation.value,
        "recommendation_reasons": report.recommendation_reasons,
        "junior_level": report.junior_level.value,
        "junior_level_context": report.junior_level_context,
        "technical_breakdown": report.technical_breakdown,
        "risk_flags": report.risk_flags,
        "authenticity_signal": report.authenticity_signal.value,
        "authenticity_explanation": report.authenticity_explanation,
        "interview_questions": report.interview_questions,
        "overall_score": report.overall_score,
        "score_band": report.score_band.value,
        "conclusion": report.conclusion,
        "tech_proficiency": report.tech_proficiency,
        "mentoring_needs": report.mentoring_needs,
        "growth_potential": report.growth_potential,
        "raw_analysis": report.raw,
        "generated_at": dt.datetime.now(dt.timezone.utc),
    }


async def upsert_report(session: AsyncSession, candidate_id: int, report: HiringReportResult) -> None:
    """Insert or overwrite the candidate's single report row in one statement."""
    values = _report_values(candidate_id, report)
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(AggregateReport).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[AggregateReport.candidate_id],
        set_={k: getattr(stmt.excluded, k) for k in values if k != "candidate_id"},
    )
    await session.execute(stmt)


async def get_report(session: AsyncSession, candidate_id: int) -> Optional[AggregateReport]:
    result = await session.execute(
        select(AggregateReport)
        .where(AggregateReport.candidate_id == candidate_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def generate_aggregate_report(
    session: AsyncSession,
    candidate_id: int,
    llm: Optional[LLMClient] = None,
) -> Optional[AggregateReport]:
    """Build the hiring report once every project analysis is COMPLETE.

    Returns None when the preconditions do not hold, or when the candidate or
    its projects changed while the report was being written. Errors from the
    text-generation call propagate; the candidate is left untouched.
    """
    candidate = await session.get(Candidate, candidate_id, populate_existing=True)
    if candidate is None or candidate.assessment_status not in ASSESSABLE:
        return None
    status_before = candidate.assessment_status

    rows = await candidate_projects_with_analyses(session, candidate_id)
    if not all_complete(rows):
        logger.info(
            "Report preconditions not met",
            extra={"candidate_id": candidate_id, "project_count": len(rows)},
        )
        return None

    summaries = summarize_projects_for_report(
        [
            {
                "name": p.name,
                "project_type": p.project_type.value,
                "description": p.description,
                "score": a.score,
                "tech_stack": p.tech_stack,
                "strengths": a.strengths,
                "weaknesses": a.areas_for_improvement,
                "code_organization": a.code_organization,
            }
            for p, a in rows
        ]
    )
    candidate_name = " ".join(n for n in (candidate.first_name, candidate.last_name) if n)
    prompt = hiring_report_prompt(
        projects=summaries,
        candidate_name=candidate_name,
        experience=await load_experience(session, candidate_id),
    )

    project_ids = {p.id for p, _ in rows}
    report = await request_hiring_report(prompt, llm=llm)

    # Projects may have changed while the report was being written
    await session.rollback()
    moved = await transition_candidate_if(
        session, candidate_id, AssessmentStatus.ASSESSED, [status_before], reason="aggregate report generated"
    )
    current = await candidate_projects_with_analyses(session, candidate_id) if moved else []
    if not all_complete(current) or {p.id for p, _ in current} != project_ids:
        await session.rollback()
        logger.warning(
            "Discarding aggregate report, candidate changed during generation",
            extra={"candidate_id": candidate_id},
        )
        return None

    await upsert_report(session, candidate_id, report)
    await session.commit()

    logger.info(
        f"Aggregate report generated for candidate {candidate_id}",
        extra={
            "candidate_id": candidate_id,
            "overall_score": report.overall_score,
            "recommendation": report.recommendation.value,
        },
    )
    return await get_report(session, candidate_id)


async def maybe_generate_report(
    session: AsyncSession,
    candidate_id: int,
    llm: Optional[LLMClient] = None,
) -> Optional[AggregateReport]:
    """Cheap check used right after an item completes; only eligible candidates trigger a call."""
    candidate = await session.get(Candidate, candidate_id, populate_existing=True)
    if candidate is None or candidate.assessment_status not in REPORT_ELIGIBLE_STATUSES:
        return None
    if not all_complete(await candidate_projects_with_analyses(session, candidate_id)):
        return None
    return await generate_aggregate_report(session, candidate_id, llm=llm)


async def candidates_ready_for_report(session: AsyncSession) -> List[int]:
    """Candidates in an eligible status whose every project is COMPLETE."""
    incomplete = (
        select(Project.candidate_id)
        .outerjoin(ProjectAnalysis, ProjectAnalysis.project_id == Project.id)
        .where(
            (ProjectAnalysis.id.is_(None)) | (ProjectAnalysis.status != ProjectAnalysisStatus.COMPLETE)
        )
    )
    has_projects = select(Project.candidate_id)
    result = await session.execute(
        select(Candidate.id)
        .where(
            Candidate.assessment_status.in_(list(REPORT_ELIGIBLE_STATUSES)),
            Candidate.id.in_(has_projects),
            Candidate.id.not_in(incomplete),
        )
        .order_by(Candidate.id)
    )
    return list(result.scalars().all())
