"""
Per-project analysis lifecycle.

    PENDING -> ANALYZING -> COMPLETE
                         -> PENDING   (hard failure, retry budget left)
                         -> FAILED    (hard failure, budget exhausted; terminal)

The claim is a conditional ``PENDING -> ANALYZING`` update, so a row can only
be picked up by one sweep at a time.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.core.config import settings
from devscore.core.pipeline_errors import AnalysisError, ContentFetchError, ErrorType
from devscore.db.models import (
    MAX_ANALYSIS_RETRIES,
    Candidate,
    Project,
    ProjectAnalysis,
    ProjectAnalysisStatus,
    TechExperience,
)
from devscore.services.analysis import ProjectAnalysisResult, request_project_analysis
from devscore.services.candidate_state import mark_analyzing
from devscore.services.llm_client import LLMClient
from devscore.services.prompt_registry import project_analysis_prompt
from devscore.services.repository_content import (
    RepositoryContentSource,
    detect_fullstack_by_structure,
    get_content_source,
    render_code_snippets,
    select_files,
)

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Analysis interrupted before completion"


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


async def load_experience(session: AsyncSession, candidate_id: int) -> List[dict]:
    result = await session.execute(
        select(TechExperience)
        .where(TechExperience.candidate_id == candidate_id)
        .order_by(TechExperience.months.desc())
    )
    return [{"tech": e.stack_name, "months": e.months} for e in result.scalars().all()]


async def claim_analysis(session: AsyncSession, analysis_id: int) -> bool:
    """Flip PENDING -> ANALYZING; False if another worker got there first."""
    result = await session.execute(
        update(ProjectAnalysis)
        .where(
            ProjectAnalysis.id == analysis_id,
            ProjectAnalysis.status == ProjectAnalysisStatus.PENDING,
        )
        .values(status=ProjectAnalysisStatus.ANALYZING, started_at=_now())
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return (result.rowcount or 0) == 1


async def record_success(
    session: AsyncSession,
    analysis: ProjectAnalysis,
    project: Project,
    result: ProjectAnalysisResult,
    languages: List[str],
) -> None:
    now = _now()
    analysis.status = ProjectAnalysisStatus.COMPLETE
    analysis.score = result.score
    analysis.strengths = result.strengths
    analysis.areas_for_improvement = result.weaknesses
    analysis.code_organization = result.code_organization
    analysis.raw_analysis = result.to_dict()
    analysis.error_message = None
    analysis.retry_count = 0
    analysis.completed_at = now

    # Lock window is tracked on the project, independent of analysis state
    project.tech_stack = result.tech_stack or languages
    project.saved_at = now
    project.locked_until = now + dt.timedelta(days=settings.project_lock_days)

    await session.commit()
    logger.info(
        f"Successfully analyzed project {project.id} (score: {result.score})",
        extra={"project_id": project.id, "analysis_id": analysis.id, "score": result.score},
    )


async def record_failure(session: AsyncSession, analysis: ProjectAnalysis, message: str) -> None:
    """Charge one attempt against the persisted retry budget."""
    analysis.retry_count = (analysis.retry_count or 0) + 1
    analysis.error_message = message or "Analysis failed"
    analysis.score = None

    if analysis.retry_count < MAX_ANALYSIS_RETRIES:
        analysis.status = ProjectAnalysisStatus.PENDING
        logger.warning(
            f"Project {analysis.project_id} will retry ({MAX_ANALYSIS_RETRIES - analysis.retry_count} attempts remaining)",
            extra={"project_id": analysis.project_id, "retry_count": analysis.retry_count},
        )
    else:
        analysis.retry_count = MAX_ANALYSIS_RETRIES
        analysis.status = ProjectAnalysisStatus.FAILED
        logger.error(
            f"Project {analysis.project_id} failed after {MAX_ANALYSIS_RETRIES} attempts",
            extra={"project_id": analysis.project_id, "error_message": analysis.error_message},
        )
    await session.commit()


async def _analyze(
    session: AsyncSession,
    project: Project,
    llm: Optional[LLMClient],
    source: RepositoryContentSource,
) -> tuple[ProjectAnalysisResult, List[str]]:
    try:
        files = await source.fetch_files(project.repository_url)
    except ContentFetchError:
        raise
    except Exception as e:
        raise ContentFetchError(f"Repository content unavailable: {e}") from e
    if not files:
        raise ContentFetchError("No relevant code files found in repository")

    selected = select_files(files)
    if not selected:
        raise ContentFetchError("No relevant code files found in repository")

    languages = await source.list_languages(project.repository_url)
    prompt = project_analysis_prompt(
        code_snippets=render_code_snippets(selected),
        file_count=len(selected),
        name=project.name,
        description=project.description or "",
        project_type=project.project_type.value,
        languages=languages,
        is_fullstack_by_structure=detect_fullstack_by_structure(files),
        experience=await load_experience(session, project.candidate_id),
    )
    result = await request_project_analysis(prompt, llm=llm)
    return result, languages


async def run_project_analysis(
    session: AsyncSession,
    analysis_id: int,
    llm: Optional[LLMClient] = None,
    source: Optional[RepositoryContentSource] = None,
) -> Optional[ProjectAnalysis]:
    """Drive one PENDING analysis through a single attempt.

    Returns None when the row could not be claimed. Hard failures are recorded
    against the retry budget and re-raised for the caller to log.
    """
    if not await claim_analysis(session, analysis_id):
        logger.info(f"Analysis {analysis_id} no longer pending, skipping", extra={"analysis_id": analysis_id})
        return None

    analysis = await session.get(ProjectAnalysis, analysis_id, populate_existing=True)
    project = await session.get(Project, analysis.project_id) if analysis else None
    if analysis is None or project is None:
        return None

    candidate = await session.get(Candidate, project.candidate_id)
    if candidate is not None and await mark_analyzing(session, candidate):
        await session.commit()

    try:
        result, languages = await _analyze(session, project, llm, source or get_content_source())
    except Exception as e:
        error_type = e.error_type if isinstance(e, AnalysisError) else ErrorType.LLM_ERROR
        logger.warning(
            f"Analysis attempt for project {project.id} failed: {e}",
            extra={"analysis_id": analysis_id, "project_id": project.id, "error_type": error_type.value},
        )
        # A failed statement inside the attempt leaves the transaction unusable
        await session.rollback()
        analysis = await session.get(ProjectAnalysis, analysis_id, populate_existing=True)
        if analysis is not None:
            await record_failure(session, analysis, str(e))
        raise

    await record_success(session, analysis, project, result, languages)
    return analysis


async def release_stale_claims(session: AsyncSession, stale_minutes: Optional[int] = None) -> int:
    """Treat analyses stuck in ANALYZING past the cutoff as one failed attempt."""
    cutoff = _now() - dt.timedelta(minutes=stale_minutes or settings.analysis_stale_minutes)
    result = await session.execute(
        select(ProjectAnalysis).where(
            ProjectAnalysis.status == ProjectAnalysisStatus.ANALYZING,
            ProjectAnalysis.started_at < cutoff,
        )
    )
    stale = list(result.scalars().all())
    for analysis in stale:
        await record_failure(session, analysis, INTERRUPTED_MESSAGE)
    if stale:
        logger.warning(f"Released {len(stale)} stale analysis claims")
    return len(stale)
