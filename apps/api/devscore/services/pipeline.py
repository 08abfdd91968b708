from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.core.error_handling import BadRequestError, ConflictError, NotFoundError
from devscore.db.models import (
    MANUAL_STAGES,
    PROTECTED_STAGES,
    AssessmentStatus,
    Candidate,
    PipelineEntry,
    PipelineStage,
)

logger = logging.getLogger(__name__)


STAGE_FOR_STATUS = {
    AssessmentStatus.REGISTERING: PipelineStage.REGISTERING,
    AssessmentStatus.PROJECTS_SUBMITTED: PipelineStage.PROJECTS_SUBMITTED,
    AssessmentStatus.ANALYZING: PipelineStage.ANALYZING,
    AssessmentStatus.PENDING_ANALYSIS: PipelineStage.PENDING_ANALYSIS,
    AssessmentStatus.ASSESSED: PipelineStage.ASSESSED,
}


async def sync_pipeline_stage(session: AsyncSession, candidate_id: int, status: AssessmentStatus) -> int:
    """Mirror ``status`` onto every tracking row of the candidate.

    Rows in a protected stage are excluded in the UPDATE itself, so a recruiter
    marking HIRED concurrently is never overwritten. Does not commit.
    """
    stage = STAGE_FOR_STATUS[status]
    result = await session.execute(
        update(PipelineEntry)
        .where(
            PipelineEntry.candidate_id == candidate_id,
            PipelineEntry.stage.not_in(list(PROTECTED_STAGES)),
        )
        .values(stage=stage)
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0
    if updated:
        logger.info(
            f"Pipeline entries moved to {stage.value}",
            extra={"candidate_id": candidate_id, "updated": updated},
        )
    return updated


async def get_pipeline_entry(session: AsyncSession, organization_id: int, candidate_id: int) -> Optional[PipelineEntry]:
    result = await session.execute(
        select(PipelineEntry).where(
            PipelineEntry.organization_id == organization_id,
            PipelineEntry.candidate_id == candidate_id,
        )
    )
    return result.scalar_one_or_none()


async def add_to_pipeline(
    session: AsyncSession,
    organization_id: int,
    candidate_id: int,
    notes: Optional[str] = None,
) -> PipelineEntry:
    """Start tracking a candidate; the initial stage mirrors their assessment status."""
    candidate = await session.get(Candidate, candidate_id)
    if candidate is None:
        raise NotFoundError("Candidate", candidate_id)
    if await get_pipeline_entry(session, organization_id, candidate_id):
        raise ConflictError("Candidate already in pipeline")

    entry = PipelineEntry(
        organization_id=organization_id,
        candidate_id=candidate_id,
        stage=STAGE_FOR_STATUS[candidate.assessment_status],
        notes=notes,
    )
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    return entry


async def update_pipeline_stage(
    session: AsyncSession,
    organization_id: int,
    candidate_id: int,
    stage: PipelineStage,
) -> PipelineEntry:
    """Recruiter decision; only HIRED and REJECTED can be set by hand."""
    if stage not in MANUAL_STAGES:
        raise BadRequestError("Only HIRED or REJECTED stages can be manually updated")

    entry = await get_pipeline_entry(session, organization_id, candidate_id)
    if entry is None:
        raise NotFoundError("PipelineEntry", candidate_id)

    entry.stage = stage
    await session.commit()
    await session.refresh(entry)
    logger.info(
        f"Pipeline stage set to {stage.value}",
        extra={"organization_id": organization_id, "candidate_id": candidate_id},
    )
    return entry
