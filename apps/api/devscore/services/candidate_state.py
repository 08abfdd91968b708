"""
Candidate-level assessment status.

Every status change goes through ``transition_candidate`` (or its conditional
form ``transition_candidate_if``) so the recruiter pipeline is synchronized in
the same transaction.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.db.models import AssessmentStatus, Candidate
from devscore.services.pipeline import sync_pipeline_stage

logger = logging.getLogger(__name__)

S = AssessmentStatus

ALLOWED_TRANSITIONS = {
    S.REGISTERING: {S.PROJECTS_SUBMITTED, S.ANALYZING},
    S.PROJECTS_SUBMITTED: {S.ANALYZING, S.ASSESSED, S.PENDING_ANALYSIS, S.REGISTERING},
    S.ANALYZING: {S.ASSESSED, S.PROJECTS_SUBMITTED, S.PENDING_ANALYSIS, S.REGISTERING},
    S.PENDING_ANALYSIS: {S.PROJECTS_SUBMITTED, S.ANALYZING, S.ASSESSED, S.REGISTERING},
    S.ASSESSED: {S.PROJECTS_SUBMITTED, S.PENDING_ANALYSIS, S.REGISTERING},
}

STATUS_DESCRIPTIONS = {
    S.REGISTERING: "Complete your profile and submit projects",
    S.PROJECTS_SUBMITTED: "Projects submitted, waiting for analysis",
    S.ANALYZING: "Analysis in progress",
    S.PENDING_ANALYSIS: "Project changes detected, waiting for the developer to regenerate the report",
    S.ASSESSED: "Assessment complete, profile is visible to organizations",
}

FAILED_DESCRIPTION = "Analysis failed for at least one project, regenerate the report to retry"

# Statuses from which starting a project analysis moves the candidate forward
_BEFORE_ANALYZING = {S.REGISTERING, S.PROJECTS_SUBMITTED, S.PENDING_ANALYSIS}

# Statuses a finished report may move to ASSESSED; ASSESSED itself for re-runs
ASSESSABLE = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if S.ASSESSED in targets) | {S.ASSESSED}


class InvalidTransition(ValueError):
    pass


async def transition_candidate(
    session: AsyncSession,
    candidate: Candidate,
    new_status: AssessmentStatus,
    reason: str = "",
) -> bool:
    """Set the status and mirror it to the pipeline. Does not commit.

    Returns False when the candidate already has ``new_status``.
    """
    current = candidate.assessment_status
    if current == new_status:
        return False
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"{current.value} -> {new_status.value} is not allowed")

    candidate.assessment_status = new_status
    await sync_pipeline_stage(session, candidate.id, new_status)
    logger.info(
        f"Candidate status {current.value} -> {new_status.value}",
        extra={"candidate_id": candidate.id, "reason": reason},
    )
    return True


async def mark_analyzing(session: AsyncSession, candidate: Candidate) -> bool:
    """Advance to ANALYZING unless the candidate is already there or past it."""
    if candidate.assessment_status not in _BEFORE_ANALYZING:
        return False
    return await transition_candidate(session, candidate, S.ANALYZING, reason="analysis started")


async def transition_candidate_if(
    session: AsyncSession,
    candidate_id: int,
    new_status: AssessmentStatus,
    expected: Iterable[AssessmentStatus],
    reason: str = "",
) -> bool:
    """Set the status only if the stored one is still in ``expected``. Does not commit.

    Check and write are a single UPDATE, so a status committed by another
    session after this one read the candidate is never overwritten.
    """
    result = await session.execute(
        update(Candidate)
        .where(Candidate.id == candidate_id, Candidate.assessment_status.in_(list(expected)))
        .values(assessment_status=new_status)
        .execution_options(synchronize_session=False)
    )
    if (result.rowcount or 0) == 0:
        return False

    await sync_pipeline_stage(session, candidate_id, new_status)
    logger.info(
        f"Candidate status -> {new_status.value}",
        extra={"candidate_id": candidate_id, "reason": reason},
    )
    return True
