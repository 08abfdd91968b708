from typing import Dict

import pytest
from sqlalchemy import select

from devscore.core.error_handling import BadRequestError, ConflictError, NotFoundError
from devscore.db.models import AssessmentStatus, Candidate, PipelineEntry, PipelineStage
from devscore.db.session import async_session_factory
from devscore.services.candidate_state import InvalidTransition, transition_candidate
from devscore.services.pipeline import add_to_pipeline, sync_pipeline_stage, update_pipeline_stage

from fakes import make_candidate, make_pipeline_entry


async def stages_by_org(candidate_id: int) -> Dict[int, PipelineStage]:
    async with async_session_factory() as session:
        result = await session.execute(select(PipelineEntry).where(PipelineEntry.candidate_id == candidate_id))
        return {e.organization_id: e.stage for e in result.scalars().all()}


@pytest.mark.asyncio
async def test_sync_never_touches_protected_stages() -> None:
    candidate_id = await make_candidate()
    await make_pipeline_entry(candidate_id, 1, PipelineStage.INVITED)
    await make_pipeline_entry(candidate_id, 2, PipelineStage.HIRED)
    await make_pipeline_entry(candidate_id, 3, PipelineStage.REJECTED)
    await make_pipeline_entry(candidate_id, 4, PipelineStage.UNLOCKED)
    await make_pipeline_entry(candidate_id, 5, PipelineStage.ASSESSED)

    async with async_session_factory() as session:
        updated = await sync_pipeline_stage(session, candidate_id, AssessmentStatus.ANALYZING)
        await session.commit()
    assert updated == 2

    assert await stages_by_org(candidate_id) == {
        1: PipelineStage.ANALYZING,
        2: PipelineStage.HIRED,
        3: PipelineStage.REJECTED,
        4: PipelineStage.UNLOCKED,
        5: PipelineStage.ANALYZING,
    }


@pytest.mark.asyncio
async def test_sync_is_rerunnable() -> None:
    candidate_id = await make_candidate()
    await make_pipeline_entry(candidate_id, 1, PipelineStage.INVITED)

    for _ in range(2):
        async with async_session_factory() as session:
            await sync_pipeline_stage(session, candidate_id, AssessmentStatus.ASSESSED)
            await session.commit()

    assert await stages_by_org(candidate_id) == {1: PipelineStage.ASSESSED}


@pytest.mark.asyncio
async def test_sync_only_affects_the_given_candidate() -> None:
    first = await make_candidate(email="a@example.com")
    second = await make_candidate(email="b@example.com")
    await make_pipeline_entry(first, 1, PipelineStage.INVITED)
    await make_pipeline_entry(second, 1, PipelineStage.INVITED)

    async with async_session_factory() as session:
        await sync_pipeline_stage(session, first, AssessmentStatus.PROJECTS_SUBMITTED)
        await session.commit()

    assert await stages_by_org(second) == {1: PipelineStage.INVITED}


@pytest.mark.asyncio
async def test_candidate_transition_mirrors_into_pipeline() -> None:
    candidate_id = await make_candidate()
    await make_pipeline_entry(candidate_id, 7, PipelineStage.REGISTERING)

    async with async_session_factory() as session:
        candidate = await session.get(Candidate, candidate_id)
        assert await transition_candidate(session, candidate, AssessmentStatus.PROJECTS_SUBMITTED)
        assert not await transition_candidate(session, candidate, AssessmentStatus.PROJECTS_SUBMITTED)
        await session.commit()

    assert await stages_by_org(candidate_id) == {7: PipelineStage.PROJECTS_SUBMITTED}


@pytest.mark.asyncio
async def test_invalid_candidate_transition_is_rejected() -> None:
    candidate_id = await make_candidate()
    async with async_session_factory() as session:
        candidate = await session.get(Candidate, candidate_id)
        with pytest.raises(InvalidTransition):
            await transition_candidate(session, candidate, AssessmentStatus.ASSESSED)


@pytest.mark.asyncio
async def test_manual_stage_update_limited_to_hired_or_rejected() -> None:
    candidate_id = await make_candidate()
    await make_pipeline_entry(candidate_id, 1, PipelineStage.ASSESSED)

    async with async_session_factory() as session:
        with pytest.raises(BadRequestError):
            await update_pipeline_stage(session, 1, candidate_id, PipelineStage.ASSESSED)
        with pytest.raises(NotFoundError):
            await update_pipeline_stage(session, 99, candidate_id, PipelineStage.HIRED)
        entry = await update_pipeline_stage(session, 1, candidate_id, PipelineStage.HIRED)
        assert entry.stage == PipelineStage.HIRED

    async with async_session_factory() as session:
        await sync_pipeline_stage(session, candidate_id, AssessmentStatus.REGISTERING)
        await session.commit()
    assert await stages_by_org(candidate_id) == {1: PipelineStage.HIRED}


@pytest.mark.asyncio
async def test_add_to_pipeline_mirrors_current_status() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ASSESSED)
    async with async_session_factory() as session:
        entry = await add_to_pipeline(session, 3, candidate_id, notes="Strong portfolio")
        assert entry.stage == PipelineStage.ASSESSED
        with pytest.raises(ConflictError):
            await add_to_pipeline(session, 3, candidate_id)
        with pytest.raises(NotFoundError):
            await add_to_pipeline(session, 3, 12345)
