import datetime as dt

import pytest
from sqlalchemy import select

from devscore.core.error_handling import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from devscore.db.models import (
    AggregateReport,
    AssessmentStatus,
    Candidate,
    PipelineEntry,
    PipelineStage,
    Project,
    ProjectAnalysis,
    ProjectAnalysisStatus,
    ProjectType,
)
from devscore.db.session import async_session_factory
from devscore.services import assessment
from devscore.services.candidate_state import FAILED_DESCRIPTION, STATUS_DESCRIPTIONS

from fakes import make_candidate, make_pipeline_entry


async def create(candidate_id: int, repo: str = "shop"):
    async with async_session_factory() as session:
        return await assessment.create_project(
            session,
            candidate_id,
            name=repo.title(),
            repository_url=f"https://github.com/ada/{repo}",
            project_type=ProjectType.FRONTEND,
        )


async def set_analysis(project_id: int, status: ProjectAnalysisStatus, **fields) -> None:
    async with async_session_factory() as session:
        analysis = (
            await session.execute(select(ProjectAnalysis).where(ProjectAnalysis.project_id == project_id))
        ).scalar_one()
        analysis.status = status
        for key, value in fields.items():
            setattr(analysis, key, value)
        await session.commit()


async def add_report(candidate_id: int) -> None:
    async with async_session_factory() as session:
        session.add(
            AggregateReport(
                candidate_id=candidate_id,
                recommendation="SAFE_TO_INTERVIEW",
                junior_level="WITHIN_EXPECTED",
                authenticity_signal="HIGH",
                overall_score=77,
                score_band="STRONG_JUNIOR",
                conclusion="",
            )
        )
        await session.commit()


async def candidate_status(candidate_id: int) -> AssessmentStatus:
    async with async_session_factory() as session:
        return (await session.get(Candidate, candidate_id)).assessment_status


@pytest.mark.asyncio
async def test_create_project_queues_analysis_and_advances_candidate() -> None:
    candidate_id = await make_candidate()
    await make_pipeline_entry(candidate_id, 1, PipelineStage.INVITED)

    project, analysis = await create(candidate_id)

    assert analysis.status == ProjectAnalysisStatus.PENDING
    assert analysis.retry_count == 0
    assert project.repository_url == "https://github.com/ada/shop"
    assert await candidate_status(candidate_id) == AssessmentStatus.PROJECTS_SUBMITTED
    async with async_session_factory() as session:
        entry = (await session.execute(select(PipelineEntry))).scalar_one()
        assert entry.stage == PipelineStage.PROJECTS_SUBMITTED


@pytest.mark.asyncio
async def test_create_project_rules() -> None:
    candidate_id = await make_candidate()
    for repo in ("one", "two", "three"):
        await create(candidate_id, repo)

    with pytest.raises(BadRequestError):
        await create(candidate_id, "four")

    other = await make_candidate(email="other@example.com")
    await create(other, "one")
    with pytest.raises(ConflictError):
        await create(other, "one")
    async with async_session_factory() as session:
        with pytest.raises(BadRequestError):
            await assessment.create_project(
                session, other, name="X", repository_url="https://example.com/x", project_type=ProjectType.OTHER
            )
        with pytest.raises(NotFoundError):
            await assessment.create_project(
                session, 999, name="X", repository_url="https://github.com/a/b", project_type=ProjectType.OTHER
            )


@pytest.mark.asyncio
async def test_adding_project_to_assessed_candidate_reopens_assessment() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ASSESSED)
    await create(candidate_id)
    assert await candidate_status(candidate_id) == AssessmentStatus.PROJECTS_SUBMITTED


@pytest.mark.asyncio
async def test_deleting_only_project_resets_candidate() -> None:
    candidate_id = await make_candidate()
    project, _ = await create(candidate_id)
    await set_analysis(project.id, ProjectAnalysisStatus.COMPLETE, score=80)
    async with async_session_factory() as session:
        candidate = await session.get(Candidate, candidate_id)
        candidate.assessment_status = AssessmentStatus.ASSESSED
        await session.commit()
    await add_report(candidate_id)
    await make_pipeline_entry(candidate_id, 1, PipelineStage.ASSESSED)
    await make_pipeline_entry(candidate_id, 2, PipelineStage.HIRED)

    async with async_session_factory() as session:
        new_status = await assessment.delete_project(session, candidate_id, project.id)

    assert new_status == AssessmentStatus.REGISTERING
    assert await candidate_status(candidate_id) == AssessmentStatus.REGISTERING
    async with async_session_factory() as session:
        assert (await session.execute(select(AggregateReport))).scalars().all() == []
        assert (await session.execute(select(ProjectAnalysis))).scalars().all() == []
        stages = {e.organization_id: e.stage for e in (await session.execute(select(PipelineEntry))).scalars()}
    assert stages == {1: PipelineStage.REGISTERING, 2: PipelineStage.HIRED}


@pytest.mark.asyncio
async def test_deleting_one_of_several_projects_needs_regeneration() -> None:
    candidate_id = await make_candidate()
    keep, _ = await create(candidate_id, "keep")
    drop, _ = await create(candidate_id, "drop")
    await set_analysis(keep.id, ProjectAnalysisStatus.COMPLETE, score=70)
    await add_report(candidate_id)

    async with async_session_factory() as session:
        new_status = await assessment.delete_project(session, candidate_id, drop.id)

    assert new_status == AssessmentStatus.PENDING_ANALYSIS
    async with async_session_factory() as session:
        remaining = (await session.execute(select(ProjectAnalysis))).scalars().all()
        assert [(a.project_id, a.status) for a in remaining] == [(keep.id, ProjectAnalysisStatus.COMPLETE)]
        summary = await assessment.get_assessment_status(session, candidate_id)
    assert summary.description == STATUS_DESCRIPTIONS[AssessmentStatus.PENDING_ANALYSIS]
    assert not summary.is_visible


@pytest.mark.asyncio
async def test_locked_project_cannot_be_deleted() -> None:
    candidate_id = await make_candidate()
    project, _ = await create(candidate_id)
    async with async_session_factory() as session:
        row = await session.get(Project, project.id)
        row.locked_until = dt.datetime.now(dt.timezone.utc) + dt.timedelta(days=3, hours=1)
        await session.commit()

    async with async_session_factory() as session:
        with pytest.raises(ForbiddenError) as excinfo:
            await assessment.delete_project(session, candidate_id, project.id)
    assert excinfo.value.details["lock_days_remaining"] == 4

    async with async_session_factory() as session:
        row = await session.get(Project, project.id)
        row.locked_until = dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=1)
        await session.commit()
    async with async_session_factory() as session:
        assert await assessment.delete_project(session, candidate_id, project.id) == AssessmentStatus.REGISTERING


@pytest.mark.asyncio
async def test_delete_unknown_project() -> None:
    candidate_id = await make_candidate()
    other = await make_candidate(email="other@example.com")
    project, _ = await create(other)
    async with async_session_factory() as session:
        with pytest.raises(NotFoundError):
            await assessment.delete_project(session, candidate_id, project.id)


@pytest.mark.asyncio
async def test_regenerate_rearms_only_failed_analyses() -> None:
    candidate_id = await make_candidate()
    done, _ = await create(candidate_id, "done")
    failed, _ = await create(candidate_id, "failed")
    await set_analysis(done.id, ProjectAnalysisStatus.COMPLETE, score=88)
    await set_analysis(failed.id, ProjectAnalysisStatus.FAILED, retry_count=3, error_message="boom")
    async with async_session_factory() as session:
        candidate = await session.get(Candidate, candidate_id)
        candidate.assessment_status = AssessmentStatus.PENDING_ANALYSIS
        await session.commit()

    async with async_session_factory() as session:
        summary = await assessment.get_assessment_status(session, candidate_id)
    assert summary.description == FAILED_DESCRIPTION
    assert (summary.analyzed_count, summary.failed_count, summary.pending_count) == (1, 1, 0)

    async with async_session_factory() as session:
        assert await assessment.regenerate_report(session, candidate_id) == 1

    async with async_session_factory() as session:
        rows = {
            a.project_id: a
            for a in (await session.execute(select(ProjectAnalysis))).scalars().all()
        }
    assert rows[done.id].status == ProjectAnalysisStatus.COMPLETE
    assert rows[done.id].score == 88
    assert rows[failed.id].status == ProjectAnalysisStatus.PENDING
    assert rows[failed.id].retry_count == 0
    assert rows[failed.id].error_message is None
    assert await candidate_status(candidate_id) == AssessmentStatus.PROJECTS_SUBMITTED


@pytest.mark.asyncio
async def test_regenerate_recreates_missing_analysis() -> None:
    candidate_id = await make_candidate(AssessmentStatus.PENDING_ANALYSIS)
    async with async_session_factory() as session:
        session.add(
            Project(
                candidate_id=candidate_id,
                name="Orphan",
                repository_url="https://github.com/ada/orphan",
                project_type=ProjectType.MOBILE,
                tech_stack=[],
            )
        )
        await session.commit()

    async with async_session_factory() as session:
        assert await assessment.regenerate_report(session, candidate_id) == 1
        analysis = (await session.execute(select(ProjectAnalysis))).scalar_one()
    assert analysis.status == ProjectAnalysisStatus.PENDING


@pytest.mark.asyncio
async def test_regenerate_errors() -> None:
    candidate_id = await make_candidate()
    async with async_session_factory() as session:
        with pytest.raises(NotFoundError):
            await assessment.regenerate_report(session, 4242)
        with pytest.raises(BadRequestError):
            await assessment.regenerate_report(session, candidate_id)


@pytest.mark.asyncio
async def test_assessment_status_visibility() -> None:
    candidate_id = await make_candidate()
    async with async_session_factory() as session:
        summary = await assessment.get_assessment_status(session, candidate_id)
    assert summary.project_count == 0
    assert not summary.is_visible
    assert summary.visibility_reason

    project, _ = await create(candidate_id)
    await set_analysis(project.id, ProjectAnalysisStatus.COMPLETE, score=90)
    async with async_session_factory() as session:
        row = await session.get(Project, project.id)
        row.tech_stack = ["React", "Node"]
        candidate = await session.get(Candidate, candidate_id)
        candidate.assessment_status = AssessmentStatus.ASSESSED
        await session.commit()
    await add_report(candidate_id)

    async with async_session_factory() as session:
        summary = await assessment.get_assessment_status(session, candidate_id)
    assert summary.is_visible
    assert summary.visibility_reason is None
    assert summary.overall_score == 77
    assert summary.tech_stack == ["React", "Node"]
    assert summary.description == STATUS_DESCRIPTIONS[AssessmentStatus.ASSESSED]
