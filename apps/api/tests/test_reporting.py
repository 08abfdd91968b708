import asyncio
from typing import Optional

import pytest
from sqlalchemy import func, select

from devscore.core.pipeline_errors import ResponseValidationError
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
from devscore.services.llm_client import LLMRequest, LLMResponse
from devscore.services.reporting import candidates_ready_for_report, generate_aggregate_report
from devscore.services.queue import run_report_sweep

from fakes import HIRING_REPORT, FakeLLM, make_candidate, make_pipeline_entry


async def add_project(
    candidate_id: int,
    status: Optional[ProjectAnalysisStatus],
    name: str = "Shop",
    score: Optional[int] = 70,
) -> int:
    async with async_session_factory() as session:
        project = Project(
            candidate_id=candidate_id,
            name=name,
            repository_url=f"https://github.com/ada/{name.lower()}",
            project_type=ProjectType.BACKEND,
            tech_stack=["Python"],
        )
        session.add(project)
        await session.flush()
        if status is not None:
            session.add(
                ProjectAnalysis(
                    project_id=project.id,
                    status=status,
                    score=score if status == ProjectAnalysisStatus.COMPLETE else None,
                    strengths=["Readable"],
                    areas_for_improvement=["Tests"],
                )
            )
        await session.commit()
        return project.id


async def reports_for(candidate_id: int):
    async with async_session_factory() as session:
        result = await session.execute(select(AggregateReport).where(AggregateReport.candidate_id == candidate_id))
        return list(result.scalars().all())


async def status_of(candidate_id: int) -> AssessmentStatus:
    async with async_session_factory() as session:
        return (await session.get(Candidate, candidate_id)).assessment_status


class RemovingLLM(FakeLLM):
    """Deletes a project from its own session while the hiring report is being written."""

    def __init__(self, candidate_id: int, project_id: int) -> None:
        super().__init__()
        self.candidate_id = candidate_id
        self.project_id = project_id

    async def _call_provider(self, request: LLMRequest) -> LLMResponse:
        if request.max_tokens > 4096:
            async with async_session_factory() as session:
                await assessment.delete_project(session, self.candidate_id, self.project_id)
        return await super()._call_provider(request)


@pytest.mark.asyncio
async def test_partial_completion_produces_no_report() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE, name="Api")
    await add_project(candidate_id, ProjectAnalysisStatus.PENDING, name="Web")
    llm = FakeLLM()

    result = await run_report_sweep(llm=llm)

    assert result.selected == []
    assert await reports_for(candidate_id) == []
    assert llm.report_calls == 0
    async with async_session_factory() as session:
        assert await generate_aggregate_report(session, candidate_id, llm=llm) is None
    assert llm.report_calls == 0


@pytest.mark.asyncio
async def test_report_generation_is_idempotent() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE)

    async with async_session_factory() as session:
        first = await generate_aggregate_report(session, candidate_id, llm=FakeLLM())
    async with async_session_factory() as session:
        second = await generate_aggregate_report(
            session, candidate_id, llm=FakeLLM(report=dict(HIRING_REPORT, overallScore=55, scoreBand="AVERAGE_JUNIOR"))
        )

    rows = await reports_for(candidate_id)
    assert len(rows) == 1
    assert first.id == second.id
    assert rows[0].overall_score == 55
    assert rows[0].score_band == "AVERAGE_JUNIOR"
    assert await status_of(candidate_id) == AssessmentStatus.ASSESSED


@pytest.mark.asyncio
async def test_out_of_set_enums_fall_back_per_field() -> None:
    candidate_id = await make_candidate(AssessmentStatus.PROJECTS_SUBMITTED)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE)
    report = dict(HIRING_REPORT, recommendation="MAYBE", authenticitySignal="VERY_HIGH", scoreBand="?", overallScore=40)

    async with async_session_factory() as session:
        row = await generate_aggregate_report(session, candidate_id, llm=FakeLLM(report=report))

    assert row.recommendation == "INTERVIEW_WITH_CAUTION"
    assert row.authenticity_signal == "MEDIUM"
    assert row.score_band == "RISKY_JUNIOR"
    assert row.junior_level == "ABOVE_EXPECTED"
    assert row.raw_analysis["recommendation"] == "MAYBE"


@pytest.mark.asyncio
async def test_invalid_report_leaves_candidate_untouched() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE)
    report = dict(HIRING_REPORT)
    report.pop("overallScore")

    async with async_session_factory() as session:
        with pytest.raises(ResponseValidationError):
            await generate_aggregate_report(session, candidate_id, llm=FakeLLM(report=report))

    assert await reports_for(candidate_id) == []
    assert await status_of(candidate_id) == AssessmentStatus.ANALYZING


@pytest.mark.asyncio
async def test_report_sweep_only_considers_submitted_or_analyzing() -> None:
    ready = await make_candidate(AssessmentStatus.PROJECTS_SUBMITTED, email="a@example.com")
    await add_project(ready, ProjectAnalysisStatus.COMPLETE, name="One")
    waiting = await make_candidate(AssessmentStatus.PENDING_ANALYSIS, email="b@example.com")
    await add_project(waiting, ProjectAnalysisStatus.COMPLETE, name="Two")
    missing_analysis = await make_candidate(AssessmentStatus.ANALYZING, email="c@example.com")
    await add_project(missing_analysis, None, name="Three")
    await make_candidate(AssessmentStatus.PROJECTS_SUBMITTED, email="d@example.com")

    async with async_session_factory() as session:
        assert await candidates_ready_for_report(session) == [ready]

    llm = FakeLLM()
    result = await run_report_sweep(llm=llm)
    assert result.succeeded == [ready]
    assert llm.report_calls == 1
    assert await status_of(ready) == AssessmentStatus.ASSESSED
    assert await status_of(waiting) == AssessmentStatus.PENDING_ANALYSIS


@pytest.mark.asyncio
async def test_assessed_iff_report_and_all_complete() -> None:
    done = await make_candidate(AssessmentStatus.ANALYZING, email="a@example.com")
    await add_project(done, ProjectAnalysisStatus.COMPLETE, name="One")
    await add_project(done, ProjectAnalysisStatus.COMPLETE, name="Two")
    partial = await make_candidate(AssessmentStatus.ANALYZING, email="b@example.com")
    await add_project(partial, ProjectAnalysisStatus.COMPLETE, name="Three")
    await add_project(partial, ProjectAnalysisStatus.FAILED, name="Four")

    await run_report_sweep(llm=FakeLLM())

    async with async_session_factory() as session:
        for candidate_id in (done, partial):
            candidate = await session.get(Candidate, candidate_id)
            has_report = (
                await session.execute(
                    select(func.count(AggregateReport.id)).where(AggregateReport.candidate_id == candidate_id)
                )
            ).scalar_one() == 1
            statuses = (
                await session.execute(
                    select(ProjectAnalysis.status)
                    .join(Project, Project.id == ProjectAnalysis.project_id)
                    .where(Project.candidate_id == candidate_id)
                )
            ).scalars().all()
            all_done = all(s == ProjectAnalysisStatus.COMPLETE for s in statuses)
            assert (candidate.assessment_status == AssessmentStatus.ASSESSED) == (has_report and all_done)


@pytest.mark.asyncio
async def test_concurrent_generation_writes_one_report() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE)

    async def generate():
        async with async_session_factory() as session:
            return await generate_aggregate_report(session, candidate_id, llm=FakeLLM())

    results = await asyncio.gather(generate(), generate())

    assert any(r is not None for r in results)
    assert len(await reports_for(candidate_id)) == 1
    assert await status_of(candidate_id) == AssessmentStatus.ASSESSED


@pytest.mark.asyncio
async def test_last_project_removed_during_report_is_not_assessed() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    project_id = await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE)
    await make_pipeline_entry(candidate_id, 1, PipelineStage.ANALYZING)

    async with async_session_factory() as session:
        result = await generate_aggregate_report(session, candidate_id, llm=RemovingLLM(candidate_id, project_id))

    assert result is None
    assert await status_of(candidate_id) == AssessmentStatus.REGISTERING
    assert await reports_for(candidate_id) == []
    async with async_session_factory() as session:
        entry = (await session.execute(select(PipelineEntry).where(PipelineEntry.candidate_id == candidate_id))).scalar_one()
    assert entry.stage == PipelineStage.REGISTERING


@pytest.mark.asyncio
async def test_project_removed_during_report_keeps_pending_analysis() -> None:
    candidate_id = await make_candidate(AssessmentStatus.ANALYZING)
    await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE, name="Api")
    removed = await add_project(candidate_id, ProjectAnalysisStatus.COMPLETE, name="Web")

    async with async_session_factory() as session:
        result = await generate_aggregate_report(session, candidate_id, llm=RemovingLLM(candidate_id, removed))

    assert result is None
    assert await status_of(candidate_id) == AssessmentStatus.PENDING_ANALYSIS
    assert await reports_for(candidate_id) == []
