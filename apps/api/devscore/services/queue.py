"""
Periodic work queue over the relational store.

Two independent triggers:
  * analysis sweep - up to ``batch_size`` PENDING analyses, oldest first,
    processed one at a time with a pacing delay between items
  * report sweep - candidates whose every project is COMPLETE

Each item runs in its own session; an exception from one item is logged at the
item boundary and the sweep moves on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select

from devscore.core.config import settings
from devscore.db.models import Project, ProjectAnalysis, ProjectAnalysisStatus
from devscore.db.session import async_session_factory
from devscore.services.llm_client import LLMClient
from devscore.services.project_analysis import release_stale_claims, run_project_analysis
from devscore.services.reporting import candidates_ready_for_report, generate_aggregate_report, maybe_generate_report
from devscore.services.repository_content import RepositoryContentSource

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    selected: List[int] = field(default_factory=list)
    succeeded: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    released: int = 0


async def select_pending_analyses(batch_size: int) -> List[int]:
    async with async_session_factory() as session:
        result = await session.execute(
            select(ProjectAnalysis.id)
            .where(ProjectAnalysis.status == ProjectAnalysisStatus.PENDING)
            .order_by(ProjectAnalysis.created_at, ProjectAnalysis.id)
            .limit(batch_size)
        )
        return list(result.scalars().all())


async def process_analysis_item(
    analysis_id: int,
    llm: Optional[LLMClient] = None,
    source: Optional[RepositoryContentSource] = None,
) -> bool:
    """Run one analysis attempt; True when it completed, False when it was not claimable."""
    async with async_session_factory() as session:
        analysis = await run_project_analysis(session, analysis_id, llm=llm, source=source)
        if analysis is None:
            return False

        project = await session.get(Project, analysis.project_id)
        try:
            await maybe_generate_report(session, project.candidate_id, llm=llm)
        except Exception:
            # The report sweep picks this candidate up again
            await session.rollback()
            logger.exception(
                f"Report generation after analysis {analysis_id} failed",
                extra={"analysis_id": analysis_id, "candidate_id": project.candidate_id},
            )
        return True


async def run_analysis_sweep(
    batch_size: Optional[int] = None,
    pacing_seconds: Optional[float] = None,
    llm: Optional[LLMClient] = None,
    source: Optional[RepositoryContentSource] = None,
) -> SweepResult:
    batch_size = batch_size if batch_size is not None else settings.analysis_batch_size
    pacing = pacing_seconds if pacing_seconds is not None else settings.analysis_pacing_seconds
    result = SweepResult()

    async with async_session_factory() as session:
        result.released = await release_stale_claims(session)

    result.selected = await select_pending_analyses(batch_size)
    if not result.selected:
        logger.debug("No pending analyses")
        return result
    logger.info(
        f"Processing {len(result.selected)} pending analyses",
        extra={"batch_size": batch_size, "analysis_ids": result.selected},
    )

    for index, analysis_id in enumerate(result.selected):
        if index > 0 and pacing > 0:
            await asyncio.sleep(pacing)
        started = time.perf_counter()
        try:
            completed = await process_analysis_item(analysis_id, llm=llm, source=source)
        except Exception:
            result.failed.append(analysis_id)
            logger.exception(
                f"Failed to process analysis {analysis_id}",
                extra={"analysis_id": analysis_id},
            )
            continue
        (result.succeeded if completed else result.skipped).append(analysis_id)
        logger.info(
            f"Analysis {analysis_id} processed",
            extra={"analysis_id": analysis_id, "duration_ms": int((time.perf_counter() - started) * 1000)},
        )

    logger.info(
        "Analysis sweep finished",
        extra={
            "succeeded": len(result.succeeded),
            "failed": len(result.failed),
            "skipped": len(result.skipped),
        },
    )
    return result


async def run_report_sweep(llm: Optional[LLMClient] = None) -> SweepResult:
    result = SweepResult()
    async with async_session_factory() as session:
        result.selected = await candidates_ready_for_report(session)
    if result.selected:
        logger.info(f"Generating reports for {len(result.selected)} candidates", extra={"candidate_ids": result.selected})

    for candidate_id in result.selected:
        try:
            async with async_session_factory() as session:
                report = await generate_aggregate_report(session, candidate_id, llm=llm)
        except Exception:
            result.failed.append(candidate_id)
            logger.exception(
                f"Failed to generate report for candidate {candidate_id}",
                extra={"candidate_id": candidate_id},
            )
            continue
        (result.succeeded if report is not None else result.skipped).append(candidate_id)
    return result


class PeriodicTrigger:
    """Runs ``job`` every ``interval`` seconds until stopped.

    A tick in progress is allowed to finish; stop() only prevents the next one.
    """

    def __init__(self, name: str, interval: float, job: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self.job = job
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"trigger:{self.name}")
        logger.info(f"Started periodic trigger {self.name}", extra={"interval_seconds": self.interval})

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.job()
            except Exception:
                logger.exception(f"Periodic trigger {self.name} tick failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info(f"Stopped periodic trigger {self.name}")


def build_triggers(
    llm: Optional[LLMClient] = None,
    source: Optional[RepositoryContentSource] = None,
) -> List[PeriodicTrigger]:
    return [
        PeriodicTrigger(
            "analysis-sweep",
            settings.analysis_sweep_interval_seconds,
            lambda: run_analysis_sweep(llm=llm, source=source),
        ),
        PeriodicTrigger(
            "report-sweep",
            settings.report_sweep_interval_seconds,
            lambda: run_report_sweep(llm=llm),
        ),
    ]


async def start_scheduler(triggers: List[PeriodicTrigger]) -> None:
    for trigger in triggers:
        trigger.start()


async def stop_scheduler(triggers: List[PeriodicTrigger]) -> None:
    for trigger in triggers:
        await trigger.stop()
