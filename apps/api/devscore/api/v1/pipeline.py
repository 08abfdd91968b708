from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from devscore.api.v1.schemas import PipelineEntryCreate, PipelineEntryRead, PipelineStageUpdate
from devscore.db.session import get_session
from devscore.services import pipeline

router = APIRouter(prefix="/organizations/{organization_id}/pipeline", tags=["pipeline"])


@router.post("/{candidate_id}", response_model=PipelineEntryRead, status_code=status.HTTP_201_CREATED)
async def add_to_pipeline(
    organization_id: int,
    candidate_id: int,
    body: PipelineEntryCreate | None = None,
    session: AsyncSession = Depends(get_session),
):
    entry = await pipeline.add_to_pipeline(
        session, organization_id, candidate_id, notes=body.notes if body else None
    )
    return entry


@router.patch("/{candidate_id}", response_model=PipelineEntryRead)
async def update_stage(
    organization_id: int,
    candidate_id: int,
    body: PipelineStageUpdate,
    session: AsyncSession = Depends(get_session),
):
    return await pipeline.update_pipeline_stage(session, organization_id, candidate_id, body.stage)
