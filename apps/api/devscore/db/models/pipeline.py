import datetime as dt
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from devscore.db.base import Base


class PipelineStage(str, Enum):
    INVITED = "INVITED"
    REGISTERING = "REGISTERING"
    PROJECTS_SUBMITTED = "PROJECTS_SUBMITTED"
    ANALYZING = "ANALYZING"
    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    ASSESSED = "ASSESSED"
    UNLOCKED = "UNLOCKED"
    HIRED = "HIRED"
    REJECTED = "REJECTED"


# Stages owned by recruiters; automatic synchronization never overwrites them
PROTECTED_STAGES = frozenset({PipelineStage.UNLOCKED, PipelineStage.HIRED, PipelineStage.REJECTED})

# Stages a recruiter may set by hand
MANUAL_STAGES = frozenset({PipelineStage.HIRED, PipelineStage.REJECTED})


class PipelineEntry(Base):
    __tablename__ = "pipeline_entries"
    __table_args__ = (UniqueConstraint("organization_id", "candidate_id", name="uq_pipeline_org_candidate"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[PipelineStage] = mapped_column(
        SAEnum(PipelineStage, native_enum=False, length=32),
        default=PipelineStage.INVITED,
        server_default=PipelineStage.INVITED.value,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
