import datetime as dt
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from devscore.db.base import Base


class AssessmentStatus(str, Enum):
    REGISTERING = "REGISTERING"
    PROJECTS_SUBMITTED = "PROJECTS_SUBMITTED"
    ANALYZING = "ANALYZING"
    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    ASSESSED = "ASSESSED"


class Candidate(Base):
    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    assessment_status: Mapped[AssessmentStatus] = mapped_column(
        SAEnum(AssessmentStatus, native_enum=False, length=32),
        default=AssessmentStatus.REGISTERING,
        server_default=AssessmentStatus.REGISTERING.value,
        nullable=False,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TechExperience(Base):
    """Self-reported months of experience with one stack."""

    __tablename__ = "tech_experiences"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    stack_name: Mapped[str] = mapped_column(String(100), nullable=False)
    months: Mapped[int] = mapped_column(Integer, nullable=False)
