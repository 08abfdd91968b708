import datetime as dt
from enum import Enum

from sqlalchemy import JSON, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from devscore.db.base import Base


MAX_PROJECTS_PER_CANDIDATE = 3
MAX_ANALYSIS_RETRIES = 3


class ProjectType(str, Enum):
    FRONTEND = "FRONTEND"
    BACKEND = "BACKEND"
    FULLSTACK = "FULLSTACK"
    MOBILE = "MOBILE"
    OTHER = "OTHER"


class ProjectAnalysisStatus(str, Enum):
    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("candidate_id", "repository_url", name="uq_projects_candidate_repository"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Identity fields; never updated after creation
    repository_url: Mapped[str] = mapped_column(String(500), nullable=False)
    project_type: Mapped[ProjectType] = mapped_column(
        SAEnum(ProjectType, native_enum=False, length=16), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text())
    tech_stack: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    saved_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    # Deletion lock horizon, set when analysis completes
    locked_until: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ProjectAnalysis(Base):
    __tablename__ = "project_analyses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    status: Mapped[ProjectAnalysisStatus] = mapped_column(
        SAEnum(ProjectAnalysisStatus, native_enum=False, length=16),
        default=ProjectAnalysisStatus.PENDING,
        server_default=ProjectAnalysisStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    # Non-null iff status == COMPLETE
    score: Mapped[int | None] = mapped_column(Integer)
    strengths: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    areas_for_improvement: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    code_organization: Mapped[str | None] = mapped_column(Text())
    raw_analysis: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text())
    retry_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    started_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
