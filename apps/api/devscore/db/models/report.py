import datetime as dt

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from devscore.db.base import Base


class AggregateReport(Base):
    """Candidate-level hiring report; at most one row per candidate."""

    __tablename__ = "aggregate_reports"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    recommendation: Mapped[str] = mapped_column(String(32), nullable=False)
    recommendation_reasons: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    junior_level: Mapped[str] = mapped_column(String(32), nullable=False)
    junior_level_context: Mapped[str | None] = mapped_column(Text())
    technical_breakdown: Mapped[dict | None] = mapped_column(JSON)
    risk_flags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    authenticity_signal: Mapped[str] = mapped_column(String(16), nullable=False)
    authenticity_explanation: Mapped[str | None] = mapped_column(Text())
    interview_questions: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False)
    score_band: Mapped[str] = mapped_column(String(32), nullable=False)
    conclusion: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    tech_proficiency: Mapped[dict | None] = mapped_column(JSON)
    mentoring_needs: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    growth_potential: Mapped[str | None] = mapped_column(Text())
    raw_analysis: Mapped[dict | None] = mapped_column(JSON)
    generated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
