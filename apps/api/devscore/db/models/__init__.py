from devscore.db.models.candidate import AssessmentStatus, Candidate, TechExperience
from devscore.db.models.pipeline import MANUAL_STAGES, PROTECTED_STAGES, PipelineEntry, PipelineStage
from devscore.db.models.project import (
    MAX_ANALYSIS_RETRIES,
    MAX_PROJECTS_PER_CANDIDATE,
    Project,
    ProjectAnalysis,
    ProjectAnalysisStatus,
    ProjectType,
)
from devscore.db.models.report import AggregateReport

__all__ = [
    "AggregateReport",
    "AssessmentStatus",
    "Candidate",
    "MANUAL_STAGES",
    "MAX_ANALYSIS_RETRIES",
    "MAX_PROJECTS_PER_CANDIDATE",
    "PROTECTED_STAGES",
    "PipelineEntry",
    "PipelineStage",
    "Project",
    "ProjectAnalysis",
    "ProjectAnalysisStatus",
    "ProjectType",
    "TechExperience",
]
