from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from devscore.db.models import AssessmentStatus, PipelineStage, ProjectAnalysisStatus, ProjectType


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    repository_url: str = Field(..., min_length=1, max_length=500)
    project_type: ProjectType
    description: Optional[str] = Field(None, max_length=2000)


class ProjectRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ProjectRead(BaseModel):
    id: int
    candidate_id: int
    name: str
    repository_url: str
    project_type: ProjectType
    description: Optional[str] = None
    tech_stack: List[str] = []
    saved_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    is_locked: bool = False
    lock_days_remaining: int = 0
    analysis_status: Optional[ProjectAnalysisStatus] = None
    score: Optional[int] = None
    strengths: List[str] = []
    areas_for_improvement: List[str] = []
    code_organization: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0


class ProjectDeleted(BaseModel):
    deleted: bool = True
    assessment_status: AssessmentStatus


class AssessmentStatusRead(BaseModel):
    candidate_id: int
    status: AssessmentStatus
    description: str
    project_count: int
    analyzed_count: int
    pending_count: int
    failed_count: int
    has_report: bool
    overall_score: Optional[int] = None
    tech_stack: List[str] = []
    is_visible: bool
    visibility_reason: Optional[str] = None


class RegenerateResponse(BaseModel):
    reset_analyses: int
    status: AssessmentStatus
    message: str


class PipelineEntryCreate(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class PipelineStageUpdate(BaseModel):
    stage: PipelineStage


class PipelineEntryRead(BaseModel):
    id: int
    organization_id: int
    candidate_id: int
    stage: PipelineStage
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
