"""
Analysis requester: one text-generation call per request, with the response
turned into a validated, typed result.

Transient provider errors are absorbed by the LLM client's in-call backoff.
Everything that reaches the caller as an exception here is a hard failure.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from devscore.core.pipeline_errors import ResponseValidationError
from devscore.services.llm_client import LLMClient, LLMRequest, get_llm_client
from devscore.services.prompt_registry import HIRING_ADVISOR_PERSONA, PROJECT_REVIEWER_PERSONA

logger = logging.getLogger(__name__)

MAX_LIST_ITEMS = 5

PROJECT_ANALYSIS_BUDGET = 4096
PROJECT_ANALYSIS_TEMPERATURE = 0.4
HIRING_REPORT_BUDGET = 8192
HIRING_REPORT_TEMPERATURE = 0.5

_ANALYSIS_BLOCK = re.compile(r"<analysis>.*?</analysis>", re.IGNORECASE | re.DOTALL)
_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```\s*$")


class Recommendation(str, Enum):
    SAFE_TO_INTERVIEW = "SAFE_TO_INTERVIEW"
    INTERVIEW_WITH_CAUTION = "INTERVIEW_WITH_CAUTION"
    NOT_READY = "NOT_READY"


class JuniorLevel(str, Enum):
    ABOVE_EXPECTED = "ABOVE_EXPECTED"
    WITHIN_EXPECTED = "WITHIN_EXPECTED"
    BELOW_EXPECTED = "BELOW_EXPECTED"


class ScoreBand(str, Enum):
    STRONG_JUNIOR = "STRONG_JUNIOR"
    AVERAGE_JUNIOR = "AVERAGE_JUNIOR"
    RISKY_JUNIOR = "RISKY_JUNIOR"


class AuthenticitySignal(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class ProjectAnalysisResult:
    score: int
    strengths: List[str]
    weaknesses: List[str]
    potential_mismatch: bool = False
    mismatch_reason: Optional[str] = None
    strengths_summary: str = ""
    weaknesses_summary: str = ""
    code_organization: str = ""
    tech_stack: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HiringReportResult:
    recommendation: Recommendation
    junior_level: JuniorLevel
    score_band: ScoreBand
    authenticity_signal: AuthenticitySignal
    overall_score: int
    recommendation_reasons: List[str] = field(default_factory=list)
    junior_level_context: str = "Junior Developer"
    technical_breakdown: Dict[str, Any] = field(default_factory=dict)
    risk_flags: List[str] = field(default_factory=list)
    authenticity_explanation: str = ""
    interview_questions: List[str] = field(default_factory=list)
    conclusion: str = ""
    tech_proficiency: Dict[str, Any] = field(default_factory=dict)
    mentoring_needs: List[str] = field(default_factory=list)
    growth_potential: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)


def strip_response_wrappers(content: str) -> str:
    """Remove <analysis> reasoning blocks and surrounding code fences."""
    cleaned = _ANALYSIS_BLOCK.sub("", (content or "").strip()).strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_json_object(content: str) -> Dict[str, Any]:
    cleaned = strip_response_wrappers(content)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseValidationError(f"Response is not valid JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise ResponseValidationError("Response JSON is not an object")
    return parsed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def clamp_score(value: float) -> int:
    return int(round(min(100.0, max(0.0, float(value)))))


def _str_list(value: Any, limit: Optional[int] = None) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [str(v) for v in value if v is not None]
    return items[:limit] if limit else items


E = TypeVar("E", bound=Enum)


def normalize_enum(value: Any, enum_cls: Type[E], fallback: E, field_name: str) -> E:
    """Map a raw value onto a closed set, substituting ``fallback`` for anything else."""
    if isinstance(value, str):
        candidate = value.strip().upper()
        for member in enum_cls:
            if member.value == candidate:
                return member
    logger.warning(
        f"Out-of-set value for {field_name}, using {fallback.value}",
        extra={"field": field_name, "received": str(value)[:50]},
    )
    return fallback


def score_band_for(score: int) -> ScoreBand:
    if score >= 75:
        return ScoreBand.STRONG_JUNIOR
    if score >= 50:
        return ScoreBand.AVERAGE_JUNIOR
    return ScoreBand.RISKY_JUNIOR


def validate_project_analysis(parsed: Dict[str, Any]) -> ProjectAnalysisResult:
    """Numeric score and list-typed strengths/weaknesses are mandatory."""
    score = parsed.get("score")
    if not _is_number(score):
        raise ResponseValidationError("Invalid AI response structure: score must be numeric")
    if not isinstance(parsed.get("strengths"), list) or not isinstance(parsed.get("weaknesses"), list):
        raise ResponseValidationError("Invalid AI response structure: strengths and weaknesses must be lists")

    return ProjectAnalysisResult(
        score=clamp_score(score),
        strengths=_str_list(parsed["strengths"], MAX_LIST_ITEMS),
        weaknesses=_str_list(parsed["weaknesses"], MAX_LIST_ITEMS),
        potential_mismatch=bool(parsed.get("potentialMismatch", False)),
        mismatch_reason=parsed.get("mismatchReason") or None,
        strengths_summary=str(parsed.get("strengthsSummary") or ""),
        weaknesses_summary=str(parsed.get("weaknessesSummary") or ""),
        code_organization=str(parsed.get("codeOrganization") or ""),
        tech_stack=_str_list(parsed.get("techStack")),
    )


def validate_hiring_report(parsed: Dict[str, Any]) -> HiringReportResult:
    """Enumerated fields are soft-normalized one by one; the overall score is mandatory."""
    overall = parsed.get("overallScore")
    if not _is_number(overall):
        raise ResponseValidationError("Invalid AI response structure: overallScore must be numeric")
    overall_score = clamp_score(overall)

    raw_band = parsed.get("scoreBand")
    if isinstance(raw_band, str) and raw_band.strip().upper() in ScoreBand.__members__:
        band = ScoreBand(raw_band.strip().upper())
    else:
        band = score_band_for(overall_score)
        logger.warning(
            f"Out-of-set value for scoreBand, derived {band.value} from score",
            extra={"field": "scoreBand", "received": str(raw_band)[:50]},
        )

    breakdown = parsed.get("technicalBreakdown")
    proficiency = parsed.get("techProficiency")

    return HiringReportResult(
        recommendation=normalize_enum(
            parsed.get("recommendation"), Recommendation, Recommendation.INTERVIEW_WITH_CAUTION, "recommendation"
        ),
        junior_level=normalize_enum(
            parsed.get("juniorLevel"), JuniorLevel, JuniorLevel.WITHIN_EXPECTED, "juniorLevel"
        ),
        score_band=band,
        authenticity_signal=normalize_enum(
            parsed.get("authenticitySignal"), AuthenticitySignal, AuthenticitySignal.MEDIUM, "authenticitySignal"
        ),
        overall_score=overall_score,
        recommendation_reasons=_str_list(parsed.get("recommendationReasons")),
        junior_level_context=str(parsed.get("juniorLevelContext") or "Junior Developer"),
        technical_breakdown=breakdown if isinstance(breakdown, dict) else {},
        risk_flags=_str_list(parsed.get("riskFlags")),
        authenticity_explanation=str(parsed.get("authenticityExplanation") or ""),
        interview_questions=_str_list(parsed.get("interviewQuestions")),
        conclusion=str(parsed.get("conclusion") or ""),
        tech_proficiency=proficiency if isinstance(proficiency, dict) else {},
        mentoring_needs=_str_list(parsed.get("mentoringNeeds")),
        growth_potential=str(parsed.get("growthPotential") or ""),
        raw=parsed,
    )


async def request_project_analysis(
    instructions: str,
    llm: Optional[LLMClient] = None,
) -> ProjectAnalysisResult:
    client = llm or get_llm_client()
    response = await client.generate(
        LLMRequest(
            prompt=instructions,
            max_tokens=PROJECT_ANALYSIS_BUDGET,
            temperature=PROJECT_ANALYSIS_TEMPERATURE,
            system_message=PROJECT_REVIEWER_PERSONA,
        )
    )
    result = validate_project_analysis(parse_json_object(response.content))
    logger.info(
        "Project analysis received",
        extra={"score": result.score, "attempts": response.attempts, "response_time_ms": response.response_time_ms},
    )
    return result


async def request_hiring_report(
    instructions: str,
    llm: Optional[LLMClient] = None,
) -> HiringReportResult:
    client = llm or get_llm_client()
    response = await client.generate(
        LLMRequest(
            prompt=instructions,
            max_tokens=HIRING_REPORT_BUDGET,
            temperature=HIRING_REPORT_TEMPERATURE,
            system_message=HIRING_ADVISOR_PERSONA,
        )
    )
    return validate_hiring_report(parse_json_object(response.content))


def summarize_projects_for_report(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Shape completed analyses for the report prompt."""
    return [
        {
            "name": r.get("name"),
            "project_type": r.get("project_type"),
            "description": r.get("description"),
            "score": r.get("score"),
            "tech_stack": r.get("tech_stack") or [],
            "strengths": r.get("strengths") or [],
            "weaknesses": r.get("weaknesses") or [],
            "code_organization": r.get("code_organization"),
        }
        for r in rows
    ]
