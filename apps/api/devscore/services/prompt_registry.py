"""
Centralized prompt registry for assessment LLM flows.

Purpose:
- Keep all long-lived prompt strings in one place
- Provide small helpers to assemble prompts consistently
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence


PROJECT_REVIEWER_PERSONA = (
    "You are an honest, experienced code reviewer evaluating junior developers (0-3 years) for recruiters. "
    "Base every judgement on the code you are shown. Use the full 0-100 scoring range and separate "
    "beginner work from advanced work."
)

HIRING_ADVISOR_PERSONA = (
    "You are a senior technical advisor writing hiring recommendations for junior developers (0-3 years). "
    "The report must answer one recruiter question: can this junior safely move forward? "
    "Be objective, specific and actionable."
)


def _experience_block(experience: Sequence[Dict[str, object]]) -> str:
    if not experience:
        return ""
    lines = "\n".join(f'  <skill tech="{e["tech"]}" months="{e["months"]}"/>' for e in experience)
    return (
        "<developer_experience>\n" + lines + "\n</developer_experience>\n\n"
        "<experience_scoring>\n"
        "Identical code earns a higher score from a developer with fewer months of experience; "
        "it shows faster learning. Expect production-style practices only beyond two years.\n"
        "</experience_scoring>"
    )


def project_analysis_prompt(
    *,
    code_snippets: str,
    file_count: int,
    name: str,
    description: str,
    project_type: str,
    languages: List[str],
    is_fullstack_by_structure: bool = False,
    experience: Optional[Sequence[Dict[str, object]]] = None,
) -> str:
    """Prompt for the per-project review (developer-visible result)."""
    fullstack_note = ""
    if is_fullstack_by_structure:
        fullstack_note = (
            "  <fullstack_structure>true</fullstack_structure>\n"
            "  <note>Client and server code are both present; a FULLSTACK declaration is not a mismatch.</note>\n"
        )

    return f"""Evaluate this personal project submitted by a junior developer. Focus on potential, learning trajectory and care, not production readiness.

<project_metadata>
  <name>{name}</name>
  <description>{description}</description>
  <declared_type>{project_type}</declared_type>
  <detected_languages>{", ".join(languages)}</detected_languages>
{fullstack_note}</project_metadata>

{_experience_block(experience or [])}

<code_repository files="{file_count}">
{code_snippets}
</code_repository>

<instructions>
1. Rate business-logic complexity: simple CRUD or portfolio (base 40), relationships/auth/APIs (60), algorithms or data transformation (75), real-time or complex state (85).
2. Adjust for execution: organization, framework understanding, validation, security awareness, completeness. Add 10-15 when meaningful tests exist.
3. Flag a type mismatch only when the declared type clearly contradicts the code.
4. List 3-5 strengths and 3-5 weaknesses that reference concrete files or functions. Do not list missing tests as a weakness below 30 months of experience.
</instructions>

You may reason inside <analysis></analysis> tags first. Then output a JSON object:
{{
  "score": <integer 0-100>,
  "potentialMismatch": <true|false>,
  "mismatchReason": <string or null>,
  "strengths": ["..."],
  "weaknesses": ["..."],
  "strengthsSummary": "<2-3 sentences>",
  "weaknessesSummary": "<2-3 sentences>",
  "codeOrganization": "<1-2 sentences>",
  "techStack": ["..."]
}}"""


def hiring_report_prompt(
    *,
    projects: Sequence[Dict[str, object]],
    candidate_name: str,
    experience: Optional[Sequence[Dict[str, object]]] = None,
) -> str:
    """Prompt for the candidate-level report built from completed project analyses."""
    project_blocks = []
    for index, p in enumerate(projects, start=1):
        strengths = "\n".join(f"    <item>{s}</item>" for s in p.get("strengths") or [])
        weaknesses = "\n".join(f"    <item>{w}</item>" for w in p.get("weaknesses") or [])
        project_blocks.append(
            f"""<project index="{index}">
  <name>{p.get("name")}</name>
  <type>{p.get("project_type")}</type>
  <description>{p.get("description") or ""}</description>
  <score>{p.get("score")}</score>
  <tech_stack>{", ".join(p.get("tech_stack") or [])}</tech_stack>
  <strengths>
{strengths}
  </strengths>
  <weaknesses>
{weaknesses}
  </weaknesses>
  <code_organization>{p.get("code_organization") or ""}</code_organization>
</project>"""
        )

    experience_lines = "\n".join(
        f'  <tech name="{e["tech"]}" months="{e["months"]}"/>' for e in (experience or [])
    )

    return f"""Write a recruiter-facing technical report for {candidate_name or "this candidate"}.

<self_reported_experience>
{experience_lines}
</self_reported_experience>

<analyzed_projects count="{len(projects)}">
{chr(10).join(project_blocks)}
</analyzed_projects>

<value_sets>
recommendation: SAFE_TO_INTERVIEW (solid fundamentals) | INTERVIEW_WITH_CAUTION (potential, notable concerns) | NOT_READY (fundamental gaps)
juniorLevel: ABOVE_EXPECTED | WITHIN_EXPECTED | BELOW_EXPECTED
scoreBand: STRONG_JUNIOR | AVERAGE_JUNIOR | RISKY_JUNIOR
authenticitySignal: HIGH (consistent understanding) | MEDIUM (mixed signals) | LOW (copy-paste without comprehension)
</value_sets>

Interview questions must reference specific projects and decisions. Output ONLY a JSON object:
{{
  "recommendation": "...",
  "recommendationReasons": ["..."],
  "juniorLevel": "...",
  "juniorLevelContext": "<e.g. Junior Backend>",
  "technicalBreakdown": {{
    "codeStructure": {{"summary": "", "strengths": [], "improvements": []}},
    "coreFundamentals": {{"summary": "", "strengths": [], "improvements": []}},
    "problemSolving": {{"summary": "", "strengths": [], "improvements": []}},
    "toolingPractices": {{"summary": "", "strengths": [], "improvements": []}}
  }},
  "riskFlags": ["..."],
  "authenticitySignal": "...",
  "authenticityExplanation": "<1-2 sentences>",
  "interviewQuestions": ["..."],
  "overallScore": <integer 0-100>,
  "scoreBand": "...",
  "conclusion": "<2-3 sentences>",
  "techProficiency": {{"<tech>": <1-10>}},
  "mentoringNeeds": ["..."],
  "growthPotential": "<1-2 sentences>"
}}"""
