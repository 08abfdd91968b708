"""
Failure taxonomy for the assessment pipeline.

Transient provider errors never leave the text-generation client unless its
in-call attempts are exhausted, at which point they are re-raised as a hard
``AnalysisError``. Every ``AnalysisError`` reaching the project state machine
is charged against the persisted retry budget.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    TRANSIENT = "transient"
    LLM_ERROR = "llm_error"
    PARSE_ERROR = "parse_error"
    CONTENT_ERROR = "content_error"


class TransientProviderError(Exception):
    """Rate-limit or overload signal from the text-generation provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AnalysisError(Exception):
    """Hard failure of one analysis attempt."""

    error_type: ErrorType = ErrorType.LLM_ERROR


class ResponseValidationError(AnalysisError):
    """Structured response was malformed or incomplete."""

    error_type = ErrorType.PARSE_ERROR


class ContentFetchError(AnalysisError):
    """Repository content could not be fetched or contained nothing analyzable."""

    error_type = ErrorType.CONTENT_ERROR
