"""Pydantic model for validating the scoring LLM's JSON output.

Out-of-range or missing fields are rejected, never clamped: a malformed score
must fail the job rather than be persisted in a coerced form.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator

from drill_eval.domain.errors import ScoringValidationError


class ScoringOutput(BaseModel):
    score: StrictInt = Field(ge=0, le=100)
    feedback: str = Field(min_length=1, max_length=5000)
    what_changed: str = Field(max_length=2000)
    practice_rule: str = Field(max_length=1000)

    model_config = {"extra": "ignore"}

    @field_validator("score", mode="before")
    @classmethod
    def integral_score(cls, value: Any) -> Any:
        # JSON numbers like 85.0 are accepted; 85.5 is not.
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    @field_validator("feedback")
    @classmethod
    def feedback_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("feedback must not be blank")
        return value

    @classmethod
    def json_schema_for_llm(cls) -> dict[str, Any]:
        """Strict JSON schema used for OpenAI structured outputs."""

        return {
            "type": "object",
            "properties": {
                "score": {"type": "integer", "minimum": 0, "maximum": 100},
                "feedback": {"type": "string"},
                "what_changed": {"type": "string"},
                "practice_rule": {"type": "string"},
            },
            "required": ["score", "feedback", "what_changed", "practice_rule"],
            "additionalProperties": False,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "ScoringOutput":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ScoringValidationError(
                f"Scoring response validation failed: {_summarize(exc)}"
            ) from exc

    @classmethod
    def from_json(cls, payload: str) -> "ScoringOutput":
        cleaned = _clean_json_payload(payload)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ResponseContractError(f"Scoring response is not valid JSON: {exc}") from exc
        return cls.from_payload(data)


class ResponseContractError(RuntimeError):
    """Raised when the LLM response is not parseable JSON."""


def _summarize(exc: ValidationError) -> str:
    return ", ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'root'}: {error['msg']}"
        for error in exc.errors()
    )


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code blocks and find the first/last brace to extract JSON."""
    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")

    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


__all__ = ["ScoringOutput", "ResponseContractError"]
