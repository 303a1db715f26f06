"""SQLAlchemy model for persisted evaluation results."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from drill_eval.models.base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EvaluationResultRecord(Base):
    __tablename__ = "evaluation_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    job_id = Column(
        String(64),
        nullable=False,
        index=True,
    )
    user_id = Column(
        String(128),
        nullable=True,
        index=True,
    )
    question_id = Column(
        String(128),
        nullable=False,
        default="unknown",
    )
    content_pack_id = Column(String(128), nullable=True)
    response_type = Column(String(32), nullable=True)
    score = Column(Integer, nullable=False)
    feedback = Column(Text, nullable=False)
    what_changed = Column(Text, nullable=False, default="")
    practice_rule = Column(Text, nullable=False, default="")
    transcription = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=False)
    tokens_used = Column(Integer, nullable=True)
    metadata_json = Column(
        "metadata",
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )


__all__ = ["EvaluationResultRecord"]
