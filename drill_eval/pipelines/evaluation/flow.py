"""High-level orchestration map for the evaluation worker.

``EvaluationJobProcessor`` in ``processor.py`` holds the choreography; this
module lists the canonical execution order so the stages can be found
quickly:

1. ``idempotency`` - look for a stored result under the request id.
2. ``transcription`` - audio submissions are turned into text.
3. ``scoring`` - the LLM grades the transcript.
4. ``validation`` - the scoring output is checked against the result schema.
5. ``persistence`` - the result is written with an insert-if-absent upsert.
6. ``reporting`` - analytics events, metrics and queue completion.

A failure at any stage after receipt skips the remaining stages and is
reported to the queue, which decides whether to retry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the evaluation pipeline."""

    order: int
    name: str
    module: str
    summary: str


class EvaluationPipeline:
    """Utility wrapper documenting how one evaluation job is processed."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Idempotency",
            "drill_eval.pipelines.evaluation.processor",
            "Return the stored result when this request id was already evaluated.",
        ),
        PipelineStage(
            2,
            "Transcription",
            "drill_eval.services.transcribe",
            "Download the recording and run speech-to-text (Whisper or Amazon Transcribe).",
        ),
        PipelineStage(
            3,
            "Scoring",
            "drill_eval.services.scoring",
            "Ask the configured LLM for score, feedback, what changed and a practice rule.",
        ),
        PipelineStage(
            4,
            "Validation",
            "drill_eval.services.response_contract",
            "Reject out-of-range scores or missing feedback without coercion.",
        ),
        PipelineStage(
            5,
            "Persistence",
            "drill_eval.infrastructure.persistence.evaluation_store",
            "Insert the result keyed on request id; duplicates are ignored.",
        ),
        PipelineStage(
            6,
            "Reporting",
            "drill_eval.worker",
            "Emit analytics, record metrics and mark the queue job completed.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["EvaluationPipeline", "PipelineStage"]
