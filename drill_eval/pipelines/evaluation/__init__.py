"""Evaluation worker pipeline.

`processor` holds the per-job state machine; `flow` documents the stage
order for contributors.
"""

from .flow import EvaluationPipeline, PipelineStage
from .processor import PIPELINE_COMPONENT, EvaluationJobProcessor

__all__ = [
    "EvaluationJobProcessor",
    "EvaluationPipeline",
    "PIPELINE_COMPONENT",
    "PipelineStage",
]
