"""The documented stage map must point at real modules."""

from __future__ import annotations

import importlib

from drill_eval.pipelines.evaluation import EvaluationPipeline


def test_stages_are_ordered_and_importable():
    stages = list(EvaluationPipeline.describe())

    assert [stage.order for stage in stages] == list(range(1, len(stages) + 1))
    assert stages[0].name == "Idempotency"
    assert stages[-1].name == "Reporting"
    for stage in stages:
        importlib.import_module(stage.module)
