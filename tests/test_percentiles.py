"""Tests for the latency summary helpers."""

from __future__ import annotations

import pytest

from drill_eval.utils import percentile, summarize


def test_nearest_rank_percentiles():
    values = list(range(1, 101))

    assert percentile(values, 50) == 50
    assert percentile(values, 95) == 95
    assert percentile(values, 99) == 99
    assert percentile(values, 100) == 100
    assert percentile(values, 0) == 1


def test_percentile_ignores_input_order():
    assert percentile([900, 100, 500], 50) == 500


def test_empty_sample_is_zero():
    assert summarize([]) == {"count": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "max": 0.0}


def test_out_of_range_percentile_is_rejected():
    with pytest.raises(ValueError):
        percentile([1.0], 101)


def test_summary_reports_tail_latency():
    summary = summarize([120.0, 80.0, 9500.0, 110.0])

    assert summary["count"] == 4
    assert summary["p50"] == 110.0
    assert summary["p95"] == 9500.0
    assert summary["max"] == 9500.0
