"""Tests for the per-question document and cross-question index."""
import json

import numpy as np
import pytest

from beliefprobe.output_schema import (
    REQUIRED_KEYS,
    NumpyEncoder,
    build_index_entry,
    build_question_summary,
    summarize_questions,
    to_json,
    validate_question_detail,
)
from beliefprobe.pipeline import CausalSensitivityPipeline
from conftest import ScriptedForecaster


def _ok(shift, probe_type="node_negate_high"):
    return {"probe_type": probe_type, "success": True, "absolute_shift": shift}


def _failed(probe_type="node_negate_high"):
    return {"probe_type": probe_type, "success": False, "absolute_shift": None}


@pytest.fixture
def detail():
    return CausalSensitivityPipeline(ScriptedForecaster()).run("Will X happen?", question_id="q1")


class TestQuestionSummary:
    """Per-question summary block."""

    def test_counts_and_shifts(self):
        s = build_question_summary("q1", "Q?", "live", "live", 0.6, [_ok(0.1), _ok(0.3), _failed()])
        assert s["n_probes"] == 3
        assert s["n_successful"] == 2
        assert s["mean_absolute_shift"] == pytest.approx(0.2)
        assert s["max_absolute_shift"] == pytest.approx(0.3)

    def test_no_successes(self):
        s = build_question_summary("q1", "Q?", "live", "live", 0.6, [_failed()])
        assert s["mean_absolute_shift"] is None
        assert s["max_absolute_shift"] is None
        assert s["n_successful"] == 0

    def test_all_zero_shifts_reported_as_zero(self):
        s = build_question_summary("q1", "Q?", "live", "live", 0.6, [_ok(0.0), _ok(0.0), _failed()])
        assert s["mean_absolute_shift"] == 0.0
        assert s["mean_absolute_shift"] is not None
        assert s["max_absolute_shift"] == 0.0


class TestValidation:
    """validate_question_detail."""

    def test_pipeline_document_valid(self, detail):
        assert validate_question_detail(detail) == []

    def test_empty_graph_document_valid(self):
        detail = CausalSensitivityPipeline(ScriptedForecaster(nodes=[], edges=[])).run("Q?")
        assert detail["network_analysis"]["outcome_node"] is None
        assert validate_question_detail(detail) == []

    def test_outcome_must_be_a_node(self, detail):
        detail["network_analysis"]["outcome_node"] = None
        errors = validate_question_detail(detail)
        assert any("outcome_node" in e for e in errors)

    def test_missing_keys(self):
        errors = validate_question_detail({})
        assert len(errors) == len(REQUIRED_KEYS)

    def test_node_metrics_mismatch(self, detail):
        detail["nodes"] = detail["nodes"][:-1]
        errors = validate_question_detail(detail)
        assert any("node_metrics ids" in e for e in errors)
        assert any("n_nodes mismatch" in e for e in errors)

    def test_unknown_edge_target(self, detail):
        detail["edges"] = detail["edges"][1:]
        errors = validate_question_detail(detail)
        assert any("unknown edge" in e for e in errors)

    def test_shift_consistency(self, detail):
        detail["probe_results"][0]["absolute_shift"] = None
        errors = validate_question_detail(detail)
        assert any("without an absolute_shift" in e for e in errors)

    def test_category_consistency(self, detail):
        detail["probe_results"][0]["probe_category"] = "edge"
        errors = validate_question_detail(detail)
        assert any("category" in e for e in errors)

    def test_missing_probe_result_keys(self, detail):
        del detail["probe_results"][0]["target_importance"]
        errors = validate_question_detail(detail)
        assert any("missing keys" in e for e in errors)


class TestJson:
    """Serialization with numpy values."""

    def test_numpy_encoder(self):
        payload = {"a": np.float64(0.5), "b": np.int64(3), "c": np.array([1, 2]), "d": np.bool_(True)}
        assert json.loads(json.dumps(payload, cls=NumpyEncoder)) == {"a": 0.5, "b": 3, "c": [1, 2], "d": True}

    def test_document_roundtrip(self, detail):
        loaded = json.loads(to_json(detail))
        assert loaded["question_id"] == "q1"
        assert loaded["network_analysis"]["outcome_node"] == "outcome"
        assert validate_question_detail(loaded) == []


class TestSummarizeQuestions:
    """Cross-question fold."""

    def test_index_entry(self, detail):
        entry = build_index_entry(detail)
        assert entry["question_id"] == "q1"
        assert entry["n_nodes"] == 4
        assert entry["n_edges"] == 3
        assert entry["ssr"] == detail["aggregate_metrics"]["ssr"]

    def test_fold(self, detail):
        other = CausalSensitivityPipeline(
            ScriptedForecaster(shifts={"node_negate_high": 0.4, "node_negate_low": 0.1})
        ).run("Will Y happen?", question_id="q2")
        summary = summarize_questions([detail, other], model="m", condition="one-turn")
        assert summary["total_questions"] == 2
        assert summary["model"] == "m"
        assert summary["avg_nodes"] == 4.0
        assert summary["avg_edges"] == 3.0
        assert [q["question_id"] for q in summary["questions"]] == ["q1", "q2"]
        expected = (detail["aggregate_metrics"]["ssr"] + other["aggregate_metrics"]["ssr"]) / 2
        assert summary["avg_ssr"] == pytest.approx(expected)

    def test_skips_documents_without_results(self, detail):
        empty = dict(detail, question_id="q0", probe_results=[])
        summary = summarize_questions([empty, detail])
        assert summary["total_questions"] == 1

    def test_none_ssr_excluded_from_average(self, detail):
        flat = CausalSensitivityPipeline(
            ScriptedForecaster(shifts={})
        ).run("Will Z happen?", question_id="q3")
        assert flat["aggregate_metrics"]["ssr"] is None
        summary = summarize_questions([detail, flat])
        assert summary["avg_ssr"] == pytest.approx(detail["aggregate_metrics"]["ssr"])
        assert summary["avg_mean_shift"] == pytest.approx(
            (detail["summary"]["mean_absolute_shift"] + 0.0) / 2
        )

    def test_empty(self):
        summary = summarize_questions([])
        assert summary["total_questions"] == 0
        assert summary["avg_ssr"] is None
        assert summary["avg_mean_shift"] == 0.0
        assert summary["avg_nodes"] == 0.0

    def test_pure(self, detail):
        assert summarize_questions([detail]) == summarize_questions([detail])
