"""Tests for ToolCallCorrelator."""

from agentos_workbench.domain.models.session_state import DiagnosticKind, ToolCallStatus
from agentos_workbench.domain.tool.tool_call_correlator import ToolCallCorrelator

from tests import frames


def _requested(*ids):
    correlator = ToolCallCorrelator()
    calls, anomalies = correlator.on_request({}, frames.chunk(frames.tool_request([
        {"id": tool_call_id, "name": "search", "arguments": {"q": tool_call_id}}
        for tool_call_id in ids
    ])))
    assert anomalies == []
    return correlator, calls


class TestOnRequest:

    def test_opens_requested_calls(self):
        correlator, calls = _requested("t1", "t2")

        assert list(calls) == ["t1", "t2"]
        assert calls["t1"].status == ToolCallStatus.REQUESTED
        assert calls["t1"].arguments == {"q": "t1"}
        assert calls["t1"].gmi_instance_id == "gmi-1"

    def test_keeps_rationale(self):
        correlator = ToolCallCorrelator()
        chunk = frames.chunk(frames.tool_request(
            [{"id": "t1", "name": "search", "arguments": {}}], rationale="need facts"
        ))

        calls, _ = correlator.on_request({}, chunk)

        assert calls["t1"].rationale == "need facts"

    def test_duplicate_id_is_rejected(self):
        correlator, calls = _requested("t1")
        chunk = frames.chunk(frames.tool_request([{"id": "t1", "name": "other", "arguments": {}}]))

        updated, anomalies = correlator.on_request(calls, chunk)

        assert updated["t1"].name == "search"
        assert len(anomalies) == 1
        assert anomalies[0].kind == DiagnosticKind.DUPLICATE_TOOL_CALL_ID
        assert not anomalies[0].fatal

    def test_duplicate_within_one_chunk(self):
        correlator = ToolCallCorrelator()
        chunk = frames.chunk(frames.tool_request([
            {"id": "t1", "name": "a", "arguments": {}},
            {"id": "t1", "name": "b", "arguments": {}},
        ]))

        calls, anomalies = correlator.on_request({}, chunk)

        assert calls["t1"].name == "a"
        assert [a.kind for a in anomalies] == [DiagnosticKind.DUPLICATE_TOOL_CALL_ID]

    def test_input_map_is_untouched(self):
        correlator, calls = _requested("t1")
        snapshot = dict(calls)

        correlator.on_request(calls, frames.chunk(frames.tool_request([{"id": "t2", "name": "x", "arguments": {}}])))

        assert calls == snapshot


class TestOnResult:

    def test_success_result(self):
        correlator, calls = _requested("t1")

        updated, anomalies = correlator.on_result(calls, frames.chunk(frames.tool_result("t1", {"hits": [1, 2]})))

        assert anomalies == []
        assert updated["t1"].status == ToolCallStatus.SUCCEEDED
        assert updated["t1"].tool_result == {"hits": [1, 2]}
        assert updated["t1"].error_message is None
        assert calls["t1"].status == ToolCallStatus.REQUESTED

    def test_failure_result(self):
        correlator, calls = _requested("t1")

        updated, _ = correlator.on_result(
            calls, frames.chunk(frames.tool_result("t1", None, success=False, error="rate limited"))
        )

        assert updated["t1"].status == ToolCallStatus.FAILED
        assert updated["t1"].error_message == "rate limited"

    def test_out_of_order_results(self):
        correlator, calls = _requested("t1", "t2")

        calls, _ = correlator.on_result(calls, frames.chunk(frames.tool_result("t2", "second")))
        calls, _ = correlator.on_result(calls, frames.chunk(frames.tool_result("t1", "first")))

        assert calls["t1"].tool_result == "first"
        assert calls["t2"].tool_result == "second"

    def test_orphan_result_is_surfaced(self):
        correlator = ToolCallCorrelator()

        calls, anomalies = correlator.on_result({}, frames.chunk(frames.tool_result("ghost", "data", name="fetch")))

        assert anomalies[0].kind == DiagnosticKind.ORPHAN_TOOL_RESULT
        assert calls["ghost"].orphan is True
        assert calls["ghost"].name == "fetch"
        assert calls["ghost"].tool_result == "data"
        assert calls["ghost"].status == ToolCallStatus.SUCCEEDED

    def test_second_result_keeps_first_outcome(self):
        correlator, calls = _requested("t1")
        calls, _ = correlator.on_result(calls, frames.chunk(frames.tool_result("t1", "first")))

        updated, anomalies = correlator.on_result(
            calls, frames.chunk(frames.tool_result("t1", None, success=False, error="late"))
        )

        assert updated["t1"].tool_result == "first"
        assert updated["t1"].status == ToolCallStatus.SUCCEEDED
        assert anomalies[0].kind == DiagnosticKind.ORPHAN_TOOL_RESULT


class TestFinalize:

    def test_marks_open_calls_incomplete(self):
        correlator, calls = _requested("t1", "t2")
        calls, _ = correlator.on_result(calls, frames.chunk(frames.tool_result("t1", "ok")))

        updated, anomalies = correlator.finalize(calls, "s1")

        assert updated["t1"].status == ToolCallStatus.SUCCEEDED
        assert updated["t2"].status == ToolCallStatus.INCOMPLETE
        assert [a.kind for a in anomalies] == [DiagnosticKind.INCOMPLETE_TOOL_CALL]
        assert anomalies[0].stream_id == "s1"
        assert not anomalies[0].fatal

    def test_nothing_open(self):
        correlator = ToolCallCorrelator()

        updated, anomalies = correlator.finalize({}, "s1")

        assert updated == {}
        assert anomalies == []

    def test_open_calls(self):
        correlator, calls = _requested("t1", "t2")
        calls, _ = correlator.on_result(calls, frames.chunk(frames.tool_result("t2", "ok")))

        assert [c.tool_call_id for c in correlator.open_calls(calls)] == ["t1"]
