"""Tests for mapping execution results onto responses."""

import json

import pytest

from stepflow.errors import NonRetriableError, serialize_error
from stepflow.execution.result import (
    FunctionRejected,
    FunctionResolved,
    StepNotFound,
    StepRan,
    StepsFound,
)
from stepflow.execution.serializer import (
    HEADER_NO_RETRY,
    HEADER_RETRY_AFTER,
    error_response,
    retry_headers,
    serialize_result,
)
from stepflow.types import OutgoingOp, StepOpCode


class TestSerializeResult:

    def test_function_resolved(self):
        response = serialize_result(FunctionResolved(data={"ok": True}))

        assert response.status == 200
        assert json.loads(response.body) == {"ok": True}
        assert response.headers == {}
        assert response.version == 1

    def test_function_resolved_none_is_null(self):
        assert serialize_result(FunctionResolved(data=None)).body == "null"

    def test_retriable_rejection(self):
        error = serialize_error(ValueError("x"))

        response = serialize_result(FunctionRejected(error=error, retriable=True))

        assert response.status == 500
        assert response.headers == {HEADER_NO_RETRY: "false"}
        assert json.loads(response.body)["message"] == "x"

    def test_non_retriable_rejection(self):
        error = serialize_error(NonRetriableError("fatal"))

        response = serialize_result(FunctionRejected(error=error, retriable=False))

        assert response.status == 400
        assert response.headers == {HEADER_NO_RETRY: "true"}

    def test_rejection_with_retry_after(self):
        response = serialize_result(FunctionRejected(error={}, retriable="30"))

        assert response.status == 500
        assert response.headers == {HEADER_NO_RETRY: "false", HEADER_RETRY_AFTER: "30"}

    def test_steps_found(self):
        ops = [
            OutgoingOp(id="h1", op=StepOpCode.STEP_PLANNED, name="a", display_name="A"),
            OutgoingOp(id="h2", op=StepOpCode.SLEEP, name="1h", display_name="nap"),
        ]

        response = serialize_result(StepsFound(steps=ops))

        assert response.status == 206
        assert json.loads(response.body) == [
            {"id": "h1", "op": "StepPlanned", "name": "a", "displayName": "A"},
            {"id": "h2", "op": "Sleep", "name": "1h", "displayName": "nap"},
        ]

    def test_step_ran_keeps_null_data(self):
        op = OutgoingOp(id="h1", op=StepOpCode.STEP_RUN, name="a", display_name="a", data=None)

        response = serialize_result(StepRan(step=op))

        assert response.status == 206
        assert json.loads(response.body) == [
            {"id": "h1", "op": "StepRun", "name": "a", "displayName": "a", "data": None}
        ]
        assert response.headers == {}

    def test_step_ran_with_error(self):
        op = OutgoingOp(
            id="h1", op=StepOpCode.STEP_ERROR, name="a", display_name="a",
            error=serialize_error(ValueError("x")),
        )

        response = serialize_result(StepRan(step=op, retriable="60"))

        body = json.loads(response.body)
        assert response.status == 206
        assert body[0]["op"] == "StepError"
        assert body[0]["error"]["name"] == "ValueError"
        assert "data" not in body[0]
        assert response.headers == {HEADER_NO_RETRY: "false", HEADER_RETRY_AFTER: "60"}

    def test_step_not_found(self):
        response = serialize_result(StepNotFound(step=OutgoingOp(id="h9", op=StepOpCode.STEP_NOT_FOUND)))

        assert response.status == 500
        assert response.headers == {HEADER_NO_RETRY: "false"}
        assert "h9" in json.loads(response.body)["error"]

    def test_opts_are_included(self):
        op = OutgoingOp(
            id="h1", op=StepOpCode.WAIT_FOR_EVENT, name="app/ok", display_name="wait",
            opts={"timeout": "1h"},
        )

        body = json.loads(serialize_result(StepsFound(steps=[op])).body)

        assert body[0]["opts"] == {"timeout": "1h"}

    def test_unknown_result(self):
        with pytest.raises(TypeError):
            serialize_result(object())

    def test_retry_headers(self):
        assert retry_headers(None) == {}
        assert retry_headers(True) == {HEADER_NO_RETRY: "false"}

    def test_error_response_without_retry_decision(self):
        response = error_response({"error": "nope"}, status=404, retriable=None)

        assert response.status == 404
        assert response.headers == {}
        assert response.version is None
        assert json.loads(response.body) == {"error": "nope"}

    def test_error_response_not_retried(self):
        response = error_response(serialize_error(NonRetriableError("stop")), status=400, retriable=False)

        assert response.headers == {HEADER_NO_RETRY: "true"}
        assert json.loads(response.body)["message"] == "stop"
