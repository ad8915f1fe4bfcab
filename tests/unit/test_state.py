"""Tests for the step state store."""

import pytest

from stepflow.errors import NonRetriableError, StateContractError
from stepflow.execution.state import StepStateStore


class TestStepStateStore:

    def test_data_and_error_outcomes(self):
        store = StepStateStore({"a": {"data": 1}, "b": {"error": {"message": "x"}}}, ["a", "b"])

        assert store.get("a").data == 1
        assert store.get("a").has_data
        assert store.get("b").is_error
        assert store.get("missing") is None

    def test_typed_outcomes(self):
        store = StepStateStore({
            "a": {"type": "data", "data": None},
            "b": {"type": "error", "error": {"message": "x"}},
        })

        assert store.get("a").data is None
        assert not store.get("a").is_error
        assert store.get("b").error == {"message": "x"}

    def test_order_referencing_unknown_step_is_a_contract_error(self):
        with pytest.raises(StateContractError):
            StepStateStore({"a": {"data": 1}}, ["a", "ghost"])

    def test_contract_errors_are_non_retriable(self):
        assert issubclass(StateContractError, NonRetriableError)

    def test_state_missing_from_order_is_appended(self):
        store = StepStateStore({"a": {"data": 1}, "b": {"data": 2}, "c": {"data": 3}}, ["b"])

        assert store.completion_order == ["b", "a", "c"]

    def test_malformed_outcome_rejected(self):
        with pytest.raises(StateContractError):
            StepStateStore({"a": {"nothing": True}})
        with pytest.raises(StateContractError):
            StepStateStore({"a": "not-an-object"})

    def test_seen_tracking(self):
        store = StepStateStore({"a": {"data": 1}, "b": {"data": 2}})

        assert not store.all_state_used()
        store.mark_seen("a")
        store.mark_seen("a")
        assert store.has_been_seen("a")
        assert not store.has_been_seen("b")
        assert not store.all_state_used()
        store.mark_seen("b")
        assert store.all_state_used()

    def test_empty_store_is_fully_used(self):
        store = StepStateStore()

        assert len(store) == 0
        assert store.all_state_used()

    def test_ops_in_wire_shape(self):
        store = StepStateStore({"a": {"data": 1}, "b": {"error": {"message": "x"}}})

        assert store.ops() == {"a": {"data": 1}, "b": {"error": {"message": "x"}}}

    def test_replace_before_memoization(self):
        store = StepStateStore({"a": {"data": 1}, "b": {"data": 2}}, ["b", "a"])

        store.replace({"a": {"data": 10}})

        assert store.get("a").data == 10
        assert "b" not in store
        assert store.completion_order == ["a"]

    def test_replace_after_memoization_started_fails(self):
        store = StepStateStore({"a": {"data": 1}})
        store.mark_seen("a")

        with pytest.raises(StateContractError):
            store.replace({"a": {"data": 2}})
