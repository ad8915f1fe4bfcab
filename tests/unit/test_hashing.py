"""Tests for step identity hashing."""

import hashlib

import pytest

from stepflow.hashing import (
    STEP_INDEXING_SUFFIX,
    hash_id,
    hash_op,
    hash_signing_key,
    indexed_id,
    next_free_id,
)
from stepflow.types import OutgoingOp, StepOpCode


class TestHashId:

    def test_known_digests(self):
        assert hash_id("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"
        assert hash_id("") == "da39a3ee5e6b4b0d3255bfef95601890afd80709"

    def test_is_sha1_of_utf8(self):
        assert hash_id("步骤") == hashlib.sha1("步骤".encode("utf-8")).hexdigest()

    def test_deterministic(self):
        assert hash_id("step-1") == hash_id("step-1")
        assert hash_id("step-1") != hash_id("step-2")

    def test_hash_op_only_changes_id(self):
        op = OutgoingOp(id="charge", op=StepOpCode.STEP_PLANNED, name="charge", display_name="Charge")

        hashed = hash_op(op)

        assert hashed.id == hash_id("charge")
        assert hashed.name == "charge"
        assert hashed.display_name == "Charge"
        assert op.id == "charge"


class TestIndexing:

    def test_indexed_id(self):
        assert STEP_INDEXING_SUFFIX == ":"
        assert indexed_id("fetch", 2) == "fetch:2"

    def test_unused_base_stays_bare(self):
        assert next_free_id("fetch", set()) == "fetch"

    def test_lowest_free_index(self):
        assert next_free_id("fetch", {"fetch"}) == "fetch:1"
        assert next_free_id("fetch", {"fetch", "fetch:1"}) == "fetch:2"
        assert next_free_id("fetch", ["fetch", "fetch:2"]) == "fetch:1"


class TestSigningKey:

    def test_empty_key(self):
        assert hash_signing_key(None) == ""
        assert hash_signing_key("") == ""

    def test_prefix_is_kept_and_hex_is_hashed(self):
        key = "ab" * 32
        expected = hashlib.sha256(bytes.fromhex(key)).hexdigest()

        assert hash_signing_key(f"signkey-prod-{key}") == f"signkey-prod-{expected}"
        assert hash_signing_key(key) == expected

    def test_invalid_hex_raises(self):
        with pytest.raises(ValueError):
            hash_signing_key("signkey-test-not-hex")
