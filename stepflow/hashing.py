"""Deterministic step identities."""

import hashlib
import re
from dataclasses import replace
from typing import Iterable, Optional

from stepflow.types import OutgoingOp

STEP_INDEXING_SUFFIX = ":"


def hash_id(step_id: str) -> str:
    """SHA-1 hex digest of the UTF-8 step id; must never change between releases."""
    return hashlib.sha1(step_id.encode("utf-8")).hexdigest()


def hash_op(op: OutgoingOp) -> OutgoingOp:
    """Return a copy of ``op`` with its id hashed."""
    return replace(op, id=hash_id(op.id))


def indexed_id(base: str, index: int) -> str:
    return f"{base}{STEP_INDEXING_SUFFIX}{index}"


def next_free_id(base: str, used: Iterable[str]) -> str:
    """
    ``base`` if unused, otherwise ``base:n`` for the lowest free ``n >= 1``.

    ``used`` holds unhashed ids already taken in this pass.
    """
    taken = used if isinstance(used, (set, frozenset, dict)) else set(used)
    if base not in taken:
        return base

    index = 1
    while indexed_id(base, index) in taken:
        index += 1
    return indexed_id(base, index)


_SIGNING_KEY_PREFIX = re.compile(r"^signkey-\w+-")


def hash_signing_key(signing_key: Optional[str]) -> str:
    """SHA-256 of the hex-decoded key, keeping any ``signkey-<env>-`` prefix."""
    if not signing_key:
        return ""

    match = _SIGNING_KEY_PREFIX.match(signing_key)
    prefix = match.group(0) if match else ""
    key = signing_key[len(prefix):]
    return prefix + hashlib.sha256(bytes.fromhex(key)).hexdigest()
