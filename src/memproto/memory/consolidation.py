"""Consolidation engine - fold duplicate records into the first one seen."""

import hashlib
import re

from memproto.core.logging import get_logger
from memproto.memory.base import MemoryRecord

logger = get_logger("memory.consolidation")

IMPORTANCE_STEP = 0.1

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Case-fold and collapse whitespace."""
    return _WHITESPACE.sub(" ", text.casefold()).strip()


def fingerprint(text: str) -> str:
    """128-bit blake2b digest of the normalized text."""
    return hashlib.blake2b(normalize_text(text).encode("utf-8"), digest_size=16).hexdigest()


def consolidate_records(records: list[MemoryRecord]) -> list[MemoryRecord]:
    """Deduplicate records by content fingerprint.

    Records are processed in input order. The first record for a fingerprint
    is kept; each later duplicate raises the kept record's importance by 0.1
    (capped at 1.0), adds its access count, and is dropped. Inputs are not
    mutated; the returned records are copies.
    """
    kept: dict[str, MemoryRecord] = {}
    folded = 0

    for record in records:
        key = fingerprint(record.content.text)
        existing = kept.get(key)
        if existing is None:
            kept[key] = record.copy()
            continue

        existing.metadata.importance = min(1.0, existing.metadata.importance + IMPORTANCE_STEP)
        existing.metadata.access_count += record.metadata.access_count
        folded += 1

    if folded:
        logger.debug(f"Folded {folded} duplicate records into {len(kept)}")
    return list(kept.values())
