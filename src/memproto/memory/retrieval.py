"""
Retrieval engine - scoring, filtering, sorting and pagination.

Every backend runs the same pipeline over its candidate records:

1. Candidates: the exact-id match when ``query.id`` is set, else every record.
2. Scoring (skipped for exact id): +0.8 when the query occurs in the text,
   +0.6 per matching keyword, +0.7 per matching tag. Scores are unbounded
   above and only compared ordinally. Candidates below ``query.threshold``
   are dropped.
3. Filters: memory types, storage tiers, inclusive time range, and exact
   equality on metadata keys.
4. Sort: score desc, importance desc, timestamp desc (exact id is unsorted).
5. Pagination: ``[offset, offset + limit)``; the total is counted before
   slicing.

Access tracking on the returned page is the backend's job, since only the
backend owns the stored copy.
"""

from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any

from memproto.memory.base import MemoryQuery, MemoryRecord, ScoredRecord

TEXT_WEIGHT = 0.8
KEYWORD_WEIGHT = 0.6
TAG_WEIGHT = 0.7
MIN_TERM_LENGTH = 3

Scorer = Callable[[MemoryRecord, MemoryQuery], float]


def query_needles(query: str) -> list[str]:
    """Lower-cased substrings a field may contain to count as a match.

    The whole query always counts. A multi-word query also matches on any
    single term of at least MIN_TERM_LENGTH characters.
    """
    lowered = query.lower()
    needles = [lowered]
    terms = lowered.split()
    if len(terms) > 1:
        needles.extend(t for t in terms if len(t) >= MIN_TERM_LENGTH and t not in needles)
    return needles


def lexical_score(record: MemoryRecord, query: MemoryQuery) -> float:
    """Default lexical scorer over text, keywords and tags."""
    needles = query_needles(query.query)

    def matches(value: str) -> bool:
        value = value.lower()
        return any(needle in value for needle in needles)

    score = 0.0
    if matches(record.content.text):
        score += TEXT_WEIGHT
    for keyword in record.content.keywords:
        if matches(keyword):
            score += KEYWORD_WEIGHT
    for tag in record.content.tags:
        if matches(tag):
            score += TAG_WEIGHT
    return score


def _filter_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def matches_filters(record: MemoryRecord, query: MemoryQuery) -> bool:
    if query.memory_types and record.memory_type not in query.memory_types:
        return False
    if query.storage_tiers and record.metadata.storage_tier not in query.storage_tiers:
        return False
    if query.time_range and not query.time_range.contains(record.timestamp):
        return False
    if query.filters:
        for key, expected in query.filters.items():
            if record.metadata.lookup(key) != _filter_value(expected):
                return False
    return True


def sort_key(hit: ScoredRecord) -> tuple:
    score = hit.score if hit.score is not None else 0.0
    return (score, hit.record.metadata.importance, hit.record.timestamp)


def sort_hits(hits: list[ScoredRecord]) -> list[ScoredRecord]:
    """Score desc, then importance desc, then most recent first."""
    return sorted(hits, key=sort_key, reverse=True)


def search(
    records: Iterable[MemoryRecord],
    query: MemoryQuery,
    scorer: Scorer = lexical_score,
) -> list[ScoredRecord]:
    """Score, filter and sort records without paginating."""
    if query.id is not None:
        hits = [ScoredRecord(record) for record in records if record.id == query.id][:1]
        return [h for h in hits if matches_filters(h.record, query)]

    hits = []
    for record in records:
        score = scorer(record, query)
        if score < query.threshold:
            continue
        if matches_filters(record, query):
            hits.append(ScoredRecord(record, score))
    return sort_hits(hits)


def paginate(hits: list[ScoredRecord], query: MemoryQuery) -> list[ScoredRecord]:
    return hits[query.offset : query.offset + query.limit]
