"""
Aggregator: folds playback records into an AggregatedIndex.

Each record is classified, turned into a single-play Summary and
merge-inserted under its GroupKey. Plays of the same thing add their
durations and union their event logs; the first play seen for a group
provides its username and URIs.

Usage:
    index = fold(records)

    agg = Aggregator()
    for record in records:
        agg.add(record)
    index = agg.finish()
    agg.stats.skipped   # {"other": 12, "episode": 3}

The result only depends on record order through the "first play wins"
identity fields. Feed records in a fixed order (the decoder uses sorted
file names) when results have to be reproducible.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from .classifier import classify, classify_kind
from .models import ContentKind, GroupKey, Record, Summary


# ---------------------------------------------------------------------------
# AggregatedIndex
# ---------------------------------------------------------------------------

class AggregatedIndex:
    """
    Ordered mapping of GroupKey -> Summary.

    Stored as one flat table; iteration always follows the lexicographic
    order of the keys (username, country, kind, level1, level2, level3).
    ``nested()`` gives the equivalent six-level nested view.
    """

    def __init__(self, groups: Optional[Mapping[GroupKey, Summary]] = None) -> None:
        self._groups: dict[GroupKey, Summary] = {}
        self._sorted_keys: Optional[List[GroupKey]] = None
        if groups:
            for key, summary in groups.items():
                self.merge_insert(GroupKey(*key), summary.copy_summary())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def merge_insert(self, key: GroupKey, summary: Summary) -> None:
        """
        Insert ``summary`` at ``key``, merging into an existing summary.

        The index takes ownership of ``summary``. Raises MergeIntegrityError
        when the key already holds an event with one of the new timestamps.
        """
        existing = self._groups.get(key)
        if existing is None:
            self._groups[key] = summary
            self._sorted_keys = None
        else:
            existing.absorb(summary, key)

    def update(self, other: "AggregatedIndex") -> None:
        """Merge every group of ``other`` into this index, in ``other``'s key order."""
        for key, summary in other.items():
            self.merge_insert(key, summary.copy_summary())

    def merge(self, other: "AggregatedIndex") -> "AggregatedIndex":
        """Return a new index combining both; identity fields from ``self`` win."""
        out = AggregatedIndex(self._groups)
        out.update(other)
        out.sort_event_logs()
        return out

    def sort_event_logs(self) -> None:
        """Reorder every event log by timestamp."""
        for summary in self._groups.values():
            summary.event_log = dict(sorted(summary.event_log.items()))

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def keys(self) -> List[GroupKey]:
        if self._sorted_keys is None:
            self._sorted_keys = sorted(self._groups)
        return list(self._sorted_keys)

    def items(self) -> Iterator[Tuple[GroupKey, Summary]]:
        for key in self.keys():
            yield key, self._groups[key]

    def values(self) -> Iterator[Summary]:
        for _, summary in self.items():
            yield summary

    def get(self, key: tuple, default: Optional[Summary] = None) -> Optional[Summary]:
        return self._groups.get(GroupKey(*key), default)

    def __getitem__(self, key: tuple) -> Summary:
        return self._groups[GroupKey(*key)]

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    def __iter__(self) -> Iterator[GroupKey]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._groups)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregatedIndex):
            return NotImplemented
        return self._groups == other._groups

    def __repr__(self) -> str:
        return f"AggregatedIndex({len(self._groups)} groups, {self.play_count()} plays)"

    # ------------------------------------------------------------------
    # Views and queries
    # ------------------------------------------------------------------

    def nested(self) -> Dict[str, Dict[str, Dict[ContentKind, Dict[str, Dict[str, Dict[str, Summary]]]]]]:
        """username -> country -> kind -> level1 -> level2 -> level3 -> Summary."""
        out: dict = {}
        for key, summary in self.items():
            (out.setdefault(key.username, {})
                .setdefault(key.conn_country, {})
                .setdefault(key.kind, {})
                .setdefault(key.level1, {})
                .setdefault(key.level2, {}))[key.level3] = summary
        return out

    def select(
        self,
        kind: Optional[ContentKind] = None,
        level1: Optional[str] = None,
        level2: Optional[str] = None,
        level3: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Iterator[Tuple[GroupKey, Summary]]:
        """Groups matching every given criterion, in key order."""
        for key, summary in self.items():
            if kind is not None and key.kind != kind:
                continue
            if level1 is not None and key.level1 != level1:
                continue
            if level2 is not None and key.level2 != level2:
                continue
            if level3 is not None and key.level3 != level3:
                continue
            if username is not None and key.username != username:
                continue
            yield key, summary

    def total_ms_played(self) -> int:
        return sum(s.total_ms_played for s in self._groups.values())

    def play_count(self) -> int:
        return sum(s.play_count for s in self._groups.values())


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------

class FoldStats(BaseModel):
    """Counters collected while folding."""

    records_seen: int = 0
    records_grouped: int = 0
    skipped: Dict[str, int] = Field(
        default_factory=dict, description="Unclassifiable records per kind tag"
    )

    @property
    def records_skipped(self) -> int:
        return sum(self.skipped.values())


class Aggregator:
    """Accumulates records into an AggregatedIndex."""

    def __init__(self) -> None:
        self.index = AggregatedIndex()
        self.stats = FoldStats()

    def add(self, record: Record) -> Optional[GroupKey]:
        """
        Fold one record in. Returns its GroupKey, or None if it was skipped.

        Raises MergeIntegrityError when the record's group already has an
        event with the same timestamp.
        """
        self.stats.records_seen += 1
        classification = classify(record)
        if classification is None:
            tag = classify_kind(record).tag
            self.stats.skipped[tag] = self.stats.skipped.get(tag, 0) + 1
            logger.debug(f"Skipping unclassifiable {tag} record at {record.ts}")
            return None

        key = GroupKey(
            record.username,
            record.conn_country,
            classification.kind,
            classification.level1,
            classification.level2,
            classification.level3,
        )
        self.index.merge_insert(key, Summary.from_record(record))
        self.stats.records_grouped += 1
        return key

    def add_all(self, records: Iterable[Record]) -> None:
        for record in records:
            self.add(record)

    def finish(self) -> AggregatedIndex:
        """Return the finished index with every event log in timestamp order."""
        self.index.sort_event_logs()
        if self.stats.records_skipped:
            logger.info(
                f"Skipped {self.stats.records_skipped} of {self.stats.records_seen} "
                f"records without grouping labels: {self.stats.skipped}"
            )
        logger.debug(
            f"Folded {self.stats.records_grouped} records into {len(self.index)} groups"
        )
        return self.index


def fold(records: Iterable[Record]) -> AggregatedIndex:
    """Fold a record stream into a new AggregatedIndex."""
    agg = Aggregator()
    agg.add_all(records)
    return agg.finish()


def fold_partitions(partitions: Iterable[Iterable[Record]]) -> AggregatedIndex:
    """
    Fold each partition on its own, then combine the partial indexes left to
    right. Equivalent to a single fold over the partitions concatenated in
    the same order.
    """
    result = AggregatedIndex()
    count = 0
    for records in partitions:
        result.update(fold(records))
        count += 1
    result.sort_event_logs()
    logger.debug(f"Combined {count} partitions into {len(result)} groups")
    return result


def summary_as_dict(key: GroupKey, summary: Summary) -> dict[str, Any]:
    """Flat JSON-ready view of one group, as handed to presentation."""
    return {
        "username": key.username,
        "conn_country": key.conn_country,
        "kind": key.kind.tag,
        "level1": key.level1,
        "level2": key.level2,
        "level3": key.level3,
        "total_ms_played": summary.total_ms_played,
        "play_count": summary.play_count,
        "track_uri": summary.track_uri,
        "episode_uri": summary.episode_uri,
    }
