from bisect import bisect_left
import copy
from enum import Enum
import logging
import threading
import time
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
)

import cgranges as cr

from bedrel.errors import StoreStateError, UnknownSetError
from bedrel.intervals import GenomicInterval, Strand, overlaps, signed_distance
from bedrel.normalize import Decoder, Normalizer
from bedrel.regions import parse_region
from bedrel.utils import ChromosomeOrder


logger = logging.getLogger(__name__)


class StoreState(Enum):
    """Lifecycle states of a Store.
    """

    LOADING = 0
    """Sets may be loaded; queries fail."""
    QUERYABLE = 1
    """Content is immutable; queries are allowed."""
    CLOSED = 2
    """The store has been released; everything fails."""


class SetInfo(NamedTuple):
    set_id: str
    count: int
    chromosomes: Sequence[str]
    description: Optional[str]


class LoadSummary(NamedTuple):
    set_id: str
    loaded: int
    skipped: int
    elapsed: float


class Partition:
    """
    The intervals of one set on one chromosome (optionally restricted to one
    strand), sorted by (start, end, input order).

    Args:
        intervals: The sorted intervals.
    """

    def __init__(self, intervals: Sequence[GenomicInterval]) -> None:
        self.intervals = tuple(intervals)
        self.starts = [ivl.start for ivl in self.intervals]
        self.max_ends = []
        max_end = -1
        for ivl in self.intervals:
            max_end = max(max_end, ivl.end)
            self.max_ends.append(max_end)

    def __len__(self) -> int:
        return len(self.intervals)

    def nearest_disjoint(
        self, start: int, end: int
    ) -> Optional[Tuple[GenomicInterval, int]]:
        """
        Finds the nearest interval to [start, end), assuming that no interval of
        this partition overlaps it.

        Without overlaps, every interval starting before `start` ends at or before
        `start`, and every other interval starts at or after `end`; the best
        upstream candidate is the first interval reaching the largest end, and the
        best downstream candidate is the first interval at or after `start`.

        Returns:
            Tuple (interval, signed distance), or None if the partition is empty.
        """
        idx = bisect_left(self.starts, start)
        upstream = downstream = None

        if idx > 0:
            max_end = self.max_ends[idx - 1]
            first = bisect_left(self.max_ends, max_end, 0, idx)
            upstream = self.intervals[first]

        if idx < len(self.intervals):
            downstream = self.intervals[idx]

        if upstream is None and downstream is None:
            return None

        candidates = []
        if upstream is not None:
            candidates.append(
                (upstream, signed_distance(start, end, upstream.start, upstream.end))
            )
        if downstream is not None:
            candidates.append(
                (downstream, signed_distance(start, end, downstream.start, downstream.end))
            )
        # Upstream comes first and has the smaller start, so it wins ties.
        return min(candidates, key=lambda cand: abs(cand[1]))


class IndexedSet:
    """
    A finalized interval set: sorted partitions per chromosome (and per strand),
    plus a cgranges index whose labels are positions within the chromosome
    partition.

    Args:
        set_id: The set identifier.
        by_chromosome: Unsorted intervals grouped by chromosome.
        description: Optional free-text description of the set.
    """

    def __init__(
        self,
        set_id: str,
        by_chromosome: Dict[str, List[GenomicInterval]],
        description: Optional[str] = None
    ) -> None:
        self.set_id = set_id
        self.description = description
        self.partitions = {}
        self.stranded = {}
        self._cr = cr.cgranges()
        self._lock = threading.Lock()

        for chromosome, intervals in by_chromosome.items():
            intervals.sort(key=lambda ivl: ivl.sort_key)
            partition = Partition(intervals)
            self.partitions[chromosome] = partition
            for label, ivl in enumerate(partition.intervals):
                self._cr.add(chromosome, ivl.start, ivl.end, label)
            for strand in Strand:
                stranded = [ivl for ivl in partition.intervals if ivl.strand is strand]
                if stranded:
                    self.stranded[(chromosome, strand)] = Partition(stranded)

        self.count = sum(len(p) for p in self.partitions.values())
        if self.count:
            self._cr.index()

    def partition(
        self, chromosome: str, strand: Optional[Strand] = None
    ) -> Optional[Partition]:
        if strand is None:
            return self.partitions.get(chromosome)
        return self.stranded.get((chromosome, strand))

    def overlaps(
        self, chromosome: str, start: int, end: int, strand: Optional[Strand] = None
    ) -> List[GenomicInterval]:
        partition = self.partitions.get(chromosome)
        if partition is None:
            return []
        # The index uses strict half-open overlap; widen the window by one base on
        # each side (to -1 at the chromosome start) so that point features are
        # found, then apply the exact test. The index keeps its result buffer on
        # the object, so it is drained under the lock.
        with self._lock:
            candidates = list(self._cr.overlap(chromosome, start - 1, end + 1))
        labels = sorted(
            label for ivl_start, ivl_end, label in candidates
            if overlaps(start, end, ivl_start, ivl_end)
        )
        hits = [partition.intervals[label] for label in labels]
        if strand is not None:
            hits = [ivl for ivl in hits if ivl.strand is strand]
        return hits


class Store:
    """
    Loaded, indexed representation of one or more interval sets.

    Sets are appended with :meth:`load` while the store is LOADING;
    :meth:`finalize` sorts and indexes them and makes the store QUERYABLE, after
    which its content never changes and any number of threads may query it. To
    add sets to a queryable store, :meth:`derive` a new one.

    Args:
        order: Chromosome order used for all output; lexicographic by default.
    """

    def __init__(self, order: Optional[ChromosomeOrder] = None) -> None:
        self.order = order or ChromosomeOrder()
        self._state = StoreState.LOADING
        self._pending = {}
        self._descriptions = {}
        self._sets = {}
        self._readers = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Store(state={self._state.name}, sets={list(self.set_ids)})"

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def queryable(self) -> bool:
        return self._state is StoreState.QUERYABLE

    @property
    def set_ids(self) -> Sequence[str]:
        ids = list(self._sets)
        ids.extend(set_id for set_id in self._pending if set_id not in self._sets)
        return ids

    @property
    def readers(self) -> int:
        return self._readers

    def __contains__(self, set_id: str) -> bool:
        return set_id in self._sets or set_id in self._pending

    # Load phase

    def load(
        self,
        set_id: str,
        intervals: Iterable[GenomicInterval],
        description: Optional[str] = None
    ) -> int:
        """
        Append intervals to a set. The iterable is consumed lazily; if it raises,
        nothing from this call is kept.

        Args:
            set_id: The set identifier.
            intervals: The intervals to add.
            description: Optional description of the set (e.g. a file header).

        Returns:
            The number of intervals appended.

        Raises:
            StoreStateError if the store is not loading or the set was already
            finalized.
        """
        self._require(StoreState.LOADING, "load")
        if not set_id:
            raise ValueError("'set_id' must not be empty")
        if set_id in self._sets:
            raise StoreStateError(
                f"Cannot load into set {set_id!r}; it has already been finalized"
            )

        received = {}
        count = 0
        for ivl in intervals:
            if ivl.set_id != set_id:
                ivl = copy.copy(ivl)
                ivl.set_id = set_id
            received.setdefault(ivl.chromosome, []).append(ivl)
            count += 1

        pending = self._pending.setdefault(set_id, {})
        for chromosome, ivls in received.items():
            pending.setdefault(chromosome, []).extend(ivls)
        if description is not None:
            self._descriptions[set_id] = description
        return count

    def finalize(self) -> "Store":
        """
        Sort and index all loaded sets and switch to the QUERYABLE state. Calling
        this on a queryable store has no effect.

        Returns:
            This store.
        """
        if self._state is StoreState.QUERYABLE:
            return self
        self._require(StoreState.LOADING, "finalize")
        for set_id, by_chromosome in self._pending.items():
            indexed = IndexedSet(
                set_id, by_chromosome, self._descriptions.get(set_id)
            )
            self._sets[set_id] = indexed
            logger.info(
                "Indexed set %s: %d intervals on %d chromosomes",
                set_id, indexed.count, len(indexed.partitions)
            )
        self._pending = {}
        self._state = StoreState.QUERYABLE
        return self

    def derive(self, order: Optional[ChromosomeOrder] = None) -> "Store":
        """
        Create a new, loading store that shares this store's finalized sets. New
        sets can be loaded into it without affecting queries on this store.
        """
        self._require(StoreState.QUERYABLE, "derive")
        store = Store(order or self.order)
        store._sets = dict(self._sets)
        return store

    def close(self) -> None:
        """
        Release the store's content.

        Raises:
            StoreStateError if result streams are still open.
        """
        with self._lock:
            if self._readers:
                raise StoreStateError(
                    f"Cannot close store with {self._readers} open result stream(s)"
                )
            self._state = StoreState.CLOSED
        self._sets = {}
        self._pending = {}

    # Query phase

    def acquire(self) -> None:
        """Register a reader (an open result stream).
        """
        with self._lock:
            self._require(StoreState.QUERYABLE, "query")
            self._readers += 1

    def release(self) -> None:
        with self._lock:
            if self._readers > 0:
                self._readers -= 1

    def get_set(self, set_id: str) -> IndexedSet:
        self._require(StoreState.QUERYABLE, "query")
        try:
            return self._sets[set_id]
        except KeyError:
            raise UnknownSetError(set_id) from None

    def set_info(self, set_id: str) -> SetInfo:
        indexed = self.get_set(set_id)
        return SetInfo(
            set_id,
            indexed.count,
            self.order.sort(indexed.partitions),
            indexed.description
        )

    def count(self, set_id: str) -> int:
        return self.get_set(set_id).count

    def chromosomes(self, *set_ids: str) -> Sequence[str]:
        """
        The chromosomes with intervals in the given sets (all sets by default),
        in chromosome order.
        """
        self._require(StoreState.QUERYABLE, "query")
        names = set()
        for set_id in set_ids or self._sets:
            names.update(self.get_set(set_id).partitions)
        return self.order.sort(names)

    def iter_set(
        self, set_id: str, chromosome: Optional[str] = None
    ) -> Iterator[GenomicInterval]:
        """
        Iterate over the intervals of a set in chromosome, start, end, input order.
        """
        indexed = self.get_set(set_id)
        if chromosome is not None:
            chromosomes = [chromosome]
        else:
            chromosomes = self.order.sort(indexed.partitions)
        for name in chromosomes:
            partition = indexed.partitions.get(name)
            if partition is not None:
                yield from partition.intervals

    def query_overlaps(
        self,
        set_id: str,
        chromosome: str,
        start: int,
        end: int,
        strand: Optional[Strand] = None
    ) -> Sequence[GenomicInterval]:
        """
        Find the intervals of a set that overlap [start, end) on a chromosome.

        Args:
            set_id: The set to search.
            chromosome: The chromosome.
            start: Query start.
            end: Query end; may equal `start` for a point query.
            strand: If given, only intervals on this strand are returned.

        Returns:
            The overlapping intervals, sorted by (start, end, input order).
        """
        return self.get_set(set_id).overlaps(chromosome, start, end, strand)

    def query_nearest(
        self,
        set_id: str,
        chromosome: str,
        start: int,
        end: int,
        max_distance: Optional[int] = None,
        strand: Optional[Strand] = None
    ) -> Optional[GenomicInterval]:
        """
        Find the interval of a set nearest to [start, end) on a chromosome. An
        overlapping interval is at distance zero; ties are broken by smaller
        start, then smaller end, then input order.

        Args:
            set_id: The set to search.
            chromosome: The chromosome.
            start: Query start.
            end: Query end.
            max_distance: Maximum absolute distance (see
                :func:`bedrel.intervals.signed_distance`); unbounded if None.
            strand: If given, only intervals on this strand are considered.

        Returns:
            The nearest interval, or None.
        """
        indexed = self.get_set(set_id)
        hits = indexed.overlaps(chromosome, start, end, strand)
        if hits:
            return hits[0]
        partition = indexed.partition(chromosome, strand)
        if partition is None:
            return None
        nearest = partition.nearest_disjoint(start, end)
        if nearest is None:
            return None
        ivl, distance = nearest
        if max_distance is not None and abs(distance) > max_distance:
            return None
        return ivl

    def fetch(self, set_id: str, region: str) -> Sequence[GenomicInterval]:
        """
        Find the intervals of a set that overlap a region string such as
        'chr1:101-200' (1-based, inclusive) or 'chr1'.
        """
        chromosome, start, end = parse_region(region)
        if end is None:
            return list(self.iter_set(set_id, chromosome))
        return self.query_overlaps(set_id, chromosome, start, end)

    def _require(self, state: StoreState, action: str) -> None:
        if self._state is not state:
            raise StoreStateError(
                f"Cannot {action} while the store is {self._state.name}"
            )


def load_records(
    store: Store,
    set_id: str,
    records: Iterable[Any],
    normalizer: Optional[Normalizer] = None,
    decode: Optional[Decoder] = None,
    description: Optional[str] = None
) -> LoadSummary:
    """
    Normalize raw records and load them into a set of `store`.

    Args:
        store: A loading Store.
        set_id: Identifier of the set.
        records: Decoded records, or raw rows if `decode` is given.
        normalizer: The Normalizer to use; a default one (names kept as given,
            invalid records abort the load) if not specified.
        decode: Optional function that decodes a raw row into a record.
        description: Optional description of the set.

    Returns:
        A LoadSummary.

    Raises:
        ParseError, InvalidRecordError unless the normalizer skips invalid records.
    """
    if normalizer is None:
        normalizer = Normalizer()
    skipped_before = normalizer.skipped
    begin = time.perf_counter()
    loaded = store.load(
        set_id, normalizer.iter_intervals(records, set_id, decode), description
    )
    summary = LoadSummary(
        set_id, loaded, normalizer.skipped - skipped_before,
        time.perf_counter() - begin
    )
    logger.info(
        "Loaded %d records into set %s (%d skipped) in %.2fs",
        summary.loaded, set_id, summary.skipped, summary.elapsed
    )
    return summary
