from collections import abc
import heapq
import itertools
from typing import (
    Any,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Tuple,
)

from bedrel.intervals import GenomicInterval, Strand


MISSING = "."
RecordKey = Tuple[int, int, int, int]


def _bed6(ivl: Optional[GenomicInterval]) -> tuple:
    if ivl is None:
        return (MISSING,) * 6
    return ivl.as_bed6()


def _order(ivl: Optional[GenomicInterval]) -> int:
    return -1 if ivl is None else ivl.order


class IntersectRecord(NamedTuple):
    """Overlap region of an A interval and a B interval."""
    chromosome: str
    start: int
    end: int
    a: GenomicInterval
    b: GenomicInterval

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, self.a.order, self.b.order

    def as_bed(self, extended: bool = False) -> tuple:
        row = (self.chromosome, self.start, self.end)
        if extended:
            row += self.a.as_bed6() + self.b.as_bed6()
        return row

    def to_interval(self) -> GenomicInterval:
        return GenomicInterval(
            self.chromosome, self.start, self.end, self.a.strand, name=self.a.name
        )


class MergedInterval(NamedTuple):
    """Span of merged A intervals, with the number of intervals merged."""
    chromosome: str
    start: int
    end: int
    strand: Strand
    count: int
    members: Tuple[GenomicInterval, ...] = ()

    @property
    def sort_key(self) -> RecordKey:
        first = self.members[0].order if self.members else 0
        return self.start, self.end, first, 0

    def as_bed(self, extended: bool = False) -> tuple:
        row = (self.chromosome, self.start, self.end)
        if extended:
            row += (self.strand.value, self.count)
        return row

    def to_interval(self) -> GenomicInterval:
        return GenomicInterval(self.chromosome, self.start, self.end, self.strand)


class ResidualInterval(NamedTuple):
    """Part of an A interval that is not covered by B."""
    chromosome: str
    start: int
    end: int
    source: GenomicInterval

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, self.source.order, 0

    def as_bed(self, extended: bool = False) -> tuple:
        if extended:
            return self.to_interval().as_bed_extended()
        return self.chromosome, self.start, self.end

    def to_interval(self) -> GenomicInterval:
        return self.source.slice(self.start, self.end)


class ComplementInterval(NamedTuple):
    """A gap not covered by any A interval."""
    chromosome: str
    start: int
    end: int

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, 0, 0

    def as_bed(self, extended: bool = False) -> tuple:
        return self.chromosome, self.start, self.end

    def to_interval(self) -> GenomicInterval:
        return GenomicInterval(self.chromosome, self.start, self.end)


class ClosestRecord(NamedTuple):
    """
    An A interval with its nearest B interval and the signed distance to it
    (negative if B is upstream, positive if downstream, zero if overlapping).
    `b` and `distance` are None when A has no neighbor.
    """
    chromosome: str
    start: int
    end: int
    a: GenomicInterval
    b: Optional[GenomicInterval]
    distance: Optional[int]

    @property
    def has_neighbor(self) -> bool:
        return self.b is not None

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, self.a.order, _order(self.b)

    def as_bed(self, extended: bool = False) -> tuple:
        distance = MISSING if self.distance is None else self.distance
        if extended:
            return self.a.as_bed6() + _bed6(self.b) + (distance,)
        return self.chromosome, self.start, self.end, distance

    def to_interval(self) -> GenomicInterval:
        return self.a.slice()


class CoverageRecord(NamedTuple):
    """
    Coverage of an A interval by B: the number of overlapping B intervals, the
    number of bases of A covered by at least one of them, the length of A and the
    covered fraction.
    """
    chromosome: str
    start: int
    end: int
    a: GenomicInterval
    count: int
    covered: int
    length: int
    fraction: float

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, self.a.order, 0

    def as_bed(self, extended: bool = False) -> tuple:
        values = (self.count, self.covered, self.length, round(self.fraction, 7))
        if extended:
            return self.a.as_bed6() + values
        return (self.chromosome, self.start, self.end) + values

    def to_interval(self) -> GenomicInterval:
        return self.a.slice()


class DepthRecord(NamedTuple):
    """Depth of B at one base of an A interval; `offset` is 1-based within A."""
    chromosome: str
    start: int
    end: int
    a: GenomicInterval
    offset: int
    depth: int

    @property
    def sort_key(self) -> RecordKey:
        return self.start, self.end, self.a.order, self.offset

    def as_bed(self, extended: bool = False) -> tuple:
        if extended:
            return self.a.as_bed6() + (self.offset, self.depth)
        return self.chromosome, self.start, self.end, self.depth

    def to_interval(self) -> GenomicInterval:
        return GenomicInterval(self.chromosome, self.start, self.end, self.a.strand)


def reorder(batches: Iterable[Tuple[int, Iterable[Any]]]) -> Iterator[Any]:
    """
    Restore (start, end, ...) order for records of one chromosome that are
    produced while sweeping the A intervals in start order.

    Args:
        batches: Tuples (watermark, records). Watermarks are non-decreasing (e.g.
            the start of the A interval that produced the batch), every record
            of a batch starts at or after its watermark, and the records of a
            batch are in non-decreasing start order. `records` may be lazy; it is
            consumed only after the following batch's watermark is known.

    Yields:
        The records, sorted by their `sort_key`. A record is held only until no
        pending record can start before it.
    """
    heap: List[Tuple[RecordKey, int, Any]] = []
    counter = itertools.count()
    batches = iter(batches)
    current = next(batches, None)
    while current is not None:
        following = next(batches, None)
        limit = None if following is None else following[0]
        for record in current[1]:
            bound = record.start if limit is None else min(limit, record.start)
            while heap and heap[0][0][0] < bound:
                yield heapq.heappop(heap)[2]
            heapq.heappush(heap, (record.sort_key, next(counter), record))
        if limit is not None:
            while heap and heap[0][0][0] < limit:
                yield heapq.heappop(heap)[2]
        current = following
    while heap:
        yield heapq.heappop(heap)[2]


class ResultStream(abc.Iterator):
    """
    Finite, lazy, non-restartable sequence of result records.

    Records arrive chromosome by chromosome in the store's chromosome order, then
    by start and end. The stream holds a reader slot on its store until it is
    exhausted or closed; leaving a `with` block, calling :meth:`close`, or
    dropping the last reference releases it immediately.

    Args:
        records: The record generator.
        store: The store being read, if any.
        description: Text describing the operation, for `repr`.
    """

    def __init__(
        self,
        records: Iterator[Any],
        store: Optional[Any] = None,
        description: str = ""
    ) -> None:
        self._records = records
        self._store = None
        self.description = description
        self._closed = False
        self.emitted = 0
        if store is not None:
            store.acquire()
            self._store = store

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ResultStream({self.description}, {state}, emitted={self.emitted})"

    def __iter__(self) -> "ResultStream":
        return self

    def __next__(self) -> Any:
        if self._closed:
            raise StopIteration
        try:
            record = next(self._records)
        except BaseException:
            self.close()
            raise
        self.emitted += 1
        return record

    def __enter__(self) -> "ResultStream":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop the stream and release its resources. Safe to call repeatedly.
        """
        if self._closed:
            return
        self._closed = True
        try:
            close = getattr(self._records, "close", None)
            if close is not None:
                close()
        finally:
            if self._store is not None:
                self._store.release()
                self._store = None

    def to_list(self) -> List[Any]:
        """Consume the rest of the stream into a list.
        """
        with self:
            return list(self)
