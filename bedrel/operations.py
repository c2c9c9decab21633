from collections import defaultdict
import heapq
import logging
from typing import (
    Any,
    Callable,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Union,
)

from bedrel.catalog import (
    CATALOG,
    ClosestParams,
    ComplementParams,
    CoverageParams,
    FractionOf,
    IntersectParams,
    MergeParams,
    OperationKind,
    SubtractParams,
    validate,
)
from bedrel.errors import InvalidParameterError, StoreStateError
from bedrel.intervals import GenomicInterval, Strand
from bedrel.results import (
    ClosestRecord,
    ComplementInterval,
    CoverageRecord,
    DepthRecord,
    IntersectRecord,
    MergedInterval,
    ResidualInterval,
    ResultStream,
    reorder,
)
from bedrel.store import Store


logger = logging.getLogger(__name__)


Step = Callable[[str], Iterator[Any]]


class OperationRequest(NamedTuple):
    kind: OperationKind
    set_a: str
    set_b: Optional[str]
    params: NamedTuple


class QueryPlan:
    """
    A compiled operation: the chromosomes to visit, in output order, and the step
    that produces the records of one chromosome.

    Args:
        store: The queryable store.
        request: The validated request.
        chromosomes: Chromosomes to visit, in chromosome order.
        step: Function producing the ordered records of one chromosome.
    """

    def __init__(
        self,
        store: Store,
        request: OperationRequest,
        chromosomes: Sequence[str],
        step: Step
    ) -> None:
        self.store = store
        self.request = request
        self.chromosomes = chromosomes
        self.step = step

    def __repr__(self) -> str:
        return f"QueryPlan({self.describe()})"

    def describe(self) -> str:
        request = self.request
        sets = request.set_a if request.set_b is None else f"{request.set_a}, {request.set_b}"
        params = ", ".join(
            f"{name}={getattr(value, 'name', value)}"
            for name, value in request.params._asdict().items()
        )
        return f"{request.kind.value}({sets}; {params}) over {len(self.chromosomes)} chromosome(s)"

    def execute(self) -> ResultStream:
        """
        Start executing the plan.

        Returns:
            A ResultStream over the result records.
        """
        return ResultStream(self._run(), self.store, self.describe())

    def _run(self) -> Iterator[Any]:
        for chromosome in self.chromosomes:
            yield from self.step(chromosome)


def _strand(params: NamedTuple, ivl: GenomicInterval) -> Optional[Strand]:
    return ivl.strand if params.require_same_strand else None


def merge_sorted(
    intervals: Iterable[GenomicInterval],
    max_gap_distance: int = 0,
    strand: Strand = Strand.UNSPECIFIED
) -> Iterator[MergedInterval]:
    """
    Merge intervals of one chromosome, sorted by start, whenever the gap between
    an interval and the current span (`next.start - span.end`) is at most
    `max_gap_distance`. Overlapping and book-ended intervals always merge.

    Args:
        intervals: Sorted intervals of one chromosome.
        max_gap_distance: Maximum gap to bridge.
        strand: Strand assigned to the merged spans.

    Yields:
        MergedIntervals in start order.
    """
    members: List[GenomicInterval] = []
    span_start = span_end = 0
    for ivl in intervals:
        if members and ivl.start - span_end <= max_gap_distance:
            span_end = max(span_end, ivl.end)
            members.append(ivl)
        else:
            if members:
                yield MergedInterval(
                    members[0].chromosome, span_start, span_end, strand,
                    len(members), tuple(members)
                )
            members = [ivl]
            span_start, span_end = ivl.start, ivl.end
    if members:
        yield MergedInterval(
            members[0].chromosome, span_start, span_end, strand, len(members),
            tuple(members)
        )


def residuals(
    ivl: GenomicInterval, others: Sequence[GenomicInterval]
) -> List[ResidualInterval]:
    """
    The parts of `ivl` not covered by `others`, which must be sorted by start and
    overlap `ivl`. Zero-length intervals in `others` remove nothing; a zero-length
    `ivl` is removed by any non-empty interval that contains it.
    """
    covering = [other for other in others if not other.is_point()]
    if ivl.is_point():
        if covering:
            return []
        return [ResidualInterval(ivl.chromosome, ivl.start, ivl.end, ivl)]
    pieces = []
    cursor = ivl.start
    for other in covering:
        if other.start > cursor:
            pieces.append(
                ResidualInterval(ivl.chromosome, cursor, min(other.start, ivl.end), ivl)
            )
        cursor = max(cursor, other.end)
        if cursor >= ivl.end:
            break
    if cursor < ivl.end:
        pieces.append(ResidualInterval(ivl.chromosome, cursor, ivl.end, ivl))
    return pieces


def _passes_fraction(
    a: GenomicInterval, b: GenomicInterval, params: IntersectParams
) -> bool:
    minimum = params.min_overlap_fraction
    if minimum == 0:
        return True
    frac_a = a.overlap_fraction(b)
    frac_b = b.overlap_fraction(a)
    fraction_of = params.fraction_of
    if fraction_of is FractionOf.A:
        return frac_a >= minimum
    if fraction_of is FractionOf.B:
        return frac_b >= minimum
    if fraction_of is FractionOf.EITHER:
        return frac_a >= minimum or frac_b >= minimum
    return frac_a >= minimum and frac_b >= minimum


def _compile_intersect(
    store: Store, request: OperationRequest
) -> Step:
    params: IntersectParams = request.params
    points = params.include_points and params.min_overlap_fraction == 0

    def intersect_one(a: GenomicInterval) -> Iterator[IntersectRecord]:
        for b in store.query_overlaps(
            request.set_b, a.chromosome, a.start, a.end, _strand(params, a)
        ):
            start = max(a.start, b.start)
            end = min(a.end, b.end)
            if start == end:
                if not points:
                    continue
            elif not _passes_fraction(a, b, params):
                continue
            yield IntersectRecord(a.chromosome, start, end, a, b)

    def step(chromosome: str) -> Iterator[IntersectRecord]:
        return reorder(
            (a.start, intersect_one(a))
            for a in store.iter_set(request.set_a, chromosome)
        )

    return step


def _compile_merge(store: Store, request: OperationRequest) -> Step:
    params: MergeParams = request.params
    indexed = store.get_set(request.set_a)

    def step(chromosome: str) -> Iterator[MergedInterval]:
        if not params.require_same_strand:
            return merge_sorted(
                store.iter_set(request.set_a, chromosome), params.max_gap_distance
            )
        by_strand = []
        for strand in Strand:
            partition = indexed.partition(chromosome, strand)
            if partition is not None:
                by_strand.append(
                    merge_sorted(partition.intervals, params.max_gap_distance, strand)
                )
        return heapq.merge(*by_strand, key=lambda merged: merged.sort_key)

    return step


def _compile_subtract(store: Store, request: OperationRequest) -> Step:
    params: SubtractParams = request.params

    def subtract_one(a: GenomicInterval) -> List[ResidualInterval]:
        others = store.query_overlaps(
            request.set_b, a.chromosome, a.start, a.end, _strand(params, a)
        )
        if params.remove_entire:
            if others:
                return []
            return [ResidualInterval(a.chromosome, a.start, a.end, a)]
        return residuals(a, others)

    def step(chromosome: str) -> Iterator[ResidualInterval]:
        return reorder(
            (a.start, subtract_one(a))
            for a in store.iter_set(request.set_a, chromosome)
        )

    return step


def _compile_closest(store: Store, request: OperationRequest) -> Step:
    params: ClosestParams = request.params

    def step(chromosome: str) -> Iterator[ClosestRecord]:
        for a in store.iter_set(request.set_a, chromosome):
            b = store.query_nearest(
                request.set_b, chromosome, a.start, a.end, params.max_distance,
                _strand(params, a)
            )
            if b is not None:
                yield ClosestRecord(chromosome, a.start, a.end, a, b, a.distance(b))
            elif params.report_unmatched:
                yield ClosestRecord(chromosome, a.start, a.end, a, None, None)

    return step


def _compile_complement(store: Store, request: OperationRequest) -> Step:
    params: ComplementParams = request.params
    extents = params.extents

    def step(chromosome: str) -> Iterator[ComplementInterval]:
        length = extents.get_length(chromosome) if extents is not None else None
        if extents is not None and length is None:
            logger.warning(
                "No length for chromosome %s; only gaps between intervals are "
                "reported", chromosome
            )
        spans = merge_sorted(
            ivl for ivl in store.iter_set(request.set_a, chromosome)
            if not ivl.is_point()
        )
        cursor = None if length is None else 0
        for span in spans:
            if length is not None and span.start >= length:
                break
            if cursor is not None and span.start > cursor:
                yield ComplementInterval(chromosome, cursor, span.start)
            cursor = span.end if cursor is None else max(cursor, span.end)
        if length is not None and cursor < length:
            yield ComplementInterval(chromosome, cursor, length)

    return step


def _depths(a: GenomicInterval, others: Sequence[GenomicInterval]) -> Iterator[DepthRecord]:
    deltas = defaultdict(int)
    for b in others:
        start = max(a.start, b.start)
        end = min(a.end, b.end)
        if start < end:
            deltas[start] += 1
            deltas[end] -= 1
    depth = 0
    for pos in range(a.start, a.end):
        depth += deltas.get(pos, 0)
        yield DepthRecord(a.chromosome, pos, pos + 1, a, pos - a.start + 1, depth)


def _compile_coverage(store: Store, request: OperationRequest) -> Step:
    params: CoverageParams = request.params

    def overlapping(a: GenomicInterval) -> Sequence[GenomicInterval]:
        return store.query_overlaps(
            request.set_b, a.chromosome, a.start, a.end, _strand(params, a)
        )

    def coverage_one(a: GenomicInterval) -> CoverageRecord:
        others = overlapping(a)
        length = len(a)
        if length == 0:
            # Depth over a point is undefined; report the containing features only.
            return CoverageRecord(a.chromosome, a.start, a.end, a, len(others), 0, 0, 0.0)
        uncovered = sum(r.end - r.start for r in residuals(a, others))
        covered = length - uncovered
        return CoverageRecord(
            a.chromosome, a.start, a.end, a, len(others), covered, length,
            covered / length
        )

    def step(chromosome: str) -> Iterator[Union[CoverageRecord, DepthRecord]]:
        if params.per_base:
            return reorder(
                (a.start, _depths(a, overlapping(a)))
                for a in store.iter_set(request.set_a, chromosome)
                if not a.is_point()
            )
        return (coverage_one(a) for a in store.iter_set(request.set_a, chromosome))

    return step


COMPILERS = {
    OperationKind.INTERSECT: _compile_intersect,
    OperationKind.MERGE: _compile_merge,
    OperationKind.SUBTRACT: _compile_subtract,
    OperationKind.CLOSEST: _compile_closest,
    OperationKind.COMPLEMENT: _compile_complement,
    OperationKind.COVERAGE: _compile_coverage,
}


def compile_operation(
    store: Store,
    kind: Union[str, OperationKind],
    set_a: str,
    set_b: Optional[str] = None,
    **params
) -> QueryPlan:
    """
    Validate an operation request and compile it into a query plan. All
    validation happens here, before any query is issued.

    Args:
        store: A queryable store.
        kind: The operation.
        set_a: Identifier of the driving set.
        set_b: Identifier of the second set, for binary operations.
        params: Operation parameters (see :mod:`bedrel.catalog`).

    Returns:
        A QueryPlan.

    Raises:
        InvalidParameterError if the parameters or set references are invalid.
        StoreStateError if the store is not queryable.
    """
    kind = OperationKind.parse(kind)
    entry = CATALOG[kind]
    validated = validate(kind, **params)

    if not store.queryable:
        raise StoreStateError(
            f"Cannot run {kind.value} while the store is {store.state.name}"
        )
    if not set_a:
        raise InvalidParameterError(f"{kind.value} requires set A")
    if entry.binary and not set_b:
        raise InvalidParameterError(f"{kind.value} requires set B")
    if not entry.binary and set_b is not None:
        raise InvalidParameterError(f"{kind.value} takes a single set; got set B {set_b!r}")
    store.get_set(set_a)
    if set_b is not None:
        store.get_set(set_b)

    request = OperationRequest(kind, set_a, set_b, validated)
    chromosomes = store.chromosomes(set_a)
    if kind is OperationKind.COMPLEMENT and validated.extents is not None:
        chromosomes = store.order.sort(list(chromosomes) + list(validated.extents))

    plan = QueryPlan(store, request, chromosomes, COMPILERS[kind](store, request))
    logger.debug("Compiled %s", plan.describe())
    return plan


def perform(
    store: Store,
    kind: Union[str, OperationKind],
    set_a: str,
    set_b: Optional[str] = None,
    **params
) -> ResultStream:
    """
    Run a set operation.

    Args:
        store: A queryable store.
        kind: The operation, e.g. OperationKind.INTERSECT or 'intersect'.
        set_a: Identifier of the driving set.
        set_b: Identifier of the second set, for binary operations.
        params: Operation parameters.

    Returns:
        A ResultStream of result records, ordered by chromosome, start and end.
    """
    return compile_operation(store, kind, set_a, set_b, **params).execute()
