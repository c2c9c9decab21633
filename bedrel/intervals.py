from collections.abc import Sized
import copy
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, TypeVar, Union


MAX_POSITION = 2 ** 31 - 2
"""Largest supported coordinate. The index stores positions as signed 32-bit
integers and candidate windows are widened by one base on each side."""


# Type aliases
SortKey = Tuple[int, int, int]
BED3 = Tuple[str, int, int]
BED6 = Tuple[str, int, int, str, Union[float, str], str]


class Strand(Enum):
    """
    Strand of a feature.
    """

    FORWARD = "+"
    REVERSE = "-"
    UNSPECIFIED = "."

    @classmethod
    def parse(cls, token: Any) -> "Strand":
        """Converts a strand token to a Strand. Unknown tokens (including None)
        map to UNSPECIFIED.
        """
        if isinstance(token, Strand):
            return token
        if token is None:
            return cls.UNSPECIFIED
        return STRAND_TOKENS.get(str(token).strip().lower(), cls.UNSPECIFIED)


STRAND_TOKENS = {
    "+": Strand.FORWARD,
    "1": Strand.FORWARD,
    "+1": Strand.FORWARD,
    "f": Strand.FORWARD,
    "forward": Strand.FORWARD,
    "-": Strand.REVERSE,
    "-1": Strand.REVERSE,
    "r": Strand.REVERSE,
    "reverse": Strand.REVERSE,
}


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    Half-open overlap test that also handles zero-length (point) intervals:
    a point overlaps an interval that contains it, and two points overlap if
    they are at the same position.
    """
    if a_start == a_end:
        if b_start == b_end:
            return a_start == b_start
        return b_start <= a_start < b_end
    if b_start == b_end:
        return a_start <= b_start < a_end
    return a_start < b_end and b_start < a_end


def signed_distance(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    """
    Distance from interval a to interval b: zero if they overlap, positive if
    b lies to the right of a, negative if b lies to the left. Book-ended
    intervals are at distance 1.
    """
    if overlaps(a_start, a_end, b_start, b_end):
        return 0
    if b_start >= a_end:
        return b_start - a_end + 1
    return -(a_start - b_end + 1)


IVL = TypeVar("IVL", bound="GenomicInterval")


class GenomicInterval(Sized):
    """
    An interval of a chromosome, consisting of a chromosome name, start position
    (zero-indexed), and end position (non-inclusive), plus optional feature
    fields and the provenance of the record.

    Args:
        chromosome: Canonical chromosome name.
        start: Start position.
        end: End position; may equal `start` for a point feature.
        strand: Strand of the feature.
        score: Optional numeric score.
        name: Optional feature name.
        set_id: Identifier of the set this interval was loaded into.
        order: Index of the record in its original input.
        attributes: Any additional columns.
    """

    __slots__ = [
        "chromosome", "start", "end", "strand", "score", "name", "set_id", "order",
        "attributes"
    ]

    def __init__(
        self,
        chromosome: str,
        start: int,
        end: int,
        strand: Strand = Strand.UNSPECIFIED,
        score: Optional[float] = None,
        name: Optional[str] = None,
        set_id: Optional[str] = None,
        order: int = 0,
        attributes: Optional[Dict[str, Any]] = None
    ) -> None:
        if not chromosome:
            raise ValueError("'chromosome' must not be empty")
        if start < 0:
            raise ValueError(f"'start' must be >= 0; {start} < 0")
        if end < start:
            raise ValueError(f"'end' must be >= 'start'; {end} < {start}")
        self.chromosome = chromosome
        self.start = start
        self.end = end
        self.strand = strand
        self.score = score
        self.name = name
        self.set_id = set_id
        self.order = order
        self.attributes = attributes or {}

    @property
    def region(self) -> str:
        return "{}:{}-{}".format(self.chromosome, self.start + 1, self.end)

    @property
    def sort_key(self) -> SortKey:
        """Key used to order intervals within a chromosome: start, then end,
        then original input order.
        """
        return self.start, self.end, self.order

    def is_point(self) -> bool:
        return self.start == self.end

    def __len__(self) -> int:
        return self.end - self.start

    def __contains__(self: IVL, other: Union[int, IVL]) -> bool:
        """Does this interval overlap `other`?

        Args:
             other: Either a GenomicInterval or an int. If an int, assumed to be a
                position on the same chromosome as this interval.
        """
        if isinstance(other, GenomicInterval):
            return self.overlaps(other)
        return self.start <= other < self.end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GenomicInterval):
            return NotImplemented
        return (
            self.chromosome == other.chromosome
            and self.start == other.start
            and self.end == other.end
            and self.strand == other.strand
        )

    def __hash__(self) -> int:
        return hash((self.chromosome, self.start, self.end, self.strand))

    def __repr__(self) -> str:
        return f"{self.chromosome}:{self.start}-{self.end}"

    def overlaps(self: IVL, other: IVL) -> bool:
        return self.chromosome == other.chromosome and overlaps(
            self.start, self.end, other.start, other.end
        )

    def overlap_length(self: IVL, other: IVL) -> int:
        """Number of bases shared with `other`.
        """
        if self.chromosome != other.chromosome:
            return 0
        return max(0, min(self.end, other.end) - max(self.start, other.start))

    def overlap_fraction(self: IVL, other: IVL) -> float:
        """
        Fraction of this interval that is covered by `other`. A point that
        overlaps `other` is fully covered.
        """
        if not self.overlaps(other):
            return 0.0
        if self.is_point():
            return 1.0
        return self.overlap_length(other) / len(self)

    def distance(self: IVL, other: IVL) -> int:
        """
        Returns the signed distance between this interval and `other`. Zero
        means the intervals overlap; a negative value indicates that `other` is
        to the left, and a positive value that it is to the right.

        Examples:
            # A GenomicInterval is not end-inclusive, so an interval whose end
            # position is the same as the start position of a second interval
            # does *not* overlap it:
            i1 = GenomicInterval('chr1', 50, 100)
            i2 = GenomicInterval('chr1', 100, 200)
            i1.distance(i2)  # => 1
        """
        self.chromosome_equal(other)
        return signed_distance(self.start, self.end, other.start, other.end)

    def chromosome_equal(self: IVL, other: IVL) -> None:
        if self.chromosome != other.chromosome:
            raise ValueError(
                f"Intervals are on two different chromosomes: "
                f"{self.chromosome} != {other.chromosome}"
            )

    def slice(
        self: IVL, start: Optional[int] = None, end: Optional[int] = None
    ) -> "GenomicInterval":
        """Creates a new interval with the bounds of the current interval restricted
        to `start` and `end`. Feature fields and provenance are kept.
        """
        if start is None or start < self.start:
            start = self.start
        if end is None or end > self.end:
            end = self.end
        ivl = copy.copy(self)
        ivl.start = start
        ivl.end = max(start, end)
        return ivl

    def as_bed3(self) -> BED3:
        """
        Returns this interval as a tuple in BED3 format.

        Returns:
            Tuple of length 3: (chromosome, start, end)
        """
        return self.chromosome, self.start, self.end

    def as_bed6(self) -> BED6:
        """
        Returns this interval as a tuple in BED6 format, using "." for missing
        name and score.

        Returns:
            Tuple of length 6: (chromosome, start, end, name, score, strand).
        """
        return (
            self.chromosome,
            self.start,
            self.end,
            "." if self.name is None else self.name,
            "." if self.score is None else self.score,
            self.strand.value
        )

    def as_bed_extended(self, attribute_names: Optional[Sequence[str]] = None) -> tuple:
        """
        Returns this interval as a tuple with the first 6 columns being BED6 format
        and additional columns being attributes.

        Args:
            attribute_names: Optional list of attribute names for the extended
                columns. If specified, columns will be added in the specified order,
                and the empty value (".") used for missing columns. Otherwise, all
                attributes will be added in insertion order.

        Returns:
            Tuple of length 6+.
        """
        bed = self.as_bed6()
        if attribute_names:
            bed += tuple(self.attributes.get(name, ".") for name in attribute_names)
        elif self.attributes:
            bed += tuple(self.attributes.values())
        return bed
