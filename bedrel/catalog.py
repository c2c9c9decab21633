from enum import Enum
import numbers
from typing import Any, Dict, Mapping, NamedTuple, Optional, Union

from bedrel.errors import InvalidParameterError
from bedrel.results import (
    ClosestRecord,
    ComplementInterval,
    CoverageRecord,
    IntersectRecord,
    MergedInterval,
    ResidualInterval,
)
from bedrel.utils import ChromosomeOrder


class OperationKind(Enum):
    """Set operations.
    """

    INTERSECT = "intersect"
    MERGE = "merge"
    SUBTRACT = "subtract"
    CLOSEST = "closest"
    COMPLEMENT = "complement"
    COVERAGE = "coverage"

    @classmethod
    def parse(cls, kind: Union[str, "OperationKind"]) -> "OperationKind":
        if isinstance(kind, OperationKind):
            return kind
        try:
            return cls(str(kind).lower())
        except ValueError:
            raise InvalidParameterError(f"Unknown operation {kind!r}") from None


class FractionOf(Enum):
    """Which interval(s) the minimum overlap fraction of an intersection applies to.
    """

    A = "a"
    """The fraction of the A interval that is overlapped."""
    B = "b"
    """The fraction of the B interval that is overlapped."""
    EITHER = "either"
    """Either fraction may satisfy the minimum."""
    RECIPROCAL = "reciprocal"
    """Both fractions must satisfy the minimum."""


class IntersectParams(NamedTuple):
    min_overlap_fraction: float = 0.0
    fraction_of: FractionOf = FractionOf.A
    require_same_strand: bool = False
    include_points: bool = True


class MergeParams(NamedTuple):
    max_gap_distance: int = 0
    require_same_strand: bool = False


class SubtractParams(NamedTuple):
    require_same_strand: bool = False
    remove_entire: bool = False


class ClosestParams(NamedTuple):
    max_distance: Optional[int] = None
    require_same_strand: bool = False
    report_unmatched: bool = True


class ComplementParams(NamedTuple):
    extents: Optional[ChromosomeOrder] = None


class CoverageParams(NamedTuple):
    per_base: bool = False
    require_same_strand: bool = False


class CatalogEntry(NamedTuple):
    kind: OperationKind
    binary: bool
    """Whether set B is required."""
    params: type
    result: type
    description: str


CATALOG = {
    entry.kind: entry for entry in (
        CatalogEntry(
            OperationKind.INTERSECT, True, IntersectParams, IntersectRecord,
            "Overlap region of every overlapping (A, B) pair."
        ),
        CatalogEntry(
            OperationKind.MERGE, False, MergeParams, MergedInterval,
            "Spans of A intervals separated by at most max_gap_distance."
        ),
        CatalogEntry(
            OperationKind.SUBTRACT, True, SubtractParams, ResidualInterval,
            "A minus the union of overlapping B intervals."
        ),
        CatalogEntry(
            OperationKind.CLOSEST, True, ClosestParams, ClosestRecord,
            "Nearest B interval for every A interval, with signed distance."
        ),
        CatalogEntry(
            OperationKind.COMPLEMENT, False, ComplementParams, ComplementInterval,
            "Gaps between A intervals, optionally bounded by chromosome extents."
        ),
        CatalogEntry(
            OperationKind.COVERAGE, True, CoverageParams, CoverageRecord,
            "Depth of B over every A interval, or over every base of A."
        ),
    )
}


def get_entry(kind: Union[str, OperationKind]) -> CatalogEntry:
    return CATALOG[OperationKind.parse(kind)]


def _check_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidParameterError(f"Parameter {name!r} must be a bool; got {value!r}")
    return value


def _check_distance(name: str, value: Any, optional: bool = False) -> Optional[int]:
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameterError(
            f"Parameter {name!r} must be an integer; got {value!r}"
        )
    if value < 0:
        raise InvalidParameterError(f"Parameter {name!r} must be >= 0; got {value}")
    return int(value)


def _check_fraction(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameterError(f"Parameter {name!r} must be a number; got {value!r}")
    if not 0 <= value <= 1:
        raise InvalidParameterError(
            f"Parameter {name!r} must be between 0 and 1; got {value}"
        )
    return float(value)


def _check_fraction_of(name: str, value: Any) -> FractionOf:
    if isinstance(value, FractionOf):
        return value
    try:
        return FractionOf(str(value).lower())
    except ValueError:
        raise InvalidParameterError(
            f"Parameter {name!r} must be one of "
            f"{', '.join(f.value for f in FractionOf)}; got {value!r}"
        ) from None


def _check_extents(name: str, value: Any) -> Optional[ChromosomeOrder]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = ChromosomeOrder.from_lengths(value)
    if not isinstance(value, ChromosomeOrder):
        raise InvalidParameterError(
            f"Parameter {name!r} must be a ChromosomeOrder or a mapping of "
            f"chromosome lengths; got {value!r}"
        )
    for chromosome, length in value.lengths.items():
        _check_distance(f"{name}[{chromosome}]", length)
    return value


CHECKS = {
    "min_overlap_fraction": _check_fraction,
    "fraction_of": _check_fraction_of,
    "require_same_strand": _check_bool,
    "include_points": _check_bool,
    "max_gap_distance": _check_distance,
    "remove_entire": _check_bool,
    "max_distance": lambda name, value: _check_distance(name, value, optional=True),
    "report_unmatched": _check_bool,
    "extents": _check_extents,
    "per_base": _check_bool,
}


def validate(kind: Union[str, OperationKind], **params) -> NamedTuple:
    """
    Validate operation parameters against the catalog.

    Args:
        kind: The operation.
        params: Parameter values; missing parameters take their defaults.

    Returns:
        The parameter tuple of the operation.

    Raises:
        InvalidParameterError for unknown parameters or invalid values.
    """
    entry = get_entry(kind)
    fields = entry.params._fields
    unknown = sorted(set(params) - set(fields))
    if unknown:
        raise InvalidParameterError(
            f"Unknown parameter(s) for {entry.kind.value}: {', '.join(unknown)}; "
            f"expected any of {', '.join(fields)}"
        )
    values: Dict[str, Any] = {}
    for name, value in params.items():
        values[name] = CHECKS[name](name, value)
    return entry.params(**values)
