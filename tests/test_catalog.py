import pytest

from bedrel.catalog import (
    CATALOG,
    ClosestParams,
    FractionOf,
    IntersectParams,
    MergeParams,
    OperationKind,
    get_entry,
    validate,
)
from bedrel.errors import InvalidParameterError
from bedrel.results import IntersectRecord
from bedrel.utils import ChromosomeOrder


def test_catalog_complete():
    assert set(CATALOG) == set(OperationKind)
    entry = get_entry("Intersect")
    assert entry.binary
    assert entry.result is IntersectRecord
    assert not get_entry(OperationKind.MERGE).binary


def test_unknown_operation():
    with pytest.raises(InvalidParameterError):
        OperationKind.parse("union")


def test_defaults():
    assert validate("intersect") == IntersectParams(0.0, FractionOf.A, False, True)
    assert validate("merge") == MergeParams(0, False)
    assert validate("closest") == ClosestParams(None, False, True)
    assert validate("complement").extents is None


def test_values():
    params = validate(
        OperationKind.INTERSECT, min_overlap_fraction=1, fraction_of="Reciprocal"
    )
    assert params.min_overlap_fraction == 1.0
    assert params.fraction_of is FractionOf.RECIPROCAL
    assert validate("closest", max_distance=0).max_distance == 0
    assert validate("merge", max_gap_distance=10).max_gap_distance == 10


def test_extents():
    extents = validate("complement", extents={"chr1": 100, "chr2": 50}).extents
    assert isinstance(extents, ChromosomeOrder)
    assert extents.get_length("chr2") == 50
    order = ChromosomeOrder([("chr1", 10)])
    assert validate("complement", extents=order).extents is order


@pytest.mark.parametrize(
    "kind,params",
    [
        ("intersect", {"min_overlap_fraction": 1.5}),
        ("intersect", {"min_overlap_fraction": -0.1}),
        ("intersect", {"min_overlap_fraction": "half"}),
        ("intersect", {"fraction_of": "c"}),
        ("intersect", {"include_points": "yes"}),
        ("merge", {"max_gap_distance": -1}),
        ("merge", {"max_gap_distance": 1.5}),
        ("merge", {"max_gap_distance": True}),
        ("closest", {"max_distance": -5}),
        ("complement", {"extents": ["chr1"]}),
        ("complement", {"extents": {"chr1": -1}}),
        ("merge", {"min_overlap_fraction": 0.5}),
        ("subtract", {"bogus": 1}),
    ],
)
def test_invalid(kind, params):
    with pytest.raises(InvalidParameterError):
        validate(kind, **params)
