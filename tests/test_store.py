import pytest

from bedrel.bed import decode_bed_row
from bedrel.errors import InvalidRecordError, StoreStateError, UnknownSetError
from bedrel.intervals import GenomicInterval, Strand
from bedrel.normalize import Normalizer
from bedrel.store import Store, StoreState, load_records
from bedrel.utils import ChromosomeOrder
from . import coords, make_store, records


def test_state_machine():
    store = Store()
    assert store.state is StoreState.LOADING
    load_records(store, "A", records([("chr1", 10, 20)]))
    assert "A" in store
    with pytest.raises(StoreStateError):
        store.query_overlaps("A", "chr1", 0, 100)
    with pytest.raises(StoreStateError):
        store.acquire()
    store.finalize()
    assert store.queryable
    assert store.finalize() is store
    with pytest.raises(StoreStateError):
        load_records(store, "B", records([("chr1", 10, 20)]))
    store.close()
    assert store.state is StoreState.CLOSED
    with pytest.raises(StoreStateError):
        store.query_overlaps("A", "chr1", 0, 100)
    with pytest.raises(StoreStateError):
        store.finalize()


def test_load_appends_to_set():
    store = Store()
    load_records(store, "A", records([("chr1", 30, 40)]))
    load_records(store, "A", records([("chr1", 10, 20), ("chr2", 0, 5)]))
    store.finalize()
    assert store.count("A") == 3
    assert coords(store.iter_set("A")) == [
        ("chr1", 10, 20), ("chr1", 30, 40), ("chr2", 0, 5)
    ]


def test_failed_load_keeps_nothing():
    store = Store()
    rows = records([("chr1", 10, 20), ("chr1", 30, 25)])
    with pytest.raises(InvalidRecordError):
        load_records(store, "A", rows)
    load_records(store, "A", records([("chr2", 1, 2)]))
    store.finalize()
    assert coords(store.iter_set("A")) == [("chr2", 1, 2)]


def test_load_records_summary():
    store = Store()
    summary = load_records(
        store, "A",
        [("chr1", "1", "5"), ("chr1", "7", "3"), ("chr1", "8", "9")],
        normalizer=Normalizer(skip_invalid=True),
        decode=decode_bed_row,
        description="test set"
    )
    assert summary.set_id == "A"
    assert summary.loaded == 2
    assert summary.skipped == 1
    store.finalize()
    info = store.set_info("A")
    assert info.count == 2
    assert info.chromosomes == ["chr1"]
    assert info.description == "test set"


def test_load_assigns_set_id():
    store = Store()
    store.load("A", [GenomicInterval("chr1", 1, 2, set_id="other")])
    store.finalize()
    assert next(store.iter_set("A")).set_id == "A"


def test_sort_order_with_ties():
    store = make_store(A=[
        ("chr1", 10, 30, "+", "third"),
        ("chr1", 10, 20, "+", "first"),
        ("chr1", 10, 20, "+", "second"),
        ("chr1", 5, 5, "+", "point"),
    ])
    assert [ivl.name for ivl in store.iter_set("A")] == [
        "point", "first", "second", "third"
    ]


def test_chromosome_order():
    store = make_store(
        ChromosomeOrder(["chr2", "chr10", "chr1"]),
        A=[("chr1", 0, 1), ("chrUn", 0, 1), ("chr10", 0, 1), ("chr2", 0, 1),
           ("chrM", 0, 1)]
    )
    assert store.chromosomes() == ["chr2", "chr10", "chr1", "chrM", "chrUn"]

    store = make_store(A=[("chr1", 0, 1), ("chr10", 0, 1), ("chr2", 0, 1)])
    assert store.chromosomes("A") == ["chr1", "chr10", "chr2"]


def test_unknown_set():
    store = make_store(A=[("chr1", 0, 1)])
    with pytest.raises(UnknownSetError) as excinfo:
        store.count("B")
    assert excinfo.value.set_id == "B"
    assert "'B'" in str(excinfo.value)


def test_query_overlaps():
    store = make_store(A=[
        ("chr1", 10, 20, "+"),
        ("chr1", 15, 25, "-"),
        ("chr1", 20, 20, "+"),
        ("chr1", 30, 40, "+"),
        ("chr2", 10, 20, "+"),
    ])
    assert coords(store.query_overlaps("A", "chr1", 19, 21)) == [
        ("chr1", 10, 20), ("chr1", 15, 25), ("chr1", 20, 20)
    ]
    # book-ended intervals do not overlap
    assert coords(store.query_overlaps("A", "chr1", 25, 30)) == []
    # point queries
    assert coords(store.query_overlaps("A", "chr1", 20, 20)) == [
        ("chr1", 15, 25), ("chr1", 20, 20)
    ]
    assert coords(store.query_overlaps("A", "chr1", 10, 10)) == [("chr1", 10, 20)]
    assert coords(store.query_overlaps("A", "chr1", 40, 40)) == []
    # stranded
    assert coords(store.query_overlaps("A", "chr1", 0, 100, Strand.REVERSE)) == [
        ("chr1", 15, 25)
    ]
    assert store.query_overlaps("A", "chr3", 0, 100) == []


def test_query_nearest():
    store = make_store(A=[
        ("chr1", 0, 5, "+", "up"),
        ("chr1", 25, 30, "-", "down"),
        ("chr1", 50, 60, "+", "far"),
    ])

    def nearest(start, end, **kwargs):
        ivl = store.query_nearest("A", "chr1", start, end, **kwargs)
        return None if ivl is None else ivl.name

    # both at distance 6: upstream wins
    assert nearest(10, 20) == "up"
    assert nearest(11, 21) == "down"
    assert nearest(2, 3) == "up"
    assert nearest(30, 30) == "down"
    assert nearest(100, 110) == "far"
    assert nearest(10, 20, max_distance=5) is None
    assert nearest(10, 20, max_distance=6) == "up"
    assert nearest(10, 20, strand=Strand.REVERSE) == "down"
    assert store.query_nearest("A", "chr2", 0, 10) is None


def test_query_nearest_contained():
    # the upstream candidate is the one reaching furthest, not the last to start
    store = make_store(A=[
        ("chr1", 0, 40, ".", "long"),
        ("chr1", 10, 12, ".", "short"),
        ("chr1", 60, 70, ".", "down"),
    ])
    ivl = store.query_nearest("A", "chr1", 45, 50)
    assert ivl.name == "long"


def test_fetch():
    store = make_store(A=[("chr1", 0, 100), ("chr1", 150, 200), ("chr2", 5, 10)])
    assert coords(store.fetch("A", "chr1:101-150")) == []
    assert coords(store.fetch("A", "chr1:100-151")) == [
        ("chr1", 0, 100), ("chr1", 150, 200)
    ]
    assert coords(store.fetch("A", "chr2")) == [("chr2", 5, 10)]


def test_derive():
    base = make_store(A=[("chr1", 0, 10)])
    derived = base.derive()
    assert derived.state is StoreState.LOADING
    load_records(derived, "B", records([("chr1", 5, 15)]))
    derived.finalize()
    assert list(derived.set_ids) == ["A", "B"]
    assert "B" not in base
    assert coords(derived.query_overlaps("A", "chr1", 0, 1)) == [("chr1", 0, 10)]
    with pytest.raises(StoreStateError):
        load_records(derived.derive(), "A", records([("chr1", 0, 1)]))


def test_readers():
    store = make_store(A=[("chr1", 0, 10)])
    store.acquire()
    assert store.readers == 1
    with pytest.raises(StoreStateError):
        store.close()
    store.release()
    assert store.readers == 0
    store.close()


def test_points_at_chromosome_start():
    store = make_store(A=[
        ("chr1", 0, 0, ".", "point"),
        ("chr1", 0, 7, ".", "long"),
        ("chr1", 3, 3, ".", "inner"),
    ])
    assert [i.name for i in store.query_overlaps("A", "chr1", 0, 5)] == [
        "point", "long", "inner"
    ]
    assert [i.name for i in store.query_overlaps("A", "chr1", 0, 0)] == [
        "point", "long"
    ]
    # overlapping candidates with the same start: the smaller end wins
    assert store.query_nearest("A", "chr1", 0, 1).name == "point"
