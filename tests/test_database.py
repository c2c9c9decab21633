from contextlib import closing
import sqlite3

import pytest

from bedrel.database import SCHEMA_VERSION, open_store, read_intervals, save_store
from bedrel.errors import SchemaVersionError, StoreError, UnknownSetError
from bedrel.intervals import GenomicInterval, Strand
from bedrel.operations import perform
from bedrel.store import Store
from bedrel.utils import ChromosomeOrder
from . import coords, make_store, tempdir


def test_round_trip():
    store = Store(ChromosomeOrder([("chr2", 1000), "chr1"]))
    store.load(
        "A",
        [
            GenomicInterval(
                "chr1", 10, 20, Strand.FORWARD, score=2.5, name="a1",
                attributes={"col7": "x"}
            ),
            GenomicInterval("chr2", 5, 5),
            GenomicInterval("chr1", 10, 20, Strand.REVERSE, name="a2"),
        ],
        description="first"
    )
    store.load("B", [GenomicInterval("chr1", 15, 30)])

    with tempdir() as tmp:
        path = save_store(store, tmp / "store.db")
        assert store.queryable
        reopened = open_store(path)

    assert reopened.queryable
    assert list(reopened.set_ids) == ["A", "B"]
    assert reopened.order.as_list() == [("chr2", 1000), ("chr1", None)]
    assert reopened.set_info("A").description == "first"
    assert reopened.set_info("B").description is None

    original = list(store.iter_set("A"))
    restored = list(reopened.iter_set("A"))
    assert restored == original
    assert [i.order for i in restored] == [i.order for i in original]
    assert restored[1].attributes == {"col7": "x"}
    assert restored[1].score == 2.5
    assert restored[1].name == "a1"

    assert coords(perform(reopened, "intersect", "A", "B").to_list()) == coords(
        perform(store, "intersect", "A", "B").to_list()
    )


def test_existing_file():
    store = make_store(A=[("chr1", 0, 10)])
    with tempdir() as tmp:
        path = tmp / "store.db"
        path.write_text("placeholder")
        with pytest.raises(StoreError):
            save_store(store, path)
        save_store(store, path, overwrite=True)
        assert open_store(path).count("A") == 1


def test_missing_file():
    with tempdir() as tmp:
        with pytest.raises(StoreError):
            open_store(tmp / "missing.db")


def test_not_a_database():
    with tempdir() as tmp:
        path = tmp / "garbage.db"
        path.write_bytes(b"this is not a database" * 100)
        with pytest.raises(StoreError):
            open_store(path)


def test_schema_version():
    with tempdir() as tmp:
        bare = tmp / "bare.db"
        with closing(sqlite3.connect(str(bare))) as conn:
            conn.execute("CREATE TABLE other (x INTEGER)")
            conn.commit()
        with pytest.raises(SchemaVersionError) as excinfo:
            open_store(bare)
        assert excinfo.value.found is None

        path = save_store(make_store(A=[("chr1", 0, 10)]), tmp / "store.db")
        with closing(sqlite3.connect(str(path))) as conn:
            conn.execute(
                "UPDATE metadata SET value = ? WHERE key = 'schema_version'",
                (str(SCHEMA_VERSION + 1),)
            )
            conn.commit()
        with pytest.raises(SchemaVersionError) as excinfo:
            open_store(path)
        assert excinfo.value.expected == SCHEMA_VERSION
        assert excinfo.value.found == SCHEMA_VERSION + 1


def test_failed_save_leaves_no_file():
    store = Store()
    store.load("A", [GenomicInterval("chr1", 0, 10)])
    store.load("B", [GenomicInterval("chr1", 5, 15, attributes={"x": {1, 2}})])
    with tempdir() as tmp:
        with pytest.raises(StoreError):
            save_store(store, tmp / "store.db")
        assert list(tmp.iterdir()) == []


def test_failed_overwrite_keeps_existing():
    good = make_store(A=[("chr1", 0, 10)])
    bad = Store()
    bad.load("A", [GenomicInterval("chr1", 0, 10, attributes={"x": object()})])
    with tempdir() as tmp:
        path = save_store(good, tmp / "store.db")
        with pytest.raises(StoreError):
            save_store(bad, path, overwrite=True)
        assert [p.name for p in tmp.iterdir()] == ["store.db"]
        assert open_store(path).count("A") == 1


def test_truncated_store():
    store = make_store(A=[("chr1", 0, 10), ("chr1", 20, 30)])
    with tempdir() as tmp:
        path = save_store(store, tmp / "store.db")
        with closing(sqlite3.connect(str(path))) as conn:
            conn.execute("DELETE FROM intervals WHERE start = 20")
            conn.commit()
        with pytest.raises(StoreError, match="expected 2"):
            open_store(path)


def test_open_selected_sets_and_region():
    store = make_store(
        A=[("chr1", 0, 10), ("chr1", 50, 60), ("chr1", 100, 100), ("chr2", 0, 10)],
        B=[("chr1", 5, 15)]
    )
    with tempdir() as tmp:
        path = save_store(store, tmp / "store.db")

        partial = open_store(path, set_ids=["A"])
        assert list(partial.set_ids) == ["A"]
        assert partial.count("A") == 4

        region = open_store(path, region="chr1:10-101")
        assert coords(region.iter_set("A")) == [
            ("chr1", 0, 10), ("chr1", 50, 60), ("chr1", 100, 100)
        ]
        assert coords(region.iter_set("B")) == [("chr1", 5, 15)]

        with pytest.raises(UnknownSetError):
            open_store(path, set_ids=["C"])


def test_read_intervals():
    store = make_store(
        A=[("chr1", 0, 10), ("chr1", 50, 60), ("chr1", 60, 60), ("chr2", 0, 10)]
    )
    with tempdir() as tmp:
        path = save_store(store, tmp / "store.db")
        assert coords(read_intervals(path, "A", "chr1:11-60")) == [("chr1", 50, 60)]
        assert coords(read_intervals(path, "A", "chr1:61")) == [
            ("chr1", 60, 60)
        ]
        assert coords(read_intervals(path, "A", "chr2")) == [("chr2", 0, 10)]
        assert len(list(read_intervals(path, "A"))) == 4
        assert all(ivl.set_id == "A" for ivl in read_intervals(path, "A"))
        with pytest.raises(UnknownSetError):
            list(read_intervals(path, "B"))
