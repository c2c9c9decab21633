from contextlib import closing, contextmanager
import json
import logging
import os
from pathlib import Path
import sqlite3
import time
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from bedrel.errors import SchemaVersionError, StoreError, UnknownSetError
from bedrel.intervals import GenomicInterval, Strand, overlaps
from bedrel.regions import parse_region
from bedrel.store import Store
from bedrel.utils import ChromosomeOrder


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1
BATCH_SIZE = 10_000
"""Number of rows inserted per transaction."""

SCHEMA = """
CREATE TABLE metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE interval_sets (
    set_id TEXT PRIMARY KEY,
    description TEXT,
    record_count INTEGER
);

CREATE TABLE intervals (
    xrowid INTEGER PRIMARY KEY,
    set_id TEXT NOT NULL,
    chromosome TEXT NOT NULL,
    start INTEGER NOT NULL,
    "end" INTEGER NOT NULL,
    strand TEXT,
    name TEXT,
    score REAL,
    attributes TEXT,
    input_order INTEGER
);

CREATE INDEX idx_intervals_set_chrom_start ON intervals (set_id, chromosome, start);
"""

INSERT_SQL = """
INSERT INTO intervals
    (set_id, chromosome, start, "end", strand, name, score, attributes, input_order)
VALUES
    (:set_id, :chromosome, :start, :end, :strand, :name, :score, :attributes,
     :input_order)
"""

SELECT_SQL = """
SELECT chromosome, start, "end", strand, name, score, attributes, input_order
FROM intervals
WHERE set_id = ?
ORDER BY chromosome, start, "end", input_order
"""

SELECT_CHROMOSOME_SQL = """
SELECT chromosome, start, "end", strand, name, score, attributes, input_order
FROM intervals
WHERE set_id = ? AND chromosome = ?
ORDER BY start, "end", input_order
"""

# Rows may start at the region end (points) and end at the region start; the
# exact overlap test is applied to the candidates.
SELECT_REGION_SQL = """
SELECT chromosome, start, "end", strand, name, score, attributes, input_order
FROM intervals
WHERE set_id = ? AND chromosome = ? AND start <= ? AND "end" >= ?
ORDER BY start, "end", input_order
"""

Row = Tuple


@contextmanager
def _connect(path: Path, step: str) -> Iterator[sqlite3.Connection]:
    try:
        with closing(sqlite3.connect(str(path))) as conn:
            yield conn
    except sqlite3.Error as err:
        raise StoreError(f"Failed to {step} store: {err}", path) from err
    except OSError as err:
        raise StoreError(f"Failed to {step} store: {err}", path) from err


def _interval_row(set_id: str, ivl: GenomicInterval) -> dict:
    return {
        "set_id": set_id,
        "chromosome": ivl.chromosome,
        "start": ivl.start,
        "end": ivl.end,
        "strand": ivl.strand.value,
        "name": ivl.name,
        "score": ivl.score,
        "attributes": json.dumps(ivl.attributes) if ivl.attributes else None,
        "input_order": ivl.order,
    }


def _row_interval(set_id: str, row: Row) -> GenomicInterval:
    chromosome, start, end, strand, name, score, attributes, input_order = row
    return GenomicInterval(
        chromosome, start, end,
        strand=Strand(strand or "."),
        score=score,
        name=name,
        set_id=set_id,
        order=input_order,
        attributes=json.loads(attributes) if attributes else None
    )


def _write_store(conn: sqlite3.Connection, store: Store) -> None:
    conn.executescript(SCHEMA)
    with conn:
        conn.execute(
            "INSERT INTO metadata (key, value) VALUES (?, ?)",
            ("chromosome_order", json.dumps(store.order.as_list()))
        )

    for set_id in store.set_ids:
        info = store.set_info(set_id)
        with conn:
            conn.execute(
                "INSERT INTO interval_sets (set_id, description, record_count) "
                "VALUES (?, ?, ?)",
                (set_id, info.description, info.count)
            )
        batch = []
        for ivl in store.iter_set(set_id):
            batch.append(_interval_row(set_id, ivl))
            if len(batch) >= BATCH_SIZE:
                with conn:
                    conn.executemany(INSERT_SQL, batch)
                batch = []
        if batch:
            with conn:
                conn.executemany(INSERT_SQL, batch)
        logger.debug("Wrote %d records of set %s", info.count, set_id)

    # Written last: a file without a schema version is never opened.
    with conn:
        conn.execute(
            "INSERT INTO metadata (key, value) VALUES (?, ?)",
            ("schema_version", str(SCHEMA_VERSION))
        )
    conn.execute("ANALYZE")


def save_store(store: Store, path: Union[str, Path], overwrite: bool = False) -> Path:
    """
    Write a queryable store to a SQLite database. The database is built in a
    temporary file next to `path`, which replaces `path` only once it is
    complete.

    Args:
        store: The store to save; it is finalized if it is still loading.
        path: The database file.
        overwrite: Whether to replace an existing file.

    Returns:
        The path of the database.

    Raises:
        StoreError if the file exists (and `overwrite` is False), or if the
        store cannot be serialized or written.
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise StoreError("Store file already exists", path)
    store.finalize()

    tmp_path = path.with_name(f".{path.name}.tmp")
    begin = time.perf_counter()
    try:
        if tmp_path.exists():
            tmp_path.unlink()
        with _connect(tmp_path, "write") as conn:
            _write_store(conn, store)
        os.replace(str(tmp_path), str(path))
    except (TypeError, ValueError) as err:
        raise StoreError(f"Failed to serialize store: {err}", path) from err
    except OSError as err:
        raise StoreError(f"Failed to write store: {err}", path) from err
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.info(
        "Saved store with %d set(s) to %s in %.2fs",
        len(store.set_ids), path, time.perf_counter() - begin
    )
    return path


def read_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    if row is None:
        return None
    try:
        return int(row[0])
    except ValueError:
        return None


@contextmanager
def _open(path: Union[str, Path]) -> Iterator[Tuple[Path, sqlite3.Connection]]:
    path = Path(path)
    if not path.is_file():
        raise StoreError("Store file does not exist", path)
    with _connect(path, "open") as conn:
        found = read_schema_version(conn)
        if found != SCHEMA_VERSION:
            raise SchemaVersionError(SCHEMA_VERSION, found, path)
        yield path, conn


def _select(
    conn: sqlite3.Connection, set_id: str, region: Optional[str] = None
) -> Iterator[GenomicInterval]:
    if region is None:
        cursor = conn.execute(SELECT_SQL, (set_id,))
        return (_row_interval(set_id, row) for row in cursor)
    chromosome, start, end = parse_region(region)
    if end is None:
        cursor = conn.execute(SELECT_CHROMOSOME_SQL, (set_id, chromosome))
        return (_row_interval(set_id, row) for row in cursor)
    cursor = conn.execute(SELECT_REGION_SQL, (set_id, chromosome, end, start))
    return (
        _row_interval(set_id, row) for row in cursor
        if overlaps(start, end, row[1], row[2])
    )


def read_intervals(
    path: Union[str, Path], set_id: str, region: Optional[str] = None
) -> Iterator[GenomicInterval]:
    """
    Read the intervals of one set directly from a saved store, without building
    an in-memory Store. Region reads use the (set, chromosome, start) index.

    Args:
        path: The database file.
        set_id: The set to read.
        region: Optional region string ('chr1:101-200' or 'chr1'); only
            intervals overlapping it are returned.

    Yields:
        GenomicIntervals in start, end, input order (by chromosome name when no
        region is given).

    Raises:
        StoreError, SchemaVersionError as for :func:`open_store`.
        UnknownSetError if the set is not in the store.
    """
    with _open(path) as (path, conn):
        if conn.execute(
            "SELECT 1 FROM interval_sets WHERE set_id = ?", (set_id,)
        ).fetchone() is None:
            raise UnknownSetError(set_id)
        yield from _select(conn, set_id, region)


def open_store(
    path: Union[str, Path],
    set_ids: Optional[Iterable[str]] = None,
    region: Optional[str] = None
) -> Store:
    """
    Load a store saved with :func:`save_store`.

    Args:
        path: The database file.
        set_ids: The sets to load; all sets by default.
        region: Optional region string; only intervals overlapping it are
            loaded.

    Returns:
        A queryable Store.

    Raises:
        StoreError if the file does not exist, cannot be read or is
            incomplete.
        SchemaVersionError if the file has a different schema version.
        UnknownSetError if one of `set_ids` is not in the store.
    """
    begin = time.perf_counter()
    with _open(path) as (path, conn):
        (order_json,) = conn.execute(
            "SELECT value FROM metadata WHERE key = 'chromosome_order'"
        ).fetchone()
        store = Store(ChromosomeOrder([
            name if length is None else (name, length)
            for name, length in json.loads(order_json)
        ]))

        sets = conn.execute(
            "SELECT set_id, description, record_count FROM interval_sets "
            "ORDER BY rowid"
        ).fetchall()
        if set_ids is not None:
            saved = dict((row[0], row) for row in sets)
            selected: List[Row] = []
            for set_id in set_ids:
                if set_id not in saved:
                    raise UnknownSetError(set_id)
                selected.append(saved[set_id])
            sets = selected

        for set_id, description, record_count in sets:
            loaded = store.load(set_id, _select(conn, set_id, region), description)
            if region is None and loaded != record_count:
                raise StoreError(
                    f"Set {set_id!r} has {loaded} records; expected {record_count}",
                    path
                )

    store.finalize()
    logger.info(
        "Opened store with %d set(s) from %s in %.2fs",
        len(sets), path, time.perf_counter() - begin
    )
    return store
