import contextlib
from pathlib import Path
import shutil
import tempfile
from typing import Optional, Sequence, Tuple

from bedrel.store import Store, load_records
from bedrel.utils import ChromosomeOrder


Row = Tuple


@contextlib.contextmanager
def tempdir(
    tmproot: Optional[Path] = None, cleanup: Optional[bool] = True
) -> Path:
    """
    Context manager that creates a temporary directory, yields it, and then
    deletes it after return from the yield.

    Args:
        tmproot: Root directory in which to create temporary directories.
        cleanup: Whether to delete the temporary directory before exiting the context.
    """
    temp = Path(tempfile.mkdtemp(dir=tmproot))
    try:
        yield temp
    finally:
        if cleanup:
            shutil.rmtree(temp)


def records(rows: Sequence[Row]) -> list:
    """Converts (chromosome, start, end[, strand[, name]]) tuples to raw records.
    """
    return [
        dict(zip(("chromosome", "start", "end", "strand", "name"), row))
        for row in rows
    ]


def make_store(order: Optional[ChromosomeOrder] = None, **sets: Sequence[Row]) -> Store:
    """Builds a queryable store with one set per keyword argument.
    """
    store = Store(order)
    for set_id, rows in sets.items():
        load_records(store, set_id, records(rows))
    return store.finalize()


def coords(results) -> list:
    return [(r.chromosome, r.start, r.end) for r in results]
