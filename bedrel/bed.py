import csv
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

import pysam
from xphyle import STDOUT, open_
from xphyle.utils import read_delimited

from bedrel.errors import ParseError


BED_COLUMNS = ("chromosome", "start", "end", "name", "score", "strand")
COMMENT_PREFIXES = ("#", "track", "browser")


def decode_bed_row(
    row: Sequence[str],
    extra_columns: Optional[Sequence[str]] = None,
    line: Optional[int] = None
) -> Dict[str, Any]:
    """
    Decodes the columns of a BED row into a raw record. Columns beyond the sixth
    are kept as attributes, named by `extra_columns` or by their 1-based column
    number ('col7', 'col8', ...).

    Args:
        row: The columns of the row.
        extra_columns: Optional names for columns 7+.
        line: Line number, for error messages.

    Returns:
        A dict with keys 'chromosome', 'start', 'end' and any of the optional
        BED columns that are present.

    Raises:
        ParseError if the row has fewer than three columns or non-integer
        coordinates.
    """
    if len(row) < 3:
        raise ParseError(
            f"Expected at least 3 columns, found {len(row)}", position=line
        )
    try:
        record = {
            "chromosome": row[0],
            "start": int(row[1]),
            "end": int(row[2]),
        }
    except ValueError:
        raise ParseError(
            f"Invalid coordinates {row[1]!r}, {row[2]!r}", chromosome=row[0],
            position=line
        ) from None
    for col, value in zip(BED_COLUMNS[3:], row[3:6]):
        record[col] = value
    for i, value in enumerate(row[6:], 7):
        if extra_columns and i - 7 < len(extra_columns):
            key = extra_columns[i - 7]
        else:
            key = f"col{i}"
        record[key] = value
    return record


def iter_bed_rows(bed_file: Union[Path, str]) -> Iterator[Sequence[str]]:
    """
    Iterate over the rows of a (possibly compressed) BED file, skipping blank,
    comment, 'track' and 'browser' lines.

    Args:
        bed_file: Path to the BED file.

    Returns:
        Iterator over lists of column values.
    """
    for _, row in _numbered_rows(bed_file):
        yield row


def _numbered_rows(bed_file: Union[Path, str]) -> Iterator[Tuple[int, Sequence[str]]]:
    for line, row in enumerate(read_delimited(bed_file), 1):
        if not row or row[0].startswith(COMMENT_PREFIXES):
            continue
        yield line, row


def iter_bed_records(
    bed_file: Union[Path, str], extra_columns: Optional[Sequence[str]] = None
) -> Iterator[Dict[str, Any]]:
    """
    Iterate over the records in a BED file.

    Args:
        bed_file: Path to the BED file.
        extra_columns: Optional names for columns 7+.

    Returns:
        Iterator over raw records.

    Raises:
        ParseError on the first malformed row.
    """
    for line, row in _numbered_rows(bed_file):
        yield decode_bed_row(row, extra_columns, line)


def decode_vcf_record(rec: pysam.VariantRecord) -> Dict[str, Any]:
    """
    Decodes a VCF record into a raw record spanning the reference allele:
    0-based start, end from `rec.stop` (which accounts for INFO/END).
    """
    return {
        "chromosome": rec.chrom,
        "start": rec.start,
        "end": rec.stop,
        "name": rec.id,
        "score": rec.qual,
        "ref": rec.ref,
        "alts": ",".join(rec.alts) if rec.alts else ".",
    }


def iter_vcf_records(vcf_file: Union[Path, str]) -> Iterator[Dict[str, Any]]:
    """
    Iterate over the records in a VCF/BCF file.

    Args:
        vcf_file: Path to the VCF file.

    Returns:
        Iterator over raw records.
    """
    with pysam.VariantFile(str(vcf_file)) as vcf:
        for rec in vcf:
            yield decode_vcf_record(rec)


def read_vcf_header(vcf_file: Union[Path, str]) -> str:
    """
    Returns the header of a VCF file as text, e.g. to be stored as the description
    of the set loaded from it.
    """
    with pysam.VariantFile(str(vcf_file)) as vcf:
        return str(vcf.header)


def write_records_bed(
    records: Iterable[Any],
    outfile: Union[Path, str] = STDOUT,
    extended: bool = False
) -> int:
    """
    Write result records (or GenomicIntervals) to a tab-delimited BED file.
    Compression is determined from the file extension.

    Args:
        records: The records to write, in the order they are to be written.
        outfile: The output file; stdout by default.
        extended: Whether to write all record columns (`as_bed(True)`) rather than
            the BED columns only.

    Returns:
        The number of rows written.
    """
    rows = 0
    with open_(outfile, "wt") as out:
        writer = csv.writer(out, delimiter="\t", lineterminator="\n")
        for record in records:
            if hasattr(record, "as_bed"):
                writer.writerow(record.as_bed(extended))
            elif extended:
                writer.writerow(record.as_bed_extended())
            else:
                writer.writerow(record.as_bed3())
            rows += 1
    return rows
