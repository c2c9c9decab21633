import re
from typing import Optional, Tuple

from bedrel.errors import InvalidParameterError


REGION_RE = re.compile(r"^(?P<chrom>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")
Region = Tuple[str, int, Optional[int]]


def parse_region(region_str: str) -> Region:
    """
    Convert a region string into an interval.

    Args:
        region_str: Region string with 1-based, inclusive coordinates, such as
            'chr1:100-1000', 'chr1:100' (a single base) or 'chr1' (the whole
            chromosome). Thousands separators are allowed.

    Returns:
        A tuple (chromosome, start, end) with 0-based, half-open coordinates,
        where end is None for a whole chromosome.
    """
    match = REGION_RE.match(region_str.strip())
    if not match:
        raise InvalidParameterError(f"Invalid region {region_str!r}")
    contig = match.group("chrom")
    if match.group("start") is None:
        return contig, 0, None
    start = int(match.group("start").replace(",", ""))
    if match.group("end") is None:
        end = start
    else:
        end = int(match.group("end").replace(",", ""))
    if start <= 0:
        raise InvalidParameterError(
            f"Invalid region interval {region_str}: start must be >= 1"
        )
    start -= 1
    if start >= end:
        raise InvalidParameterError(
            f"Invalid region interval {region_str}: start must be <= end"
        )
    return contig, start, end
