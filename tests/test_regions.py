import pytest

from bedrel.errors import InvalidParameterError
from bedrel.regions import parse_region


@pytest.mark.parametrize(
    "region,expected",
    [
        ("chr1:101-200", ("chr1", 100, 200)),
        ("chr1:1,001-2,000", ("chr1", 1000, 2000)),
        ("chr1:5", ("chr1", 4, 5)),
        ("chrX", ("chrX", 0, None)),
    ],
)
def test_parse_region(region, expected):
    assert parse_region(region) == expected


@pytest.mark.parametrize("region", ["chr1:0-10", "chr1:20-10", "chr1:a-b", ""])
def test_parse_invalid_region(region):
    with pytest.raises(InvalidParameterError):
        parse_region(region)
