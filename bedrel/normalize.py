from enum import Enum
import logging
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from bedrel.errors import InvalidRecordError, ParseError
from bedrel.intervals import MAX_POSITION, GenomicInterval, Strand


logger = logging.getLogger(__name__)


CHR_PREFIX = "chr"
FEATURE_FIELDS = ("chromosome", "start", "end", "strand", "name", "score")
MISSING_VALUES = (None, "", ".")

RawRecord = Mapping[str, Any]
Decoder = Callable[[Any], RawRecord]


class ChromosomeNaming(Enum):
    """Chromosome name canonicalization rules.
    """

    AS_IS = 0
    """Keep names as given (surrounding whitespace is removed)."""
    ADD_PREFIX = 1
    """Ensure names start with a lower-case 'chr' prefix ('1' -> 'chr1')."""
    STRIP_PREFIX = 2
    """Remove any 'chr' prefix ('chr1' -> '1'), matched case-insensitively."""


class RecordKind(Enum):
    """The fields that an input kind requires.
    """

    BED3 = ("chromosome", "start", "end")
    BED6 = ("chromosome", "start", "end", "name", "score", "strand")

    @property
    def required(self):
        return self.value


def canonical_chromosome(
    name: str,
    naming: ChromosomeNaming = ChromosomeNaming.AS_IS,
    aliases: Optional[Mapping[str, str]] = None
) -> str:
    """
    Canonicalizes a chromosome name.

    Args:
        name: The chromosome name.
        naming: The prefix rule to apply.
        aliases: Optional mapping applied after the prefix rule, e.g.
            {"chrMT": "chrM"}.

    Returns:
        The canonical name; empty if `name` is blank.
    """
    name = name.strip()
    has_prefix = name[:len(CHR_PREFIX)].lower() == CHR_PREFIX
    if naming is ChromosomeNaming.ADD_PREFIX:
        if has_prefix:
            name = CHR_PREFIX + name[len(CHR_PREFIX):]
        elif name:
            name = CHR_PREFIX + name
    elif naming is ChromosomeNaming.STRIP_PREFIX and has_prefix:
        name = name[len(CHR_PREFIX):]
    if aliases:
        name = aliases.get(name, name)
    return name


def _to_position(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise InvalidRecordError(f"Invalid {field} {value!r}")
    if isinstance(value, int):
        pos = value
    elif isinstance(value, float) and value.is_integer():
        pos = int(value)
    elif isinstance(value, str):
        try:
            pos = int(value.strip())
        except ValueError:
            raise InvalidRecordError(f"Invalid {field} {value!r}: not an integer")
    else:
        raise InvalidRecordError(f"Invalid {field} {value!r}: not an integer")
    if pos < 0:
        raise InvalidRecordError(f"Invalid {field} {pos}: must be >= 0")
    if pos > MAX_POSITION:
        raise InvalidRecordError(
            f"Invalid {field} {pos}: exceeds maximum position {MAX_POSITION}"
        )
    return pos


def _to_score(value: Any) -> Optional[float]:
    if value in MISSING_VALUES:
        return None
    if isinstance(value, bool):
        raise InvalidRecordError(f"Invalid score {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRecordError(f"Invalid score {value!r}: not numeric")


class Normalizer:
    """
    Turns decoded records into GenomicIntervals.

    Args:
        naming: Chromosome prefix rule. The default keeps names as given, so
            'chr1' and '1' are different chromosomes unless a rule is chosen.
        aliases: Optional mapping of chromosome names applied after `naming`.
        kind: The input kind, which determines the required fields.
        skip_invalid: Whether to drop invalid records (with a warning) instead of
            failing.
    """

    def __init__(
        self,
        naming: ChromosomeNaming = ChromosomeNaming.AS_IS,
        aliases: Optional[Mapping[str, str]] = None,
        kind: RecordKind = RecordKind.BED3,
        skip_invalid: bool = False
    ) -> None:
        self.naming = naming
        self.aliases = dict(aliases) if aliases else None
        self.kind = kind
        self.skip_invalid = skip_invalid
        self.skipped = 0

    def canonical_chromosome(self, name: str) -> str:
        return canonical_chromosome(name, self.naming, self.aliases)

    def normalize(
        self, record: RawRecord, set_id: Optional[str] = None, order: int = 0
    ) -> GenomicInterval:
        """
        Validates and canonicalizes a single record.

        Args:
            record: The decoded record.
            set_id: Identifier of the set the record belongs to.
            order: Index of the record in its input.

        Returns:
            A GenomicInterval.

        Raises:
            InvalidRecordError if the record violates any interval invariant.
        """
        missing = [
            field for field in self.kind.required
            if field not in record or (
                field in ("chromosome", "start", "end") and record[field] is None
            )
        ]
        chromosome = record.get("chromosome")
        if missing:
            raise InvalidRecordError(
                f"Missing required field(s) {', '.join(missing)}",
                set_id, chromosome if isinstance(chromosome, str) else None, order
            )
        if not isinstance(chromosome, str):
            raise InvalidRecordError(
                f"Invalid chromosome {chromosome!r}", set_id, None, order
            )
        chromosome = self.canonical_chromosome(chromosome)
        if not chromosome:
            raise InvalidRecordError("Empty chromosome name", set_id, None, order)

        try:
            start = _to_position(record["start"], "start")
            end = _to_position(record["end"], "end")
            if start > end:
                raise InvalidRecordError(f"'start' {start} is greater than 'end' {end}")
            score = _to_score(record.get("score"))
        except InvalidRecordError as err:
            raise err.with_context(set_id, chromosome, order) from None

        name = record.get("name")
        if name in MISSING_VALUES:
            name = None

        attributes = dict(
            (key, value) for key, value in record.items() if key not in FEATURE_FIELDS
        )

        return GenomicInterval(
            chromosome,
            start,
            end,
            strand=Strand.parse(record.get("strand")),
            score=score,
            name=None if name is None else str(name),
            set_id=set_id,
            order=order,
            attributes=attributes
        )

    def iter_intervals(
        self,
        records: Iterable[Any],
        set_id: Optional[str] = None,
        decode: Optional[Decoder] = None
    ) -> Iterator[GenomicInterval]:
        """
        Lazily normalizes a sequence of records, in input order.

        Args:
            records: The records (or raw rows, if `decode` is given).
            set_id: Identifier of the set being loaded.
            decode: Optional function that decodes a raw row into a record; it may
                raise ParseError.

        Yields:
            GenomicIntervals, with `order` set to the index of the record in
            `records` (skipped records keep their slot).

        Raises:
            ParseError, InvalidRecordError unless `skip_invalid` is set.
        """
        for order, item in enumerate(records):
            try:
                record = decode(item) if decode else item
                yield self.normalize(record, set_id, order)
            except (ParseError, InvalidRecordError) as err:
                err = err.with_context(set_id=set_id, position=order)
                if not self.skip_invalid:
                    raise err from None
                self.skipped += 1
                logger.warning(
                    "Skipping invalid record (%d skipped so far): %s", self.skipped, err
                )
