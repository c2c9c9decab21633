from pathlib import Path
from typing import Optional, Union


class BedrelError(Exception):
    pass


class RecordError(BedrelError):
    """
    Base class for errors raised while turning input rows into intervals.

    Args:
        message: Description of the problem.
        set_id: Identifier of the set being loaded.
        chromosome: Chromosome of the offending record, if known.
        position: Index (or line number) of the offending record, if known.
    """

    def __init__(
        self,
        message: str,
        set_id: Optional[str] = None,
        chromosome: Optional[str] = None,
        position: Optional[int] = None
    ) -> None:
        self.message = message
        self.set_id = set_id
        self.chromosome = chromosome
        self.position = position
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.set_id is not None:
            context.append(f"set={self.set_id}")
        if self.chromosome:
            context.append(f"chromosome={self.chromosome}")
        if self.position is not None:
            context.append(f"record={self.position}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message

    def with_context(
        self,
        set_id: Optional[str] = None,
        chromosome: Optional[str] = None,
        position: Optional[int] = None
    ) -> "RecordError":
        """Returns a copy of this error with any missing context filled in.
        """
        return type(self)(
            self.message,
            self.set_id if self.set_id is not None else set_id,
            self.chromosome or chromosome,
            self.position if self.position is not None else position,
        )


class ParseError(RecordError):
    """A raw row could not be decoded into a record."""


class InvalidRecordError(RecordError):
    """A decoded record violates the interval invariants."""


class InvalidParameterError(BedrelError, ValueError):
    """Operation parameters or set references failed validation."""


class UnknownSetError(InvalidParameterError, KeyError):
    def __init__(self, set_id: str) -> None:
        self.set_id = set_id
        super().__init__(f"Unknown interval set {set_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class StoreStateError(BedrelError, RuntimeError):
    """The store was used in the wrong phase (e.g. queried while loading)."""


class StoreError(BedrelError):
    """
    I/O failure of the on-disk store.

    Args:
        message: Description of the failure.
        path: The database file.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = path
        if path is not None:
            message = f"{message} [{path}]"
        super().__init__(message)


class SchemaVersionError(StoreError):
    def __init__(
        self, expected: int, found: Optional[int],
        path: Optional[Union[str, Path]] = None
    ) -> None:
        self.expected = expected
        self.found = found
        super().__init__(
            f"Unsupported store schema version: expected {expected}, found {found}",
            path
        )
