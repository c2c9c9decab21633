"""Genomic interval set operations over an indexed interval store.
"""
from bedrel.catalog import FractionOf, OperationKind
from bedrel.errors import (
    BedrelError,
    InvalidParameterError,
    InvalidRecordError,
    ParseError,
    SchemaVersionError,
    StoreError,
    StoreStateError,
    UnknownSetError,
)
from bedrel.intervals import GenomicInterval, Strand
from bedrel.normalize import ChromosomeNaming, Normalizer, RecordKind
from bedrel.operations import compile_operation, perform
from bedrel.results import ResultStream
from bedrel.store import Store, StoreState, load_records
from bedrel.utils import ChromosomeOrder


__version__ = "0.1.0"
