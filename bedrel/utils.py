from pathlib import Path
from typing import (
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
    cast,
)

import pysam
from xphyle.utils import read_delimited


OrderKey = Tuple[int, str]


class ChromosomeOrder:
    """Total order over chromosome names, optionally with chromosome lengths.

    Without a listing, chromosomes are ordered lexicographically by their
    canonical names; this is the authoritative default. With a listing (e.g.
    from a genome assembly), listed chromosomes come first in listing order and
    any unlisted chromosome sorts after them, lexicographically.

    Args:
        chromosomes: Optional sequence of names or (name, length) tuples.
    """

    def __init__(
        self, chromosomes: Optional[Sequence[Union[str, Tuple[str, int]]]] = None
    ) -> None:
        self.chromosome_list = []
        self._lengths = {}
        for item in chromosomes or ():
            if isinstance(item, str):
                name, length = item, None
            else:
                name, length = cast(Tuple[str, int], item)
            self.chromosome_list.append(name)
            if length is not None:
                self._lengths[name] = int(length)
        self._rank = dict((name, i) for i, name in enumerate(self.chromosome_list))

    def __len__(self) -> int:
        return len(self.chromosome_list)

    def __contains__(self, chromosome: str) -> bool:
        return chromosome in self._rank

    def __iter__(self) -> Iterator[str]:
        return iter(self.chromosome_list)

    def __repr__(self) -> str:
        if self.is_lexicographic:
            return "ChromosomeOrder(lexicographic)"
        return f"ChromosomeOrder({','.join(self.chromosome_list)})"

    @property
    def is_lexicographic(self) -> bool:
        return not self.chromosome_list

    @property
    def lengths(self) -> Dict[str, int]:
        """Mapping of chromosome name to length, for chromosomes with known length.
        """
        return dict(self._lengths)

    def get_length(self, chromosome: str) -> Optional[int]:
        return self._lengths.get(chromosome)

    def key(self, chromosome: str) -> OrderKey:
        """Sort key for a chromosome name.
        """
        rank = self._rank.get(chromosome)
        if rank is None:
            return len(self._rank), chromosome
        return rank, ""

    def sort(self, chromosomes: Iterable[str]) -> Sequence[str]:
        """Sorts (and de-duplicates) chromosome names.
        """
        return sorted(set(chromosomes), key=self.key)

    def as_list(self) -> Sequence[Tuple[str, Optional[int]]]:
        return [(name, self._lengths.get(name)) for name in self.chromosome_list]

    @staticmethod
    def from_lengths(lengths: Mapping[str, int]) -> "ChromosomeOrder":
        return ChromosomeOrder(list(lengths.items()))

    @staticmethod
    def from_file(path: Path) -> "ChromosomeOrder":
        """Loads the chromosome order from a tsv file with two columns: name, length
        (e.g. a genome file or the first two columns of a FASTA index).

        Args:
            path: The path of the tsv file.

        Returns:
            A ChromosomeOrder object.
        """
        return ChromosomeOrder(
            [(row[0], int(row[1])) for row in read_delimited(path) if row]
        )

    @staticmethod
    def from_bam(bam: Union[Path, pysam.AlignmentFile]) -> "ChromosomeOrder":
        """Loads the chromosome order from the header of a BAM file.

        Args:
            bam: Either a path to a BAM file or an open pysam.AlignmentFile.

        Returns:
            A ChromosomeOrder object.
        """
        def bam_to_order(_bam):
            return ChromosomeOrder(list(zip(_bam.references, _bam.lengths)))

        if isinstance(bam, Path):
            with pysam.AlignmentFile(str(bam), "rb") as bam_file:
                return bam_to_order(bam_file)
        else:
            return bam_to_order(bam)

    @staticmethod
    def from_vcf(vcf: Union[Path, pysam.VariantFile]) -> "ChromosomeOrder":
        """Loads the chromosome order from the ##contig lines of a VCF header.

        Args:
            vcf: Either a path to a VCF/BCF file or an open pysam.VariantFile.

        Returns:
            A ChromosomeOrder object.
        """
        def vcf_to_order(_vcf):
            return ChromosomeOrder([
                (name, contig.length) if contig.length is not None else name
                for name, contig in _vcf.header.contigs.items()
            ])

        if isinstance(vcf, Path):
            with pysam.VariantFile(str(vcf)) as vcf_file:
                return vcf_to_order(vcf_file)
        else:
            return vcf_to_order(vcf)
