"""
Reference-based accuracy estimation for LongQC.
Wraps the aligner collaborators that turn a reference assembly or paired short reads
into one identity fraction per long read. Reads an aligner cannot place are simply
absent from its result.
"""

import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from longqc.core.errors import AlignerError, ReferenceUnavailableError
from longqc.core.models import Config, Read, DEFAULT_KMER_SIZE
from longqc.parsers.fastq_parser import iter_reads, iter_sequences, open_output, write_reads
from longqc.parsers.paf_parser import identities_from_paf, parse_paf

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans('ACGT', 'TGCA')
_ACGT_RUNS = re.compile("[ACGT]+")


def check_reference_file(path: Union[str, Path]) -> Path:
    path = Path(path)
    if not path.is_file():
        raise ReferenceUnavailableError(f"Reference file not found: {path}")
    if path.stat().st_size == 0:
        raise ReferenceUnavailableError(f"Reference file is empty: {path}")
    return path


class Aligner:
    """
    Black-box aligner: maps each read in a FASTQ file to an identity fraction.
    """
    name = "aligner"

    def identities(self, reads_path: Path) -> Dict[str, float]:
        raise NotImplementedError


class Minimap2Aligner(Aligner):
    """
    Aligns long reads to a reference assembly with minimap2 and reports, per read,
    matching bases over alignment block length across its primary alignments.
    """
    name = "minimap2"

    def __init__(self, assembly: Union[str, Path], preset: str = "map-ont", threads: int = 1,
                 min_mapq: int = 0, executable: str = "minimap2"):
        self.assembly = check_reference_file(assembly)
        self.preset = preset
        self.threads = threads
        self.min_mapq = min_mapq
        self.executable = executable
        if shutil.which(executable) is None:
            raise ReferenceUnavailableError(f"{executable} not found in PATH; it is required for --assembly")

    def command(self, reads_path: Path) -> List[str]:
        return [
            self.executable, "-c", "--secondary=no",
            "-x", self.preset,
            "-t", str(self.threads),
            str(self.assembly), str(reads_path)
        ]

    def identities(self, reads_path: Path) -> Dict[str, float]:
        with tempfile.TemporaryDirectory(prefix="longqc_") as tmp:
            paf_path = Path(tmp) / "alignments.paf"
            cmd = self.command(reads_path)
            logger.info(f"Running: {' '.join(cmd)}")
            with open(paf_path, "w", encoding="utf-8") as paf_handle:
                result = subprocess.run(cmd, stdout=paf_handle, stderr=subprocess.PIPE, text=True)
            if result.returncode != 0:
                raise AlignerError(
                    f"{self.executable} exited with code {result.returncode}",
                    command=cmd, returncode=result.returncode, stderr=result.stderr
                )
            logger.debug(result.stderr)
            return identities_from_paf(parse_paf(paf_path, self.min_mapq))


def canonical_kmers(sequence: str, k: int) -> Iterable[str]:
    """
    Yield canonical k-mers (the lesser of a k-mer and its reverse complement).
    K-mers spanning a non-ACGT base are skipped.
    """
    for match in _ACGT_RUNS.finditer(sequence):
        run = match.group()
        reverse = run.translate(_COMPLEMENT)[::-1]
        n = len(run)
        for i in range(n - k + 1):
            forward = run[i:i + k]
            rc = reverse[n - i - k:n - i]
            yield forward if forward <= rc else rc


class KmerConcordanceAligner(Aligner):
    """
    Estimates read accuracy from paired short reads. The fraction of a long read's
    canonical k-mers that also occur in the short-read set is converted to a per-base
    identity so it is comparable with alignment identity.
    """
    name = "kmer"

    def __init__(self, short_read_paths: Iterable[Union[str, Path]], k: int = DEFAULT_KMER_SIZE):
        self.paths = [check_reference_file(p) for p in short_read_paths]
        self.k = k
        self._kmers: Optional[Set[str]] = None

    @property
    def kmers(self) -> Set[str]:
        if self._kmers is None:
            kmers = set()
            for path in self.paths:
                logger.info(f"Loading {self.k}-mers from {path}")
                for sequence in iter_sequences(path):
                    kmers.update(canonical_kmers(sequence, self.k))
            if not kmers:
                raise ReferenceUnavailableError(
                    f"No {self.k}-mers found in {', '.join(str(p) for p in self.paths)}"
                )
            logger.info(f"Loaded {len(kmers)} distinct {self.k}-mers")
            self._kmers = kmers
        return self._kmers

    def read_identity(self, sequence: str) -> Optional[float]:
        read_kmers = list(canonical_kmers(sequence.upper(), self.k))
        if not read_kmers:
            return None
        reference = self.kmers
        found = sum(1 for kmer in read_kmers if kmer in reference)
        # A k-mer survives intact with probability accuracy^k
        return (found / len(read_kmers)) ** (1.0 / self.k)

    def identities(self, reads_path: Path) -> Dict[str, float]:
        result = {}
        for read in iter_reads(reads_path):
            identity = self.read_identity(read.sequence)
            if identity is not None:
                result[read.read_id] = identity
        return result


class ReferenceAccuracyEstimator:
    """
    Combines the configured aligners into one accuracy per read. The assembly
    aligner takes precedence; short-read concordance fills in reads it left unaligned.
    """

    def __init__(self, aligners: List[Aligner]):
        if not aligners:
            raise ValueError("At least one aligner is required")
        self.aligners = aligners

    @classmethod
    def from_config(cls, config: Config) -> "ReferenceAccuracyEstimator":
        """
        Build the estimator for a run, validating every configured reference up front.

        :raises ReferenceUnavailableError: If a reference or the aligner executable is unusable.
        """
        aligners: List[Aligner] = []
        if config.assembly is not None:
            aligners.append(Minimap2Aligner(
                config.assembly,
                preset=config.minimap2_preset,
                threads=config.threads,
                min_mapq=config.min_mapq
            ))
        if config.illumina_reads:
            aligners.append(KmerConcordanceAligner(config.illumina_reads, k=config.kmer_size))
        return cls(aligners)

    def estimate_file(self, reads_path: Union[str, Path]) -> Dict[str, float]:
        """
        Estimate accuracy for every read in a FASTQ file.

        :param reads_path: Path to the long reads.
        :return: Dictionary mapping read id to identity in [0, 1]; unaligned reads are absent.
        """
        accuracies: Dict[str, float] = {}
        for aligner in self.aligners:
            found = aligner.identities(Path(reads_path))
            added = 0
            for read_id, identity in found.items():
                if read_id not in accuracies:
                    accuracies[read_id] = identity
                    added += 1
            logger.info(f"{aligner.name}: accuracy for {len(found)} reads ({added} new)")
        return accuracies

    def estimate(self, reads: Iterable[Read]) -> Dict[str, float]:
        """
        Estimate accuracy for in-memory reads by staging them in a temporary FASTQ file.
        Reads whose quality string does not match their sequence are left out; they are
        rejected as malformed when scored.
        """
        reads = (r for r in reads if r.length > 0 and len(r.quality) == r.length)
        with tempfile.TemporaryDirectory(prefix="longqc_") as tmp:
            reads_path = Path(tmp) / "reads.fastq"
            with open_output(reads_path) as handle:
                write_reads(reads, handle)
            return self.estimate_file(reads_path)
