import os
from pathlib import Path

import pytest

from longqc.core.errors import AlignerError, ReferenceUnavailableError
from longqc.core.models import Config, Read
from longqc.core.reference import (
    Aligner,
    KmerConcordanceAligner,
    Minimap2Aligner,
    ReferenceAccuracyEstimator,
    canonical_kmers
)
from longqc.parsers.fastq_parser import iter_reads

SEQUENCE = "ACGTTGCAAGGCTTACCGATAGCTAGGCATCGATCGGATCCTAGCAATGCCGTA"


def revcomp(seq):
    return seq.translate(str.maketrans('ACGT', 'TGCA'))[::-1]


def write_fastq(path, records):
    with open(path, 'w') as f:
        for read_id, seq in records:
            f.write(f"@{read_id}\n{seq}\n+\n{'I' * len(seq)}\n")
    return path


class StaticAligner(Aligner):

    def __init__(self, name, identities):
        self.name = name
        self._identities = identities

    def identities(self, reads_path):
        return dict(self._identities)


def test_canonical_kmers():
    assert list(canonical_kmers("ACGT", 2)) == ['AC', 'CG', 'AC']
    # The N breaks the run; no k-mer spans it
    assert list(canonical_kmers("AANTT", 2)) == ['AA', 'AA']
    assert list(canonical_kmers("ACG", 5)) == []


def test_canonical_kmers_strand_independent():
    forward = sorted(canonical_kmers(SEQUENCE, 16))
    reverse = sorted(canonical_kmers(revcomp(SEQUENCE), 16))
    assert forward == reverse


def test_kmer_aligner_identities(tmp_path):
    short_reads = write_fastq(tmp_path / "illumina_1.fastq", [("s1", SEQUENCE)])
    long_reads = write_fastq(tmp_path / "long.fastq", [
        ("exact", SEQUENCE),
        ("reverse", revcomp(SEQUENCE)),
        ("unrelated", "A" * 40),
        ("short", SEQUENCE[:10]),
    ])

    identities = KmerConcordanceAligner([short_reads], k=16).identities(long_reads)

    assert identities["exact"] == pytest.approx(1.0)
    assert identities["reverse"] == pytest.approx(1.0)
    assert identities["unrelated"] == 0.0
    # Shorter than k: no k-mers, so no estimate
    assert "short" not in identities


def test_kmer_aligner_partial_match(tmp_path):
    short_reads = write_fastq(tmp_path / "illumina_1.fastq", [("s1", SEQUENCE)])
    aligner = KmerConcordanceAligner([short_reads], k=16)
    mutated = SEQUENCE[:30] + ('A' if SEQUENCE[30] != 'A' else 'C') + SEQUENCE[31:]
    identity = aligner.read_identity(mutated)
    assert 0.0 < identity < 1.0


def test_missing_reference_file(tmp_path):
    with pytest.raises(ReferenceUnavailableError):
        KmerConcordanceAligner([tmp_path / "missing.fastq"])
    empty = tmp_path / "empty.fasta"
    empty.touch()
    with pytest.raises(ReferenceUnavailableError):
        Minimap2Aligner(empty)


def test_minimap2_not_installed(tmp_path):
    assembly = tmp_path / "assembly.fasta"
    assembly.write_text(f">contig\n{SEQUENCE}\n")
    with pytest.raises(ReferenceUnavailableError, match="not found in PATH"):
        Minimap2Aligner(assembly, executable="longqc-no-such-aligner")


def fake_executable(path: Path, body: str) -> str:
    path.write_text(f"#!/bin/sh\n{body}\n")
    os.chmod(path, 0o755)
    return str(path)


def test_minimap2_aligner_parses_paf(tmp_path):
    assembly = tmp_path / "assembly.fasta"
    assembly.write_text(f">contig\n{SEQUENCE}\n")
    paf = tmp_path / "canned.paf"
    paf.write_text(
        "r1\t1000\t0\t500\t+\tcontig\t5000\t0\t500\t450\t500\t60\ttp:A:P\n"
        "r1\t1000\t500\t1000\t+\tcontig\t5000\t500\t1000\t490\t500\t60\ttp:A:P\n"
        "r1\t1000\t0\t1000\t-\tcontig\t5000\t0\t1000\t100\t1000\t0\ttp:A:S\n"
        "r2\t800\t0\t800\t+\tcontig\t5000\t0\t800\t700\t800\t2\ttp:A:P\n"
    )
    executable = fake_executable(tmp_path / "minimap2", f"cat {paf}")
    reads = write_fastq(tmp_path / "long.fastq", [("r1", SEQUENCE)])

    aligner = Minimap2Aligner(assembly, executable=executable, min_mapq=5)
    identities = aligner.identities(reads)

    assert identities == {"r1": pytest.approx(0.94)}


def test_minimap2_failure_raises(tmp_path):
    assembly = tmp_path / "assembly.fasta"
    assembly.write_text(f">contig\n{SEQUENCE}\n")
    executable = fake_executable(tmp_path / "minimap2", "echo 'index failed' >&2; exit 3")
    reads = write_fastq(tmp_path / "long.fastq", [("r1", SEQUENCE)])

    with pytest.raises(AlignerError) as excinfo:
        Minimap2Aligner(assembly, executable=executable).identities(reads)
    assert excinfo.value.returncode == 3
    assert "index failed" in excinfo.value.stderr


def test_assembly_takes_precedence():
    estimator = ReferenceAccuracyEstimator([
        StaticAligner("assembly", {"R1": 0.9}),
        StaticAligner("short", {"R1": 0.5, "R2": 0.7}),
    ])
    reads = [Read(read_id=r, sequence="ACGT", quality="IIII") for r in ("R1", "R2", "R3")]
    assert estimator.estimate(reads) == {"R1": 0.9, "R2": 0.7}


def test_estimate_stages_reads(tmp_path):
    seen = []

    class RecordingAligner(Aligner):
        def identities(self, reads_path):
            seen.extend(r.read_id for r in iter_reads(reads_path))
            return {}

    reads = [Read(read_id=r, sequence="ACGT", quality="IIII") for r in ("R1", "R2")]
    assert ReferenceAccuracyEstimator([RecordingAligner()]).estimate(reads) == {}
    assert seen == ["R1", "R2"]


def test_from_config_validates_references(tmp_path):
    with pytest.raises(ReferenceUnavailableError):
        ReferenceAccuracyEstimator.from_config(Config(assembly=str(tmp_path / "missing.fasta")))

    short_reads = write_fastq(tmp_path / "illumina_1.fastq", [("s1", SEQUENCE)])
    estimator = ReferenceAccuracyEstimator.from_config(Config(illumina_reads=(str(short_reads),)))
    assert [a.name for a in estimator.aligners] == ["kmer"]


def test_estimator_requires_an_aligner():
    with pytest.raises(ValueError):
        ReferenceAccuracyEstimator([])


def test_estimate_skips_malformed_reads(tmp_path):
    seen = []

    class RecordingAligner(Aligner):
        def identities(self, reads_path):
            seen.extend(r.read_id for r in iter_reads(reads_path))
            return {}

    reads = [
        Read(read_id="R1", sequence="ACGT", quality="IIII"),
        Read(read_id="BAD", sequence="ACGT", quality="II"),
        Read(read_id="EMPTY", sequence="", quality=""),
    ]
    ReferenceAccuracyEstimator([RecordingAligner()]).estimate(reads)
    assert seen == ["R1"]


def test_kmer_fraction_converted_to_identity(tmp_path):
    short_reads = write_fastq(tmp_path / "illumina_1.fastq", [("s1", "AAAA")])
    aligner = KmerConcordanceAligner([short_reads], k=2)
    # AA, AA found; AC missing -> f = 2/3
    assert aligner.read_identity("AAAC") == pytest.approx((2 / 3) ** 0.5)
