"""
FASTQ/FASTA input and output for LongQC.
Streams long reads as Read records (plain or gzipped) and writes accepted reads back out.
"""

import gzip
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterable, Iterator, Union

from Bio import SeqIO
from Bio.SeqIO.QualityIO import FastqGeneralIterator

from longqc.core.errors import ReadSourceError
from longqc.core.models import Read

FASTA_SUFFIXES = {'.fa', '.fasta', '.fna', '.fas'}


def open_text(path: Union[str, Path], mode: str = 'r') -> IO[str]:
    """
    Open a text file, transparently handling gzip compression by suffix.
    """
    path = Path(path)
    if path.suffix == '.gz':
        return gzip.open(path, mode + 't', encoding='utf-8')
    return open(path, mode, encoding='utf-8')


def is_fasta(path: Union[str, Path]) -> bool:
    path = Path(path)
    suffix = Path(path.stem).suffix if path.suffix == '.gz' else path.suffix
    return suffix.lower() in FASTA_SUFFIXES


def iter_reads(path: Union[str, Path]) -> Iterator[Read]:
    """
    Stream reads from a FASTQ file in input order.

    :param path: Path to a FASTQ file, optionally gzipped.
    :raises ReadSourceError: If the file is missing or its record structure is broken.
    :return: Iterator of Read records.
    """
    try:
        with open_text(path) as handle:
            for title, sequence, quality in FastqGeneralIterator(handle):
                read_id = title.split(None, 1)[0] if title else ''
                yield Read(read_id=read_id, sequence=sequence, quality=quality, header=title)
    except OSError as e:
        raise ReadSourceError(f"Failed to read {path}: {e}") from e
    except ValueError as e:
        raise ReadSourceError(f"Broken FASTQ record in {path}: {e}") from e


def iter_sequences(path: Union[str, Path]) -> Iterator[str]:
    """
    Stream bare sequences (upper-cased) from a FASTA or FASTQ file.

    :param path: Path to the file, optionally gzipped. Format is chosen by suffix.
    :return: Iterator of sequence strings.
    """
    try:
        with open_text(path) as handle:
            if is_fasta(path):
                for record in SeqIO.parse(handle, 'fasta'):
                    yield str(record.seq).upper()
            else:
                for _, sequence, _ in FastqGeneralIterator(handle):
                    yield sequence.upper()
    except OSError as e:
        raise ReadSourceError(f"Failed to read {path}: {e}") from e
    except ValueError as e:
        raise ReadSourceError(f"Broken record in {path}: {e}") from e


def format_fastq(read: Read) -> str:
    return f"@{read.header or read.read_id}\n{read.sequence}\n+\n{read.quality}\n"


def write_reads(reads: Iterable[Read], handle: IO[str]) -> int:
    """
    Write reads to an open handle in FASTQ format.

    :return: Number of reads written.
    """
    count = 0
    for read in reads:
        handle.write(format_fastq(read))
        count += 1
    return count


@contextmanager
def open_output(path: Union[str, Path, None]):
    """
    Context manager yielding a writable text handle; stdout when path is None or '-'.
    """
    if path is None or str(path) == '-':
        yield sys.stdout
        sys.stdout.flush()
        return
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open_text(path, 'w') as handle:
        yield handle
