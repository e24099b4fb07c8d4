"""
Run orchestration for LongQC.
Measures, scores and hard-filters every read (in parallel when threads > 1), then runs
one global selection pass over the survivors. Per-read failures travel back from the
workers as values; configuration failures are raised before any read is touched.
"""

import logging
import multiprocessing
from dataclasses import dataclass, field
from functools import partial
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from longqc.core.errors import MalformedReadError
from longqc.core.filtering import apply_hard_filter, select_reads
from longqc.core.metrics import MetricExtractor
from longqc.core.models import Config, Read, ReadSummary, RejectReason
from longqc.core.reference import ReferenceAccuracyEstimator
from longqc.core.scoring import Scorer, build_scorer
from longqc.parsers.fastq_parser import iter_reads, open_output, write_reads
from longqc.utils.logging import worker_configurer
from longqc.utils.stats import calculate_read_stats

logger = logging.getLogger(__name__)

BATCH_SIZE = 2000


@dataclass
class FilterResult:
    """
    Outcome of one run: a summary per input read (in input order) and, for
    in-memory runs, the accepted reads themselves.
    """
    summaries: List[ReadSummary]
    accepted: List[Read] = field(default_factory=list)

    @property
    def kept(self) -> List[ReadSummary]:
        return [s for s in self.summaries if s.decision.kept]

    @property
    def accepted_ids(self) -> List[str]:
        return [s.read_id for s in self.kept]

    @property
    def accepted_bases(self) -> int:
        return sum(s.length for s in self.kept)


def measure_read(task: Tuple[int, Read], window_size: int) -> ReadSummary:
    """
    Compute raw metrics for one read. A malformed read yields a summary carrying
    the error instead of metrics.

    :param task: Tuple of (input index, read).
    :param window_size: Sliding window size for window quality.
    :return: ReadSummary with either metrics or error set.
    """
    index, read = task
    summary = ReadSummary(index=index, read_id=read.read_id, length=read.length)
    try:
        summary.metrics = MetricExtractor(window_size).extract(read)
    except MalformedReadError as e:
        summary.error = e.reason
    return summary


def _batched(iterable: Iterable, size: int) -> Iterator[list]:
    it = iter(iterable)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


def measure_reads(reads: Iterable[Read], config: Config, log_queue=None) -> Iterator[ReadSummary]:
    """
    Measure reads in input order. With threads > 1 the work is spread over a process
    pool in bounded batches, so a streamed input is never fully buffered.

    :param reads: Reads in input order.
    :param config: The run configuration.
    :param log_queue: Optional logging queue for worker processes.
    :return: Iterator of ReadSummary objects in input order.
    """
    measure = partial(measure_read, window_size=config.window_size)
    tasks = enumerate(reads)

    if config.threads <= 1:
        for task in tasks:
            yield measure(task)
        return

    initializer = worker_configurer if log_queue is not None else None
    initargs = (log_queue,) if log_queue is not None else ()
    with multiprocessing.Pool(config.threads, initializer=initializer, initargs=initargs) as pool:
        for batch in _batched(tasks, BATCH_SIZE):
            chunksize = max(1, len(batch) // (config.threads * 4))
            yield from pool.imap(measure, batch, chunksize=chunksize)


def score_summary(summary: ReadSummary, scorer: Scorer, config: Config) -> ReadSummary:
    """
    Score one measured read and apply the hard cut-offs to it.

    :raises MalformedReadError: If the read failed measurement and abort_on_error is set.
    """
    if summary.error is not None:
        if config.abort_on_error:
            raise MalformedReadError(summary.read_id, summary.error)
        logger.warning(f"Skipping malformed read '{summary.read_id}' (#{summary.index + 1}): {summary.error}")
        summary.decision.reject(RejectReason.MALFORMED_READ)
        return summary

    summary.metrics, summary.score = scorer.score(summary.read_id, summary.metrics)
    if not apply_hard_filter(summary, config):
        logger.debug(f"{summary.read_id} failed hard cut-offs: {', '.join(summary.decision.failed_thresholds)}")
    return summary


def decide(summaries: List[ReadSummary], config: Config) -> Set[int]:
    """
    Run the global selection over every read that survived the hard filter.

    :param summaries: Complete list of scored summaries for the run.
    :param config: The run configuration.
    :return: Input indices of the accepted reads.
    """
    candidates = [s for s in summaries if s.decision.kept]
    hard_failed = sum(1 for s in summaries if s.decision.reason is RejectReason.HARD_FILTER_FAIL)
    malformed = sum(1 for s in summaries if s.decision.reason is RejectReason.MALFORMED_READ)
    logger.info(
        f"{len(summaries)} reads measured: {hard_failed} failed hard cut-offs, "
        f"{malformed} malformed, {len(candidates)} go to selection"
    )
    accepted = select_reads(candidates, config)
    return {s.index for s in accepted}


def prepare_scorer(config: Config, estimator: Optional[ReferenceAccuracyEstimator] = None,
                   reads: Optional[Sequence[Read]] = None,
                   reads_path: Optional[Union[str, Path]] = None) -> Scorer:
    """
    Validate the configuration and build the run's Scorer, estimating reference
    accuracy first when references are configured.

    :raises InvalidConfigError: If the configuration is invalid.
    :raises ReferenceUnavailableError: If a configured reference cannot be used.
    """
    config.validate()
    if not config.reference_requested:
        return build_scorer(config)

    if estimator is None:
        estimator = ReferenceAccuracyEstimator.from_config(config)
    logger.info("Estimating read accuracy against the reference")
    if reads_path is not None:
        accuracies = estimator.estimate_file(reads_path)
    else:
        accuracies = estimator.estimate(reads or [])
    return build_scorer(config, accuracies)


def log_read_stats(label: str, lengths: List[int]):
    stats = calculate_read_stats(lengths)
    logger.info(
        f"{label}: {stats['Num Reads']} reads, {stats['Total Bases']} bases, "
        f"N50 {stats['N50']}, longest {stats['Longest']}"
    )


def _finish(summaries: List[ReadSummary], config: Config) -> Set[int]:
    log_read_stats("Input", [s.length for s in summaries])
    accepted_indices = decide(summaries, config)
    log_read_stats("Output", [s.length for s in summaries if s.index in accepted_indices])
    return accepted_indices


def filter_reads(reads: Sequence[Read], config: Config,
                 estimator: Optional[ReferenceAccuracyEstimator] = None,
                 log_queue=None) -> FilterResult:
    """
    Filter an in-memory collection of reads.

    :param reads: Reads in input order.
    :param config: The run configuration.
    :param estimator: Optional accuracy estimator; built from config when references are set.
    :param log_queue: Optional logging queue for worker processes.
    :return: FilterResult with per-read summaries and the accepted reads in input order.
    """
    reads = list(reads)
    scorer = prepare_scorer(config, estimator, reads=reads)
    summaries = [score_summary(s, scorer, config) for s in measure_reads(reads, config, log_queue)]
    accepted_indices = _finish(summaries, config)
    accepted = [read for i, read in enumerate(reads) if i in accepted_indices]
    return FilterResult(summaries=summaries, accepted=accepted)


def filter_read_file(input_path: Union[str, Path], config: Config,
                     output_path: Union[str, Path, None] = None,
                     estimator: Optional[ReferenceAccuracyEstimator] = None,
                     log_queue=None) -> FilterResult:
    """
    Two-pass filtering of a FASTQ file. Pass 1 keeps only per-read summaries;
    pass 2 re-reads the file and writes the accepted reads in input order.
    The output is not opened until every read has been decided.

    :param input_path: Path to the input FASTQ (optionally gzipped).
    :param config: The run configuration.
    :param output_path: Output FASTQ path; stdout when None or '-'.
    :param estimator: Optional accuracy estimator; built from config when references are set.
    :param log_queue: Optional logging queue for worker processes.
    :return: FilterResult with per-read summaries (accepted reads are written, not returned).
    """
    scorer = prepare_scorer(config, estimator, reads_path=input_path)

    logger.info(f"Pass 1: scoring reads from {input_path}")
    summaries = [
        score_summary(s, scorer, config)
        for s in measure_reads(iter_reads(input_path), config, log_queue)
    ]
    accepted_indices = _finish(summaries, config)

    logger.info("Pass 2: writing accepted reads")
    with open_output(output_path) as handle:
        written = write_reads(
            (read for i, read in enumerate(iter_reads(input_path)) if i in accepted_indices),
            handle
        )
    if written != len(accepted_indices):
        logger.warning(f"Input changed between passes: wrote {written} of {len(accepted_indices)} reads")
    return FilterResult(summaries=summaries)

