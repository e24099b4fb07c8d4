"""
Hard cut-offs and budgeted selection for LongQC.
The hard filter runs per read; the selector needs every surviving score at once and
is the single synchronization point of a run.
"""

import logging
import math
from typing import List

from longqc.core.models import Config, RawMetrics, ReadSummary, RejectReason

logger = logging.getLogger(__name__)


def failed_hard_thresholds(metrics: RawMetrics, config: Config) -> List[str]:
    """
    List the hard cut-offs a read fails. Unset thresholds impose no constraint.

    :param metrics: The read's raw metrics.
    :param config: The run configuration.
    :return: Names of the failed thresholds; empty if the read passes.
    """
    failed = []
    if config.min_length is not None and metrics.length < config.min_length:
        failed.append("min_length")
    if config.min_mean_q is not None and metrics.mean_quality < config.min_mean_q:
        failed.append("min_mean_q")
    if config.min_window_q is not None and metrics.window_quality < config.min_window_q:
        failed.append("min_window_q")
    return failed


def apply_hard_filter(summary: ReadSummary, config: Config) -> bool:
    """
    Mark a scored read as HardFilterFail if it falls below any hard cut-off.

    :return: True if the read survives.
    """
    failed = failed_hard_thresholds(summary.metrics, config)
    if failed:
        summary.decision.failed_thresholds = failed
        summary.decision.reject(RejectReason.HARD_FILTER_FAIL)
        return False
    return True


def rank_key(summary: ReadSummary):
    """
    Ordering used by the percentile and base budgets: score descending, then
    length descending, then original input order.
    """
    return (-summary.score, -summary.length, summary.index)


def select_by_min_score(candidates: List[ReadSummary], min_score: float) -> List[ReadSummary]:
    survivors = []
    for c in candidates:
        if c.score < min_score:
            c.decision.reject(RejectReason.BELOW_MIN_SCORE)
        else:
            survivors.append(c)
    return survivors


def select_by_keep_percent(candidates: List[ReadSummary], keep_percent: float) -> List[ReadSummary]:
    """
    Keep the best `ceil(N * keep_percent / 100)` reads by rank.

    :param candidates: Reads still in contention.
    :param keep_percent: Percentage of reads to keep, in (0, 100].
    :return: The kept reads, in input order.
    """
    keep_count = math.ceil(len(candidates) * keep_percent / 100.0)
    ranked = sorted(candidates, key=rank_key)
    kept_indices = {c.index for c in ranked[:keep_count]}
    for c in ranked[keep_count:]:
        c.decision.reject(RejectReason.BUDGET_EXCEEDED)
    if ranked[keep_count:]:
        cut_score = ranked[keep_count - 1].score if keep_count else None
        logger.debug(f"keep_percent {keep_percent}: keeping {keep_count} reads (score cut at {cut_score})")
    return [c for c in candidates if c.index in kept_indices]


def select_by_target_bases(candidates: List[ReadSummary], target_bases: int) -> List[ReadSummary]:
    """
    Greedily accept the best-ranked reads until the next one would exceed the base budget.
    Selection stops at the first read that does not fit; reads are never split.

    :param candidates: Reads still in contention.
    :param target_bases: Maximum total bases in the accepted set.
    :return: The kept reads, in input order.
    """
    ranked = sorted(candidates, key=rank_key)
    total_bases = 0
    kept_count = 0
    for c in ranked:
        if total_bases + c.length > target_bases:
            break
        total_bases += c.length
        kept_count += 1

    kept_indices = {c.index for c in ranked[:kept_count]}
    for c in ranked[kept_count:]:
        c.decision.reject(RejectReason.BUDGET_EXCEEDED)

    if candidates and kept_count == 0:
        logger.warning(f"target_bases {target_bases} is smaller than the best read; no reads kept")
    else:
        logger.debug(f"target_bases {target_bases}: keeping {kept_count} reads totalling {total_bases} bases")
    return [c for c in candidates if c.index in kept_indices]


def select_reads(candidates: List[ReadSummary], config: Config) -> List[ReadSummary]:
    """
    Apply the output budgets to the hard-filter survivors.
    min_score, keep_percent and target_bases are applied in that order, each on the
    survivors of the previous one. With no budget set every candidate is kept.

    :param candidates: Every read that passed the hard filter, with a score.
    :param config: The run configuration.
    :return: The accepted reads, in input order.
    """
    survivors = sorted(candidates, key=lambda c: c.index)
    if config.min_score is not None:
        survivors = select_by_min_score(survivors, config.min_score)
        logger.info(f"min_score {config.min_score}: {len(survivors)} reads remain")
    if config.keep_percent is not None:
        survivors = select_by_keep_percent(survivors, config.keep_percent)
        logger.info(f"keep_percent {config.keep_percent}: {len(survivors)} reads remain")
    if config.target_bases is not None:
        survivors = select_by_target_bases(survivors, config.target_bases)
        logger.info(f"target_bases {config.target_bases}: {len(survivors)} reads remain")
    return survivors

