"""
Composite scoring for LongQC.
Normalizes raw per-read signals onto a common [0, 100] scale and combines them with
the configured weights. The Scorer variants decide once per run whether
alignment-derived accuracy takes part in the score.
"""

import logging
from dataclasses import replace
from typing import Dict, Optional, Tuple

from longqc.core.errors import InvalidWeightsError
from longqc.core.models import AccuracyMode, Config, RawMetrics

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0


def clamp_score(value: float) -> float:
    return min(MAX_SCORE, max(0.0, value))


def normalize_length(length: int, half_score_length: float) -> float:
    """
    Saturating length score: 0 for an empty read, 50 at `half_score_length`,
    approaching 100 for very long reads.
    """
    if length <= 0:
        return 0.0
    return MAX_SCORE * length / (length + half_score_length)


def normalize_quality(phred: float) -> float:
    """
    Map a Phred value onto [0, 100] as the implied per-base accuracy percentage.
    """
    return clamp_score(MAX_SCORE * (1.0 - 10.0 ** (-phred / 10.0)))


def normalize_accuracy(accuracy: float) -> float:
    return clamp_score(MAX_SCORE * accuracy)


class ScoreComposer:
    """
    Weighted mean of normalized length, mean-quality and window-quality terms.
    """

    def __init__(self, config: Config):
        weights = (config.length_weight, config.mean_q_weight, config.window_q_weight)
        if any(w < 0 for w in weights):
            raise InvalidWeightsError(f"Score weights must be >= 0 (got {weights})")
        if sum(weights) <= 0:
            raise InvalidWeightsError("At least one score weight must be greater than zero")
        self.length_weight, self.mean_q_weight, self.window_q_weight = weights
        self.total_weight = sum(weights)
        self.half_score_length = config.half_score_length
        self.accuracy_mode = config.accuracy_mode

    def normalized_terms(self, metrics: RawMetrics) -> Tuple[float, float, float]:
        """
        Normalize the three score terms, folding accuracy into the quality terms
        when it is present.

        :param metrics: Raw metrics, optionally carrying an accuracy.
        :return: Tuple of (length_n, mean_q_n, window_q_n), each in [0, 100].
        """
        length_n = normalize_length(metrics.length, self.half_score_length)
        mean_q_n = normalize_quality(metrics.mean_quality)
        window_q_n = normalize_quality(metrics.window_quality)

        if metrics.accuracy is not None:
            accuracy_n = normalize_accuracy(metrics.accuracy)
            if self.accuracy_mode is AccuracyMode.SUBSTITUTE:
                mean_q_n = window_q_n = accuracy_n
            else:
                mean_q_n = (mean_q_n + accuracy_n) / 2.0
                window_q_n = (window_q_n + accuracy_n) / 2.0

        return length_n, mean_q_n, window_q_n

    def compose(self, metrics: RawMetrics) -> float:
        length_n, mean_q_n, window_q_n = self.normalized_terms(metrics)
        weighted = (
            self.length_weight * length_n
            + self.mean_q_weight * mean_q_n
            + self.window_q_weight * window_q_n
        )
        return clamp_score(weighted / self.total_weight)


class Scorer:
    """
    Base scoring capability: attaches any available accuracy to the metrics and
    returns the composite score.
    """
    name = "base"

    def __init__(self, config: Config):
        self.composer = ScoreComposer(config)

    def accuracy_for(self, read_id: str) -> Optional[float]:
        return None

    def score(self, read_id: str, metrics: RawMetrics) -> Tuple[RawMetrics, float]:
        accuracy = self.accuracy_for(read_id)
        if accuracy is not None:
            metrics = replace(metrics, accuracy=accuracy)
        return metrics, self.composer.compose(metrics)


class QualityStringScorer(Scorer):
    """Scores reads from their length and quality string only."""
    name = "quality"


class AlignmentScorer(Scorer):
    """
    Scores reads using alignment-derived accuracy where available.
    Reads missing from `accuracies` were unaligned and fall back to the
    quality-string terms.
    """
    name = "alignment"

    def __init__(self, config: Config, accuracies: Dict[str, float]):
        super().__init__(config)
        self.accuracies = accuracies

    def accuracy_for(self, read_id: str) -> Optional[float]:
        return self.accuracies.get(read_id)


def build_scorer(config: Config, accuracies: Optional[Dict[str, float]] = None) -> Scorer:
    """
    Select the Scorer variant for a run.

    :param config: The run configuration.
    :param accuracies: Per-read identity fractions; required when references are configured.
    :return: An AlignmentScorer if references are configured, else a QualityStringScorer.
    """
    if config.reference_requested:
        if accuracies is None:
            raise ValueError("Reference scoring requested but no accuracies were supplied")
        logger.info(f"Scoring with alignment accuracy ({config.accuracy_mode.value} mode)")
        return AlignmentScorer(config, accuracies)
    logger.info("Scoring with quality-string metrics")
    return QualityStringScorer(config)
