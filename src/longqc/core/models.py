"""
Data models for LongQC.
Defines the Read record, per-read metrics and decisions, and the immutable run Config.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from longqc.core.errors import InvalidConfigError, InvalidWeightsError

DEFAULT_WINDOW_SIZE = 250
DEFAULT_HALF_SCORE_LENGTH = 5000
DEFAULT_KMER_SIZE = 16


class RejectReason(Enum):
    """
    Enum representing why a read was left out of the accepted set.
    """
    HARD_FILTER_FAIL = "HardFilterFail"
    BELOW_MIN_SCORE = "BelowMinScore"
    BUDGET_EXCEEDED = "BudgetExceeded"
    MALFORMED_READ = "MalformedRead"


class AccuracyMode(Enum):
    """
    How an alignment-derived accuracy combines with the quality-string terms.
    """
    SUBSTITUTE = "substitute"
    BLEND = "blend"


@dataclass(frozen=True)
class Read:
    """
    A single long read. The quality string holds one Phred+33 symbol per base.
    """
    read_id: str
    sequence: str
    quality: str
    header: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.sequence)


@dataclass(frozen=True)
class RawMetrics:
    """
    Raw per-read signals. Qualities are Phred values averaged in error-probability space.
    """
    length: int
    mean_quality: float
    window_quality: float
    accuracy: Optional[float] = None


@dataclass
class Decision:
    """
    Outcome for one read. A rejected read keeps the first reason that removed it;
    hard-filter failures also list the thresholds that failed.
    """
    kept: bool = True
    reason: Optional[RejectReason] = None
    failed_thresholds: List[str] = field(default_factory=list)

    def reject(self, reason: RejectReason):
        self.kept = False
        self.reason = reason


@dataclass
class ReadSummary:
    """
    Lightweight per-read record carried through scoring and selection.
    Holds no sequence data so a whole run's summaries fit in memory.
    """
    index: int
    read_id: str
    length: int
    metrics: Optional[RawMetrics] = None
    score: Optional[float] = None
    decision: Decision = field(default_factory=Decision)
    error: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """
    Immutable thresholds, weights and reference settings for one run.
    None disables the corresponding threshold or budget.
    """
    # Output thresholds
    min_score: Optional[float] = None
    target_bases: Optional[int] = None
    keep_percent: Optional[float] = None

    # Hard cut-offs
    min_length: Optional[int] = None
    min_mean_q: Optional[float] = None
    min_window_q: Optional[float] = None

    # Score weights
    length_weight: float = 1.0
    mean_q_weight: float = 1.0
    window_q_weight: float = 1.0

    # Scoring
    window_size: int = DEFAULT_WINDOW_SIZE
    half_score_length: float = DEFAULT_HALF_SCORE_LENGTH
    accuracy_mode: AccuracyMode = AccuracyMode.SUBSTITUTE

    # External references
    assembly: Optional[str] = None
    illumina_reads: Tuple[str, ...] = ()
    minimap2_preset: str = "map-ont"
    min_mapq: int = 0
    kmer_size: int = DEFAULT_KMER_SIZE

    # Execution
    threads: int = 1
    abort_on_error: bool = False

    @property
    def reference_requested(self) -> bool:
        return self.assembly is not None or bool(self.illumina_reads)

    @property
    def total_weight(self) -> float:
        return self.length_weight + self.mean_q_weight + self.window_q_weight

    def validate(self) -> "Config":
        """
        Check every invariant of the configuration.

        :raises InvalidWeightsError: If a weight is negative or all weights are zero.
        :raises InvalidConfigError: If any other value is out of range.
        :return: The same Config, for chaining.
        """
        weights = {
            "length_weight": self.length_weight,
            "mean_q_weight": self.mean_q_weight,
            "window_q_weight": self.window_q_weight,
        }
        negative = [name for name, w in weights.items() if w < 0]
        if negative:
            raise InvalidWeightsError(f"Score weights must be >= 0: {', '.join(negative)}")
        if self.total_weight <= 0:
            raise InvalidWeightsError("At least one score weight must be greater than zero")

        if self.window_size < 1:
            raise InvalidConfigError(f"window_size must be >= 1 (got {self.window_size})")
        if self.half_score_length <= 0:
            raise InvalidConfigError(f"half_score_length must be > 0 (got {self.half_score_length})")
        if self.keep_percent is not None and not 0 < self.keep_percent <= 100:
            raise InvalidConfigError(f"keep_percent must be in (0, 100] (got {self.keep_percent})")
        if self.target_bases is not None and self.target_bases < 0:
            raise InvalidConfigError(f"target_bases must be >= 0 (got {self.target_bases})")
        if self.min_score is not None and self.min_score < 0:
            raise InvalidConfigError(f"min_score must be >= 0 (got {self.min_score})")
        if self.min_length is not None and self.min_length < 0:
            raise InvalidConfigError(f"min_length must be >= 0 (got {self.min_length})")
        if self.threads < 1:
            raise InvalidConfigError(f"threads must be >= 1 (got {self.threads})")
        if self.kmer_size < 1:
            raise InvalidConfigError(f"kmer_size must be >= 1 (got {self.kmer_size})")
        if len(self.illumina_reads) > 2:
            raise InvalidConfigError("At most two Illumina read files may be given")
        return self
