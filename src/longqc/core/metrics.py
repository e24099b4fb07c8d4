"""
Per-read metric extraction for LongQC.
Decodes Phred+33 quality strings into error probabilities and derives the read's
mean quality and worst sliding-window quality. All averaging happens in
probability space, so a handful of very poor bases pulls the quality down more
than a plain mean of Q values would.
"""

import math
from typing import Iterator

import numpy as np

from longqc.core.errors import MalformedReadError
from longqc.core.models import RawMetrics, Read, DEFAULT_WINDOW_SIZE

PHRED_OFFSET = 33
MIN_QUALITY_SYMBOL = ord('!')
MAX_QUALITY_SYMBOL = ord('~')
WINDOW_CHUNK = 1 << 16


def decode_error_probabilities(read: Read) -> np.ndarray:
    """
    Convert a read's quality string into per-base error probabilities.

    :param read: The read to decode.
    :raises MalformedReadError: If the read is empty, the quality string length differs
        from the sequence length, or a symbol lies outside '!'..'~'.
    :return: Array of error probabilities p = 10^(-Q/10), one per base.
    """
    if read.length == 0:
        raise MalformedReadError(read.read_id, "read has no bases")
    if len(read.quality) != read.length:
        raise MalformedReadError(
            read.read_id,
            f"quality string has {len(read.quality)} symbols for {read.length} bases"
        )
    try:
        codes = np.frombuffer(read.quality.encode('ascii'), dtype=np.uint8)
    except UnicodeEncodeError:
        raise MalformedReadError(read.read_id, "quality string contains non-ASCII symbols")

    if codes.min() < MIN_QUALITY_SYMBOL or codes.max() > MAX_QUALITY_SYMBOL:
        bad = next(chr(c) for c in codes if c < MIN_QUALITY_SYMBOL or c > MAX_QUALITY_SYMBOL)
        raise MalformedReadError(read.read_id, f"invalid quality symbol {bad!r}")

    phred = codes.astype(np.float64) - PHRED_OFFSET
    return np.power(10.0, -phred / 10.0)


def error_to_phred(error_probability: float) -> float:
    return -10.0 * math.log10(error_probability)


class SlidingWindowErrors:
    """
    Lazy, restartable iterable over the mean error probability of every window
    of `window_size` consecutive bases (stride 1).

    Each call to iter() starts a fresh pass. Window sums come from a cumulative sum
    over at most WINDOW_CHUNK windows at a time, so memory stays bounded for very
    long reads. Yields nothing if the sequence is shorter than one window.
    """

    def __init__(self, error_probabilities: np.ndarray, window_size: int):
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1 (got {window_size})")
        self.error_probabilities = error_probabilities
        self.window_size = window_size

    def __len__(self) -> int:
        return max(0, len(self.error_probabilities) - self.window_size + 1)

    def chunks(self) -> Iterator[np.ndarray]:
        """
        Yield window means as arrays of at most WINDOW_CHUNK consecutive windows.
        """
        probs = self.error_probabilities
        size = self.window_size
        count = len(self)
        for start in range(0, count, WINDOW_CHUNK):
            stop = min(start + WINDOW_CHUNK, count)
            # Windows starting in [start, stop) need bases up to stop + size - 1
            sums = np.concatenate(([0.0], np.cumsum(probs[start:stop + size - 1])))
            yield (sums[size:] - sums[:-size]) / size

    def __iter__(self) -> Iterator[float]:
        for chunk in self.chunks():
            yield from chunk.tolist()

    def worst(self) -> float:
        """
        Highest window mean error probability.

        :raises ValueError: If the sequence is shorter than one window.
        """
        if len(self) == 0:
            raise ValueError("No complete window")
        return max(float(chunk.max()) for chunk in self.chunks())


class MetricExtractor:
    """
    Computes RawMetrics (length, mean quality, window quality) for single reads.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE):
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1 (got {window_size})")
        self.window_size = window_size

    def extract(self, read: Read) -> RawMetrics:
        """
        Calculate raw metrics for a single read.

        :param read: The read to measure.
        :raises MalformedReadError: If the quality string cannot be decoded.
        :return: RawMetrics without accuracy.
        """
        probs = decode_error_probabilities(read)
        mean_quality = error_to_phred(float(probs.mean()))

        windows = SlidingWindowErrors(probs, self.window_size)
        if len(windows) == 0:
            window_quality = mean_quality
        else:
            # Edge bases fall in fewer windows, so the worst window can still be
            # marginally better than the whole read; cap it at the read mean.
            window_quality = min(error_to_phred(windows.worst()), mean_quality)

        return RawMetrics(
            length=read.length,
            mean_quality=mean_quality,
            window_quality=window_quality
        )
