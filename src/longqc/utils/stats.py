"""
Read-set statistics for LongQC.
Includes N50 and cumulative-length curve data.
"""

import numpy as np
from typing import List, Dict, Tuple


def calculate_read_stats(lengths: List[int]) -> Dict[str, int]:
    """
    Calculate read-set statistics: read count, total bases, N50/N90 and longest read.

    :param lengths: List of read lengths.
    :return: Dictionary with stats.
    """
    if not lengths:
        return {"Num Reads": 0, "Total Bases": 0, "N50": 0, "N90": 0, "Longest": 0}

    lengths_sorted = sorted(lengths, reverse=True)
    total_bases = sum(lengths_sorted)

    stats = {
        "Num Reads": len(lengths_sorted),
        "Total Bases": total_bases,
        "Longest": lengths_sorted[0],
    }

    cumulative = np.cumsum(lengths_sorted)
    for nx in (50, 90):
        # First read at which the cumulative sum reaches nx% of all bases
        idx = int(np.searchsorted(cumulative, total_bases * nx / 100.0))
        stats[f"N{nx}"] = lengths_sorted[min(idx, len(lengths_sorted) - 1)]

    return stats


def calculate_length_curve(lengths: List[int]) -> Tuple[List[int], List[int]]:
    """
    Calculate data for the cumulative-bases curve (reads ranked longest first).

    :param lengths: List of read lengths.
    :return: Tuple of (x_counts, y_cumulative_bases).
    """
    lengths_sorted = sorted(lengths, reverse=True)
    y = np.cumsum(lengths_sorted).tolist()
    x = list(range(1, len(lengths_sorted) + 1))
    return x, y
