"""
Main entry point for the LongQC command-line tool.
Parses arguments into an immutable Config, runs the two-pass filter over the input
reads and writes the accepted reads plus any requested reports.
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from longqc.core.errors import LongQCError
from longqc.core.models import AccuracyMode, Config, DEFAULT_HALF_SCORE_LENGTH, DEFAULT_WINDOW_SIZE
from longqc.core.pipeline import filter_read_file
from longqc.utils.logging import setup_logging, shutdown_logging
from longqc.visualization.report_generator import (
    generate_html_report,
    write_report_tsv,
    write_verbose_table
)


def get_version() -> str:
    try:
        return version("longqc")
    except PackageNotFoundError:
        return "unknown"


def non_negative_float(value: str) -> float:
    """argparse type accepting only plain non-negative decimal numbers."""
    if not value or value.strip("0123456789.") or value.count(".") > 1:
        raise argparse.ArgumentTypeError(f"invalid value '{value}' (expected a non-negative number)")
    return float(value)


def non_negative_int(value: str) -> int:
    if not value.isdigit():
        raise argparse.ArgumentTypeError(f"invalid value '{value}' (expected a non-negative integer)")
    return int(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="longqc",
        description="LongQC: a quality filtering tool for Nanopore and PacBio reads.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("input_reads", help="Input long reads to be filtered (FASTQ, optionally gzipped)")

    thresholds = parser.add_argument_group("output thresholds")
    thresholds.add_argument("--min_score", type=non_negative_float,
                            help="Reads with a final score lower than this will be discarded")
    thresholds.add_argument("--target_bases", type=non_negative_int,
                            help="Keep only the best reads up to this many total bases")
    thresholds.add_argument("--keep_percent", type=non_negative_float,
                            help="Keep only this percentage of the best reads")

    references = parser.add_argument_group(
        "external references",
        "if provided, read quality will be determined using these instead of from the Phred scores"
    )
    references.add_argument("--assembly", help="Reference assembly in FASTA format")
    references.add_argument("--illumina_reads_1", help="Reference Illumina reads in FASTQ format")
    references.add_argument("--illumina_reads_2", help="Reference Illumina reads in FASTQ format")
    references.add_argument("--accuracy_mode", choices=[m.value for m in AccuracyMode],
                            default=AccuracyMode.SUBSTITUTE.value,
                            help="Whether reference accuracy replaces or is blended with the quality scores")
    references.add_argument("--minimap2_preset", default="map-ont",
                            help="minimap2 preset used when aligning to --assembly")
    references.add_argument("--min_mapq", type=non_negative_int, default=0,
                            help="Ignore assembly alignments below this mapping quality")

    hard_cutoffs = parser.add_argument_group(
        "hard cut-offs", "reads that fall below these thresholds are discarded"
    )
    hard_cutoffs.add_argument("--min_length", type=non_negative_int, help="Minimum length threshold")
    hard_cutoffs.add_argument("--min_mean_q", type=non_negative_float, help="Minimum mean quality threshold")
    hard_cutoffs.add_argument("--min_window_q", type=non_negative_float, help="Minimum window quality threshold")

    weights = parser.add_argument_group(
        "score weights", "control the relative contribution of each score to the final read score"
    )
    weights.add_argument("--length_weight", type=non_negative_float, default=1.0,
                         help="Weight given to the length score")
    weights.add_argument("--mean_q_weight", type=non_negative_float, default=1.0,
                         help="Weight given to the mean quality score")
    weights.add_argument("--window_q_weight", type=non_negative_float, default=1.0,
                         help="Weight given to the window quality score")

    other = parser.add_argument_group("other")
    other.add_argument("--window_size", type=non_negative_int, default=DEFAULT_WINDOW_SIZE,
                       help="Size of sliding window used when measuring window quality")
    other.add_argument("--half_score_length", type=non_negative_float, default=DEFAULT_HALF_SCORE_LENGTH,
                       help="Reads of this length get a length score of 50")
    other.add_argument("-o", "--output", default="-", help="Output FASTQ path ('-' for stdout)")
    other.add_argument("--report", type=Path, help="Write the per-read decision table to this TSV file")
    other.add_argument("--html_report", type=Path, help="Write an interactive HTML summary to this file")
    other.add_argument("--log_file", type=Path, help="Also write a DEBUG-level log to this file")
    other.add_argument("--threads", type=non_negative_int, default=1,
                       help="Number of CPU cores for parallel processing")
    other.add_argument("--abort_on_error", action="store_true",
                       help="Stop at the first malformed read instead of skipping it. Quality "
                            "symbols out of range are always skippable; a FASTQ record whose "
                            "quality length differs from its sequence length breaks the file "
                            "and always ends the run")
    other.add_argument("--verbose", action="store_true", help="Print a table with info for each read")
    other.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    other.add_argument("--version", action="version", version=f"LongQC v{get_version()}",
                       help="Display the program version and quit")
    return parser


def build_config(args: argparse.Namespace) -> Config:
    illumina_reads = tuple(p for p in (args.illumina_reads_1, args.illumina_reads_2) if p)
    return Config(
        min_score=args.min_score,
        target_bases=args.target_bases,
        keep_percent=args.keep_percent,
        min_length=args.min_length,
        min_mean_q=args.min_mean_q,
        min_window_q=args.min_window_q,
        length_weight=args.length_weight,
        mean_q_weight=args.mean_q_weight,
        window_q_weight=args.window_q_weight,
        window_size=args.window_size,
        half_score_length=args.half_score_length,
        accuracy_mode=AccuracyMode(args.accuracy_mode),
        assembly=args.assembly,
        illumina_reads=illumina_reads,
        minimap2_preset=args.minimap2_preset,
        min_mapq=args.min_mapq,
        threads=args.threads,
        abort_on_error=args.abort_on_error
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_queue, log_listener = setup_logging(args.log_file, quiet=args.quiet)

    logger = logging.getLogger(__name__)
    try:
        logger.info(f"Starting LongQC v{get_version()}")
        config = build_config(args).validate()

        result = filter_read_file(args.input_reads, config, args.output, log_queue=log_queue)

        if args.verbose:
            write_verbose_table(result.summaries, sys.stderr)
        if args.report:
            write_report_tsv(result.summaries, args.report)
            logger.info(f"Per-read report written to {args.report}")
        if args.html_report:
            generate_html_report(result.summaries, config, args.html_report,
                                 input_name=Path(args.input_reads).name)
            logger.info(f"HTML report written to {args.html_report}")

        logger.info(f"Kept {len(result.kept)} of {len(result.summaries)} reads ({result.accepted_bases} bases)")
        return 0
    except LongQCError as e:
        logger.error(f"Critical failure: {e}")
        return 1
    finally:
        shutdown_logging(log_listener)


if __name__ == "__main__":
    sys.exit(main())
