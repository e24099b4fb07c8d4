import logging

import pytest

from longqc.main import build_config, build_parser, main
from longqc.core.models import AccuracyMode
from longqc.parsers.fastq_parser import iter_reads


def write_input(path):
    records = [
        ('good_long', 3000, 'I'),   # Q40
        ('bad', 2000, '#'),         # Q2
        ('good_short', 800, '5'),   # Q20
        ('tiny', 50, 'I'),
    ]
    with open(path, 'w') as f:
        for read_id, length, symbol in records:
            f.write(f"@{read_id} sample=1\n{'ACGT' * (length // 4)}\n+\n{symbol * length}\n")
    return path


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


def test_full_pipeline(tmp_path):
    reads = write_input(tmp_path / 'reads.fastq')
    output = tmp_path / 'out' / 'kept.fastq.gz'
    report = tmp_path / 'out' / 'reads.tsv'
    html = tmp_path / 'out' / 'report.html'
    log_file = tmp_path / 'out' / 'log.txt'

    code = main([
        str(reads), '-o', str(output),
        '--min_length', '100', '--min_mean_q', '10', '--keep_percent', '90',
        '--window_size', '100', '--threads', '2',
        '--report', str(report), '--html_report', str(html), '--log_file', str(log_file)
    ])

    assert code == 0
    assert [r.read_id for r in iter_reads(output)] == ['good_long', 'good_short']
    report_lines = report.read_text().splitlines()
    assert len(report_lines) == 5
    assert 'HardFilterFail' in report_lines[2]
    assert html.exists()
    assert 'Pass 2' in log_file.read_text()


def test_all_zero_weights_fail_without_output(tmp_path):
    reads = write_input(tmp_path / 'reads.fastq')
    output = tmp_path / 'kept.fastq'
    code = main([
        str(reads), '-o', str(output),
        '--length_weight', '0', '--mean_q_weight', '0', '--window_q_weight', '0'
    ])
    assert code == 1
    assert not output.exists()


def test_missing_input_fails(tmp_path):
    code = main([str(tmp_path / 'missing.fastq'), '-o', str(tmp_path / 'kept.fastq')])
    assert code == 1


def test_missing_reference_fails(tmp_path):
    reads = write_input(tmp_path / 'reads.fastq')
    output = tmp_path / 'kept.fastq'
    code = main([str(reads), '-o', str(output), '--illumina_reads_1', str(tmp_path / 'nope.fastq')])
    assert code == 1
    assert not output.exists()


def test_negative_value_rejected_by_parser():
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(['reads.fastq', '--min_score', '-5'])
    assert excinfo.value.code == 2


def test_version():
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(['--version'])
    assert excinfo.value.code == 0


def test_build_config_defaults():
    config = build_config(build_parser().parse_args(['reads.fastq', '--illumina_reads_2', 'r2.fq']))
    assert config.min_score is None
    assert config.window_size == 250
    assert config.half_score_length == 5000
    assert config.accuracy_mode is AccuracyMode.SUBSTITUTE
    assert config.illumina_reads == ('r2.fq',)


def test_bad_quality_symbol_is_skipped(tmp_path):
    reads = tmp_path / 'reads.fastq'
    reads.write_text(
        "@G1\nACGTACGT\n+\nIIIIIIII\n"
        "@BAD\nACGT\n+\nII I\n"
        "@G2\nACGTACGT\n+\n55555555\n"
    )
    output = tmp_path / 'kept.fastq'
    assert main([str(reads), '-o', str(output), '--window_size', '4']) == 0
    assert [r.read_id for r in iter_reads(output)] == ['G1', 'G2']


def test_quality_length_mismatch_ends_run(tmp_path):
    reads = tmp_path / 'reads.fastq'
    reads.write_text(
        "@G1\nACGTACGT\n+\nIIIIIIII\n"
        "@BAD\nACGT\n+\nII\n"
        "@G2\nACGTACGT\n+\n55555555\n"
    )
    output = tmp_path / 'kept.fastq'
    assert main([str(reads), '-o', str(output)]) == 1
    assert not output.exists()
    help_text = ' '.join(build_parser().format_help().split())
    assert 'quality length differs from its sequence length' in help_text
