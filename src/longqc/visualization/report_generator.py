"""
Report generation module for LongQC.
Builds the per-read diagnostic table (verbose console output and TSV) and the
interactive HTML summary. Reporting only observes decisions; it never changes them.
"""

from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
from jinja2 import Environment, FileSystemLoader

from longqc.core.models import Config, ReadSummary, RejectReason
from longqc.utils.stats import calculate_read_stats, calculate_length_curve

REPORT_COLUMNS = [
    'read_id', 'length', 'mean_quality', 'window_quality', 'accuracy',
    'composite_score', 'kept', 'reason'
]
ABSENT = '-'


def summary_row(s: ReadSummary) -> Dict[str, Any]:
    """
    Flatten one read's metrics and decision into a report row.

    :param s: ReadSummary object.
    :return: Dictionary keyed by REPORT_COLUMNS; missing values are None.
    """
    metrics = s.metrics
    return {
        'read_id': s.read_id,
        'length': s.length,
        'mean_quality': metrics.mean_quality if metrics else None,
        'window_quality': metrics.window_quality if metrics else None,
        'accuracy': metrics.accuracy if metrics else None,
        'composite_score': s.score,
        'kept': s.decision.kept,
        'reason': s.decision.reason.value if s.decision.reason else None
    }


def build_report_rows(summaries: List[ReadSummary]) -> List[Dict[str, Any]]:
    return [summary_row(s) for s in sorted(summaries, key=lambda s: s.index)]


def report_dataframe(summaries: List[ReadSummary]) -> pd.DataFrame:
    return pd.DataFrame(build_report_rows(summaries), columns=REPORT_COLUMNS)


def _format_value(value: Any) -> str:
    if value is None:
        return ABSENT
    if isinstance(value, bool):
        return 'yes' if value else 'no'
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def write_verbose_table(summaries: List[ReadSummary], handle: IO[str]):
    """
    Write the tab-separated per-read table, one row per input read.
    Absent values (no accuracy, malformed reads) are shown as '-'.
    """
    handle.write('\t'.join(REPORT_COLUMNS) + '\n')
    for row in build_report_rows(summaries):
        handle.write('\t'.join(_format_value(row[c]) for c in REPORT_COLUMNS) + '\n')
    handle.flush()


def write_report_tsv(summaries: List[ReadSummary], output_path: Path):
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = report_dataframe(summaries)
    df.to_csv(output_path, sep='\t', index=False, na_rep=ABSENT, encoding='utf-8')


def decision_counts(summaries: List[ReadSummary]) -> Dict[str, int]:
    counts = {'Kept': sum(1 for s in summaries if s.decision.kept)}
    for reason in RejectReason:
        counts[reason.value] = sum(1 for s in summaries if s.decision.reason is reason)
    return counts


def generate_html_report(
    summaries: List[ReadSummary],
    config: Config,
    output_path: Path,
    input_name: Optional[str] = None
):
    """
    Render the interactive HTML summary of a run.

    :param summaries: Every read's summary for the run.
    :param config: The run configuration, listed in the report.
    :param output_path: Path of the HTML file to write.
    :param input_name: Name of the input read file, shown in the header.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    kept = [s for s in summaries if s.decision.kept]
    rejected = [s for s in summaries if not s.decision.kept]
    stats_initial = calculate_read_stats([s.length for s in summaries])
    stats_filtered = calculate_read_stats([s.length for s in kept])

    # Score distribution
    fig_score = go.Figure()
    for label, group in (('Kept', kept), ('Rejected', rejected)):
        scores = [s.score for s in group if s.score is not None]
        if scores:
            fig_score.add_trace(go.Histogram(x=scores, name=label, nbinsx=50, opacity=0.7))
    fig_score.update_layout(title="Composite Score Distribution", barmode='overlay',
                            xaxis_title="Composite score", yaxis_title="Reads")
    score_plot_json = fig_score.to_json()

    # Length vs. mean quality
    fig_scatter = go.Figure()
    for label, group, color in (('Kept', kept, 'blue'), ('Rejected', rejected, 'red')):
        measured = [s for s in group if s.metrics is not None]
        if not measured:
            continue
        fig_scatter.add_trace(go.Scatter(
            x=[s.length for s in measured],
            y=[s.metrics.mean_quality for s in measured],
            mode='markers',
            name=label,
            marker=dict(color=color, size=4),
            text=[s.read_id for s in measured],
            hoverinfo='text+x+y'
        ))
    fig_scatter.update_layout(title="Read Length vs. Mean Quality", xaxis_type="log",
                              xaxis_title="Read length (bp)", yaxis_title="Mean quality (Phred)")
    scatter_plot_json = fig_scatter.to_json()

    # Cumulative bases curve
    xi, yi = calculate_length_curve([s.length for s in summaries])
    xf, yf = calculate_length_curve([s.length for s in kept])
    fig_curve = go.Figure()
    fig_curve.add_trace(go.Scatter(x=xi, y=yi, mode='lines', name='Input reads'))
    fig_curve.add_trace(go.Scatter(x=xf, y=yf, mode='lines', name='Kept reads'))
    fig_curve.update_layout(title="Cumulative Bases (longest reads first)",
                            xaxis_title="Read rank", yaxis_title="Cumulative bases")
    curve_plot_json = fig_curve.to_json()

    run_parameters = {
        k: (v.value if hasattr(v, 'value') else v)
        for k, v in asdict(config).items()
        if v is not None and v != ()
    }

    template_dir = Path(__file__).parent / 'templates'
    env = Environment(loader=FileSystemLoader(str(template_dir)), autoescape=True)
    template = env.get_template('report.html')

    html_content = template.render(
        input_name=input_name or '',
        generated=datetime.now().strftime('%Y-%m-%d %H:%M'),
        stats_initial=stats_initial,
        stats_filtered=stats_filtered,
        decision_counts=decision_counts(summaries),
        score_plot_json=score_plot_json,
        scatter_plot_json=scatter_plot_json,
        curve_plot_json=curve_plot_json,
        run_parameters=run_parameters
    )

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(html_content)
