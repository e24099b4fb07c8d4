"""
PAF alignment file parser for LongQC.
Reads minimap2 PAF records, keeps primary alignments above a mapping-quality floor,
and reduces them to one identity fraction per read.
"""

import logging
from pathlib import Path
from typing import Dict, Union

import pandas as pd

logger = logging.getLogger(__name__)

PAF_COLUMNS = [
    'query_id', 'query_len', 'query_start', 'query_end', 'strand',
    'target_id', 'target_len', 'target_start', 'target_end',
    'n_match', 'aln_len', 'mq'
]
MAX_PAF_FIELDS = 64


def parse_paf(paf_path: Union[str, Path], min_mq: int = 0) -> pd.DataFrame:
    """
    Parse a PAF file, extract the tp:A: alignment-type tag and filter by mapping quality.

    :param paf_path: Path to the PAF file.
    :param min_mq: Minimum mapping quality threshold.
    :return: DataFrame of the mandatory PAF columns plus 'tp', filtered by 'mq'.
    """
    try:
        # Rows carry a variable number of SAM-like tags after the 12 mandatory columns
        df = pd.read_csv(paf_path, sep='\t', header=None, low_memory=False, encoding='utf-8',
                         names=range(MAX_PAF_FIELDS), dtype={0: str})
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()
    except Exception as e:
        logger.error(f"Failed to read PAF file {paf_path}: {e}")
        raise

    df = df.dropna(axis=1, how='all')
    if df.empty:
        logger.warning(f"PAF file {paf_path} is empty.")
        return pd.DataFrame(columns=PAF_COLUMNS + ['tp'])

    num_mandatory = len(PAF_COLUMNS)
    df_mandatory = df.iloc[:, :num_mandatory].copy()
    df_mandatory.columns = PAF_COLUMNS

    def extract_tp_tag(row):
        for val in row.iloc[num_mandatory:]:
            if isinstance(val, str) and val.startswith('tp:A:'):
                return val.split(':')[-1]
        return 'P'

    if df.shape[1] > num_mandatory:
        df_mandatory['tp'] = df.apply(extract_tp_tag, axis=1)
    else:
        df_mandatory['tp'] = 'P'

    return df_mandatory[df_mandatory['mq'] >= min_mq].copy()


def identities_from_paf(df: pd.DataFrame) -> Dict[str, float]:
    """
    Reduce primary alignments to one identity per read:
    sum of matching bases over sum of alignment block lengths.

    :param df: DataFrame from parse_paf.
    :return: Dictionary mapping read id to identity in [0, 1]. Unaligned reads are absent.
    """
    if df.empty:
        return {}

    primary = df[df['tp'] == 'P']
    totals = primary.groupby('query_id').agg(n_match=('n_match', 'sum'), aln_len=('aln_len', 'sum'))
    totals = totals[totals['aln_len'] > 0]
    identity = (totals['n_match'] / totals['aln_len']).clip(lower=0.0, upper=1.0)
    return {str(k): float(v) for k, v in identity.items()}
