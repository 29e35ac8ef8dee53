"""
Signal Track - Collapse fragments into a per-position TSS signal and densify it

TSS coordinates are 0-based. For + strand fragments the TSS is the start;
for - strand fragments it is end - 1, the last base covered by the fragment,
so both strands share one coordinate convention from here on.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class OutOfRangeSignal(ValueError):
    """TSS signal found outside the declared chromosome length."""

    def __init__(self, chrom: str, strand: str, positions, chrom_length: int):
        self.chrom = chrom
        self.strand = strand
        self.positions = list(positions)
        self.chrom_length = chrom_length
        shown = ', '.join(str(p) for p in self.positions[:5])
        if len(self.positions) > 5:
            shown += ', ...'
        super().__init__(
            f"{len(self.positions)} TSS positions on {chrom} ({strand}) fall outside "
            f"the chromosome length {chrom_length}: {shown}"
        )

    def __reduce__(self):
        return (type(self), (self.chrom, self.strand, self.positions, self.chrom_length))


@dataclass(frozen=True)
class DenseTrack:
    """Zero-filled per-position signal for one chromosome and strand."""
    chrom: str
    strand: str
    count: np.ndarray
    length_sum: np.ndarray

    def __len__(self):
        return len(self.count)


def tss_positions(fragments: pd.DataFrame, strand: str) -> pd.Series:
    if strand == '+':
        return fragments['start']
    return fragments['end'] - 1


def build_signal_track(fragments: pd.DataFrame, strand: str) -> pd.DataFrame:
    """
    Collapse fragments of one chromosome/strand sharing a TSS.

    Args:
        fragments: DataFrame with start, end and length columns
        strand: '+' or '-'

    Returns:
        DataFrame with pos, count and length_sum, sorted by pos, one row per position
    """
    if fragments.empty:
        return pd.DataFrame({'pos': pd.Series(dtype='int64'),
                             'count': pd.Series(dtype='int64'),
                             'length_sum': pd.Series(dtype='int64')})

    df = fragments[['start', 'end', 'length']].copy()
    df['pos'] = tss_positions(df, strand)
    sort_cols = ['start', 'end'] if strand == '+' else ['end', 'start']
    df = df.sort_values(sort_cols, kind='mergesort')

    signal = (
        df.groupby('pos', sort=True)
        .agg(count=('length', 'size'), length_sum=('length', 'sum'))
        .reset_index()
    )
    return signal.astype({'pos': 'int64', 'count': 'int64', 'length_sum': 'int64'})


def fill_gaps(signal: pd.DataFrame,
              chrom: str,
              strand: str,
              chrom_length: int,
              on_out_of_range: str = 'error') -> DenseTrack:
    """
    Expand a sparse signal to every position 0..chrom_length-1.

    Positions outside the chromosome raise OutOfRangeSignal, or are dropped
    with a warning when on_out_of_range is 'drop'.
    """
    if on_out_of_range not in ('error', 'drop'):
        raise ValueError(f"Unknown out-of-range policy: {on_out_of_range}")

    pos = signal['pos'].to_numpy(dtype=np.int64)
    outside = (pos < 0) | (pos >= chrom_length)
    if outside.any():
        if on_out_of_range == 'error':
            raise OutOfRangeSignal(chrom, strand, pos[outside], chrom_length)
        logger.warning(
            f"Dropping {int(outside.sum())} TSS positions beyond {chrom} length {chrom_length} ({strand} strand)"
        )
        signal = signal[~outside]
        pos = pos[~outside]

    count = np.zeros(chrom_length, dtype=np.int32)
    length_sum = np.zeros(chrom_length, dtype=np.int64)
    count[pos] = signal['count'].to_numpy(dtype=np.int32)
    length_sum[pos] = signal['length_sum'].to_numpy(dtype=np.int64)
    return DenseTrack(chrom, strand, count, length_sum)
