"""
Windows - Slide a fixed-size window over a dense TSS track and emit TSR candidates
"""

import logging

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from TSRpy.signal_track import DenseTrack

logger = logging.getLogger(__name__)

CANDIDATE_DTYPES = {
    'chr': 'object',
    'strand': 'object',
    'tsr_left': 'int64',
    'tsr_right': 'int64',
    'tsr_reads': 'int64',
    'avg_frag_len': 'float64',
    'max_pos': 'int64',
    'max_pos_reads': 'int64',
    'avg_pos': 'float64',
    'max_minus_avg': 'float64',
    'stdev_avg_pos': 'float64',
}
CANDIDATE_COLUMNS = list(CANDIDATE_DTYPES)

# rows of the (windows x window_size) block materialised at once
CHUNK_SIZE = 65536


def empty_candidates() -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in CANDIDATE_DTYPES.items()})


def window_sums(values: np.ndarray, window_size: int) -> np.ndarray:
    """Sum of every window of window_size consecutive values, indexed by window start."""
    csum = np.zeros(len(values) + 1, dtype=np.int64)
    np.cumsum(values, dtype=np.int64, out=csum[1:])
    return csum[window_size:] - csum[:-window_size]


def aggregate_windows(track: DenseTrack,
                      window_size: int,
                      min_reads: int,
                      min_avg_frag_len: float) -> pd.DataFrame:
    """
    Compute per-window statistics and keep windows passing the thresholds.

    The window with right edge p covers positions [p - window_size + 1, p] and
    is reported with tsr_left = p - window_size + 1 and tsr_right = p + 1.

    Args:
        track: dense signal for one chromosome/strand
        window_size: window width in bp
        min_reads: minimum total reads in the window
        min_avg_frag_len: minimum mean fragment length in the window

    Returns:
        Candidate DataFrame in increasing position order
    """
    n = len(track)
    if n < window_size:
        return empty_candidates()

    total_reads = window_sums(track.count, window_size)
    total_length = window_sums(track.length_sum, window_size)

    passing = (total_reads >= min_reads) & (total_reads > 0)
    avg_frag_len = np.zeros(len(total_reads), dtype=float)
    avg_frag_len[passing] = total_length[passing] / total_reads[passing]
    passing &= avg_frag_len >= min_avg_frag_len

    lefts = np.flatnonzero(passing)
    if len(lefts) == 0:
        return empty_candidates()

    windows = sliding_window_view(track.count, window_size)
    offsets = np.arange(window_size, dtype=float)

    max_off = np.empty(len(lefts), dtype=np.int64)
    max_reads = np.empty(len(lefts), dtype=np.int64)
    mean_off = np.empty(len(lefts), dtype=float)
    stdev = np.empty(len(lefts), dtype=float)

    for begin in range(0, len(lefts), CHUNK_SIZE):
        idx = lefts[begin:begin + CHUNK_SIZE]
        block = windows[idx]
        reads = total_reads[idx].astype(float)
        # argmax returns the first maximum, i.e. the lowest position on ties
        block_max = block.argmax(axis=1)
        max_off[begin:begin + len(idx)] = block_max
        max_reads[begin:begin + len(idx)] = block[np.arange(len(idx)), block_max]
        mean = (block * offsets).sum(axis=1) / reads
        mean_off[begin:begin + len(idx)] = mean
        sq_dev = block * (offsets[np.newaxis, :] - mean[:, np.newaxis]) ** 2
        stdev[begin:begin + len(idx)] = np.sqrt(sq_dev.sum(axis=1) / reads)

    max_pos = lefts + max_off
    avg_pos = lefts + mean_off

    candidates = pd.DataFrame({
        'chr': track.chrom,
        'strand': track.strand,
        'tsr_left': lefts,
        'tsr_right': lefts + window_size,
        'tsr_reads': total_reads[lefts],
        'avg_frag_len': avg_frag_len[lefts],
        'max_pos': max_pos,
        'max_pos_reads': max_reads,
        'avg_pos': avg_pos,
        'max_minus_avg': max_pos - avg_pos,
        'stdev_avg_pos': stdev,
    })
    logger.debug(f"{track.chrom} ({track.strand}): {len(candidates)} candidate windows")
    return candidates
