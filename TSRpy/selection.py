"""
Selection - Greedy depth-first selection of non-overlapping TSRs

Candidates are taken deepest first. A candidate is rejected when either of
its edge coordinates (tsr_left, tsr_right) falls inside a region already
claimed by an accepted TSR. Accepting a TSR claims its whole buffered interval
[tsr_left + 1 - upstream, tsr_right + downstream), with the buffers swapped on
the - strand. Only the two edges are tested, while the full interval is claimed.
"""

import bisect
import logging
from collections import defaultdict
from typing import Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)


class OccupiedIntervals:
    """Sorted list of disjoint half-open intervals supporting point queries and range marking."""

    def __init__(self):
        self.starts = []
        self.ends = []

    def __len__(self):
        return len(self.starts)

    def __contains__(self, pos: int) -> bool:
        i = bisect.bisect_right(self.starts, pos) - 1
        return i >= 0 and pos < self.ends[i]

    def add(self, start: int, end: int):
        """Mark [start, end) as occupied, merging with touching intervals."""
        if end <= start:
            return
        lo = bisect.bisect_left(self.ends, start)
        hi = bisect.bisect_right(self.starts, end)
        if lo < hi:
            start = min(start, self.starts[lo])
            end = max(end, self.ends[hi - 1])
        self.starts[lo:hi] = [start]
        self.ends[lo:hi] = [end]

    def intervals(self):
        return list(zip(self.starts, self.ends))


def occupied_interval(tsr_left: int, tsr_right: int, strand: str,
                      buffer_upstream: int, buffer_downstream: int) -> Tuple[int, int]:
    if strand == '-':
        buffer_upstream, buffer_downstream = buffer_downstream, buffer_upstream
    return tsr_left + 1 - buffer_upstream, tsr_right + buffer_downstream


def rank_candidates(candidates: pd.DataFrame, seed: Optional[int] = None) -> pd.DataFrame:
    """
    Order candidates by depth, deepest first.

    Equal depths fall back to chromosome, strand and then the leftmost window.
    With a seed, equal depths are first ordered by a seeded hash of each
    candidate's (chr, strand, tsr_left), so the order of any subset of
    candidates agrees with the order of the full set.
    """
    keys = ['tsr_reads', 'chr', 'strand', 'tsr_left']
    ascending = [False, True, True, True]
    if seed is not None:
        hash_key = f"{seed & 0xFFFFFFFFFFFFFFFF:016x}"
        tie_key = pd.util.hash_pandas_object(candidates[['chr', 'strand', 'tsr_left']],
                                             index=False, hash_key=hash_key)
        candidates = candidates.assign(_tie=tie_key.to_numpy())
        keys.insert(1, '_tie')
        ascending.insert(1, True)
        return candidates.sort_values(keys, ascending=ascending, kind='mergesort').drop(columns='_tie')
    return candidates.sort_values(keys, ascending=ascending, kind='mergesort')


def select_regions(candidates: pd.DataFrame,
                   buffer_upstream: int = 0,
                   buffer_downstream: int = 0,
                   seed: Optional[int] = None) -> pd.DataFrame:
    """
    Select the deepest non-overlapping candidates.

    Occupancy is tracked separately per chromosome and strand, so candidates
    from several partitions can be selected in one call.

    Args:
        candidates: TSR candidate DataFrame
        buffer_upstream: bp claimed upstream of each accepted TSR
        buffer_downstream: bp claimed downstream of each accepted TSR
        seed: optional seed for the hashed depth tie-break

    Returns:
        Accepted candidates sorted by chr, tsr_left and strand
    """
    if candidates.empty:
        return candidates.copy()

    candidates = candidates.reset_index(drop=True)
    ranked = rank_candidates(candidates, seed)
    occupied = defaultdict(OccupiedIntervals)
    accepted = []

    for idx, chr_, strand, left, right in zip(ranked.index, ranked['chr'], ranked['strand'],
                                              ranked['tsr_left'], ranked['tsr_right']):
        claimed = occupied[(chr_, strand)]
        if left in claimed or right in claimed:
            continue
        start, end = occupied_interval(int(left), int(right), strand, buffer_upstream, buffer_downstream)
        claimed.add(start, end)
        accepted.append(idx)

    selected = candidates.loc[accepted]
    selected = selected.sort_values(['chr', 'tsr_left', 'strand'], kind='mergesort').reset_index(drop=True)
    logger.debug(f"Selected {len(selected)} of {len(candidates)} candidates")
    return selected
