import numpy as np
import pandas as pd
import pytest

from TSRpy.signal_track import DenseTrack


def make_fragments(tss_positions, strand='+', length=30, chrom='chr1'):
    """Fragments whose TSS lands on the given 0-based positions."""
    tss = np.asarray(tss_positions, dtype=np.int64)
    if strand == '+':
        start, end = tss, tss + length
    else:
        start, end = tss + 1 - length, tss + 1
    df = pd.DataFrame({'chr': chrom, 'start': start, 'end': end, 'strand': strand})
    df['length'] = df['end'] - df['start']
    return df


def make_track(counts, lengths=None, chrom='chr1', strand='+'):
    counts = np.asarray(counts, dtype=np.int32)
    if lengths is None:
        lengths = counts * 30
    return DenseTrack(chrom, strand, counts, np.asarray(lengths, dtype=np.int64))


def candidate(left, reads, width=10, chrom='chr1', strand='+'):
    return {
        'chr': chrom, 'strand': strand, 'tsr_left': left, 'tsr_right': left + width,
        'tsr_reads': reads, 'avg_frag_len': 30.0, 'max_pos': left, 'max_pos_reads': reads,
        'avg_pos': float(left), 'max_minus_avg': 0.0, 'stdev_avg_pos': 0.0,
    }


@pytest.fixture
def write_bed(tmp_path):
    def _write(fragments, name='reads.bed'):
        path = tmp_path / name
        bed = fragments[['chr', 'start', 'end']].copy()
        bed['name'] = 'read'
        bed['score'] = 0
        bed['strand'] = fragments['strand']
        bed.to_csv(path, sep='\t', header=False, index=False)
        return path
    return _write


@pytest.fixture
def chrom_sizes_file(tmp_path):
    path = tmp_path / 'genome.chrom.sizes'
    path.write_text("chr1\t1000\nchr2\t500\n")
    return path
