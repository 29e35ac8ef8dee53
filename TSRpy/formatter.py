"""
Formatter - Write selected TSRs as tab, BED6 and bedGraph tracks

Optional binary tracks: BigWig through pyBigWig and BigBed through the
external bedToBigBed converter, when it is on PATH.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict

import pandas as pd
import pyBigWig

logger = logging.getLogger(__name__)

TAB_COLUMNS = [
    'chrom', 'tsrLeft', 'tsrRight', 'name', 'tsrReads', 'strand',
    'maxTSS-1', 'maxTSS', 'maxTSSReads', 'avgTSS', 'maxTSS-avgTSS', 'stdevAvgTSS',
]
BED_SCORE_MAX = 1000

# output suffix -> tab column scored in the bedGraph
BEDGRAPH_TRACKS = {
    'maxTSSreads': 'maxTSSReads',
    'TSRreads': 'tsrReads',
    'stdev': 'stdevAvgTSS',
}

# one bedGraph/BigWig per strand
STRAND_SUFFIXES = [('+', 'plus'), ('-', 'minus')]


def tsr_names(selected: pd.DataFrame) -> pd.Series:
    return (selected['chr'] + ':' + selected['tsr_left'].astype(str) + '-'
            + selected['tsr_right'].astype(str) + '(' + selected['strand'] + ')')


def to_tab(selected: pd.DataFrame) -> pd.DataFrame:
    """
    Map selected TSRs onto the tab output columns.

    maxTSS is 1-based (maxTSS-1 is its 0-based BED start); avgTSS shares the
    1-based convention so maxTSS-avgTSS equals max_pos - avg_pos.
    """
    tab = pd.DataFrame({
        'chrom': selected['chr'],
        'tsrLeft': selected['tsr_left'].astype('int64'),
        'tsrRight': selected['tsr_right'].astype('int64'),
        'name': tsr_names(selected),
        'tsrReads': selected['tsr_reads'].astype('int64'),
        'strand': selected['strand'],
        'maxTSS-1': selected['max_pos'].astype('int64'),
        'maxTSS': selected['max_pos'].astype('int64') + 1,
        'maxTSSReads': selected['max_pos_reads'].astype('int64'),
        'avgTSS': (selected['avg_pos'] + 1).round(3),
        'maxTSS-avgTSS': selected['max_minus_avg'].round(3),
        'stdevAvgTSS': selected['stdev_avg_pos'].round(3),
    }, columns=TAB_COLUMNS)
    return tab.reset_index(drop=True)


def write_tab(tab: pd.DataFrame, out_path: str):
    tab.to_csv(out_path, sep='\t', index=False)


def write_tsr_bed(tab: pd.DataFrame, out_path: str):
    bed = pd.DataFrame({
        'chrom': tab['chrom'],
        'start': tab['tsrLeft'],
        'end': tab['tsrRight'],
        'name': tab['name'],
        'score': tab['tsrReads'].clip(upper=BED_SCORE_MAX),
        'strand': tab['strand'],
    })
    bed.to_csv(out_path, sep='\t', index=False, header=False)


def write_max_tss_bed(tab: pd.DataFrame, out_path: str):
    bed = pd.DataFrame({
        'chrom': tab['chrom'],
        'start': tab['maxTSS-1'],
        'end': tab['maxTSS'],
        'name': tab['name'],
        'score': tab['maxTSSReads'].clip(upper=BED_SCORE_MAX),
        'strand': tab['strand'],
    })
    bed = bed.sort_values(['chrom', 'start'], kind='mergesort')
    bed.to_csv(out_path, sep='\t', index=False, header=False)


def bedgraph_frame(tab: pd.DataFrame, value_col: str, strand: str) -> pd.DataFrame:
    """1-bp bedGraph at each max TSS position of one strand, sorted by chromosome and start."""
    tab = tab[tab['strand'] == strand]
    bg = pd.DataFrame({
        'chrom': tab['chrom'],
        'start': tab['maxTSS-1'],
        'end': tab['maxTSS'],
        'value': tab[value_col],
    })
    return bg.sort_values(['chrom', 'start'], kind='mergesort').reset_index(drop=True)


def write_bedgraph(bg: pd.DataFrame, out_path: str):
    bg.to_csv(out_path, sep='\t', index=False, header=False)


def write_bigwig(bg: pd.DataFrame, chrom_sizes: Dict[str, int], out_path: str):
    """Write a single-strand bedGraph frame to BigWig."""
    bg = bg[bg['chrom'].isin(chrom_sizes)]

    header = sorted(chrom_sizes.items())
    bw = pyBigWig.open(out_path, "w")
    try:
        bw.addHeader(header)
        for chrom, _ in header:
            chrom_data = bg[bg['chrom'] == chrom]
            if chrom_data.empty:
                continue
            bw.addEntries(
                [chrom] * len(chrom_data),
                chrom_data['start'].astype(int).tolist(),
                ends=chrom_data['end'].astype(int).tolist(),
                values=chrom_data['value'].astype(float).tolist(),
            )
    finally:
        bw.close()


def have_bed_to_bigbed() -> bool:
    return shutil.which("bedToBigBed") is not None


def write_bigbed(bed_path: str, chrom_sizes: Dict[str, int], out_path: str) -> bool:
    """
    Convert a sorted BED6 file with bedToBigBed.

    Returns False, after logging why, when the converter is missing or fails.
    """
    if not have_bed_to_bigbed():
        logger.warning(f"bedToBigBed not found on PATH; skipping {out_path}")
        return False

    tmp_sizes = tempfile.NamedTemporaryFile('w', delete=False, suffix='.chrom.sizes')
    try:
        with tmp_sizes:
            for chrom, size in sorted(chrom_sizes.items()):
                tmp_sizes.write(f"{chrom}\t{size}\n")
        subprocess.run(["bedToBigBed", "-type=bed6", bed_path, tmp_sizes.name, out_path],
                       check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.warning(f"bedToBigBed failed for {out_path}: {e.stderr.strip()}")
        return False
    finally:
        os.unlink(tmp_sizes.name)
    return True


def output_basename(prefix: str, params) -> str:
    return (f"{prefix}_{params.window_size}_{params.min_reads}_{params.min_avg_frag_len}"
            f"_{params.buffer_upstream}_{params.buffer_downstream}")


def write_outputs(selected: pd.DataFrame,
                  chrom_sizes: Dict[str, int],
                  output_dir: Path,
                  basename: str,
                  bigwig: bool = True,
                  bigbed: bool = True) -> Dict[str, Path]:
    """
    Write every output track for the merged TSR selection.

    Returns:
        Mapping of output label to written path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    tab = to_tab(selected)
    written = {}

    def out(suffix):
        return output_dir / f"{basename}-{suffix}"

    written['tab'] = out('TSR.tab')
    write_tab(tab, written['tab'])

    written['tsr_bed'] = out('TSR.bed')
    write_tsr_bed(tab, written['tsr_bed'])
    written['max_tss_bed'] = out('maxTSS.bed')
    write_max_tss_bed(tab, written['max_tss_bed'])

    for label, value_col in BEDGRAPH_TRACKS.items():
        for strand, strand_suffix in STRAND_SUFFIXES:
            bg = bedgraph_frame(tab, value_col, strand)
            track = f'{label}_{strand_suffix}'
            written[track] = out(f'{label}.{strand_suffix}.bedGraph')
            write_bedgraph(bg, written[track])
            if bigwig:
                bw_path = out(f'{label}.{strand_suffix}.bw')
                write_bigwig(bg, chrom_sizes, str(bw_path))
                written[f'{track}_bw'] = bw_path

    if bigbed and not have_bed_to_bigbed():
        logger.warning("bedToBigBed not found on PATH; BigBed tracks will not be written")
    elif bigbed:
        for label in ('tsr_bed', 'max_tss_bed'):
            bb_path = written[label].with_suffix('.bb')
            if write_bigbed(str(written[label]), chrom_sizes, str(bb_path)):
                written[f'{label}_bb'] = bb_path

    for label, path in written.items():
        logger.info(f"[{label}] {path}")
    return written
