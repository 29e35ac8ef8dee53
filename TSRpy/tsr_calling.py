#!/usr/bin/env python3
"""
TSR Calling - Call transcription start regions from PRO-Cap fragments

Each (chromosome, strand) partition runs through signal building, gap filling,
window aggregation and region selection in one worker; outputs are written
only after every partition has finished.
"""

import logging
from dataclasses import dataclass
from multiprocessing import Pool, cpu_count
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import typer

from TSRpy import formatter
from TSRpy.fragments import partition_fragments, read_fragments, resolve_chrom_sizes
from TSRpy.selection import select_regions
from TSRpy.signal_track import build_signal_track, fill_gaps
from TSRpy.windows import aggregate_windows, empty_candidates

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

app = typer.Typer(help=f"Call transcription start regions from fragments (v{__version__})")


@dataclass(frozen=True)
class TsrParams:
    """Thresholds and buffers shared by every partition."""
    window_size: int = 20
    min_reads: int = 10
    min_avg_frag_len: int = 20
    buffer_upstream: int = 0
    buffer_downstream: int = 0
    max_frag_len: int = 600
    seed: Optional[int] = None
    on_out_of_range: str = 'error'

    def __post_init__(self):
        if self.window_size < 1:
            raise ValueError(f"window size must be at least 1 bp (got {self.window_size})")
        if self.min_reads < 1:
            raise ValueError(f"minimum read depth must be at least 1 (got {self.min_reads})")
        for name in ('min_avg_frag_len', 'buffer_upstream', 'buffer_downstream', 'max_frag_len'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name.replace('_', ' ')} must not be negative (got {getattr(self, name)})")
        if self.on_out_of_range not in ('error', 'drop'):
            raise ValueError(f"Unknown out-of-range policy: {self.on_out_of_range}")
        if self.min_reads < 3:
            logger.warning(f"Minimum read depth {self.min_reads} is below the practical floor of 3")


def process_partition(chrom: str,
                      strand: str,
                      fragments: pd.DataFrame,
                      chrom_length: int,
                      params: TsrParams) -> pd.DataFrame:
    """
    Run one chromosome/strand partition from fragments to selected TSRs.
    """
    signal = build_signal_track(fragments, strand)
    track = fill_gaps(signal, chrom, strand, chrom_length, params.on_out_of_range)
    candidates = aggregate_windows(track, params.window_size, params.min_reads, params.min_avg_frag_len)
    selected = select_regions(candidates, params.buffer_upstream, params.buffer_downstream, params.seed)
    logger.info(f"{chrom} ({strand}): {len(fragments)} fragments, {len(signal)} TSS positions, "
                f"{len(candidates)} candidates, {len(selected)} TSRs")
    return selected


def _process_partition_wrapper(args):
    """Wrapper function for multiprocessing"""
    return process_partition(*args)


def call_tsrs(fragments: pd.DataFrame,
              chrom_sizes: Dict[str, int],
              params: TsrParams,
              processes: int = 1) -> pd.DataFrame:
    """
    Call TSRs over all partitions and merge them.

    A failure in any partition propagates; leaving the pool terminates the
    remaining workers.

    Returns:
        Selected TSRs sorted by chromosome and left coordinate
    """
    partitions = partition_fragments(fragments, chrom_sizes, params.max_frag_len)
    args_list = [
        (chrom, strand, group, chrom_sizes[chrom], params)
        for (chrom, strand), group in partitions.items()
    ]

    processes = max(1, min(processes, len(args_list)))
    if processes > 1:
        with Pool(processes=processes) as pool:
            results = pool.map(_process_partition_wrapper, args_list)
    else:
        results = [_process_partition_wrapper(args) for args in args_list]

    results = [df for df in results if not df.empty]
    if not results:
        return empty_candidates()
    merged = pd.concat(results, ignore_index=True)
    return merged.sort_values(['chr', 'tsr_left', 'strand'], kind='mergesort').reset_index(drop=True)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    input_file: Path = typer.Option(
        None,
        "-i", "--input",
        exists=True,
        dir_okay=False,
        help="Input fragments in BED6 format (chrom, start, end, name, score, strand)",
    ),
    chrom_sizes: Optional[Path] = typer.Option(
        None,
        "-g", "--chrom-sizes",
        exists=True,
        dir_okay=False,
        help="Chromosome sizes file (chrom<TAB>length)",
    ),
    reference: Optional[Path] = typer.Option(
        None,
        "-r", "--reference",
        exists=True,
        dir_okay=False,
        help="Reference genome FASTA (for chromosome sizes)",
    ),
    bam: Optional[Path] = typer.Option(
        None,
        "--bam",
        exists=True,
        dir_okay=False,
        help="BAM file whose header supplies chromosome sizes",
    ),
    output_dir: Path = typer.Option(
        Path("."),
        "-o", "--output-dir",
        help="Output directory",
    ),
    prefix: Optional[str] = typer.Option(
        None,
        "--prefix",
        help="Output file prefix (default: input file name)",
    ),
    window_size: int = typer.Option(20, "-w", "--window-size", help="Window size (bp)"),
    min_reads: int = typer.Option(10, "-d", "--min-reads", help="Minimum read depth per window (>= 1, 3 or more recommended)"),
    min_avg_frag_len: int = typer.Option(20, "-l", "--min-avg-frag-len", help="Minimum average fragment length (nt)"),
    buffer_upstream: int = typer.Option(0, "--buffer-upstream", help="Upstream buffer around each TSR (bp)"),
    buffer_downstream: int = typer.Option(0, "--buffer-downstream", help="Downstream buffer around each TSR (bp)"),
    max_frag_len: int = typer.Option(600, "--max-frag-len", help="Maximum fragment length to admit (nt)"),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Order equal-depth candidates by a hash seeded with this value instead of preferring the leftmost",
    ),
    drop_out_of_range: bool = typer.Option(
        False,
        "--drop-out-of-range",
        help="Drop TSS signal beyond the chromosome length instead of failing",
    ),
    bigwig: bool = typer.Option(True, "--bigwig/--no-bigwig", help="Also write BigWig tracks"),
    bigbed: bool = typer.Option(True, "--bigbed/--no-bigbed", help="Also write BigBed tracks (needs bedToBigBed)"),
    processes: Optional[int] = typer.Option(
        None,
        "-p", "--processes",
        help="Number of processes (default: CPU cores - 1)",
    ),
    verbose: bool = typer.Option(
        False,
        "-v", "--verbose",
        help="Enable verbose output",
    ),
):
    """
    Call transcription start regions (TSRs) from PRO-Cap fragments.

    Example:
        tsrpy call -i sample.bed -g hg38.chrom.sizes -w 20 -d 10 -l 20 -o tsr/
    """
    if ctx.invoked_subcommand is not None:
        return

    if input_file is None:
        raise typer.BadParameter("A fragment BED file is required", param_hint="'-i' / '--input'")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        params = TsrParams(
            window_size=window_size,
            min_reads=min_reads,
            min_avg_frag_len=min_avg_frag_len,
            buffer_upstream=buffer_upstream,
            buffer_downstream=buffer_downstream,
            max_frag_len=max_frag_len,
            seed=seed,
            on_out_of_range='drop' if drop_out_of_range else 'error',
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

    if not (chrom_sizes or reference or bam):
        raise typer.BadParameter("One of --chrom-sizes, --reference or --bam is required")

    if processes is None:
        processes = max(1, cpu_count() - 1)

    try:
        sizes = resolve_chrom_sizes(
            str(chrom_sizes) if chrom_sizes else None,
            str(reference) if reference else None,
            str(bam) if bam else None,
        )
        typer.echo(f"Reading fragments from {input_file}")
        fragments = read_fragments(str(input_file))
        tsrs = call_tsrs(fragments, sizes, params, processes)
    except (ValueError, OSError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    basename = formatter.output_basename(prefix or input_file.name.split('.')[0], params)
    written = formatter.write_outputs(tsrs, sizes, output_dir, basename, bigwig=bigwig, bigbed=bigbed)
    typer.echo(f"Done! {len(tsrs)} TSRs written to {written['tab']}")


if __name__ == '__main__':
    app()
