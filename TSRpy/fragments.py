"""
Fragments - Read BED6 fragment files and partition them by chromosome and strand
"""

import logging
from typing import Dict, Optional

import pandas as pd
import pysam
from Bio import SeqIO

logger = logging.getLogger(__name__)

BED6_COLUMNS = ['chr', 'start', 'end', 'name', 'score', 'strand']
STRANDS = ('+', '-')


def load_chrom_sizes(chrom_sizes_path: str) -> Dict[str, int]:
    """Load a two-column chrom.sizes table into a {chrom: length} mapping."""
    chrom_sizes = {}
    with open(chrom_sizes_path) as f:
        for line in f:
            fields = line.strip().split()
            if len(fields) < 2 or line.startswith('#'):
                continue
            chrom_sizes[fields[0]] = int(fields[1])
    if not chrom_sizes:
        raise ValueError(f"No chromosome lengths found in {chrom_sizes_path}")
    return chrom_sizes


def chrom_sizes_from_fasta(fasta_path: str) -> Dict[str, int]:
    return {record.id: len(record.seq) for record in SeqIO.parse(fasta_path, "fasta")}


def chrom_sizes_from_bam(bam_path: str) -> Dict[str, int]:
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        return dict(zip(bam.references, bam.lengths))


def resolve_chrom_sizes(chrom_sizes: Optional[str] = None,
                        reference: Optional[str] = None,
                        bam: Optional[str] = None) -> Dict[str, int]:
    """
    Pick the chromosome length source: an explicit chrom.sizes file wins,
    then the reference FASTA, then the BAM header.
    """
    if chrom_sizes:
        logger.info(f"Using chromosome sizes file: {chrom_sizes}")
        return load_chrom_sizes(chrom_sizes)
    if reference:
        logger.info(f"Extracting chromosome sizes from reference genome: {reference}")
        return chrom_sizes_from_fasta(reference)
    if bam:
        logger.info(f"Extracting chromosome sizes from BAM header: {bam}")
        return chrom_sizes_from_bam(bam)
    raise ValueError("A chromosome size source is required (chrom.sizes, reference FASTA or BAM)")


def read_fragments(bed_path: str) -> pd.DataFrame:
    """
    Read a BED6 fragment file.

    Returns:
        DataFrame with chr, start, end, strand and length columns
    """
    df = pd.read_csv(
        bed_path,
        sep='\t',
        header=None,
        usecols=range(6),
        names=BED6_COLUMNS,
        comment='#',
        dtype=str,
        compression='infer',
    )
    # track/browser header lines
    df = df[~df['chr'].str.startswith(('track', 'browser'))]
    df = df.astype({'start': 'int64', 'end': 'int64'})

    bad = df[(df['start'] < 0) | (df['end'] <= df['start'])]
    if not bad.empty:
        first = bad.iloc[0]
        raise ValueError(
            f"{len(bad)} malformed fragments in {bed_path}, "
            f"e.g. {first['chr']}:{first['start']}-{first['end']}"
        )

    unstranded = ~df['strand'].isin(STRANDS)
    if unstranded.any():
        logger.warning(f"Dropping {int(unstranded.sum())} fragments without +/- strand")
        df = df[~unstranded]

    df = df[['chr', 'start', 'end', 'strand']].copy()
    df['length'] = df['end'] - df['start']
    return df.reset_index(drop=True)


def partition_fragments(fragments: pd.DataFrame,
                        chrom_sizes: Dict[str, int],
                        max_frag_len: int) -> Dict[tuple, pd.DataFrame]:
    """
    Bucket fragments by (chromosome, strand).

    Fragments longer than max_frag_len are discarded, as are fragments on
    chromosomes missing from the size table.
    """
    too_long = fragments['length'] > max_frag_len
    if too_long.any():
        logger.info(f"Discarding {int(too_long.sum())} fragments longer than {max_frag_len} nt")
    kept = fragments[~too_long]

    unknown = sorted(set(kept['chr']) - set(chrom_sizes))
    if unknown:
        logger.warning(f"Dropping fragments on chromosomes missing from the size table: {', '.join(unknown)}")
        kept = kept[kept['chr'].isin(chrom_sizes)]

    partitions = {}
    for (chr_, strand), group in kept.groupby(['chr', 'strand'], sort=True):
        partitions[(chr_, strand)] = group.reset_index(drop=True)
    logger.info(f"Partitioned {len(kept)} fragments into {len(partitions)} chromosome/strand groups")
    return partitions
