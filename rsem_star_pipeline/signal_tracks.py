"""
Signal track generation.

STAR is re-run in inputAlignmentsFromBAM mode on the sorted genomic BAM
to write bedGraph coverage, once with raw counts and once normalized to
reads per million. Each bedGraph is restricted to primary ("chr")
chromosomes, sorted, and converted to bigWig with bedGraphToBigWig.
"""

import os
import shutil
import logging
from typing import List, Tuple

import pandas as pd

from rsem_star_pipeline.alignment import SORTED_BAM
from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.layout import LibraryLayout
from rsem_star_pipeline.utils import CommandRunner

logger = logging.getLogger(__name__)

PRIMARY_CHROM_PREFIX = "chr"
CHROM_SIZES_FILE = "chrNL.txt"
SORTED_BEDGRAPH = "sig.tmp"
MULTIMAPPING_CLASSES = ("Unique", "UniqueMultiple")

# (track suffix, STAR --outWigNorm value, scratch directory)
NORMALIZATIONS: Tuple[Tuple[str, str, str], ...] = (
    ("raw", "None", "Signal_RAW"),
    ("rpm", "RPM", "Signal_RPM"),
)

BEDGRAPH_COLUMNS = ["chrom", "start", "end", "value"]


def track_files(layout: LibraryLayout, normalization: str) -> List[str]:
    """bigWig files written for one normalization, before prefix renaming."""
    return [
        f"Signal.{multimapping}.{strand}.{normalization}.bw"
        for multimapping in MULTIMAPPING_CLASSES
        for _, strand in layout.track_strands
    ]


def all_track_files(layout: LibraryLayout) -> List[str]:
    tracks = []
    for normalization, _, _ in NORMALIZATIONS:
        tracks.extend(track_files(layout, normalization))
    return tracks


def signal_log_file(prefix: str, normalization: str) -> str:
    return f"{prefix}.Signal.{normalization}.Log.out"


def star_signal_command(config: PipelineConfig, wig_norm: str, scratch_dir: str) -> List[str]:
    """STAR command writing bedGraph files for one normalization."""
    return [
        config.tools.star,
        "--runMode", "inputAlignmentsFromBAM",
        "--inputBAMfile", SORTED_BAM,
        "--outWigType", "bedGraph",
        "--outWigStrand", config.layout.wig_strand,
        "--outWigNorm", wig_norm,
        "--outFileNamePrefix", f"./{scratch_dir}/",
        "--outWigReferencesPrefix", PRIMARY_CHROM_PREFIX,
    ]


def write_chrom_sizes(chrom_name_length: str, output_file: str) -> int:
    """
    Write the STAR chromosome length table restricted to primary chromosomes.

    Args:
        chrom_name_length: STAR's chrNameLength.txt
        output_file: Filtered table for bedGraphToBigWig

    Returns:
        int: Number of chromosomes written
    """
    sizes = pd.read_csv(
        chrom_name_length, sep="\t", header=None,
        names=["chrom", "length"], dtype={"chrom": str, "length": "int64"}
    )
    sizes = sizes[sizes["chrom"].str.startswith(PRIMARY_CHROM_PREFIX)]
    sizes.to_csv(output_file, sep="\t", header=False, index=False)
    logger.debug(f"Wrote {len(sizes)} primary chromosome sizes to {output_file}")
    return len(sizes)


def sort_bedgraph(bedgraph: str, output_file: str) -> int:
    """
    Filter a bedGraph to primary chromosomes and sort it for bigWig conversion.

    Chromosomes are ordered byte-wise, starts numerically. Signal values
    are copied through as text.

    Returns:
        int: Number of intervals written
    """
    if os.path.getsize(bedgraph) == 0:
        open(output_file, 'w').close()
        return 0

    intervals = pd.read_csv(
        bedgraph, sep="\t", header=None, names=BEDGRAPH_COLUMNS,
        dtype={"chrom": str, "start": "int64", "end": "int64", "value": str}
    )
    intervals = intervals[intervals["chrom"].str.startswith(PRIMARY_CHROM_PREFIX)]
    intervals = intervals.sort_values(["chrom", "start"], kind="mergesort")
    intervals.to_csv(output_file, sep="\t", header=False, index=False)
    return len(intervals)


def run_signal_tracks(config: PipelineConfig, runner: CommandRunner) -> List[str]:
    """
    Generate raw and RPM bigWig tracks from the sorted genomic BAM.

    Returns:
        List[str]: bigWig files written to the output directory
    """
    workdir = config.output_dir
    layout = config.layout

    for normalization, wig_norm, scratch_dir in NORMALIZATIONS:
        logger.info(f"Generating bedGraph signal tracks ({normalization})...")
        os.makedirs(os.path.join(workdir, scratch_dir))
        runner.run(star_signal_command(config, wig_norm, scratch_dir), cwd=workdir)

    # exclude spike-ins and unplaced contigs
    write_chrom_sizes(
        os.path.join(config.star_genome_dir, "chrNameLength.txt"),
        config.path(CHROM_SIZES_FILE),
    )

    logger.info("Converting bedGraph tracks to bigWig tracks...")
    tracks = []
    for normalization, _, scratch_dir in NORMALIZATIONS:
        for multimapping in MULTIMAPPING_CLASSES:
            for index, strand in layout.track_strands:
                bedgraph = os.path.join(
                    workdir, scratch_dir, f"Signal.{multimapping}.str{index}.out.bg"
                )
                count = sort_bedgraph(bedgraph, config.path(SORTED_BEDGRAPH))
                logger.debug(f"{bedgraph}: {count} intervals")
                track = f"Signal.{multimapping}.{strand}.{normalization}.bw"
                runner.run(
                    [config.tools.bedgraph_to_bigwig, SORTED_BEDGRAPH, CHROM_SIZES_FILE, track],
                    cwd=workdir,
                )
                tracks.append(track)

    os.remove(config.path(SORTED_BEDGRAPH))

    logger.info("Deleting bedGraph tracks...")
    for normalization, _, scratch_dir in NORMALIZATIONS:
        scratch = os.path.join(workdir, scratch_dir)
        shutil.move(
            os.path.join(scratch, "Log.out"),
            config.path(signal_log_file(config.prefix, normalization)),
        )
        shutil.rmtree(scratch)

    return tracks
