"""
STAR alignment stage.

Maps the reads once, producing a coordinate-sorted genomic BAM, an
unsorted transcriptome BAM for RSEM, the splice junction table and
STAR's log files in the output directory.
"""

import logging
from typing import List

from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.utils import CommandRunner

logger = logging.getLogger(__name__)

SORTED_BAM = "Aligned.sortedByCoord.out.bam"
TRANSCRIPTOME_BAM = "Aligned.toTranscriptome.out.bam"
SPLICE_JUNCTIONS = "SJ.out.tab"
FINAL_LOG = "Log.final.out"
HEADER_COMMENTS_FILE = "bamHeaderComments.txt"
STAR_TMP_DIR = "_STARtmp"

ALIGNMENT_OUTPUTS = (SORTED_BAM, TRANSCRIPTOME_BAM, SPLICE_JUNCTIONS, FINAL_LOG)


def write_header_comments(path: str, comments) -> None:
    """Write @CO lines for STAR's --outSAMheaderCommentFile."""
    with open(path, 'w') as f:
        for comment in comments:
            f.write(f"@CO\t{comment}\n")


def star_align_command(config: PipelineConfig) -> List[str]:
    """
    Build the STAR command line for the alignment run.

    Args:
        config: Run configuration

    Returns:
        List[str]: STAR command and arguments
    """
    reads = [config.read1]
    if config.read2:
        reads.append(config.read2)

    cmd = [
        config.tools.star,
        "--genomeDir", config.star_genome_dir,
        "--readFilesIn", *reads,
        "--outSAMunmapped", "Within",
        "--outFilterType", "BySJout",
        "--outSAMattributes", "NH", "HI", "AS", "NM", "MD",
        "--outFilterMultimapNmax", "20",
        "--outFilterMismatchNmax", "999",
        "--outFilterMismatchNoverReadLmax", str(config.max_mismatch),
        "--alignIntronMin", "20",
        "--alignIntronMax", "1000000",
        "--alignMatesGapMax", "1000000",
        "--alignSJoverhangMin", "8",
        "--alignSJDBoverhangMin", "1",
        "--sjdbScore", "1",
    ]
    if config.zcat_flag:
        cmd += ["--readFilesCommand", "zcat"]

    cmd += [
        "--runThreadN", str(config.threads),
        "--genomeLoad", "NoSharedMemory",
        "--limitBAMsortRAM", "0",
        "--outSAMtype", "BAM", "SortedByCoordinate",
        "--quantMode", "TranscriptomeSAM",
    ]
    cmd += list(config.layout.star_strand_args)
    cmd += [
        "--outSAMheaderCommentFile", HEADER_COMMENTS_FILE,
        "--outSAMheaderHD", "@HD", "VN:1.4", "SO:coordinate",
    ]
    return cmd


def run_alignment(config: PipelineConfig, runner: CommandRunner) -> None:
    """Run STAR in the output directory."""
    write_header_comments(config.path(HEADER_COMMENTS_FILE), config.bam_comments)
    logger.info(f"Aligning {config.data_type} reads with STAR")
    runner.run(star_align_command(config), cwd=config.output_dir)
