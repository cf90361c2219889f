"""
RSEM quantification stage.
"""

import logging
from typing import List

from rsem_star_pipeline.alignment import TRANSCRIPTOME_BAM
from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.utils import CommandRunner

logger = logging.getLogger(__name__)

QUANT_PREFIX = "Quant"
GENES_RESULTS = f"{QUANT_PREFIX}.genes.results"
ISOFORMS_RESULTS = f"{QUANT_PREFIX}.isoforms.results"
MODEL_PLOT = f"{QUANT_PREFIX}.pdf"
RSEM_LOG = "Log.rsem"

QUANTIFICATION_OUTPUTS = (GENES_RESULTS, ISOFORMS_RESULTS, MODEL_PLOT, RSEM_LOG)


def rsem_command(config: PipelineConfig) -> List[str]:
    """
    Build the rsem-calculate-expression command line.

    --estimate-rspd learns the read start position distribution and
    --calc-ci adds credibility intervals; the fixed seed keeps the CI
    sampling reproducible.
    """
    cmd = [config.tools.rsem, "--bam"]
    if config.append_names:
        cmd.append("--append-names")
    cmd += [
        "--estimate-rspd",
        "--calc-ci",
        "--no-bam-output",
        "--seed", str(config.seed),
        "-p", str(config.threads),
        "--ci-memory", str(config.ci_memory_mb),
    ]
    cmd += list(config.layout.rsem_args)
    cmd += [TRANSCRIPTOME_BAM, config.rsem_genome_dir, QUANT_PREFIX]
    return cmd


def run_quantification(config: PipelineConfig, runner: CommandRunner) -> None:
    """Run RSEM, then draw its model diagnostics (needs Rscript)."""
    logger.info(f"Running RSEM: {config.tools.rsem}...")
    runner.run(rsem_command(config), cwd=config.output_dir, log_file=config.path(RSEM_LOG))

    runner.run(
        [config.tools.rsem_plot_model, QUANT_PREFIX, MODEL_PLOT],
        cwd=config.output_dir,
    )
