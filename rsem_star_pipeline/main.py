"""
RSEM/STAR pipeline - main module

This is the entry point for the pipeline, which handles command-line
arguments and runs the stages in order:

    STAR alignment -> bigWig signal tracks (optional) ->
    transcriptome BAM sort -> RSEM -> renaming -> run summary

All outputs are written to the output directory, which is wiped first.
"""

import sys
import logging
import argparse
import subprocess
from typing import List, Optional

from rsem_star_pipeline import __version__
from rsem_star_pipeline.config import (
    DEFAULT_DATA_TYPE,
    DEFAULT_MAX_MISMATCH,
    DEFAULT_MEMORY_GB,
    DEFAULT_PREFIX,
    DEFAULT_THREADS,
    PipelineConfig,
    build_config,
    describe_config,
)
from rsem_star_pipeline.layout import DataType
from rsem_star_pipeline.stages import build_stages, run_stages
from rsem_star_pipeline.utils import (
    CommandRunner,
    PipelineError,
    UsageError,
    check_dependencies,
    setup_logger,
)
from rsem_star_pipeline.workspace import prepare_workspace

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Command-line interface of the pipeline."""
    parser = argparse.ArgumentParser(
        prog="rsem-star-pipeline",
        description="Align RNA-seq reads with STAR and quantify expression with RSEM",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "-o", "--output",
        help="The output folder (deleted and recreated)"
    )
    parser.add_argument(
        "-p", "--prefix",
        default=DEFAULT_PREFIX,
        help="The output prefix"
    )
    parser.add_argument(
        "-t", "--thread",
        type=int,
        default=DEFAULT_THREADS,
        help="Number of CPUs"
    )
    parser.add_argument(
        "--max-mismatch",
        type=float,
        default=DEFAULT_MAX_MISMATCH,
        help="--outFilterMismatchNoverReadLmax in STAR"
    )
    parser.add_argument(
        "--mem",
        type=int,
        default=DEFAULT_MEMORY_GB,
        help="Memory in GB; 3 GB are held back, the rest goes to sort and RSEM --ci-memory"
    )

    # Reference and input files
    input_group = parser.add_argument_group("Inputs")
    input_group.add_argument(
        "--rsem-genome-dir",
        help="RSEM reference (directory and reference name)"
    )
    input_group.add_argument(
        "--star-genome-dir",
        help="STAR genome directory"
    )
    input_group.add_argument(
        "--read1",
        help="FASTQ of read1"
    )
    input_group.add_argument(
        "--read2",
        default="",
        help="FASTQ of read2 (not set if single-end)"
    )
    input_group.add_argument(
        "--data-type",
        choices=[d.value for d in DataType],
        default=DEFAULT_DATA_TYPE.value,
        help="RNA-seq type: stranded/unstranded, single/paired-end"
    )

    options_group = parser.add_argument_group("Options")
    options_group.add_argument(
        "--append-names",
        action="store_true",
        help="Run RSEM with --append-names"
    )
    options_group.add_argument(
        "--disable-bw",
        action="store_true",
        help="Do not generate bigWig files"
    )
    options_group.add_argument(
        "--zcat-flag",
        action="store_true",
        help="Input FASTQ files are gzipped"
    )
    options_group.add_argument(
        "--config",
        help="YAML file with tool paths, BAM header comments and RSEM seed"
    )
    options_group.add_argument(
        "--no-summary",
        action="store_true",
        help="Do not write <prefix>.summary.tsv"
    )
    options_group.add_argument(
        "--skip-tool-check",
        action="store_true",
        help="Do not check that the external tools are on PATH"
    )
    options_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    options_group.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def run_pipeline(
    config: PipelineConfig,
    runner: Optional[CommandRunner] = None,
    check_tools: bool = True,
    console_level: int = logging.INFO
) -> None:
    """
    Run every stage for a resolved configuration.

    Args:
        config: Run configuration
        runner: Command runner (a real one if not given)
        check_tools: Check external tools before touching the output directory
        console_level: Console logging level

    Raises:
        PipelineError: On orchestration failures
        subprocess.CalledProcessError: If an external tool fails
    """
    runner = runner or CommandRunner()

    if check_tools:
        logger.info("Checking dependencies...")
        check_dependencies(config.required_tools(), runner)

    prepare_workspace(config.output_dir)
    setup_logger(
        config.path(f"{config.prefix}.pipeline.log"),
        console_level=console_level,
        file_level=logging.DEBUG
    )

    logger.info("Running pipeline with following parameters:")
    for name, value in describe_config(config).items():
        logger.info(f"{name}={value}")

    run_stages(build_stages(config), config, runner)
    logger.info("RSEM_STAR pipeline done.")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns the process exit code; usage errors exit through argparse
    with status 2.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help(sys.stderr)
        return 2

    args = parser.parse_args(argv)
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logger(console_level=log_level, file_level=logging.DEBUG)

    try:
        config = build_config(args)
    except UsageError as e:
        parser.error(str(e))

    try:
        run_pipeline(config, check_tools=not args.skip_tool_check, console_level=log_level)
        return 0
    except subprocess.CalledProcessError as e:
        logger.error(f"Pipeline failed: {e}")
        logger.debug("Traceback:", exc_info=True)
        return e.returncode if e.returncode > 0 else 1
    except PipelineError as e:
        logger.error(f"Pipeline failed: {e}")
        logger.debug("Traceback:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
