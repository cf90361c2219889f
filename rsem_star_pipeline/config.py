"""
Configuration for the RSEM/STAR pipeline.

This module turns parsed command-line arguments (plus an optional YAML
file with executable paths and BAM header metadata) into a single
immutable PipelineConfig that every stage receives.
"""

import os
import argparse
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple

import yaml

from rsem_star_pipeline.layout import DataType, LibraryLayout, get_layout
from rsem_star_pipeline.utils import UsageError, is_within

logger = logging.getLogger(__name__)

DEFAULT_THREADS = 10
DEFAULT_MEMORY_GB = 60
DEFAULT_PREFIX = "align"
DEFAULT_MAX_MISMATCH = 0.04
DEFAULT_DATA_TYPE = DataType.STR_PE

# Held back from the sort buffer and RSEM to avoid running out of memory
MEMORY_HEADROOM_GB = 3
DEFAULT_SEED = 12345

# Generic output name stems; a run prefix equal to one would be renamed twice
RESERVED_PREFIXES = ("Aligned", "Log", "Signal", "Quant")

# ENCODE long-RNA metadata written as @CO lines into the BAM header
DEFAULT_BAM_COMMENTS = (
    "LIBID:ENCLB175ZZZ",
    "REFID:ENCFF001RGS",
    "ANNID:gencode.v19.annotation.gtf.gz",
    "SPIKEID:ENCFF001RTP VN:Ambion-ERCC Mix, Cat no. 445670",
)


@dataclass(frozen=True)
class ToolPaths:
    """Executables invoked by the pipeline."""

    star: str = "STAR"
    rsem: str = "rsem-calculate-expression"
    rsem_plot_model: str = "rsem-plot-model"
    samtools: str = "samtools"
    bedgraph_to_bigwig: str = "bedGraphToBigWig"
    sort: str = "sort"


@dataclass(frozen=True)
class PipelineConfig:
    """Resolved run configuration, built once by build_config."""

    output_dir: str
    read1: str
    star_genome_dir: str
    rsem_genome_dir: str
    read2: str = ""
    threads: int = DEFAULT_THREADS
    memory_gb: int = DEFAULT_MEMORY_GB
    prefix: str = DEFAULT_PREFIX
    max_mismatch: float = DEFAULT_MAX_MISMATCH
    data_type: DataType = DEFAULT_DATA_TYPE
    append_names: bool = False
    disable_bw: bool = False
    zcat_flag: bool = False
    summary: bool = True
    tools: ToolPaths = field(default_factory=ToolPaths)
    bam_comments: Tuple[str, ...] = DEFAULT_BAM_COMMENTS
    seed: int = DEFAULT_SEED

    @property
    def layout(self) -> LibraryLayout:
        return get_layout(self.data_type)

    @property
    def usable_memory_gb(self) -> int:
        return self.memory_gb - MEMORY_HEADROOM_GB

    @property
    def sort_buffer(self) -> str:
        """Buffer size argument for GNU sort."""
        return f"{self.usable_memory_gb}G"

    @property
    def ci_memory_mb(self) -> int:
        """Memory for RSEM's credibility interval step, in MB."""
        return self.usable_memory_gb * 1000

    def path(self, name: str) -> str:
        """Absolute path of a file in the output directory."""
        return os.path.join(self.output_dir, name)

    def required_tools(self) -> Tuple[str, ...]:
        tools = [self.tools.star, self.tools.samtools, self.tools.sort,
                 self.tools.rsem, self.tools.rsem_plot_model]
        if not self.disable_bw:
            tools.append(self.tools.bedgraph_to_bigwig)
        if self.zcat_flag:
            tools.append("zcat")
        return tuple(tools)


def load_config_file(config_file: str) -> Dict[str, Any]:
    """
    Load tool paths and BAM metadata from a YAML file.

    Args:
        config_file: Path to YAML config file

    Returns:
        Dict with optional 'tools', 'bam_comments' and 'seed' entries

    Raises:
        UsageError: If the file cannot be read or has unknown keys
    """
    try:
        with open(config_file) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise UsageError(f"--config: cannot load {config_file}: {e}") from e

    if not isinstance(config, dict):
        raise UsageError(f"--config: {config_file} must contain a mapping")

    unknown = set(config) - {"tools", "bam_comments", "seed"}
    if unknown:
        raise UsageError(f"--config: unknown keys {', '.join(sorted(unknown))}")

    tools = config.get("tools") or {}
    if not isinstance(tools, dict):
        raise UsageError("--config: 'tools' must be a mapping")
    unknown_tools = set(tools) - set(ToolPaths.__dataclass_fields__)
    if unknown_tools:
        raise UsageError(f"--config: unknown tools {', '.join(sorted(unknown_tools))}")
    for name, value in tools.items():
        if not isinstance(value, str) or not value.strip():
            raise UsageError(f"--config: tool '{name}' must be a non-empty path")

    comments = config.get("bam_comments")
    if comments is not None and not isinstance(comments, list):
        raise UsageError("--config: 'bam_comments' must be a list")

    seed = config.get("seed")
    if seed is not None and not isinstance(seed, int):
        raise UsageError("--config: 'seed' must be an integer")

    logger.info(f"Loaded configuration from {config_file}")
    return config


def _absolute_reads(reads: str) -> str:
    # STAR accepts comma-separated lists of read files
    return ",".join(os.path.abspath(part) for part in reads.split(","))


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """
    Validate parsed arguments and build the run configuration.

    Nothing is executed and nothing on disk is changed here.

    Raises:
        UsageError: On any invalid or missing argument
    """
    if not args.read1:
        raise UsageError("--read1: Wrong! read1 NOT found!")

    try:
        data_type = DataType(args.data_type)
    except ValueError:
        raise UsageError(
            "--data-type: Wrong! Possible values: "
            + " ".join(d.value for d in DataType)
        ) from None

    read2 = args.read2 or ""
    if get_layout(data_type).paired:
        if not read2:
            raise UsageError("--read2: Wrong! read2 NOT found!")
    elif read2:
        logger.warning(f"Ignoring --read2 for single-end data type {data_type}")
        read2 = ""

    if not args.output:
        raise UsageError("-o|--output: Wrong! Output directory NOT found!")
    if not args.star_genome_dir:
        raise UsageError("--star-genome-dir: Wrong! STAR genome directory NOT found!")
    if not args.rsem_genome_dir:
        raise UsageError("--rsem-genome-dir: Wrong! RSEM genome directory NOT found!")

    if args.thread < 1:
        raise UsageError("-t|--thread: must be at least 1")
    if args.mem <= MEMORY_HEADROOM_GB:
        raise UsageError(f"--mem: must be larger than {MEMORY_HEADROOM_GB} GB")
    if not 0 < args.max_mismatch <= 1:
        raise UsageError("--max-mismatch: must be in (0, 1]")
    if not args.prefix or os.sep in args.prefix:
        raise UsageError("-p|--prefix: must be a non-empty file name prefix")
    if args.prefix in RESERVED_PREFIXES:
        raise UsageError(
            f"-p|--prefix: {args.prefix} clashes with generic output names "
            f"({', '.join(RESERVED_PREFIXES)})"
        )

    output_dir = os.path.abspath(args.output)
    read1 = _absolute_reads(args.read1)
    read2 = _absolute_reads(read2) if read2 else ""
    star_genome_dir = os.path.abspath(args.star_genome_dir)
    rsem_genome_dir = os.path.abspath(args.rsem_genome_dir)

    inputs = read1.split(",") + (read2.split(",") if read2 else [])
    inputs += [star_genome_dir, rsem_genome_dir]
    for path in inputs:
        if is_within(path, output_dir):
            raise UsageError(
                f"-o|--output: {output_dir} is wiped before the run but contains input {path}"
            )

    file_config: Dict[str, Any] = {}
    if getattr(args, "config", None):
        file_config = load_config_file(args.config)

    comments = file_config.get("bam_comments")
    seed = file_config.get("seed")

    return PipelineConfig(
        output_dir=output_dir,
        read1=read1,
        read2=read2,
        star_genome_dir=star_genome_dir,
        rsem_genome_dir=rsem_genome_dir,
        threads=args.thread,
        memory_gb=args.mem,
        prefix=args.prefix,
        max_mismatch=args.max_mismatch,
        data_type=data_type,
        append_names=args.append_names,
        disable_bw=args.disable_bw,
        zcat_flag=args.zcat_flag,
        summary=not getattr(args, "no_summary", False),
        tools=ToolPaths(**(file_config.get("tools") or {})),
        bam_comments=tuple(str(c) for c in comments) if comments is not None else DEFAULT_BAM_COMMENTS,
        seed=seed if seed is not None else DEFAULT_SEED,
    )


def describe_config(config: PipelineConfig) -> Dict[str, Any]:
    """Parameters echoed at the start of a run."""
    return {
        "THREAD": config.threads,
        "MEMORY": config.memory_gb,
        "OUTPUT_DIR": config.output_dir,
        "PREFIX": config.prefix,
        "STAR_GENOME_DIR": config.star_genome_dir,
        "RSEM_GENOME_DIR": config.rsem_genome_dir,
        "MAX_MISMATCH": config.max_mismatch,
        "DATA_TYPE": config.data_type.value,
        "READ1": config.read1,
        "READ2": config.read2,
        "APPEND_NAMES": config.append_names,
        "DISABLE_BW": config.disable_bw,
        "ZCAT_FLAG": config.zcat_flag,
    }
