"""
RSEM/STAR Alignment & Quantification Pipeline

Runs STAR on RNA-seq reads, optionally builds bigWig signal tracks,
sorts the transcriptome BAM for reproducible quantification and runs
RSEM, leaving prefix-named deliverables in one output directory.

Main components:
- Alignment: STAR genome + transcriptome alignment
- Signal tracks: raw and RPM bigWig coverage
- Quantification: RSEM gene and isoform expression
"""

# Version
__version__ = "0.1.0"

from rsem_star_pipeline.config import PipelineConfig, build_config
from rsem_star_pipeline.layout import DataType, LibraryLayout, LAYOUTS
from rsem_star_pipeline.main import run_pipeline, parse_args, main
from rsem_star_pipeline.utils import setup_logger, CommandRunner, PipelineError, UsageError

__all__ = [
    'PipelineConfig',
    'build_config',
    'DataType',
    'LibraryLayout',
    'LAYOUTS',
    'run_pipeline',
    'parse_args',
    'main',
    'setup_logger',
    'CommandRunner',
    'PipelineError',
    'UsageError',
]
