"""
Pipeline stages.

Each stage names the files it needs in the output directory before it
runs and the files it must leave behind, so a run stops at the first
stage whose contract is broken rather than at a confusing tool error
further down.
"""

import os
import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple

from rsem_star_pipeline.alignment import (
    ALIGNMENT_OUTPUTS,
    SORTED_BAM,
    TRANSCRIPTOME_BAM,
    run_alignment,
)
from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.finalize import final_outputs, finalize_outputs
from rsem_star_pipeline.quantification import QUANTIFICATION_OUTPUTS, run_quantification
from rsem_star_pipeline.signal_tracks import all_track_files, run_signal_tracks, signal_log_file
from rsem_star_pipeline.summary import write_run_summary
from rsem_star_pipeline.transcriptome import normalize_transcriptome_bam
from rsem_star_pipeline.utils import CommandRunner, StageContractError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """One step of the pipeline and its file contract."""

    name: str
    action: Callable[[PipelineConfig, CommandRunner], object]
    requires: Tuple[str, ...] = ()
    produces: Tuple[str, ...] = ()


def _finalize(config: PipelineConfig, runner: CommandRunner) -> None:
    finalize_outputs(config)


def _summarize(config: PipelineConfig, runner: CommandRunner) -> None:
    write_run_summary(config)


def build_stages(config: PipelineConfig) -> List[Stage]:
    """Stages for this run, in execution order."""
    layout = config.layout
    stages = [
        Stage("alignment", run_alignment, produces=ALIGNMENT_OUTPUTS),
    ]

    if config.disable_bw:
        logger.info("Skip signal tracks generation.")
    else:
        stages.append(Stage(
            "signal_tracks",
            run_signal_tracks,
            requires=(SORTED_BAM,),
            produces=tuple(all_track_files(layout)) + (
                signal_log_file(config.prefix, "raw"),
                signal_log_file(config.prefix, "rpm"),
            ),
        ))

    stages += [
        Stage(
            "transcriptome_sort",
            normalize_transcriptome_bam,
            requires=(TRANSCRIPTOME_BAM,),
            produces=(TRANSCRIPTOME_BAM,),
        ),
        Stage(
            "quantification",
            run_quantification,
            requires=(TRANSCRIPTOME_BAM,),
            produces=QUANTIFICATION_OUTPUTS,
        ),
        Stage(
            "finalize",
            _finalize,
            requires=QUANTIFICATION_OUTPUTS,
            produces=tuple(final_outputs(config)),
        ),
    ]

    if config.summary:
        stages.append(Stage(
            "summary",
            _summarize,
            requires=(f"{config.prefix}.Log.final.out", f"{config.prefix}.genes.results"),
            produces=(f"{config.prefix}.summary.tsv",),
        ))
    return stages


def _missing(config: PipelineConfig, names: Tuple[str, ...]) -> List[str]:
    return [name for name in names if not os.path.exists(config.path(name))]


def run_stages(stages: List[Stage], config: PipelineConfig, runner: CommandRunner) -> None:
    """
    Run stages in order, checking each stage's file contract.

    Raises:
        StageContractError: If a required input or declared output is missing
    """
    for stage in stages:
        missing = _missing(config, stage.requires)
        if missing:
            raise StageContractError(
                f"Stage '{stage.name}' is missing inputs: {', '.join(missing)}"
            )

        logger.info(f"=== Stage: {stage.name} ===")
        stage.action(config, runner)

        missing = _missing(config, stage.produces)
        if missing:
            raise StageContractError(
                f"Stage '{stage.name}' did not produce: {', '.join(missing)}"
            )
