"""
Output finalization: temp file cleanup and prefix renaming.
"""

import os
import glob
import logging
from typing import List, Dict

from rsem_star_pipeline.alignment import (
    SORTED_BAM,
    TRANSCRIPTOME_BAM,
    SPLICE_JUNCTIONS,
    FINAL_LOG,
    STAR_TMP_DIR,
)
from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.quantification import (
    GENES_RESULTS,
    ISOFORMS_RESULTS,
    MODEL_PLOT,
    RSEM_LOG,
)
from rsem_star_pipeline.signal_tracks import SORTED_BEDGRAPH, all_track_files
from rsem_star_pipeline.utils import remove_paths

logger = logging.getLogger(__name__)

TEMP_PATTERNS = (STAR_TMP_DIR, "*out.bg", SORTED_BEDGRAPH)


def fixed_renames(prefix: str) -> Dict[str, str]:
    return {
        GENES_RESULTS: f"{prefix}.genes.results",
        ISOFORMS_RESULTS: f"{prefix}.isoforms.results",
        MODEL_PLOT: f"{prefix}.Quant.pdf",
        RSEM_LOG: f"{prefix}.rsem.log",
        SPLICE_JUNCTIONS: f"{prefix}.SJ.out.tab",
    }


def prefixed_name(name: str, prefix: str) -> str:
    """
    Map a generically named output to its prefixed name.

    Aligned.* and Signal.* lose their generic prefix, Log.* keeps it
    behind the run prefix. Names that match nothing are returned as is.
    """
    fixed = fixed_renames(prefix)
    if name in fixed:
        return fixed[name]
    if name.startswith("Aligned.") and (name.endswith(".bam") or name.endswith(".out")):
        return f"{prefix}.{name[len('Aligned.'):]}"
    if name.startswith("Log.") and name.endswith(".out"):
        return f"{prefix}.{name}"
    if name.startswith("Signal.") and name.endswith(".bw"):
        return f"{prefix}.{name[len('Signal.'):]}"
    return name


def final_outputs(config: PipelineConfig) -> List[str]:
    """Deliverables guaranteed to exist after a successful run."""
    names = list(fixed_renames(config.prefix).values())
    names += [prefixed_name(n, config.prefix) for n in (SORTED_BAM, TRANSCRIPTOME_BAM, FINAL_LOG)]
    if not config.disable_bw:
        names += [prefixed_name(n, config.prefix) for n in all_track_files(config.layout)]
    return names


def finalize_outputs(config: PipelineConfig) -> List[str]:
    """
    Delete temporary files and rename deliverables with the run prefix.

    Returns:
        List[str]: Paths of the renamed files
    """
    workdir = config.output_dir

    logger.info("Deleting temp files...")
    remove_paths(workdir, TEMP_PATTERNS)

    logger.info("Rename outputs...")
    candidates = list(fixed_renames(config.prefix))
    for pattern in ("Aligned.*.bam", "Aligned.*.out", "Log*.out", "Signal.*.bw"):
        candidates += sorted(os.path.basename(p) for p in glob.glob(os.path.join(workdir, pattern)))

    renamed = []
    for name in candidates:
        source = os.path.join(workdir, name)
        if not os.path.exists(source):
            continue
        target = os.path.join(workdir, prefixed_name(name, config.prefix))
        os.replace(source, target)
        logger.debug(f"Renamed {name} -> {os.path.basename(target)}")
        renamed.append(target)
    return renamed
