"""
Run summary.

Collects headline numbers from STAR's Log.final.out and RSEM's gene
table into <prefix>.summary.tsv.
"""

import os
import glob
import logging
from typing import Dict, Any

import pandas as pd

from rsem_star_pipeline.config import PipelineConfig

logger = logging.getLogger(__name__)

STAR_METRICS = {
    "Number of input reads": "input_reads",
    "Uniquely mapped reads %": "uniquely_mapped_pct",
    "% of reads mapped to multiple loci": "multi_mapped_pct",
    "% of reads mapped to too many loci": "too_many_loci_pct",
    "Number of splices: Total": "splices_total",
}


def parse_star_log(log_file: str) -> Dict[str, str]:
    """Parse a STAR Log.final.out file into a dict of label -> value."""
    stats = {}
    with open(log_file, 'r') as f:
        for line in f:
            line = line.strip()
            if '|' in line:
                label, value = line.split('|', 1)
                stats[label.strip()] = value.strip()
    return stats


def summarize_genes(genes_results: str) -> Dict[str, Any]:
    """Gene counts and total expected count from an RSEM genes.results table."""
    genes = pd.read_csv(genes_results, sep="\t")
    return {
        "genes_quantified": len(genes),
        "genes_detected": int((genes["expected_count"] > 0).sum()),
        "total_expected_count": round(float(genes["expected_count"].sum()), 2),
    }


def write_run_summary(config: PipelineConfig) -> pd.DataFrame:
    """
    Write <prefix>.summary.tsv with one metric per row.

    Returns:
        pd.DataFrame: The summary table
    """
    prefix = config.prefix
    star_stats = parse_star_log(config.path(f"{prefix}.Log.final.out"))

    metrics: Dict[str, Any] = {"prefix": prefix, "data_type": config.data_type.value}
    for label, key in STAR_METRICS.items():
        if label in star_stats:
            metrics[key] = star_stats[label]
    metrics.update(summarize_genes(config.path(f"{prefix}.genes.results")))
    metrics["signal_tracks"] = len(glob.glob(os.path.join(config.output_dir, f"{prefix}.*.bw")))

    summary = pd.DataFrame(list(metrics.items()), columns=["metric", "value"])
    summary_file = config.path(f"{prefix}.summary.tsv")
    summary.to_csv(summary_file, sep="\t", index=False)

    logger.info(
        f"Uniquely mapped: {metrics.get('uniquely_mapped_pct', 'n/a')}, "
        f"genes detected: {metrics['genes_detected']}/{metrics['genes_quantified']}"
    )
    logger.info(f"Run summary written to {summary_file}")
    return summary
