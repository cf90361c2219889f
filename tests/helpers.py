"""
Test helpers: a command runner that records calls and fakes tool outputs.
"""

import os
import sys
import subprocess

# Add parent directory to path for importing the module
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.utils import CommandRunner

STAR_FINAL_LOG = """\
                                 Started job on |\tJan 01 10:00:00
                          Number of input reads |\t1000
                      Average input read length |\t202
                                    UNIQUE READS:
                   Uniquely mapped reads number |\t900
                        Uniquely mapped reads % |\t90.00%
                       Number of splices: Total |\t350
                             MULTI-MAPPING READS:
        Number of reads mapped to multiple loci |\t50
             % of reads mapped to multiple loci |\t5.00%
             % of reads mapped to too many loci |\t0.10%
"""

GENES_RESULTS = (
    "gene_id\ttranscript_id(s)\tlength\teffective_length\texpected_count\tTPM\tFPKM\n"
    "ENSG01\tENST01,ENST02\t1500.00\t1300.00\t120.00\t80.00\t70.00\n"
    "ENSG02\tENST03\t900.00\t700.00\t30.50\t20.00\t17.50\n"
    "ENSG03\tENST04\t2000.00\t1800.00\t0.00\t0.00\t0.00\n"
)

BEDGRAPH = (
    "chr2\t100\t200\t1.5\n"
    "chr10\t50\t80\t2\n"
    "ERCC-00002\t1\t40\t7\n"
    "chr1\t300\t400\t0.25\n"
    "chr1\t20\t60\t3\n"
)

CHROM_NAME_LENGTH = "chr1\t248956422\nchr10\t133797422\nchr2\t242193529\nERCC-00002\t1061\n"


def write(path, content=""):
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, 'w') as f:
        f.write(content)


class RecordingRunner(CommandRunner):
    """
    Records every command and writes the files the real tool would write.

    Streaming (popen) is not faked; tests that reach the transcriptome
    sort patch it out.
    """

    def __init__(self, missing_tools=(), fail_on=None):
        self.calls = []
        self.missing_tools = set(missing_tools)
        self.fail_on = fail_on

    def which(self, tool):
        self.calls.append(("which", tool))
        if tool in self.missing_tools:
            return None
        return f"/usr/bin/{tool}"

    def popen(self, cmd, cwd=None, env=None, stdin=None, stdout=None):
        raise AssertionError(f"unexpected streamed command: {cmd}")

    @property
    def commands(self):
        return [call[1] for call in self.calls if call[0] == "run"]

    def run(self, cmd, cwd=None, log_file=None):
        self.calls.append(("run", list(cmd), cwd))
        tool = os.path.basename(cmd[0])
        if self.fail_on and tool == self.fail_on:
            raise subprocess.CalledProcessError(3, cmd)

        if tool == "STAR" and "--runMode" in cmd:
            self._fake_star_signal(cmd, cwd)
        elif tool == "STAR":
            self._fake_star_align(cwd)
        elif tool == "bedGraphToBigWig":
            write(os.path.join(cwd, cmd[3]), "bigwig")
        elif tool == "rsem-calculate-expression":
            write(os.path.join(cwd, "Quant.genes.results"), GENES_RESULTS)
            write(os.path.join(cwd, "Quant.isoforms.results"), "transcript_id\tgene_id\n")
            if log_file:
                write(log_file, "rsem finished\n")
        elif tool == "rsem-plot-model":
            write(os.path.join(cwd, cmd[2]), "%PDF-1.4")

    def _fake_star_align(self, cwd):
        for name in ("Aligned.sortedByCoord.out.bam", "Aligned.toTranscriptome.out.bam",
                     "SJ.out.tab", "Log.out", "Log.progress.out"):
            write(os.path.join(cwd, name), name)
        write(os.path.join(cwd, "Log.final.out"), STAR_FINAL_LOG)
        os.makedirs(os.path.join(cwd, "_STARtmp"), exist_ok=True)

    def _fake_star_signal(self, cmd, cwd):
        out_dir = os.path.join(cwd, cmd[cmd.index("--outFileNamePrefix") + 1])
        strands = (1, 2) if cmd[cmd.index("--outWigStrand") + 1] == "Stranded" else (1,)
        for multimapping in ("Unique", "UniqueMultiple"):
            for index in strands:
                write(os.path.join(out_dir, f"Signal.{multimapping}.str{index}.out.bg"), BEDGRAPH)
        write(os.path.join(out_dir, "Log.out"), "signal log")


def make_config(output_dir, **kwargs):
    defaults = dict(
        output_dir=output_dir,
        read1="/data/R1.fq.gz",
        read2="/data/R2.fq.gz",
        star_genome_dir="/refs/star",
        rsem_genome_dir="/refs/rsem/hg19",
    )
    defaults.update(kwargs)
    return PipelineConfig(**defaults)


def option(cmd, flag, count=1):
    """Values following a flag in a command list."""
    index = cmd.index(flag)
    return cmd[index + 1:index + 1 + count]
