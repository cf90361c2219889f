"""
Unit tests for the transcriptome BAM normalizer.

samtools is replaced by cat/sh so the SAM text flows through the real
GNU sort; the "BAM" files in these tests are plain SAM text.
"""

import os
import sys
import shutil
import subprocess
import unittest
from unittest.mock import patch
import tempfile

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from helpers import make_config, write

from rsem_star_pipeline.layout import DataType
from rsem_star_pipeline.transcriptome import (
    MATE_SEPARATOR,
    join_mates,
    normalize_transcriptome_bam,
    split_mates,
)
from rsem_star_pipeline.utils import CommandRunner, PipelineError

HEADER = "@HD\tVN:1.4\n@SQ\tSN:ENST01\tLN:2000\n@SQ\tSN:ENST02\tLN:1500\n"

# Mate pairs as STAR emits them: pairs kept together, pair order scrambled
PAIRED_RECORDS = [
    "readC\t99\tENST02\t10\t100\t50M\t=\t120\t160\t*\t*\tNH:i:1\n",
    "readC\t147\tENST02\t120\t100\t50M\t=\t10\t-160\t*\t*\tNH:i:1\n",
    "readA\t163\tENST01\t300\t100\t50M\t=\t200\t-150\t*\t*\tNH:i:2\n",
    "readA\t83\tENST01\t200\t100\t50M\t=\t300\t150\t*\t*\tNH:i:2\n",
    "readB\t99\tENST01\t5\t100\t50M\t=\t60\t105\t*\t*\tNH:i:1\n",
    "readB\t147\tENST01\t60\t100\t50M\t=\t5\t-105\t*\t*\tNH:i:1\n",
    "readA\t99\tENST02\t40\t100\t50M\t=\t90\t100\t*\t*\tNH:i:2\n",
    "readA\t147\tENST02\t90\t100\t50M\t=\t40\t-100\t*\t*\tNH:i:2\n",
]

SINGLE_RECORDS = [
    "readC\t0\tENST02\t10\t100\t50M\t*\t0\t0\t*\t*\tNH:i:1\n",
    "readA\t16\tENST01\t300\t100\t50M\t*\t0\t0\t*\t*\tNH:i:2\n",
    "readB\t0\tENST01\t5\t100\t50M\t*\t0\t0\t*\t*\tNH:i:1\n",
    "readA\t0\tENST02\t40\t100\t50M\t*\t0\t0\t*\t*\tNH:i:2\n",
]


class SamTextRunner(CommandRunner):
    """Runs sort for real and stands in for samtools on SAM text files."""

    def __init__(self, writer_status=None):
        self.streamed = []
        self.processes = []
        self.writer_status = writer_status

    def popen(self, cmd, cwd=None, env=None, stdin=None, stdout=None):
        self.streamed.append(list(cmd))
        if cmd[0] == "samtools" and "-b" in cmd and self.writer_status is not None:
            cmd = ["sh", "-c", f"exit {self.writer_status}"]
        elif cmd[0] == "samtools" and "-b" in cmd:
            target = cmd[cmd.index("-o") + 1]
            cmd = ["sh", "-c", 'cat > "$0"', target]
        elif cmd[0] == "samtools":
            cmd = ["cat", cmd[-1]]
        process = super().popen(cmd, cwd=cwd, env=env, stdin=stdin, stdout=stdout)
        self.processes.append(process)
        return process


class TestMateJoining(unittest.TestCase):
    """Test case for joining and splitting mate pairs"""

    def test_join_then_split_is_identity(self):
        """Test splitting joined mates restores the records"""
        records = [r.encode() for r in PAIRED_RECORDS]
        joined = list(join_mates(records))

        self.assertEqual(len(joined), len(records) // 2)
        self.assertTrue(all(MATE_SEPARATOR in line for line in joined))
        self.assertEqual(list(split_mates(joined)), records)

    def test_odd_record_count(self):
        """Test an unpaired trailing mate is an error"""
        records = [r.encode() for r in PAIRED_RECORDS[:3]]
        with self.assertRaises(PipelineError):
            list(join_mates(records))


@unittest.skipUnless(shutil.which("sort") and shutil.which("sh"), "needs coreutils")
class TestNormalizeTranscriptomeBam(unittest.TestCase):
    """Test case for the streamed re-sort"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output = self.temp_dir.name
        self.header_patch = patch(
            'rsem_star_pipeline.transcriptome.read_bam_header',
            return_value=HEADER.encode()
        )
        self.header_patch.start()

    def tearDown(self):
        self.header_patch.stop()
        self.temp_dir.cleanup()

    def normalize(self, data_type, records):
        config = make_config(self.output, data_type=data_type, memory_gb=4, threads=2)
        write(config.path("Aligned.toTranscriptome.out.bam"), "".join(records))
        runner = SamTextRunner()
        count = normalize_transcriptome_bam(config, runner)
        with open(config.path("Aligned.toTranscriptome.out.bam")) as f:
            lines = f.readlines()
        return config, runner, count, lines

    def test_paired_end(self):
        """Test pairs are ordered by their first mate and stay adjacent"""
        config, runner, count, lines = self.normalize(DataType.STR_PE, PAIRED_RECORDS)

        header_lines = HEADER.count("\n")
        self.assertEqual("".join(lines[:header_lines]), HEADER)
        body = lines[header_lines:]

        self.assertEqual(count, len(PAIRED_RECORDS))
        self.assertEqual(len(body), len(PAIRED_RECORDS))
        self.assertEqual(sorted(body), sorted(PAIRED_RECORDS))

        pairs = [body[i:i + 2] for i in range(0, len(body), 2)]
        for first, second in pairs:
            self.assertEqual(first.split("\t")[0], second.split("\t")[0])
            self.assertEqual(PAIRED_RECORDS.index(second), PAIRED_RECORDS.index(first) + 1)
        first_mates = [pair[0] for pair in pairs]
        self.assertEqual(first_mates, sorted(first_mates))

        self.assertFalse(os.path.exists(config.path("Tr.bam")))

    def test_single_end(self):
        """Test single-end records are sorted by their full text"""
        config, runner, count, lines = self.normalize(DataType.UNSTR_SE, SINGLE_RECORDS)

        body = lines[HEADER.count("\n"):]
        self.assertEqual(count, 4)
        self.assertEqual(body, sorted(SINGLE_RECORDS))

    def test_sort_arguments(self):
        """Test sort gets the memory budget and the output directory as scratch"""
        config, runner, _, _ = self.normalize(DataType.STR_SE, SINGLE_RECORDS)

        sort_cmd = runner.streamed[1]
        self.assertEqual(sort_cmd[0], "sort")
        self.assertEqual(sort_cmd[sort_cmd.index("-S") + 1], "1G")
        self.assertEqual(sort_cmd[sort_cmd.index("-T") + 1], self.output)
        self.assertIn("--parallel=2", sort_cmd)

    def test_deterministic(self):
        """Test two different input orders give identical output"""
        _, _, _, first = self.normalize(DataType.STR_PE, PAIRED_RECORDS)
        swapped = PAIRED_RECORDS[4:] + PAIRED_RECORDS[:4]
        _, _, _, second = self.normalize(DataType.STR_PE, swapped)
        self.assertEqual(first, second)

    def test_writer_failure_reports_exit_status(self):
        """Test samtools dying mid-stream surfaces its exit status"""
        config = make_config(self.output, data_type=DataType.STR_PE, memory_gb=4, threads=2)
        write(config.path("Aligned.toTranscriptome.out.bam"), "".join(PAIRED_RECORDS * 500))
        runner = SamTextRunner(writer_status=7)

        with self.assertRaises(subprocess.CalledProcessError) as cm:
            normalize_transcriptome_bam(config, runner)

        self.assertEqual(cm.exception.returncode, 7)
        self.assertTrue(all(p.poll() is not None for p in runner.processes))

    def test_unpaired_mate_stops_all_processes(self):
        """Test an odd paired-end record count fails without leaving processes behind"""
        config = make_config(self.output, data_type=DataType.STR_PE, memory_gb=4, threads=2)
        write(config.path("Aligned.toTranscriptome.out.bam"), "".join(PAIRED_RECORDS[:3]))
        runner = SamTextRunner()

        with self.assertRaises(PipelineError):
            normalize_transcriptome_bam(config, runner)

        self.assertEqual(len(runner.processes), 2)
        self.assertTrue(all(p.poll() is not None for p in runner.processes))


if __name__ == '__main__':
    unittest.main()
