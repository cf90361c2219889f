"""
Deterministic ordering of the transcriptome BAM.

STAR writes transcriptome alignments in an order that depends on thread
scheduling, which makes RSEM's output differ between runs. The records
are re-sorted by their SAM text with GNU sort, leaving the header
untouched. For paired-end data each mate pair is joined into a single
line before sorting and split afterwards so mates stay adjacent.
"""

import os
import logging
import subprocess
from typing import Iterable, Iterator, Optional

import pysam

from rsem_star_pipeline.alignment import TRANSCRIPTOME_BAM
from rsem_star_pipeline.config import PipelineConfig
from rsem_star_pipeline.utils import CommandRunner, PipelineError, wait_for

logger = logging.getLogger(__name__)

UNSORTED_BAM = "Tr.bam"

# Cannot occur in SAM text
MATE_SEPARATOR = b"\x1f"


def join_mates(records: Iterable[bytes]) -> Iterator[bytes]:
    """
    Join consecutive mate records into one line each.

    Raises:
        PipelineError: If a record has no following mate
    """
    records = iter(records)
    for first in records:
        second = next(records, None)
        if second is None:
            raise PipelineError(
                "Odd number of records in paired-end transcriptome BAM; "
                "cannot pair the last mate"
            )
        yield first.rstrip(b"\n") + MATE_SEPARATOR + second


def split_mates(lines: Iterable[bytes]) -> Iterator[bytes]:
    """Undo join_mates."""
    for line in lines:
        for record in line.rstrip(b"\n").split(MATE_SEPARATOR):
            yield record + b"\n"


def read_bam_header(bam_file: str) -> bytes:
    """Return the SAM text header of a BAM file."""
    with pysam.AlignmentFile(bam_file, "rb", check_sq=False) as bam:
        return str(bam.header).encode()


def _feed(lines: Iterable[bytes], sink, head: bytes = b"") -> Optional[int]:
    """
    Write head and then lines to a process's stdin, closing it at the end.

    Returns:
        Number of lines written, or None if the process stopped reading
        early. Its exit status is left for wait_for to report.
    """
    count = 0
    try:
        sink.write(head)
        for line in lines:
            sink.write(line if line.endswith(b"\n") else line + b"\n")
            count += 1
        sink.close()
    except BrokenPipeError:
        logger.debug("Downstream process closed its input early")
        _close_broken(sink)
        return None
    except BaseException:
        _close_broken(sink)
        raise
    return count


def _close_broken(sink) -> None:
    try:
        sink.close()
    except BrokenPipeError:
        logger.debug("Discarded unflushed input of a stopped process")


def _stop(*processes: subprocess.Popen) -> None:
    for process in processes:
        if process.poll() is None:
            process.kill()
        process.wait()


def normalize_transcriptome_bam(config: PipelineConfig, runner: CommandRunner) -> int:
    """
    Re-sort Aligned.toTranscriptome.out.bam in place.

    Returns:
        int: Number of alignment records written

    Raises:
        PipelineError: If the record count changed
        subprocess.CalledProcessError: If samtools or sort fails
    """
    workdir = config.output_dir
    target = config.path(TRANSCRIPTOME_BAM)
    source = config.path(UNSORTED_BAM)
    paired = config.layout.paired
    threads = str(config.threads)

    logger.info("Sorting toTranscriptome bam...")
    os.replace(target, source)
    header = read_bam_header(source)

    read_cmd = [config.tools.samtools, "view", "-@", threads, source]
    sort_cmd = [config.tools.sort, "-S", config.sort_buffer, "-T", workdir,
                f"--parallel={threads}"]
    write_cmd = [config.tools.samtools, "view", "-@", threads, "-b", "-o", target, "-"]

    sort_env = dict(os.environ, LC_ALL="C")

    reader = runner.popen(read_cmd, cwd=workdir, stdout=subprocess.PIPE)
    sorter = runner.popen(sort_cmd, cwd=workdir, env=sort_env,
                          stdin=subprocess.PIPE, stdout=subprocess.PIPE)

    try:
        lines_in = _feed(join_mates(reader.stdout) if paired else reader.stdout, sorter.stdin)
    except PipelineError:
        _stop(reader, sorter)
        sorter.stdout.close()
        raise
    finally:
        reader.stdout.close()
    if lines_in is None:
        try:
            wait_for(sorter, sort_cmd)
        finally:
            _stop(reader)
        raise PipelineError(f"{sort_cmd[0]} stopped reading before the end of its input")
    wait_for(reader, read_cmd)

    # sort emits nothing until its input is closed
    writer = runner.popen(write_cmd, cwd=workdir, stdin=subprocess.PIPE)
    records = split_mates(sorter.stdout) if paired else sorter.stdout
    records_out = _feed(records, writer.stdin, head=header)
    sorter.stdout.close()
    if records_out is None:
        try:
            wait_for(writer, write_cmd)
        finally:
            _stop(sorter)
        raise PipelineError(f"{write_cmd[0]} stopped reading before the end of its input")
    wait_for(sorter, sort_cmd)
    wait_for(writer, write_cmd)

    records_in = lines_in * 2 if paired else lines_in
    if records_out != records_in:
        raise PipelineError(
            f"Transcriptome BAM sort changed the record count: "
            f"{records_in} in, {records_out} out"
        )

    os.remove(source)
    logger.info(f"Sorted {records_out} transcriptome alignments")
    return records_out
