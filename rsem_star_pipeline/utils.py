"""
Utility functions for the RSEM/STAR pipeline.

This module provides helper functions for logging, running external
tools and file housekeeping, plus the exception types shared by all stages.
"""

import os
import sys
import glob
import shutil
import logging
import subprocess
from typing import List, Dict, Optional, Iterable

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base class for failures raised by the orchestrator itself."""


class UsageError(PipelineError):
    """Invalid command-line arguments or configuration."""


class ToolNotFoundError(PipelineError):
    """A required executable could not be found on PATH."""


class StageContractError(PipelineError):
    """A stage's declared input or output file is missing."""


def setup_logger(
    log_file: str = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    name: str = "rsem_star_pipeline"
) -> logging.Logger:
    """
    Set up a logger with file and/or console handlers.

    Args:
        log_file: Path to log file (optional)
        console_level: Logging level for console output
        file_level: Logging level for file output
        name: Logger name

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(min(console_level, file_level))

    # Clear existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


class CommandRunner:
    """
    Runs external tools for the pipeline stages.

    Every subprocess the pipeline starts goes through an instance of this
    class, so tests can swap in a recording stub instead of the real tools.
    """

    def run(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        log_file: Optional[str] = None
    ) -> None:
        """
        Run a command to completion.

        Args:
            cmd: Command and arguments
            cwd: Working directory for the command
            log_file: If given, stdout and stderr are written to this file

        Raises:
            subprocess.CalledProcessError: If the command exits non-zero
        """
        logger.info(f"Running: {format_command(cmd)}")
        if log_file:
            with open(log_file, 'w') as log_handle:
                subprocess.run(
                    cmd, cwd=cwd, stdout=log_handle,
                    stderr=subprocess.STDOUT, check=True
                )
        else:
            subprocess.run(cmd, cwd=cwd, check=True)

    def popen(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        stdin=None,
        stdout=None
    ) -> subprocess.Popen:
        """Start a command for streaming; the caller waits on it."""
        logger.info(f"Starting: {format_command(cmd)}")
        return subprocess.Popen(cmd, cwd=cwd, env=env, stdin=stdin, stdout=stdout)

    def which(self, tool: str) -> Optional[str]:
        """Return the resolved path of an executable, or None."""
        return shutil.which(tool)


def format_command(cmd: Iterable[str]) -> str:
    """Render a command list for the log."""
    return " ".join(str(part) for part in cmd)


def wait_for(process: subprocess.Popen, cmd: List[str]) -> None:
    """
    Wait for a streamed process and raise if it failed.

    Raises:
        subprocess.CalledProcessError: If the process exits non-zero
    """
    return_code = process.wait()
    if return_code != 0:
        logger.error(f"{cmd[0]} failed with return code {return_code}")
        raise subprocess.CalledProcessError(return_code, cmd)


def check_dependencies(tools: Iterable[str], runner: CommandRunner) -> None:
    """
    Check that all required executables are available.

    Raises:
        ToolNotFoundError: If any executable is missing
    """
    missing_tools = [tool for tool in tools if runner.which(tool) is None]
    if missing_tools:
        raise ToolNotFoundError(
            f"Missing required tools: {', '.join(missing_tools)}. "
            "Please load the appropriate modules or install these tools."
        )
    logger.debug("All required tools found on PATH")


def remove_paths(workdir: str, patterns: Iterable[str]) -> List[str]:
    """
    Delete files and directories in workdir matching glob patterns.

    Returns:
        List of removed paths
    """
    removed = []
    for pattern in patterns:
        for path in sorted(glob.glob(os.path.join(workdir, pattern))):
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
            removed.append(path)
            logger.debug(f"Removed {path}")
    return removed


def is_within(path: str, directory: str) -> bool:
    """True if path is directory itself or lies below it."""
    path = os.path.realpath(path)
    directory = os.path.realpath(directory)
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)
