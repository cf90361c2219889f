"""
Output directory setup.
"""

import os
import shutil
import logging

logger = logging.getLogger(__name__)


def prepare_workspace(output_dir: str) -> str:
    """
    Create a clean output directory, deleting any previous run's output.

    Args:
        output_dir: Output directory

    Returns:
        str: Absolute path of the (empty) output directory
    """
    output_dir = os.path.abspath(output_dir)
    if os.path.isdir(output_dir):
        logger.warning(f"Removing existing output directory: {output_dir}")
        shutil.rmtree(output_dir)
    os.makedirs(output_dir)
    logger.info(f"Created output directory: {output_dir}")
    return output_dir
