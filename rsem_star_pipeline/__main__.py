"""
RSEM/STAR pipeline - module entry point

Example: python -m rsem_star_pipeline --read1 R1.fq.gz --read2 R2.fq.gz ...
"""

import sys

from rsem_star_pipeline.main import main

if __name__ == "__main__":
    sys.exit(main())
