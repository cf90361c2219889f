"""
Library layouts supported by the pipeline.

Each RNA-seq data type maps to one LibraryLayout holding every
layout-dependent argument the external tools need, so stages select
their flags from this table instead of assembling them by hand.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class DataType(str, Enum):
    """Stranded/unstranded x single/paired-end data types."""

    STR_SE = "str_SE"
    STR_PE = "str_PE"
    UNSTR_SE = "unstr_SE"
    UNSTR_PE = "unstr_PE"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LibraryLayout:
    """Tool arguments that depend on the library layout."""

    stranded: bool
    paired: bool
    star_strand_args: Tuple[str, ...]
    wig_strand: str
    rsem_args: Tuple[str, ...]
    # STAR bedGraph strand index -> track name. STAR writes the minus
    # strand signal to str1 and the plus strand to str2.
    track_strands: Tuple[Tuple[int, str], ...]


_STRANDED_TRACKS = ((1, "minus"), (2, "plus"))
_UNSTRANDED_TRACKS = ((1, "unstranded"),)

LAYOUTS: Dict[DataType, LibraryLayout] = {
    DataType.STR_SE: LibraryLayout(
        stranded=True,
        paired=False,
        star_strand_args=(),
        wig_strand="Stranded",
        rsem_args=("--forward-prob", "0"),
        track_strands=_STRANDED_TRACKS,
    ),
    DataType.STR_PE: LibraryLayout(
        stranded=True,
        paired=True,
        star_strand_args=(),
        wig_strand="Stranded",
        rsem_args=("--paired-end", "--forward-prob", "0"),
        track_strands=_STRANDED_TRACKS,
    ),
    DataType.UNSTR_SE: LibraryLayout(
        stranded=False,
        paired=False,
        star_strand_args=("--outSAMstrandField", "intronMotif"),
        wig_strand="Unstranded",
        rsem_args=(),
        track_strands=_UNSTRANDED_TRACKS,
    ),
    DataType.UNSTR_PE: LibraryLayout(
        stranded=False,
        paired=True,
        star_strand_args=("--outSAMstrandField", "intronMotif"),
        wig_strand="Unstranded",
        rsem_args=("--paired-end",),
        track_strands=_UNSTRANDED_TRACKS,
    ),
}


def get_layout(data_type: DataType) -> LibraryLayout:
    return LAYOUTS[DataType(data_type)]
