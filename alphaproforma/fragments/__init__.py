"""Theoretical fragment generation.

Backbone (a/b/c/x/y/z), satellite (d/v/w), glycan (B/Y/internal) and
precursor ions for peptidoforms and peptidoform sets, with ambiguous
placement enumeration, cross-link variants, neutral losses and charge
expansion. Cumulative masses are computed by Numba-compiled kernels.
"""

from .model import Fragment, FragmentationModel
from .generator import (
    generate,
    generate_fragments_batch,
    fragments_to_arrays,
    cumulative_masses,
    encode_peptide_to_ord,
    calculate_precursor_mz,
    ppm_error,
)
from .placement import (
    group_placements,
    enumerate_placements,
    total_placements,
    check_combinatorial_limit,
)
from .glycan import enumerate_sub_compositions

__all__ = [
    'Fragment',
    'FragmentationModel',
    'generate',
    'generate_fragments_batch',
    'fragments_to_arrays',
    'cumulative_masses',
    'encode_peptide_to_ord',
    'calculate_precursor_mz',
    'ppm_error',
    'group_placements',
    'enumerate_placements',
    'total_placements',
    'check_combinatorial_limit',
    'enumerate_sub_compositions',
]
