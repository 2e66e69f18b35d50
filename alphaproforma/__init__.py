"""AlphaProForma - ProForma peptidoforms, fragmentation and spectrum annotation.

Parses ProForma 2.0 notation into a peptidoform model, generates theoretical
fragments (backbone, satellite, glycan and precursor ions, with ambiguous
modification placements and cross-links) and annotates observed spectra,
including chimeric ones. Mass kernels and the peak search are Numba-compiled.
"""

__version__ = "0.1.0"

# Import main submodules for convenient access
from alphaproforma import errors
from alphaproforma import modifications
from alphaproforma import peptidoform
from alphaproforma import fragments
from alphaproforma import search
from alphaproforma import identification

from alphaproforma.peptidoform import parse, to_proforma
from alphaproforma.fragments import generate, FragmentationModel
from alphaproforma.search import match_fragments, Spectrum, Tolerance
from alphaproforma.convenience import (
    calculate_peptide_mass,
    calculate_precursor,
    generate_fragments,
    annotate_spectrum,
)

__all__ = [
    "errors",
    "modifications",
    "peptidoform",
    "fragments",
    "search",
    "identification",
    # Core API
    "parse",
    "to_proforma",
    "generate",
    "FragmentationModel",
    "match_fragments",
    "Spectrum",
    "Tolerance",
    # Convenience
    "calculate_peptide_mass",
    "calculate_precursor",
    "generate_fragments",
    "annotate_spectrum",
]
