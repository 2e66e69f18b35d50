"""Convenience wrapper functions for easy-to-use API.

These functions take ProForma strings and handle parsing, fragmentation and
matching in one call. For repeated work on the same peptidoform, parse once
with ``alphaproforma.peptidoform.parse`` and call the lower-level functions
directly.

Examples
--------
>>> # Simple API - just pass strings
>>> mass = calculate_peptide_mass("PEPTIDE")
>>> fragments = generate_fragments("PEPTIDE/2")

>>> # With modifications
>>> mass = calculate_peptide_mass("PEPC[Carbamidomethyl]TIDE")

>>> # Annotate a spectrum
>>> report = annotate_spectrum("PEPTIDE/2", mz, intensity)
>>> report.statistics().coverage
"""

from typing import Iterable, List, Optional

from .fragments.generator import calculate_precursor_mz, generate
from .fragments.model import Fragment, FragmentationModel
from .peptidoform.proforma import parse
from .search.fragment_matching import MatchReport, match_fragments
from .search.spectrum import Spectrum, Tolerance


# =============================================================================
# Mass Calculation Wrappers
# =============================================================================

def calculate_peptide_mass(proforma: str, ion_index: int = 0) -> float:
    """Calculate the neutral monoisotopic mass of a ProForma string.

    Parameters
    ----------
    proforma : str
        ProForma 2.0 string
    ion_index : int
        Which ion of a chimeric string (default: 0, the first)

    Returns
    -------
    float
        Neutral mass in Daltons (includes terminal H2O); cross-linked
        members of the ion are summed together with their linkers

    Examples
    --------
    >>> calculate_peptide_mass("PEPTIDE")
    799.359964
    >>> calculate_peptide_mass("PEPTIDE[-18.010565]")
    781.349399
    """
    return parse(proforma).ion_neutral_mass(ion_index)


def calculate_precursor(proforma: str, charge: Optional[int] = None, ion_index: int = 0) -> float:
    """Calculate precursor m/z.

    Parameters
    ----------
    proforma : str
        ProForma 2.0 string
    charge : int, optional
        Protonated charge state; defaults to the charge written in the
        string (e.g. "/2" or "/2[+Na+,+H+]")
    ion_index : int
        Which ion of a chimeric string

    Returns
    -------
    float
        Precursor m/z

    Raises
    ------
    ValueError
        If no charge is given and the string declares none

    Examples
    --------
    >>> calculate_precursor("PEPTIDE/2")
    400.687258
    >>> calculate_precursor("PEPTIDE", charge=2)
    400.687258
    """
    peptidoforms = parse(proforma)
    if charge is None:
        return peptidoforms.precursor_mz(ion_index)
    return calculate_precursor_mz(peptidoforms.ion_neutral_mass(ion_index), charge)


# =============================================================================
# Fragment Generation Wrappers
# =============================================================================

def generate_fragments(proforma: str, model: Optional[FragmentationModel] = None) -> List[Fragment]:
    """Generate theoretical fragments for a ProForma string.

    Parameters
    ----------
    proforma : str
        ProForma 2.0 string; chimeric and cross-linked strings are supported
    model : FragmentationModel, optional
        Fragmentation configuration (default: b/y ions, charge 1)

    Returns
    -------
    List[Fragment]

    Examples
    --------
    >>> fragments = generate_fragments("PEPTIDE")
    >>> len(fragments)  # 6 b-ions + 6 y-ions for a 7-residue peptide
    12
    """
    return generate(parse(proforma), model)


def annotate_spectrum(
    proforma: str,
    mz: Iterable[float],
    intensity: Iterable[float],
    model: Optional[FragmentationModel] = None,
    tolerance: Optional[Tolerance] = None,
) -> MatchReport:
    """Parse, fragment and match in one call.

    Parameters
    ----------
    proforma : str
        ProForma 2.0 string
    mz, intensity : array-like
        Observed peaks (sorted if needed)
    model : FragmentationModel, optional
        Fragmentation configuration
    tolerance : Tolerance, optional
        Matching tolerance (default: 20 ppm)

    Returns
    -------
    MatchReport
    """
    peptidoforms = parse(proforma)
    fragments = generate(peptidoforms, model)
    return match_fragments(fragments, Spectrum(mz, intensity), tolerance)
