"""Pytest configuration for AlphaProForma tests.

Common fixtures shared by the unit tests. Everything here is pure
computation; file-based adapters write to pytest's tmp_path.
"""

import pytest


@pytest.fixture
def simple_peptide():
    """Simple peptide for basic tests."""
    return "PEPTIDE"


@pytest.fixture
def proforma_examples():
    """ProForma strings covering the main notation features."""
    return [
        "PEPTIDE",
        "EM[Oxidation]EVEES[Phospho]PEK/2",
        "[Acetyl]-PEPTIDE-[Amidated]",
        "EM[Oxidation#g1(0.9)]EVM[#g1(0.1)]PEK",
        "PR(ESFRMS)[+19.0523]ISK",
        "[Phospho]^2?EMEVTSESPEK",
        "{Glycan:HexNAc2Hex}NK",
        "<[Carbamidomethyl]@C>PEPCTIDEC",
        "EMEVTK[DSS#XL1]SESPEK//ETFK[#XL1]AAR/3",
        "PEPTIDE/2+ELVISK/3",
    ]


@pytest.fixture
def known_peptide_masses():
    """Monoisotopic neutral masses (with terminal H2O) for validation."""
    return {
        "PEPTIDE": 799.359964,
        "ELVISK": 687.416691,
        "PEPTIDEK": 927.454927,
        "GG": 132.053492,
    }


@pytest.fixture
def proton_mass():
    """Proton mass constant."""
    from alphaproforma.constants import PROTON_MASS
    return PROTON_MASS


@pytest.fixture
def chimeric_set():
    """Two peptidoforms sharing their first seven residues."""
    from alphaproforma.peptidoform import parse
    return parse("PEPTIDEK/2+PEPTIDER/2")
