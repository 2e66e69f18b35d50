"""Physical constants and reference tables for ProForma mass calculations.

This module provides the element, isotope, amino acid and monosaccharide
tables every other module resolves masses against. All tables are built once
at import time and are treated as read-only afterwards, so they can be shared
freely between threads and processes.

Masses are provided both as formula tables (for exact, isotope-aware
calculation) and as ord()-indexed arrays for Numba JIT-compiled code.

Key Features
------------
- Correct PROTON_MASS (1.007276466622 Da, not hydrogen atom mass!)
- Element monoisotopic and average masses, plus stable isotopes
- Residue formulas for the 20 standard amino acids plus U, O and the
  ambiguous ProForma codes (B, Z, J, X)
- Monosaccharide residue formulas for glycan compositions
- Side-chain cleavage tables for satellite (d/v/w) ions
- Default tolerance and enumeration limits

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
- NIST atomic weights and isotopic compositions
- Unimod: https://www.unimod.org/masses.html
"""

import re

import numpy as np

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass (NOT hydrogen atom mass!)
# Source: NIST 2018 CODATA
PROTON_MASS = 1.007276466622  # Da

# Electron mass
# Source: NIST 2018 CODATA
ELECTRON_MASS = 0.000548579909  # Da

# =============================================================================
# Elements and Isotopes
# =============================================================================

# symbol -> (monoisotopic mass, average mass)
ELEMENT_MASSES = {
    'H': (1.00782503207, 1.00794),
    'C': (12.0, 12.0107),
    'N': (14.0030740048, 14.0067),
    'O': (15.99491461956, 15.9994),
    'P': (30.97376163, 30.973762),
    'S': (31.97207100, 32.065),
    'Se': (79.9165213, 78.96),
    'Na': (22.9897692809, 22.98976928),
    'K': (38.96370668, 39.0983),
    'Li': (7.01600455, 6.941),
    'Ca': (39.96259098, 40.078),
    'Mg': (23.9850417, 24.3050),
    'Fe': (55.9349375, 55.845),
    'Zn': (63.9291422, 65.38),
    'Cu': (62.9295975, 63.546),
    'Cl': (34.96885268, 35.453),
    'Br': (78.9183371, 79.904),
    'I': (126.904473, 126.90447),
    'F': (18.99840322, 18.9984032),
}

# Stable isotopes usable in formulas ([13C2]) and global labels (<15N>)
# key is the ProForma isotope notation, value is (element, exact mass)
ISOTOPE_MASSES = {
    '2H': ('H', 2.0141017778),
    'D': ('H', 2.0141017778),
    '13C': ('C', 13.0033548378),
    '15N': ('N', 15.0001088982),
    '18O': ('O', 17.9991610),
}

# Derived small molecules (monoisotopic)
H_MASS = ELEMENT_MASSES['H'][0]
H2O_MASS = 2 * ELEMENT_MASSES['H'][0] + ELEMENT_MASSES['O'][0]   # 18.010564684
NH3_MASS = ELEMENT_MASSES['N'][0] + 3 * ELEMENT_MASSES['H'][0]   # 17.026549101
CO_MASS = ELEMENT_MASSES['C'][0] + ELEMENT_MASSES['O'][0]        # 27.994914620

# =============================================================================
# Amino Acid Residue Formulas
# =============================================================================

# Residue (not free amino acid) compositions
AMINO_ACID_FORMULAS = {
    'A': 'C3H5NO',
    'R': 'C6H12N4O',
    'N': 'C4H6N2O2',
    'D': 'C4H5NO3',
    'C': 'C3H5NOS',
    'E': 'C5H7NO3',
    'Q': 'C5H8N2O2',
    'G': 'C2H3NO',
    'H': 'C6H7N3O',
    'I': 'C6H11NO',
    'L': 'C6H11NO',
    'K': 'C6H12N2O',
    'M': 'C5H9NOS',
    'F': 'C9H9NO',
    'P': 'C5H7NO',
    'S': 'C3H5NO2',
    'T': 'C4H7NO2',
    'W': 'C11H10N2O',
    'Y': 'C9H9NO2',
    'V': 'C5H9NO',
    'U': 'C3H5NOSe',   # Selenocysteine
    'O': 'C12H19N3O2',  # Pyrrolysine
}

# Ambiguous ProForma residue codes mapped to the residue used for mass
NON_STANDARD_AA_MAP = {
    'B': 'N',  # Asp/Asn -> Asparagine
    'Z': 'Q',  # Glu/Gln -> Glutamine
    'J': 'L',  # Leu/Ile -> Leucine
}
for _code, _target in NON_STANDARD_AA_MAP.items():
    AMINO_ACID_FORMULAS[_code] = AMINO_ACID_FORMULAS[_target]

# X is an unknown residue with no mass of its own; it carries a mass
# modification, e.g. X[+113.084]
AMINO_ACID_FORMULAS['X'] = ''

# =============================================================================
# Monosaccharides
# =============================================================================

# Residue formulas (glycosidic bond water removed)
MONOSACCHARIDE_FORMULAS = {
    'Hex': 'C6H10O5',
    'HexNAc': 'C8H13NO5',
    'HexN': 'C6H11NO4',
    'HexA': 'C6H8O6',
    'HexS': 'C6H10O8S',
    'HexP': 'C6H11O8P',
    'HexNAcS': 'C8H13NO8S',
    'dHex': 'C6H10O4',
    'Fuc': 'C6H10O4',
    'NeuAc': 'C11H17NO8',
    'NeuGc': 'C11H17NO9',
    'Pen': 'C5H8O4',
    'Kdn': 'C9H14O8',
    'Sulfo': 'O3S',
    'Phospho': 'HO3P',
}

# =============================================================================
# Ion Series
# =============================================================================

N_TERMINAL_SERIES = ('a', 'b', 'c')
C_TERMINAL_SERIES = ('x', 'y', 'z')
BACKBONE_SERIES = N_TERMINAL_SERIES + C_TERMINAL_SERIES
SATELLITE_SERIES = ('d', 'v', 'w')
GLYCAN_SERIES = ('B', 'Y', 'internal')

# Formula added to the summed residue masses of a backbone fragment.
# z is the z-dot (radical) ion observed in ETD/ECD.
ION_SERIES_FORMULAS = {
    'a': 'C-1O-1',
    'b': '',
    'c': 'H3N',
    'x': 'CO2',
    'y': 'H2O',
    'z': 'ON-1',
}

# Satellite ions are derived from these parent series
SATELLITE_PARENTS = {
    'd': 'a',
    'v': 'y',
    'w': 'z',
}

# Integer codes for Numba-side fragment arrays
SERIES_CODES = {
    name: code for code, name in enumerate(
        BACKBONE_SERIES + SATELLITE_SERIES + GLYCAN_SERIES + ('diagnostic', 'precursor')
    )
}

# =============================================================================
# Side-Chain Cleavage (satellite ions)
# =============================================================================

# Neutral molecules lost from the gamma position when forming d and w ions.
# Residues with two entries (beta-branched) yield two satellite ions.
SATELLITE_LOSSES = {
    'L': ('C3H6',),
    'I': ('C2H4', 'CH2'),
    'V': ('CH2',),
    'T': ('CH2', 'O'),
    'S': ('O',),
    'C': ('S',),
    'M': ('C2H4S',),
    'F': ('C6H4',),
    'Y': ('C6H4O',),
    'W': ('C8H5N',),
    'H': ('C3H2N2',),
    'D': ('CO2',),
    'E': ('C2H2O2',),
    'N': ('CHNO',),
    'Q': ('C2H3NO',),
    'K': ('C3H7N',),
    'R': ('C3H7N3',),
}

# v ions lose the complete side chain; glycine has none and proline's is cyclic
NO_SIDE_CHAIN_CLEAVAGE = ('G', 'P', 'X')

# =============================================================================
# Neutral Losses
# =============================================================================

# Residue-specific losses used by the CID/HCD preset
DEFAULT_NEUTRAL_LOSSES = {
    'S': ('H2O',),
    'T': ('H2O',),
    'E': ('H2O',),
    'D': ('H2O',),
    'R': ('H3N',),
    'K': ('H3N',),
    'Q': ('H3N',),
    'N': ('H3N',),
}

# =============================================================================
# Default Settings
# =============================================================================

# Default MS1 (precursor) mass tolerance in PPM
DEFAULT_MS1_TOLERANCE = 10.0  # ppm

# Default MS2 (fragment) mass tolerance in PPM
DEFAULT_MS2_TOLERANCE = 20.0  # ppm

# Default maximum product ion charge
DEFAULT_MAX_FRAGMENT_CHARGE = 1

# Upper bound on enumerated ambiguous placements and glycan sub-compositions
DEFAULT_COMBINATORIAL_LIMIT = 4096


# =============================================================================
# ord()-Indexed Arrays for Numba
# =============================================================================

_PLAIN_ELEMENT = re.compile(r'([A-Z][a-z]?)(\d*)')


def _residue_masses():
    # residue formulas are plain (no isotopes, no negative counts)
    mono = {}
    average = {}
    for aa, text in AMINO_ACID_FORMULAS.items():
        mono[aa] = 0.0
        average[aa] = 0.0
        for symbol, count in _PLAIN_ELEMENT.findall(text):
            n = int(count) if count else 1
            mono[aa] += ELEMENT_MASSES[symbol][0] * n
            average[aa] += ELEMENT_MASSES[symbol][1] * n
    return mono, average


AA_MASSES_DICT, AA_AVERAGE_MASSES_DICT = _residue_masses()

# Access via: AA_MASSES[ord('A')] -> 71.037114
AA_MASSES = np.zeros(256, dtype=np.float64)
AA_AVERAGE_MASSES = np.zeros(256, dtype=np.float64)
for _aa in AMINO_ACID_FORMULAS:
    AA_MASSES[ord(_aa)] = AA_MASSES_DICT[_aa]
    AA_AVERAGE_MASSES[ord(_aa)] = AA_AVERAGE_MASSES_DICT[_aa]

AA_MASSES.setflags(write=False)
AA_AVERAGE_MASSES.setflags(write=False)
