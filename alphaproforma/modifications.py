"""Chemical modifications: representation, database and mass resolution.

A Modification is one of four kinds, selected by its ``kind`` tag:

- MASS: a signed mass offset (``[+79.966]``)
- FORMULA: an elemental composition (``[Formula:HPO3]``)
- DATABASE: a named entry from Unimod / PSI-MOD / XL-MOD (``[Phospho]``,
  ``[UNIMOD:21]``)
- GLYCAN: a monosaccharide composition (``[Glycan:HexNAc2Hex3]``)

The set of kinds is closed; every function that needs a mass dispatches on
``kind`` exhaustively.

Examples
--------
>>> mod = resolve_modification("Oxidation")
>>> mod.kind
<ModificationKind.DATABASE: 'database'>
>>> mono, average = resolve_mass(mod)
>>> round(mono, 6)
15.994915

>>> # Modification strings from AlphaDIA/AlphaBase tables
>>> parse_modifications("Carbamidomethyl@C;Oxidation@M", "3;7")
[('Carbamidomethyl', 2), ('Oxidation', 6)]
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .constants import MONOSACCHARIDE_FORMULAS
from .errors import UnresolvedMass
from .formula import Formula, format_formula, formula_mass, parse_formula

logger = logging.getLogger(__name__)

Composition = Tuple[Tuple[str, int], ...]


class ModificationKind(Enum):
    MASS = "mass"
    FORMULA = "formula"
    DATABASE = "database"
    GLYCAN = "glycan"


@dataclass(frozen=True)
class Modification:
    """A chemical modification.

    Attributes
    ----------
    kind : ModificationKind
        Which variant this modification is
    mass : float, optional
        MASS: the signed offset. DATABASE: monoisotopic mass if known
        without a formula.
    average_mass : float, optional
        DATABASE only: average mass if known without a formula
    formula : tuple
        FORMULA, and DATABASE entries with a known composition
    name : str, optional
        DATABASE: canonical entry name
    accession : str, optional
        DATABASE: e.g. "UNIMOD:21"
    composition : tuple
        GLYCAN: (monosaccharide, count) pairs in declaration order
    neutral_losses : tuple of str
        DATABASE: formulas of modification-specific neutral losses
    diagnostic_ions : tuple of str
        DATABASE: neutral formulas of diagnostic ions, observed protonated
    """

    kind: ModificationKind
    mass: Optional[float] = None
    average_mass: Optional[float] = None
    formula: Formula = ()
    name: Optional[str] = None
    accession: Optional[str] = None
    composition: Composition = ()
    neutral_losses: Tuple[str, ...] = ()
    diagnostic_ions: Tuple[str, ...] = ()

    @classmethod
    def from_mass(cls, mass: float) -> "Modification":
        return cls(ModificationKind.MASS, mass=float(mass))

    @classmethod
    def from_formula(cls, formula: Union[str, Formula]) -> "Modification":
        if isinstance(formula, str):
            formula = parse_formula(formula)
        return cls(ModificationKind.FORMULA, formula=tuple(formula))

    @classmethod
    def database(cls, name: str) -> "Modification":
        """Reference a database entry by name, resolved lazily by resolve_mass()."""
        entry = lookup_modification(name)
        if entry is not None:
            return entry
        return cls(ModificationKind.DATABASE, name=name)

    @classmethod
    def glycan(cls, composition: Union[str, Composition]) -> "Modification":
        if isinstance(composition, str):
            parsed = parse_glycan_composition(composition)
            if parsed is None:
                raise ValueError(f"Invalid glycan composition '{composition}'")
            composition = parsed
        return cls(ModificationKind.GLYCAN, composition=tuple(composition))

    @property
    def is_glycan(self) -> bool:
        return self.kind is ModificationKind.GLYCAN

    def monoisotopic_mass(self) -> float:
        return resolve_mass(self)[0]

    def __str__(self) -> str:
        return to_proforma_token(self)


# =============================================================================
# Mass Resolution
# =============================================================================

def resolve_mass(
    modification: Modification,
    isotope_labels: Tuple[str, ...] = (),
) -> Tuple[float, float]:
    """Resolve a modification to (monoisotopic, average) mass.

    Parameters
    ----------
    modification : Modification
        Any modification variant
    isotope_labels : tuple of str
        Global isotope labels applied to formula-based variants

    Returns
    -------
    mono, average : float
        Masses in Dalton

    Raises
    ------
    UnresolvedMass
        If a DATABASE variant carries no mass and its name is unknown
    """
    kind = modification.kind
    if kind is ModificationKind.MASS:
        return modification.mass, modification.mass
    if kind is ModificationKind.FORMULA:
        return formula_mass(modification.formula, isotope_labels)
    if kind is ModificationKind.DATABASE:
        if modification.formula:
            return formula_mass(modification.formula, isotope_labels)
        if modification.mass is not None:
            average = modification.average_mass
            return modification.mass, average if average is not None else modification.mass
        entry = lookup_modification(modification.name or modification.accession or "")
        if entry is None or entry.kind is not ModificationKind.DATABASE or entry == modification:
            raise UnresolvedMass(modification.name or modification.accession or "")
        return resolve_mass(entry, isotope_labels)
    if kind is ModificationKind.GLYCAN:
        return glycan_mass(modification.composition, isotope_labels)
    raise ValueError(f"Unknown modification kind: {kind}")


def glycan_mass(
    composition: Composition,
    isotope_labels: Tuple[str, ...] = (),
) -> Tuple[float, float]:
    """Sum of monosaccharide residue masses for a composition."""
    mono = 0.0
    average = 0.0
    for name, count in composition:
        unit_mono, unit_average = formula_mass(
            parse_formula(MONOSACCHARIDE_FORMULAS[name]), isotope_labels
        )
        mono += unit_mono * count
        average += unit_average * count
    return mono, average


# =============================================================================
# Built-in Modification Database
# =============================================================================

def _entry(
    name: str,
    accession: Optional[str],
    formula: str,
    losses: Tuple[str, ...] = (),
    diagnostic_ions: Tuple[str, ...] = (),
) -> Modification:
    return Modification(
        ModificationKind.DATABASE,
        formula=parse_formula(formula),
        name=name,
        accession=accession,
        neutral_losses=losses,
        diagnostic_ions=diagnostic_ions,
    )


# Common Unimod entries plus the PSI-MOD disulfide and XL-MOD cross-linkers.
# These take precedence over the full Unimod table loaded from alphabase.
MODIFICATION_DATABASE: Tuple[Modification, ...] = (
    _entry("Acetyl", "UNIMOD:1", "H2C2O"),
    _entry("Amidated", "UNIMOD:2", "HNO-1"),
    _entry("Carbamidomethyl", "UNIMOD:4", "H3C2NO"),
    _entry("Carbamyl", "UNIMOD:5", "HCNO"),
    _entry("Deamidated", "UNIMOD:7", "H-1N-1O"),
    _entry("Phospho", "UNIMOD:21", "HO3P", ("H3PO4",)),
    _entry("Propionamide", "UNIMOD:24", "H5C3NO"),
    _entry("Glu->pyro-Glu", "UNIMOD:27", "H-2O-1"),
    _entry("Gln->pyro-Glu", "UNIMOD:28", "H-3N-1"),
    _entry("Cation:Na", "UNIMOD:30", "H-1Na"),
    _entry("Methyl", "UNIMOD:34", "H2C"),
    _entry("Oxidation", "UNIMOD:35", "O", ("CH4OS",)),
    _entry("Dimethyl", "UNIMOD:36", "H4C2"),
    _entry("Trimethyl", "UNIMOD:37", "H6C3"),
    _entry("Sulfo", "UNIMOD:40", "O3S", ("O3S",)),
    # oxonium ions, and HexNAc oxonium minus water
    _entry("Hex", "UNIMOD:41", "H10C6O5", diagnostic_ions=("C6H10O5",)),
    _entry("HexNAc", "UNIMOD:43", "H13C8NO5", diagnostic_ions=("C8H13NO5", "C8H11NO4")),
    _entry("GG", "UNIMOD:121", "H6C4N2O2"),
    _entry("Formyl", "UNIMOD:122", "CO"),
    _entry("Nitro", "UNIMOD:354", "H-1NO2"),
    _entry("Dioxidation", "UNIMOD:425", "O2"),
    _entry("Disulfide", "MOD:00034", "H-2"),
    _entry("DSS", "XLMOD:02001", "C8H10O2"),
    _entry("DSSO", "XLMOD:02010", "C6H6O3S"),
)

_BY_NAME: Dict[str, Modification] = {mod.name.lower(): mod for mod in MODIFICATION_DATABASE}
_BY_ACCESSION: Dict[str, Modification] = {
    mod.accession.upper(): mod for mod in MODIFICATION_DATABASE if mod.accession
}

# ProForma controlled vocabulary prefixes for names (U:Oxidation, X:DSS)
_NAME_PREFIXES = ("U:", "M:", "X:", "R:", "G:")


@functools.lru_cache(maxsize=1)
def load_unimod() -> Tuple[Dict[str, Modification], Dict[str, Modification]]:
    """Unimod entries from the alphabase modification table.

    alphabase lists one row per "name@site"; the first row of each name is
    kept. Entries carry the Unimod monoisotopic and average mass.

    Returns
    -------
    by_name : dict
        Lower-case name -> Modification
    by_accession : dict
        "UNIMOD:<id>" -> Modification
    """
    import pandas as pd
    from alphabase.constants.modification import MOD_DF

    by_name: Dict[str, Modification] = {}
    by_accession: Dict[str, Modification] = {}
    table = MOD_DF[['mod_name', 'unimod_mass', 'unimod_avge_mass', 'unimod_id']]
    for mod_name, mass, average_mass, unimod_id in table.itertuples(index=False):
        name = str(mod_name).rsplit('@', 1)[0]
        if name.lower() in by_name or pd.isna(mass):
            continue
        accession = None
        if pd.notna(unimod_id) and int(unimod_id) > 0:
            accession = f"UNIMOD:{int(unimod_id)}"
        entry = Modification(
            ModificationKind.DATABASE,
            mass=float(mass),
            average_mass=float(average_mass) if pd.notna(average_mass) else None,
            name=name,
            accession=accession,
        )
        by_name[name.lower()] = entry
        if accession is not None:
            by_accession.setdefault(accession, entry)

    logger.info(f"✓ Loaded {len(by_name):,} Unimod modifications from alphabase")
    return by_name, by_accession


def lookup_modification(name_or_accession: str) -> Optional[Modification]:
    """Find a database entry by name, prefixed name or accession.

    Names are matched case-insensitively. The built-in entries are searched
    first, then the full Unimod table (see load_unimod). Returns None if
    unknown.

    Examples
    --------
    >>> lookup_modification("UNIMOD:35").name
    'Oxidation'
    >>> lookup_modification("U:phospho").name
    'Phospho'
    >>> lookup_modification("TMT6plex").accession
    'UNIMOD:737'
    """
    key = name_or_accession.strip()
    if not key:
        return None
    entry = _BY_ACCESSION.get(key.upper())
    if entry is not None:
        return entry
    for prefix in _NAME_PREFIXES:
        if key[:2].upper() == prefix:
            key = key[2:]
            break
    entry = _BY_NAME.get(key.lower())
    if entry is not None:
        return entry

    unimod_by_name, unimod_by_accession = load_unimod()
    if key.upper().startswith("UNIMOD:"):
        return unimod_by_accession.get(key.upper())
    return unimod_by_name.get(key.lower())


# =============================================================================
# Glycan Compositions
# =============================================================================

# Longest names first so "HexNAc" wins over "Hex"
_MONOSACCHARIDE_NAMES = sorted(MONOSACCHARIDE_FORMULAS, key=len, reverse=True)


def parse_glycan_composition(text: str) -> Optional[Composition]:
    """Parse a glycan composition such as "HexNAc2Hex5Fuc".

    Units are matched longest-name-first; counts default to 1. A unit
    named twice is summed into its first occurrence.

    Returns
    -------
    composition : tuple of (str, int), or None if the text is not a composition
    """
    text = text.strip()
    if not text:
        return None
    counts: Dict[str, int] = {}
    pos = 0
    while pos < len(text):
        for name in _MONOSACCHARIDE_NAMES:
            if text.startswith(name, pos):
                pos += len(name)
                break
        else:
            return None
        digits = re.match(r'\d*', text[pos:]).group(0)
        pos += len(digits)
        count = int(digits) if digits else 1
        counts[name] = counts.get(name, 0) + count
    composition = tuple((name, count) for name, count in counts.items() if count > 0)
    return composition or None


def format_glycan_composition(composition: Composition) -> str:
    return ''.join(name if count == 1 else f"{name}{count}" for name, count in composition)


# =============================================================================
# Token Resolution
# =============================================================================

_MASS_OFFSET = re.compile(r'^(?:(?:U|M|R|X|G|Obs):)?([+-]\d+(?:\.\d*)?(?:[eE][+-]?\d+)?)$', re.IGNORECASE)


def _resolve_mass_offset(token: str) -> Optional[Modification]:
    match = _MASS_OFFSET.match(token)
    if match is None:
        return None
    return Modification.from_mass(float(match.group(1)))


def _resolve_formula(token: str) -> Optional[Modification]:
    if token[:8].lower() != "formula:":
        return None
    try:
        formula = parse_formula(token[8:])
    except ValueError:
        return None
    if not formula:
        return None
    return Modification.from_formula(formula)


def _resolve_database(token: str) -> Optional[Modification]:
    return lookup_modification(token)


def _resolve_glycan(token: str) -> Optional[Modification]:
    if token[:7].lower() == "glycan:":
        token = token[7:]
    composition = parse_glycan_composition(token)
    if composition is None:
        return None
    return Modification.glycan(composition)


# Order matters: the first strategy that succeeds wins
RESOLUTION_ORDER = (
    _resolve_mass_offset,
    _resolve_formula,
    _resolve_database,
    _resolve_glycan,
)


def resolve_modification(token: str) -> Optional[Modification]:
    """Resolve a ProForma modification token to a Modification.

    Tries, in order: mass offset, formula, database lookup, glycan
    composition. Pipe-separated alternatives ("Phospho|INFO:site") are tried
    left to right; INFO alternatives are ignored.

    Parameters
    ----------
    token : str
        Bracket content without brackets and without any "#label" suffix

    Returns
    -------
    Modification or None if nothing resolves
    """
    for alternative in token.split('|'):
        alternative = alternative.strip()
        if not alternative or alternative[:5].lower() == "info:":
            continue
        for strategy in RESOLUTION_ORDER:
            modification = strategy(alternative)
            if modification is not None:
                return modification
    return None


def to_proforma_token(modification: Modification) -> str:
    """Canonical ProForma text for a modification (without brackets)."""
    kind = modification.kind
    if kind is ModificationKind.MASS:
        return f"{modification.mass:+}"
    if kind is ModificationKind.FORMULA:
        return f"Formula:{format_formula(modification.formula)}"
    if kind is ModificationKind.DATABASE:
        if modification.name:
            return modification.name
        if modification.accession:
            return modification.accession
        return f"{modification.mass:+}"
    if kind is ModificationKind.GLYCAN:
        return f"Glycan:{format_glycan_composition(modification.composition)}"
    raise ValueError(f"Unknown modification kind: {kind}")


# =============================================================================
# Modification Tables (AlphaDIA / AlphaBase convention)
# =============================================================================

N_TERM_SITE = "N-term"
C_TERM_SITE = "C-term"


def parse_modifications(mods: str, mod_sites: str) -> List[Tuple[str, Union[int, str]]]:
    """Parse modification string into list of (mod_name, position) tuples.

    Parses modification strings from proteomics data files (e.g. AlphaDIA,
    AlphaBase) into a structured format.

    Parameters
    ----------
    mods : str
        Modification string, e.g., "Carbamidomethyl@C;Oxidation@M"
        Multiple modifications separated by semicolons
    mod_sites : str
        Modification sites (1-based positions), e.g., "3;6".
        0 is the N-terminus and -1 the C-terminus.

    Returns
    -------
    List[Tuple[str, int or str]]
        (modification_name, position) tuples. Residue positions are 0-based;
        terminal sites are N_TERM_SITE / C_TERM_SITE.

    Examples
    --------
    >>> parse_modifications("Carbamidomethyl@C", "3")
    [('Carbamidomethyl', 2)]

    >>> parse_modifications("Acetyl@Protein_N-term;Oxidation@M", "0;4")
    [('Acetyl', 'N-term'), ('Oxidation', 3)]

    >>> parse_modifications("", "")
    []

    Notes
    -----
    - Handles byte strings (from pandas/numpy)
    - Skips entries without an "@" or with a non-integer site
    """
    if not mods:
        return []

    mod_list = mods.split(";")
    site_list = str(mod_sites).split(";")

    result = []
    for mod, site in zip(mod_list, site_list):
        mod = mod.strip()
        site = str(site).strip()

        # Handle byte strings from pandas/numpy
        if site.startswith("b'") and site.endswith("'"):
            site = site[2:-1]

        if "@" not in mod or not site.lstrip("-").isdigit():
            continue

        name = mod.split("@")[0]
        site_number = int(site)
        if site_number == 0:
            result.append((name, N_TERM_SITE))
        elif site_number == -1:
            result.append((name, C_TERM_SITE))
        elif site_number > 0:
            result.append((name, site_number - 1))  # Convert to 0-based

    return result
