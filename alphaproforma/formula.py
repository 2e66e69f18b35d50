"""Molecular formula parsing and mass calculation.

Formulas follow the ProForma convention: element symbols followed by an
optional signed count (``H-1N-1O``) and bracketed isotopes (``[13C2]H4``).
Parsed formulas are tuples of ``(element, count)`` pairs in order of first
appearance, which keeps them hashable and serializable without reordering.

Examples
--------
>>> formula = parse_formula("HO3P")
>>> format_formula(formula)
'HO3P'
>>> mono, average = formula_mass(formula)
>>> round(mono, 6)
79.966331
"""

import re
from typing import Dict, Iterable, Tuple

from .constants import ELEMENT_MASSES, ISOTOPE_MASSES

Formula = Tuple[Tuple[str, int], ...]

_ISOTOPE_TOKEN = re.compile(r'\[(\d+)([A-Z][a-z]?)(-?\d+)?\]')
_ELEMENT_TOKEN = re.compile(r'([A-Z][a-z]?)(-?\d+)?')


def parse_formula(text: str) -> Formula:
    """Parse a ProForma molecular formula.

    Parameters
    ----------
    text : str
        Formula text, e.g. "C2H3NO", "H-1N-1O" or "[13C6]H12"

    Returns
    -------
    formula : tuple of (str, int)
        (element, count) pairs; isotopes use their ProForma key ("13C")

    Raises
    ------
    ValueError
        If the text contains an unknown element or invalid syntax
    """
    counts: Dict[str, int] = {}
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue

        match = _ISOTOPE_TOKEN.match(text, pos)
        if match:
            key = f"{match.group(1)}{match.group(2)}"
            if key not in ISOTOPE_MASSES:
                raise ValueError(f"Unknown isotope '{key}' in formula '{text}'")
            count = int(match.group(3)) if match.group(3) else 1
        else:
            match = _ELEMENT_TOKEN.match(text, pos)
            if not match:
                raise ValueError(f"Invalid formula '{text}' at position {pos}")
            key = match.group(1)
            if key not in ELEMENT_MASSES:
                raise ValueError(f"Unknown element '{key}' in formula '{text}'")
            count = int(match.group(2)) if match.group(2) else 1

        counts[key] = counts.get(key, 0) + count
        pos = match.end()

    return tuple((key, count) for key, count in counts.items() if count != 0)


def format_formula(formula: Formula) -> str:
    """Format a formula back to ProForma text (inverse of parse_formula)."""
    parts = []
    for key, count in formula:
        suffix = '' if count == 1 else str(count)
        if key[0].isdigit():
            parts.append(f"[{key}{suffix}]")
        else:
            parts.append(f"{key}{suffix}")
    return ''.join(parts)


def formula_mass(
    formula: Formula,
    isotope_labels: Iterable[str] = (),
) -> Tuple[float, float]:
    """Calculate monoisotopic and average mass of a formula.

    Parameters
    ----------
    formula : tuple of (str, int)
        Parsed formula
    isotope_labels : iterable of str
        Global isotope labels (e.g. "15N"). Every atom of the labelled
        element is counted at the isotope mass.

    Returns
    -------
    mono, average : float
        Monoisotopic and average mass in Dalton
    """
    labelled = {}
    for label in isotope_labels:
        element, mass = ISOTOPE_MASSES[label]
        labelled[element] = mass

    mono = 0.0
    average = 0.0
    for key, count in formula:
        if key in ISOTOPE_MASSES:
            mass = ISOTOPE_MASSES[key][1]
            mono += mass * count
            average += mass * count
        elif key in labelled:
            mono += labelled[key] * count
            average += labelled[key] * count
        else:
            element_mono, element_average = ELEMENT_MASSES[key]
            mono += element_mono * count
            average += element_average * count
    return mono, average


def combine_formulas(*formulas: Formula) -> Formula:
    """Sum formulas, keeping the order of first appearance."""
    counts: Dict[str, int] = {}
    for formula in formulas:
        for key, count in formula:
            counts[key] = counts.get(key, 0) + count
    return tuple((key, count) for key, count in counts.items() if count != 0)


def scale_formula(formula: Formula, factor: int) -> Formula:
    """Multiply every element count by factor (negative to subtract)."""
    if factor == 0:
        return ()
    return tuple((key, count * factor) for key, count in formula)


def formula_from_dict(counts: Dict[str, int]) -> Formula:
    """Build a formula from an element -> count mapping."""
    for key in counts:
        if key not in ELEMENT_MASSES and key not in ISOTOPE_MASSES:
            raise ValueError(f"Unknown element '{key}'")
    return tuple((key, count) for key, count in counts.items() if count != 0)
