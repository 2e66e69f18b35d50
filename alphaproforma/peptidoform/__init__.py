"""Peptidoform model and ProForma notation.

Parse ProForma 2.0 text into peptidoforms and serialize them back:

>>> from alphaproforma.peptidoform import parse, to_proforma
>>> peptidoforms = parse("EM[Oxidation]EVEES[Phospho]PEK/2")
>>> to_proforma(peptidoforms)
'EM[Oxidation]EVEES[Phospho]PEK/2'
"""

from .model import (
    Adduct,
    AmbiguousModificationGroup,
    Cardinality,
    ChargeCarriers,
    CrossLink,
    FixedModificationRule,
    GroupNotation,
    Peptidoform,
    PeptidoformBuilder,
    PeptidoformSet,
    Placement,
    Residue,
)
from .proforma import parse, parse_peptidoform, to_proforma

__all__ = [
    # Model
    'Adduct',
    'AmbiguousModificationGroup',
    'Cardinality',
    'ChargeCarriers',
    'CrossLink',
    'FixedModificationRule',
    'GroupNotation',
    'Peptidoform',
    'PeptidoformBuilder',
    'PeptidoformSet',
    'Placement',
    'Residue',
    # ProForma
    'parse',
    'parse_peptidoform',
    'to_proforma',
]
