"""Peptidoform data model.

A Peptidoform is an ordered residue sequence with attached modifications,
terminal modifications, ambiguous modification groups, cross-links and
its charge carriers. Peptidoforms are grouped in a PeptidoformSet,
which represents either a chimeric explanation of one spectrum (members of
different ions) or a cross-linked complex (members of the same ion).

Cross-links are stored once, in the set, and reference their endpoints by
(peptidoform index, residue position); peptidoforms share the same CrossLink
objects. Nothing in this module enumerates ambiguous placements; that is
the fragmentation engine's job.

Examples
--------
>>> from alphaproforma.peptidoform import parse
>>> peptidoform = parse("EM[Oxidation]EVEES[Phospho]PEK/2")[0]
>>> peptidoform.residue_count
11
>>> [str(m) for m in peptidoform.modifications_at(1)]
['Oxidation']
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..constants import (
    AA_AVERAGE_MASSES,
    AA_MASSES,
    AMINO_ACID_FORMULAS,
    ELECTRON_MASS,
    PROTON_MASS,
)
from ..formula import Formula, formula_mass, parse_formula
from ..modifications import Modification, resolve_mass

# (peptidoform index, residue position)
Endpoint = Tuple[int, int]

# ((group identifier, chosen positions), ...) for every group in a peptidoform
Placement = Tuple[Tuple[str, Tuple[int, ...]], ...]


class Cardinality(Enum):
    """How many candidate positions of an ambiguous group carry the modification."""

    EXACTLY_ONE = "exactly_one"   # `count` copies on distinct positions
    ANY_SUBSET = "any_subset"     # any subset of the positions, including none


class GroupNotation(Enum):
    """ProForma notation an ambiguous group was written in."""

    LABELED = "labeled"          # EM[Oxidation#g1]EVM[#g1]
    RANGE = "range"              # (ESFRMS)[+19.0523]
    UNLOCALIZED = "unlocalized"  # [Phospho]?PEPTIDE


@dataclass(frozen=True)
class Residue:
    """An amino acid with its fixed modifications.

    ``mass`` overrides the table mass for custom residue codes.
    """

    amino_acid: str
    modifications: Tuple[Modification, ...] = ()
    mass: Optional[float] = None


@dataclass
class AmbiguousModificationGroup:
    """A modification localized to a set of candidate positions.

    Attributes
    ----------
    identifier : str
        Group label ("g1") or an automatic id for ranges and unlocalized mods
    modification : Modification
        The modification placed on the chosen position(s)
    positions : tuple of int
        Sorted candidate residue positions
    scores : dict
        Optional localization score per position
    cardinality : Cardinality
        EXACTLY_ONE or ANY_SUBSET placement semantics
    count : int
        Number of copies placed (EXACTLY_ONE only)
    notation : GroupNotation
        How the group is written in ProForma
    """

    identifier: str
    modification: Modification
    positions: Tuple[int, ...]
    scores: Dict[int, float] = field(default_factory=dict)
    cardinality: Cardinality = Cardinality.EXACTLY_ONE
    count: int = 1
    notation: GroupNotation = GroupNotation.LABELED

    def __post_init__(self):
        self.positions = tuple(sorted(set(self.positions)))
        if not self.positions:
            raise ValueError(f"Ambiguous group '{self.identifier}' has no candidate positions")
        if self.cardinality is Cardinality.EXACTLY_ONE and not 1 <= self.count <= len(self.positions):
            raise ValueError(
                f"Ambiguous group '{self.identifier}' places {self.count} copies "
                f"on {len(self.positions)} positions"
            )

    def placement_count(self) -> int:
        """Number of distinct placements of this group."""
        if self.cardinality is Cardinality.EXACTLY_ONE:
            return math.comb(len(self.positions), self.count)
        return 2 ** len(self.positions)


@dataclass(frozen=True)
class CrossLink:
    """A covalent link between two residues.

    ``first`` is the endpoint that appears first in ProForma text; the linker
    modification is written there.
    """

    identifier: str
    linker: Modification
    first: Endpoint
    second: Endpoint

    @property
    def intra(self) -> bool:
        """Both endpoints are on the same peptidoform."""
        return self.first[0] == self.second[0]

    @property
    def is_branch(self) -> bool:
        return self.identifier.upper() == "BRANCH"

    def endpoints(self) -> Tuple[Endpoint, Endpoint]:
        return self.first, self.second

    def positions_on(self, peptidoform_index: int) -> Tuple[int, ...]:
        """Residue positions of this link on one peptidoform."""
        return tuple(
            position for index, position in (self.first, self.second)
            if index == peptidoform_index
        )

    def partner(self, peptidoform_index: int) -> int:
        """Peptidoform index on the other side of the link."""
        if self.first[0] == peptidoform_index:
            return self.second[0]
        return self.first[0]


@dataclass(frozen=True)
class Adduct:
    """One adduct ion species, e.g. 2 x Na+."""

    formula: Formula
    charge: int = 1
    count: int = 1

    def mass(self) -> float:
        return formula_mass(self.formula)[0] - self.charge * ELECTRON_MASS


@dataclass(frozen=True)
class ChargeCarriers:
    """Precursor charge and the ions that carry it.

    Without explicit adducts the charge is carried by protons.
    """

    charge: int
    adducts: Tuple[Adduct, ...] = ()

    def mass(self) -> float:
        """Total mass added to the neutral molecule."""
        if not self.adducts:
            return self.charge * PROTON_MASS
        return sum(adduct.count * adduct.mass() for adduct in self.adducts)

    def carrier_mass(self, charge: int) -> float:
        """Mass carried by a product ion of `charge` unit charges.

        Declared adduct ions are taken in order while they fit, protons fill
        the remainder. The full precursor charge gives mass().
        """
        if not self.adducts:
            return charge * PROTON_MASS
        if charge == abs(self.charge):
            return self.mass()
        mass = 0.0
        remaining = charge
        for adduct in self.adducts:
            unit = abs(adduct.charge)
            if unit == 0:
                continue
            for _ in range(max(adduct.count, 0)):
                if unit > remaining:
                    break
                mass += adduct.mass()
                remaining -= unit
        return mass + remaining * PROTON_MASS

    def mz(self, neutral_mass: float) -> float:
        return (neutral_mass + self.mass()) / abs(self.charge)


@dataclass(frozen=True)
class FixedModificationRule:
    """A global fixed modification, e.g. <[Carbamidomethyl]@C>.

    targets are residue codes, "N-term" or "C-term".
    """

    modification: Modification
    targets: Tuple[str, ...]

    def applies_to(self, target: str) -> bool:
        return target in self.targets


# =============================================================================
# Peptidoform
# =============================================================================

@dataclass
class Peptidoform:
    """A single peptidoform.

    Positions are 0-based residue indices. A peptidoform without residues is
    invalid.
    """

    residues: List[Residue]
    n_term: List[Modification] = field(default_factory=list)
    c_term: List[Modification] = field(default_factory=list)
    labile: List[Modification] = field(default_factory=list)
    ambiguous_groups: List[AmbiguousModificationGroup] = field(default_factory=list)
    links: List[CrossLink] = field(default_factory=list)
    carriers: Optional[ChargeCarriers] = None
    fixed_rules: List[FixedModificationRule] = field(default_factory=list)
    isotope_labels: Tuple[str, ...] = ()
    index: int = 0
    ion_index: int = 0

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_sequence(cls, sequence: str, **kwargs) -> "Peptidoform":
        """Unmodified peptidoform from a plain one-letter sequence."""
        for aa in sequence:
            if aa not in AMINO_ACID_FORMULAS:
                raise ValueError(f"Unknown amino acid '{aa}' in '{sequence}'")
        return cls([Residue(aa) for aa in sequence], **kwargs)

    def validate(self) -> None:
        """Check positions of groups and links, raising ValueError when broken."""
        if not self.residues:
            raise ValueError("A peptidoform needs at least one residue")
        n = len(self.residues)
        for group in self.ambiguous_groups:
            if group.positions[0] < 0 or group.positions[-1] >= n:
                raise ValueError(
                    f"Ambiguous group '{group.identifier}' references a position outside 0..{n - 1}"
                )
        for link in self.links:
            for position in link.positions_on(self.index):
                if not 0 <= position < n:
                    raise ValueError(
                        f"Cross-link '{link.identifier}' references position {position} "
                        f"outside 0..{n - 1}"
                    )

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    @property
    def residue_count(self) -> int:
        return len(self.residues)

    @property
    def sequence(self) -> str:
        return ''.join(residue.amino_acid for residue in self.residues)

    def __len__(self) -> int:
        return len(self.residues)

    def cross_links(self) -> List[CrossLink]:
        return list(self.links)

    def charge_carriers(self) -> Optional[ChargeCarriers]:
        return self.carriers

    @property
    def charge(self) -> Optional[int]:
        return self.carriers.charge if self.carriers is not None else None

    def group(self, identifier: str) -> AmbiguousModificationGroup:
        for group in self.ambiguous_groups:
            if group.identifier == identifier:
                return group
        raise KeyError(identifier)

    def rule_modifications(self, target: str) -> List[Modification]:
        return [rule.modification for rule in self.fixed_rules if rule.applies_to(target)]

    def modifications_at(self, position: int, placement: Optional[Placement] = None) -> List[Modification]:
        """Modifications on one residue.

        Fixed modifications and global fixed rules are always included.
        Ambiguous group modifications are included only for the groups a
        placement resolves, and only where that placement puts them.

        Parameters
        ----------
        position : int
            0-based residue position
        placement : tuple, optional
            ((group identifier, chosen positions), ...) as produced by the
            fragmentation engine

        Returns
        -------
        list of Modification
        """
        residue = self.residues[position]
        modifications = list(residue.modifications)
        modifications.extend(self.rule_modifications(residue.amino_acid))
        if placement:
            for identifier, chosen in placement:
                if position in chosen:
                    modifications.append(self.group(identifier).modification)
        return modifications

    def n_term_modifications(self) -> List[Modification]:
        return list(self.n_term) + self.rule_modifications("N-term")

    def c_term_modifications(self) -> List[Modification]:
        return list(self.c_term) + self.rule_modifications("C-term")

    # -------------------------------------------------------------------------
    # Masses
    # -------------------------------------------------------------------------

    def _modification_mass(self, modifications: Sequence[Modification]) -> Tuple[float, float]:
        mono = 0.0
        average = 0.0
        for modification in modifications:
            m, a = resolve_mass(modification, self.isotope_labels)
            mono += m
            average += a
        return mono, average

    def residue_masses(self) -> Tuple[np.ndarray, np.ndarray]:
        """Per-position masses of residues with fixed modifications and rules.

        Ambiguous groups, terminal modifications and cross-links are not
        included.

        Returns
        -------
        mono, average : np.ndarray (float64)
        """
        # custom residues index slot 0, which holds no mass
        codes = np.array(
            [ord(r.amino_acid) if r.mass is None else 0 for r in self.residues],
            dtype=np.uint8,
        )
        mono = AA_MASSES[codes].copy()
        average = AA_AVERAGE_MASSES[codes].copy()

        for i, residue in enumerate(self.residues):
            if residue.mass is not None:
                mono[i] = residue.mass
                average[i] = residue.mass
            elif self.isotope_labels:
                mono[i], average[i] = formula_mass(
                    parse_formula(AMINO_ACID_FORMULAS[residue.amino_acid]), self.isotope_labels
                )
            m, a = self._modification_mass(self.modifications_at(i))
            mono[i] += m
            average[i] += a
        return mono, average

    def terminal_masses(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """((mono, average) of N-terminal mods, (mono, average) of C-terminal mods)."""
        return (
            self._modification_mass(self.n_term_modifications()),
            self._modification_mass(self.c_term_modifications()),
        )

    def ambiguous_mass(self) -> Tuple[float, float]:
        """Total mass carried by all ambiguous groups.

        ANY_SUBSET groups contribute nothing until a placement is chosen.
        """
        mono = 0.0
        average = 0.0
        for group in self.ambiguous_groups:
            if group.cardinality is Cardinality.EXACTLY_ONE:
                m, a = resolve_mass(group.modification, self.isotope_labels)
                mono += m * group.count
                average += a * group.count
        return mono, average

    def intra_link_mass(self) -> Tuple[float, float]:
        mono = 0.0
        average = 0.0
        for link in self.links:
            if link.intra:
                m, a = resolve_mass(link.linker, self.isotope_labels)
                mono += m
                average += a
        return mono, average

    def water_mass(self) -> Tuple[float, float]:
        return formula_mass((('H', 2), ('O', 1)), self.isotope_labels)

    def residue_mass(self) -> float:
        """Sum of residue and modification masses, without terminal water.

        Includes fixed, terminal, labile and ambiguous modifications and the
        linkers of intra-peptidoform cross-links.
        """
        return self._masses()[0]

    def neutral_mass(self) -> float:
        """Monoisotopic neutral mass (residue_mass plus one water)."""
        return self._masses()[0] + self.water_mass()[0]

    def average_mass(self) -> float:
        return self._masses()[1] + self.water_mass()[1]

    def _masses(self) -> Tuple[float, float]:
        mono, average = self.residue_masses()
        (n_mono, n_avg), (c_mono, c_avg) = self.terminal_masses()
        labile_mono, labile_avg = self._modification_mass(self.labile)
        amb_mono, amb_avg = self.ambiguous_mass()
        link_mono, link_avg = self.intra_link_mass()
        return (
            float(mono.sum()) + n_mono + c_mono + labile_mono + amb_mono + link_mono,
            float(average.sum()) + n_avg + c_avg + labile_avg + amb_avg + link_avg,
        )

    def precursor_mz(self, charge: Optional[int] = None) -> float:
        """Precursor m/z using the declared charge carriers (or protons at `charge`)."""
        if charge is not None:
            return ChargeCarriers(charge).mz(self.neutral_mass())
        if self.carriers is None:
            raise ValueError("Peptidoform has no charge state; pass charge explicitly")
        return self.carriers.mz(self.neutral_mass())

    def __str__(self) -> str:
        from .proforma import to_proforma
        return to_proforma(self)


# =============================================================================
# Peptidoform Sets
# =============================================================================

@dataclass
class PeptidoformSet:
    """Ordered peptidoforms explaining one spectrum.

    Members sharing an ``ion_index`` are cross-linked into one ion
    (ProForma ``//``); different ions are chimeric (ProForma ``+``).
    """

    peptidoforms: List[Peptidoform]
    links: List[CrossLink] = field(default_factory=list)
    fixed_rules: List[FixedModificationRule] = field(default_factory=list)
    isotope_labels: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.peptidoforms:
            raise ValueError("A peptidoform set needs at least one peptidoform")
        for index, peptidoform in enumerate(self.peptidoforms):
            if peptidoform.index != index:
                raise ValueError(
                    f"Peptidoform at position {index} has index {peptidoform.index}"
                )
        for link in self.links:
            for member, position in link.endpoints():
                if not 0 <= member < len(self.peptidoforms):
                    raise ValueError(f"Cross-link '{link.identifier}' references peptidoform {member}")
                if not 0 <= position < self.peptidoforms[member].residue_count:
                    raise ValueError(
                        f"Cross-link '{link.identifier}' references residue {position} "
                        f"of peptidoform {member}"
                    )

    @classmethod
    def single(cls, peptidoform: Peptidoform) -> "PeptidoformSet":
        return cls(
            [peptidoform],
            links=list(peptidoform.links),
            fixed_rules=list(peptidoform.fixed_rules),
            isotope_labels=peptidoform.isotope_labels,
        )

    def __len__(self) -> int:
        return len(self.peptidoforms)

    def __iter__(self) -> Iterator[Peptidoform]:
        return iter(self.peptidoforms)

    def __getitem__(self, index: int) -> Peptidoform:
        return self.peptidoforms[index]

    def cross_links(self) -> List[CrossLink]:
        return list(self.links)

    def ions(self) -> List[List[Peptidoform]]:
        """Members grouped by ion, in declaration order."""
        grouped: Dict[int, List[Peptidoform]] = {}
        for peptidoform in self.peptidoforms:
            grouped.setdefault(peptidoform.ion_index, []).append(peptidoform)
        return [grouped[key] for key in sorted(grouped)]

    @property
    def is_chimeric(self) -> bool:
        return len({p.ion_index for p in self.peptidoforms}) > 1

    def ion_masses(self, ion_index: int) -> Tuple[float, float]:
        """(mono, average) neutral mass of one ion: its members plus inter-peptidoform linkers."""
        members = [p for p in self.peptidoforms if p.ion_index == ion_index]
        mono = sum(p.neutral_mass() for p in members)
        average = sum(p.average_mass() for p in members)
        indices = {p.index for p in members}
        for link in self.links:
            if not link.intra and link.first[0] in indices:
                linker_mono, linker_average = resolve_mass(link.linker, self.isotope_labels)
                mono += linker_mono
                average += linker_average
        return mono, average

    def ion_neutral_mass(self, ion_index: int) -> float:
        return self.ion_masses(ion_index)[0]

    def precursor_mz(self, ion_index: int = 0) -> float:
        members = [p for p in self.peptidoforms if p.ion_index == ion_index]
        if not members:
            raise ValueError(f"No ion with index {ion_index}")
        carriers = members[-1].carriers
        if carriers is None:
            raise ValueError(f"Ion {ion_index} has no charge state")
        return carriers.mz(self.ion_neutral_mass(ion_index))

    def partner_mass(self, link: CrossLink, from_index: int) -> Tuple[float, float]:
        """Neutral mass of the peptidoform on the other side of a link."""
        partner = self.peptidoforms[link.partner(from_index)]
        return partner.neutral_mass(), partner.average_mass()

    def __str__(self) -> str:
        from .proforma import to_proforma
        return to_proforma(self)


# =============================================================================
# Builder
# =============================================================================

class PeptidoformBuilder:
    """Assemble a peptidoform step by step.

    The builder is the only place a peptidoform is mutated; ``build()``
    validates and hands out the finished object.

    Examples
    --------
    >>> from alphaproforma.modifications import lookup_modification
    >>> builder = PeptidoformBuilder("PEPTIDE")
    >>> builder.add_modification(3, lookup_modification("Phospho"))
    >>> builder.set_charge(2)
    >>> peptidoform = builder.build()
    """

    def __init__(self, sequence: str = "", custom_residues: Optional[Mapping[str, float]] = None):
        self._custom = dict(custom_residues or {})
        self._residues: List[List] = []
        self._n_term: List[Modification] = []
        self._c_term: List[Modification] = []
        self._labile: List[Modification] = []
        self._groups: List[AmbiguousModificationGroup] = []
        self._links: List[CrossLink] = []
        self._carriers: Optional[ChargeCarriers] = None
        self._rules: List[FixedModificationRule] = []
        self._isotopes: Tuple[str, ...] = ()
        for aa in sequence:
            self.add_residue(aa)

    def add_residue(self, amino_acid: str, modifications: Sequence[Modification] = ()) -> int:
        if amino_acid not in AMINO_ACID_FORMULAS and amino_acid not in self._custom:
            raise ValueError(f"Unknown amino acid '{amino_acid}'")
        self._residues.append([amino_acid, list(modifications)])
        return len(self._residues) - 1

    def add_modification(self, position: int, modification: Modification) -> None:
        if position == "N-term":
            self._n_term.append(modification)
        elif position == "C-term":
            self._c_term.append(modification)
        else:
            self._residues[position][1].append(modification)

    def add_labile(self, modification: Modification) -> None:
        self._labile.append(modification)

    def add_ambiguous_group(
        self,
        modification: Modification,
        positions: Sequence[int],
        identifier: Optional[str] = None,
        scores: Optional[Mapping[int, float]] = None,
        cardinality: Cardinality = Cardinality.EXACTLY_ONE,
        count: int = 1,
        notation: GroupNotation = GroupNotation.LABELED,
    ) -> AmbiguousModificationGroup:
        group = AmbiguousModificationGroup(
            identifier=identifier or f"g{len(self._groups) + 1}",
            modification=modification,
            positions=tuple(positions),
            scores=dict(scores or {}),
            cardinality=cardinality,
            count=count,
            notation=notation,
        )
        self._groups.append(group)
        return group

    def add_cross_link(self, first: int, second: int, linker: Modification, identifier: Optional[str] = None) -> CrossLink:
        """Intra-peptidoform link between two residue positions."""
        first, second = sorted((first, second))
        if first == second:
            raise ValueError("A cross-link needs two different residues")
        link = CrossLink(identifier or f"XL{len(self._links) + 1}", linker, (0, first), (0, second))
        self._links.append(link)
        return link

    def set_charge(self, charge: int, adducts: Sequence[Adduct] = ()) -> None:
        self._carriers = ChargeCarriers(charge, tuple(adducts))

    def add_fixed_rule(self, modification: Modification, targets: Sequence[str]) -> None:
        self._rules.append(FixedModificationRule(modification, tuple(targets)))

    def set_isotope_labels(self, labels: Sequence[str]) -> None:
        self._isotopes = tuple(labels)

    def build(self) -> Peptidoform:
        residues = [
            Residue(aa, tuple(mods), self._custom.get(aa))
            for aa, mods in self._residues
        ]
        return Peptidoform(
            residues=residues,
            n_term=list(self._n_term),
            c_term=list(self._c_term),
            labile=list(self._labile),
            ambiguous_groups=list(self._groups),
            links=list(self._links),
            carriers=self._carriers,
            fixed_rules=list(self._rules),
            isotope_labels=self._isotopes,
        )
