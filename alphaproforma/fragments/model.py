"""Fragmentation model configuration and the Fragment record.

FragmentationModel follows the same pattern as other parameter objects in
this package: a plain dataclass where every option has an explicit default,
plus classmethod presets for common activation methods.

Examples
--------
>>> model = FragmentationModel.cid_hcd(max_charge=2)
>>> model.ion_series
('a', 'b', 'y')

>>> # Explicit configuration
>>> model = FragmentationModel(ion_series=("c", "z"), satellite_series=("w",))
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from ..constants import (
    BACKBONE_SERIES,
    DEFAULT_COMBINATORIAL_LIMIT,
    DEFAULT_MAX_FRAGMENT_CHARGE,
    DEFAULT_NEUTRAL_LOSSES,
    GLYCAN_SERIES,
    PROTON_MASS,
    SATELLITE_SERIES,
)
from ..modifications import Composition, format_glycan_composition


@dataclass
class FragmentationModel:
    """Which theoretical fragments to generate.

    Attributes
    ----------
    ion_series : tuple of str
        Backbone series, any of a, b, c, x, y, z (default: b, y)
    satellite_series : tuple of str
        Side-chain cleaved series, any of d, v, w (default: none)
    glycan_series : tuple of str
        Glycan series, any of B, Y, internal (default: none)
    max_charge : int
        Highest product ion charge (default: 1)
    allow_charge_above_precursor : bool
        Allow product charges above the precursor's declared charge
        (default: False)
    neutral_losses : dict
        Residue code -> tuple of loss formulas; a fragment containing the
        residue also yields one variant per loss (default: none)
    modification_neutral_losses : bool
        Apply the database neutral losses of modifications inside the
        fragment, e.g. H3PO4 for Phospho (default: False)
    unknown_position_mode : bool
        Emit one fragment per split with the ambiguous modification mass
        smeared over the range, instead of one fragment per placement
        (default: False)
    cross_link_fragments : bool
        Emit cross-link separated and retained fragment variants
        (default: True)
    allow_cross_link_cleavage : bool
        Treat intra-peptidoform linkers as cleavable, so fragments holding
        only one end of a loop are emitted without the linker mass
        (default: False)
    precursor : bool
        Emit the intact precursor as a fragment (default: False)
    precursor_neutral_losses : tuple of str
        Loss formulas applied to the precursor; with
        modification_neutral_losses the modification losses apply too
        (default: none)
    precursor_side_chain_losses : bool
        Emit the precursor minus each distinct unmodified side chain
        (default: False)
    diagnostic_ions : bool
        Emit the diagnostic ions of the modifications present, e.g. HexNAc
        oxonium ions (default: False)
    combinatorial_limit : int
        Upper bound on ambiguous placements and glycan sub-compositions;
        exceeding it raises CombinatorialLimitExceeded (default: 4096)
    """

    ion_series: Tuple[str, ...] = ('b', 'y')
    satellite_series: Tuple[str, ...] = ()
    glycan_series: Tuple[str, ...] = ()
    max_charge: int = DEFAULT_MAX_FRAGMENT_CHARGE
    allow_charge_above_precursor: bool = False
    neutral_losses: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    modification_neutral_losses: bool = False
    unknown_position_mode: bool = False
    cross_link_fragments: bool = True
    allow_cross_link_cleavage: bool = False
    precursor: bool = False
    precursor_neutral_losses: Tuple[str, ...] = ()
    precursor_side_chain_losses: bool = False
    diagnostic_ions: bool = False
    combinatorial_limit: int = DEFAULT_COMBINATORIAL_LIMIT

    def __post_init__(self):
        self.ion_series = tuple(self.ion_series)
        self.satellite_series = tuple(self.satellite_series)
        self.glycan_series = tuple(self.glycan_series)
        self.precursor_neutral_losses = tuple(self.precursor_neutral_losses)
        self.validate()

    def validate(self) -> None:
        for name in self.ion_series:
            if name not in BACKBONE_SERIES:
                raise ValueError(f"Unknown backbone ion series '{name}'")
        for name in self.satellite_series:
            if name not in SATELLITE_SERIES:
                raise ValueError(f"Unknown satellite ion series '{name}'")
        for name in self.glycan_series:
            if name not in GLYCAN_SERIES:
                raise ValueError(f"Unknown glycan ion series '{name}'")
        if self.max_charge < 1:
            raise ValueError(f"max_charge must be at least 1, got {self.max_charge}")
        if self.combinatorial_limit < 1:
            raise ValueError(f"combinatorial_limit must be positive, got {self.combinatorial_limit}")

    @classmethod
    def cid_hcd(cls, **overrides) -> "FragmentationModel":
        """Collisional activation: a/b/y ions with water and ammonia losses."""
        params = dict(
            ion_series=('a', 'b', 'y'),
            glycan_series=('B', 'Y'),
            neutral_losses=dict(DEFAULT_NEUTRAL_LOSSES),
            modification_neutral_losses=True,
            diagnostic_ions=True,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def etd(cls, **overrides) -> "FragmentationModel":
        """Electron transfer dissociation: c/z ions with w satellites."""
        params = dict(
            ion_series=('c', 'z'),
            satellite_series=('w',),
            glycan_series=('Y',),
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def ethcd(cls, **overrides) -> "FragmentationModel":
        """EThcD: b/c/y/z ions with w satellites."""
        params = dict(
            ion_series=('b', 'c', 'y', 'z'),
            satellite_series=('w',),
            glycan_series=('B', 'Y'),
            modification_neutral_losses=True,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def all(cls, **overrides) -> "FragmentationModel":
        """Every series this package can generate."""
        params = dict(
            ion_series=BACKBONE_SERIES,
            satellite_series=SATELLITE_SERIES,
            glycan_series=GLYCAN_SERIES,
            neutral_losses=dict(DEFAULT_NEUTRAL_LOSSES),
            modification_neutral_losses=True,
            precursor=True,
            precursor_neutral_losses=('H2O', 'H3N'),
            precursor_side_chain_losses=True,
            diagnostic_ions=True,
        )
        params.update(overrides)
        return cls(**params)

    @classmethod
    def none(cls, **overrides) -> "FragmentationModel":
        """No series at all; generate() returns an empty list."""
        params = dict(ion_series=())
        params.update(overrides)
        return cls(**params)


@dataclass(frozen=True)
class Fragment:
    """One theoretical product ion.

    Attributes
    ----------
    series : str
        a/b/c/x/y/z, d/v/w, B/Y/internal, "diagnostic" or "precursor"
    charge : int
        Product ion charge
    carrier_mass : float, optional
        Mass of the declared adducts carrying the charge; None means
        protons
    neutral_mass, average_mass : float
        Neutral monoisotopic and average mass
    start, end : int, optional
        Half-open residue range covered; None for glycan B/internal ions
    ordinal : int
        Number of residues (b3, y2); 0 for glycan ions
    peptidoform_index, ion_index : int
        Origin inside the PeptidoformSet
    placement : tuple
        ((group identifier, chosen positions), ...) for each ambiguous group
        overlapping the range
    unresolved_groups : tuple of str
        Groups smeared over the range in unknown-position mode
    cross_link_retained : bool
        Mass includes the cross-linked partner peptidoform and linker
    cross_links : tuple of str
        Identifiers of the retained cross-links
    neutral_loss : str, optional
        Lost formula, e.g. "H2O"
    satellite_loss : str, optional
        Side-chain formula lost for d/v/w ions and precursor side-chain
        losses
    glycan : tuple
        Monosaccharide composition for glycan ions
    diagnostic : str, optional
        Ion formula of a diagnostic ion
    """

    series: str
    charge: int
    neutral_mass: float
    average_mass: float
    start: Optional[int] = None
    end: Optional[int] = None
    ordinal: int = 0
    peptidoform_index: int = 0
    ion_index: int = 0
    placement: Tuple[Tuple[str, Tuple[int, ...]], ...] = ()
    unresolved_groups: Tuple[str, ...] = ()
    cross_link_retained: bool = False
    cross_links: Tuple[str, ...] = ()
    neutral_loss: Optional[str] = None
    satellite_loss: Optional[str] = None
    glycan: Composition = ()
    diagnostic: Optional[str] = None
    carrier_mass: Optional[float] = None

    def _carried(self) -> float:
        if self.carrier_mass is not None:
            return self.carrier_mass
        return self.charge * PROTON_MASS

    @property
    def mz(self) -> float:
        return (self.neutral_mass + self._carried()) / self.charge

    @property
    def average_mz(self) -> float:
        return (self.average_mass + self._carried()) / self.charge

    @property
    def label(self) -> str:
        """Short annotation, e.g. "y3-H2O^2", "B{HexNAc2Hex}" or "Y0"."""
        if self.series in GLYCAN_SERIES:
            text = f"{self.series}{{{format_glycan_composition(self.glycan)}}}" if self.glycan else "Y0"
        elif self.series == "diagnostic":
            text = f"diag[{self.diagnostic}]"
        elif self.series == "precursor":
            text = "p"
        else:
            text = f"{self.series}{self.ordinal}"
        if self.satellite_loss:
            text += f"-{self.satellite_loss}"
        if self.neutral_loss:
            text += f"-{self.neutral_loss}"
        if self.cross_link_retained:
            text += "+xl"
        if self.charge > 1:
            text += f"^{self.charge}"
        return text

    def with_charge(self, charge: int, carrier_mass: Optional[float] = None) -> "Fragment":
        return replace(self, charge=charge, carrier_mass=carrier_mass)
