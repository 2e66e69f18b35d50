"""Theoretical fragment generation for peptidoforms.

The engine walks every split point of every peptidoform and emits backbone,
satellite, glycan and precursor fragments according to a
FragmentationModel. Cumulative residue masses come from Numba-compiled
kernels; the combinatorics (ambiguous placements, cross-link variants,
neutral losses) are plain Python on top.

Output order is deterministic:

1. peptidoforms in set order
2. backbone series in model order, ordinals ascending within a series
   (b1, b2, ... and y1, y2, ...)
3. per fragment: ambiguous placements, then cross-link separated/retained
   variants, then neutral-loss variants
4. satellite ions, glycan ions (B, Y, internal), precursor with its
   neutral and side-chain losses, diagnostic ions
5. every neutral fragment expanded to charges 1..max ascending

Mass conventions (neutral):

- b = prefix residues + N-terminal modifications
- y = suffix residues + C-terminal modifications + H2O
- a = b - CO, c = b + NH3, x = y + CO - H2, z = y - NH3 + H (z-dot)
- m/z = (neutral + z * PROTON_MASS) / z, or the declared adduct mass in
  place of the protons

so that b(k) + y(n - k) equals the peptidoform neutral mass.
"""

import itertools
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numba
import numpy as np

from ..constants import (
    AMINO_ACID_FORMULAS,
    C_TERMINAL_SERIES,
    H_MASS,
    ION_SERIES_FORMULAS,
    NO_SIDE_CHAIN_CLEAVAGE,
    PROTON_MASS,
    SATELLITE_LOSSES,
    SATELLITE_PARENTS,
    SERIES_CODES,
)
from ..formula import Formula, combine_formulas, format_formula, formula_mass, parse_formula, scale_formula
from ..modifications import Modification, resolve_mass
from ..peptidoform.model import Cardinality, CrossLink, Peptidoform, PeptidoformSet, Placement
from .glycan import enumerate_sub_compositions, composition_size
from .model import Fragment, FragmentationModel
from .placement import check_combinatorial_limit, enumerate_placements, overlapping_groups

logger = logging.getLogger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================

def encode_peptide_to_ord(peptide: str) -> np.ndarray:
    """Encode peptide string to ord() array for Numba processing.

    Parameters
    ----------
    peptide : str
        Peptide sequence (uppercase one-letter codes)

    Returns
    -------
    peptide_ord : np.ndarray (uint8)
        Array of ord() values for each amino acid

    Examples
    --------
    >>> peptide_ord = encode_peptide_to_ord("PEPTIDE")
    >>> # Returns array([80, 69, 80, 84, 73, 68, 69], dtype=uint8)
    """
    return np.array([ord(c) for c in peptide], dtype=np.uint8)


# =============================================================================
# Core Mass Kernels (Numba-Compiled)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def cumulative_masses(residue_masses: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Prefix and suffix sums of per-residue masses.

    Parameters
    ----------
    residue_masses : np.ndarray (float64)
        Mass of each residue including its fixed modifications

    Returns
    -------
    forward : np.ndarray
        forward[k] = mass of residues [0, k)
    backward : np.ndarray
        backward[k] = mass of residues [k, n)

    Examples
    --------
    >>> forward, backward = cumulative_masses(np.array([71.0, 57.0, 99.0]))
    >>> forward[2], backward[2]
    (128.0, 99.0)
    """
    n = len(residue_masses)
    forward = np.zeros(n + 1, dtype=np.float64)
    backward = np.zeros(n + 1, dtype=np.float64)
    for i in range(n):
        forward[i + 1] = forward[i] + residue_masses[i]
    for i in range(n - 1, -1, -1):
        backward[i] = backward[i + 1] + residue_masses[i]
    return forward, backward


@numba.jit(nopython=True, cache=True)
def calculate_precursor_mz(neutral_mass: float, charge: int) -> float:
    """Calculate m/z from neutral mass for a protonated ion.

    Examples
    --------
    >>> mz = calculate_precursor_mz(1000.5, charge=2)
    >>> # Returns ~501.26
    """
    return (neutral_mass + charge * PROTON_MASS) / charge


@numba.jit(nopython=True, cache=True)
def ppm_error(observed_mz: float, theoretical_mz: float) -> float:
    """Calculate mass error in PPM: (observed - theoretical) / theoretical * 1e6.

    Examples
    --------
    >>> error = ppm_error(500.1, 500.0)
    >>> # Returns 200.0 ppm
    """
    return (observed_mz - theoretical_mz) / theoretical_mz * 1e6


def _formula_mass(text: str, isotope_labels: Tuple[str, ...] = ()) -> Tuple[float, float]:
    return formula_mass(parse_formula(text), isotope_labels)


def _side_chain(amino_acid: str) -> Optional[Formula]:
    """Side chain of a residue as its formula minus glycine; None if it has none."""
    if amino_acid in NO_SIDE_CHAIN_CLEAVAGE or amino_acid not in AMINO_ACID_FORMULAS:
        return None
    side_chain = combine_formulas(
        parse_formula(AMINO_ACID_FORMULAS[amino_acid]),
        scale_formula(parse_formula(AMINO_ACID_FORMULAS['G']), -1),
    )
    return side_chain or None


def _add_modification_losses(losses: List[str], modifications: Iterable[Modification]) -> None:
    for modification in modifications:
        for loss in modification.neutral_losses:
            if loss not in losses:
                losses.append(loss)


# =============================================================================
# Per-Peptidoform Fragmentation
# =============================================================================

class _Fragmenter:
    """Generates the fragments of one peptidoform."""

    def __init__(
        self,
        peptidoform: Peptidoform,
        model: FragmentationModel,
        peptidoform_set: Optional[PeptidoformSet] = None,
    ):
        self.peptidoform = peptidoform
        self.model = model
        self.peptidoform_set = peptidoform_set
        self.labels = peptidoform.isotope_labels
        self.n = peptidoform.residue_count

        mono, average = peptidoform.residue_masses()
        self.forward_mono, self.backward_mono = cumulative_masses(mono)
        self.forward_average, self.backward_average = cumulative_masses(average)
        (self.n_term_mono, self.n_term_average), (self.c_term_mono, self.c_term_average) = \
            peptidoform.terminal_masses()

        self.group_masses = {
            group.identifier: resolve_mass(group.modification, self.labels)
            for group in peptidoform.ambiguous_groups
        }
        self.charges = self._charges()

    def _charges(self) -> range:
        max_charge = self.model.max_charge
        carriers = self.peptidoform.carriers
        if carriers is not None and not self.model.allow_charge_above_precursor:
            max_charge = min(max_charge, abs(carriers.charge))
        return range(1, max_charge + 1)

    def _charged(self, fragment: Fragment) -> List[Fragment]:
        carriers = self.peptidoform.carriers
        if carriers is None or not carriers.adducts:
            return [fragment.with_charge(charge) for charge in self.charges]
        return [fragment.with_charge(charge, carriers.carrier_mass(charge)) for charge in self.charges]

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def run(self) -> List[Fragment]:
        model = self.model
        groups = self.peptidoform.ambiguous_groups
        if groups and not model.unknown_position_mode:
            check_combinatorial_limit(groups, model.combinatorial_limit)

        # satellites need their parent series even when it is not emitted
        series_order = list(model.ion_series)
        for satellite in model.satellite_series:
            parent = SATELLITE_PARENTS[satellite]
            if parent not in series_order:
                series_order.append(parent)

        fragments: List[Fragment] = []
        parents: Dict[str, List[Fragment]] = {}
        for series in series_order:
            emit = series in model.ion_series
            for neutral in self._backbone(series):
                parents.setdefault(series, []).append(neutral)
                if not emit:
                    continue
                fragments.extend(self._charged(neutral))
                for lost in self._neutral_losses(neutral):
                    fragments.extend(self._charged(lost))

        for satellite in model.satellite_series:
            for neutral in self._satellites(satellite, parents.get(SATELLITE_PARENTS[satellite], [])):
                fragments.extend(self._charged(neutral))

        if model.glycan_series:
            for neutral in self._glycan_fragments():
                fragments.extend(self._charged(neutral))

        if model.precursor:
            precursor = self._precursor()
            if precursor is not None:
                fragments.extend(self._charged(precursor))
                for lost in self._precursor_losses(precursor):
                    fragments.extend(self._charged(lost))

        if model.diagnostic_ions:
            for neutral in self._diagnostic_ions():
                fragments.extend(self._charged(neutral))

        return fragments

    # -------------------------------------------------------------------------
    # Backbone
    # -------------------------------------------------------------------------

    def _backbone(self, series: str) -> Iterable[Fragment]:
        delta_mono, delta_average = _formula_mass(ION_SERIES_FORMULAS[series], self.labels)
        c_terminal = series in C_TERMINAL_SERIES
        splits = range(self.n - 1, 0, -1) if c_terminal else range(1, self.n)
        for split in splits:
            if c_terminal:
                start, end = split, self.n
                mono = self.backward_mono[split] + self.c_term_mono + delta_mono
                average = self.backward_average[split] + self.c_term_average + delta_average
            else:
                start, end = 0, split
                mono = self.forward_mono[split] + self.n_term_mono + delta_mono
                average = self.forward_average[split] + self.n_term_average + delta_average

            base = Fragment(
                series=series,
                charge=1,
                neutral_mass=float(mono),
                average_mass=float(average),
                start=start,
                end=end,
                ordinal=end - start,
                peptidoform_index=self.peptidoform.index,
                ion_index=self.peptidoform.ion_index,
            )
            yield from self._variants(base)

    def _placement_options(self, start: int, end: int) -> List[Tuple[Placement, Tuple[str, ...], float, float]]:
        groups = overlapping_groups(self.peptidoform.ambiguous_groups, start, end)
        if not groups:
            return [((), (), 0.0, 0.0)]

        if self.model.unknown_position_mode:
            mono = 0.0
            average = 0.0
            for group in groups:
                if group.cardinality is Cardinality.EXACTLY_ONE:
                    group_mono, group_average = self.group_masses[group.identifier]
                    mono += group_mono * group.count
                    average += group_average * group.count
            return [((), tuple(group.identifier for group in groups), mono, average)]

        options = []
        for placement in enumerate_placements(groups):
            mono = 0.0
            average = 0.0
            for identifier, chosen in placement:
                inside = sum(1 for position in chosen if start <= position < end)
                group_mono, group_average = self.group_masses[identifier]
                mono += group_mono * inside
                average += group_average * inside
            options.append((placement, (), mono, average))
        return options

    def _link_options(self, start: int, end: int) -> Optional[List[Tuple[Tuple[str, ...], float, float]]]:
        """Cross-link variants for a range; None if the range cannot separate."""
        base_mono = 0.0
        base_average = 0.0
        inter: List[CrossLink] = []
        for link in self.peptidoform.links:
            inside = [p for p in link.positions_on(self.peptidoform.index) if start <= p < end]
            if link.intra:
                if len(inside) == 2:
                    linker_mono, linker_average = resolve_mass(link.linker, self.labels)
                    base_mono += linker_mono
                    base_average += linker_average
                elif len(inside) == 1 and not self.model.allow_cross_link_cleavage:
                    # one side of a loop link: the fragment stays attached
                    return None
            elif inside:
                inter.append(link)

        if not (inter and self.model.cross_link_fragments and self.peptidoform_set is not None):
            return [((), base_mono, base_average)]

        options = []
        for retained_flags in itertools.product((False, True), repeat=len(inter)):
            mono = base_mono
            average = base_average
            retained = []
            for link, is_retained in zip(inter, retained_flags):
                if not is_retained:
                    continue
                partner_mono, partner_average = self.peptidoform_set.partner_mass(link, self.peptidoform.index)
                linker_mono, linker_average = resolve_mass(link.linker, self.labels)
                mono += partner_mono + linker_mono
                average += partner_average + linker_average
                retained.append(link.identifier)
            options.append((tuple(retained), mono, average))
        return options

    def _variants(self, base: Fragment) -> Iterable[Fragment]:
        link_options = self._link_options(base.start, base.end)
        if link_options is None:
            return
        for placement, unresolved, placed_mono, placed_average in self._placement_options(base.start, base.end):
            for retained, link_mono, link_average in link_options:
                yield replace(
                    base,
                    neutral_mass=base.neutral_mass + placed_mono + link_mono,
                    average_mass=base.average_mass + placed_average + link_average,
                    placement=placement,
                    unresolved_groups=unresolved,
                    cross_link_retained=bool(retained),
                    cross_links=retained,
                )

    # -------------------------------------------------------------------------
    # Neutral losses
    # -------------------------------------------------------------------------

    def _modifications_in(self, fragment: Fragment) -> List[Modification]:
        peptidoform = self.peptidoform
        modifications: List[Modification] = []
        for position in range(fragment.start, fragment.end):
            modifications.extend(peptidoform.modifications_at(position, fragment.placement))
        if fragment.start == 0:
            modifications.extend(peptidoform.n_term_modifications())
        if fragment.end == self.n:
            modifications.extend(peptidoform.c_term_modifications())
        for identifier in fragment.unresolved_groups:
            modifications.append(peptidoform.group(identifier).modification)
        return modifications

    def _neutral_losses(self, fragment: Fragment) -> List[Fragment]:
        losses: List[str] = []
        residues = self.peptidoform.residues
        for position in range(fragment.start, fragment.end):
            for loss in self.model.neutral_losses.get(residues[position].amino_acid, ()):
                if loss not in losses:
                    losses.append(loss)
        if self.model.modification_neutral_losses:
            _add_modification_losses(losses, self._modifications_in(fragment))
        return self._lose(fragment, losses)

    def _lose(self, fragment: Fragment, losses: Sequence[str]) -> List[Fragment]:
        lost = []
        for loss in losses:
            mono, average = _formula_mass(loss, self.labels)
            lost.append(replace(
                fragment,
                neutral_mass=fragment.neutral_mass - mono,
                average_mass=fragment.average_mass - average,
                neutral_loss=loss,
            ))
        return lost

    # -------------------------------------------------------------------------
    # Satellite ions
    # -------------------------------------------------------------------------

    def _side_chain_free(self, position: int, fragment: Fragment) -> bool:
        residue = self.peptidoform.residues[position]
        if residue.mass is not None:
            return False
        if self.peptidoform.modifications_at(position, fragment.placement):
            return False
        for identifier in fragment.unresolved_groups:
            if position in self.peptidoform.group(identifier).positions:
                return False
        for link in self.peptidoform.links:
            if position in link.positions_on(self.peptidoform.index):
                return False
        return True

    def _satellites(self, satellite: str, parents: Sequence[Fragment]) -> List[Fragment]:
        residues = self.peptidoform.residues
        satellites = []
        for parent in parents:
            # d cleaves the last residue of an a ion, v/w the first of a y/z ion
            position = parent.end - 1 if satellite == 'd' else parent.start
            if not self._side_chain_free(position, parent):
                continue
            amino_acid = residues[position].amino_acid

            if satellite == 'v':
                side_chain = _side_chain(amino_acid)
                if side_chain is None:
                    continue
                losses = [(format_formula(side_chain), formula_mass(side_chain, self.labels))]
            else:
                losses = [
                    (loss, _formula_mass(loss, self.labels))
                    for loss in SATELLITE_LOSSES.get(amino_acid, ())
                ]

            for loss, (mono, average) in losses:
                # w ions lose the gamma substituent as a radical from z-dot
                extra = H_MASS if satellite == 'w' else 0.0
                satellites.append(replace(
                    parent,
                    series=satellite,
                    neutral_mass=parent.neutral_mass - mono - extra,
                    average_mass=parent.average_mass - average - extra,
                    satellite_loss=loss,
                ))
        return satellites

    # -------------------------------------------------------------------------
    # Glycans
    # -------------------------------------------------------------------------

    def _all_modifications(self) -> List[Tuple[Modification, bool]]:
        """Every modification with a flag for whether it stays attached."""
        peptidoform = self.peptidoform
        modifications = []
        for modification in peptidoform.n_term_modifications():
            modifications.append((modification, True))
        for position in range(self.n):
            for modification in peptidoform.modifications_at(position):
                modifications.append((modification, True))
        for modification in peptidoform.c_term_modifications():
            modifications.append((modification, True))
        for group in peptidoform.ambiguous_groups:
            modifications.append((group.modification, True))
        for modification in peptidoform.labile:
            modifications.append((modification, False))
        return modifications

    def _glycans(self) -> List[Tuple[Modification, bool]]:
        return [(modification, attached) for modification, attached in self._all_modifications()
                if modification.is_glycan]

    def _glycan_fragments(self) -> List[Fragment]:
        series = self.model.glycan_series
        h2o_mono, h2o_average = _formula_mass('H2O', self.labels)
        peptidoform_mono = self.peptidoform.neutral_mass()
        peptidoform_average = self.peptidoform.average_mass()
        common = dict(
            charge=1,
            peptidoform_index=self.peptidoform.index,
            ion_index=self.peptidoform.ion_index,
        )

        fragments = []
        for glycan, attached in self._glycans():
            compositions = enumerate_sub_compositions(
                glycan.composition, self.model.combinatorial_limit, self.labels
            )
            full, full_mono, full_average = compositions[0]

            if 'B' in series:
                for composition, mono, average in compositions:
                    if composition:
                        fragments.append(Fragment(
                            series='B', neutral_mass=mono, average_mass=average,
                            glycan=composition, **common,
                        ))
            if 'Y' in series and attached:
                for composition, mono, average in compositions[1:]:
                    fragments.append(Fragment(
                        series='Y',
                        neutral_mass=peptidoform_mono - full_mono + mono,
                        average_mass=peptidoform_average - full_average + average,
                        start=0,
                        end=self.n,
                        ordinal=self.n,
                        glycan=composition,
                        **common,
                    ))
            if 'internal' in series:
                for composition, mono, average in compositions[1:]:
                    if composition_size(composition) >= 2:
                        fragments.append(Fragment(
                            series='internal',
                            neutral_mass=mono - h2o_mono,
                            average_mass=average - h2o_average,
                            glycan=composition,
                            **common,
                        ))
        return fragments

    # -------------------------------------------------------------------------
    # Precursor
    # -------------------------------------------------------------------------

    def _precursor(self) -> Optional[Fragment]:
        peptidoform = self.peptidoform
        mono = peptidoform.neutral_mass()
        average = peptidoform.average_mass()
        if self.peptidoform_set is not None:
            members = [p for p in self.peptidoform_set if p.ion_index == peptidoform.ion_index]
            if len(members) > 1:
                # one precursor per cross-linked ion, reported on its first member
                if members[0] is not peptidoform:
                    return None
                mono, average = self.peptidoform_set.ion_masses(peptidoform.ion_index)
        return Fragment(
            series='precursor',
            charge=1,
            neutral_mass=mono,
            average_mass=average,
            start=0,
            end=self.n,
            ordinal=self.n,
            peptidoform_index=peptidoform.index,
            ion_index=peptidoform.ion_index,
        )

    def _precursor_losses(self, precursor: Fragment) -> List[Fragment]:
        losses = list(self.model.precursor_neutral_losses)
        if self.model.modification_neutral_losses:
            modifications = self._modifications_in(precursor)
            modifications.extend(group.modification for group in self.peptidoform.ambiguous_groups)
            _add_modification_losses(losses, modifications)
        lost = self._lose(precursor, losses)
        if self.model.precursor_side_chain_losses:
            lost.extend(self._precursor_side_chain_losses(precursor))
        return lost

    def _precursor_side_chain_losses(self, precursor: Fragment) -> List[Fragment]:
        candidates = {
            position for group in self.peptidoform.ambiguous_groups for position in group.positions
        }
        seen = set()
        lost = []
        for position, residue in enumerate(self.peptidoform.residues):
            if residue.amino_acid in seen or position in candidates:
                continue
            if not self._side_chain_free(position, precursor):
                continue
            side_chain = _side_chain(residue.amino_acid)
            if side_chain is None:
                continue
            seen.add(residue.amino_acid)
            mono, average = formula_mass(side_chain, self.labels)
            lost.append(replace(
                precursor,
                neutral_mass=precursor.neutral_mass - mono,
                average_mass=precursor.average_mass - average,
                satellite_loss=format_formula(side_chain),
            ))
        return lost

    # -------------------------------------------------------------------------
    # Diagnostic ions
    # -------------------------------------------------------------------------

    def _diagnostic_ions(self) -> List[Fragment]:
        formulas: List[str] = []
        for modification, _ in self._all_modifications():
            for formula in modification.diagnostic_ions:
                if formula not in formulas:
                    formulas.append(formula)

        fragments = []
        for formula in formulas:
            mono, average = _formula_mass(formula, self.labels)
            fragments.append(Fragment(
                series='diagnostic',
                charge=1,
                neutral_mass=mono,
                average_mass=average,
                peptidoform_index=self.peptidoform.index,
                ion_index=self.peptidoform.ion_index,
                diagnostic=formula,
            ))
        return fragments


# =============================================================================
# Public API
# =============================================================================

def generate(
    peptidoforms: Union[PeptidoformSet, Peptidoform],
    model: Optional[FragmentationModel] = None,
) -> List[Fragment]:
    """Generate theoretical fragments.

    Parameters
    ----------
    peptidoforms : PeptidoformSet or Peptidoform
        Input; a single Peptidoform is fragmented on its own, so
        cross-link retained variants need the full set
    model : FragmentationModel, optional
        Fragmentation configuration (default: FragmentationModel())

    Returns
    -------
    fragments : list of Fragment
        In deterministic order (see module docstring)

    Raises
    ------
    CombinatorialLimitExceeded
        If ambiguous placements or glycan sub-compositions exceed
        model.combinatorial_limit

    Examples
    --------
    >>> from alphaproforma.peptidoform import parse
    >>> fragments = generate(parse("PEPTIDE/2"), FragmentationModel(max_charge=2))
    >>> [f.label for f in fragments[:4]]
    ['b1', 'b1^2', 'b2', 'b2^2']
    """
    if model is None:
        model = FragmentationModel()

    if isinstance(peptidoforms, Peptidoform):
        fragments = _Fragmenter(peptidoforms, model).run()
    else:
        fragments = []
        for peptidoform in peptidoforms:
            fragments.extend(_Fragmenter(peptidoform, model, peptidoforms).run())

    logger.debug(f"Generated {len(fragments):,} fragments")
    return fragments


def fragments_to_arrays(fragments: Sequence[Fragment]) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Convert fragments to parallel numpy arrays for Numba matching.

    Returns
    -------
    fragment_mz : np.ndarray (float64)
    fragment_type : np.ndarray (uint8)
        Series code from constants.SERIES_CODES
    fragment_ordinal : np.ndarray (int32)
    fragment_charge : np.ndarray (uint8)
    """
    n = len(fragments)
    fragment_mz = np.empty(n, dtype=np.float64)
    fragment_type = np.empty(n, dtype=np.uint8)
    fragment_ordinal = np.empty(n, dtype=np.int32)
    fragment_charge = np.empty(n, dtype=np.uint8)
    for i, fragment in enumerate(fragments):
        fragment_mz[i] = fragment.mz
        fragment_type[i] = SERIES_CODES[fragment.series]
        fragment_ordinal[i] = fragment.ordinal
        fragment_charge[i] = fragment.charge
    return fragment_mz, fragment_type, fragment_ordinal, fragment_charge


# =============================================================================
# Batch Processing
# =============================================================================

def generate_fragments_batch(
    peptidoforms: Sequence[Union[PeptidoformSet, Peptidoform]],
    model: Optional[FragmentationModel] = None,
) -> List[List[Fragment]]:
    """Generate fragments for many inputs.

    Notes
    -----
    This is a simple loop wrapper. generate() keeps no state between calls,
    so for parallel processing hand chunks to joblib or multiprocessing.
    """
    return [generate(item, model) for item in peptidoforms]
