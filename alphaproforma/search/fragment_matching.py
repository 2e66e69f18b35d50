"""Fragment matching with binary search and Numba JIT.

Core algorithms for annotating an observed spectrum:
1. Binary search on the m/z-sorted spectrum (O(log n)) for the closest
   peak inside a ppm or Dalton window
2. Tie-break on equal distance by the more intense peak
3. Per-peak attribution to fragments and peptidoforms, for chimeric spectra

Nothing in this module raises on well-formed input: unmatched fragments and
unexplained peaks are part of the MatchReport.

Examples
--------
>>> from alphaproforma.peptidoform import parse
>>> from alphaproforma.fragments import generate
>>> fragments = generate(parse("PEPTIDE"))
>>> report = match_fragments(fragments, spectrum, Tolerance.ppm(10))
>>> report.statistics().coverage
"""

import logging
from typing import Callable, Dict, FrozenSet, List, NamedTuple, Optional, Sequence, Tuple

import numba
import numpy as np

from ..fragments.model import Fragment
from .spectrum import ObservedPeak, Spectrum, Tolerance, ToleranceUnit

logger = logging.getLogger(__name__)


# =============================================================================
# Binary Search (Core Algorithm)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def binary_search_mz(
    spectrum_mz: np.ndarray,
    spectrum_intensity: np.ndarray,
    target_mz: float,
    mz_delta: float,
) -> int:
    """Find the closest peak within an absolute m/z window.

    Parameters
    ----------
    spectrum_mz : np.ndarray (float64)
        Sorted m/z array
        CRITICAL: Must be sorted ascending! No validation for speed.
    spectrum_intensity : np.ndarray (float64)
        Intensities parallel to spectrum_mz
    target_mz : float
        Theoretical fragment m/z to search for
    mz_delta : float
        Half-width of the window in Dalton

    Returns
    -------
    index : int
        Index of the closest peak within the window; on equal distance the
        more intense peak wins. Returns -1 if no peak is in the window.

    Examples
    --------
    >>> spectrum_mz = np.array([100.05, 200.10, 300.15, 400.20])
    >>> intensity = np.ones(4)
    >>> binary_search_mz(spectrum_mz, intensity, 200.11, 0.01)
    1
    """
    n = len(spectrum_mz)
    if n == 0:
        return -1

    mz_min = target_mz - mz_delta
    mz_max = target_mz + mz_delta

    # Binary search for first m/z >= mz_min
    left, right = 0, n
    while left < right:
        mid = (left + right) // 2
        if spectrum_mz[mid] < mz_min:
            left = mid + 1
        else:
            right = mid
    start_idx = left

    if start_idx >= n or spectrum_mz[start_idx] > mz_max:
        return -1

    closest_idx = start_idx
    min_error = abs(spectrum_mz[start_idx] - target_mz)

    idx = start_idx + 1
    while idx < n and spectrum_mz[idx] <= mz_max:
        error = abs(spectrum_mz[idx] - target_mz)
        if error < min_error or (
            error == min_error and spectrum_intensity[idx] > spectrum_intensity[closest_idx]
        ):
            min_error = error
            closest_idx = idx
        idx += 1

    return closest_idx


@numba.jit(nopython=True, cache=True)
def match_mz_to_spectrum(
    theoretical_mz: np.ndarray,
    spectrum_mz: np.ndarray,
    spectrum_intensity: np.ndarray,
    tolerance: float,
    tolerance_is_ppm: bool,
) -> np.ndarray:
    """Closest peak index for every theoretical m/z (-1 when unmatched).

    Parameters
    ----------
    theoretical_mz : np.ndarray (float64)
        Fragment m/z values, in any order
    spectrum_mz, spectrum_intensity : np.ndarray (float64)
        Observed peaks sorted by m/z
    tolerance : float
        Tolerance value in ppm or Dalton
    tolerance_is_ppm : bool
        Interpret tolerance as ppm of the theoretical m/z

    Returns
    -------
    peak_indices : np.ndarray (int64)
    """
    n_fragments = len(theoretical_mz)
    peak_indices = np.full(n_fragments, -1, dtype=np.int64)
    for i in range(n_fragments):
        target_mz = theoretical_mz[i]
        if tolerance_is_ppm:
            mz_delta = target_mz * tolerance / 1e6
        else:
            mz_delta = tolerance
        peak_indices[i] = binary_search_mz(spectrum_mz, spectrum_intensity, target_mz, mz_delta)
    return peak_indices


@numba.jit(nopython=True, cache=True)
def calculate_match_statistics(
    matched_intensities: np.ndarray,
    theoretical_count: int,
) -> Tuple[float, float, float]:
    """Calculate statistics for matched fragments.

    Parameters
    ----------
    matched_intensities : np.ndarray
        Intensities of matched fragments
    theoretical_count : int
        Total number of theoretical fragments

    Returns
    -------
    coverage : float
        Fragment coverage (n_matched / n_theoretical)
    total_intensity : float
        Sum of matched intensities
    mean_intensity : float
        Mean intensity of matches
    """
    n_matched = len(matched_intensities)

    coverage = n_matched / theoretical_count if theoretical_count > 0 else 0.0
    total_intensity = np.sum(matched_intensities)
    mean_intensity = np.mean(matched_intensities) if n_matched > 0 else 0.0

    return coverage, total_intensity, mean_intensity


# =============================================================================
# Match Report
# =============================================================================

class MatchedFragment(NamedTuple):
    """A theoretical fragment and the peak it matched, if any.

    Attributes
    ----------
    fragment : Fragment
        The theoretical fragment
    peak_index : int
        Index into the spectrum, -1 when unmatched
    peak : ObservedPeak or None
        The matched peak
    error_ppm : float or None
        (observed - theoretical) / theoretical * 1e6
    error_da : float or None
        observed - theoretical in m/z units
    """

    fragment: Fragment
    peak_index: int
    peak: Optional[ObservedPeak]
    error_ppm: Optional[float]
    error_da: Optional[float]

    @property
    def is_matched(self) -> bool:
        return self.peak is not None


class MatchStatistics(NamedTuple):
    coverage: float
    total_intensity: float
    mean_intensity: float
    n_matched: int
    n_unexplained_peaks: int


ScoringStrategy = Callable[["MatchReport"], Dict[int, float]]


class MatchReport:
    """Result of matching fragments against one spectrum.

    Every input fragment appears in ``matches`` (in input order), matched or
    not, and every peak is either explained by at least one fragment or
    listed in ``unexplained_peaks``.
    """

    def __init__(self, matches: List[MatchedFragment], spectrum: Spectrum):
        self.matches = matches
        self.spectrum = spectrum
        self._by_peak: Dict[int, List[int]] = {}
        for i, match in enumerate(matches):
            if match.is_matched:
                self._by_peak.setdefault(match.peak_index, []).append(i)

    def __len__(self) -> int:
        return len(self.matches)

    @property
    def matched(self) -> List[MatchedFragment]:
        return [m for m in self.matches if m.is_matched]

    @property
    def unmatched(self) -> List[MatchedFragment]:
        return [m for m in self.matches if not m.is_matched]

    @property
    def explained_peaks(self) -> List[int]:
        return sorted(self._by_peak)

    @property
    def unexplained_peaks(self) -> List[int]:
        return [i for i in range(len(self.spectrum)) if i not in self._by_peak]

    def peak_fragments(self, peak_index: int) -> List[MatchedFragment]:
        """Matches explaining one peak, in fragment order."""
        return [self.matches[i] for i in self._by_peak.get(peak_index, [])]

    def peak_peptidoforms(self, peak_index: int) -> FrozenSet[int]:
        """Indices of the peptidoforms whose fragments explain one peak."""
        return frozenset(m.fragment.peptidoform_index for m in self.peak_fragments(peak_index))

    def ambiguous_peaks(self) -> List[int]:
        """Peaks explained by fragments of more than one peptidoform."""
        return [i for i in self.explained_peaks if len(self.peak_peptidoforms(i)) > 1]

    def peptidoform_indices(self) -> List[int]:
        return sorted({m.fragment.peptidoform_index for m in self.matches})

    def score(self, strategy: ScoringStrategy) -> Dict[int, float]:
        """Score peptidoforms with a caller-supplied strategy."""
        return strategy(self)

    def statistics(self) -> MatchStatistics:
        matched = self.matched
        intensities = np.array([m.peak.intensity for m in matched], dtype=np.float64)
        coverage, total, mean = calculate_match_statistics(intensities, len(self.matches))
        return MatchStatistics(
            coverage=float(coverage),
            total_intensity=float(total),
            mean_intensity=float(mean),
            n_matched=len(matched),
            n_unexplained_peaks=len(self.unexplained_peaks),
        )

    def to_dataframe(self):
        """One row per theoretical fragment as a pandas DataFrame."""
        import pandas as pd

        rows = []
        for match in self.matches:
            fragment = match.fragment
            rows.append({
                'peptidoform_index': fragment.peptidoform_index,
                'ion_index': fragment.ion_index,
                'label': fragment.label,
                'series': fragment.series,
                'ordinal': fragment.ordinal,
                'charge': fragment.charge,
                'theoretical_mz': fragment.mz,
                'peak_index': match.peak_index,
                'observed_mz': match.peak.mz if match.is_matched else np.nan,
                'intensity': match.peak.intensity if match.is_matched else np.nan,
                'error_ppm': match.error_ppm if match.is_matched else np.nan,
                'error_da': match.error_da if match.is_matched else np.nan,
            })
        return pd.DataFrame(rows)


# =============================================================================
# Scoring Strategies
# =============================================================================

def spectral_count_strategy(report: MatchReport) -> Dict[int, float]:
    """Number of distinct peaks each peptidoform explains."""
    scores = {index: 0.0 for index in report.peptidoform_indices()}
    for peak_index in report.explained_peaks:
        for index in report.peak_peptidoforms(peak_index):
            scores[index] += 1.0
    return scores


def intensity_weighted_strategy(report: MatchReport) -> Dict[int, float]:
    """Explained intensity per peptidoform; shared peaks are split evenly."""
    scores = {index: 0.0 for index in report.peptidoform_indices()}
    for peak_index in report.explained_peaks:
        owners = report.peak_peptidoforms(peak_index)
        share = float(report.spectrum.intensity[peak_index]) / len(owners)
        for index in owners:
            scores[index] += share
    return scores


# =============================================================================
# Fragment Matching
# =============================================================================

def match_fragments(
    fragments: Sequence[Fragment],
    spectrum: Spectrum,
    tolerance: Optional[Tolerance] = None,
) -> MatchReport:
    """Match theoretical fragments to an observed spectrum.

    For each fragment, the closest peak within tolerance is selected; on
    equal distance the more intense peak wins.

    Parameters
    ----------
    fragments : sequence of Fragment
        Output of generate()
    spectrum : Spectrum
        Observed peaks
    tolerance : Tolerance, optional
        Matching tolerance (default: 20 ppm)

    Returns
    -------
    MatchReport
    """
    if tolerance is None:
        tolerance = Tolerance()

    theoretical_mz = np.array([f.mz for f in fragments], dtype=np.float64)
    peak_indices = match_mz_to_spectrum(
        theoretical_mz,
        spectrum.mz,
        spectrum.intensity,
        tolerance.value,
        tolerance.unit is ToleranceUnit.PPM,
    )

    matches = []
    for fragment, theoretical, peak_index in zip(fragments, theoretical_mz, peak_indices):
        peak_index = int(peak_index)
        if peak_index < 0:
            matches.append(MatchedFragment(fragment, -1, None, None, None))
            continue
        peak = spectrum.peak(peak_index)
        error_da = peak.mz - theoretical
        matches.append(MatchedFragment(
            fragment,
            peak_index,
            peak,
            error_da / theoretical * 1e6,
            error_da,
        ))

    report = MatchReport(matches, spectrum)
    logger.debug(
        f"Matched {len(report.matched):,}/{len(matches):,} fragments, "
        f"{len(report.unexplained_peaks):,} unexplained peaks"
    )
    return report
