"""Spectrum annotation for peptidoforms and chimeric peptidoform sets.

Core algorithms:
1. Binary search on m/z-sorted spectra (O(log n))
2. Fragment matching with ppm or Dalton tolerance
3. Per-peak attribution to peptidoforms, with pluggable scoring strategies
"""

from .spectrum import (
    ObservedPeak,
    Spectrum,
    Tolerance,
    ToleranceUnit,
)

from .fragment_matching import (
    binary_search_mz,
    match_mz_to_spectrum,
    calculate_match_statistics,
    match_fragments,
    MatchedFragment,
    MatchReport,
    MatchStatistics,
    spectral_count_strategy,
    intensity_weighted_strategy,
)

__all__ = [
    # Spectra and tolerances
    'ObservedPeak',
    'Spectrum',
    'Tolerance',
    'ToleranceUnit',
    # Fragment matching
    'binary_search_mz',
    'match_mz_to_spectrum',
    'calculate_match_statistics',
    'match_fragments',
    'MatchedFragment',
    'MatchReport',
    'MatchStatistics',
    # Scoring strategies
    'spectral_count_strategy',
    'intensity_weighted_strategy',
]
