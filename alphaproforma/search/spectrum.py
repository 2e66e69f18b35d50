"""Observed spectra and mass tolerances.

A Spectrum stores m/z and intensity as parallel float64 arrays sorted by
m/z, which is what the Numba binary search expects.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, NamedTuple, Optional, Tuple

import numpy as np

from ..constants import DEFAULT_MS2_TOLERANCE, PROTON_MASS

logger = logging.getLogger(__name__)


class ObservedPeak(NamedTuple):
    """One centroided peak."""

    mz: float
    intensity: float


class Spectrum:
    """Centroided spectrum ordered by m/z.

    Parameters
    ----------
    mz, intensity : array-like
        Parallel arrays; re-sorted by m/z if needed
    precursor_mz : float, optional
        Precursor m/z
    precursor_charge : int, optional
        Precursor charge state

    Examples
    --------
    >>> spectrum = Spectrum([300.1, 200.2], [10.0, 50.0])
    >>> spectrum.mz
    array([200.2, 300.1])
    """

    def __init__(
        self,
        mz: Iterable[float],
        intensity: Iterable[float],
        precursor_mz: Optional[float] = None,
        precursor_charge: Optional[int] = None,
    ):
        mz = np.asarray(mz, dtype=np.float64)
        intensity = np.asarray(intensity, dtype=np.float64)
        if mz.shape != intensity.shape or mz.ndim != 1:
            raise ValueError(
                f"m/z and intensity must be 1D arrays of equal length, got {mz.shape} and {intensity.shape}"
            )
        if len(mz) > 1 and np.any(np.diff(mz) < 0):
            logger.warning(f"Spectrum with {len(mz):,} peaks is not sorted by m/z, sorting")
            order = np.argsort(mz, kind="stable")
            mz = mz[order]
            intensity = intensity[order]
        self.mz = mz
        self.intensity = intensity
        self.precursor_mz = precursor_mz
        self.precursor_charge = precursor_charge

    @classmethod
    def from_peaks(cls, peaks: Iterable[Tuple[float, float]], **kwargs) -> "Spectrum":
        peaks = list(peaks)
        return cls([p[0] for p in peaks], [p[1] for p in peaks], **kwargs)

    def __len__(self) -> int:
        return len(self.mz)

    def peak(self, index: int) -> ObservedPeak:
        return ObservedPeak(float(self.mz[index]), float(self.intensity[index]))

    @property
    def peaks(self) -> List[ObservedPeak]:
        return [self.peak(i) for i in range(len(self.mz))]

    @property
    def precursor_mass(self) -> Optional[float]:
        """Neutral precursor mass (protonated ion assumed)."""
        if self.precursor_mz is None or not self.precursor_charge:
            return None
        charge = abs(self.precursor_charge)
        return self.precursor_mz * charge - self.precursor_charge * PROTON_MASS


class ToleranceUnit(Enum):
    PPM = "ppm"
    DA = "Da"


@dataclass(frozen=True)
class Tolerance:
    """Mass tolerance, relative (ppm) or absolute (Da).

    Attributes
    ----------
    value : float
        Tolerance value (default: 20.0, the MS2 default)
    unit : ToleranceUnit
        PPM or DA (default: PPM)

    Examples
    --------
    >>> Tolerance.ppm(10).window(500.0)
    0.005
    >>> Tolerance.da(0.02).window(500.0)
    0.02
    """

    value: float = DEFAULT_MS2_TOLERANCE
    unit: ToleranceUnit = ToleranceUnit.PPM

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Tolerance must not be negative, got {self.value}")

    @classmethod
    def ppm(cls, value: float) -> "Tolerance":
        return cls(float(value), ToleranceUnit.PPM)

    @classmethod
    def da(cls, value: float) -> "Tolerance":
        return cls(float(value), ToleranceUnit.DA)

    def window(self, mz: float) -> float:
        """Half-width of the matching window in Dalton at this m/z."""
        if self.unit is ToleranceUnit.PPM:
            return mz * self.value / 1e6
        return self.value

    def contains(self, theoretical_mz: float, observed_mz: float) -> bool:
        return abs(observed_mz - theoretical_mz) <= self.window(theoretical_mz)
