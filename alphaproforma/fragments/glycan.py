"""Glycan fragment enumeration for composition-level glycans.

Sub-compositions are reached breadth-first from the full composition by
removing one monosaccharide at a time, trying units in declaration order.
Sub-compositions with equal mass are deduplicated and the first one
reached is kept.
"""

import math
from collections import deque
from typing import List, Tuple

from ..errors import CombinatorialLimitExceeded
from ..modifications import Composition, glycan_mass

# Sub-compositions are compared by mass rounded to this many decimals
_MASS_DECIMALS = 6


def composition_size(composition: Composition) -> int:
    return sum(count for _, count in composition)


def sub_composition_count(composition: Composition) -> int:
    """Upper bound on sub-compositions, including the empty one."""
    return math.prod(count + 1 for _, count in composition)


def enumerate_sub_compositions(
    composition: Composition,
    limit: int,
    isotope_labels: Tuple[str, ...] = (),
) -> List[Tuple[Composition, float, float]]:
    """All sub-compositions of a glycan, breadth-first.

    Parameters
    ----------
    composition : tuple of (str, int)
        Full glycan composition
    limit : int
        Maximum number of sub-compositions to consider
    isotope_labels : tuple of str
        Global isotope labels

    Returns
    -------
    list of (composition, mono, average)
        Starting with the full composition and ending with the empty one.
        Units with a zero count are dropped from each composition.

    Raises
    ------
    CombinatorialLimitExceeded
        If the composition has more sub-compositions than limit
    """
    required = sub_composition_count(composition)
    if required > limit:
        raise CombinatorialLimitExceeded("glycan compositions", required, limit)

    names = [name for name, _ in composition]
    start = tuple(count for _, count in composition)

    seen_counts = {start}
    seen_masses = set()
    result = []
    queue = deque([start])
    while queue:
        counts = queue.popleft()
        current = tuple((name, count) for name, count in zip(names, counts) if count > 0)
        mono, average = glycan_mass(current, isotope_labels)
        key = round(mono, _MASS_DECIMALS)
        if key not in seen_masses:
            seen_masses.add(key)
            result.append((current, mono, average))

        for i, count in enumerate(counts):
            if count == 0:
                continue
            child = counts[:i] + (count - 1,) + counts[i + 1:]
            if child not in seen_counts:
                seen_counts.add(child)
                queue.append(child)
    return result
