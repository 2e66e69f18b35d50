"""Enumeration of ambiguous modification placements.

Placements are enumerated deterministically:

- positions of a group are sorted ascending
- an EXACTLY_ONE group with count k yields itertools.combinations(positions, k)
  in lexicographic order
- an ANY_SUBSET group yields every subset, smallest first
- several groups combine with itertools.product in declaration order

Every enumeration is bounded: the number of combinations is computed with
math.comb before anything is materialized, and CombinatorialLimitExceeded is
raised when it exceeds the limit.
"""

import itertools
import math
from typing import Iterator, List, Sequence, Tuple

from ..errors import CombinatorialLimitExceeded
from ..peptidoform.model import AmbiguousModificationGroup, Cardinality, Placement


def group_placements(group: AmbiguousModificationGroup) -> List[Tuple[int, ...]]:
    """All placements of one group as tuples of chosen positions.

    Examples
    --------
    >>> group_placements(group)  # EXACTLY_ONE over positions (1, 4, 6)
    [(1,), (4,), (6,)]
    """
    if group.cardinality is Cardinality.EXACTLY_ONE:
        return list(itertools.combinations(group.positions, group.count))
    return [
        subset
        for size in range(len(group.positions) + 1)
        for subset in itertools.combinations(group.positions, size)
    ]


def total_placements(groups: Sequence[AmbiguousModificationGroup]) -> int:
    """Number of combined placements across groups."""
    return math.prod(group.placement_count() for group in groups)


def check_combinatorial_limit(groups: Sequence[AmbiguousModificationGroup], limit: int) -> int:
    """Raise CombinatorialLimitExceeded if the groups need more than limit placements.

    Returns
    -------
    count : int
        Number of combined placements
    """
    count = total_placements(groups)
    if count > limit:
        raise CombinatorialLimitExceeded("ambiguous placements", count, limit)
    return count


def enumerate_placements(groups: Sequence[AmbiguousModificationGroup]) -> Iterator[Placement]:
    """Yield every combined placement of the groups.

    Each placement is ((group identifier, chosen positions), ...) in the
    order the groups are given. No groups yields a single empty placement.
    """
    per_group = [group_placements(group) for group in groups]
    for combination in itertools.product(*per_group):
        yield tuple(
            (group.identifier, chosen) for group, chosen in zip(groups, combination)
        )


def overlapping_groups(
    groups: Sequence[AmbiguousModificationGroup],
    start: int,
    end: int,
) -> List[AmbiguousModificationGroup]:
    """Groups with at least one candidate position inside [start, end)."""
    return [
        group for group in groups
        if any(start <= position < end for position in group.positions)
    ]
