"""Contracts for identification adapters and germline lookups.

Adapters turn external identification results into peptidoforms. Each
record is yielded together with a metadata dict holding whatever the source
carries besides the peptidoform (protein id, scores, retention time, ...).
"""

from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

from ..peptidoform.model import Peptidoform

Metadata = Dict[str, Any]

Source = Union[str, Path]


@runtime_checkable
class PeptidoformReader(Protocol):
    """Anything that yields (Peptidoform, Metadata) pairs from a source."""

    def read(self, source: Source) -> Iterator[Tuple[Peptidoform, Metadata]]:
        ...


@runtime_checkable
class GermlineLookup(Protocol):
    """Resolve an antibody germline gene to its amino acid sequence.

    Returns None for unknown (species, gene) combinations.
    """

    def lookup(self, species: str, gene: str) -> Optional[str]:
        ...
