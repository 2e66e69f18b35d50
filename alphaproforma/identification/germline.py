"""In-memory antibody germline lookup.

Germline sequences are keyed by (species, gene). The lookup is populated
directly or from an IMGT-style FASTA file, whose headers carry the gene
(allele) in the second field and the species in the third:

    >X60503|IGHV1-2*02|Homo sapiens|F|V-REGION|...
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from .fasta_reader import read_fasta

logger = logging.getLogger(__name__)


def _key(species: str, gene: str) -> Tuple[str, str]:
    return species.strip().lower(), gene.strip()


class InMemoryGermlineLookup:
    """Dictionary-backed GermlineLookup.

    Species names are matched case-insensitively, gene names exactly. A gene
    without an allele suffix ("IGHV1-2") also finds the first allele loaded
    for it ("IGHV1-2*02").

    Examples
    --------
    >>> lookup = InMemoryGermlineLookup({("Homo sapiens", "IGHV1-2*02"): "QVQLVQSGAEVKKPGASVKVSCKAS"})
    >>> lookup.lookup("homo sapiens", "IGHV1-2")
    'QVQLVQSGAEVKKPGASVKVSCKAS'
    """

    def __init__(self, sequences: Optional[Mapping[Tuple[str, str], str]] = None):
        self._sequences: Dict[Tuple[str, str], str] = {}
        for (species, gene), sequence in (sequences or {}).items():
            self.add(species, gene, sequence)

    def add(self, species: str, gene: str, sequence: str) -> None:
        key = _key(species, gene)
        sequence = sequence.upper()
        self._sequences[key] = sequence
        if '*' in key[1]:
            self._sequences.setdefault((key[0], key[1].split('*')[0]), sequence)

    def lookup(self, species: str, gene: str) -> Optional[str]:
        return self._sequences.get(_key(species, gene))

    def __len__(self) -> int:
        return len(self._sequences)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._sequences)

    @classmethod
    def from_fasta(
        cls,
        fasta_path: Union[str, Path],
        species: Optional[str] = None,
    ) -> "InMemoryGermlineLookup":
        """Load IMGT-style germline FASTA records.

        Parameters
        ----------
        fasta_path : str or Path
            FASTA file with ``>accession|gene|species|...`` headers
        species : str, optional
            Species for every record; overrides the header field

        Returns
        -------
        InMemoryGermlineLookup
        """
        lookup = cls()
        for gene, sequence, description in read_fasta(fasta_path):
            parts = description.split('|')
            record_species = species or (parts[2] if len(parts) > 2 else None)
            if not record_species:
                logger.warning(f"Skipping germline {gene}: no species in header")
                continue
            lookup.add(record_species, gene, sequence.replace('.', ''))
        logger.info(f"✓ Loaded {len(lookup):,} germline entries from {Path(fasta_path).name}")
        return lookup
