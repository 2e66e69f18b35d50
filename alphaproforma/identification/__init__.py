"""Adapters from identification results to peptidoforms.

- FASTA files (FastaReader, read_fasta)
- AlphaDIA / AlphaBase modified-sequence tables (ModifiedSequenceReader)
- Antibody germline sequences (InMemoryGermlineLookup)
"""

from .base import (
    Metadata,
    PeptidoformReader,
    GermlineLookup,
)

from .fasta_reader import (
    FastaReader,
    read_fasta,
    read_multiple_fasta,
    parse_protein_id,
)

from .modified_sequence import ModifiedSequenceReader
from .germline import InMemoryGermlineLookup

__all__ = [
    # Contracts
    'Metadata',
    'PeptidoformReader',
    'GermlineLookup',
    # FASTA
    'FastaReader',
    'read_fasta',
    'read_multiple_fasta',
    'parse_protein_id',
    # Tables
    'ModifiedSequenceReader',
    # Germlines
    'InMemoryGermlineLookup',
]
