"""FASTA file reading and parsing.

Lightweight FASTA parser for proteomics workflows. Supports:
- UniProt and generic FASTA formats
- Multi-FASTA files
- Protein ID extraction

FastaReader wraps the parser as a PeptidoformReader: every protein becomes
an unmodified peptidoform.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Tuple, Union

from ..constants import AMINO_ACID_FORMULAS
from ..peptidoform.model import Peptidoform
from .base import Metadata, Source

logger = logging.getLogger(__name__)


def parse_protein_id(header: str) -> Tuple[str, str]:
    """Extract protein ID and description from FASTA header.

    Supports multiple formats:
    - UniProt: >sp|P12345|NAME_HUMAN Description...
    - IMGT: >X60503|IGHV1-2*02|Homo sapiens|F|...
    - Generic: >PROTEIN_ID Description...

    Parameters
    ----------
    header : str
        FASTA header line (without leading '>')

    Returns
    -------
    protein_id : str
        Extracted protein identifier
    description : str
        Full header line

    Examples
    --------
    >>> parse_protein_id("sp|P12345|NAME_HUMAN Some protein")
    ('P12345', 'sp|P12345|NAME_HUMAN Some protein')

    >>> parse_protein_id("PROT123 Description here")
    ('PROT123', 'PROT123 Description here')
    """
    description = header.strip()

    # UniProt/IMGT: second field is the accession or gene
    parts = description.split('|')
    if len(parts) >= 2 and parts[1]:
        protein_id = parts[1]
    else:
        protein_id = description.split()[0] if description else ''

    return protein_id, description


def read_fasta(
    fasta_path: Union[str, Path],
    min_length: int = 0,
) -> List[Tuple[str, str, str]]:
    """Read FASTA file and return list of (protein_id, sequence, description).

    Parameters
    ----------
    fasta_path : str or Path
        Path to FASTA file
    min_length : int
        Minimum protein length (default: 0, no filter)

    Returns
    -------
    proteins : List[Tuple[str, str, str]]
        List of (protein_id, sequence, description) tuples
    """
    fasta_path = Path(fasta_path)

    if not fasta_path.exists():
        raise FileNotFoundError(f"FASTA file not found: {fasta_path}")

    logger.info(f"Reading FASTA file: {fasta_path.name}")

    proteins = []
    current_id = None
    current_description = None
    current_seq: List[str] = []

    def flush():
        if current_id and current_seq:
            sequence = ''.join(current_seq)
            if len(sequence) >= min_length:
                proteins.append((current_id, sequence, current_description))

    with open(fasta_path) as f:
        for line in f:
            if line.startswith('>'):
                flush()
                current_id, current_description = parse_protein_id(line[1:])
                current_seq = []
            else:
                current_seq.append(line.strip())
        flush()

    logger.info(f"✓ Read {len(proteins):,} proteins from {fasta_path.name}")

    return proteins


def read_multiple_fasta(
    fasta_paths: List[Union[str, Path]],
    min_length: int = 0,
) -> List[Tuple[str, str, str]]:
    """Read multiple FASTA files and combine results."""
    all_proteins = []

    for fasta_path in fasta_paths:
        all_proteins.extend(read_fasta(fasta_path, min_length=min_length))

    logger.info(f"✓ Combined {len(all_proteins):,} proteins from {len(fasta_paths)} files")

    return all_proteins


class FastaReader:
    """Yield one unmodified peptidoform per FASTA record.

    Records containing letters that are not amino acid codes are skipped
    with a warning.

    Parameters
    ----------
    min_length : int
        Minimum protein length (default: 0, no filter)

    Examples
    --------
    >>> for peptidoform, metadata in FastaReader().read("human.fasta"):
    ...     print(metadata['protein_id'], peptidoform.residue_count)
    """

    def __init__(self, min_length: int = 0):
        self.min_length = min_length

    def read(self, source: Source) -> Iterator[Tuple[Peptidoform, Metadata]]:
        for protein_id, sequence, description in read_fasta(source, min_length=self.min_length):
            sequence = sequence.upper()
            unknown = sorted({aa for aa in sequence if aa not in AMINO_ACID_FORMULAS})
            if unknown:
                logger.warning(f"Skipping {protein_id}: unknown residues {''.join(unknown)}")
                continue
            yield Peptidoform.from_sequence(sequence), {
                'protein_id': protein_id,
                'description': description,
            }
