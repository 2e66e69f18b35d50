"""Modified-sequence tables (AlphaDIA / AlphaBase precursor format).

Each row carries a plain sequence plus ``mods`` ("Oxidation@M;Phospho@S")
and ``mod_sites`` ("4;7", 1-based, 0 = N-terminus, -1 = C-terminus). The
remaining columns end up in the metadata dict.
"""

import logging
from typing import Iterator, Optional, Tuple

from ..modifications import lookup_modification, parse_modifications
from ..peptidoform.model import Peptidoform, PeptidoformBuilder
from .base import Metadata, Source

logger = logging.getLogger(__name__)


class ModifiedSequenceReader:
    """Read a tab-separated modified-sequence table into peptidoforms.

    Parameters
    ----------
    sequence_column : str
        Column with the plain sequence (default: 'sequence')
    mods_column : str
        Column with modification names (default: 'mods')
    sites_column : str
        Column with modification sites (default: 'mod_sites')
    charge_column : str, optional
        Column with the precursor charge (default: 'charge'); ignored when
        absent from the table

    Notes
    -----
    Rows with unknown residues, unknown modification names or sites outside
    the sequence are skipped with a warning.
    """

    def __init__(
        self,
        sequence_column: str = 'sequence',
        mods_column: str = 'mods',
        sites_column: str = 'mod_sites',
        charge_column: Optional[str] = 'charge',
    ):
        self.sequence_column = sequence_column
        self.mods_column = mods_column
        self.sites_column = sites_column
        self.charge_column = charge_column

    def read(self, source: Source) -> Iterator[Tuple[Peptidoform, Metadata]]:
        import pandas as pd

        df = pd.read_csv(source, sep='\t', keep_default_na=False)
        logger.info(f"Loaded {len(df):,} rows from {source}")

        used = {self.sequence_column, self.mods_column, self.sites_column}
        has_charge = self.charge_column is not None and self.charge_column in df.columns
        if has_charge:
            used.add(self.charge_column)

        n_skipped = 0
        for row_index, row in enumerate(df.to_dict('records')):
            charge = row[self.charge_column] if has_charge else None
            peptidoform = self._build(
                str(row[self.sequence_column]),
                str(row.get(self.mods_column, '')),
                str(row.get(self.sites_column, '')),
                int(charge) if charge not in (None, '') else None,
                row_index,
            )
            if peptidoform is None:
                n_skipped += 1
                continue
            metadata = {key: value for key, value in row.items() if key not in used}
            metadata['row'] = row_index
            yield peptidoform, metadata

        if n_skipped:
            logger.warning(f"Skipped {n_skipped:,} of {len(df):,} rows")

    def _build(
        self,
        sequence: str,
        mods: str,
        mod_sites: str,
        charge: Optional[int],
        row_index: int,
    ) -> Optional[Peptidoform]:
        try:
            builder = PeptidoformBuilder(sequence)
        except ValueError as e:
            logger.warning(f"Row {row_index}: {e}")
            return None

        for name, site in parse_modifications(mods, mod_sites):
            modification = lookup_modification(name)
            if modification is None:
                logger.warning(f"Row {row_index}: unknown modification '{name}'")
                return None
            if isinstance(site, int) and site >= len(sequence):
                logger.warning(f"Row {row_index}: site {site + 1} outside '{sequence}'")
                return None
            builder.add_modification(site, modification)

        if charge:
            builder.set_charge(charge)
        try:
            return builder.build()
        except ValueError as e:
            logger.warning(f"Row {row_index}: {e}")
            return None
