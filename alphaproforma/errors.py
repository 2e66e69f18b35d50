"""Exception types raised by alphaproforma.

Parse errors always carry the offending character span of the input text so
that callers can point at the problem without re-scanning the input.
Matching never raises; absence of a match is reported in the MatchReport.
"""

from typing import Optional, Tuple


class AlphaProFormaError(Exception):
    """Base class for all alphaproforma errors."""


# =============================================================================
# Parsing
# =============================================================================

class ParseError(AlphaProFormaError, ValueError):
    """ProForma text could not be parsed.

    Parameters
    ----------
    message : str
        Human readable description of the problem
    text : str
        The complete input text
    span : tuple of int, optional
        Half-open (start, end) character offsets of the offending token.
        Defaults to the whole input.

    Examples
    --------
    >>> try:
    ...     parse("PEP[Frobnicate]TIDE")
    ... except ParseError as err:
    ...     print(err.span, err.token)
    (3, 15) [Frobnicate]
    """

    kind = "malformed ProForma"

    def __init__(self, message: str, text: str = "", span: Optional[Tuple[int, int]] = None):
        self.message = message
        self.text = text
        self.span = span if span is not None else (0, len(text))
        super().__init__(self._describe())

    @property
    def token(self) -> str:
        """Text covered by the error span."""
        start, end = self.span
        return self.text[start:end]

    def _describe(self) -> str:
        start, end = self.span
        if not self.text:
            return f"{self.kind}: {self.message}"
        marker = " " * start + "^" * max(end - start, 1)
        return f"{self.kind}: {self.message} at {start}-{end}\n  {self.text}\n  {marker}"


class UnknownResidue(ParseError):
    """Residue code is neither a known amino acid nor a declared custom residue."""

    kind = "unknown residue"


class UnresolvedModification(ParseError):
    """Modification token did not resolve by mass, formula, name or glycan."""

    kind = "unresolved modification"


class InvalidCrossLink(ParseError):
    """Cross-link identifier is dangling, overused or has no linker."""

    kind = "invalid cross-link"


class MalformedSyntax(ParseError):
    """Input does not follow the ProForma grammar."""

    kind = "malformed ProForma"


# =============================================================================
# Mass resolution and fragmentation
# =============================================================================

class UnresolvedMass(AlphaProFormaError, LookupError):
    """A database modification name is unknown, so no mass can be given."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No mass known for modification '{name}'")


class CombinatorialLimitExceeded(AlphaProFormaError, RuntimeError):
    """Enumeration would exceed the configured combinatorial limit.

    Attributes
    ----------
    what : str
        What was being enumerated ("ambiguous placements" or
        "glycan compositions")
    required : int
        Number of combinations the input needs
    limit : int
        Configured upper bound
    """

    def __init__(self, what: str, required: int, limit: int):
        self.what = what
        self.required = required
        self.limit = limit
        super().__init__(
            f"{what}: {required:,} combinations exceed the limit of {limit:,}"
        )
