"""ProForma 2.0 parser and serializer.

The parser is a single left-to-right pass over the text with a cursor. The
only backtracking happens inside modification tags, where a token is tried
against a fixed, ordered list of resolution strategies (mass offset,
formula, database name, glycan composition).

Supported notation
------------------
- residues with modifications            ``EM[Oxidation]EVEES[UNIMOD:21]PEK``
- terminal modifications                  ``[Acetyl]-PEPTIDE-[Amidated]``
- labeled ambiguity with scores           ``EM[Oxidation#g1(0.9)]EVM[#g1(0.1)]``
- ranges                                  ``PR(ESFRMS)[+19.0523]ISK``
- unlocalized modifications               ``[Phospho]^2?EMEVTSESPEK``
- labile modifications                    ``{Glycan:Hex}EMEVNESPEK``
- global fixed rules and isotope labels   ``<[Carbamidomethyl]@C><15N>PEPC``
- cross-links and branches                ``EMEVTK[DSS#XL1]SESPEK//ETFK[#XL1]AAR``
- chimeric sets                           ``PEPTIDE/2+ELVISK/3``
- charge and adducts                      ``PEPTIDE/2[+2Na+,+H+]``
- pipe alternatives and INFO tags         ``S[Phospho|INFO:high confidence]``

Examples
--------
>>> peptidoforms = parse("[Acetyl]-EM[Oxidation]EVT[#g1]S[Phospho#g1]ESPEK/2")
>>> to_proforma(peptidoforms)
'[Acetyl]-EM[Oxidation]EVT[Phospho#g1]S[#g1]ESPEK/2'
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..constants import AMINO_ACID_FORMULAS, ISOTOPE_MASSES
from ..errors import (
    InvalidCrossLink,
    MalformedSyntax,
    ParseError,
    UnknownResidue,
    UnresolvedModification,
)
from ..formula import format_formula, formula_mass, parse_formula
from ..modifications import Modification, resolve_modification
from .model import (
    Adduct,
    AmbiguousModificationGroup,
    Cardinality,
    ChargeCarriers,
    CrossLink,
    FixedModificationRule,
    GroupNotation,
    Peptidoform,
    PeptidoformSet,
    Residue,
)

logger = logging.getLogger(__name__)

_LABEL = re.compile(r'^[A-Za-z0-9_]+$')
_SCORED_LABEL = re.compile(r'^(.*)\(([-+]?\d*\.?\d+(?:[eE][-+]?\d+)?)\)$')
_CARET = re.compile(r'\^(\d+)\?')
_CHARGE = re.compile(r'[+-]?\d+')
_ADDUCT = re.compile(r'^([+-]?)(\d*)([A-Za-z0-9\[\]]+?)([+-])(\d*)$')
_TERMINAL_TARGETS = {"n-term": "N-term", "c-term": "C-term"}

CustomResidues = Mapping[str, Union[float, str]]


# =============================================================================
# Parse State
# =============================================================================

@dataclass
class _GroupDraft:
    identifier: str
    notation: GroupNotation
    span: Tuple[int, int]
    modification: Optional[Modification] = None
    positions: List[int] = field(default_factory=list)
    scores: Dict[int, float] = field(default_factory=dict)
    count: int = 1


@dataclass
class _LinkDraft:
    identifier: str
    endpoints: List[Tuple[int, int]] = field(default_factory=list)
    spans: List[Tuple[int, int]] = field(default_factory=list)
    linkers: List[Tuple[Modification, Tuple[int, int]]] = field(default_factory=list)


@dataclass
class _PeptidoformDraft:
    index: int
    ion_index: int
    start: int
    residues: List[list] = field(default_factory=list)
    n_term: List[Modification] = field(default_factory=list)
    c_term: List[Modification] = field(default_factory=list)
    labile: List[Modification] = field(default_factory=list)
    groups: List[_GroupDraft] = field(default_factory=list)
    labels: Dict[str, _GroupDraft] = field(default_factory=dict)
    carriers: Optional[ChargeCarriers] = None


class _ProFormaParser:
    def __init__(self, text: str, custom_residues: Optional[CustomResidues] = None):
        self.text = text
        self.pos = 0
        self.custom = _normalize_custom_residues(custom_residues)
        self.links: Dict[str, _LinkDraft] = {}

    # -------------------------------------------------------------------------
    # Cursor helpers
    # -------------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ''

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _error(self, cls, message: str, start: int, end: Optional[int] = None) -> ParseError:
        return cls(message, self.text, (start, end if end is not None else start + 1))

    def _read_delimited(self, open_char: str = '[', close_char: str = ']') -> Tuple[str, int, int]:
        """Read a bracketed token, honouring nested brackets.

        Returns the content and the span including the delimiters.
        """
        start = self.pos
        depth = 0
        index = start
        while index < len(self.text):
            char = self.text[index]
            if char == open_char:
                depth += 1
            elif char == close_char:
                depth -= 1
                if depth == 0:
                    self.pos = index + 1
                    return self.text[start + 1:index], start, index + 1
            index += 1
        raise self._error(MalformedSyntax, f"unclosed '{open_char}'", start, len(self.text))

    def _resolve(self, token: str, start: int, end: int) -> Modification:
        token = token.strip()
        if not token:
            raise self._error(MalformedSyntax, "empty modification", start, end)
        modification = resolve_modification(token)
        if modification is None:
            raise self._error(UnresolvedModification, f"cannot resolve '{token}'", start, end)
        return modification

    def _split_label(self, content: str, start: int, end: int):
        """Split "Phospho#g1(0.9)" into ("Phospho", "g1", 0.9).

        INFO alternatives are free text, so a '#' inside them is no label.
        """
        alternatives = content.split('|')
        for index, alternative in enumerate(alternatives):
            if alternative.strip()[:5].lower() == "info:" or '#' not in alternative:
                continue
            alternatives[index], _, label = alternative.partition('#')
            break
        else:
            return content, None, None
        token = '|'.join(alternatives)
        score = None
        scored = _SCORED_LABEL.match(label)
        if scored:
            label = scored.group(1)
            score = float(scored.group(2))
        if not _LABEL.match(label):
            raise self._error(MalformedSyntax, f"invalid label '#{label}'", start, end)
        return token, label, score

    # -------------------------------------------------------------------------
    # Top level
    # -------------------------------------------------------------------------

    def parse(self) -> PeptidoformSet:
        if not self.text.strip():
            raise self._error(MalformedSyntax, "empty input", 0, len(self.text))

        rules, isotopes = self._parse_globals()

        drafts: List[_PeptidoformDraft] = []
        ion_index = 0
        while True:
            drafts.append(self._parse_peptidoform(len(drafts), ion_index))
            if self.text.startswith('//', self.pos):
                self.pos += 2
                continue
            if self._peek() == '/':
                carriers = self._parse_charge()
                for draft in drafts:
                    if draft.ion_index == ion_index:
                        draft.carriers = carriers
            if self._at_end():
                break
            if self._peek() == '+':
                self.pos += 1
                ion_index += 1
                if self._at_end():
                    raise self._error(MalformedSyntax, "expected a peptidoform after '+'", self.pos - 1)
                continue
            raise self._error(MalformedSyntax, f"unexpected '{self._peek()}'", self.pos)

        links = self._finish_links(drafts)
        peptidoforms = [self._build(draft, links, rules, isotopes) for draft in drafts]
        return PeptidoformSet(peptidoforms, links=links, fixed_rules=rules, isotope_labels=isotopes)

    def _parse_globals(self) -> Tuple[List[FixedModificationRule], Tuple[str, ...]]:
        rules = []
        isotopes = []
        while self._peek() == '<':
            start = self.pos
            self.pos += 1
            if self._peek() == '[':
                content, tag_start, tag_end = self._read_delimited()
                modification = self._resolve(content, tag_start, tag_end)
                if self._peek() != '@':
                    raise self._error(MalformedSyntax, "expected '@' in global modification", self.pos)
                self.pos += 1
                close = self.text.find('>', self.pos)
                if close == -1:
                    raise self._error(MalformedSyntax, "unclosed '<'", start, len(self.text))
                targets = []
                for target in self.text[self.pos:close].split(','):
                    target = target.strip()
                    if target.lower() in _TERMINAL_TARGETS:
                        targets.append(_TERMINAL_TARGETS[target.lower()])
                    elif target in AMINO_ACID_FORMULAS or target in self.custom:
                        targets.append(target)
                    else:
                        raise self._error(
                            MalformedSyntax, f"invalid global modification target '{target}'",
                            self.pos, close,
                        )
                rules.append(FixedModificationRule(modification, tuple(targets)))
            else:
                close = self.text.find('>', self.pos)
                if close == -1:
                    raise self._error(MalformedSyntax, "unclosed '<'", start, len(self.text))
                label = self.text[self.pos:close].strip()
                if label not in ISOTOPE_MASSES:
                    raise self._error(MalformedSyntax, f"unknown isotope label '{label}'", start, close + 1)
                isotopes.append(label)
            self.pos = close + 1
        return rules, tuple(isotopes)

    # -------------------------------------------------------------------------
    # One peptidoform
    # -------------------------------------------------------------------------

    def _parse_peptidoform(self, index: int, ion_index: int) -> _PeptidoformDraft:
        draft = _PeptidoformDraft(index=index, ion_index=ion_index, start=self.pos)
        self._parse_prefix(draft)

        range_start: Optional[int] = None
        range_open = 0
        while not self._at_end():
            char = self._peek()
            if char.isalpha():
                self._parse_residue(draft)
            elif char == '(':
                if self._peek(1) == '?':
                    raise self._error(
                        MalformedSyntax, "sequence ambiguity '(?...)' is not supported", self.pos, self.pos + 2
                    )
                if range_start is not None:
                    raise self._error(MalformedSyntax, "nested ranges are not allowed", self.pos)
                range_start = len(draft.residues)
                range_open = self.pos
                self.pos += 1
            elif char == ')':
                if range_start is None:
                    raise self._error(MalformedSyntax, "unmatched ')'", self.pos)
                if len(draft.residues) == range_start:
                    raise self._error(MalformedSyntax, "empty range", range_open, self.pos + 1)
                self.pos += 1
                self._parse_range_tags(draft, range_start, len(draft.residues))
                range_start = None
            elif char == '-':
                self.pos += 1
                self._parse_c_term(draft)
                break
            elif char in '/+':
                break
            else:
                raise self._error(MalformedSyntax, f"unexpected '{char}'", self.pos)

        if range_start is not None:
            raise self._error(MalformedSyntax, "unclosed range", range_open, len(self.text))
        if not draft.residues:
            raise self._error(MalformedSyntax, "peptidoform without residues", draft.start, max(self.pos, draft.start + 1))
        return draft

    def _parse_prefix(self, draft: _PeptidoformDraft) -> None:
        pending: List[Tuple[str, int, int]] = []
        while True:
            char = self._peek()
            if char == '{':
                content, start, end = self._read_delimited('{', '}')
                draft.labile.append(self._resolve(content, start, end))
            elif char == '[':
                pending.append(self._read_delimited())
                follow = self._peek()
                if follow == '?':
                    self.pos += 1
                    self._add_unlocalized(draft, pending, 1)
                    pending = []
                elif follow == '^':
                    caret = self.pos
                    match = _CARET.match(self.text, self.pos)
                    if match is None or int(match.group(1)) < 1:
                        raise self._error(MalformedSyntax, "expected '^n?'", caret)
                    self.pos = match.end()
                    self._add_unlocalized(draft, pending, int(match.group(1)))
                    pending = []
                elif follow == '-':
                    self.pos += 1
                    for content, start, end in pending:
                        draft.n_term.append(self._terminal_modification(content, start, end))
                    pending = []
                elif follow != '[':
                    _, start, end = pending[-1]
                    raise self._error(
                        MalformedSyntax, "modification before the sequence needs '-' or '?'", start, end
                    )
            else:
                return

    def _add_unlocalized(self, draft: _PeptidoformDraft, tags, count: int) -> None:
        for i, (content, start, end) in enumerate(tags):
            if '#' in content:
                raise self._error(MalformedSyntax, "labels are not allowed on unlocalized modifications", start, end)
            modification = self._resolve(content, start, end)
            # the caret count applies to the tag directly before it
            copies = count if i == len(tags) - 1 else 1
            for group in draft.groups:
                if group.notation is GroupNotation.UNLOCALIZED and group.modification == modification:
                    group.count += copies
                    break
            else:
                unlocalized = sum(g.notation is GroupNotation.UNLOCALIZED for g in draft.groups)
                draft.groups.append(_GroupDraft(
                    identifier=f"unlocalized-{unlocalized + 1}",
                    notation=GroupNotation.UNLOCALIZED,
                    span=(start, end),
                    modification=modification,
                    count=copies,
                ))

    def _terminal_modification(self, content: str, start: int, end: int) -> Modification:
        token, label, _ = self._split_label(content, start, end)
        if label is not None:
            cls = InvalidCrossLink if _is_link_label(label) else MalformedSyntax
            raise self._error(cls, "terminal modifications cannot carry a label", start, end)
        return self._resolve(token, start, end)

    def _parse_residue(self, draft: _PeptidoformDraft) -> None:
        char = self._peek()
        if char in self.custom:
            mass = self.custom[char]
        elif char in AMINO_ACID_FORMULAS:
            mass = None
        else:
            raise self._error(UnknownResidue, f"unknown residue '{char}'", self.pos)
        draft.residues.append([char, [], mass])
        self.pos += 1
        position = len(draft.residues) - 1
        while self._peek() == '[':
            content, start, end = self._read_delimited()
            self._residue_tag(draft, position, content, start, end)

    def _residue_tag(self, draft: _PeptidoformDraft, position: int, content: str, start: int, end: int) -> None:
        token, label, score = self._split_label(content, start, end)
        if label is None:
            draft.residues[position][1].append(self._resolve(token, start, end))
            return

        modification = self._resolve(token, start, end) if token.strip() else None
        if _is_link_label(label):
            if score is not None:
                raise self._error(MalformedSyntax, "cross-links cannot carry a score", start, end)
            link = self.links.setdefault(label, _LinkDraft(label))
            link.endpoints.append((draft.index, position))
            link.spans.append((start, end))
            if modification is not None:
                link.linkers.append((modification, (start, end)))
        else:
            group = draft.labels.get(label)
            if group is None:
                group = _GroupDraft(identifier=label, notation=GroupNotation.LABELED, span=(start, end))
                draft.labels[label] = group
                draft.groups.append(group)
            if modification is not None:
                if group.modification is not None and group.modification != modification:
                    raise self._error(
                        MalformedSyntax, f"group '#{label}' defined with two different modifications", start, end
                    )
                group.modification = modification
            if position not in group.positions:
                group.positions.append(position)
            if score is not None:
                group.scores[position] = score

    def _parse_range_tags(self, draft: _PeptidoformDraft, first: int, end_position: int) -> None:
        if self._peek() != '[':
            raise self._error(MalformedSyntax, "range without modification", self.pos - 1)
        while self._peek() == '[':
            content, start, end = self._read_delimited()
            if '#' in content:
                raise self._error(MalformedSyntax, "labels are not allowed on ranges", start, end)
            ranges = sum(g.notation is GroupNotation.RANGE for g in draft.groups)
            draft.groups.append(_GroupDraft(
                identifier=f"range-{ranges + 1}",
                notation=GroupNotation.RANGE,
                span=(start, end),
                modification=self._resolve(content, start, end),
                positions=list(range(first, end_position)),
            ))

    def _parse_c_term(self, draft: _PeptidoformDraft) -> None:
        if self._peek() != '[':
            raise self._error(MalformedSyntax, "expected C-terminal modification after '-'", self.pos - 1)
        while self._peek() == '[':
            content, start, end = self._read_delimited()
            draft.c_term.append(self._terminal_modification(content, start, end))
        if not self._at_end() and self._peek() not in '/+':
            raise self._error(MalformedSyntax, "C-terminal modification must end the peptidoform", self.pos)

    def _parse_charge(self) -> ChargeCarriers:
        start = self.pos
        self.pos += 1
        match = _CHARGE.match(self.text, self.pos)
        if match is None or int(match.group(0)) == 0:
            raise self._error(MalformedSyntax, "expected a non-zero charge", start, self.pos + 1)
        charge = int(match.group(0))
        self.pos = match.end()
        adducts = []
        if self._peek() == '[':
            content, tag_start, tag_end = self._read_delimited()
            for item in content.split(','):
                adducts.append(self._parse_adduct(item.strip(), tag_start, tag_end))
        return ChargeCarriers(charge, tuple(adducts))

    def _parse_adduct(self, item: str, start: int, end: int) -> Adduct:
        match = _ADDUCT.match(item)
        if match is None:
            raise self._error(MalformedSyntax, f"invalid adduct '{item}'", start, end)
        sign, count, formula_text, charge_sign, charge = match.groups()
        try:
            formula = parse_formula(formula_text)
        except ValueError as err:
            raise self._error(MalformedSyntax, str(err), start, end) from err
        count = int(count) if count else 1
        charge = int(charge) if charge else 1
        return Adduct(
            formula=formula,
            charge=-charge if charge_sign == '-' else charge,
            count=-count if sign == '-' else count,
        )

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def _finish_links(self, drafts: List[_PeptidoformDraft]) -> List[CrossLink]:
        links = []
        for label, draft in self.links.items():
            if len(draft.endpoints) != 2:
                span = draft.spans[2] if len(draft.spans) > 2 else draft.spans[0]
                raise self._error(
                    InvalidCrossLink,
                    f"cross-link '#{label}' must connect exactly two residues, found {len(draft.endpoints)}",
                    *span,
                )
            if not draft.linkers:
                raise self._error(InvalidCrossLink, f"cross-link '#{label}' has no linker", *draft.spans[0])
            linker, _ = draft.linkers[0]
            for other, span in draft.linkers[1:]:
                if other != linker:
                    raise self._error(InvalidCrossLink, f"cross-link '#{label}' has two different linkers", *span)
            first, second = draft.endpoints
            if first == second:
                raise self._error(InvalidCrossLink, f"cross-link '#{label}' links a residue to itself", *draft.spans[1])
            if drafts[first[0]].ion_index != drafts[second[0]].ion_index:
                raise self._error(
                    InvalidCrossLink, f"cross-link '#{label}' connects peptidoforms of different ions", *draft.spans[1]
                )
            links.append(CrossLink(label, linker, first, second))
        return links

    def _build(self, draft: _PeptidoformDraft, links, rules, isotopes) -> Peptidoform:
        groups = []
        for group in draft.groups:
            if group.modification is None:
                raise self._error(MalformedSyntax, f"group '#{group.identifier}' has no modification", *group.span)
            positions = group.positions
            if group.notation is GroupNotation.UNLOCALIZED:
                positions = list(range(len(draft.residues)))
                if group.count > len(positions):
                    raise self._error(
                        MalformedSyntax,
                        f"{group.count} unlocalized copies do not fit on {len(positions)} residues",
                        *group.span,
                    )
            groups.append(AmbiguousModificationGroup(
                identifier=group.identifier,
                modification=group.modification,
                positions=tuple(positions),
                scores=dict(group.scores),
                cardinality=Cardinality.EXACTLY_ONE,
                count=group.count,
                notation=group.notation,
            ))

        return Peptidoform(
            residues=[Residue(aa, tuple(mods), mass) for aa, mods, mass in draft.residues],
            n_term=draft.n_term,
            c_term=draft.c_term,
            labile=draft.labile,
            ambiguous_groups=groups,
            links=[link for link in links if draft.index in (link.first[0], link.second[0])],
            carriers=draft.carriers,
            fixed_rules=list(rules),
            isotope_labels=isotopes,
            index=draft.index,
            ion_index=draft.ion_index,
        )


def _is_link_label(label: str) -> bool:
    return label.upper().startswith("XL") or label.upper() == "BRANCH"


def _normalize_custom_residues(custom_residues: Optional[CustomResidues]) -> Dict[str, float]:
    normalized = {}
    for code, value in (custom_residues or {}).items():
        if len(code) != 1 or not code.isalpha() or not code.isupper() or not code.isascii():
            raise ValueError(f"Custom residue code must be one uppercase letter, got '{code}'")
        if isinstance(value, str):
            value = formula_mass(parse_formula(value))[0]
        normalized[code] = float(value)
    return normalized


# =============================================================================
# Public API
# =============================================================================

def parse(text: str, custom_residues: Optional[CustomResidues] = None) -> PeptidoformSet:
    """Parse ProForma text into a PeptidoformSet.

    Parameters
    ----------
    text : str
        ProForma 2.0 string
    custom_residues : dict, optional
        Extra residue codes mapped to a monoisotopic mass or a formula.
        Overrides the built-in residue table for those codes.

    Returns
    -------
    PeptidoformSet
        Peptidoforms in declaration order

    Raises
    ------
    UnknownResidue, UnresolvedModification, InvalidCrossLink, MalformedSyntax
        All subclasses of ParseError, carrying the offending text span

    Examples
    --------
    >>> peptidoforms = parse("PEPTIDE/2+ELVISK/3")
    >>> len(peptidoforms), peptidoforms.is_chimeric
    (2, True)
    """
    peptidoforms = _ProFormaParser(text, custom_residues).parse()
    logger.debug(f"Parsed {len(peptidoforms)} peptidoform(s) from '{text}'")
    return peptidoforms


def parse_peptidoform(text: str, custom_residues: Optional[CustomResidues] = None) -> Peptidoform:
    """Parse ProForma text that must contain exactly one peptidoform."""
    peptidoforms = parse(text, custom_residues)
    if len(peptidoforms) != 1:
        raise MalformedSyntax(f"expected one peptidoform, found {len(peptidoforms)}", text)
    return peptidoforms[0]


def to_proforma(peptidoforms: Union[PeptidoformSet, Peptidoform]) -> str:
    """Serialize to ProForma text.

    parse(to_proforma(x)) == x for every PeptidoformSet produced by parse().
    Pipe alternatives and INFO tags are not preserved.
    """
    if isinstance(peptidoforms, Peptidoform):
        peptidoform = peptidoforms
        prefix = _serialize_globals(peptidoform.fixed_rules, peptidoform.isotope_labels)
        text = _serialize_peptidoform(peptidoform, peptidoform.links)
        if peptidoform.carriers is not None:
            text += _serialize_charge(peptidoform.carriers)
        return prefix + text

    ions = []
    for members in peptidoforms.ions():
        text = '//'.join(_serialize_peptidoform(p, peptidoforms.links) for p in members)
        if members[-1].carriers is not None:
            text += _serialize_charge(members[-1].carriers)
        ions.append(text)
    return _serialize_globals(peptidoforms.fixed_rules, peptidoforms.isotope_labels) + '+'.join(ions)


# =============================================================================
# Serialization
# =============================================================================

def _serialize_globals(rules, isotope_labels) -> str:
    parts = [f"<{label}>" for label in isotope_labels]
    parts.extend(f"<[{rule.modification}]@{','.join(rule.targets)}>" for rule in rules)
    return ''.join(parts)


def _serialize_charge(carriers: ChargeCarriers) -> str:
    text = f"/{carriers.charge}"
    if carriers.adducts:
        text += f"[{','.join(_serialize_adduct(a) for a in carriers.adducts)}]"
    return text


def _serialize_adduct(adduct: Adduct) -> str:
    count = '' if abs(adduct.count) == 1 else str(abs(adduct.count))
    charge = '' if abs(adduct.charge) == 1 else str(abs(adduct.charge))
    return (
        f"{'-' if adduct.count < 0 else '+'}{count}{format_formula(adduct.formula)}"
        f"{'-' if adduct.charge < 0 else '+'}{charge}"
    )


def _serialize_peptidoform(peptidoform: Peptidoform, links: List[CrossLink]) -> str:
    labeled = []
    unlocalized = []
    ranges: Dict[Tuple[int, int], List[AmbiguousModificationGroup]] = {}
    for group in peptidoform.ambiguous_groups:
        if group.cardinality is not Cardinality.EXACTLY_ONE:
            raise ValueError(f"Group '{group.identifier}' has no ProForma notation (any-subset placement)")
        if group.notation is GroupNotation.UNLOCALIZED:
            unlocalized.append(group)
        elif group.notation is GroupNotation.RANGE:
            first, last = group.positions[0], group.positions[-1]
            if group.positions != tuple(range(first, last + 1)):
                raise ValueError(f"Range group '{group.identifier}' is not contiguous")
            ranges.setdefault((first, last), []).append(group)
        else:
            labeled.append(group)

    spans = sorted(ranges)
    for (_, last), (first, _) in zip(spans, spans[1:]):
        if first <= last:
            raise ValueError("Overlapping ranges have no ProForma notation")
    starts = {first for first, _ in spans}
    ends = {last: ranges[(first, last)] for first, last in spans}

    parts = [f"{{{m}}}" for m in peptidoform.labile]
    for group in unlocalized:
        caret = f"^{group.count}" if group.count > 1 else ''
        parts.append(f"[{group.modification}]{caret}?")
    if peptidoform.n_term:
        parts.append(''.join(f"[{m}]" for m in peptidoform.n_term) + '-')

    for position, residue in enumerate(peptidoform.residues):
        if position in starts:
            parts.append('(')
        parts.append(residue.amino_acid)
        parts.extend(f"[{m}]" for m in residue.modifications)
        endpoint = (peptidoform.index, position)
        for link in links:
            if link.first == endpoint:
                parts.append(f"[{link.linker}#{link.identifier}]")
            elif link.second == endpoint:
                parts.append(f"[#{link.identifier}]")
        for group in labeled:
            if position not in group.positions:
                continue
            definition = str(group.modification) if position == group.positions[0] else ''
            score = f"({group.scores[position]!r})" if position in group.scores else ''
            parts.append(f"[{definition}#{group.identifier}{score}]")
        if position in ends:
            parts.append(')')
            parts.extend(f"[{group.modification}]" for group in ends[position])

    if peptidoform.c_term:
        parts.append('-' + ''.join(f"[{m}]" for m in peptidoform.c_term))
    return ''.join(parts)
