"""Tests for the ProForma parser and serializer."""

import pytest

from alphaproforma.errors import (
    InvalidCrossLink,
    MalformedSyntax,
    ParseError,
    UnknownResidue,
    UnresolvedModification,
)
from alphaproforma.modifications import ModificationKind, lookup_modification
from alphaproforma.peptidoform import (
    GroupNotation,
    parse,
    parse_peptidoform,
    to_proforma,
)


class TestParseBasics:
    """Test sequences, residue and terminal modifications."""

    def test_plain_sequence(self):
        """Test an unmodified peptide."""
        peptidoforms = parse("PEPTIDE")
        assert len(peptidoforms) == 1
        peptidoform = peptidoforms[0]
        assert peptidoform.sequence == "PEPTIDE"
        assert peptidoform.charge is None
        assert not peptidoforms.is_chimeric

    def test_residue_modifications(self):
        """Test named and accession modifications on residues."""
        peptidoform = parse_peptidoform("EM[Oxidation]EVEES[UNIMOD:21]PEK")
        assert peptidoform.modifications_at(1) == [lookup_modification("Oxidation")]
        assert peptidoform.modifications_at(6) == [lookup_modification("Phospho")]
        assert peptidoform.modifications_at(0) == []

    def test_multiple_modifications_on_one_residue(self):
        """Test stacked tags on a single residue."""
        peptidoform = parse_peptidoform("PEPK[Acetyl][+1.0]")
        assert len(peptidoform.modifications_at(3)) == 2

    def test_mass_and_formula_modifications(self):
        """Test mass offsets and formulas."""
        peptidoform = parse_peptidoform("PEP[+79.966]T[Formula:HO3P]IDE")
        assert peptidoform.modifications_at(2)[0].kind is ModificationKind.MASS
        assert peptidoform.modifications_at(3)[0].kind is ModificationKind.FORMULA

    def test_terminal_modifications(self):
        """Test N- and C-terminal modifications."""
        peptidoform = parse_peptidoform("[Acetyl]-PEPTIDE-[Amidated]")
        assert peptidoform.n_term == [lookup_modification("Acetyl")]
        assert peptidoform.c_term == [lookup_modification("Amidated")]
        assert peptidoform.sequence == "PEPTIDE"

    def test_labile(self):
        """Test labile modifications are kept apart from residues."""
        peptidoform = parse_peptidoform("{Glycan:Hex}EMEVNESPEK")
        assert len(peptidoform.labile) == 1
        assert peptidoform.labile[0].is_glycan
        assert all(not peptidoform.modifications_at(i) for i in range(peptidoform.residue_count))

    def test_pipe_and_info(self):
        """Test pipe alternatives resolve to the first usable one."""
        peptidoform = parse_peptidoform("S[Phospho|INFO:high confidence]EK")
        assert peptidoform.modifications_at(0) == [lookup_modification("Phospho")]

    def test_hash_inside_info(self):
        """Test a '#' in INFO text is not read as a group label."""
        peptidoform = parse_peptidoform("S[Phospho|INFO:see #3]EK")
        assert not peptidoform.ambiguous_groups
        assert peptidoform.modifications_at(0) == [lookup_modification("Phospho")]

    def test_label_before_info(self):
        """Test a label on the modification alternative is still found."""
        peptidoform = parse_peptidoform("EM[Oxidation#g1|INFO:see #3]EVM[#g1]PEK")
        assert [g.identifier for g in peptidoform.ambiguous_groups] == ['g1']

    def test_charge(self):
        """Test a plain charge state."""
        peptidoform = parse_peptidoform("PEPTIDE/2")
        assert peptidoform.charge == 2
        assert peptidoform.carriers.adducts == ()

    def test_adducts(self):
        """Test adduct ion charge carriers."""
        peptidoform = parse_peptidoform("PEPTIDE/3[+2Na+,+H+]")
        carriers = peptidoform.carriers
        assert carriers.charge == 3
        assert [(a.formula, a.count, a.charge) for a in carriers.adducts] == [
            ((('Na', 1),), 2, 1),
            ((('H', 1),), 1, 1),
        ]

    def test_custom_residues(self):
        """Test caller-declared residue codes by mass and formula."""
        peptidoform = parse_peptidoform("PEPXTIDE", custom_residues={"X": 111.0})
        assert peptidoform.residues[3].mass == 111.0
        peptidoform = parse_peptidoform("PEPOTIDE", custom_residues={"O": "C2H3NO"})
        assert abs(peptidoform.residues[3].mass - 57.021464) < 1e-6


class TestParseAmbiguity:
    """Test labeled groups, ranges and unlocalized modifications."""

    def test_labeled_group(self):
        """Test a labeled group with scores."""
        peptidoform = parse_peptidoform("EM[Oxidation#g1(0.9)]EVM[#g1(0.1)]PEK")
        group = peptidoform.group("g1")
        assert group.positions == (1, 4)
        assert group.scores == {1: 0.9, 4: 0.1}
        assert group.notation is GroupNotation.LABELED
        assert group.modification == lookup_modification("Oxidation")
        # ambiguous modifications are not fixed on either residue
        assert peptidoform.modifications_at(1) == []

    def test_definition_on_later_position(self):
        """Test the modification may be written on any member."""
        peptidoform = parse_peptidoform("EMT[#g1]S[Phospho#g1]K")
        assert peptidoform.group("g1").positions == (2, 3)

    def test_range(self):
        """Test a range group covers its residues."""
        peptidoform = parse_peptidoform("PR(ESFRMS)[+19.0523]ISK")
        (group,) = peptidoform.ambiguous_groups
        assert group.notation is GroupNotation.RANGE
        assert group.positions == (2, 3, 4, 5, 6, 7)
        assert peptidoform.sequence == "PRESFRMSISK"

    def test_unlocalized(self):
        """Test unlocalized modifications with a count."""
        peptidoform = parse_peptidoform("[Phospho]^2?EMEVTSESPEK")
        (group,) = peptidoform.ambiguous_groups
        assert group.notation is GroupNotation.UNLOCALIZED
        assert group.count == 2
        assert group.positions == tuple(range(11))

    def test_unlocalized_repeated(self):
        """Test repeated unlocalized tags merge into one group."""
        peptidoform = parse_peptidoform("[Phospho][Phospho]?EMEVTSESPEK")
        (group,) = peptidoform.ambiguous_groups
        assert group.count == 2

    def test_global_fixed_rule(self):
        """Test global fixed modifications apply to every target residue."""
        peptidoform = parse_peptidoform("<[Carbamidomethyl]@C>PEPCTIDEC")
        expected = [lookup_modification("Carbamidomethyl")]
        assert peptidoform.modifications_at(3) == expected
        assert peptidoform.modifications_at(8) == expected
        assert peptidoform.modifications_at(0) == []

    def test_global_terminal_rule(self):
        """Test global fixed modifications on a terminus."""
        peptidoform = parse_peptidoform("<[Acetyl]@N-term>PEPTIDE")
        assert peptidoform.n_term_modifications() == [lookup_modification("Acetyl")]

    def test_isotope_label(self):
        """Test global isotope labels."""
        peptidoforms = parse("<15N>PEPTIDE")
        assert peptidoforms.isotope_labels == ("15N",)
        assert peptidoforms[0].isotope_labels == ("15N",)


class TestParseSets:
    """Test chimeric sets and cross-links."""

    def test_chimeric(self):
        """Test '+' separates independent ions."""
        peptidoforms = parse("PEPTIDE/2+ELVISK/3")
        assert peptidoforms.is_chimeric
        assert [p.ion_index for p in peptidoforms] == [0, 1]
        assert [p.charge for p in peptidoforms] == [2, 3]

    def test_inter_cross_link(self):
        """Test '//' joins cross-linked members of one ion."""
        peptidoforms = parse("EMEVTK[DSS#XL1]SESPEK//ETFK[#XL1]AAR/3")
        assert not peptidoforms.is_chimeric
        (link,) = peptidoforms.cross_links()
        assert link.identifier == "XL1"
        assert link.first == (0, 5)
        assert link.second == (1, 3)
        assert not link.intra
        assert link.linker == lookup_modification("DSS")
        # the charge belongs to the whole ion
        assert [p.charge for p in peptidoforms] == [3, 3]
        assert peptidoforms[0].links == peptidoforms[1].links

    def test_intra_cross_link(self):
        """Test a loop link within one peptidoform."""
        peptidoform = parse_peptidoform("EMEVTK[XLMOD:02001#XL1]SESK[#XL1]EK")
        (link,) = peptidoform.cross_links()
        assert link.intra
        assert link.positions_on(0) == (5, 9)

    def test_disulfide(self):
        """Test a disulfide bond."""
        peptidoform = parse_peptidoform("EVTSEKC[MOD:00034#XL1]LEMSC[#XL1]EFD")
        (link,) = peptidoform.cross_links()
        assert link.linker.name == "Disulfide"

    def test_branch(self):
        """Test a branch is a cross-link with identifier BRANCH."""
        peptidoforms = parse("ETFGD[-18.010565#BRANCH]//R[#BRANCH]ATER")
        (link,) = peptidoforms.cross_links()
        assert link.is_branch


class TestParseErrors:
    """Test error kinds and spans."""

    def test_unknown_residue(self):
        """Test a lowercase residue is unknown."""
        with pytest.raises(UnknownResidue) as excinfo:
            parse("PEPtIDE")
        assert excinfo.value.span == (3, 4)
        assert excinfo.value.token == "t"

    def test_unresolved_modification(self):
        """Test the span covers the whole tag."""
        with pytest.raises(UnresolvedModification) as excinfo:
            parse("PEP[Frobnicate]TIDE")
        assert excinfo.value.span == (3, 15)
        assert excinfo.value.token == "[Frobnicate]"

    def test_errors_are_value_errors(self):
        """Test parse errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            parse("PEP[Frobnicate]TIDE")

    def test_error_message_shows_position(self):
        """Test str() points at the problem."""
        with pytest.raises(ParseError) as excinfo:
            parse("PEP[Frobnicate]TIDE")
        message = str(excinfo.value)
        assert "3-15" in message
        assert "PEP[Frobnicate]TIDE" in message

    @pytest.mark.parametrize("text", [
        "",
        "PEP[",
        "PEP]TIDE",
        "PEPT[]IDE",
        "(PEP",
        "PEP)TIDE",
        "P(E(P)T)IDE",
        "PEP()TIDE",
        "(?DQ)NGTWEMESNENFEGYMK",
        "[Acetyl]PEPTIDE",
        "PEPTIDE-",
        "PEPTIDE/0",
        "PEPTIDE+",
        "PEP TIDE",
        "EM[Oxidation#g1]EVM[#g1]PEK#",
        "<[Carbamidomethyl]C>PEPC",
        "<16O>PEPTIDE",
    ])
    def test_malformed(self, text):
        """Test malformed input raises MalformedSyntax."""
        with pytest.raises(MalformedSyntax):
            parse(text)

    def test_group_without_modification(self):
        """Test a labeled group must be defined somewhere."""
        with pytest.raises(MalformedSyntax):
            parse("EM[#g1]EVM[#g1]PEK")

    @pytest.mark.parametrize("text", [
        "EMEVTK[DSS#XL1]SESPEK",
        "EMEVTK[DSS#XL1]SESK[#XL1]EK[#XL1]",
        "EMEVTK[#XL1]SESK[#XL1]EK",
        "EMEVTK[DSS#XL1]SESK[DSSO#XL1]EK",
        "EMEVTK[DSS#XL1]SESPEK+ETFK[#XL1]AAR",
        "[DSS#XL1]-EMEVTKSESK[#XL1]",
    ])
    def test_invalid_cross_links(self, text):
        """Test dangling, overused, linkerless and cross-ion links."""
        with pytest.raises(InvalidCrossLink):
            parse(text)

    def test_unknown_residue_without_declaration(self):
        """Test custom codes must be declared."""
        with pytest.raises(UnknownResidue):
            parse("PEPÜTIDE")

    def test_invalid_custom_residue_code(self):
        """Test custom codes must be one uppercase letter."""
        with pytest.raises(ValueError):
            parse("PEPTIDE", custom_residues={"Xx": 100.0})


class TestSerialization:
    """Test to_proforma and the parse round trip."""

    def test_round_trip_examples(self, proforma_examples):
        """Test parse(to_proforma(x)) == x for representative inputs."""
        for text in proforma_examples:
            peptidoforms = parse(text)
            assert parse(to_proforma(peptidoforms)) == peptidoforms, text

    def test_canonical_text(self):
        """Test canonical output of common notations."""
        assert to_proforma(parse("EM[U:Oxidation]EVEES[UNIMOD:21]PEK/2")) == \
            "EM[Oxidation]EVEES[Phospho]PEK/2"
        assert to_proforma(parse("[Acetyl]-PEPTIDE-[Amidated]")) == "[Acetyl]-PEPTIDE-[Amidated]"
        assert to_proforma(parse("PEPTIDE/2+ELVISK/3")) == "PEPTIDE/2+ELVISK/3"

    def test_labeled_group_text(self):
        """Test the group definition moves to its first position."""
        text = to_proforma(parse("EMT[#g1]S[Phospho#g1]K"))
        assert text == "EMT[Phospho#g1]S[#g1]K"

    def test_scores_kept(self):
        """Test localization scores survive."""
        text = to_proforma(parse("EM[Oxidation#g1(0.9)]EVM[#g1(0.1)]PEK"))
        assert text == "EM[Oxidation#g1(0.9)]EVM[#g1(0.1)]PEK"

    def test_cross_link_text(self):
        """Test the linker is written on the first endpoint."""
        text = to_proforma(parse("EMEVTK[#XL1]SESPEK//ETFK[DSS#XL1]AAR/3"))
        assert text == "EMEVTK[DSS#XL1]SESPEK//ETFK[#XL1]AAR/3"

    def test_range_and_unlocalized_text(self):
        """Test ranges and unlocalized modifications."""
        assert to_proforma(parse("PR(ESFRMS)[+19.0523]ISK")) == "PR(ESFRMS)[+19.0523]ISK"
        assert to_proforma(parse("[Phospho]^2?EMEVTSESPEK")) == "[Phospho]^2?EMEVTSESPEK"

    def test_globals_and_adducts(self):
        """Test global rules, isotope labels and adducts."""
        text = "<15N><[Carbamidomethyl]@C>PEPC/2[+Na+,+H+]"
        assert to_proforma(parse(text)) == text

    def test_single_peptidoform(self):
        """Test serializing one Peptidoform directly."""
        assert to_proforma(parse_peptidoform("PEPS[Phospho]IDE/2")) == "PEPS[Phospho]IDE/2"
        assert str(parse_peptidoform("PEPS[Phospho]IDE")) == "PEPS[Phospho]IDE"

    def test_parse_peptidoform_requires_one(self):
        """Test parse_peptidoform rejects sets."""
        with pytest.raises(MalformedSyntax):
            parse_peptidoform("PEPTIDE+ELVISK")
