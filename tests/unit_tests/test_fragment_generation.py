"""Tests for theoretical fragment generation.

Covers backbone series and mass conservation, charge expansion, neutral
losses, ambiguous placements and the combinatorial guard, cross-links,
satellite ions, glycan ions, the precursor with its losses and diagnostic ions.
"""

import numpy as np
import pytest

from alphaproforma.constants import (
    AA_MASSES_DICT,
    CO_MASS,
    H2O_MASS,
    H_MASS,
    NH3_MASS,
    PROTON_MASS,
    SERIES_CODES,
)
from alphaproforma.errors import CombinatorialLimitExceeded
from alphaproforma.formula import formula_mass, parse_formula
from alphaproforma.fragments import (
    Fragment,
    FragmentationModel,
    calculate_precursor_mz,
    cumulative_masses,
    encode_peptide_to_ord,
    enumerate_sub_compositions,
    fragments_to_arrays,
    generate,
    generate_fragments_batch,
    ppm_error,
)
from alphaproforma.modifications import lookup_modification
from alphaproforma.peptidoform import Cardinality, PeptidoformBuilder, parse, parse_peptidoform

OXIDATION = lookup_modification("Oxidation").monoisotopic_mass()
PHOSPHO = lookup_modification("Phospho").monoisotopic_mass()


def _mass(formula: str) -> float:
    return formula_mass(parse_formula(formula))[0]


def _by_label(fragments):
    return {f.label: f for f in fragments}


class TestKernels:
    """Test the Numba helpers."""

    def test_encode_peptide_to_ord(self):
        """Test ord() encoding."""
        encoded = encode_peptide_to_ord("PEPTIDE")
        assert encoded.dtype == np.uint8
        assert list(encoded) == [80, 69, 80, 84, 73, 68, 69]

    def test_precursor_mz(self):
        """Test m/z from neutral mass."""
        assert abs(calculate_precursor_mz(1000.0, 2) - (500.0 + PROTON_MASS)) < 1e-9

    def test_ppm_error(self):
        """Test relative error in ppm."""
        assert abs(ppm_error(500.1, 500.0) - 200.0) < 1e-6

    def test_prefix_suffix(self):
        """Test forward and backward sums."""
        forward, backward = cumulative_masses(np.array([71.0, 57.0, 99.0]))
        assert list(forward) == [0.0, 71.0, 128.0, 227.0]
        assert list(backward) == [227.0, 156.0, 99.0, 0.0]


class TestBackbone:
    """Test backbone ion series."""

    def test_default_by_ions(self, simple_peptide):
        """Test the default model yields b1-b6 then y1-y6."""
        fragments = generate(parse(simple_peptide))
        assert [f.label for f in fragments] == [
            'b1', 'b2', 'b3', 'b4', 'b5', 'b6',
            'y1', 'y2', 'y3', 'y4', 'y5', 'y6',
        ]

    def test_known_mz(self):
        """Test b1 and y1 m/z of PEPTIDE."""
        labels = _by_label(generate(parse("PEPTIDE")))
        assert abs(labels['b1'].mz - (AA_MASSES_DICT['P'] + PROTON_MASS)) < 1e-9
        assert abs(labels['y1'].mz - (AA_MASSES_DICT['E'] + H2O_MASS + PROTON_MASS)) < 1e-9
        assert abs(labels['b1'].mz - 98.060040) < 1e-5

    def test_mass_conservation(self):
        """Test b(k) + y(n - k) equals the neutral mass."""
        peptidoform = parse_peptidoform("[Acetyl]-PEPC[Carbamidomethyl]TIDEK-[Amidated]")
        fragments = generate(peptidoform)
        n = peptidoform.residue_count
        b = {f.ordinal: f for f in fragments if f.series == 'b'}
        y = {f.ordinal: f for f in fragments if f.series == 'y'}
        for k in range(1, n):
            total = b[k].neutral_mass + y[n - k].neutral_mass
            assert abs(total - peptidoform.neutral_mass()) < 1e-6

    def test_series_relationships(self):
        """Test a/c/x/z relative to b and y."""
        model = FragmentationModel(ion_series=('a', 'b', 'c', 'x', 'y', 'z'))
        labels = _by_label(generate(parse("PEPTIDE"), model))
        assert abs(labels['a3'].neutral_mass - (labels['b3'].neutral_mass - CO_MASS)) < 1e-6
        assert abs(labels['c3'].neutral_mass - (labels['b3'].neutral_mass + NH3_MASS)) < 1e-6
        assert abs(labels['x3'].neutral_mass - (labels['y3'].neutral_mass + CO_MASS - 2 * H_MASS)) < 1e-6
        assert abs(labels['z3'].neutral_mass - (labels['y3'].neutral_mass - NH3_MASS + H_MASS)) < 1e-6

    def test_series_order_follows_model(self):
        """Test series are emitted in model order."""
        model = FragmentationModel(ion_series=('y', 'b'))
        fragments = generate(parse("PEK"), model)
        assert [f.label for f in fragments] == ['y1', 'y2', 'b1', 'b2']

    def test_deterministic(self):
        """Test repeated generation gives identical output."""
        text = "[Phospho]?EM[Oxidation]EVTSESPEK/2"
        model = FragmentationModel.cid_hcd(max_charge=2)
        assert generate(parse(text), model) == generate(parse(text), model)

    def test_fragment_ranges(self):
        """Test start/end/ordinal of N- and C-terminal ions."""
        labels = _by_label(generate(parse("PEPTIDE")))
        assert (labels['b2'].start, labels['b2'].end, labels['b2'].ordinal) == (0, 2, 2)
        assert (labels['y2'].start, labels['y2'].end, labels['y2'].ordinal) == (5, 7, 2)

    def test_single_residue(self):
        """Test a single residue has no backbone fragments."""
        assert generate(parse("K")) == []

    def test_none_model(self):
        """Test the empty model."""
        assert generate(parse("PEPTIDE"), FragmentationModel.none()) == []


class TestCharges:
    """Test product ion charge expansion."""

    def test_capped_at_precursor(self):
        """Test charges stop at the precursor charge."""
        fragments = generate(parse("PEPTIDE/2"), FragmentationModel(max_charge=3))
        assert {f.charge for f in fragments} == {1, 2}
        assert [f.label for f in fragments[:4]] == ['b1', 'b1^2', 'b2', 'b2^2']

    def test_allow_above_precursor(self):
        """Test the cap can be lifted."""
        model = FragmentationModel(max_charge=3, allow_charge_above_precursor=True)
        fragments = generate(parse("PEPTIDE/2"), model)
        assert {f.charge for f in fragments} == {1, 2, 3}

    def test_without_precursor_charge(self):
        """Test max_charge applies when no charge is declared."""
        fragments = generate(parse("PEPTIDE"), FragmentationModel(max_charge=2))
        assert {f.charge for f in fragments} == {1, 2}

    def test_mz_per_charge(self):
        """Test m/z = (neutral + z * proton) / z."""
        fragments = generate(parse("PEPTIDE/3"), FragmentationModel(max_charge=3))
        for fragment in fragments:
            expected = (fragment.neutral_mass + fragment.charge * PROTON_MASS) / fragment.charge
            assert abs(fragment.mz - expected) < 1e-12

    def test_adduct_carriers(self):
        """Test declared adducts carry the charge instead of protons."""
        peptidoform = parse_peptidoform("PEPTIDE/2[+2Na+]")
        model = FragmentationModel(ion_series=('b',), precursor=True, max_charge=2)
        labels = _by_label(generate(peptidoform, model))
        sodium = peptidoform.carriers.adducts[0].mass()
        assert abs(labels['b2'].mz - (labels['b2'].neutral_mass + sodium)) < 1e-9
        assert abs(labels['b2^2'].mz - (labels['b2'].neutral_mass + 2 * sodium) / 2) < 1e-9
        assert abs(labels['p^2'].mz - peptidoform.precursor_mz()) < 1e-9

    def test_adducts_filled_with_protons(self):
        """Test charges beyond the declared adducts are carried by protons."""
        peptidoform = parse_peptidoform("PEPTIDE/1[+Na+]")
        model = FragmentationModel(ion_series=('b',), max_charge=2, allow_charge_above_precursor=True)
        labels = _by_label(generate(peptidoform, model))
        sodium = peptidoform.carriers.adducts[0].mass()
        expected = (labels['b3'].neutral_mass + sodium + PROTON_MASS) / 2
        assert abs(labels['b3^2'].mz - expected) < 1e-9


class TestNeutralLosses:
    """Test residue and modification neutral losses."""

    def test_residue_loss(self):
        """Test fragments containing T lose water."""
        model = FragmentationModel(neutral_losses={'T': ('H2O',)})
        fragments = generate(parse("PEPTIDE"), model)
        lossy = [f.label for f in fragments if f.neutral_loss]
        assert lossy == ['b4-H2O', 'b5-H2O', 'b6-H2O', 'y4-H2O', 'y5-H2O', 'y6-H2O']
        labels = _by_label(fragments)
        assert abs(labels['b4'].neutral_mass - labels['b4-H2O'].neutral_mass - H2O_MASS) < 1e-9

    def test_loss_follows_parent(self):
        """Test a loss variant comes right after its parent."""
        model = FragmentationModel(neutral_losses={'T': ('H2O',)})
        labels = [f.label for f in generate(parse("PEPTIDE"), model)]
        assert labels.index('b4-H2O') == labels.index('b4') + 1

    def test_modification_loss(self):
        """Test phosphate loss from a phosphorylated fragment."""
        fragments = generate(parse("PEPS[Phospho]IDE"), FragmentationModel(modification_neutral_losses=True))
        labels = _by_label(fragments)
        assert 'b4-H3PO4' in labels
        assert 'b3-H3PO4' not in labels
        assert abs(labels['b4'].neutral_mass - labels['b4-H3PO4'].neutral_mass - _mass("H3PO4")) < 1e-9

    def test_modification_loss_off(self):
        """Test modification losses are opt-in."""
        fragments = generate(parse("PEPS[Phospho]IDE"))
        assert not any(f.neutral_loss for f in fragments)


class TestAmbiguousPlacements:
    """Test enumeration of ambiguous modification placements."""

    def test_one_variant_per_placement(self):
        """Test overlapping fragments get one variant per placement."""
        fragments = generate(parse("EM[Oxidation#g1]EVM[#g1]PEK"), FragmentationModel(ion_series=('b',)))
        b1 = [f for f in fragments if f.ordinal == 1]
        b2 = [f for f in fragments if f.ordinal == 2]
        b5 = [f for f in fragments if f.ordinal == 5]
        assert len(b1) == 1
        assert [f.placement for f in b2] == [(('g1', (1,)),), (('g1', (4,)),)]
        assert abs(b2[0].neutral_mass - b2[1].neutral_mass - OXIDATION) < 1e-6
        assert len(b5) == 2
        assert abs(b5[0].neutral_mass - b5[1].neutral_mass) < 1e-9

    def test_placement_mass_conservation(self):
        """Test b + y with the same placement sums to the neutral mass."""
        peptidoform = parse_peptidoform("EM[Oxidation#g1]EVM[#g1]PEK")
        fragments = generate(peptidoform)
        n = peptidoform.residue_count
        for b in fragments:
            if b.series != 'b' or not b.placement:
                continue
            for y in fragments:
                if y.series == 'y' and y.ordinal == n - b.ordinal and y.placement == b.placement:
                    assert abs(b.neutral_mass + y.neutral_mass - peptidoform.neutral_mass()) < 1e-6

    def test_groups_combine_in_order(self):
        """Test several groups combine as a product in declaration order."""
        text = "S[Phospho#g1]S[#g1]M[Oxidation#g2]M[#g2]K"
        fragments = generate(parse(text), FragmentationModel(ion_series=('b',)))
        b4 = [f.placement for f in fragments if f.ordinal == 4]
        assert b4 == [
            (('g1', (0,)), ('g2', (2,))),
            (('g1', (0,)), ('g2', (3,))),
            (('g1', (1,)), ('g2', (2,))),
            (('g1', (1,)), ('g2', (3,))),
        ]

    def test_multiple_copies(self):
        """Test unlocalized copies use combinations of positions."""
        fragments = generate(parse("[Phospho]^2?STS"), FragmentationModel(ion_series=('y',)))
        y2 = [f for f in fragments if f.ordinal == 2]
        # y2 covers positions 1 and 2
        assert [f.placement for f in y2] == [
            (('unlocalized-1', (0, 1)),),
            (('unlocalized-1', (0, 2)),),
            (('unlocalized-1', (1, 2)),),
        ]
        assert abs(y2[2].neutral_mass - y2[0].neutral_mass - PHOSPHO) < 1e-6

    def test_unknown_position_mode(self):
        """Test one fragment per split with the mass smeared."""
        model = FragmentationModel(ion_series=('b',), unknown_position_mode=True)
        fragments = generate(parse("EM[Oxidation#g1]EVM[#g1]PEK"), model)
        assert len(fragments) == 7
        labels = _by_label(fragments)
        plain = _by_label(generate(parse("EMEVMPEK"), FragmentationModel(ion_series=('b',))))
        assert labels['b1'].unresolved_groups == ()
        assert labels['b2'].unresolved_groups == ('g1',)
        assert abs(labels['b2'].neutral_mass - plain['b2'].neutral_mass - OXIDATION) < 1e-6

    def test_any_subset(self):
        """Test any-subset groups enumerate every subset."""
        builder = PeptidoformBuilder("PEPSTSK")
        builder.add_ambiguous_group(
            lookup_modification("Phospho"), [3, 4, 5], cardinality=Cardinality.ANY_SUBSET
        )
        peptidoform = builder.build()
        fragments = generate(peptidoform, FragmentationModel(ion_series=('b',)))
        b6 = [f for f in fragments if f.ordinal == 6]
        assert len(b6) == 8
        assert b6[0].placement == (('g1', ()),)
        assert abs(b6[-1].neutral_mass - b6[0].neutral_mass - 3 * PHOSPHO) < 1e-6

    def test_any_subset_unknown_mode(self):
        """Test any-subset groups add no mass in unknown-position mode."""
        builder = PeptidoformBuilder("PEPSTSK")
        builder.add_ambiguous_group(
            lookup_modification("Phospho"), [3, 4, 5], cardinality=Cardinality.ANY_SUBSET
        )
        model = FragmentationModel(ion_series=('b',), unknown_position_mode=True)
        fragments = generate(builder.build(), model)
        plain = generate(parse("PEPSTSK"), FragmentationModel(ion_series=('b',)))
        b6 = [f for f in fragments if f.ordinal == 6]
        assert len(b6) == 1
        assert b6[0].unresolved_groups == ('g1',)
        assert abs(b6[0].neutral_mass - plain[5].neutral_mass) < 1e-9


class TestCombinatorialGuard:
    """Test the combinatorial limit."""

    def test_placements_exceed_limit(self):
        """Test too many placements raise before enumeration."""
        model = FragmentationModel(combinatorial_limit=1)
        with pytest.raises(CombinatorialLimitExceeded) as excinfo:
            generate(parse("EM[Oxidation#g1]EVM[#g1]PEK"), model)
        assert excinfo.value.required == 2
        assert excinfo.value.limit == 1
        assert excinfo.value.what == "ambiguous placements"

    def test_large_unlocalized(self):
        """Test many unlocalized copies on a long peptide."""
        text = "[Phospho]^6?" + "ST" * 20 + "K"
        with pytest.raises(CombinatorialLimitExceeded):
            generate(parse(text))

    def test_unknown_mode_skips_guard(self):
        """Test unknown-position mode never enumerates."""
        model = FragmentationModel(combinatorial_limit=1, unknown_position_mode=True)
        assert generate(parse("EM[Oxidation#g1]EVM[#g1]PEK"), model)

    def test_glycan_limit(self):
        """Test large glycan compositions raise."""
        model = FragmentationModel(ion_series=(), glycan_series=('B',), combinatorial_limit=100)
        with pytest.raises(CombinatorialLimitExceeded) as excinfo:
            generate(parse("N[Glycan:HexNAc20Hex20]K"), model)
        assert excinfo.value.what == "glycan compositions"
        assert excinfo.value.required == 441


class TestCrossLinks:
    """Test cross-link fragment variants."""

    TEXT = "PEPK[DSS#XL1]AR//GGK[#XL1]R"

    def test_separated_and_retained(self):
        """Test fragments containing the link site come in two variants."""
        peptidoforms = parse(self.TEXT)
        fragments = generate(peptidoforms, FragmentationModel(ion_series=('b',)))
        alpha = [f for f in fragments if f.peptidoform_index == 0]
        assert [f.label for f in alpha] == ['b1', 'b2', 'b3', 'b4', 'b4+xl', 'b5', 'b5+xl']
        labels = _by_label(alpha)
        partner = peptidoforms[1].neutral_mass() + lookup_modification("DSS").monoisotopic_mass()
        assert abs(labels['b4+xl'].neutral_mass - labels['b4'].neutral_mass - partner) < 1e-6
        assert labels['b4+xl'].cross_links == ('XL1',)
        assert labels['b4'].cross_links == ()

    def test_partner_fragments(self):
        """Test the partner peptidoform gets its own variants."""
        fragments = generate(parse(self.TEXT), FragmentationModel(ion_series=('b',)))
        beta = [f.label for f in fragments if f.peptidoform_index == 1]
        assert beta == ['b1', 'b2', 'b3', 'b3+xl']

    def test_without_cross_link_fragments(self):
        """Test retained variants can be switched off."""
        model = FragmentationModel(ion_series=('b',), cross_link_fragments=False)
        fragments = generate(parse(self.TEXT), model)
        assert not any(f.cross_link_retained for f in fragments)

    def test_intra_link(self):
        """Test fragments cutting through a loop are skipped and closed loops add the linker."""
        fragments = generate(parse("PEK[DSS#XL1]TIK[#XL1]DE"), FragmentationModel(ion_series=('b',)))
        plain = _by_label(generate(parse("PEKTIKDE"), FragmentationModel(ion_series=('b',))))
        dss = lookup_modification("DSS").monoisotopic_mass()
        assert [f.label for f in fragments] == ['b1', 'b2', 'b6', 'b7']
        labels = _by_label(fragments)
        assert abs(labels['b6'].neutral_mass - plain['b6'].neutral_mass - dss) < 1e-6

    def test_disulfide_loop(self):
        """Test a disulfide bridge holds every fragment with one cysteine."""
        fragments = generate(parse("C[Disulfide#XL1]PEPC[#XL1]K"), FragmentationModel(ion_series=('b',)))
        assert [f.label for f in fragments] == ['b5']

    def test_cleavable_intra_link(self):
        """Test a cleavable linker releases loop fragments without its mass."""
        model = FragmentationModel(ion_series=('b',), allow_cross_link_cleavage=True)
        fragments = generate(parse("PEK[DSS#XL1]TIK[#XL1]DE"), model)
        plain = generate(parse("PEKTIKDE"), FragmentationModel(ion_series=('b',)))
        dss = lookup_modification("DSS").monoisotopic_mass()
        assert len(fragments) == 7
        assert abs(fragments[2].neutral_mass - plain[2].neutral_mass) < 1e-9
        assert abs(fragments[5].neutral_mass - plain[5].neutral_mass - dss) < 1e-6

    def test_intra_link_without_cross_link_fragments(self):
        """Test loop handling does not depend on cross-link fragments."""
        model = FragmentationModel(ion_series=('b',), cross_link_fragments=False)
        fragments = generate(parse("PEK[DSS#XL1]TIK[#XL1]DE"), model)
        assert [f.label for f in fragments] == ['b1', 'b2', 'b6', 'b7']

    def test_cross_linked_precursor(self):
        """Test one precursor per cross-linked ion."""
        peptidoforms = parse(self.TEXT)
        model = FragmentationModel(ion_series=(), precursor=True)
        fragments = generate(peptidoforms, model)
        assert len(fragments) == 1
        assert fragments[0].series == 'precursor'
        assert fragments[0].peptidoform_index == 0
        assert abs(fragments[0].neutral_mass - peptidoforms.ion_neutral_mass(0)) < 1e-9


class TestSatellites:
    """Test d, v and w side-chain ions."""

    def test_d_ions(self):
        """Test d ions from a ions, one per gamma substituent."""
        model = FragmentationModel(ion_series=('a',), satellite_series=('d',))
        fragments = generate(parse("PELK"), model)
        d = [f for f in fragments if f.series == 'd']
        assert [f.label for f in d] == ['d2-C2H2O2', 'd3-C3H6']
        labels = _by_label(fragments)
        assert abs(labels['a3'].neutral_mass - labels['d3-C3H6'].neutral_mass - _mass("C3H6")) < 1e-9

    def test_beta_branched(self):
        """Test isoleucine yields two d ions."""
        model = FragmentationModel(ion_series=('a',), satellite_series=('d',))
        d = [f.label for f in generate(parse("PIK"), model) if f.series == 'd']
        assert d == ['d2-C2H4', 'd2-CH2']

    def test_modified_residue_blocks(self):
        """Test no satellite forms at a modified residue."""
        model = FragmentationModel(ion_series=('a',), satellite_series=('d',))
        d = [f.label for f in generate(parse("PEM[Oxidation]K"), model) if f.series == 'd']
        assert d == ['d2-C2H2O2']

    def test_v_ions(self):
        """Test v ions lose the whole side chain."""
        model = FragmentationModel(ion_series=('y',), satellite_series=('v',))
        fragments = generate(parse("PEAK"), model)
        v = [f for f in fragments if f.series == 'v']
        assert [f.label for f in v] == ['v1-C4H9N', 'v2-CH2', 'v3-C3H4O2']
        labels = _by_label(fragments)
        assert abs(labels['y3'].neutral_mass - labels['v3-C3H4O2'].neutral_mass - _mass("C3H4O2")) < 1e-9

    def test_v_skips_glycine(self):
        """Test glycine and proline give no v ions."""
        model = FragmentationModel(ion_series=('y',), satellite_series=('v',))
        v = [f.label for f in generate(parse("APGK"), model) if f.series == 'v']
        assert v == ['v1-C4H9N']

    def test_w_without_z(self):
        """Test w ions use z parents that are not emitted themselves."""
        model = FragmentationModel(ion_series=('b',), satellite_series=('w',))
        fragments = generate(parse("PELK"), model)
        assert not any(f.series == 'z' for f in fragments)
        w = _by_label([f for f in fragments if f.series == 'w'])
        z = _by_label(generate(parse("PELK"), FragmentationModel(ion_series=('z',))))
        assert set(w) == {'w1-C3H7N', 'w2-C3H6', 'w3-C2H2O2'}
        expected = z['z3'].neutral_mass - _mass("C2H2O2") - H_MASS
        assert abs(w['w3-C2H2O2'].neutral_mass - expected) < 1e-9


class TestGlycans:
    """Test glycan B, Y and internal ions."""

    MODEL = FragmentationModel(ion_series=(), glycan_series=('B', 'Y', 'internal'))

    def test_counts(self):
        """Test every sub-composition is used once."""
        fragments = generate(parse("N[Glycan:HexNAc2Hex]K"), self.MODEL)
        series = [f.series for f in fragments]
        assert series.count('B') == 5
        assert series.count('Y') == 5
        assert series.count('internal') == 2
        assert fragments[0].label == "B{HexNAc2Hex}"

    def test_y0(self):
        """Test Y0 is the peptide without its glycan."""
        fragments = generate(parse("N[Glycan:HexNAc2Hex]K"), self.MODEL)
        y0 = [f for f in fragments if f.label == 'Y0']
        assert len(y0) == 1
        assert abs(y0[0].neutral_mass - parse_peptidoform("NK").neutral_mass()) < 1e-6

    def test_b_ion_mass(self):
        """Test B ions carry the composition mass."""
        fragments = generate(parse("N[Glycan:HexNAc2Hex]K"), self.MODEL)
        labels = _by_label(fragments)
        hexnac = _mass("C8H13NO5")
        assert abs(labels['B{HexNAc}'].neutral_mass - hexnac) < 1e-9

    def test_internal_ions(self):
        """Test internal ions lose water."""
        fragments = generate(parse("N[Glycan:HexNAc2Hex]K"), self.MODEL)
        internal = [f for f in fragments if f.series == 'internal']
        labels = _by_label(internal)
        assert set(labels) == {'internal{HexNAc2}', 'internal{HexNAcHex}'}
        expected = 2 * _mass("C8H13NO5") - H2O_MASS
        assert abs(labels['internal{HexNAc2}'].neutral_mass - expected) < 1e-9

    def test_labile_glycan(self):
        """Test labile glycans give B but no Y ions."""
        fragments = generate(parse("{Glycan:HexNAc2Hex}NK"), self.MODEL)
        series = [f.series for f in fragments]
        assert series.count('B') == 5
        assert series.count('Y') == 0

    def test_non_glycan_ignored(self):
        """Test ordinary modifications give no glycan ions."""
        assert generate(parse("NK[Acetyl]"), self.MODEL) == []

    def test_equal_mass_deduplicated(self):
        """Test sub-compositions with equal mass are kept once."""
        compositions = enumerate_sub_compositions((('dHex', 1), ('Fuc', 1)), limit=100)
        assert [c for c, _, _ in compositions] == [
            (('dHex', 1), ('Fuc', 1)),
            (('Fuc', 1),),
            (),
        ]


class TestPrecursor:
    """Test the precursor fragment."""

    def test_precursor_charges(self):
        """Test the precursor is expanded like any fragment."""
        model = FragmentationModel(ion_series=(), precursor=True, max_charge=2)
        peptidoform = parse_peptidoform("PEPTIDE/2")
        fragments = generate(peptidoform, model)
        assert [f.label for f in fragments] == ['p', 'p^2']
        assert abs(fragments[1].mz - peptidoform.precursor_mz()) < 1e-9

    def test_precursor_last(self):
        """Test the precursor follows every other fragment."""
        fragments = generate(parse("PEPTIDE"), FragmentationModel(precursor=True))
        assert fragments[-1].series == 'precursor'

    def test_precursor_neutral_losses(self):
        """Test general and modification losses from the precursor."""
        model = FragmentationModel(
            ion_series=(),
            precursor=True,
            precursor_neutral_losses=('H2O',),
            modification_neutral_losses=True,
        )
        fragments = generate(parse("PEPS[Phospho]IDE"), model)
        assert [f.label for f in fragments] == ['p', 'p-H2O', 'p-H3PO4']
        assert abs(fragments[0].neutral_mass - fragments[2].neutral_mass - _mass("H3PO4")) < 1e-9

    def test_ambiguous_modification_losses(self):
        """Test ambiguous modifications contribute precursor losses."""
        model = FragmentationModel(ion_series=(), precursor=True, modification_neutral_losses=True)
        fragments = generate(parse("[Phospho]?PEPSTIDE"), model)
        assert [f.label for f in fragments] == ['p', 'p-H3PO4']

    def test_precursor_side_chain_losses(self):
        """Test one loss per distinct unmodified side chain."""
        model = FragmentationModel(ion_series=(), precursor=True, precursor_side_chain_losses=True)
        fragments = generate(parse("GPAKAM[Oxidation]"), model)
        assert [f.label for f in fragments] == ['p', 'p-CH2', 'p-C4H9N']
        assert abs(fragments[0].neutral_mass - fragments[2].neutral_mass - _mass("C4H9N")) < 1e-9

    def test_losses_need_precursor(self):
        """Test precursor losses are only emitted with the precursor."""
        model = FragmentationModel(ion_series=(), precursor_neutral_losses=('H2O',))
        assert generate(parse("PEPTIDE"), model) == []


class TestDiagnosticIons:
    """Test modification diagnostic ions."""

    MODEL = FragmentationModel(ion_series=(), diagnostic_ions=True)

    def test_hexnac_oxonium(self):
        """Test HexNAc oxonium ions."""
        fragments = generate(parse("N[HexNAc]K"), self.MODEL)
        assert [f.label for f in fragments] == ['diag[C8H13NO5]', 'diag[C8H11NO4]']
        assert abs(fragments[0].mz - 204.086649) < 1e-5
        assert fragments[0].start is None

    def test_deduplicated(self):
        """Test each diagnostic ion is emitted once."""
        fragments = generate(parse("N[HexNAc]S[HexNAc]T[Hex]K"), self.MODEL)
        assert [f.diagnostic for f in fragments] == ['C8H13NO5', 'C8H11NO4', 'C6H10O5']

    def test_off_by_default(self):
        """Test diagnostic ions are opt-in."""
        fragments = generate(parse("N[HexNAc]K"), FragmentationModel(ion_series=()))
        assert fragments == []

    def test_arrays(self):
        """Test diagnostic ions have a series code."""
        _, types, _, _ = fragments_to_arrays(generate(parse("N[HexNAc]K"), self.MODEL))
        assert set(types) == {SERIES_CODES['diagnostic']}


class TestSetsAndBatches:
    """Test chimeric sets, arrays and batch generation."""

    def test_chimeric_order(self, chimeric_set):
        """Test peptidoforms are fragmented in set order."""
        fragments = generate(chimeric_set, FragmentationModel(max_charge=2))
        indices = [f.peptidoform_index for f in fragments]
        assert indices == sorted(indices)
        assert set(indices) == {0, 1}
        assert {f.ion_index for f in fragments} == {0, 1}

    def test_fragments_to_arrays(self):
        """Test conversion to parallel numpy arrays."""
        fragments = generate(parse("PEPTIDE"))
        mz, types, ordinals, charges = fragments_to_arrays(fragments)
        assert mz.dtype == np.float64
        assert types.dtype == np.uint8
        assert len(mz) == 12
        assert types[0] == SERIES_CODES['b']
        assert types[-1] == SERIES_CODES['y']
        assert ordinals[0] == 1
        assert np.all(charges == 1)

    def test_batch(self):
        """Test batch generation is a loop over generate."""
        results = generate_fragments_batch([parse("PEPTIDE"), parse("ELVISK")])
        assert [len(r) for r in results] == [12, 10]


class TestFragmentationModel:
    """Test model validation and presets."""

    def test_invalid_series(self):
        """Test unknown series raise ValueError."""
        with pytest.raises(ValueError):
            FragmentationModel(ion_series=('q',))
        with pytest.raises(ValueError):
            FragmentationModel(satellite_series=('a',))
        with pytest.raises(ValueError):
            FragmentationModel(glycan_series=('b',))

    def test_invalid_numbers(self):
        """Test max_charge and combinatorial_limit must be positive."""
        with pytest.raises(ValueError):
            FragmentationModel(max_charge=0)
        with pytest.raises(ValueError):
            FragmentationModel(combinatorial_limit=0)

    def test_presets(self):
        """Test preset series and overrides."""
        assert FragmentationModel.cid_hcd().ion_series == ('a', 'b', 'y')
        assert FragmentationModel.etd().ion_series == ('c', 'z')
        assert FragmentationModel.cid_hcd(max_charge=3).max_charge == 3
        assert FragmentationModel.all().precursor
        assert FragmentationModel.ethcd().ion_series == ('b', 'c', 'y', 'z')
        assert FragmentationModel.cid_hcd().diagnostic_ions
        assert not FragmentationModel().allow_cross_link_cleavage
        assert FragmentationModel.all().precursor_side_chain_losses

    def test_label(self):
        """Test fragment labels."""
        fragment = Fragment('y', 2, 500.0, 500.3, start=4, end=7, ordinal=3, neutral_loss='H2O')
        assert fragment.label == 'y3-H2O^2'
        assert fragment.with_charge(1).label == 'y3-H2O'
        assert abs(fragment.average_mz - (500.3 + 2 * PROTON_MASS) / 2) < 1e-12
