import io
import unittest
import warnings
from contextlib import redirect_stdout

import numpy as np
import pandas as pd

from compare_errors import (
    AmbiguousMatchError,
    ArgumentError,
    ConfigurationError,
    DimensionMismatch,
    LayerCheckWarning,
    NoOverlapError,
    QuantityMismatch,
    QuantityMismatchWarning,
    TypeMismatch,
)
from compare_layers import Comparison, ComparisonType, LayerRef, Side, compare_layers
from field import Field, Quantity, Source

CMASS = Quantity(id="cmass", name="Vegetation Carbon", units="kgC/m^2")
LAI = Quantity(id="lai", name="LAI", units="m^2/m^2")


def make_field(id: str, quant: Quantity = CMASS, **columns) -> Field:
    return Field(id, pd.DataFrame(columns), Source(id=id, name=f"{id} source"), quant)


def compare_quietly(*args, **kwargs) -> Comparison:
    kwargs.setdefault("show_stats", False)
    return compare_layers(*args, **kwargs)


class TestContinuous(unittest.TestCase):

    def setUp(self):
        self.model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 2.0], Year=[2000, 2000], value=[5.0, 10.0])
        self.obs = make_field("obs", Lon=[1.0], Lat=[1.0], Year=[2000], value=[4.0])

    def test_single_shared_point(self):
        comparison = compare_quietly(self.model, self.obs, "value")
        self.assertIs(comparison.type, ComparisonType.CONTINUOUS)
        self.assertEqual(len(comparison.data), 1)
        row = comparison.data.iloc[0]
        self.assertEqual((row["value.model"], row["value.obs"]), (5.0, 4.0))
        self.assertAlmostEqual(comparison.stats["bias"], 1.0)
        self.assertEqual(comparison.stats["n"], 1)

    def test_keep_all1(self):
        comparison = compare_quietly(self.model, self.obs, "value", keep_all1=True)
        data = comparison.data.sort_values("Lon").reset_index(drop=True)
        self.assertEqual(len(data), 2)
        self.assertTrue(np.isnan(data.loc[1, "value.obs"]))
        self.assertEqual(data.loc[1, "value.model"], 10.0)
        # the unmatched row is left out of the statistics
        self.assertAlmostEqual(comparison.stats["bias"], 1.0)

    def test_keep_all1_match_nas(self):
        comparison = compare_quietly(self.model, self.obs, "value", keep_all1=True, match_nas=True)
        data = comparison.data
        self.assertEqual(len(data), 2)
        np.testing.assert_array_equal(data["value.model"].isna().to_numpy(),
                                      data["value.obs"].isna().to_numpy())
        self.assertEqual(int(data["value.model"].isna().sum()), 1)

    def test_keep_all2(self):
        comparison = compare_quietly(self.obs, self.model, "value", keep_all2=True)
        self.assertEqual(len(comparison.data), 2)
        self.assertEqual(int(comparison.data["value.obs"].isna().sum()), 1)

    def test_names_and_ids(self):
        comparison = compare_quietly(self.model, self.obs, "value")
        self.assertEqual(comparison.id, "value.model-value.obs")
        self.assertEqual(comparison.name, "model source - obs source")
        self.assertEqual(comparison.layers1, ("value",))
        self.assertEqual(comparison.columns1, ["value.model"])
        self.assertEqual(comparison.columns2, ["value.obs"])
        self.assertEqual(comparison.layer_refs1, (LayerRef(Side.A, "value", "value.model"),))
        self.assertEqual(comparison.layer_refs2, (LayerRef(Side.B, "value", "value.obs"),))
        self.assertEqual(comparison.quant, CMASS)

    def test_different_layer_names(self):
        obs = make_field("obs", Lon=[1.0], Lat=[1.0], Year=[2000], vegC=[4.0])
        comparison = compare_quietly(self.model, obs, "value", "vegC")
        self.assertEqual(list(comparison.data.columns), ["Lon", "Lat", "Year", "value.model", "vegC.obs"])

    def test_stats_read_only(self):
        comparison = compare_quietly(self.model, self.obs, "value")
        with self.assertRaises(TypeError):
            comparison.stats["bias"] = 0.0

    def test_inputs_unchanged(self):
        before1, before2 = self.model.data.copy(), self.obs.data.copy()
        compare_quietly(self.model, self.obs, "value", keep_all1=True, match_nas=True)
        pd.testing.assert_frame_equal(self.model.data, before1)
        pd.testing.assert_frame_equal(self.obs.data, before2)

    def test_self_comparison(self):
        comparison = compare_quietly(self.model, self.model, "value")
        self.assertEqual(list(comparison.data.columns)[-2:], ["value.model.1", "value.model.2"])
        self.assertAlmostEqual(comparison.stats["RMSE"], 0.0)
        self.assertAlmostEqual(comparison.stats["MAE"], 0.0)
        self.assertAlmostEqual(comparison.stats["bias"], 0.0)

    def test_swapped_fields(self):
        model = make_field("model", Lon=[1.0, 2.0, 3.0], Lat=[1.0, 1.0, 1.0], value=[1.0, 4.0, 2.0])
        obs = make_field("obs", Lon=[1.0, 2.0, 3.0], Lat=[1.0, 1.0, 1.0], value=[2.0, 3.0, 5.0])
        ab = compare_quietly(model, obs, "value").stats
        ba = compare_quietly(obs, model, "value").stats
        self.assertAlmostEqual(ab["bias"], -ba["bias"])
        self.assertAlmostEqual(ab["RMSE"], ba["RMSE"])
        self.assertAlmostEqual(ab["MAE"], ba["MAE"])
        self.assertAlmostEqual(ab["r"], ba["r"])

    def test_same_domain_join_matches_general_merge(self):
        model = make_field("model", Lon=[1.0, 2.0, 3.0], Lat=[1.0, 1.0, 1.0], value=[1.0, 4.0, 2.0])
        obs = make_field("obs", Lon=[3.0, 1.0, 2.0], Lat=[1.0, 1.0, 1.0], value=[5.0, 2.0, 3.0])
        # the same domain plus one point outside it sends the comparison down the general path
        obs_plus = make_field("obs", Lon=[3.0, 1.0, 2.0, 9.0], Lat=[1.0, 1.0, 1.0, 9.0],
                              value=[5.0, 2.0, 3.0, 7.0])
        fast = compare_quietly(model, obs, "value")
        general = compare_quietly(model, obs_plus, "value")
        pd.testing.assert_frame_equal(fast.data.sort_values(["Lon", "Lat"]).reset_index(drop=True),
                                      general.data.sort_values(["Lon", "Lat"]).reset_index(drop=True))
        self.assertEqual(dict(fast.stats), dict(general.stats))

    def test_dec_places(self):
        obs = make_field("obs", Lon=[1.0000001], Lat=[0.9999999], Year=[2000], value=[4.0])
        with self.assertRaises(NoOverlapError):
            compare_quietly(self.model, obs, "value")
        comparison = compare_quietly(self.model, obs, "value", dec_places=2)
        self.assertEqual(len(comparison.data), 1)

    def test_ambiguous_rounding(self):
        obs = make_field("obs", Lon=[1.001, 1.002], Lat=[1.0, 1.0], Year=[2000, 2000], value=[4.0, 3.0])
        with self.assertRaises(AmbiguousMatchError):
            compare_quietly(self.model, obs, "value", dec_places=1)

    def test_custom_metrics(self):
        custom = {
            "max_abs": lambda t, l1, l2: float((t[l1[0]] - t[l2[0]]).abs().max()),
            "both": lambda t, l1, l2: {"n1": len(l1), "n2": len(l2)},
        }
        comparison = compare_quietly(self.model, self.obs, "value", custom_metrics=custom)
        self.assertEqual(comparison.stats["max_abs"], 1.0)
        self.assertEqual(comparison.stats["both.n1"], 1)
        self.assertEqual(comparison.stats["both.n2"], 1)

    def test_verbose_output(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            compare_layers(self.model, self.obs, "value", verbose=True)
        self.assertIn("Comparing two single numeric layers", buffer.getvalue())
        self.assertIn("COMPARISON STATISTICS", buffer.getvalue())


class TestErrors(unittest.TestCase):

    def setUp(self):
        self.model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 2.0], value=[5.0, 10.0],
                                biome=["forest", "grass"])

    def test_dimension_mismatch(self):
        annual = make_field("obs", Lon=[1.0], Lat=[1.0], Year=[2000], value=[4.0])
        with self.assertRaises(DimensionMismatch):
            compare_quietly(self.model, annual, "value")

    def test_layer_count_mismatch(self):
        with self.assertRaises(ArgumentError):
            compare_quietly(self.model, self.model, ["value"], ["value", "biome"])

    def test_missing_layer(self):
        with self.assertRaises(ArgumentError):
            compare_quietly(self.model, self.model, "lai")

    def test_type_mismatch(self):
        with self.assertRaises(TypeMismatch):
            compare_quietly(self.model, self.model, "value", "biome")

    def test_seasonality_needs_months(self):
        with self.assertRaises(ConfigurationError):
            compare_quietly(self.model, self.model, "value", do_seasonality=True)

    def test_no_overlap(self):
        elsewhere = make_field("obs", Lon=[50.0], Lat=[50.0], value=[4.0])
        with self.assertRaises(NoOverlapError) as context:
            compare_quietly(self.model, elsewhere, "value")
        self.assertIn("dec_places", str(context.exception))

    def test_quantity_mismatch(self):
        lai = make_field("obs", quant=LAI, Lon=[1.0], Lat=[1.0], value=[4.0])
        with self.assertRaises(QuantityMismatch):
            compare_quietly(self.model, lai, "value")

    def test_quantity_override(self):
        lai = make_field("obs", quant=LAI, Lon=[1.0], Lat=[1.0], value=[4.0])
        with self.assertWarns(QuantityMismatchWarning):
            comparison = compare_quietly(self.model, lai, "value", override_quantity=True)
        self.assertEqual(comparison.quant, CMASS)
        self.assertEqual(comparison.quant2, LAI)


class TestCategorical(unittest.TestCase):

    def test_agreement(self):
        model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 1.0], biome=["forest", "grass"])
        obs = make_field("obs", Lon=[1.0, 2.0], Lat=[1.0, 1.0], biome=["forest", "forest"])
        comparison = compare_quietly(model, obs, "biome")
        self.assertIs(comparison.type, ComparisonType.CATEGORICAL)
        self.assertEqual(comparison.stats["n_agree"], 1)
        self.assertEqual(comparison.stats["n_disagree"], 1)
        self.assertAlmostEqual(comparison.stats["kappa"], 0.0)
        self.assertEqual(comparison.name, "model source vs. obs source")

    def test_per_class_kappa_read_only(self):
        model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 1.0], biome=["forest", "grass"])
        obs = make_field("obs", Lon=[1.0, 2.0], Lat=[1.0, 1.0], biome=["forest", "forest"])
        comparison = compare_quietly(model, obs, "biome")
        self.assertEqual(set(comparison.stats["per_class_kappa"]), {"forest", "grass"})
        with self.assertRaises(TypeError):
            comparison.stats["per_class_kappa"]["forest"] = 1.0

    def test_self_comparison(self):
        model = make_field("model", Lon=[1.0, 2.0, 3.0], Lat=[1.0, 1.0, 1.0], biome=["forest", "grass", "grass"])
        comparison = compare_quietly(model, model, "biome")
        self.assertAlmostEqual(comparison.stats["kappa"], 1.0)
        self.assertEqual(comparison.stats["n_disagree"], 0)

    def test_logical_layers(self):
        model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 1.0], burnt=[True, False])
        obs = make_field("obs", Lon=[1.0, 2.0], Lat=[1.0, 1.0], burnt=[True, True])
        comparison = compare_quietly(model, obs, "burnt")
        self.assertIs(comparison.type, ComparisonType.CATEGORICAL)
        self.assertEqual(comparison.stats["n_agree"], 1)


class TestSeasonal(unittest.TestCase):

    def test_columns_renamed(self):
        months = list(range(1, 13))
        model = make_field("model", Lon=[1.0] * 12, Lat=[1.0] * 12, Month=months,
                           gpp=[10.0] + [0.0] * 11)
        obs = make_field("obs", Lon=[1.0] * 12, Lat=[1.0] * 12, Month=months,
                         gpp=[0.0] * 6 + [10.0] + [0.0] * 5)
        comparison = compare_quietly(model, obs, "gpp", do_seasonality=True)
        self.assertIs(comparison.type, ComparisonType.SEASONAL)
        self.assertEqual(comparison.name, "Seasonal comparison model source vs. obs source")
        self.assertEqual(list(comparison.data.columns),
                         ["Lon", "Lat",
                          "Seasonal Concentration.model", "Seasonal Concentration.obs",
                          "Seasonal Phase.model", "Seasonal Phase.obs"])
        self.assertAlmostEqual(comparison.stats["MPD"], 1.0)
        self.assertAlmostEqual(comparison.stats["C_RMSE"], 0.0)


class TestRelativeAbundance(unittest.TestCase):

    def test_proportions(self):
        model = make_field("model", Lon=[1.0, 2.0], Lat=[1.0, 1.0], Tree=[1.0, 0.5], Grass=[0.0, 0.5])
        obs = make_field("obs", Lon=[1.0, 2.0], Lat=[1.0, 1.0], Tree=[0.0, 0.5], Grass=[1.0, 0.5])
        comparison = compare_quietly(model, obs, ["Tree", "Grass"])
        self.assertIs(comparison.type, ComparisonType.RELATIVE_ABUNDANCE)
        self.assertAlmostEqual(comparison.stats["MM"], 1.0)
        self.assertAlmostEqual(comparison.stats["SCD"], 1.0)
        self.assertEqual(comparison.id, "Tree.model-Tree.obs_Grass.model-Grass.obs")

    def test_missing_layer_warns(self):
        model = make_field("model", Lon=[1.0], Lat=[1.0], Tree=[1.0], Grass=[0.0])
        obs = make_field("obs", Lon=[1.0], Lat=[1.0], Tree=[1.0])
        with self.assertWarns(LayerCheckWarning):
            comparison = compare_quietly(model, obs, ["Tree", "Grass"])
        self.assertAlmostEqual(comparison.stats["MM"], 0.0)

    def test_no_warning_when_layers_present(self):
        model = make_field("model", Lon=[1.0], Lat=[1.0], Tree=[1.0], Grass=[0.0])
        with warnings.catch_warnings():
            warnings.simplefilter("error", LayerCheckWarning)
            compare_quietly(model, model, ["Tree", "Grass"])

    def test_single_gridcell(self):
        model = make_field("model", Lon=[1.0], Lat=[1.0], Tree=[0.25], Grass=[0.75])
        obs = make_field("obs", Lon=[1.0], Lat=[1.0], Tree=[0.75], Grass=[0.25])
        comparison = compare_quietly(model, obs, ["Tree", "Grass"])
        self.assertEqual(comparison.stats["n"], 1)
        self.assertAlmostEqual(comparison.stats["MM"], 1.0)
        # general path, the only shared point is complete
        wider = make_field("obs", Lon=[1.0, 5.0], Lat=[1.0, 5.0], Tree=[0.75, 1.0], Grass=[0.25, 0.0])
        comparison = compare_quietly(model, wider, ["Tree", "Grass"], keep_all2=True)
        self.assertEqual(comparison.stats["n"], 1)
        self.assertAlmostEqual(comparison.stats["MM"], 1.0)

    def test_no_complete_rows(self):
        model = make_field("model", Lon=[1.0], Lat=[1.0], Tree=[0.25], Grass=[0.75])
        obs = make_field("obs", Lon=[2.0], Lat=[2.0], Tree=[0.75], Grass=[0.25])
        comparison = compare_quietly(model, obs, ["Tree", "Grass"], keep_all1=True)
        self.assertEqual(comparison.stats["n"], 0)
        self.assertTrue(np.isnan(comparison.stats["MM"]))


if __name__ == "__main__":
    unittest.main()
