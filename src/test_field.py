import unittest

import numpy as np
import pandas as pd
import xarray as xr

from compare_errors import ArgumentError
from field import (
    Field,
    LayerKind,
    Quantity,
    Source,
    STAInfo,
    get_dim_info,
    infer_layer_kind,
    select_layers,
)

SOURCE = Source(id="LPJ", name="LPJ-GUESS")
QUANT = Quantity(id="cmass", name="Vegetation Carbon", units="kgC/m^2")


def gridded_dataset(times, nan_column: bool = False) -> xr.Dataset:
    lons = np.array([0.25, 0.75])
    lats = np.array([10.25])
    values = np.arange(len(times) * len(lats) * len(lons), dtype=float).reshape(len(times), len(lats), len(lons))
    if nan_column:
        values[:, :, 1] = np.nan
    return xr.Dataset({"cveg": (("time", "lat", "lon"), values)},
                      coords={"time": times, "lat": lats, "lon": lons})


class TestField(unittest.TestCase):

    def test_canonical_column_order(self):
        data = pd.DataFrame({"Lat": [1.0, 2.0], "Tree": [3.0, 4.0], "Lon": [5.0, 6.0]})
        field = Field("a", data, SOURCE, QUANT)
        self.assertEqual(field.dims, ("Lon", "Lat"))
        self.assertEqual(field.layers, ["Tree"])
        self.assertEqual(list(field.data.columns), ["Lon", "Lat", "Tree"])

    def test_duplicated_coordinates(self):
        data = pd.DataFrame({"Lon": [1.0, 1.0], "Lat": [2.0, 2.0], "Tree": [3.0, 4.0]})
        with self.assertRaises(ValueError):
            Field("a", data, SOURCE, QUANT)

    def test_layer_kinds_inferred(self):
        data = pd.DataFrame({"Lon": [1.0, 2.0], "Lat": [1.0, 2.0],
                             "Tree": [0.5, 0.7],
                             "Count": [1, 2],
                             "Biome": ["forest", "grass"],
                             "Burnt": [True, False]})
        field = Field("a", data, SOURCE, QUANT)
        self.assertIs(field.layer_kind("Tree"), LayerKind.CONTINUOUS)
        self.assertIs(field.layer_kind("Count"), LayerKind.CONTINUOUS)
        self.assertIs(field.layer_kind("Biome"), LayerKind.CATEGORICAL)
        self.assertIs(field.layer_kind("Burnt"), LayerKind.LOGICAL)
        self.assertIsInstance(field.data["Biome"].dtype, pd.CategoricalDtype)
        self.assertTrue(LayerKind.LOGICAL.is_discrete)
        self.assertFalse(LayerKind.CONTINUOUS.is_discrete)

    def test_explicit_layer_kinds(self):
        data = pd.DataFrame({"Lon": [1.0, 2.0], "Lat": [1.0, 2.0], "Biome": [1, 2]})
        field = Field("a", data, SOURCE, QUANT, layer_kinds={"Biome": LayerKind.CATEGORICAL})
        self.assertIs(field.layer_kind("Biome"), LayerKind.CATEGORICAL)
        with self.assertRaises(ValueError):
            Field("a", data, SOURCE, QUANT, layer_kinds={"Grass": LayerKind.CATEGORICAL})

    def test_unknown_layer(self):
        field = Field("a", pd.DataFrame({"Lon": [1.0], "Lat": [1.0], "Tree": [1.0]}), SOURCE, QUANT)
        with self.assertRaises(ArgumentError):
            field.layer_kind("Grass")

    def test_infer_layer_kind_string_dtype(self):
        self.assertIs(infer_layer_kind(pd.Series(["a", "b"], dtype="string")), LayerKind.CATEGORICAL)

    def test_input_not_modified(self):
        data = pd.DataFrame({"Tree": [3.0], "Lon": [5.0], "Lat": [1.0]})
        field = Field("a", data, SOURCE, QUANT)
        field.data.loc[0, "Tree"] = 100.0
        self.assertEqual(list(data.columns), ["Tree", "Lon", "Lat"])
        self.assertEqual(data.loc[0, "Tree"], 3.0)

    def test_copy_is_deep(self):
        field = Field("a", pd.DataFrame({"Lon": [1.0], "Lat": [1.0], "Tree": [1.0]}), SOURCE, QUANT)
        other = field.copy()
        other.data.loc[0, "Tree"] = 2.0
        self.assertEqual(field.data.loc[0, "Tree"], 1.0)
        self.assertEqual(len(other), 1)

    def test_sta_info_from_data(self):
        data = pd.DataFrame({"Lon": [1.0, 2.0], "Lat": [3.0, 4.0], "Year": [2000, 2001],
                             "Month": [1, 2], "Tree": [1.0, 2.0]})
        sta = STAInfo.from_data(data, year_aggregate_method="none")
        self.assertEqual((sta.first_year, sta.last_year), (2000, 2001))
        self.assertEqual(sta.spatial_extent, (1.0, 2.0, 3.0, 4.0))
        self.assertEqual(sta.subannual_resolution, "Month")

    def test_with_data_keeps_aggregation_methods(self):
        sta = STAInfo(year_aggregate_method="mean")
        field = Field("a", pd.DataFrame({"Lon": [1.0, 2.0], "Lat": [1.0, 1.0], "Tree": [1.0, 2.0]}),
                      SOURCE, QUANT, sta_info=sta)
        subset = field.with_data(field.data.iloc[:1])
        self.assertEqual(subset.sta_info.year_aggregate_method, "mean")
        self.assertEqual(len(subset), 1)


class TestDimInfo(unittest.TestCase):

    def setUp(self):
        data = pd.DataFrame({"Lon": [2.0, 1.0, 1.0], "Lat": [1.0, 1.0, 2.0],
                             "Year": [2000, 2000, 2000], "Tree": [1.0, 2.0, 3.0]})
        self.field = Field("a", data, SOURCE, QUANT)

    def test_names(self):
        self.assertEqual(get_dim_info(self.field), ("Lon", "Lat", "Year"))

    def test_full(self):
        full = get_dim_info(self.field, info="full")
        self.assertEqual(full, {"Lon": (1.0, 2.0), "Lat": (1.0, 2.0), "Year": (2000,)})

    def test_unknown_info(self):
        with self.assertRaises(ValueError):
            get_dim_info(self.field, info="everything")

    def test_select_layers(self):
        data = self.field.data.assign(Grass=[4.0, 5.0, 6.0])
        field = Field("a", data, SOURCE, QUANT)
        selected = select_layers(field, "Grass")
        self.assertEqual(selected.layers, ["Grass"])
        self.assertEqual(field.layers, ["Tree", "Grass"])
        with self.assertRaises(ArgumentError):
            select_layers(field, ["Shrub"])


class TestXarray(unittest.TestCase):

    def test_monthly(self):
        ds = gridded_dataset(pd.date_range("2000-01-01", periods=24, freq="MS"), nan_column=True)
        field = Field.from_xarray(ds, "LPJ", SOURCE, QUANT)
        self.assertEqual(field.dims, ("Lon", "Lat", "Year", "Month"))
        # second longitude is all missing
        self.assertEqual(len(field), 24)
        self.assertEqual(sorted(field.data["Year"].unique()), [2000, 2001])
        self.assertEqual(sorted(field.data["Month"].unique()), list(range(1, 13)))
        self.assertEqual(field.sta_info.subannual_resolution, "Month")
        self.assertEqual(field.sta_info.first_year, 2000)

    def test_mid_month_time_stamps(self):
        # Mar 15 is day 74 in 2001 and day 75 in 2000
        ds = gridded_dataset(pd.date_range("2000-01-01", periods=24, freq="MS") + pd.Timedelta(days=14))
        field = Field.from_xarray(ds, "LPJ", SOURCE, QUANT)
        self.assertEqual(field.dims, ("Lon", "Lat", "Year", "Month"))

    def test_annual(self):
        ds = gridded_dataset(pd.to_datetime(["2000-07-01", "2001-07-01"]))
        field = Field.from_xarray(ds, "LPJ", SOURCE, QUANT)
        self.assertEqual(field.dims, ("Lon", "Lat", "Year"))
        self.assertEqual(len(field), 4)

    def test_daily(self):
        ds = gridded_dataset(pd.date_range("2001-01-01", periods=40, freq="D"))
        field = Field.from_xarray(ds, "LPJ", SOURCE, QUANT)
        self.assertEqual(field.dims, ("Lon", "Lat", "Year", "Day"))
        self.assertEqual(field.data["Day"].max(), 40)

    def test_missing_variable(self):
        ds = gridded_dataset(pd.to_datetime(["2000-07-01"]))
        with self.assertRaises(ArgumentError):
            Field.from_xarray(ds, "LPJ", SOURCE, QUANT, layers=["lai"])

    def test_to_xarray(self):
        ds = gridded_dataset(pd.to_datetime(["2000-07-01", "2001-07-01"]))
        field = Field.from_xarray(ds, "LPJ", SOURCE, QUANT)
        out = field.to_xarray()
        self.assertIn("lon", out.dims)
        self.assertIn("lat", out.dims)
        self.assertEqual(out["cveg"].attrs["units"], "kgC/m^2")
        np.testing.assert_allclose(out["cveg"].sel(Year=2001, lat=10.25).values, [2.0, 3.0])


if __name__ == "__main__":
    unittest.main()
