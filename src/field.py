"""Gridded data containers for model outputs and reference datasets.

A Field is a table (pandas DataFrame) of spatial-temporal coordinates plus one
or more data columns ("layers"), together with the metadata needed to compare
and plot it: where it came from (Source), what it measures (Quantity) and its
spatial-temporal-annual description (STAInfo).

Coordinate columns are any of Lon, Lat, Year, Month and Day, always handled in
that order. Every other column is a layer. The kind of each layer (continuous,
categorical or logical) is decided once, when the Field is built, and carried
with the Field so comparisons never have to inspect values again.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd
import xarray as xr

from compare_errors import ArgumentError

DIMENSION_NAMES = ("Lon", "Lat", "Year", "Month", "Day")

# Coordinate names found in netCDF files and their Field counterparts
_XARRAY_COORD_NAMES = {
    "lon": "Lon",
    "longitude": "Lon",
    "lat": "Lat",
    "latitude": "Lat",
}


class LayerKind(Enum):
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"
    LOGICAL = "logical"

    @property
    def is_discrete(self) -> bool:
        return self is not LayerKind.CONTINUOUS


@dataclass(frozen=True)
class Quantity:
    """The physical quantity stored in a Field (e.g. vegetation carbon, kgC/m2)."""
    id: str
    name: str = ""
    units: str = ""
    colours: str = "viridis"


@dataclass(frozen=True)
class PFT:
    """Plant functional type, used for labelling and colouring layers."""
    id: str
    name: str = ""
    lifeform: str = ""
    leafform: str = ""
    phenology: str = ""
    climate_zone: str = ""
    colour: str = "grey"
    shade_tolerance: str = "no"


@dataclass(frozen=True)
class Source:
    """A model run or a reference dataset."""
    id: str
    name: str
    format: str = ""
    dir: str = ""
    pft_set: Tuple[PFT, ...] = ()


@dataclass(frozen=True)
class STAInfo:
    """Spatial-temporal-annual description of a Field."""
    first_year: int | None = None
    last_year: int | None = None
    year_aggregate_method: str = "none"
    spatial_extent_id: str = "Full"
    spatial_extent: Tuple[float, float, float, float] | None = None
    subannual_resolution: str = "Year"
    subannual_aggregate_method: str = "none"

    @classmethod
    def from_data(cls, data: pd.DataFrame, **kwargs) -> "STAInfo":
        """Derive the years, extent and sub-annual resolution from a Field table.

        Keyword arguments are passed through (aggregation methods, extent id)
        and take precedence over the derived values.
        """
        derived: Dict[str, Any] = {}
        if "Year" in data.columns and len(data) > 0:
            derived["first_year"] = int(data["Year"].min())
            derived["last_year"] = int(data["Year"].max())
        if "Lon" in data.columns and "Lat" in data.columns and len(data) > 0:
            derived["spatial_extent"] = (float(data["Lon"].min()), float(data["Lon"].max()),
                                         float(data["Lat"].min()), float(data["Lat"].max()))
        if "Day" in data.columns:
            derived["subannual_resolution"] = "Day"
        elif "Month" in data.columns:
            derived["subannual_resolution"] = "Month"
        derived.update(kwargs)
        return cls(**derived)


class GriddedData(Protocol):
    """Anything with coordinate-indexed layer columns and dimension metadata."""
    id: str
    source: Source
    quant: Quantity
    data: pd.DataFrame

    @property
    def dims(self) -> Tuple[str, ...]: ...

    @property
    def layers(self) -> List[str]: ...

    def layer_kind(self, layer: str) -> LayerKind: ...


def infer_layer_kind(values: pd.Series) -> LayerKind:
    """Classify a column by its dtype."""
    if pd.api.types.is_bool_dtype(values):
        return LayerKind.LOGICAL
    if isinstance(values.dtype, pd.CategoricalDtype):
        return LayerKind.CATEGORICAL
    if pd.api.types.is_numeric_dtype(values):
        return LayerKind.CONTINUOUS
    if pd.api.types.is_object_dtype(values) or pd.api.types.is_string_dtype(values):
        return LayerKind.CATEGORICAL
    raise TypeError(f"Column '{values.name}' has unsupported dtype {values.dtype}")


class Field:
    """A gridded dataset: coordinates plus data layers and their metadata.

    Args:
        id: Identifier, used to label columns when two Fields are combined.
        data: Table with the coordinate columns and the layers.
        source: The Source the data comes from.
        quant: The Quantity the layers measure.
        sta_info: Dimension metadata. Derived from the data if None.
        layer_kinds: Explicit kinds for some or all layers; the others are
            inferred from their dtype.

    Raises:
        ValueError: If a coordinate tuple appears more than once or a kind is
            given for a column that is not a layer.
    """

    def __init__(self,
                 id: str,
                 data: pd.DataFrame,
                 source: Source,
                 quant: Quantity,
                 sta_info: STAInfo | None = None,
                 layer_kinds: Dict[str, LayerKind] | None = None):
        self.id = id
        self.source = source
        self.quant = quant

        data = data.reset_index(drop=True).copy()
        dims = tuple(d for d in DIMENSION_NAMES if d in data.columns)
        layers = [c for c in data.columns if c not in dims]
        # Canonical column order: coordinates first
        data = data[list(dims) + layers]

        if dims and data.duplicated(subset=list(dims)).any():
            n_dup = int(data.duplicated(subset=list(dims)).sum())
            raise ValueError(f"Field '{id}' has {n_dup} duplicated coordinate(s) in {dims}")

        kinds = {layer: infer_layer_kind(data[layer]) for layer in layers}
        if layer_kinds:
            unknown = set(layer_kinds) - set(layers)
            if unknown:
                raise ValueError(f"Layer kinds given for unknown layers: {sorted(unknown)}")
            kinds.update(layer_kinds)

        for layer, kind in kinds.items():
            if kind is LayerKind.CATEGORICAL and not isinstance(data[layer].dtype, pd.CategoricalDtype):
                data[layer] = data[layer].astype("category")

        self.data = data
        self._dims = dims
        self._layer_kinds = kinds
        self.sta_info = sta_info if sta_info is not None else STAInfo.from_data(data)

    @property
    def dims(self) -> Tuple[str, ...]:
        return self._dims

    @property
    def layers(self) -> List[str]:
        return [c for c in self.data.columns if c not in self._dims]

    @property
    def layer_kinds(self) -> Dict[str, LayerKind]:
        return dict(self._layer_kinds)

    def layer_kind(self, layer: str) -> LayerKind:
        try:
            return self._layer_kinds[layer]
        except KeyError:
            raise ArgumentError(f"Layer '{layer}' not found in Field '{self.id}'. Available: {self.layers}")

    def with_data(self, data: pd.DataFrame, **changes) -> "Field":
        """Build a new Field with the same metadata around a different table.

        Kinds of layers that survive in ``data`` are kept; new layers are inferred.
        """
        layer_kinds = {k: v for k, v in self._layer_kinds.items() if k in data.columns}
        layer_kinds.update(changes.pop("layer_kinds", {}))
        sta_info = changes.pop("sta_info", None)
        if sta_info is None:
            sta_info = STAInfo.from_data(data,
                                         year_aggregate_method=self.sta_info.year_aggregate_method,
                                         spatial_extent_id=self.sta_info.spatial_extent_id,
                                         subannual_aggregate_method=self.sta_info.subannual_aggregate_method)
        return Field(id=changes.pop("id", self.id),
                     data=data,
                     source=changes.pop("source", self.source),
                     quant=changes.pop("quant", self.quant),
                     sta_info=sta_info,
                     layer_kinds=layer_kinds)

    def copy(self) -> "Field":
        return Field(self.id, self.data.copy(deep=True), self.source, self.quant,
                     sta_info=self.sta_info, layer_kinds=self.layer_kinds)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return (f"Field(id={self.id!r}, source={self.source.name!r}, quant={self.quant.id!r}, "
                f"dims={self.dims}, layers={self.layers}, rows={len(self.data)})")

    @classmethod
    def from_xarray(cls,
                    ds: xr.Dataset,
                    id: str,
                    source: Source,
                    quant: Quantity,
                    layers: Sequence[str] | None = None,
                    **sta_kwargs) -> "Field":
        """Flatten a gridded xarray Dataset into a Field.

        ``lon``/``lat`` (or ``longitude``/``latitude``) become Lon/Lat. A ``time``
        coordinate is split into Year, and Month or Day depending on the time step
        of the data (monthly data gets a Month column, daily data a day-of-year
        Day column). Rows where every layer is missing are dropped.
        """
        layers = list(ds.data_vars) if layers is None else list(layers)
        missing = [v for v in layers if v not in ds.data_vars]
        if missing:
            raise ArgumentError(f"Variables {missing} not found in dataset. Available: {list(ds.data_vars)}")
        ds = ds[layers]
        ds = ds.rename({k: v for k, v in _XARRAY_COORD_NAMES.items() if k in ds.coords})

        df = ds.to_dataframe().reset_index()

        if "time" in df.columns:
            times = ds["time"]
            lookup = pd.DataFrame({
                "time": times.values,
                "Year": times.dt.year.values,
                "Month": times.dt.month.values,
                "Day": times.dt.dayofyear.values,
            })
            time_dims = ["Year"] + _time_resolution(lookup)
            df = df.merge(lookup[["time"] + time_dims], on="time", how="left").drop(columns="time")

        dims = [d for d in DIMENSION_NAMES if d in df.columns]
        df = df[dims + layers].dropna(subset=layers, how="all")
        for d in ("Year", "Month", "Day"):
            if d in df.columns:
                df[d] = df[d].astype(np.int64)

        return cls(id, df, source, quant, sta_info=STAInfo.from_data(df, **sta_kwargs))

    def to_xarray(self) -> xr.Dataset:
        """Grid the Field on its coordinates (Lon/Lat become lon/lat)."""
        ds = self.data.set_index(list(self.dims)).to_xarray()
        ds = ds.rename({k: v for k, v in {"Lon": "lon", "Lat": "lat"}.items() if k in ds.dims})
        for layer in self.layers:
            ds[layer].attrs["units"] = self.quant.units
            ds[layer].attrs["long_name"] = self.quant.name
        ds.attrs["source"] = self.source.name
        ds.attrs["id"] = self.id
        return ds


def _time_resolution(lookup: pd.DataFrame) -> List[str]:
    """Sub-annual dimension implied by a table of time stamps."""
    per_year = lookup.groupby("Year").size()
    per_month = lookup.groupby(["Year", "Month"]).size()
    if per_month.max() > 1:
        return ["Day"]
    if per_year.max() > 1:
        return ["Month"]
    return []


def get_dim_info(field: GriddedData, info: str = "names"):
    """Dimension metadata of a Field.

    Args:
        field: The Field to query.
        info: "names" for the ordered dimension names, "full" for a mapping from
            each dimension to the sorted tuple of values present.

    Returns:
        A tuple of names or a dict of dimension -> values.
    """
    match info:
        case "names":
            return tuple(field.dims)
        case "full":
            return {dim: tuple(np.unique(field.data[dim].dropna().to_numpy()).tolist())
                    for dim in field.dims}
        case _:
            raise ValueError(f"Unknown dimension info '{info}', use 'names' or 'full'")


def select_layers(field: Field, layers: str | Sequence[str]) -> Field:
    """Return a new Field with only the coordinates and the requested layers."""
    if isinstance(layers, str):
        layers = [layers]
    layers = list(layers)
    missing = [layer for layer in layers if layer not in field.layers]
    if missing:
        raise ArgumentError(f"Layers {missing} not found in Field '{field.id}'. Available: {field.layers}")
    data = field.data[list(field.dims) + layers].copy()
    return Field(field.id, data, field.source, field.quant,
                 sta_info=field.sta_info,
                 layer_kinds={layer: field.layer_kind(layer) for layer in layers})
