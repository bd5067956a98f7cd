"""Compare layers of two Fields.

compare_layers aligns the layers of two Fields (a model run and a reference
dataset, or two model runs), works out what kind of comparison they allow and
computes the matching statistics. The result is an immutable Comparison which
carries the merged table, the metadata of both inputs and the statistics, and
can be plotted with compare_plots.plot_spatial_comparison.

The four kinds of comparison are:
    - continuous: one numeric layer from each Field (RMSE, NME, r, ...)
    - categorical: one categorical layer from each Field (Cohen's kappa, ...)
    - seasonal: one numeric monthly layer from each Field, compared through the
      seasonal concentration and phase of each gridcell
    - relative abundance: several layers from each Field, read as proportions
      (Manhattan metric and squared chord distance)

Example:
    vegc = compare_layers(model_cmass, saatchi_cmass, layers1="Tree", layers2="vegC_std")
    print(vegc.stats["RMSE"])
"""

import warnings
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Sequence, Tuple

import pandas as pd

from compare_errors import (
    ArgumentError,
    ConfigurationError,
    DimensionMismatch,
    LayerCheckWarning,
    NoOverlapError,
    QuantityMismatch,
    QuantityMismatchWarning,
    TypeMismatch,
)
from comparison_metrics import (
    CustomMetric,
    categorical_comparison,
    continuous_comparison,
    proportions_comparison,
    seasonal_comparison,
)
from field import Field, LayerKind, Quantity, Source, STAInfo, get_dim_info, select_layers
from field_ops import JOIN_KINDS, copy_layers


class ComparisonType(Enum):
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"
    SEASONAL = "seasonal"
    RELATIVE_ABUNDANCE = "relative.abundance"


class Side(Enum):
    A = 1  # field1
    B = 2  # field2


@dataclass(frozen=True)
class LayerRef:
    """Where a compared layer lives in the merged table."""
    side: Side
    layer: str
    column: str


@dataclass(frozen=True, eq=False)
class Comparison:
    """The result of compare_layers.

    ``data`` is the merged table (for seasonal comparisons, the per-gridcell
    concentration and phase table). ``stats`` and the mappings inside it
    (e.g. per_class_kappa) are read-only. DataFrame entries (the categorical
    confusion matrix) and ``data`` are plain DataFrames and are not frozen.
    """
    id: str
    name: str
    type: ComparisonType
    data: pd.DataFrame
    quant1: Quantity
    quant2: Quantity
    source1: Source
    source2: Source
    layers1: Tuple[str, ...]
    layers2: Tuple[str, ...]
    sta_info1: STAInfo
    sta_info2: STAInfo
    stats: Mapping[str, Any]
    layer_refs1: Tuple[LayerRef, ...] = ()
    layer_refs2: Tuple[LayerRef, ...] = ()

    def __post_init__(self):
        stats = {name: MappingProxyType(dict(value)) if isinstance(value, Mapping) else value
                 for name, value in self.stats.items()}
        object.__setattr__(self, "stats", MappingProxyType(stats))

    @property
    def quant(self) -> Quantity:
        """The Quantity the comparison is expressed in (that of the first Field)."""
        return self.quant1

    @property
    def columns1(self) -> List[str]:
        return [ref.column for ref in self.layer_refs1]

    @property
    def columns2(self) -> List[str]:
        return [ref.column for ref in self.layer_refs2]

    def __repr__(self) -> str:
        return f"Comparison(id={self.id!r}, name={self.name!r}, type={self.type.value}, rows={len(self.data)})"


def _as_list(layers: str | Sequence[str]) -> List[str]:
    return [layers] if isinstance(layers, str) else list(layers)


def _column_suffixes(field1: Field, field2: Field) -> Tuple[str, str]:
    """Suffixes keeping the columns of the two Fields apart, even for equal ids."""
    if field1.id == field2.id:
        return f"{field1.id}.1", f"{field2.id}.2"
    return field1.id, field2.id


def _classify(field1: Field,
              field2: Field,
              layers1: List[str],
              layers2: List[str],
              do_seasonality: bool,
              verbose: bool) -> ComparisonType:
    """Work out the nature of the comparison before touching any data."""
    if len(layers1) > 1:
        if verbose:
            print("Doing relative abundance comparison, note no checks done on layer types...")
        for field, layers in ((field1, layers1), (field2, layers2)):
            missing = [layer for layer in layers if layer not in field.layers]
            if missing:
                warnings.warn(f"Layers {missing} not found in Field '{field.id}', "
                              f"taking them to have zero abundance", LayerCheckWarning, stacklevel=3)
        return ComparisonType.RELATIVE_ABUNDANCE

    kind1 = field1.layer_kind(layers1[0])
    kind2 = field2.layer_kind(layers2[0])
    if kind1 is not kind2:
        raise TypeMismatch(f"Layer types don't match ('{layers1[0]}' is {kind1.value}, "
                           f"'{layers2[0]}' is {kind2.value}), check your layers1 and layers2 "
                           f"arguments and your input Fields")

    if kind1 is LayerKind.CONTINUOUS:
        if do_seasonality:
            if "Month" not in get_dim_info(field1):
                raise ConfigurationError("Argument 'do_seasonality' = True but no monthly dimension "
                                         "found in input datasets.")
            if verbose:
                print("Comparing seasonality of two single numeric layers with monthly data.")
            return ComparisonType.SEASONAL
        if verbose:
            print("Comparing two single numeric layers.")
        return ComparisonType.CONTINUOUS

    if verbose:
        print("Comparing two single categorical layers.")
    return ComparisonType.CATEGORICAL


def _extract_layers(field: Field, layers: List[str], suffix: str, side: Side) -> Tuple[pd.DataFrame, List[LayerRef]]:
    """Copy the coordinates and requested layers, renamed with the Field suffix.

    Requested layers the Field does not have are added as zeros (only reached
    for relative abundance comparisons, where they have been warned about).
    """
    present = [layer for layer in layers if layer in field.layers]
    data = select_layers(field, present).data
    for layer in layers:
        if layer not in present:
            data[layer] = 0.0

    refs = [LayerRef(side=side, layer=layer, column=f"{layer}.{suffix}") for layer in layers]
    data = data.rename(columns={ref.layer: ref.column for ref in refs})
    return data, refs


def _match_nas(data: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Blank every compared value in rows where any compared value is missing."""
    are_nas = data[columns].isna().any(axis=1)
    for column in columns:
        data[column] = data[column].where(~are_nas)
    return data


def compare_layers(field1: Field,
                   field2: Field,
                   layers1: str | Sequence[str],
                   layers2: str | Sequence[str] | None = None,
                   do_seasonality: bool = False,
                   keep_all1: bool = False,
                   keep_all2: bool = False,
                   override_quantity: bool = False,
                   verbose: bool = False,
                   match_nas: bool = False,
                   show_stats: bool = True,
                   custom_metrics: Mapping[str, CustomMetric] | None = None,
                   dec_places: int | None = None) -> Comparison:
    """Compare layers of two Fields and calculate statistics on their agreement.

    Args:
        field1: First Field. For the normalised metrics these are the *modelled* values.
        field2: Second Field. For the normalised metrics these are the *observed* values.
        layers1: Layer(s) of field1 to compare.
        layers2: Layer(s) of field2 to compare, in the same order. Defaults to layers1.
        do_seasonality: Compare the seasonal concentration and phase of monthly
            data instead of the values themselves.
        keep_all1: Keep points of field1 that have no counterpart in field2.
        keep_all2: Keep points of field2 that have no counterpart in field1.
        override_quantity: Compare even if the Quantities differ, using field1's.
        verbose: Print progress and the intermediate tables.
        match_nas: Where one Field has no data, blank the other as well, so that
            both show 'no data' in the same places when plotted side by side.
        show_stats: Print the statistics.
        custom_metrics: Extra metrics, name -> function(table, columns1, columns2).
            Scalar results are stored under their name, dict results are
            flattened to "<name>.<key>".
        dec_places: Round Lon and Lat to this many decimal places before matching
            points. None (default) means no rounding, which is fine for most
            regularly spaced grids.

    Returns:
        A Comparison.

    Raises:
        DimensionMismatch: The Fields have different dimensions.
        ArgumentError: layers1 and layers2 differ in length, or a layer is missing.
        TypeMismatch: The two layers are of different kinds.
        ConfigurationError: Seasonality requested without a Month dimension.
        NoOverlapError: The Fields have no points in common.
        QuantityMismatch: The Quantities differ and override_quantity is False.
        AmbiguousMatchError: Rounding to dec_places makes coordinates collide.
    """
    layers1 = _as_list(layers1)
    layers2 = layers1 if layers2 is None else _as_list(layers2)

    # Check that the Fields have the same dimensions and that we have the same number of layers
    if get_dim_info(field1) != get_dim_info(field2):
        raise DimensionMismatch(f"Trying to compare layers with different dimensions "
                                f"({get_dim_info(field1)} and {get_dim_info(field2)}). "
                                f"Check your dimensions and/or averaging.")
    if len(layers1) != len(layers2):
        raise ArgumentError(f"Trying to compare a different number of layers between two Fields "
                            f"({len(layers1)} and {len(layers2)}). Check your layers1 and layers2 arguments.")
    if not layers1:
        raise ArgumentError("No layers given to compare")

    comparison_type = _classify(field1, field2, layers1, layers2, do_seasonality, verbose)

    # Extract the layers and rename them so that they are distinct when combined
    suffix1, suffix2 = _column_suffixes(field1, field2)
    data1, refs1 = _extract_layers(field1, layers1, suffix1, Side.A)
    data2, refs2 = _extract_layers(field2, layers2, suffix2, Side.B)
    columns1 = [ref.column for ref in refs1]
    columns2 = [ref.column for ref in refs2]

    if verbose:
        print("First dataset:")
        print(data1)
        print("Second dataset:")
        print(data2)

    dims = list(get_dim_info(field1))
    if get_dim_info(field1, "full") == get_dim_info(field2, "full"):
        # Both Fields are on exactly the same domain, a plain join on the coordinates will do
        if verbose:
            print("Both fields have the same dimensions, doing a join on the coordinates.")
        how = JOIN_KINDS[(bool(keep_all1), bool(keep_all2))]
        new_data = data1.merge(data2, on=dims, how=how, sort=True, validate="one_to_one")
    else:
        if verbose:
            print("Fields don't have the same dimensions, doing a copy_layers() operation.")
        layer_field1 = Field(field1.id, data1, field1.source, field1.quant, sta_info=field1.sta_info,
                             layer_kinds={ref.column: _kind(field1, ref.layer) for ref in refs1})
        layer_field2 = Field(field2.id, data2, field2.source, field2.quant, sta_info=field2.sta_info,
                             layer_kinds={ref.column: _kind(field2, ref.layer) for ref in refs2})
        new_data = copy_layers(from_field=layer_field2,
                               to_field=layer_field1,
                               layer_names=columns2,
                               keep_all_to=keep_all1,
                               keep_all_from=keep_all2,
                               dec_places=dec_places).data
    new_data = new_data.reset_index(drop=True)

    if match_nas:
        new_data = _match_nas(new_data, columns1 + columns2)

    if len(new_data) == 0:
        raise NoOverlapError("The fields you selected to compare have no common points, so layer comparison "
                             "can't be done! Check your input data and also note that the 'dec_places' "
                             "argument may be useful for truncating coordinates to a common precision.")

    if verbose:
        print("Merged dataset")
        print(new_data)

    if field1.quant != field2.quant:
        if not override_quantity:
            raise QuantityMismatch(f"Comparing different Quantities ({field1.quant.id} and {field2.quant.id}), "
                                   f"set override_quantity=True to compare them anyway")
        warnings.warn(f"Quantity objects from compared objects do not match ({field1.quant.id} and "
                      f"{field2.quant.id}), proceeding using quantity {field1.quant.id}",
                      QuantityMismatchWarning, stacklevel=2)

    source1, source2 = field1.source, field2.source

    # Calculate the appropriate statistical comparisons
    match comparison_type:
        case ComparisonType.CONTINUOUS:
            new_name = f"{source1.name} - {source2.name}"
            stats = continuous_comparison(new_data, columns1, columns2, custom_metrics, verbose=show_stats)
        case ComparisonType.SEASONAL:
            new_name = f"Seasonal comparison {source1.name} vs. {source2.name}"
            stats, new_data = seasonal_comparison(new_data, columns1, columns2, custom_metrics, verbose=show_stats)
            new_data = new_data.rename(columns={
                "C_1": f"Seasonal Concentration.{suffix1}",
                "C_2": f"Seasonal Concentration.{suffix2}",
                "P_1": f"Seasonal Phase.{suffix1}",
                "P_2": f"Seasonal Phase.{suffix2}",
            })
        case ComparisonType.CATEGORICAL:
            new_name = f"{source1.name} vs. {source2.name}"
            stats = categorical_comparison(new_data, columns1, columns2, custom_metrics, verbose=show_stats)
        case ComparisonType.RELATIVE_ABUNDANCE:
            new_name = f"Relative abundance {source1.name} vs. {source2.name}"
            stats = proportions_comparison(new_data, columns1, columns2, custom_metrics, verbose=show_stats)

    return Comparison(
        id="_".join(f"{c1}-{c2}" for c1, c2 in zip(columns1, columns2)),
        name=new_name,
        type=comparison_type,
        data=new_data,
        quant1=field1.quant,
        quant2=field2.quant,
        source1=source1,
        source2=source2,
        layers1=tuple(layers1),
        layers2=tuple(layers2),
        sta_info1=field1.sta_info,
        sta_info2=field2.sta_info,
        stats=stats,
        layer_refs1=tuple(refs1),
        layer_refs2=tuple(refs2),
    )


def _kind(field: Field, layer: str) -> LayerKind:
    return field.layer_kind(layer) if layer in field.layers else LayerKind.CONTINUOUS
