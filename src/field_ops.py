"""Operations that combine or reshape Fields.

copy_layers is the general merge used when two Fields are not on exactly the
same domain: it matches rows on coordinate values (optionally after rounding
Lon/Lat), never on row position, and lets the caller keep or drop the points
that only one of the two Fields has.
"""

from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

import pandas as pd

from compare_errors import AmbiguousMatchError, ArgumentError, DimensionMismatch
from field import Field, LayerKind, get_dim_info

# (keep_all_to, keep_all_from) -> pandas merge kind, "to" being the left table
JOIN_KINDS: Dict[Tuple[bool, bool], str] = {
    (False, False): "inner",
    (True, False): "left",
    (False, True): "right",
    (True, True): "outer",
}

SPATIAL_DIMS = ("Lon", "Lat")


def round_coordinates(data: pd.DataFrame, dec_places: int, label: str = "") -> pd.DataFrame:
    """Return a copy of ``data`` with Lon and Lat rounded to ``dec_places``.

    Raises:
        AmbiguousMatchError: If two rows end up on the same coordinate tuple.
    """
    data = data.copy()
    for dim in SPATIAL_DIMS:
        if dim in data.columns:
            data[dim] = data[dim].round(dec_places)

    dims = [c for c in ("Lon", "Lat", "Year", "Month", "Day") if c in data.columns]
    duplicated = data.duplicated(subset=dims, keep=False)
    if duplicated.any():
        example = data.loc[duplicated, dims].head(3).to_dict("records")
        raise AmbiguousMatchError(
            f"Rounding coordinates of '{label}' to {dec_places} decimal places maps "
            f"{int(duplicated.sum())} rows onto shared points (e.g. {example}). "
            f"Use more decimal places or regrid the data first.")
    return data


def copy_layers(from_field: Field,
                to_field: Field,
                layer_names: str | Sequence[str],
                new_layer_names: str | Sequence[str] | None = None,
                keep_all_to: bool = False,
                keep_all_from: bool = False,
                dec_places: int | None = None) -> Field:
    """Copy layers from one Field into (a copy of) another, matching on coordinates.

    Args:
        from_field: Field providing the layers.
        to_field: Field receiving the layers. Its id, source and quantity are kept.
        layer_names: Layers of ``from_field`` to copy.
        new_layer_names: Names for the copied layers. Defaults to ``layer_names``.
        keep_all_to: Keep points only present in ``to_field`` (copied layers missing there).
        keep_all_from: Keep points only present in ``from_field`` (original layers missing there).
        dec_places: Round Lon and Lat of both Fields to this many decimal places
            before matching. None means no rounding.

    Returns:
        A new Field. Neither input is modified.

    Raises:
        DimensionMismatch: If the Fields have different dimensions.
        ArgumentError: If layers are missing or the new names clash with existing layers.
        AmbiguousMatchError: If rounding makes coordinates non-unique.
    """
    layer_names = _as_list(layer_names)
    new_layer_names = layer_names if new_layer_names is None else _as_list(new_layer_names)

    if len(layer_names) != len(new_layer_names):
        raise ArgumentError(f"Got {len(layer_names)} layers to copy but {len(new_layer_names)} new names")
    if get_dim_info(from_field) != get_dim_info(to_field):
        raise DimensionMismatch(f"Cannot copy layers between Fields with dimensions "
                                f"{get_dim_info(from_field)} and {get_dim_info(to_field)}")

    missing = [layer for layer in layer_names if layer not in from_field.layers]
    if missing:
        raise ArgumentError(f"Layers {missing} not found in Field '{from_field.id}'")
    clashes = [layer for layer in new_layer_names if layer in to_field.layers]
    if clashes:
        raise ArgumentError(f"Layers {clashes} already exist in Field '{to_field.id}'")

    dims = list(to_field.dims)
    from_data = from_field.data[dims + layer_names].rename(columns=dict(zip(layer_names, new_layer_names)))
    to_data = to_field.data

    if dec_places is not None:
        to_data = round_coordinates(to_data, dec_places, label=to_field.id)
        from_data = round_coordinates(from_data, dec_places, label=from_field.id)

    how = JOIN_KINDS[(bool(keep_all_to), bool(keep_all_from))]
    merged = to_data.merge(from_data, on=dims, how=how, sort=True, validate="one_to_one")

    layer_kinds = {new: from_field.layer_kind(old) for old, new in zip(layer_names, new_layer_names)}
    return to_field.with_data(merged, layer_kinds=layer_kinds)


def aggregate_years(field: Field, method: str = "mean") -> Field:
    """Collapse the Year dimension of a Field.

    Only continuous layers can be aggregated.

    Args:
        field: Field with a Year dimension.
        method: "mean" or "sum".

    Returns:
        A new Field without the Year column.
    """
    if "Year" not in field.dims:
        raise ArgumentError(f"Field '{field.id}' has no Year dimension to aggregate")
    if method not in ("mean", "sum"):
        raise ValueError(f"Unknown year aggregation method '{method}', use 'mean' or 'sum'")
    discrete = [layer for layer in field.layers if field.layer_kind(layer) is not LayerKind.CONTINUOUS]
    if discrete:
        raise ArgumentError(f"Cannot aggregate non-continuous layers {discrete} over years")

    keys = [d for d in field.dims if d != "Year"]
    if keys:
        aggregated = field.data.groupby(keys, as_index=False)[field.layers].agg(method)
    else:
        aggregated = field.data[field.layers].agg(method).to_frame().T

    sta_info = replace(field.sta_info, year_aggregate_method=method)
    return field.with_data(aggregated, sta_info=sta_info)


def _as_list(names: str | Sequence[str]) -> List[str]:
    return [names] if isinstance(names, str) else list(names)
