"""Plotting of Fields and Comparisons.

plot_temporal draws time series of the layers of one or more Fields and
plot_spatial_comparison draws maps of a Comparison. Both return a matplotlib
Figure (or None when the input can't be plotted, with a PlottingWarning).

The sanitise_* helpers check the input of the plot functions. Like the plot
functions they warn and return None for input that makes no sense to plot, so
a script plotting many things keeps going.
"""

import warnings
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch
import cartopy.crs as ccrs
import cartopy.feature as cfeature

from compare_errors import PlottingWarning
from compare_layers import Comparison, ComparisonType
from field import PFT, Field, LayerKind, get_dim_info, select_layers

# Colours for layers which are not PFTs
OTHER_COLOURS = {
    "Total": "black",
    "None": "#bfbfbf",   # grey75
    "Tree": "brown",
    "Grass": "green",
    "Shrub": "red",
}

SOURCE_COLOURS = [
    '#1f77b4',  # blue
    '#ff7f0e',  # orange
    '#2ca02c',  # green
    '#d62728',  # red
    '#9467bd',  # purple
    '#8c564b',  # brown
    '#e377c2',  # pink
    '#7f7f7f',  # gray
    '#bcbd22',  # olive
    '#17becf',  # cyan
]

MAP_OVERLAYS = {
    "coastline": cfeature.COASTLINE,
    "borders": cfeature.BORDERS,
    "land": cfeature.LAND,
}

# legend position -> (loc, bbox_to_anchor) for Figure.legend
_LEGEND_POSITIONS = {
    "bottom": ("upper center", (0.5, 0.0)),
    "top": ("lower center", (0.5, 1.0)),
    "right": ("center left", (1.0, 0.5)),
    "left": ("center right", (0.0, 0.5)),
}

BASE_FONTSIZE = 10

# season code -> months
SEASON_MONTHS = {
    "DJF": (12, 1, 2),
    "MAM": (3, 4, 5),
    "JJA": (6, 7, 8),
    "SON": (9, 10, 11),
}


# =============================================================================
# INPUT CHECKS
# =============================================================================

def sanitise_fields_for_plotting(fields: Field | Sequence[Field]) -> List[Field] | None:
    """Put a single Field in a list, check that a list holds only Fields."""
    if isinstance(fields, Field):
        return [fields]
    if isinstance(fields, (list, tuple)):
        if not all(isinstance(f, Field) for f in fields):
            warnings.warn("You have passed me a list of items to plot but the items are not "
                          "exclusively Fields. Returning None", PlottingWarning, stacklevel=2)
            return None
        return list(fields)
    warnings.warn(f"This plot function can only handle a single Field, or a list of Fields, "
                  f"it can't plot an object of type {type(fields).__name__}", PlottingWarning, stacklevel=2)
    return None


def sanitise_comparisons_for_plotting(comparisons: Comparison | Sequence[Comparison]) -> List[Comparison] | None:
    """Put a single Comparison in a list, check that a list holds only Comparisons."""
    if isinstance(comparisons, Comparison):
        return [comparisons]
    if isinstance(comparisons, (list, tuple)):
        if not all(isinstance(c, Comparison) for c in comparisons):
            warnings.warn("You have passed me a list of items to plot but the items are not "
                          "exclusively Comparisons. Returning None", PlottingWarning, stacklevel=2)
            return None
        return list(comparisons)
    warnings.warn(f"This plot function can only handle a single Comparison, or a list of Comparisons, "
                  f"it can't plot an object of type {type(comparisons).__name__}", PlottingWarning, stacklevel=2)
    return None


def sanitise_layers_for_plotting(fields: Sequence[Field], layers: str | Sequence[str] | None = None) -> List[str] | None:
    """Layers to plot: all layers of all Fields if None, otherwise those requested that exist.

    Returns None if none of the requested layers is in any of the Fields.
    """
    superset: List[str] = []
    if layers is None:
        for field in fields:
            superset.extend(layer for layer in field.layers if layer not in superset)
        return superset

    layers = [layers] if isinstance(layers, str) else list(layers)
    for field in fields:
        present = [layer for layer in layers if layer in field.layers]
        if not present:
            warnings.warn(f"Field '{field.id}' has none of the layers requested to plot",
                          PlottingWarning, stacklevel=2)
        superset.extend(layer for layer in present if layer not in superset)

    if not superset:
        warnings.warn("None of the specified layers found in the objects provided to plot. Returning None.",
                      PlottingWarning, stacklevel=2)
        return None

    missing = [layer for layer in layers if layer not in superset]
    if missing:
        warnings.warn(f"The following layers were requested to plot but not present in any of "
                      f"the supplied objects: {' '.join(missing)}", PlottingWarning, stacklevel=2)
    return superset


def sanitise_dimensions_for_plotting(fields: Sequence[Field], require: Sequence[str] | None = None) -> Tuple[str, ...] | None:
    """Check that all Fields have the same dimensions, including the required ones."""
    dims = get_dim_info(fields[0])
    for required in require or ():
        if required not in dims:
            warnings.warn(f"Dimension {required} is missing from an input Field but is required "
                          f"for this plot type. Returning None.", PlottingWarning, stacklevel=2)
            return None
    for field in fields[1:]:
        if get_dim_info(field) != dims:
            warnings.warn(f"Trying to plot two Fields with different dimensions. One has "
                          f"\"{','.join(dims)}\" and the other has \"{','.join(get_dim_info(field))}\". "
                          f"So not plotting and returning None.", PlottingWarning, stacklevel=2)
            return None
    return dims


def check_dimension_values(fields: Sequence[Field], dimension: str, input_values: Sequence[Any] | None = None) -> List[Any]:
    """Values of a dimension to plot.

    If ``input_values`` is given, each value missing from a Field is warned
    about and the input is returned. Otherwise the sorted union of the values
    of all Fields is returned.

    Raises:
        ValueError: If a Field doesn't have the dimension.
    """
    all_values = set()
    for field in fields:
        if dimension not in get_dim_info(field):
            raise ValueError(f"Plotting per {dimension} was requested but Field '{field.id}' has no "
                             f"{dimension} dimension. Check that your input Fields have the time "
                             f"dimensions that you think they have.")
        present = set(field.data[dimension].dropna().unique().tolist())
        if input_values is not None:
            for value in input_values:
                if value not in present:
                    warnings.warn(f"{dimension} {value} not present in Field {field.id}",
                                  PlottingWarning, stacklevel=2)
        else:
            all_values |= present

    if input_values is not None:
        return list(input_values)
    return sorted(all_values)


def trim_fields_for_plotting(fields: Sequence[Field],
                             layers: Sequence[str],
                             years: Sequence[int] | None = None,
                             days: Sequence[int] | None = None,
                             months: Sequence[int] | None = None,
                             seasons: Sequence[str] | None = None,
                             gridcells: Sequence[Tuple[float, float]] | None = None) -> List[Field]:
    """Select the layers and points in space-time to plot.

    Fields with none of ``layers`` are left out. ``seasons`` are codes of
    SEASON_MONTHS ("DJF", "MAM", "JJA", "SON") and select from the Month
    dimension. ``gridcells`` are (Lon, Lat) pairs.

    Raises:
        ValueError: If a selection needs a dimension a Field doesn't have, a
            season is unknown, or discrete and continuous layers are mixed.
    """
    if seasons is not None:
        unknown = [s for s in seasons if s not in SEASON_MONTHS]
        if unknown:
            raise ValueError(f"Unknown seasons {unknown}, use some of {list(SEASON_MONTHS)}")
        season_months = sorted({m for s in seasons for m in SEASON_MONTHS[s]})
        months = season_months if months is None else [m for m in months if m in season_months]

    discrete = False
    continuous = False
    final_fields = []
    for field in fields:
        present = [layer for layer in layers if layer in field.layers]
        if not present:
            continue

        trimmed = select_layers(field, present)
        data = trimmed.data
        keep = pd.Series(True, index=data.index)
        for dim, values in (("Year", years), ("Day", days), ("Month", months)):
            if values is None:
                continue
            if dim not in trimmed.dims:
                raise ValueError(f"{dim} selection requested but Field '{field.id}' has no {dim} dimension")
            keep &= data[dim].isin(list(values))
        if gridcells is not None:
            if "Lon" not in trimmed.dims or "Lat" not in trimmed.dims:
                raise ValueError(f"Gridcells requested but Field '{field.id}' has no Lon/Lat dimensions")
            cells = pd.MultiIndex.from_tuples([tuple(c) for c in gridcells], names=["Lon", "Lat"])
            keep &= pd.MultiIndex.from_frame(data[["Lon", "Lat"]]).isin(cells)
        if not keep.all():
            trimmed = trimmed.with_data(data.loc[keep])

        for layer in present:
            if trimmed.layer_kind(layer).is_discrete:
                discrete = True
            else:
                continuous = True
        if discrete and continuous:
            raise ValueError("Cannot simultaneously plot discrete and continuous layers, check your layers")

        final_fields.append(trimmed)
    return final_fields


# =============================================================================
# COLOURS, OVERLAYS AND TITLES
# =============================================================================

def match_pft_cols(values: Sequence[Any],
                   pfts: Sequence[PFT],
                   others: Dict[str, str] | None = None) -> Dict[str, str] | None:
    """Colours for layer names (or class values) that are PFT ids or common aggregates.

    Matching on ``others`` is case insensitive. Missing values are ignored.

    Returns:
        A dict of value -> colour, or None (with a warning) if some value has
        no colour while others do.
    """
    others = OTHER_COLOURS if others is None else others
    pft_colours = {pft.id: pft.colour for pft in pfts}
    other_colours = {name.lower(): colour for name, colour in others.items()}

    colours: Dict[str, str] = {}
    for value in values:
        if value is None or (isinstance(value, float) and np.isnan(value)):
            continue
        key = str(value)
        if key in pft_colours:
            colours[key] = pft_colours[key]
        elif key.lower() in other_colours:
            colours[key] = other_colours[key.lower()]
        elif colours:
            warnings.warn(f"Some value ({key}) doesn't have a specified colour, so match_pft_cols is "
                          f"returning None. Note you can provide a colour for ({key}) using the "
                          f"'others' argument", PlottingWarning, stacklevel=2)
            return None
    return colours


def make_map_overlay(map_overlay: str | None, all_lons: Sequence[float]) -> Tuple[Any, ccrs.Projection]:
    """Cartopy feature for the map overlay and the projection to draw on.

    Longitudes above 180 mean a 0-360 grid, which is drawn Pacific centred.

    Returns:
        (feature or None, projection)
    """
    gt_180 = bool(len(all_lons)) and float(np.nanmax(np.asarray(all_lons, dtype=float))) > 180
    projection = ccrs.PlateCarree(central_longitude=180 if gt_180 else 0)
    if map_overlay is None or map_overlay == "none":
        return None, projection
    if map_overlay not in MAP_OVERLAYS:
        raise ValueError(f"Can't make an overlay from '{map_overlay}', use one of {list(MAP_OVERLAYS)}")
    return MAP_OVERLAYS[map_overlay], projection


def make_plot_title(fields: Sequence[Field]) -> Dict[str, str]:
    """Title from the Quantities and subtitle from the Sources of the Fields."""
    quantities: List[str] = []
    sources: List[str] = []
    for field in fields:
        quant_name = field.quant.name or field.quant.id
        if quant_name not in quantities:
            quantities.append(quant_name)
        if field.source.name not in sources:
            sources.append(field.source.name)
    return {"title": " & ".join(quantities), "subtitle": ", ".join(sources)}


# =============================================================================
# TIME SERIES
# =============================================================================

def _make_time(data: pd.DataFrame) -> pd.DataFrame:
    """Replace Year (and Month or Day) with a Time column."""
    years = data["Year"].to_numpy(dtype=np.int64)
    if years.min() >= 0:
        start = (years - 1970).astype("datetime64[Y]")
        if "Month" in data.columns:
            months = data["Month"].to_numpy(dtype=np.int64)
            time = start.astype("datetime64[M]") + (months - 1).astype("timedelta64[M]")
        elif "Day" in data.columns:
            days = data["Day"].to_numpy(dtype=np.int64)
            time = start.astype("datetime64[D]") + (days - 1).astype("timedelta64[D]")
        else:
            time = start
        data["Time"] = pd.Series(time.astype("datetime64[D]"), index=data.index)
    else:
        if "Month" in data.columns or "Day" in data.columns:
            raise NotImplementedError("Plotting months or days with negative years is not supported")
        data["Time"] = data["Year"]
    return data.drop(columns=[d for d in ("Year", "Month", "Day") if d in data.columns])


def plot_temporal(fields: Field | Sequence[Field],
                  layers: str | Sequence[str] | None = None,
                  gridcells: Sequence[Tuple[float, float]] | None = None,
                  title: str | None = None,
                  subtitle: str | None = None,
                  cols: Dict[str, str] | None = None,
                  labels: Dict[str, str] | None = None,
                  y_label: str | None = None,
                  x_lim: Tuple[Any, Any] | None = None,
                  y_lim: Tuple[float, float] | None = None,
                  facet: bool = True,
                  legend_position: str = "bottom",
                  text_multiplier: float | None = None,
                  plot: bool = True) -> plt.Figure | pd.DataFrame | None:
    """Plot time series of the layers of one or more Fields.

    Args:
        fields: A Field or a list of Fields with the same dimensions, including Year.
        layers: Layers to plot. Defaults to all layers.
        gridcells: (Lon, Lat) pairs to plot. Defaults to all gridcells.
        title: Plot title. Defaults to the names of the Quantities.
        subtitle: Plot subtitle. Defaults to the names of the Sources.
        cols: Colours per layer. Defaults to the PFT colours if all layers have one.
        labels: Legend labels per layer.
        y_label: Defaults to the Quantity name and units.
        x_lim: x axis limits.
        y_lim: y axis limits.
        facet: One panel per Source. Otherwise all Sources are drawn in one panel.
        legend_position: "bottom", "top", "left", "right" or "none".
        text_multiplier: Scale all text by this factor.
        plot: If False, return the long table that would be plotted.

    Returns:
        A Figure, the table (Source, Layer, Value, Time and any Lon/Lat) if
        plot is False, or None if the input can't be plotted.

    Raises:
        ValueError: If a layer is not continuous or there is nothing to plot.
        NotImplementedError: For monthly or daily data with negative years.
    """
    fields = sanitise_fields_for_plotting(fields)
    if fields is None:
        return None
    layers = sanitise_layers_for_plotting(fields, layers)
    if layers is None:
        return None
    dims = sanitise_dimensions_for_plotting(fields, require=["Year"])
    if dims is None:
        return None

    final_fields = trim_fields_for_plotting(fields, layers, gridcells=gridcells)
    for field in final_fields:
        for layer in field.layers:
            if field.layer_kind(layer) is not LayerKind.CONTINUOUS:
                raise ValueError("plot_temporal can only plot continuous layers")

    melted = [field.data.melt(id_vars=list(field.dims), var_name="Layer", value_name="Value")
              .assign(Source=field.source.name)
              for field in final_fields]
    data = pd.concat(melted, ignore_index=True) if melted else pd.DataFrame()
    if len(data) == 0:
        raise ValueError("Trying to plot an empty table in plot_temporal. "
                         "Perhaps you are selecting a gridcell that isn't there?")

    quant = fields[0].quant
    pfts = fields[0].source.pft_set

    if title is None or subtitle is None:
        titles = make_plot_title(fields)
        title = titles["title"] if title is None else title
        subtitle = titles["subtitle"] if subtitle is None else subtitle
    if y_label is None:
        y_label = f"{quant.name} ({quant.units})" if quant.name else ""

    all_layers = list(pd.unique(data["Layer"]))
    labels = {layer: labels.get(layer, layer) if labels else layer for layer in all_layers}
    if cols is None:
        new_cols = match_pft_cols(all_layers, pfts)
        if new_cols is not None and len(new_cols) == len(all_layers):
            cols = new_cols
    if cols is None:
        cols = {layer: SOURCE_COLOURS[idx % len(SOURCE_COLOURS)] for idx, layer in enumerate(all_layers)}
    # shade tolerant PFTs get dashed lines
    styles = {pft.id: "--" if pft.shade_tolerance.lower() not in ("no", "none") else "-" for pft in pfts}

    data = _make_time(data)
    spatial = [d for d in ("Lon", "Lat") if d in data.columns]
    data = data[spatial + ["Time", "Source", "Layer", "Value"]]

    if not plot:
        return data

    fontsize = BASE_FONTSIZE * (text_multiplier if text_multiplier is not None else 1.0)
    sources = list(pd.unique(data["Source"]))
    npanels = len(sources) if facet else 1

    fig, axes = plt.subplots(npanels, 1, figsize=(12, 4 * npanels), sharex=True, sharey=True, squeeze=False)

    n_cells = len(data.drop_duplicates(subset=spatial)) if spatial else 1
    for idx, source in enumerate(sources):
        ax = axes[idx if facet else 0, 0]
        source_data = data[data["Source"] == source]
        for layer in all_layers:
            layer_data = source_data[source_data["Layer"] == layer]
            groups = layer_data.groupby(spatial) if spatial else [((), layer_data)]
            for cell, cell_data in groups:
                label = labels[layer]
                if n_cells > 1:
                    label = f"{label} {tuple(cell)}"
                if not facet and len(sources) > 1:
                    label = f"{label} - {source}"
                cell_data = cell_data.sort_values("Time")
                ax.plot(cell_data["Time"], cell_data["Value"],
                        color=cols.get(layer), linestyle=styles.get(layer, "-"),
                        linewidth=1.5, label=label)
        if facet:
            ax.set_title(source, fontsize=fontsize)
        ax.set_ylabel(y_label, fontsize=fontsize)
        ax.tick_params(labelsize=fontsize * 0.9)
        ax.grid(True, alpha=0.3)
        if x_lim is not None:
            ax.set_xlim(x_lim)
        if y_lim is not None:
            ax.set_ylim(y_lim)

    axes[-1, 0].set_xlabel("Time", fontsize=fontsize)

    if legend_position != "none":
        loc, anchor = _LEGEND_POSITIONS.get(legend_position, _LEGEND_POSITIONS["bottom"])
        handles, handle_labels = [], []
        for ax in axes[:, 0]:
            for handle, label in zip(*ax.get_legend_handles_labels()):
                if label not in handle_labels:
                    handles.append(handle)
                    handle_labels.append(label)
        ncol = min(len(handles), 6) if legend_position in ("bottom", "top") else 1
        fig.legend(handles, handle_labels, loc=loc, bbox_to_anchor=anchor,
                   ncol=max(ncol, 1), fontsize=fontsize, frameon=False)

    fig.suptitle(f"{title}\n{subtitle}" if subtitle else title, fontsize=fontsize * 1.4, fontweight='bold')
    plt.tight_layout()
    return fig


# =============================================================================
# MAPS
# =============================================================================

def _grid(data: pd.DataFrame, column: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Lon/Lat centres and a (lat, lon) array of a column."""
    grid = data.pivot_table(index="Lat", columns="Lon", values=column, aggfunc="first", dropna=False)
    return grid.columns.to_numpy(dtype=float), grid.index.to_numpy(dtype=float), grid.to_numpy(dtype=float)


def _draw_map(ax, data: pd.DataFrame, column: str, overlay, title: str, **kwargs):
    lons, lats, values = _grid(data, column)
    mesh = ax.pcolormesh(lons, lats, values, transform=ccrs.PlateCarree(), shading="nearest", **kwargs)
    if overlay is not None:
        ax.add_feature(overlay, linewidth=0.5)
    ax.set_title(title, fontsize=12, fontweight='bold')
    return mesh


def _suffix(ref) -> str:
    return ref.column[len(ref.layer) + 1:]


def plot_spatial_comparison(comparison: Comparison,
                            type: str = "difference",
                            map_overlay: str | None = "coastline") -> plt.Figure | None:
    """Map a Comparison.

    Args:
        comparison: The Comparison to plot, with Lon and Lat dimensions.
        type: "difference" (first minus second dataset), "values" (both
            datasets side by side on a common colour scale) or
            "percentage.difference" (difference relative to the second dataset).
            For categorical comparisons "values" shows the two maps of classes
            and "difference" where they agree.
        map_overlay: "coastline", "borders", "land" or None.

    Returns:
        A Figure, or None if the Comparison can't be mapped.
    """
    comparisons = sanitise_comparisons_for_plotting(comparison)
    if comparisons is None:
        return None
    comparison = comparisons[0]

    if type not in ("difference", "values", "percentage.difference"):
        raise ValueError(f"Unknown spatial comparison plot type '{type}', use 'difference', "
                         f"'values' or 'percentage.difference'")
    data = comparison.data
    if "Lon" not in data.columns or "Lat" not in data.columns:
        warnings.warn(f"Comparison '{comparison.id}' has no Lon/Lat dimensions, can't make a map",
                      PlottingWarning, stacklevel=2)
        return None

    ref1, ref2 = comparison.layer_refs1[0], comparison.layer_refs2[0]
    match comparison.type:
        case ComparisonType.SEASONAL:
            column1 = f"Seasonal Concentration.{_suffix(ref1)}"
            column2 = f"Seasonal Concentration.{_suffix(ref2)}"
            units = ""
        case ComparisonType.RELATIVE_ABUNDANCE:
            if type != "difference":
                warnings.warn(f"Only 'difference' maps (Manhattan metric per gridcell) can be drawn for "
                              f"relative abundance comparisons, not '{type}'", PlottingWarning, stacklevel=2)
                return None
            column1 = column2 = None
            units = ""
        case _:
            column1, column2 = ref1.column, ref2.column
            units = comparison.quant.units

    discrete = comparison.type is ComparisonType.CATEGORICAL
    time_dims = [d for d in ("Year", "Month", "Day") if d in data.columns]
    if time_dims:
        if discrete:
            raise ValueError(f"Can't map a categorical comparison over {time_dims}, select a single time step first")
        data = data.groupby(["Lon", "Lat"], as_index=False).mean(numeric_only=True)

    overlay, projection = make_map_overlay(map_overlay, data["Lon"].unique())
    label1, label2 = comparison.source1.name, comparison.source2.name

    if discrete:
        return _plot_categorical_maps(comparison, data, column1, column2, type, overlay, projection)

    if comparison.type is ComparisonType.RELATIVE_ABUNDANCE:
        values1 = data[comparison.columns1].to_numpy(dtype=float)
        values2 = data[comparison.columns2].to_numpy(dtype=float)
        data = data[["Lon", "Lat"]].assign(MM=np.abs(values1 - values2).sum(axis=1))
        fig, axes = _map_axes(1, projection)
        mesh = _draw_map(axes[0, 0], data, "MM", overlay, f"Manhattan metric {label1} vs. {label2}",
                         cmap='viridis', vmin=0.0, vmax=2.0)
        fig.colorbar(mesh, ax=axes[0, 0], shrink=0.8)
        fig.suptitle(comparison.name, fontsize=14, fontweight='bold')
        plt.tight_layout()
        return fig

    match type:
        case "values":
            fig, axes = _map_axes(2, projection)
            vmin = float(np.nanmin(data[[column1, column2]].to_numpy(dtype=float)))
            vmax = float(np.nanmax(data[[column1, column2]].to_numpy(dtype=float)))
            for ax, column, label in ((axes[0, 0], column1, label1), (axes[0, 1], column2, label2)):
                mesh = _draw_map(ax, data, column, overlay, label,
                                 cmap=comparison.quant.colours, vmin=vmin, vmax=vmax)
                fig.colorbar(mesh, ax=ax, label=units, shrink=0.8)
        case "difference" | "percentage.difference":
            values1 = data[column1].to_numpy(dtype=float)
            values2 = data[column2].to_numpy(dtype=float)
            if type == "difference":
                diff = values1 - values2
                title = f"{label1} - {label2}"
            else:
                with np.errstate(divide="ignore", invalid="ignore"):
                    diff = np.where(values2 != 0, (values1 - values2) / values2 * 100.0, np.nan)
                title = f"({label1} - {label2}) / {label2}"
                units = "%"
            data = data[["Lon", "Lat"]].assign(Difference=diff)
            finite = np.abs(diff[np.isfinite(diff)])
            vmax = float(np.quantile(finite, 0.95)) if finite.size else 1.0
            vmax = vmax if vmax > 0 else 1.0
            fig, axes = _map_axes(1, projection)
            mesh = _draw_map(axes[0, 0], data, "Difference", overlay, title,
                             cmap='RdBu_r', vmin=-vmax, vmax=vmax)
            fig.colorbar(mesh, ax=axes[0, 0], label=units, shrink=0.8)

    fig.suptitle(comparison.name, fontsize=14, fontweight='bold')
    plt.tight_layout()
    return fig


def _map_axes(ncols: int, projection: ccrs.Projection):
    return plt.subplots(1, ncols, figsize=(6 * ncols, 5), subplot_kw={'projection': projection}, squeeze=False)


def _plot_categorical_maps(comparison: Comparison,
                           data: pd.DataFrame,
                           column1: str,
                           column2: str,
                           type: str,
                           overlay,
                           projection: ccrs.Projection) -> plt.Figure | None:
    label1, label2 = comparison.source1.name, comparison.source2.name
    match type:
        case "values":
            classes = sorted(set(data[column1].dropna().astype(str)) | set(data[column2].dropna().astype(str)))
            pfts = tuple(comparison.source1.pft_set) + tuple(comparison.source2.pft_set)
            colours = match_pft_cols(classes, pfts)
            if not colours or len(colours) != len(classes):
                colours = {c: SOURCE_COLOURS[idx % len(SOURCE_COLOURS)] for idx, c in enumerate(classes)}
            cmap = ListedColormap([colours[c] for c in classes])
            codes = {c: i for i, c in enumerate(classes)}

            fig, axes = _map_axes(2, projection)
            for ax, column, label in ((axes[0, 0], column1, label1), (axes[0, 1], column2, label2)):
                coded = data[["Lon", "Lat"]].assign(Code=data[column].astype(object).map(
                    lambda v: codes.get(str(v), np.nan) if pd.notna(v) else np.nan))
                _draw_map(ax, coded, "Code", overlay, label, cmap=cmap, vmin=-0.5, vmax=len(classes) - 0.5)
            fig.legend(handles=[Patch(color=colours[c], label=c) for c in classes],
                       loc="lower center", ncol=min(len(classes), 6), frameon=False)
        case "difference":
            agree = (data[column1].astype(object) == data[column2].astype(object)).astype(float)
            agree[data[column1].isna() | data[column2].isna()] = np.nan
            fig, axes = _map_axes(1, projection)
            _draw_map(axes[0, 0], data[["Lon", "Lat"]].assign(Agreement=agree), "Agreement", overlay,
                      f"Agreement {label1} vs. {label2}",
                      cmap=ListedColormap(["red", "green"]), vmin=-0.5, vmax=1.5)
            fig.legend(handles=[Patch(color="green", label="Agree"), Patch(color="red", label="Disagree")],
                       loc="lower center", ncol=2, frameon=False)
        case _:
            warnings.warn(f"'{type}' maps can't be drawn for categorical comparisons",
                          PlottingWarning, stacklevel=3)
            return None

    fig.suptitle(comparison.name, fontsize=14, fontweight='bold')
    plt.tight_layout()
    return fig
