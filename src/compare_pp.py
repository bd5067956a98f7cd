# Pre-processing utilities: locate netCDF files in the dataset registry and
# read them as Fields, selecting and aggregating years on the way.

from pathlib import Path
from typing import Dict

import xarray as xr

from compare_utils import COMPARE_CACHE_DIR, ensure_cache_dir, get_varname
from field import Field, Quantity, Source
from field_ops import aggregate_years


def get_field_path(registry: Dict[str, Dict[str, Path]], source: str, variable: str) -> Path:
    """Get the path to a dataset file.

    Args:
        registry (dict): Nested dictionary {source: {variable: path}}, built in compare_utils.
        source (str): Source (directory) name.
        variable (str): Variable name prefix of the file.

    Returns:
        a Path to the dataset file.

    Raises:
        ValueError: If the source or variable is not found.
    """
    assert isinstance(registry, dict)

    if source not in registry:
        raise ValueError(f"Source '{source}' not found. Available: {list(registry.keys())}")
    if variable not in registry[source]:
        raise ValueError(f"Variable '{variable}' not found in source '{source}'. "
                         f"Available: {list(registry[source].keys())}")
    return registry[source][variable]


def cache_filename(source_id: str, variable: str,
                   first_year: int | None = None,
                   last_year: int | None = None,
                   year_aggregate_method: str | None = None) -> str:
    years = f"{first_year if first_year is not None else 'start'}-{last_year if last_year is not None else 'end'}"
    method = year_aggregate_method or "none"
    return f"{variable}_{source_id}_{years}_{method}.nc"


def get_field(path: str | Path,
              variable: str,
              id: str,
              source: Source,
              quant: Quantity,
              layer_name: str | None = None,
              first_year: int | None = None,
              last_year: int | None = None,
              year_aggregate_method: str | None = None,
              cache_dir: str | Path | None = None,
              use_cache: bool = True) -> Field:
    """Read a variable from a netCDF file as a Field.

    Args:
        path: netCDF file.
        variable: Variable to read.
        id: Id of the new Field.
        source: Source of the data.
        quant: Quantity of the data.
        layer_name: Name of the layer in the Field. Defaults to ``variable``.
        first_year: First year to keep (inclusive).
        last_year: Last year to keep (inclusive).
        year_aggregate_method: "mean" or "sum" to collapse the Year dimension.
        cache_dir: If given, the pre-processed Field is stored there as netCDF
            and reused on later calls.
        use_cache: If False, an existing cached file is ignored and rewritten.

    Returns:
        The Field.

    Raises:
        RuntimeError: If the dataset fails to open.
    """
    layer_name = variable if layer_name is None else layer_name
    cached_filepath = None
    if cache_dir is not None:
        cached_filepath = Path(cache_dir) / cache_filename(source.id, layer_name, first_year,
                                                           last_year, year_aggregate_method)
        if use_cache and cached_filepath.exists():
            print(f"Using cached file {cached_filepath}")
            ds = _open_dataset(cached_filepath)
            return Field.from_xarray(ds, id, source, quant, layers=[layer_name],
                                     year_aggregate_method=year_aggregate_method or "none")

    ds = _open_dataset(path)
    ds = ds[[variable]].rename({variable: layer_name})
    field = Field.from_xarray(ds, id, source, quant)

    if first_year is not None or last_year is not None:
        field = select_years(field, first_year, last_year)
    if year_aggregate_method is not None:
        field = aggregate_years(field, year_aggregate_method)

    if cached_filepath is not None:
        ensure_cache_dir(cached_filepath.parent)
        field.to_xarray().to_netcdf(cached_filepath)
    return field


def load_field(registry: Dict[str, Dict[str, Path]],
               source: Source,
               variable: str,
               quant: Quantity,
               first_year: int | None = None,
               last_year: int | None = None,
               year_aggregate_method: str | None = None,
               cache_dir: str | Path | None = COMPARE_CACHE_DIR,
               use_cache: bool = True) -> Field:
    """Look up ``variable`` of ``source`` in the registry and read it as a Field.

    The file variable is found through the variable name mapping of compare_utils;
    the layer keeps the requested name. The Field id is the source id.
    """
    file_variable = get_varname(variable)
    try:
        path = get_field_path(registry, source.id, file_variable)
    except ValueError:
        if file_variable == variable:
            raise
        path = get_field_path(registry, source.id, variable)
        file_variable = variable

    print(f"Loading {variable} from {source.name} ({path})")
    return get_field(path, file_variable, source.id, source, quant,
                     layer_name=variable,
                     first_year=first_year,
                     last_year=last_year,
                     year_aggregate_method=year_aggregate_method,
                     cache_dir=cache_dir,
                     use_cache=use_cache)


def select_years(field: Field, first_year: int | None = None, last_year: int | None = None) -> Field:
    """Keep the rows of ``field`` between first_year and last_year (inclusive)."""
    if "Year" not in field.dims:
        raise ValueError(f"Field '{field.id}' has no Year dimension")
    keep = field.data["Year"].notna()
    if first_year is not None:
        keep &= field.data["Year"] >= first_year
    if last_year is not None:
        keep &= field.data["Year"] <= last_year
    return field.with_data(field.data.loc[keep])


def _open_dataset(path: str | Path) -> xr.Dataset:
    """Read a netCDF file into memory and release the file handle."""
    try:
        with xr.open_dataset(path) as ds:
            return ds.load()
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Failed to open dataset {path}: {e}") from e
