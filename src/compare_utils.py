import os
import warnings

from pathlib import Path
from typing import Dict

from compare_errors import LayerCheckWarning
from config import Config, fetch_config

cfg: Config = fetch_config()

# Model outputs often use non-standard variable names. Map common names to them.
# Add more variable name mappings as needed.
variable_names = {
    "gpp": "photo",
    "et": "evapm",
    }

get_varname = lambda var: variable_names.get(var, var) # Return mapped name or original if not found

# ----------------------------------------------------------------


# Construct a dictionary of available datasets. DATA_DIR holds one directory per
# source (model run or reference dataset) with one netCDF file per variable.
# Files are named <variable>[-<anything>].nc
# Expected directory structure:
# DATA_DIR/
# ├── CAETE_hist/
# │   ├── cveg-pan_amazon_hist-20240101.nc
# │   └── photo.nc
# └── GBAF/
#     └── gpp.nc
#
# Resulting structure: {source: {variable: path}}
def build_registry(data_dir: str | Path | None = None) -> Dict[str, Dict[str, Path]]:
    """Build a nested dictionary of available datasets by source and variable."""
    data_dir = Path(cfg.data.data_dir if data_dir is None else data_dir)
    registry: Dict[str, Dict[str, Path]] = {}
    if not data_dir.is_dir():
        return registry

    for p in sorted(data_dir.glob("*/*.nc")):
        source = p.parent.name
        variable = p.stem.split("-")[0]
        if variable in registry.setdefault(source, {}):
            warnings.warn(f"Duplicate variable '{variable}' in {p.parent}, "
                          f"keeping {registry[source][variable].name}", LayerCheckWarning)
            continue
        registry[source][variable] = p
    return registry


def write_registry_table(registry: Dict[str, Dict[str, Path]], filename: str | Path = "datasets.md") -> Path:
    """Write a markdown table listing the sources and variables in a registry."""
    filename = Path(filename)
    with open(filename, "w") as f:
        f.write("# Datasets\n\n")
        f.write("| Source | Variable | Filename |\n")
        f.write("|--------|----------|----------|\n")
        for source, files in registry.items():
            for variable, filepath in files.items():
                f.write(f"| {source} | {variable} | {filepath.name} |\n")
    return filename
# ----------------------------------------------------------------

# Preprocessed fields (year selection, aggregation) are stored as netCDF
# in the cache directory and reused on the next run.
COMPARE_CACHE_DIR = Path(cfg.data.cache_dir)
ensure_cache_dir = lambda cache_dir=COMPARE_CACHE_DIR: os.makedirs(cache_dir, exist_ok=True)
clean_cache = lambda cache_dir=COMPARE_CACHE_DIR: [f.unlink() for f in Path(cache_dir).glob("*") if f.is_file()]
