"""Configuration for comparison runs.

The configuration is a TOML file layered over the defaults below. Sections and
keys are accessible as attributes:

    cfg = fetch_config()
    cfg.compare.dec_places
    cfg.data.data_dir

The file is looked up in this order: the path given to fetch_config, the
DGVM_COMPARE_CONFIG environment variable, ./compare.toml. If none exists the
defaults are used.
"""

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict

CONFIG_ENV_VAR = "DGVM_COMPARE_CONFIG"
DEFAULT_CONFIG_FILE = Path("compare.toml")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "compare": {
        "keep_all1": False,
        "keep_all2": False,
        "match_nas": False,
        "override_quantity": False,
        "show_stats": True,
        "verbose": False,
        "dec_places": -1,   # -1: no rounding of coordinates
    },
    "data": {
        "data_dir": "./data",
        "cache_dir": "./compare_cache",
    },
    "plotting": {
        "output_dir": "./outputs",
        "dpi": 150,
        "map_overlay": "coastline",   # coastline, borders, land or none
    },
}


class Config:
    """Nested, read-only view of a configuration mapping."""

    def __init__(self, data: Dict[str, Any]):
        self._data = data

    def __getattr__(self, name: str) -> Any:
        try:
            value = self._data[name]
        except KeyError:
            raise AttributeError(f"No configuration entry '{name}'") from None
        return Config(value) if isinstance(value, dict) else value

    def __getitem__(self, name: str) -> Any:
        return self.__getattr__(name)

    def __contains__(self, name: str) -> bool:
        return name in self._data

    def get(self, name: str, default: Any = None) -> Any:
        return self.__getattr__(name) if name in self._data else default

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"Config({self._data!r})"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def fetch_config(path: str | Path | None = None) -> Config:
    """Load the configuration.

    Args:
        path: TOML file to read. If None, DGVM_COMPARE_CONFIG and then
            ./compare.toml are tried.

    Returns:
        A Config with the file's entries layered over the defaults.

    Raises:
        FileNotFoundError: If an explicitly given path does not exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    if path is not None:
        config_file = Path(path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config not found: {config_file}")
    elif os.environ.get(CONFIG_ENV_VAR):
        config_file = Path(os.environ[CONFIG_ENV_VAR])
        if not config_file.exists():
            raise FileNotFoundError(f"Config not found: {config_file} (from {CONFIG_ENV_VAR})")
    else:
        config_file = DEFAULT_CONFIG_FILE

    if not config_file.exists():
        return Config(copy.deepcopy(DEFAULTS))

    with config_file.open("rb") as f:
        data = tomllib.load(f)
    return Config(_merge(DEFAULTS, data))


def dec_places_from_config(cfg: Config) -> int | None:
    """Translate the configured dec_places (-1 = no rounding) for compare_layers."""
    dec_places = cfg.compare.dec_places
    return None if dec_places is None or dec_places < 0 else int(dec_places)
