"""Statistical metrics for comparing two sets of layers in a merged table.

Every engine takes the merged table, the (ordered) columns of the first and of
the second dataset and an optional mapping of custom metrics, and returns a
dict of metric name -> value. The first layers are the *modelled* values and
the second the *observed* ones: the normalised metrics (NME, NMSE, Nash-Sutcliffe)
are normalised by the observations and are therefore not symmetric.

Rows with a missing value in any of the compared columns are left out.
"""

from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from compare_errors import ArgumentError
from compare_jit import (
    cohens_kappa,
    manhattan_metric,
    mean_phase_difference,
    per_class_kappa,
    seasonal_concentration_phase,
    squared_chord_distance,
)

CustomMetric = Callable[[pd.DataFrame, List[str], List[str]], Any]

MONTHS = list(range(1, 13))


def _safe_div(num: float, den: float) -> float:
    return float(num / den) if den != 0 else np.nan


def _complete_rows(x: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    return x.dropna(subset=list(columns))


def _check_pairs(layers1: Sequence[str], layers2: Sequence[str], single: bool = False):
    if len(layers1) != len(layers2):
        raise ArgumentError(f"Got {len(layers1)} layers to compare against {len(layers2)}")
    if single and len(layers1) != 1:
        raise ArgumentError(f"Expected a single layer on each side, got {list(layers1)} and {list(layers2)}")


def error_metrics(mod: np.ndarray, obs: np.ndarray) -> Dict[str, float]:
    """Pointwise error statistics of modelled against observed values.

    NME/NMSE follow Kelley et al. (2013): step 1 on the raw values, step 2 with
    the means removed, step 3 with means removed and values scaled by their
    mean absolute (NME) or standard (NMSE) deviation.
    """
    mod = np.asarray(mod, dtype=np.float64)
    obs = np.asarray(obs, dtype=np.float64)
    n = mod.size
    if n == 0:
        empty: Dict[str, float] = {"n": 0}
        empty.update({name: np.nan for name in ("bias", "MAE", "RMSE", "NME", "NME_2", "NME_3",
                                                "NMSE", "NMSE_2", "NMSE_3", "r", "r2", "r2_eff",
                                                "sd_ratio")})
        return empty

    diff = mod - obs
    obs_anom = obs - obs.mean()
    mod_anom = mod - mod.mean()

    nme_den = np.abs(obs_anom).sum()
    nmse_den = (obs_anom ** 2).sum()

    mod_mad, obs_mad = np.abs(mod_anom).mean(), np.abs(obs_anom).mean()
    mod_sd, obs_sd = mod.std(), obs.std()

    if mod_mad > 0 and obs_mad > 0:
        mod3, obs3 = mod_anom / mod_mad, obs_anom / obs_mad
        nme_3 = _safe_div(np.abs(mod3 - obs3).sum(), np.abs(obs3).sum())
    else:
        nme_3 = np.nan
    if mod_sd > 0 and obs_sd > 0:
        mod3, obs3 = mod_anom / mod_sd, obs_anom / obs_sd
        nmse_3 = _safe_div(((mod3 - obs3) ** 2).sum(), (obs3 ** 2).sum())
        r = float(sp_stats.pearsonr(mod, obs)[0]) if n > 1 else np.nan
    else:
        nmse_3 = np.nan
        r = np.nan

    nmse = _safe_div((diff ** 2).sum(), nmse_den)

    return {
        "n": int(n),
        "bias": float(diff.mean()),
        "MAE": float(np.abs(diff).mean()),
        "RMSE": float(np.sqrt((diff ** 2).mean())),
        "NME": _safe_div(np.abs(diff).sum(), nme_den),
        "NME_2": _safe_div(np.abs(mod_anom - obs_anom).sum(), nme_den),
        "NME_3": nme_3,
        "NMSE": nmse,
        "NMSE_2": _safe_div(((mod_anom - obs_anom) ** 2).sum(), nmse_den),
        "NMSE_3": nmse_3,
        "r": r,
        "r2": r ** 2 if not np.isnan(r) else np.nan,
        "r2_eff": 1.0 - nmse if not np.isnan(nmse) else np.nan,
        "sd_ratio": _safe_div(mod_sd, obs_sd),
    }


def apply_custom_metrics(additional: Mapping[str, CustomMetric] | None,
                         x: pd.DataFrame,
                         layers1: Sequence[str],
                         layers2: Sequence[str]) -> Dict[str, Any]:
    """Evaluate user supplied metrics.

    A metric returning a mapping is flattened to "<metric>.<key>" entries.
    """
    results: Dict[str, Any] = {}
    if not additional:
        return results
    for name, func in additional.items():
        value = func(x, list(layers1), list(layers2))
        if isinstance(value, Mapping):
            for key, item in value.items():
                results[f"{name}.{key}"] = item
        else:
            results[name] = value
    return results


def continuous_comparison(x: pd.DataFrame,
                          layers1: Sequence[str],
                          layers2: Sequence[str],
                          additional: Mapping[str, CustomMetric] | None = None,
                          verbose: bool = False) -> Dict[str, Any]:
    """Error statistics between two continuous layers.

    Returns:
        dict with n, bias, MAE, RMSE, NME(_2, _3), NMSE(_2, _3), r, r2,
        r2_eff (Nash-Sutcliffe efficiency) and sd_ratio, plus custom metrics.
    """
    _check_pairs(layers1, layers2, single=True)
    data = _complete_rows(x, [*layers1, *layers2])
    stats = error_metrics(data[layers1[0]].to_numpy(dtype=np.float64),
                          data[layers2[0]].to_numpy(dtype=np.float64))
    stats.update(apply_custom_metrics(additional, data, layers1, layers2))
    if verbose:
        print_stats_summary(stats, f"{layers1[0]} vs {layers2[0]}")
    return stats


def categorical_comparison(x: pd.DataFrame,
                           layers1: Sequence[str],
                           layers2: Sequence[str],
                           additional: Mapping[str, CustomMetric] | None = None,
                           verbose: bool = False) -> Dict[str, Any]:
    """Agreement between two categorical layers.

    Returns:
        dict with n, n_agree, n_disagree, agreement (fraction of matching
        points), kappa (Cohen's kappa), per_class_kappa (class -> kappa) and
        confusion (DataFrame, rows are the first layer's classes), plus custom
        metrics.
    """
    _check_pairs(layers1, layers2, single=True)
    data = _complete_rows(x, [*layers1, *layers2])
    values1 = data[layers1[0]].astype(object).to_numpy()
    values2 = data[layers2[0]].astype(object).to_numpy()

    classes = sorted(set(values1.tolist()) | set(values2.tolist()), key=str)
    index = pd.Index(classes)
    confusion = np.zeros((len(classes), len(classes)), dtype=np.float64)
    np.add.at(confusion, (index.get_indexer(values1), index.get_indexer(values2)), 1.0)

    n = int(len(data))
    n_agree = int(np.trace(confusion))
    stats: Dict[str, Any] = {
        "n": n,
        "n_agree": n_agree,
        "n_disagree": n - n_agree,
        "agreement": _safe_div(n_agree, n),
        "kappa": float(cohens_kappa(confusion)),
        "per_class_kappa": dict(zip(classes, per_class_kappa(confusion).tolist())),
        "confusion": pd.DataFrame(confusion.astype(np.int64), index=classes, columns=classes),
    }
    stats.update(apply_custom_metrics(additional, data, layers1, layers2))
    if verbose:
        print_stats_summary(stats, f"{layers1[0]} vs {layers2[0]}")
    return stats


def _monthly_matrix(x: pd.DataFrame, keys: List[str], layer: str) -> pd.DataFrame:
    """One row per gridcell (and year), one column per month."""
    wide = x.set_index(keys + ["Month"])[layer].unstack("Month")
    return wide.reindex(columns=MONTHS)


def seasonal_comparison(x: pd.DataFrame,
                        layers1: Sequence[str],
                        layers2: Sequence[str],
                        additional: Mapping[str, CustomMetric] | None = None,
                        verbose: bool = False) -> Tuple[Dict[str, Any], pd.DataFrame]:
    """Compare seasonal concentration and phase of two monthly layers.

    Returns:
        A tuple of the stats (the continuous metrics of the concentrations,
        prefixed "C_", and MPD, the mean phase difference) and a table with one
        row per gridcell (and year) and columns C_1, C_2, P_1, P_2.
    """
    _check_pairs(layers1, layers2, single=True)
    if "Month" not in x.columns:
        raise ArgumentError("Seasonal comparison needs a 'Month' column")
    keys = [d for d in ("Lon", "Lat", "Year") if d in x.columns]
    if not keys:
        raise ArgumentError("Seasonal comparison needs at least one of Lon, Lat or Year besides Month")

    wide1 = _monthly_matrix(x, keys, layers1[0])
    wide2 = _monthly_matrix(x, keys, layers2[0]).reindex(wide1.index)
    conc1, phase1 = seasonal_concentration_phase(wide1.to_numpy(dtype=np.float64, copy=True))
    conc2, phase2 = seasonal_concentration_phase(wide2.to_numpy(dtype=np.float64, copy=True))

    table = pd.DataFrame({"C_1": conc1, "C_2": conc2, "P_1": phase1, "P_2": phase2},
                         index=wide1.index).reset_index()

    complete = table.dropna(subset=["C_1", "C_2"])
    stats: Dict[str, Any] = {f"C_{name}": value
                             for name, value in error_metrics(complete["C_1"].to_numpy(),
                                                              complete["C_2"].to_numpy()).items()}
    stats["MPD"] = float(mean_phase_difference(np.ascontiguousarray(phase1), np.ascontiguousarray(phase2)))
    stats.update(apply_custom_metrics(additional, _complete_rows(x, [*layers1, *layers2]), layers1, layers2))
    if verbose:
        print_stats_summary(stats, f"Seasonality {layers1[0]} vs {layers2[0]}")
    return stats, table


def proportions_comparison(x: pd.DataFrame,
                           layers1: Sequence[str],
                           layers2: Sequence[str],
                           additional: Mapping[str, CustomMetric] | None = None,
                           verbose: bool = False) -> Dict[str, Any]:
    """Distances between two sets of relative abundances (e.g. PFT fractions).

    Returns:
        dict with n, MM (Manhattan metric) and SCD (squared chord distance),
        both averaged over points, plus custom metrics.
    """
    _check_pairs(layers1, layers2)
    data = _complete_rows(x, [*layers1, *layers2])
    values1 = data[list(layers1)].to_numpy(dtype=np.float64, copy=True)
    values2 = data[list(layers2)].to_numpy(dtype=np.float64, copy=True)
    stats: Dict[str, Any] = {
        "n": int(len(data)),
        "MM": float(manhattan_metric(values1, values2)),
        "SCD": float(squared_chord_distance(values1, values2)),
    }
    stats.update(apply_custom_metrics(additional, data, layers1, layers2))
    if verbose:
        print_stats_summary(stats, f"Relative abundance {list(layers1)} vs {list(layers2)}")
    return stats


def print_stats_summary(stats: Mapping[str, Any], title: str):
    """Print a summary of comparison statistics."""
    print("\n" + "=" * 70)
    print(f"COMPARISON STATISTICS: {title}")
    print("=" * 70)
    for name, value in stats.items():
        if isinstance(value, pd.DataFrame):
            print(f"  {name}:")
            print("    " + value.to_string().replace("\n", "\n    "))
        elif isinstance(value, Mapping):
            print(f"  {name}:")
            for key, item in value.items():
                print(f"    {str(key):23s}: {_format_value(item)}")
        else:
            print(f"  {name:25s}: {_format_value(value)}")
    print("=" * 70)


def _format_value(value: Any) -> str:
    if isinstance(value, (float, np.floating)):
        return f"{value:.4f}"
    return str(value)
