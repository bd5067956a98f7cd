"""Compare a variable of two sources (model runs or reference datasets).

Usage:
    python run_comparison.py cveg CAETE_hist Saatchi2011 --first-year 2000 --last-year 2010 --aggregate mean

The sources are directories of the data directory set in the configuration
(see config.py); the comparison options (keep_all1, match_nas, dec_places, ...)
are read from the [compare] section.
"""

import argparse
from pathlib import Path
from typing import Any, Dict, List

import matplotlib
import matplotlib.pyplot as plt

from compare_layers import Comparison, ComparisonType, compare_layers
from compare_plots import plot_spatial_comparison, plot_temporal
from compare_pp import load_field
from compare_utils import build_registry
from config import Config, dec_places_from_config, fetch_config
from field import Field, Quantity, Source, get_dim_info


def _spatial_mean(field: Field) -> Field:
    """Average a Field over its gridcells, keeping the time dimensions."""
    time_dims = [d for d in field.dims if d not in ("Lon", "Lat")]
    data = field.data.groupby(time_dims, as_index=False)[field.layers].mean()
    return field.with_data(data)


def _make_figures(comparison: Comparison, field1: Field, field2: Field, cfg: Config) -> Dict[str, plt.Figure]:
    figures = {}
    dims = get_dim_info(field1)
    time_dims = [d for d in dims if d in ("Year", "Month", "Day")]
    # categorical maps need a single time step
    if "Lon" in dims and "Lat" in dims and not (comparison.type is ComparisonType.CATEGORICAL and time_dims):
        plot_types = ["difference", "values"]
        if comparison.type is ComparisonType.CONTINUOUS:
            plot_types.append("percentage.difference")
        for plot_type in plot_types:
            fig = plot_spatial_comparison(comparison, type=plot_type, map_overlay=cfg.plotting.map_overlay)
            if fig is not None:
                figures[f"map_{plot_type.replace('.', '_')}"] = fig
    if "Year" in dims and comparison.type is ComparisonType.CONTINUOUS:
        fields = [_spatial_mean(f) for f in (field1, field2)] if "Lon" in dims else [field1, field2]
        fig = plot_temporal(fields, facet=False)
        if fig is not None:
            figures["timeseries"] = fig
    return figures


def run_comparison(variable: str,
                   source1: str,
                   source2: str,
                   variable2: str | None = None,
                   first_year: int | None = None,
                   last_year: int | None = None,
                   year_aggregate_method: str | None = None,
                   do_seasonality: bool = False,
                   output_dir: str | Path | None = None,
                   make_plots: bool = True,
                   cfg: Config | None = None) -> Dict[str, Any]:
    """Load a variable from two sources, compare them and save the plots.

    Args:
        variable: Variable to compare (e.g. "cveg", "gpp").
        source1: Source of the first (modelled) dataset.
        source2: Source of the second (observed) dataset.
        variable2: Name of the variable in the second source, if different.
        first_year: First year to compare.
        last_year: Last year to compare.
        year_aggregate_method: "mean" or "sum" to compare the aggregate over years.
        do_seasonality: Compare seasonal concentration and phase of monthly data.
        output_dir: Directory for the figures. Defaults to the configured output_dir.
        make_plots: Draw and save the figures.
        cfg: Configuration. Defaults to fetch_config().

    Returns:
        Dictionary with:
            - 'comparison': the Comparison
            - 'stats': its statistics
            - 'saved': paths of the saved figures
    """
    cfg = fetch_config() if cfg is None else cfg
    variable2 = variable if variable2 is None else variable2

    print(f"\n{'='*70}")
    print(f"RUNNING COMPARISON: {variable.upper()}")
    print(f"{source1} vs. {source2}")
    print(f"{'='*70}\n")

    registry = build_registry(cfg.data.data_dir)
    quant = Quantity(id=variable, name=variable)
    fields = []
    for source_id, var in ((source1, variable), (source2, variable2)):
        field = load_field(registry, Source(id=source_id, name=source_id, dir=str(Path(cfg.data.data_dir) / source_id)),
                           var, quant,
                           first_year=first_year,
                           last_year=last_year,
                           year_aggregate_method=year_aggregate_method,
                           cache_dir=cfg.data.cache_dir)
        fields.append(field)
    field1, field2 = fields

    comparison = compare_layers(field1, field2,
                                layers1=variable,
                                layers2=variable2,
                                do_seasonality=do_seasonality,
                                keep_all1=cfg.compare.keep_all1,
                                keep_all2=cfg.compare.keep_all2,
                                override_quantity=cfg.compare.override_quantity,
                                verbose=cfg.compare.verbose,
                                match_nas=cfg.compare.match_nas,
                                show_stats=cfg.compare.show_stats,
                                dec_places=dec_places_from_config(cfg))

    saved: List[Path] = []
    if make_plots:
        print("\n" + "-"*70)
        print("PLOTS")
        print("-"*70)
        output_path = Path(cfg.plotting.output_dir if output_dir is None else output_dir) / variable
        output_path.mkdir(parents=True, exist_ok=True)
        for name, fig in _make_figures(comparison, field1, field2, cfg).items():
            filename = output_path / f"{variable}_{source1}_{source2}_{name}.png"
            fig.savefig(filename, dpi=cfg.plotting.dpi, bbox_inches='tight')
            plt.close(fig)
            saved.append(filename)
            print(f"Saved {filename}")

    return {
        'comparison': comparison,
        'stats': dict(comparison.stats),
        'saved': saved,
    }


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compare a variable of two DGVM outputs or reference datasets")
    parser.add_argument("variable", help="Variable to compare")
    parser.add_argument("source1", help="First (modelled) source")
    parser.add_argument("source2", help="Second (observed) source")
    parser.add_argument("--variable2", default=None, help="Variable name in the second source, if different")
    parser.add_argument("--first-year", type=int, default=None)
    parser.add_argument("--last-year", type=int, default=None)
    parser.add_argument("--aggregate", choices=["mean", "sum"], default=None,
                        help="Aggregate over years before comparing")
    parser.add_argument("--seasonality", action="store_true", help="Compare seasonal concentration and phase")
    parser.add_argument("--config", type=Path, default=None, help="TOML configuration file")
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--no-plots", action="store_true")
    return parser


def main(argv: List[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    matplotlib.use("Agg")
    run_comparison(args.variable, args.source1, args.source2,
                   variable2=args.variable2,
                   first_year=args.first_year,
                   last_year=args.last_year,
                   year_aggregate_method=args.aggregate,
                   do_seasonality=args.seasonality,
                   output_dir=args.output_dir,
                   make_plots=not args.no_plots,
                   cfg=fetch_config(args.config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
