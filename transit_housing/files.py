"""
Reading input layers and writing pipeline outputs.

Input layers are read with ``geopandas.read_file`` from the directory named
in the run's ``PipelineConfig``. Outputs are a GeoParquet of the enriched
properties, CSV tables and a plain-text summary.
"""

import os
from pathlib import Path

import pandas as pd
import geopandas as gpd

from transit_housing.errors import InsufficientData


def load_layers(config, verbose=True):
    """
    Read every configured vector layer.

    Parameters
    ----------
    config : PipelineConfig
        Supplies the data directory and layer file names.
    verbose : bool, optional
        Print progress. Default True.

    Returns
    -------
    dict of str -> GeoDataFrame

    Raises
    ------
    FileNotFoundError
        If any layer file does not exist. A missing layer aborts the run.
    """
    layers = {}
    for name in config.layer_files:
        path = config.layer_path(name)
        if not path.exists():
            raise FileNotFoundError(
                f"Input layer '{name}' not found: {path}\n"
                f"Check data_dir and layer_files in the pipeline configuration."
            )
        if verbose:
            print(f"Loading {name} from {path}...")
        layers[name] = gpd.read_file(path)
        if verbose:
            print(f"  Loaded {len(layers[name]):,} features")
    return layers


def load_sales(config, verbose=True):
    """Read the sales table (CSV or parquet) with the parcel key kept as text."""
    path = config.sales_path
    if not path.exists():
        raise FileNotFoundError(f"Sales table not found: {path}")

    if path.suffix == '.parquet':
        sales = pd.read_parquet(path)
    else:
        sales = pd.read_csv(path, dtype={config.parcel_id_column: 'string'}, low_memory=False)
    if verbose:
        print(f"Loaded {len(sales):,} sales from {path}")
    return sales


def save_summary(result, output_path):
    """
    Write a plain-text summary of cohort sizes, model fits and comparisons.

    Parameters
    ----------
    result : PipelineResult
    output_path : str or Path
    """
    output_path = Path(output_path)

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write("Transit-Proximity Housing Cohort Analysis\n")
        f.write("="*80 + "\n\n")
        f.write(f"Canonical CRS: {result.crs}\n")
        f.write(f"Properties in working set: {len(result.features):,}\n\n")

        f.write("Cohorts:\n")
        for name, cohort in result.cohorts.items():
            f.write(f"  {name}: {len(cohort):,}\n")
        f.write("\n")

        f.write("Models:\n")
        for name, model in result.models.items():
            if isinstance(model, InsufficientData):
                f.write(f"  {name}: {model.message}\n")
            else:
                f.write(f"  {name}: R² = {model.r_squared:.4f}, "
                        f"adj. R² = {model.adj_r_squared:.4f}, "
                        f"F = {model.f_statistic:.2f} (p = {model.f_pvalue:.4e})\n")
        f.write("\n")

        f.write("Mean comparisons (Welch t-test):\n")
        for test in result.tests:
            means = ", ".join(f"{k} = {v}" for k, v in test.display_means().items())
            f.write(f"  {test.variable}: {means}, p = {test.p_value:.4e}\n")


def write_outputs(result, output_dir, verbose=True):
    """
    Write the enriched features, result tables and summary to ``output_dir``.

    Returns
    -------
    list of str
        Paths of the written files.
    """
    output_dir = Path(output_dir)
    os.makedirs(output_dir, exist_ok=True)
    written = []

    features_path = output_dir / "property_features.parquet"
    result.features.to_parquet(features_path, index=False)
    written.append(features_path)

    for name, table in result.regression_tables.items():
        path = output_dir / f"regression_{name}.csv"
        table.to_frame().to_csv(path, index=False)
        written.append(path)

    fit_path = output_dir / "fit_statistics.csv"
    result.fit_statistics.to_frame().to_csv(fit_path, index=False)
    written.append(fit_path)

    comparison_path = output_dir / "cohort_comparison.csv"
    result.comparison.to_frame().to_csv(comparison_path, index=False)
    written.append(comparison_path)

    summary_path = output_dir / "summary.txt"
    save_summary(result, summary_path)
    written.append(summary_path)

    if verbose:
        for path in written:
            print(f"  Saved {path}")
    return [str(path) for path in written]
