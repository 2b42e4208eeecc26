"""
Script 02: Plot Results

Renders figures from the enriched property table written by script 01.

OUTPUT:
- results/figures/price_map.png
- results/figures/cohort_comparison.png
"""

import os
import geopandas as gpd
from transit_housing import config
from transit_housing.plotting import plot_price_map, plot_comparison_boxplots

print("="*80)
print("SCRIPT 02: Plot Results")
print("="*80)

features_path = config.RESULTS_DIR / "property_features.parquet"
if not features_path.exists():
    print(f"\nERROR: Feature table not found: {features_path}")
    print("Please run scripts/01_build_features.py first")
    exit(1)

features = gpd.read_parquet(features_path)
print(f"Loaded {len(features):,} properties")

os.makedirs(config.RESULTS_FIGURES, exist_ok=True)

plot_price_map(features, config.RESULTS_FIGURES / "price_map.png")
plot_comparison_boxplots(
    features,
    config.COMPARISON_VARIABLES,
    config.RESULTS_FIGURES / "cohort_comparison.png",
)

print("\n" + "="*80)
print("PLOTTING COMPLETE")
print("="*80)
