"""
Script 01: Build Features and Fit Cohort Models

Derives the property feature table from the raw layers and sales table, then
fits the per-cohort regressions and runs the cohort mean comparisons.

Workflow:
1. Load property, transit, crime and job-proximity layers and the sales table
2. Reproject to the transit layer's CRS
3. Keep single-family properties near transit
4. Compute distances, job access and crime density features
5. Partition into year-built cohorts, fit models, run Welch t-tests
6. Save the enriched features, result tables and summary

BEFORE RUNNING:
Place the layers listed in config.LAYER_FILES and config.SALES_FILE in
data/raw/.

OUTPUT:
- results/property_features.parquet
- results/regression_{COHORT}.csv
- results/fit_statistics.csv
- results/cohort_comparison.csv
- results/summary.txt

Then run: python scripts/02_plot_results.py
"""

from transit_housing.config import PipelineConfig
from transit_housing.errors import InsufficientData
from transit_housing.files import load_layers, load_sales, write_outputs
from transit_housing.pipeline import run_pipeline

print("="*80)
print("SCRIPT 01: Build Features and Fit Cohort Models")
print("="*80)

config = PipelineConfig().validate()
print(f"\nData directory: {config.data_dir}")
print(f"Cohorts: {', '.join(name for name, _, _ in config.cohorts)}")
print(f"Empty secondary filter policy: {config.empty_secondary_filter}")

# Step 1: Load inputs
print("\n" + "="*80)
print("STEP 1: Loading Layers")
print("="*80)

layers = load_layers(config)
sales = load_sales(config)

# Step 2: Run pipeline
print("\n" + "="*80)
print("STEP 2: Running Pipeline")
print("="*80)

result = run_pipeline(layers, sales, config)

# Step 3: Report
print("\n" + "="*80)
print("STEP 3: Results")
print("="*80)

for name, model in result.models.items():
    if isinstance(model, InsufficientData):
        print(f"\n{name}: {model.message}")
        continue
    print(f"\n{name}: R²={model.r_squared:.3f}, adj. R²={model.adj_r_squared:.3f}, "
          f"F={model.f_statistic:.2f} (p={model.f_pvalue:.2e})")
    print(result.regression_tables[name].to_frame().to_string(index=False))

print("\nCohort comparison:")
print(result.comparison.to_frame().to_string(index=False))

# Step 4: Save results
print("\n" + "="*80)
print("STEP 4: Saving Results")
print("="*80)

write_outputs(result, config.output_dir)

print("\n" + "="*80)
print("PROCESSING COMPLETE")
print("="*80)
print("\nNext step: python scripts/02_plot_results.py")
print("="*80)
