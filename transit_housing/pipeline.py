"""
End-to-end run: raw layers and sales in, enriched features and result tables out.

Stages, in order:
1. Reproject every layer to the canonical (transit) CRS
2. Select single-family properties and attach sales
3. Keep properties near transit (primary filter, empty result aborts)
4. Clip crime and job layers around the properties (secondary filters; the
   clipped crime layer feeds radius counts only)
5. Build distance, accessibility and crime-density features
6. Label and partition year-built cohorts
7. Fit cohort models, compare cohorts, assemble tables
"""

from dataclasses import dataclass

from transit_housing.analysis import analyze_cohorts, label_cohorts, partition
from transit_housing.config import PipelineConfig
from transit_housing.features import build_features
from transit_housing.preprocessing import (
    attach_sales,
    buffer_and_filter,
    filter_secondary,
    select_single_family,
    standardize_property_columns,
    to_canonical_crs,
)
from transit_housing.results import comparison_table, fit_statistics_table, regression_tables


@dataclass
class PipelineResult:
    features: object
    cohorts: dict
    models: dict
    tests: list
    regression_tables: dict
    fit_statistics: object
    comparison: object
    crs: object


def prepare_properties(properties, sales, config):
    """Single-family properties with sales attached and canonical column names."""
    selected = select_single_family(properties, config.category_column, config.single_family_value)
    with_sales = attach_sales(selected, sales, config.parcel_id_column, config.sale_price_column)
    return standardize_property_columns(
        with_sales,
        parcel_id_column=config.parcel_id_column,
        year_built_column=config.year_built_column,
        living_area_column=config.living_area_column,
        sale_price_column=config.sale_price_column,
    )


def run_pipeline(layers, sales, config=None, verbose=True):
    """
    Run the full feature-engineering and analysis pipeline.

    Parameters
    ----------
    layers : dict of str -> GeoDataFrame
        Must contain 'properties', 'transit', 'crime' and 'jobs'.
    sales : DataFrame
        Sales table keyed by the parcel identifier.
    config : PipelineConfig, optional
        Run settings. Defaults to ``PipelineConfig()``.
    verbose : bool, optional
        Print progress. Default True.

    Returns
    -------
    PipelineResult

    Raises
    ------
    CRSMismatchError
        If a layer has no CRS or the canonical CRS is geographic.
    EmptyResultError
        If no property lies near transit, or a secondary filter is empty
        under the 'abort' policy.
    EmptyReferenceSetError
        If the transit, crime or job layer has no features.
    """
    config = (config or PipelineConfig()).validate()

    if verbose:
        print(f"Reprojecting {len(layers)} layers to the '{config.canonical_layer}' CRS...")
    layers, crs = to_canonical_crs(layers, config.canonical_layer)

    properties = prepare_properties(layers['properties'], sales, config)
    if verbose:
        print(f"  Single-family properties with sales: {len(properties):,}")

    properties = buffer_and_filter(properties, layers['transit'], config.transit_buffer_radius)
    if verbose:
        print(f"  Within {config.transit_buffer_radius} of transit: {len(properties):,}")

    nearby_crime = filter_secondary(
        layers['crime'], properties, config.secondary_clip_radius,
        policy=config.empty_secondary_filter, label='crime',
    )
    nearby_jobs = filter_secondary(
        layers['jobs'], properties, config.secondary_clip_radius,
        policy=config.empty_secondary_filter, label='jobs',
    )
    if verbose:
        print(f"  Crime incidents near properties: {len(nearby_crime):,}")
        print(f"  Job features near properties: {len(nearby_jobs):,}")

    # Nearest-feature distances search the full layers; clipping could drop a
    # property's true nearest feature
    if verbose:
        print("Building features...")
    features = build_features(
        properties, layers['transit'], layers['crime'], layers['jobs'],
        crime_radius=config.crime_radius, nearby_crime=nearby_crime, verbose=verbose,
    )
    features = label_cohorts(features, config.cohorts)
    cohorts = partition(features, config.cohorts)
    if verbose:
        for name, cohort in cohorts.items():
            print(f"  Cohort {name}: {len(cohort):,} properties")
        print("Fitting cohort models...")

    models, tests = analyze_cohorts(
        cohorts,
        response=config.response,
        predictors=config.predictors,
        categoricals=config.categoricals,
        variables=config.comparison_variables,
        reference_levels=config.reference_levels,
        min_rows=config.min_model_rows,
        alpha=config.alpha,
        max_workers=config.max_workers,
        verbose=verbose,
    )

    return PipelineResult(
        features=features,
        cohorts=cohorts,
        models=models,
        tests=tests,
        regression_tables=regression_tables(models),
        fit_statistics=fit_statistics_table(models),
        comparison=comparison_table(tests, list(cohorts)),
        crs=crs,
    )
