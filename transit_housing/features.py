"""
Derived property features: accessibility, crime density and its transforms.

Each transform is a pure function of columns computed before it. Undefined
values (log of zero, zero variance) come back as NaN and are never replaced.
"""

import numpy as np
import pandas as pd

from transit_housing.distances import (
    count_within_radius,
    minimum_edge_distance,
    nearest_feature_distance,
)


def job_access_score(dist_to_jobs):
    """Inverse-distance accessibility, 1 / (d + 1), in (0, 1] for d >= 0."""
    return 1.0 / (dist_to_jobs + 1.0)


def crime_density(counts, radius):
    """
    Incidents per squared radius.

    This is a relative density proxy: the buffer area is taken as R², not πR².
    """
    return counts / float(radius) ** 2


def log_density(density):
    """Natural log of positive densities; NaN elsewhere."""
    density = pd.Series(density, dtype=float)
    return np.log(density.where(density > 0))


def standardize(values):
    """
    Population z-score (ddof=0) over all non-missing values.

    Returns NaN everywhere when the values have zero variance.
    """
    values = pd.Series(values, dtype=float)
    std = values.std(ddof=0)
    if not np.isfinite(std) or std == 0:
        return pd.Series(np.nan, index=values.index)
    return (values - values.mean()) / std


def square(values):
    return pd.Series(values, dtype=float) ** 2


def build_features(properties, transit, crime, jobs, crime_radius=800, nearby_crime=None,
                   verbose=True):
    """
    Append distance, accessibility and crime-density features to properties.

    Parameters
    ----------
    properties : GeoDataFrame
        Working set of properties, already filtered and in the canonical CRS.
    transit : GeoDataFrame
        Transit lines.
    crime : GeoDataFrame
        Crime incidents. Nearest-incident distances are searched over the
        whole layer.
    jobs : GeoDataFrame
        Job-proximity features.
    crime_radius : float, optional
        Radius R for incident counts. Default 800.
    nearby_crime : GeoDataFrame, optional
        Incidents already clipped around the properties, used only for the
        radius counts. The clip must be wider than ``crime_radius``.
        Defaults to ``crime``.
    verbose : bool, optional
        Print progress. Default True.

    Returns
    -------
    GeoDataFrame
        Copy of ``properties`` with added columns, in this order:
        dist_to_transit, dist_to_crime, dist_to_jobs, job_access,
        crime_count, crime_density, log_crime_density,
        scaled_log_crime_density, scaled_log_crime_density_sq.

    Notes
    -----
    Standardization is computed over the entire working set, before cohorts
    are formed, so every cohort shares one scale.
    """
    result = properties.copy()

    if verbose:
        print(f"  Computing distances for {len(result):,} properties...")
    result['dist_to_transit'] = minimum_edge_distance(result, transit)
    result['dist_to_crime'] = nearest_feature_distance(result, crime)['distance']
    result['dist_to_jobs'] = nearest_feature_distance(result, jobs)['distance']
    result['job_access'] = job_access_score(result['dist_to_jobs'])

    if verbose:
        print(f"  Counting crime incidents within {crime_radius} units...")
    counted = crime if nearby_crime is None else nearby_crime
    result['crime_count'] = count_within_radius(result, counted, crime_radius)
    result['crime_density'] = crime_density(result['crime_count'], crime_radius)
    result['log_crime_density'] = log_density(result['crime_density'])
    result['scaled_log_crime_density'] = standardize(result['log_crime_density'])
    result['scaled_log_crime_density_sq'] = square(result['scaled_log_crime_density'])

    if verbose:
        n_missing = result['log_crime_density'].isna().sum()
        print(f"  Properties with no nearby incidents (missing log density): {n_missing:,}")
    return result
