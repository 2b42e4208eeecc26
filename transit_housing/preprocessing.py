"""
Geometry preparation and spatial filtering functions.

This module contains functions for:
- Reprojecting layers to a single canonical CRS
- Selecting single-family properties and attaching sales
- Buffering a reference layer and keeping the target rows that touch it
- Applying secondary filters under an explicit empty-result policy
"""

import warnings

import numpy as np
import pandas as pd
import geopandas as gpd
from pyproj import CRS
from shapely.ops import unary_union

from transit_housing.errors import CRSMismatchError, EmptyReferenceSetError, EmptyResultError


# =====================================================================
# Reprojection
# =====================================================================

def reproject(gdf, target_crs):
    """
    Reproject every geometry of a layer into the target CRS.

    Parameters
    ----------
    gdf : GeoDataFrame
        Layer to reproject. Must carry a CRS.
    target_crs : pyproj.CRS, str or int
        Target reference system (anything ``pyproj.CRS.from_user_input`` accepts).

    Returns
    -------
    GeoDataFrame
        Reprojected copy. The input is left untouched.

    Raises
    ------
    CRSMismatchError
        If the source layer has no CRS.
    """
    if gdf.crs is None:
        raise CRSMismatchError("Cannot reproject a layer with an undefined CRS")
    target = CRS.from_user_input(target_crs)
    if gdf.crs == target:
        return gdf.copy()
    return gdf.to_crs(target)


def to_canonical_crs(layers, canonical_layer='transit'):
    """
    Reproject all layers to the CRS of the canonical layer in one pass.

    Parameters
    ----------
    layers : dict of str -> GeoDataFrame
        Named input layers.
    canonical_layer : str, optional
        Name of the layer whose CRS becomes canonical. Default 'transit'.

    Returns
    -------
    tuple of (dict, pyproj.CRS)
        Reprojected layers (same keys, same order) and the canonical CRS.

    Raises
    ------
    KeyError
        If the canonical layer is not among ``layers``.
    CRSMismatchError
        If the canonical layer has no CRS, uses geographic coordinates, or any
        other layer has no CRS.

    Notes
    -----
    Distances are reported in the canonical CRS units, so a geographic
    (degree-based) canonical CRS is rejected instead of silently producing
    degree distances.
    """
    if canonical_layer not in layers:
        raise KeyError(f"Canonical layer '{canonical_layer}' not found in {list(layers)}")

    canonical_crs = layers[canonical_layer].crs
    if canonical_crs is None:
        raise CRSMismatchError(f"Canonical layer '{canonical_layer}' has no CRS")
    if canonical_crs.is_geographic:
        raise CRSMismatchError(
            f"Canonical layer '{canonical_layer}' uses geographic CRS {canonical_crs.to_string()}; "
            f"a projected CRS with linear units is required"
        )

    reprojected = {}
    for name, gdf in layers.items():
        if gdf.crs is None:
            raise CRSMismatchError(f"Layer '{name}' has no CRS")
        reprojected[name] = reproject(gdf, canonical_crs)
    return reprojected, canonical_crs


# =====================================================================
# Property Preparation
# =====================================================================

def drop_empty_geometries(gdf):
    """Remove rows whose geometry is missing or empty."""
    mask = gdf.geometry.notna() & ~gdf.geometry.is_empty
    return gdf[mask].copy()


def select_single_family(properties, category_column, category_value='SINGLE FAMILY'):
    """
    Keep single-family properties with a usable geometry.

    Parameters
    ----------
    properties : GeoDataFrame
        Property layer.
    category_column : str
        Column holding the property category.
    category_value : str, optional
        Category that marks single-family homes. Compared case-insensitively
        after stripping whitespace.

    Returns
    -------
    GeoDataFrame
    """
    if category_column not in properties.columns:
        raise KeyError(f"Property layer has no '{category_column}' column")
    category = properties[category_column].fillna('').astype(str).str.strip().str.upper()
    selected = properties[category == category_value.strip().upper()]
    return drop_empty_geometries(selected)


def attach_sales(properties, sales, key, price_column='sale_price'):
    """
    Join the sales table onto the property layer.

    Parameters
    ----------
    properties : GeoDataFrame
        Property layer containing ``key``.
    sales : DataFrame
        Sales table containing ``key`` and ``price_column``.
    key : str
        Parcel identifier shared by both tables.
    price_column : str, optional
        Sale price column in ``sales``.

    Returns
    -------
    GeoDataFrame
        Inner join of properties and sales. Non-positive or unparseable sale
        prices are set to NaN, never to zero.
    """
    sales = sales.copy()
    sales[key] = sales[key].astype(str)
    sales[price_column] = pd.to_numeric(sales[price_column], errors='coerce')
    sales.loc[sales[price_column] <= 0, price_column] = np.nan

    properties = properties.copy()
    properties[key] = properties[key].astype(str)

    # Sale columns win over same-named property columns
    overlap = [col for col in sales.columns if col != key and col in properties.columns]
    merged = properties.drop(columns=overlap).merge(sales, on=key, how='inner')
    return gpd.GeoDataFrame(merged, geometry=properties.geometry.name, crs=properties.crs)


def standardize_property_columns(properties, parcel_id_column, year_built_column,
                                 living_area_column, sale_price_column):
    """
    Rename raw property columns to canonical names and coerce them to numbers.

    Returns
    -------
    GeoDataFrame
        Copy with ``parcel_id``, ``year_built``, ``living_area``,
        ``sale_price`` and the ``x``/``y`` coordinates used by figures.
    """
    renames = {
        parcel_id_column: 'parcel_id',
        year_built_column: 'year_built',
        living_area_column: 'living_area',
        sale_price_column: 'sale_price',
    }
    missing = [col for col in renames if col not in properties.columns]
    if missing:
        raise KeyError(f"Property layer is missing columns: {missing}")

    result = properties.rename(columns=renames)
    for col in ['year_built', 'living_area', 'sale_price']:
        result[col] = pd.to_numeric(result[col], errors='coerce')

    # Polygons (parcels) are located by centroid
    points = result.geometry if (result.geom_type == 'Point').all() else result.geometry.centroid
    result['x'] = points.x
    result['y'] = points.y
    return result


# =====================================================================
# Spatial Filtering
# =====================================================================

PREDICATES = ('intersects', 'within')


def buffer_and_filter(target, reference, radius, predicate='intersects'):
    """
    Keep target rows whose geometry touches the buffered reference layer.

    Parameters
    ----------
    target : GeoDataFrame
        Layer to filter.
    reference : GeoDataFrame
        Layer whose geometries are buffered and unioned.
    radius : float
        Buffer distance in canonical CRS units.
    predicate : {'intersects', 'within'}, optional
        Spatial relationship a target geometry must have with the buffer
        union. Default 'intersects'.

    Returns
    -------
    GeoDataFrame
        Retained rows of ``target``, original order and index.

    Raises
    ------
    EmptyReferenceSetError
        If ``reference`` has no features.
    CRSMismatchError
        If the two layers are in different CRSs.
    EmptyResultError
        If no target row satisfies the predicate.
    """
    if radius < 0:
        raise ValueError(f"radius must be >= 0, got {radius}")
    if predicate not in PREDICATES:
        raise ValueError(f"Unknown predicate '{predicate}'. Must be one of {PREDICATES}")
    if len(reference) == 0:
        raise EmptyReferenceSetError("Cannot buffer an empty reference layer")
    if target.crs != reference.crs:
        raise CRSMismatchError(f"Target CRS {target.crs} differs from reference CRS {reference.crs}")

    buffered = unary_union(reference.geometry.buffer(radius).values)
    if predicate == 'intersects':
        mask = target.geometry.intersects(buffered)
    else:
        mask = target.geometry.within(buffered)

    result = target[mask].copy()
    if len(result) == 0:
        raise EmptyResultError(
            f"No features within {radius} units of the reference layer ({len(target)} tested)"
        )
    return result


def filter_secondary(target, reference, radius, policy='fallback', label='layer'):
    """
    Apply a secondary buffer filter under an explicit empty-result policy.

    With ``policy='fallback'`` an empty result returns the unfiltered
    ``target`` and emits a ``UserWarning``. With ``policy='abort'`` the
    ``EmptyResultError`` propagates.
    """
    try:
        return buffer_and_filter(target, reference, radius)
    except EmptyResultError:
        if policy != 'fallback':
            raise
        warnings.warn(
            f"Secondary filter on '{label}' kept no features within {radius} units; "
            f"using all {len(target):,} unfiltered features",
            UserWarning,
            stacklevel=2,
        )
        return target.copy()
