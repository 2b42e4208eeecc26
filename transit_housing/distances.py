"""
Distance and density queries between a property layer and reference layers.

All distances are in the linear unit of the shared CRS. Reference layers are
indexed once through ``GeoDataFrame.sindex`` and only read afterwards.
"""

import numpy as np
import pandas as pd
import shapely
from shapely.ops import unary_union

from transit_housing.errors import CRSMismatchError, EmptyReferenceSetError


def _check_reference(points, reference, label):
    if len(reference) == 0:
        raise EmptyReferenceSetError(f"Reference layer '{label}' has no features")
    if points.crs != reference.crs:
        raise CRSMismatchError(
            f"Layer CRS {points.crs} differs from '{label}' CRS {reference.crs}"
        )


def minimum_edge_distance(points, lines):
    """
    Distance from each point to the closest point on any line.

    Parameters
    ----------
    points : GeoDataFrame
        Source geometries (properties).
    lines : GeoDataFrame
        Linear reference features (transit lines).

    Returns
    -------
    Series
        Non-negative distances indexed like ``points``. Zero when a point lies
        on a line.

    Notes
    -----
    The distance to the union of all lines equals the minimum of the
    per-line distances.
    """
    _check_reference(points, lines, 'lines')
    network = unary_union(lines.geometry.values)
    return pd.Series(points.geometry.distance(network).values, index=points.index, name='distance')


def nearest_feature_distance(points, reference):
    """
    Find the single nearest reference feature of every point.

    Parameters
    ----------
    points : GeoDataFrame
        Source geometries.
    reference : GeoDataFrame
        Point or polygon features to search.

    Returns
    -------
    DataFrame
        Indexed like ``points`` with columns:
        - nearest_index : index label of the nearest row in ``reference``
        - distance : distance to that feature

    Notes
    -----
    Exactly one result is returned per point (``return_all=False``). Equal
    distances resolve in spatial-index order, which is not guaranteed to be
    stable across library versions.
    """
    _check_reference(points, reference, 'reference')
    input_idx, tree_idx = reference.sindex.nearest(points.geometry, return_all=False)

    source = np.asarray(points.geometry)[input_idx]
    target = np.asarray(reference.geometry)[tree_idx]

    distance = np.full(len(points), np.nan)
    distance[input_idx] = shapely.distance(source, target)
    nearest = np.full(len(points), None, dtype=object)
    nearest[input_idx] = reference.index.values[tree_idx]

    return pd.DataFrame({'nearest_index': nearest, 'distance': distance}, index=points.index)


def count_within_radius(points, reference, radius):
    """
    Count reference features intersecting a buffer of ``radius`` around each point.

    Returns
    -------
    Series
        Integer counts indexed like ``points``.
    """
    if radius <= 0:
        raise ValueError(f"radius must be > 0, got {radius}")
    _check_reference(points, reference, 'reference')
    buffers = points.geometry.buffer(radius)
    input_idx, _ = reference.sindex.query(buffers, predicate='intersects')
    counts = np.bincount(input_idx, minlength=len(points))
    return pd.Series(counts, index=points.index, name='count')
