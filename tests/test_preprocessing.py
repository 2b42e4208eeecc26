"""Tests for reprojection, property selection and spatial filters."""

import warnings

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import Point

from tests.conftest import UTM, points_gdf
from transit_housing.errors import CRSMismatchError, EmptyReferenceSetError, EmptyResultError
from transit_housing.preprocessing import (
    attach_sales,
    buffer_and_filter,
    filter_secondary,
    reproject,
    select_single_family,
    standardize_property_columns,
    to_canonical_crs,
)


def _coords(gdf):
    return np.array([(geom.x, geom.y) for geom in gdf.geometry])


class TestReproject:
    def test_composes_through_intermediate_crs(self):
        """A -> B -> C equals A -> C within float tolerance."""
        a = points_gdf([(-75.16, 39.95), (-75.20, 40.01), (-75.05, 39.90)], crs="EPSG:4326")
        via_b = reproject(reproject(a, UTM), "EPSG:3857")
        direct = reproject(a, "EPSG:3857")
        assert np.allclose(_coords(via_b), _coords(direct), atol=1e-3)

    def test_undefined_crs_raises(self):
        """A layer without a CRS cannot be reprojected."""
        gdf = gpd.GeoDataFrame(geometry=[Point(0, 0)])
        with pytest.raises(CRSMismatchError):
            reproject(gdf, UTM)

    def test_same_crs_returns_copy(self):
        """Reprojecting into the current CRS leaves coordinates alone."""
        gdf = points_gdf([(10, 20)])
        result = reproject(gdf, UTM)
        assert result is not gdf
        assert result.geometry.iloc[0].equals(gdf.geometry.iloc[0])

    def test_canonical_pass_uses_transit_crs(self, raw_layers):
        """Every layer ends up in the transit layer's CRS."""
        layers, crs = to_canonical_crs(raw_layers, 'transit')
        assert crs == raw_layers['transit'].crs
        assert all(gdf.crs == crs for gdf in layers.values())
        assert raw_layers['properties'].crs.is_geographic

    def test_geographic_canonical_crs_rejected(self, raw_layers):
        """Distances need a projected canonical CRS."""
        layers = dict(raw_layers, transit=raw_layers['transit'].to_crs("EPSG:4326"))
        with pytest.raises(CRSMismatchError):
            to_canonical_crs(layers, 'transit')

    def test_layer_without_crs_rejected(self, raw_layers):
        jobs = gpd.GeoDataFrame(geometry=list(raw_layers['jobs'].geometry))
        layers = dict(raw_layers, jobs=jobs)
        with pytest.raises(CRSMismatchError):
            to_canonical_crs(layers, 'transit')


class TestPropertySelection:
    def test_single_family_only(self, raw_layers):
        """Multi-family rows are dropped; matching is case-insensitive."""
        props = raw_layers['properties'].copy()
        props.loc[0, 'category_code_description'] = ' single family '
        props.loc[1, 'category_code_description'] = None
        selected = select_single_family(props, 'category_code_description')
        assert len(selected) == 64
        assert 0 in selected.index
        assert 1 not in selected.index

    def test_empty_geometries_dropped(self):
        gdf = gpd.GeoDataFrame(
            {'category_code_description': ['SINGLE FAMILY'] * 2},
            geometry=[Point(0, 0), None],
            crs=UTM,
        )
        assert len(select_single_family(gdf, 'category_code_description')) == 1

    def test_attach_sales_marks_nonpositive_prices_missing(self):
        """Zero and negative prices become NaN rather than staying as numbers."""
        props = points_gdf([(0, 0), (1, 1), (2, 2)], parcel_number=['1', '2', '3'])
        sales = pd.DataFrame({'parcel_number': [1, 2, 3], 'sale_price': [250000, 0, 'n/a']})
        merged = attach_sales(props, sales, 'parcel_number')
        assert len(merged) == 3
        assert merged['sale_price'].iloc[0] == 250000
        assert merged['sale_price'].iloc[1:].isna().all()
        assert merged.crs == props.crs

    def test_attach_sales_is_inner_join(self):
        props = points_gdf([(0, 0), (1, 1)], parcel_number=['1', '2'])
        sales = pd.DataFrame({'parcel_number': ['2'], 'sale_price': [300000]})
        merged = attach_sales(props, sales, 'parcel_number')
        assert merged['parcel_number'].tolist() == ['2']

    def test_standardize_columns(self):
        """Raw names map to canonical names and x/y are added."""
        props = points_gdf(
            [(10, 20)], parcel_number=['1'], year_built=['1999'],
            total_livable_area=['1500'], sale_price=[200000.0],
        )
        result = standardize_property_columns(
            props, 'parcel_number', 'year_built', 'total_livable_area', 'sale_price'
        )
        assert result['year_built'].iloc[0] == 1999
        assert result['living_area'].iloc[0] == 1500
        assert (result['x'].iloc[0], result['y'].iloc[0]) == (10, 20)
        assert 'parcel_id' in result.columns


class TestBufferAndFilter:
    def test_keeps_features_within_radius(self, transit_lines):
        """Points closer than the radius are kept, others dropped."""
        points = points_gdf([(100, 500), (100, 900), (5000, -3000)], name=['a', 'b', 'c'])
        kept = buffer_and_filter(points, transit_lines, 800)
        assert kept['name'].tolist() == ['a', 'c']

    def test_within_predicate(self, transit_lines):
        points = points_gdf([(100, 500), (100, 900)])
        kept = buffer_and_filter(points, transit_lines, 800, predicate='within')
        assert len(kept) == 1

    def test_empty_result_raises(self, transit_lines):
        points = points_gdf([(100, 5000)])
        with pytest.raises(EmptyResultError):
            buffer_and_filter(points, transit_lines, 800)

    def test_empty_reference_raises(self, transit_lines):
        points = points_gdf([(100, 500)])
        with pytest.raises(EmptyReferenceSetError):
            buffer_and_filter(points, transit_lines.iloc[0:0], 800)

    def test_crs_mismatch_raises(self, transit_lines):
        points = points_gdf([(-75.1, 39.9)], crs="EPSG:4326")
        with pytest.raises(CRSMismatchError):
            buffer_and_filter(points, transit_lines, 800)

    def test_invalid_arguments(self, transit_lines):
        points = points_gdf([(100, 500)])
        with pytest.raises(ValueError):
            buffer_and_filter(points, transit_lines, -1)
        with pytest.raises(ValueError):
            buffer_and_filter(points, transit_lines, 800, predicate='touches')


class TestSecondaryFilter:
    def test_fallback_returns_unfiltered_with_warning(self, transit_lines):
        """An empty secondary filter widens back to the full layer and warns."""
        crime = points_gdf([(100, 9000), (200, 9500)])
        with pytest.warns(UserWarning, match="crime"):
            result = filter_secondary(crime, transit_lines, 800, policy='fallback', label='crime')
        assert len(result) == 2

    def test_abort_policy_raises(self, transit_lines):
        crime = points_gdf([(100, 9000)])
        with pytest.raises(EmptyResultError):
            filter_secondary(crime, transit_lines, 800, policy='abort', label='crime')

    def test_non_empty_result_does_not_warn(self, transit_lines):
        crime = points_gdf([(100, 100), (100, 9000)])
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = filter_secondary(crime, transit_lines, 800)
        assert len(result) == 1
