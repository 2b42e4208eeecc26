"""Shared synthetic layers in a projected CRS (UTM 18N, meters).

Transit: one east-west line along y=0 from x=0 to x=10,000.
Properties: 60 single-family homes 200-500 m north of the line (30 built
1995-1997, 30 built 2015-2017), 5 homes 5 km away, 5 multi-family homes.
"""

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point

from transit_housing.config import PipelineConfig

UTM = "EPSG:32618"


def points_gdf(coords, crs=UTM, **columns):
    return gpd.GeoDataFrame(columns, geometry=[Point(x, y) for x, y in coords], crs=crs)


@pytest.fixture
def transit_lines():
    return gpd.GeoDataFrame(
        {'route': ['A', 'B']},
        geometry=[LineString([(0, 0), (10000, 0)]), LineString([(5000, -5000), (5000, -1000)])],
        crs=UTM,
    )


@pytest.fixture
def raw_layers(transit_lines):
    rng = np.random.default_rng(7)

    near = [(150 * i + 100, 200 + 50 * (i % 7)) for i in range(60)]
    far = [(1000 * i + 500, 5000) for i in range(5)]
    multi = [(150 * i + 175, 250) for i in range(5)]
    coords = near + far + multi

    years = (
        [1995, 1996, 1997] * 10
        + [2015, 2016, 2017] * 10
        + [1998] * 5
        + [2012] * 5
    )
    categories = ['SINGLE FAMILY'] * 65 + ['MULTI FAMILY'] * 5
    areas = rng.uniform(900, 2500, size=len(coords)).round()

    properties = points_gdf(
        coords,
        parcel_number=[f"P{i:04d}" for i in range(len(coords))],
        category_code_description=categories,
        year_built=years,
        total_livable_area=areas,
    )
    # Properties arrive in geographic coordinates and must be reprojected
    properties = properties.to_crs("EPSG:4326")

    crime_xy = np.column_stack([rng.uniform(0, 10000, 300), rng.uniform(-1500, 1500, 300)])
    crime = points_gdf(crime_xy, offense=['theft'] * len(crime_xy))

    jobs = points_gdf([(2000, 1500), (6000, -1500), (9000, 800)], jobs_index=[40, 75, 90])

    return {'properties': properties, 'transit': transit_lines, 'crime': crime, 'jobs': jobs}


@pytest.fixture
def sales(raw_layers):
    rng = np.random.default_rng(11)
    props = raw_layers['properties']
    cohort_premium = np.where(props['year_built'] >= 2010, 150000, 0)
    price = 100 * props['total_livable_area'] + 50000 + cohort_premium + rng.normal(0, 5000, len(props))
    return pd.DataFrame({
        'parcel_number': props['parcel_number'],
        'sale_price': price.round(),
    })


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(data_dir=tmp_path, output_dir=tmp_path / "results")


def linear_cohort(n, seed=0, years=(2010, 2011)):
    """Rows with price = 100 * area + noise."""
    rng = np.random.default_rng(seed)
    area = np.linspace(1000, 2000, n)
    return pd.DataFrame({
        'sale_price': 100 * area + rng.normal(0, 1000, n),
        'living_area': area,
        'year_built': [years[i % len(years)] for i in range(n)],
    })
