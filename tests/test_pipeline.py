"""End-to-end tests of the pipeline on synthetic layers."""

import geopandas as gpd
import pytest
from shapely.geometry import LineString

from tests.conftest import UTM, points_gdf
from transit_housing.analysis import ModelResult
from transit_housing.config import PipelineConfig
from transit_housing.distances import count_within_radius
from transit_housing.errors import EmptyResultError, InsufficientData
from transit_housing.pipeline import prepare_properties, run_pipeline


class TestRunPipeline:
    @pytest.fixture
    def result(self, raw_layers, sales):
        return run_pipeline(raw_layers, sales, PipelineConfig(), verbose=False)

    def test_working_set(self, result):
        """Only single-family homes near transit remain, in the canonical CRS."""
        assert len(result.features) == 60
        assert result.features.crs == result.crs
        assert result.crs.to_epsg() == 32618
        assert (result.features['dist_to_transit'] <= 800).all()

    def test_cohorts(self, result):
        assert list(result.cohorts) == ['1990_2000', '2010_2024']
        assert [len(c) for c in result.cohorts.values()] == [30, 30]
        assert result.features['cohort'].value_counts().to_dict() == {'1990_2000': 30, '2010_2024': 30}

    def test_models_fitted_per_cohort(self, result):
        for name, model in result.models.items():
            assert isinstance(model, ModelResult)
            assert model.cohort == name
            assert model.n_obs == 30
            assert model.coefficient('living_area').p_value < 0.001

    def test_plotting_fields_present(self, result):
        expected = ['x', 'y', 'sale_price', 'cohort', 'dist_to_transit', 'job_access', 'crime_density']
        assert all(col in result.features.columns for col in expected)

    def test_tables(self, result):
        assert list(result.regression_tables) == ['1990_2000', '2010_2024']
        assert result.comparison.column('Variable') == [
            'sale_price', 'dist_to_transit', 'job_access', 'crime_density',
        ]
        price_row = result.comparison.rows[0]
        assert price_row['Significant']
        assert price_row['Mean 2010_2024'] > price_row['Mean 1990_2000']
        assert result.fit_statistics.column('Cohort') == ['1990_2000', '2010_2024']

    def test_scaled_density_shared_across_cohorts(self, result):
        """Standardization happens on the whole working set, not per cohort."""
        scaled = result.features['scaled_log_crime_density'].dropna()
        assert scaled.mean() == pytest.approx(0, abs=1e-9)
        per_cohort = [c['scaled_log_crime_density'].mean() for c in result.cohorts.values()]
        assert sum(per_cohort) == pytest.approx(0, abs=1e-9)


class TestPipelinePolicies:
    def test_no_properties_near_transit_aborts(self, raw_layers, sales):
        """An empty primary transit filter is unrecoverable."""
        far_line = gpd.GeoDataFrame(geometry=[LineString([(0, 100000), (1000, 100000)])], crs=UTM)
        layers = dict(raw_layers, transit=far_line)
        with pytest.raises(EmptyResultError):
            run_pipeline(layers, sales, PipelineConfig(), verbose=False)

    def test_empty_secondary_filter_falls_back(self, raw_layers, sales):
        """Crime incidents outside the study area are used unfiltered, with a warning."""
        layers = dict(raw_layers, crime=points_gdf([(500000, 500000), (510000, 500000)]))
        with pytest.warns(UserWarning, match="crime"):
            result = run_pipeline(layers, sales, PipelineConfig(), verbose=False)

        assert (result.features['crime_count'] == 0).all()
        assert result.features['log_crime_density'].isna().all()
        assert all(isinstance(m, InsufficientData) for m in result.models.values())
        assert all(row['Note'] for row in result.fit_statistics)

    def test_empty_secondary_filter_aborts_when_configured(self, raw_layers, sales):
        layers = dict(raw_layers, crime=points_gdf([(500000, 500000)]))
        config = PipelineConfig(empty_secondary_filter='abort')
        with pytest.raises(EmptyResultError):
            run_pipeline(layers, sales, config, verbose=False)

    def test_invalid_config_rejected(self, raw_layers, sales):
        with pytest.raises(ValueError):
            run_pipeline(raw_layers, sales, PipelineConfig(crime_radius=0), verbose=False)

    def test_clip_narrower_than_crime_radius_rejected(self, raw_layers, sales):
        config = PipelineConfig(crime_radius=1000, secondary_clip_radius=500)
        with pytest.raises(ValueError):
            run_pipeline(raw_layers, sales, config, verbose=False)


class TestNearestFeaturesUseFullLayers:
    def test_nearest_job_outside_clip_radius(self, raw_layers, sales):
        """A home's nearest job counts even when it is beyond the secondary clip."""
        jobs = points_gdf([(100, 5700), (9000, -3000)], jobs_index=[10, 20])
        layers = dict(raw_layers, jobs=jobs)
        result = run_pipeline(layers, sales, PipelineConfig(), verbose=False)

        home = result.features.set_index('parcel_id').loc['P0000']
        assert home['dist_to_jobs'] == pytest.approx(5500.0, abs=0.01)
        assert home['job_access'] == pytest.approx(1 / 5501.0, rel=1e-5)

    def test_crime_counts_unchanged_by_clip(self, raw_layers, sales):
        """Counts within the crime radius match counts against the whole layer."""
        result = run_pipeline(raw_layers, sales, PipelineConfig(), verbose=False)
        expected = count_within_radius(result.features, raw_layers['crime'], 800)
        assert result.features['crime_count'].tolist() == expected.tolist()


class TestReferenceLevels:
    def test_shared_reference_level(self, raw_layers, sales):
        """A declared year present in only one cohort does not stop the other."""
        config = PipelineConfig(reference_levels={'year_built': 1996})
        result = run_pipeline(raw_layers, sales, config, verbose=False)

        early, late = result.models['1990_2000'], result.models['2010_2024']
        assert isinstance(early, ModelResult)
        assert isinstance(late, ModelResult)
        assert early.reference_levels == {'year_built': 1996}
        assert 'year_built[T.1995]' in early.terms
        assert 'year_built[T.1996]' not in early.terms
        assert late.reference_levels == {'year_built': 2015}
        assert {'year_built[T.2016]', 'year_built[T.2017]'} <= set(late.terms)

    def test_reference_level_per_cohort(self, raw_layers, sales):
        config = PipelineConfig(reference_levels={'2010_2024': {'year_built': 2017}})
        result = run_pipeline(raw_layers, sales, config, verbose=False)

        assert result.models['1990_2000'].reference_levels == {'year_built': 1995}
        late = result.models['2010_2024']
        assert late.reference_levels == {'year_built': 2017}
        assert 'year_built[T.2015]' in late.terms
        assert 'year_built[T.2017]' not in late.terms


class TestPrepareProperties:
    def test_single_family_with_sales(self, raw_layers, sales):
        prepared = prepare_properties(raw_layers['properties'], sales.iloc[:40], PipelineConfig())
        assert len(prepared) == 40
        assert {'parcel_id', 'year_built', 'living_area', 'sale_price', 'x', 'y'} <= set(prepared.columns)
