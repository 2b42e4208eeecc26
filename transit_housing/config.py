"""
Configuration file for the transit-proximity housing cohort analysis.

This module centralizes all configurable parameters including:
- Input layer file names and column names
- Buffer radii for the transit filter and crime density
- Cohort (year-built) ranges
- Model and comparison variables
- Empty-filter policy

Module-level constants are the defaults. A run is driven by a
``PipelineConfig`` built from them, so nothing depends on the process
working directory.
"""

from dataclasses import dataclass, field
from pathlib import Path

# =====================================================================
# Project Paths
# =====================================================================

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
DATA_RAW = DATA_DIR / "raw"
DATA_PROCESSED = DATA_DIR / "processed"

# Results directories
RESULTS_DIR = PROJECT_ROOT / "results"
RESULTS_FIGURES = RESULTS_DIR / "figures"

# =====================================================================
# Input Layers
# =====================================================================

# Layer name -> file name under the raw data directory
LAYER_FILES = {
    'properties': 'properties.shp',
    'transit': 'transit_lines.shp',
    'crime': 'crime_incidents.shp',
    'jobs': 'job_proximity.shp',
}

SALES_FILE = 'sales.csv'

# Layer whose CRS every other layer is reprojected to
CANONICAL_LAYER = 'transit'

# =====================================================================
# Property Columns
# =====================================================================

PARCEL_ID_COLUMN = 'parcel_number'
CATEGORY_COLUMN = 'category_code_description'
SINGLE_FAMILY_VALUE = 'SINGLE FAMILY'
YEAR_BUILT_COLUMN = 'year_built'
LIVING_AREA_COLUMN = 'total_livable_area'
SALE_PRICE_COLUMN = 'sale_price'

# =====================================================================
# Spatial Parameters (canonical CRS linear units, meters)
# =====================================================================

# Properties farther than this from any transit line are dropped
TRANSIT_BUFFER_RADIUS = 800

# Radius used to count crime incidents around each property
CRIME_RADIUS = 800

# Crime and job layers are clipped to this distance around the properties
SECONDARY_CLIP_RADIUS = 5000

# What to do when a secondary clip leaves nothing: 'fallback' or 'abort'
EMPTY_SECONDARY_FILTER = 'fallback'
EMPTY_FILTER_POLICIES = ('fallback', 'abort')

# =====================================================================
# Cohorts
# =====================================================================

# (name, low inclusive, high exclusive)
COHORTS = [
    ('1990_2000', 1990, 2001),
    ('2010_2024', 2010, 2025),
]

# =====================================================================
# Models and Tests
# =====================================================================

RESPONSE = 'sale_price'

PREDICTORS = [
    'dist_to_transit',
    'job_access',
    'scaled_log_crime_density',
    'scaled_log_crime_density_sq',
    'living_area',
]

CATEGORICALS = ['year_built']

# Cohorts with this many usable rows or fewer are not modelled
MIN_MODEL_ROWS = 10

COMPARISON_VARIABLES = [
    'sale_price',
    'dist_to_transit',
    'job_access',
    'crime_density',
]

ALPHA = 0.05

# Threads used to fit cohorts; 1 fits them in order
MAX_WORKERS = 1


@dataclass
class PipelineConfig:
    """Explicit settings for a single pipeline run."""

    data_dir: Path = DATA_RAW
    output_dir: Path = RESULTS_DIR
    layer_files: dict = field(default_factory=lambda: dict(LAYER_FILES))
    sales_file: str = SALES_FILE
    canonical_layer: str = CANONICAL_LAYER

    parcel_id_column: str = PARCEL_ID_COLUMN
    category_column: str = CATEGORY_COLUMN
    single_family_value: str = SINGLE_FAMILY_VALUE
    year_built_column: str = YEAR_BUILT_COLUMN
    living_area_column: str = LIVING_AREA_COLUMN
    sale_price_column: str = SALE_PRICE_COLUMN

    transit_buffer_radius: float = TRANSIT_BUFFER_RADIUS
    crime_radius: float = CRIME_RADIUS
    secondary_clip_radius: float = SECONDARY_CLIP_RADIUS
    empty_secondary_filter: str = EMPTY_SECONDARY_FILTER

    cohorts: list = field(default_factory=lambda: list(COHORTS))
    response: str = RESPONSE
    predictors: list = field(default_factory=lambda: list(PREDICTORS))
    categoricals: list = field(default_factory=lambda: list(CATEGORICALS))
    reference_levels: dict = field(default_factory=dict)
    min_model_rows: int = MIN_MODEL_ROWS
    comparison_variables: list = field(default_factory=lambda: list(COMPARISON_VARIABLES))
    alpha: float = ALPHA
    max_workers: int = MAX_WORKERS

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.output_dir = Path(self.output_dir)

    def layer_path(self, name):
        """Full path of a named input layer."""
        return self.data_dir / self.layer_files[name]

    @property
    def sales_path(self):
        return self.data_dir / self.sales_file

    def validate(self):
        """Validate configuration settings."""
        for name in ('transit_buffer_radius', 'crime_radius', 'secondary_clip_radius'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

        # Crime counts are taken from the clipped layer
        if self.secondary_clip_radius < self.crime_radius:
            raise ValueError(
                f"secondary_clip_radius ({self.secondary_clip_radius}) must be >= "
                f"crime_radius ({self.crime_radius})"
            )

        if self.empty_secondary_filter not in EMPTY_FILTER_POLICIES:
            raise ValueError(
                f"Invalid empty_secondary_filter: {self.empty_secondary_filter}. "
                f"Must be one of: {list(EMPTY_FILTER_POLICIES)}"
            )

        if self.canonical_layer not in self.layer_files:
            raise ValueError(f"Canonical layer '{self.canonical_layer}' is not a configured layer")

        if self.min_model_rows < 1:
            raise ValueError("min_model_rows must be >= 1")

        if not 0 < self.alpha < 1:
            raise ValueError(f"alpha must be in (0, 1), got {self.alpha}")

        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        # Imported here to avoid a cycle: analysis reads defaults from this module
        from transit_housing.analysis import validate_cohort_ranges
        validate_cohort_ranges(self.cohorts)
        return self


# =====================================================================
# Validation
# =====================================================================

def validate_config():
    """Validate module-level defaults."""
    if CANONICAL_LAYER not in LAYER_FILES:
        raise ValueError(
            f"Invalid CANONICAL_LAYER: {CANONICAL_LAYER}. "
            f"Must be one of: {list(LAYER_FILES.keys())}"
        )

    if EMPTY_SECONDARY_FILTER not in EMPTY_FILTER_POLICIES:
        raise ValueError(f"EMPTY_SECONDARY_FILTER must be one of {EMPTY_FILTER_POLICIES}")

    if min(TRANSIT_BUFFER_RADIUS, CRIME_RADIUS, SECONDARY_CLIP_RADIUS) <= 0:
        raise ValueError("Buffer radii must be > 0")

    if SECONDARY_CLIP_RADIUS < CRIME_RADIUS:
        raise ValueError("SECONDARY_CLIP_RADIUS must be >= CRIME_RADIUS")

    if MIN_MODEL_ROWS < 1:
        raise ValueError("MIN_MODEL_ROWS must be >= 1")


# Run validation on import
validate_config()
