"""
Transit-proximity housing cohort analysis.

This package contains domain-specific logic organized into:
- config: Configuration parameters and the per-run PipelineConfig
- errors: Pipeline error types and the insufficient-data result
- files: Reading input layers and writing outputs
- preprocessing: Reprojection, property selection and spatial filters
- distances: Nearest-feature and minimum-edge distances, radius counts
- features: Accessibility and crime-density features
- analysis: Cohorts, per-cohort OLS models and Welch t-tests
- results: Result tables for report and figure consumers
- pipeline: End-to-end run
- plotting: Figures
"""

__version__ = "1.0.0"
