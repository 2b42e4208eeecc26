"""
Cohort partitioning, regression fitting and mean-comparison tests.

This module contains functions for:
- Labelling and partitioning properties into year-built cohorts
- Fitting one OLS model per cohort with categorical year controls
- Welch two-sample t-tests and Cohen's d effect sizes between cohorts
- Running the per-cohort analysis, optionally in a thread pool
"""

import concurrent.futures
from collections import namedtuple
from dataclasses import dataclass
from itertools import combinations

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

from transit_housing.errors import InsufficientData


Cohort = namedtuple('Cohort', ['name', 'low', 'high'])


# =====================================================================
# Cohort Partitioning
# =====================================================================

def validate_cohort_ranges(ranges):
    """
    Check that cohort ranges are well formed and do not overlap.

    Parameters
    ----------
    ranges : list of (name, low, high)
        Half-open year intervals ``[low, high)``.

    Returns
    -------
    list of Cohort
        The ranges as ``Cohort`` tuples, in the given order.
    """
    cohorts = [Cohort(*r) for r in ranges]
    names = [c.name for c in cohorts]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate cohort names: {names}")

    for c in cohorts:
        if c.low >= c.high:
            raise ValueError(f"Cohort '{c.name}' has low {c.low} >= high {c.high}")

    for a, b in combinations(cohorts, 2):
        if a.low < b.high and b.low < a.high:
            raise ValueError(f"Cohorts '{a.name}' and '{b.name}' overlap")
    return cohorts


def _cohort_mask(years, cohort):
    return (years >= cohort.low) & (years < cohort.high)


def label_cohorts(records, ranges, column='cohort', year_column='year_built'):
    """
    Add a categorical cohort label; records outside every range stay missing.
    """
    cohorts = validate_cohort_ranges(ranges)
    years = pd.to_numeric(records[year_column], errors='coerce')

    labels = pd.Series(None, index=records.index, dtype=object)
    for cohort in cohorts:
        labels[_cohort_mask(years, cohort)] = cohort.name

    result = records.copy()
    result[column] = pd.Categorical(labels, categories=[c.name for c in cohorts])
    return result


def partition(records, ranges, year_column='year_built'):
    """
    Split records into year-built cohorts.

    Parameters
    ----------
    records : DataFrame or GeoDataFrame
        Feature table with a year-built column.
    ranges : list of (name, low, high)
        Non-overlapping half-open intervals ``[low, high)``.
    year_column : str, optional
        Default 'year_built'.

    Returns
    -------
    dict of str -> DataFrame
        One entry per range, in the order given. Records matching no range
        are dropped; a range matching nothing maps to an empty frame.
    """
    cohorts = validate_cohort_ranges(ranges)
    years = pd.to_numeric(records[year_column], errors='coerce')
    return {c.name: records[_cohort_mask(years, c)].copy() for c in cohorts}


# =====================================================================
# Regression
# =====================================================================

@dataclass(frozen=True)
class Coefficient:
    term: str
    estimate: float
    std_error: float
    t_value: float
    p_value: float


@dataclass(frozen=True)
class ModelResult:
    """Coefficients and fit statistics of one cohort's OLS model."""

    cohort: str
    coefficients: list
    residual_std_error: float
    df_residual: int
    df_model: int
    r_squared: float
    adj_r_squared: float
    f_statistic: float
    f_pvalue: float
    n_obs: int
    reference_levels: dict = None

    @property
    def terms(self):
        return [c.term for c in self.coefficients]

    def coefficient(self, term):
        for c in self.coefficients:
            if c.term == term:
                return c
        raise KeyError(f"No term '{term}' in model for cohort '{self.cohort}'")


def significance_stars(p_value):
    """R-style significance code for a p-value."""
    if p_value is None or not np.isfinite(p_value):
        return ''
    if p_value < 0.001:
        return '***'
    if p_value < 0.01:
        return '**'
    if p_value < 0.05:
        return '*'
    if p_value < 0.1:
        return '.'
    return ''


def year_categorical(values, reference=None):
    """
    Build an explicit categorical of year values with a declared reference level.

    Parameters
    ----------
    values : array-like
        Observed years (no missing values).
    reference : int, optional
        Reference level, placed first. Defaults to the earliest year.

    Returns
    -------
    pandas.Categorical
        Categories are the sorted observed levels with ``reference`` moved to
        the front.
    """
    values = pd.Series(values)
    if pd.api.types.is_float_dtype(values) and (values % 1 == 0).all():
        values = values.astype('int64')

    levels = sorted(values.unique())
    if not levels:
        raise ValueError("Cannot build a categorical from no values")
    if reference is None:
        reference = levels[0]
    if reference not in levels:
        raise ValueError(f"Reference level {reference} is not among observed levels {levels}")

    ordered = [reference] + [level for level in levels if level != reference]
    return pd.Categorical(values, categories=ordered)


def resolve_reference_levels(data, categoricals, reference_levels=None):
    """
    Reference level of each categorical, restricted to levels present in ``data``.

    A declared level that ``data`` does not contain falls back to the earliest
    observed level, so one declaration can be shared by cohorts whose years
    do not overlap.

    Returns
    -------
    dict
        Variable -> reference level actually used.
    """
    reference_levels = reference_levels or {}
    resolved = {}
    for var in categoricals:
        levels = list(year_categorical(data[var]).categories)
        declared = reference_levels.get(var)
        resolved[var] = declared if declared in levels else levels[0]
    return resolved


def design_matrix(data, predictors, categoricals=(), reference_levels=None):
    """
    Constant, numeric predictors and treatment-coded dummies for categoricals.

    Dummy columns are named ``<variable>[T.<level>]``; the reference level of
    each categorical has no column.
    """
    reference_levels = reference_levels or {}
    X = data[list(predictors)].astype(float)
    for var in categoricals:
        codes = year_categorical(data[var], reference_levels.get(var))
        for level in codes.categories[1:]:
            X[f"{var}[T.{level}]"] = (codes == level).astype(float)
    X = sm.add_constant(X, prepend=True, has_constant='add')
    return X.rename(columns={'const': 'Intercept'})


def fit_cohort_model(cohort_name, records, response, predictors, categoricals=('year_built',),
                     reference_levels=None, min_rows=10):
    """
    Fit ordinary least squares for one cohort.

    Parameters
    ----------
    cohort_name : str
        Name carried into the result.
    records : DataFrame
        Cohort rows.
    response : str
        Response column (e.g. 'sale_price').
    predictors : list of str
        Numeric predictor columns.
    categoricals : sequence of str, optional
        Categorical controls, dummy-coded against a reference level.
        Default ('year_built',).
    reference_levels : dict, optional
        Reference level per categorical. Defaults to each variable's lowest
        observed level, which is also used when the declared level does not
        occur among the cohort's usable rows.
    min_rows : int, optional
        Cohorts with this many usable rows or fewer are not fitted. Default 10.

    Returns
    -------
    ModelResult or InsufficientData

    Notes
    -----
    Rows missing any consumed variable are dropped before counting; nothing
    is imputed.
    """
    columns = [response] + list(predictors) + list(categoricals)
    missing = [col for col in columns if col not in records.columns]
    if missing:
        raise KeyError(f"Cohort '{cohort_name}' is missing columns: {missing}")

    data = pd.DataFrame(records[columns]).dropna()
    n_obs = len(data)
    if n_obs <= min_rows:
        return InsufficientData(
            cohort=cohort_name,
            n_obs=n_obs,
            message=f"Not enough data to fit a model for {cohort_name}: "
                    f"{n_obs} usable rows (more than {min_rows} required)",
        )

    references = resolve_reference_levels(data, categoricals, reference_levels)
    X = design_matrix(data, predictors, categoricals, references)
    if n_obs <= X.shape[1]:
        return InsufficientData(
            cohort=cohort_name,
            n_obs=n_obs,
            message=f"Not enough data to fit a model for {cohort_name}: "
                    f"{n_obs} usable rows for {X.shape[1]} model terms",
        )

    y = data[response].astype(float)
    model = sm.OLS(y, X).fit()

    coefficients = [
        Coefficient(
            term=term,
            estimate=float(model.params[term]),
            std_error=float(model.bse[term]),
            t_value=float(model.tvalues[term]),
            p_value=float(model.pvalues[term]),
        )
        for term in model.params.index
    ]
    return ModelResult(
        cohort=cohort_name,
        coefficients=coefficients,
        residual_std_error=float(np.sqrt(model.scale)),
        df_residual=int(model.df_resid),
        df_model=int(model.df_model),
        r_squared=float(model.rsquared),
        adj_r_squared=float(model.rsquared_adj),
        f_statistic=float(model.fvalue),
        f_pvalue=float(model.f_pvalue),
        n_obs=n_obs,
        reference_levels=references,
    )


# =====================================================================
# Mean Comparison
# =====================================================================

def cohens_d(x, y):
    """
    Compute Cohen's d effect size between two samples.

    Parameters
    ----------
    x : array-like
        First sample
    y : array-like
        Second sample

    Returns
    -------
    float
        Cohen's d effect size (standardized mean difference), NaN when the
        pooled standard deviation is zero or undefined.

    Notes
    -----
    Uses pooled standard deviation with (n-1) degrees of freedom.
    """
    nx, ny = len(x), len(y)
    dof = nx + ny - 2
    if nx < 2 or ny < 2:
        return np.nan
    pooled_std = np.sqrt(((nx-1)*np.var(x, ddof=1) + (ny-1)*np.var(y, ddof=1)) / dof)
    if pooled_std == 0:
        return np.nan
    return (np.mean(x) - np.mean(y)) / pooled_std


def welch_df(x, y):
    """Welch-Satterthwaite degrees of freedom."""
    nx, ny = len(x), len(y)
    vx = np.var(x, ddof=1) / nx
    vy = np.var(y, ddof=1) / ny
    denom = vx**2 / (nx - 1) + vy**2 / (ny - 1)
    if denom == 0:
        return np.nan
    return (vx + vy)**2 / denom


@dataclass(frozen=True)
class TestResult:
    """Welch t-test of one variable between two cohorts."""

    __test__ = False  # not a pytest test class

    variable: str
    cohorts: tuple
    mean_a: float
    mean_b: float
    n_a: int
    n_b: int
    t_statistic: float
    df: float
    p_value: float
    significant: bool
    cohens_d: float

    @property
    def means(self):
        return {self.cohorts[0]: self.mean_a, self.cohorts[1]: self.mean_b}

    def display_means(self, decimals=2):
        """Means rounded for presentation; computations use the raw means."""
        return {name: round(mean, decimals) for name, mean in self.means.items()}


def compare_means(set_a, set_b, variable, names=('a', 'b'), alpha=0.05):
    """
    Welch two-sample t-test for a difference in means.

    Parameters
    ----------
    set_a, set_b : DataFrame
        The two cohort subsets.
    variable : str
        Column to compare. Missing values are dropped within each group.
    names : tuple of str, optional
        Cohort names for the result.
    alpha : float, optional
        Significance threshold for the flag. Default 0.05.

    Returns
    -------
    TestResult
        Two-sided p-value under unequal variances. Statistics are NaN when a
        group has fewer than two values.
    """
    a = pd.to_numeric(set_a[variable], errors='coerce').dropna().to_numpy(dtype=float)
    b = pd.to_numeric(set_b[variable], errors='coerce').dropna().to_numpy(dtype=float)

    mean_a = float(np.mean(a)) if len(a) else np.nan
    mean_b = float(np.mean(b)) if len(b) else np.nan

    if len(a) < 2 or len(b) < 2:
        t_stat, p_value, df = np.nan, np.nan, np.nan
    else:
        t_stat, p_value = stats.ttest_ind(a, b, equal_var=False)
        df = welch_df(a, b)

    return TestResult(
        variable=variable,
        cohorts=tuple(names),
        mean_a=mean_a,
        mean_b=mean_b,
        n_a=len(a),
        n_b=len(b),
        t_statistic=float(t_stat),
        df=float(df),
        p_value=float(p_value),
        significant=bool(np.isfinite(p_value) and p_value < alpha),
        cohens_d=float(cohens_d(a, b)),
    )


def compare_cohorts(cohorts, variables, alpha=0.05):
    """
    Run ``compare_means`` for every variable and every pair of cohorts.

    Pairs follow the order of ``cohorts``; variables follow ``variables``
    within each pair.
    """
    results = []
    for name_a, name_b in combinations(list(cohorts), 2):
        for variable in variables:
            results.append(compare_means(
                cohorts[name_a], cohorts[name_b], variable,
                names=(name_a, name_b), alpha=alpha,
            ))
    return results


# =====================================================================
# Per-Cohort Analysis
# =====================================================================

def analyze_cohorts(cohorts, response, predictors, categoricals=('year_built',), variables=(),
                    reference_levels=None, min_rows=10, alpha=0.05, max_workers=1,
                    verbose=True):
    """
    Fit a model for every cohort and compare cohorts on ``variables``.

    Parameters
    ----------
    cohorts : dict of str -> DataFrame
        Cohort subsets in output order.
    reference_levels : dict, optional
        Either variable -> level, shared by every cohort, or cohort name ->
        {variable: level}. A cohort without a usable declared level uses its
        earliest observed level.
    max_workers : int, optional
        Threads used for model fitting. Results are always returned in the
        order of ``cohorts``. Default 1.

    Returns
    -------
    tuple of (dict, list)
        Cohort name -> ModelResult or InsufficientData, and the list of
        TestResult objects.
    """
    names = list(cohorts)
    reference_levels = reference_levels or {}
    shared = {var: level for var, level in reference_levels.items() if not isinstance(level, dict)}

    def fit(name):
        return fit_cohort_model(
            name, cohorts[name], response, predictors, categoricals,
            reference_levels=reference_levels.get(name, shared), min_rows=min_rows,
        )

    if max_workers > 1 and len(names) > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            fitted = list(executor.map(fit, names))
    else:
        fitted = [fit(name) for name in names]

    models = dict(zip(names, fitted))
    if verbose:
        for name, result in models.items():
            if isinstance(result, InsufficientData):
                print(f"  {name}: {result.message}")
            else:
                print(f"  {name}: n={result.n_obs:,}, R²={result.r_squared:.3f}")

    tests = compare_cohorts(cohorts, variables, alpha=alpha)
    return models, tests
