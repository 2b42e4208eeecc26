"""
Packaging of model and test results into tables for report and figure consumers.

Tables are built once here and read by everything downstream. No statistics
are computed; the only rounding is the display rounding of comparison means.
"""

from dataclasses import dataclass, field

import pandas as pd

from transit_housing.analysis import significance_stars
from transit_housing.errors import InsufficientData


REGRESSION_COLUMNS = ['Predictor', 'Estimate', 'Std. Error', 't value', 'Pr(>|t|)', 'Significance']

FIT_COLUMNS = [
    'Cohort', 'N', 'Residual Std. Error', 'DF', 'R-squared', 'Adj. R-squared',
    'F-statistic', 'F p-value', 'Note',
]

MEAN_DECIMALS = 2


@dataclass
class ResultTable:
    """Ordered rows of column name -> value, with an optional note."""

    title: str
    columns: list
    rows: list = field(default_factory=list)
    note: str = None

    def __len__(self):
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def column(self, name):
        if name not in self.columns:
            raise KeyError(f"Table '{self.title}' has no column '{name}'")
        return [row[name] for row in self.rows]

    def to_frame(self):
        return pd.DataFrame(self.rows, columns=self.columns)


def regression_table(result):
    """
    Coefficient table for one cohort.

    An ``InsufficientData`` result gives an empty table whose note carries the
    explanation.
    """
    title = f"Regression: {result.cohort}"
    if isinstance(result, InsufficientData):
        return ResultTable(title=title, columns=list(REGRESSION_COLUMNS), note=result.message)

    rows = [
        {
            'Predictor': c.term,
            'Estimate': c.estimate,
            'Std. Error': c.std_error,
            't value': c.t_value,
            'Pr(>|t|)': c.p_value,
            'Significance': significance_stars(c.p_value),
        }
        for c in result.coefficients
    ]
    return ResultTable(title=title, columns=list(REGRESSION_COLUMNS), rows=rows)


def regression_tables(results):
    """Cohort name -> coefficient table, in the order of ``results``."""
    return {name: regression_table(result) for name, result in results.items()}


def fit_statistics_table(results):
    rows = []
    for name, result in results.items():
        if isinstance(result, InsufficientData):
            rows.append({
                'Cohort': name, 'N': result.n_obs, 'Residual Std. Error': None, 'DF': None,
                'R-squared': None, 'Adj. R-squared': None, 'F-statistic': None,
                'F p-value': None, 'Note': result.message,
            })
            continue
        rows.append({
            'Cohort': name,
            'N': result.n_obs,
            'Residual Std. Error': result.residual_std_error,
            'DF': result.df_residual,
            'R-squared': result.r_squared,
            'Adj. R-squared': result.adj_r_squared,
            'F-statistic': result.f_statistic,
            'F p-value': result.f_pvalue,
            'Note': '',
        })
    return ResultTable(title='Model fit statistics', columns=list(FIT_COLUMNS), rows=rows)


def comparison_table(tests, cohort_names):
    """
    Mean comparison table with one ``Mean <cohort>`` column per cohort.

    Parameters
    ----------
    tests : list of TestResult
    cohort_names : list of str
        Cohorts in column order. A row leaves the means of cohorts outside its
        pair empty.

    Returns
    -------
    ResultTable
        Columns: Variable, Mean <name>..., p-value, Significant.
    """
    mean_columns = [f"Mean {name}" for name in cohort_names]
    columns = ['Variable'] + mean_columns + ['p-value', 'Significant']

    rows = []
    for test in tests:
        row = {'Variable': test.variable}
        row.update({col: None for col in mean_columns})
        for name, mean in test.display_means(MEAN_DECIMALS).items():
            row[f"Mean {name}"] = mean
        row['p-value'] = test.p_value
        row['Significant'] = test.significant
        rows.append(row)
    return ResultTable(title='Cohort mean comparison', columns=columns, rows=rows)
