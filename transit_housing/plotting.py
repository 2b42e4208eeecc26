"""
Figures for the enriched property table.

These functions only render: they read the columns the pipeline guarantees
(x, y, sale_price, cohort and the comparison variables) and save a PNG.
"""

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns


def plot_price_map(features, output_path, cohort_column='cohort'):
    """
    Scatter map of cohort properties coloured by cohort and sized by sale price.

    Parameters
    ----------
    features : DataFrame
        Enriched properties with x, y, sale_price and ``cohort_column``.
    output_path : str or Path
        Output file path for figure

    Returns
    -------
    None
        Saves figure to file
    """
    data = features[features[cohort_column].notna()]
    data = data[np.isfinite(data['sale_price'])]

    fig, ax = plt.subplots(figsize=(8, 8))
    sns.scatterplot(
        data=data, x='x', y='y', hue=cohort_column, size='sale_price',
        sizes=(5, 60), alpha=0.6, edgecolor='none', ax=ax,
    )
    ax.set_aspect('equal')
    ax.set_xlabel('Easting')
    ax.set_ylabel('Northing')
    ax.set_title('Sale Price by Construction Cohort')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close()

    print(f"Price map saved to {output_path}")


def plot_comparison_boxplots(features, variables, output_path, cohort_column='cohort'):
    """
    One box plot per comparison variable, split by cohort.

    Parameters
    ----------
    features : DataFrame
        Enriched properties with ``cohort_column`` and every variable.
    variables : list of str
        Columns to plot.
    output_path : str or Path
        Output file path for figure

    Returns
    -------
    None
        Saves figure to file
    """
    data = features[features[cohort_column].notna()]

    fig, axes = plt.subplots(1, len(variables), figsize=(4 * len(variables), 5), squeeze=False)
    for ax, variable in zip(axes[0], variables):
        sns.boxplot(data=data, x=cohort_column, y=variable, ax=ax)
        ax.set_xlabel('Cohort')
        ax.set_ylabel(variable.replace('_', ' ').title())
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close()

    print(f"Comparison plots saved to {output_path}")
