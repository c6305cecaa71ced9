# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Sequence

# Third Party Imports
import numpy as np
import pandas as pd
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.figures.figures import apply_common_layout, create_colordict

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

TEST_LABELS = {'t-test': "Welch's t-test", 'mann-whitney': 'Mann-Whitney U'}

# ================================ VISUALIZATIONS ================================== #

def format_p_value(p_value: float) -> str:
    if p_value is None or not np.isfinite(p_value):
        return "p = n/a"
    if p_value < 0.0001:
        return "p < 0.0001"
    return f"p = {p_value:.4f}"


def create_alpha_diversity_boxplot(
    joined: pd.DataFrame,
    metric: str,
    group_column: str,
    groups: Sequence[Any],
    comparison: Dict[str, Any],
    add_points: bool = True,
    height: int = constants.DEFAULT_FIGURE_HEIGHT,
    width: int = constants.DEFAULT_FIGURE_WIDTH
) -> go.Figure:
    """
    Box plot of an alpha diversity metric, one box per group, annotated with
    the two-group test result.

    Args:
        joined:       Metadata with the metric column (from join_with_metadata).
        metric:       Alpha diversity metric to plot.
        group_column: Column in metadata defining groups.
        groups:       Group labels to plot, in order.
        comparison:   Output of compare_groups.
        add_points:   Overlay individual samples.
        height:       Figure height in pixels.
        width:        Figure width in pixels.

    Returns:
        Plotly Figure object
    """
    labels = joined[group_column].astype(str)
    colordict = create_colordict(pd.Series([str(g) for g in groups]))

    fig = go.Figure()
    for group in groups:
        group_data = joined.loc[labels == str(group), metric]
        fig.add_trace(go.Box(
            y=group_data,
            name=f"{group} (n={len(group_data)})",
            boxpoints='all' if add_points else False,
            jitter=0.3,
            pointpos=-1.8,
            marker=dict(size=6, color=colordict[str(group)]),
            text=group_data.index.tolist(),
        ))

    metric_title = metric.replace('_', ' ').title()
    fig = apply_common_layout(
        fig, group_column, metric_title,
        f"{metric_title} by '{group_column}'",
        height=height, width=width
    )
    fig.update_layout(showlegend=False)

    test_label = TEST_LABELS.get(comparison.get('test'), comparison.get('test'))
    fig.add_annotation(
        x=0.5,
        y=1.02,
        xref="paper",
        yref="paper",
        text=f"{test_label}: {format_p_value(comparison.get('p_value'))}",
        showarrow=False,
        font=dict(size=18)
    )
    return fig
