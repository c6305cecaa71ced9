# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Optional, Tuple

# Third Party Imports
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, JoinError
from workflow_metagenomics.figures.figures import apply_common_layout, create_colordict

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# ================================ VISUALIZATIONS ================================== #

def create_ordination_plot(
    components: pd.DataFrame,
    metadata: pd.DataFrame,
    proportion_explained: Optional[pd.Series] = None,
    color_col: str = constants.DEFAULT_COLOR_COLUMN,
    dimensions: Tuple[int, int] = (1, 2),
    transformation: str = 'clr',
    placeholder: str = 'unknown',
    height: int = constants.DEFAULT_FIGURE_HEIGHT,
    width: int = constants.DEFAULT_FIGURE_WIDTH
) -> Tuple[go.Figure, dict]:
    """
    Scatter plot of two PCoA axes coloured by a metadata column.

    Args:
        components:           Sample coordinates with PCo1, PCo2, ... columns.
        metadata:             Sample-indexed metadata.
        proportion_explained: Variance explained per axis, indexed like the columns.
        color_col:            Column to use for coloring points.
        dimensions:           Tuple of dimensions to plot (x,y).
        transformation:       Data transformation applied, used in the title.
        placeholder:          Label for samples with a missing colour value.
        height:               Figure height in pixels.
        width:                Figure width in pixels.

    Returns:
        Tuple containing figure and color mapping dictionary.

    Raises:
        JoinError: If the colour column is missing or samples lack metadata.
        InputValidationError: If a requested axis is not among the components.
    """
    if color_col not in metadata.columns:
        raise JoinError(f"Colour column '{color_col}' not found in metadata")
    missing = [s for s in components.index if s not in metadata.index]
    if missing:
        raise JoinError(f"{len(missing)} ordinated samples have no metadata: {missing[:5]}")

    x_col, y_col = (f"PCo{d}" for d in dimensions)
    for col in (x_col, y_col):
        if col not in components.columns:
            raise InputValidationError(
                f"Column '{col}' not found. Available: {list(components.columns)[:5]}"
            )

    data = components[[x_col, y_col]].copy()
    data[color_col] = metadata.loc[data.index, color_col].astype(str).replace('nan', placeholder)
    data['sample_id'] = data.index
    colordict = create_colordict(data[color_col])

    if proportion_explained is not None:
        x_title = f"{x_col} ({proportion_explained[x_col] * 100:.1f}%)"
        y_title = f"{y_col} ({proportion_explained[y_col] * 100:.1f}%)"
    else:
        x_title, y_title = x_col, y_col

    fig = px.scatter(
        data,
        x=x_col,
        y=y_col,
        color=color_col,
        color_discrete_map=colordict,
        hover_data=['sample_id', color_col],
        category_orders={color_col: list(colordict)},
    )
    fig.update_traces(marker=dict(size=12, opacity=0.85, line=dict(width=0.5, color='black')))
    fig = apply_common_layout(
        fig, x_title, y_title, f"PCoA: {transformation.upper()} ({color_col})",
        height=height, width=width
    )
    fig.update_layout(xaxis=dict(scaleanchor="y", scaleratio=1.0))
    return fig, colordict
