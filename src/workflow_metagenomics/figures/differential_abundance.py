# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging

# Third Party Imports
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.figures.figures import apply_common_layout

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# ================================ VISUALIZATIONS ================================== #

def create_coefficient_barplot(
    significant: pd.DataFrame,
    covariate: str,
    height: int = constants.DEFAULT_FIGURE_HEIGHT,
    width: int = constants.DEFAULT_FIGURE_WIDTH
) -> go.Figure:
    """
    Horizontal bar chart of model coefficients for one covariate, one facet
    per covariate level, bars coloured by direction of the effect.

    Args:
        significant: Significant results (feature, metadata, value, coef, qval).
        covariate:   Covariate whose rows are plotted.
        height:      Figure height in pixels.
        width:       Figure width in pixels.

    Returns:
        Plotly Figure object (empty with a note when nothing is significant).
    """
    data = significant[significant['metadata'] == covariate].copy()
    if data.empty:
        logger.warning(f"No significant associations for '{covariate}' to plot")
        fig = go.Figure()
        fig.add_annotation(
            text=f"No significant associations for '{covariate}'",
            x=0.5, y=0.5, xref="paper", yref="paper", showarrow=False
        )
        return apply_common_layout(fig, "Coefficient", "Feature", covariate,
                                   height=height, width=width)

    data['direction'] = data['coef'].map(lambda c: 'Increased' if c > 0 else 'Decreased')
    data = data.sort_values('coef')
    levels = list(dict.fromkeys(data['value']))

    fig = px.bar(
        data,
        x='coef',
        y='feature',
        orientation='h',
        color='direction',
        color_discrete_map={'Increased': '#d62728', 'Decreased': '#1f77b4'},
        facet_col='value',
        category_orders={'value': levels},
        hover_data=['qval', 'stderr'],
    )
    fig.for_each_annotation(lambda a: a.update(text=a.text.split('=')[-1]))
    fig.update_yaxes(matches=None, showticklabels=True)
    fig = apply_common_layout(
        fig, "Coefficient", "Feature",
        f"Significant associations: {covariate}",
        height=height, width=width
    )
    return fig
