# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Union

# Third Party Imports
import colorcet as cc
import pandas as pd
import plotly.graph_objects as go
import plotly.io as pio

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.errors import WorkflowIOError

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# ================================= GLOBAL VARIABLES ================================= #

largecolorset = list(
  cc.glasbey + cc.glasbey_light + cc.glasbey_warm + cc.glasbey_cool + cc.glasbey_dark
)

STATIC_FORMATS = {"png", "jpg", "jpeg", "pdf", "svg"}

# Define the plot template
pio.templates["metagenomics"] = go.layout.Template(
  layout={
    'title': {
      'font': {
        'family': 'HelveticaNeue-CondensedBold, Helvetica, Sans-serif',
        'size': 32,
        'color': '#000'
      }
    },
    'font': {
      'family': 'Helvetica Neue, Helvetica, Sans-serif',
      'size': 20,
      'color': '#000'
    },
    'paper_bgcolor': 'rgba(0, 0, 0, 0)', # Transparent
    'plot_bgcolor': '#fff',
    'colorway': largecolorset,
    'xaxis': {
      'showgrid': False,
      'zeroline': True,
      'showline': True,
      'linewidth': 3,
      'linecolor': 'black',
      'automargin': True,
      'mirror': True
    },
    'yaxis': {
      'showgrid': False,
      'zeroline': True,
      'showline': True,
      'linewidth': 3,
      'linecolor': 'black',
      'automargin': True,
      'mirror': True
    }
  }
)
pio.templates.default = "metagenomics"

# ==================================== FUNCTIONS ===================================== #

def create_colordict(
    data: pd.Series,
    color_set: List[str] = largecolorset
) -> Dict[str, str]:
    """
    Create consistent color mapping for categories.

    Args:
        data:      Series containing categorical values.
        color_set: List of colors to use for mapping.

    Returns:
        Dictionary mapping categories to colors.
    """
    categories = sorted(data.astype(str).unique())
    return {c: color_set[i % len(color_set)] for i, c in enumerate(categories)}


def apply_common_layout(
    fig: go.Figure,
    x_title: str,
    y_title: str,
    title: str = None,
    height: int = constants.DEFAULT_FIGURE_HEIGHT,
    width: int = constants.DEFAULT_FIGURE_WIDTH
) -> go.Figure:
    """
    Apply consistent layout to figures.

    Args:
        fig:     Plotly figure to configure.
        x_title: Label for x-axis.
        y_title: Label for y-axis.
        title:   Overall plot title.
        height:  Figure height in pixels.
        width:   Figure width in pixels.

    Returns:
        Configured Plotly figure.
    """
    layout_updates = {
        'template': 'metagenomics',
        'height': height,
        'width': width,
        'plot_bgcolor': '#fff',
    }
    if title:
        layout_updates.update({'title_text': title, 'title_x': 0.5})

    fig.update_layout(xaxis_title=x_title, yaxis_title=y_title, **layout_updates)
    return fig


def plotly_show_and_save(
    fig: go.Figure,
    show: bool = False,
    output_path: Union[str, Path] = None,
    save_as: Sequence[str] = tuple(constants.DEFAULT_FIGURE_FORMATS),
    scale: int = constants.DEFAULT_FIGURE_SCALE,
    verbose: bool = False,
) -> List[Path]:
    """
    Save a Plotly figure to static and/or HTML formats and optionally display it.

    Args:
        fig:         Plotly Figure object to be saved/displayed.
        show:        Whether to display the figure (default: False).
        output_path: Base output path; format-specific extensions are appended
                     (.png, .html). Directory will be created if needed.
        save_as:     Formats to save, e.g. ['png', 'html'].
        scale:       DPI‑like scale factor for raster outputs.
        verbose:     If True, logs each written file.

    Returns:
        Paths of the written files.

    Raises:
        WorkflowIOError: If a file cannot be written.

    Notes:
        - Saving static images requires kaleido: install with `pip install -U kaleido`.
    """
    written = []
    if output_path:
        output_path = Path(output_path).expanduser().resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        stem = str(output_path)
        for ext in list(STATIC_FORMATS) + ['html']:
            stem = stem.removesuffix(f'.{ext}')

        for ext in save_as:
            target = Path(f"{stem}.{ext}")
            try:
                if ext == 'html':
                    fig.write_html(str(target), include_plotlyjs="cdn")
                else:
                    fig.write_image(str(target), format=ext, scale=scale)
            except Exception as e:
                raise WorkflowIOError(
                    f"Failed to save figure '{target}': {e}. "
                    "Static formats need the kaleido export engine "
                    "(`pip install -U kaleido`)."
                ) from e
            written.append(target)
            if verbose:
                logger.info(f"Saved figure to '{target}'.")
            else:
                logger.debug(f"Saved figure to '{target}'.")
    if show:
        fig.show()
    return written
