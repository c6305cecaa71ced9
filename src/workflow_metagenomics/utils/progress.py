# ===================================== IMPORTS ====================================== #

# Third-Party Imports
from rich.progress import (
    BarColumn, Progress, ProgressColumn, SpinnerColumn, Task, TextColumn,
    TimeElapsedColumn
)
from rich.text import Text

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.logger import console

# ============================== CUSTOM PROGRESS COLUMNS ============================= #

class FeatureCountColumn(ProgressColumn):
    """Features processed so far out of the total, e.g. ' 42/120'."""

    def render(self, task: Task) -> Text:
        total = "?" if task.total is None else f"{task.total:.0f}"
        return Text(
            f"{task.completed:>{len(total)}.0f}/{total}",
            style=constants.DEFAULT_M_OF_N_COMPLETE_STYLE,
            justify="right"
        )


class ExcludedFeaturesColumn(ProgressColumn):
    """Running count of features excluded from model fitting (task field
    'excluded'); hidden while it is zero."""

    def render(self, task: Task) -> Text:
        excluded = task.fields.get('excluded', 0)
        if not excluded:
            return Text("")
        return Text(f"{excluded} excluded", style=constants.DEFAULT_EXCLUDED_STYLE)

# ===================================== FUNCTIONS ==================================== #

def get_progress_bar(transient: bool = False) -> Progress:
    """Progress bar for per-feature loops, drawn on the logging console."""
    return Progress(
        SpinnerColumn(
            "dots",
            style=constants.DEFAULT_BAR_COLUMN_COMPLETE_STYLE,
            speed=0.75
        ),
        TextColumn(
            "{task.description}",
            style=constants.DEFAULT_DESCRIPTION_STYLE,
            justify="left"
        ),
        FeatureCountColumn(),
        BarColumn(
            bar_width=constants.DEFAULT_BAR_WIDTH,
            style="black",
            complete_style=constants.DEFAULT_BAR_COLUMN_COMPLETE_STYLE,
            finished_style=constants.DEFAULT_FINISHED_STYLE
        ),
        TimeElapsedColumn(),
        ExcludedFeaturesColumn(),
        console=console,
        transient=transient,
        expand=False
    )


def format_task_description(desc: str) -> str:
    return f"{desc:<{constants.DEFAULT_PROGRESS_TEXT_N}}"
