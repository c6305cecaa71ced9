# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Optional

# Third‑Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics.config import AlphaConfig, FigureConfig
from workflow_metagenomics.dataset.assembly import AnnotatedDataset
from workflow_metagenomics.figures.alpha_diversity import create_alpha_diversity_boxplot
from workflow_metagenomics.figures.figures import plotly_show_and_save
from workflow_metagenomics.stats.alpha_diversity import (
    alpha_diversity, compare_groups, join_with_metadata
)
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.io import write_tsv

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ==================================== CLASSES ======================================= #

class AlphaDiversity:
    """Per-sample alpha diversity, compared between two metadata groups."""
    def __init__(
        self,
        config: AlphaConfig,
        figure_config: Optional[FigureConfig] = None,
        verbose: bool = False
    ):
        self.config = config
        self.figure_config = figure_config or FigureConfig()
        self.verbose = verbose
        self.results: Dict[str, Any] = {}

    def run(
        self,
        dataset: AnnotatedDataset,
        dirs: Optional[SubDirs] = None
    ) -> Dict[str, Any]:
        metric = self.config.metric
        scores = alpha_diversity(dataset.table, metric=metric)
        joined = join_with_metadata(scores, dataset.metadata)
        comparison = compare_groups(
            joined,
            metric,
            group_column=self.config.group_column,
            groups=self.config.groups,
            test=self.config.test
        )
        logger.info(
            f"{metric.title()} {comparison['group_1']} (n={comparison['n_1']}, "
            f"mean={comparison['mean_1']:.3f}) vs {comparison['group_2']} "
            f"(n={comparison['n_2']}, mean={comparison['mean_2']:.3f}): "
            f"{comparison['test']} p={comparison['p_value']:.4g}"
        )

        fig = create_alpha_diversity_boxplot(
            joined,
            metric,
            group_column=self.config.group_column,
            groups=self.config.groups,
            comparison=comparison,
            height=self.figure_config.height,
            width=self.figure_config.width
        )
        self.results = {
            'scores': scores,
            'joined': joined,
            'comparison': comparison,
            'figure': fig,
        }

        if dirs is not None:
            table_dir = dirs.table_dir('alpha_diversity')
            write_tsv(
                joined[[self.config.group_column, metric]],
                table_dir / 'alpha_diversity.tsv',
                index_label='sample_id'
            )
            write_tsv(
                pd.DataFrame([comparison]),
                table_dir / 'alpha_diversity_stats.tsv',
                index=False
            )
            self.results['figure_paths'] = plotly_show_and_save(
                fig,
                output_path=dirs.figure_dir('alpha_diversity') / f"{metric}_{self.config.group_column}",
                save_as=self.figure_config.formats,
                scale=self.figure_config.scale,
                verbose=self.verbose
            )
        return self.results
