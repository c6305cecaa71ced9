# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Optional

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics.config import FigureConfig, OrdinationConfig
from workflow_metagenomics.dataset.assembly import AnnotatedDataset
from workflow_metagenomics.figures.beta_diversity import create_ordination_plot
from workflow_metagenomics.figures.figures import plotly_show_and_save
from workflow_metagenomics.stats.beta_diversity import clr_transform, distance_matrix, pcoa
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.io import write_tsv
from workflow_metagenomics.utils.table_filtering import filter_prevalence

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ==================================== CLASSES ======================================= #

class Ordination:
    """
    Prevalence filter → CLR → distance matrix → PCoA, plotted on the first
    two axes. The distance matrix is kept in `results['distance_matrix']` for
    the association test.
    """
    def __init__(
        self,
        config: OrdinationConfig,
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
        filtered = filter_prevalence(
            dataset.table,
            min_abundance=self.config.min_abundance,
            min_prevalence=self.config.min_prevalence
        )
        transformed = clr_transform(filtered, pseudocount=self.config.pseudocount)
        dm = distance_matrix(transformed, metric=self.config.metric)
        ordination = pcoa(dm, n_dimensions=self.config.n_dimensions)

        fig, colordict = create_ordination_plot(
            ordination.samples,
            dataset.metadata,
            proportion_explained=ordination.proportion_explained,
            color_col=self.config.color_column,
            height=self.figure_config.height,
            width=self.figure_config.width
        )
        self.results = {
            'filtered': filtered,
            'transformed': transformed,
            'distance_matrix': dm,
            'pcoa': ordination,
            'figure': fig,
            'colordict': colordict,
        }

        if dirs is not None:
            table_dir = dirs.table_dir('ordination')
            write_tsv(
                ordination.samples, table_dir / 'pcoa_coordinates.tsv',
                index_label='sample_id'
            )
            write_tsv(
                ordination.proportion_explained.rename('proportion_explained').to_frame(),
                table_dir / 'pcoa_proportion_explained.tsv',
                index_label='axis'
            )
            self.results['figure_paths'] = plotly_show_and_save(
                fig,
                output_path=dirs.figure_dir('ordination') / f"pcoa_clr_{self.config.color_column}",
                save_as=self.figure_config.formats,
                scale=self.figure_config.scale,
                verbose=self.verbose
            )
        return self.results
