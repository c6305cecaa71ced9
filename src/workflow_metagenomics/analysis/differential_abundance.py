# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Optional

# Third‑Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics.config import DifferentialAbundanceConfig, FigureConfig
from workflow_metagenomics.figures.differential_abundance import create_coefficient_barplot
from workflow_metagenomics.figures.figures import plotly_show_and_save
from workflow_metagenomics.stats.differential_abundance import differential_abundance
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.io import write_tsv

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ==================================== CLASSES ======================================= #

class DifferentialAbundance:
    """
    Per-feature association models on the raw abundance table.

    Significant associations are plotted straight from the in-memory result;
    the TSV outputs are for the reader, not re-read by the workflow.
    """
    def __init__(
        self,
        config: DifferentialAbundanceConfig,
        figure_config: Optional[FigureConfig] = None,
        verbose: bool = False
    ):
        self.config = config
        self.figure_config = figure_config or FigureConfig()
        self.verbose = verbose
        self.results: Dict[str, Any] = {}

    def run(
        self,
        abundance: pd.DataFrame,
        metadata: pd.DataFrame,
        dirs: Optional[SubDirs] = None
    ) -> Dict[str, Any]:
        cfg = self.config
        result = differential_abundance(
            abundance,
            metadata,
            fixed_effects=cfg.fixed_effects,
            random_effects=cfg.random_effects,
            reference=cfg.reference,
            normalization=cfg.normalization,
            transform_method=cfg.transform,
            analysis_method=cfg.analysis_method,
            min_abundance=cfg.min_abundance,
            min_prevalence=cfg.min_prevalence,
            min_nonzero=cfg.min_nonzero,
            max_significance=cfg.max_significance,
            correction=cfg.correction
        )

        covariate = cfg.covariate_of_interest
        fig = create_coefficient_barplot(
            result.for_covariate(covariate),
            covariate,
            height=self.figure_config.height,
            width=self.figure_config.width
        )
        self.results = {'result': result, 'figure': fig}

        if dirs is not None:
            table_dir = dirs.table_dir('differential_abundance')
            write_tsv(result.all_results, table_dir / 'all_results.tsv', index=False)
            write_tsv(
                result.significant_results, table_dir / 'significant_results.tsv',
                index=False
            )
            write_tsv(result.excluded, table_dir / 'excluded_features.tsv', index=False)
            self.results['figure_paths'] = plotly_show_and_save(
                fig,
                output_path=dirs.figure_dir('differential_abundance') / f"coefficients_{covariate}",
                save_as=self.figure_config.formats,
                scale=self.figure_config.scale,
                verbose=self.verbose
            )
        return self.results
