# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Optional

# Third‑Party Imports
import pandas as pd
from skbio.stats.distance import DistanceMatrix

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics.config import PermanovaConfig
from workflow_metagenomics.stats.permanova import permanova
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.io import write_tsv

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ==================================== CLASSES ======================================= #

class Association:
    """PERMANOVA of a sample distance matrix against metadata covariates."""
    def __init__(self, config: PermanovaConfig):
        self.config = config
        self.results: Optional[pd.DataFrame] = None

    def run(
        self,
        dm: DistanceMatrix,
        metadata: pd.DataFrame,
        dirs: Optional[SubDirs] = None
    ) -> pd.DataFrame:
        results = permanova(
            dm,
            metadata,
            terms=self.config.terms,
            permutations=self.config.permutations,
            seed=self.config.seed
        )
        with pd.option_context('display.float_format', '{:.4g}'.format):
            logger.info(
                f"PERMANOVA ({self.config.permutations} permutations, "
                f"terms: {' + '.join(self.config.terms)}):\n{results.to_string()}"
            )
        self.results = results

        if dirs is not None:
            write_tsv(results, dirs.table_dir('permanova') / 'permanova.tsv')
        return results
