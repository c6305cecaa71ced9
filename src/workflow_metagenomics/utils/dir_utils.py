# ===================================== IMPORTS ====================================== #

from pathlib import Path
from typing import Union

import logging

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# ==================================== FUNCTIONS ===================================== #

ANALYSES = ('alpha_diversity', 'ordination', 'permanova', 'differential_abundance')


class SubDirs:
    """Output directory tree for one workflow run."""
    def __init__(self, dir_path: Union[str, Path]):
        self.main = Path(dir_path)
        self.logs = self.main / 'logs'
        self.dataset = self.main / 'dataset'
        self.tables = self.main / 'tables'
        self.figures = self.main / 'figures'
        self.create_dirs()

    def create_dirs(self):
        dirs = [self.main, self.logs, self.dataset, self.tables, self.figures]
        dirs += [self.tables / a for a in ANALYSES]
        dirs += [self.figures / a for a in ANALYSES if a != 'permanova']
        for _dir in dirs:
            _dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Output directories ready under: {self.main}")

    def table_dir(self, analysis: str) -> Path:
        return self.tables / analysis

    def figure_dir(self, analysis: str) -> Path:
        return self.figures / analysis
