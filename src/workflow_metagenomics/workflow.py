"""
Shotgun Metagenomics Exploratory Analysis
----------------------------------------------------------------------------------------
Assembles a species-abundance table, its taxonomy and sample metadata into one
annotated dataset, then runs alpha diversity, CLR/PCoA ordination, PERMANOVA and
per-feature differential abundance, writing tables and figures under one output
directory.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

# Third-Party Imports
import pandas as pd

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.analysis.alpha_diversity import AlphaDiversity
from workflow_metagenomics.analysis.association import Association
from workflow_metagenomics.analysis.differential_abundance import DifferentialAbundance
from workflow_metagenomics.analysis.ordination import Ordination
from workflow_metagenomics.config import InputConfig, WorkflowConfig, load_workflow_config
from workflow_metagenomics.dataset.assembly import (
    AnnotatedDataset, assemble_dataset, load_snapshot, save_snapshot
)
from workflow_metagenomics.errors import (
    FilterExhaustionError, InputValidationError, InsufficientSamplesError, JoinError,
    WorkflowError, WorkflowIOError
)
from workflow_metagenomics.logger import log_step_summary, setup_logging
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.io import (
    import_abundance_table, import_metadata, import_taxonomy_table
)

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

COMPLETED, FAILED, SKIPPED, DISABLED = 'completed', 'failed', 'skipped', 'disabled'

# Errors that end a single analysis step; everything else propagates
STEP_ERRORS = (JoinError, FilterExhaustionError, InsufficientSamplesError)

# =================================== FUNCTIONS ====================================== #

def load_inputs(inputs: InputConfig) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    abundance = import_abundance_table(inputs.abundance)
    taxonomy = import_taxonomy_table(inputs.taxonomy)
    metadata = import_metadata(inputs.metadata, inputs.metadata_id_column)
    logger.info(
        f"Loaded abundance {abundance.shape[0]} features × {abundance.shape[1]} samples, "
        f"taxonomy for {taxonomy.shape[0]} features, metadata for {metadata.shape[0]} samples"
    )
    return abundance, taxonomy, metadata


def prepare_dataset(
    inputs: InputConfig,
    abundance: pd.DataFrame,
    taxonomy: pd.DataFrame,
    metadata: pd.DataFrame,
    dirs: SubDirs
) -> AnnotatedDataset:
    """Reload the dataset snapshot when requested and present, otherwise
    assemble it from the input tables and write a fresh snapshot."""
    snapshot = dirs.dataset / constants.SNAPSHOT_TABLE
    if inputs.reuse_snapshot and snapshot.exists():
        logger.info(f"Reusing dataset snapshot: {dirs.dataset}")
        return load_snapshot(dirs.dataset)
    if inputs.reuse_snapshot:
        logger.warning(f"No dataset snapshot at '{snapshot}'; assembling from inputs")

    dataset = assemble_dataset(
        abundance, taxonomy, metadata, taxonomy_policy=inputs.taxonomy_policy
    )
    save_snapshot(dataset, dirs.dataset)
    return dataset


def _run_step(
    name: str,
    enabled: bool,
    func: Callable[[], Any],
    summary: Dict[str, str]
) -> Optional[Any]:
    if not enabled:
        logger.info(f"Skipping {name.replace('_', ' ')} (disabled)")
        summary[name] = DISABLED
        return None
    logger.info(f"Running {name.replace('_', ' ')}")
    try:
        result = func()
    except STEP_ERRORS as e:
        logger.error(f"{name.replace('_', ' ').capitalize()} failed: {type(e).__name__}: {e}")
        summary[name] = FAILED
        return None
    summary[name] = COMPLETED
    return result


def run_workflow(
    config: WorkflowConfig,
    output_dir: Optional[Union[str, Path]] = None,
    dirs: Optional[SubDirs] = None,
    verbose: bool = False
) -> Dict[str, str]:
    """
    Run every enabled analysis once, in order.

    Any of STEP_ERRORS ends only the step that raised it; PERMANOVA is
    skipped when ordination produced no distance matrix.
    InputValidationError and WorkflowIOError propagate to the caller.

    Args:
        config:     Workflow configuration.
        output_dir: Overrides `config.output_dir`.
        dirs:       Pre-built output tree (takes precedence over output_dir).
        verbose:    Log every written figure at INFO.

    Returns:
        Step name → 'completed' | 'failed' | 'skipped' | 'disabled'.
    """
    dirs = dirs or SubDirs(output_dir or config.output_dir)
    summary: Dict[str, str] = {}

    abundance, taxonomy, metadata = load_inputs(config.inputs)
    dataset = prepare_dataset(config.inputs, abundance, taxonomy, metadata, dirs)
    summary['dataset'] = COMPLETED

    _run_step(
        'alpha_diversity',
        config.alpha_diversity.enabled,
        lambda: AlphaDiversity(
            config.alpha_diversity, config.figures, verbose
        ).run(dataset, dirs),
        summary
    )

    ordination = _run_step(
        'ordination',
        config.ordination.enabled,
        lambda: Ordination(config.ordination, config.figures, verbose).run(dataset, dirs),
        summary
    )

    if config.permanova.enabled and ordination is None:
        logger.warning("Skipping PERMANOVA: no distance matrix from ordination")
        summary['permanova'] = SKIPPED
    else:
        _run_step(
            'permanova',
            config.permanova.enabled,
            lambda: Association(config.permanova).run(
                ordination['distance_matrix'], dataset.metadata, dirs
            ),
            summary
        )

    # Differential abundance works on the raw tables, not the assembled dataset
    _run_step(
        'differential_abundance',
        config.differential_abundance.enabled,
        lambda: DifferentialAbundance(
            config.differential_abundance, config.figures, verbose
        ).run(abundance, metadata, dirs),
        summary
    )

    logger.info("Workflow finished")
    log_step_summary(summary)
    return summary

# ======================================= CLI ======================================== #

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Exploratory analysis of shotgun metagenomic abundance data."
    )
    parser.add_argument(
        "--config", type=Path, default=constants.DEFAULT_CONFIG_PATH,
        help="Path to the YAML configuration file."
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None,
        help="Override the output directory from the configuration."
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level."
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log every written figure."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_workflow_config(args.config)
        dirs = SubDirs(args.output_dir or config.output_dir)
    except (InputValidationError, OSError) as e:
        logger.critical(f"Cannot start workflow: {e}")
        return 1

    setup_logging(dirs.logs, console_level=getattr(logging, args.log_level))
    logger.info(f"Configuration: {Path(args.config).resolve()}")
    try:
        summary = run_workflow(config, dirs=dirs, verbose=args.verbose)
    except (InputValidationError, WorkflowIOError) as e:
        logger.critical(f"Workflow aborted: {type(e).__name__}: {e}")
        return 1
    except WorkflowError as e:
        logger.exception(f"Workflow aborted by an unexpected error: {e}")
        return 1
    failed = [step for step, status in summary.items() if status == FAILED]
    if failed:
        logger.warning(f"Steps that did not complete: {failed}")
    return 0
