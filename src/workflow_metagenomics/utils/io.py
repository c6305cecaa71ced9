# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, WorkflowIOError

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ================================= HELPER FUNCTIONS ================================= #

def _separator(path: Path) -> str:
    return ',' if path.suffix.lower() == '.csv' else '\t'


def _read_table(path: Union[str, Path], what: str, **kwargs) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise WorkflowIOError(f"{what} file not found: {path}")
    try:
        return pd.read_csv(path, sep=_separator(path), **kwargs)
    except pd.errors.EmptyDataError as e:
        raise InputValidationError(f"{what} file '{path}' is empty") from e
    except pd.errors.ParserError as e:
        raise InputValidationError(f"{what} file '{path}' could not be parsed: {e}") from e
    except OSError as e:
        raise WorkflowIOError(f"Cannot read {what.lower()} file '{path}': {e}") from e


def _check_unique(index: pd.Index, what: str, source: str) -> None:
    if index.empty:
        raise InputValidationError(f"{source}: no {what} identifiers found")
    dupes = index[index.duplicated()].unique().tolist()
    if dupes:
        raise InputValidationError(
            f"{source}: duplicate {what} identifiers: {dupes[:5]}"
            f"{'...' if len(dupes) > 5 else ''}"
        )
    if index.isna().any() or (index.astype(str).str.strip() == '').any():
        raise InputValidationError(f"{source}: empty {what} identifier")

# ================================= VALIDATION ======================================= #

def validate_abundance(df: pd.DataFrame, source: str = 'abundance table') -> pd.DataFrame:
    """Check an AbundanceMatrix (features × samples) and return it as floats.

    Args:
        df:     Abundance table, features as index and samples as columns.
        source: Label used in error messages (usually the file path).

    Raises:
        InputValidationError: Empty table, duplicate or blank identifiers,
            non-numeric, missing or negative values.
    """
    if df.shape[0] == 0 or df.shape[1] == 0:
        raise InputValidationError(
            f"{source}: expected a non-empty features × samples table, got shape {df.shape}"
        )
    _check_unique(df.index, 'feature', source)
    _check_unique(df.columns, 'sample', source)

    numeric = df.apply(pd.to_numeric, errors='coerce')
    bad = numeric.isna() & df.notna()
    if bad.values.any():
        feature, sample = bad.stack()[bad.stack()].index[0]
        raise InputValidationError(
            f"{source}: non-numeric abundance value {df.loc[feature, sample]!r} "
            f"for feature '{feature}', sample '{sample}'"
        )
    if numeric.isna().values.any():
        feature, sample = numeric.isna().stack()[numeric.isna().stack()].index[0]
        raise InputValidationError(
            f"{source}: missing abundance value for feature '{feature}', sample '{sample}'"
        )
    if not np.isfinite(numeric.values).all():
        raise InputValidationError(f"{source}: abundance values must be finite")
    if (numeric.values < 0).any():
        raise InputValidationError(f"{source}: abundance values must be non-negative")
    return numeric.astype(float)

# ==================================== IMPORTS ======================================= #

def import_abundance_table(path: Union[str, Path]) -> pd.DataFrame:
    """Load a features × samples abundance table (first column = feature id)."""
    df = _read_table(path, 'Abundance', index_col=0)
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    df.index.name = constants.DEFAULT_FEATURE_ID_COLUMN
    df = validate_abundance(df, source=str(path))
    logger.info(f"Loaded abundance table {df.shape[0]} features × {df.shape[1]} samples")
    return df


def import_taxonomy_table(path: Union[str, Path]) -> pd.DataFrame:
    """Load a feature → rank table.

    Accepts either one column per rank or a single `Taxon` column of
    `;`-delimited ranks (QIIME style), which is split into `TAXONOMIC_RANKS`.
    """
    df = _read_table(path, 'Taxonomy', index_col=0, dtype=str)
    df.index = df.index.astype(str)
    df.index.name = constants.DEFAULT_FEATURE_ID_COLUMN
    _check_unique(df.index, 'feature', str(path))

    if constants.DEFAULT_TAXON_COLUMN in df.columns:
        df = split_taxon_column(df[constants.DEFAULT_TAXON_COLUMN])
    if df.shape[1] == 0:
        raise InputValidationError(f"{path}: taxonomy table has no rank columns")
    logger.info(f"Loaded taxonomy for {df.shape[0]} features ({df.shape[1]} ranks)")
    return df.fillna(constants.UNANNOTATED)


def split_taxon_column(taxa: pd.Series) -> pd.DataFrame:
    split = taxa.fillna('').str.split(';', expand=True)
    split = split.apply(lambda col: col.str.strip())
    split = split.iloc[:, :len(constants.TAXONOMIC_RANKS)]
    split.columns = constants.TAXONOMIC_RANKS[:split.shape[1]]
    return split.replace('', np.nan).fillna(constants.UNANNOTATED)


def import_metadata(
    path: Union[str, Path],
    id_column: str = constants.DEFAULT_META_ID_COLUMN
) -> pd.DataFrame:
    """Load a sample metadata table indexed by sample id.

    Raises:
        InputValidationError: If `id_column` is absent or ids are duplicated.
    """
    df = _read_table(path, 'Metadata')
    if id_column not in df.columns:
        raise InputValidationError(
            f"{path}: sample id column '{id_column}' not found. "
            f"Available: {list(df.columns)[:10]}"
        )
    df[id_column] = df[id_column].astype(str)
    df = df.set_index(id_column)
    _check_unique(df.index, 'sample', str(path))
    logger.info(f"Loaded metadata for {df.shape[0]} samples ({df.shape[1]} columns)")
    return df

# ==================================== EXPORTS ======================================= #

def write_tsv(
    df: pd.DataFrame,
    path: Union[str, Path],
    index: bool = True,
    index_label: Optional[str] = None
) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, sep='\t', index=index, index_label=index_label)
    except OSError as e:
        raise WorkflowIOError(f"Cannot write table '{path}': {e}") from e
    logger.debug(f"Wrote {df.shape[0]} rows to '{path}'")
    return path
