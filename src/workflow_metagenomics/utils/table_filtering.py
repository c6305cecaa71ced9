# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Union

# Third-Party Imports
import pandas as pd
from biom import Table

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.errors import FilterExhaustionError, InputValidationError
from workflow_metagenomics.utils.table_conversion import table_to_df, to_biom

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ================================ TABLE FILTERING =================================== #

def prevalence_mask(
    df: pd.DataFrame,
    min_abundance: float = constants.DEFAULT_MIN_ABUNDANCE,
    min_prevalence: float = constants.DEFAULT_MIN_PREVALENCE
) -> pd.Series:
    """Boolean mask over features (rows of a features × samples DataFrame).

    A feature passes when its value is strictly above `min_abundance` in a
    fraction of samples at least `min_prevalence`. The fraction comparison is
    inclusive, so 2 of 20 samples passes a 0.1 prevalence.
    """
    if not 0 <= min_prevalence <= 1:
        raise InputValidationError(
            f"min_prevalence must be a fraction in [0, 1], got {min_prevalence}"
        )
    n_samples = df.shape[1]
    if n_samples == 0:
        raise FilterExhaustionError("Cannot filter a table without samples")
    n_above = (df > min_abundance).sum(axis=1)
    required = min_prevalence * n_samples
    return n_above >= required - constants.PREVALENCE_TOLERANCE


def filter_prevalence(
    table: Union[Table, pd.DataFrame],
    min_abundance: float = constants.DEFAULT_MIN_ABUNDANCE,
    min_prevalence: float = constants.DEFAULT_MIN_PREVALENCE
) -> Union[Table, pd.DataFrame]:
    """Filter features based on prevalence and abundance.

    Returns a new object of the same kind as `table`; the input is not
    modified and values are not renormalised, so filtering twice with the same
    thresholds gives the same feature set.

    Args:
        table:          BIOM Table or features × samples DataFrame.
        min_abundance:  Abundance a feature must exceed in a sample to count.
        min_prevalence: Minimum fraction of samples where it must do so.

    Returns:
        Filtered table.

    Raises:
        FilterExhaustionError: If no feature passes.
    """
    df = table_to_df(table)
    mask = prevalence_mask(df, min_abundance, min_prevalence)
    n_kept = int(mask.sum())
    logger.info(
        f"Prevalence filter (>{min_abundance} in ≥{min_prevalence:.0%} of samples): "
        f"kept {n_kept}/{len(mask)} features"
    )
    if n_kept == 0:
        raise FilterExhaustionError(
            f"Prevalence filter removed all {len(mask)} features "
            f"(min_abundance={min_abundance}, min_prevalence={min_prevalence})"
        )

    if isinstance(table, Table):
        ids_to_keep = [fid for fid, keep in mask.items() if keep]
        return table.filter(ids_to_keep, axis='observation', inplace=False)
    return df.loc[mask].copy()


def filter_samples(
    table: Union[Table, pd.DataFrame],
    min_total: float = 0.0
) -> Union[Table, pd.DataFrame]:
    """Drop samples whose total abundance is not above `min_total`.

    Args:
        table:     Input abundance table.
        min_total: Samples must sum to more than this.

    Returns:
        Filtered table of the same kind as `table`.
    """
    biom_table = to_biom(table)
    sample_sums = biom_table.sum(axis='sample')
    ids_to_keep = [sid for sid, total in zip(biom_table.ids(axis='sample'), sample_sums)
                   if total > min_total]
    if not ids_to_keep:
        raise FilterExhaustionError(
            f"Sample filter removed all {len(sample_sums)} samples (min_total={min_total})"
        )
    n_dropped = len(sample_sums) - len(ids_to_keep)
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} samples with total abundance ≤ {min_total}")
    if isinstance(table, Table):
        return table.filter(ids_to_keep, axis='sample', inplace=False)
    return table.loc[:, ids_to_keep].copy()
