# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Optional, Sequence, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from scipy.stats import mannwhitneyu, ttest_ind
from skbio.diversity import alpha

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, JoinError
from workflow_metagenomics.utils.table_conversion import samples_by_features

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# ==================================== FUNCTIONS ===================================== #

def _proportions(values: np.ndarray) -> Optional[np.ndarray]:
    total = values.sum()
    if total <= 0:
        return None
    return values / total


def _shannon(values: np.ndarray) -> float:
    proportions = _proportions(values)
    if proportions is None:
        return np.nan
    return float(alpha.shannon(proportions, base=np.e))


def _simpson(values: np.ndarray) -> float:
    proportions = _proportions(values)
    if proportions is None:
        return np.nan
    return float(alpha.simpson(proportions))


def _observed_features(values: np.ndarray) -> float:
    return float((values > 0).sum())


ALPHA_FUNCTIONS = {
    'shannon': _shannon,
    'simpson': _simpson,
    'observed_features': _observed_features,
}


def alpha_diversity(
    table: Union[Table, pd.DataFrame],
    metric: str = constants.DEFAULT_ALPHA_METRIC
) -> pd.Series:
    """
    Calculate an alpha diversity index for each sample.

    Shannon entropy is H = -Σ pᵢ·ln(pᵢ) over the sample's relative abundances;
    it is 0 exactly when one feature is non-zero. All-zero samples get NaN.

    Args:
        table:  Abundance table (features × samples, BIOM Table or DataFrame).
        metric: One of 'shannon', 'simpson', 'observed_features'.

    Returns:
        Series of scores indexed by sample id, named after the metric.
    """
    if metric not in ALPHA_FUNCTIONS:
        raise InputValidationError(
            f"Unsupported alpha diversity metric: {metric}. "
            f"Expected one of {list(ALPHA_FUNCTIONS)}"
        )
    df = samples_by_features(table)
    func = ALPHA_FUNCTIONS[metric]
    scores = pd.Series(
        [func(row) for row in df.values], index=df.index, name=metric, dtype=float
    )
    n_nan = int(scores.isna().sum())
    if n_nan:
        logger.warning(f"{n_nan} samples have no non-zero abundance; {metric} is undefined")
    return scores


def join_with_metadata(scores: pd.Series, metadata: pd.DataFrame) -> pd.DataFrame:
    """
    Join per-sample scores to metadata by sample identifier.

    Args:
        scores:   Series indexed by sample id.
        metadata: Metadata DataFrame indexed by sample id.

    Returns:
        Metadata with the score added as a column, in score order.

    Raises:
        JoinError: If any sample has a score but no metadata, metadata but no
            score, or an undefined (NaN) score.
    """
    scores_ids = set(scores.index.astype(str))
    meta_ids = set(metadata.index.astype(str))
    undefined = scores[scores.isna()].index.astype(str).tolist()
    no_meta = sorted(scores_ids - meta_ids)
    no_score = sorted(meta_ids - scores_ids)
    if no_meta or no_score or undefined:
        raise JoinError(
            f"Joining '{scores.name}' scores with metadata left orphaned rows: "
            f"samples without metadata {no_meta[:5]}, "
            f"metadata without score {no_score[:5]}, "
            f"undefined score {undefined[:5]}"
        )
    if scores.name in metadata.columns:
        raise JoinError(f"Metadata already has a column named '{scores.name}'")
    joined = metadata.loc[scores.index.astype(str)].copy()
    joined[scores.name] = scores.values
    return joined


def compare_groups(
    joined: pd.DataFrame,
    metric: str,
    group_column: str = constants.DEFAULT_GROUP_COLUMN,
    groups: Sequence[Any] = constants.DEFAULT_GROUP_COLUMN_VALUES,
    test: str = constants.DEFAULT_GROUP_TEST
) -> Dict[str, Any]:
    """
    Two-sample comparison of `metric` between exactly two named groups.

    Args:
        joined:       Output of `join_with_metadata`.
        metric:       Column holding the scores.
        group_column: Metadata column with group labels.
        groups:       The two group labels to compare.
        test:         't-test' (Welch) or 'mann-whitney'.

    Returns:
        Dict with test name, group labels and sizes, means, statistic and p-value.
        The p-value is NaN when a group is too small for the test.

    Raises:
        JoinError: If the group column is missing or a group has no samples.
    """
    if test not in constants.GROUP_TESTS:
        raise InputValidationError(
            f"Unknown test {test!r}; expected one of {constants.GROUP_TESTS}"
        )
    if len(groups) != 2:
        raise InputValidationError(f"Exactly two groups are required, got {list(groups)}")
    if group_column not in joined.columns:
        raise JoinError(f"Group column '{group_column}' not found in metadata")

    labels = joined[group_column].astype(str)
    group_values = []
    for group in groups:
        values = joined.loc[labels == str(group), metric].astype(float)
        if values.empty:
            raise JoinError(
                f"No samples in group '{group}' of column '{group_column}'. "
                f"Available: {sorted(labels.unique())[:10]}"
            )
        group_values.append(values.values)

    a, b = group_values
    statistic, p_value = np.nan, np.nan
    if test == 't-test':
        if len(a) < 2 or len(b) < 2:
            logger.warning(
                f"Welch's t-test needs ≥2 samples per group "
                f"({groups[0]}: {len(a)}, {groups[1]}: {len(b)}); p-value undefined"
            )
        else:
            statistic, p_value = ttest_ind(a, b, equal_var=False)
    else:
        statistic, p_value = mannwhitneyu(a, b, alternative='two-sided')

    return {
        'metric': metric,
        'test': test,
        'group_column': group_column,
        'group_1': groups[0],
        'group_2': groups[1],
        'n_1': len(a),
        'n_2': len(b),
        'mean_1': float(np.mean(a)),
        'mean_2': float(np.mean(b)),
        'statistic': float(statistic),
        'p_value': float(p_value),
    }
