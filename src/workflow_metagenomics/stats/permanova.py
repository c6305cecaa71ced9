# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import List, Optional, Sequence, Tuple

# Third-Party Imports
import numpy as np
import pandas as pd
from patsy import dmatrix
from skbio.stats.distance import DistanceMatrix

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, InsufficientSamplesError, JoinError

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

RESULT_COLUMNS = ['df', 'sum_of_squares', 'R2', 'F', 'p_value']

# =============================== HELPER FUNCTIONS ==================================== #

def gower_centered(dm: np.ndarray) -> np.ndarray:
    """Gower-centred matrix G = (I - J/n) A (I - J/n) with A = -D²/2."""
    n = dm.shape[0]
    a = -0.5 * dm ** 2
    centering = np.eye(n) - np.ones((n, n)) / n
    return centering @ a @ centering


def _term_formula(metadata: pd.DataFrame, term: str) -> str:
    column = metadata[term]
    if pd.api.types.is_bool_dtype(column) or not pd.api.types.is_numeric_dtype(column):
        return f'C(Q("{term}"))'
    return f'Q("{term}")'


def design_blocks(metadata: pd.DataFrame, terms: Sequence[str]) -> List[np.ndarray]:
    """Cumulative design matrices: block k holds the intercept and terms[:k+1].

    Categorical columns (object, category, bool) are treatment-coded, numeric
    columns enter as a single continuous column.
    """
    formula = ' + '.join(_term_formula(metadata, term) for term in terms)
    design = dmatrix(formula, metadata, return_type='dataframe')
    slices = design.design_info.term_name_slices
    term_names = [name for name in design.design_info.term_names if name != 'Intercept']

    blocks, stop = [], 1  # Intercept column
    for name in term_names:
        stop = slices[name].stop
        blocks.append(design.values[:, :stop])
    return blocks


def _hat(x: np.ndarray) -> np.ndarray:
    return x @ np.linalg.pinv(x)


def _sequential_ss(g: np.ndarray, hats: List[np.ndarray]) -> Tuple[np.ndarray, float]:
    """Type I sums of squares per term plus the residual sum of squares."""
    explained = np.array([np.trace(h @ g) for h in hats])
    ss_terms = np.diff(np.concatenate([[0.0], explained]))
    ss_residual = np.trace(g) - explained[-1]
    return ss_terms, ss_residual

# =============================== CORE FUNCTIONALITY ================================== #

def permanova(
    dm: DistanceMatrix,
    metadata: pd.DataFrame,
    terms: Sequence[str],
    permutations: int = constants.DEFAULT_PERMUTATIONS,
    seed: Optional[int] = constants.DEFAULT_RANDOM_STATE
) -> pd.DataFrame:
    """Permutational multivariate analysis of variance with several terms.

    Total dispersion of the Gower-centred distance matrix is partitioned among
    `terms` with sequential (type I) sums of squares, so term order changes
    the attribution. Each term's pseudo-F is compared to the pseudo-F values
    obtained after permuting sample labels; p = (#{F* ≥ F} + 1) / (permutations + 1).

    Args:
        dm:           Sample distance matrix.
        metadata:     Sample-indexed metadata with every term as a column.
        terms:        Covariates in model order.
        permutations: Number of label permutations (0 skips the test).
        seed:         Seed for the permutation generator.

    Returns:
        DataFrame indexed by term plus 'Residual' and 'Total' with columns
        df, sum_of_squares, R2, F, p_value.

    Raises:
        JoinError: If a term is missing from the metadata or samples lack metadata.
        InsufficientSamplesError: If too few samples remain to fit the model.
    """
    terms = list(terms)
    if not terms:
        raise InputValidationError("PERMANOVA needs at least one term")
    missing_cols = [t for t in terms if t not in metadata.columns]
    if missing_cols:
        raise JoinError(f"PERMANOVA terms not found in metadata: {missing_cols}")
    ids = list(dm.ids)
    missing_ids = [i for i in ids if i not in set(metadata.index.astype(str))]
    if missing_ids:
        raise JoinError(
            f"{len(missing_ids)} samples in the distance matrix have no metadata: "
            f"{missing_ids[:5]}"
        )

    meta = metadata.copy()
    meta.index = meta.index.astype(str)
    meta = meta.loc[ids, terms]
    complete = meta.notna().all(axis=1)
    if not complete.all():
        dropped = complete[~complete].index.tolist()
        logger.warning(
            f"PERMANOVA: dropping {len(dropped)} samples with missing covariates: {dropped[:5]}"
        )
        meta = meta.loc[complete]
        dm = dm.filter(meta.index.tolist())

    n = dm.shape[0]
    blocks = design_blocks(meta, terms)
    ranks = [np.linalg.matrix_rank(b) for b in blocks]
    df_terms = np.diff([1] + ranks)
    df_residual = n - ranks[-1]
    if df_residual < 1:
        raise InsufficientSamplesError(
            f"PERMANOVA: {n} samples leave no residual degrees of freedom "
            f"for terms {terms}"
        )

    hats = [_hat(b) for b in blocks]
    g = gower_centered(dm.data)
    ss_total = float(np.trace(g))

    def pseudo_f(g_matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
        ss_terms, ss_residual = _sequential_ss(g_matrix, hats)
        with np.errstate(divide='ignore', invalid='ignore'):
            f_stats = (ss_terms / df_terms) / (ss_residual / df_residual)
        return f_stats, ss_terms, ss_residual

    f_obs, ss_terms, ss_residual = pseudo_f(g)

    p_values = np.full(len(terms), np.nan)
    if permutations > 0:
        rng = np.random.default_rng(seed)
        exceed = np.zeros(len(terms))
        for _ in range(permutations):
            order = rng.permutation(n)
            f_perm, _, _ = pseudo_f(g[np.ix_(order, order)])
            exceed += f_perm >= f_obs - 1e-12
        p_values = (exceed + 1) / (permutations + 1)
        p_values[~np.isfinite(f_obs)] = np.nan

    with np.errstate(divide='ignore', invalid='ignore'):
        r2 = np.append(ss_terms, [ss_residual, ss_total]) / ss_total
    results = pd.DataFrame(
        {
            'df': np.append(df_terms, [df_residual, n - 1]).astype(int),
            'sum_of_squares': np.append(ss_terms, [ss_residual, ss_total]),
            'R2': r2,
            'F': np.append(f_obs, [np.nan, np.nan]),
            'p_value': np.append(p_values, [np.nan, np.nan]),
        },
        index=pd.Index(terms + ['Residual', 'Total'], name='term'),
    )
    return results[RESULT_COLUMNS]
