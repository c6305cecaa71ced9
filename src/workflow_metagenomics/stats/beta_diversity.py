# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from skbio.stats.composition import clr
from skbio.stats.distance import DistanceMatrix
from skbio.stats.ordination import OrdinationResults, pcoa as PCoA
from sklearn.metrics import pairwise_distances

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, InsufficientSamplesError
from workflow_metagenomics.utils.table_conversion import samples_by_features

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

# =============================== HELPER FUNCTIONS ==================================== #

def validate_min_samples(df: pd.DataFrame, min_samples: int = 2) -> None:
    """Validate that the input contains sufficient samples for analysis.

    Args:
        df:          Samples × features DataFrame.
        min_samples: Minimum required number of samples (default: 2).

    Raises:
        InsufficientSamplesError: If number of samples is less than required minimum.
    """
    if len(df) < min_samples:
        raise InsufficientSamplesError(
            f"At least {min_samples} samples required, got {len(df)}"
        )


def default_pseudocount(values: np.ndarray) -> float:
    """Half the smallest positive value, or 0 when nothing is zero."""
    if (values > 0).all():
        return 0.0
    positive = values[values > 0]
    if positive.size == 0:
        raise InputValidationError("Cannot choose a pseudocount: table has no positive values")
    return float(positive.min()) / 2

# =============================== CORE FUNCTIONALITY ================================== #

def clr_transform(
    table: Union[Table, pd.DataFrame],
    pseudocount: Optional[float] = None
) -> pd.DataFrame:
    """Apply the centered log-ratio (CLR) transformation per sample.

    The log is undefined at zero, so a pseudocount is added to every cell when
    any entry is zero. With `pseudocount=None` it is half the smallest positive
    value; strictly positive tables are transformed unchanged, and each
    sample's CLR values then sum to zero.

    Args:
        table:       Features × samples abundance table.
        pseudocount: Value added before the log, or None for the default.

    Returns:
        Samples × features DataFrame of CLR coordinates.

    Raises:
        InputValidationError: If zeros remain after the pseudocount.
    """
    df = samples_by_features(table)
    validate_min_samples(df, min_samples=1)
    data = df.values.astype(float)

    if pseudocount is None:
        pseudocount = default_pseudocount(data)
    if pseudocount:
        logger.debug(f"Adding pseudocount {pseudocount:.3g} before CLR")
        data = data + pseudocount
    if (data <= 0).any():
        raise InputValidationError(
            "CLR transform requires strictly positive values; "
            f"pseudocount {pseudocount} leaves zeros or negatives"
        )
    return pd.DataFrame(clr(data), index=df.index, columns=df.columns)


def distance_matrix(
    data: pd.DataFrame,
    metric: str = constants.DEFAULT_METRIC
) -> DistanceMatrix:
    """Compute a sample × sample distance matrix.

    Args:
        data:   Samples × features DataFrame (e.g. CLR coordinates).
        metric: Distance metric accepted by scikit-learn (default: euclidean).

    Returns:
        Symmetric DistanceMatrix with zero diagonal.

    Raises:
        InputValidationError: For invalid input data containing NaN or infinite values.
    """
    validate_min_samples(data, min_samples=2)
    values = data.values.astype(float)
    if np.isnan(values).any():
        raise InputValidationError("Input data contains NaN values")
    if np.isinf(values).any():
        raise InputValidationError("Input data contains infinite values")

    dist_array = pairwise_distances(values, metric=metric)
    # Enforce exact symmetry and a zero diagonal
    dist_array = (dist_array + dist_array.T) / 2
    np.fill_diagonal(dist_array, 0.0)
    return DistanceMatrix(dist_array, ids=data.index.astype(str).tolist())


def pcoa(
    dm: DistanceMatrix,
    n_dimensions: Optional[int] = constants.DEFAULT_N_PCOA
) -> OrdinationResults:
    """Principal Coordinate Analysis of a precomputed distance matrix.

    Args:
        dm:           Distance matrix between samples.
        n_dimensions: Number of axes to keep (capped at n_samples - 1).

    Returns:
        OrdinationResults whose sample axes are named PCo1, PCo2, ...
    """
    if dm.shape[0] < 3:
        raise InsufficientSamplesError(
            f"PCoA needs at least 3 samples for two axes, got {dm.shape[0]}"
        )
    max_dims = dm.shape[0] - 1
    n_dimensions = min(n_dimensions, max_dims) if n_dimensions else max_dims

    result = PCoA(dm, number_of_dimensions=n_dimensions)
    comp_names = [f"PCo{i+1}" for i in range(result.samples.shape[1])]
    result.samples.columns = comp_names
    result.proportion_explained.index = comp_names
    logger.info(
        "PCoA proportion explained: "
        + ", ".join(
            f"{name}={value:.1%}"
            for name, value in result.proportion_explained.iloc[:3].items()
        )
    )
    return result
