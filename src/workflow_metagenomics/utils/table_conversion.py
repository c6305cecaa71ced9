# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Union

# Third-Party Imports
import pandas as pd
from biom import Table

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ================================ TABLE CONVERSION ================================== #

def table_to_df(table: Union[Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert a BIOM Table or abundance DataFrame to a features × samples
    DataFrame of floats.

    Args:
        table: BIOM Table or DataFrame, both features × samples.

    Returns:
        Dense DataFrame in features × samples orientation.

    Raises:
        TypeError: For unsupported input types
    """
    if isinstance(table, pd.DataFrame):
        return table.astype(float)
    if isinstance(table, Table):
        return table.to_dataframe(dense=True).astype(float)
    raise TypeError("Input must be BIOM Table or DataFrame.")


def samples_by_features(table: Union[Table, pd.DataFrame]) -> pd.DataFrame:
    """Samples × features view of an abundance table, the orientation scikit-bio
    and statsmodels expect."""
    return table_to_df(table).T


def to_biom(table: Union[Table, pd.DataFrame]) -> Table:
    """Convert a features × samples DataFrame to a BIOM Table.

    Args:
        table: Input table.

    Returns:
        BIOM Table object.

    Raises:
        TypeError: For unsupported input types.
    """
    if isinstance(table, Table):
        return table
    if isinstance(table, pd.DataFrame):
        return Table(
            table.values.astype(float),
            observation_ids=table.index.astype(str).tolist(),
            sample_ids=table.columns.astype(str).tolist(),
            type="OTU table"
        )
    raise TypeError("Input must be BIOM Table or DataFrame.")
