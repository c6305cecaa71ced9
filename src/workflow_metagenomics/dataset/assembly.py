# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import List, Union

# Third-Party Imports
import h5py
import pandas as pd
from biom import Table

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, WorkflowIOError
from workflow_metagenomics.utils.io import (
    import_metadata, import_taxonomy_table, validate_abundance, write_tsv
)
from workflow_metagenomics.utils.table_conversion import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_metagenomics")

# ================================ ANNOTATED DATASET ================================= #

class AnnotatedDataset:
    """Abundance table, taxonomy and sample metadata with aligned identifiers.

    The BIOM table is features × samples with each feature's ranks attached as
    `taxonomy` observation metadata. Built once, then read-only: every
    accessor hands out a copy, and derived tables are new objects.
    """
    def __init__(self, table: Table, taxonomy: pd.DataFrame, metadata: pd.DataFrame):
        feature_ids = [str(i) for i in table.ids(axis='observation')]
        sample_ids = [str(i) for i in table.ids(axis='sample')]
        if list(taxonomy.index) != feature_ids:
            raise InputValidationError("Taxonomy rows are not aligned with table features")
        if list(metadata.index) != sample_ids:
            raise InputValidationError("Metadata rows are not aligned with table samples")
        self._table = table.copy()
        self._taxonomy = taxonomy.copy()
        self._metadata = metadata.copy()

    def __repr__(self) -> str:
        return (
            f"AnnotatedDataset({self.n_features} features × {self.n_samples} samples, "
            f"{self._metadata.shape[1]} metadata columns)"
        )

    @property
    def table(self) -> Table:
        return self._table.copy()

    @property
    def taxonomy(self) -> pd.DataFrame:
        return self._taxonomy.copy()

    @property
    def metadata(self) -> pd.DataFrame:
        return self._metadata.copy()

    @property
    def feature_ids(self) -> List[str]:
        return list(self._taxonomy.index)

    @property
    def sample_ids(self) -> List[str]:
        return list(self._metadata.index)

    @property
    def n_features(self) -> int:
        return len(self._taxonomy)

    @property
    def n_samples(self) -> int:
        return len(self._metadata)

    def to_dataframe(self) -> pd.DataFrame:
        """Dense features × samples abundance DataFrame."""
        return table_to_df(self._table)

    def unannotated_features(self) -> List[str]:
        unannotated = (self._taxonomy == constants.UNANNOTATED).all(axis=1)
        return unannotated[unannotated].index.tolist()

# ==================================== ASSEMBLY ====================================== #

def _taxonomy_metadata(taxonomy: pd.DataFrame) -> List[dict]:
    return [
        {'taxonomy': [str(v) for v in row]}
        for row in taxonomy.itertuples(index=False)
    ]


def assemble_dataset(
    abundance: pd.DataFrame,
    taxonomy: pd.DataFrame,
    metadata: pd.DataFrame,
    taxonomy_policy: str = constants.DEFAULT_TAXONOMY_POLICY
) -> AnnotatedDataset:
    """Compose abundance, taxonomy and metadata into one AnnotatedDataset.

    Samples are the intersection of abundance columns and metadata ids.
    Features are the abundance rows: with `taxonomy_policy='strict'` every one
    must have a taxonomy row, with `'lenient'` missing ones are kept with all
    ranks set to `unannotated`. Taxonomy rows without abundance are ignored.
    Values are not transformed.

    Args:
        abundance:       Features × samples abundance DataFrame.
        taxonomy:        Feature × rank DataFrame.
        metadata:        Sample-indexed metadata DataFrame.
        taxonomy_policy: 'strict' or 'lenient'.

    Returns:
        AnnotatedDataset.

    Raises:
        InputValidationError: For disjoint feature or sample identifiers,
            unannotated features under the strict policy, or bad values.
    """
    if taxonomy_policy not in constants.TAXONOMY_POLICIES:
        raise InputValidationError(
            f"Unknown taxonomy policy {taxonomy_policy!r}; "
            f"expected one of {constants.TAXONOMY_POLICIES}"
        )
    abundance = validate_abundance(abundance)
    taxonomy = taxonomy.copy()
    taxonomy.index = taxonomy.index.astype(str)
    metadata = metadata.copy()
    metadata.index = metadata.index.astype(str)

    # Samples
    samples = [s for s in abundance.columns if s in set(metadata.index)]
    if not samples:
        raise InputValidationError(
            "Abundance table and metadata share no sample identifiers "
            f"(abundance: {list(abundance.columns[:5])}, "
            f"metadata: {list(metadata.index[:5])})"
        )
    only_abundance = sorted(set(abundance.columns) - set(samples))
    only_metadata = sorted(set(metadata.index) - set(samples))
    if only_abundance:
        logger.warning(
            f"Dropping {len(only_abundance)} samples without metadata: {only_abundance[:5]}"
        )
    if only_metadata:
        logger.warning(
            f"Dropping {len(only_metadata)} metadata rows without abundance: "
            f"{only_metadata[:5]}"
        )

    # Features
    features = list(abundance.index)
    annotated = [f for f in features if f in set(taxonomy.index)]
    if not annotated:
        raise InputValidationError(
            "Abundance table and taxonomy share no feature identifiers "
            f"(abundance: {features[:5]}, taxonomy: {list(taxonomy.index[:5])})"
        )
    missing = [f for f in features if f not in set(taxonomy.index)]
    if missing:
        if taxonomy_policy == 'strict':
            raise InputValidationError(
                f"{len(missing)} features have no taxonomy entry: {missing[:5]}"
                f"{'...' if len(missing) > 5 else ''}"
            )
        logger.warning(
            f"Keeping {len(missing)} features without taxonomy as "
            f"'{constants.UNANNOTATED}': {missing[:5]}"
        )
    taxonomy = taxonomy.reindex(features).fillna(constants.UNANNOTATED)

    abundance = abundance.loc[features, samples]
    table = Table(
        abundance.values,
        observation_ids=features,
        sample_ids=samples,
        observation_metadata=_taxonomy_metadata(taxonomy),
        type="OTU table"
    )
    dataset = AnnotatedDataset(table, taxonomy, metadata.loc[samples])
    logger.info(f"Assembled {dataset!r}")
    return dataset

# ==================================== SNAPSHOTS ===================================== #

def save_snapshot(dataset: AnnotatedDataset, snapshot_dir: Union[str, Path]) -> Path:
    """Write the dataset to `snapshot_dir` as a BIOM (HDF5) table plus taxonomy
    and sample metadata TSVs."""
    snapshot_dir = Path(snapshot_dir)
    table_path = snapshot_dir / constants.SNAPSHOT_TABLE
    try:
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        with h5py.File(table_path, 'w') as f:
            dataset.table.to_hdf5(f, generated_by=constants.LOGGER_NAME)
    except OSError as e:
        raise WorkflowIOError(f"Cannot write dataset snapshot '{table_path}': {e}") from e
    write_tsv(
        dataset.taxonomy, snapshot_dir / constants.SNAPSHOT_TAXONOMY,
        index_label=constants.DEFAULT_FEATURE_ID_COLUMN
    )
    write_tsv(
        dataset.metadata, snapshot_dir / constants.SNAPSHOT_METADATA,
        index_label=constants.DEFAULT_META_ID_COLUMN
    )
    logger.info(f"Saved dataset snapshot → {snapshot_dir}")
    return snapshot_dir


def load_snapshot(snapshot_dir: Union[str, Path]) -> AnnotatedDataset:
    """Reload a dataset written by `save_snapshot`."""
    snapshot_dir = Path(snapshot_dir)
    table_path = snapshot_dir / constants.SNAPSHOT_TABLE
    if not table_path.exists():
        raise WorkflowIOError(f"Dataset snapshot not found: {table_path}")
    try:
        with h5py.File(table_path, 'r') as f:
            table = Table.from_hdf5(f)
    except OSError as e:
        raise WorkflowIOError(f"Cannot read dataset snapshot '{table_path}': {e}") from e

    taxonomy = import_taxonomy_table(snapshot_dir / constants.SNAPSHOT_TAXONOMY)
    metadata = import_metadata(
        snapshot_dir / constants.SNAPSHOT_METADATA, constants.DEFAULT_META_ID_COLUMN
    )
    dataset = AnnotatedDataset(table, taxonomy, metadata)
    logger.info(f"Loaded {dataset!r} from {snapshot_dir}")
    return dataset
