"""
Tests for input loading, dataset assembly and dataset snapshots.
"""

import numpy as np
import pandas as pd
import pytest

from workflow_metagenomics import constants
from workflow_metagenomics.dataset.assembly import (
    AnnotatedDataset, assemble_dataset, load_snapshot, save_snapshot
)
from workflow_metagenomics.errors import InputValidationError, WorkflowIOError
from workflow_metagenomics.utils.io import (
    import_abundance_table, import_metadata, import_taxonomy_table, validate_abundance
)
from workflow_metagenomics.utils.table_conversion import table_to_df


# ================================== ASSEMBLY ====================================== #

def test_assembly_uses_identifier_intersection(abundance, taxonomy, metadata):
    """Samples present in only one input are dropped; the rest are kept in order."""
    extra_meta = pd.concat([
        metadata,
        pd.DataFrame({'health_status': ['Healthy']}, index=['META_ONLY'])
    ])
    extra_abundance = abundance.copy()
    extra_abundance['ABUNDANCE_ONLY'] = 1.0

    ds = assemble_dataset(extra_abundance, taxonomy, extra_meta)

    expected = set(abundance.columns)
    assert set(ds.sample_ids) == expected
    assert set(ds.feature_ids) == set(abundance.index) & set(taxonomy.index)
    assert list(ds.metadata.index) == ds.sample_ids
    assert ds.n_samples == len(expected)


def test_assembly_does_not_transform_values(dataset, abundance):
    pd.testing.assert_frame_equal(
        dataset.to_dataframe(), abundance.astype(float), check_names=False
    )


def test_disjoint_samples_raise(abundance, taxonomy, metadata):
    renamed = metadata.rename(index=lambda s: f'other_{s}')
    with pytest.raises(InputValidationError, match='share no sample'):
        assemble_dataset(abundance, taxonomy, renamed)


def test_disjoint_features_raise(abundance, taxonomy, metadata):
    renamed = taxonomy.rename(index=lambda f: f'other_{f}')
    with pytest.raises(InputValidationError, match='share no feature'):
        assemble_dataset(abundance, taxonomy, renamed)


def test_unannotated_feature_strict_policy_fails(abundance, taxonomy, metadata):
    partial = taxonomy.drop(index='feature_3')
    with pytest.raises(InputValidationError, match='feature_3'):
        assemble_dataset(abundance, partial, metadata, taxonomy_policy='strict')


def test_unannotated_feature_lenient_policy_keeps_it(abundance, taxonomy, metadata):
    partial = taxonomy.drop(index='feature_3')
    ds = assemble_dataset(abundance, partial, metadata, taxonomy_policy='lenient')

    assert 'feature_3' in ds.feature_ids
    assert ds.unannotated_features() == ['feature_3']
    assert (ds.taxonomy.loc['feature_3'] == constants.UNANNOTATED).all()
    assert ds.n_features == abundance.shape[0]


def test_dataset_accessors_return_copies(dataset):
    meta = dataset.metadata
    meta['health_status'] = 'changed'
    assert (dataset.metadata['health_status'] != 'changed').all()


def test_misaligned_dataset_rejected(dataset):
    with pytest.raises(InputValidationError):
        AnnotatedDataset(dataset.table, dataset.taxonomy.iloc[::-1], dataset.metadata)


def test_taxonomy_attached_as_observation_metadata(dataset):
    md = dataset.table.metadata('feature_0', axis='observation')
    assert md['taxonomy'][0] == 'Bacteria'
    assert md['taxonomy'][-1] == 'Genus0 species'


# ================================= VALIDATION ===================================== #

@pytest.mark.parametrize('bad_value, message', [
    ('abc', 'non-numeric'),
    (-1.0, 'non-negative'),
    (np.nan, 'missing'),
])
def test_invalid_abundance_values(abundance, bad_value, message):
    bad = abundance.astype(object)
    bad.iloc[2, 4] = bad_value
    with pytest.raises(InputValidationError, match=message):
        validate_abundance(bad)


def test_duplicate_feature_ids_rejected(abundance):
    dup = abundance.copy()
    dup.index = ['feature_0'] * len(dup)
    with pytest.raises(InputValidationError, match='duplicate feature'):
        validate_abundance(dup)


def test_empty_abundance_rejected():
    with pytest.raises(InputValidationError, match='non-empty'):
        validate_abundance(pd.DataFrame())


# ==================================== FILES ======================================= #

def test_import_round_trip(input_files, abundance, taxonomy, metadata):
    loaded_abundance = import_abundance_table(input_files['abundance'])
    loaded_taxonomy = import_taxonomy_table(input_files['taxonomy'])
    loaded_meta = import_metadata(input_files['metadata'])

    assert loaded_abundance.shape == abundance.shape
    assert list(loaded_taxonomy.columns) == constants.TAXONOMIC_RANKS
    assert list(loaded_meta.index) == list(metadata.index)


def test_import_csv_abundance(tmp_path, abundance):
    path = tmp_path / 'abundance.csv'
    abundance.to_csv(path)
    assert import_abundance_table(path).shape == abundance.shape


def test_import_taxon_column_is_split(tmp_path):
    path = tmp_path / 'taxonomy.tsv'
    pd.DataFrame(
        {'Taxon': ['d__Bacteria; p__Firmicutes; c__Bacilli', 'd__Archaea']},
        index=pd.Index(['f1', 'f2'], name='Feature ID')
    ).to_csv(path, sep='\t')

    taxonomy = import_taxonomy_table(path)
    assert list(taxonomy.columns) == constants.TAXONOMIC_RANKS[:3]
    assert taxonomy.loc['f1', 'Class'] == 'c__Bacilli'
    assert taxonomy.loc['f2', 'Phylum'] == constants.UNANNOTATED


def test_missing_input_file_raises_io_error(tmp_path):
    with pytest.raises(WorkflowIOError, match='not found'):
        import_abundance_table(tmp_path / 'missing.tsv')


def test_metadata_without_id_column(tmp_path):
    path = tmp_path / 'meta.tsv'
    pd.DataFrame({'sample': ['a'], 'x': [1]}).to_csv(path, sep='\t', index=False)
    with pytest.raises(InputValidationError, match='#sampleid'):
        import_metadata(path)


# ================================== SNAPSHOTS ===================================== #

def test_snapshot_round_trip(tmp_path, dataset):
    save_snapshot(dataset, tmp_path / 'snapshot')
    for name in (constants.SNAPSHOT_TABLE, constants.SNAPSHOT_TAXONOMY,
                 constants.SNAPSHOT_METADATA):
        assert (tmp_path / 'snapshot' / name).exists()

    reloaded = load_snapshot(tmp_path / 'snapshot')
    assert reloaded.sample_ids == dataset.sample_ids
    assert reloaded.feature_ids == dataset.feature_ids
    np.testing.assert_allclose(
        table_to_df(reloaded.table).values, table_to_df(dataset.table).values
    )
    pd.testing.assert_frame_equal(
        reloaded.taxonomy, dataset.taxonomy, check_names=False
    )
    assert list(reloaded.metadata['health_status']) == list(dataset.metadata['health_status'])


def test_missing_snapshot_raises_io_error(tmp_path):
    with pytest.raises(WorkflowIOError):
        load_snapshot(tmp_path / 'nowhere')
