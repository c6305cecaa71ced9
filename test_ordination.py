"""
Tests for the prevalence filter, CLR transform, distance matrix and PCoA.
"""

import numpy as np
import pandas as pd
import pytest
from biom import Table

from workflow_metagenomics.analysis.ordination import Ordination
from workflow_metagenomics.config import FigureConfig, OrdinationConfig
from workflow_metagenomics.errors import (
    FilterExhaustionError, InputValidationError, InsufficientSamplesError, JoinError
)
from workflow_metagenomics.figures.beta_diversity import create_ordination_plot
from workflow_metagenomics.stats.beta_diversity import (
    clr_transform, default_pseudocount, distance_matrix, pcoa
)
from workflow_metagenomics.utils.dir_utils import SubDirs
from workflow_metagenomics.utils.table_conversion import table_to_df
from workflow_metagenomics.utils.table_filtering import filter_prevalence, prevalence_mask


# ============================== PREVALENCE FILTER ================================= #

def test_boundary_prevalence_is_inclusive():
    """A feature above threshold in exactly 2 of 20 samples (10%) is kept."""
    samples = [f's{i}' for i in range(20)]
    df = pd.DataFrame(0.0, index=['boundary', 'below', 'common'], columns=samples)
    df.loc['boundary', ['s0', 's7']] = 0.01
    df.loc['below', 's3'] = 0.01
    df.loc['common'] = 0.5

    kept = filter_prevalence(df, min_abundance=0.0001, min_prevalence=0.1)
    assert list(kept.index) == ['boundary', 'common']


def test_abundance_threshold_is_strict():
    df = pd.DataFrame({'a': [0.0001, 0.001], 'b': [0.0001, 0.001]}, index=['at', 'above'])
    mask = prevalence_mask(df, min_abundance=0.0001, min_prevalence=0.5)
    assert not mask['at'] and mask['above']


def test_prevalence_filter_idempotent(dataset):
    once = filter_prevalence(dataset.table, 0.0001, 0.25)
    twice = filter_prevalence(once, 0.0001, 0.25)
    assert list(once.ids(axis='observation')) == list(twice.ids(axis='observation'))


def test_prevalence_filter_keeps_input_type(dataset, abundance):
    assert isinstance(filter_prevalence(dataset.table), Table)
    assert isinstance(filter_prevalence(abundance), pd.DataFrame)


def test_prevalence_filter_does_not_modify_input(dataset):
    table = dataset.table
    filter_prevalence(table, 0.0001, 0.5)
    assert table.shape[0] == dataset.n_features


def test_filter_exhaustion(abundance):
    with pytest.raises(FilterExhaustionError):
        filter_prevalence(abundance, min_abundance=1e9, min_prevalence=0.1)


def test_invalid_prevalence_fraction(abundance):
    with pytest.raises(InputValidationError):
        filter_prevalence(abundance, min_prevalence=10)


# ==================================== CLR ========================================= #

def test_clr_rows_sum_to_zero_for_positive_input():
    rng = np.random.default_rng(3)
    df = pd.DataFrame(rng.uniform(0.1, 10, size=(6, 4)),
                      index=[f'f{i}' for i in range(6)], columns=list('abcd'))
    transformed = clr_transform(df)
    assert transformed.shape == (4, 6)
    np.testing.assert_allclose(transformed.sum(axis=1).values, 0, atol=1e-10)


def test_clr_default_pseudocount_handles_zeros(dataset):
    transformed = clr_transform(dataset.table)
    assert np.isfinite(transformed.values).all()
    np.testing.assert_allclose(transformed.sum(axis=1).values, 0, atol=1e-9)


def test_default_pseudocount():
    assert default_pseudocount(np.array([[1.0, 2.0]])) == 0
    assert default_pseudocount(np.array([[0.0, 0.4, 2.0]])) == pytest.approx(0.2)


def test_clr_rejects_zeros_without_pseudocount():
    df = pd.DataFrame({'a': [0.0, 1.0]}, index=['f1', 'f2'])
    with pytest.raises(InputValidationError):
        clr_transform(df, pseudocount=0)


# ============================ DISTANCE AND PCOA =================================== #

def test_distance_matrix_symmetric_zero_diagonal(dataset):
    dm = distance_matrix(clr_transform(dataset.table))
    data = dm.data
    np.testing.assert_array_equal(data, data.T)
    np.testing.assert_array_equal(np.diag(data), 0)
    assert (data >= 0).all()
    assert list(dm.ids) == dataset.sample_ids


def test_distance_matrix_rejects_nan():
    df = pd.DataFrame([[1.0, np.nan], [0.0, 1.0]], index=['a', 'b'])
    with pytest.raises(InputValidationError, match='NaN'):
        distance_matrix(df)


def test_pcoa_axes(dataset):
    dm = distance_matrix(clr_transform(dataset.table))
    result = pcoa(dm, n_dimensions=4)
    assert list(result.samples.columns) == ['PCo1', 'PCo2', 'PCo3', 'PCo4']
    assert list(result.samples.index) == dataset.sample_ids
    explained = result.proportion_explained
    assert explained['PCo1'] >= explained['PCo2']


def test_pcoa_needs_three_samples():
    df = pd.DataFrame([[1.0, 2.0], [2.0, 1.0]], index=['a', 'b'])
    with pytest.raises(InsufficientSamplesError):
        pcoa(distance_matrix(df))


# ================================== RUNNER ======================================== #

def test_ordination_runner_outputs(dataset, tmp_path):
    dirs = SubDirs(tmp_path / 'out')
    results = Ordination(OrdinationConfig(n_dimensions=3), FigureConfig(formats=('html',))).run(
        dataset, dirs
    )
    filtered = table_to_df(results['filtered'])
    # feature_rare sits exactly on the 10% boundary
    assert 'feature_rare' in filtered.index
    assert results['distance_matrix'].shape == (dataset.n_samples, dataset.n_samples)

    coords = pd.read_csv(
        dirs.table_dir('ordination') / 'pcoa_coordinates.tsv', sep='\t', index_col=0
    )
    assert list(coords.columns) == ['PCo1', 'PCo2', 'PCo3']
    assert all(p.exists() for p in results['figure_paths'])


def test_ordination_missing_color_column(dataset):
    with pytest.raises(JoinError):
        Ordination(OrdinationConfig(color_column='diet')).run(dataset)


def test_ordination_plot_unknown_axis(dataset):
    result = pcoa(distance_matrix(clr_transform(dataset.table)), n_dimensions=3)
    with pytest.raises(InputValidationError, match='PCo5'):
        create_ordination_plot(result.samples, dataset.metadata, dimensions=(1, 5))
