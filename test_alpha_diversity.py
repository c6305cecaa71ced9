"""
Tests for per-sample alpha diversity, the metadata join and the two-group
comparison, including the 3-sample Healthy/Sick scenario.
"""

import numpy as np
import pandas as pd
import pytest

from workflow_metagenomics.analysis.alpha_diversity import AlphaDiversity
from workflow_metagenomics.config import AlphaConfig, FigureConfig
from workflow_metagenomics.errors import InputValidationError, JoinError
from workflow_metagenomics.stats.alpha_diversity import (
    alpha_diversity, compare_groups, join_with_metadata
)
from workflow_metagenomics.utils.dir_utils import SubDirs


def test_shannon_is_non_negative(dataset):
    scores = alpha_diversity(dataset.table, 'shannon')
    assert len(scores) == dataset.n_samples
    assert (scores >= 0).all()


def test_shannon_zero_iff_single_feature():
    table = pd.DataFrame(
        {'one': [0, 12, 0], 'two': [3, 3, 0], 'three': [1, 1, 1]},
        index=['f1', 'f2', 'f3'], dtype=float
    )
    scores = alpha_diversity(table, 'shannon')
    assert scores['one'] == 0
    assert scores['two'] > 0
    assert scores['three'] == pytest.approx(np.log(3))


def test_all_zero_sample_is_undefined():
    table = pd.DataFrame({'empty': [0.0, 0.0], 'full': [1.0, 2.0]}, index=['f1', 'f2'])
    scores = alpha_diversity(table, 'shannon')
    assert np.isnan(scores['empty'])


@pytest.mark.parametrize('metric, expected', [
    ('simpson', 0.5),
    ('observed_features', 2.0),
])
def test_other_metrics(metric, expected):
    table = pd.DataFrame({'s': [5.0, 5.0, 0.0]}, index=['f1', 'f2', 'f3'])
    assert alpha_diversity(table, metric)['s'] == pytest.approx(expected)


def test_unknown_metric():
    with pytest.raises(InputValidationError):
        alpha_diversity(pd.DataFrame({'s': [1.0]}), 'chao1')


def test_join_rejects_orphans(dataset):
    scores = alpha_diversity(dataset.table, 'shannon')
    with pytest.raises(JoinError, match='S00'):
        join_with_metadata(scores, dataset.metadata.drop(index='S00'))
    with pytest.raises(JoinError, match='S01'):
        join_with_metadata(scores.drop(index='S01'), dataset.metadata)


def test_join_by_identifier_not_position(dataset):
    scores = alpha_diversity(dataset.table, 'shannon')
    shuffled = dataset.metadata.iloc[::-1]
    joined = join_with_metadata(scores, shuffled)
    assert joined.loc['S05', 'shannon'] == scores['S05']


def test_compare_groups_welch(dataset):
    joined = join_with_metadata(alpha_diversity(dataset.table), dataset.metadata)
    result = compare_groups(joined, 'shannon', 'health_status', ['Healthy', 'Sick'])
    assert result['n_1'] == 10 and result['n_2'] == 10
    assert 0 <= result['p_value'] <= 1


def test_compare_groups_missing_group(dataset):
    joined = join_with_metadata(alpha_diversity(dataset.table), dataset.metadata)
    with pytest.raises(JoinError, match='Unknown'):
        compare_groups(joined, 'shannon', 'health_status', ['Healthy', 'Unknown'])
    with pytest.raises(JoinError, match='not found'):
        compare_groups(joined, 'shannon', 'diet', ['a', 'b'])


# ============================ 3-SAMPLE SCENARIO =================================== #

def test_tiny_dataset_unequal_groups(tiny_dataset, tmp_path):
    """Two Healthy vs one Sick: three scores, joined by id, plot still rendered."""
    dirs = SubDirs(tmp_path / 'out')
    analysis = AlphaDiversity(
        AlphaConfig(groups=('Healthy', 'Sick')),
        FigureConfig(formats=('html',))
    )
    results = analysis.run(tiny_dataset, dirs)

    scores = results['scores']
    assert list(scores.index) == ['A', 'B', 'C']
    assert scores['B'] == 0
    assert scores['C'] == pytest.approx(np.log(4))
    assert list(results['joined']['health_status']) == ['Healthy', 'Healthy', 'Sick']

    comparison = results['comparison']
    assert (comparison['n_1'], comparison['n_2']) == (2, 1)
    # Welch's test is undefined for a single-sample group
    assert np.isnan(comparison['p_value'])

    assert results['figure'] is not None
    assert all(p.exists() for p in results['figure_paths'])
    assert (dirs.table_dir('alpha_diversity') / 'alpha_diversity.tsv').exists()
    assert (dirs.table_dir('alpha_diversity') / 'alpha_diversity_stats.tsv').exists()


def test_tiny_dataset_mann_whitney(tiny_dataset):
    analysis = AlphaDiversity(AlphaConfig(test='mann-whitney'))
    comparison = analysis.run(tiny_dataset)['comparison']
    assert 0 <= comparison['p_value'] <= 1
