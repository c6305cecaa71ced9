"""
Shared fixtures: a small synthetic metagenome (20 samples × 12 species) whose
first feature is strongly enriched in 'Sick' samples, plus the same tables
written to disk for end-to-end runs.
"""

import numpy as np
import pandas as pd
import pytest

from workflow_metagenomics import constants
from workflow_metagenomics.config import WorkflowConfig
from workflow_metagenomics.dataset.assembly import assemble_dataset

N_SAMPLES = 20
N_FEATURES = 12


@pytest.fixture
def sample_ids():
    return [f'S{i:02d}' for i in range(N_SAMPLES)]


@pytest.fixture
def feature_ids():
    return [f'feature_{i}' for i in range(N_FEATURES - 1)] + ['feature_rare']


@pytest.fixture
def metadata(sample_ids):
    meta = pd.DataFrame({
        'health_status': ['Healthy'] * 10 + ['Sick'] * 10,
        'sex': ['F' if i % 2 == 0 else 'M' for i in range(N_SAMPLES)],
        'ethnicity': [['A', 'B', 'B', 'A', 'B'][i % 5] for i in range(N_SAMPLES)],
        'batch': [['b1', 'b2', 'b3', 'b4'][(i // 2) % 4] for i in range(N_SAMPLES)],
        'age': [30 + 2 * i for i in range(N_SAMPLES)],
    }, index=pd.Index(sample_ids, name=constants.DEFAULT_META_ID_COLUMN))
    return meta


@pytest.fixture
def abundance(sample_ids, feature_ids, metadata):
    """Features × samples counts; feature_0 is 30× higher in Sick samples and
    feature_rare is above zero in exactly 2 of 20 samples."""
    rng = np.random.default_rng(0)
    values = rng.lognormal(mean=3.0, sigma=0.4, size=(N_FEATURES, N_SAMPLES))
    sick = (metadata['health_status'] == 'Sick').values
    values[0, sick] *= 30

    # Sparse features
    for row in range(6, N_FEATURES - 1):
        zero_idx = rng.choice(N_SAMPLES, size=4, replace=False)
        values[row, zero_idx] = 0.0
    values[-1, :] = 0.0
    values[-1, [3, 15]] = 5.0
    return pd.DataFrame(
        np.round(values, 2),
        index=pd.Index(feature_ids, name=constants.DEFAULT_FEATURE_ID_COLUMN),
        columns=sample_ids
    )


@pytest.fixture
def taxonomy(feature_ids):
    rows = [
        ['Bacteria', 'Firmicutes', 'Clostridia', 'Eubacteriales',
         'Lachnospiraceae', f'Genus{i}', f'Genus{i} species']
        for i in range(len(feature_ids))
    ]
    return pd.DataFrame(
        rows,
        index=pd.Index(feature_ids, name=constants.DEFAULT_FEATURE_ID_COLUMN),
        columns=constants.TAXONOMIC_RANKS
    )


@pytest.fixture
def dataset(abundance, taxonomy, metadata):
    return assemble_dataset(abundance, taxonomy, metadata, taxonomy_policy='strict')


@pytest.fixture
def input_files(tmp_path, abundance, taxonomy, metadata):
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    paths = {
        'abundance': data_dir / 'species_abundance.tsv',
        'taxonomy': data_dir / 'taxonomy.tsv',
        'metadata': data_dir / 'sample-metadata.tsv',
    }
    abundance.to_csv(paths['abundance'], sep='\t')
    taxonomy.to_csv(paths['taxonomy'], sep='\t')
    metadata.to_csv(paths['metadata'], sep='\t')
    return paths


@pytest.fixture
def config_dict(tmp_path, input_files):
    return {
        'inputs': {k: str(v) for k, v in input_files.items()},
        'output_dir': str(tmp_path / 'results'),
        'figures': {'width': 600, 'height': 500, 'formats': ['html']},
        'alpha_diversity': {'groups': ['Healthy', 'Sick']},
        'ordination': {'n_dimensions': 5},
        'permanova': {'permutations': 49, 'seed': 1},
        'differential_abundance': {
            'fixed_effects': ['health_status', 'sex'],
            'random_effects': None,
            'normalization': 'TSS',
            'transform': 'LOG',
            'analysis_method': 'LM',
        },
    }


@pytest.fixture
def workflow_config(config_dict):
    return WorkflowConfig.from_dict(config_dict)


@pytest.fixture
def tiny_dataset():
    """3 samples × 4 features; two Healthy, one Sick."""
    samples = ['A', 'B', 'C']
    features = ['f1', 'f2', 'f3', 'f4']
    abundance = pd.DataFrame(
        [[10, 0, 4], [5, 0, 4], [1, 7, 4], [0, 0, 4]],
        index=features, columns=samples, dtype=float
    )
    taxonomy = pd.DataFrame(
        [['Bacteria', f'Phylum{i}'] for i in range(4)],
        index=features, columns=['Kingdom', 'Phylum']
    )
    metadata = pd.DataFrame(
        {'health_status': ['Healthy', 'Healthy', 'Sick']}, index=samples
    )
    return assemble_dataset(abundance, taxonomy, metadata)
