"""
Tests for YAML configuration loading and validation.
"""

from pathlib import Path

import pytest
import yaml

from workflow_metagenomics import constants
from workflow_metagenomics.config import (
    AlphaConfig, DifferentialAbundanceConfig, OrdinationConfig, PermanovaConfig,
    WorkflowConfig, get_config, load_workflow_config
)
from workflow_metagenomics.errors import InputValidationError, WorkflowIOError


def _write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


def test_default_config_file_loads():
    config = load_workflow_config(constants.DEFAULT_CONFIG_PATH)
    assert config.alpha_diversity.groups == ('Healthy', 'Sick')
    assert config.permanova.terms == tuple(constants.DEFAULT_PERMANOVA_TERMS)
    assert config.differential_abundance.analysis_method == 'CPLM'
    assert config.inputs.abundance.is_absolute()


def test_relative_paths_resolved_against_config_dir(tmp_path):
    path = _write_yaml(tmp_path / 'config.yaml', {
        'inputs': {
            'abundance': './abundance.tsv',
            'taxonomy': '../taxonomy.tsv',
            'metadata': '/abs/meta.tsv',
        }
    })
    config = load_workflow_config(path)
    assert config.inputs.abundance == (tmp_path / 'abundance.tsv').resolve()
    assert config.inputs.taxonomy == (tmp_path.parent / 'taxonomy.tsv').resolve()
    assert config.inputs.metadata == Path('/abs/meta.tsv')


def test_missing_sections_use_defaults(config_dict):
    config_dict.pop('permanova')
    config = WorkflowConfig.from_dict(config_dict)
    assert config.permanova.permutations == constants.DEFAULT_PERMUTATIONS
    assert config.permanova.seed == constants.DEFAULT_RANDOM_STATE


def test_missing_input_path_rejected():
    with pytest.raises(InputValidationError, match='metadata'):
        WorkflowConfig.from_dict({'inputs': {'abundance': 'a', 'taxonomy': 't'}})


def test_missing_config_file(tmp_path):
    with pytest.raises(WorkflowIOError):
        get_config(tmp_path / 'missing.yaml')


def test_invalid_yaml(tmp_path):
    path = tmp_path / 'bad.yaml'
    path.write_text('inputs: [unclosed')
    with pytest.raises(InputValidationError, match='YAML'):
        get_config(path)


@pytest.mark.parametrize('section, cls, values', [
    ('alpha_diversity', AlphaConfig, {'metric': 'chao1'}),
    ('alpha_diversity', AlphaConfig, {'test': 'anova'}),
    ('alpha_diversity', AlphaConfig, {'groups': ['Healthy']}),
    ('ordination', OrdinationConfig, {'metric': 'eucldean'}),
    ('ordination', OrdinationConfig, {'n_dimensions': 1}),
    ('permanova', PermanovaConfig, {'permutations': -1}),
    ('differential_abundance', DifferentialAbundanceConfig, {'analysis_method': 'ZINB'}),
    ('differential_abundance', DifferentialAbundanceConfig, {'max_significance': 0}),
    ('differential_abundance', DifferentialAbundanceConfig, {'correction': 'bonferonni'}),
    ('differential_abundance', DifferentialAbundanceConfig,
     {'analysis_method': 'CPLM', 'transform': 'LOG'}),
])
def test_invalid_section_values(section, cls, values):
    with pytest.raises(InputValidationError):
        cls.from_dict(values)


def test_method_names_are_case_insensitive():
    config = DifferentialAbundanceConfig.from_dict(
        {'analysis_method': 'lm', 'transform': 'log', 'normalization': 'tss'}
    )
    assert (config.analysis_method, config.transform, config.normalization) == ('LM', 'LOG', 'TSS')


def test_covariate_of_interest_defaults_to_first_fixed_effect():
    config = DifferentialAbundanceConfig(fixed_effects=('sex', 'health_status'))
    assert config.covariate_of_interest == 'sex'
