# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

# Third-Party Imports
import yaml

# Local Imports
from workflow_metagenomics import constants
from workflow_metagenomics.errors import InputValidationError, WorkflowIOError

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger(constants.LOGGER_NAME)

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths in the configuration to absolute paths based on
    the directory of the config file."""
    for key, value in config.items():
        if isinstance(value, str):
            if value.startswith("./") or value.startswith("../"):
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG_PATH
) -> Dict:
    try:
        with open(config_path, "r") as file:
            config = yaml.safe_load(file) or {}
    except OSError as e:
        raise WorkflowIOError(f"Cannot read config file '{config_path}': {e}") from e
    except yaml.YAMLError as e:
        raise InputValidationError(
            f"Config file '{config_path}' is not valid YAML: {e}"
        ) from e

    if not isinstance(config, dict):
        raise InputValidationError(
            f"Config file '{config_path}' must contain a mapping, "
            f"got {type(config).__name__}"
        )

    config_dir = Path(config_path).resolve().parent
    return resolve_relative_paths(config, config_dir)


def _check_choice(section: str, key: str, value: Any, choices: Sequence) -> Any:
    if value not in choices:
        raise InputValidationError(
            f"Invalid '{section}.{key}': expected one of {list(choices)}, got {value!r}"
        )
    return value

# ================================ CONFIG SECTIONS =================================== #

@dataclass(frozen=True)
class InputConfig:
    abundance: Path
    taxonomy: Path
    metadata: Path
    metadata_id_column: str = constants.DEFAULT_META_ID_COLUMN
    taxonomy_policy: str = constants.DEFAULT_TAXONOMY_POLICY
    reuse_snapshot: bool = False

    @classmethod
    def from_dict(cls, d: Dict) -> "InputConfig":
        missing = [k for k in ('abundance', 'taxonomy', 'metadata') if not d.get(k)]
        if missing:
            raise InputValidationError(
                f"Missing input paths in config section 'inputs': {missing}"
            )
        return cls(
            abundance=Path(d['abundance']),
            taxonomy=Path(d['taxonomy']),
            metadata=Path(d['metadata']),
            metadata_id_column=d.get(
                'metadata_id_column', constants.DEFAULT_META_ID_COLUMN
            ),
            taxonomy_policy=_check_choice(
                'inputs', 'taxonomy_policy',
                d.get('taxonomy_policy', constants.DEFAULT_TAXONOMY_POLICY),
                constants.TAXONOMY_POLICIES
            ),
            reuse_snapshot=bool(d.get('reuse_snapshot', False)),
        )


@dataclass(frozen=True)
class FigureConfig:
    width: int = constants.DEFAULT_FIGURE_WIDTH
    height: int = constants.DEFAULT_FIGURE_HEIGHT
    scale: int = constants.DEFAULT_FIGURE_SCALE
    formats: Tuple[str, ...] = tuple(constants.DEFAULT_FIGURE_FORMATS)

    @classmethod
    def from_dict(cls, d: Dict) -> "FigureConfig":
        formats = tuple(d.get('formats', constants.DEFAULT_FIGURE_FORMATS))
        for fmt in formats:
            _check_choice('figures', 'formats', fmt, ('png', 'jpg', 'jpeg', 'svg', 'pdf', 'html'))
        return cls(
            width=int(d.get('width', constants.DEFAULT_FIGURE_WIDTH)),
            height=int(d.get('height', constants.DEFAULT_FIGURE_HEIGHT)),
            scale=int(d.get('scale', constants.DEFAULT_FIGURE_SCALE)),
            formats=formats,
        )


@dataclass(frozen=True)
class AlphaConfig:
    enabled: bool = True
    metric: str = constants.DEFAULT_ALPHA_METRIC
    group_column: str = constants.DEFAULT_GROUP_COLUMN
    groups: Tuple[Any, Any] = tuple(constants.DEFAULT_GROUP_COLUMN_VALUES)
    test: str = constants.DEFAULT_GROUP_TEST

    @classmethod
    def from_dict(cls, d: Dict) -> "AlphaConfig":
        groups = tuple(d.get('groups', constants.DEFAULT_GROUP_COLUMN_VALUES))
        if len(groups) != 2:
            raise InputValidationError(
                f"'alpha_diversity.groups' must name exactly two groups, got {list(groups)}"
            )
        return cls(
            enabled=bool(d.get('enabled', True)),
            metric=_check_choice(
                'alpha_diversity', 'metric',
                d.get('metric', constants.DEFAULT_ALPHA_METRIC), constants.ALPHA_METRICS
            ),
            group_column=d.get('group_column', constants.DEFAULT_GROUP_COLUMN),
            groups=groups,
            test=_check_choice(
                'alpha_diversity', 'test',
                d.get('test', constants.DEFAULT_GROUP_TEST), constants.GROUP_TESTS
            ),
        )


@dataclass(frozen=True)
class OrdinationConfig:
    enabled: bool = True
    min_abundance: float = constants.DEFAULT_MIN_ABUNDANCE
    min_prevalence: float = constants.DEFAULT_MIN_PREVALENCE
    pseudocount: Optional[float] = None
    metric: str = constants.DEFAULT_METRIC
    n_dimensions: int = constants.DEFAULT_N_PCOA
    color_column: str = constants.DEFAULT_COLOR_COLUMN

    def __post_init__(self):
        _check_choice('ordination', 'metric', self.metric, constants.DISTANCE_METRICS)
        if self.n_dimensions < 2:
            raise InputValidationError(
                f"'ordination.n_dimensions' must be >= 2 for a two-axis plot, "
                f"got {self.n_dimensions}"
            )

    @classmethod
    def from_dict(cls, d: Dict) -> "OrdinationConfig":
        pseudocount = d.get('pseudocount')
        return cls(
            enabled=bool(d.get('enabled', True)),
            min_abundance=float(d.get('min_abundance', constants.DEFAULT_MIN_ABUNDANCE)),
            min_prevalence=float(d.get('min_prevalence', constants.DEFAULT_MIN_PREVALENCE)),
            pseudocount=float(pseudocount) if pseudocount is not None else None,
            metric=d.get('metric', constants.DEFAULT_METRIC),
            n_dimensions=int(d.get('n_dimensions', constants.DEFAULT_N_PCOA)),
            color_column=d.get('color_column', constants.DEFAULT_COLOR_COLUMN),
        )


@dataclass(frozen=True)
class PermanovaConfig:
    enabled: bool = True
    terms: Tuple[str, ...] = tuple(constants.DEFAULT_PERMANOVA_TERMS)
    permutations: int = constants.DEFAULT_PERMUTATIONS
    seed: Optional[int] = constants.DEFAULT_RANDOM_STATE

    @classmethod
    def from_dict(cls, d: Dict) -> "PermanovaConfig":
        terms = tuple(d.get('terms', constants.DEFAULT_PERMANOVA_TERMS))
        if not terms:
            raise InputValidationError("'permanova.terms' must name at least one covariate")
        permutations = int(d.get('permutations', constants.DEFAULT_PERMUTATIONS))
        if permutations < 0:
            raise InputValidationError(
                f"'permanova.permutations' must be >= 0, got {permutations}"
            )
        seed = d.get('seed', constants.DEFAULT_RANDOM_STATE)
        return cls(
            enabled=bool(d.get('enabled', True)),
            terms=terms,
            permutations=permutations,
            seed=int(seed) if seed is not None else None,
        )


@dataclass(frozen=True)
class DifferentialAbundanceConfig:
    enabled: bool = True
    fixed_effects: Tuple[str, ...] = tuple(constants.DEFAULT_FIXED_EFFECTS)
    random_effects: Optional[str] = constants.DEFAULT_RANDOM_EFFECTS
    reference: Dict[str, Any] = field(
        default_factory=lambda: dict(constants.DEFAULT_REFERENCE)
    )
    normalization: str = constants.DEFAULT_NORMALIZATION
    transform: str = constants.DEFAULT_TRANSFORM
    analysis_method: str = constants.DEFAULT_ANALYSIS_METHOD
    min_abundance: float = constants.DEFAULT_DA_MIN_ABUNDANCE
    min_prevalence: float = constants.DEFAULT_DA_MIN_PREVALENCE
    min_nonzero: int = constants.DEFAULT_MIN_NONZERO
    max_significance: float = constants.DEFAULT_MAX_SIGNIFICANCE
    correction: str = constants.DEFAULT_CORRECTION
    plot_covariate: Optional[str] = None

    def __post_init__(self):
        _check_choice(
            'differential_abundance', 'normalization',
            self.normalization, constants.NORMALIZATIONS
        )
        _check_choice(
            'differential_abundance', 'transform',
            self.transform, constants.TRANSFORMS
        )
        _check_choice(
            'differential_abundance', 'analysis_method',
            self.analysis_method, constants.ANALYSIS_METHODS
        )
        _check_choice(
            'differential_abundance', 'correction',
            self.correction, constants.CORRECTIONS
        )
        if not self.fixed_effects:
            raise InputValidationError(
                "'differential_abundance.fixed_effects' must name at least one covariate"
            )
        if self.analysis_method == 'CPLM' and self.transform == 'LOG':
            raise InputValidationError(
                "'differential_abundance': CPLM requires non-negative values; "
                "use transform NONE"
            )
        if not 0 < self.max_significance <= 1:
            raise InputValidationError(
                f"'differential_abundance.max_significance' must be in (0, 1], "
                f"got {self.max_significance}"
            )

    @property
    def covariate_of_interest(self) -> str:
        return self.plot_covariate or self.fixed_effects[0]

    @classmethod
    def from_dict(cls, d: Dict) -> "DifferentialAbundanceConfig":
        return cls(
            enabled=bool(d.get('enabled', True)),
            fixed_effects=tuple(d.get('fixed_effects', constants.DEFAULT_FIXED_EFFECTS)),
            random_effects=d.get('random_effects', constants.DEFAULT_RANDOM_EFFECTS) or None,
            reference=dict(d.get('reference', constants.DEFAULT_REFERENCE) or {}),
            normalization=str(d.get('normalization', constants.DEFAULT_NORMALIZATION)).upper(),
            transform=str(d.get('transform', constants.DEFAULT_TRANSFORM)).upper(),
            analysis_method=str(
                d.get('analysis_method', constants.DEFAULT_ANALYSIS_METHOD)
            ).upper(),
            min_abundance=float(d.get('min_abundance', constants.DEFAULT_DA_MIN_ABUNDANCE)),
            min_prevalence=float(d.get('min_prevalence', constants.DEFAULT_DA_MIN_PREVALENCE)),
            min_nonzero=int(d.get('min_nonzero', constants.DEFAULT_MIN_NONZERO)),
            max_significance=float(
                d.get('max_significance', constants.DEFAULT_MAX_SIGNIFICANCE)
            ),
            correction=d.get('correction', constants.DEFAULT_CORRECTION),
            plot_covariate=d.get('plot_covariate'),
        )


@dataclass(frozen=True)
class WorkflowConfig:
    inputs: InputConfig
    output_dir: Path
    figures: FigureConfig = field(default_factory=FigureConfig)
    alpha_diversity: AlphaConfig = field(default_factory=AlphaConfig)
    ordination: OrdinationConfig = field(default_factory=OrdinationConfig)
    permanova: PermanovaConfig = field(default_factory=PermanovaConfig)
    differential_abundance: DifferentialAbundanceConfig = field(
        default_factory=DifferentialAbundanceConfig
    )

    @classmethod
    def from_dict(cls, config: Dict) -> "WorkflowConfig":
        return cls(
            inputs=InputConfig.from_dict(config.get('inputs', {})),
            output_dir=Path(config.get('output_dir', constants.DEFAULT_OUTPUT_DIR)),
            figures=FigureConfig.from_dict(config.get('figures', {})),
            alpha_diversity=AlphaConfig.from_dict(config.get('alpha_diversity', {})),
            ordination=OrdinationConfig.from_dict(config.get('ordination', {})),
            permanova=PermanovaConfig.from_dict(config.get('permanova', {})),
            differential_abundance=DifferentialAbundanceConfig.from_dict(
                config.get('differential_abundance', {})
            ),
        )


def load_workflow_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG_PATH
) -> WorkflowConfig:
    return WorkflowConfig.from_dict(get_config(config_path))
