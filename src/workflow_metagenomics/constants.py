from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #

# Width the task description is padded to
DEFAULT_PROGRESS_TEXT_N: int = 40
# Color of the progress bar description text
DEFAULT_DESCRIPTION_STYLE: str = "white"
# Width of the progress bar
DEFAULT_BAR_WIDTH: int = 40
# Color of the filled/complete portion of the progress bar
DEFAULT_BAR_COLUMN_COMPLETE_STYLE: str = "honeydew2"
# Color used when the progress bar is finished
DEFAULT_FINISHED_STYLE: str = "dark_cyan"
# Color of the "fitted/total" feature count
DEFAULT_M_OF_N_COMPLETE_STYLE: str = "honeydew2"
# Color of the excluded-feature count
DEFAULT_EXCLUDED_STYLE: str = "yellow"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_OUTPUT_DIR = "./results"
LOGGER_NAME = "workflow_metagenomics"
# Rotating log file size and number of rotated files kept
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUPS = 3

# ==================================================================================== #
# INPUT TABLES
# ==================================================================================== #
DEFAULT_META_ID_COLUMN = '#sampleid'
DEFAULT_FEATURE_ID_COLUMN = 'feature_id'
DEFAULT_TAXON_COLUMN = 'Taxon'

TAXONOMIC_RANKS = [
    'Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus', 'Species'
]
UNANNOTATED = 'unannotated'

TAXONOMY_POLICIES = ('strict', 'lenient')
DEFAULT_TAXONOMY_POLICY = 'lenient'

# Snapshot file names
SNAPSHOT_TABLE = 'table.biom'
SNAPSHOT_TAXONOMY = 'taxonomy.tsv'
SNAPSHOT_METADATA = 'sample-metadata.tsv'

# ==================================================================================== #
# METADATA
# ==================================================================================== #
DEFAULT_GROUP_COLUMN = 'health_status'
DEFAULT_GROUP_COLUMN_VALUES = ['Healthy', 'Sick']
DEFAULT_COLOR_COLUMN = 'health_status'

# ==================================================================================== #
# ALPHA DIVERSITY
# ==================================================================================== #
ALPHA_METRICS = ('shannon', 'simpson', 'observed_features')
DEFAULT_ALPHA_METRIC = 'shannon'

GROUP_TESTS = ('t-test', 'mann-whitney')
DEFAULT_GROUP_TEST = 't-test'

# ==================================================================================== #
# ORDINATION
# ==================================================================================== #
DEFAULT_MIN_ABUNDANCE = 0.0001
DEFAULT_MIN_PREVALENCE = 0.1
DEFAULT_METRIC = 'euclidean'
DISTANCE_METRICS = (
    'euclidean', 'l2', 'cityblock', 'manhattan', 'l1', 'cosine', 'braycurtis',
    'canberra', 'chebyshev', 'correlation', 'minkowski', 'sqeuclidean'
)
DEFAULT_N_PCOA = 10
PREVALENCE_TOLERANCE = 1e-9

# ==================================================================================== #
# PERMANOVA
# ==================================================================================== #
DEFAULT_PERMANOVA_TERMS = ['health_status', 'sex', 'ethnicity', 'batch']
DEFAULT_PERMUTATIONS = 999
DEFAULT_RANDOM_STATE = 42

# ==================================================================================== #
# DIFFERENTIAL ABUNDANCE
# ==================================================================================== #
DEFAULT_FIXED_EFFECTS = ['health_status', 'sex', 'ethnicity']
DEFAULT_RANDOM_EFFECTS = 'batch'
DEFAULT_REFERENCE = {'health_status': 'Healthy'}

NORMALIZATIONS = ('TSS', 'NONE')
DEFAULT_NORMALIZATION = 'TSS'

TRANSFORMS = ('LOG', 'NONE')
DEFAULT_TRANSFORM = 'NONE'

ANALYSIS_METHODS = ('LM', 'CPLM')
DEFAULT_ANALYSIS_METHOD = 'CPLM'

DEFAULT_DA_MIN_ABUNDANCE = 0.0
DEFAULT_DA_MIN_PREVALENCE = 0.1
DEFAULT_MIN_NONZERO = 3
DEFAULT_MAX_SIGNIFICANCE = 0.1
DEFAULT_CORRECTION = 'fdr_bh'
# Methods accepted by statsmodels.stats.multitest.multipletests
CORRECTIONS = (
    'bonferroni', 'sidak', 'holm-sidak', 'holm', 'simes-hochberg', 'hommel',
    'fdr_bh', 'fdr_by', 'fdr_tsbh', 'fdr_tsbky'
)

# Compound Poisson-gamma variance power for the Tweedie family
TWEEDIE_VAR_POWER = 1.5

# ==================================================================================== #
# FIGURES
# ==================================================================================== #
DEFAULT_FIGURE_WIDTH = 1100
DEFAULT_FIGURE_HEIGHT = 1000
DEFAULT_FIGURE_SCALE = 3
DEFAULT_FIGURE_FORMATS = ['png', 'html']
