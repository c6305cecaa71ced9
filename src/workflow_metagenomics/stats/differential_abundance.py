# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import re
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Third-Party Imports
import numpy as np
import pandas as pd
import statsmodels.api as sm
from patsy import dmatrix
from statsmodels.stats.multitest import multipletests
from statsmodels.tools.sm_exceptions import ConvergenceWarning

# ================================== LOCAL IMPORTS =================================== #

from workflow_metagenomics import constants
from workflow_metagenomics.errors import (
    FilterExhaustionError, InputValidationError, JoinError, ModelFitError
)
from workflow_metagenomics.utils.io import validate_abundance
from workflow_metagenomics.utils.progress import format_task_description, get_progress_bar
from workflow_metagenomics.utils.table_filtering import filter_samples, prevalence_mask

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_metagenomics')

RESULT_COLUMNS = [
    'feature', 'metadata', 'value', 'coef', 'stderr', 'N', 'N_not_zero', 'pval', 'qval'
]
EXCLUDED_COLUMNS = ['feature', 'reason']

_LEVEL_PATTERN = re.compile(r"\[T\.(.*)\]$")

# ==================================== RESULTS ======================================= #

@dataclass(frozen=True)
class SignificantAssociation:
    """One significant (feature, covariate, level) coefficient."""
    feature: str
    metadata: str
    value: str
    coef: float
    stderr: float
    pval: float
    qval: float


@dataclass
class DifferentialAbundanceResult:
    all_results: pd.DataFrame
    significant_results: pd.DataFrame
    excluded: pd.DataFrame
    max_significance: float

    def associations(self) -> List[SignificantAssociation]:
        return [
            SignificantAssociation(
                feature=str(row.feature),
                metadata=str(row.metadata),
                value=str(row.value),
                coef=float(row.coef),
                stderr=float(row.stderr),
                pval=float(row.pval),
                qval=float(row.qval),
            )
            for row in self.significant_results.itertuples(index=False)
        ]

    def for_covariate(self, covariate: str) -> pd.DataFrame:
        """Significant rows for one covariate."""
        return self.significant_results[
            self.significant_results['metadata'] == covariate
        ].copy()

# ============================== TABLE PREPARATION =================================== #

def normalize(df: pd.DataFrame, method: str = constants.DEFAULT_NORMALIZATION) -> pd.DataFrame:
    """Normalize a features × samples table. TSS scales each sample to sum 1."""
    if method == 'NONE':
        return df.copy()
    if method == 'TSS':
        df = filter_samples(df)
        return df.div(df.sum(axis=0), axis=1)
    raise InputValidationError(
        f"Unknown normalization {method!r}; expected one of {constants.NORMALIZATIONS}"
    )


def _log_feature(values: pd.Series) -> pd.Series:
    positive = values[values > 0]
    if positive.empty:
        return pd.Series(np.nan, index=values.index)
    return np.log2(values.where(values > 0, positive.min() / 2))


def transform(df: pd.DataFrame, method: str = constants.DEFAULT_TRANSFORM) -> pd.DataFrame:
    """Transform each feature. LOG is log2 with zeros replaced by half the
    feature's smallest positive value."""
    if method == 'NONE':
        return df.copy()
    if method == 'LOG':
        return df.apply(_log_feature, axis=1)
    raise InputValidationError(
        f"Unknown transform {method!r}; expected one of {constants.TRANSFORMS}"
    )

# ================================= MODEL DESIGN ===================================== #

def _is_categorical(column: pd.Series) -> bool:
    return pd.api.types.is_bool_dtype(column) or not pd.api.types.is_numeric_dtype(column)


def build_design(
    metadata: pd.DataFrame,
    fixed_effects: Sequence[str],
    reference: Optional[Dict[str, Any]] = None
) -> Tuple[pd.DataFrame, Dict[str, Tuple[str, str]]]:
    """Build the fixed-effects design matrix.

    Categorical covariates are treatment-coded against `reference[covariate]`
    (or their first sorted level when none is given); numeric covariates
    enter as one continuous column.

    Returns:
        The design DataFrame (intercept first) and a mapping from each
        non-intercept column to its (covariate, level) pair. Continuous
        covariates use their own name as the level.
    """
    reference = reference or {}
    parts = []
    for covariate in fixed_effects:
        column = metadata[covariate]
        if _is_categorical(column):
            levels = sorted(column.astype(str).unique())
            if covariate in reference:
                ref = str(reference[covariate])
                if ref not in levels:
                    raise InputValidationError(
                        f"Reference level {ref!r} not found in '{covariate}'. "
                        f"Available: {levels}"
                    )
            else:
                ref = levels[0]
                logger.debug(f"Using '{ref}' as reference level for '{covariate}'")
            parts.append(f'C(Q("{covariate}"), Treatment(reference={ref!r}))')
        else:
            parts.append(f'Q("{covariate}")')

    data = metadata[list(fixed_effects)].copy()
    for covariate in fixed_effects:
        if _is_categorical(data[covariate]):
            data[covariate] = data[covariate].astype(str)
    design = dmatrix(' + '.join(parts), data, return_type='dataframe')

    column_map = {}
    term_names = [n for n in design.design_info.term_names if n != 'Intercept']
    for covariate, term in zip(fixed_effects, term_names):
        for col in design.columns[design.design_info.term_name_slices[term]]:
            match = _LEVEL_PATTERN.search(col)
            column_map[col] = (covariate, match.group(1) if match else covariate)
    return design, column_map

# ================================= MODEL FITTING ==================================== #

def fit_feature(
    feature: str,
    y: pd.Series,
    design: pd.DataFrame,
    groups: Optional[pd.Series] = None,
    analysis_method: str = constants.DEFAULT_ANALYSIS_METHOD
) -> pd.DataFrame:
    """Fit one feature's model and return coef/stderr/pval per design column.

    LM:   ordinary least squares, or a linear mixed model with `groups` as the
          random intercept.
    CPLM: compound Poisson-gamma (Tweedie, log link) GLM, or a Tweedie GEE with
          exchangeable correlation within `groups`.

    Raises:
        ModelFitError: If the fit raises, does not converge or yields
            non-finite estimates.
    """
    tweedie = sm.families.Tweedie(var_power=constants.TWEEDIE_VAR_POWER)
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            if analysis_method == 'LM' and groups is None:
                result = sm.OLS(y, design).fit()
            elif analysis_method == 'LM':
                result = sm.MixedLM(y, design, groups=groups).fit(reml=True)
            elif analysis_method == 'CPLM' and groups is None:
                result = sm.GLM(y, design, family=tweedie).fit()
            elif analysis_method == 'CPLM':
                result = sm.GEE(
                    y, design, groups=groups, family=tweedie,
                    cov_struct=sm.cov_struct.Exchangeable()
                ).fit()
            else:
                raise InputValidationError(
                    f"Unknown analysis method {analysis_method!r}; "
                    f"expected one of {constants.ANALYSIS_METHODS}"
                )
    except InputValidationError:
        raise
    except (np.linalg.LinAlgError, ValueError, FloatingPointError) as e:
        raise ModelFitError(feature, f"{type(e).__name__}: {e}") from e

    for w in caught:
        message = str(w.message)
        # Only non-convergence invalidates the fit
        if issubclass(w.category, ConvergenceWarning) and 'converge' in message.lower():
            raise ModelFitError(feature, f"ConvergenceWarning: {message}")
        logger.debug(f"{feature}: {w.category.__name__}: {message}")
    if not getattr(result, 'converged', True):
        raise ModelFitError(feature, "model did not converge")

    columns = list(design.columns)
    table = pd.DataFrame({
        'coef': pd.Series(result.params)[columns],
        'stderr': pd.Series(result.bse)[columns],
        'pval': pd.Series(result.pvalues)[columns],
    })
    if not np.isfinite(table.values).all():
        raise ModelFitError(feature, "non-finite coefficient or standard error")
    return table


def _prepare_metadata(
    metadata: pd.DataFrame,
    samples: List[str],
    fixed_effects: Sequence[str],
    random_effects: Optional[str]
) -> pd.DataFrame:
    covariates = list(fixed_effects) + ([random_effects] if random_effects else [])
    missing_cols = [c for c in covariates if c not in metadata.columns]
    if missing_cols:
        raise JoinError(f"Model covariates not found in metadata: {missing_cols}")

    meta = metadata.copy()
    meta.index = meta.index.astype(str)
    shared = [s for s in samples if s in set(meta.index)]
    if not shared:
        raise JoinError("Abundance table and metadata share no sample identifiers")
    if len(shared) < len(samples):
        logger.warning(
            f"{len(samples) - len(shared)} abundance samples have no metadata and are skipped"
        )
    meta = meta.loc[shared, covariates]
    complete = meta.notna().all(axis=1)
    if not complete.all():
        logger.warning(
            f"Skipping {int((~complete).sum())} samples with missing covariate values"
        )
    return meta.loc[complete]

# ================================ CORE FUNCTIONALITY ================================ #

def select_significant(
    all_results: pd.DataFrame,
    max_significance: float = constants.DEFAULT_MAX_SIGNIFICANCE
) -> pd.DataFrame:
    """Rows whose adjusted p-value is at or below `max_significance`."""
    significant = all_results[all_results['qval'] <= max_significance]
    return significant.sort_values('qval').reset_index(drop=True)


def differential_abundance(
    abundance: pd.DataFrame,
    metadata: pd.DataFrame,
    fixed_effects: Sequence[str] = constants.DEFAULT_FIXED_EFFECTS,
    random_effects: Optional[str] = None,
    reference: Optional[Dict[str, Any]] = None,
    normalization: str = constants.DEFAULT_NORMALIZATION,
    transform_method: str = constants.DEFAULT_TRANSFORM,
    analysis_method: str = constants.DEFAULT_ANALYSIS_METHOD,
    min_abundance: float = constants.DEFAULT_DA_MIN_ABUNDANCE,
    min_prevalence: float = constants.DEFAULT_DA_MIN_PREVALENCE,
    min_nonzero: int = constants.DEFAULT_MIN_NONZERO,
    max_significance: float = constants.DEFAULT_MAX_SIGNIFICANCE,
    correction: str = constants.DEFAULT_CORRECTION
) -> DifferentialAbundanceResult:
    """
    Per-feature multivariable association testing between abundance and metadata.

    Features are prevalence filtered, normalized and transformed, then each is
    fitted independently against the fixed effects (plus an optional random
    effect). P-values of all fitted coefficients are adjusted together.
    Features that cannot be fitted are reported in `excluded`, not dropped
    silently.

    Args:
        abundance:        Raw features × samples abundance DataFrame.
        metadata:         Sample-indexed metadata.
        fixed_effects:    Covariates in model order.
        random_effects:   Optional grouping covariate (e.g. batch).
        reference:        Reference level per categorical covariate.
        normalization:    'TSS' or 'NONE'.
        transform_method: 'LOG' or 'NONE'.
        analysis_method:  'LM' or 'CPLM'.
        min_abundance:    Abundance a feature must exceed in a sample to count.
        min_prevalence:   Fraction of samples where it must do so.
        min_nonzero:      Non-zero observations needed to fit a feature.
        max_significance: Threshold on the adjusted p-value (inclusive).
        correction:       statsmodels multiple-testing method.

    Returns:
        DifferentialAbundanceResult.
    """
    if analysis_method == 'CPLM' and transform_method == 'LOG':
        raise InputValidationError("CPLM requires non-negative values; use transform NONE")

    abundance = validate_abundance(abundance)
    meta = _prepare_metadata(
        metadata, list(abundance.columns), fixed_effects, random_effects
    )
    abundance = abundance.loc[:, meta.index.tolist()]

    mask = prevalence_mask(abundance, min_abundance, min_prevalence)
    if not mask.any():
        raise FilterExhaustionError(
            f"No feature passes min_abundance={min_abundance}, "
            f"min_prevalence={min_prevalence} for differential abundance"
        )
    logger.info(f"Differential abundance: testing {int(mask.sum())}/{len(mask)} features")
    filtered = abundance.loc[mask]

    normalized = normalize(filtered, normalization)
    meta = meta.loc[normalized.columns]
    values = transform(normalized, transform_method)

    design, column_map = build_design(meta, fixed_effects, reference)
    groups = meta[random_effects].astype(str) if random_effects else None
    design = design.loc[normalized.columns]

    rows, excluded = [], []
    with get_progress_bar() as progress:
        task = progress.add_task(
            format_task_description(f"Fitting {analysis_method} models"),
            total=len(values), excluded=0
        )
        for feature in values.index:
            n_not_zero = int((normalized.loc[feature] > 0).sum())
            try:
                if n_not_zero < min_nonzero:
                    raise ModelFitError(
                        feature,
                        f"{n_not_zero} non-zero observations (< {min_nonzero})"
                    )
                fitted = fit_feature(
                    feature, values.loc[feature], design, groups, analysis_method
                )
            except ModelFitError as e:
                logger.debug(str(e))
                excluded.append({'feature': feature, 'reason': e.reason})
                continue
            finally:
                progress.update(task, advance=1, excluded=len(excluded))

            for column, (covariate, level) in column_map.items():
                rows.append({
                    'feature': feature,
                    'metadata': covariate,
                    'value': level,
                    'coef': fitted.loc[column, 'coef'],
                    'stderr': fitted.loc[column, 'stderr'],
                    'N': values.shape[1],
                    'N_not_zero': n_not_zero,
                    'pval': fitted.loc[column, 'pval'],
                })

    if excluded:
        logger.warning(
            f"{len(excluded)} features could not be fitted and were excluded "
            f"(see excluded features table)"
        )

    all_results = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    if not all_results.empty:
        _, qvals, _, _ = multipletests(all_results['pval'].values, method=correction)
        all_results['qval'] = qvals
        all_results = all_results.sort_values(['qval', 'pval']).reset_index(drop=True)

    significant = select_significant(all_results, max_significance)
    logger.info(
        f"Differential abundance: {len(significant)} significant associations "
        f"(q ≤ {max_significance}) from {len(all_results)} tests"
    )
    return DifferentialAbundanceResult(
        all_results=all_results,
        significant_results=significant,
        excluded=pd.DataFrame(excluded, columns=EXCLUDED_COLUMNS),
        max_significance=max_significance,
    )
