"""
Logistic regression models of NICU admission and preterm birth.

The cleaned table holds aggregated cells (county x sex x NICU x gestational
age with a birth count), so each model is a binomial GLM with the birth
count as frequency weight. That gives the same estimates as fitting one row
per infant.
"""
import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple
import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from .config import BUSINESS_RULES, CATEGORY_CONFIG
from .rates import PRETERM_CLASSIFICATION

logger = logging.getLogger(__name__)


# Binary outcome domains
NICU_OUTCOME: Dict[str, int] = {"Yes": 1, "No": 0}
PRETERM_OUTCOME: Dict[str, int] = {
    level: int(flag) for level, flag in PRETERM_CLASSIFICATION.items()
}
EXTREMELY_PRETERM_OUTCOME: Dict[str, int] = {
    level: int(level in CATEGORY_CONFIG.extremely_preterm_levels)
    for level in CATEGORY_CONFIG.gest_age_levels
}

_TERM_PATTERN = re.compile(r"^C\((\w+),.*\)\[T\.(.+)\]$")


def _to_binary(labels: pd.Series, mapping: Dict[str, int], name: str) -> pd.Series:
    values = labels.astype(object)
    outside = ~values.isin(list(mapping))
    if outside.any():
        raise ValueError(
            f"{name}: {int(outside.sum())} values outside the outcome domain: "
            f"{sorted({str(v) for v in values[outside]})}"
        )
    return values.map(mapping).astype(int)


def build_outcomes(cleaned: pd.DataFrame) -> pd.DataFrame:
    """
    Add the 0/1 outcome columns used by the models.

    Args:
        cleaned: Cleaned birth table

    Returns:
        New DataFrame with NICU, PRETERM and EXTREMELY_PRETERM columns

    Raises:
        ValueError: If a label falls outside an outcome's domain
    """
    out = cleaned.copy()
    out["NICU"] = _to_binary(out["NICU_ADMISSION"], NICU_OUTCOME, "NICU")
    out["PRETERM"] = _to_binary(out["GEST_AGE"], PRETERM_OUTCOME, "PRETERM")
    out["EXTREMELY_PRETERM"] = _to_binary(out["GEST_AGE"], EXTREMELY_PRETERM_OUTCOME, "EXTREMELY_PRETERM")
    return out


def relevel(series: pd.Series, reference: str) -> pd.Series:
    """
    Make `reference` the baseline level of an ordered categorical.

    Remaining levels keep their existing order (clinical order for gestational
    age); levels with no rows are dropped.

    Args:
        series: Categorical or label series
        reference: Level to place first

    Returns:
        Ordered categorical Series

    Raises:
        ValueError: If the reference level has no rows
    """
    if isinstance(series.dtype, pd.CategoricalDtype):
        levels = list(series.cat.categories)
    else:
        levels = sorted(series.dropna().unique().tolist())

    used = set(series.dropna().astype(object).unique().tolist())
    if reference not in used:
        raise ValueError(f"Reference level {reference!r} not present in {series.name}")

    ordered_levels = [reference] + [lvl for lvl in levels if lvl in used and lvl != reference]
    return pd.Series(
        pd.Categorical(series.astype(object), categories=ordered_levels, ordered=True),
        index=series.index,
        name=series.name
    )


def readable_term(term: str) -> str:
    """Turn a patsy term like C(SEX, Treatment(...))[T.Male] into SEX[Male]."""
    match = _TERM_PATTERN.match(term)
    if match:
        return f"{match.group(1)}[{match.group(2)}]"
    return term


def _treatment(column: str, reference: str) -> str:
    return f"C({column}, Treatment(reference={reference!r}))"


@dataclass(frozen=True)
class ModelSpec:
    """One regression specification."""
    name: str
    outcome: str
    predictor: str
    reference: str
    covariates: Tuple[Tuple[str, str], ...] = ()
    exclude_levels: Tuple[str, ...] = ()
    description: str = ""

    @property
    def formula(self) -> str:
        terms = [_treatment(self.predictor, self.reference)]
        terms += [_treatment(column, ref) for column, ref in self.covariates]
        return f"{self.outcome} ~ " + " + ".join(terms)

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.outcome, self.predictor) + tuple(c for c, _ in self.covariates)


@dataclass(frozen=True)
class ModelResult:
    """Fitted model coefficients and derived odds ratios."""
    spec: ModelSpec
    coefficients: pd.DataFrame = field(repr=False)
    odds_ratios: pd.DataFrame = field(repr=False)
    n_cells: int = 0
    n_births: float = 0.0
    converged: bool = True

    @property
    def unstable_terms(self) -> list:
        """Variables whose standard error is flagged as disproportionately large."""
        return self.odds_ratios.loc[self.odds_ratios["UNSTABLE"], "VARIABLE"].tolist()


GEST_AGE_REFERENCE = BUSINESS_RULES.gest_age_reference
SEX_REFERENCE = BUSINESS_RULES.sex_reference

MODEL_SEQUENCE: Tuple[ModelSpec, ...] = (
    ModelSpec(
        name="nicu_by_gest_age",
        outcome="NICU",
        predictor="GEST_AGE",
        reference=GEST_AGE_REFERENCE,
        description="NICU admission by gestational age"
    ),
    ModelSpec(
        name="nicu_by_gest_age_excl_under_20",
        outcome="NICU",
        predictor="GEST_AGE",
        reference=GEST_AGE_REFERENCE,
        exclude_levels=("Under 20 weeks",),
        description="NICU admission by gestational age, under 20 weeks excluded"
    ),
    ModelSpec(
        name="nicu_by_gest_age_and_sex",
        outcome="NICU",
        predictor="GEST_AGE",
        reference=GEST_AGE_REFERENCE,
        covariates=(("SEX", SEX_REFERENCE),),
        description="NICU admission by gestational age and infant sex"
    ),
    ModelSpec(
        name="preterm_by_sex",
        outcome="PRETERM",
        predictor="SEX",
        reference=SEX_REFERENCE,
        description="Preterm birth by infant sex"
    ),
    ModelSpec(
        name="extremely_preterm_by_sex",
        outcome="EXTREMELY_PRETERM",
        predictor="SEX",
        reference=SEX_REFERENCE,
        description="Extremely preterm birth (under 28 weeks) by infant sex"
    ),
)


def prepare_model_data(data: pd.DataFrame, spec: ModelSpec) -> pd.DataFrame:
    """
    Select, filter and relevel the rows a model is fit on.

    Args:
        data: Cleaned birth table, with or without outcome columns
        spec: Model specification

    Returns:
        New DataFrame with the model columns and float BIRTHS weights
    """
    if spec.outcome not in data.columns:
        data = build_outcomes(data)

    df = data
    if spec.exclude_levels:
        excluded = df[spec.predictor].isin(spec.exclude_levels)
        logger.info(f"{spec.name}: excluding {int(excluded.sum())} rows in {list(spec.exclude_levels)}")
        df = df.loc[~excluded]

    df = df[list(spec.columns) + ["BIRTHS"]].dropna()
    df = df.loc[df["BIRTHS"] > 0].reset_index(drop=True)

    df[spec.predictor] = relevel(df[spec.predictor], spec.reference)
    for column, reference in spec.covariates:
        df[column] = relevel(df[column], reference)

    df[spec.outcome] = df[spec.outcome].astype(float)
    df["BIRTHS"] = df["BIRTHS"].astype(float)
    return df


def odds_ratios(coefficients: pd.DataFrame, z: Optional[float] = None) -> pd.DataFrame:
    """
    Odds ratios with Wald confidence intervals for every non-intercept term.

    ODDS_RATIO = exp(ESTIMATE); CI = exp(ESTIMATE +/- z x STD_ERROR).

    Args:
        coefficients: Table with TERM, ESTIMATE and STD_ERROR
        z: Normal quantile (defaults to 1.96 for a 95% interval)

    Returns:
        DataFrame with TERM, VARIABLE, ESTIMATE, STD_ERROR, ODDS_RATIO,
        CI_LOWER, CI_UPPER, UNSTABLE
    """
    z = BUSINESS_RULES.ci_z if z is None else z
    terms = coefficients.loc[coefficients["TERM"] != "Intercept"].copy()
    if "VARIABLE" not in terms.columns:
        terms["VARIABLE"] = terms["TERM"].map(readable_term)

    estimate = terms["ESTIMATE"].astype(float)
    std_error = terms["STD_ERROR"].astype(float)

    # Sparse cells give huge standard errors; their bounds overflow to inf
    with np.errstate(over="ignore"):
        terms["ODDS_RATIO"] = np.exp(estimate)
        terms["CI_LOWER"] = np.exp(estimate - z * std_error)
        terms["CI_UPPER"] = np.exp(estimate + z * std_error)
    # NaN standard errors are flagged too
    terms["UNSTABLE"] = ~(std_error <= BUSINESS_RULES.unstable_se_threshold)

    return terms[[
        "TERM", "VARIABLE", "ESTIMATE", "STD_ERROR",
        "ODDS_RATIO", "CI_LOWER", "CI_UPPER", "UNSTABLE"
    ]].reset_index(drop=True)


def fit_model(data: pd.DataFrame, spec: ModelSpec) -> ModelResult:
    """
    Fit one logistic regression specification.

    Sparse categories show up as large standard errors, not failures;
    statsmodels warnings raised during the fit are logged.

    Args:
        data: Cleaned birth table
        spec: Model specification

    Returns:
        ModelResult

    Raises:
        ValueError: If the outcome does not vary in the model rows
    """
    df = prepare_model_data(data, spec)
    if df[spec.outcome].nunique() < 2:
        raise ValueError(f"{spec.name}: outcome {spec.outcome} does not vary; model is not identifiable")

    n_births = float(df["BIRTHS"].sum())
    logger.info(f"Fitting {spec.name}: {spec.formula} ({len(df):,} cells, {n_births:,.0f} births)")

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        model = smf.glm(
            spec.formula,
            data=df,
            family=sm.families.Binomial(),
            freq_weights=df["BIRTHS"].to_numpy()
        )
        res = model.fit()

    for warning in caught:
        logger.warning(f"{spec.name}: {warning.message}")

    coefficients = pd.DataFrame({
        "TERM": res.params.index,
        "VARIABLE": [readable_term(t) for t in res.params.index],
        "ESTIMATE": res.params.values,
        "STD_ERROR": res.bse.values,
        "P_VALUE": res.pvalues.values,
    })
    ors = odds_ratios(coefficients)

    unstable = ors.loc[ors["UNSTABLE"], "VARIABLE"].tolist()
    if unstable:
        logger.warning(f"{spec.name}: large standard errors for {unstable}")

    converged = bool(getattr(res, "converged", True))
    if not converged:
        logger.warning(f"{spec.name}: fit did not converge")

    return ModelResult(
        spec=spec,
        coefficients=coefficients,
        odds_ratios=ors,
        n_cells=len(df),
        n_births=n_births,
        converged=converged
    )


def run_models(
    cleaned: pd.DataFrame,
    specs: Optional[Iterable[ModelSpec]] = None
) -> Dict[str, ModelResult]:
    """
    Fit each specification independently.

    A model that cannot be identified on the data (an outcome that never
    varies, a missing reference level) is logged and left out; the remaining
    specifications are still fit.

    Args:
        cleaned: Cleaned birth table
        specs: Model specifications (defaults to MODEL_SEQUENCE)

    Returns:
        Dictionary of model name to ModelResult, in specification order
    """
    specs = MODEL_SEQUENCE if specs is None else tuple(specs)
    data = build_outcomes(cleaned)
    logger.info(f"Fitting {len(specs)} models")

    results: Dict[str, ModelResult] = {}
    skipped = []
    for spec in specs:
        try:
            results[spec.name] = fit_model(data, spec)
        except ValueError as e:
            logger.warning(f"Skipping model {spec.name}: {e}")
            skipped.append(spec.name)

    if skipped:
        logger.warning(f"{len(skipped)} of {len(specs)} models not fit: {skipped}")

    return results
