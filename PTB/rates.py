"""
County-level rate derivation for the county preterm birth pipeline.
"""
import logging
from typing import Dict, List
import pandas as pd

from .config import BUSINESS_RULES, CATEGORY_CONFIG
from .data_sources import validate_columns
from .reconciliation import unique_county_rows
from .utils import normalize_county_code, null_safe_rate

logger = logging.getLogger(__name__)


# Every recognized gestational age category, True when wholly below 37 weeks
PRETERM_CLASSIFICATION: Dict[str, bool] = {
    level: level in CATEGORY_CONFIG.preterm_levels
    for level in CATEGORY_CONFIG.gest_age_levels
}


def is_preterm(label) -> bool:
    """
    Classify a gestational age category as preterm or term.

    Args:
        label: Gestational age category label

    Returns:
        True for preterm categories, False for term categories

    Raises:
        ValueError: If the label is not a recognized category
    """
    try:
        return PRETERM_CLASSIFICATION[label]
    except (KeyError, TypeError):
        raise ValueError(f"Unrecognized gestational age category: {label!r}") from None


def preterm_mask(gest_age: pd.Series) -> pd.Series:
    """Boolean mask of preterm rows; raises on unrecognized categories."""
    return gest_age.astype(object).map(is_preterm).astype(bool)


def _group_keys(by_sex: bool) -> List[str]:
    return ["COUNTY_CODE", "SEX"] if by_sex else ["COUNTY_CODE"]


def county_totals(cleaned: pd.DataFrame) -> pd.DataFrame:
    """
    One row per county with its total births, read once from the county table.

    Args:
        cleaned: Cleaned birth table

    Returns:
        DataFrame with COUNTY_CODE, COUNTY_NAME, TOTAL_BIRTHS

    Raises:
        ValueError: If a county carries more than one total
    """
    grouped = cleaned.groupby("COUNTY_CODE", sort=True)
    n_totals = grouped["TOTAL_BIRTHS"].nunique()
    if (n_totals > 1).any():
        raise ValueError(
            f"Counties with more than one total births value: "
            f"{n_totals[n_totals > 1].index.tolist()}"
        )

    return grouped.agg(
        COUNTY_NAME=("COUNTY_NAME", "first"),
        TOTAL_BIRTHS=("TOTAL_BIRTHS", "first")
    ).reset_index()


def _derive_rate(
    cleaned: pd.DataFrame,
    numerator_mask: pd.Series,
    numerator_col: str,
    rate_col: str,
    by_sex: bool
) -> pd.DataFrame:
    """Sum births under numerator_mask per stratum and divide by the county total."""
    keys = _group_keys(by_sex)

    counts = (
        cleaned.assign(_NUMERATOR=cleaned["BIRTHS"].where(numerator_mask, 0))
        .groupby(keys, sort=True, observed=True)["_NUMERATOR"]
        .sum()
        .rename(numerator_col)
        .reset_index()
    )

    # County totals are broadcast to each stratum, never summed across strata
    out = counts.merge(county_totals(cleaned), on="COUNTY_CODE", how="left", validate="many_to_one")
    out[rate_col] = null_safe_rate(out[numerator_col], out["TOTAL_BIRTHS"], BUSINESS_RULES.rate_multiplier)

    n_null = int(out[rate_col].isna().sum())
    if n_null:
        logger.warning(f"{rate_col}: {n_null} rows with zero or missing total births set to null")

    over = (out[rate_col] > 100).fillna(False).astype(bool)
    if over.any():
        logger.warning(f"{rate_col}: {int(over.sum())} rows above 100%: {out.loc[over, 'COUNTY_CODE'].tolist()}")

    columns = keys[:1] + ["COUNTY_NAME"] + keys[1:] + ["TOTAL_BIRTHS", numerator_col, rate_col]
    return out[columns]


def derive_preterm_rates(cleaned: pd.DataFrame, by_sex: bool = False) -> pd.DataFrame:
    """
    Preterm birth rate per county, or per county and sex.

    PRETERM_RATE = preterm births / county total births x 100, null when the
    county total is zero or missing.

    Args:
        cleaned: Cleaned birth table
        by_sex: Whether to split each county by infant sex

    Returns:
        DataFrame with COUNTY_CODE, COUNTY_NAME, [SEX], TOTAL_BIRTHS,
        PRETERM_BIRTHS, PRETERM_RATE
    """
    logger.info(f"Deriving preterm rates{' by sex' if by_sex else ''}")
    return _derive_rate(
        cleaned, preterm_mask(cleaned["GEST_AGE"]), "PRETERM_BIRTHS", "PRETERM_RATE", by_sex
    )


def derive_nicu_rates(cleaned: pd.DataFrame, by_sex: bool = False) -> pd.DataFrame:
    """
    NICU admission rate per county, or per county and sex.

    Args:
        cleaned: Cleaned birth table
        by_sex: Whether to split each county by infant sex

    Returns:
        DataFrame with COUNTY_CODE, COUNTY_NAME, [SEX], TOTAL_BIRTHS,
        NICU_BIRTHS, NICU_RATE
    """
    logger.info(f"Deriving NICU admission rates{' by sex' if by_sex else ''}")
    admitted = (cleaned["NICU_ADMISSION"] == "Yes").astype(bool)
    return _derive_rate(cleaned, admitted, "NICU_BIRTHS", "NICU_RATE", by_sex)


def derive_birth_rates(rates: pd.DataFrame, population: pd.DataFrame) -> pd.DataFrame:
    """
    Births per 1,000 residents for each county.

    Args:
        rates: County-level rate table with COUNTY_CODE and TOTAL_BIRTHS
        population: County population table with COUNTY_CODE and POPULATION

    Returns:
        New DataFrame with POPULATION and BIRTH_RATE appended

    Raises:
        ValueError: If the population table has conflicting rows for a county
    """
    validate_columns(population, ["COUNTY_CODE", "POPULATION"], "county population table")
    logger.info("Deriving birth rates")

    pop = population[["COUNTY_CODE", "POPULATION"]].copy()
    pop["COUNTY_CODE"] = normalize_county_code(pop["COUNTY_CODE"])
    pop["POPULATION"] = pd.to_numeric(pop["POPULATION"], errors="coerce")
    pop = unique_county_rows(pop, "County population table")

    out = rates.copy()
    out["COUNTY_CODE"] = normalize_county_code(out["COUNTY_CODE"])
    out = out.merge(pop, on="COUNTY_CODE", how="left", validate="many_to_one")
    missing = int(out["POPULATION"].isna().sum())
    if missing:
        logger.warning(f"{missing} counties without a population estimate")

    out["BIRTH_RATE"] = null_safe_rate(out["TOTAL_BIRTHS"], out["POPULATION"], BUSINESS_RULES.birth_rate_multiplier)
    return out
