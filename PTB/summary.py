"""
Summary scalars and tables handed to the reporting stage.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional
import pandas as pd

from .modeling import ModelResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateSummary:
    """Extremes and mean of one rate column."""
    rate_col: str
    highest_county: Optional[str]
    highest_name: Optional[str]
    highest_rate: Optional[float]
    lowest_county: Optional[str]
    lowest_name: Optional[str]
    lowest_rate: Optional[float]
    mean_rate: Optional[float]
    n_counties: int
    n_null: int


def _pick(valid: pd.DataFrame, rate_col: str, ascending: bool) -> pd.Series:
    # Ties go to the lowest county code
    ordered = valid.sort_values(
        [rate_col, "COUNTY_CODE"],
        ascending=[ascending, True],
        kind="mergesort"
    )
    return ordered.iloc[0]


def _optional_str(value) -> Optional[str]:
    return None if pd.isna(value) else str(value)


def summarize_rates(rates: pd.DataFrame, rate_col: str = "PRETERM_RATE") -> RateSummary:
    """
    Highest, lowest and mean rate across counties.

    Null rates are excluded from every statistic; the mean is taken over the
    counties that have a rate, not over all rows.

    Args:
        rates: County-level rate table
        rate_col: Rate column to summarize

    Returns:
        RateSummary
    """
    values = pd.to_numeric(rates[rate_col], errors="coerce").astype("Float64")
    valid = rates.assign(**{rate_col: values}).loc[values.notna().astype(bool)]
    n_null = len(rates) - len(valid)

    if valid.empty:
        logger.warning(f"{rate_col}: no counties with a defined rate")
        return RateSummary(rate_col, None, None, None, None, None, None, None, len(rates), n_null)

    highest = _pick(valid, rate_col, ascending=False)
    lowest = _pick(valid, rate_col, ascending=True)
    mean_rate = float(valid[rate_col].astype(float).mean())

    logger.info(
        f"{rate_col}: highest {highest['COUNTY_CODE']} ({float(highest[rate_col]):.2f}), "
        f"lowest {lowest['COUNTY_CODE']} ({float(lowest[rate_col]):.2f}), "
        f"mean {mean_rate:.2f} over {len(valid)} counties"
    )

    return RateSummary(
        rate_col=rate_col,
        highest_county=str(highest["COUNTY_CODE"]),
        highest_name=_optional_str(highest.get("COUNTY_NAME")),
        highest_rate=float(highest[rate_col]),
        lowest_county=str(lowest["COUNTY_CODE"]),
        lowest_name=_optional_str(lowest.get("COUNTY_NAME")),
        lowest_rate=float(lowest[rate_col]),
        mean_rate=mean_rate,
        n_counties=len(rates),
        n_null=n_null
    )


def coefficient_table(result: ModelResult) -> pd.DataFrame:
    """
    Odds ratio table for one fitted model.

    Args:
        result: Fitted model

    Returns:
        DataFrame with VARIABLE, ODDS_RATIO, CI_LOWER, CI_UPPER, UNSTABLE
    """
    table = result.odds_ratios[["VARIABLE", "ODDS_RATIO", "CI_LOWER", "CI_UPPER", "UNSTABLE"]].copy()
    table.insert(0, "MODEL", result.spec.name)
    return table


def coefficient_tables(results: Dict[str, ModelResult]) -> Dict[str, pd.DataFrame]:
    """Odds ratio tables keyed by model name."""
    return {name: coefficient_table(result) for name, result in results.items()}
