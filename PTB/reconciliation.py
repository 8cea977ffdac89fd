"""
Join and reconciliation of the natality extracts.

Turns the raw birth-detail and county total-births tables into one cleaned
table. Stages run in a fixed order: join, name reconciliation, column
pruning, category filtering, deduplication.
"""
import logging
import pandas as pd

from .config import BUSINESS_RULES, CLEANED_COLUMNS
from .categories import decode_gest_age, decode_nicu_admission, decode_sex
from .data_sources import validate_columns
from .utils import normalize_county_code

logger = logging.getLogger(__name__)


class JoinKeyError(ValueError):
    """Raised when the county join matches no rows at all."""


def unique_county_rows(table: pd.DataFrame, table_name: str = "County totals table") -> pd.DataFrame:
    """
    Collapse exact duplicate county rows; reject conflicting ones.

    Args:
        table: County-level table keyed by COUNTY_CODE
        table_name: Table description for log and error messages

    Returns:
        DataFrame with one row per COUNTY_CODE

    Raises:
        ValueError: If a county has rows that differ in any other column
    """
    deduped = table.drop_duplicates()
    n_dupes = len(table) - len(deduped)
    if n_dupes:
        logger.info(f"{table_name}: dropped {n_dupes} duplicate county rows")

    conflicting = deduped["COUNTY_CODE"][deduped["COUNTY_CODE"].duplicated()]
    if not conflicting.empty:
        raise ValueError(
            f"{table_name} has conflicting rows for codes: "
            f"{sorted(conflicting.unique().tolist())}"
        )
    return deduped


def join_sources(births: pd.DataFrame, population: pd.DataFrame) -> pd.DataFrame:
    """
    Left join the birth-detail table onto the county totals table.

    Both county keys are normalized to zero-padded text first. A numeric key
    on one side and a text key on the other would otherwise match nothing.

    Args:
        births: Birth-detail table (COUNTY_CODE, COUNTY_NAME, SEX, ...)
        population: County totals table (COUNTY_CODE, COUNTY_NAME, TOTAL_BIRTHS)

    Returns:
        Joined DataFrame with COUNTY_NAME_BIRTHS and COUNTY_NAME_POP

    Raises:
        JoinKeyError: If no birth row finds a county total
        ValueError: If the totals table has conflicting rows for a county
    """
    logger.info("Joining birth detail to county totals")

    validate_columns(births, ["COUNTY_CODE", "COUNTY_NAME"], "birth detail table")
    validate_columns(population, ["COUNTY_CODE", "COUNTY_NAME", "TOTAL_BIRTHS"], "county totals table")

    left = births.copy()
    right = population[["COUNTY_CODE", "COUNTY_NAME", "TOTAL_BIRTHS"]].copy()
    left["COUNTY_CODE"] = normalize_county_code(left["COUNTY_CODE"])
    right["COUNTY_CODE"] = normalize_county_code(right["COUNTY_CODE"])
    right = unique_county_rows(right)

    joined = left.merge(
        right,
        on="COUNTY_CODE",
        how="left",
        suffixes=("_BIRTHS", "_POP"),
        indicator=True
    )

    matched = joined["_merge"] == "both"
    n_matched = int(matched.sum())
    if len(joined) and n_matched == 0:
        raise JoinKeyError(
            "County join matched 0 of "
            f"{len(joined):,} birth rows; check county code representation"
        )

    n_unmatched = len(joined) - n_matched
    if n_unmatched:
        codes = sorted(joined.loc[~matched, "COUNTY_CODE"].dropna().unique().tolist())
        logger.warning(
            f"{n_unmatched:,} birth rows in {len(codes)} counties have no county total: {codes[:10]}"
        )

    match_rate = n_matched / len(joined) if len(joined) else 1.0
    if match_rate < BUSINESS_RULES.min_join_match_rate:
        logger.warning(f"County join match rate {match_rate:.1%} below expected")
    else:
        logger.info(f"County join match rate {match_rate:.1%}")

    return joined.drop(columns="_merge")


def reconcile_county_names(joined: pd.DataFrame) -> pd.DataFrame:
    """
    Reduce the two county name columns to one.

    The name is kept only when both sources agree; any disagreement (or a
    missing side) leaves COUNTY_NAME null.

    Args:
        joined: Output of join_sources

    Returns:
        New DataFrame with a single COUNTY_NAME column
    """
    births_name = joined["COUNTY_NAME_BIRTHS"].astype("string").str.strip()
    pop_name = joined["COUNTY_NAME_POP"].astype("string").str.strip()
    agree = (births_name == pop_name).fillna(False).astype(bool)

    disagree = ~agree & births_name.notna() & pop_name.notna()
    if disagree.any():
        n_counties = joined.loc[disagree, "COUNTY_CODE"].nunique()
        logger.warning(f"County names disagree for {n_counties} counties; name set to null")

    out = joined.drop(columns=["COUNTY_NAME_BIRTHS", "COUNTY_NAME_POP"])
    out.insert(1, "COUNTY_NAME", births_name.where(agree))
    return out


def prune_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep only the semantic columns and type the count columns.

    Args:
        df: Reconciled table

    Returns:
        New DataFrame with CLEANED_COLUMNS, BIRTHS and TOTAL_BIRTHS as Int64
    """
    validate_columns(df, CLEANED_COLUMNS, "reconciled table")
    out = df[CLEANED_COLUMNS].copy()

    dropped = [c for c in df.columns if c not in CLEANED_COLUMNS]
    if dropped:
        logger.info(f"Pruned columns: {dropped}")

    for count_col in ("BIRTHS", "TOTAL_BIRTHS"):
        values = pd.to_numeric(out[count_col], errors="coerce")
        bad = values.isna() & out[count_col].notna()
        if bad.any():
            logger.warning(f"{count_col}: {int(bad.sum())} non-numeric values set to null")
        out[count_col] = values.astype("Int64")

    return out


def filter_unknown_categories(df: pd.DataFrame) -> pd.DataFrame:
    """
    Decode categorical labels and drop rows that cannot be analysed.

    Rows with an unknown/blank NICU admission or gestational age label are
    removed, as are rows with unrecognized labels or no birth count. Every
    reason is logged with its tally.

    Args:
        df: Pruned table

    Returns:
        New DataFrame with SEX, NICU_ADMISSION and GEST_AGE as Categoricals
    """
    out = df.copy()

    gest = decode_gest_age(out["GEST_AGE"])
    nicu = decode_nicu_admission(out["NICU_ADMISSION"])
    sex = decode_sex(out["SEX"])

    logger.info(
        f"Unknown/blank labels - GEST_AGE: {gest.n_sentinel}, "
        f"NICU_ADMISSION: {nicu.n_sentinel}, SEX: {sex.n_sentinel}"
    )

    out["GEST_AGE"] = gest.values
    out["NICU_ADMISSION"] = nicu.values
    out["SEX"] = sex.values

    has_births = out["BIRTHS"].notna().astype(bool)
    if (~has_births).any():
        logger.warning(f"{int((~has_births).sum())} rows without a birth count dropped")

    keep = gest.valid & nicu.valid & sex.valid & has_births
    logger.info(f"Category filter removed {int((~keep).sum()):,} of {len(out):,} rows")

    return out.loc[keep].reset_index(drop=True)


def drop_duplicate_records(df: pd.DataFrame) -> pd.DataFrame:
    """Remove exact duplicate rows, keeping the first occurrence."""
    out = df.drop_duplicates(keep="first").reset_index(drop=True)
    n_dupes = len(df) - len(out)
    if n_dupes:
        logger.info(f"Dropped {n_dupes:,} duplicate records")
    return out


def check_total_births(cleaned: pd.DataFrame) -> pd.DataFrame:
    """
    Find counties whose summed birth counts exceed the county total.

    Args:
        cleaned: Cleaned birth table

    Returns:
        DataFrame of offending counties (COUNTY_CODE, SUMMED_BIRTHS, TOTAL_BIRTHS)
    """
    per_county = (
        cleaned.groupby("COUNTY_CODE", sort=True)
        .agg(SUMMED_BIRTHS=("BIRTHS", "sum"), TOTAL_BIRTHS=("TOTAL_BIRTHS", "first"))
        .reset_index()
    )
    over = (per_county["SUMMED_BIRTHS"] > per_county["TOTAL_BIRTHS"]).fillna(False).astype(bool)
    violations = per_county.loc[over].reset_index(drop=True)

    if not violations.empty:
        logger.warning(
            f"{len(violations)} counties have more detailed births than their total: "
            f"{violations['COUNTY_CODE'].tolist()[:10]}"
        )
    return violations


def clean_birth_data(births: pd.DataFrame, population: pd.DataFrame) -> pd.DataFrame:
    """
    Run the full join and reconciliation stage.

    Args:
        births: Birth-detail table from the loader
        population: County totals table from the loader

    Returns:
        Cleaned table with CLEANED_COLUMNS
    """
    logger.info(f"Cleaning {len(births):,} birth rows against {len(population):,} county totals")

    joined = join_sources(births, population)
    reconciled = reconcile_county_names(joined)
    pruned = prune_columns(reconciled)
    filtered = filter_unknown_categories(pruned)
    cleaned = drop_duplicate_records(filtered)

    check_total_births(cleaned)

    logger.info(
        f"Cleaned table: {len(cleaned):,} rows, {cleaned['COUNTY_CODE'].nunique()} counties"
    )
    return cleaned
