"""
Closed categorical domains for natality labels.

Each categorical column of the birth-detail extract is decoded once into a
pandas Categorical over a fixed set of levels. Unknown/blank sentinels and
unrecognized labels are reported separately so callers can log both tallies.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional
import pandas as pd

from .config import CATEGORY_CONFIG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeResult:
    """Decoded categorical column and the tallies of what was set aside."""
    values: pd.Series
    n_sentinel: int
    n_unrecognized: int
    unrecognized_labels: tuple

    @property
    def valid(self) -> pd.Series:
        """Boolean mask of rows holding a recognized level."""
        return self.values.notna()


def sentinel_mask(labels: pd.Series, sentinels: Optional[List[str]] = None) -> pd.Series:
    """
    Flag rows holding an unknown/blank marker.

    Args:
        labels: Raw label series
        sentinels: Sentinel strings (defaults to the configured set)

    Returns:
        Boolean Series, True where the label is missing or a sentinel
    """
    sentinels = sentinels if sentinels is not None else CATEGORY_CONFIG.unknown_sentinels
    stripped = labels.astype("string").str.strip()
    return (stripped.isna() | stripped.isin(sentinels)).astype(bool)


def decode_labels(
    labels: pd.Series,
    levels: List[str],
    ordered: bool = False,
    name: Optional[str] = None
) -> DecodeResult:
    """
    Decode a raw label column into a closed Categorical.

    Args:
        labels: Raw label series
        levels: Recognized levels (in order for ordered domains)
        ordered: Whether the resulting Categorical is ordered
        name: Column name used in log messages

    Returns:
        DecodeResult with <NA> for sentinel and unrecognized rows
    """
    name = name or labels.name
    stripped = labels.astype("string").str.strip()
    is_sentinel = sentinel_mask(labels)
    is_known = stripped.isin(levels).fillna(False).astype(bool)
    is_unrecognized = ~is_sentinel & ~is_known

    unrecognized = tuple(sorted(stripped[is_unrecognized].unique().tolist()))
    if unrecognized:
        logger.warning(
            f"{name}: {int(is_unrecognized.sum())} rows with unrecognized labels "
            f"quarantined: {list(unrecognized)}"
        )

    known_labels = [
        label if known else None
        for label, known in zip(stripped.tolist(), is_known.tolist())
    ]
    values = pd.Series(
        pd.Categorical(
            known_labels,
            categories=levels,
            ordered=ordered
        ),
        index=labels.index,
        name=labels.name
    )

    return DecodeResult(
        values=values,
        n_sentinel=int(is_sentinel.sum()),
        n_unrecognized=int(is_unrecognized.sum()),
        unrecognized_labels=unrecognized
    )


def decode_gest_age(labels: pd.Series) -> DecodeResult:
    """Decode gestational age labels into the ordered clinical domain."""
    return decode_labels(labels, CATEGORY_CONFIG.gest_age_levels, ordered=True, name="GEST_AGE")


def decode_nicu_admission(labels: pd.Series) -> DecodeResult:
    """Decode NICU admission labels into {Yes, No}."""
    return decode_labels(labels, CATEGORY_CONFIG.nicu_levels, name="NICU_ADMISSION")


def decode_sex(labels: pd.Series) -> DecodeResult:
    """Decode infant sex labels into {Female, Male}."""
    return decode_labels(labels, CATEGORY_CONFIG.sex_levels, name="SEX")
