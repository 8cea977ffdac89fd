"""
Utility functions for the county preterm birth pipeline.
"""
import logging
from datetime import datetime
import pandas as pd

from .config import BUSINESS_RULES


# Configure logging
logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure logging for the pipeline.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=[logging.StreamHandler()]
    )


def normalize_county_code(codes: pd.Series, width: int = None) -> pd.Series:
    """
    Normalize county codes to zero-padded text.

    Numeric reads drop leading zeros ("1073" or "1073.0" for Alabama's
    Jefferson County), so both join sides must go through this before merging.

    Args:
        codes: Series of county codes (numeric or text)
        width: Code width (defaults to the 5-digit GEOID width)

    Returns:
        Series of string codes, missing values preserved as <NA>
    """
    width = width or BUSINESS_RULES.county_code_width
    normalized = (
        codes.astype("string")
        .str.strip()
        .str.replace(r"\.0+$", "", regex=True)
        .str.zfill(width)
    )

    invalid = normalized.notna() & ~normalized.str.fullmatch(rf"\d{{{width}}}").fillna(False)
    if invalid.any():
        logger.warning(
            f"{int(invalid.sum())} county codes are not {width}-digit codes: "
            f"{sorted(normalized[invalid].unique().tolist())[:5]}"
        )

    return normalized


def null_safe_rate(
    numerator: pd.Series,
    denominator: pd.Series,
    multiplier: float = 1.0
) -> pd.Series:
    """
    Compute numerator / denominator * multiplier as a nullable float series.

    Rows whose denominator is zero or missing get <NA> rather than 0,
    inf or an exception.

    Args:
        numerator: Numerator values
        denominator: Denominator values
        multiplier: Scale factor (100 for percentages, 1000 for per-mille)

    Returns:
        Float64 series with <NA> where the rate is undefined
    """
    num = pd.to_numeric(numerator, errors="coerce").astype("Float64")
    den = pd.to_numeric(denominator, errors="coerce").astype("Float64")
    valid = (den > 0).fillna(False)
    return num / den.where(valid) * multiplier


class Timer:
    """Context manager for timing code execution."""

    def __init__(self, name: str = "Operation", log_level: int = logging.INFO):
        """
        Initialize timer.

        Args:
            name: Name of the stage being timed
            log_level: Logging level for output
        """
        self.name = name
        self.log_level = log_level
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = datetime.now()
        logger.log(self.log_level, f"{self.name} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = datetime.now()
        duration = (self.end_time - self.start_time).total_seconds()
        if exc_type is not None:
            logger.log(self.log_level, f"{self.name} failed after {duration:.2f} seconds")
        else:
            logger.log(self.log_level, f"{self.name} completed in {duration:.2f} seconds")

    @property
    def elapsed(self) -> float:
        """Get elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()
