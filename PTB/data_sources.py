"""
Raw table loading for the county preterm birth pipeline.

Reads the tab-delimited natality extracts (county x sex x NICU admission x
gestational age, and county total births) plus the county boundary file.
"""
import logging
from typing import Dict, Iterable, Optional
import pandas as pd
import geopandas as gpd

from .config import (
    SOURCE_CONFIG, BIRTHS_COLUMN_MAP, POPULATION_COLUMN_MAP, GEOID_COLUMN
)
from .utils import normalize_county_code

logger = logging.getLogger(__name__)


class SchemaError(ValueError):
    """Raised when an extract is missing expected columns."""

    def __init__(self, source: str, missing: Iterable[str]):
        self.source = source
        self.missing = sorted(missing)
        super().__init__(
            f"{source} is missing expected column(s): {', '.join(self.missing)}"
        )


def validate_columns(df: pd.DataFrame, required_columns: Iterable[str], source: str) -> None:
    """
    Fail fast if any expected column is absent.

    Args:
        df: Loaded table
        required_columns: Column names that must be present
        source: Source description for the error message

    Raises:
        SchemaError: If one or more columns are missing
    """
    missing = set(required_columns) - set(df.columns)
    if missing:
        raise SchemaError(source, missing)


def load_delimited(
    source,
    required_columns: Iterable[str],
    source_config=None
) -> pd.DataFrame:
    """
    Load a delimited extract as untyped text.

    Rows carrying a value in the notes column are totals or footnotes and are
    dropped.

    Args:
        source: File path, URL or file-like object
        required_columns: Columns the extract must provide
        source_config: Source configuration (uses default if None)

    Returns:
        DataFrame with every column as text

    Raises:
        SchemaError: If expected columns are missing
    """
    cfg = source_config or SOURCE_CONFIG
    logger.info(f"Loading delimited extract: {source}")

    df = pd.read_csv(
        source,
        sep=cfg.delimiter,
        dtype=str,
        na_values=cfg.na_values,
        keep_default_na=True,
        skip_blank_lines=True
    )
    df.columns = df.columns.str.strip()

    validate_columns(df, required_columns, str(source))

    if cfg.notes_column in df.columns:
        notes = df[cfg.notes_column].astype("string").str.strip()
        is_note = notes.notna() & (notes != "")
        if is_note.any():
            logger.info(f"Dropping {int(is_note.sum())} total/footnote rows")
        df = df.loc[~is_note.astype(bool)].reset_index(drop=True)

    logger.info(f"Loaded {len(df):,} rows")
    return df


def _apply_column_map(df: pd.DataFrame, column_map: Dict[str, str]) -> pd.DataFrame:
    """Select and rename raw columns to their semantic names."""
    out = df[list(column_map.keys())].rename(columns=column_map)
    out["COUNTY_CODE"] = normalize_county_code(out["COUNTY_CODE"])
    return out


def load_birth_detail(source, source_config=None) -> pd.DataFrame:
    """
    Load the birth-detail extract (county x sex x NICU x gestational age).

    Args:
        source: File path, URL or file-like object
        source_config: Source configuration (uses default if None)

    Returns:
        DataFrame with COUNTY_CODE, COUNTY_NAME, SEX, NICU_ADMISSION, GEST_AGE, BIRTHS
    """
    raw = load_delimited(source, BIRTHS_COLUMN_MAP.keys(), source_config)
    return _apply_column_map(raw, BIRTHS_COLUMN_MAP)


def load_county_population(source, source_config=None) -> pd.DataFrame:
    """
    Load the county total-births extract.

    Args:
        source: File path, URL or file-like object
        source_config: Source configuration (uses default if None)

    Returns:
        DataFrame with COUNTY_CODE, COUNTY_NAME, TOTAL_BIRTHS
    """
    raw = load_delimited(source, POPULATION_COLUMN_MAP.keys(), source_config)
    return _apply_column_map(raw, POPULATION_COLUMN_MAP)


def load_county_geometry(source, geoid_col: str = GEOID_COLUMN) -> gpd.GeoDataFrame:
    """
    Load county boundaries with a normalized GEOID.

    Args:
        source: Any path or URL readable by geopandas
        geoid_col: Name of the county identifier column

    Returns:
        GeoDataFrame with GEOID and geometry

    Raises:
        SchemaError: If the identifier column is missing
    """
    logger.info(f"Loading county geometry: {source}")
    gdf = gpd.read_file(source)
    validate_columns(gdf, [geoid_col], str(source))

    gdf = gdf.rename(columns={geoid_col: GEOID_COLUMN})
    gdf[GEOID_COLUMN] = normalize_county_code(gdf[GEOID_COLUMN])
    logger.info(f"Loaded {len(gdf):,} county geometries")
    return gdf[[GEOID_COLUMN, "geometry"]]


class DataSourceManager:
    """Manager for loading and caching the raw tables of one run."""

    def __init__(
        self,
        births_source=None,
        population_source=None,
        geometry_source=None,
        source_config=None
    ):
        """
        Initialize data source manager.

        Args:
            births_source: Birth-detail extract location (defaults to config)
            population_source: County total-births extract location (defaults to config)
            geometry_source: County boundary file location (geometry skipped if None)
            source_config: Source configuration (uses default if None)
        """
        self.source_config = source_config or SOURCE_CONFIG
        self.births_source = births_source or self.source_config.births_source
        self.population_source = population_source or self.source_config.population_source
        self.geometry_source = geometry_source
        self._cache: Dict[str, pd.DataFrame] = {}

    def _cached(self, cache_key: str, loader, use_cache: bool):
        if use_cache and cache_key in self._cache:
            logger.debug(f"Using cached {cache_key} data")
            return self._cache[cache_key]

        df = loader()

        if use_cache:
            self._cache[cache_key] = df

        return df

    def get_birth_data(self, use_cache: bool = True) -> pd.DataFrame:
        """Load the birth-detail extract."""
        return self._cached(
            "births",
            lambda: load_birth_detail(self.births_source, self.source_config),
            use_cache
        )

    def get_population_data(self, use_cache: bool = True) -> pd.DataFrame:
        """Load the county total-births extract."""
        return self._cached(
            "population",
            lambda: load_county_population(self.population_source, self.source_config),
            use_cache
        )

    def get_county_geometry(self, use_cache: bool = True) -> Optional[gpd.GeoDataFrame]:
        """Load county boundaries, or None when no geometry source is set."""
        if not self.geometry_source:
            logger.info("No geometry source configured")
            return None
        return self._cached(
            "geometry",
            lambda: load_county_geometry(self.geometry_source),
            use_cache
        )

    def clear_cache(self) -> None:
        """Clear all cached data."""
        logger.info("Clearing data source cache")
        self._cache.clear()

    def get_cache_info(self) -> Dict[str, object]:
        """
        Get information about cached tables.

        Returns:
            Dictionary with cache statistics
        """
        return {
            "cached_tables": len(self._cache),
            "table_names": list(self._cache.keys())
        }
