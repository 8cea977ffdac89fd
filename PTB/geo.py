"""
County geometry join for mapping.
"""
import logging
import pandas as pd
import geopandas as gpd

from .config import GEOID_COLUMN
from .data_sources import validate_columns
from .utils import normalize_county_code

logger = logging.getLogger(__name__)


def join_to_geometry(
    geometry: gpd.GeoDataFrame,
    rates: pd.DataFrame,
    geoid_col: str = GEOID_COLUMN,
    key_col: str = "COUNTY_CODE"
) -> gpd.GeoDataFrame:
    """
    Left join a rate table onto county geometries by 5-digit GEOID.

    Rate rows without a geometry (e.g. "Unidentified Counties" codes) are left
    out and counted; geometries without a rate keep a null rate.

    Args:
        geometry: County boundaries with a GEOID column
        rates: County-level rate table keyed by COUNTY_CODE
        geoid_col: County identifier column in the geometry table
        key_col: County identifier column in the rate table

    Returns:
        GeoDataFrame with one row per geometry
    """
    validate_columns(geometry, [geoid_col], "county geometry")
    validate_columns(rates, [key_col], "rate table")

    geo = geometry.copy()
    geo[geoid_col] = normalize_county_code(geo[geoid_col])

    rate_table = rates.copy()
    rate_table[key_col] = normalize_county_code(rate_table[key_col])
    if rate_table[key_col].duplicated().any():
        raise ValueError(
            f"Rate table has more than one row per {key_col}; "
            "filter to one stratum before mapping"
        )

    no_geometry = ~rate_table[key_col].isin(geo[geoid_col])
    if no_geometry.any():
        logger.info(
            f"{int(no_geometry.sum())} counties have no boundary and are not mapped: "
            f"{rate_table.loc[no_geometry, key_col].tolist()[:10]}"
        )

    joined = geo.merge(
        rate_table.rename(columns={key_col: geoid_col}),
        on=geoid_col,
        how="left"
    )

    logger.info(
        f"Mapped {len(rate_table) - int(no_geometry.sum())} of {len(rate_table)} counties "
        f"onto {len(geo):,} geometries"
    )
    return gpd.GeoDataFrame(joined, geometry=geo.geometry.name, crs=geo.crs)
