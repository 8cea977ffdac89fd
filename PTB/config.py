"""
Configuration and constants for the county preterm birth pipeline.
"""
from typing import Dict, List
from dataclasses import dataclass


@dataclass
class SourceConfig:
    """Raw source locations and read options."""
    births_source: str = "data/natality_county_sex_nicu_gestage.txt"
    population_source: str = "data/natality_county_total_births.txt"
    geometry_source: str = "https://www2.census.gov/geo/tiger/GENZ2022/shp/cb_2022_us_county_20m.zip"
    delimiter: str = "\t"
    notes_column: str = "Notes"
    na_values: List[str] = None

    def __post_init__(self):
        if self.na_values is None:
            self.na_values = ["", "Not Applicable", "Suppressed", "Missing"]


@dataclass
class CategoryConfig:
    """Closed categorical domains of the natality extracts."""
    # Gestational age categories in clinical order
    gest_age_levels: List[str] = None
    preterm_levels: List[str] = None
    extremely_preterm_levels: List[str] = None

    nicu_levels: List[str] = None
    sex_levels: List[str] = None

    # Values that mean "not recorded"
    unknown_sentinels: List[str] = None

    def __post_init__(self):
        if self.gest_age_levels is None:
            self.gest_age_levels = [
                "Under 20 weeks", "20 - 27 weeks", "28 - 31 weeks",
                "32 - 35 weeks", "36 weeks", "37 - 39 weeks",
                "40 weeks", "41 weeks", "42 weeks and over"
            ]

        if self.preterm_levels is None:
            # Wholly below 37 completed weeks
            self.preterm_levels = self.gest_age_levels[:5]

        if self.extremely_preterm_levels is None:
            self.extremely_preterm_levels = ["Under 20 weeks", "20 - 27 weeks"]

        if self.nicu_levels is None:
            self.nicu_levels = ["Yes", "No"]

        if self.sex_levels is None:
            self.sex_levels = ["Female", "Male"]

        if self.unknown_sentinels is None:
            self.unknown_sentinels = ["Unknown or Not Stated", "Unknown", "Not Stated", ""]


@dataclass
class BusinessRulesConfig:
    """Analysis rules and thresholds."""
    rate_multiplier: float = 100.0
    birth_rate_multiplier: float = 1000.0

    # Regression reference levels
    gest_age_reference: str = "40 weeks"
    sex_reference: str = "Female"

    # Wald interval
    ci_z: float = 1.96

    # Standard error (log-odds scale) above which a coefficient is flagged
    unstable_se_threshold: float = 5.0

    # Share of birth rows that must find a county total before warning
    min_join_match_rate: float = 0.95

    county_code_width: int = 5


# Global configuration instances
SOURCE_CONFIG = SourceConfig()
CATEGORY_CONFIG = CategoryConfig()
BUSINESS_RULES = BusinessRulesConfig()


# Column name mappings for the raw extracts
BIRTHS_COLUMN_MAP: Dict[str, str] = {
    "County of Residence Code": "COUNTY_CODE",
    "County of Residence": "COUNTY_NAME",
    "Sex of Infant": "SEX",
    "NICU Admission": "NICU_ADMISSION",
    "OE Gestational Age Recode 10": "GEST_AGE",
    "Births": "BIRTHS",
}

POPULATION_COLUMN_MAP: Dict[str, str] = {
    "County of Residence Code": "COUNTY_CODE",
    "County of Residence": "COUNTY_NAME",
    "Births": "TOTAL_BIRTHS",
}

# Columns retained after the join/reconciliation stage
CLEANED_COLUMNS: List[str] = [
    "COUNTY_CODE", "COUNTY_NAME", "SEX", "NICU_ADMISSION",
    "GEST_AGE", "BIRTHS", "TOTAL_BIRTHS"
]

GEOID_COLUMN = "GEOID"
