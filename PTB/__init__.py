"""
PTB - County Preterm Birth & NICU Admission Analytics

A linear batch pipeline that joins county-level natality extracts, derives
preterm birth and NICU admission rates, and fits logistic regression models
of NICU admission and preterm birth.
"""

__version__ = "1.0.0"
__author__ = "Analytics Team"

# Main pipeline execution
from .pipeline import run_ptb_pipeline, main

# Configuration
from .config import (
    SOURCE_CONFIG,
    CATEGORY_CONFIG,
    BUSINESS_RULES,
    BIRTHS_COLUMN_MAP,
    POPULATION_COLUMN_MAP
)

# Data sources
from .data_sources import DataSourceManager, SchemaError, load_birth_detail, load_county_population

# Stages
from .reconciliation import clean_birth_data, JoinKeyError
from .rates import derive_preterm_rates, derive_nicu_rates, derive_birth_rates, is_preterm
from .geo import join_to_geometry
from .modeling import MODEL_SEQUENCE, ModelSpec, ModelResult, run_models, odds_ratios
from .summary import RateSummary, summarize_rates, coefficient_table

# Utilities
from .utils import setup_logging, normalize_county_code, Timer

__all__ = [
    # Main pipeline
    "run_ptb_pipeline",
    "main",

    # Configuration
    "SOURCE_CONFIG",
    "CATEGORY_CONFIG",
    "BUSINESS_RULES",
    "BIRTHS_COLUMN_MAP",
    "POPULATION_COLUMN_MAP",

    # Data sources
    "DataSourceManager",
    "SchemaError",
    "load_birth_detail",
    "load_county_population",

    # Stages
    "clean_birth_data",
    "JoinKeyError",
    "derive_preterm_rates",
    "derive_nicu_rates",
    "derive_birth_rates",
    "is_preterm",
    "join_to_geometry",
    "MODEL_SEQUENCE",
    "ModelSpec",
    "ModelResult",
    "run_models",
    "odds_ratios",
    "RateSummary",
    "summarize_rates",
    "coefficient_table",

    # Utilities
    "setup_logging",
    "normalize_county_code",
    "Timer",
]
