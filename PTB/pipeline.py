"""
Main pipeline orchestration for the county preterm birth analysis.
"""
import logging
import os
from typing import Dict, Optional
import pandas as pd

from .config import SOURCE_CONFIG
from .utils import setup_logging, Timer
from .data_sources import DataSourceManager
from .reconciliation import clean_birth_data
from .rates import derive_preterm_rates, derive_nicu_rates, derive_birth_rates
from .geo import join_to_geometry
from .maps import plot_choropleth
from .modeling import run_models
from .summary import summarize_rates, coefficient_tables

logger = logging.getLogger(__name__)


def run_ptb_pipeline(
    births_source=None,
    population_source=None,
    geometry_source=None,
    county_population: Optional[pd.DataFrame] = None,
    fit_models: bool = True,
    map_dir: Optional[str] = None,
    log_level: int = logging.INFO
) -> Dict[str, object]:
    """
    Run the complete county preterm birth pipeline.

    Args:
        births_source: Birth-detail extract (defaults to config)
        population_source: County total-births extract (defaults to config)
        geometry_source: County boundary file; geometry join skipped if None
        county_population: COUNTY_CODE/POPULATION table for birth rates (skipped if None)
        fit_models: Whether to fit the regression sequence
        map_dir: Directory for choropleth PNGs (maps not drawn if None)
        log_level: Logging level (default: INFO)

    Returns:
        Dictionary of derived tables, summaries and model results
    """
    setup_logging(level=log_level)
    logger.info("="*60)
    logger.info("Starting County Preterm Birth Pipeline")
    logger.info("="*60)

    artifacts: Dict[str, object] = {}

    try:
        with Timer("Complete Pipeline Execution"):
            # Step 1: Load raw extracts
            with Timer("Raw Table Loading"):
                data_manager = DataSourceManager(births_source, population_source, geometry_source)
                births = data_manager.get_birth_data()
                population = data_manager.get_population_data()

            # Step 2: Join, reconcile and clean
            with Timer("Join & Reconciliation"):
                cleaned = clean_birth_data(births, population)
                artifacts["cleaned"] = cleaned

            # Step 3: Derive rates
            with Timer("Rate Derivation"):
                preterm_rates = derive_preterm_rates(cleaned)
                artifacts["preterm_rates"] = preterm_rates
                artifacts["preterm_rates_by_sex"] = derive_preterm_rates(cleaned, by_sex=True)

                nicu_rates = derive_nicu_rates(cleaned)
                artifacts["nicu_rates"] = nicu_rates
                artifacts["nicu_rates_by_sex"] = derive_nicu_rates(cleaned, by_sex=True)

                if county_population is not None:
                    artifacts["birth_rates"] = derive_birth_rates(preterm_rates, county_population)

                artifacts["preterm_summary"] = summarize_rates(preterm_rates, "PRETERM_RATE")
                artifacts["nicu_summary"] = summarize_rates(nicu_rates, "NICU_RATE")

            # Step 4: Attach geometry for mapping
            geometry = data_manager.get_county_geometry()
            if geometry is not None:
                with Timer("Geometry Join"):
                    artifacts["geo_preterm_rates"] = join_to_geometry(geometry, preterm_rates)
                    artifacts["geo_nicu_rates"] = join_to_geometry(geometry, nicu_rates)

                if map_dir is not None:
                    with Timer("Map Rendering"):
                        os.makedirs(map_dir, exist_ok=True)
                        plot_choropleth(
                            artifacts["geo_preterm_rates"], "PRETERM_RATE", "Preterm birth rate (%) by county",
                            output_path=os.path.join(map_dir, "preterm_rate_by_county.png"),
                            close=True
                        )
                        plot_choropleth(
                            artifacts["geo_nicu_rates"], "NICU_RATE", "NICU admission rate (%) by county",
                            output_path=os.path.join(map_dir, "nicu_rate_by_county.png"),
                            close=True
                        )

            # Step 5: Fit regression models
            if fit_models:
                with Timer("Statistical Modeling"):
                    models = run_models(cleaned)
                    artifacts["models"] = models
                    artifacts["coefficient_tables"] = coefficient_tables(models)

            logger.info("="*60)
            logger.info("County Preterm Birth Pipeline Completed Successfully")
            logger.info("="*60)

    except Exception as e:
        logger.error("="*60)
        logger.error(f"Pipeline failed with error: {str(e)}")
        logger.error("="*60)
        raise

    return artifacts


def main():
    """Entry point for running the pipeline from the command line."""
    run_ptb_pipeline(
        births_source=SOURCE_CONFIG.births_source,
        population_source=SOURCE_CONFIG.population_source,
        geometry_source=SOURCE_CONFIG.geometry_source
    )


if __name__ == "__main__":
    main()
