"""
Shared synthetic natality extracts for the test suite.

Two counties, both sexes, every gestational age category and both NICU
outcomes, plus the unknown rows a real extract carries.
"""
from pathlib import Path
from typing import List
import pandas as pd
import pytest

from PTB.config import BIRTHS_COLUMN_MAP, POPULATION_COLUMN_MAP

# (NICU yes, NICU no) births for females in the smaller county
GEST_NICU_COUNTS = {
    "Under 20 weeks": (1, 9),
    "20 - 27 weeks": (40, 5),
    "28 - 31 weeks": (60, 15),
    "32 - 35 weeks": (80, 120),
    "36 weeks": (30, 170),
    "37 - 39 weeks": (60, 1400),
    "40 weeks": (25, 800),
    "41 weeks": (12, 300),
    "42 weeks and over": (2, 40),
}

COUNTIES = [
    ("01073", "Jefferson County, AL", 1),
    ("06037", "Los Angeles County, CA", 3),
]

UNKNOWN = "Unknown or Not Stated"


def make_births() -> pd.DataFrame:
    """Birth detail table with semantic column names, as the loader returns it."""
    rows: List[dict] = []
    for code, name, mult in COUNTIES:
        for sex in ("Female", "Male"):
            male_extra = 2 if sex == "Male" else 0
            for gest, (yes, no) in GEST_NICU_COUNTS.items():
                rows.append(dict(COUNTY_CODE=code, COUNTY_NAME=name, SEX=sex,
                                 NICU_ADMISSION="Yes", GEST_AGE=gest, BIRTHS=str(yes * mult + male_extra)))
                rows.append(dict(COUNTY_CODE=code, COUNTY_NAME=name, SEX=sex,
                                 NICU_ADMISSION="No", GEST_AGE=gest, BIRTHS=str(no * mult)))
            rows.append(dict(COUNTY_CODE=code, COUNTY_NAME=name, SEX=sex,
                             NICU_ADMISSION=UNKNOWN, GEST_AGE="40 weeks", BIRTHS="3"))
            rows.append(dict(COUNTY_CODE=code, COUNTY_NAME=name, SEX=sex,
                             NICU_ADMISSION="No", GEST_AGE=UNKNOWN, BIRTHS="4"))
    return pd.DataFrame(rows)


def make_population(births: pd.DataFrame = None) -> pd.DataFrame:
    """County totals: every detailed birth plus a few not in the detail extract."""
    births = make_births() if births is None else births
    totals = (
        births.assign(BIRTHS=births["BIRTHS"].astype(int))
        .groupby(["COUNTY_CODE", "COUNTY_NAME"], as_index=False)["BIRTHS"].sum()
    )
    totals["TOTAL_BIRTHS"] = (totals["BIRTHS"] + 10).astype(str)
    return totals[["COUNTY_CODE", "COUNTY_NAME", "TOTAL_BIRTHS"]]


def _raw_frame(df: pd.DataFrame, column_map: dict) -> pd.DataFrame:
    reverse = {semantic: raw for raw, semantic in column_map.items()}
    raw = df.rename(columns=reverse)
    raw.insert(0, "Notes", "")
    if "Sex of Infant" in raw.columns:
        raw["Sex of Infant Code"] = raw["Sex of Infant"].str[0]
        raw["NICU Admission Code"] = raw["NICU Admission"].map({"Yes": "Y", "No": "N"}).fillna("U")
        raw["OE Gestational Age Recode 10 Code"] = "99"
        raw["% of Total Births"] = "0.01%"
    return raw


def write_wonder_extract(path: Path, df: pd.DataFrame, column_map: dict) -> Path:
    """Write a tab-delimited extract with a total row and a footnote block."""
    raw = _raw_frame(df, column_map)
    lines = ["\t".join(f'"{c}"' for c in raw.columns)]
    for _, row in raw.iterrows():
        lines.append("\t".join(f'"{v}"' if v != "" else "" for v in row.astype(str)))
    lines.append("\t".join(['"Total"'] + [""] * (len(raw.columns) - 2) + ['"999999"']))
    lines.append('"---"')
    lines.append('"Dataset: Natality, 2016-2022 expanded"')
    lines.append('"---"')
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def births() -> pd.DataFrame:
    return make_births()


@pytest.fixture
def population() -> pd.DataFrame:
    return make_population()


@pytest.fixture
def births_file(tmp_path) -> Path:
    return write_wonder_extract(tmp_path / "births.txt", make_births(), BIRTHS_COLUMN_MAP)


@pytest.fixture
def population_file(tmp_path) -> Path:
    return write_wonder_extract(tmp_path / "population.txt", make_population(), POPULATION_COLUMN_MAP)
