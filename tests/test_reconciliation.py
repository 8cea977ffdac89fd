"""
Tests for the join and reconciliation stage.
"""
import logging
import pandas as pd
import pytest

from PTB.config import CLEANED_COLUMNS, CATEGORY_CONFIG
from PTB.data_sources import SchemaError
from PTB.reconciliation import (
    JoinKeyError,
    join_sources,
    reconcile_county_names,
    prune_columns,
    filter_unknown_categories,
    drop_duplicate_records,
    check_total_births,
    clean_birth_data,
)
from conftest import make_births, make_population, UNKNOWN


def _birth_row(code="01073", name="Jefferson County, AL", sex="Female",
               nicu="Yes", gest="40 weeks", births="10"):
    return dict(COUNTY_CODE=code, COUNTY_NAME=name, SEX=sex,
                NICU_ADMISSION=nicu, GEST_AGE=gest, BIRTHS=births)


class TestJoinSources:
    """County-code join between birth detail and county totals."""

    def setup_method(self):
        self.births = pd.DataFrame([
            _birth_row(),
            _birth_row(code="06037", name="Los Angeles County, CA"),
        ])
        self.population = pd.DataFrame({
            "COUNTY_CODE": ["01073", "06037"],
            "COUNTY_NAME": ["Jefferson County, AL", "Los Angeles County, CA"],
            "TOTAL_BIRTHS": ["100", "500"],
        })

    def test_numeric_and_text_keys_are_matched(self):
        population = self.population.copy()
        population["COUNTY_CODE"] = [1073, 6037]

        joined = join_sources(self.births, population)

        assert joined["TOTAL_BIRTHS"].notna().all(), "Numeric county codes must match zero-padded text codes"
        assert joined["COUNTY_CODE"].tolist() == ["01073", "06037"]

    def test_float_formatted_keys_are_matched(self):
        births = self.births.copy()
        births["COUNTY_CODE"] = ["1073.0", "6037.0"]

        joined = join_sources(births, self.population)

        assert joined["TOTAL_BIRTHS"].tolist() == ["100", "500"]

    def test_zero_matches_raise(self):
        population = self.population.assign(COUNTY_CODE=["99001", "99003"])

        with pytest.raises(JoinKeyError):
            join_sources(self.births, population)

    def test_unmatched_rows_are_kept_and_reported(self, caplog):
        births = pd.concat(
            [self.births, pd.DataFrame([_birth_row(code="01999", name="Unidentified Counties, AL")])],
            ignore_index=True
        )

        with caplog.at_level(logging.WARNING):
            joined = join_sources(births, self.population)

        assert len(joined) == 3
        assert pd.isna(joined.loc[2, "TOTAL_BIRTHS"])
        assert any("no county total" in r.message for r in caplog.records)

    def test_left_order_is_preserved(self):
        births = self.births.iloc[::-1].reset_index(drop=True)

        joined = join_sources(births, self.population)

        assert joined["COUNTY_CODE"].tolist() == ["06037", "01073"]

    def test_exact_duplicate_totals_collapse(self):
        population = pd.concat([self.population, self.population.iloc[[0]]], ignore_index=True)

        joined = join_sources(self.births, population)

        assert len(joined) == len(self.births), "Duplicate county totals must not duplicate birth rows"

    def test_conflicting_totals_raise(self):
        conflict = self.population.iloc[[0]].assign(TOTAL_BIRTHS="999")
        population = pd.concat([self.population, conflict], ignore_index=True)

        with pytest.raises(ValueError, match="conflicting"):
            join_sources(self.births, population)

    def test_missing_total_column_is_named(self):
        with pytest.raises(SchemaError, match="TOTAL_BIRTHS"):
            join_sources(self.births, self.population.drop(columns="TOTAL_BIRTHS"))


class TestReconcileCountyNames:
    """Canonical county name is kept only when both sources agree."""

    def test_agreeing_names_are_kept(self):
        joined = pd.DataFrame({
            "COUNTY_CODE": ["01073"],
            "COUNTY_NAME_BIRTHS": ["Jefferson County, AL"],
            "COUNTY_NAME_POP": [" Jefferson County, AL "],
        })

        out = reconcile_county_names(joined)

        assert out.loc[0, "COUNTY_NAME"] == "Jefferson County, AL"
        assert "COUNTY_NAME_BIRTHS" not in out.columns
        assert "COUNTY_NAME_POP" not in out.columns

    def test_differing_names_become_null(self):
        joined = pd.DataFrame({
            "COUNTY_CODE": ["02261", "02261"],
            "COUNTY_NAME_BIRTHS": ["Valdez-Cordova Census Area, AK", "Valdez-Cordova Census Area, AK"],
            "COUNTY_NAME_POP": ["Chugach Census Area, AK", "Chugach Census Area, AK"],
        })

        out = reconcile_county_names(joined)

        assert out["COUNTY_NAME"].isna().all(), "Disagreeing names must be null, not either source's name"

    def test_missing_side_becomes_null(self):
        joined = pd.DataFrame({
            "COUNTY_CODE": ["01999"],
            "COUNTY_NAME_BIRTHS": ["Unidentified Counties, AL"],
            "COUNTY_NAME_POP": [None],
        })

        out = reconcile_county_names(joined)

        assert pd.isna(out.loc[0, "COUNTY_NAME"])

    def test_input_is_not_mutated(self):
        joined = pd.DataFrame({
            "COUNTY_CODE": ["01073"],
            "COUNTY_NAME_BIRTHS": ["A"],
            "COUNTY_NAME_POP": ["B"],
        })
        before = joined.copy()

        reconcile_county_names(joined)

        pd.testing.assert_frame_equal(joined, before)


class TestPruneAndFilter:
    """Column pruning, category filtering and deduplication."""

    def setup_method(self):
        self.df = pd.DataFrame([
            {**_birth_row(), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
            {**_birth_row(nicu=UNKNOWN), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
            {**_birth_row(gest=UNKNOWN), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
            {**_birth_row(gest=None), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
            {**_birth_row(gest="45 weeks"), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
            {**_birth_row(), "TOTAL_BIRTHS": "100", "Notes": None, "Sex of Infant Code": "F"},
        ])

    def test_prune_keeps_semantic_columns_only(self):
        out = prune_columns(self.df)

        assert list(out.columns) == CLEANED_COLUMNS
        assert str(out["BIRTHS"].dtype) == "Int64"
        assert str(out["TOTAL_BIRTHS"].dtype) == "Int64"

    def test_prune_reports_missing_columns(self):
        with pytest.raises(SchemaError, match="GEST_AGE"):
            prune_columns(self.df.drop(columns="GEST_AGE"))

    def test_filter_drops_sentinels_and_unrecognized(self):
        out = filter_unknown_categories(prune_columns(self.df))

        assert len(out) == 2
        assert not out["NICU_ADMISSION"].isin(CATEGORY_CONFIG.unknown_sentinels).any()
        assert not out["GEST_AGE"].isin(CATEGORY_CONFIG.unknown_sentinels).any()
        assert out["GEST_AGE"].notna().all()

    def test_filter_decodes_closed_domains(self):
        out = filter_unknown_categories(prune_columns(self.df))

        assert list(out["GEST_AGE"].cat.categories) == CATEGORY_CONFIG.gest_age_levels
        assert out["GEST_AGE"].cat.ordered
        assert list(out["NICU_ADMISSION"].cat.categories) == ["Yes", "No"]

    def test_filter_logs_quarantined_labels(self, caplog):
        with caplog.at_level(logging.WARNING):
            filter_unknown_categories(prune_columns(self.df))

        assert any("45 weeks" in r.message for r in caplog.records)

    def test_dedupe_runs_after_filter(self):
        out = drop_duplicate_records(filter_unknown_categories(prune_columns(self.df)))

        assert len(out) == 1, "Identical rows left after filtering collapse to one"

    def test_rows_without_births_are_dropped(self):
        df = self.df.copy()
        df.loc[0, "BIRTHS"] = "Suppressed"

        out = filter_unknown_categories(prune_columns(df))

        assert len(out) == 1


class TestCleanBirthData:
    """End-to-end join and reconciliation stage."""

    def setup_method(self):
        self.births = make_births()
        self.population = make_population()

    def test_cleaned_rows_have_known_categories(self):
        cleaned = clean_birth_data(self.births, self.population)

        assert list(cleaned.columns) == CLEANED_COLUMNS
        assert cleaned["NICU_ADMISSION"].notna().all()
        assert cleaned["GEST_AGE"].notna().all()
        assert not cleaned["NICU_ADMISSION"].astype(str).eq(UNKNOWN).any()
        assert not cleaned["GEST_AGE"].astype(str).eq(UNKNOWN).any()

    def test_row_count(self):
        cleaned = clean_birth_data(self.births, self.population)

        # 2 counties x 2 sexes x 9 categories x 2 NICU outcomes
        assert len(cleaned) == 72

    def test_total_births_cover_detail(self):
        cleaned = clean_birth_data(self.births, self.population)

        assert check_total_births(cleaned).empty

    def test_inputs_are_not_mutated(self):
        births_before = self.births.copy()
        population_before = self.population.copy()

        clean_birth_data(self.births, self.population)

        pd.testing.assert_frame_equal(self.births, births_before)
        pd.testing.assert_frame_equal(self.population, population_before)

    def test_redundant_extract_rows_are_deduplicated(self):
        births = pd.concat([self.births, self.births.head(5)], ignore_index=True)

        cleaned = clean_birth_data(births, self.population)

        assert len(cleaned) == 72


class TestCheckTotalBirths:
    """County totals must cover the detailed births."""

    def test_reports_counties_over_total(self):
        cleaned = pd.DataFrame({
            "COUNTY_CODE": ["01073", "01073", "06037"],
            "BIRTHS": pd.array([60, 50, 10], dtype="Int64"),
            "TOTAL_BIRTHS": pd.array([100, 100, 20], dtype="Int64"),
        })

        violations = check_total_births(cleaned)

        assert violations["COUNTY_CODE"].tolist() == ["01073"]
        assert violations.loc[0, "SUMMED_BIRTHS"] == 110
