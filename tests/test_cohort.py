"""Tests for incidence cohort construction."""

import numpy as np
import pandas as pd
import pytest

from loneliness_incidence.cohort import build_cohort, select_whitelisted_fields
from loneliness_incidence.config import FIELD_WHITELIST


class TestSelectWhitelistedFields:
    def test_keeps_exactly_the_whitelist(self, raw_survey):
        out = select_whitelisted_fields(raw_survey)

        assert list(out.columns) == FIELD_WHITELIST
        assert len(FIELD_WHITELIST) == 25
        assert "respondent_id" not in out.columns

    def test_missing_field_is_a_contract_violation(self, raw_survey):
        broken = raw_survey.drop(columns=["religion"])

        with pytest.raises(ValueError, match="religion"):
            select_whitelisted_fields(broken)


class TestBuildCohort:
    def test_totals_present_and_baseline_below_threshold(self, cohort, config):
        df = cohort.cohort_df

        assert df[config["baseline_total_col"]].notna().all()
        assert df[config["followup_total_col"]].notna().all()
        assert (df[config["baseline_total_col"]] < 6).all()

    def test_cardinality_never_increases(self, raw_survey, cohort):
        flow = cohort.cohort_flow

        assert flow["n"].iloc[0] == len(raw_survey)
        assert flow["n"].is_monotonic_decreasing
        assert flow["n"].iloc[-1] == len(cohort.cohort_df)
        assert (flow["excluded"] >= 0).all()

    def test_raw_table_is_not_mutated(self, raw_survey, config):
        before = raw_survey.copy()

        build_cohort(raw_survey, config)

        pd.testing.assert_frame_equal(raw_survey, before)

    def test_boundary_baseline_of_six_is_excluded(self, raw_survey, config):
        raw = raw_survey.copy()
        raw.loc[0, "ucla_total_w1"] = 6
        raw.loc[1, "ucla_total_w1"] = 5
        raw.loc[[0, 1], "ucla_total_w4"] = 2

        df = build_cohort(raw, config).cohort_df

        assert 6 not in set(df["ucla_total_w1"])
        assert (df["weight_demographic"] == raw.loc[1, "weight_demographic"]).any()

    def test_non_numeric_total_raises(self, raw_survey, config):
        raw = raw_survey.copy()
        raw["ucla_total_w4"] = raw["ucla_total_w4"].astype(object)
        raw.loc[0, "ucla_total_w4"] = "not answered"

        with pytest.raises(ValueError, match="ucla_total_w4"):
            build_cohort(raw, config)

    def test_all_missing_followup_yields_empty_cohort(self, raw_survey, config):
        raw = raw_survey.copy()
        raw["ucla_total_w4"] = np.nan

        out = build_cohort(raw, config)

        assert out.cohort_df.empty
        assert out.cohort_flow["n"].iloc[-1] == 0
