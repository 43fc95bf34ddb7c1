"""Tests for nested block models and the retention ledger."""

import numpy as np
import pandas as pd
import pytest

from conftest import make_config, make_feature_table
from loneliness_incidence.hierarchical import RetentionLedger, fit_hierarchical_blocks, fit_stats_wide
from loneliness_incidence.screening import DECISION_COLUMNS, ScreeningResult


def _screened(domain, retained=(), excluded=()):
    rows = [
        {"domain": domain, "predictor": p, "predictor_type": "numeric", "n_levels": 1,
         "n_levels_passing": int(keep), "min_p_value": 0.01 if keep else 0.5, "retained": keep}
        for p, keep in [*((p, True) for p in retained), *((p, False) for p in excluded)]
    ]
    decisions = pd.DataFrame(rows, columns=DECISION_COLUMNS)
    return ScreeningResult(domain=domain, numeric=pd.DataFrame(), categorical=pd.DataFrame(), decisions=decisions)


@pytest.fixture
def correlated_table():
    rng = np.random.default_rng(21)
    n = 800
    phq = rng.normal(size=n)
    household_size = phq + rng.normal(0, 0.8, size=n)
    risk = np.clip(0.15 * np.exp(0.5 * phq), 0, 0.9)
    outcome = np.where(rng.random(n) < risk, "positive", "negative")
    data = pd.DataFrame(
        {
            "outcome": pd.Categorical(outcome, categories=["negative", "positive"]),
            "household_size": household_size,
            "phq_total": phq,
            "gad_total": rng.normal(size=n),
            "combined_weight": rng.uniform(0.5, 2.0, size=n),
        }
    )
    return make_feature_table(data, numeric=["household_size", "phq_total", "gad_total"])


@pytest.fixture
def screened():
    return {
        "sociodemographic": _screened("sociodemographic", retained=["household_size"]),
        "lifestyle": _screened("lifestyle"),
        "social": _screened("social"),
        "clinical": _screened("clinical", retained=["phq_total"], excluded=["gad_total"]),
    }


class TestRetentionLedger:
    def test_entry_significance_decides_retention(self):
        ledger = RetentionLedger(threshold=0.1)

        ledger.record("a", "social", 2, 0.05)
        ledger.record("b", "social", 2, 0.10)
        ledger.record("c", "social", 2, np.nan)

        assert ledger.retained_predictors() == ["a"]
        assert "b" in ledger
        assert not ledger.get("c").retained
        assert len(ledger.to_frame()) == 3

    def test_predictor_is_written_once(self):
        ledger = RetentionLedger(threshold=0.1)
        ledger.record("phq_total", "clinical", 3, 0.01)

        with pytest.raises(ValueError, match="already entered"):
            ledger.record("phq_total", "clinical", 3, 0.5)

    def test_empty_ledger_frame_has_columns(self):
        assert list(RetentionLedger(0.1).to_frame().columns) == [
            "predictor",
            "domain",
            "entry_block",
            "entry_p_value",
            "retained",
        ]


class TestFitHierarchicalBlocks:
    def test_retained_predictor_stays_regardless_of_later_p(self, correlated_table, screened):
        result = fit_hierarchical_blocks(correlated_table, screened, make_config())

        entry = result.ledger.get("household_size")
        assert entry.entry_block == 1
        assert entry.retained
        assert result.block_predictors == {
            1: ["household_size"],
            2: ["household_size"],
            3: ["household_size", "phq_total"],
        }
        block3 = result.terms.loc[result.terms["block"] == 3]
        assert set(block3["predictor"]) == {"household_size", "phq_total"}
        assert block3.set_index("term").loc["household_size", "p_value"] > 0.1
        assert "gad_total" not in set(result.terms["predictor"])

    def test_terms_absent_from_earlier_blocks_are_missing(self, correlated_table, screened):
        result = fit_hierarchical_blocks(correlated_table, screened, make_config())
        comparison = result.comparison.set_index("term")

        assert np.isnan(comparison.loc["phq_total", "rr_block1"])
        assert np.isnan(comparison.loc["phq_total", "rr_block2"])
        assert comparison.loc["phq_total", "rr_block3"] > 1.0
        assert comparison.loc["phq_total", "entry_block"] == 3
        assert bool(comparison.loc["phq_total", "significant_final"])

    def test_fit_statistics_are_finite(self, correlated_table, screened):
        result = fit_hierarchical_blocks(correlated_table, screened, make_config())

        stats = result.fit_stats
        assert stats["block"].tolist() == [1, 2, 3]
        assert (stats["error"] == "").all()
        assert np.isfinite(stats[["llf", "aic", "bic"]].to_numpy(dtype=float)).all()
        assert result.final_block == 3
        assert set(result.final_terms()["block"]) == {3}

        wide = fit_stats_wide(stats)
        assert wide["statistic"].tolist() == ["nobs", "llf", "aic", "bic"]
        assert list(wide.columns[1:]) == ["block1", "block2", "block3"]

    def test_failed_block_does_not_stop_later_blocks(self, correlated_table, screened):
        data = correlated_table.view()
        data["household_size"] = np.nan
        table = make_feature_table(data, numeric=["household_size", "phq_total", "gad_total"])

        result = fit_hierarchical_blocks(table, screened, make_config())
        stats = result.fit_stats.set_index("block")

        assert stats.loc[1, "error"] != ""
        assert stats.loc[2, "error"] == "no predictors"
        assert stats.loc[3, "error"] == ""
        assert not result.ledger.get("household_size").retained
        assert result.block_predictors[3] == ["phq_total"]
        assert result.final_block == 3
        assert any("block1" in note for note in result.notes)

    def test_nothing_screened_in(self, correlated_table):
        empty = {d: _screened(d) for d in ["sociodemographic", "lifestyle", "social", "clinical"]}

        result = fit_hierarchical_blocks(correlated_table, empty, make_config())

        assert result.terms.empty
        assert result.comparison.empty
        assert result.final_block is None
        assert result.final_terms().empty
