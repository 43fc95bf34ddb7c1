"""Feature engineering: outcome, age polynomials, weights and recodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
import pandas as pd

from .config import SUPERSEDED_FIELDS, age_predictors
from .recodes import OUTCOME_LEVELS, RECODES, recode_field, reference_levels


@dataclass(frozen=True)
class FeatureTable:
    data: pd.DataFrame
    numeric_predictors: tuple[str, ...]
    categorical_predictors: tuple[str, ...]
    reference_levels: dict[str, str]
    standardization: pd.DataFrame
    notes: list[str] = field(default_factory=list)

    def view(self, columns: Iterable[str] | None = None) -> pd.DataFrame:
        """Return a copy; the underlying table is never handed out for mutation."""
        if columns is None:
            return self.data.copy()
        return self.data.loc[:, list(columns)].copy()

    def is_categorical(self, predictor: str) -> bool:
        if predictor in self.categorical_predictors:
            return True
        if predictor in self.numeric_predictors:
            return False
        raise KeyError(f"Unknown predictor: {predictor}")

    def model_frame(self, predictors: Iterable[str], weight_col: str) -> pd.DataFrame:
        """Complete-case, positive-weight view with a 0/1 ``outcome_flag``."""
        cols = list(dict.fromkeys(["outcome", *predictors, weight_col]))
        out = self.view(cols).dropna()
        out = out.loc[out[weight_col] > 0].copy()
        out["outcome_flag"] = (out["outcome"] == "positive").astype(int)
        for col in cols:
            if col in self.categorical_predictors:
                out[col] = out[col].cat.remove_unused_categories()
        return out


def _to_numeric(series: pd.Series, label: str) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce")
    bad = series.notna() & values.isna()
    if bad.any():
        preview = ", ".join(sorted({str(x) for x in series.loc[bad]})[:5])
        raise ValueError(f"{label}: expected numeric values, found ({preview})")
    return values.astype(float)


def _zscore(series: pd.Series, label: str, notes: list[str]) -> tuple[pd.Series, float, float]:
    mean = float(series.mean())
    sd = float(series.std(ddof=1))
    if not np.isfinite(sd) or sd == 0:
        msg = f"{label}: zero or undefined variance in cohort; column left missing and excluded from models."
        logging.warning(msg)
        notes.append(msg)
        return pd.Series(np.nan, index=series.index, name=label), mean, sd
    return (series - mean) / sd, mean, sd


def build_feature_table(cohort_df: pd.DataFrame, config: dict) -> FeatureTable:
    """Derive the analysis-ready table from the incidence cohort.

    Z-scores use cohort-wide means and sample standard deviations, so this
    is a two-pass transform rather than a row-wise one.
    """
    notes: list[str] = []
    std_rows: list[dict[str, object]] = []
    out = cohort_df.copy()

    threshold = float(config["loneliness_threshold"])
    followup = _to_numeric(out[config["followup_total_col"]], config["followup_total_col"])
    out["outcome"] = pd.Categorical(
        np.where(followup >= threshold, "positive", "negative"),
        categories=list(OUTCOME_LEVELS),
    )

    birth_year = _to_numeric(out["birth_year"], "birth_year")
    out["age_raw"] = int(config["reference_year"]) - birth_year
    age_cols = age_predictors(config)
    for power, col in enumerate(age_cols, start=1):
        out[col], mean, sd = _zscore(out["age_raw"] ** power, col, notes)
        std_rows.append({"field": col, "source": f"age_raw^{power}", "mean": mean, "sd": sd})

    for col in config["zscore_fields"]:
        raw_values = _to_numeric(out[col], col)
        out[col], mean, sd = _zscore(raw_values, col, notes)
        std_rows.append({"field": col, "source": col, "mean": mean, "sd": sd})

    out["household_size"] = _to_numeric(out["household_size"], "household_size")

    sampling_col = config["sampling_weight_col"]
    attrition_col = config["attrition_weight_col"]
    for col in [sampling_col, attrition_col]:
        out[col] = _to_numeric(out[col], col)
        if (out[col] < 0).any():
            raise ValueError(f"{col}: survey weights must be non-negative")
    out[config["combined_weight_col"]] = out[sampling_col] * out[attrition_col]

    for name in RECODES:
        out[name] = recode_field(out[RECODES[name]["source"]], name)

    out = out.drop(columns=[c for c in SUPERSEDED_FIELDS if c in out.columns])

    numeric = tuple([*age_cols, "household_size", *config["zscore_fields"]])
    categorical = tuple(RECODES)
    weights = [sampling_col, attrition_col, config["combined_weight_col"]]
    ordered = ["outcome", "age_raw", *numeric, *categorical, *weights]
    out = out.loc[:, ordered]

    logging.info(
        "Feature table built | rows=%s numeric=%s categorical=%s positive=%s",
        len(out),
        len(numeric),
        len(categorical),
        int((out["outcome"] == "positive").sum()),
    )
    return FeatureTable(
        data=out,
        numeric_predictors=numeric,
        categorical_predictors=categorical,
        reference_levels=reference_levels(),
        standardization=pd.DataFrame(std_rows),
        notes=notes,
    )
