"""Incidence cohort construction from the raw survey table."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import pandas as pd

from .config import FIELD_WHITELIST


@dataclass
class CohortData:
    cohort_flow: pd.DataFrame
    cohort_df: pd.DataFrame


def select_whitelisted_fields(raw: pd.DataFrame) -> pd.DataFrame:
    missing = [col for col in FIELD_WHITELIST if col not in raw.columns]
    if missing:
        raise ValueError(f"Raw survey table is missing required fields: {', '.join(missing)}")
    return raw.loc[:, FIELD_WHITELIST].copy()


def _coerce_total(df: pd.DataFrame, col: str) -> pd.Series:
    values = pd.to_numeric(df[col], errors="coerce")
    bad = df[col].notna() & values.isna()
    if bad.any():
        preview = ", ".join(sorted({str(x) for x in df.loc[bad, col]})[:5])
        raise ValueError(f"{col}: non-numeric loneliness totals ({preview})")
    return values


def build_cohort(raw: pd.DataFrame, config: dict) -> CohortData:
    """Filter raw respondents to the incidence cohort.

    Keeps the whitelisted fields, requires both loneliness totals and drops
    respondents already lonely at baseline. ``raw`` is not modified.
    """
    baseline_col = config["baseline_total_col"]
    followup_col = config["followup_total_col"]
    threshold = float(config["loneliness_threshold"])

    flow: list[dict[str, object]] = [{"step": "raw_records", "n": int(len(raw))}]

    df = select_whitelisted_fields(raw)
    df[baseline_col] = _coerce_total(df, baseline_col)
    df[followup_col] = _coerce_total(df, followup_col)

    df = df.loc[df[baseline_col].notna() & df[followup_col].notna()]
    flow.append({"step": "both_loneliness_totals_present", "n": int(len(df))})

    df = df.loc[df[baseline_col] < threshold].reset_index(drop=True)
    flow.append({"step": f"baseline_total_below_{int(threshold)}", "n": int(len(df))})

    cohort_flow = pd.DataFrame(flow)
    cohort_flow["excluded"] = (cohort_flow["n"].shift(1) - cohort_flow["n"]).fillna(0).astype(int)

    for _, row in cohort_flow.iterrows():
        logging.info("Cohort flow | %s: n=%s (excluded %s)", row["step"], row["n"], row["excluded"])
    return CohortData(cohort_flow=cohort_flow, cohort_df=df)
