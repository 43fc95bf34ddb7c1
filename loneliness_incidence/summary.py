"""Survey-weighted descriptive tables stratified by incident loneliness."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from scipy.stats import chi2_contingency
from statsmodels.stats.weightstats import DescrStatsW, ttest_ind

from .features import FeatureTable
from .recodes import OUTCOME_LEVELS

SUMMARY_COLUMNS = [
    "weighting",
    "variable",
    "level",
    "statistic",
    "overall",
    *OUTCOME_LEVELS,
    "test",
    "p_value",
    "error",
]


def summary_variables(table: FeatureTable) -> list[str]:
    numeric = [c for c in table.numeric_predictors if not c.startswith("age")]
    return ["age_raw", *numeric, *table.categorical_predictors]


def _weighted_pct(mask: pd.Series, w: pd.Series) -> float:
    total = float(w.sum())
    if total <= 0:
        return np.nan
    return 100.0 * float(w.loc[mask].sum()) / total


def _weighted_mean_sd(x: pd.Series, w: pd.Series) -> tuple[float, float]:
    keep = w.notna() & (w > 0)
    if not keep.any():
        return np.nan, np.nan
    stats = DescrStatsW(x.loc[keep].to_numpy(dtype=float), weights=w.loc[keep].to_numpy(dtype=float), ddof=0)
    return float(stats.mean), float(stats.std)


def rao_scott_chi2_p(data: pd.DataFrame, var: str, weight_col: str) -> float:
    """Pearson chi-square on the weighted table rescaled to the sample size."""
    weighted = pd.crosstab(data[var], data["outcome"], values=data[weight_col], aggfunc="sum", dropna=False).fillna(0.0)
    weighted = weighted.loc[weighted.sum(axis=1) > 0, weighted.sum(axis=0) > 0]
    if weighted.shape[0] < 2 or weighted.shape[1] < 2:
        raise ValueError("fewer than two observed levels or outcome groups")
    scaled = weighted * (len(data) / float(weighted.values.sum()))
    _, pval, _, _ = chi2_contingency(scaled.values, correction=False)
    return float(pval)


def weighted_t_p(data: pd.DataFrame, var: str, weight_col: str) -> float:
    """Pooled weighted t-test with weights rescaled to the analysed sample size.

    ``ttest_ind`` reads weights as frequencies, so the p-value is only
    invariant to the weight scale once they sum to the number of rows.
    """
    tested = data.loc[data[weight_col] > 0]
    groups = []
    for level in OUTCOME_LEVELS:
        g = tested.loc[tested["outcome"] == level]
        if len(g) < 2:
            raise ValueError(f"fewer than two weighted observations in outcome group '{level}'")
        groups.append(g)
    scale = len(tested) / float(tested[weight_col].sum())
    _, pval, _ = ttest_ind(
        groups[0][var].to_numpy(dtype=float),
        groups[1][var].to_numpy(dtype=float),
        usevar="pooled",
        weights=tuple(g[weight_col].to_numpy(dtype=float) * scale for g in groups),
    )
    return float(pval)


def _categorical_rows(data: pd.DataFrame, var: str, weight_col: str) -> list[dict[str, object]]:
    strata = {level: data.loc[data["outcome"] == level] for level in OUTCOME_LEVELS}
    rows: list[dict[str, object]] = []
    for level in data[var].cat.categories:
        n_row = {"level": level, "statistic": "n", "overall": int((data[var] == level).sum())}
        pct_row = {"level": level, "statistic": "pct", "overall": 100.0 * float((data[var] == level).mean()) if len(data) else np.nan}
        wpct_row = {"level": level, "statistic": "weighted_pct", "overall": np.nan}
        for stratum, g in strata.items():
            mask = g[var] == level
            n_row[stratum] = int(mask.sum())
            pct_row[stratum] = 100.0 * float(mask.mean()) if len(g) else np.nan
            wg = g.loc[g[weight_col].notna()]
            wpct_row[stratum] = _weighted_pct(wg[var] == level, wg[weight_col])
        rows.extend([n_row, pct_row, wpct_row])
    return rows


def _numeric_rows(data: pd.DataFrame, var: str, weight_col: str) -> list[dict[str, object]]:
    x = data[var].astype(float)
    rows: list[dict[str, object]] = [
        {"statistic": "n", "overall": int(len(x))},
        {"statistic": "mean", "overall": float(x.mean())},
        {"statistic": "sd", "overall": float(x.std(ddof=1)) if len(x) > 1 else np.nan},
        {"statistic": "weighted_mean", "overall": np.nan},
        {"statistic": "weighted_sd", "overall": np.nan},
    ]
    for stratum in OUTCOME_LEVELS:
        g = data.loc[data["outcome"] == stratum]
        gx = g[var].astype(float)
        w_mean, w_sd = _weighted_mean_sd(gx, g[weight_col])
        rows[0][stratum] = int(len(g))
        rows[1][stratum] = float(gx.mean()) if len(g) else np.nan
        rows[2][stratum] = float(gx.std(ddof=1)) if len(g) > 1 else np.nan
        rows[3][stratum] = w_mean
        rows[4][stratum] = w_sd
    for row in rows:
        row["level"] = ""
    return rows


def build_weighted_summary(table: FeatureTable, weight_col: str) -> pd.DataFrame:
    """Stratified descriptive table for one weighting scheme.

    The same routine serves the demographic, attrition and combined weights;
    only ``weight_col`` changes. A failure on one variable is recorded in
    its ``error`` column and the remaining variables are still summarised.
    """
    rows: list[dict[str, object]] = []
    for var in summary_variables(table):
        data = table.view(["outcome", var, weight_col]).dropna(subset=[var])
        is_cat = var in table.categorical_predictors
        test = "rao_scott_chi2" if is_cat else "weighted_t"
        try:
            var_rows = _categorical_rows(data, var, weight_col) if is_cat else _numeric_rows(data, var, weight_col)
        except Exception as exc:
            logging.warning("summary %s/%s: descriptive statistics failed (%s)", weight_col, var, exc)
            rows.append({"variable": var, "test": test, "error": str(exc)})
            continue

        error = ""
        tested = data.dropna(subset=[weight_col])
        try:
            p_value = rao_scott_chi2_p(tested, var, weight_col) if is_cat else weighted_t_p(tested, var, weight_col)
        except Exception as exc:
            logging.warning("summary %s/%s: %s test failed (%s)", weight_col, var, test, exc)
            p_value, error = np.nan, str(exc)

        for row in var_rows:
            row.update({"variable": var, "test": test, "p_value": p_value, "error": error})
        rows.extend(var_rows)

    out = pd.DataFrame(rows).reindex(columns=SUMMARY_COLUMNS)
    out["weighting"] = weight_col
    out["error"] = out["error"].fillna("")
    return out


def build_all_summaries(table: FeatureTable, config: dict) -> dict[str, pd.DataFrame]:
    out: dict[str, pd.DataFrame] = {}
    for weight_col in config["summary_weightings"]:
        out[weight_col] = build_weighted_summary(table, weight_col)
        logging.info("Weighted summary built | weighting=%s rows=%s", weight_col, len(out[weight_col]))
    return out
