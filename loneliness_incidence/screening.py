"""Bivariate (univariate-model) screening of candidate predictors by domain."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .config import BLOCK_DOMAINS, DOMAINS, domain_predictors
from .features import FeatureTable
from .modeling import TERM_COLUMNS, build_formula, fit_weighted_poisson, rr_table

DECISION_COLUMNS = [
    "domain",
    "predictor",
    "predictor_type",
    "n_levels",
    "n_levels_passing",
    "min_p_value",
    "retained",
]


@dataclass
class ScreeningResult:
    domain: str
    numeric: pd.DataFrame
    categorical: pd.DataFrame
    decisions: pd.DataFrame
    notes: list[str] = field(default_factory=list)

    def retained_predictors(self) -> list[str]:
        if self.decisions.empty:
            return []
        return self.decisions.loc[self.decisions["retained"].astype(bool), "predictor"].tolist()


def _error_row(label: str, predictor: str, error: str) -> pd.DataFrame:
    row = {col: np.nan for col in TERM_COLUMNS}
    row.update({"model": label, "predictor": predictor, "term": "", "level": "", "error": error})
    return pd.DataFrame([row])


def screen_predictor(table: FeatureTable, predictor: str, config: dict, notes: list[str]) -> pd.DataFrame:
    weight_col = config["combined_weight_col"]
    label = f"screen_{predictor}"
    try:
        frame = table.model_frame([predictor], weight_col)
        formula = build_formula([predictor], table)
        fit = fit_weighted_poisson(frame, formula, weight_col, config)
        out = rr_table(fit, label, ci_level=float(config["ci_level"]))
        out["nobs"] = int(fit.nobs)
        out["error"] = ""
        return out
    except Exception as exc:
        msg = f"{label}: model failed ({exc})."
        logging.warning(msg)
        notes.append(msg)
        return _error_row(label, predictor, str(exc))


def flag_retained(terms: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """Predictor-level screening decision.

    A predictor is retained when its smallest level p-value is below
    ``threshold``. Multi-level categoricals are kept whole if any single
    level passes; failed fits (missing p-values) are never retained.
    """
    if terms.empty:
        return pd.DataFrame(columns=["predictor", "n_levels", "n_levels_passing", "min_p_value", "retained"])

    rows: list[dict[str, object]] = []
    for predictor, g in terms.groupby("predictor", sort=False):
        p_values = pd.to_numeric(g["p_value"], errors="coerce")
        min_p = float(p_values.min()) if p_values.notna().any() else np.nan
        rows.append(
            {
                "predictor": predictor,
                "n_levels": int(p_values.notna().sum()),
                "n_levels_passing": int((p_values < threshold).sum()),
                "min_p_value": min_p,
                "retained": bool(pd.notna(min_p) and min_p < threshold),
            }
        )
    return pd.DataFrame(rows)


def screen_domain(table: FeatureTable, domain: str, config: dict) -> ScreeningResult:
    notes: list[str] = []
    threshold = float(config["screening_p_threshold"])
    numeric_rows: list[pd.DataFrame] = []
    categorical_rows: list[pd.DataFrame] = []

    for predictor in domain_predictors(domain, config):
        result = screen_predictor(table, predictor, config, notes)
        if table.is_categorical(predictor):
            categorical_rows.append(result)
        else:
            numeric_rows.append(result)

    numeric = pd.concat(numeric_rows, ignore_index=True, sort=False) if numeric_rows else pd.DataFrame()
    categorical = pd.concat(categorical_rows, ignore_index=True, sort=False) if categorical_rows else pd.DataFrame()

    decision_frames: list[pd.DataFrame] = []
    for kind, terms in [("numeric", numeric), ("categorical", categorical)]:
        if terms.empty:
            continue
        flags = flag_retained(terms, threshold)
        flags["predictor_type"] = kind
        decision_frames.append(flags)
    decisions = (
        pd.concat(decision_frames, ignore_index=True, sort=False)
        if decision_frames
        else pd.DataFrame(columns=DECISION_COLUMNS)
    )
    decisions["domain"] = domain
    decisions = decisions[DECISION_COLUMNS]

    logging.info(
        "Screening %s | predictors=%s retained=%s",
        domain,
        len(decisions),
        int(decisions["retained"].sum()) if not decisions.empty else 0,
    )
    return ScreeningResult(domain=domain, numeric=numeric, categorical=categorical, decisions=decisions, notes=notes)


def screen_all_domains(table: FeatureTable, config: dict) -> dict[str, ScreeningResult]:
    results: dict[str, ScreeningResult] = {}
    for domain in DOMAINS:
        try:
            results[domain] = screen_domain(table, domain, config)
        except Exception as exc:  # pragma: no cover - per-predictor failures are caught above
            msg = f"screening {domain}: domain failed ({exc})."
            logging.warning(msg)
            results[domain] = ScreeningResult(
                domain=domain,
                numeric=pd.DataFrame(),
                categorical=pd.DataFrame(),
                decisions=pd.DataFrame(columns=DECISION_COLUMNS),
                notes=[msg],
            )
    return results


def screening_report(result: ScreeningResult) -> pd.DataFrame:
    """Term-level domain report with the predictor decision attached."""
    frames = []
    for kind, terms in [("numeric", result.numeric), ("categorical", result.categorical)]:
        if terms.empty:
            continue
        tmp = terms.copy()
        tmp.insert(0, "predictor_type", kind)
        frames.append(tmp)
    if not frames:
        return pd.DataFrame(columns=["domain", "predictor_type", *TERM_COLUMNS, "retained"])
    out = pd.concat(frames, ignore_index=True, sort=False)
    out.insert(0, "domain", result.domain)
    decision = result.decisions.set_index("predictor")["retained"]
    out["retained"] = out["predictor"].map(decision).fillna(False).astype(bool)
    return out


def screening_by_block(results: dict[str, ScreeningResult]) -> dict[int, pd.DataFrame]:
    """Regroup screening decisions by the hierarchical block each domain enters."""
    out: dict[int, pd.DataFrame] = {}
    for block, domains in BLOCK_DOMAINS.items():
        frames = [results[d].decisions for d in domains if d in results and not results[d].decisions.empty]
        tbl = pd.concat(frames, ignore_index=True, sort=False) if frames else pd.DataFrame(columns=DECISION_COLUMNS)
        tbl.insert(0, "block", block)
        out[block] = tbl
    return out
