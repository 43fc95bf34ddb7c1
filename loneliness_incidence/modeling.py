"""Weighted Poisson (log link) GLM helpers shared by screening and hierarchical models."""

from __future__ import annotations

import re
import warnings
from typing import Iterable

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import ConvergenceWarning, PerfectSeparationWarning

from .features import FeatureTable

_CATEGORICAL_TERM = re.compile(r"^C\((?P<predictor>\w+),.*\)\[T\.(?P<level>.*)\]$")

TERM_COLUMNS = [
    "model",
    "predictor",
    "term",
    "level",
    "coef",
    "std_error",
    "ci_low_link",
    "ci_high_link",
    "rr",
    "ci_low",
    "ci_high",
    "p_value",
]


def reference_term(field: str, reference: str | None) -> str:
    if reference:
        return f'C({field}, Treatment(reference="{reference}"))'
    return f"C({field})"


def build_formula(predictors: Iterable[str], table: FeatureTable, outcome: str = "outcome_flag") -> str:
    rhs_terms: list[str] = []
    for predictor in predictors:
        if table.is_categorical(predictor):
            rhs_terms.append(reference_term(predictor, table.reference_levels.get(predictor)))
        else:
            rhs_terms.append(predictor)
    return f"{outcome} ~ " + (" + ".join(rhs_terms) if rhs_terms else "1")


def split_term(term: str) -> tuple[str, str]:
    """Return (predictor, level) for a design-matrix column name."""
    match = _CATEGORICAL_TERM.match(term)
    if match:
        return match.group("predictor"), match.group("level")
    return term, ""


def fit_weighted_poisson(frame: pd.DataFrame, formula: str, weight_col: str, config: dict):
    """Fit a modified-Poisson GLM with survey weights as variance weights.

    Solver warnings are promoted to errors so callers can report the model
    as failed instead of exporting unstable estimates.
    """
    if frame.empty:
        raise ValueError("no complete cases with positive weight")
    model = smf.glm(
        formula=formula,
        data=frame,
        family=sm.families.Poisson(link=sm.families.links.Log()),
        var_weights=frame[weight_col].to_numpy(dtype=float),
    )
    with warnings.catch_warnings():
        warnings.filterwarnings("error", category=ConvergenceWarning)
        warnings.filterwarnings("error", category=PerfectSeparationWarning)
        fit = model.fit(cov_type=str(config.get("glm_cov_type", "HC0")), maxiter=int(config.get("glm_maxiter", 100)))
    if not bool(getattr(fit, "converged", True)):
        raise RuntimeError("IRLS did not converge")
    return fit


def rr_table(fit, label: str, ci_level: float = 0.95) -> pd.DataFrame:
    """Per non-intercept term estimates on the link and risk-ratio scales."""
    params = fit.params.drop("Intercept", errors="ignore")
    conf = fit.conf_int(alpha=1.0 - ci_level).loc[params.index]
    bse = fit.bse.loc[params.index]
    pvalues = fit.pvalues.loc[params.index]

    link_values = np.concatenate([params.values, conf[0].values, conf[1].values, bse.values, pvalues.values])
    if not np.all(np.isfinite(link_values)):
        raise RuntimeError(f"{label}: non-finite estimate, standard error or confidence bound")

    split = [split_term(t) for t in params.index]
    out = pd.DataFrame(
        {
            "model": label,
            "predictor": [s[0] for s in split],
            "term": params.index,
            "level": [s[1] for s in split],
            "coef": params.values,
            "std_error": bse.values,
            "ci_low_link": conf[0].values,
            "ci_high_link": conf[1].values,
            "rr": np.exp(params.values),
            "ci_low": np.exp(conf[0].values),
            "ci_high": np.exp(conf[1].values),
            "p_value": pvalues.values,
        }
    )
    return out[TERM_COLUMNS].reset_index(drop=True)


def fit_statistics(fit) -> dict[str, float]:
    return {
        "nobs": int(fit.nobs),
        "llf": float(fit.llf),
        "aic": float(fit.aic),
        "bic": float(fit.bic_llf),
        "n_terms": int(len(fit.params) - 1),
    }


def min_p_by_predictor(terms: pd.DataFrame) -> pd.Series:
    if terms.empty:
        return pd.Series(dtype=float)
    return terms.groupby("predictor", sort=False)["p_value"].min()
