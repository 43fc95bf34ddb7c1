"""Nested, domain-ordered weighted Poisson models with retain-on-entry accumulation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .config import BLOCK_DOMAINS
from .features import FeatureTable
from .modeling import TERM_COLUMNS, build_formula, fit_statistics, fit_weighted_poisson, min_p_by_predictor, rr_table
from .screening import ScreeningResult

FIT_STAT_COLUMNS = ["block", "model", "n_predictors", "nobs", "llf", "aic", "bic", "n_terms", "error"]


@dataclass(frozen=True)
class LedgerEntry:
    predictor: str
    domain: str
    entry_block: int
    entry_p_value: float
    retained: bool


class RetentionLedger:
    """Per-predictor entry record.

    Each predictor is written exactly once, when it first enters a block.
    Later blocks only read ``retained_predictors()``; significance is never
    re-evaluated after entry.
    """

    def __init__(self, threshold: float) -> None:
        self.threshold = float(threshold)
        self._entries: dict[str, LedgerEntry] = {}

    def __contains__(self, predictor: str) -> bool:
        return predictor in self._entries

    def record(self, predictor: str, domain: str, block: int, entry_p_value: float) -> LedgerEntry:
        if predictor in self._entries:
            raise ValueError(f"{predictor} already entered at block {self._entries[predictor].entry_block}")
        p = float(entry_p_value) if pd.notna(entry_p_value) else np.nan
        entry = LedgerEntry(
            predictor=predictor,
            domain=domain,
            entry_block=int(block),
            entry_p_value=p,
            retained=bool(np.isfinite(p) and p < self.threshold),
        )
        self._entries[predictor] = entry
        return entry

    def get(self, predictor: str) -> LedgerEntry | None:
        return self._entries.get(predictor)

    def retained_predictors(self) -> list[str]:
        return [e.predictor for e in self._entries.values() if e.retained]

    def to_frame(self) -> pd.DataFrame:
        if not self._entries:
            return pd.DataFrame(columns=["predictor", "domain", "entry_block", "entry_p_value", "retained"])
        return pd.DataFrame([vars(e) for e in self._entries.values()])


@dataclass
class HierarchicalResult:
    terms: pd.DataFrame
    fit_stats: pd.DataFrame
    comparison: pd.DataFrame
    ledger: RetentionLedger
    block_predictors: dict[int, list[str]]
    notes: list[str] = field(default_factory=list)

    @property
    def final_block(self) -> int | None:
        ok = self.fit_stats.loc[self.fit_stats["error"] == "", "block"]
        return int(ok.max()) if not ok.empty else None

    def final_terms(self) -> pd.DataFrame:
        block = self.final_block
        if block is None or self.terms.empty:
            return pd.DataFrame(columns=TERM_COLUMNS)
        return self.terms.loc[self.terms["block"] == block].reset_index(drop=True)


def _entering_predictors(screened: dict[str, ScreeningResult], domains: list[str], ledger: RetentionLedger) -> list[tuple[str, str]]:
    out: list[tuple[str, str]] = []
    for domain in domains:
        result = screened.get(domain)
        if result is None:
            continue
        for predictor in result.retained_predictors():
            if predictor not in ledger and predictor not in [p for p, _ in out]:
                out.append((predictor, domain))
    return out


def build_comparison(terms: pd.DataFrame, blocks: list[int], final_block: int | None, final_p: float) -> pd.DataFrame:
    """Side-by-side term table; terms absent from a block stay NaN."""
    if terms.empty:
        return pd.DataFrame(columns=["predictor", "term", "level"])
    keys = terms[["predictor", "term", "level"]].drop_duplicates().reset_index(drop=True)
    out = keys.copy()
    for block in blocks:
        sub = terms.loc[terms["block"] == block, ["term", "rr", "ci_low", "ci_high", "p_value"]]
        sub = sub.rename(columns={c: f"{c}_block{block}" for c in ["rr", "ci_low", "ci_high", "p_value"]})
        out = out.merge(sub, on="term", how="left")
    if final_block is not None:
        final_col = f"p_value_block{final_block}"
        out["significant_final"] = out[final_col].lt(final_p).fillna(False).astype(bool)
    else:
        out["significant_final"] = False
    return out


def fit_hierarchical_blocks(table: FeatureTable, screened: dict[str, ScreeningResult], config: dict) -> HierarchicalResult:
    weight_col = config["combined_weight_col"]
    ci_level = float(config["ci_level"])
    ledger = RetentionLedger(threshold=float(config["entry_p_threshold"]))
    notes: list[str] = []
    term_frames: list[pd.DataFrame] = []
    stat_rows: list[dict[str, object]] = []
    block_predictors: dict[int, list[str]] = {}

    for block, domains in BLOCK_DOMAINS.items():
        label = f"block{block}"
        entering = _entering_predictors(screened, domains, ledger)
        predictors = [*ledger.retained_predictors(), *[p for p, _ in entering]]
        block_predictors[block] = predictors
        stats: dict[str, object] = {"block": block, "model": label, "n_predictors": len(predictors)}

        if not predictors:
            msg = f"{label}: no predictors passed screening or were retained; block not fitted."
            logging.warning(msg)
            notes.append(msg)
            stat_rows.append({**stats, "error": "no predictors"})
            continue

        try:
            frame = table.model_frame(predictors, weight_col)
            fit = fit_weighted_poisson(frame, build_formula(predictors, table), weight_col, config)
            terms = rr_table(fit, label, ci_level=ci_level)
        except Exception as exc:
            msg = f"{label}: model failed ({exc}); entering predictors are not carried forward."
            logging.warning(msg)
            notes.append(msg)
            stat_rows.append({**stats, "error": str(exc)})
            for predictor, domain in entering:
                ledger.record(predictor, domain, block, np.nan)
            continue

        terms.insert(0, "block", block)
        term_frames.append(terms)
        stat_rows.append({**stats, **fit_statistics(fit), "error": ""})

        min_p = min_p_by_predictor(terms)
        for predictor, domain in entering:
            entry = ledger.record(predictor, domain, block, min_p.get(predictor, np.nan))
            logging.info(
                "%s: %s entered p=%.4g retained=%s", label, predictor, entry.entry_p_value, entry.retained
            )

    all_terms = (
        pd.concat(term_frames, ignore_index=True, sort=False)
        if term_frames
        else pd.DataFrame(columns=["block", *TERM_COLUMNS])
    )
    fit_stats = pd.DataFrame(stat_rows).reindex(columns=FIT_STAT_COLUMNS)
    fit_stats["error"] = fit_stats["error"].fillna("")

    ok_blocks = fit_stats.loc[fit_stats["error"] == "", "block"]
    final_block = int(ok_blocks.max()) if not ok_blocks.empty else None
    comparison = build_comparison(
        all_terms,
        blocks=[b for b in BLOCK_DOMAINS if b in set(all_terms["block"])],
        final_block=final_block,
        final_p=float(config["final_p_threshold"]),
    )
    if not comparison.empty:
        entry_blocks = {p: e.entry_block for p, e in ((p, ledger.get(p)) for p in comparison["predictor"]) if e}
        comparison.insert(1, "entry_block", comparison["predictor"].map(entry_blocks))

    return HierarchicalResult(
        terms=all_terms,
        fit_stats=fit_stats,
        comparison=comparison,
        ledger=ledger,
        block_predictors=block_predictors,
        notes=notes,
    )


def fit_stats_wide(fit_stats: pd.DataFrame) -> pd.DataFrame:
    """Blocks as columns, one row per fit statistic."""
    if fit_stats.empty:
        return pd.DataFrame()
    wide = fit_stats.set_index("model")[["nobs", "llf", "aic", "bic"]].T
    wide.index.name = "statistic"
    return wide.reset_index()
