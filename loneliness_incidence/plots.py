"""Ranked risk-ratio (forest) plots for the final hierarchical block."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

SIG_COLOR = "#0072B2"
NONSIG_COLOR = "#999999"


def _term_label(row: pd.Series) -> str:
    return f"{row['predictor']}: {row['level']}" if row.get("level") else str(row["predictor"])


def build_forest_ready(final_terms: pd.DataFrame, final_p: float) -> pd.DataFrame:
    if final_terms.empty:
        return pd.DataFrame(columns=["label", "model", "rr", "ci_low", "ci_high", "p_value", "significant", "rank"])
    out = final_terms[["model", "predictor", "level", "rr", "ci_low", "ci_high", "p_value"]].copy()
    out.insert(0, "label", out.apply(_term_label, axis=1))
    out["significant"] = out["p_value"] < final_p
    out["rank"] = out["rr"].rank(method="first", ascending=False).astype(int)
    return out.drop(columns=["predictor", "level"]).reset_index(drop=True)


def plot_ranked_effects(forest: pd.DataFrame, out_path: Path, *, sort_by_magnitude: bool, title: str) -> Path:
    df = forest.copy()
    if sort_by_magnitude:
        df = df.sort_values("rr", ascending=True, kind="mergesort")
    else:
        df = df.iloc[::-1]

    fig, ax = plt.subplots(figsize=(9, max(3.0, 0.4 * len(df) + 1.5)))
    if df.empty:
        ax.text(0.5, 0.5, "No terms in final model", ha="center", va="center")
        ax.set_axis_off()
    else:
        y = np.arange(len(df))
        colors = np.where(df["significant"].astype(bool), SIG_COLOR, NONSIG_COLOR)
        ax.hlines(y, df["ci_low"], df["ci_high"], colors=colors, linewidth=2)
        ax.scatter(df["rr"], y, s=40, c=colors, zorder=5)
        ax.axvline(1.0, linestyle="--", color="#D55E00", alpha=0.6, linewidth=1)
        ax.set_yticks(y)
        ax.set_yticklabels(df["label"].tolist())
        ax.set_xscale("log")
        ax.set_xlabel("Risk ratio (95% CI)")
        ax.grid(True, axis="x", alpha=0.3, linewidth=0.5)
    ax.set_title(title)
    fig.tight_layout()
    fig.savefig(out_path, dpi=200, bbox_inches="tight", metadata={"Software": None})
    plt.close(fig)
    logging.info("Saved forest plot to %s", out_path)
    return out_path
