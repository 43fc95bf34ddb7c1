"""Report generation utilities for incident-loneliness outputs."""

from __future__ import annotations

from pathlib import Path

import pandas as pd


def _fmt_num(x: float | int | None, digits: int = 3) -> str:
    if x is None or pd.isna(x):
        return "NA"
    return f"{float(x):.{digits}f}"


def _fmt_rr(row: pd.Series, block: int) -> str:
    rr = row.get(f"rr_block{block}")
    if rr is None or pd.isna(rr):
        return "NA"
    return (
        f"{rr:.2f} ({row[f'ci_low_block{block}']:.2f}-{row[f'ci_high_block{block}']:.2f}); "
        f"p={_fmt_num(row[f'p_value_block{block}'])}"
    )


def write_report(
    *,
    output_dir: Path,
    change_log: list[str],
    assumptions: list[str],
    cohort_flow: pd.DataFrame,
    standardization: pd.DataFrame,
    recode_inventory: pd.DataFrame,
    screening_decisions: pd.DataFrame,
    ledger: pd.DataFrame,
    fit_stats: pd.DataFrame,
    comparison: pd.DataFrame,
    generated_files: list[str],
    notes: list[str],
) -> Path:
    report_path = output_dir / "REPORT.md"

    lines: list[str] = []
    lines.append("# Incident Loneliness: Weighted Screening and Hierarchical Poisson Models")
    lines.append("")

    lines.append("## Change Log")
    for entry in change_log:
        lines.append(f"- {entry}")
    lines.append("")

    lines.append("## Assumptions")
    for entry in assumptions:
        lines.append(f"- {entry}")
    lines.append("")

    lines.append("## Cohort Flow")
    if cohort_flow.empty:
        lines.append("- Cohort flow unavailable.")
    else:
        for _, row in cohort_flow.iterrows():
            lines.append(f"- {row.get('step', 'step')}: {row.get('n', 'NA')}")
    lines.append("")

    lines.append("## Standardization")
    for _, row in standardization.iterrows():
        lines.append(f"- `{row['field']}` ({row['source']}): mean={_fmt_num(row['mean'])}, sd={_fmt_num(row['sd'])}")
    lines.append("")

    lines.append("## Recodes")
    for _, row in recode_inventory.iterrows():
        lines.append(f"- `{row['field']}` <- `{row['source']}`: {row['levels']} (reference: {row['reference']})")
    lines.append("")

    lines.append("## Screening (p < threshold retains the whole variable)")
    if screening_decisions.empty:
        lines.append("- No screening decisions.")
    else:
        for _, row in screening_decisions.iterrows():
            status = "retained" if bool(row["retained"]) else "excluded"
            lines.append(
                f"- [{row['domain']}] `{row['predictor']}`: min p={_fmt_num(row['min_p_value'])} "
                f"({row['n_levels_passing']}/{row['n_levels']} levels passing) -> {status}"
            )
    lines.append("")

    lines.append("## Retention Ledger (entry significance governs later blocks)")
    if ledger.empty:
        lines.append("- No predictors entered a block.")
    else:
        for _, row in ledger.iterrows():
            status = "carried forward" if bool(row["retained"]) else "dropped after entry"
            lines.append(
                f"- `{row['predictor']}` entered block {row['entry_block']} "
                f"(p={_fmt_num(row['entry_p_value'])}): {status}"
            )
    lines.append("")

    lines.append("## Model Fit")
    for _, row in fit_stats.iterrows():
        if row.get("error"):
            lines.append(f"- {row['model']}: not available ({row['error']})")
        else:
            lines.append(
                f"- {row['model']}: n={int(row['nobs'])}, logLik={_fmt_num(row['llf'])}, "
                f"AIC={_fmt_num(row['aic'])}, BIC={_fmt_num(row['bic'])}"
            )
    lines.append("")

    lines.append("## Risk Ratios by Block")
    if comparison.empty:
        lines.append("- No fitted terms.")
    else:
        blocks = sorted(int(c.replace("rr_block", "")) for c in comparison.columns if c.startswith("rr_block"))
        lines.append("| Term | " + " | ".join(f"Block {b}" for b in blocks) + " |")
        lines.append("|---|" + "---|" * len(blocks))
        for _, row in comparison.iterrows():
            label = row["term"] + (" *" if bool(row.get("significant_final")) else "")
            lines.append(f"| {label} | " + " | ".join(_fmt_rr(row, b) for b in blocks) + " |")
        lines.append("")
        lines.append("`*` p below the final-model significance threshold.")
    lines.append("")

    lines.append("## Generated Artifacts")
    for fp in sorted(generated_files):
        lines.append(f"- `{fp}`")
    lines.append("")

    lines.append("## Notes")
    if not notes:
        lines.append("- None.")
    else:
        for note in notes:
            lines.append(f"- {note}")
    lines.append("")

    lines.append("## Interpretation Guardrails")
    lines.append("- Risk ratios are associations in a weighted incidence cohort, not causal effects.")
    lines.append("- Screening keeps a categorical variable whole if any level passes; treat block composition as analysis-specific.")
    lines.append("- Terms absent from a block are shown as NA, not as null effects.")

    report_path.write_text("\n".join(lines), encoding="utf-8")
    return report_path
