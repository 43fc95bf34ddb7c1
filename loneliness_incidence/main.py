"""Main entrypoint for the incident-loneliness pipeline."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from .cohort import CohortData, build_cohort
from .config import ASSUMPTIONS, CHANGE_LOG, CONFIG, DOMAINS, REQUIRED_OUTPUT_FILES, ensure_output_dir, validate_config
from .features import FeatureTable, build_feature_table
from .hierarchical import HierarchicalResult, fit_hierarchical_blocks, fit_stats_wide
from .ingest import read_survey_file
from .plots import build_forest_ready, plot_ranked_effects
from .recodes import get_recode_inventory
from .reporting import write_report
from .screening import ScreeningResult, screen_all_domains, screening_by_block, screening_report
from .summary import build_all_summaries


@dataclass
class AnalysisBundle:
    cohort: CohortData
    features: FeatureTable
    summaries: dict[str, pd.DataFrame]
    screening: dict[str, ScreeningResult]
    screening_blocks: dict[int, pd.DataFrame]
    hierarchical: HierarchicalResult
    forest_ready: pd.DataFrame
    notes: list[str]


@dataclass
class PipelineRunResult:
    output_dir: Path
    generated_files: list[str]
    analyses: AnalysisBundle
    notes: list[str]


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _print_df(label: str, df: pd.DataFrame, max_rows: int = 30) -> None:
    print(f"\n===== {label} =====")
    if df.empty:
        print("[empty]")
        return
    if len(df) > max_rows:
        print(df.head(max_rows).to_string(index=False))
        print(f"... ({len(df)} rows total)")
    else:
        print(df.to_string(index=False))


def _save_table(file_name: str, df: pd.DataFrame, output_dir: Path, config: dict) -> Path:
    out_path = output_dir / file_name
    df.to_csv(out_path, index=False)
    logging.info("Saved %s (%s rows)", file_name, len(df))
    if config.get("print_tables", False):
        _print_df(file_name, df, max_rows=int(config.get("print_table_max_rows", 30)))
    return out_path


def _verify_outputs(output_dir: Path, notes: list[str], skip: tuple[str, ...] = ()) -> None:
    for file_name in REQUIRED_OUTPUT_FILES:
        if file_name not in skip and not (output_dir / file_name).exists():
            notes.append(f"Missing expected output artifact: {file_name}")


def run_analyses(raw: pd.DataFrame, config: dict) -> AnalysisBundle:
    """Cohort -> features -> (summaries, screening) -> hierarchical blocks."""
    cohort = build_cohort(raw, config)
    features = build_feature_table(cohort.cohort_df, config)

    summaries = build_all_summaries(features, config)
    screening = screen_all_domains(features, config)
    screening_blocks = screening_by_block(screening)
    hierarchical = fit_hierarchical_blocks(features, screening, config)
    forest_ready = build_forest_ready(hierarchical.final_terms(), float(config["final_p_threshold"]))

    notes = list(features.notes)
    for result in screening.values():
        notes.extend(result.notes)
    notes.extend(hierarchical.notes)
    for weighting, tbl in summaries.items():
        failed = sorted(set(tbl.loc[tbl["error"] != "", "variable"]))
        if failed:
            notes.append(f"summary {weighting}: tests unavailable for {', '.join(failed)}.")

    return AnalysisBundle(
        cohort=cohort,
        features=features,
        summaries=summaries,
        screening=screening,
        screening_blocks=screening_blocks,
        hierarchical=hierarchical,
        forest_ready=forest_ready,
        notes=notes,
    )


def write_outputs(analyses: AnalysisBundle, output_dir: Path, config: dict) -> list[str]:
    generated: list[str] = []
    hier = analyses.hierarchical

    output_map: list[tuple[str, pd.DataFrame]] = [("cohort_flow.csv", analyses.cohort.cohort_flow)]
    output_map += [(f"summary_{w}.csv", tbl) for w, tbl in analyses.summaries.items()]
    output_map += [(f"screening_{d}.csv", screening_report(analyses.screening[d])) for d in DOMAINS if d in analyses.screening]
    output_map += [(f"screening_block{b}.csv", tbl) for b, tbl in analyses.screening_blocks.items()]
    output_map += [
        ("hierarchical_terms.csv", hier.terms),
        ("hierarchical_fit_stats.csv", fit_stats_wide(hier.fit_stats)),
        ("hierarchical_comparison.csv", hier.comparison),
        ("retention_ledger.csv", hier.ledger.to_frame()),
        ("forest_plot_ready.csv", analyses.forest_ready),
    ]
    for file_name, df in output_map:
        generated.append(_save_table(file_name, df, output_dir, config).name)

    for file_name, sort_flag, title in [
        ("forest_plot_sorted.png", True, "Incident loneliness: final model (sorted by RR)"),
        ("forest_plot_unsorted.png", False, "Incident loneliness: final model"),
    ]:
        plot_ranked_effects(analyses.forest_ready, output_dir / file_name, sort_by_magnitude=sort_flag, title=title)
        generated.append(file_name)
    return generated


def main(input_path: str | None = None, config: dict | None = None) -> PipelineRunResult:
    _configure_logging()
    cfg = dict(config or CONFIG)
    if input_path:
        cfg["input_path"] = str(input_path)
    validate_config(cfg)

    output_dir = ensure_output_dir(cfg)
    logging.info("Starting incident-loneliness pipeline. input=%s", cfg["input_path"])
    logging.info("Output directory: %s", output_dir)

    raw = read_survey_file(cfg["input_path"])
    analyses = run_analyses(raw, cfg)
    generated_files = write_outputs(analyses, output_dir, cfg)

    notes = list(analyses.notes)
    decision_frames = [r.decisions for r in analyses.screening.values() if not r.decisions.empty]
    screening_decisions = (
        pd.concat(decision_frames, ignore_index=True, sort=False) if decision_frames else pd.DataFrame()
    )

    _verify_outputs(output_dir, notes, skip=("REPORT.md",))

    report_path = write_report(
        output_dir=output_dir,
        change_log=CHANGE_LOG,
        assumptions=ASSUMPTIONS,
        cohort_flow=analyses.cohort.cohort_flow,
        standardization=analyses.features.standardization,
        recode_inventory=get_recode_inventory(),
        screening_decisions=screening_decisions,
        ledger=analyses.hierarchical.ledger.to_frame(),
        fit_stats=analyses.hierarchical.fit_stats,
        comparison=analyses.hierarchical.comparison,
        generated_files=[*generated_files, "REPORT.md"],
        notes=notes,
    )
    generated_files.append(report_path.name)

    logging.info("Pipeline complete. Generated files:")
    for fp in sorted(generated_files):
        logging.info("- %s", fp)

    return PipelineRunResult(
        output_dir=output_dir,
        generated_files=sorted(generated_files),
        analyses=analyses,
        notes=notes,
    )


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Incident loneliness screening and hierarchical Poisson models.")
    parser.add_argument("input_path", nargs="?", help="Survey export (.sav, .zsav, .csv or .parquet).")
    parser.add_argument("--output-dir", help="Directory for tables, plots and REPORT.md.")
    args = parser.parse_args(argv)

    cfg = dict(CONFIG)
    if args.output_dir:
        cfg["output_dir"] = args.output_dir
    main(input_path=args.input_path, config=cfg)


if __name__ == "__main__":
    cli()
