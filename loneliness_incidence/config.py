"""Configuration for the incident-loneliness cohort analyses."""

from __future__ import annotations

import os
from pathlib import Path

CHANGE_LOG = [
    "2026-10-14: Age reference year and cubic age term moved into CONFIG; both pipeline variants are reproducible from one codebase.",
    "2026-10-14: Retain-on-entry rule for hierarchical blocks made explicit through a retention ledger written once per predictor.",
    "2026-10-09: Recode tables centralized in recodes.py; unmapped raw labels now abort the run instead of passing through.",
    "2026-10-09: Weighted descriptive tables produced for demographic, attrition and combined weights from one routine.",
    "2026-10-02: Refactored notebook-style analysis into a modular pipeline with a single main() entrypoint.",
]

ASSUMPTIONS = [
    "Input is a single respondent-level survey export with categorical labels already resolved to text.",
    "Loneliness totals range 0-9; a total >= loneliness_threshold defines loneliness at that wave.",
    "Incidence cohort excludes respondents lonely at baseline (W1); outcome is loneliness at follow-up (W4).",
    "Regression weight is the product of the demographic sampling weight and the attrition weight.",
    "Risk ratios come from weighted Poisson GLMs with log link and robust (sandwich) standard errors.",
    "Complete-case analysis per model; no imputation of missing predictors.",
    "Skin color maps only the census labels (White, Black, Brown, Yellow, Indigenous); any other label is treated as a data-contract violation rather than folded into Non-white.",
    "Multi-level categorical predictors are retained at screening if any level passes; this is a reproducibility choice, not a statistical recommendation.",
]

FIELD_WHITELIST = [
    "ucla_total_w1",
    "ucla_total_w4",
    "gender_birth",
    "heterosexual",
    "color",
    "birth_year",
    "education",
    "education_grouped",
    "household_income",
    "household_size",
    "employment",
    "social_distancing",
    "phq_total",
    "gad_total",
    "audit_class",
    "cannabis_frequency",
    "physical_activity",
    "physical_activity_active",
    "sleep_quality",
    "marital_status",
    "friend_relationship",
    "family_relationship",
    "religion",
    "weight_demographic",
    "weight_attrition",
]

# Replaced by derived columns in features.build_feature_table.
SUPERSEDED_FIELDS = [
    "education",
    "physical_activity_active",
    "ucla_total_w1",
    "ucla_total_w4",
    "birth_year",
    "cannabis_frequency",
    "audit_class",
]

DOMAINS = {
    "sociodemographic": [
        "age",
        "age_2",
        "age_3",
        "gender_birth",
        "heterosexual",
        "color",
        "education_grouped",
        "household_income",
        "household_size",
        "employment",
        "religion",
    ],
    "lifestyle": [
        "physical_activity",
        "sleep_quality",
        "alcohol_risk",
        "cannabis_use",
        "social_distancing",
    ],
    "social": [
        "marital_status",
        "friend_relationship",
        "family_relationship",
    ],
    "clinical": [
        "phq_total",
        "gad_total",
    ],
}

BLOCK_DOMAINS = {
    1: ["sociodemographic"],
    2: ["lifestyle", "social"],
    3: ["clinical"],
}

CONFIG = {
    "input_path": os.environ.get("LONELINESS_INPUT_PATH", "").strip(),
    "reference_year": 2022,
    "include_age_cubic": True,
    "baseline_total_col": "ucla_total_w1",
    "followup_total_col": "ucla_total_w4",
    "loneliness_threshold": 6,
    "sampling_weight_col": "weight_demographic",
    "attrition_weight_col": "weight_attrition",
    "combined_weight_col": "combined_weight",
    "summary_weightings": ["weight_demographic", "weight_attrition", "combined_weight"],
    "zscore_fields": ["phq_total", "gad_total"],
    "screening_p_threshold": 0.2,
    "entry_p_threshold": 0.1,
    "final_p_threshold": 0.05,
    "ci_level": 0.95,
    "glm_cov_type": "HC0",
    "glm_maxiter": 100,
    "print_tables": False,
    "print_table_max_rows": 30,
    "output_dir": str(Path.cwd() / "loneliness_outputs"),
}

REQUIRED_OUTPUT_FILES = [
    "cohort_flow.csv",
    "summary_weight_demographic.csv",
    "summary_weight_attrition.csv",
    "summary_combined_weight.csv",
    "screening_sociodemographic.csv",
    "screening_lifestyle.csv",
    "screening_social.csv",
    "screening_clinical.csv",
    "screening_block1.csv",
    "screening_block2.csv",
    "screening_block3.csv",
    "hierarchical_terms.csv",
    "hierarchical_fit_stats.csv",
    "hierarchical_comparison.csv",
    "retention_ledger.csv",
    "forest_plot_ready.csv",
    "forest_plot_sorted.png",
    "forest_plot_unsorted.png",
    "REPORT.md",
]


def age_predictors(config: dict) -> list[str]:
    cols = ["age", "age_2"]
    if config.get("include_age_cubic", True):
        cols.append("age_3")
    return cols


def domain_predictors(domain: str, config: dict) -> list[str]:
    if domain not in DOMAINS:
        raise ValueError(f"Unknown predictor domain: {domain}")
    ages = set(age_predictors(config))
    return [p for p in DOMAINS[domain] if not p.startswith("age") or p in ages]


def validate_config(config: dict) -> None:
    if not str(config.get("input_path", "")).strip():
        raise ValueError("LONELINESS_INPUT_PATH is empty. Pass an input file or set LONELINESS_INPUT_PATH.")
    for key in ["screening_p_threshold", "entry_p_threshold", "final_p_threshold", "ci_level"]:
        value = float(config[key])
        if not 0.0 < value < 1.0:
            raise ValueError(f"{key} must be in (0, 1); got {value}")
    if int(config["reference_year"]) < 1900:
        raise ValueError(f"reference_year looks implausible: {config['reference_year']}")


def ensure_output_dir(config: dict) -> Path:
    out_dir = Path(config["output_dir"]).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir
