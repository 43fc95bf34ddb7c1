"""Shared synthetic survey fixtures."""

import numpy as np
import pandas as pd
import pytest

from loneliness_incidence.cohort import build_cohort
from loneliness_incidence.config import CONFIG
from loneliness_incidence.features import FeatureTable, build_feature_table

RAW_LABELS = {
    "gender_birth": (["Male", "Female"], [0.55, 0.45]),
    "heterosexual": (["Yes", "No"], [0.8, 0.2]),
    "color": (["White", "Black", "Brown", "Yellow", "Indigenous"], [0.5, 0.15, 0.25, 0.05, 0.05]),
    "education": (
        [
            "Complete high school",
            "Incomplete higher education",
            "Complete higher education",
            "Postgraduate",
        ],
        [0.3, 0.2, 0.3, 0.2],
    ),
    "education_grouped": (["Up to high school", "Higher education", "Postgraduate"], [0.35, 0.4, 0.25]),
    "household_income": (["Class A", "Class B", "Class C", "Class D", "Class E"], [0.1, 0.2, 0.35, 0.2, 0.15]),
    "employment": (["Employed", "Unemployed", "Student", "Retired"], [0.5, 0.15, 0.2, 0.15]),
    "social_distancing": (["Yes", "No"], [0.7, 0.3]),
    "audit_class": (["Low risk", "Moderate risk", "High risk", "Severe risk"], [0.6, 0.2, 0.1, 0.1]),
    "cannabis_frequency": (
        ["Never", "Less than monthly", "Monthly", "Weekly", "Daily or almost daily"],
        [0.7, 0.1, 0.08, 0.07, 0.05],
    ),
    "physical_activity": (["Low", "Moderate", "High"], [0.35, 0.4, 0.25]),
    "physical_activity_active": (["Active", "Insufficiently active"], [0.6, 0.4]),
    "sleep_quality": (["Poor", "Fair", "Good", "Excellent"], [0.2, 0.3, 0.35, 0.15]),
    "marital_status": (
        ["Single", "Married or stable union", "Divorced or separated", "Widowed"],
        [0.4, 0.4, 0.12, 0.08],
    ),
    "friend_relationship": (["Poor", "Fair", "Good", "Excellent"], [0.15, 0.3, 0.35, 0.2]),
    "family_relationship": (["Poor", "Fair", "Good", "Excellent"], [0.15, 0.25, 0.4, 0.2]),
    "religion": (["Yes", "No"], [0.65, 0.35]),
}


def make_raw_survey(n: int = 700, seed: int = 7) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({"respondent_id": np.arange(1, n + 1), "interview_city": rng.choice(["A", "B"], size=n)})
    for col, (labels, probs) in RAW_LABELS.items():
        df[col] = rng.choice(labels, size=n, p=probs)

    df["birth_year"] = rng.integers(1950, 2004, size=n)
    df["household_size"] = rng.integers(1, 7, size=n)
    df["phq_total"] = rng.integers(0, 28, size=n).astype(float)
    df["gad_total"] = np.clip(df["phq_total"] * 0.6 + rng.normal(0, 3, size=n), 0, 21).round()
    df["ucla_total_w1"] = rng.choice(np.arange(10), size=n, p=[0.16, 0.14, 0.13, 0.12, 0.1, 0.1, 0.07, 0.07, 0.06, 0.05])

    lin = (
        -2.2
        + 0.7 * (df["gender_birth"] == "Female")
        + 0.09 * df["phq_total"]
        + 0.6 * df["sleep_quality"].isin(["Poor", "Fair"])
        + 0.5 * df["friend_relationship"].isin(["Poor", "Fair"])
    )
    lonely = rng.random(n) < 1.0 / (1.0 + np.exp(-lin))
    df["ucla_total_w4"] = np.where(lonely, rng.integers(6, 10, size=n), rng.integers(0, 6, size=n))

    df["weight_demographic"] = rng.uniform(0.5, 2.0, size=n).round(4)
    df["weight_attrition"] = rng.uniform(0.8, 1.6, size=n).round(4)
    df.loc[[3, 11], "weight_attrition"] = 0.0

    df.loc[[5, 17, 29], "ucla_total_w1"] = np.nan
    df.loc[[8, 40], "ucla_total_w4"] = np.nan
    df.loc[[50], "phq_total"] = np.nan
    return df


def make_config(**overrides) -> dict:
    cfg = dict(CONFIG)
    cfg.update(overrides)
    return cfg


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def raw_survey():
    return make_raw_survey()


@pytest.fixture
def cohort(raw_survey, config):
    return build_cohort(raw_survey, config)


@pytest.fixture
def feature_table(cohort, config):
    return build_feature_table(cohort.cohort_df, config)


def make_feature_table(data: pd.DataFrame, numeric=(), categorical=(), references=None) -> FeatureTable:
    return FeatureTable(
        data=data,
        numeric_predictors=tuple(numeric),
        categorical_predictors=tuple(categorical),
        reference_levels=dict(references or {}),
        standardization=pd.DataFrame(columns=["field", "source", "mean", "sd"]),
    )
