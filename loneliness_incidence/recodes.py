"""
================================================================================
RECODE TABLES - Centralized raw label -> analysis level definitions
================================================================================
Every derived categorical predictor is defined here, keyed by the output
column name. Each entry holds the raw source field, the label mapping, the
closed ordered set of output levels and the contrast reference level.

The feature transformer must not compare raw strings anywhere else.
Raw labels are matched after stripping whitespace and case-folding.
================================================================================
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

OUTCOME_LEVELS = ("negative", "positive")

_YES_NO = {"Yes": "Yes", "No": "No"}

# ============================================================================
# SOCIODEMOGRAPHIC
# ============================================================================

GENDER_BIRTH = {
    "source": "gender_birth",
    "mapping": {"Male": "Male", "Female": "Female"},
    "levels": ("Male", "Female"),
    "reference": "Male",
    "description": "Sex at birth; reference forced to the majority male category",
}

HETEROSEXUAL = {
    "source": "heterosexual",
    "mapping": _YES_NO,
    "levels": ("Yes", "No"),
    "reference": "Yes",
    "description": "Self-reported heterosexual orientation",
}

COLOR = {
    "source": "color",
    "mapping": {
        "White": "White",
        "Black": "Non-white",
        "Brown": "Non-white",
        "Yellow": "Non-white",
        "Indigenous": "Non-white",
    },
    "levels": ("White", "Non-white"),
    "reference": "White",
    "description": "Skin color: the four census non-white labels -> Non-white; any other label aborts the run",
}

EDUCATION_GROUPED = {
    "source": "education_grouped",
    "mapping": {
        "Up to high school": "Up to high school",
        "Higher education": "Higher education",
        "Postgraduate": "Postgraduate",
    },
    "levels": ("Up to high school", "Higher education", "Postgraduate"),
    "reference": "Up to high school",
    "description": "Grouped schooling; reference forced to the lowest category",
}

HOUSEHOLD_INCOME = {
    "source": "household_income",
    "mapping": {
        "Class A": "Upper",
        "Class B": "Upper",
        "Class C": "Middle",
        "Class D": "Lower",
        "Class E": "Lower",
    },
    "levels": ("Lower", "Middle", "Upper"),
    "reference": "Lower",
    "description": "Economic class: top two -> Upper, middle -> Middle, bottom two -> Lower",
}

EMPLOYMENT = {
    "source": "employment",
    "mapping": {
        "Employed": "Employed",
        "Unemployed": "Unemployed",
        "Student": "Student",
        "Retired": "Retired",
    },
    "levels": ("Employed", "Unemployed", "Student", "Retired"),
    "reference": "Employed",
    "description": "Employment status (closed pass-through)",
}

RELIGION = {
    "source": "religion",
    "mapping": _YES_NO,
    "levels": ("No", "Yes"),
    "reference": "No",
    "description": "Reports a religion",
}

# ============================================================================
# LIFESTYLE
# ============================================================================

PHYSICAL_ACTIVITY = {
    "source": "physical_activity",
    "mapping": {"Low": "Low", "Moderate": "Moderate", "High": "High"},
    "levels": ("Low", "Moderate", "High"),
    "reference": "Low",
    "description": "Physical activity level category (closed pass-through)",
}

SLEEP_QUALITY = {
    "source": "sleep_quality",
    "mapping": {"Poor": "Worse", "Fair": "Worse", "Good": "Better", "Excellent": "Better"},
    "levels": ("Worse", "Better"),
    "reference": "Worse",
    "description": "Self-rated sleep quality",
}

ALCOHOL_RISK = {
    "source": "audit_class",
    "mapping": {
        "Low risk": "Low risk",
        "Moderate risk": "High risk",
        "High risk": "High risk",
        "Severe risk": "High risk",
    },
    "levels": ("Low risk", "High risk"),
    "reference": "Low risk",
    "description": "AUDIT zone collapsed to low vs. moderate-or-worse",
}

CANNABIS_USE = {
    "source": "cannabis_frequency",
    "mapping": {
        "Never": "No",
        "Less than monthly": "Yes",
        "Monthly": "Yes",
        "Weekly": "Yes",
        "Daily or almost daily": "Yes",
    },
    "levels": ("No", "Yes"),
    "reference": "No",
    "description": "Any cannabis use frequency above never",
}

SOCIAL_DISTANCING = {
    "source": "social_distancing",
    "mapping": _YES_NO,
    "levels": ("No", "Yes"),
    "reference": "No",
    "description": "Practised social distancing",
}

# ============================================================================
# SOCIAL
# ============================================================================

MARITAL_STATUS = {
    "source": "marital_status",
    "mapping": {
        "Single": "Single",
        "Married or stable union": "Married or stable union",
        "Divorced or separated": "Divorced or separated",
        "Widowed": "Widowed",
    },
    "levels": ("Single", "Married or stable union", "Divorced or separated", "Widowed"),
    "reference": "Single",
    "description": "Marital status (closed pass-through)",
}

_RELATIONSHIP_MAPPING = {"Poor": "Worse", "Fair": "Worse", "Good": "Better", "Excellent": "Better"}

FRIEND_RELATIONSHIP = {
    "source": "friend_relationship",
    "mapping": _RELATIONSHIP_MAPPING,
    "levels": ("Worse", "Better"),
    "reference": "Worse",
    "description": "Quality of relationships with friends",
}

FAMILY_RELATIONSHIP = {
    "source": "family_relationship",
    "mapping": _RELATIONSHIP_MAPPING,
    "levels": ("Worse", "Better"),
    "reference": "Worse",
    "description": "Quality of relationships with family",
}

RECODES = {
    "gender_birth": GENDER_BIRTH,
    "heterosexual": HETEROSEXUAL,
    "color": COLOR,
    "education_grouped": EDUCATION_GROUPED,
    "household_income": HOUSEHOLD_INCOME,
    "employment": EMPLOYMENT,
    "religion": RELIGION,
    "physical_activity": PHYSICAL_ACTIVITY,
    "sleep_quality": SLEEP_QUALITY,
    "alcohol_risk": ALCOHOL_RISK,
    "cannabis_use": CANNABIS_USE,
    "social_distancing": SOCIAL_DISTANCING,
    "marital_status": MARITAL_STATUS,
    "friend_relationship": FRIEND_RELATIONSHIP,
    "family_relationship": FAMILY_RELATIONSHIP,
}


def _normalize_label(x: object) -> str:
    return " ".join(str(x).split()).casefold()


def reference_levels() -> dict[str, str]:
    return {field: entry["reference"] for field, entry in RECODES.items()}


def recode_field(series: pd.Series, field: str) -> pd.Series:
    """Map raw labels of ``series`` to the closed level set of ``field``.

    Missing values stay missing. Any other label outside the mapping is a
    data-contract violation and raises ``ValueError``.
    """
    entry = RECODES[field]
    lookup = {_normalize_label(k): v for k, v in entry["mapping"].items()}

    present = series.notna()
    raw = series.loc[present].astype(str)
    normalized = raw.map(_normalize_label)
    unmapped = sorted(set(raw.loc[~normalized.isin(list(lookup))]))
    if unmapped:
        preview = ", ".join(unmapped[:5])
        logging.error("%s: %s raw labels outside the recode table (%s)", field, len(unmapped), preview)
        raise ValueError(
            f"Field '{entry['source']}' has values outside the recode table for '{field}': {preview}"
        )

    out = pd.Series(np.nan, index=series.index, dtype="object")
    out.loc[present] = normalized.map(lookup)
    return pd.Series(pd.Categorical(out, categories=list(entry["levels"])), index=series.index, name=field)


def get_recode_inventory() -> pd.DataFrame:
    """One row per recode table, for the report appendix."""
    rows = []
    for field, entry in RECODES.items():
        rows.append(
            {
                "field": field,
                "source": entry["source"],
                "levels": " | ".join(entry["levels"]),
                "reference": entry["reference"],
                "n_raw_labels": len(entry["mapping"]),
                "description": entry["description"],
            }
        )
    return pd.DataFrame(rows)
