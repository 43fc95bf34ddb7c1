"""Survey file ingestion helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

SUPPORTED_SUFFIXES = (".sav", ".zsav", ".csv", ".parquet")


def read_survey_file(path: str | Path) -> pd.DataFrame:
    """Read the respondent-level export with categorical labels resolved to text."""
    fp = Path(path)
    if not fp.exists():
        raise FileNotFoundError(f"Survey file not found: {fp}")
    suffix = fp.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported survey file type '{suffix}'. Expected one of: {', '.join(SUPPORTED_SUFFIXES)}."
        )

    logging.info("Reading survey file: %s", fp)
    try:
        if suffix in (".sav", ".zsav"):
            df = pd.read_spss(fp, convert_categoricals=True)
        elif suffix == ".csv":
            df = pd.read_csv(fp)
        else:
            df = pd.read_parquet(fp)
    except Exception as exc:
        logging.exception("Survey file could not be read: %s", fp)
        raise RuntimeError(f"Could not read survey file ({fp}): {exc}") from exc

    logging.info("Finished reading survey file | rows=%s cols=%s", len(df), df.shape[1])
    return df
