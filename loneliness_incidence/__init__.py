"""Incident loneliness cohort: feature engineering, weighted screening and hierarchical Poisson models."""

__version__ = "0.1.0"
