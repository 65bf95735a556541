"""
Expression and clinical table preparation.

Steps applied before the quantile split (in pipeline order):
1. Clean the expression matrix (deduplicate symbols, drop incomplete genes)
2. Keep primary tumor samples (TCGA sample-type code 01)
3. Filter sparse / constant clinical variables
4. Align expression columns with clinical rows
5. log2-transform when the matrix is not already on a log scale
"""

import logging
from typing import Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

PRIMARY_TUMOR_CODE = "01"


def clean_expression(expr: pd.DataFrame) -> pd.DataFrame:
    """Collapse duplicate gene symbols (keep first) and drop genes with missing values."""
    n_before = len(expr)
    if not expr.index.is_unique:
        expr = expr[~expr.index.duplicated(keep="first")]
    expr = expr.apply(pd.to_numeric, errors="coerce")
    expr = expr.dropna(axis=0, how="any")
    if len(expr) != n_before:
        logger.info(f"Expression cleanup: {n_before:,} → {len(expr):,} genes")
    return expr


def is_log_scale(expr: pd.DataFrame) -> bool:
    """
    Decide whether values already look log-transformed.

    Quantile heuristic: raw intensities/counts have a large 99th
    percentile, or a wide range with a positive lower quartile.
    """
    values = expr.to_numpy(dtype=float).ravel()
    values = values[~np.isnan(values)]
    if values.size == 0:
        return True
    q0, q25, _, _, q99, q100 = np.quantile(values, [0.0, 0.25, 0.5, 0.75, 0.99, 1.0])
    needs_log = (q99 > 100) or ((q100 - q0) > 50 and q25 > 0)
    return not needs_log


def log2_transform(expr: pd.DataFrame, force: bool = False) -> pd.DataFrame:
    """Return log2(x + 1) of ``expr`` unless it is already on a log scale."""
    if not force and is_log_scale(expr):
        logger.info("Expression already on log2 scale; no transform applied")
        return expr
    logger.info("Applying log2(x + 1) transform")
    return np.log2(expr.clip(lower=0) + 1.0)


def sample_type_code(sample_id: str) -> str:
    """TCGA sample-type code (e.g. "01" for TCGA-A1-A0SB-01), or "" if not a TCGA barcode."""
    parts = str(sample_id).split("-")
    if len(parts) < 4 or parts[0].upper() != "TCGA":
        return ""
    return parts[3][:2]


def select_primary_tumor(expr: pd.DataFrame) -> pd.DataFrame:
    """Keep primary tumor columns; identifiers that are not TCGA barcodes are kept."""
    codes = [sample_type_code(s) for s in expr.columns]
    keep = [c in ("", PRIMARY_TUMOR_CODE) for c in codes]
    n_removed = len(keep) - sum(keep)
    if n_removed:
        logger.info(f"Primary tumor filter: removed {n_removed} non-tumor samples")
    return expr.loc[:, keep]


def filter_clinical(clinical: pd.DataFrame, max_missing_fraction: float = 0.5) -> pd.DataFrame:
    """
    Drop sparse and uninformative clinical variables.

    Args:
        clinical: Samples x variables table
        max_missing_fraction: Variables missing in a larger share of samples are dropped

    Returns:
        Filtered table (samples with no remaining values are dropped too)
    """
    clinical = clinical.replace(r"^\s*$", np.nan, regex=True)
    missing = clinical.isna().mean(axis=0)
    keep = missing[missing <= max_missing_fraction].index
    filtered = clinical[keep]

    constant = [c for c in filtered.columns if filtered[c].nunique(dropna=True) <= 1]
    filtered = filtered.drop(columns=constant)
    filtered = filtered.dropna(axis=0, how="all")

    logger.info(
        f"Clinical filter: {clinical.shape[1]} → {filtered.shape[1]} variables, "
        f"{clinical.shape[0]} → {filtered.shape[0]} samples"
    )
    return filtered


def align_samples(
    expr: pd.DataFrame,
    clinical: pd.DataFrame,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Restrict both tables to shared sample ids, in expression column order."""
    clinical_ids = set(clinical.index)
    common = [s for s in expr.columns if s in clinical_ids]
    if not common:
        raise ValueError("No sample identifiers shared by expression and clinical data")
    if len(common) < expr.shape[1]:
        logger.info(f"Sample alignment: {expr.shape[1]} → {len(common)} samples")
    clinical = clinical[~clinical.index.duplicated(keep="first")]
    return expr[common], clinical.loc[common]
