"""
Quantile split of samples by expression of one or more genes of interest.

A sample is "high" when its expression is above the upper quantile
threshold for every gene, "low" when it is below the lower quantile
threshold for every gene, and "excluded" otherwise.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

HIGH = "high"
LOW = "low"
EXCLUDED = "excluded"


@dataclass
class GroupAssignment:
    """
    Per-sample group labels from a quantile split.

    Attributes:
        labels: Series indexed by sample id with values high / low / excluded
        genes: Genes used for the split
        lower_quantile: Lower quantile cutoff
        upper_quantile: Upper quantile cutoff
        thresholds: Gene -> (lower threshold, upper threshold) in expression units
    """

    labels: pd.Series
    genes: List[str]
    lower_quantile: float
    upper_quantile: float
    thresholds: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    @property
    def high_samples(self) -> List[str]:
        return list(self.labels.index[self.labels == HIGH])

    @property
    def low_samples(self) -> List[str]:
        return list(self.labels.index[self.labels == LOW])

    @property
    def excluded_samples(self) -> List[str]:
        return list(self.labels.index[self.labels == EXCLUDED])

    @property
    def n_high(self) -> int:
        return int((self.labels == HIGH).sum())

    @property
    def n_low(self) -> int:
        return int((self.labels == LOW).sum())

    @property
    def n_excluded(self) -> int:
        return int((self.labels == EXCLUDED).sum())

    def to_frame(self, expr: pd.DataFrame = None) -> pd.DataFrame:
        """Sample table with the group label (and gene expression when ``expr`` is given)."""
        df = pd.DataFrame({"group": self.labels})
        df.index.name = "sample"
        if expr is not None:
            for gene in self.genes:
                df[gene] = expr.loc[gene, df.index].astype(float)
        return df

    def __repr__(self) -> str:
        return (
            f"GroupAssignment(genes={self.genes}, high={self.n_high}, "
            f"low={self.n_low}, excluded={self.n_excluded})"
        )


def quantile_thresholds(
    values: Union[pd.Series, np.ndarray],
    lower_quantile: float,
    upper_quantile: float,
) -> Tuple[float, float]:
    """Lower and upper thresholds using linear interpolation between order statistics."""
    values = np.asarray(values, dtype=float)
    values = values[~np.isnan(values)]
    if values.size == 0:
        raise ValueError("Cannot compute quantiles of an empty expression vector")
    lo, up = np.quantile(values, [lower_quantile, upper_quantile])
    return float(lo), float(up)


def resolve_genes(index: pd.Index, genes: Sequence[str]) -> List[str]:
    """
    Map requested symbols onto the matrix index.

    Exact matches win; otherwise a symbol matches the single index entry
    equal to it ignoring case (``c1orf43`` -> ``C1orf43``).

    Raises:
        KeyError: If a symbol has no match or matches several entries
    """
    by_upper = {}
    for symbol in index:
        by_upper.setdefault(str(symbol).upper(), []).append(symbol)

    resolved, missing = [], []
    for gene in genes:
        if gene in index:
            resolved.append(gene)
            continue
        candidates = by_upper.get(gene.upper(), [])
        if len(candidates) == 1:
            resolved.append(candidates[0])
        elif candidates:
            raise KeyError(
                f"Gene {gene} matches several symbols ignoring case: {', '.join(candidates)}"
            )
        else:
            missing.append(gene)
    if missing:
        raise KeyError(f"Genes not found in expression matrix: {', '.join(missing)}")
    return resolved


def quantile_split(
    expr: pd.DataFrame,
    genes: Union[str, Sequence[str]],
    lower_quantile: float = 0.25,
    upper_quantile: float = 0.75,
) -> GroupAssignment:
    """
    Assign every sample (column of ``expr``) to high / low / excluded.

    Args:
        expr: Expression matrix (genes x samples)
        genes: Gene symbol or list of symbols (intersection across genes)
        lower_quantile: Samples strictly below this quantile are "low"
        upper_quantile: Samples strictly above this quantile are "high"

    Returns:
        GroupAssignment covering every column of ``expr``

    Raises:
        ValueError: If quantiles are out of range or no genes are given
        KeyError: If a gene is not present in the matrix
    """
    if isinstance(genes, str):
        genes = [genes]
    genes = list(genes)
    if not genes:
        raise ValueError("At least one gene is required for the quantile split")
    if not (0.0 < lower_quantile <= upper_quantile < 1.0):
        raise ValueError(
            f"Quantiles must satisfy 0 < lower <= upper < 1 "
            f"(got {lower_quantile}, {upper_quantile})"
        )

    genes = resolve_genes(expr.index, genes)

    is_high = pd.Series(True, index=expr.columns)
    is_low = pd.Series(True, index=expr.columns)
    thresholds = {}

    for gene in genes:
        values = expr.loc[gene].astype(float)
        lo, up = quantile_thresholds(values, lower_quantile, upper_quantile)
        thresholds[gene] = (lo, up)
        is_high &= values > up
        is_low &= values < lo
        logger.debug(f"{gene}: lower threshold {lo:.4f}, upper threshold {up:.4f}")

    labels = pd.Series(EXCLUDED, index=expr.columns, dtype=object)
    labels[is_high] = HIGH
    labels[is_low] = LOW
    labels.name = "group"

    assignment = GroupAssignment(
        labels=labels,
        genes=genes,
        lower_quantile=lower_quantile,
        upper_quantile=upper_quantile,
        thresholds=thresholds,
    )
    logger.info(
        f"Quantile split on {', '.join(genes)}: {assignment.n_high} high, "
        f"{assignment.n_low} low, {assignment.n_excluded} excluded"
    )
    return assignment
