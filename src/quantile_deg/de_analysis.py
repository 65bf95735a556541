"""
Differential expression analysis engine (high vs low quantile groups).

The default method fits a two-group linear model per gene on log2
expression, moderates gene-wise variances with empirical Bayes (see
``quantile_deg.limma``) and adjusts p-values with Benjamini-Hochberg.
A per-gene Welch t-test is available as an alternative.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from quantile_deg.de_result import DEProvenance, DEResult, GeneResult
from quantile_deg.limma import ebayes, lm_fit
from quantile_deg.stratify import GroupAssignment

logger = logging.getLogger(__name__)

DEMethod = Literal["limma", "welch_t"]

# Significant digits kept for reported statistics (what a spreadsheet cell round-trips)
REPORTED_DIGITS = 15


def reported(value: float) -> float:
    """Round a statistic to REPORTED_DIGITS significant digits."""
    return float(f"{value:.{REPORTED_DIGITS}g}")


@dataclass
class DEConfig:
    """Configuration for differential expression analysis.

    Attributes:
        method: "limma" (moderated t, default) or "welch_t"
        fdr_threshold: Genes with adjusted p-value at or below this are significant
        log2fc_threshold: Minimum |log2 fold change| for significance
        min_samples_per_group: Fewer samples in either group is an error
    """

    method: DEMethod = "limma"
    fdr_threshold: float = 0.05
    log2fc_threshold: float = 0.0
    min_samples_per_group: int = 2

    def __post_init__(self):
        if self.method not in ("limma", "welch_t"):
            raise ValueError(f"Unknown DE method: {self.method!r}")


class DifferentialExpressionAnalyzer:
    """
    Compares the "high" and "low" groups of a quantile split.

    Example:
        analyzer = DifferentialExpressionAnalyzer(DEConfig(fdr_threshold=0.01))
        result = analyzer.analyze(expr, groups, provenance)
        print(result.get_top_genes(5))
    """

    def __init__(self, config: DEConfig = None):
        self.config = config or DEConfig()

    def analyze(
        self,
        expr: pd.DataFrame,
        groups: GroupAssignment,
        provenance: DEProvenance,
    ) -> DEResult:
        """
        Run DE between high and low samples.

        Args:
            expr: log2 expression matrix (genes x samples)
            groups: Quantile split of the matrix columns
            provenance: Provenance record for the run

        Returns:
            DEResult with all genes sorted by ascending adjusted p-value
        """
        high_expr, low_expr = self._group_matrices(expr, groups)
        logger.info(
            f"Running {self.config.method} on {len(high_expr):,} genes "
            f"({high_expr.shape[1]} high vs {low_expr.shape[1]} low)"
        )

        if self.config.method == "limma":
            log2fc, ave_expr, t_stat, pvalues = self._run_limma(high_expr, low_expr)
        else:
            log2fc, ave_expr, t_stat, pvalues = self._run_welch(high_expr, low_expr)

        pvalues = np.where(np.isnan(pvalues), 1.0, pvalues)
        t_stat = np.where(np.isnan(t_stat), 0.0, t_stat)
        _, adjusted, _, _ = multipletests(pvalues, method="fdr_bh")

        all_genes = [
            GeneResult(
                gene_symbol=str(gene),
                log2_fold_change=reported(log2fc[i]),
                average_expression=reported(ave_expr[i]),
                t_statistic=reported(t_stat[i]),
                pvalue=reported(pvalues[i]),
                pvalue_adjusted=reported(adjusted[i]),
                direction="up" if log2fc[i] > 0 else "down",
            )
            for i, gene in enumerate(high_expr.index)
        ]
        all_genes.sort(key=lambda g: (g.pvalue_adjusted, g.pvalue, -abs(g.t_statistic)))

        significant = [
            g for g in all_genes
            if g.pvalue_adjusted <= self.config.fdr_threshold
            and abs(g.log2_fold_change) >= self.config.log2fc_threshold
        ]

        result = DEResult(
            provenance=provenance,
            genes_tested=len(all_genes),
            significant=significant,
            all_genes=all_genes,
        )
        logger.info(
            f"{self.config.method} complete: {result.genes_significant} significant "
            f"({result.n_upregulated} up, {result.n_downregulated} down)"
        )
        return result

    def _group_matrices(
        self,
        expr: pd.DataFrame,
        groups: GroupAssignment,
    ) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Split the matrix into high / low sample blocks and drop unusable genes."""
        high = groups.high_samples
        low = groups.low_samples
        min_n = self.config.min_samples_per_group
        if len(high) < min_n or len(low) < min_n:
            raise ValueError(
                f"Each group needs at least {min_n} samples "
                f"(got {len(high)} high, {len(low)} low)"
            )

        high_expr = expr[high].astype(float)
        low_expr = expr[low].astype(float)

        complete = high_expr.notna().all(axis=1) & low_expr.notna().all(axis=1)
        if not complete.all():
            logger.warning(f"Dropping {int((~complete).sum())} genes with missing values")
            high_expr = high_expr[complete]
            low_expr = low_expr[complete]
        if high_expr.empty:
            raise ValueError("No genes left to test")
        return high_expr, low_expr

    def _run_limma(
        self,
        high_expr: pd.DataFrame,
        low_expr: pd.DataFrame,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Two-group linear model: design columns are (intercept, is_high)."""
        values = np.hstack([high_expr.to_numpy(), low_expr.to_numpy()])
        is_high = np.r_[np.ones(high_expr.shape[1]), np.zeros(low_expr.shape[1])]
        design = np.column_stack([np.ones_like(is_high), is_high])

        fit = lm_fit(values, design)
        moderated = ebayes(fit, coef=1)
        logger.debug(
            f"Prior df {moderated.df_prior:.2f}, prior variance {moderated.s2_prior:.4f}"
        )
        return moderated.coefficient, fit.amean, moderated.t, moderated.pvalue

    def _run_welch(
        self,
        high_expr: pd.DataFrame,
        low_expr: pd.DataFrame,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Per-gene Welch t-test on log2 values."""
        high_values = high_expr.to_numpy()
        low_values = low_expr.to_numpy()
        log2fc = high_values.mean(axis=1) - low_values.mean(axis=1)
        ave_expr = np.hstack([high_values, low_values]).mean(axis=1)
        t_stat, pvalues = stats.ttest_ind(high_values, low_values, axis=1, equal_var=False)
        return log2fc, ave_expr, np.asarray(t_stat), np.asarray(pvalues)
