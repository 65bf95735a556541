"""
Linear models with empirical-Bayes moderated t statistics.

Implements the gene-wise linear model and variance moderation of
Smyth (2004), "Linear models and empirical Bayes methods for assessing
differential expression in microarray experiments":

- ``lm_fit``: ordinary least squares per gene against a shared design
- ``fit_f_dist``: moment estimate of the scaled inverse-chi-square prior
  (prior degrees of freedom d0 and prior variance s0^2)
- ``squeeze_var``: posterior (moderated) variances
- ``ebayes``: moderated t statistics and two-sided p-values

All genes share the design, so every step is vectorised over genes.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy import stats
from scipy.special import digamma, polygamma


@dataclass
class LinearModelFit:
    """Result of ``lm_fit`` for a genes x samples matrix."""

    coefficients: np.ndarray  # genes x p
    stdev_unscaled: np.ndarray  # genes x p
    sigma2: np.ndarray  # genes, residual variance
    df_residual: np.ndarray  # genes
    amean: np.ndarray  # genes, average expression over all samples


@dataclass
class ModeratedStats:
    """Moderated t statistics for one coefficient."""

    coefficient: np.ndarray
    t: np.ndarray
    pvalue: np.ndarray
    df_total: np.ndarray
    s2_post: np.ndarray
    df_prior: float
    s2_prior: float


def lm_fit(expr: np.ndarray, design: np.ndarray) -> LinearModelFit:
    """
    Fit ``expr[g, :] ~ design`` by least squares for every gene g.

    Args:
        expr: Expression values (genes x samples), no missing values
        design: Design matrix (samples x p) of full column rank

    Returns:
        LinearModelFit
    """
    expr = np.asarray(expr, dtype=float)
    design = np.asarray(design, dtype=float)
    if expr.ndim != 2 or design.ndim != 2:
        raise ValueError("expr and design must be two-dimensional")
    n_genes, n_samples = expr.shape
    if design.shape[0] != n_samples:
        raise ValueError(
            f"Design has {design.shape[0]} rows but expression has {n_samples} samples"
        )
    if np.isnan(expr).any():
        raise ValueError("Expression matrix contains missing values")

    n_coef = design.shape[1]
    if np.linalg.matrix_rank(design) < n_coef:
        raise ValueError("Design matrix is not of full column rank")
    df = n_samples - n_coef
    if df < 1:
        raise ValueError("No residual degrees of freedom (need more samples than coefficients)")

    xtx_inv = np.linalg.inv(design.T @ design)
    coefficients = expr @ design @ xtx_inv
    residuals = expr - coefficients @ design.T
    sigma2 = (residuals ** 2).sum(axis=1) / df
    stdev_unscaled = np.tile(np.sqrt(np.diag(xtx_inv)), (n_genes, 1))

    return LinearModelFit(
        coefficients=coefficients,
        stdev_unscaled=stdev_unscaled,
        sigma2=sigma2,
        df_residual=np.full(n_genes, float(df)),
        amean=expr.mean(axis=1),
    )


def trigamma_inverse(x: float) -> float:
    """Solve trigamma(y) = x for y by Newton iteration."""
    if x > 1e7:
        return 1.0 / np.sqrt(x)
    if x < 1e-6:
        return 1.0 / x
    y = 0.5 + 1.0 / x
    for _ in range(50):
        tri = polygamma(1, y)
        dif = tri * (1.0 - tri / x) / polygamma(2, y)
        y += dif
        if -dif / y < 1e-8:
            break
    return float(y)


def fit_f_dist(s2: np.ndarray, df1: np.ndarray) -> Tuple[float, float]:
    """
    Moment estimation of the prior for gene-wise variances.

    Args:
        s2: Residual variances
        df1: Residual degrees of freedom (per gene)

    Returns:
        Tuple of (prior variance s0^2, prior degrees of freedom d0).
        d0 is infinite when the variances are no more spread out than
        sampling error alone would produce.
    """
    s2 = np.asarray(s2, dtype=float)
    df1 = np.broadcast_to(np.asarray(df1, dtype=float), s2.shape)
    n = s2.size
    if n == 0:
        raise ValueError("No variances to fit")

    s2 = np.maximum(s2, 0.0)
    m = np.median(s2)
    if m == 0:
        m = 1.0
    s2 = np.maximum(s2, 1e-5 * m)

    if n < 2:
        return float(s2.mean()), 0.0

    z = np.log(s2)
    e = z - digamma(df1 / 2.0) + np.log(df1 / 2.0)
    emean = e.mean()
    evar = ((e - emean) ** 2).sum() / (n - 1)
    evar -= np.mean(polygamma(1, df1 / 2.0))

    if evar > 0:
        df2 = 2.0 * trigamma_inverse(evar)
        s20 = float(np.exp(emean + digamma(df2 / 2.0) - np.log(df2 / 2.0)))
    else:
        df2 = np.inf
        s20 = float(s2.mean())
    return s20, float(df2)


def squeeze_var(s2: np.ndarray, df: np.ndarray) -> Tuple[np.ndarray, float, float]:
    """
    Shrink gene-wise variances toward the fitted prior.

    Returns:
        Tuple of (posterior variances, prior variance s0^2, prior df d0)
    """
    s2 = np.asarray(s2, dtype=float)
    df = np.broadcast_to(np.asarray(df, dtype=float), s2.shape)
    s20, d0 = fit_f_dist(s2, df)
    if np.isinf(d0):
        return np.full(s2.shape, s20), s20, d0
    s2_post = (d0 * s20 + df * s2) / (d0 + df)
    return s2_post, s20, d0


def ebayes(fit: LinearModelFit, coef: int = 1) -> ModeratedStats:
    """
    Moderated t statistics for one coefficient of a linear model fit.

    Args:
        fit: Output of ``lm_fit``
        coef: Index of the coefficient to test (column of the design)

    Returns:
        ModeratedStats with two-sided p-values
    """
    s2_post, s20, d0 = squeeze_var(fit.sigma2, fit.df_residual)
    df_pooled = fit.df_residual.sum()
    df_total = np.minimum(fit.df_residual + d0, df_pooled)

    beta = fit.coefficients[:, coef]
    t = beta / fit.stdev_unscaled[:, coef] / np.sqrt(s2_post)
    pvalue = 2.0 * stats.t.sf(np.abs(t), df_total)

    return ModeratedStats(
        coefficient=beta,
        t=t,
        pvalue=pvalue,
        df_total=df_total,
        s2_post=s2_post,
        df_prior=d0,
        s2_prior=s20,
    )
