"""Unit tests for the quantile split."""

import numpy as np
import pandas as pd
import pytest

from quantile_deg.stratify import (
    EXCLUDED,
    HIGH,
    LOW,
    GroupAssignment,
    quantile_split,
    quantile_thresholds,
)


def _make_expression(n_samples=100, seed=0):
    rng = np.random.default_rng(seed)
    samples = [f"S{i:03d}" for i in range(n_samples)]
    return pd.DataFrame(
        rng.normal(6, 1.5, size=(3, n_samples)),
        index=["ESR1", "PGR", "GATA3"],
        columns=samples,
    )


class TestQuantileThresholds:

    def test_linear_interpolation(self):
        lo, up = quantile_thresholds(np.arange(100), 0.25, 0.75)
        assert lo == pytest.approx(24.75)
        assert up == pytest.approx(74.25)

    def test_ignores_nan(self):
        lo, up = quantile_thresholds(np.array([np.nan, 1.0, 2.0, 3.0]), 0.5, 0.5)
        assert lo == up == pytest.approx(2.0)

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            quantile_thresholds(np.array([]), 0.25, 0.75)


class TestQuantileSplit:

    def test_quartile_counts(self):
        expr = pd.DataFrame(
            [np.arange(100, dtype=float)],
            index=["ESR1"],
            columns=[f"S{i}" for i in range(100)],
        )
        groups = quantile_split(expr, "ESR1", 0.25, 0.75)

        assert groups.n_low == 25
        assert groups.n_high == 25
        assert groups.n_excluded == 50
        assert groups.low_samples == [f"S{i}" for i in range(25)]
        assert groups.high_samples == [f"S{i}" for i in range(75, 100)]

    @pytest.mark.parametrize("lower,upper", [
        (0.1, 0.9), (0.25, 0.75), (0.33, 0.34), (0.5, 0.5), (0.01, 0.99), (0.45, 0.8),
    ])
    def test_groups_disjoint_and_complete(self, lower, upper):
        expr = _make_expression()
        groups = quantile_split(expr, ["ESR1", "PGR"], lower, upper)

        assert set(groups.high_samples).isdisjoint(groups.low_samples)
        assert groups.n_high + groups.n_low + groups.n_excluded == expr.shape[1]
        assert set(groups.labels.unique()) <= {HIGH, LOW, EXCLUDED}
        assert list(groups.labels.index) == list(expr.columns)

    def test_strict_inequalities(self):
        expr = _make_expression()
        groups = quantile_split(expr, "ESR1", 0.2, 0.8)
        lo, up = groups.thresholds["ESR1"]

        assert (expr.loc["ESR1", groups.high_samples] > up).all()
        assert (expr.loc["ESR1", groups.low_samples] < lo).all()
        excluded = expr.loc["ESR1", groups.excluded_samples]
        assert ((excluded >= lo) & (excluded <= up)).all()

    def test_multiple_genes_intersection(self):
        expr = _make_expression(n_samples=400)
        single_a = quantile_split(expr, "ESR1", 0.3, 0.7)
        single_b = quantile_split(expr, "PGR", 0.3, 0.7)
        both = quantile_split(expr, ["ESR1", "PGR"], 0.3, 0.7)

        assert set(both.high_samples) == set(single_a.high_samples) & set(single_b.high_samples)
        assert set(both.low_samples) == set(single_a.low_samples) & set(single_b.low_samples)
        assert set(both.thresholds) == {"ESR1", "PGR"}

    def test_missing_gene_raises(self):
        expr = _make_expression()
        with pytest.raises(KeyError, match="NOTAGENE"):
            quantile_split(expr, ["ESR1", "NOTAGENE"])

    def test_mixed_case_symbol_used_as_is(self):
        expr = _make_expression().rename(index={"PGR": "C1orf43"})
        groups = quantile_split(expr, "C1orf43")

        assert groups.genes == ["C1orf43"]
        assert set(groups.thresholds) == {"C1orf43"}

    @pytest.mark.parametrize("requested", ["c1orf43", "C1ORF43", "esr1"])
    def test_symbols_matched_ignoring_case(self, requested):
        expr = _make_expression().rename(index={"PGR": "C1orf43"})
        groups = quantile_split(expr, requested)

        assert groups.genes[0] in expr.index
        assert groups.genes[0].upper() == requested.upper()

    def test_ambiguous_case_match_raises(self):
        expr = _make_expression().rename(index={"PGR": "Esr1"})
        with pytest.raises(KeyError, match="several"):
            quantile_split(expr, "esr1")

    def test_exact_match_preferred_over_case_match(self):
        expr = _make_expression().rename(index={"PGR": "Esr1"})
        groups = quantile_split(expr, "Esr1")
        assert groups.genes == ["Esr1"]

    @pytest.mark.parametrize("lower,upper", [(0.0, 0.5), (0.5, 1.0), (0.8, 0.2), (-0.1, 0.5)])
    def test_invalid_quantiles(self, lower, upper):
        expr = _make_expression()
        with pytest.raises(ValueError):
            quantile_split(expr, "ESR1", lower, upper)

    def test_no_genes(self):
        with pytest.raises(ValueError):
            quantile_split(_make_expression(), [])


class TestGroupAssignment:

    def test_to_frame_with_expression(self):
        expr = _make_expression(n_samples=20)
        groups = quantile_split(expr, "GATA3", 0.25, 0.75)
        frame = groups.to_frame(expr)

        assert list(frame.columns) == ["group", "GATA3"]
        assert frame.index.name == "sample"
        assert frame.loc["S000", "GATA3"] == expr.loc["GATA3", "S000"]

    def test_repr(self):
        labels = pd.Series([HIGH, LOW, EXCLUDED], index=["a", "b", "c"])
        groups = GroupAssignment(labels=labels, genes=["X"], lower_quantile=0.25, upper_quantile=0.75)
        assert "high=1" in repr(groups)
        assert "low=1" in repr(groups)
