"""
Unit tests for differential expression between quantile groups.

Synthetic matrices only; no network or cohort data needed.
"""

import numpy as np
import pandas as pd
import pytest

from quantile_deg.de_analysis import DEConfig, DifferentialExpressionAnalyzer
from quantile_deg.de_result import DEProvenance, DEResult, GeneResult
from quantile_deg.stratify import EXCLUDED, HIGH, LOW, GroupAssignment


def _make_provenance(groups, **overrides):
    defaults = dict(
        cohort="TEST",
        genes=["MARKER"],
        lower_quantile=0.25,
        upper_quantile=0.75,
        high_sample_ids=groups.high_samples,
        low_sample_ids=groups.low_samples,
        test_method="limma",
        fdr_threshold=0.05,
    )
    defaults.update(overrides)
    return DEProvenance.create(**defaults)


@pytest.fixture
def planted_data():
    """200 noise genes plus TARGET, 3 log2 units higher in the high group."""
    rng = np.random.default_rng(42)
    n_genes, n_high, n_low, n_excl = 200, 20, 20, 10
    samples = [f"S{i:02d}" for i in range(n_high + n_low + n_excl)]
    genes = [f"GENE{i}" for i in range(n_genes)] + ["TARGET"]

    values = rng.normal(6.0, 0.5, size=(len(genes), len(samples)))
    values[-1, :n_high] += 3.0
    expr = pd.DataFrame(values, index=genes, columns=samples)

    labels = pd.Series(
        [HIGH] * n_high + [LOW] * n_low + [EXCLUDED] * n_excl,
        index=samples,
    )
    groups = GroupAssignment(labels=labels, genes=["MARKER"], lower_quantile=0.25, upper_quantile=0.75)
    return expr, groups


class TestDEConfig:

    def test_defaults(self):
        config = DEConfig()
        assert config.method == "limma"
        assert config.fdr_threshold == 0.05

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            DEConfig(method="deseq2")


class TestDifferentialExpression:

    def test_planted_gene_is_top_hit(self, planted_data):
        expr, groups = planted_data
        result = DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))

        top = result.all_genes[0]
        assert top.gene_symbol == "TARGET"
        assert top.direction == "up"
        assert top.log2_fold_change == pytest.approx(3.0, abs=0.5)
        assert top.t_statistic > 10
        assert result.significant[0].gene_symbol == "TARGET"
        assert result.genes_tested == 201

    def test_sorted_by_adjusted_pvalue(self, planted_data):
        expr, groups = planted_data
        result = DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))

        adjusted = [g.pvalue_adjusted for g in result.all_genes]
        assert adjusted == sorted(adjusted)
        sig_adjusted = [g.pvalue_adjusted for g in result.significant]
        assert sig_adjusted == sorted(sig_adjusted)

    @pytest.mark.parametrize("cutoff", [0.001, 0.05, 0.2])
    def test_significant_within_cutoff(self, planted_data, cutoff):
        expr, groups = planted_data
        analyzer = DifferentialExpressionAnalyzer(DEConfig(fdr_threshold=cutoff))
        result = analyzer.analyze(expr, groups, _make_provenance(groups, fdr_threshold=cutoff))

        assert all(g.pvalue_adjusted <= cutoff for g in result.significant)
        expected = [g for g in result.all_genes if g.pvalue_adjusted <= cutoff]
        assert result.significant == expected

    def test_log2fc_threshold(self, planted_data):
        expr, groups = planted_data
        analyzer = DifferentialExpressionAnalyzer(DEConfig(fdr_threshold=1.0, log2fc_threshold=1.0))
        result = analyzer.analyze(expr, groups, _make_provenance(groups))

        assert [g.gene_symbol for g in result.significant] == ["TARGET"]

    def test_average_expression_uses_both_groups(self, planted_data):
        expr, groups = planted_data
        result = DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))

        gene = result.get_gene("GENE0")
        both = expr.loc["GENE0", groups.high_samples + groups.low_samples]
        assert gene.average_expression == pytest.approx(both.mean())

    def test_downregulated_direction(self, planted_data):
        expr, groups = planted_data
        expr = expr.copy()
        expr.loc["TARGET", groups.high_samples] -= 6.0
        result = DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))

        assert result.all_genes[0].gene_symbol == "TARGET"
        assert result.all_genes[0].direction == "down"
        assert "TARGET" in [g.gene_symbol for g in result.downregulated]

    def test_welch_method(self, planted_data):
        expr, groups = planted_data
        analyzer = DifferentialExpressionAnalyzer(DEConfig(method="welch_t"))
        result = analyzer.analyze(expr, groups, _make_provenance(groups, test_method="welch_t"))

        assert result.all_genes[0].gene_symbol == "TARGET"
        assert all(0 <= g.pvalue <= 1 for g in result.all_genes)

    def test_genes_with_missing_values_dropped(self, planted_data):
        expr, groups = planted_data
        expr = expr.copy()
        expr.loc["GENE5", groups.high_samples[0]] = np.nan
        result = DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))

        assert result.genes_tested == 200
        assert result.get_gene("GENE5") is None

    def test_too_few_samples(self, planted_data):
        expr, _ = planted_data
        labels = pd.Series(EXCLUDED, index=expr.columns)
        labels.iloc[0] = HIGH
        labels.iloc[1:5] = LOW
        groups = GroupAssignment(labels=labels, genes=["MARKER"], lower_quantile=0.25, upper_quantile=0.75)

        with pytest.raises(ValueError, match="at least 2 samples"):
            DifferentialExpressionAnalyzer().analyze(expr, groups, _make_provenance(groups))


class TestDEResult:

    def _gene(self, symbol, padj, lfc=1.0):
        return GeneResult(
            gene_symbol=symbol,
            log2_fold_change=lfc,
            average_expression=5.0,
            t_statistic=4.0 if lfc > 0 else -4.0,
            pvalue=padj / 10,
            pvalue_adjusted=padj,
            direction="up" if lfc > 0 else "down",
        )

    def test_direction_lists(self):
        labels = pd.Series([HIGH, LOW], index=["a", "b"])
        groups = GroupAssignment(labels=labels, genes=["X"], lower_quantile=0.25, upper_quantile=0.75)
        genes = [self._gene("A", 0.001), self._gene("B", 0.01, lfc=-2.0), self._gene("C", 0.02)]
        result = DEResult(
            provenance=_make_provenance(groups),
            genes_tested=100,
            significant=genes,
            all_genes=genes,
        )

        assert [g.gene_symbol for g in result.upregulated] == ["A", "C"]
        assert [g.gene_symbol for g in result.downregulated] == ["B"]
        assert result.get_top_genes(2) == genes[:2]
        assert result.significant_symbols == ["A", "B", "C"]
        assert result.to_dict()["summary"]["genes_significant"] == 3

    def test_dataframe_columns(self):
        labels = pd.Series([HIGH, LOW], index=["a", "b"])
        groups = GroupAssignment(labels=labels, genes=["X"], lower_quantile=0.25, upper_quantile=0.75)
        result = DEResult(
            provenance=_make_provenance(groups),
            genes_tested=1,
            significant=[self._gene("A", 0.001)],
        )
        df = result.to_dataframe()

        assert list(df.columns) == [
            "gene_symbol", "log2_fold_change", "average_expression",
            "t_statistic", "pvalue", "pvalue_adjusted", "direction",
        ]
        assert DEResult.genes_from_dataframe(df) == result.significant
