"""
Quantile-split analysis pipeline.

Sequence: load/cache cohort → filter clinical variables → primary tumor
samples → align samples → log2 → quantile split → differential
expression → pathway enrichment → workbook / JSON / summary.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from quantile_deg.config import AnalysisConfig
from quantile_deg.de_analysis import DEConfig, DifferentialExpressionAnalyzer
from quantile_deg.de_result import DEProvenance, DEResult, EnrichmentResult
from quantile_deg.enrichment import EnrichmentAnalyzer, EnrichmentConfig
from quantile_deg.preprocess import (
    align_samples,
    clean_expression,
    filter_clinical,
    log2_transform,
    select_primary_tumor,
)
from quantile_deg.report import ReportGenerator
from quantile_deg.stratify import GroupAssignment, quantile_split
from quantile_deg.xena import XenaClient, load_cohort

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything produced by one run."""

    config: AnalysisConfig
    groups: GroupAssignment
    de_result: DEResult
    enrichment: Optional[EnrichmentResult] = None
    clinical: Optional[pd.DataFrame] = None
    outputs: Dict[str, Path] = field(default_factory=dict)


def build_enrichment_analyzer(config: AnalysisConfig) -> EnrichmentAnalyzer:
    """Enrichment analyzer configured from the run configuration."""
    return EnrichmentAnalyzer(
        config=EnrichmentConfig(
            backend=config.enrichment_backend,
            databases=config.libraries,
            fdr_threshold=config.enrichment_fdr,
            request_delay=config.request_delay,
        )
    )


def analyze_expression(
    expr: pd.DataFrame,
    config: AnalysisConfig,
    enrichment_analyzer: Optional[EnrichmentAnalyzer] = None,
    run_enrichment: bool = True,
) -> AnalysisResult:
    """
    Quantile split, DE and enrichment on a prepared log2 matrix.

    Args:
        expr: log2 expression matrix (genes x samples)
        config: Run configuration
        enrichment_analyzer: Analyzer to use (built from ``config`` if None)
        run_enrichment: Set False to skip the enrichment step

    Returns:
        AnalysisResult without output paths
    """
    config.validate()

    groups = quantile_split(
        expr,
        config.genes,
        lower_quantile=config.lower_quantile,
        upper_quantile=config.upper_quantile,
    )

    de_config = DEConfig(
        fdr_threshold=config.pvalue_cutoff,
        log2fc_threshold=config.log2fc_threshold,
    )
    provenance = DEProvenance.create(
        cohort=config.cohort,
        genes=groups.genes,
        lower_quantile=config.lower_quantile,
        upper_quantile=config.upper_quantile,
        high_sample_ids=groups.high_samples,
        low_sample_ids=groups.low_samples,
        test_method=de_config.method,
        fdr_threshold=de_config.fdr_threshold,
        log2fc_threshold=de_config.log2fc_threshold,
        gene_thresholds=groups.thresholds,
        n_excluded=groups.n_excluded,
    )
    de_result = DifferentialExpressionAnalyzer(de_config).analyze(expr, groups, provenance)

    enrichment = None
    if run_enrichment:
        if de_result.genes_significant == 0:
            logger.warning("No significant genes; enrichment skipped")
        else:
            analyzer = enrichment_analyzer or build_enrichment_analyzer(config)
            enrichment = analyzer.analyze(de_result)

    return AnalysisResult(
        config=config,
        groups=groups,
        de_result=de_result,
        enrichment=enrichment,
    )


def prepare_cohort(
    expression: pd.DataFrame,
    clinical: pd.DataFrame,
    config: AnalysisConfig,
):
    """Clean, filter and align raw cohort tables; returns (log2 expression, clinical)."""
    expression = clean_expression(expression)
    if config.primary_tumor_only:
        expression = select_primary_tumor(expression)
    clinical = filter_clinical(clinical, max_missing_fraction=config.max_missing_fraction)
    expression, clinical = align_samples(expression, clinical)
    expression = log2_transform(expression)
    return expression, clinical


def write_outputs(result: AnalysisResult, reporter: Optional[ReportGenerator] = None) -> Dict[str, Path]:
    """Write the workbook and JSON record for a finished analysis."""
    reporter = reporter or ReportGenerator()
    config = result.config
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    workbook = output_dir / f"{config.run_name}.xlsx"
    reporter.write_workbook(
        workbook,
        result.de_result,
        enrichment=result.enrichment,
        groups=result.groups,
        pathway_image=config.pathway_image,
    )
    json_path = output_dir / f"{config.run_name}.json"
    reporter.to_json(json_path, result.de_result, result.enrichment)

    result.outputs = {"workbook": workbook, "json": json_path}
    return result.outputs


def run_analysis(
    config: AnalysisConfig,
    client: Optional[XenaClient] = None,
    enrichment_analyzer: Optional[EnrichmentAnalyzer] = None,
    run_enrichment: bool = True,
    refresh: bool = False,
) -> AnalysisResult:
    """
    Run the full workflow for one cohort and gene set.

    Args:
        config: Run configuration
        client: Xena client used on cache miss
        enrichment_analyzer: Optional pre-built enrichment analyzer
        run_enrichment: Set False to skip enrichment
        refresh: Re-download cohort data even when cached

    Returns:
        AnalysisResult with output paths filled in
    """
    config.validate()
    logger.info(f"Analysis {config.run_name}: cohort {config.cohort}, genes {config.genes}")

    expression, clinical = load_cohort(
        config.cohort, config.data_dir, client=client, refresh=refresh
    )
    expression, clinical = prepare_cohort(expression, clinical, config)

    result = analyze_expression(
        expression,
        config,
        enrichment_analyzer=enrichment_analyzer,
        run_enrichment=run_enrichment,
    )
    result.clinical = clinical
    write_outputs(result)
    return result
