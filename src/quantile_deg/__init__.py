"""
quantile-deg: Gene-of-interest quantile split, differential expression
and pathway enrichment for TCGA expression cohorts.

## Workflow

```python
from quantile_deg import AnalysisConfig, run_analysis

config = AnalysisConfig(cohort="BRCA", genes=["ESR1"], upper_quantile=0.75, lower_quantile=0.25)
result = run_analysis(config)
print(result.de_result.get_top_genes(10))
print(result.outputs["workbook"])
```

## In-memory analysis

```python
from quantile_deg import analyze_expression

result = analyze_expression(log2_expr, config, run_enrichment=False)
```

## Command Line Interface

```bash
quantile-deg run --cohort BRCA --gene ESR1 --upper 0.75 --lower 0.25
quantile-deg fetch --cohort LUAD
```
"""

from quantile_deg.config import AnalysisConfig
from quantile_deg.de_analysis import DEConfig, DifferentialExpressionAnalyzer
from quantile_deg.de_result import (
    DEProvenance,
    DEResult,
    GeneResult,
    EnrichedTerm,
    EnrichmentProvenance,
    EnrichmentResult,
)
from quantile_deg.enrichment import (
    EnrichmentAnalyzer,
    EnrichmentConfig,
    EnrichrBackend,
    GProfilerBackend,
)
from quantile_deg.pipeline import AnalysisResult, analyze_expression, run_analysis
from quantile_deg.report import ReportGenerator, read_workbook
from quantile_deg.stratify import GroupAssignment, quantile_split

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "AnalysisConfig",
    # Quantile split
    "GroupAssignment",
    "quantile_split",
    # DE
    "DEConfig",
    "DifferentialExpressionAnalyzer",
    "DEProvenance",
    "DEResult",
    "GeneResult",
    # Enrichment
    "EnrichedTerm",
    "EnrichmentProvenance",
    "EnrichmentResult",
    "EnrichmentAnalyzer",
    "EnrichmentConfig",
    "EnrichrBackend",
    "GProfilerBackend",
    # Reports
    "ReportGenerator",
    "read_workbook",
    # Pipeline
    "AnalysisResult",
    "analyze_expression",
    "run_analysis",
]
