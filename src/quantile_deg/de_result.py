"""
Result dataclasses for quantile-split differential expression with full provenance.

These dataclasses capture all information needed to reproduce and interpret
a run: the cohort, genes and quantiles used for the split, sample ids per
group, statistical methods and thresholds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

# Column order of the DEG table (workbook sheet and DataFrame form)
GENE_COLUMNS = [
    "gene_symbol",
    "log2_fold_change",
    "average_expression",
    "t_statistic",
    "pvalue",
    "pvalue_adjusted",
    "direction",
]

TERM_COLUMNS = [
    "database",
    "term_name",
    "pvalue",
    "pvalue_adjusted",
    "genes",
    "term_id",
    "overlap",
    "odds_ratio",
    "combined_score",
]


@dataclass
class GeneResult:
    """
    Result for a single gene (high vs low group).

    A positive log2 fold change means higher expression in the "high" group.
    """

    gene_symbol: str
    log2_fold_change: float
    average_expression: float
    t_statistic: float
    pvalue: float
    pvalue_adjusted: float  # Benjamini-Hochberg
    direction: str  # "up" | "down"

    @property
    def effect_size(self) -> float:
        """Absolute effect size (|log2FC|)."""
        return abs(self.log2_fold_change)

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in GENE_COLUMNS}

    def __repr__(self) -> str:
        return (
            f"GeneResult({self.gene_symbol}, log2FC={self.log2_fold_change:.2f}, "
            f"t={self.t_statistic:.2f}, p_adj={self.pvalue_adjusted:.2e}, {self.direction})"
        )


@dataclass
class DEProvenance:
    """
    Complete provenance record for a quantile-split DE analysis.
    """

    timestamp: str

    # What was split
    cohort: str
    genes: List[str]
    lower_quantile: float
    upper_quantile: float
    gene_thresholds: Dict[str, List[float]]

    # Sample identifiers (for reproducibility)
    high_sample_ids: List[str]
    low_sample_ids: List[str]
    n_excluded: int

    # Analysis parameters
    test_method: str
    fdr_method: str
    thresholds: Dict[str, float]

    @property
    def n_high(self) -> int:
        return len(self.high_sample_ids)

    @property
    def n_low(self) -> int:
        return len(self.low_sample_ids)

    @classmethod
    def create(
        cls,
        cohort: str,
        genes: List[str],
        lower_quantile: float,
        upper_quantile: float,
        high_sample_ids: List[str],
        low_sample_ids: List[str],
        test_method: str,
        fdr_threshold: float,
        log2fc_threshold: float = 0.0,
        gene_thresholds: Optional[Dict[str, tuple]] = None,
        n_excluded: int = 0,
        fdr_method: str = "fdr_bh",
    ) -> "DEProvenance":
        """Create a provenance record with current timestamp."""
        return cls(
            timestamp=datetime.now().isoformat(),
            cohort=cohort,
            genes=list(genes),
            lower_quantile=lower_quantile,
            upper_quantile=upper_quantile,
            gene_thresholds={g: [float(lo), float(up)] for g, (lo, up) in (gene_thresholds or {}).items()},
            high_sample_ids=list(high_sample_ids),
            low_sample_ids=list(low_sample_ids),
            n_excluded=n_excluded,
            test_method=test_method,
            fdr_method=fdr_method,
            thresholds={
                "fdr": fdr_threshold,
                "log2fc": log2fc_threshold,
            },
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "cohort": self.cohort,
            "split": {
                "genes": self.genes,
                "lower_quantile": self.lower_quantile,
                "upper_quantile": self.upper_quantile,
                "gene_thresholds": self.gene_thresholds,
            },
            "samples": {
                "n_high": self.n_high,
                "n_low": self.n_low,
                "n_excluded": self.n_excluded,
                "high_ids": self.high_sample_ids,
                "low_ids": self.low_sample_ids,
            },
            "methods": {
                "test": self.test_method,
                "fdr": self.fdr_method,
            },
            "thresholds": self.thresholds,
        }


@dataclass
class DEResult:
    """
    Complete differential expression result.

    ``all_genes`` holds every tested gene sorted by ascending adjusted
    p-value; ``significant`` holds the genes passing the thresholds in the
    same order, also split into ``upregulated`` / ``downregulated``.
    """

    provenance: DEProvenance
    genes_tested: int
    significant: List[GeneResult]
    all_genes: List[GeneResult] = field(default_factory=list)

    @property
    def genes_significant(self) -> int:
        return len(self.significant)

    @property
    def upregulated(self) -> List[GeneResult]:
        """Significant genes higher in the "high" group."""
        return [g for g in self.significant if g.direction == "up"]

    @property
    def downregulated(self) -> List[GeneResult]:
        """Significant genes lower in the "high" group."""
        return [g for g in self.significant if g.direction == "down"]

    @property
    def n_upregulated(self) -> int:
        return len(self.upregulated)

    @property
    def n_downregulated(self) -> int:
        return len(self.downregulated)

    @property
    def significant_symbols(self) -> List[str]:
        return [g.gene_symbol for g in self.significant]

    def get_gene(self, symbol: str) -> Optional[GeneResult]:
        """Get result for a specific gene."""
        for gene in self.all_genes or self.significant:
            if gene.gene_symbol == symbol:
                return gene
        return None

    def get_top_genes(self, n: int = 10, direction: str = "both") -> List[GeneResult]:
        """
        Get the first N significant genes (ascending adjusted p-value).

        Args:
            n: Number of genes to return
            direction: "up", "down", or "both"
        """
        if direction == "up":
            genes = self.upregulated
        elif direction == "down":
            genes = self.downregulated
        else:
            genes = self.significant
        return genes[:n]

    def to_dataframe(self, include_all: bool = False) -> pd.DataFrame:
        """Gene table with one row per gene, in ``GENE_COLUMNS`` order."""
        genes = self.all_genes if include_all else self.significant
        return pd.DataFrame([g.to_dict() for g in genes], columns=GENE_COLUMNS)

    @staticmethod
    def genes_from_dataframe(df: pd.DataFrame) -> List[GeneResult]:
        """Rebuild GeneResult objects from a table written by ``to_dataframe``."""
        return [
            GeneResult(
                gene_symbol=str(row["gene_symbol"]),
                log2_fold_change=float(row["log2_fold_change"]),
                average_expression=float(row["average_expression"]),
                t_statistic=float(row["t_statistic"]),
                pvalue=float(row["pvalue"]),
                pvalue_adjusted=float(row["pvalue_adjusted"]),
                direction=str(row["direction"]),
            )
            for _, row in df.iterrows()
        ]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "provenance": self.provenance.to_dict(),
            "summary": {
                "genes_tested": self.genes_tested,
                "genes_significant": self.genes_significant,
                "n_upregulated": self.n_upregulated,
                "n_downregulated": self.n_downregulated,
            },
            "significant": [g.to_dict() for g in self.significant],
        }

    def __repr__(self) -> str:
        return (
            f"DEResult(genes_tested={self.genes_tested}, "
            f"significant={self.genes_significant}, "
            f"up={self.n_upregulated}, down={self.n_downregulated})"
        )


# =============================================================================
# Enrichment Analysis Result Dataclasses
# =============================================================================


@dataclass
class EnrichedTerm:
    """
    A single enriched category (pathway, GO term, ...) from one database.
    """

    database: str  # KEGG_2021_Human, REAC, GO:BP, ...
    term_name: str
    pvalue: float
    pvalue_adjusted: float
    genes: List[str]  # Genes contributing to enrichment
    term_id: Optional[str] = None
    overlap: Optional[str] = None  # "k/n" as reported by the service
    odds_ratio: Optional[float] = None
    combined_score: Optional[float] = None

    @property
    def n_genes(self) -> int:
        return len(self.genes)

    def __repr__(self) -> str:
        return (
            f"EnrichedTerm({self.database}, {self.term_name!r}, "
            f"p_adj={self.pvalue_adjusted:.2e}, genes={self.n_genes})"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "database": self.database,
            "term_name": self.term_name,
            "pvalue": self.pvalue,
            "pvalue_adjusted": self.pvalue_adjusted,
            "genes": self.genes,
            "term_id": self.term_id,
            "overlap": self.overlap,
            "odds_ratio": self.odds_ratio,
            "combined_score": self.combined_score,
        }


@dataclass
class EnrichmentProvenance:
    """
    Provenance record for enrichment analysis.
    """

    backend: str  # "enrichr" | "gprofiler"
    organism: str
    databases: List[str]
    significance_threshold: float
    request_delay: float
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "backend": self.backend,
            "organism": self.organism,
            "databases": self.databases,
            "significance_threshold": self.significance_threshold,
            "request_delay": self.request_delay,
            "timestamp": self.timestamp,
        }


@dataclass
class EnrichmentResult:
    """
    Complete enrichment analysis result.

    ``by_database`` maps each database that produced at least one
    significant term to its terms sorted by adjusted p-value. Databases
    with no significant term are absent.
    """

    provenance: EnrichmentProvenance
    input_genes: List[str]
    by_database: Dict[str, List[EnrichedTerm]] = field(default_factory=dict)

    @property
    def databases(self) -> List[str]:
        return list(self.by_database)

    @property
    def total_terms(self) -> int:
        return sum(len(terms) for terms in self.by_database.values())

    @property
    def is_empty(self) -> bool:
        return self.total_terms == 0

    def get_top_terms(self, database: str, n: int = 10) -> List[EnrichedTerm]:
        return self.by_database.get(database, [])[:n]

    def to_dataframe(self, database: str) -> pd.DataFrame:
        """Terms of one database as a table; genes joined with ";"."""
        rows = []
        for term in self.by_database.get(database, []):
            row = term.to_dict()
            row["genes"] = ";".join(term.genes)
            rows.append(row)
        return pd.DataFrame(rows, columns=TERM_COLUMNS)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "provenance": self.provenance.to_dict(),
            "summary": {
                "n_input_genes": len(self.input_genes),
                "total_significant_terms": self.total_terms,
                "terms_per_database": {db: len(t) for db, t in self.by_database.items()},
            },
            "databases": {
                db: [t.to_dict() for t in terms] for db, terms in self.by_database.items()
            },
        }

    def __repr__(self) -> str:
        return (
            f"EnrichmentResult(total_terms={self.total_terms}, "
            f"databases={self.databases})"
        )
