"""
Pathway enrichment of the differentially expressed gene list.

Submits gene symbols to a remote over-representation service, one
database (gene-set library) at a time, with a fixed delay between
requests to respect the service's rate limits.

Backends:
- EnrichrBackend: Enrichr via gseapy (default)
- GProfilerBackend: g:Profiler via gprofiler-official

Example:
    from quantile_deg.enrichment import EnrichmentAnalyzer, EnrichmentConfig

    config = EnrichmentConfig(databases=["KEGG_2021_Human", "Reactome_2022"])
    analyzer = EnrichmentAnalyzer(config=config)
    result = analyzer.analyze(de_result)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import pandas as pd

from quantile_deg.config import DEFAULT_ENRICHR_LIBRARIES
from quantile_deg.de_result import (
    DEResult,
    EnrichedTerm,
    EnrichmentProvenance,
    EnrichmentResult,
)

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentConfig:
    """
    Configuration for enrichment analysis.

    Attributes:
        backend: "enrichr" or "gprofiler"
        databases: Gene-set libraries (Enrichr) or sources (g:Profiler) to query
        organism: Organism name understood by the backend
        fdr_threshold: Adjusted p-value cutoff for reported terms
        request_delay: Seconds to wait between consecutive requests
        min_genes: Minimum genes required to run analysis
    """

    backend: str = "enrichr"
    databases: List[str] = field(default_factory=lambda: list(DEFAULT_ENRICHR_LIBRARIES))
    organism: str = "human"
    fdr_threshold: float = 0.05
    request_delay: float = 1.0
    min_genes: int = 5


class EnrichmentBackend(Protocol):
    """Protocol for enrichment analysis backends."""

    name: str

    def analyze(self, genes: List[str], database: str, organism: str) -> List[EnrichedTerm]:
        """
        Run over-representation analysis of ``genes`` against one database.

        Returns:
            All terms reported by the service (unfiltered)
        """
        ...


def _split_genes(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(g) for g in value]
    return [g for g in str(value).split(";") if g]


class EnrichrBackend:
    """
    Enrichment analysis using the Enrichr web service.

    Uses gseapy's ``enrichr`` wrapper; one HTTP submission per library.
    """

    name = "enrichr"

    def __init__(self):
        self._gp = None

    def _get_client(self):
        """Lazy import of gseapy."""
        if self._gp is None:
            import gseapy

            self._gp = gseapy
        return self._gp

    def analyze(self, genes: List[str], database: str, organism: str) -> List[EnrichedTerm]:
        if not genes:
            return []

        gp = self._get_client()
        enr = gp.enrichr(
            gene_list=list(genes),
            gene_sets=database,
            organism=organism,
            outdir=None,
            no_plot=True,
        )
        results = enr.results
        # gseapy leaves a plain list when the service returns no hits
        if not isinstance(results, pd.DataFrame) or results.empty:
            logger.info(f"No Enrichr hits for {database}")
            return []

        terms = []
        for _, row in results.iterrows():
            terms.append(EnrichedTerm(
                database=database,
                term_name=str(row["Term"]),
                pvalue=float(row["P-value"]),
                pvalue_adjusted=float(row["Adjusted P-value"]),
                genes=_split_genes(row.get("Genes")),
                overlap=str(row["Overlap"]) if "Overlap" in row else None,
                odds_ratio=float(row["Odds Ratio"]) if "Odds Ratio" in row else None,
                combined_score=float(row["Combined Score"]) if "Combined Score" in row else None,
            ))
        return terms


class GProfilerBackend:
    """
    Enrichment analysis using g:Profiler API.

    Uses the gprofiler-official package for server-side computation.
    g:Profiler reports FDR-adjusted p-values only, so the raw p-value
    column repeats the adjusted value.
    """

    name = "gprofiler"

    ORGANISMS = {"human": "hsapiens", "mouse": "mmusculus", "rat": "rnorvegicus"}

    def __init__(self):
        self._gp = None

    def _get_client(self):
        """Lazy initialization of g:Profiler client."""
        if self._gp is None:
            from gprofiler import GProfiler

            self._gp = GProfiler(return_dataframe=False)
        return self._gp

    def analyze(self, genes: List[str], database: str, organism: str) -> List[EnrichedTerm]:
        if not genes:
            return []

        gp = self._get_client()
        result = gp.profile(
            organism=self.ORGANISMS.get(organism.lower(), organism),
            query=list(genes),
            sources=[database],
            user_threshold=1.0,
            significance_threshold_method="fdr",
            no_evidences=False,
        )
        if not result:
            return []

        terms = []
        for r in result:
            terms.append(EnrichedTerm(
                database=database,
                term_name=r["name"],
                pvalue=r["p_value"],
                pvalue_adjusted=r["p_value"],
                genes=self._intersection_genes(r.get("intersections", []), genes),
                term_id=r.get("native"),
                overlap=f"{r.get('intersection_size', 0)}/{r.get('term_size', 0)}",
            ))
        return terms

    @staticmethod
    def _intersection_genes(intersections, genes: List[str]) -> List[str]:
        """Gene symbols from g:Profiler evidence lists (aligned with the query)."""
        if intersections and all(isinstance(i, str) for i in intersections):
            return list(intersections)
        if len(intersections) == len(genes):
            return [g for g, evidence in zip(genes, intersections) if evidence]
        return []


def make_backend(name: str) -> EnrichmentBackend:
    """Backend instance for a configured backend name."""
    if name == "enrichr":
        return EnrichrBackend()
    if name == "gprofiler":
        return GProfilerBackend()
    raise ValueError(f"Unknown enrichment backend: {name!r}")


class EnrichmentAnalyzer:
    """
    Gene set enrichment analyzer.

    Queries each configured database in turn for the significant genes of a
    DE result. Only databases with at least one term at or below the FDR
    cutoff appear in the result.
    """

    def __init__(
        self,
        config: Optional[EnrichmentConfig] = None,
        backend: Optional[EnrichmentBackend] = None,
    ):
        self.config = config or EnrichmentConfig()
        self.backend = backend or make_backend(self.config.backend)

    def analyze(self, de_result: DEResult) -> EnrichmentResult:
        """Run enrichment on the significant genes of ``de_result``."""
        return self.analyze_genes(de_result.significant_symbols)

    def analyze_genes(self, genes: List[str]) -> EnrichmentResult:
        """
        Run enrichment on a gene list against every configured database.

        Args:
            genes: Gene symbols

        Returns:
            EnrichmentResult keyed by database
        """
        provenance = EnrichmentProvenance(
            backend=getattr(self.backend, "name", self.config.backend),
            organism=self.config.organism,
            databases=list(self.config.databases),
            significance_threshold=self.config.fdr_threshold,
            request_delay=self.config.request_delay,
        )
        result = EnrichmentResult(provenance=provenance, input_genes=list(genes))

        if len(genes) < self.config.min_genes:
            logger.warning(
                f"Only {len(genes)} genes (< {self.config.min_genes}); skipping enrichment"
            )
            return result

        for i, database in enumerate(self.config.databases):
            if i > 0 and self.config.request_delay > 0:
                time.sleep(self.config.request_delay)

            logger.info(f"Querying {provenance.backend} database {database} with {len(genes)} genes")
            terms = self.backend.analyze(genes, database, self.config.organism)
            significant = sorted(
                (t for t in terms if t.pvalue_adjusted <= self.config.fdr_threshold),
                key=lambda t: (t.pvalue_adjusted, t.pvalue),
            )
            if not significant:
                logger.info(f"  {database}: no significant terms")
                continue
            logger.info(f"  {database}: {len(significant)} significant terms")
            result.by_database[database] = significant

        return result
