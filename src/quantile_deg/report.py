"""
Report generation for quantile-split DE and enrichment results.

Supports multiple output formats:
- Excel workbook: one sheet per result type (openpyxl)
- JSON: Full provenance and results for programmatic use
- Console: Human-readable summary
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd
from openpyxl.drawing.image import Image

from quantile_deg.de_result import DEResult, EnrichmentResult
from quantile_deg.stratify import GroupAssignment

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "Summary"
DEG_SHEET = "DEG"
GROUPS_SHEET = "Groups"
PATHWAY_SHEET = "Pathway"
RESERVED_SHEETS = {SUMMARY_SHEET, DEG_SHEET, GROUPS_SHEET, PATHWAY_SHEET}

MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def sheet_name_for(database: str, taken: set) -> str:
    """Excel-safe, unique sheet name (at most 31 characters) for a database."""
    base = _INVALID_SHEET_CHARS.sub("_", database).strip("'") or "Sheet"
    name = base[:MAX_SHEET_NAME]
    counter = 2
    while name in taken:
        suffix = f"_{counter}"
        name = base[: MAX_SHEET_NAME - len(suffix)] + suffix
        counter += 1
    taken.add(name)
    return name


class ReportGenerator:
    """
    Generates reports from DE and enrichment results.

    Example:
        generator = ReportGenerator()
        generator.write_workbook("out/BRCA_ESR1.xlsx", de_result, enrichment, groups)
        generator.print_summary(de_result, enrichment)
    """

    def summary_frame(
        self,
        de_result: DEResult,
        enrichment: Optional[EnrichmentResult] = None,
    ) -> pd.DataFrame:
        """Key/value table describing the run."""
        prov = de_result.provenance
        rows = [
            ("cohort", prov.cohort),
            ("genes", ", ".join(prov.genes)),
            ("lower_quantile", prov.lower_quantile),
            ("upper_quantile", prov.upper_quantile),
            ("n_high", prov.n_high),
            ("n_low", prov.n_low),
            ("n_excluded", prov.n_excluded),
            ("test_method", prov.test_method),
            ("fdr_method", prov.fdr_method),
            ("fdr_threshold", prov.thresholds.get("fdr")),
            ("log2fc_threshold", prov.thresholds.get("log2fc")),
            ("genes_tested", de_result.genes_tested),
            ("genes_significant", de_result.genes_significant),
            ("n_upregulated", de_result.n_upregulated),
            ("n_downregulated", de_result.n_downregulated),
            ("timestamp", prov.timestamp),
        ]
        for gene, (lo, up) in prov.gene_thresholds.items():
            rows.append((f"{gene}_thresholds", f"{lo:.4f} / {up:.4f}"))
        if enrichment is not None:
            rows.append(("enrichment_backend", enrichment.provenance.backend))
            rows.append(("enrichment_fdr", enrichment.provenance.significance_threshold))
            for db in enrichment.provenance.databases:
                rows.append((f"terms_{db}", len(enrichment.by_database.get(db, []))))
        return pd.DataFrame(
            {"field": [r[0] for r in rows], "value": [str(r[1]) for r in rows]}
        )

    def write_workbook(
        self,
        path: Union[str, Path],
        de_result: DEResult,
        enrichment: Optional[EnrichmentResult] = None,
        groups: Optional[GroupAssignment] = None,
        pathway_image: Optional[Union[str, Path]] = None,
    ) -> Dict[str, str]:
        """
        Write results to an Excel workbook.

        Sheets: Summary, DEG, Groups (when ``groups`` is given), one sheet
        per database with significant terms, and Pathway (embedded image)
        when ``pathway_image`` is given.

        Args:
            path: Output .xlsx path
            de_result: DE result (significant genes are written)
            enrichment: Optional enrichment result
            groups: Optional sample group assignment
            pathway_image: Optional pre-generated diagram (PNG/JPEG)

        Returns:
            Mapping of database name to sheet name
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        taken = set(RESERVED_SHEETS)
        database_sheets = {}

        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            self.summary_frame(de_result, enrichment).to_excel(
                writer, sheet_name=SUMMARY_SHEET, index=False
            )
            de_result.to_dataframe().to_excel(writer, sheet_name=DEG_SHEET, index=False)

            if groups is not None:
                groups.to_frame().reset_index().to_excel(
                    writer, sheet_name=GROUPS_SHEET, index=False
                )

            if enrichment is not None:
                for database, terms in enrichment.by_database.items():
                    if not terms:
                        continue
                    sheet = sheet_name_for(database, taken)
                    enrichment.to_dataframe(database).to_excel(
                        writer, sheet_name=sheet, index=False
                    )
                    database_sheets[database] = sheet

            if pathway_image is not None:
                worksheet = writer.book.create_sheet(PATHWAY_SHEET)
                worksheet.add_image(Image(str(pathway_image)), "A1")

        logger.info(f"Wrote workbook {path} ({len(database_sheets)} enrichment sheets)")
        return database_sheets

    def to_json(
        self,
        path: Union[str, Path],
        de_result: DEResult,
        enrichment: Optional[EnrichmentResult] = None,
        indent: int = 2,
    ) -> None:
        """
        Write full results to JSON file.

        Args:
            path: Output file path
            de_result: DE result
            enrichment: Optional enrichment result
            indent: JSON indentation level
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        combined = de_result.to_dict()
        if enrichment is not None:
            combined["enrichment"] = enrichment.to_dict()

        with open(path, "w") as f:
            json.dump(combined, f, indent=indent)

    def to_console_summary(
        self,
        de_result: DEResult,
        enrichment: Optional[EnrichmentResult] = None,
        top_n: int = 10,
    ) -> str:
        """
        Generate human-readable console summary.

        Args:
            de_result: DE result
            enrichment: Optional enrichment result
            top_n: Number of genes (and terms per database) to show

        Returns:
            Formatted string report
        """
        prov = de_result.provenance
        lines = []

        lines.append("=" * 70)
        lines.append("QUANTILE-SPLIT DIFFERENTIAL EXPRESSION")
        lines.append("=" * 70)
        lines.append("")
        lines.append("SPLIT")
        lines.append(f"  Cohort: {prov.cohort}")
        lines.append(f"  Genes: {', '.join(prov.genes)}")
        lines.append(f"  Quantiles: low < {prov.lower_quantile}, high > {prov.upper_quantile}")
        lines.append(f"  Samples: {prov.n_high} high, {prov.n_low} low, {prov.n_excluded} excluded")
        lines.append("")
        lines.append("METHODS")
        lines.append(f"  Statistical test: {prov.test_method}")
        lines.append(f"  FDR correction: {prov.fdr_method}")
        lines.append(f"  FDR threshold: {prov.thresholds.get('fdr')}")

        lines.append("")
        lines.append("-" * 70)
        lines.append("SUMMARY")
        lines.append("-" * 70)
        lines.append(f"  Genes tested: {de_result.genes_tested:,}")
        lines.append(f"  Genes significant: {de_result.genes_significant:,}")
        lines.append(f"  Up in high group: {de_result.n_upregulated:,}")
        lines.append(f"  Down in high group: {de_result.n_downregulated:,}")

        top = de_result.get_top_genes(top_n)
        if top:
            lines.append("")
            lines.append("-" * 70)
            lines.append(f"TOP {len(top)} GENES")
            lines.append("-" * 70)
            lines.append(f"  {'Gene':<12} {'Log2FC':>8} {'AveExpr':>8} {'t':>8} {'P-adj':>10}")
            lines.append("  " + "-" * 50)
            for gene in top:
                lines.append(
                    f"  {gene.gene_symbol:<12} {gene.log2_fold_change:>8.2f} "
                    f"{gene.average_expression:>8.2f} {gene.t_statistic:>8.2f} "
                    f"{gene.pvalue_adjusted:>10.2e}"
                )

        if enrichment is not None:
            lines.append("")
            lines.append(self.format_enrichment_summary(enrichment, top_n=top_n))

        lines.append("")
        lines.append("=" * 70)
        return "\n".join(lines)

    def format_enrichment_summary(self, enrichment: EnrichmentResult, top_n: int = 10) -> str:
        """Top terms per database as text."""
        prov = enrichment.provenance
        lines = []
        lines.append("-" * 70)
        lines.append("ENRICHMENT ANALYSIS")
        lines.append("-" * 70)
        lines.append(f"  Backend: {prov.backend}")
        lines.append(f"  Input genes: {len(enrichment.input_genes)}")
        lines.append(f"  Total significant terms: {enrichment.total_terms}")

        for database in enrichment.databases:
            terms = enrichment.get_top_terms(database, top_n)
            lines.append("")
            lines.append(f"  {database} (top {len(terms)})")
            for term in terms:
                name = term.term_name[:50] + "..." if len(term.term_name) > 50 else term.term_name
                lines.append(f"    {term.pvalue_adjusted:>10.2e} {term.n_genes:>4}  {name}")
        return "\n".join(lines)

    def print_summary(
        self,
        de_result: DEResult,
        enrichment: Optional[EnrichmentResult] = None,
        top_n: int = 10,
    ) -> None:
        """Print human-readable summary to stdout."""
        print(self.to_console_summary(de_result, enrichment, top_n))


def read_workbook(path: Union[str, Path]) -> Dict[str, pd.DataFrame]:
    """
    Read every sheet of a workbook written by ``ReportGenerator.write_workbook``.

    Text such as "NA" is kept as-is; only empty cells become missing.
    """
    return pd.read_excel(
        path,
        sheet_name=None,
        engine="openpyxl",
        keep_default_na=False,
        na_values=[""],
    )
