from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import click

from quantile_deg.config import AnalysisConfig
from quantile_deg.pipeline import run_analysis
from quantile_deg.report import ReportGenerator
from quantile_deg.xena import load_cohort


def _build_config(
    config_path: Optional[Path],
    cohort: Optional[str],
    genes: Iterable[str],
    upper: Optional[float],
    lower: Optional[float],
    pvalue: Optional[float],
    log2fc: Optional[float],
    fdr: Optional[float],
    top_n: Optional[int],
    backend: Optional[str],
    libraries: Iterable[str],
    delay: Optional[float],
    data_dir: Optional[Path],
    output_dir: Optional[Path],
    pathway_image: Optional[Path],
    all_samples: bool,
) -> AnalysisConfig:
    """Layer .env, JSON config and command-line options (highest precedence)."""
    config = AnalysisConfig.from_env()
    if config_path is not None:
        config = AnalysisConfig.from_json(config_path, base=config)
    config = config.replace(
        cohort=cohort,
        genes=list(genes) or None,
        upper_quantile=upper,
        lower_quantile=lower,
        pvalue_cutoff=pvalue,
        log2fc_threshold=log2fc,
        enrichment_fdr=fdr,
        top_n=top_n,
        enrichment_backend=backend,
        enrichment_libraries=list(libraries) or None,
        request_delay=delay,
        data_dir=str(data_dir) if data_dir else None,
        output_dir=str(output_dir) if output_dir else None,
        pathway_image=str(pathway_image) if pathway_image else None,
    )
    if all_samples:
        config = config.replace(primary_tumor_only=False)
    return config


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """Quantile-split differential expression and pathway enrichment for TCGA cohorts."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command("run")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with analysis parameters (overridden by options below).",
)
@click.option("--cohort", help="TCGA cohort code, e.g. BRCA.")
@click.option(
    "--gene",
    "genes",
    multiple=True,
    help="Gene of interest (repeat for an intersection split).",
)
@click.option("--upper", type=click.FloatRange(0, 1, min_open=True, max_open=True),
              help="Upper quantile cutoff for the high group.")
@click.option("--lower", type=click.FloatRange(0, 1, min_open=True, max_open=True),
              help="Lower quantile cutoff for the low group.")
@click.option("--pvalue", type=click.FloatRange(0, 1, min_open=True),
              help="Adjusted p-value cutoff for differentially expressed genes.")
@click.option("--log2fc", type=click.FloatRange(min=0), help="Minimum |log2 fold change|.")
@click.option("--fdr", type=click.FloatRange(0, 1, min_open=True),
              help="Adjusted p-value cutoff for enriched terms.")
@click.option("--top-n", type=click.IntRange(min=1), help="Genes / terms shown in the summary.")
@click.option("--backend", type=click.Choice(["enrichr", "gprofiler"]), help="Enrichment service.")
@click.option(
    "--library",
    "libraries",
    multiple=True,
    help="Enrichment database to query (repeat for multiple).",
)
@click.option("--delay", type=click.FloatRange(min=0),
              help="Seconds to wait between enrichment requests.")
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path),
              help="Directory for cached cohort data.")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path),
              help="Directory for the workbook and JSON record.")
@click.option("--pathway-image", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Pre-generated pathway diagram to embed in the workbook.")
@click.option("--all-samples", is_flag=True,
              help="Keep non-primary-tumor samples (normal tissue, metastases).")
@click.option("--refresh", is_flag=True, help="Re-download cohort data even when cached.")
@click.option("--no-enrichment", is_flag=True, help="Skip the enrichment step.")
def run_command(
    config_path: Optional[Path],
    cohort: Optional[str],
    genes: Iterable[str],
    upper: Optional[float],
    lower: Optional[float],
    pvalue: Optional[float],
    log2fc: Optional[float],
    fdr: Optional[float],
    top_n: Optional[int],
    backend: Optional[str],
    libraries: Iterable[str],
    delay: Optional[float],
    data_dir: Optional[Path],
    output_dir: Optional[Path],
    pathway_image: Optional[Path],
    all_samples: bool,
    refresh: bool,
    no_enrichment: bool,
) -> None:
    """Split samples by gene expression quantiles, run DE and enrichment."""
    config = _build_config(
        config_path, cohort, genes, upper, lower, pvalue, log2fc, fdr, top_n,
        backend, libraries, delay, data_dir, output_dir, pathway_image, all_samples,
    )
    try:
        config.validate()
        result = run_analysis(
            config,
            run_enrichment=not no_enrichment,
            refresh=refresh,
        )
    except (ValueError, KeyError) as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(
        ReportGenerator().to_console_summary(
            result.de_result, result.enrichment, top_n=config.top_n
        )
    )
    for kind, path in result.outputs.items():
        click.echo(f"Wrote {kind}: {path}")


@cli.command("fetch")
@click.option("--cohort", "cohorts", multiple=True, required=True,
              help="TCGA cohort code to download (repeat for multiple).")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("data"),
    show_default=True,
    help="Directory for cached cohort data.",
)
@click.option("--refresh", is_flag=True, help="Re-download even when cached.")
def fetch_command(cohorts: Iterable[str], data_dir: Path, refresh: bool) -> None:
    """Download and cache cohort expression and clinical tables."""
    for cohort in cohorts:
        expression, clinical = load_cohort(cohort.upper(), data_dir, refresh=refresh)
        click.echo(
            f"{cohort.upper()}: {expression.shape[0]:,} genes x {expression.shape[1]:,} samples, "
            f"{clinical.shape[1]:,} clinical variables"
        )


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
