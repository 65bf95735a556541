"""
Run configuration for the quantile-split analysis.

Values come from dataclass defaults, then ``.env`` / environment
variables (``QDEG_*``), then an optional JSON file, then CLI options.

Usage:
    from quantile_deg.config import AnalysisConfig

    cfg = AnalysisConfig.from_env()
    cfg = cfg.replace(cohort="LUAD", genes=["EGFR"])
    cfg.validate()
"""

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_ENRICHR_LIBRARIES = [
    "KEGG_2021_Human",
    "Reactome_2022",
    "WikiPathway_2023_Human",
    "GO_Biological_Process_2023",
]

DEFAULT_GPROFILER_SOURCES = ["GO:BP", "KEGG", "REAC", "WP"]

ENV_PREFIX = "QDEG_"


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AnalysisConfig:
    """
    Parameters of one analysis run.

    Attributes:
        cohort: TCGA cohort code (BRCA, LUAD, ...)
        genes: Gene symbol(s) used for the quantile split (matched case-insensitively)
        upper_quantile: Samples above this quantile form the "high" group
        lower_quantile: Samples below this quantile form the "low" group
        pvalue_cutoff: Adjusted p-value cutoff for differentially expressed genes
        log2fc_threshold: Minimum |log2 fold change| for a significant gene
        enrichment_fdr: Adjusted p-value cutoff for enriched terms
        top_n: Number of genes / terms shown in console summaries
        data_dir: Directory holding cached cohort data
        output_dir: Directory receiving the workbook and JSON record
        enrichment_backend: "enrichr" or "gprofiler"
        enrichment_libraries: Databases queried (defaults depend on backend)
        request_delay: Seconds to wait between enrichment requests
        max_missing_fraction: Clinical variables missing more than this are dropped
        primary_tumor_only: Keep only TCGA primary tumor samples (type code 01)
        pathway_image: Optional pre-generated pathway diagram to embed
    """

    cohort: str = "BRCA"
    genes: List[str] = field(default_factory=lambda: ["ESR1"])
    upper_quantile: float = 0.75
    lower_quantile: float = 0.25
    pvalue_cutoff: float = 0.05
    log2fc_threshold: float = 0.0
    enrichment_fdr: float = 0.05
    top_n: int = 10
    data_dir: str = "data"
    output_dir: str = "output"
    enrichment_backend: str = "enrichr"
    enrichment_libraries: Optional[List[str]] = None
    request_delay: float = 1.0
    max_missing_fraction: float = 0.5
    primary_tumor_only: bool = True
    pathway_image: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.genes, str):
            self.genes = _split_list(self.genes)
        self.genes = [g.strip() for g in self.genes if g.strip()]
        self.cohort = self.cohort.strip().upper()

    @property
    def libraries(self) -> List[str]:
        """Databases to query, falling back to the backend defaults."""
        if self.enrichment_libraries:
            return list(self.enrichment_libraries)
        if self.enrichment_backend == "gprofiler":
            return list(DEFAULT_GPROFILER_SOURCES)
        return list(DEFAULT_ENRICHR_LIBRARIES)

    @property
    def run_name(self) -> str:
        """Short identifier used for output file names."""
        return f"{self.cohort}_{'_'.join(self.genes)}"

    def validate(self) -> "AnalysisConfig":
        """Raise ValueError if any parameter is out of range."""
        if not self.genes:
            raise ValueError("At least one gene of interest is required")
        if not self.cohort:
            raise ValueError("A cohort code is required")
        if not (0.0 < self.lower_quantile <= self.upper_quantile < 1.0):
            raise ValueError(
                "Quantiles must satisfy 0 < lower <= upper < 1 "
                f"(got lower={self.lower_quantile}, upper={self.upper_quantile})"
            )
        for name in ("pvalue_cutoff", "enrichment_fdr"):
            value = getattr(self, name)
            if not (0.0 < value <= 1.0):
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if not (0.0 <= self.max_missing_fraction <= 1.0):
            raise ValueError(
                f"max_missing_fraction must be in [0, 1], got {self.max_missing_fraction}"
            )
        if self.log2fc_threshold < 0:
            raise ValueError("log2fc_threshold must be non-negative")
        if self.request_delay < 0:
            raise ValueError("request_delay must be non-negative")
        if self.top_n < 1:
            raise ValueError("top_n must be at least 1")
        if self.enrichment_backend not in ("enrichr", "gprofiler"):
            raise ValueError(
                f"Unknown enrichment backend {self.enrichment_backend!r} "
                "(expected 'enrichr' or 'gprofiler')"
            )
        return self

    def replace(self, **changes) -> "AnalysisConfig":
        """Return a copy with the given fields changed; None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = dataclasses.asdict(self)
        data["enrichment_libraries"] = self.libraries
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisConfig":
        """Build from a dictionary, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_json(cls, path: Union[str, Path], base: Optional["AnalysisConfig"] = None) -> "AnalysisConfig":
        """Load a JSON config file, layered over ``base`` when given."""
        with open(path) as f:
            data = json.load(f)
        if base is None:
            return cls.from_dict(data)
        known = {f.name for f in dataclasses.fields(cls)}
        return dataclasses.replace(base, **{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, dotenv_path: Optional[Union[str, Path]] = None) -> "AnalysisConfig":
        """
        Load ``.env`` and build a config from ``QDEG_*`` environment variables.

        Recognised variables: QDEG_COHORT, QDEG_GENES (comma-separated),
        QDEG_UPPER_QUANTILE, QDEG_LOWER_QUANTILE, QDEG_PVALUE_CUTOFF,
        QDEG_ENRICHMENT_FDR, QDEG_TOP_N, QDEG_DATA_DIR, QDEG_OUTPUT_DIR,
        QDEG_ENRICHMENT_BACKEND, QDEG_ENRICHMENT_LIBRARIES, QDEG_REQUEST_DELAY.
        """
        from dotenv import load_dotenv

        load_dotenv(dotenv_path)

        def env(name: str) -> Optional[str]:
            return os.environ.get(ENV_PREFIX + name)

        values = {}
        for name in ("cohort", "data_dir", "output_dir", "enrichment_backend", "pathway_image"):
            if env(name.upper()):
                values[name] = env(name.upper())
        for name in ("upper_quantile", "lower_quantile", "pvalue_cutoff",
                     "log2fc_threshold", "enrichment_fdr", "request_delay"):
            if env(name.upper()):
                values[name] = float(env(name.upper()))
        if env("TOP_N"):
            values["top_n"] = int(env("TOP_N"))
        if env("GENES"):
            values["genes"] = _split_list(env("GENES"))
        if env("ENRICHMENT_LIBRARIES"):
            values["enrichment_libraries"] = _split_list(env("ENRICHMENT_LIBRARIES"))
        return cls(**values)
