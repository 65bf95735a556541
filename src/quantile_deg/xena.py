"""
UCSC Xena client for TCGA cohort downloads.

Fetches the gene-level RNA-seq matrix (HiSeqV2, log2(norm_count+1),
gene symbols x samples) and the clinical matrix (samples x variables)
for a TCGA cohort from the public Xena TCGA hub, with on-disk caching.

Example:
    from quantile_deg.xena import XenaClient, load_cohort

    client = XenaClient()
    expr, clinical = load_cohort("BRCA", data_dir="data", client=client)
"""

import io
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import pandas as pd
import requests

from quantile_deg.cache import cache_path, load_or_fetch
from quantile_deg.http_utils import create_session

logger = logging.getLogger(__name__)

XENA_TCGA_HUB = "https://tcga.xenahubs.net/download"
EXPRESSION_DATASET = "TCGA.{cohort}.sampleMap/HiSeqV2.gz"
CLINICAL_DATASET = "TCGA.{cohort}.sampleMap/{cohort}_clinicalMatrix"


class XenaClient:
    """Downloads TCGA datasets from a UCSC Xena hub."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        hub_url: str = XENA_TCGA_HUB,
    ):
        self.session = session or create_session()
        self.hub_url = hub_url.rstrip("/")

    def dataset_url(self, template: str, cohort: str) -> str:
        return f"{self.hub_url}/{template.format(cohort=cohort.upper())}"

    def _download_table(self, url: str) -> pd.DataFrame:
        logger.info(f"Downloading {url}")
        response = self.session.get(url)
        response.raise_for_status()
        compression = "gzip" if url.endswith(".gz") else None
        return pd.read_csv(
            io.BytesIO(response.content),
            sep="\t",
            index_col=0,
            compression=compression,
            low_memory=False,
        )

    def fetch_expression(self, cohort: str) -> pd.DataFrame:
        """Gene x sample expression matrix for a cohort."""
        df = self._download_table(self.dataset_url(EXPRESSION_DATASET, cohort))
        df.index = df.index.astype(str)
        df.index.name = "gene"
        logger.info(f"Expression matrix: {df.shape[0]:,} genes x {df.shape[1]:,} samples")
        return df

    def fetch_clinical(self, cohort: str) -> pd.DataFrame:
        """Sample x variable clinical table for a cohort."""
        df = self._download_table(self.dataset_url(CLINICAL_DATASET, cohort))
        df.index = df.index.astype(str)
        df.index.name = "sample"
        logger.info(f"Clinical matrix: {df.shape[0]:,} samples x {df.shape[1]:,} variables")
        return df


def load_cohort(
    cohort: str,
    data_dir: Union[str, Path],
    client: Optional[XenaClient] = None,
    refresh: bool = False,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load a cohort's expression and clinical tables, fetching on cache miss.

    Args:
        cohort: TCGA cohort code
        data_dir: Cache root directory
        client: Xena client (created lazily only if a download is needed)
        refresh: Re-download even when cached

    Returns:
        Tuple of (expression genes x samples, clinical samples x variables)
    """
    holder = {"client": client}

    def get_client() -> XenaClient:
        if holder["client"] is None:
            holder["client"] = XenaClient()
        return holder["client"]

    expression = load_or_fetch(
        cache_path(data_dir, cohort, "expression"),
        lambda: get_client().fetch_expression(cohort),
        refresh=refresh,
    )
    clinical = load_or_fetch(
        cache_path(data_dir, cohort, "clinical"),
        lambda: get_client().fetch_clinical(cohort),
        refresh=refresh,
    )
    return expression, clinical
