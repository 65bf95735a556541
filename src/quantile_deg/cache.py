"""On-disk cache for fetched DataFrames (load if present, else fetch and save)."""

import logging
import os
from pathlib import Path
from typing import Callable, Union

import pandas as pd

logger = logging.getLogger(__name__)


def cache_path(data_dir: Union[str, Path], cohort: str, kind: str) -> Path:
    """Path of the cached ``kind`` table ("expression" / "clinical") for a cohort."""
    return Path(data_dir) / cohort.upper() / f"{kind}.pkl.gz"


def load_or_fetch(
    path: Union[str, Path],
    fetch: Callable[[], pd.DataFrame],
    refresh: bool = False,
) -> pd.DataFrame:
    """
    Return the DataFrame cached at ``path``, fetching and saving it if missing.

    Args:
        path: Cache file (pickle; compression inferred from the suffix)
        fetch: Zero-argument callable producing the DataFrame
        refresh: Ignore an existing cache file and fetch again

    Returns:
        The cached or freshly fetched DataFrame
    """
    path = Path(path)
    if path.exists() and not refresh:
        logger.info(f"Loading cached data from {path}")
        return pd.read_pickle(path)

    logger.info(f"Cache miss for {path}; fetching")
    df = fetch()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Partial file keeps the final suffix so compression is inferred the same way
    partial = path.with_name(f"{path.name.split('.')[0]}.partial{''.join(path.suffixes)}")
    try:
        df.to_pickle(partial)
        os.replace(partial, path)
    finally:
        if partial.exists():
            partial.unlink()
    logger.info(f"Saved {df.shape[0]:,} x {df.shape[1]:,} table to {path}")
    return df
