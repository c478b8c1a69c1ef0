#!/usr/bin/env python3
"""
Dataset loader for the count-regression LOO analysis.

PURPOSE:
- Resolve a named built-in dataset to an Observation table
- Apply the one-time ``roach1`` rescaling (divide by 100)
- Fail fast and loudly when the dataset is unavailable

ASSUMPTIONS:
- Each row is one apartment: response ``y``, pre-treatment count
  ``roach1``, indicators ``treatment`` and ``senior``, trap exposure
  ``exposure2``
- Extra columns (e.g. a leading row index written by R) are ignored

EDGE CASES:
- A missing ``roaches.csv`` is downloaded once from its public mirror and
  cached in the data directory (disable with ``download=False``)
- Unknown dataset names, and absent files that cannot be downloaded,
  raise ``DatasetNotFoundError``
- Missing columns raise ``DataValidationError``
- Exposure values are NOT validated here; the model builder refuses
  non-positive exposure when it builds the log offset
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import pandas as pd
import requests

from utils.logging_utils import logger, log_step
from model.constants import COVARIATES, OFFSET_COL, REQUIRED_COLUMNS, RESPONSE_COL, ROACH1_SCALE
from model.exceptions import DataValidationError, DatasetNotFoundError
from data.simulation import simulate_roach_data

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "datasets"

# Named datasets: either a file in the data directory or a generator
FILE_DATASETS: Dict[str, str] = {
    "roaches": "roaches.csv",
}
# Public copy of the rstanarm roaches data (leading "rownames" column)
DATASET_URLS: Dict[str, str] = {
    "roaches": "https://vincentarelbundock.github.io/Rdatasets/csv/rstanarm/roaches.csv",
}
GENERATED_DATASETS: Dict[str, Callable[..., pd.DataFrame]] = {
    "simulated_roaches": simulate_roach_data,
}


class DataLoader:
    """
    Loads named datasets as Observation tables.

    Every call reads the source again and rescales a fresh copy, so
    repeated calls return identical values.

    Parameters
    ----------
    data_dir : str or Path, optional
        Directory holding file-backed datasets. Defaults to
        ``data/datasets`` inside the package.
    random_seed : int
        Seed handed to generated datasets.
    download : bool
        Fetch a missing file-backed dataset from its public URL.
    timeout : float
        Seconds to wait for the download.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        random_seed: int = 2017,
        download: bool = True,
        timeout: float = 60.0,
    ):
        self.data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        self.random_seed = random_seed
        self.download = download
        self.timeout = timeout
        logger.debug(f"Initialized DataLoader with data directory: {self.data_dir}")

    @staticmethod
    def available_datasets() -> List[str]:
        return sorted(list(FILE_DATASETS) + list(GENERATED_DATASETS))

    def resolve_path(self, name: str) -> Path:
        """Return the file backing a file-based dataset."""
        if name not in FILE_DATASETS:
            raise DatasetNotFoundError(f"Dataset '{name}' is not file-backed")
        return self.data_dir / FILE_DATASETS[name]

    @log_step("Loading dataset")
    def load_dataset(self, name: str = "roaches") -> pd.DataFrame:
        """
        Load a named dataset and rescale ``roach1``.

        Args:
            name: Registered dataset name

        Returns:
            DataFrame with columns y, roach1, treatment, senior, exposure2

        Raises:
            DatasetNotFoundError: If the name is unknown or the file is absent
            DataValidationError: If required columns are missing
        """
        raw = self._read_raw(name)
        self._check_columns(raw, name)

        data = raw.loc[:, list(REQUIRED_COLUMNS)].copy().reset_index(drop=True)
        data["roach1"] = data["roach1"].astype(float) / ROACH1_SCALE

        logger.info(f"Loaded dataset '{name}' with {len(data)} observations")
        return data

    def _read_raw(self, name: str) -> pd.DataFrame:
        if name in GENERATED_DATASETS:
            return GENERATED_DATASETS[name](random_seed=self.random_seed)

        if name not in FILE_DATASETS:
            raise DatasetNotFoundError(
                f"Unknown dataset '{name}'",
                details=f"available: {self.available_datasets()}",
            )

        path = self.resolve_path(name)
        if not path.exists():
            if not (self.download and name in DATASET_URLS):
                raise DatasetNotFoundError(
                    f"Data file for dataset '{name}' not found: {path}",
                    details="place the CSV in the data directory or set COUNTLOO_DATA_DIR",
                )
            path = self.fetch_dataset(name)

        try:
            return pd.read_csv(path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataValidationError(f"Could not parse {path}: {str(e)}") from e

    def fetch_dataset(self, name: str) -> Path:
        """
        Download a file-backed dataset and cache it in the data directory.

        Returns:
            Path of the cached file

        Raises:
            DatasetNotFoundError: If the dataset has no URL, the download
                fails or the file cannot be written
        """
        if name not in DATASET_URLS:
            raise DatasetNotFoundError(f"Dataset '{name}' has no download URL")
        url = DATASET_URLS[name]
        path = self.resolve_path(name)
        manual = f"download {url} and save it as {path}"

        logger.info(f"Downloading dataset '{name}' from {url}")
        try:
            resp = requests.get(url, timeout=self.timeout, allow_redirects=True)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise DatasetNotFoundError(f"Could not download dataset '{name}': {str(e)}", details=manual) from e

        # Error pages come back as HTML with a 200 status
        if resp.content[:15].lstrip().lower().startswith((b"<html", b"<!doctype")):
            raise DatasetNotFoundError(f"Download of dataset '{name}' returned an HTML page", details=manual)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(resp.text, encoding="utf-8")
        except OSError as e:
            raise DatasetNotFoundError(f"Could not cache dataset '{name}' at {path}", details=str(e)) from e

        logger.info(f"Cached dataset '{name}' to {path}")
        return path

    @staticmethod
    def _check_columns(data: pd.DataFrame, name: str) -> None:
        missing = [col for col in REQUIRED_COLUMNS if col not in data.columns]
        if missing:
            raise DataValidationError(
                f"Dataset '{name}' is missing required columns: {missing}",
                details=f"found: {list(data.columns)}",
            )

    @staticmethod
    def describe(data: pd.DataFrame) -> Dict[str, Any]:
        """
        Summary statistics of an Observation table.

        Args:
            data: Table returned by ``load_dataset``

        Returns:
            Dictionary with counts, zero share and response moments
        """
        y = data[RESPONSE_COL].to_numpy()
        stats = {
            "n_observations": int(len(data)),
            "n_treatment": int((data["treatment"] == 1).sum()),
            "n_control": int((data["treatment"] == 0).sum()),
            "n_senior": int((data["senior"] == 1).sum()),
            "prop_zero": float(np.mean(y == 0)) if len(y) else float("nan"),
            "y_mean": float(np.mean(y)) if len(y) else float("nan"),
            "y_var": float(np.var(y, ddof=1)) if len(y) > 1 else float("nan"),
            "y_max": int(np.max(y)) if len(y) else 0,
            "min_exposure": float(data[OFFSET_COL].min()) if len(y) else float("nan"),
            "covariate_means": {c: float(data[c].mean()) for c in COVARIATES},
        }
        logger.info(
            f"Dataset: {stats['n_observations']} observations, "
            f"{stats['n_treatment']} treatment / {stats['n_control']} control, "
            f"zero share {stats['prop_zero']:.3f}"
        )
        return stats

