#!/usr/bin/env python3
"""
Results Manager for the count-model LOO analysis.

This module provides functionality for saving and loading tables,
dictionaries, traces and figures of one analysis run, and records every
written file in a metadata index.
"""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import arviz as az
import pandas as pd

from utils.logging_utils import get_logger
from utils.file_utils import ensure_dir_exists, load_json, save_json
from model.exceptions import ResultsError

# Get logger for this module
logger = get_logger()


class ResultsManager:
    """
    Manager for the outputs of one analysis run.

    Attributes:
        results_dir (str): Directory holding this run's outputs
        metadata (Dict[str, Any]): Index of everything written so far
    """

    def __init__(self, results_dir: str, experiment_name: Optional[str] = None):
        """
        Initialize the ResultsManager.

        Args:
            results_dir: Base directory for storing results
            experiment_name: Name of the run (a timestamped name is used if omitted)
        """
        if experiment_name is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            experiment_name = f"run_{timestamp}"

        self.results_dir = os.path.join(str(results_dir), experiment_name)
        try:
            ensure_dir_exists(self.results_dir)
        except OSError as e:
            raise ResultsError(f"Cannot create results directory {self.results_dir}", details=str(e)) from e

        self.metadata = {
            "experiment_name": experiment_name,
            "timestamp": datetime.now().isoformat(),
            "results_files": {},
            "figures": {},
        }

        logger.info(f"Initialized results manager for run '{experiment_name}'")
        logger.debug(f"Results directory: {self.results_dir}")

    def _path(self, name: str, extension: str, subdirectory: Optional[str] = None) -> str:
        if subdirectory:
            directory = os.path.join(self.results_dir, subdirectory)
            ensure_dir_exists(directory)
        else:
            directory = self.results_dir
        return os.path.join(directory, f"{name}.{extension}")

    def _record(self, name: str, kind: str, filename: str, **extra: Any) -> None:
        self.metadata["results_files"][name] = {
            "type": kind,
            "path": os.path.relpath(filename, self.results_dir),
            "timestamp": datetime.now().isoformat(),
            **extra,
        }

    def save_dataframe(
        self,
        df: pd.DataFrame,
        name: str,
        subdirectory: Optional[str] = None
    ) -> str:
        """
        Save a DataFrame to CSV and record in metadata.

        Returns:
            Path to the saved file
        """
        filename = self._path(name, "csv", subdirectory)
        try:
            df.to_csv(filename, index=True)
        except OSError as e:
            raise ResultsError(f"Failed to save DataFrame '{name}'", details=str(e)) from e

        self._record(name, "dataframe", filename, rows=len(df), columns=list(df.columns))
        logger.info(f"Saved DataFrame '{name}' to {filename}")
        return filename

    def save_dict(
        self,
        data: Any,
        name: str,
        subdirectory: Optional[str] = None
    ) -> str:
        """
        Save a dictionary (or list) to JSON.

        Returns:
            Path to the saved file
        """
        filename = self._path(name, "json", subdirectory)
        try:
            save_json(data, filename)
        except (OSError, TypeError) as e:
            raise ResultsError(f"Failed to save '{name}' as JSON", details=str(e)) from e

        self._record(name, "json", filename)
        logger.info(f"Saved dictionary '{name}' to {filename}")
        return filename

    def save_inference_data(
        self,
        idata: az.InferenceData,
        name: str,
        subdirectory: Optional[str] = None
    ) -> str:
        """
        Save an ArviZ InferenceData object to netCDF.

        Returns:
            Path to the saved file
        """
        filename = self._path(name, "nc", subdirectory)
        try:
            idata.to_netcdf(filename)
        except (OSError, ValueError) as e:
            raise ResultsError(f"Failed to save InferenceData '{name}'", details=str(e)) from e

        self._record(name, "inference_data", filename, groups=list(idata.groups()))
        logger.info(f"Saved InferenceData '{name}' to {filename}")
        return filename

    def record_figure(self, name: str, path: str) -> None:
        """Record a figure written by another component."""
        self.metadata["figures"][name] = {
            "formats": [os.path.splitext(path)[1].lstrip(".")],
            "paths": [os.path.relpath(path, self.results_dir)],
            "timestamp": datetime.now().isoformat()
        }

    def save_metadata(self) -> str:
        """
        Save metadata to JSON file.

        Returns:
            Path to the saved file
        """
        filename = os.path.join(self.results_dir, "metadata.json")
        save_json(self.metadata, filename)
        logger.info(f"Saved run metadata to {filename}")
        return filename

    def load_dataframe(self, name: str, subdirectory: Optional[str] = None) -> pd.DataFrame:
        filename = self._path(name, "csv", subdirectory)
        if not os.path.exists(filename):
            raise ResultsError(f"DataFrame file {filename} not found")
        return pd.read_csv(filename, index_col=0)

    def load_dict(self, name: str, subdirectory: Optional[str] = None) -> Any:
        filename = self._path(name, "json", subdirectory)
        if not os.path.exists(filename):
            raise ResultsError(f"JSON file {filename} not found")
        return load_json(filename)

    def load_inference_data(self, name: str, subdirectory: Optional[str] = None) -> az.InferenceData:
        filename = self._path(name, "nc", subdirectory)
        if not os.path.exists(filename):
            raise ResultsError(f"InferenceData file {filename} not found")
        return az.from_netcdf(filename)

    def list_results(self) -> Dict[str, List[str]]:
        """Names of saved results grouped by type."""
        grouped: Dict[str, List[str]] = {}
        for name, info in self.metadata["results_files"].items():
            grouped.setdefault(info["type"], []).append(name)
        grouped["figures"] = list(self.metadata["figures"])
        return grouped
