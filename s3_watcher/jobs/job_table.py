"""
Job table loader.

The job table is read from its YAML file on every dispatch pass, so edits
to the file take effect with the next message without restarting the
watcher.
"""

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from s3_watcher.core.exceptions import JobTableError
from s3_watcher.models.job import JobTable
from s3_watcher.utils.logging import get_component_logger


class JobTableLoader:
    """Reads and validates the YAML job table."""

    def __init__(self, path: Union[str, Path], logger: Optional[Any] = None) -> None:
        """
        Initialize the loader.

        Args:
            path: Path to the job table file (``~`` is expanded)
            logger: Logger to use (defaults to one tagged ``JobTable``)
        """
        self.path = Path(os.path.expanduser(str(path)))
        self._logger = logger or get_component_logger("JobTable")

    def load(self) -> JobTable:
        """
        Load the current content of the job table file.

        Returns:
            The parsed job table; an empty file yields no jobs

        Raises:
            JobTableError: If the file cannot be read or is invalid
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise JobTableError(f"failed to read job file {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise JobTableError(f"failed to parse job file {self.path}: {e}") from e

        if data is None:
            data = {}

        try:
            table = JobTable.model_validate(data)
        except ValidationError as e:
            raise JobTableError(f"invalid job file {self.path}: {e}") from e

        self._logger.debug("Loaded job table", operation="load", path=str(self.path), jobs=len(table.jobs))
        return table
