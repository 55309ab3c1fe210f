"""
Configuration & Path Management
===============================
This module serves as the central registry for default paths and the
pipeline settings object.

Why is this file needed?
------------------------
1. Abstraction: It prevents the output location ("<input>/Output/...") and
   the file filter from being assembled ad hoc across the code.
2. Explicit settings: Every run is described by one ``PipelineConfig``
   that the loader, the PCA step and the writer read from.

Exports:
    DEFAULT_INPUT_DIR (str): Input directory used when none is given.
    OUTPUT_SUBDIR (str): Sub-directory of the input directory for results.
    OUTPUT_FILENAME (str): File name of the reconstructed mesh.
    DEFAULT_EXTENSION_PATTERN (str): Regex matched against file suffixes.
    PipelineConfig: The settings of one run.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

from shapemodel.logging_config import resolve_level

logger = logging.getLogger(__name__)

# Global Constants
DEFAULT_INPUT_DIR: str = "../../data/"
OUTPUT_SUBDIR: str = "Output"
OUTPUT_FILENAME: str = "output_pca.ply"
DEFAULT_EXTENSION_PATTERN: str = r"\.(?:ply)"
DEFAULT_NUM_COMPONENTS: int = 1

PathLike = Union[str, Path]


@dataclass(frozen=True)
class PipelineConfig:
    """Settings of one shape model run."""
    input_dir: Path = Path(DEFAULT_INPUT_DIR)
    num_components: int = DEFAULT_NUM_COMPONENTS
    output_path: Optional[Path] = None
    extension_pattern: str = DEFAULT_EXTENSION_PATTERN
    model_path: Optional[Path] = None
    spectrum_path: Optional[Path] = None
    log_level: int = logging.INFO
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        # Accept plain strings for every path field
        for name in ("input_dir", "output_path", "model_path", "spectrum_path", "log_file"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                object.__setattr__(self, name, Path(value))

    @property
    def resolved_output_path(self) -> Path:
        """Output file, falling back to <input_dir>/Output/output_pca.ply."""
        if self.output_path is not None:
            return self.output_path
        return self.input_dir / OUTPUT_SUBDIR / OUTPUT_FILENAME

    def validate(self) -> PipelineConfig:
        """Check value ranges. Returns self so calls can be chained."""
        if isinstance(self.num_components, bool) or not isinstance(self.num_components, int):
            raise ValueError(f"num_components must be an integer, got {self.num_components!r}.")
        if self.num_components < 0:
            raise ValueError(f"num_components must be >= 0, got {self.num_components}.")
        try:
            re.compile(self.extension_pattern)
        except re.error as e:
            raise ValueError(f"Invalid extension pattern '{self.extension_pattern}': {e}") from e
        return self

    def with_overrides(self, **overrides: Any) -> PipelineConfig:
        """Copy with the given fields replaced; ``None`` values are ignored."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    @classmethod
    def from_json(cls, filepath: PathLike, **overrides: Any) -> PipelineConfig:
        """
        Load settings from a JSON object whose keys are field names.

        Log levels may be given by name ("DEBUG") or number.
        """
        logger.info(f"Loading configuration from: {filepath}")
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file '{filepath}' must contain a JSON object.")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys in '{filepath}': {', '.join(unknown)}")

        if "log_level" in data:
            data["log_level"] = resolve_level(data["log_level"])

        return cls(**data).with_overrides(**overrides)
