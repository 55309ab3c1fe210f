"""
Ensemble Loader
===============
Turns a directory of point-correspondent meshes into an observation matrix.

Why is this file needed?
------------------------
1. Discovery: It lists the candidate mesh files of the input directory.
2. Validation: Every file must have the vertex count of the reference mesh;
   files that fail to parse or do not match are skipped, never fatal.
3. Assembly: Accepted meshes become the columns of the observation matrix,
   in the order they were accepted.

Each file yields an explicit FileResult, so a batch can be inspected after
the fact instead of following exceptions through the loop.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union, TYPE_CHECKING

import numpy as np

from shapemodel.config import DEFAULT_EXTENSION_PATTERN
from shapemodel.errors import (
    DiscoveryError,
    EmptyBatchError,
    ParseError,
    ShapeModelError,
    TopologyMismatchError,
)
from shapemodel.model.io import MeshIO
from shapemodel.model.mesh_record import MeshRecord

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class MeshReader(Protocol):
    def read(self, filepath: PathLike) -> MeshRecord: ...


class LoadStatus(StrEnum):
    ACCEPTED = "accepted"
    PARSE_FAILED = "parse_failed"
    TOPOLOGY_MISMATCH = "topology_mismatch"


@dataclass(frozen=True)
class FileResult:
    """Outcome of loading one file."""
    path: Path
    status: LoadStatus
    record: Optional[MeshRecord] = None
    error: Optional[ShapeModelError] = None
    column: Optional[int] = None  # column of the observation matrix, accepted files only

    @property
    def ok(self) -> bool:
        return self.status == LoadStatus.ACCEPTED

    @property
    def message(self) -> str:
        if self.ok:
            return f"verts: {self.record.n_points} [OK]"
        return f"[FAIL] {self.error}"

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass
class EnsembleBatch:
    """
    Observation matrix plus the per-file report of one load.

    ``matrix`` holds exactly ``accepted_count`` columns; allocated columns that
    were never written are cut off before the batch is returned.
    """
    matrix: npt.NDArray[np.float64]
    reference_count: int
    results: list[FileResult] = field(default_factory=list)
    last_record: Optional[MeshRecord] = None

    @property
    def accepted_count(self) -> int:
        return int(self.matrix.shape[1])

    @property
    def accepted(self) -> list[FileResult]:
        return [r for r in self.results if r.ok]

    @property
    def rejected(self) -> list[FileResult]:
        return [r for r in self.results if not r.ok]

    @property
    def is_empty(self) -> bool:
        return self.accepted_count == 0

    def require_samples(self) -> EnsembleBatch:
        """Raise EmptyBatchError when nothing was accepted; returns self otherwise."""
        if self.is_empty:
            raise EmptyBatchError(
                f"None of the {len(self.results)} input file(s) was accepted into the observation matrix."
            )
        return self


class EnsembleLoader:
    """
    Loads a directory of meshes into an EnsembleBatch.

    Args:
        reader: Mesh file collaborator (anything with ``read(path) -> MeshRecord``).
        extension_pattern: Regex that must fully match a file's suffix (e.g. ".ply").
    """

    def __init__(
        self,
        reader: Optional[MeshReader] = None,
        extension_pattern: str = DEFAULT_EXTENSION_PATTERN,
    ) -> None:
        self.reader = reader if reader is not None else MeshIO()
        self.extension_pattern = extension_pattern
        self._extension_regex = re.compile(extension_pattern)

    def discover(self, directory: PathLike) -> list[Path]:
        """
        Mesh files directly inside ``directory`` (non-recursive), sorted by name.

        An empty list is a valid result; a missing or unreadable directory is not.
        """
        root = Path(directory)
        if not root.exists():
            raise DiscoveryError(f"Input directory '{root}' does not exist.")
        if not root.is_dir():
            raise DiscoveryError(f"Input path '{root}' is not a directory.")

        try:
            entries = list(root.iterdir())
        except OSError as e:
            raise DiscoveryError(f"Cannot list input directory '{root}': {e}") from e

        files = sorted(
            (p for p in entries if p.is_file() and self._extension_regex.fullmatch(p.suffix)),
            key=lambda p: p.name,
        )
        logger.info(f"Found {len(files)} file(s) matching '{self.extension_pattern}' in '{root}'.")
        return files

    def load_first(self, path: PathLike) -> tuple[MeshRecord, int]:
        """Read the reference mesh. Returns the record and its position count."""
        record = self.reader.read(path)
        if record.n_points == 0:
            raise ParseError(f"Reference mesh '{path}' has no vertices.")
        logger.debug(f"Reference mesh '{path}' has {record.n_points} vertices.")
        return record, record.n_points

    def establish_reference(self, paths: Sequence[PathLike]) -> tuple[MeshRecord, int]:
        """The first file of ``paths`` that parses defines the vertex count of the run."""
        for path in paths:
            try:
                return self.load_first(path)
            except Exception as e:
                logger.warning(f"Cannot use '{path}' as reference mesh: {e}")
        raise EmptyBatchError(f"None of the {len(paths)} input file(s) could be parsed.")

    def _load_one(self, path: Path, reference_position_count: int) -> FileResult:
        try:
            record = self.reader.read(path)
        except ParseError as e:
            return FileResult(path=path, status=LoadStatus.PARSE_FAILED, error=e)
        except Exception as e:
            # Any reader failure rejects only this file
            error = ParseError(f"Could not read mesh file '{path}': {e}")
            error.__cause__ = e
            return FileResult(path=path, status=LoadStatus.PARSE_FAILED, error=error)

        if not np.all(np.isfinite(record.positions)):
            error = ParseError(f"Mesh file '{path}' contains non-finite vertex coordinates.")
            return FileResult(path=path, status=LoadStatus.PARSE_FAILED, error=error)

        if record.n_points != reference_position_count:
            error = TopologyMismatchError(str(path), reference_position_count, record.n_points)
            return FileResult(path=path, status=LoadStatus.TOPOLOGY_MISMATCH, record=record, error=error)

        return FileResult(path=path, status=LoadStatus.ACCEPTED, record=record)

    def load_into_matrix(self, paths: Sequence[PathLike], reference_position_count: int) -> EnsembleBatch:
        """
        Read every file and stack the accepted position vectors column by column.

        Rejected files (parse failure or vertex count mismatch) are logged and
        skipped; they do not advance the write column.
        """
        rows = 3 * reference_position_count
        matrix = np.zeros((rows, len(paths)), dtype=np.float64)
        logger.info(f"Matrix size: {rows} {len(paths)}")

        results: list[FileResult] = []
        last_record: Optional[MeshRecord] = None
        column = 0

        for raw_path in paths:
            path = Path(raw_path)
            logger.info(f"Reading file <{path}> ...")
            result = self._load_one(path, reference_position_count)

            if result.ok:
                matrix[:, column] = result.record.flattened()
                result = FileResult(path=path, status=result.status, record=result.record, column=column)
                last_record = result.record
                column += 1
                logger.info(f"<{path.name}> {result.message}")
            else:
                logger.warning(f"<{path.name}> {result.message}")

            results.append(result)

        if column < len(paths):
            logger.info(f"Accepted {column} of {len(paths)} file(s).")

        return EnsembleBatch(
            matrix=matrix[:, :column].copy(),
            reference_count=reference_position_count,
            results=results,
            last_record=last_record,
        )

    def load(self, directory: PathLike) -> EnsembleBatch:
        """Discover, pick the reference mesh and assemble the observation matrix."""
        paths = self.discover(directory)
        if not paths:
            raise EmptyBatchError(f"No files matching '{self.extension_pattern}' found in '{directory}'.")

        _, reference_count = self.establish_reference(paths)
        return self.load_into_matrix(paths, reference_count).require_samples()
