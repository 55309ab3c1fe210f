"""
Mesh Record (Data Model)
========================
In-memory representation of one mesh's attribute arrays.

Why is this file needed?
------------------------
1. Contract: The mesh reader produces it, the Ensemble Loader consumes it and
   the Result Writer reuses its auxiliary arrays (normals, colors, faces, uvs).
2. Normalization: Optional attributes are always arrays with the right
   trailing shape. An absent attribute is an EMPTY array, never ``None``.

Classes:
    MeshRecord: Positions plus optional per-vertex/per-face attributes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


def _as_rows(values, width: Optional[int], dtype) -> np.ndarray:
    """Coerce to a 2D array, mapping None/empty input to an empty (0, width) array."""
    if values is None:
        return np.empty((0, width or 0), dtype=dtype)
    array = np.asarray(values, dtype=dtype)
    if array.size == 0:
        columns = width if width is not None else (array.shape[-1] if array.ndim == 2 else 0)
        return np.empty((0, columns), dtype=dtype)
    if array.ndim == 1 and width is not None:
        array = array.reshape(-1, width)
    if array.ndim != 2 or (width is not None and array.shape[1] != width):
        raise ValueError(f"Expected an array of shape (n, {width}), got {array.shape}.")
    return array


@dataclass
class MeshRecord:
    """
    Attribute arrays of one mesh.

    Attributes:
        positions: (V, 3) float64 vertex coordinates.
        normals: (V, 3) vertex normals, or (0, 3).
        colors: (V, 3) or (V, 4) uint8 vertex colors, or empty.
        faces: (F, 3) int64 triangle vertex indices, or (0, 3).
        uvs: (V, 2) texture coordinates, or (0, 2).
        path: File the record was read from, if any.
    """
    positions: npt.NDArray[np.float64]
    normals: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty((0, 3)))
    colors: npt.NDArray[np.uint8] = field(default_factory=lambda: np.empty((0, 4), dtype=np.uint8))
    faces: npt.NDArray[np.int64] = field(default_factory=lambda: np.empty((0, 3), dtype=np.int64))
    uvs: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty((0, 2)))
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        self.positions = _as_rows(self.positions, 3, np.float64)
        self.normals = _as_rows(self.normals, 3, np.float64)
        self.colors = _as_rows(self.colors, None, np.uint8)
        self.faces = _as_rows(self.faces, 3, np.int64)
        self.uvs = _as_rows(self.uvs, 2, np.float64)

        if self.colors.size and self.colors.shape[1] not in (3, 4):
            raise ValueError(f"Colors must have 3 (RGB) or 4 (RGBA) channels, got {self.colors.shape[1]}.")

    @property
    def n_points(self) -> int:
        return int(self.positions.shape[0])

    @property
    def n_faces(self) -> int:
        return int(self.faces.shape[0])

    @property
    def has_normals(self) -> bool:
        return self.normals.size > 0

    @property
    def has_colors(self) -> bool:
        return self.colors.size > 0

    @property
    def has_faces(self) -> bool:
        return self.faces.size > 0

    @property
    def has_uvs(self) -> bool:
        return self.uvs.size > 0

    def flattened(self) -> npt.NDArray[np.float64]:
        """Positions as one vector x0, y0, z0, x1, y1, z1, ... of length 3 * n_points."""
        return self.positions.reshape(-1)

    def __repr__(self) -> str:
        name = self.path.name if self.path is not None else "<memory>"
        return f"MeshRecord({name}, points={self.n_points}, faces={self.n_faces})"
