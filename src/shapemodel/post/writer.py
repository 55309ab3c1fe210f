"""
Result Writer
=============
Serializes the reprojected vertex vector as one output mesh.

Why is this file needed?
------------------------
The reconstruction only carries positions. Normals, colors, faces and texture
coordinates are borrowed from the last accepted input mesh (all inputs share
the same topology), and empty attributes are left out of the file.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union, TYPE_CHECKING

import numpy as np

from shapemodel.model.io import MeshIO
from shapemodel.model.mesh_record import MeshRecord

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class ResultWriter:
    def __init__(self, output_path: Union[str, Path], mesh_io: Optional[MeshIO] = None) -> None:
        self.output_path = Path(output_path)
        self.mesh_io = mesh_io if mesh_io is not None else MeshIO()

    def write(self, vertices: npt.ArrayLike, auxiliary: Optional[MeshRecord] = None) -> Path:
        """
        Write ``vertices`` (flat 3 * V vector or (V, 3) array) with the
        auxiliary attributes of ``auxiliary``.

        Raises SerializationError when the file cannot be written.
        """
        points = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)

        kwargs: dict[str, np.ndarray] = {}
        if auxiliary is not None:
            if auxiliary.has_normals:
                kwargs["normals"] = auxiliary.normals
            if auxiliary.has_colors:
                kwargs["colors"] = auxiliary.colors
            if auxiliary.has_faces:
                kwargs["faces"] = auxiliary.faces
            if auxiliary.has_uvs:
                kwargs["uvs"] = auxiliary.uvs

        logger.info(
            f"Writing result mesh: {points.shape[0]} verts"
            + (f", with {', '.join(kwargs)}" if kwargs else "")
        )
        return self.mesh_io.write(self.output_path, points, **kwargs)
