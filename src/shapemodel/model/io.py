"""
Input/Output Manager (PLY + HDF5)
Reads and writes mesh files through PyVista and stores PCA models in .h5 files.
"""
from __future__ import annotations

import logging
import os
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from typing import Optional, Union, TYPE_CHECKING

import h5py
import numpy as np
import pyvista as pv

from shapemodel.errors import ParseError, SerializationError
from shapemodel.model.mesh_record import MeshRecord
from shapemodel.model.pca_model import PCAModel

if TYPE_CHECKING:
    import numpy.typing as npt

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("shapemodel")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

PathLike = Union[str, Path]

COLOR_ARRAY_NAMES = ("RGBA", "RGB")


def _triangles(mesh: pv.PolyData) -> npt.NDArray[np.int64]:
    """(F, 3) triangle indices of a PolyData, triangulating other polygons first."""
    faces = np.asarray(mesh.faces, dtype=np.int64)
    if faces.size == 0:
        return np.empty((0, 3), dtype=np.int64)

    # VTK stores faces as [n, i0, ..., in-1, n, ...]; fast path for pure triangle meshes
    if faces.size % 4 == 0 and np.all(faces[::4] == 3):
        return faces.reshape(-1, 4)[:, 1:].copy()

    logger.debug(f"Triangulating mesh with {mesh.n_cells} cells.")
    triangulated = mesh.triangulate()
    return np.asarray(triangulated.faces, dtype=np.int64).reshape(-1, 4)[:, 1:].copy()


class MeshIO:
    """Mesh file collaborator: parse and serialize meshes through PyVista."""

    @staticmethod
    def read(filepath: PathLike) -> MeshRecord:
        """
        Parse a mesh file into a MeshRecord.

        Absent optional attributes (normals, colors, faces, texture coordinates)
        are returned as empty arrays. Raises ParseError when the file cannot be
        read or has no vertices.
        """
        path = Path(filepath)
        try:
            mesh = pv.read(str(path))
        except Exception as e:
            raise ParseError(f"Could not read mesh file '{path}': {e}") from e

        if isinstance(mesh, pv.MultiBlock):
            raise ParseError(f"'{path}' contains {len(mesh)} blocks, expected a single mesh.")
        if not isinstance(mesh, pv.PolyData):
            mesh = mesh.extract_surface()

        if mesh.n_points == 0:
            raise ParseError(f"Mesh file '{path}' has no vertices.")

        point_data = mesh.point_data
        array_names = set(point_data.keys())

        normals = point_data.active_normals
        colors = None
        for name in COLOR_ARRAY_NAMES:
            if name in array_names:
                colors = np.asarray(point_data[name], dtype=np.uint8)
                break
        uvs = point_data.active_texture_coordinates

        try:
            return MeshRecord(
                positions=np.asarray(mesh.points, dtype=np.float64),
                normals=None if normals is None else np.asarray(normals, dtype=np.float64),
                colors=colors,
                faces=_triangles(mesh),
                uvs=None if uvs is None else np.asarray(uvs, dtype=np.float64),
                path=path,
            )
        except ValueError as e:
            raise ParseError(f"Unsupported attribute layout in '{path}': {e}") from e

    @staticmethod
    def write(
        filepath: PathLike,
        vertices: npt.ArrayLike,
        normals: Optional[npt.ArrayLike] = None,
        colors: Optional[npt.ArrayLike] = None,
        faces: Optional[npt.ArrayLike] = None,
        uvs: Optional[npt.ArrayLike] = None,
        binary: bool = True,
    ) -> Path:
        """
        Serialize vertices and optional attributes as one mesh file.

        Attributes that are None or empty are left out of the file entirely.
        Face indices are written as given (no range check).
        """
        path = Path(filepath)
        logger.debug(f"Writing mesh to: {path}")
        try:
            points = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)

            if faces is not None and np.size(faces) > 0:
                triangles = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
                padded = np.hstack([np.full((triangles.shape[0], 1), 3, dtype=np.int64), triangles])
                mesh = pv.PolyData(points, padded.ravel())
            else:
                mesh = pv.PolyData(points)

            # vtkPLYWriter only accepts float32 normals and texture coordinates
            if normals is not None and np.size(normals) > 0:
                mesh.point_data.active_normals = np.asarray(normals, dtype=np.float32).reshape(-1, 3)
            if uvs is not None and np.size(uvs) > 0:
                mesh.point_data.active_texture_coordinates = np.asarray(uvs, dtype=np.float32).reshape(-1, 2)

            texture = None
            if colors is not None and np.size(colors) > 0:
                texture = np.ascontiguousarray(colors, dtype=np.uint8)

            path.parent.mkdir(parents=True, exist_ok=True)
            if path.suffix.lower() == ".ply":
                mesh.save(str(path), binary=binary, texture=texture, recompute_normals=False)
            else:
                if texture is not None:
                    mesh.point_data["RGBA" if texture.shape[1] == 4 else "RGB"] = texture
                mesh.save(str(path), binary=binary)
        except Exception as e:
            raise SerializationError(f"Failed to write mesh '{path}': {e}") from e

        logger.info(f"Mesh written to: {path} (verts: {mesh.n_points})")
        return path


class ModelStore:
    """Saves and loads a PCAModel as an HDF5 file."""

    @staticmethod
    def save(model: PCAModel, filepath: PathLike) -> Path:
        path = Path(filepath)
        logger.info(f"Saving PCA model to: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with h5py.File(path, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["n_samples"] = model.n_samples
                f.create_dataset("mean", data=np.asarray(model.mean))
                f.create_dataset("eigenvalues", data=np.asarray(model.eigenvalues))
                f.create_dataset("eigenvectors", data=np.asarray(model.eigenvectors), compression="gzip")
        except Exception as e:
            logger.exception(f"Failed to save PCA model: {e}")
            raise SerializationError(f"Failed to save PCA model to '{path}': {e}") from e
        return path

    @staticmethod
    def load(filepath: PathLike) -> PCAModel:
        path = Path(filepath)
        logger.info(f"Loading PCA model from: {path}")
        if not os.path.exists(path):
            raise FileNotFoundError(f"Model file not found: {path}")
        if not h5py.is_hdf5(path):
            msg = f"File '{path}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        with h5py.File(path, "r") as f:
            missing = [name for name in ("mean", "eigenvalues", "eigenvectors") if name not in f]
            if missing:
                raise ParseError(f"Model file '{path}' is missing datasets: {', '.join(missing)}")

            stored_version = f.attrs.get("version", "unknown")
            if isinstance(stored_version, bytes):
                stored_version = stored_version.decode("utf-8")
            logger.debug(f"Model file written by version {stored_version}")

            return PCAModel(
                mean=np.array(f["mean"][()], dtype=np.float64),
                eigenvalues=np.array(f["eigenvalues"][()], dtype=np.float64),
                eigenvectors=np.array(f["eigenvectors"][()], dtype=np.float64),
                n_samples=int(f.attrs.get("n_samples", 0)),
            )
