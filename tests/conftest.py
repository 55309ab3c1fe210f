"""Shared fixtures: small triangulated grids written as PLY files."""
import logging
from pathlib import Path

import numpy as np
import pytest

from shapemodel.model.io import MeshIO
from shapemodel.model.mesh_record import MeshRecord


def grid_mesh(nx: int = 3, ny: int = 3) -> tuple[np.ndarray, np.ndarray]:
    """Flat nx x ny vertex grid in the z=0 plane and its triangles."""
    xs, ys = np.meshgrid(np.arange(nx, dtype=float), np.arange(ny, dtype=float), indexing="xy")
    points = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(nx * ny)])

    faces = []
    for j in range(ny - 1):
        for i in range(nx - 1):
            a = j * nx + i
            b = a + 1
            c = a + nx
            d = c + 1
            faces.append([a, b, d])
            faces.append([a, d, c])
    return points, np.array(faces, dtype=np.int64)


@pytest.fixture
def base_grid():
    return grid_mesh()


@pytest.fixture
def write_ply():
    """Write points (and optional attributes) to a PLY file, returns the path."""
    def _write(path: Path, points, faces=None, colors=None, normals=None) -> Path:
        return MeshIO.write(path, points, normals=normals, colors=colors, faces=faces)
    return _write


class FakeReader:
    """Mesh reader returning prepared records (or raising prepared errors) by file name."""

    def __init__(self, items: dict):
        self.items = items
        self.calls: list[str] = []

    def read(self, filepath):
        name = Path(filepath).name
        self.calls.append(name)
        item = self.items[name]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake_reader_factory():
    return FakeReader


@pytest.fixture
def record_factory():
    def _record(points, **kwargs) -> MeshRecord:
        return MeshRecord(positions=np.asarray(points, dtype=float), **kwargs)
    return _record


@pytest.fixture(autouse=True)
def reset_package_logger():
    """main() attaches handlers to the package logger; drop them after each test."""
    yield
    logger = logging.getLogger("shapemodel")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
