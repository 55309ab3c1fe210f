"""
Error Taxonomy
==============
All exceptions raised by the shape model pipeline.

Why is this file needed?
------------------------
1. Triage: the pipeline distinguishes per-file problems (recovered, the file
   is skipped) from batch-level problems (fatal, the process exits non-zero).
2. Decoupling: the loader, the PCA engine and the writer raise these types;
   only ``main`` decides how they end up on the console.
"""
from __future__ import annotations


class ShapeModelError(Exception):
    """Base class for every error raised by this package."""


class DiscoveryError(ShapeModelError):
    """Input directory is missing, is not a directory or cannot be listed."""


class ParseError(ShapeModelError):
    """A mesh file could not be read or holds no vertices."""


class TopologyMismatchError(ShapeModelError):
    """A mesh file has a vertex count different from the reference mesh."""

    def __init__(self, path: str, expected: int, found: int) -> None:
        super().__init__(
            f"The number of vertices does not match in '{path}': "
            f"expected {expected}, found {found}."
        )
        self.path = path
        self.expected = expected
        self.found = found


class EmptyBatchError(ShapeModelError):
    """No input file was accepted into the observation matrix."""


class DimensionError(ShapeModelError):
    """The PCA input matrix is missing or has an unusable shape."""


class StateError(ShapeModelError):
    """A PCA accessor was called before ``compute()``."""


class SerializationError(ShapeModelError):
    """The output mesh (or model file) could not be written."""
