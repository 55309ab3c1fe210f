"""
PCA Engine
==========
Principal component analysis of an observation matrix.

Why is this file needed?
------------------------
1. Statistics: It computes the mean observation and the eigen-decomposition
   of the centered ensemble (the modes of shape variation).
2. Reprojection: It reconstructs the first training observation from the
   leading modes only.

The covariance is never formed explicitly. An economy SVD of the centered
D x N matrix gives the same eigenpairs and stays cheap when D >> N.

Note: This module should be pure NumPy/SciPy and should NOT do any file I/O.
"""
from __future__ import annotations

import logging
from enum import StrEnum
from typing import Optional, TYPE_CHECKING

import numpy as np
import scipy as sp

from shapemodel.errors import DimensionError, StateError
from shapemodel.model.pca_model import PCAModel

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class PCAState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INPUT_SET = "input_set"
    COMPUTED = "computed"


def _svd(x: npt.NDArray[np.float64]) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Left singular vectors and singular values of x (economy size)."""
    try:
        u, s, _ = sp.linalg.svd(x, full_matrices=False, lapack_driver="gesdd")
    except np.linalg.LinAlgError:
        # gesdd occasionally fails to converge on ill-conditioned input, gesvd is slower but robust
        logger.warning("SVD (gesdd) did not converge, retrying with gesvd.")
        u, s, _ = sp.linalg.svd(x, full_matrices=False, lapack_driver="gesvd")
    return u, s


def _fix_signs(vectors: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Flip each column so that its largest-magnitude component is positive."""
    if vectors.size == 0:
        return vectors
    pivots = np.argmax(np.abs(vectors), axis=0)
    signs = np.sign(vectors[pivots, np.arange(vectors.shape[1])])
    signs[signs == 0] = 1.0
    return vectors * signs


def decompose(matrix: npt.NDArray[np.float64]) -> PCAModel:
    """
    Eigen-decomposition of the sample covariance of the columns of ``matrix``.

    Args:
        matrix: (D, N) observations, one per column.

    Returns:
        PCAModel with min(D, N) eigenpairs sorted by eigenvalue (descending).
        Eigenvalues are squared singular values divided by N - 1 (by 1 when N == 1).
    """
    n_samples = matrix.shape[1]

    mean = matrix.mean(axis=1)
    centered = matrix - mean[:, np.newaxis]

    u, s = _svd(centered)
    eigenvalues = s ** 2 / max(n_samples - 1, 1)

    # LAPACK already returns descending singular values, a stable sort keeps ties in place
    order = np.argsort(-eigenvalues, kind="stable")
    eigenvalues = eigenvalues[order]
    eigenvectors = _fix_signs(u[:, order])

    return PCAModel(
        mean=mean,
        eigenvalues=eigenvalues,
        eigenvectors=eigenvectors,
        n_samples=n_samples,
    )


class PCA:
    """
    Stateful PCA engine: set_input() -> compute() -> accessors.

    The accessors (eigenvalues, eigenvectors, reprojection) are only valid in
    the COMPUTED state and raise StateError otherwise.
    """

    def __init__(self) -> None:
        self._input: Optional[npt.NDArray[np.float64]] = None
        self._model: Optional[PCAModel] = None
        self.state = PCAState.UNINITIALIZED

    def set_input(self, matrix: npt.ArrayLike) -> None:
        """
        Store the observation matrix (D features x N samples).

        Any previously computed model is discarded.
        """
        m = np.array(matrix, dtype=np.float64, copy=True)
        if m.ndim != 2:
            raise DimensionError(f"Observation matrix must be 2D, got {m.ndim} dimension(s).")
        rows, cols = m.shape
        if rows < 1:
            raise DimensionError("Observation matrix has no rows (feature dimension is 0).")
        if cols < 1:
            raise DimensionError("Observation matrix has no columns (no samples).")
        if not np.all(np.isfinite(m)):
            raise ValueError("Observation matrix contains NaN or infinite values.")

        self._input = m
        self._model = None
        self.state = PCAState.INPUT_SET
        logger.debug(f"PCA input set: {rows} features x {cols} samples.")

    def compute(self) -> PCAModel:
        if self._input is None:
            raise DimensionError("No input matrix: call set_input() before compute().")

        rows, cols = self._input.shape
        logger.info(f"Computing PCA on {rows} x {cols} observation matrix...")
        self._model = decompose(self._input)
        self.state = PCAState.COMPUTED
        logger.info(f"PCA computed: {self._model.n_components} components, total variance {self._model.total_variance:.6g}")
        return self._model

    @property
    def model(self) -> PCAModel:
        if self._model is None:
            raise StateError(f"PCA model is not available (state: {self.state}); call compute() first.")
        return self._model

    def get_mean(self) -> npt.NDArray[np.float64]:
        return self.model.mean

    def get_eigen_values(self) -> npt.NDArray[np.float64]:
        """Eigenvalues, non-increasing."""
        return self.model.eigenvalues

    def get_eigen_vectors(self) -> npt.NDArray[np.float64]:
        """(D, K) unit-norm eigenvectors, column i matching get_eigen_values()[i]."""
        return self.model.eigenvectors

    def project(self, observation: npt.ArrayLike, num_components: Optional[int] = None) -> npt.NDArray[np.float64]:
        return self.model.project(observation, num_components)

    def reconstruct(self, coefficients: npt.ArrayLike, num_components: Optional[int] = None) -> npt.NDArray[np.float64]:
        return self.model.reconstruct(coefficients, num_components)

    def reprojection(self, num_components: int = 1) -> npt.NDArray[np.float64]:
        """
        Reconstruct the first training observation (column 0) from the leading modes.

        ``num_components`` larger than the number of available eigenvectors is
        silently clamped; 0 returns the mean.
        """
        model = self.model
        k = model.clamp_components(num_components)
        if k < num_components:
            logger.debug(f"Requested {num_components} components, only {k} available.")

        coefficients = model.project(self._input[:, 0], k)
        return model.reconstruct(coefficients, k)
