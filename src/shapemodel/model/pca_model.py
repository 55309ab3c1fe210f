"""
PCA Model (Data Model)
======================
The immutable result of a principal component analysis.

Why is this file needed?
------------------------
1. Separation: The PCA Engine (analysis layer) computes it, the model store
   (HDF5) persists it and the spectrum report reads it. None of them needs
   to know about the others.
2. Reprojection: Projection onto the eigenbasis and reconstruction from
   reduced coordinates live next to the data they use.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


@dataclass(frozen=True)
class PCAModel:
    """
    Mean, eigenvalues and eigenvectors of an ensemble.

    Attributes:
        mean: (D,) mean observation.
        eigenvalues: (K,) variances along each mode, non-increasing.
        eigenvectors: (D, K) orthonormal modes; column i belongs to eigenvalues[i].
        n_samples: Number of observations the model was computed from.
    """
    mean: npt.NDArray[np.float64]
    eigenvalues: npt.NDArray[np.float64]
    eigenvectors: npt.NDArray[np.float64]
    n_samples: int

    def __post_init__(self) -> None:
        if self.eigenvectors.ndim != 2 or self.eigenvectors.shape[0] != self.mean.shape[0]:
            raise ValueError(
                f"Eigenvectors of shape {self.eigenvectors.shape} do not match a mean of length {self.mean.shape[0]}."
            )
        if self.eigenvectors.shape[1] != self.eigenvalues.shape[0]:
            raise ValueError(
                f"{self.eigenvectors.shape[1]} eigenvectors for {self.eigenvalues.shape[0]} eigenvalues."
            )
        # Read-only views, the model must not change after compute()
        for array in (self.mean, self.eigenvalues, self.eigenvectors):
            array.setflags(write=False)

    @property
    def dimension(self) -> int:
        return int(self.mean.shape[0])

    @property
    def n_components(self) -> int:
        return int(self.eigenvalues.shape[0])

    @property
    def total_variance(self) -> float:
        return float(np.sum(self.eigenvalues))

    @property
    def explained_variance_ratio(self) -> npt.NDArray[np.float64]:
        """Fraction of the total variance per mode (all zeros for a degenerate ensemble)."""
        total = self.total_variance
        if total <= 0.0:
            return np.zeros_like(self.eigenvalues)
        return self.eigenvalues / total

    def clamp_components(self, num_components: Optional[int]) -> int:
        """Number of modes actually used for a request; None means all of them."""
        if num_components is None:
            return self.n_components
        if num_components < 0:
            raise ValueError(f"num_components must be >= 0, got {num_components}.")
        return min(int(num_components), self.n_components)

    def project(self, observation: npt.ArrayLike, num_components: Optional[int] = None) -> npt.NDArray[np.float64]:
        """Coefficients of an observation in the (leading) eigenbasis."""
        x = np.asarray(observation, dtype=np.float64).reshape(-1)
        if x.shape[0] != self.dimension:
            raise ValueError(f"Observation has length {x.shape[0]}, expected {self.dimension}.")
        k = self.clamp_components(num_components)
        return self.eigenvectors[:, :k].T @ (x - self.mean)

    def reconstruct(self, coefficients: npt.ArrayLike, num_components: Optional[int] = None) -> npt.NDArray[np.float64]:
        """
        Map reduced coordinates back to observation space.

        Only the first ``num_components`` coefficients are used (clamped to what
        is available on both sides); missing trailing coefficients count as zero.
        """
        c = np.asarray(coefficients, dtype=np.float64).reshape(-1)
        k = min(self.clamp_components(num_components), c.shape[0])
        return self.mean + self.eigenvectors[:, :k] @ c[:k]
