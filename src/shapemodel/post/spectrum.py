"""
Eigen Spectrum Report
Console summary and scree plot of a computed PCA model.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np
from matplotlib.figure import Figure

from shapemodel.errors import SerializationError
from shapemodel.model.pca_model import PCAModel

logger = logging.getLogger(__name__)


def summarize(model: PCAModel, limit: int = 10) -> list[str]:
    """One line per leading mode: eigenvalue, explained and cumulative variance."""
    ratios = model.explained_variance_ratio
    cumulative = np.cumsum(ratios)

    lines = [f"{'mode':>4}  {'eigenvalue':>14}  {'explained':>9}  {'cumulative':>10}"]
    for i in range(min(limit, model.n_components)):
        lines.append(f"{i + 1:>4}  {model.eigenvalues[i]:>14.6g}  {ratios[i]:>9.2%}  {cumulative[i]:>10.2%}")
    if model.n_components > limit:
        lines.append(f"... {model.n_components - limit} more mode(s)")
    return lines


def log_summary(model: PCAModel, limit: int = 10) -> None:
    logger.info(f"Eigenvalues ({model.n_components} modes, {model.n_samples} samples):")
    for line in summarize(model, limit):
        logger.info(line)


def plot_spectrum(model: PCAModel, filepath: Union[str, Path]) -> Path:
    """Save a scree plot (explained variance per mode plus cumulative curve) as an image."""
    path = Path(filepath)
    ratios = model.explained_variance_ratio
    modes = np.arange(1, model.n_components + 1)

    fig = Figure(figsize=(6, 4))
    ax = fig.add_subplot(1, 1, 1)
    ax.bar(modes, ratios, color="tab:blue", label="explained")
    ax.plot(modes, np.cumsum(ratios), color="tab:red", marker="o", label="cumulative")
    ax.set_xlabel("Mode")
    ax.set_ylabel("Fraction of total variance")
    ax.set_ylim(0.0, 1.05)
    ax.set_xticks(modes)
    ax.grid(True, axis="y", linestyle=":")
    ax.legend(loc="center right")
    ax.set_title(f"Eigen spectrum ({model.n_samples} samples)")
    fig.tight_layout()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=120)
    except (OSError, ValueError) as e:
        # ValueError: suffix without a matplotlib backend, e.g. ".xyz"
        raise SerializationError(f"Failed to save spectrum plot '{path}': {e}") from e

    logger.info(f"Spectrum plot saved to: {path}")
    return path
