"""
The ANALYSIS layer: assembly of the observation matrix and the PCA engine.
"""
from shapemodel.analysis.ensemble import EnsembleBatch, EnsembleLoader, FileResult, LoadStatus
from shapemodel.analysis.pca import PCA, PCAState, decompose

__all__ = [
    "EnsembleBatch",
    "EnsembleLoader",
    "FileResult",
    "LoadStatus",
    "PCA",
    "PCAState",
    "decompose",
]
