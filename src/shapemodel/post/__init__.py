"""
The POST layer: everything that happens after the PCA (output mesh, reports).
"""
