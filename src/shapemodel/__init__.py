"""
Statistical shape model of point-correspondent meshes.

Loads a directory of meshes that share one vertex topology, runs PCA over
their vertex positions and writes the first mesh reconstructed from the
leading modes of variation.
"""
