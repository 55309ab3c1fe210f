"""
The MODEL layer contains pure data structures and file I/O.
It has NO knowledge of the statistics: it deals with Mesh Records,
mesh files (PLY through PyVista) and stored PCA models (HDF5).
"""
