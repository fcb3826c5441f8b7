"""
Mapping between mesh vertex ids and a contiguous, interior-first index space.
"""

import numpy as np


class VertexLinearization:
    """
    Bijection between vertex ids and linear indices.

    Indices [0, num_interior_verts) are interior vertices and
    [num_interior_verts, num_verts) are boundary vertices. Every matrix
    built downstream is split into interior/boundary blocks by index range
    alone, so this ordering must hold after each ``reset``.
    """

    def __init__(self, mesh=None):
        self._to_index = {}
        self._to_id = np.zeros(0, dtype=np.int64)
        self._num_boundary = 0
        if mesh is not None:
            self.reset(mesh)

    def reset(self, mesh):
        """Rebuild the mapping for ``mesh``, discarding any previous state."""
        interior = []
        boundary = []
        for vid in mesh.vertex_ids():
            if mesh.is_boundary_vertex(vid):
                boundary.append(vid)
            else:
                interior.append(vid)

        self._to_id = np.array(interior + boundary, dtype=np.int64)
        self._to_index = {int(vid): i for i, vid in enumerate(self._to_id)}
        self._num_boundary = len(boundary)

    def to_index(self, vid):
        """Linear index of vertex ``vid``; raises KeyError for unknown ids."""
        return self._to_index[vid]

    def to_id(self, index):
        return int(self._to_id[index])

    @property
    def to_index_map(self):
        return self._to_index

    @property
    def to_id_array(self):
        return self._to_id

    def num_verts(self):
        return self._to_id.shape[0]

    def num_boundary_verts(self):
        return self._num_boundary

    def num_interior_verts(self):
        return self.num_verts() - self.num_boundary_verts()

    def is_interior_index(self, index):
        return 0 <= index < self.num_interior_verts()

    def interior_ids(self):
        return self._to_id[:self.num_interior_verts()]

    def boundary_ids(self):
        return self._to_id[self.num_interior_verts():]
