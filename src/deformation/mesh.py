"""
Indexed triangle mesh used as the adjacency source for the deformer.

Vertex ids are opaque integers: they do not have to start at 0 or be
contiguous. Topology is fixed once the mesh is built.
"""

import logging
from collections import defaultdict

import numpy as np

logger = logging.getLogger(__name__)


class TriangleMesh:
    """
    Read-only triangle mesh with one-ring and boundary queries.

    Args:
        positions: (N, 3) vertex positions
        triangles: (M, 3) triangles given as vertex ids
        vertex_ids: optional length-N ids for the rows of ``positions``
            (defaults to 0..N-1)
    """

    def __init__(self, positions, triangles, vertex_ids=None):
        positions = np.asarray(positions, dtype=np.float64)
        if positions.size == 0:
            positions = positions.reshape(0, 3)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError("positions must be shaped (N, 3)")

        if vertex_ids is None:
            vertex_ids = np.arange(positions.shape[0], dtype=np.int64)
        vertex_ids = np.asarray(vertex_ids, dtype=np.int64).reshape(-1)
        if vertex_ids.shape[0] != positions.shape[0]:
            raise ValueError("vertex_ids length must match number of positions")
        if np.any(vertex_ids < 0):
            raise ValueError("vertex ids must be non-negative")
        if np.unique(vertex_ids).size != vertex_ids.size:
            raise ValueError("vertex ids must be unique")

        triangles = np.asarray(triangles, dtype=np.int64)
        if triangles.size == 0:
            triangles = triangles.reshape(0, 3)
        if triangles.ndim != 2 or triangles.shape[1] != 3:
            raise ValueError("triangles must be shaped (M, 3)")

        self._positions = {int(vid): positions[row].copy() for row, vid in enumerate(vertex_ids)}
        self._ids = sorted(self._positions)

        for tri in triangles:
            for vid in tri:
                if int(vid) not in self._positions:
                    raise ValueError(f"triangle references unknown vertex id {int(vid)}")
            if len(set(tri.tolist())) != 3:
                raise ValueError(f"triangle {tri.tolist()} repeats a vertex")
        self._triangles = triangles.copy()

        self._build_adjacency()

    def _build_adjacency(self):
        neighbors = defaultdict(set)
        vertex_triangles = defaultdict(list)
        edge_count = defaultdict(int)

        for tid, (a, b, c) in enumerate(self._triangles.tolist()):
            for i, j in ((a, b), (b, c), (c, a)):
                neighbors[i].add(j)
                neighbors[j].add(i)
                edge_count[(min(i, j), max(i, j))] += 1
            vertex_triangles[a].append(tid)
            vertex_triangles[b].append(tid)
            vertex_triangles[c].append(tid)

        # Boundary edges are shared by exactly one triangle
        boundary = set()
        for (i, j), count in edge_count.items():
            if count == 1:
                boundary.add(i)
                boundary.add(j)

        self._neighbors = {vid: sorted(neighbors.get(vid, ())) for vid in self._ids}
        self._vertex_triangles = {vid: vertex_triangles.get(vid, []) for vid in self._ids}
        self._boundary = boundary

        logger.debug(
            "Built mesh adjacency: %d vertices, %d triangles, %d boundary vertices",
            len(self._ids), len(self._triangles), len(boundary),
        )

    @classmethod
    def from_arrays(cls, verts, faces):
        """Build a mesh whose vertex ids are the row indices of ``verts``."""
        return cls(verts, faces)

    @classmethod
    def from_polydata(cls, polydata):
        """
        Build a mesh from a PyVista ``PolyData`` surface.

        Non-triangular faces are triangulated first.
        """
        surface = polydata.triangulate()
        faces = np.asarray(surface.faces).reshape(-1, 4)[:, 1:]
        return cls(np.asarray(surface.points, dtype=np.float64), faces)

    def to_polydata(self, positions=None):
        """
        Convert to PyVista ``PolyData``.

        Args:
            positions: optional (max_vertex_id + 1, 3) buffer indexed by vertex id,
                e.g. the output of ``ConstrainedMeshDeformer.deform``

        Returns:
            pv.PolyData with points ordered by ascending vertex id
        """
        import pyvista as pv

        ids = np.asarray(self._ids, dtype=np.int64)
        if positions is None:
            points = self.positions_of(ids)
        else:
            points = np.asarray(positions, dtype=np.float64)[ids]

        row_of = {vid: row for row, vid in enumerate(self._ids)}
        faces = np.array([[row_of[v] for v in tri] for tri in self._triangles.tolist()], dtype=np.int64)
        faces = faces.reshape(-1, 3)
        faces_padded = np.hstack([np.full((faces.shape[0], 1), 3, dtype=np.int64), faces]).astype(np.int64)
        return pv.PolyData(points, faces_padded)

    @property
    def num_vertices(self):
        return len(self._ids)

    @property
    def num_triangles(self):
        return self._triangles.shape[0]

    @property
    def max_vertex_id(self):
        """Largest vertex id, or -1 for an empty mesh."""
        return self._ids[-1] if self._ids else -1

    @property
    def triangles(self):
        return self._triangles

    def vertex_ids(self):
        return list(self._ids)

    def has_vertex(self, vid):
        return vid in self._positions

    def vertex_position(self, vid):
        return self._positions[vid]

    def positions_of(self, ids):
        """Stack the positions of ``ids`` into an (len(ids), 3) array."""
        if len(ids) == 0:
            return np.zeros((0, 3), dtype=np.float64)
        return np.array([self._positions[int(vid)] for vid in ids], dtype=np.float64)

    def vertex_neighbors(self, vid):
        return self._neighbors[vid]

    def vertex_triangles(self, vid):
        return self._vertex_triangles[vid]

    def triangle(self, tid):
        a, b, c = self._triangles[tid]
        return int(a), int(b), int(c)

    def valence(self, vid):
        return len(self._neighbors[vid])

    def is_boundary_vertex(self, vid):
        return vid in self._boundary


def load_mesh(path):
    """Read any PyVista-supported surface file into a ``TriangleMesh``."""
    import pyvista as pv

    data = pv.read(path)
    if not isinstance(data, pv.PolyData):
        data = data.extract_surface()
    return TriangleMesh.from_polydata(data)


def save_mesh(mesh, path, positions=None):
    """Write ``mesh`` (optionally with deformed positions) to ``path``."""
    mesh.to_polydata(positions).save(path)
