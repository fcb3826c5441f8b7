"""Shared test meshes."""

import os
import sys

import numpy as np
import pytest

# Allow running the tests from a plain checkout
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.deformation import TriangleMesh  # noqa: E402


def make_square_mesh(center=(0.5, 0.5, 0.0)):
    """Unit square: 4 boundary corners (ids 0-3) fanned around one interior vertex (id 4)."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
            center,
        ],
        dtype=np.float64,
    )
    faces = np.array([[0, 1, 4], [1, 2, 4], [2, 3, 4], [3, 0, 4]], dtype=np.int64)
    return TriangleMesh(verts, faces)


def make_grid_mesh(xs, ys, height=None, id_offset=0, id_stride=1):
    """
    Triangulated grid over ``xs`` x ``ys``.

    ``height(x, y)`` sets z. Vertex ids are ``id_offset + id_stride * k`` so
    tests can exercise non-contiguous ids.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    nx, ny = len(xs), len(ys)

    verts = []
    for j in range(ny):
        for i in range(nx):
            z = height(xs[i], ys[j]) if height is not None else 0.0
            verts.append([xs[i], ys[j], z])
    verts = np.array(verts)

    ids = id_offset + id_stride * np.arange(nx * ny)
    faces = []
    for j in range(ny - 1):
        for i in range(nx - 1):
            a = j * nx + i
            b = a + 1
            c = a + nx
            d = c + 1
            # alternate the split diagonal so valences vary
            if (i + j) % 2 == 0:
                faces.extend([[a, b, d], [a, d, c]])
            else:
                faces.extend([[a, b, c], [b, d, c]])
    faces = ids[np.array(faces)]
    return TriangleMesh(verts, faces, vertex_ids=ids)


def make_octahedron():
    """Closed surface, every vertex interior."""
    verts = np.array(
        [
            [1.0, 0.0, 0.0],
            [-1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, -1.0, 0.0],
            [0.0, 0.0, 1.0],
            [0.0, 0.0, -1.0],
        ]
    )
    faces = np.array(
        [
            [0, 2, 4], [2, 1, 4], [1, 3, 4], [3, 0, 4],
            [2, 0, 5], [1, 2, 5], [3, 1, 5], [0, 3, 5],
        ]
    )
    return TriangleMesh(verts, faces)


@pytest.fixture
def square_mesh():
    return make_square_mesh()


@pytest.fixture
def bumpy_grid():
    """6x6 grid with a smooth bump and non-contiguous vertex ids."""
    coords = np.linspace(0.0, 1.0, 6)
    return make_grid_mesh(
        coords,
        coords,
        height=lambda x, y: 0.2 * np.sin(np.pi * x) * np.sin(np.pi * y),
        id_offset=7,
        id_stride=3,
    )


@pytest.fixture
def octahedron():
    return make_octahedron()


@pytest.fixture
def square_with_isolated_vertex():
    """The unit square plus vertex 5, which belongs to no triangle."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.5, 0.5, 0.0],
            [3.0, 3.0, 3.0],
        ]
    )
    faces = np.array([[0, 1, 4], [1, 2, 4], [2, 3, 4], [3, 0, 4]])
    return TriangleMesh(verts, faces)
