import numpy as np
import pytest

from src.deformation import TriangleMesh, load_mesh, save_mesh


def test_square_boundary_and_adjacency(square_mesh):
    assert square_mesh.num_vertices == 5
    assert square_mesh.num_triangles == 4
    assert [square_mesh.is_boundary_vertex(v) for v in range(5)] == [True, True, True, True, False]
    assert square_mesh.vertex_neighbors(4) == [0, 1, 2, 3]
    assert square_mesh.vertex_neighbors(0) == [1, 3, 4]
    assert square_mesh.valence(4) == 4
    assert sorted(square_mesh.vertex_triangles(4)) == [0, 1, 2, 3]


def test_closed_mesh_has_no_boundary(octahedron):
    assert not any(octahedron.is_boundary_vertex(v) for v in octahedron.vertex_ids())
    assert all(octahedron.valence(v) == 4 for v in octahedron.vertex_ids())


def test_non_contiguous_ids(bumpy_grid):
    ids = bumpy_grid.vertex_ids()
    assert ids[0] == 7
    assert ids[1] == 10
    assert bumpy_grid.max_vertex_id == 7 + 3 * 35
    assert not bumpy_grid.has_vertex(8)


def test_isolated_vertex_is_interior(square_with_isolated_vertex):
    assert not square_with_isolated_vertex.is_boundary_vertex(5)
    assert square_with_isolated_vertex.vertex_neighbors(5) == []
    assert square_with_isolated_vertex.vertex_triangles(5) == []


@pytest.mark.parametrize(
    "verts, faces, ids",
    [
        (np.zeros((3, 2)), [[0, 1, 2]], None),
        (np.zeros((3, 3)), [[0, 1, 5]], None),
        (np.zeros((3, 3)), [[0, 1, 1]], None),
        (np.zeros((3, 3)), [[0, 1, 2]], [0, 0, 1]),
        (np.zeros((3, 3)), [[0, 1, 2]], [0, 1]),
    ],
)
def test_invalid_input_raises(verts, faces, ids):
    with pytest.raises(ValueError):
        TriangleMesh(verts, faces, vertex_ids=ids)


def test_empty_mesh():
    mesh = TriangleMesh(np.zeros((0, 3)), np.zeros((0, 3)))
    assert mesh.num_vertices == 0
    assert mesh.max_vertex_id == -1
    assert mesh.positions_of([]).shape == (0, 3)


def test_polydata_round_trip(tmp_path):
    pv = pytest.importorskip("pyvista")

    plane = pv.Plane(i_resolution=3, j_resolution=3)
    mesh = TriangleMesh.from_polydata(plane)
    assert mesh.num_vertices == 16
    assert mesh.num_triangles == 18
    # 4x4 grid: the 4 center points are interior
    assert sum(not mesh.is_boundary_vertex(v) for v in mesh.vertex_ids()) == 4

    moved = np.asarray(mesh.positions_of(mesh.vertex_ids())) + np.array([0.0, 0.0, 1.0])
    path = str(tmp_path / "moved.vtk")
    save_mesh(mesh, path, moved)

    reloaded = load_mesh(path)
    assert reloaded.num_vertices == mesh.num_vertices
    assert reloaded.num_triangles == mesh.num_triangles
    np.testing.assert_allclose(reloaded.positions_of(reloaded.vertex_ids()), moved, atol=1e-6)
