"""
Discrete Laplace operators on triangle meshes, split into interior and boundary blocks.

For a linearization with ``n_int`` interior and ``n_bnd`` boundary vertices every
builder produces

    L_int : (n_int, n_int)   interior columns
    L_bnd : (n_int, n_bnd)   boundary columns

so that ``L_int @ x_int + L_bnd @ x_bnd`` is the Laplacian at each interior
vertex. Each row sums to zero over the two blocks together.

All weights are computed on face arrays expressed in linear indices, then
accumulated into one sparse (n, n) off-diagonal weight matrix.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy import sparse

from .linearization import VertexLinearization

logger = logging.getLogger(__name__)

# Range for AverageArea / Area in the clamped cotangent scheme.
# Once squared by the biharmonic operator the largest scale is 100x the smallest.
_AREA_SCALE_CLAMP = (0.5, 5.0)

# Cotangents of near-degenerate angles are clipped to keep the operator finite
_COT_CLAMP = 1e6

# Edge weight range for construct_cotangent_laplacian(clamp_weights=True).
# Negative weights (opposite angles summing past 180 degrees) are dropped.
_COT_WEIGHT_CLAMP = (0.0, 1e5)

_EPS = 1e-12


class DegenerateMeshError(ValueError):
    """Raised when a vertex neighborhood has no area under a cotangent scheme."""


class LaplacianWeightScheme(Enum):
    UNIFORM = "uniform"
    UMBRELLA = "umbrella"
    VALENCE = "valence"
    MEAN_VALUE = "mean_value"
    COTANGENT = "cotangent"
    CLAMPED_COTANGENT = "clamped_cotangent"

    @classmethod
    def from_name(cls, name):
        """Parse ``'ClampedCotangent'``, ``'clamped-cotangent'`` or ``'clamped_cotangent'``."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("-", "_")
        aliases = {
            "clampedcotangent": "clamped_cotangent",
            "meanvalue": "mean_value",
        }
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown Laplacian weight scheme '{name}' (expected one of: {valid})") from None

    @property
    def is_cotangent(self):
        return self in (LaplacianWeightScheme.COTANGENT, LaplacianWeightScheme.CLAMPED_COTANGENT)


@dataclass
class LaplacianOperators:
    """Assembled operators for one scheme on one mesh."""
    scheme: LaplacianWeightScheme
    linearization: VertexLinearization
    interior: sparse.csr_matrix
    boundary: sparse.csr_matrix
    area: Optional[sparse.csr_matrix] = None  # diagonal mass matrix, cotangent schemes only
    average_area: Optional[float] = None


# =============================================================================
# EDGE WEIGHTS
# =============================================================================
# Each function takes vertex positions and faces in linear-index order and
# returns the sparse (n, n) matrix of off-diagonal weights w_ij.

def _diagonal_matrix(values):
    n = len(values)
    idx = np.arange(n)
    return sparse.coo_matrix((np.asarray(values, dtype=np.float64), (idx, idx)), shape=(n, n)).tocsr()


def _accumulate(num_verts, rows, cols, data):
    # COO -> CSR sums duplicate (row, col) entries
    return sparse.coo_matrix((data, (rows, cols)), shape=(num_verts, num_verts)).tocsr()


def _adjacency_matrix(num_verts, faces):
    """Symmetric 0/1 vertex adjacency."""
    rows = np.concatenate([faces[:, 0], faces[:, 1], faces[:, 2], faces[:, 1], faces[:, 2], faces[:, 0]])
    cols = np.concatenate([faces[:, 1], faces[:, 2], faces[:, 0], faces[:, 0], faces[:, 1], faces[:, 2]])
    A = _accumulate(num_verts, rows, cols, np.ones(len(rows)))
    A.data[:] = 1.0
    return A


def _valences(A):
    return np.asarray(A.sum(axis=1)).ravel()


def _safe_inverse(values):
    inv = np.zeros_like(values, dtype=np.float64)
    nonzero = values > 0
    inv[nonzero] = 1.0 / values[nonzero]
    return inv


def _uniform_weights(positions, faces):
    return -_adjacency_matrix(positions.shape[0], faces)


def _umbrella_weights(positions, faces):
    A = _adjacency_matrix(positions.shape[0], faces)
    inv_sqrt = np.sqrt(_safe_inverse(_valences(A)))
    D = _diagonal_matrix(inv_sqrt)
    return (D @ A @ D).tocsr()


def _valence_weights(positions, faces):
    A = _adjacency_matrix(positions.shape[0], faces)
    return (_diagonal_matrix(_safe_inverse(_valences(A))) @ A).tocsr()


def _face_edges(positions, faces):
    v0 = positions[faces[:, 0]]
    v1 = positions[faces[:, 1]]
    v2 = positions[faces[:, 2]]

    e01 = v1 - v0
    e02 = v2 - v0
    e12 = v2 - v1

    # Twice the triangle area; |cross| is the same at every corner
    double_area = np.linalg.norm(np.cross(e01, e02), axis=1)
    return e01, e02, e12, double_area


def _cotangent_weights(positions, faces, clamp_weights=False):
    """
    w_ij = (cot(alpha) + cot(beta)) / 2 where alpha, beta are the angles opposite
    edge (i, j). Boundary edges only see one triangle and get a single term.
    """
    e01, e02, e12, double_area = _face_edges(positions, faces)

    cot_0 = np.sum(e01 * e02, axis=1) / (double_area + _EPS)
    cot_1 = np.sum(e12 * -e01, axis=1) / (double_area + _EPS)
    cot_2 = np.sum(e02 * e12, axis=1) / (double_area + _EPS)

    cot_0 = np.clip(cot_0, -_COT_CLAMP, _COT_CLAMP)
    cot_1 = np.clip(cot_1, -_COT_CLAMP, _COT_CLAMP)
    cot_2 = np.clip(cot_2, -_COT_CLAMP, _COT_CLAMP)

    # Edge (1,2) is opposite vertex 0, (2,0) opposite 1, (0,1) opposite 2
    f0, f1, f2 = faces[:, 0], faces[:, 1], faces[:, 2]
    rows = np.concatenate([f1, f2, f2, f0, f0, f1])
    cols = np.concatenate([f2, f1, f0, f2, f1, f0])
    data = 0.5 * np.concatenate([cot_0, cot_0, cot_1, cot_1, cot_2, cot_2])

    W = _accumulate(positions.shape[0], rows, cols, data)
    if clamp_weights:
        W.data = np.clip(W.data, *_COT_WEIGHT_CLAMP)
    return W


def _mean_value_weights(positions, faces):
    """
    Mean value coordinates (Floater 2003):
        w_ij = (tan(theta_1 / 2) + tan(theta_2 / 2)) / |x_j - x_i|
    with theta_1, theta_2 the angles at x_i in the triangles sharing edge (i, j).
    """
    e01, e02, e12, double_area = _face_edges(positions, faces)
    len_01 = np.linalg.norm(e01, axis=1)
    len_02 = np.linalg.norm(e02, axis=1)
    len_12 = np.linalg.norm(e12, axis=1)

    # tan(theta/2) = sin(theta) / (1 + cos(theta))
    tan_0 = double_area / (len_01 * len_02 + np.sum(e01 * e02, axis=1) + _EPS)
    tan_1 = double_area / (len_01 * len_12 - np.sum(e01 * e12, axis=1) + _EPS)
    tan_2 = double_area / (len_02 * len_12 + np.sum(e02 * e12, axis=1) + _EPS)

    f0, f1, f2 = faces[:, 0], faces[:, 1], faces[:, 2]
    rows = np.concatenate([f0, f0, f1, f1, f2, f2])
    cols = np.concatenate([f1, f2, f0, f2, f0, f1])
    data = np.concatenate([
        tan_0 / (len_01 + _EPS),
        tan_0 / (len_02 + _EPS),
        tan_1 / (len_01 + _EPS),
        tan_1 / (len_12 + _EPS),
        tan_2 / (len_02 + _EPS),
        tan_2 / (len_12 + _EPS),
    ])
    return _accumulate(positions.shape[0], rows, cols, data)


def _vertex_areas(positions, faces):
    """One third of the total area of the triangles incident to each vertex."""
    _, _, _, double_area = _face_edges(positions, faces)
    areas = np.zeros(positions.shape[0])
    np.add.at(areas, faces[:, 0], double_area / 6)
    np.add.at(areas, faces[:, 1], double_area / 6)
    np.add.at(areas, faces[:, 2], double_area / 6)
    return areas


# =============================================================================
# ASSEMBLY
# =============================================================================

def _mesh_arrays(mesh, linearization):
    """Positions and faces of ``mesh`` in linear-index order."""
    ids = linearization.to_id_array
    positions = mesh.positions_of(ids)
    order = np.argsort(ids)
    faces = order[np.searchsorted(ids, mesh.triangles, sorter=order)].reshape(-1, 3)
    return positions, faces


def _split_blocks(weights, num_interior) -> Tuple[sparse.csr_matrix, sparse.csr_matrix]:
    """
    Build (L_int, L_bnd) from the off-diagonal weight matrix.

    The diagonal of row i is minus the sum of all off-diagonal weights of that
    row, interior and boundary columns combined.
    """
    rows = weights.tocsr()[:num_interior]
    diag = -np.asarray(rows.sum(axis=1)).ravel()
    interior = (rows[:, :num_interior] + _diagonal_matrix(diag)).tocsr()
    boundary = rows[:, num_interior:].tocsr()
    return interior, boundary


def _assemble(mesh, linearization, edge_weights: Callable) -> Tuple[sparse.csr_matrix, sparse.csr_matrix]:
    positions, faces = _mesh_arrays(mesh, linearization)
    return _split_blocks(edge_weights(positions, faces), linearization.num_interior_verts())


def _prepare_linearization(mesh, linearization):
    if linearization is None:
        linearization = VertexLinearization()
    linearization.reset(mesh)
    return linearization


def construct_uniform_laplacian(mesh, linearization=None):
    """Graph Laplacian: -1 for each edge, vertex valence on the diagonal."""
    linearization = _prepare_linearization(mesh, linearization)
    interior, boundary = _assemble(mesh, linearization, _uniform_weights)
    return LaplacianOperators(LaplacianWeightScheme.UNIFORM, linearization, interior, boundary)


def construct_umbrella_laplacian(mesh, linearization=None):
    """Topological weights 1/sqrt(valence(i) * valence(j)), independent of geometry."""
    linearization = _prepare_linearization(mesh, linearization)
    interior, boundary = _assemble(mesh, linearization, _umbrella_weights)
    return LaplacianOperators(LaplacianWeightScheme.UMBRELLA, linearization, interior, boundary)


def construct_valence_weighted_laplacian(mesh, linearization=None):
    """Neighbor average minus the vertex: weights 1/valence(i), diagonal -1."""
    linearization = _prepare_linearization(mesh, linearization)
    interior, boundary = _assemble(mesh, linearization, _valence_weights)
    return LaplacianOperators(LaplacianWeightScheme.VALENCE, linearization, interior, boundary)


def construct_mean_value_weight_laplacian(mesh, linearization=None):
    linearization = _prepare_linearization(mesh, linearization)
    interior, boundary = _assemble(mesh, linearization, _mean_value_weights)
    return LaplacianOperators(LaplacianWeightScheme.MEAN_VALUE, linearization, interior, boundary)


def construct_cotangent_laplacian(mesh, linearization=None, clamp_weights=False):
    """
    Raw (unscaled) cotangent Laplacian plus the diagonal area matrix.

    The area matrix holds, for each interior vertex, one third of the summed
    area of its incident triangles.

    Args:
        mesh: TriangleMesh
        linearization: optional VertexLinearization to reset and reuse
        clamp_weights: clip every edge weight to [0, 1e5]; obtuse pairs then
            contribute nothing instead of a negative weight
    """
    linearization = _prepare_linearization(mesh, linearization)
    positions, faces = _mesh_arrays(mesh, linearization)
    n_int = linearization.num_interior_verts()

    weights = _cotangent_weights(positions, faces, clamp_weights=clamp_weights)
    interior, boundary = _split_blocks(weights, n_int)
    areas = _vertex_areas(positions, faces)[:n_int]
    return LaplacianOperators(
        LaplacianWeightScheme.COTANGENT,
        linearization,
        interior,
        boundary,
        area=_diagonal_matrix(areas),
    )


def construct_scaled_cotangent_laplacian(mesh, linearization=None, clamp_areas=False):
    """
    Cotangent Laplacian left-multiplied by diag(AverageArea / Area_i).

    This turns the cotangent operator into (mean curvature * normal) and
    evens out the scale across irregular triangulations.

    Args:
        mesh: TriangleMesh
        linearization: optional VertexLinearization to reset and reuse
        clamp_areas: clamp AverageArea / Area_i to [0.5, 5.0]

    Returns:
        LaplacianOperators with ``average_area`` set

    Raises:
        DegenerateMeshError: if any interior vertex has zero area
    """
    raw = construct_cotangent_laplacian(mesh, linearization)
    areas = raw.area.diagonal()

    if areas.size == 0:
        average_area = 0.0
        scaled_inv_area = areas
    else:
        degenerate = np.flatnonzero(~(areas > 0.0))
        if degenerate.size:
            bad_ids = [raw.linearization.to_id(i) for i in degenerate[:10]]
            raise DegenerateMeshError(
                f"{degenerate.size} interior vertices have zero area neighborhoods "
                f"(vertex ids {bad_ids}); use a non-cotangent weight scheme or repair the mesh"
            )
        average_area = float(np.mean(areas))
        scaled_inv_area = average_area / areas
        if clamp_areas:
            scaled_inv_area = np.clip(scaled_inv_area, *_AREA_SCALE_CLAMP)

    scale = _diagonal_matrix(scaled_inv_area)
    scheme = LaplacianWeightScheme.CLAMPED_COTANGENT if clamp_areas else LaplacianWeightScheme.COTANGENT

    logger.debug("Scaled cotangent Laplacian: average area %.6g, clamped=%s", average_area, clamp_areas)

    return LaplacianOperators(
        scheme,
        raw.linearization,
        (scale @ raw.interior).tocsr(),
        (scale @ raw.boundary).tocsr(),
        area=raw.area,
        average_area=average_area,
    )


def _construct_clamped_cotangent_laplacian(mesh, linearization=None):
    return construct_scaled_cotangent_laplacian(mesh, linearization, clamp_areas=True)


_BUILDERS: Dict[LaplacianWeightScheme, Callable] = {
    LaplacianWeightScheme.UNIFORM: construct_uniform_laplacian,
    LaplacianWeightScheme.UMBRELLA: construct_umbrella_laplacian,
    LaplacianWeightScheme.VALENCE: construct_valence_weighted_laplacian,
    LaplacianWeightScheme.MEAN_VALUE: construct_mean_value_weight_laplacian,
    LaplacianWeightScheme.COTANGENT: construct_scaled_cotangent_laplacian,
    LaplacianWeightScheme.CLAMPED_COTANGENT: _construct_clamped_cotangent_laplacian,
}


def construct_laplacian(scheme, mesh, linearization=None) -> LaplacianOperators:
    """
    Build the interior/boundary Laplacian blocks for ``scheme``.

    ``linearization`` (created if omitted) is reset to ``mesh`` first, so
    the returned operators always match it.
    """
    scheme = LaplacianWeightScheme.from_name(scheme)
    ops = _BUILDERS[scheme](mesh, linearization)
    logger.debug(
        "Assembled %s Laplacian: %d interior, %d boundary vertices, %d + %d nonzeros",
        scheme.value,
        ops.linearization.num_interior_verts(),
        ops.linearization.num_boundary_verts(),
        ops.interior.nnz,
        ops.boundary.nnz,
    )
    return ops


def construct_laplacian_matrix(scheme, mesh, linearization=None) -> Tuple[sparse.csr_matrix, List[int]]:
    """
    Interior Laplacian together with the ordered boundary vertex ids.

    The boundary ids are listed in linear-index order, i.e. the column order of
    the boundary block.
    """
    ops = construct_laplacian(scheme, mesh, linearization)
    return ops.interior, ops.linearization.boundary_ids().tolist()
