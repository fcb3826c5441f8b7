"""
Constrained biharmonic mesh deformer.

Expected use::

    deformer = construct_constrained_mesh_deformer(LaplacianWeightScheme.CLAMPED_COTANGENT, mesh)

    for vid, weight, target, post_fix in handles:
        deformer.add_constraint(vid, weight, target, post_fix)
    ok, positions = deformer.deform()          # positions[vid] is the new position

    # while dragging: move targets and re-solve without rebuilding the Laplacian
    deformer.update_constraint_position(vid, new_target, post_fix)
    ok, positions = deformer.deform()

Boundary vertices never move; they act as fixed boundary conditions.
"""

import logging

import numpy as np

from .config import DeformerOptions
from .laplacian import LaplacianWeightScheme, construct_laplacian
from .linearization import VertexLinearization
from .solver import ConstrainedMeshDeformationSolver, MatrixSolverType

logger = logging.getLogger(__name__)


class ConstrainedMeshDeformer:
    """
    Build once per mesh, then call ``deform`` as often as constraints change.

    Args:
        mesh: TriangleMesh, must not change topology while the deformer is alive
        weight_scheme: LaplacianWeightScheme or its name
        solver_type: MatrixSolverType or its name
        tolerance: relative tolerance for iterative solvers
        max_iterations: iteration cap for iterative solvers

    Raises:
        DegenerateMeshError: cotangent scheme on a mesh with a zero-area vertex
    """

    def __init__(self, mesh, weight_scheme=LaplacianWeightScheme.CLAMPED_COTANGENT,
                 solver_type=MatrixSolverType.LU, tolerance=1e-8, max_iterations=None):
        self._mesh = mesh
        self._linearization = VertexLinearization()

        operators = construct_laplacian(weight_scheme, mesh, self._linearization)
        self._weight_scheme = operators.scheme
        self._average_area = operators.average_area

        self._solver = ConstrainedMeshDeformationSolver(
            operators.interior,
            solver_type=solver_type,
            tolerance=tolerance,
            max_iterations=max_iterations,
        )

        self._original_interior_positions = mesh.positions_of(self._linearization.interior_ids())
        self._boundary_positions = mesh.positions_of(self._linearization.boundary_ids())

        # B @ x_0; for the cotangent schemes this is the (bi)Laplacian of the
        # undeformed surface that the solve tries to preserve
        self._laplacian_vectors = np.asarray(
            self._solver.biharmonic @ self._original_interior_positions, dtype=np.float64
        ).reshape(-1, 3)

        logger.debug(
            "Deformer ready: %s weights, %s solver, %d interior / %d boundary vertices",
            self._weight_scheme.value,
            self._solver.solver_type.value,
            self._linearization.num_interior_verts(),
            self._linearization.num_boundary_verts(),
        )

    @classmethod
    def from_options(cls, mesh, options: DeformerOptions):
        return cls(
            mesh,
            weight_scheme=options.weight_scheme,
            solver_type=options.solver_type,
            tolerance=options.tolerance,
            max_iterations=options.max_iterations,
        )

    # -------------------------------------------------------------------------

    @property
    def mesh(self):
        return self._mesh

    @property
    def weight_scheme(self):
        return self._weight_scheme

    @property
    def linearization(self):
        return self._linearization

    @property
    def solver(self):
        return self._solver

    @property
    def average_area(self):
        """Mean interior vertex area for cotangent schemes, otherwise None."""
        return self._average_area

    @property
    def original_interior_positions(self):
        return self._original_interior_positions

    @property
    def laplacian_vectors(self):
        return self._laplacian_vectors

    # -------------------------------------------------------------------------
    # Constraints (keyed by mesh vertex id)
    # -------------------------------------------------------------------------

    def _index_of(self, vid):
        try:
            return self._linearization.to_index(vid)
        except KeyError:
            raise KeyError(f"vertex id {vid} is not in the mesh") from None

    def _interior_index(self, vid):
        index = self._index_of(vid)
        if not self._linearization.is_interior_index(index):
            return None
        return index

    def add_constraint(self, vid, weight, target_position, post_fix=False):
        """
        Constrain vertex ``vid`` toward ``target_position``.

        Returns:
            False if ``vid`` is a boundary vertex (those are already fixed and the
            constraint is ignored), True otherwise
        """
        index = self._interior_index(vid)
        if index is None:
            logger.debug("Vertex %d is on the boundary; constraint ignored", vid)
            return False
        self._solver.add_constraint(index, weight, target_position, post_fix)
        return True

    def update_constraint_position(self, vid, target_position, post_fix=False):
        """Move an existing constraint; does nothing if ``vid`` is unconstrained."""
        index = self._interior_index(vid)
        if index is not None:
            self._solver.update_constraint_position(index, target_position, post_fix)

    def update_constraint_weight(self, vid, weight):
        index = self._interior_index(vid)
        if index is not None:
            self._solver.update_constraint_weight(index, weight)

    def remove_constraint(self, vid):
        index = self._interior_index(vid)
        return index is not None and self._solver.remove_constraint(index)

    def clear_constraints(self):
        self._solver.clear_constraints()

    def is_constrained(self, vid):
        index = self._interior_index(vid)
        return index is not None and self._solver.is_constrained(index)

    # -------------------------------------------------------------------------
    # Solve
    # -------------------------------------------------------------------------

    def deform(self):
        """
        Solve for new positions under the current constraints.

        Returns:
            (success, positions) where positions is a (max_vertex_id + 1, 3)
            array indexed by vertex id. Rows of ids absent from the mesh are
            zero. The buffer is filled even when success is False.
        """
        # Re-factors only if constraint weights changed
        self._solver.update_solver_constraints()

        success, solution = self._solver.solve_with_guess(
            self._original_interior_positions, self._laplacian_vectors
        )
        self._solver.update_with_post_fix_constraints(solution)

        positions = np.zeros((self._mesh.max_vertex_id + 1, 3), dtype=np.float64)
        positions[self._linearization.interior_ids()] = solution
        positions[self._linearization.boundary_ids()] = self._boundary_positions

        if not success:
            logger.warning("Deformation solve failed; returning best-effort positions")
        return success, positions


def construct_constrained_mesh_deformer(weight_scheme, mesh, solver_type=MatrixSolverType.LU):
    """Factory mirroring ``ConstrainedMeshDeformer(mesh, weight_scheme, solver_type)``."""
    return ConstrainedMeshDeformer(mesh, weight_scheme=weight_scheme, solver_type=solver_type)
