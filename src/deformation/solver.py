"""
Biharmonic constrained solver.

Solves, independently for x, y and z,

    (L^T L + W) p = L^T L p_0 + W c

where L is the interior Laplacian, W = diag(weight_i^2) over constrained
vertices and c holds the constraint targets. The system matrix only depends on
the constraint weights, so moving a target re-uses the current factorization.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Optional

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import bicgstab, cg, splu

logger = logging.getLogger(__name__)

# Headroom over the numpy.linalg.matrix_rank cutoff (n * eps); rounding leaves
# the zero pivot of a rank-deficient system at a few n * eps.
_PIVOT_RTOL = 10.0


class MatrixSolverType(Enum):
    LU = "lu"
    PCG = "pcg"
    BICGSTAB = "bicgstab"

    @classmethod
    def from_name(cls, name):
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown matrix solver type '{name}' (expected one of: {valid})") from None

    @property
    def is_iterative(self):
        return self is not MatrixSolverType.LU


@dataclass
class Constraint:
    weight: float
    target_position: np.ndarray
    post_fix: bool = False


def _as_position(value):
    position = np.asarray(value, dtype=np.float64).reshape(-1)
    if position.shape != (3,):
        raise ValueError("target position must have 3 components")
    return position.copy()


def _is_numerically_singular(lu, n):
    """
    Rank test on the pivots of an LU factor.

    A pivot at or below ``_PIVOT_RTOL * n * eps * max|pivot|`` counts as zero,
    e.g. the constant null space of L^T L on a closed mesh without constraints.
    """
    pivots = np.abs(lu.U.diagonal())
    if pivots.size == 0:
        return False
    return pivots.min() <= _PIVOT_RTOL * n * np.finfo(np.float64).eps * pivots.max()


class ConstrainedMeshDeformationSolver:
    """
    Owns the biharmonic operator, the constraint table and the factored system.

    Constraints are keyed by linear (interior) vertex index. The factorization
    is rebuilt lazily in ``update_solver_constraints`` only when the set of
    nonzero ``(index, weight)`` pairs differs from the one last factored.

    Args:
        laplacian_interior: (n, n) interior Laplacian
        solver_type: MatrixSolverType or its name
        tolerance: relative tolerance for iterative solvers
        max_iterations: iteration cap for iterative solvers (None = scipy default)
    """

    def __init__(self, laplacian_interior, solver_type=MatrixSolverType.LU,
                 tolerance=1e-8, max_iterations=None):
        self._laplacian = sparse.csr_matrix(laplacian_interior)
        rows, cols = self._laplacian.shape
        if rows != cols:
            raise ValueError("interior Laplacian must be square")

        self._biharmonic = (self._laplacian.T @ self._laplacian).tocsr()
        self._num_verts = rows
        self._solver_type = MatrixSolverType.from_name(solver_type)
        self._tolerance = float(tolerance)
        self._max_iterations = max_iterations

        self._constraints: Dict[int, Constraint] = {}
        self._constraint_rhs = np.zeros((rows, 3), dtype=np.float64)

        self._factored_pattern: Optional[frozenset] = None
        self._system_matrix = None
        self._lu = None
        self._preconditioner = None
        self._factorization_count = 0

    # -------------------------------------------------------------------------
    # Operators and state
    # -------------------------------------------------------------------------

    @property
    def laplacian(self):
        return self._laplacian

    @property
    def biharmonic(self):
        """B = L^T L (read-only; do not modify in place)."""
        return self._biharmonic

    @property
    def num_verts(self):
        return self._num_verts

    @property
    def solver_type(self):
        return self._solver_type

    @property
    def system_matrix(self):
        """B + diag(weight^2) as of the last factorization, or None."""
        return self._system_matrix

    @property
    def factorization_count(self):
        return self._factorization_count

    @property
    def weight_pattern(self):
        """Cache key of the system matrix: every nonzero (index, weight) pair."""
        return frozenset((i, c.weight) for i, c in self._constraints.items() if c.weight != 0.0)

    @property
    def needs_factorization(self):
        return self._factored_pattern is None or self._factored_pattern != self.weight_pattern

    @property
    def constraints(self):
        return MappingProxyType(self._constraints)

    # -------------------------------------------------------------------------
    # Constraint table
    # -------------------------------------------------------------------------

    def _check_index(self, index):
        if not 0 <= index < self._num_verts:
            raise IndexError(f"constraint index {index} outside interior range [0, {self._num_verts})")

    def add_constraint(self, index, weight, target_position, post_fix=False):
        """Insert or overwrite the constraint on interior vertex ``index``."""
        self._check_index(index)
        weight = float(weight)
        if not weight >= 0.0:
            raise ValueError(f"constraint weight must be >= 0, got {weight}")
        self._constraints[index] = Constraint(weight, _as_position(target_position), bool(post_fix))

    def update_constraint_position(self, index, target_position, post_fix=False):
        """
        Move the target of an existing constraint.

        Does nothing when ``index`` has no constraint.
        """
        constraint = self._constraints.get(index)
        if constraint is None:
            logger.debug("Ignoring position update for unconstrained index %d", index)
            return
        constraint.target_position = _as_position(target_position)
        constraint.post_fix = bool(post_fix)

    def update_constraint_weight(self, index, weight):
        """Change the weight of an existing constraint; no-op if there is none."""
        constraint = self._constraints.get(index)
        if constraint is None:
            logger.debug("Ignoring weight update for unconstrained index %d", index)
            return
        weight = float(weight)
        if not weight >= 0.0:
            raise ValueError(f"constraint weight must be >= 0, got {weight}")
        constraint.weight = weight

    def remove_constraint(self, index):
        return self._constraints.pop(index, None) is not None

    def clear_constraints(self):
        self._constraints.clear()

    def is_constrained(self, index):
        return index in self._constraints

    # -------------------------------------------------------------------------
    # Factorization
    # -------------------------------------------------------------------------

    def update_solver_constraints(self):
        """
        Refresh the constraint right-hand side and, if the weight pattern
        changed, rebuild and re-factor the system matrix.

        Post-fix constraints contribute their weight^2 term like soft ones; the
        post-fix override is applied on top of the solve.

        Returns:
            True if a re-factorization happened
        """
        rhs = np.zeros((self._num_verts, 3), dtype=np.float64)
        for index, constraint in self._constraints.items():
            if constraint.weight != 0.0:
                rhs[index] += constraint.weight ** 2 * constraint.target_position
        self._constraint_rhs = rhs

        pattern = self.weight_pattern
        if self._factored_pattern is not None and pattern == self._factored_pattern:
            logger.debug("Constraint weights unchanged; reusing factorization")
            return False

        self._factor(pattern)
        return True

    def _factor(self, pattern):
        diag = np.zeros(self._num_verts, dtype=np.float64)
        for index, weight in pattern:
            diag[index] += weight ** 2

        idx = np.arange(self._num_verts)
        weights = sparse.coo_matrix((diag, (idx, idx)), shape=(self._num_verts, self._num_verts))
        system = (self._biharmonic + weights).tocsc()

        self._system_matrix = system
        self._factored_pattern = pattern
        self._factorization_count += 1
        self._lu = None
        self._preconditioner = None

        if self._num_verts == 0:
            return

        if self._solver_type is MatrixSolverType.LU:
            try:
                lu = splu(system)
            except RuntimeError as exc:
                logger.warning("LU factorization failed (%s); solves will report failure", exc)
            else:
                if _is_numerically_singular(lu, self._num_verts):
                    logger.warning("LU factor is numerically singular; solves will report failure")
                else:
                    self._lu = lu
        else:
            # Jacobi preconditioner
            d = system.diagonal()
            d = np.where(np.abs(d) > 0.0, d, 1.0)
            self._preconditioner = sparse.diags(1.0 / d).tocsr()

        logger.debug(
            "Factored %d x %d system (%s) with %d weighted constraints",
            self._num_verts, self._num_verts, self._solver_type.value, len(pattern),
        )

    # -------------------------------------------------------------------------
    # Solve
    # -------------------------------------------------------------------------

    def solve_with_guess(self, guess, source_vectors):
        """
        Solve (B + W) x = source_vectors + W c for all three axes.

        Args:
            guess: (n, 3) initial guess, only used by iterative solvers
            source_vectors: (n, 3) biharmonic source term, usually B @ x_0

        Returns:
            (success, solution) where solution is (n, 3). On failure the
            solution is a best-effort result: the last iterate of an iterative
            solver or ``guess`` when the direct factorization is unusable.
        """
        guess = np.asarray(guess, dtype=np.float64).reshape(self._num_verts, 3)
        source_vectors = np.asarray(source_vectors, dtype=np.float64).reshape(self._num_verts, 3)

        if self._num_verts == 0:
            return True, np.zeros((0, 3), dtype=np.float64)

        if self._system_matrix is None:
            self.update_solver_constraints()

        rhs = source_vectors + self._constraint_rhs

        if self._solver_type is MatrixSolverType.LU:
            if self._lu is None:
                return False, guess.copy()
            solution = np.asarray(self._lu.solve(rhs), dtype=np.float64).reshape(self._num_verts, 3)
            if not np.isfinite(solution).all():
                logger.warning("LU solve produced non-finite values")
                return False, guess.copy()
            return True, solution

        iterate = bicgstab if self._solver_type is MatrixSolverType.BICGSTAB else cg
        solution = np.empty_like(rhs)
        success = True
        for axis in range(3):
            x, info = iterate(
                self._system_matrix,
                rhs[:, axis],
                x0=guess[:, axis],
                rtol=self._tolerance,
                maxiter=self._max_iterations,
                M=self._preconditioner,
            )
            if info != 0:
                logger.warning("%s did not converge on axis %d (info=%d)", self._solver_type.value, axis, info)
                success = False
            solution[:, axis] = x

        if not np.isfinite(solution).all():
            logger.warning("%s produced non-finite values", self._solver_type.value)
            return False, guess.copy()
        return success, solution

    def update_with_post_fix_constraints(self, solution):
        """Overwrite rows of ``solution`` with the targets of post-fix constraints (in place)."""
        for index, constraint in self._constraints.items():
            if constraint.post_fix:
                solution[index] = constraint.target_position
        return solution
