import numpy as np
import pytest

from src.deformation import (
    ConstrainedMeshDeformationSolver,
    LaplacianWeightScheme,
    MatrixSolverType,
    construct_laplacian,
)


def _grid_solver(mesh, solver_type=MatrixSolverType.LU):
    ops = construct_laplacian(LaplacianWeightScheme.UNIFORM, mesh)
    positions = mesh.positions_of(ops.linearization.interior_ids())
    return ConstrainedMeshDeformationSolver(ops.interior, solver_type=solver_type), positions


def test_biharmonic_is_laplacian_normal_matrix(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    L = solver.laplacian.toarray()
    np.testing.assert_allclose(solver.biharmonic.toarray(), L.T @ L)


def test_refactor_only_when_weights_change(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    assert solver.needs_factorization

    solver.add_constraint(3, 1.0, [0.0, 0.0, 1.0])
    assert solver.update_solver_constraints()
    assert solver.factorization_count == 1
    assert not solver.needs_factorization

    # nothing changed
    assert not solver.update_solver_constraints()

    # moving the target or toggling post-fix keeps the matrix
    solver.update_constraint_position(3, [0.5, 0.5, 2.0], post_fix=True)
    assert not solver.needs_factorization
    assert not solver.update_solver_constraints()

    # a zero-weight constraint does not enter the matrix
    solver.add_constraint(5, 0.0, [0.0, 0.0, 0.0])
    assert not solver.update_solver_constraints()

    # reweighting, adding weight and removing all do
    solver.update_constraint_weight(3, 2.0)
    assert solver.update_solver_constraints()
    solver.update_constraint_weight(5, 0.5)
    assert solver.update_solver_constraints()
    assert solver.remove_constraint(5)
    assert solver.update_solver_constraints()

    assert solver.factorization_count == 4
    assert solver.weight_pattern == frozenset({(3, 2.0)})


def test_system_matrix_adds_squared_weights(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    solver.add_constraint(2, 3.0, [0.0, 0.0, 0.0])
    solver.update_solver_constraints()

    diff = (solver.system_matrix - solver.biharmonic).toarray()
    expected = np.zeros_like(diff)
    expected[2, 2] = 9.0
    np.testing.assert_allclose(diff, expected, atol=1e-12)


def test_update_position_without_constraint_is_noop(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    solver.update_constraint_position(4, [1.0, 2.0, 3.0], post_fix=True)
    solver.update_constraint_weight(4, 1.0)
    assert not solver.is_constrained(4)
    assert len(solver.constraints) == 0


def test_invalid_constraints(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    with pytest.raises(ValueError):
        solver.add_constraint(0, -1.0, [0.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        solver.add_constraint(0, 1.0, [0.0, 0.0])
    with pytest.raises(IndexError):
        solver.add_constraint(solver.num_verts, 1.0, [0.0, 0.0, 0.0])


def test_unconstrained_solve_returns_source_positions(bumpy_grid):
    solver, positions = _grid_solver(bumpy_grid)
    solver.update_solver_constraints()
    success, solution = solver.solve_with_guess(positions, solver.biharmonic @ positions)
    assert success
    np.testing.assert_allclose(solution, positions, atol=1e-9)


def test_post_fix_overrides_solution(bumpy_grid):
    solver, positions = _grid_solver(bumpy_grid)
    target = np.array([0.3, -0.7, 4.0])
    solver.add_constraint(6, 0.0, target, post_fix=True)
    solver.add_constraint(7, 1.0, [0.0, 0.0, 1.0], post_fix=False)
    solver.update_solver_constraints()

    success, solution = solver.solve_with_guess(positions, solver.biharmonic @ positions)
    assert success
    solver.update_with_post_fix_constraints(solution)
    assert np.array_equal(solution[6], target)
    assert not np.array_equal(solution[7], [0.0, 0.0, 1.0])


@pytest.mark.parametrize("solver_type", [MatrixSolverType.PCG, MatrixSolverType.BICGSTAB])
def test_iterative_solvers_match_lu(bumpy_grid, solver_type):
    direct, positions = _grid_solver(bumpy_grid, MatrixSolverType.LU)
    iterative, _ = _grid_solver(bumpy_grid, solver_type)
    source = direct.biharmonic @ positions

    for s in (direct, iterative):
        s.add_constraint(5, 1.0, positions[5] + [0.0, 0.0, 0.5])
        s.update_solver_constraints()

    ok_direct, expected = direct.solve_with_guess(positions, source)
    ok_iter, result = iterative.solve_with_guess(positions, source)
    assert ok_direct and ok_iter
    np.testing.assert_allclose(result, expected, atol=1e-5)


def test_singular_system_reports_failure_and_recovers(square_with_isolated_vertex):
    ops = construct_laplacian(LaplacianWeightScheme.UNIFORM, square_with_isolated_vertex)
    positions = square_with_isolated_vertex.positions_of(ops.linearization.interior_ids())
    solver = ConstrainedMeshDeformationSolver(ops.interior)
    source = solver.biharmonic @ positions

    # the isolated vertex has an all-zero row and column
    solver.update_solver_constraints()
    success, solution = solver.solve_with_guess(positions, source)
    assert not success
    np.testing.assert_array_equal(solution, positions)

    isolated = ops.linearization.to_index(5)
    solver.add_constraint(isolated, 1.0, [3.0, 3.0, 4.0])
    solver.update_solver_constraints()
    success, solution = solver.solve_with_guess(positions, source)
    assert success
    np.testing.assert_allclose(solution[isolated], [3.0, 3.0, 4.0])


def test_empty_system_is_noop():
    from scipy import sparse

    solver = ConstrainedMeshDeformationSolver(sparse.csr_matrix((0, 0)))
    solver.update_solver_constraints()
    success, solution = solver.solve_with_guess(np.zeros((0, 3)), np.zeros((0, 3)))
    assert success
    assert solution.shape == (0, 3)


def test_solver_type_from_name():
    assert MatrixSolverType.from_name("PCG") is MatrixSolverType.PCG
    assert MatrixSolverType.PCG.is_iterative
    assert not MatrixSolverType.LU.is_iterative
    with pytest.raises(ValueError):
        MatrixSolverType.from_name("qr")


def test_post_fix_constraints_keep_their_weight_term(bumpy_grid):
    solver, _ = _grid_solver(bumpy_grid)
    target = np.array([0.1, 0.2, 0.3])
    solver.add_constraint(4, 2.0, target, post_fix=True)
    solver.update_solver_constraints()

    diff = (solver.system_matrix - solver.biharmonic).toarray()
    assert diff[4, 4] == pytest.approx(4.0)

    # same right-hand side contribution as a soft constraint
    soft, _ = _grid_solver(bumpy_grid)
    soft.add_constraint(4, 2.0, target)
    soft.update_solver_constraints()
    zeros = np.zeros((solver.num_verts, 3))
    _, fixed_solution = solver.solve_with_guess(zeros, zeros)
    _, soft_solution = soft.solve_with_guess(zeros, zeros)
    np.testing.assert_allclose(fixed_solution, soft_solution)
