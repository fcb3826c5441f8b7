import argparse
import csv
import datetime
import os
import sys
import time
from dataclasses import dataclass
from typing import List

import numpy as np

# Add project root to path so we can import from src
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.deformation import (
    ConstrainedMeshDeformer,
    LaplacianWeightScheme,
    MatrixSolverType,
    TriangleMesh,
    compute_displacement_stats,
    deformation_energy,
)
from scripts.generate_synthetic_data import center_handle, create_plane, create_wavy_plane


@dataclass
class ExperimentParams:
    surface: str  # 'plane' or 'wavy_plane'
    resolution: int
    weight_scheme: LaplacianWeightScheme
    solver_type: MatrixSolverType
    lift: float = 0.25
    drag_steps: int = 5


def build_surface(params: ExperimentParams):
    if params.surface == 'wavy_plane':
        return create_wavy_plane(params.resolution)
    return create_plane(params.resolution)


def run_single_experiment(params: ExperimentParams):
    """Build a deformer, lift the center vertex, then drag it and re-solve."""
    result = {
        'timestamp': datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        'status': 'success',
        'error_message': '',
        'surface': params.surface,
        'resolution': params.resolution,
        'weight_scheme': params.weight_scheme.value,
        'solver_type': params.solver_type.value,
    }

    try:
        surface = build_surface(params)
        mesh = TriangleMesh.from_polydata(surface)
        handle = center_handle(surface)
        origin = mesh.vertex_position(handle)

        start = time.time()
        deformer = ConstrainedMeshDeformer(mesh, params.weight_scheme, params.solver_type)
        result['build_time_sec'] = time.time() - start

        deformer.add_constraint(handle, 1.0, origin + np.array([0.0, 0.0, params.lift]), post_fix=True)

        start = time.time()
        success, positions = deformer.deform()
        result['first_solve_time_sec'] = time.time() - start

        # Dragging only moves the target, so these solves reuse the factorization
        start = time.time()
        for step in range(1, params.drag_steps + 1):
            offset = np.array([0.02 * step, 0.0, params.lift])
            deformer.update_constraint_position(handle, origin + offset, post_fix=True)
            success, positions = deformer.deform()
        result['drag_solve_time_sec'] = (time.time() - start) / max(params.drag_steps, 1)

        ids = mesh.vertex_ids()
        stats = compute_displacement_stats(mesh.positions_of(ids), positions[ids])
        result.update({
            'vertex_count': mesh.num_vertices,
            'interior_count': deformer.linearization.num_interior_verts(),
            'factorizations': deformer.solver.factorization_count,
            'solve_success': success,
            'energy': deformation_energy(deformer, positions),
            **stats,
        })
    except Exception as e:
        result['status'] = 'failed'
        result['error_message'] = str(e)

    return result


def generate_param_combinations(resolutions: List[int]):
    """Generate a list of experiment parameters to sweep."""
    experiments = []
    for surface in ['plane', 'wavy_plane']:
        for res in resolutions:
            for scheme in LaplacianWeightScheme:
                for solver in MatrixSolverType:
                    experiments.append(ExperimentParams(surface, res, scheme, solver))
    return experiments


def main():
    parser = argparse.ArgumentParser(description="Deformer Experiment Runner")
    parser.add_argument('--resolutions', type=int, nargs='+', default=[10, 20, 40],
                        help='Grid resolutions to sweep')
    parser.add_argument('--log-path', default='experiments/results.csv', help='Path to CSV log file')
    parser.add_argument('--verbose', action='store_true', help='Print progress')

    args = parser.parse_args()

    log_dir = os.path.dirname(args.log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    params_list = generate_param_combinations(args.resolutions)
    if args.verbose:
        print(f"Total experiments to run: {len(params_list)}")

    # Check if log exists to append or write header
    file_exists = os.path.isfile(args.log_path)

    with open(args.log_path, 'a' if file_exists else 'w', newline='') as csvfile:
        fieldnames = [
            'timestamp', 'status', 'error_message',
            'surface', 'resolution', 'weight_scheme', 'solver_type',
            'vertex_count', 'interior_count', 'factorizations', 'solve_success',
            'build_time_sec', 'first_solve_time_sec', 'drag_solve_time_sec',
            'energy', 'max_displacement', 'mean_displacement', 'rms_displacement', 'moved_vertices',
        ]
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)

        if not file_exists:
            writer.writeheader()

        for n, p in enumerate(params_list, start=1):
            if args.verbose:
                print(f"[{n}/{len(params_list)}] {p.surface} res={p.resolution} | "
                      f"{p.weight_scheme.value} / {p.solver_type.value}...")

            res = run_single_experiment(p)
            writer.writerow(res)
            csvfile.flush()

    print(f"Experiments completed. Log written to {args.log_path}")


if __name__ == "__main__":
    main()
