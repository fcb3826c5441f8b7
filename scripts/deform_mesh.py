#!/usr/bin/env python3
"""
Deform a surface mesh with position constraints.

Constraint file format (JSON list):

    [{"vertex": 12, "position": [0.0, 0.0, 0.3], "weight": 1.0, "post_fix": true}, ...]

"weight" defaults to 1.0 and "post_fix" to false. Vertex ids are point indices
of the input mesh.

Usage:
    python3 scripts/deform_mesh.py mesh.vtk --constraints handles.json --output deformed.vtk
        [--scheme clamped_cotangent] [--solver lu] [--config config.json] [--verbose]
"""

import argparse
import json
import logging
import os
import sys
import time

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.deformation import (
    ConstrainedMeshDeformer,
    DeformerOptions,
    compute_displacement_stats,
    deformation_energy,
    load_mesh,
    load_options,
    save_mesh,
)


def load_constraints(path):
    """Parse the constraint JSON file into (vertex, weight, position, post_fix) tuples."""
    with open(path) as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a JSON list of constraints")

    constraints = []
    for n, entry in enumerate(entries):
        try:
            vid = int(entry["vertex"])
            position = np.asarray(entry["position"], dtype=np.float64)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"{path}: constraint #{n} is malformed ({exc})") from exc
        constraints.append((vid, float(entry.get("weight", 1.0)), position, bool(entry.get("post_fix", False))))
    return constraints


def build_options(args):
    options = load_options(args.config) if args.config else DeformerOptions()
    overrides = options.to_dict()
    if args.scheme:
        overrides["weight_scheme"] = args.scheme
    if args.solver:
        overrides["solver_type"] = args.solver
    return DeformerOptions.from_dict(overrides)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Biharmonic constrained mesh deformation')
    parser.add_argument('input', help='Input mesh (any format PyVista can read)')
    parser.add_argument('--constraints', required=True, help='JSON constraint file')
    parser.add_argument('--output', help='Output mesh path (default: <input>_deformed.vtk)')
    parser.add_argument('--config', help='JSON file with deformer options')
    parser.add_argument('--scheme', help='Laplacian weight scheme (overrides config)')
    parser.add_argument('--solver', help='Matrix solver type: lu, pcg, bicgstab (overrides config)')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    options = build_options(args)
    output = args.output or os.path.splitext(args.input)[0] + "_deformed.vtk"

    print(f"Loading {args.input}...")
    mesh = load_mesh(args.input)
    print(f"  {mesh.num_vertices} vertices, {mesh.num_triangles} triangles")

    start = time.time()
    deformer = ConstrainedMeshDeformer.from_options(mesh, options)
    print(f"Built {options.weight_scheme.value} deformer in {time.time() - start:.3f}s "
          f"({deformer.linearization.num_interior_verts()} interior, "
          f"{deformer.linearization.num_boundary_verts()} boundary vertices)")

    ignored = 0
    for vid, weight, position, post_fix in load_constraints(args.constraints):
        if not deformer.add_constraint(vid, weight, position, post_fix):
            ignored += 1
    if ignored:
        print(f"  {ignored} constraint(s) on boundary vertices ignored")

    start = time.time()
    success, positions = deformer.deform()
    print(f"Solved in {time.time() - start:.3f}s ({options.solver_type.value})")

    ids = mesh.vertex_ids()
    stats = compute_displacement_stats(mesh.positions_of(ids), positions[ids])
    print(f"  max displacement:  {stats['max_displacement']:.6g}")
    print(f"  mean displacement: {stats['mean_displacement']:.6g}")
    print(f"  energy:            {deformation_energy(deformer, positions):.6g}")

    save_mesh(mesh, output, positions)
    print(f"Saved deformed mesh to {output}")

    if not success:
        print("WARNING: solver reported failure; output is a best-effort result")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
