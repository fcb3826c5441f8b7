"""
Generate small synthetic meshes (and a matching constraint file) for trying out
the deformer and the experiment runner.

Usage:
    python3 scripts/generate_synthetic_data.py [--output-dir data/synthetic] [--resolution 20]
"""

import argparse
import json
import os

import numpy as np
import pyvista as pv


def create_plane(resolution=20, size=1.0):
    """Flat triangulated square; its outer edge is the mesh boundary."""
    plane = pv.Plane(i_size=size, j_size=size, i_resolution=resolution, j_resolution=resolution)
    return plane.triangulate()


def create_wavy_plane(resolution=20, size=1.0, amplitude=0.05, waves=2):
    """Square with a sinusoidal height field, so cotangent weights are non-trivial."""
    surface = create_plane(resolution, size)
    points = np.array(surface.points)
    phase = 2 * np.pi * waves / size
    points[:, 2] = amplitude * np.sin(phase * points[:, 0]) * np.cos(phase * points[:, 1])
    surface.points = points
    return surface


def create_sphere(resolution=20, radius=0.5):
    """Closed surface: no boundary, so every vertex is interior."""
    return pv.Sphere(radius=radius, theta_resolution=resolution, phi_resolution=resolution).triangulate()


def center_handle(surface):
    """Index of the point closest to the centroid of ``surface``."""
    points = np.asarray(surface.points)
    return int(np.argmin(np.linalg.norm(points - points.mean(axis=0), axis=1)))


def save_synthetic_data(output_dir, resolution=20, lift=0.25):
    """Generate and save synthetic meshes plus a lift-the-center constraint file."""
    os.makedirs(output_dir, exist_ok=True)

    meshes = {
        "plane": create_plane(resolution),
        "wavy_plane": create_wavy_plane(resolution),
        "sphere": create_sphere(resolution),
    }

    for name, surface in meshes.items():
        print(f"Generating {name} ({surface.n_points} vertices, {surface.n_cells} triangles)...")
        surface.save(os.path.join(output_dir, f"{name}.vtk"))

        handle = center_handle(surface)
        target = np.asarray(surface.points[handle]) + np.array([0.0, 0.0, lift])
        constraints = [
            {"vertex": handle, "position": target.tolist(), "weight": 1.0, "post_fix": True},
        ]
        with open(os.path.join(output_dir, f"{name}_constraints.json"), "w") as f:
            json.dump(constraints, f, indent=2)

    print(f"Synthetic data saved to {output_dir}")


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic meshes for the deformer")
    parser.add_argument("--output-dir", default="data/synthetic", help="Where to write meshes")
    parser.add_argument("--resolution", type=int, default=20, help="Grid resolution per side")
    parser.add_argument("--lift", type=float, default=0.25, help="Height of the center handle target")
    args = parser.parse_args()

    save_synthetic_data(args.output_dir, resolution=args.resolution, lift=args.lift)


if __name__ == "__main__":
    main()
