import numpy as np
from scipy.spatial.distance import directed_hausdorff


def compute_displacement_stats(original_positions, deformed_positions):
    """
    Per-vertex displacement summary between two (N, 3) position arrays.

    Returns:
        dict with max, mean and rms displacement and the number of moved vertices
    """
    original_positions = np.asarray(original_positions, dtype=np.float64)
    deformed_positions = np.asarray(deformed_positions, dtype=np.float64)
    if original_positions.shape != deformed_positions.shape:
        raise ValueError("position arrays must have the same shape")

    if original_positions.shape[0] == 0:
        return {"max_displacement": 0.0, "mean_displacement": 0.0, "rms_displacement": 0.0, "moved_vertices": 0}

    d = np.linalg.norm(deformed_positions - original_positions, axis=1)
    return {
        "max_displacement": float(np.max(d)),
        "mean_displacement": float(np.mean(d)),
        "rms_displacement": float(np.sqrt(np.mean(d * d))),
        "moved_vertices": int(np.count_nonzero(d > 1e-12)),
    }


def laplacian_energy(laplacian_interior, original_interior, deformed_interior):
    """
    Biharmonic energy ||L (x - x_0)||^2 of an interior displacement, summed over axes.
    """
    delta = np.asarray(deformed_interior, dtype=np.float64) - np.asarray(original_interior, dtype=np.float64)
    if delta.shape[0] == 0:
        return 0.0
    lap = laplacian_interior @ delta
    return float(np.sum(lap * lap))


def deformation_energy(deformer, positions):
    """``laplacian_energy`` of a ``deform()`` output buffer for ``deformer``."""
    interior_ids = deformer.linearization.interior_ids()
    return laplacian_energy(
        deformer.solver.laplacian,
        deformer.original_interior_positions,
        np.asarray(positions)[interior_ids],
    )


def hausdorff_distance(verts1, verts2, sample_size=5000, seed=None):
    """
    Compute Hausdorff distance between two point clouds.
    Uses sampling for large meshes to keep computation tractable.

    Args:
        verts1: (N, 3) array of vertices
        verts2: (M, 3) array of vertices
        sample_size: max points to use for computation
        seed: optional seed for the subsampling

    Returns:
        float: Hausdorff distance
    """
    rng = np.random.default_rng(seed)

    if verts1.shape[0] > sample_size:
        idx = rng.choice(verts1.shape[0], sample_size, replace=False)
        verts1 = verts1[idx]

    if verts2.shape[0] > sample_size:
        idx = rng.choice(verts2.shape[0], sample_size, replace=False)
        verts2 = verts2[idx]

    d1 = directed_hausdorff(verts1, verts2)[0]
    d2 = directed_hausdorff(verts2, verts1)[0]

    return max(d1, d2)
