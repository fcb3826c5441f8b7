"""
Constrained biharmonic mesh deformation.
"""

from .mesh import TriangleMesh, load_mesh, save_mesh
from .linearization import VertexLinearization
from .laplacian import (
    DegenerateMeshError,
    LaplacianOperators,
    LaplacianWeightScheme,
    construct_laplacian,
    construct_laplacian_matrix,
    construct_uniform_laplacian,
    construct_umbrella_laplacian,
    construct_valence_weighted_laplacian,
    construct_mean_value_weight_laplacian,
    construct_cotangent_laplacian,
    construct_scaled_cotangent_laplacian,
)
from .solver import Constraint, ConstrainedMeshDeformationSolver, MatrixSolverType
from .config import DeformerOptions, load_options
from .deformer import ConstrainedMeshDeformer, construct_constrained_mesh_deformer
from .metrics import (
    compute_displacement_stats,
    deformation_energy,
    hausdorff_distance,
    laplacian_energy,
)

__all__ = [
    # Mesh
    'TriangleMesh',
    'load_mesh',
    'save_mesh',
    'VertexLinearization',
    # Laplacian operators
    'DegenerateMeshError',
    'LaplacianOperators',
    'LaplacianWeightScheme',
    'construct_laplacian',
    'construct_laplacian_matrix',
    'construct_uniform_laplacian',
    'construct_umbrella_laplacian',
    'construct_valence_weighted_laplacian',
    'construct_mean_value_weight_laplacian',
    'construct_cotangent_laplacian',
    'construct_scaled_cotangent_laplacian',
    # Solver / deformer
    'Constraint',
    'ConstrainedMeshDeformationSolver',
    'MatrixSolverType',
    'DeformerOptions',
    'load_options',
    'ConstrainedMeshDeformer',
    'construct_constrained_mesh_deformer',
    # Metrics
    'compute_displacement_stats',
    'deformation_energy',
    'hausdorff_distance',
    'laplacian_energy',
]
