"""Deformer settings, loadable from a JSON config file."""

import json
from dataclasses import asdict, dataclass, fields
from typing import Optional

from .laplacian import LaplacianWeightScheme
from .solver import MatrixSolverType


@dataclass(frozen=True)
class DeformerOptions:
    weight_scheme: LaplacianWeightScheme = LaplacianWeightScheme.CLAMPED_COTANGENT
    solver_type: MatrixSolverType = MatrixSolverType.LU
    tolerance: float = 1e-8  # iterative solvers only
    max_iterations: Optional[int] = None

    def __post_init__(self):
        # Accept names as well as enum members
        object.__setattr__(self, "weight_scheme", LaplacianWeightScheme.from_name(self.weight_scheme))
        object.__setattr__(self, "solver_type", MatrixSolverType.from_name(self.solver_type))
        if not self.tolerance > 0:
            raise ValueError("tolerance must be positive")
        if self.max_iterations is not None and int(self.max_iterations) < 1:
            raise ValueError("max_iterations must be a positive integer")

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown deformer option(s): {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_dict(self):
        data = asdict(self)
        data["weight_scheme"] = self.weight_scheme.value
        data["solver_type"] = self.solver_type.value
        return data


def load_options(path):
    """Read ``DeformerOptions`` from a JSON file such as ``config.json``."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return DeformerOptions.from_dict(data)
