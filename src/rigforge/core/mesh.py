"""Mesh data structures for geometry storage (no GL dependencies)."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray


@dataclass
class BufferGeometry:
    """Stores vertex attribute arrays for a triangle mesh.

    positions: (V, 3) float64
    indices: (T, 3) triangle vertex indices, optional
    normals: (V, 3) float64 per-vertex normals, computed on demand
    """
    positions: NDArray[np.float64]
    indices: Optional[NDArray[np.int64]] = None
    normals: Optional[NDArray[np.float64]] = None

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        if self.indices is not None:
            self.indices = np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return 0 if self.indices is None else len(self.indices)

    @property
    def has_indices(self) -> bool:
        return self.indices is not None and len(self.indices) > 0

    def compute_normals(self) -> None:
        """Compute smooth per-vertex normals from area-weighted face normals."""
        norms = np.zeros_like(self.positions)
        if self.has_indices:
            tri = self.positions[self.indices]  # (T, 3, 3)
            fn = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
            for k in range(3):
                np.add.at(norms, self.indices[:, k], fn)

        lengths = np.linalg.norm(norms, axis=1, keepdims=True)
        lengths = np.maximum(lengths, 1e-10)
        self.normals = norms / lengths

    def get_bounding_center(self) -> NDArray[np.float64]:
        """Centre of the axis-aligned bounding box."""
        return (self.positions.min(axis=0) + self.positions.max(axis=0)) / 2.0

    def get_radius(self) -> float:
        """Half the bounding-box diagonal."""
        return float(np.linalg.norm(self.positions.max(axis=0) - self.positions.min(axis=0)) / 2.0)

    def clone(self) -> "BufferGeometry":
        """Create a deep copy."""
        return BufferGeometry(
            positions=self.positions.copy(),
            indices=self.indices.copy() if self.indices is not None else None,
            normals=self.normals.copy() if self.normals is not None else None,
        )


@dataclass
class MeshInstance:
    """A named mesh whose geometry is deformed from a stored rest pose."""
    name: str
    geometry: BufferGeometry
    # Flag for consumers (renderers, exporters) that positions changed
    needs_update: bool = True
    rest_positions: Optional[NDArray[np.float64]] = None

    def store_rest_pose(self) -> None:
        """Save current positions as the rest pose for deformation."""
        self.rest_positions = self.geometry.positions.copy()

    @property
    def positions(self) -> NDArray[np.float64]:
        return self.geometry.positions

    @positions.setter
    def positions(self, value: NDArray[np.float64]):
        self.geometry.positions = np.asarray(value, dtype=np.float64).reshape(-1, 3)
        self.needs_update = True
