"""Wavefront OBJ parser → BufferGeometry."""

import logging
from pathlib import Path

import numpy as np

from rigforge.core.mesh import BufferGeometry

logger = logging.getLogger(__name__)


def parse_obj(text: str) -> BufferGeometry:
    """Parse a Wavefront OBJ string into indexed BufferGeometry.

    Supports ``v`` and ``f`` lines; ``vt``/``vn`` references inside face
    tokens (``v/vt/vn``) are accepted and ignored.  Negative (relative)
    indices are resolved.  Polygons are fan triangulated.  Normals are
    computed from the triangles, since the skinned positions change them
    every frame anyway.

    Parameters
    ----------
    text : str
        The OBJ file contents.

    Returns
    -------
    BufferGeometry
        Indexed geometry with positions, normals, and triangle indices.
    """
    positions: list[list[float]] = []
    triangles: list[list[int]] = []

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        key = parts[0]

        if key == "v":
            if len(parts) < 4:
                raise ValueError(f"Invalid OBJ vertex line: {line!r}")
            positions.append([float(parts[1]), float(parts[2]), float(parts[3])])
        elif key == "f":
            vi: list[int] = []
            for token in parts[1:]:
                idx = int(token.split("/")[0])
                # OBJ is 1-based; negative indices count back from the end
                vi.append(idx - 1 if idx > 0 else len(positions) + idx)
            for k in range(1, len(vi) - 1):
                triangles.append([vi[0], vi[k], vi[k + 1]])

    geometry = BufferGeometry(
        positions=np.array(positions, dtype=np.float64).reshape(-1, 3),
        indices=np.array(triangles, dtype=np.int64).reshape(-1, 3),
    )
    if geometry.has_indices and geometry.indices.max() >= geometry.vertex_count:
        raise ValueError("OBJ face references a vertex that does not exist")
    geometry.compute_normals()
    return geometry


def load_obj_file(path) -> BufferGeometry:
    """Load an OBJ file from disk.

    Parameters
    ----------
    path : str or Path
        Path to the ``.obj`` file.

    Returns
    -------
    BufferGeometry
    """
    geometry = parse_obj(Path(path).read_text())
    logger.info("Loaded mesh %s: %d vertices, %d triangles",
                path, geometry.vertex_count, geometry.triangle_count)
    return geometry
