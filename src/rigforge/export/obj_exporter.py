"""Export a (deformed) mesh to Wavefront OBJ.

Writes ``v`` and ``vn`` lines for every vertex and ``f v//vn`` triangles,
so the file loads back through :func:`rigforge.loaders.obj_parser.parse_obj`.
"""

import logging
from pathlib import Path

from rigforge.core.mesh import BufferGeometry

logger = logging.getLogger(__name__)


def format_obj(geometry: BufferGeometry, name: str = "") -> str:
    """Serialize geometry to OBJ text."""
    lines = ["# rigforge"]
    if name:
        lines.append(f"o {name}")
    for x, y, z in geometry.positions:
        lines.append(f"v {x:.9g} {y:.9g} {z:.9g}")
    if geometry.normals is not None:
        for x, y, z in geometry.normals:
            lines.append(f"vn {x:.6g} {y:.6g} {z:.6g}")
    if geometry.has_indices:
        with_normals = geometry.normals is not None
        for tri in geometry.indices + 1:  # OBJ is 1-based
            if with_normals:
                lines.append("f " + " ".join(f"{i}//{i}" for i in tri))
            else:
                lines.append("f " + " ".join(str(i) for i in tri))
    return "\n".join(lines) + "\n"


def export_obj(geometry: BufferGeometry, path: str | Path, name: str = "") -> int:
    """Write geometry to an OBJ file; returns the number of vertices written."""
    path = Path(path)
    path.write_text(format_obj(geometry, name))
    logger.info("Exported %d vertices to %s", geometry.vertex_count, path)
    return geometry.vertex_count
