"""Sparse skinning-weight parser → fixed-width per-vertex influence table."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigforge.constants import MIN_INFLUENCES_PER_VERTEX
from rigforge.core.errors import SkinningLoadError


@dataclass
class SkinWeights:
    """Per-vertex (joint, weight) influences.

    Each row holds ``max_influences`` slots sorted by descending weight;
    unused slots are padded with joint 0 and weight 0.
    """
    joints: NDArray[np.int64]      # (V, K)
    weights: NDArray[np.float64]   # (V, K)
    num_joints: int

    @property
    def num_vertices(self) -> int:
        return len(self.joints)

    @property
    def max_influences(self) -> int:
        return self.joints.shape[1]

    @classmethod
    def from_entries(
        cls,
        entries: list[list[tuple[int, float]]],
        num_joints: int,
    ) -> "SkinWeights":
        """Pack per-vertex ``(joint, weight)`` lists into padded arrays.

        Raises
        ------
        SkinningLoadError
            If a vertex has no influence with nonzero weight, or the widest
            vertex has fewer than two influences.
        """
        for vid, influences in enumerate(entries):
            if not any(w != 0.0 for _, w in influences):
                raise SkinningLoadError(f"Vertex {vid} has no nonzero skinning weight")

        max_influences = max((len(inf) for inf in entries), default=0)
        if max_influences < MIN_INFLUENCES_PER_VERTEX:
            raise SkinningLoadError(
                f"Max influences per vertex is {max_influences}, "
                f"need at least {MIN_INFLUENCES_PER_VERTEX}"
            )

        V = len(entries)
        joints = np.zeros((V, max_influences), dtype=np.int64)
        weights = np.zeros((V, max_influences), dtype=np.float64)
        for vid, influences in enumerate(entries):
            # Descending by weight; ties go to the higher joint index.
            ranked = sorted(((w, j) for j, w in influences), reverse=True)
            for slot, (w, j) in enumerate(ranked):
                joints[vid, slot] = j
                weights[vid, slot] = w
        return cls(joints=joints, weights=weights, num_joints=num_joints)


def parse_skin_weights(text: str, num_vertices: Optional[int] = None) -> SkinWeights:
    """Parse a sparse weight matrix: ``rows cols`` then ``row col weight`` triples.

    Rows are mesh vertices, columns are joints.  Triples may come in any
    order and any number per line, until end of file.

    Parameters
    ----------
    text : str
        The weights file contents.
    num_vertices : int, optional
        If given, the header row count must match it.
    """
    tokens = text.split()
    if len(tokens) < 2:
        raise SkinningLoadError("Skinning weights file has no header")
    try:
        num_rows, num_cols = int(tokens[0]), int(tokens[1])
    except ValueError as e:
        raise SkinningLoadError(f"Bad skinning weights header: {e}") from e
    if num_vertices is not None and num_rows != num_vertices:
        raise SkinningLoadError(
            f"Skinning weights have {num_rows} rows, mesh has {num_vertices} vertices"
        )

    body = tokens[2:]
    if len(body) % 3 != 0:
        raise SkinningLoadError("Skinning weights body is not a list of (row, col, weight) triples")

    entries: list[list[tuple[int, float]]] = [[] for _ in range(num_rows)]
    for k in range(0, len(body), 3):
        try:
            row, col, w = int(body[k]), int(body[k + 1]), float(body[k + 2])
        except ValueError as e:
            raise SkinningLoadError(f"Bad skinning weight triple #{k // 3}: {e}") from e
        if not 0 <= row < num_rows:
            raise SkinningLoadError(f"Vertex index {row} out of range [0, {num_rows})")
        if not 0 <= col < num_cols:
            raise SkinningLoadError(f"Joint index {col} out of range [0, {num_cols})")
        entries[row].append((col, w))

    return SkinWeights.from_entries(entries, num_joints=num_cols)


def load_skin_weights(path, num_vertices: Optional[int] = None) -> SkinWeights:
    """Load a skinning weights file from disk."""
    return parse_skin_weights(Path(path).read_text(), num_vertices)
