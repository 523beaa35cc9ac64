"""Mesh skinning from per-joint skin transforms.

Default is Dual Quaternion Skinning (DQS): each joint's skin transform is
turned into a unit dual quaternion, the influences of a vertex are blended
(weighted, sign-corrected, normalized) and the blended rigid transform is
applied to the rest position.  Unlike linear blend skinning this keeps
volume at twisting joints (no candy-wrapper collapse).  Linear blend
skinning is available for comparison.

Per vertex:
  Q0 = Σ w_k · s_k · q0_k        s_k = ±1 so that q0_k · Q0_running ≥ 0
  Q1 = Σ w_k · s_k · q1_k        q1_k = 0.5 · (t_k, 0) · q0_k
  c0, cε = Q0 / |Q0|, Q1 / |Q0|
  p' = 2 · vec(cε · conj(c0)) + R(c0) · p
"""

import logging
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from rigforge.constants import SKINNING_METHODS, SKINNING_NORM_EPS
from rigforge.core.math_utils import (
    RigidTransform,
    batch_dual_quat_translation,
    batch_quat_to_mat3,
    batch_rigid_to_dual_quat,
    stack_rigid,
)
from rigforge.loaders.skin_weights import SkinWeights, load_skin_weights

logger = logging.getLogger(__name__)


class Skinning:
    """Deforms a mesh's rest positions with a fixed weight table.

    Parameters
    ----------
    num_vertices : int
        Number of mesh vertices to skin.
    rest_positions : array-like
        Rest vertex positions, (num_vertices, 3) or flat.  Kept by reference.
    weights_path : str or Path
        Sparse skinning-weights file.
    method : str
        ``"dual_quaternion"`` (default) or ``"linear_blend"``.
    """

    def __init__(
        self,
        num_vertices: int,
        rest_positions,
        weights_path,
        method: str = "dual_quaternion",
    ):
        weights = load_skin_weights(weights_path, num_vertices)
        self._setup(rest_positions, weights, method)
        logger.info(
            "Loaded skinning weights %s: %d vertices, %d joints, %d influences/vertex",
            weights_path, weights.num_vertices, weights.num_joints, weights.max_influences,
        )

    @classmethod
    def from_weights(
        cls,
        rest_positions,
        weights: SkinWeights,
        method: str = "dual_quaternion",
    ) -> "Skinning":
        """Build from an already parsed weight table."""
        skinning = cls.__new__(cls)
        skinning._setup(rest_positions, weights, method)
        return skinning

    def _setup(self, rest_positions, weights: SkinWeights, method: str) -> None:
        if method not in SKINNING_METHODS:
            raise ValueError(f"Unknown skinning method {method!r}; expected one of {SKINNING_METHODS}")
        rest = np.asarray(rest_positions, dtype=np.float64).reshape(-1, 3)
        if len(rest) != weights.num_vertices:
            raise ValueError(
                f"Weight table covers {weights.num_vertices} vertices, mesh has {len(rest)}"
            )
        self.rest_positions = rest
        self.weights = weights
        self.method = method

    @property
    def num_vertices(self) -> int:
        return self.weights.num_vertices

    @property
    def max_influences(self) -> int:
        return self.weights.max_influences

    def apply_skinning(
        self,
        skin_transforms: Sequence[RigidTransform],
        rest_positions: Optional[NDArray] = None,
    ) -> NDArray[np.float64]:
        """Return deformed vertex positions (V, 3).

        ``skin_transforms`` is indexed by joint id (global ∘ inverse rest
        global).  ``rest_positions`` defaults to the positions given at
        construction.
        """
        if len(skin_transforms) < self.weights.num_joints:
            raise ValueError(
                f"Got {len(skin_transforms)} skin transforms, weights reference "
                f"{self.weights.num_joints} joints"
            )
        rest = self.rest_positions if rest_positions is None else (
            np.asarray(rest_positions, dtype=np.float64).reshape(-1, 3)
        )
        rotations, translations = stack_rigid(skin_transforms)
        if self.method == "linear_blend":
            return self._linear_blend(rotations, translations, rest)
        return self._dual_quaternion(rotations, translations, rest)

    def _linear_blend(self, rotations: NDArray, translations: NDArray, rest: NDArray) -> NDArray:
        ji = self.weights.joints    # (V, K)
        w = self.weights.weights    # (V, K)
        # (V, K, 3): every influence's transform applied to the vertex
        moved = np.einsum('vkij,vj->vki', rotations[ji], rest) + translations[ji]
        return np.einsum('vk,vki->vi', w, moved)

    def _dual_quaternion(self, rotations: NDArray, translations: NDArray, rest: NDArray) -> NDArray:
        dq_stack = batch_rigid_to_dual_quat(rotations, translations)  # (J, 8)
        ji = self.weights.joints
        w = self.weights.weights
        V = len(ji)

        q0_sum = np.zeros((V, 4), dtype=np.float64)
        q1_sum = np.zeros((V, 4), dtype=np.float64)
        # Slots in stored (descending weight) order; sign continuity is
        # decided against the running real-part sum.
        for k in range(self.max_influences):
            active = w[:, k] > 0.0
            if not active.any():
                continue
            dq = dq_stack[ji[active, k]]              # (A, 8)
            flip = np.sum(dq[:, :4] * q0_sum[active], axis=1) < 0
            dq[flip] *= -1.0
            wk = w[active, k, np.newaxis]
            q0_sum[active] += wk * dq[:, :4]
            q1_sum[active] += wk * dq[:, 4:]

        norm = np.linalg.norm(q0_sum, axis=1)
        valid = norm > SKINNING_NORM_EPS
        result = rest.copy()
        if not valid.all():
            logger.warning("%d vertices have a degenerate blended rotation; left at rest",
                           int(np.count_nonzero(~valid)))
        if not valid.any():
            return result

        c0 = q0_sum[valid] / norm[valid, np.newaxis]
        c_eps = q1_sum[valid] / norm[valid, np.newaxis]
        rot = batch_quat_to_mat3(c0)
        trans = batch_dual_quat_translation(c0, c_eps)
        result[valid] = trans + np.einsum('vij,vj->vi', rot, rest[valid])
        return result
