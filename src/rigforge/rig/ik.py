"""Inverse kinematics: differentiable handle FK + damped least squares.

``handle_positions`` repeats the global-transform accumulation of
:mod:`rigforge.rig.skeleton` for the handle joints only, written against an
array namespace ``xp`` so ``jax`` can trace it.  The solver obtains the
Jacobian with ``jax.jacfwd`` (jitted once at construction) and performs one
Tikhonov-regularized Gauss-Newton step per call:

    A = JᵀJ + αI,   b = Jᵀ(target − handles),   θ ← θ + A⁻¹b

Callers converge by calling :meth:`InverseKinematics.solve` once per frame.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Sequence, Union

import jax
import jax.numpy as jnp
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import cho_factor, cho_solve

from rigforge.constants import (
    DEFAULT_IK_DAMPING,
    FINITE_DIFFERENCE_STEP,
    IK_METHODS,
    JACOBIAN_MODES,
)
from rigforge.core.math_utils import RotationOrder, euler_to_rotation, multiply_rigid
from rigforge.rig.skeleton import ForwardKinematics, Pose

# Jacobians must match the float64 FK used for rendering.
jax.config.update("jax_enable_x64", True)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class KinematicStructure:
    """Pose-independent skeleton data needed to evaluate handle positions."""
    parents: tuple[int, ...]
    update_order: tuple[int, ...]
    translations: NDArray[np.float64]        # (N, 3)
    orient_rotations: NDArray[np.float64]    # (N, 3, 3)
    rotation_orders: tuple[RotationOrder, ...]
    handle_joint_ids: tuple[int, ...]

    @classmethod
    def from_fk(cls, fk: ForwardKinematics, handle_joint_ids: Sequence[int]) -> "KinematicStructure":
        n = fk.num_joints
        return cls(
            parents=fk.parents,
            update_order=fk.update_order,
            translations=np.array([fk.joint_rest_translation(j) for j in range(n)]),
            orient_rotations=np.array([fk.joint_orient_rotation(j) for j in range(n)]),
            rotation_orders=tuple(fk.joint_rotation_order(j) for j in range(n)),
            handle_joint_ids=tuple(int(h) for h in handle_joint_ids),
        )


def handle_positions(euler_angles, structure: KinematicStructure, xp=np):
    """World positions of the handle joints, flattened (3 per handle).

    ``euler_angles`` holds 3 values (degrees) per joint.  Rotations and
    translations are composed explicitly so the whole computation stays
    traceable.
    """
    n = len(structure.parents)
    local_rotations = [
        xp.asarray(structure.orient_rotations[j])
        @ euler_to_rotation(euler_angles[3 * j:3 * j + 3], structure.rotation_orders[j], xp)
        for j in range(n)
    ]

    global_rotations = [None] * n
    global_translations = [None] * n
    for j in structure.update_order:
        t_local = xp.asarray(structure.translations[j])
        parent = structure.parents[j]
        if parent < 0:
            global_rotations[j], global_translations[j] = local_rotations[j], t_local
        else:
            global_rotations[j], global_translations[j] = multiply_rigid(
                global_rotations[parent], global_translations[parent],
                local_rotations[j], t_local,
            )

    return xp.concatenate([global_translations[h] for h in structure.handle_joint_ids])


class InverseKinematics:
    """Damped least squares IK over a :class:`ForwardKinematics` skeleton.

    Parameters
    ----------
    handle_joint_ids : sequence of int
        Joints that act as IK handles, in target order.
    fk : ForwardKinematics
        Skeleton to solve on (kept by reference).
    damping : float
        Tikhonov term α added to the diagonal of JᵀJ.
    method : str
        ``"damped_least_squares"`` (default) or ``"pseudoinverse"``.
    jacobian : str
        ``"autodiff"`` (``jax.jacfwd``, default) or ``"central_difference"``.
    """

    def __init__(
        self,
        handle_joint_ids: Sequence[int],
        fk: ForwardKinematics,
        damping: float = DEFAULT_IK_DAMPING,
        method: str = "damped_least_squares",
        jacobian: str = "autodiff",
    ):
        if len(handle_joint_ids) == 0:
            raise ValueError("IK needs at least one handle joint")
        for h in handle_joint_ids:
            if not 0 <= h < fk.num_joints:
                raise ValueError(f"Handle joint {h} out of range [0, {fk.num_joints})")
        if method not in IK_METHODS:
            raise ValueError(f"Unknown IK method {method!r}; expected one of {IK_METHODS}")
        if jacobian not in JACOBIAN_MODES:
            raise ValueError(f"Unknown Jacobian mode {jacobian!r}; expected one of {JACOBIAN_MODES}")

        self.fk = fk
        self.method = method
        self.jacobian_mode = jacobian
        self.damping = damping
        self._structure = KinematicStructure.from_fk(fk, handle_joint_ids)
        self._input_dim = 3 * fk.num_joints
        self._output_dim = 3 * len(handle_joint_ids)

        self._value_and_jacobian = None
        if jacobian == "autodiff":
            f = functools.partial(handle_positions, structure=self._structure, xp=jnp)
            self._value_and_jacobian = jax.jit(lambda x: (f(x), jax.jacfwd(f)(x)))
            # Trace and compile once; later calls only differ in values.
            jax.block_until_ready(self._value_and_jacobian(jnp.zeros(self._input_dim)))

        logger.info(
            "IK ready: %d handles %s, input dim %d, output dim %d, %s/%s",
            len(handle_joint_ids), list(self.handle_joint_ids),
            self._input_dim, self._output_dim, method, jacobian,
        )

    @property
    def damping(self) -> float:
        return self._damping

    @damping.setter
    def damping(self, value: float) -> None:
        if value < 0 or (value == 0 and self.method == "damped_least_squares"):
            raise ValueError(f"Damping must be positive, got {value}")
        self._damping = float(value)

    @property
    def handle_joint_ids(self) -> tuple[int, ...]:
        return self._structure.handle_joint_ids

    @property
    def fk_input_dim(self) -> int:
        """Number of FK inputs: 3 Euler angles per joint."""
        return self._input_dim

    @property
    def fk_output_dim(self) -> int:
        """Number of FK outputs: 3 coordinates per handle."""
        return self._output_dim

    # ── Evaluation ──────────────────────────────────────────────────

    def handle_positions(self, euler_angles) -> NDArray[np.float64]:
        """Handle positions (H, 3) for the given angles, without the Jacobian."""
        x = self._flatten(euler_angles)
        return handle_positions(x, self._structure, np).reshape(-1, 3)

    def evaluate(self, euler_angles) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return flattened handle positions (m,) and the Jacobian (m, n)."""
        x = self._flatten(euler_angles)
        if self._value_and_jacobian is not None:
            value, jac = self._value_and_jacobian(jnp.asarray(x))
            return np.asarray(value), np.asarray(jac)
        return self._central_difference(x)

    def jacobian(self, euler_angles) -> NDArray[np.float64]:
        return self.evaluate(euler_angles)[1]

    def _central_difference(self, x: NDArray) -> tuple[NDArray, NDArray]:
        value = handle_positions(x, self._structure, np)
        jac = np.empty((self._output_dim, self._input_dim), dtype=np.float64)
        h = FINITE_DIFFERENCE_STEP
        for k in range(self._input_dim):
            step = np.zeros_like(x)
            step[k] = h
            forward = handle_positions(x + step, self._structure, np)
            backward = handle_positions(x - step, self._structure, np)
            jac[:, k] = (forward - backward) / (2.0 * h)
        return value, jac

    def _flatten(self, euler_angles) -> NDArray[np.float64]:
        if isinstance(euler_angles, Pose):
            euler_angles = euler_angles.euler_angles
        x = np.asarray(euler_angles, dtype=np.float64).reshape(-1)
        if x.size != self._input_dim:
            raise ValueError(f"Expected {self._input_dim} Euler angle values, got {x.size}")
        return x

    # ── Solve ───────────────────────────────────────────────────────

    def solve(
        self,
        target_handle_positions,
        euler_angles: Union[NDArray[np.float64], Pose],
    ) -> NDArray[np.float64]:
        """Run one IK step toward the targets.

        ``euler_angles`` (a writable floating-point (num_joints, 3) array or
        a :class:`Pose`) is updated in place and returned as an array.

        Raises
        ------
        ValueError
            If ``euler_angles`` cannot be updated in place.
        """
        angles = euler_angles.euler_angles if isinstance(euler_angles, Pose) else euler_angles
        if not (
            isinstance(angles, np.ndarray)
            and np.issubdtype(angles.dtype, np.floating)
            and angles.flags.writeable
        ):
            raise ValueError("Euler angles must be a writable floating-point array or a Pose")
        targets = np.asarray(target_handle_positions, dtype=np.float64).reshape(-1)
        if targets.size != self._output_dim:
            raise ValueError(
                f"Expected {self._output_dim // 3} target positions, got {targets.size / 3:g}"
            )

        positions, jac = self.evaluate(angles)
        residual = targets - positions

        if self.method == "pseudoinverse":
            delta = np.linalg.pinv(jac) @ residual
        else:
            a = jac.T @ jac + self._damping * np.eye(self._input_dim)
            b = jac.T @ residual
            delta = cho_solve(cho_factor(a), b)

        logger.debug("IK step: residual %.6g, |dθ| %.6g",
                     np.linalg.norm(residual), np.linalg.norm(delta))

        angles[...] = angles + delta.reshape(angles.shape)
        return angles
