"""NumPy-backed math utilities: rotations, rigid transforms, quaternions.

Vectors are plain numpy arrays; quaternions are [x, y, z, w] arrays.
Rotation matrices are 3x3 and act on column vectors (p' = R @ p).

The rotation builders take an ``xp`` array namespace (``numpy`` or
``jax.numpy``) so the same code can be traced for automatic
differentiation.
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import NDArray

# Type aliases
Vec3 = NDArray[np.float64]
Mat3 = NDArray[np.float64]

def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Vec3:
    return np.array([x, y, z], dtype=np.float64)

def mat3_identity() -> Mat3:
    return np.eye(3, dtype=np.float64)

def deg_to_rad(degrees):
    return degrees * np.pi / 180.0

# ── Elemental and Euler rotations ─────────────────────────────────────

def rotation_x(angle_rad, xp=np):
    c, s = xp.cos(angle_rad), xp.sin(angle_rad)
    one, zero = xp.ones_like(c), xp.zeros_like(c)
    return xp.stack([
        xp.stack([one, zero, zero]),
        xp.stack([zero, c, -s]),
        xp.stack([zero, s, c]),
    ])

def rotation_y(angle_rad, xp=np):
    c, s = xp.cos(angle_rad), xp.sin(angle_rad)
    one, zero = xp.ones_like(c), xp.zeros_like(c)
    return xp.stack([
        xp.stack([c, zero, s]),
        xp.stack([zero, one, zero]),
        xp.stack([-s, zero, c]),
    ])

def rotation_z(angle_rad, xp=np):
    c, s = xp.cos(angle_rad), xp.sin(angle_rad)
    one, zero = xp.ones_like(c), xp.zeros_like(c)
    return xp.stack([
        xp.stack([c, -s, zero]),
        xp.stack([s, c, zero]),
        xp.stack([zero, zero, one]),
    ])

class RotationOrder(Enum):
    """Axis composition order of three elemental Euler rotations.

    The value names the axes in the order they act on a point: for ``XYZ``
    a point is rotated about X first, then Y, then Z, so the composed
    matrix is ``Rz @ Ry @ Rx`` (the last-named axis is the leftmost factor).
    """
    XYZ = "xyz"
    YZX = "yzx"
    ZXY = "zxy"
    XZY = "xzy"
    YXZ = "yxz"
    ZYX = "zyx"

    @classmethod
    def parse(cls, code: str) -> "RotationOrder":
        """Look up an order from a case-insensitive code such as ``"zyx"``."""
        return cls(code.strip().lower())

_ELEMENTAL = {"x": rotation_x, "y": rotation_y, "z": rotation_z}

def euler_to_rotation(angles_deg, order: RotationOrder = RotationOrder.XYZ, xp=np):
    """Convert three Euler angles (degrees, X/Y/Z) to a 3x3 rotation."""
    elemental = {
        axis: _ELEMENTAL[axis](deg_to_rad(angles_deg[k]), xp)
        for k, axis in enumerate("xyz")
    }
    first, second, third = order.value
    return elemental[third] @ elemental[second] @ elemental[first]

def multiply_rigid(r1, t1, r2, t2):
    """Compose (r1, t1) ∘ (r2, t2) given as rotation/translation pairs."""
    return r1 @ r2, r1 @ t2 + t1

# ── Rigid transforms ──────────────────────────────────────────────────

@dataclass
class RigidTransform:
    """Rotation + translation; maps p to ``rotation @ p + translation``."""
    rotation: Mat3 = field(default_factory=mat3_identity)
    translation: Vec3 = field(default_factory=vec3)

    def copy(self) -> "RigidTransform":
        return RigidTransform(self.rotation.copy(), self.translation.copy())

def rigid_compose(a: RigidTransform, b: RigidTransform) -> RigidTransform:
    """Return ``a ∘ b`` (apply b first, then a)."""
    rotation, translation = multiply_rigid(a.rotation, a.translation, b.rotation, b.translation)
    return RigidTransform(rotation, translation)

def rigid_inverse(t: RigidTransform) -> RigidTransform:
    """Invert a rigid transform (rotation must be orthonormal)."""
    rt = t.rotation.T
    return RigidTransform(rt.copy(), -(rt @ t.translation))

def stack_rigid(transforms) -> tuple[NDArray, NDArray]:
    """Stack a sequence of rigid transforms into (N, 3, 3) and (N, 3) arrays."""
    rotations = np.array([t.rotation for t in transforms], dtype=np.float64)
    translations = np.array([t.translation for t in transforms], dtype=np.float64)
    return rotations.reshape(-1, 3, 3), translations.reshape(-1, 3)

# ── Batch (vectorized) quaternion operations ──────────────────────────

def batch_mat3_to_quat(R: NDArray) -> NDArray:
    """Convert (N, 3, 3) rotation matrices to (N, 4) quaternions [x, y, z, w].

    Uses Shepperd's method with masked branching for numerical stability.
    """
    N = len(R)
    q = np.zeros((N, 4), dtype=np.float64)
    trace = R[:, 0, 0] + R[:, 1, 1] + R[:, 2, 2]

    # Case 1: trace > 0
    m1 = trace > 0
    if m1.any():
        s = 0.5 / np.sqrt(trace[m1] + 1.0)
        q[m1, 3] = 0.25 / s
        q[m1, 0] = (R[m1, 2, 1] - R[m1, 1, 2]) * s
        q[m1, 1] = (R[m1, 0, 2] - R[m1, 2, 0]) * s
        q[m1, 2] = (R[m1, 1, 0] - R[m1, 0, 1]) * s

    # Case 2: R[0,0] is largest diagonal
    m2 = ~m1 & (R[:, 0, 0] > R[:, 1, 1]) & (R[:, 0, 0] > R[:, 2, 2])
    if m2.any():
        s = 2.0 * np.sqrt(1.0 + R[m2, 0, 0] - R[m2, 1, 1] - R[m2, 2, 2])
        q[m2, 3] = (R[m2, 2, 1] - R[m2, 1, 2]) / s
        q[m2, 0] = 0.25 * s
        q[m2, 1] = (R[m2, 0, 1] + R[m2, 1, 0]) / s
        q[m2, 2] = (R[m2, 0, 2] + R[m2, 2, 0]) / s

    # Case 3: R[1,1] is largest diagonal
    m3 = ~m1 & ~m2 & (R[:, 1, 1] > R[:, 2, 2])
    if m3.any():
        s = 2.0 * np.sqrt(1.0 + R[m3, 1, 1] - R[m3, 0, 0] - R[m3, 2, 2])
        q[m3, 3] = (R[m3, 0, 2] - R[m3, 2, 0]) / s
        q[m3, 0] = (R[m3, 0, 1] + R[m3, 1, 0]) / s
        q[m3, 1] = 0.25 * s
        q[m3, 2] = (R[m3, 1, 2] + R[m3, 2, 1]) / s

    # Case 4: R[2,2] is largest diagonal
    m4 = ~m1 & ~m2 & ~m3
    if m4.any():
        s = 2.0 * np.sqrt(1.0 + R[m4, 2, 2] - R[m4, 0, 0] - R[m4, 1, 1])
        q[m4, 3] = (R[m4, 1, 0] - R[m4, 0, 1]) / s
        q[m4, 0] = (R[m4, 0, 2] + R[m4, 2, 0]) / s
        q[m4, 1] = (R[m4, 1, 2] + R[m4, 2, 1]) / s
        q[m4, 2] = 0.25 * s

    return q

def batch_quat_to_mat3(q: NDArray) -> NDArray:
    """Convert (N, 4) unit quaternions [x, y, z, w] to (N, 3, 3) rotations."""
    x, y, z, w = q[:, 0], q[:, 1], q[:, 2], q[:, 3]
    m = np.empty((len(q), 3, 3), dtype=np.float64)
    m[:, 0, 0] = 1 - 2 * (y * y + z * z)
    m[:, 0, 1] = 2 * (x * y - z * w)
    m[:, 0, 2] = 2 * (x * z + y * w)
    m[:, 1, 0] = 2 * (x * y + z * w)
    m[:, 1, 1] = 1 - 2 * (x * x + z * z)
    m[:, 1, 2] = 2 * (y * z - x * w)
    m[:, 2, 0] = 2 * (x * z - y * w)
    m[:, 2, 1] = 2 * (y * z + x * w)
    m[:, 2, 2] = 1 - 2 * (x * x + y * y)
    return m

def batch_quat_multiply(a: NDArray, b: NDArray) -> NDArray:
    """Multiply (N, 4) quaternions [x, y, z, w]: result = a * b."""
    ax, ay, az, aw = a[:, 0], a[:, 1], a[:, 2], a[:, 3]
    bx, by, bz, bw = b[:, 0], b[:, 1], b[:, 2], b[:, 3]
    return np.column_stack([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])

def batch_quat_conjugate(q: NDArray) -> NDArray:
    out = q.copy()
    out[:, :3] *= -1.0
    return out

def batch_rigid_to_dual_quat(R: NDArray, t: NDArray) -> NDArray:
    """Convert (N, 3, 3) rotations and (N, 3) translations to (N, 8) dual quaternions.

    Returns array where [:, 0:4] is the real part (rotation quaternion
    [x, y, z, w]) and [:, 4:8] is the dual part encoding translation:
    ``q_d = 0.5 * (t, 0) * q_r``.
    """
    q_r = batch_mat3_to_quat(R)  # (N, 4) [x, y, z, w]

    N = len(R)
    t_quat = np.zeros((N, 4), dtype=np.float64)
    t_quat[:, :3] = t

    q_d = 0.5 * batch_quat_multiply(t_quat, q_r)

    return np.concatenate([q_r, q_d], axis=1)  # (N, 8)

def batch_dual_quat_translation(q_r: NDArray, q_d: NDArray) -> NDArray:
    """Recover (N, 3) translations from unit dual quaternions.

    Translation is the vector part of ``2 * q_d * conjugate(q_r)``.
    """
    return 2.0 * batch_quat_multiply(q_d, batch_quat_conjugate(q_r))[:, :3]
