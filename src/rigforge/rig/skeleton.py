"""Forward kinematics (FK) of a joint hierarchy.

Each joint has a local transform relative to its parent: the rest
translation plus a rotation ``R_orient @ R_angle``, where ``R_orient`` comes
from the joint-orientation Euler angles (always XYZ order) and ``R_angle``
from the joint's current Euler angles in its own rotation order.

    global[root] = local[root]
    global[j]    = global[parent[j]] ∘ local[j]
    skin[j]      = global[j] ∘ inverse(rest_global[j])

Globals are accumulated in ``update_order``, which lists every parent
before its children.  The skin transform carries a point from its rest-pose
world position to its current world position and is what the skinning
stage consumes.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from rigforge.core.errors import SkeletonLoadError
from rigforge.core.math_utils import (
    Mat3,
    RigidTransform,
    RotationOrder,
    Vec3,
    euler_to_rotation,
    rigid_compose,
    rigid_inverse,
)
from rigforge.loaders.list_io import load_index_list
from rigforge.loaders.skeleton_config import load_rest_config

logger = logging.getLogger(__name__)


@dataclass
class Pose:
    """Per-joint Euler angles (degrees), shape (num_joints, 3)."""
    euler_angles: NDArray[np.float64] = field(default_factory=lambda: np.zeros((0, 3)))

    def __post_init__(self):
        self.euler_angles = np.array(self.euler_angles, dtype=np.float64).reshape(-1, 3)

    @property
    def num_joints(self) -> int:
        return len(self.euler_angles)

    def flat(self) -> NDArray[np.float64]:
        """Flattened copy, 3 values per joint (the IK input vector)."""
        return self.euler_angles.reshape(-1).copy()

    @classmethod
    def from_flat(cls, values) -> "Pose":
        return cls(np.asarray(values, dtype=np.float64).reshape(-1, 3))

    def copy(self) -> "Pose":
        return Pose(self.euler_angles.copy())


@dataclass
class JointTransforms:
    """Local, global and skinning transforms of every joint for one pose."""
    local: list[RigidTransform]
    global_: list[RigidTransform]
    skin: list[RigidTransform]


def build_update_order(parents: Sequence[int]) -> list[int]:
    """Order joints so that every parent precedes its children.

    Starting from each joint in index order, the chain of not-yet-emitted
    ancestors is emitted root-first, then the joint itself.  Each joint is
    emitted exactly once.

    Raises
    ------
    SkeletonLoadError
        If the parent links contain a cycle.
    """
    n = len(parents)
    emitted = [False] * n
    order: list[int] = []
    for start in range(n):
        path: list[int] = []
        on_path: set[int] = set()
        j = start
        while j >= 0 and not emitted[j]:
            if j in on_path:
                raise SkeletonLoadError(f"Joint hierarchy has a cycle through joint {j}")
            on_path.add(j)
            path.append(j)
            j = parents[j]
        for joint in reversed(path):
            emitted[joint] = True
            order.append(joint)
    return order


def build_children(parents: Sequence[int]) -> list[list[int]]:
    """Direct children per joint, ascending."""
    children: list[list[int]] = [[] for _ in parents]
    for joint, parent in enumerate(parents):
        if parent >= 0:
            children[parent].append(joint)
    return children


def compute_local_and_global_transforms(
    translations: NDArray,
    euler_angles: NDArray,
    orient_rotations: Sequence[Mat3],
    rotation_orders: Sequence[RotationOrder],
    parents: Sequence[int],
    update_order: Sequence[int],
) -> tuple[list[RigidTransform], list[RigidTransform]]:
    """Compute local and global transforms for the given Euler angles.

    ``orient_rotations`` are the precomputed joint-orientation rotations.
    """
    local = [
        RigidTransform(
            orient_rotations[j] @ euler_to_rotation(euler_angles[j], rotation_orders[j]),
            np.array(translations[j], dtype=np.float64),
        )
        for j in range(len(parents))
    ]

    global_: list[Optional[RigidTransform]] = [None] * len(parents)
    for j in update_order:
        parent = parents[j]
        global_[j] = local[j] if parent < 0 else rigid_compose(global_[parent], local[j])
    return local, global_


def compute_skin_transforms(
    global_: Sequence[RigidTransform],
    inv_rest_global: Sequence[RigidTransform],
) -> list[RigidTransform]:
    return [rigid_compose(g, inv) for g, inv in zip(global_, inv_rest_global)]


class ForwardKinematics:
    """Joint hierarchy with rest configuration and a live pose.

    Topology and rest configuration are fixed at construction.  The live
    pose (``euler_angles``) is the only mutable state; call
    :meth:`compute_joint_transforms` after changing it.
    """

    def __init__(
        self,
        parents: Sequence[int],
        translations,
        rest_euler_angles,
        joint_orients,
        rotation_orders: Optional[Sequence[RotationOrder]] = None,
    ):
        self._parents = [int(p) for p in parents]
        n = len(self._parents)
        if n == 0:
            raise SkeletonLoadError("Skeleton has no joints")
        for j, p in enumerate(self._parents):
            if not -1 <= p < n:
                raise SkeletonLoadError(f"Parent {p} of joint {j} is out of range [-1, {n})")
        if all(p >= 0 for p in self._parents):
            raise SkeletonLoadError("Joint hierarchy has no root (parent -1)")

        self._rest_translations = self._as_rows(translations, "translations", n)
        self._rest_euler_angles = self._as_rows(rest_euler_angles, "rest Euler angles", n)
        self._joint_orients = self._as_rows(joint_orients, "joint orientations", n)
        if rotation_orders is None:
            rotation_orders = [RotationOrder.XYZ] * n
        if len(rotation_orders) != n:
            raise SkeletonLoadError(
                f"Got {len(rotation_orders)} rotation orders for {n} joints"
            )
        self._rotation_orders = list(rotation_orders)

        self._update_order = build_update_order(self._parents)
        self._children = build_children(self._parents)
        self._orient_rotations = [
            euler_to_rotation(angles, RotationOrder.XYZ) for angles in self._joint_orients
        ]

        _, rest_global = compute_local_and_global_transforms(
            self._rest_translations, self._rest_euler_angles, self._orient_rotations,
            self._rotation_orders, self._parents, self._update_order,
        )
        self._rest_global = rest_global
        self._inv_rest_global = [rigid_inverse(t) for t in rest_global]

        self._pose = self.rest_pose()
        self._transforms: Optional[JointTransforms] = None
        self.compute_joint_transforms()

    @staticmethod
    def _as_rows(values, label: str, n: int) -> NDArray[np.float64]:
        arr = np.array(values, dtype=np.float64)
        if arr.shape != (n, 3):
            raise SkeletonLoadError(f"Expected {n} rows of 3 {label}, got shape {arr.shape}")
        return arr

    @classmethod
    def from_files(cls, hierarchy_path, rest_config_path) -> "ForwardKinematics":
        """Load a skeleton from a parent-index list and a rest-configuration file."""
        try:
            parents = load_index_list(hierarchy_path)
        except ValueError as e:
            raise SkeletonLoadError(f"Cannot parse joint hierarchy {hierarchy_path}: {e}") from e
        config = load_rest_config(rest_config_path, len(parents))
        fk = cls(
            parents,
            config.translations,
            config.euler_angles,
            config.joint_orients,
            config.rotation_orders,
        )
        logger.info("Loaded skeleton with %d joints from %s", fk.num_joints, hierarchy_path)
        return fk

    # ── Forward kinematics ──────────────────────────────────────────

    def compute_joint_transforms(self, pose: Optional[Pose] = None) -> JointTransforms:
        """Recompute local, global and skin transforms.

        With ``pose`` given, that pose becomes the live pose first.
        """
        if pose is not None:
            if pose.num_joints != self.num_joints:
                raise ValueError(
                    f"Pose has {pose.num_joints} joints, skeleton has {self.num_joints}"
                )
            self._pose = pose
        local, global_ = compute_local_and_global_transforms(
            self._rest_translations, self._pose.euler_angles, self._orient_rotations,
            self._rotation_orders, self._parents, self._update_order,
        )
        skin = compute_skin_transforms(global_, self._inv_rest_global)
        self._transforms = JointTransforms(local=local, global_=global_, skin=skin)
        return self._transforms

    def reset_to_rest_pose(self) -> None:
        """Replace the live pose with a fresh rest pose and recompute.

        A pose adopted earlier through :meth:`compute_joint_transforms` is
        left as it was.
        """
        self._pose = self.rest_pose()
        self.compute_joint_transforms()

    def rest_pose(self) -> Pose:
        return Pose(self._rest_euler_angles.copy())

    @property
    def pose(self) -> Pose:
        return self._pose

    @property
    def euler_angles(self) -> NDArray[np.float64]:
        """Live (num_joints, 3) Euler angles; writable in place."""
        return self._pose.euler_angles

    @property
    def transforms(self) -> JointTransforms:
        return self._transforms

    # ── Hierarchy accessors ─────────────────────────────────────────

    @property
    def num_joints(self) -> int:
        return len(self._parents)

    @property
    def parents(self) -> tuple[int, ...]:
        return tuple(self._parents)

    @property
    def update_order(self) -> tuple[int, ...]:
        return tuple(self._update_order)

    def joint_parent(self, joint_id: int) -> int:
        """Parent index; -1 for a root."""
        return self._parents[joint_id]

    def joint_children(self, joint_id: int) -> list[int]:
        return list(self._children[joint_id])

    def joint_descendents(self, joint_id: int) -> list[int]:
        """All joints below ``joint_id`` (excluding it), ascending."""
        found: list[int] = []
        queue = deque(self._children[joint_id])
        while queue:
            j = queue.popleft()
            found.append(j)
            queue.extend(self._children[j])
        return sorted(found)

    def joint_update_order(self, index: int) -> int:
        return self._update_order[index]

    # ── Rest-pose accessors ─────────────────────────────────────────

    def joint_rest_translation(self, joint_id: int) -> Vec3:
        return self._rest_translations[joint_id].copy()

    def joint_rest_euler_angles(self, joint_id: int) -> Vec3:
        return self._rest_euler_angles[joint_id].copy()

    def joint_orient(self, joint_id: int) -> Vec3:
        return self._joint_orients[joint_id].copy()

    def joint_orient_rotation(self, joint_id: int) -> Mat3:
        return self._orient_rotations[joint_id].copy()

    def joint_rotation_order(self, joint_id: int) -> RotationOrder:
        return self._rotation_orders[joint_id]

    def joint_rest_global_transform(self, joint_id: int) -> RigidTransform:
        return self._rest_global[joint_id].copy()

    # ── Current-pose accessors ──────────────────────────────────────

    def joint_global_position(self, joint_id: int) -> Vec3:
        return self._transforms.global_[joint_id].translation.copy()

    def joint_global_transform(self, joint_id: int) -> RigidTransform:
        return self._transforms.global_[joint_id].copy()

    def joint_skin_transforms(self) -> list[RigidTransform]:
        """Skinning transforms of all joints, indexed by joint id."""
        return self._transforms.skin
