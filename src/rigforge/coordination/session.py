"""Per-frame posing session: handle targets → IK → FK → skinning."""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigforge.core.config_loader import RigConfig
from rigforge.core.events import EventBus, EventType
from rigforge.core.mesh import MeshInstance
from rigforge.loaders.obj_parser import load_obj_file
from rigforge.rig.ik import InverseKinematics
from rigforge.rig.skeleton import ForwardKinematics
from rigforge.rig.skinning import Skinning

logger = logging.getLogger(__name__)


class PoseSession:
    """Owns one rig and advances it one frame at a time.

    Call order per :meth:`step`:
      1. One IK step moves the live Euler angles toward the handle targets
      2. FK recomputes local, global and skin transforms
      3. Skinning deforms the mesh, normals are recomputed
      4. FRAME_UPDATE is published

    Handle targets start at the handles' rest positions; move them with
    :meth:`set_handle_target` or :meth:`move_handle`.
    """

    def __init__(
        self,
        fk: ForwardKinematics,
        ik: InverseKinematics,
        skinning: Skinning,
        mesh: MeshInstance,
        events: Optional[EventBus] = None,
    ):
        self.fk = fk
        self.ik = ik
        self.skinning = skinning
        self.mesh = mesh
        self.events = events if events is not None else EventBus()
        self.frame_count = 0
        self.handle_targets = self.handle_positions()

    @classmethod
    def from_config(cls, config: RigConfig, events: Optional[EventBus] = None) -> "PoseSession":
        """Load mesh, skeleton, weights and IK handles named by a rig config."""
        geometry = load_obj_file(config.mesh)
        mesh = MeshInstance(name=config.mesh.stem, geometry=geometry)
        mesh.store_rest_pose()

        fk = ForwardKinematics.from_files(config.joint_hierarchy, config.rest_transforms)
        skinning = Skinning(
            geometry.vertex_count, mesh.rest_positions, config.skinning_weights,
            method=config.skinning_method,
        )
        ik = InverseKinematics(
            config.ik_joint_ids, fk,
            damping=config.ik_damping, method=config.ik_method, jacobian=config.jacobian,
        )
        session = cls(fk, ik, skinning, mesh, events)
        session.events.publish(
            EventType.RIG_LOADED,
            num_joints=fk.num_joints, num_vertices=geometry.vertex_count,
        )
        return session

    @property
    def num_handles(self) -> int:
        return len(self.ik.handle_joint_ids)

    def handle_positions(self) -> NDArray[np.float64]:
        """Current world positions of the IK handles, (H, 3)."""
        return np.array([self.fk.joint_global_position(j) for j in self.ik.handle_joint_ids])

    def handle_residual(self) -> float:
        """Distance between handles and their targets (Frobenius norm)."""
        return float(np.linalg.norm(self.handle_targets - self.handle_positions()))

    def set_handle_target(self, handle: int, target) -> None:
        self.handle_targets[handle] = np.asarray(target, dtype=np.float64)
        self.events.publish(EventType.HANDLE_MOVED, handle=handle,
                            target=self.handle_targets[handle].copy())

    def move_handle(self, handle: int, delta) -> None:
        """Drag a handle target by ``delta`` (world units)."""
        self.set_handle_target(handle, self.handle_targets[handle] + np.asarray(delta, dtype=np.float64))

    def step(self) -> NDArray[np.float64]:
        """Advance one frame and return the deformed vertex positions."""
        self.ik.solve(self.handle_targets, self.fk.euler_angles)
        transforms = self.fk.compute_joint_transforms()
        residual = self.handle_residual()
        self.events.publish(EventType.POSE_SOLVED, residual=residual)

        self.mesh.positions = self.skinning.apply_skinning(transforms.skin)
        self.mesh.geometry.compute_normals()

        self.frame_count += 1
        logger.debug("Frame %d: handle residual %.6g", self.frame_count, residual)
        self.events.publish(EventType.FRAME_UPDATE, frame=self.frame_count,
                            positions=self.mesh.positions)
        return self.mesh.positions

    def run(self, frames: int) -> list[float]:
        """Step ``frames`` times; return the handle residual after each frame."""
        residuals = []
        for _ in range(frames):
            self.step()
            residuals.append(self.handle_residual())
        return residuals

    def reset_pose(self) -> None:
        """Back to rest pose; targets snap to the rest handle positions."""
        self.fk.reset_to_rest_pose()
        self.handle_targets = self.handle_positions()
        self.mesh.positions = self.skinning.apply_skinning(self.fk.joint_skin_transforms())
        self.mesh.geometry.compute_normals()
        self.events.publish(EventType.POSE_RESET)
