"""Tests for the IK solver."""

import numpy as np
import pytest

from rigforge.core.math_utils import RotationOrder
from rigforge.rig.ik import InverseKinematics
from rigforge.rig.skeleton import ForwardKinematics, Pose


def _bent_arm(length=10.0):
    """Three joints: shoulder at the origin, elbow along +X, wrist along +Y."""
    parents = [-1, 0, 1]
    translations = [[0, 0, 0], [length, 0, 0], [0, length, 0]]
    zeros = np.zeros((3, 3))
    return ForwardKinematics(parents, translations, zeros, zeros)


def _twisted_tree():
    parents = [-1, 0, 1, 1, 3]
    translations = [[0, 1, 0], [2, 0, 0], [0, 3, 1], [1, 1, 0], [0, 0, 2]]
    rest = [[5, 10, -5], [0, 20, 0], [-15, 0, 30], [10, 10, 10], [0, 0, 0]]
    orients = [[0, 0, 0], [0, 45, 0], [0, 0, 0], [30, 0, -20], [0, 0, 0]]
    orders = [RotationOrder.XYZ, RotationOrder.ZXY, RotationOrder.YZX,
              RotationOrder.ZYX, RotationOrder.XZY]
    return ForwardKinematics(parents, translations, rest, orients, orders)


def _residual(ik, fk, targets):
    return float(np.linalg.norm(np.asarray(targets) - ik.handle_positions(fk.euler_angles)))


# ── Construction ──────────────────────────────────────────────────────

def test_dimensions():
    fk = _twisted_tree()
    ik = InverseKinematics([2, 4], fk)
    assert ik.handle_joint_ids == (2, 4)
    assert ik.fk_input_dim == 15
    assert ik.fk_output_dim == 6


def test_handle_positions_match_fk():
    fk = _twisted_tree()
    ik = InverseKinematics([2, 4], fk, jacobian="central_difference")
    fk.euler_angles[:] = np.arange(15).reshape(5, 3) * 3.0
    fk.compute_joint_transforms()
    expected = [fk.joint_global_position(2), fk.joint_global_position(4)]
    np.testing.assert_allclose(ik.handle_positions(fk.euler_angles), expected, atol=1e-12)


@pytest.mark.parametrize("handles", [[], [7], [-1]])
def test_bad_handles(handles):
    with pytest.raises(ValueError):
        InverseKinematics(handles, _bent_arm(), jacobian="central_difference")


def test_bad_method_and_mode():
    with pytest.raises(ValueError):
        InverseKinematics([2], _bent_arm(), method="newton")
    with pytest.raises(ValueError):
        InverseKinematics([2], _bent_arm(), jacobian="symbolic")


def test_damping_must_be_positive():
    fk = _bent_arm()
    with pytest.raises(ValueError):
        InverseKinematics([2], fk, damping=0.0, jacobian="central_difference")
    ik = InverseKinematics([2], fk, damping=0.0, method="pseudoinverse",
                           jacobian="central_difference")
    assert ik.damping == 0.0
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    with pytest.raises(ValueError):
        ik.damping = -1.0


def test_wrong_target_count():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    with pytest.raises(ValueError):
        ik.solve(np.zeros((2, 3)), fk.euler_angles)


# ── Jacobian ──────────────────────────────────────────────────────────

def test_autodiff_matches_central_difference():
    fk = _twisted_tree()
    angles = np.array([[12, -7, 33], [0, 15, -40], [25, 5, 0], [-10, 80, 3], [1, 2, 3]], float)
    auto = InverseKinematics([2, 4], fk).jacobian(angles)
    numeric = InverseKinematics([2, 4], fk, jacobian="central_difference").jacobian(angles)
    assert auto.shape == (6, 15)
    np.testing.assert_allclose(auto, numeric, atol=1e-8)


def test_jacobian_predicts_small_perturbation():
    fk = _twisted_tree()
    ik = InverseKinematics([2, 4], fk)
    x = fk.rest_pose().flat()
    value, jac = ik.evaluate(x)
    eps = 1e-2
    for k in range(ik.fk_input_dim):
        step = np.zeros_like(x)
        step[k] = eps
        moved = ik.handle_positions(x + step).reshape(-1)
        error = np.linalg.norm(moved - value - jac[:, k] * eps)
        assert error < 1e-2 * eps ** 2


def test_jacobian_column_of_root_z():
    # Rotating the root about Z moves a handle at (10, 10, 0) along
    # z × p = (-10, 10, 0), per radian.
    fk = _bent_arm()
    jac = InverseKinematics([2], fk).jacobian(fk.euler_angles)
    np.testing.assert_allclose(jac[:, 2], np.radians(1.0) * np.array([-10, 10, 0]), atol=1e-12)
    # The handle sits on its own joint's origin.
    np.testing.assert_allclose(jac[:, 6:9], 0.0, atol=1e-12)


# ── Solve ─────────────────────────────────────────────────────────────

def test_converges_monotonically_from_rest():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk)
    targets = fk.joint_global_position(2)[np.newaxis] + [0.5, -0.5, 0.5]

    residuals = [_residual(ik, fk, targets)]
    for _ in range(20):
        ik.solve(targets, fk.euler_angles)
        residuals.append(_residual(ik, fk, targets))

    assert all(b < a for a, b in zip(residuals, residuals[1:]))
    assert residuals[-1] < 1e-3 * residuals[0]


def test_solve_updates_in_place():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    angles = fk.euler_angles
    result = ik.solve(fk.joint_global_position(2) + [0, 0, 1], angles)
    assert result is angles
    assert np.any(angles != 0)


def test_solve_with_pose_object():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    pose = fk.rest_pose()
    ik.solve(fk.joint_global_position(2) + [0, 0, 1], pose)
    assert np.any(pose.euler_angles != 0)
    # The skeleton's live pose is untouched.
    np.testing.assert_array_equal(fk.euler_angles, 0.0)


def test_solve_updates_float32_in_place():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    angles = np.zeros((3, 3), dtype=np.float32)
    result = ik.solve(fk.joint_global_position(2) + [0, 0, 1], angles)
    assert result is angles
    assert angles.dtype == np.float32
    assert np.any(angles != 0)


@pytest.mark.parametrize("angles", [
    [[0.0, 0.0, 0.0]] * 3,
    np.zeros((3, 3), dtype=int),
])
def test_solve_rejects_angles_it_cannot_update(angles):
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, jacobian="central_difference")
    with pytest.raises(ValueError):
        ik.solve(fk.joint_global_position(2), angles)


def test_pseudoinverse_converges_fast():
    fk = _bent_arm()
    ik = InverseKinematics([2], fk, method="pseudoinverse")
    targets = fk.joint_global_position(2) + [0.5, -0.5, 0.5]
    for _ in range(5):
        ik.solve(targets, fk.euler_angles)
    assert _residual(ik, fk, targets) < 1e-6


def test_two_handles_reachable_targets():
    fk = _twisted_tree()
    ik = InverseKinematics([2, 4], fk, damping=1e-4)
    nearby = fk.rest_pose()
    nearby.euler_angles[[0, 1, 3]] += [[3, -2, 4], [0, 5, -3], [-4, 2, 0]]
    targets = ik.handle_positions(nearby)

    start = _residual(ik, fk, targets)
    for _ in range(20):
        ik.solve(targets, fk.euler_angles)
    assert _residual(ik, fk, targets) < 0.25 * start
