"""Tests for the headless posing session."""

import numpy as np
import pytest

from rigforge.core.config_loader import load_builtin_rig
from rigforge.core.events import EventBus, EventType
from rigforge.coordination.session import PoseSession


@pytest.fixture
def session():
    return PoseSession.from_config(load_builtin_rig("bar"))


def test_loaded_rig(session):
    assert session.fk.num_joints == 3
    assert session.num_handles == 1
    assert session.skinning.num_vertices == session.mesh.geometry.vertex_count == 20
    np.testing.assert_allclose(session.handle_positions(), [[2, 0, 0]])
    assert session.handle_residual() == pytest.approx(0.0)


def test_rig_loaded_event():
    bus = EventBus()
    received = []
    bus.subscribe(EventType.RIG_LOADED, lambda **kw: received.append(kw))
    PoseSession.from_config(load_builtin_rig("bar"), events=bus)
    assert received == [{"num_joints": 3, "num_vertices": 20}]


def test_step_reduces_residual(session):
    session.move_handle(0, [-0.2, 0.5, 0.0])
    start = session.handle_residual()
    assert start == pytest.approx(np.linalg.norm([-0.2, 0.5, 0.0]))

    residuals = session.run(20)
    assert len(residuals) == 20
    assert residuals[0] < start
    assert residuals[-1] < residuals[0]
    assert session.frame_count == 20


def test_step_deforms_mesh(session):
    rest = session.mesh.rest_positions.copy()
    session.set_handle_target(0, [1.8, 0.6, 0.0])
    positions = session.step()
    assert positions.shape == (20, 3)
    assert not np.allclose(positions, rest)
    assert session.mesh.needs_update
    assert session.mesh.geometry.normals.shape == (20, 3)


def test_events_per_frame(session):
    seen = []
    session.events.subscribe(EventType.HANDLE_MOVED, lambda **kw: seen.append("moved"))
    session.events.subscribe(EventType.POSE_SOLVED, lambda **kw: seen.append("solved"))
    session.events.subscribe(EventType.FRAME_UPDATE, lambda **kw: seen.append(kw["frame"]))
    session.move_handle(0, [0, 0.1, 0])
    session.step()
    session.step()
    assert seen == ["moved", "solved", 1, "solved", 2]


def test_reset_pose(session):
    session.move_handle(0, [0, 0.5, 0.5])
    session.run(5)
    reset = []
    session.events.subscribe(EventType.POSE_RESET, lambda **kw: reset.append(True))

    session.reset_pose()
    assert reset == [True]
    np.testing.assert_array_equal(session.fk.euler_angles, 0.0)
    np.testing.assert_allclose(session.handle_targets, [[2, 0, 0]])
    np.testing.assert_allclose(session.mesh.positions, session.mesh.rest_positions, atol=1e-12)
