"""Tests for rig config loading."""

import json

import pytest

from rigforge.constants import DEFAULT_IK_DAMPING
from rigforge.core.config_loader import RigConfig, load_builtin_rig, load_rig_config
from rigforge.core.errors import ConfigError


def _minimal(**overrides):
    data = {
        "mesh": "m.obj",
        "joint_hierarchy": "s.hierarchy",
        "rest_transforms": "s.config",
        "skinning_weights": "s.weights",
        "ik_joint_ids": [1],
    }
    data.update(overrides)
    return data


def test_defaults_and_relative_paths(tmp_path):
    path = tmp_path / "rig.json"
    path.write_text(json.dumps(_minimal()))
    config = load_rig_config(path)
    assert config.mesh == tmp_path / "m.obj"
    assert config.skinning_weights == tmp_path / "s.weights"
    assert config.ik_joint_ids == [1]
    assert config.ik_damping == DEFAULT_IK_DAMPING
    assert config.ik_method == "damped_least_squares"
    assert config.jacobian == "autodiff"
    assert config.skinning_method == "dual_quaternion"


def test_solver_options():
    config = RigConfig.from_dict(_minimal(
        ik={"damping": 0.5, "method": "pseudoinverse", "jacobian": "central_difference"},
        skinning={"method": "linear_blend"},
    ))
    assert config.ik_damping == 0.5
    assert config.ik_method == "pseudoinverse"
    assert config.jacobian == "central_difference"
    assert config.skinning_method == "linear_blend"


def test_missing_key():
    data = _minimal()
    del data["mesh"]
    with pytest.raises(ConfigError, match="mesh"):
        RigConfig.from_dict(data)


@pytest.mark.parametrize("ids", [[], "2", [1.5], None])
def test_bad_handle_ids(ids):
    with pytest.raises(ConfigError):
        RigConfig.from_dict(_minimal(ik_joint_ids=ids))


@pytest.mark.parametrize("overrides", [
    {"ik": {"method": "newton"}},
    {"ik": {"jacobian": "symbolic"}},
    {"ik": {"damping": 0.0}},
    {"skinning": {"method": "spherical"}},
])
def test_bad_options(overrides):
    with pytest.raises(ConfigError):
        RigConfig.from_dict(_minimal(**overrides))


def test_invalid_json(tmp_path):
    path = tmp_path / "rig.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_rig_config(path)


def test_non_object_json(tmp_path):
    path = tmp_path / "rig.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        load_rig_config(path)


def test_builtin_bar_rig():
    config = load_builtin_rig("bar")
    assert config.mesh.exists()
    assert config.joint_hierarchy.exists()
    assert config.ik_joint_ids == [2]


def test_sections_must_be_objects():
    with pytest.raises(ConfigError):
        RigConfig.from_dict(_minimal(ik=[0.01]))
