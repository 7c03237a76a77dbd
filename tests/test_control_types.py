import dataclasses

import pytest

from pandactl.control_types import (
    CartesianPose,
    CartesianVelocities,
    ControllerMode,
    JointPositions,
    JointVelocities,
    RealtimeConfig,
    Torques,
    motion_finished,
)

IDENTITY = (1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1)
SEVEN = (0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 3.5)
SIX = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6)


@pytest.mark.parametrize(
    "cls,attr,values",
    [
        (Torques, "tau_j", SEVEN),
        (JointPositions, "q", SEVEN),
        (JointVelocities, "dq", SEVEN),
        (CartesianPose, "o_t_ee", IDENTITY),
        (CartesianVelocities, "o_dp_ee", SIX),
    ],
)
def test_values_are_stored(cls, attr, values):
    command = cls(list(values))
    assert getattr(command, attr) == tuple(float(v) for v in values)
    assert command.motion_finished is False


@pytest.mark.parametrize(
    "cls,values",
    [
        (Torques, SEVEN[:6]),
        (Torques, SEVEN + (0.0,)),
        (JointPositions, SEVEN[:3]),
        (JointVelocities, ()),
        (CartesianPose, IDENTITY[:15]),
        (CartesianVelocities, SIX + (1.0,)),
    ],
)
def test_wrong_length_raises(cls, values):
    with pytest.raises(ValueError):
        cls(values)


def test_cartesian_pose_elbow():
    without = CartesianPose(IDENTITY)
    with_elbow = CartesianPose(IDENTITY, elbow=(0.3, -1))
    assert without.has_elbow() is False
    assert with_elbow.has_elbow() is True
    assert with_elbow.elbow == (0.3, -1.0)


def test_cartesian_velocities_elbow():
    without = CartesianVelocities(SIX)
    with_elbow = CartesianVelocities(SIX, elbow=[0.2, 1])
    assert without.has_elbow() is False
    assert with_elbow.has_elbow() is True
    assert with_elbow.elbow == (0.2, 1.0)


@pytest.mark.parametrize("cls,values", [(CartesianPose, IDENTITY), (CartesianVelocities, SIX)])
def test_bad_elbow_length_raises(cls, values):
    with pytest.raises(ValueError):
        cls(values, elbow=(1.0, 2.0, 3.0))


@pytest.mark.parametrize(
    "command",
    [
        Torques(SEVEN),
        JointPositions(SEVEN),
        JointVelocities(SEVEN),
        CartesianPose(IDENTITY, elbow=(0.1, 1)),
        CartesianVelocities(SIX),
    ],
)
def test_motion_finished_marks_copy(command):
    finished = motion_finished(command)
    assert finished.motion_finished is True
    assert command.motion_finished is False
    assert type(finished) is type(command)
    assert dataclasses.replace(finished, motion_finished=False) == command


def test_commands_are_immutable():
    command = JointPositions(SEVEN)
    with pytest.raises(dataclasses.FrozenInstanceError):
        command.motion_finished = True
    assert command.motion_finished is False
    assert command.q == SEVEN


def test_enum_members_round_trip_by_value():
    for member in ControllerMode:
        assert ControllerMode(member.value) is member
    for member in RealtimeConfig:
        assert RealtimeConfig(member.value) is member
    assert {m.name for m in ControllerMode} == {"JOINT_IMPEDANCE", "CARTESIAN_IMPEDANCE"}
    assert {m.name for m in RealtimeConfig} == {"ENFORCE", "IGNORE"}