# pandactl

Building blocks for driving a 7-joint robot arm from Python:

- `pandactl.control_types`: command types for torque control and motion
  generation (`Torques`, `JointPositions`, `JointVelocities`, `CartesianPose`,
  `CartesianVelocities`), the `ControllerMode` and `RealtimeConfig` enums, and
  the `motion_finished` helper.
- `pandactl.rate_limiting`: velocity, acceleration and jerk limiting for joint
  and Cartesian commands, at a fixed step of `DELTA_T` (1 ms).
- `pandactl.network`: a TCP/UDP transport with message headers, matching of
  responses to requests by command ID, and fixed-size datagram exchange.
- `pandactl.model`: access to the kinematic and dynamic model (poses, body and
  zero Jacobians, mass matrix, Coriolis and gravity vectors) for each `Frame`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Commands

Commands are frozen dataclasses. Their values are stored as tuples of floats.

```python
from pandactl.control_types import JointPositions, motion_finished

command = JointPositions([0.0, -0.785, 0.0, -2.356, 0.0, 1.571, 0.785])
last = motion_finished(command)
assert last.motion_finished
assert not command.motion_finished
```

`motion_finished` returns a copy with `motion_finished=True`; the command given
to it is unchanged.

A `CartesianPose` takes a column-major 4x4 homogeneous transformation of 16
values and, optionally, an elbow configuration of two values (position of the
3rd joint, sign of the 4th joint). `CartesianVelocities` takes six values and
an optional elbow in the same way.

```python
from pandactl.control_types import CartesianPose

identity = [1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1]
pose = CartesianPose(identity, elbow=[0.0, -1.0])
assert pose.has_elbow()
```

A command given the wrong number of values raises `ValueError`.

## Rate limiting

```python
from pandactl.rate_limiting import limit_joint_velocities

limited = limit_joint_velocities(
    max_velocity=[2.0] * 7,
    max_acceleration=[10.0] * 7,
    max_jerk=[5000.0] * 7,
    commanded_velocities=[1.0] * 7,
    last_commanded_velocities=[0.0] * 7,
    last_commanded_accelerations=[0.0] * 7,
)
```

The functions are:

- `limit_rate`: limits the first derivative of seven values (for example
  torques).
- `limit_velocity_rate` and `limit_position_rate`: limit a single velocity or
  position by velocity, acceleration and jerk bounds.
- `limit_joint_velocities` and `limit_joint_positions`: the same for seven
  joints, joint by joint.
- `limit_cartesian_velocity`: limits a twist of six values; the translational
  and the rotational part are each limited by the norm of their vector.
- `limit_cartesian_pose`: limits a column-major 4x4 pose against the last one.
  The rotational limits are scaled by
  `FACTOR_CARTESIAN_ROTATION_POSE_INTERFACE` (0.99).
- `is_homogeneous_transformation`: checks that 16 column-major values have a
  bottom row of `0 0 0 1` and a rotation part with unit-norm rows and columns.

Each limiter raises `ValueError` when a commanded value is NaN or infinite, or
when a sequence has the wrong length. `limit_cartesian_pose` also raises it
when the commanded pose is not a valid homogeneous transformation.

## Network transport

```python
from pandactl.network import Network

with Network("192.0.2.10", 1337) as network:
    command_id = network.tcp_send_request(command, payload)
    response_payload = network.tcp_blocking_receive_response(command_id)
```

`Network(address, port, tcp_timeout=60.0, udp_timeout=1.0,
tcp_keepalive=(True, 1, 3, 1))` opens a TCP connection to the server and binds
a UDP socket on a free local port, available as `udp_port`.

- Every TCP message starts with a `MessageHeader` (command, command ID, total
  size in bytes), packed as three little-endian 32-bit unsigned integers.
- `tcp_send_request(command, payload)` sends a request and returns the command
  ID it was given; IDs count up from 0.
- `tcp_blocking_receive_response(command_id)` waits for the response with that
  ID and returns its payload. `tcp_receive_response(command_id, handler)` does
  not wait: if the response has arrived it passes the payload to `handler` and
  returns `True`, otherwise it returns `False`. Responses to other IDs are kept
  until asked for.
- `tcp_throw_if_connection_closed()` raises if the server has closed the
  connection.
- `udp_blocking_receive(size)` waits for a datagram of exactly `size` bytes;
  `udp_receive(size)` returns one if it is waiting and `None` otherwise.
  `udp_send(data)` sends to the address the last datagram came from, so a
  datagram must have been received first.

Connection failures, timeouts and a closed connection raise `NetworkException`;
messages of the wrong size raise `ProtocolException`.

## Model

`Model` is built from a `ModelLibrary`, a bundle of callables that compute
each quantity. `ModelLibrary.from_symbols` builds one from a mapping keyed by
the symbol names `Ji_J_J1` … `Ji_J_J9`, `O_J_J1` … `O_J_J9`, `O_T_J1` …
`O_T_J9`, `M_NE`, `c_NE` and `g_NE`, and raises `KeyError` naming the first
symbol that is missing.

```python
from pandactl.model import Frame, Model

model = Model(library)
pose = model.pose(Frame.END_EFFECTOR, q, f_t_ee, ee_t_k)
jacobian = model.zero_jacobian(Frame.FLANGE, q, f_t_ee, ee_t_k)
mass = model.mass(q, i_total, m_total, f_x_ctotal)
gravity = model.gravity(q, m_total, f_x_ctotal)  # gravity_earth defaults to (0, 0, -9.81)
```

All results are tuples of floats in column-major order: 16 for a pose, 42 for
a 6x7 Jacobian, 49 for the mass matrix and 7 for the Coriolis and gravity
vectors. For `Frame.STIFFNESS` the end effector routine is given the product
`f_t_ee` times `ee_t_k`. A frame that is not a `Frame` raises `ValueError`, as
does an input or a library result of the wrong length.

Each method has a `*_from_state` variant that reads `q`, `dq`, `f_t_ee`,
`ee_t_k`, `i_total`, `m_total` and `f_x_ctotal` from any object with those
attributes.

The frames run from `JOINT1` to `JOINT7`, then `FLANGE`, `END_EFFECTOR` and
`STIFFNESS`. `Frame.next()` returns the following frame and raises
`ValueError` for `STIFFNESS`.

## What this package does not do

- There is no robot object and no control loop: nothing here runs callbacks
  at 1 kHz, starts or stops motions, or sends robot commands on its own.
- It defines no robot state type and no wire format for states, commands or
  requests; callers pass payloads as bytes and decode them themselves.
- It does not fetch or load a model library; the routines behind a
  `ModelLibrary` have to be supplied by the caller.
- It keeps no log of sent commands and received states.