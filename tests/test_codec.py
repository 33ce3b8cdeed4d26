import pytest

from mesamate import codec


def test_encode_host_commands():
    assert codec.encode_move(24) == "MOVE_DISTANCE:24.00"
    assert codec.encode_turn(-90) == "TURN_ANGLE:-90.0"
    assert codec.encode_primitive(codec.Turn(90)) == "TURN_ANGLE:90.0"
    assert codec.encode_primitive(codec.Move(12.5)) == "MOVE_DISTANCE:12.50"
    assert codec.encode_table(2, arrived=True) == "TABLE2_ARRIVED"
    assert codec.encode_table(3, arrived=False) == "TABLE3_RECEIVED"


def test_encode_table_rejects_unknown_table():
    with pytest.raises(ValueError):
        codec.encode_table(4, arrived=True)


@pytest.mark.parametrize("angle", [45, 270, -270])
def test_turn_primitive_validation(angle):
    with pytest.raises(ValueError):
        codec.Turn(angle)


def test_move_primitive_validation():
    with pytest.raises(ValueError):
        codec.Move(0)


@pytest.mark.parametrize("line, expected", [
    ("MOVE_DISTANCE:24.00", codec.MoveDistance(24.0)),
    ("TURN_ANGLE:-90.0\r\n", codec.TurnAngle(-90.0)),
    ("FORWARD", codec.Drive("FORWARD")),
    ("left", codec.Drive("LEFT")),
    ("STOP", codec.Stop()),
    ("RESET", codec.Reset()),
    ("TABLE1_ARRIVED", codec.TableLed(1, True)),
    ("TABLE3_RECEIVED", codec.TableLed(3, False)),
])
def test_decode_command(line, expected):
    assert codec.decode_command(line) == expected


@pytest.mark.parametrize("line, reason", [
    ("MOVE_DISTANCE:abc", "invalid distance"),
    ("MOVE_DISTANCE:-3", "invalid distance"),
    ("MOVE_DISTANCE:0", "invalid distance"),
    ("MOVE_DISTANCE:nan", "invalid distance"),
    ("TURN_ANGLE:x", "invalid angle"),
    ("TABLE7_ARRIVED", "invalid table"),
    ("JUMP", "unknown command"),
    ("SPEED:3", "unknown command"),
])
def test_decode_command_invalid(line, reason):
    cmd = codec.decode_command(line)
    assert isinstance(cmd, codec.Invalid)
    assert cmd.reason == reason


@pytest.mark.parametrize("line, expected", [
    ("OBSTACLE:DETECTED", codec.ObstacleDetected()),
    ("OBSTACLE:CLEARED", codec.ObstacleCleared()),
    ("MOVEMENT_PAUSED:OBSTACLE", codec.MovementPaused("OBSTACLE")),
    ("MOVEMENT_RESUMED", codec.MovementResumed()),
    ("MOVEMENT_COMPLETE:SUCCESS", codec.MovementComplete("SUCCESS")),
    ("MOVEMENT_COMPLETE:STOPPED", codec.MovementComplete("STOPPED")),
    ("RECEIVED:MOVE_DISTANCE:24.00", codec.ReceivedEcho("MOVE_DISTANCE:24.00")),
    ("BLOCKED:already moving", codec.Blocked("already moving")),
    ("Robot ready", codec.Unknown("Robot ready")),
    ("ERROR:unknown command: JUMP", codec.Unknown("ERROR:unknown command: JUMP")),
])
def test_decode_event(line, expected):
    assert codec.decode_event(line) == expected


def test_encode_event_matches_wire_format():
    assert codec.encode_event(codec.MovementPaused()) == "MOVEMENT_PAUSED:OBSTACLE"
    assert codec.encode_event(codec.Blocked("obstacle")) == "BLOCKED:obstacle"
    assert codec.decode_event(codec.encode_event(codec.MovementComplete("SUCCESS"))) == \
        codec.MovementComplete("SUCCESS")


def test_obstruction_classification():
    assert codec.is_obstruction(codec.ObstacleDetected())
    assert codec.is_obstruction(codec.MovementPaused())
    assert codec.is_clearance(codec.ObstacleCleared())
    assert codec.is_clearance(codec.MovementResumed())
    assert not codec.is_obstruction(codec.MovementComplete("SUCCESS"))


@pytest.mark.parametrize("inches", [12.345, 0.01, 24, 33.94])
def test_move_survives_the_wire(inches):
    decoded = codec.decode_command(codec.encode_primitive(codec.Move(inches)))
    assert isinstance(decoded, codec.MoveDistance)
    assert decoded.inches == pytest.approx(inches, abs=0.005)
