import pytest

from mesamate.delivery import DeliverySession, DeliveryStatus, table_number
from mesamate.errors import UnreachableTarget
from mesamate.pose import Direction, Pose


def make_session(context, planner, tables, **kwargs):
    kwargs.setdefault("confirm_timeout", 0)
    return DeliverySession(context, tables, planner=planner, poll_interval=0.001, **kwargs)


def test_table_number():
    assert table_number("T3") == 3
    assert table_number("t12") == 12
    assert table_number("bar") is None


def test_single_table_delivery(context, planner, link):
    session = make_session(context, planner, ["t1"])
    statuses = []
    session.on_status.append(lambda s: statuses.append(s.status))

    assert session.run() is DeliveryStatus.COMPLETE
    assert statuses == [DeliveryStatus.MOVING, DeliveryStatus.ARRIVED,
                        DeliveryStatus.RETURNING, DeliveryStatus.COMPLETE]

    arrived = link.sent.index("TABLE1_ARRIVED")
    received = link.sent.index("TABLE1_RECEIVED")
    assert arrived < received
    # four moves north, a left turn and one move west before arriving
    assert link.sent[:arrived] == ["MOVE_DISTANCE:24.00"] * 4 + ["TURN_ANGLE:-90.0", "MOVE_DISTANCE:24.00"]
    assert context.pose.current() == Pose(2, 4, Direction.S)
    assert session.progress.completed_steps == session.progress.total_steps == 10


def test_multi_table_order(context, planner, link):
    session = make_session(context, planner, ["T2", "T1"])
    session.run()
    leds = [line for line in link.sent if line.startswith("TABLE")]
    assert leds == ["TABLE2_ARRIVED", "TABLE2_RECEIVED", "TABLE1_ARRIVED", "TABLE1_RECEIVED"]
    assert session.status is DeliveryStatus.COMPLETE
    assert context.pose.current().cell == (2, 4)


def test_tables_without_led_are_still_served(context, planner, link):
    session = make_session(context, planner, ["T5"])
    assert session.run() is DeliveryStatus.COMPLETE
    assert not any(line.startswith("TABLE") for line in link.sent)


def test_unknown_table_fails_before_sending(context, planner, link):
    session = make_session(context, planner, ["T1", "T42"])
    with pytest.raises(UnreachableTarget) as excinfo:
        session.start()
    assert excinfo.value.stop == "T42"
    assert link.sent == []


def test_unreachable_table_fails_before_sending(context, planner, link):
    positions = {"T1": (1, 0), "BOOTH": (0, 0)}
    session = make_session(context, planner, ["T1", "BOOTH"], table_positions=positions)
    with pytest.raises(UnreachableTarget) as excinfo:
        session.plan()
    assert excinfo.value.stop == "BOOTH"
    assert excinfo.value.cell == (0, 0)
    assert link.sent == []


def test_cancel_while_waiting_for_confirmation(context, planner, link):
    session = make_session(context, planner, ["T1"], confirm_timeout=None)

    def cancel_on_arrival(s):
        if s.status is DeliveryStatus.ARRIVED:
            s.cancel()

    session.on_status.append(cancel_on_arrival)
    assert session.run() is DeliveryStatus.CANCELLED
    assert link.sent[-1] == "STOP"
    assert "TABLE1_RECEIVED" not in link.sent


def test_manual_confirmation(context, planner, link):
    session = make_session(context, planner, ["T3"], confirm_timeout=None)
    session.on_status.append(lambda s: s.confirm_delivery() if s.status is DeliveryStatus.ARRIVED else None)
    assert session.run() is DeliveryStatus.COMPLETE
    assert "TABLE3_RECEIVED" in link.sent


def test_busy_planner_fails_the_session(context, planner, link):
    session = make_session(context, planner, ["T1"])
    planner._busy.acquire()
    try:
        assert session.run() is DeliveryStatus.FAILED
    finally:
        planner._busy.release()
    assert link.sent == []


def test_start_runs_in_background(context, planner, link):
    session = make_session(context, planner, ["T2"])
    thread = session.start()
    session.join(timeout=10.0)
    assert not thread.is_alive()
    assert session.status is DeliveryStatus.COMPLETE
