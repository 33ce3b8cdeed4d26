import pytest

from mesamate import main as cli


def test_deliver_arguments():
    args = cli.build_parser().parse_args(["deliver", "T1", "T3", "--sim", "--auto-confirm", "2"])
    assert args.command == "deliver"
    assert args.tables == ["T1", "T3"]
    assert args.sim is True
    assert args.auto_confirm == 2.0


def test_device_arguments():
    args = cli.build_parser().parse_args(["device", "--port", "/dev/ttyS0", "--sim-obstacle", "4"])
    assert args.port == "/dev/ttyS0"
    assert args.sim_obstacle == 4.0
    assert args.sim is False


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_ports(monkeypatch, capsys):
    monkeypatch.setattr(cli, "list_ports", lambda: ["/dev/ttyACM0", "/dev/ttyUSB0"])
    assert cli.main(["ports"]) == 0
    assert capsys.readouterr().out.split() == ["/dev/ttyACM0", "/dev/ttyUSB0"]


def test_deliver_unknown_table_exits_early():
    assert cli.main(["deliver", "T99", "--sim", "--auto-confirm", "0"]) == 2


def test_device_port_failure_stops_motors(monkeypatch, capsys):
    import serial

    from mesamate import sim

    opened = []

    def _open_sim_hardware(*args, **kwargs):
        hw = real_open(*args, **kwargs)
        opened.append(hw)
        return hw

    def _no_port(*args, **kwargs):
        raise serial.SerialException("could not open port /dev/nope")

    real_open = sim.open_sim_hardware
    monkeypatch.setattr(sim, "open_sim_hardware", _open_sim_hardware)
    monkeypatch.setattr(serial, "Serial", _no_port)

    assert cli.main(["device", "--sim", "--port", "/dev/nope"]) == 2
    assert "cannot open /dev/nope" in capsys.readouterr().out
    assert opened[0].world.motor_log == [(0, 0)]
