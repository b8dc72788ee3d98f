import pytest

from wsecho.cmds import Cmd, main


def test_parse_server():
    cmd = Cmd(environ={})
    cmd.parse(["server", "-H", "0.0.0.0", "-p", "4000"])

    assert cmd.command == "server"
    assert cmd.config.host == "0.0.0.0"
    assert cmd.config.port == 4000
    assert cmd.output is None


def test_parse_client_long_options():
    cmd = Cmd(environ={})
    cmd.parse(["client", "--path=/chat", "--message", "bonjour", "--output", "client.log", "--verbose"])

    assert cmd.command == "client"
    assert cmd.config.path == "/chat"
    assert cmd.config.message == "bonjour"
    assert cmd.config.log_level == "DEBUG"
    assert cmd.output == "client.log"


def test_options_override_environment():
    cmd = Cmd(environ={"PORT": "5000", "WS_MESSAGE": "from env"})
    cmd.parse(["client"])
    assert cmd.config.port == 5000
    assert cmd.config.message == "from env"

    cmd = Cmd(environ={"PORT": "5000"})
    cmd.parse(["-p", "6000", "client"])
    assert cmd.config.port == 6000


def test_help(capsys):
    with pytest.raises(SystemExit) as excinfo:
        Cmd(environ={}).parse(["-h"])
    assert not excinfo.value.code
    assert "Usages: wsecho" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [
    [],
    ["serve"],
    ["server", "client"],
    ["server", "-p", "eighty"],
    ["server", "-p", "70000"],
    ["client", "--port=-1"],
])
def test_parse_invalid(argv):
    with pytest.raises(ValueError):
        Cmd(environ={}).parse(argv)


@pytest.mark.parametrize("argv", [
    ["server", "-x"],
    ["server", "-p"],
    ["server", "-p", "70000"],
])
def test_main_usage_error(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 2
    assert "Usages: wsecho" in capsys.readouterr().err
