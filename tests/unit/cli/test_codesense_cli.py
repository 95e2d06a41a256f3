"""Unit tests for the codesense command line flags."""

from unittest.mock import patch

from click.testing import CliRunner

from codesense import __version__
from codesense.cli import main
from codesense.config import ConfigError
from codesense.daemon.lifecycle import DEFAULT_IDLE_TIMEOUT


class TestCliOptions:
    """Flags are translated into DaemonOptions."""

    def test_defaults(self):
        runner = CliRunner()
        with patch("codesense.cli.start_daemon") as mock_start:
            result = runner.invoke(main, [])

        assert result.exit_code == 0, result.output
        options = mock_start.call_args.args[0]
        assert options.port is None
        assert options.persistent is False
        assert options.verbose is False
        assert options.write_port_file is True
        assert options.idle_timeout == DEFAULT_IDLE_TIMEOUT
        assert options.strip_crs is False

    def test_all_flags(self, tmp_path):
        runner = CliRunner()
        with patch("codesense.cli.start_daemon") as mock_start:
            result = runner.invoke(
                main,
                [
                    "--port",
                    "8123",
                    "--persistent",
                    "--verbose",
                    "--no-port-file",
                    "--idle-timeout",
                    "30",
                    "--strip-crs",
                    "--project-dir",
                    str(tmp_path),
                ],
            )

        assert result.exit_code == 0, result.output
        options = mock_start.call_args.args[0]
        assert options.port == 8123
        assert options.persistent is True
        assert options.verbose is True
        assert options.write_port_file is False
        assert options.idle_timeout == 30.0
        assert options.strip_crs is True
        assert mock_start.call_args.kwargs["start_dir"] == tmp_path

    def test_idle_timeout_must_be_positive(self):
        runner = CliRunner()
        with patch("codesense.cli.start_daemon") as mock_start:
            result = runner.invoke(main, ["--idle-timeout", "0"])

        assert result.exit_code == 2
        mock_start.assert_not_called()

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert __version__ in result.output


class TestCliErrors:
    """Fatal startup errors exit with status 1."""

    def test_config_error_exits_1(self):
        runner = CliRunner()
        with patch(
            "codesense.cli.start_daemon",
            side_effect=ConfigError("Bad JSON in /p/.codesense-project"),
        ):
            result = runner.invoke(main, [])

        assert result.exit_code == 1

    def test_bind_error_exits_1(self):
        runner = CliRunner()
        with patch(
            "codesense.cli.start_daemon",
            side_effect=OSError(98, "Address already in use"),
        ):
            result = runner.invoke(main, ["--port", "8123"])

        assert result.exit_code == 1
