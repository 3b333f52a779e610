"""Tests for the docker-exec CLI."""

from unittest.mock import MagicMock, patch

import pytest
from docker.errors import DockerException
from typer.testing import CliRunner

from docker_exec.cli import EXIT_DAEMON_ERROR, EXIT_INVALID_REQUEST, app
from docker_exec.core.errors import CreationFailed, InvalidRequest
from docker_exec.core.schemas import OutcomeReason, OutcomeStatus, RunOutcome


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def docker_client():
    with patch("docker_exec.cli.docker.from_env") as from_env:
        client = MagicMock()
        client.version.return_value = {"Version": "27.0.1", "ApiVersion": "1.46"}
        from_env.return_value = client
        yield client


@pytest.fixture
def runner_mock(docker_client):
    with (
        patch("docker_exec.cli.ContainerRunner.from_docker") as from_docker,
        patch("docker_exec.cli.setup_logging"),
    ):
        runner = MagicMock()
        from_docker.return_value = runner
        yield runner


class TestRunCommand:
    """Tests for `docker-exec run`."""

    def test_success(self, cli_runner, runner_mock, docker_client):
        """Test stdout is forwarded and the exit code is 0."""
        runner_mock.run.return_value = RunOutcome(
            status=OutcomeStatus.SUCCESS, stdout="hi\n", exit_code=0
        )

        result = cli_runner.invoke(app, ["run", "--timeout", "5", "alpine", "echo", "hi"])

        assert result.exit_code == 0
        assert "hi" in result.stdout
        args, kwargs = runner_mock.run.call_args
        assert args[0] == "alpine"
        assert list(args[1]) == ["echo", "hi"]
        assert args[2] == 5.0
        assert kwargs == {"environment": {}}
        docker_client.close.assert_called_once_with()

    def test_command_options_not_parsed(self, cli_runner, runner_mock):
        """Test flags after the image belong to the container command."""
        runner_mock.run.return_value = RunOutcome(status=OutcomeStatus.SUCCESS, exit_code=0)

        result = cli_runner.invoke(app, ["run", "alpine", "sh", "-c", "exit 0"])

        assert result.exit_code == 0
        assert list(runner_mock.run.call_args.args[1]) == ["sh", "-c", "exit 0"]

    def test_env_parsing(self, cli_runner, runner_mock):
        runner_mock.run.return_value = RunOutcome(status=OutcomeStatus.SUCCESS, exit_code=0)

        result = cli_runner.invoke(app, ["run", "-e", "A=1", "-e", "B=x=y", "alpine", "env"])

        assert result.exit_code == 0
        assert runner_mock.run.call_args.kwargs["environment"] == {"A": "1", "B": "x=y"}

    def test_invalid_env(self, cli_runner, runner_mock):
        result = cli_runner.invoke(app, ["run", "-e", "NOVALUE", "alpine", "env"])

        assert result.exit_code == EXIT_INVALID_REQUEST
        runner_mock.run.assert_not_called()

    def test_non_zero_exit_propagated(self, cli_runner, runner_mock):
        """Test the container's exit code becomes the CLI's exit code."""
        runner_mock.run.return_value = RunOutcome(
            status=OutcomeStatus.FAILURE,
            exit_code=3,
            reason=OutcomeReason.NON_ZERO_EXIT,
            error_message="Command failed with status code: 3",
        )

        result = cli_runner.invoke(app, ["run", "alpine", "false"])

        assert result.exit_code == 3

    def test_timeout_exit_code(self, cli_runner, runner_mock):
        runner_mock.run.return_value = RunOutcome(
            status=OutcomeStatus.FAILURE,
            exit_code=124,
            reason=OutcomeReason.TIMED_OUT,
            error_message="Execution timed out after 1.0s",
        )

        result = cli_runner.invoke(app, ["run", "-t", "1", "alpine", "sleep", "30"])

        assert result.exit_code == 124

    def test_unknown_exit_code_maps_to_one(self, cli_runner, runner_mock):
        runner_mock.run.return_value = RunOutcome(
            status=OutcomeStatus.FAILURE,
            exit_code=-1,
            reason=OutcomeReason.RUNTIME_ERROR,
            error_message="Waiting for container failed",
        )

        result = cli_runner.invoke(app, ["run", "alpine", "true"])

        assert result.exit_code == 1

    def test_json_output(self, cli_runner, runner_mock):
        runner_mock.run.return_value = RunOutcome(
            status=OutcomeStatus.SUCCESS, stdout="hi\n", exit_code=0
        )

        result = cli_runner.invoke(app, ["run", "--json", "alpine", "echo", "hi"])

        assert result.exit_code == 0
        assert '"status": "success"' in result.stdout

    def test_creation_failed(self, cli_runner, runner_mock, docker_client):
        """Test daemon rejections exit with 125 and still close the client."""
        runner_mock.run.side_effect = CreationFailed("No such image: nope:latest")

        result = cli_runner.invoke(app, ["run", "nope:latest", "true"])

        assert result.exit_code == EXIT_DAEMON_ERROR
        docker_client.close.assert_called_once_with()

    def test_invalid_request(self, cli_runner, runner_mock):
        runner_mock.run.side_effect = InvalidRequest("image must be a non-empty string")

        result = cli_runner.invoke(app, ["run", " ", "true"])

        assert result.exit_code == EXIT_INVALID_REQUEST

    def test_config_file(self, cli_runner, runner_mock, tmp_path):
        """Test the config file is loaded and handed to the runner."""
        config_path = tmp_path / "exec.yaml"
        config_path.write_text("stop_grace_seconds: 2\n")
        runner_mock.run.return_value = RunOutcome(status=OutcomeStatus.SUCCESS, exit_code=0)

        with patch("docker_exec.cli.ContainerRunner.from_docker") as from_docker:
            from_docker.return_value = runner_mock
            result = cli_runner.invoke(app, ["run", "--config", str(config_path), "alpine", "true"])

        assert result.exit_code == 0
        exec_config = from_docker.call_args.args[1]
        assert exec_config.stop_grace_seconds == 2

    def test_bad_config_file(self, cli_runner, runner_mock, tmp_path):
        config_path = tmp_path / "exec.toml"
        config_path.write_text("")

        result = cli_runner.invoke(app, ["run", "--config", str(config_path), "alpine", "true"])

        assert result.exit_code == EXIT_INVALID_REQUEST

    def test_daemon_unreachable(self, cli_runner):
        with (
            patch("docker_exec.cli.docker.from_env", side_effect=DockerException("no socket")),
            patch("docker_exec.cli.setup_logging"),
        ):
            result = cli_runner.invoke(app, ["run", "alpine", "true"])

        assert result.exit_code == EXIT_DAEMON_ERROR


class TestCheckCommand:
    """Tests for `docker-exec check`."""

    def test_reachable(self, cli_runner, docker_client):
        result = cli_runner.invoke(app, ["check"])

        assert result.exit_code == 0
        docker_client.ping.assert_called_once_with()
        assert "27.0.1" in result.output

    def test_unreachable(self, cli_runner, docker_client):
        docker_client.ping.side_effect = DockerException("connection refused")

        result = cli_runner.invoke(app, ["check"])

        assert result.exit_code == EXIT_DAEMON_ERROR
