"""CLI for docker-exec.

Provides a command-line interface using Typer for:
- Running a one-shot command in a throwaway container
- Checking that the Docker daemon is reachable
"""

from __future__ import annotations

import sys
from pathlib import Path

import docker
import requests
import typer
from docker.errors import DockerException
from rich.console import Console

from docker_exec.core.config import load_config
from docker_exec.core.errors import InvalidRequest, RunError
from docker_exec.core.schemas import ExecConfig, RunOutcome
from docker_exec.runners.container_runner import ContainerRunner
from docker_exec.utils.logging import setup_logging

app = typer.Typer(
    name="docker-exec",
    help="Run one-shot commands in throwaway Docker containers",
    add_completion=False,
)

# Status output goes to stderr so the command's stdout stays pipeable
console = Console(stderr=True)

# Exit codes for failures that happen before the command ran (as `docker run` does)
EXIT_INVALID_REQUEST = 2
EXIT_DAEMON_ERROR = 125


def _load_exec_config(config: Path | None) -> ExecConfig:
    if config is None:
        return ExecConfig()
    try:
        return load_config(config)
    except Exception as e:
        console.print(f"[bold red]Error loading config: {e}[/]")
        raise typer.Exit(EXIT_INVALID_REQUEST) from e


def _connect(exec_config: ExecConfig) -> docker.DockerClient:
    try:
        if exec_config.docker_base_url:
            return docker.DockerClient(
                base_url=exec_config.docker_base_url, timeout=exec_config.docker_timeout
            )
        return docker.from_env(timeout=exec_config.docker_timeout)
    except DockerException as e:
        console.print(f"[bold red]Cannot connect to Docker daemon: {e}[/]")
        raise typer.Exit(EXIT_DAEMON_ERROR) from e


def _exit_code_for(outcome: RunOutcome) -> int:
    if outcome.success:
        return 0
    # Process exit codes must fit in 0-255; -1 means "unknown"
    return outcome.exit_code if 0 < outcome.exit_code < 256 else 1


@app.command(context_settings={"allow_interspersed_args": False})
def run(
    image: str = typer.Argument(..., help="Image to run, e.g. alpine:3.20"),
    command: list[str] = typer.Argument(..., help="Command and arguments to execute"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait before stopping the container"
    ),
    env: list[str] = typer.Option(
        [], "--env", "-e", help="Environment variable KEY=VALUE (repeatable)"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to runner configuration file (YAML/JSON)"
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Logging level (overrides config)"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file in addition to console"
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Output logs in JSON format (for programmatic parsing)"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print the full outcome as JSON instead of the raw output"
    ),
) -> None:
    """Run COMMAND in a new container from IMAGE and remove it afterwards."""
    exec_config = _load_exec_config(config)
    setup_logging(
        level=log_level or exec_config.log_level,
        log_file=log_file,
        json_format=json_logs,
        rich_console=not json_logs,
    )

    environment: dict[str, str] = {}
    for item in env:
        key, sep, value = item.partition("=")
        if not sep or not key:
            console.print(f"[bold red]Invalid --env value {item!r}, expected KEY=VALUE[/]")
            raise typer.Exit(EXIT_INVALID_REQUEST)
        environment[key] = value

    client = _connect(exec_config)
    runner = ContainerRunner.from_docker(client, exec_config)

    try:
        outcome = runner.run(image, command, timeout, environment=environment)
    except InvalidRequest as e:
        console.print(f"[bold red]Invalid request: {e}[/]")
        raise typer.Exit(EXIT_INVALID_REQUEST) from e
    except RunError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(EXIT_DAEMON_ERROR) from e
    finally:
        client.close()

    if json_output:
        typer.echo(outcome.model_dump_json(indent=2))
    else:
        sys.stdout.write(outcome.stdout)
        sys.stdout.flush()
        sys.stderr.write(outcome.stderr)
        sys.stderr.flush()

    if not outcome.success:
        console.print(f"[bold yellow]{outcome.error_message}[/]")
    if outcome.cleanup_error:
        console.print(f"[bold red]Container cleanup failed: {outcome.cleanup_error}[/]")

    raise typer.Exit(_exit_code_for(outcome))


@app.command()
def check(
    config: Path | None = typer.Option(
        None, "--config", help="Path to runner configuration file (YAML/JSON)"
    ),
) -> None:
    """Check that the Docker daemon is reachable."""
    exec_config = _load_exec_config(config)
    client = _connect(exec_config)
    try:
        client.ping()
        version = client.version()
    except (DockerException, requests.exceptions.RequestException) as e:
        console.print(f"[bold red]Docker daemon not reachable: {e}[/]")
        raise typer.Exit(EXIT_DAEMON_ERROR) from e
    finally:
        client.close()

    console.print(
        f"[bold green]Docker daemon reachable[/] (version {version.get('Version', 'unknown')}, "
        f"API {version.get('ApiVersion', 'unknown')})"
    )


if __name__ == "__main__":
    app()
