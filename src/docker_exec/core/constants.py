"""Shared constants for docker-exec.

Centralized constants to avoid duplication and ensure consistency across modules.
"""

from __future__ import annotations

# Seconds the daemon waits after SIGTERM before sending SIGKILL when a timed-out or
# cancelled run is stopped. 0 kills at once; a shell running as PID 1 ignores SIGTERM.
DEFAULT_STOP_GRACE_SECONDS = 0.0

# Seconds to wait for the exit-waiter thread to observe a forced stop.
DEFAULT_JOIN_GRACE_SECONDS = 5.0

# Per-request read timeout for a single wait call; the wait is re-issued until exit.
DEFAULT_WAIT_POLL_SECONDS = 30.0

# Default HTTP timeout for the Docker client built by the CLI.
DEFAULT_DOCKER_TIMEOUT_SECONDS = 60

# Synthetic exit codes (same convention as coreutils `timeout` and shells on SIGINT)
TIMEOUT_EXIT_CODE = 124
CANCELLED_EXIT_CODE = 130

# Exit code reported when the daemon never produced one
UNKNOWN_EXIT_CODE = -1
