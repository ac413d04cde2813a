"""Shared utilities for running external tools."""

import subprocess
import threading
import time
from typing import Mapping, Optional

from container_attest.exceptions import CommandCancelledError, CommandExecutionError
from container_attest.logging_config import logger

# Default command timeout in seconds
DEFAULT_TIMEOUT = 600

# Progress indicator interval in seconds
PROGRESS_INTERVAL = 60

# How often a running command checks for cancellation, in seconds
POLL_INTERVAL = 0.5

# Grace period between SIGTERM and SIGKILL when stopping a command
TERMINATE_GRACE_PERIOD = 5


def log_command_error(command_name: str, stderr: str) -> None:
    """
    Log command errors with a standardized format.

    Args:
        command_name: The name of the command that failed
        stderr: The stderr output from the command
    """
    if stderr:
        logger.error(f"[{command_name}] error: {stderr.strip()}")


def run_command(
    cmd: list[str],
    command_name: str,
    timeout: float = DEFAULT_TIMEOUT,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> subprocess.CompletedProcess:
    """
    Run a command and handle common error cases.

    For long-running commands, logs progress every PROGRESS_INTERVAL seconds.
    When ``cancel_event`` is set while the command runs, the process is
    terminated and CommandCancelledError is raised.

    Args:
        cmd: Command to run as a list
        command_name: Name of the command for error reporting
        timeout: Command timeout in seconds
        cwd: Working directory for the command (optional)
        env: Environment for the command (optional, defaults to the current one)
        cancel_event: Event that aborts the command when set (optional)

    Returns:
        CompletedProcess result with captured stdout/stderr

    Raises:
        CommandExecutionError: If the command fails, times out or is missing
        CommandCancelledError: If the command was cancelled
    """
    cwd_info = f" (cwd: {cwd})" if cwd else ""
    logger.info(f"Running command: {' '.join(cmd)}{cwd_info}")

    if cancel_event is not None and cancel_event.is_set():
        raise CommandCancelledError(f"{command_name} not started: run cancelled")

    start_time = time.time()
    stop_progress = threading.Event()

    def log_progress():
        """Log progress periodically while command is running."""
        while not stop_progress.wait(PROGRESS_INTERVAL):
            elapsed = int(time.time() - start_time)
            minutes = elapsed // 60
            seconds = elapsed % 60
            logger.info(f"{command_name} still running... ({minutes}m {seconds}s elapsed, timeout: {int(timeout)}s)")

    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            shell=False,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError:
        logger.error(f"{command_name} command not found")
        raise CommandExecutionError(f"{command_name} command not found - is it installed?")

    progress_thread = threading.Thread(target=log_progress, daemon=True)
    progress_thread.start()

    try:
        stdout, stderr = _wait_for_process(process, command_name, timeout, start_time, cancel_event)
    except KeyboardInterrupt:
        # Ctrl-C / SIGTERM in this thread: the child must not outlive the run
        logger.warning(f"Interrupted, stopping {command_name}")
        _terminate(process)
        raise
    finally:
        stop_progress.set()
        progress_thread.join(timeout=1)

    if process.returncode != 0:
        logger.error(f"{command_name} command failed with return code {process.returncode}")
        log_command_error(command_name, stderr or "")
        raise CommandExecutionError(
            f"{command_name} command failed with return code {process.returncode}",
            returncode=process.returncode,
            stderr=stderr,
        )

    return subprocess.CompletedProcess(cmd, process.returncode, stdout, stderr)


def _wait_for_process(
    process: subprocess.Popen,
    command_name: str,
    timeout: float,
    start_time: float,
    cancel_event: Optional[threading.Event],
) -> tuple[str, str]:
    """Wait for a process, honouring the timeout and the cancel event."""
    deadline = start_time + timeout
    while True:
        if cancel_event is not None and cancel_event.is_set():
            logger.warning(f"Cancelling {command_name}")
            _terminate(process)
            raise CommandCancelledError(f"{command_name} cancelled")

        remaining = deadline - time.time()
        if remaining <= 0:
            elapsed = int(time.time() - start_time)
            logger.error(f"{command_name} command timed out after {elapsed}s (limit: {int(timeout)}s)")
            _terminate(process)
            raise CommandExecutionError(f"{command_name} command timed out")

        try:
            return process.communicate(timeout=min(POLL_INTERVAL, remaining))
        except subprocess.TimeoutExpired:
            # communicate() keeps buffered output across retries
            continue


def _terminate(process: subprocess.Popen) -> None:
    """Stop a process, escalating to SIGKILL if it ignores SIGTERM."""
    process.terminate()
    try:
        process.communicate(timeout=TERMINATE_GRACE_PERIOD)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
