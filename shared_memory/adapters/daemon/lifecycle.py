"""Daemon lifecycle management (spawn/start/stop/status).

Handles launching, stopping, and monitoring the daemon process.
"""

import contextlib
import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

from shared_memory.adapters.daemon.client import get_daemon_pid, is_daemon_running
from shared_memory.adapters.daemon.timeouts import DaemonTimeouts
from shared_memory.domain.config import DaemonConfig

logger = logging.getLogger(__name__)


class DaemonLifecycle:
    """Daemon lifecycle manager."""

    def __init__(self, config: DaemonConfig | None = None):
        """Initialize lifecycle manager.

        Args:
            config: Socket, PID file, log file and idle settings
        """
        self.config = config or DaemonConfig()

    @property
    def socket_path(self) -> Path:
        return self.config.socket_path

    @property
    def pid_file(self) -> Path:
        return self.config.pid_file

    @property
    def log_file(self) -> Path:
        return self.config.log_file

    def is_running(self) -> bool:
        """Check if daemon is running and answering pings."""
        return is_daemon_running(self.socket_path)

    def get_pid(self) -> int | None:
        """Get daemon PID from PID file.

        Returns:
            PID if file exists and contains valid PID, else None
        """
        if not self.pid_file.exists():
            return None

        try:
            return int(self.pid_file.read_text().strip())
        except (OSError, ValueError):
            return None

    def is_process_alive(self, pid: int) -> bool:
        """Check if a process is alive.

        Args:
            pid: Process ID

        Returns:
            True if process exists and is not a zombie
        """
        try:
            self._reap_zombie(pid)
            # Signal 0 only checks that the process exists
            os.kill(pid, 0)
            return True
        except OSError:
            return False

    def _reap_zombie(self, pid: int) -> None:
        """Attempt to reap a zombie process if it's our child."""
        with contextlib.suppress(ChildProcessError, OSError):
            os.waitpid(pid, os.WNOHANG)

    def _wait_for_death(self, pid: int, timeout_secs: float) -> bool:
        """Wait for a process to die within the given timeout.

        Returns:
            True if process died, False if still alive after timeout
        """
        checks = max(1, int(timeout_secs / DaemonTimeouts.DEATH_CHECK_INTERVAL))
        for _ in range(checks):
            time.sleep(DaemonTimeouts.DEATH_CHECK_INTERVAL)
            if not self.is_process_alive(pid):
                return True
        return False

    def _send_signal_and_wait(
        self, pid: int, sig: signal.Signals, timeout_secs: float
    ) -> bool | None:
        """Send a signal to a process and wait for it to die.

        Returns:
            True if process died, False if still alive after timeout,
            None if signal failed (process may have died or permission error)
        """
        try:
            os.kill(pid, sig)
        except OSError:
            return None

        return self._wait_for_death(pid, timeout_secs)

    def build_command(self) -> list[str]:
        """Command line that runs the daemon with this lifecycle's settings."""
        return [
            sys.executable,
            "-m",
            "shared_memory.adapters.daemon",
            "--socket",
            str(self.socket_path),
            "--pid-file",
            str(self.pid_file),
            "--log-file",
            str(self.log_file),
            "--idle-timeout",
            str(self.config.idle_timeout),
            "--idle-check-interval",
            str(self.config.idle_check_interval),
        ]

    def spawn(self) -> None:
        """Launch the daemon as an independent background process.

        Does not wait for it, keep a handle to it, or tie its lifetime to
        this process: it runs in its own session with no inherited stdio.
        If another daemon wins the race to bind, this one exits on its own.

        Raises:
            OSError: If the process cannot be launched
        """
        logger.info("Starting daemon in background...")

        env = os.environ.copy()
        # Tokenizers thread pools don't survive fork()
        env.setdefault("TOKENIZERS_PARALLELISM", "false")

        kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True

        subprocess.Popen(
            self.build_command(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            env=env,
            **kwargs,
        )

    def _wait_for_daemon_ready(
        self, max_wait_secs: float = DaemonTimeouts.READY_WAIT
    ) -> bool:
        """Wait for daemon to answer a ping.

        Returns:
            True if daemon is ready, False if timeout
        """
        interval = DaemonTimeouts.READY_CHECK_INTERVAL
        num_checks = int(max_wait_secs / interval)

        for i in range(num_checks):
            time.sleep(interval)
            if self.is_running():
                logger.info(f"Daemon is ready (took {(i + 1) * interval:.1f}s)")
                return True

        return False

    def start(self) -> bool:
        """Start the daemon and wait until it answers.

        Returns:
            True if started (or already running)

        Raises:
            RuntimeError: If the daemon cannot be launched or never answers
        """
        if self.is_running():
            logger.info("Daemon already running")
            return True

        try:
            self.spawn()
        except OSError as e:
            raise RuntimeError(f"Failed to start daemon: {e}") from e

        if self._wait_for_daemon_ready():
            return True

        raise RuntimeError(
            f"Daemon did not respond within {DaemonTimeouts.READY_WAIT:.0f}s. "
            f"Check daemon logs at: {self.log_file}"
        )

    def run_foreground(self) -> None:
        """Run the daemon in this process (blocks until it exits)."""
        from shared_memory.adapters.daemon.server import main

        main(self.build_command()[3:])

    def _resolve_pid(self) -> int | None:
        pid = self.get_pid()
        if pid is not None and self.is_process_alive(pid):
            return pid
        return get_daemon_pid(self.socket_path)

    def cleanup_stale_files(self) -> None:
        """Remove a PID file whose process is gone."""
        pid = self.get_pid()
        if pid is not None and not self.is_process_alive(pid):
            logger.info(f"Removing stale PID file (process {pid} not found)")
            self.pid_file.unlink(missing_ok=True)

    def stop(self, timeout: int = DaemonTimeouts.SIGTERM_WAIT) -> bool:
        """Stop the daemon gracefully.

        Shutdown sequence:
        1. Find the PID (PID file, then ping)
        2. Send SIGTERM and wait up to ``timeout`` seconds
        3. If still alive, send SIGKILL

        The daemon removes its own socket and PID file on SIGTERM.

        Returns:
            True if stopped (or was not running)
        """
        pid = self._resolve_pid()
        if pid is None:
            logger.info("Daemon not running")
            self.cleanup_stale_files()
            return True

        logger.info(f"Stopping daemon (PID {pid})...")
        result = self._send_signal_and_wait(pid, signal.SIGTERM, float(timeout))
        if result is True or (result is None and not self.is_process_alive(pid)):
            logger.info("Daemon stopped gracefully")
            self.cleanup_stale_files()
            return True

        logger.warning("Daemon did not stop gracefully, sending SIGKILL...")
        result = self._send_signal_and_wait(pid, signal.SIGKILL, DaemonTimeouts.SIGKILL_WAIT)
        if result is True or (result is None and not self.is_process_alive(pid)):
            logger.info("Daemon force-killed")
            # SIGKILL skips the daemon's own cleanup
            with contextlib.suppress(FileNotFoundError):
                self.socket_path.unlink()
            self.cleanup_stale_files()
            return True

        logger.error("Failed to stop daemon")
        return False

    def status(self) -> dict[str, Any]:
        """Get daemon status.

        Returns:
            Dictionary with status information
        """
        running = self.is_running()
        pid = self.get_pid()
        if running and pid is None:
            pid = get_daemon_pid(self.socket_path)

        status: dict[str, Any] = {
            "running": running,
            "pid": pid,
            "socket": str(self.socket_path),
            "socket_exists": self.socket_path.exists(),
            "pid_file": str(self.pid_file),
            "log_file": str(self.log_file),
        }

        if running:
            status["status"] = "running"
            status["message"] = (
                f"Daemon is running (PID {pid})"
                if pid is not None
                else "Daemon is running (PID unknown)"
            )
        elif pid is not None and self.is_process_alive(pid):
            status["status"] = "unresponsive"
            status["message"] = f"Process {pid} exists but not responding"
        elif self.socket_path.exists() or self.pid_file.exists():
            status["status"] = "stale"
            status["message"] = "Stale files found (daemon not running)"
        else:
            status["status"] = "stopped"
            status["message"] = "Daemon is not running"

        return status
