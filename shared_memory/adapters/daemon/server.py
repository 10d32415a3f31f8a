"""Daemon server that keeps the embedding model and backend clients warm.

The server:
1. Exits immediately if another daemon already answers on the socket
2. Removes a stale socket file and binds the well-known socket
3. Accepts connections right away, one handler thread per connection
4. Loads the embedding model in the background; requests that need it
   wait for the load instead of failing
5. Shuts down after an idle timeout (default 2 hours) or on SIGTERM/SIGINT
"""

import contextlib
import errno
import logging
import os
import signal
import socket
import sys
import threading
import time
from pathlib import Path

from shared_memory.adapters.daemon.protocol import (
    InvalidRequest,
    LineReader,
    ProtocolError,
    Request,
    send_message,
)
from shared_memory.adapters.daemon.resource_cache import (
    ResourceCache,
    StoreFactory,
    default_store_factory,
)
from shared_memory.adapters.daemon.router import RequestRouter
from shared_memory.adapters.daemon.timeouts import DaemonTimeouts
from shared_memory.adapters.daemon.warm_embedder import WarmEmbedder
from shared_memory.domain.config import BackendDefaults
from shared_memory.ports.embedders import Embedder

logger = logging.getLogger(__name__)

# connect() errors meaning "nobody is listening here"
NO_LISTENER_ERRNOS = {errno.ENOENT, errno.ECONNREFUSED}


class DaemonServer:
    """Shared memory daemon server."""

    def __init__(
        self,
        socket_path: Path,
        idle_timeout: int = 7200,
        idle_check_interval: float = 60.0,
        pid_file: Path | None = None,
        embedder: Embedder | None = None,
        store_factory: StoreFactory = default_store_factory,
        defaults: BackendDefaults | None = None,
    ):
        """Initialize daemon server.

        Args:
            socket_path: Path to Unix socket
            idle_timeout: Seconds of inactivity before shutdown (0 = never)
            idle_check_interval: Seconds between idle checks
            pid_file: File to write the daemon PID to (None = don't write)
            embedder: Embedder to keep warm (default: MiniLM)
            store_factory: Builds a vector store for a backend config
            defaults: Labels used when requests carry no context params
        """
        if embedder is None:
            from shared_memory.adapters.local_models.minilm_embedder import (
                MiniLMEmbedder,
            )

            embedder = MiniLMEmbedder()

        self.socket_path = socket_path
        self.idle_timeout = idle_timeout
        self.idle_check_interval = idle_check_interval
        self.pid_file = pid_file

        self.embedder = WarmEmbedder(embedder)
        self.cache = ResourceCache(dimension=self.embedder.dim, store_factory=store_factory)
        self.router = RequestRouter(
            embedder=self.embedder,
            cache=self.cache,
            defaults=defaults,
            idle_timeout=idle_timeout,
        )

        self.server_socket: socket.socket | None = None
        self.last_request_time = time.time()
        self.running = False
        self.requests_served = 0
        self.exit_code = 0
        self._owns_socket = False
        self._socket_identity: tuple[int, int] | None = None
        self._stop_requested = threading.Event()
        self._cleaned_up = False
        self._last_idle_check = time.time()

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.shutdown()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def shutdown(self) -> None:
        """Ask the accept loop to stop.

        Only sets the stop event, so it is idempotent and safe to call from a
        signal handler or any thread. Resources are released by cleanup().
        """
        self._stop_requested.set()
        self.running = False

    def probe_existing(self) -> bool:
        """Check whether another daemon is listening on the socket path.

        Returns:
            True if a connection succeeded, False if nothing is listening

        Raises:
            OSError: For connect failures other than "not found"/"refused"
        """
        probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        probe.settimeout(DaemonTimeouts.PROBE_CONNECT)
        try:
            probe.connect(str(self.socket_path))
            return True
        except OSError as e:
            if e.errno in NO_LISTENER_ERRNOS:
                return False
            raise
        finally:
            with contextlib.suppress(OSError):
                probe.close()

    def remove_stale_socket(self) -> None:
        """Remove a socket file nobody is listening on.

        Raises:
            OSError: If the file exists and cannot be removed
        """
        if self.socket_path.exists() or self.socket_path.is_symlink():
            logger.warning(f"Removing stale socket: {self.socket_path}")
            self.socket_path.unlink()

    def create_socket(self) -> None:
        """Create and bind Unix socket.

        Raises:
            OSError: If socket creation or bind fails
        """
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self.server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.server_socket.bind(str(self.socket_path))
        self._owns_socket = True
        self._record_socket_identity()
        self.server_socket.listen(16)
        self.server_socket.settimeout(DaemonTimeouts.SERVER_ACCEPT)

        logger.info(f"Listening on {self.socket_path}")

    def _record_socket_identity(self) -> None:
        st = os.stat(self.socket_path)
        self._socket_identity = (st.st_dev, st.st_ino)

    def _socket_file_is_ours(self) -> bool:
        """Check the socket path still names the file this daemon bound."""
        if not self._owns_socket or self._socket_identity is None:
            return False
        try:
            st = os.stat(self.socket_path)
        except FileNotFoundError:
            return False
        return (st.st_dev, st.st_ino) == self._socket_identity

    def write_pid_file(self) -> None:
        """Record this process's PID for lifecycle management."""
        if self.pid_file is None:
            return
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            self.pid_file.write_text(str(os.getpid()))
        except OSError as e:
            # The PID is also reported by ping, so this is not fatal
            logger.warning(f"Failed to write PID file {self.pid_file}: {e}")

    def start_model_warmup(self) -> threading.Thread:
        """Load the embedding model on a background thread."""
        thread = threading.Thread(target=self._warm_model, name="model-warmup", daemon=True)
        thread.start()
        return thread

    def _warm_model(self) -> None:
        try:
            self.embedder.initialize()
        except Exception as e:
            logger.error(f"Embedding model failed to load, shutting down: {e}")
            self.exit_code = 1
            self.shutdown()

    def touch(self) -> None:
        """Record request activity for the idle timer."""
        self.last_request_time = time.time()

    def handle_client(self, client_socket: socket.socket) -> None:
        """Serve one connection until the peer closes it.

        Each complete line is one request and gets exactly one response, in
        arrival order. A JSON object with an id but no usable method or
        params gets an error response. Other lines that do not decode as a
        request are dropped without a response: with no readable id there
        is nothing to answer.

        Args:
            client_socket: Connected client socket
        """
        try:
            client_socket.settimeout(DaemonTimeouts.SERVER_CONNECTION_READ)
            for line in LineReader(client_socket):
                try:
                    request = Request.from_json(line.decode("utf-8"))
                except InvalidRequest as e:
                    logger.debug(f"Rejecting invalid request {e.request_id!r}: {e}")
                    self.touch()
                    send_message(client_socket, e.to_response())
                    continue
                except (ProtocolError, UnicodeDecodeError) as e:
                    logger.debug(f"Dropping malformed frame: {e}")
                    continue

                logger.debug(f"Received request: {request.method}")
                self.touch()
                self.requests_served += 1

                response = self.router.dispatch(request)
                send_message(client_socket, response)
                logger.debug(
                    f"Sent response: {'error' if response.is_error() else 'success'}"
                )
        except (OSError, ProtocolError) as e:
            logger.debug(f"Connection closed by transport error: {e}")
        except Exception as e:
            logger.exception(f"Error handling client: {e}")
        finally:
            with contextlib.suppress(OSError):
                client_socket.close()

    def check_idle_timeout(self) -> bool:
        """Check if idle timeout has been reached.

        Returns:
            True if should shut down due to idle timeout
        """
        if self.idle_timeout <= 0:
            return False  # Timeout disabled

        idle_time = time.time() - self.last_request_time
        if idle_time >= self.idle_timeout:
            logger.info(f"Idle timeout reached ({idle_time:.0f}s >= {self.idle_timeout}s)")
            return True
        return False

    def _idle_check_due(self) -> bool:
        now = time.time()
        if now - self._last_idle_check < self.idle_check_interval:
            return False
        self._last_idle_check = now
        return True

    def serve_forever(self) -> None:
        """Main server loop.

        Accepts connections and hands each to its own thread, so a slow
        request never blocks the accept loop. Runs the idle check every
        idle_check_interval seconds.
        """
        logger.info("Daemon server started")
        # A stop requested during startup stays requested
        self.running = not self._stop_requested.is_set()

        # A fatal warmup failure sets exit_code before or after the loop starts
        while not self._stop_requested.is_set() and self.exit_code == 0:
            try:
                try:
                    client_socket, _ = self.server_socket.accept()
                except TimeoutError:
                    pass
                else:
                    threading.Thread(
                        target=self.handle_client,
                        args=(client_socket,),
                        name="connection",
                        daemon=True,
                    ).start()

                if self._idle_check_due() and self.check_idle_timeout():
                    logger.info("Shutting down due to idle timeout")
                    break

            except Exception as e:
                if self.running:
                    logger.exception(f"Error in server loop: {e}")
                    # Backoff to prevent tight loop on persistent errors
                    time.sleep(0.1)

        self.running = False
        logger.info("Daemon server stopped")

    def cleanup(self) -> None:
        """Release the socket, PID file and backend clients. Idempotent."""
        if self._cleaned_up:
            return
        self._cleaned_up = True

        if self.server_socket:
            with contextlib.suppress(OSError):
                self.server_socket.close()

        # Never remove a socket path another daemon has bound since
        if self._socket_file_is_ours():
            with contextlib.suppress(FileNotFoundError):
                self.socket_path.unlink()
            logger.info(f"Cleaned up socket: {self.socket_path}")
        elif self._owns_socket:
            logger.info(f"Socket {self.socket_path} was replaced, leaving it in place")

        if self._owns_socket:
            if self.pid_file is not None:
                with contextlib.suppress(OSError):
                    if self.pid_file.read_text().strip() == str(os.getpid()):
                        self.pid_file.unlink()

        self.cache.close()

    def run(self) -> int:
        """Run the daemon server.

        This is the main entry point for the daemon process.

        Returns:
            Process exit status: 0 on graceful shutdown or if another
            daemon is already running, 1 on fatal startup failure
        """
        try:
            self.setup_signal_handlers()

            try:
                if self.probe_existing():
                    logger.info("Daemon already running, exiting")
                    return 0
            except OSError as e:
                logger.error(f"Cannot probe socket {self.socket_path}: {e}")
                return 1

            try:
                self.remove_stale_socket()
                self.create_socket()
            except OSError as e:
                logger.error(f"Cannot listen on {self.socket_path}: {e}")
                return 1

            self.write_pid_file()
            self.start_model_warmup()
            self.serve_forever()
            return self.exit_code
        except Exception as e:
            logger.exception(f"Fatal error: {e}")
            return 1
        finally:
            self.cleanup()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for daemon process.

    Defaults come from the global config file and environment; flags
    override them.
    """
    import argparse

    from shared_memory.adapters.config.toml_config_provider import TomlConfigProvider

    config = TomlConfigProvider().load()

    parser = argparse.ArgumentParser(description="Shared memory daemon")
    parser.add_argument(
        "--socket",
        type=Path,
        default=config.daemon.socket_path,
        help="Unix socket path",
    )
    parser.add_argument(
        "--idle-timeout",
        type=int,
        default=config.daemon.idle_timeout,
        help="Idle timeout in seconds (0 = never)",
    )
    parser.add_argument(
        "--idle-check-interval",
        type=float,
        default=config.daemon.idle_check_interval,
        help="Seconds between idle checks",
    )
    parser.add_argument(
        "--pid-file",
        type=Path,
        default=config.daemon.pid_file,
        help="PID file path",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=config.daemon.log_file,
        help="Log file path",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level",
    )
    args = parser.parse_args(argv)

    args.log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(args.log_file),
            logging.StreamHandler(),
        ],
    )
    logger.info(f"Starting shared memory daemon (idle timeout {args.idle_timeout}s)")

    server = DaemonServer(
        socket_path=args.socket,
        idle_timeout=args.idle_timeout,
        idle_check_interval=args.idle_check_interval,
        pid_file=args.pid_file,
        defaults=config.backend,
    )
    sys.exit(server.run())


if __name__ == "__main__":
    main()
