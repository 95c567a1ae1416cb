"""
Shutdown orchestration for localsecret.

The orchestrator is the only component that may end the service. It owns the
uvicorn server and the listening sockets, accepts stop requests from the
counters and from OS signals, and makes sure the stop sequence runs once.
Exiting the process is left to the caller, which maps the reason to an exit
code.
"""

import signal
import socket
import threading
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import uvicorn

from .logger import create_logger, resolve_level


DEFAULT_GRACE_PERIOD = 3.0
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownReason(Enum):
    """Why the service stopped."""
    CONSUMED = "consumed"
    ABUSE = "abuse"
    INTERRUPTED = "interrupted"
    FAULT = "fault"

    @property
    def clean(self) -> bool:
        """Only running out of legitimate uses counts as a clean stop."""
        return self is ShutdownReason.CONSUMED


class ShutdownState(Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class _Listener(uvicorn.Server):
    """uvicorn server whose signal handling goes through the orchestrator."""

    def __init__(self, config: uvicorn.Config, orchestrator: "ShutdownOrchestrator"):
        super().__init__(config)
        self.orchestrator = orchestrator

    def handle_exit(self, sig: int, frame: Any) -> None:
        # Repeated signals are no-ops; uvicorn would otherwise force-exit
        # on the second one and skip the graceful drain.
        self.orchestrator.request_shutdown(ShutdownReason.INTERRUPTED)


class ShutdownOrchestrator:
    """
    Single-fire latch in front of the listening server.

    Args:
        grace_period: Seconds in-flight requests get to finish once stopping
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        log_level: Optional[str] = None
    ):
        if grace_period < 0:
            raise ValueError(f"grace_period must not be negative, got {grace_period}")
        self.grace_period = grace_period
        self.log_level = resolve_level(log_level)
        self.logger = create_logger('LocalSecret.Orchestrator', level=self.log_level)

        # Reentrant: signal handlers run on the main thread, possibly while
        # it already holds the lock
        self._lock = threading.RLock()
        self._stopping = threading.Event()
        self._terminated = threading.Event()
        self._state = ShutdownState.RUNNING
        self._reason: Optional[ShutdownReason] = None
        self._listener: Optional[uvicorn.Server] = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def reason(self) -> Optional[ShutdownReason]:
        return self._reason

    @property
    def stopping(self) -> bool:
        """True once any trigger has fired."""
        return self._stopping.is_set()

    def request_shutdown(self, reason: ShutdownReason) -> bool:
        """
        Ask the service to stop.

        Only the first call has an effect: it records the reason and tells
        the listener to stop accepting connections. Any later call, from a
        racing handler or a repeated signal, returns False and does nothing.

        Args:
            reason: What triggered the stop

        Returns:
            bool: True if this call started the stop sequence
        """
        with self._lock:
            if self._state is not ShutdownState.RUNNING:
                return False
            self._state = ShutdownState.STOPPING
            self._reason = reason
            listener = self._listener
            if listener is not None:
                listener.should_exit = True
        self._stopping.set()

        self.logger.info(f"Shutdown requested: {reason.value}")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a shutdown has been requested. Returns False on timeout."""
        return self._stopping.wait(timeout)

    def wait_terminated(self, timeout: Optional[float] = None) -> bool:
        """Block until the stop sequence has finished."""
        return self._terminated.wait(timeout)

    def install_signal_handlers(self) -> Dict[int, Any]:
        """
        Route SIGINT/SIGTERM into an INTERRUPTED shutdown request.

        Covers the time between startup and the listener taking over signal
        handling; uvicorn restores these handlers when it is done. Must be
        called from the main thread.

        Returns:
            dict: The previous handlers, keyed by signal number
        """
        previous = {}
        for sig in HANDLED_SIGNALS:
            previous[sig] = signal.signal(sig, self._handle_signal)
        return previous

    def _handle_signal(self, sig: int, frame: Any) -> None:
        self.request_shutdown(ShutdownReason.INTERRUPTED)

    def create_listener(self, app: Any) -> uvicorn.Server:
        """Build the uvicorn server this orchestrator will own."""
        config = uvicorn.Config(
            app,
            log_level=self.log_level.lower(),
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=self.grace_period,
        )
        return _Listener(config, self)

    def run(
        self,
        app: Any,
        sockets: Iterable[socket.socket],
        listener: Optional[uvicorn.Server] = None
    ) -> ShutdownReason:
        """
        Serve ``app`` on ``sockets`` until a shutdown is requested.

        uvicorn stops accepting connections once told to exit and gives
        in-flight requests the grace period to finish. A failing listener is
        logged and never keeps this method from returning.

        Args:
            app: ASGI application to serve
            sockets: Bound listening sockets, owned by the orchestrator from
                     here on
            listener: Prebuilt server, mostly for tests

        Returns:
            ShutdownReason: The reason that ended the service
        """
        sockets = list(sockets)
        if listener is None:
            listener = self.create_listener(app)

        with self._lock:
            if self._state is ShutdownState.TERMINATED:
                raise RuntimeError("Orchestrator has already terminated")
            self._listener = listener
            if self._state is ShutdownState.STOPPING:
                listener.should_exit = True

        try:
            listener.run(sockets=sockets)
        except Exception as error:
            self.logger.error(f"Listener failed: {error}")
        finally:
            self._close_sockets(sockets)

        # No-op unless the loop ended without a trigger, which is a fault
        self.request_shutdown(ShutdownReason.FAULT)

        with self._lock:
            self._state = ShutdownState.TERMINATED
            self._listener = None
        self._terminated.set()

        self.logger.info(f"Terminated ({self._reason.value})")
        return self._reason

    def _close_sockets(self, sockets: Iterable[socket.socket]) -> None:
        for sock in sockets:
            try:
                sock.close()
            except OSError as error:
                self.logger.error(f"Failed to close listening socket: {error}")
