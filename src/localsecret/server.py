import socket
from typing import Any, Dict, Iterable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.background import BackgroundTask

from .counters import AbuseOutcome, Session, UseOutcome
from .logger import create_logger, resolve_level
from .orchestrator import DEFAULT_GRACE_PERIOD, ShutdownOrchestrator, ShutdownReason
from .responders import BaseResponder
from .responders.base_responder import NO_STORE_HEADERS


GATE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class LocalSecretServer:
    """
    Request gate for a single shared secret.

    Every request is routed through the responder and then into exactly one
    of the session counters. Limits reached by either counter are forwarded
    to the shutdown orchestrator.
    """

    def __init__(
        self,
        responder: BaseResponder,
        maximum_uses: int = 1,
        maximum_failed_attempts: int = 3,
        count_exhausted_hits: bool = True,
        orchestrator: Optional[ShutdownOrchestrator] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        log_level: Optional[str] = None
    ):
        """
        Initialize the gate.

        Args:
            responder: Serves the resource for the secret path
            maximum_uses: How often the resource may be delivered (default: 1)
            maximum_failed_attempts: Misses tolerated before stopping (default: 3)
            count_exhausted_hits: Count hits on the secret path after all uses
                                  are gone as failed attempts (default: True)
            orchestrator: Shutdown orchestrator (created if not provided)
            grace_period: Seconds in-flight requests get once stopping
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

        Raises:
            ValueError: If a limit is not a positive integer
        """
        self.responder = responder
        self.session = Session(
            maximum_uses=maximum_uses,
            maximum_failed_attempts=maximum_failed_attempts
        )
        self.count_exhausted_hits = count_exhausted_hits

        self.log_level = resolve_level(log_level)
        self.logger = create_logger('LocalSecret.Gate', level=self.log_level)

        if orchestrator is None:
            orchestrator = ShutdownOrchestrator(
                grace_period=grace_period,
                log_level=self.log_level
            )
        self.orchestrator = orchestrator

    def create_app(self) -> FastAPI:
        """
        Create the FastAPI application.

        There is a single catch-all route; the interactive docs and the
        OpenAPI schema are switched off so that no path answers besides the
        secret one.

        Returns:
            FastAPI: Configured application instance
        """
        app = FastAPI(
            title="localsecret",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.api_route("/{full_path:path}", methods=GATE_METHODS)
        async def gate(request: Request, full_path: str):
            return self.handle_request(request.method, request.scope["path"])

        return app

    def handle_request(self, method: str, path: str) -> Response:
        """
        Decide the response for one request and do its accounting.

        Args:
            method: HTTP method
            path: Decoded request path

        Returns:
            Response: The resource, or a 404
        """
        if self.orchestrator.stopping:
            self.logger.debug(f"Shutting down, rejected {method} request")
            return self._not_found()

        if method == "GET" and self.responder.matches(path):
            outcome = self.session.uses.record_successful_delivery()
            if outcome.admitted:
                return self._deliver(outcome)

            self.logger.warning("Secret path requested after all uses were consumed")
            if not self.count_exhausted_hits:
                return self._not_found()
        else:
            self.logger.warning(f"Unmatched request: {method} {path}")

        if self.session.failures.record_unmatched_request() is AbuseOutcome.LIMIT_REACHED:
            self.logger.error(
                f"Failed attempt limit reached "
                f"({self.session.failures.count}/{self.session.failures.maximum})"
            )
            self.orchestrator.request_shutdown(ShutdownReason.ABUSE)
        return self._not_found()

    def _deliver(self, outcome: UseOutcome) -> Response:
        response = self.responder.respond()
        self.logger.info(
            f"Delivered {self.responder.describe()} "
            f"({self.session.uses.count}/{self.session.uses.maximum})"
        )
        if outcome is UseOutcome.LIMIT_REACHED:
            # Runs once the body has been sent
            response.background = BackgroundTask(
                self.orchestrator.request_shutdown,
                ShutdownReason.CONSUMED
            )
        return response

    def _not_found(self) -> Response:
        return PlainTextResponse(
            "Not Found",
            status_code=404,
            headers=dict(NO_STORE_HEADERS)
        )

    def serve(self, sockets: Iterable[socket.socket]) -> ShutdownReason:
        """
        Serve until the orchestrator stops the service.

        Args:
            sockets: Bound listening sockets

        Returns:
            ShutdownReason: Why the service stopped
        """
        return self.orchestrator.run(self.create_app(), sockets)

    def get_server_info(self) -> Dict[str, Any]:
        """
        Get session state.

        Returns:
            dict: Limits, counts and shutdown state
        """
        reason = self.orchestrator.reason
        return {
            "resource": self.responder.describe(),
            "maximum_uses": self.session.uses.maximum,
            "use_count": self.session.uses.count,
            "maximum_failed_attempts": self.session.failures.maximum,
            "fail_count": self.session.failures.count,
            "count_exhausted_hits": self.count_exhausted_hits,
            "state": self.orchestrator.state.value,
            "shutdown_reason": reason.value if reason else None
        }
