"""
Base Responder interface for localsecret

Abstract base class for the component that turns a matching request into
the resource body.
"""

import hmac
from abc import ABC, abstractmethod

from fastapi import Response


NO_STORE_HEADERS = {"Cache-Control": "no-store"}


class BaseResponder(ABC):
    """
    Abstract base class for resource responders.

    A responder knows the one secret path it serves and how to produce the
    response body for it. It does no accounting of its own; the request
    gate decides whether a matching request may be answered.
    """

    def __init__(self, url_path: str):
        """
        Initialize responder.

        Args:
            url_path: The secret path, e.g. "/<prefix>/notes.txt"

        Raises:
            ValueError: If the path is not absolute
        """
        if not url_path.startswith('/') or url_path == '/':
            raise ValueError(f"url_path must be an absolute, non-root path: {url_path!r}")
        self.url_path = url_path

    def matches(self, path: str) -> bool:
        """
        Check whether a decoded request path is the secret path.

        Uses a constant-time comparison so response timing does not leak
        how much of the prefix a guesser got right.
        """
        return hmac.compare_digest(path.encode('utf-8'), self.url_path.encode('utf-8'))

    @abstractmethod
    def respond(self) -> Response:
        """
        Build the response that delivers the resource.

        Returns:
            Response: 200 response carrying the resource
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        """Short human readable description of the resource."""
        pass
