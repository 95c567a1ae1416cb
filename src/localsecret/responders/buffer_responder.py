"""
Buffer responder for localsecret

Serves bytes held in memory, typically text piped on stdin.
"""

from fastapi import Response

from .base_responder import BaseResponder, NO_STORE_HEADERS


class BufferResponder(BaseResponder):
    """Serves an in-memory buffer as text/plain."""

    def __init__(self, data: bytes, url_path: str, media_type: str = "text/plain"):
        super().__init__(url_path)
        if isinstance(data, str):
            data = data.encode('utf-8')
        self.data = bytes(data)
        self.media_type = media_type

    def respond(self) -> Response:
        return Response(
            content=self.data,
            media_type=self.media_type,
            headers=dict(NO_STORE_HEADERS)
        )

    def describe(self) -> str:
        return f"buffer of {len(self.data)} bytes"
