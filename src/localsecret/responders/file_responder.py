"""
File responder for localsecret

Serves a single file from disk.
"""

from pathlib import Path
from typing import Union

from fastapi.responses import FileResponse

from .base_responder import BaseResponder, NO_STORE_HEADERS


class FileResponder(BaseResponder):
    """Serves one file. The content type is guessed from the file name."""

    def __init__(self, file_path: Union[str, Path], url_path: str):
        """
        Args:
            file_path: File to serve
            url_path: The secret path

        Raises:
            ValueError: If the file doesn't exist or is not a regular file
        """
        super().__init__(url_path)
        file_path = Path(file_path)
        if not file_path.is_file():
            raise ValueError(f"Responder path is not a file: {file_path}")
        self.file_path = file_path.resolve()

    def respond(self) -> FileResponse:
        return FileResponse(self.file_path, headers=dict(NO_STORE_HEADERS))

    def describe(self) -> str:
        return f"file {self.file_path}"
