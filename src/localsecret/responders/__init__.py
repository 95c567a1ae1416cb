"""
Resource responders for localsecret

Provides the file and in-memory buffer responders behind the request gate.
"""

from pathlib import Path
from typing import Optional, Union

from .base_responder import BaseResponder
from .buffer_responder import BufferResponder
from .file_responder import FileResponder


def create_responder(
    url_path: str,
    file_path: Optional[Union[str, Path]] = None,
    data: Optional[bytes] = None
) -> BaseResponder:
    """
    Create a responder for either a file or a buffer.

    Args:
        url_path: The secret path
        file_path: File to serve
        data: Bytes to serve when there is no file

    Returns:
        BaseResponder: Responder instance

    Raises:
        ValueError: If both or neither of file_path and data are given

    Example:
        >>> responder = create_responder('/abc123/notes.txt', file_path='notes.txt')
    """
    if (file_path is None) == (data is None):
        raise ValueError("Exactly one of file_path or data must be given")

    if file_path is not None:
        return FileResponder(file_path, url_path)
    return BufferResponder(data, url_path)


__all__ = [
    'BaseResponder',
    'BufferResponder',
    'FileResponder',
    'create_responder'
]
