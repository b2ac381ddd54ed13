"""
Outcomes of resolving a stream request.

The streamer never raises for expected failures. It returns one of
:class:`LocalStream`, :class:`RemoteRedirect` or :class:`StreamError` and the
HTTP layer turns that value into a response.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from courseshelf.models.media import ByteWindow


class ErrorKind(str, Enum):
    """Failure categories, each with a fixed HTTP status."""
    INVALID_ID = "invalid_id"
    NOT_FOUND = "not_found"
    RANGE_NOT_SATISFIABLE = "range_not_satisfiable"
    IO_ERROR = "io_error"

    @property
    def status(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND = {
    ErrorKind.INVALID_ID: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RANGE_NOT_SATISFIABLE: 416,
    ErrorKind.IO_ERROR: 500,
}


@dataclass(frozen=True)
class StreamError:
    kind: ErrorKind
    message: str
    size: Optional[int] = None  # Resource size, reported on 416

    @property
    def status(self) -> int:
        return self.kind.status

    def to_dict(self) -> dict:
        return {"error": self.message}


@dataclass(frozen=True)
class LocalStream:
    """A satisfiable request for a file on local disk."""
    path: Path
    window: ByteWindow
    size: int
    content_type: str
    partial: bool

    @property
    def status(self) -> int:
        return 206 if self.partial else 200

    @property
    def headers(self) -> dict:
        headers = {
            "Content-Type": self.content_type,
            "Content-Length": str(self.window.length),
            "Accept-Ranges": "bytes",
        }
        if self.partial:
            headers["Content-Range"] = f"bytes {self.window.start}-{self.window.end}/{self.size}"
        return headers


@dataclass(frozen=True)
class RemoteRedirect:
    """The video lives on a remote origin; the client fetches it directly."""
    url: str


StreamOutcome = Union[LocalStream, RemoteRedirect, StreamError]
