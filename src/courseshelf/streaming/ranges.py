import re
from typing import Union

from courseshelf.models.media import ByteWindow
from courseshelf.streaming.results import ErrorKind, StreamError

RANGE_PATTERN = re.compile(r"bytes=(\d*)-(\d*)")


def full_window(size: int) -> ByteWindow:
    """The whole file. Empty files give an empty window (end = -1)."""
    return ByteWindow(start=0, end=size - 1)


def parse_range_header(header: str, size: int) -> Union[ByteWindow, StreamError]:
    """
    Parse a single ``bytes=<start>-<end>`` range against the current file size.

    Either bound may be left out: a missing end means end of file and
    ``bytes=-`` means the whole file. Suffix ranges (``bytes=-500``) and
    multi-range lists are not supported.

    Args:
        header: Raw ``Range`` header value
        size: File size in bytes, freshly read from disk

    Returns:
        The inclusive byte window, or a 416 error
    """
    match = RANGE_PATTERN.fullmatch(header.strip())
    if not match:
        return StreamError(ErrorKind.RANGE_NOT_SATISFIABLE, "Malformed Range header", size=size)

    start_s, end_s = match.groups()
    if not start_s and end_s:
        return StreamError(ErrorKind.RANGE_NOT_SATISFIABLE, "Suffix ranges are not supported", size=size)

    start = int(start_s) if start_s else 0
    end = int(end_s) if end_s else size - 1

    if start > end or end >= size:
        return StreamError(ErrorKind.RANGE_NOT_SATISFIABLE, "Invalid Range", size=size)

    return ByteWindow(start=start, end=end)
