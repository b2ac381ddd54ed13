import asyncio
import logging
import stat
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterable, List, Optional, Protocol, Tuple, Union

from courseshelf.models.media import MAX_RECORD_ID, ByteWindow, MediaReference
from courseshelf.streaming.mime import get_video_mime_type
from courseshelf.streaming.ranges import full_window, parse_range_header
from courseshelf.streaming.results import ErrorKind, LocalStream, RemoteRedirect, StreamError, StreamOutcome

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 512 * 1024

# Shared by every "does not exist for you" outcome so lookups can't be told apart
NOT_FOUND_MESSAGE = "Video not found"
IO_ERROR_MESSAGE = "Unable to read video"


class MediaLookup(Protocol):
    """Anything that can resolve a video id for a given owner."""

    async def find_media_by_id(self, media_id: int, owner_id: str) -> Optional[MediaReference]:
        """
        Find a video visible to the owner.

        Args:
            media_id: Video ID
            owner_id: Requesting principal

        Returns:
            The reference, or None if it doesn't exist or belongs to someone else
        """
        ...


def parse_media_id(raw: Optional[str]) -> Union[int, StreamError]:
    """Parse the ``id`` query parameter as a positive integer that fits a row id."""
    if raw is None or not raw.strip():
        return StreamError(ErrorKind.INVALID_ID, "Missing video id")

    raw = raw.strip()
    if not raw.isdecimal() or not raw.isascii():
        return StreamError(ErrorKind.INVALID_ID, "Invalid video id")

    media_id = int(raw)
    if media_id <= 0 or media_id > MAX_RECORD_ID:
        return StreamError(ErrorKind.INVALID_ID, "Invalid video id")

    return media_id


def _not_found() -> StreamError:
    return StreamError(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)


def _resolve_and_stat(location: str) -> Tuple[Path, int, int]:
    """Resolve symlinks and read the current size. Runs in a worker thread."""
    path = Path(location).resolve()
    st = path.stat()
    return path, st.st_mode, st.st_size


class MediaStreamer:
    """Resolves stream requests to byte windows on disk or to remote redirects."""

    def __init__(self, lookup: MediaLookup, media_roots: Iterable[Union[str, Path]],
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the streamer.

        Args:
            lookup: Owner-scoped video lookup
            media_roots: Directories local videos must live under
            chunk_size: Bytes read from disk per step
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        self._lookup = lookup
        self._media_roots: List[Path] = [Path(root).expanduser().resolve() for root in media_roots]
        self._chunk_size = chunk_size

    @property
    def media_roots(self) -> List[Path]:
        return list(self._media_roots)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def is_within_roots(self, path: Path) -> bool:
        """Check that an already-resolved path sits under a configured root."""
        return any(path == root or root in path.parents for root in self._media_roots)

    async def resolve(self, raw_id: Optional[str], principal: Optional[str],
                      range_header: Optional[str]) -> StreamOutcome:
        """
        Work out what to send for a stream request.

        Args:
            raw_id: The ``id`` query parameter as received
            principal: Authenticated user id, if any
            range_header: Raw ``Range`` header, if any

        Returns:
            A local stream plan, a remote redirect, or an error
        """
        media_id = parse_media_id(raw_id)
        if isinstance(media_id, StreamError):
            return media_id

        if not principal:
            logger.info(f"Stream request for video {media_id} without a principal")
            return _not_found()

        reference = await self._lookup.find_media_by_id(media_id, principal)
        if reference is None:
            logger.info(f"Video {media_id} not found for owner {principal}")
            return _not_found()

        if reference.is_remote:
            logger.debug(f"Redirecting video {media_id} to its remote origin")
            return RemoteRedirect(url=reference.location)

        return await self._plan_local(reference, range_header)

    async def _plan_local(self, reference: MediaReference,
                          range_header: Optional[str]) -> StreamOutcome:
        if not Path(reference.location).is_absolute():
            logger.warning(f"Video {reference.id} has a non-absolute location, refusing to serve it")
            return _not_found()

        try:
            path, mode, size = await asyncio.to_thread(_resolve_and_stat, reference.location)
        except (FileNotFoundError, NotADirectoryError):
            logger.info(f"Video {reference.id} is missing on disk: {reference.location}")
            return _not_found()
        except OSError as e:
            logger.error(f"Error checking video {reference.id} at {reference.location}: {e}", exc_info=True)
            return StreamError(ErrorKind.IO_ERROR, IO_ERROR_MESSAGE)

        if not self.is_within_roots(path):
            logger.warning(f"Video {reference.id} resolves outside the media roots: {path}")
            return _not_found()

        if not stat.S_ISREG(mode):
            logger.info(f"Video {reference.id} is not a regular file: {path}")
            return _not_found()

        if range_header is None:
            window = full_window(size)
            partial = False
        else:
            window = parse_range_header(range_header, size)
            if isinstance(window, StreamError):
                logger.debug(f"Rejected Range {range_header!r} for video {reference.id} ({size} bytes)")
                return window
            partial = True

        return LocalStream(
            path=path,
            window=window,
            size=size,
            content_type=get_video_mime_type(reference.location),
            partial=partial,
        )

    async def open(self, stream: LocalStream) -> Union[BinaryIO, StreamError]:
        """Open the file behind a stream plan, before any headers are sent."""
        try:
            return await asyncio.to_thread(open, stream.path, "rb")
        except FileNotFoundError:
            logger.info(f"File disappeared before it could be opened: {stream.path}")
            return _not_found()
        except OSError as e:
            logger.error(f"Error opening {stream.path}: {e}", exc_info=True)
            return StreamError(ErrorKind.IO_ERROR, IO_ERROR_MESSAGE)

    async def iter_window(self, handle: BinaryIO, window: ByteWindow) -> AsyncIterator[bytes]:
        """
        Yield the bytes of ``window`` from an open file, one chunk at a time.

        Never reads past ``window.end``. The caller owns ``handle`` and closes it.
        """
        await asyncio.to_thread(handle.seek, window.start)

        remaining = window.length
        while remaining > 0:
            chunk = await asyncio.to_thread(handle.read, min(self._chunk_size, remaining))
            if not chunk:
                logger.warning(f"File shrank while streaming, {remaining} bytes short")
                break
            remaining -= len(chunk)
            yield chunk
