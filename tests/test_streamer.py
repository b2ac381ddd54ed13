import os
from typing import Dict, Optional
from unittest import mock

import pytest

from courseshelf.models.media import ByteWindow, MediaReference
from courseshelf.streaming import ErrorKind, LocalStream, MediaStreamer, RemoteRedirect, StreamError
from courseshelf.streaming.streamer import NOT_FOUND_MESSAGE, parse_media_id


class FakeLookup:
    """In-memory lookup that applies the same owner filter as the repository."""

    def __init__(self, references: Dict[int, MediaReference]):
        self.references = references
        self.calls = []

    async def find_media_by_id(self, media_id: int, owner_id: str) -> Optional[MediaReference]:
        self.calls.append((media_id, owner_id))
        reference = self.references.get(media_id)
        if reference is None or reference.owner_id != owner_id:
            return None
        return reference


@pytest.fixture
def lookup(media_root):
    return FakeLookup({
        1: MediaReference.from_location(1, "alice", str(media_root / "lecture.mp4")),
        2: MediaReference.from_location(2, "alice", str(media_root / "deleted.mp4")),
        3: MediaReference.from_location(3, "alice", "https://cdn.example.com/lecture.mp4"),
        4: MediaReference.from_location(4, "alice", str(media_root)),
        5: MediaReference.from_location(5, "alice", "relative/lecture.mp4"),
        6: MediaReference.from_location(6, "alice", str(media_root / ".." / "outside.mp4")),
        7: MediaReference.from_location(7, "alice", "ftp://files.example.com/lecture.mp4"),
    })


@pytest.fixture
def streamer(lookup, media_root):
    return MediaStreamer(lookup, media_roots=[media_root], chunk_size=64)


class TestParseMediaId:
    """Test suite for parse_media_id."""

    def test_valid_id(self):
        assert parse_media_id("42") == 42
        assert parse_media_id(" 7 ") == 7
        assert parse_media_id("9223372036854775807") == 2 ** 63 - 1

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_id(self, raw):
        result = parse_media_id(raw)

        assert isinstance(result, StreamError)
        assert result.kind == ErrorKind.INVALID_ID
        assert result.message == "Missing video id"

    @pytest.mark.parametrize("raw", ["abc", "0", "-1", "1.5", "1e3", "١٢", "9223372036854775808", "99999999999999999999"])
    def test_invalid_id(self, raw):
        result = parse_media_id(raw)

        assert isinstance(result, StreamError)
        assert result.status == 400
        assert result.message == "Invalid video id"


class TestMediaStreamerResolve:
    """Test suite for MediaStreamer.resolve."""

    @pytest.mark.asyncio
    async def test_invalid_id_skips_lookup(self, streamer, lookup):
        result = await streamer.resolve("abc", "alice", None)

        assert result.status == 400
        assert lookup.calls == []

    @pytest.mark.asyncio
    async def test_full_file(self, streamer, media_root):
        """No Range header serves the whole file with a 200."""
        result = await streamer.resolve("1", "alice", None)

        assert isinstance(result, LocalStream)
        assert result.status == 200
        assert result.partial is False
        assert result.size == 1000
        assert result.window == ByteWindow(start=0, end=999)
        assert result.path == (media_root / "lecture.mp4").resolve()
        assert result.headers == {
            "Content-Type": "video/mp4",
            "Content-Length": "1000",
            "Accept-Ranges": "bytes",
        }

    @pytest.mark.asyncio
    async def test_partial_range(self, streamer):
        result = await streamer.resolve("1", "alice", "bytes=200-299")

        assert isinstance(result, LocalStream)
        assert result.status == 206
        assert result.headers["Content-Range"] == "bytes 200-299/1000"
        assert result.headers["Content-Length"] == "100"
        assert result.headers["Accept-Ranges"] == "bytes"

    @pytest.mark.asyncio
    async def test_open_ended_range(self, streamer):
        result = await streamer.resolve("1", "alice", "bytes=900-")

        assert result.headers["Content-Range"] == "bytes 900-999/1000"
        assert result.headers["Content-Length"] == "100"

    @pytest.mark.asyncio
    async def test_unsatisfiable_range(self, streamer):
        result = await streamer.resolve("1", "alice", "bytes=0-1000")

        assert isinstance(result, StreamError)
        assert result.status == 416
        assert result.size == 1000

    @pytest.mark.asyncio
    async def test_size_is_read_per_request(self, streamer, media_root):
        """A file that grows between requests is served at its new size."""
        first = await streamer.resolve("1", "alice", None)
        with open(media_root / "lecture.mp4", "ab") as f:
            f.write(b"x" * 24)
        second = await streamer.resolve("1", "alice", None)

        assert first.size == 1000
        assert second.size == 1024

    @pytest.mark.asyncio
    async def test_lookup_is_scoped_to_principal(self, streamer, lookup):
        await streamer.resolve("1", "alice", None)

        assert lookup.calls == [(1, "alice")]

    @pytest.mark.asyncio
    async def test_other_owner_looks_like_missing(self, streamer):
        """Another user's video is indistinguishable from a nonexistent one."""
        not_owned = await streamer.resolve("1", "bob", None)
        missing = await streamer.resolve("999", "alice", None)

        assert not_owned == missing
        assert not_owned.status == 404
        assert not_owned.message == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_no_principal(self, streamer, lookup):
        result = await streamer.resolve("1", None, None)

        assert result.status == 404
        assert lookup.calls == []

    @pytest.mark.asyncio
    async def test_file_missing_on_disk(self, streamer):
        result = await streamer.resolve("2", "alice", None)

        assert result.status == 404
        assert result.message == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_directory_is_not_served(self, streamer):
        result = await streamer.resolve("4", "alice", None)

        assert result.status == 404

    @pytest.mark.asyncio
    async def test_relative_location_is_not_served(self, streamer):
        result = await streamer.resolve("5", "alice", None)

        assert result.status == 404

    @pytest.mark.asyncio
    async def test_path_outside_roots(self, streamer, media_root):
        """Paths escaping the media roots through '..' are refused."""
        (media_root.parent / "outside.mp4").write_bytes(b"secret")

        result = await streamer.resolve("6", "alice", None)

        assert result.status == 404
        assert result.message == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_symlink_outside_roots(self, media_root):
        target = media_root.parent / "elsewhere.mp4"
        target.write_bytes(b"secret")
        os.symlink(target, media_root / "link.mp4")
        streamer = MediaStreamer(
            FakeLookup({1: MediaReference.from_location(1, "alice", str(media_root / "link.mp4"))}),
            media_roots=[media_root]
        )

        result = await streamer.resolve("1", "alice", None)

        assert result.status == 404

    @pytest.mark.asyncio
    async def test_content_type_follows_stored_name_not_symlink_target(self, media_root):
        blob = media_root / "blobs" / "3f9a2c"
        blob.parent.mkdir()
        blob.write_bytes(b"video bytes")
        os.symlink(blob, media_root / "intro.webm")
        streamer = MediaStreamer(
            FakeLookup({1: MediaReference.from_location(1, "alice", str(media_root / "intro.webm"))}),
            media_roots=[media_root]
        )

        result = await streamer.resolve("1", "alice", None)

        assert isinstance(result, LocalStream)
        assert result.path == blob.resolve()
        assert result.content_type == "video/webm"
        assert result.size == 11

    @pytest.mark.asyncio
    async def test_no_media_roots_refuses_local_files(self, lookup):
        streamer = MediaStreamer(lookup, media_roots=[])

        result = await streamer.resolve("1", "alice", None)

        assert result.status == 404

    @pytest.mark.asyncio
    async def test_remote_location_redirects(self, streamer):
        result = await streamer.resolve("3", "alice", "bytes=0-10")

        assert result == RemoteRedirect(url="https://cdn.example.com/lecture.mp4")

    @pytest.mark.asyncio
    async def test_other_scheme_is_treated_as_local_and_refused(self, streamer):
        result = await streamer.resolve("7", "alice", None)

        assert result.status == 404

    @pytest.mark.asyncio
    async def test_permission_error_is_generic_io_error(self, streamer):
        with mock.patch("courseshelf.streaming.streamer._resolve_and_stat",
                        side_effect=PermissionError("denied: /srv/private/lecture.mp4")):
            result = await streamer.resolve("1", "alice", None)

        assert isinstance(result, StreamError)
        assert result.kind == ErrorKind.IO_ERROR
        assert result.status == 500
        assert "/srv" not in result.message


class TestMediaStreamerReading:
    """Test suite for opening and reading byte windows."""

    @pytest.mark.asyncio
    async def test_iter_window_is_exact_and_chunked(self, streamer, media_root):
        data = (media_root / "lecture.mp4").read_bytes()
        plan = await streamer.resolve("1", "alice", "bytes=200-299")

        handle = await streamer.open(plan)
        try:
            chunks = [chunk async for chunk in streamer.iter_window(handle, plan.window)]
        finally:
            handle.close()

        assert [len(chunk) for chunk in chunks] == [64, 36]
        assert b"".join(chunks) == data[200:300]

    @pytest.mark.asyncio
    async def test_iter_window_whole_file(self, streamer, media_root):
        data = (media_root / "lecture.mp4").read_bytes()
        plan = await streamer.resolve("1", "alice", None)

        handle = await streamer.open(plan)
        try:
            body = b"".join([chunk async for chunk in streamer.iter_window(handle, plan.window)])
        finally:
            handle.close()

        assert body == data

    @pytest.mark.asyncio
    async def test_iter_window_stops_when_file_shrinks(self, streamer, media_root):
        plan = await streamer.resolve("1", "alice", None)
        (media_root / "lecture.mp4").write_bytes(b"short")

        handle = await streamer.open(plan)
        try:
            body = b"".join([chunk async for chunk in streamer.iter_window(handle, plan.window)])
        finally:
            handle.close()

        assert body == b"short"

    @pytest.mark.asyncio
    async def test_open_after_delete(self, streamer, media_root):
        plan = await streamer.resolve("1", "alice", None)
        (media_root / "lecture.mp4").unlink()

        result = await streamer.open(plan)

        assert isinstance(result, StreamError)
        assert result.status == 404


def test_chunk_size_must_be_positive(lookup):
    with pytest.raises(ValueError):
        MediaStreamer(lookup, media_roots=[], chunk_size=0)
