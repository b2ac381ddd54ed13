from pathlib import PurePath
from typing import Dict, Union

# Common container formats supported by the player and the stream endpoint
VIDEO_MIME_TYPES: Dict[str, str] = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".ts": "video/mp2t",
    ".m2ts": "video/mp2t",
    ".mts": "video/mp2t",
    ".mpg": "video/mpeg",
    ".mpeg": "video/mpeg",
    ".ogv": "video/ogg",
    ".3gp": "video/3gpp",
    ".3g2": "video/3gpp2",
    ".f4v": "video/x-f4v",
}

FALLBACK_VIDEO_MIME = "application/octet-stream"

VIDEO_EXTENSIONS = frozenset(VIDEO_MIME_TYPES)


def _extension(path: Union[str, PurePath]) -> str:
    return PurePath(path).suffix.lower()


def is_video_path(path: Union[str, PurePath]) -> bool:
    """Check whether a path has a known video container extension."""
    return _extension(path) in VIDEO_EXTENSIONS


def get_video_mime_type(path: Union[str, PurePath]) -> str:
    """Content type for a file, chosen by extension only."""
    return VIDEO_MIME_TYPES.get(_extension(path), FALLBACK_VIDEO_MIME)
