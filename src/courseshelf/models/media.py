from datetime import datetime
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

REMOTE_SCHEMES = ("http", "https")

# Largest value an SQLite INTEGER primary key can hold
MAX_RECORD_ID = 2 ** 63 - 1


def is_remote_location(location: str) -> bool:
    """Check whether a stored location points at an http(s) origin."""
    return urlsplit(location).scheme.lower() in REMOTE_SCHEMES


class MediaReference(BaseModel):
    """The part of a video record the streamer needs, resolved per request."""
    model_config = ConfigDict(frozen=True)

    id: int
    owner_id: str
    location: str  # Absolute filesystem path or http(s) URL
    is_remote: bool = False

    @classmethod
    def from_location(cls, media_id: int, owner_id: str, location: str) -> "MediaReference":
        return cls(id=media_id, owner_id=owner_id, location=location,
                   is_remote=is_remote_location(location))


class ByteWindow(BaseModel):
    """An inclusive [start, end] span of bytes to serve."""
    model_config = ConfigDict(frozen=True)

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class Video(BaseModel):
    """A video in a user's library."""
    id: int
    owner_id: str
    filename: str  # Per-owner unique key, e.g. "local|/videos/a.mp4"
    title: str
    path: str
    completed: bool = False
    duration_seconds: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_remote(self) -> bool:
        return is_remote_location(self.path)


class Course(BaseModel):
    """An ordered, named selection of videos."""
    id: int
    owner_id: str
    name: str
    video_ids: List[int] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
