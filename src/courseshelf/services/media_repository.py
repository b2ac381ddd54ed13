import logging
import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from courseshelf.db.sqlite import Database
from courseshelf.models.media import Course, MediaReference, Video, is_remote_location
from courseshelf.streaming.mime import is_video_path

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base class for data access failures callers are expected to handle."""


class DuplicateCourseError(RepositoryError):
    """The owner already has a course with this name."""


class EmptyCourseError(RepositoryError):
    """None of the requested videos belong to the owner."""


def video_key_for_path(path: str) -> str:
    """Per-owner unique key for an imported video."""
    if is_remote_location(path):
        return path
    return f"local|{path}"


class MediaRepository:
    """Owner-scoped access to videos and courses."""

    def __init__(self, db: Database):
        self._db = db

    async def find_media_by_id(self, media_id: int, owner_id: str) -> Optional[MediaReference]:
        """
        Find a video visible to the owner.

        The ownership check is part of the query, so another user's video and
        a missing one look the same to the caller.
        """
        row = await self._db.execute_and_fetchone(
            "SELECT id, owner_id, path FROM videos WHERE id = ? AND owner_id = ?",
            (media_id, owner_id)
        )

        if not row:
            return None

        return MediaReference.from_location(row['id'], row['owner_id'], row['path'])

    async def import_videos(self, owner_id: str, videos: Iterable[Tuple[str, str]]) -> int:
        """
        Add or refresh videos for an owner.

        Args:
            owner_id: Owner of the videos
            videos: (path, title) pairs; a path may also be an http(s) URL.
                Local paths without a video extension are skipped.

        Returns:
            Number of videos written
        """
        now = datetime.now().isoformat()
        params = []
        for path, title in videos:
            if not is_remote_location(path) and not is_video_path(path):
                logger.info(f"Skipping {path}: not a video file")
                continue
            params.append((owner_id, video_key_for_path(path), title, path, now))

        if not params:
            return 0

        await self._db.executemany(
            """
            INSERT INTO videos (owner_id, filename, title, path, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (owner_id, filename) DO UPDATE SET
                title = excluded.title,
                path = excluded.path
            """,
            params
        )

        logger.info(f"Imported {len(params)} videos for owner {owner_id}")
        return len(params)

    async def list_videos(self, owner_id: str) -> List[Video]:
        """Get all videos for an owner, ordered by title."""
        rows = await self._db.execute_and_fetchall(
            "SELECT * FROM videos WHERE owner_id = ? ORDER BY title COLLATE NOCASE, id",
            (owner_id,)
        )

        return [self._row_to_video(row) for row in rows]

    async def get_video(self, video_id: int, owner_id: str) -> Optional[Video]:
        """Get a single video for an owner."""
        row = await self._db.execute_and_fetchone(
            "SELECT * FROM videos WHERE id = ? AND owner_id = ?", (video_id, owner_id)
        )

        return self._row_to_video(row) if row else None

    async def set_video_completion(self, video_id: int, owner_id: str, completed: bool) -> bool:
        """
        Mark a video as watched or not.

        Returns:
            False if the owner has no such video
        """
        cursor = await self._db.execute(
            "UPDATE videos SET completed = ? WHERE id = ? AND owner_id = ?",
            (int(completed), video_id, owner_id)
        )

        return cursor.rowcount > 0

    async def create_course(self, owner_id: str, name: str, video_ids: Iterable[int]) -> Course:
        """
        Save a named course from an ordered list of videos.

        Repeated ids keep their first position; ids the owner doesn't have are dropped.

        Raises:
            DuplicateCourseError: If the owner already has a course with this name
            EmptyCourseError: If no requested video belongs to the owner
        """
        unique_ids = list(dict.fromkeys(video_ids))
        now = datetime.now()

        try:
            async with self._db.transaction() as conn:
                owned: set = set()
                if unique_ids:
                    placeholders = ", ".join("?" for _ in unique_ids)
                    cursor = await conn.execute(
                        f"SELECT id FROM videos WHERE owner_id = ? AND id IN ({placeholders})",
                        (owner_id, *unique_ids)
                    )
                    owned = {row['id'] for row in await cursor.fetchall()}

                kept = [video_id for video_id in unique_ids if video_id in owned]
                if not kept:
                    raise EmptyCourseError("No videos available to save")

                cursor = await conn.execute(
                    "INSERT INTO courses (owner_id, name, created_at) VALUES (?, ?, ?)",
                    (owner_id, name, now.isoformat())
                )
                course_id = cursor.lastrowid

                await conn.executemany(
                    "INSERT INTO course_items (course_id, video_id, position) VALUES (?, ?, ?)",
                    [(course_id, video_id, position) for position, video_id in enumerate(kept)]
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateCourseError(f"Course already exists: {name}") from e

        logger.info(f"Saved course {name!r} with {len(kept)} videos for owner {owner_id}")
        return Course(id=course_id, owner_id=owner_id, name=name, video_ids=kept, created_at=now)

    async def list_courses(self, owner_id: str) -> List[Course]:
        """Get all courses for an owner, with their videos in order."""
        rows = await self._db.execute_and_fetchall(
            "SELECT * FROM courses WHERE owner_id = ? ORDER BY name COLLATE NOCASE",
            (owner_id,)
        )

        result = []
        for row in rows:
            item_rows = await self._db.execute_and_fetchall(
                "SELECT video_id FROM course_items WHERE course_id = ? ORDER BY position",
                (row['id'],)
            )

            result.append(Course(
                id=row['id'],
                owner_id=row['owner_id'],
                name=row['name'],
                video_ids=[item['video_id'] for item in item_rows],
                created_at=datetime.fromisoformat(row['created_at'])
            ))

        return result

    def _row_to_video(self, row: sqlite3.Row) -> Video:
        """Convert a database row to a Video object."""
        created_at = datetime.fromisoformat(row['created_at']) if row['created_at'] else None

        return Video(
            id=row['id'],
            owner_id=row['owner_id'],
            filename=row['filename'],
            title=row['title'],
            path=row['path'],
            completed=bool(row['completed']),
            duration_seconds=row['duration_seconds'],
            created_at=created_at or datetime.now()
        )
