"""
Snowflake repository for video records.

This module implements the repository pattern for video metadata. The
repository:
1. Translates between VideoAsset and database rows
2. Encapsulates all SQL queries
3. Maps database outcomes to the video error taxonomy

Snowflake records foreign keys but does not enforce them, and has no
RETURNING clause. Each contract is therefore expressed so that a single
statement's row count decides the outcome:
- create inserts via INSERT ... SELECT FROM subtopics, so an unknown
  subtopic inserts nothing
- delete reads and deletes inside one transaction, and only the DELETE's
  row count counts, so two concurrent deletes can't both succeed
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import uuid4

from ....core.videos.errors import ForeignKeyViolation, VideoNotFound
from ....core.videos.models import DeletedVideo, Page, VideoAsset

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    database: str = "KNOWLEDGE_BASE"
    schema: str = "CONTENT"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


VIDEO_COLUMNS = (
    "id, subtopic_id, user_id, original_name, filename, "
    "mime_type, size_bytes, storage_path, created_at"
)

INSERT_VIDEO = f"""
    INSERT INTO videos ({VIDEO_COLUMNS})
    SELECT %s, s.id, %s, %s, %s, %s, %s, %s, %s
    FROM subtopics s
    WHERE s.id = %s
"""

SELECT_VIDEO = f"""
    SELECT {VIDEO_COLUMNS}
    FROM videos
    WHERE id = %s
"""

SELECT_VIDEOS_PAGE = f"""
    SELECT {VIDEO_COLUMNS}
    FROM videos
    ORDER BY created_at DESC, id DESC
    LIMIT %s OFFSET %s
"""

SELECT_SUBTOPIC_VIDEOS_PAGE = f"""
    SELECT {VIDEO_COLUMNS}
    FROM videos
    WHERE subtopic_id = %s
    ORDER BY created_at DESC, id DESC
    LIMIT %s OFFSET %s
"""

SELECT_SUBTOPIC_VIDEOS = f"""
    SELECT {VIDEO_COLUMNS}
    FROM videos
    WHERE subtopic_id = %s
    ORDER BY created_at DESC, id DESC
"""

COUNT_VIDEOS = "SELECT COUNT(*) FROM videos"

COUNT_SUBTOPIC_VIDEOS = "SELECT COUNT(*) FROM videos WHERE subtopic_id = %s"

SELECT_SUBTOPIC = "SELECT id FROM subtopics WHERE id = %s"

UPDATE_VIDEO_SUBTOPIC = """
    UPDATE videos
    SET subtopic_id = %s
    WHERE id = %s
      AND user_id = %s
      AND EXISTS (SELECT 1 FROM subtopics WHERE id = %s)
"""

SELECT_OWNED_VIDEO_STORAGE = """
    SELECT id, filename, storage_path
    FROM videos
    WHERE id = %s AND user_id = %s
"""

DELETE_OWNED_VIDEO = """
    DELETE FROM videos
    WHERE id = %s AND user_id = %s
"""


class VideoRepository:
    """
    Repository for video record persistence.

    Each method corresponds to a use case of the storage pipeline:
    - create_video: Record a video whose bytes are already stored
    - list_videos / list_by_subtopic / get_video: Reads, newest first
    - reassign_subtopic: Move an owned video to another subtopic
    - delete_owned: Remove an owned video and hand back its storage info
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def create_video(
        self,
        user_id: str,
        subtopic_id: str,
        original_name: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
        storage_path: str,
    ) -> VideoAsset:
        """
        Insert a video record.

        Raises ForeignKeyViolation when the subtopic doesn't exist.
        """
        asset = VideoAsset(
            id=str(uuid4()),
            subtopic_id=subtopic_id,
            user_id=user_id,
            original_name=original_name,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            created_at=datetime.now(timezone.utc),
        )

        cursor = self._conn.cursor()

        try:
            cursor.execute(INSERT_VIDEO, (
                asset.id,
                asset.user_id,
                asset.original_name,
                asset.filename,
                asset.mime_type,
                asset.size_bytes,
                asset.storage_path,
                asset.created_at,
                asset.subtopic_id,
            ))

            if cursor.rowcount == 0:
                self._conn.rollback()
                raise ForeignKeyViolation()

            self._conn.commit()

        except ForeignKeyViolation:
            logger.warning(
                "Video insert rejected: unknown subtopic",
                extra={"subtopic_id": subtopic_id}
            )
            raise
        except Exception as e:
            logger.error(
                "Failed to insert video",
                extra={"subtopic_id": subtopic_id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        return asset

    def list_videos(
        self,
        subtopic_id: Optional[str],
        page: Page,
    ) -> tuple[list[VideoAsset], int]:
        """
        One page of videos, newest first, and the total count.

        When subtopic_id is None, videos from every subtopic are listed.
        """
        cursor = self._conn.cursor()

        try:
            if subtopic_id:
                cursor.execute(
                    SELECT_SUBTOPIC_VIDEOS_PAGE,
                    (subtopic_id, page.limit, page.offset),
                )
                rows = cursor.fetchall()
                cursor.execute(COUNT_SUBTOPIC_VIDEOS, (subtopic_id,))
            else:
                cursor.execute(SELECT_VIDEOS_PAGE, (page.limit, page.offset))
                rows = cursor.fetchall()
                cursor.execute(COUNT_VIDEOS)

            count_row = cursor.fetchone()
            total = int(count_row[0]) if count_row else 0

            return [self._build_video(row) for row in rows], total

        finally:
            cursor.close()

    def list_by_subtopic(self, subtopic_id: str) -> list[VideoAsset]:
        """All videos of a subtopic, newest first."""
        cursor = self._conn.cursor()

        try:
            cursor.execute(SELECT_SUBTOPIC_VIDEOS, (subtopic_id,))
            return [self._build_video(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def get_video(self, video_id: str) -> VideoAsset:
        cursor = self._conn.cursor()

        try:
            cursor.execute(SELECT_VIDEO, (video_id,))
            row = cursor.fetchone()
            if not row:
                raise VideoNotFound()
            return self._build_video(row)
        finally:
            cursor.close()

    def reassign_subtopic(
        self,
        video_id: str,
        user_id: str,
        subtopic_id: str,
    ) -> VideoAsset:
        """
        Move an owned video to another subtopic.

        Raises VideoNotFound when no video matches both id and owner, and
        ForeignKeyViolation when the target subtopic doesn't exist.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                UPDATE_VIDEO_SUBTOPIC,
                (subtopic_id, video_id, user_id, subtopic_id),
            )
            updated = cursor.rowcount
            self._conn.commit()

            if updated == 0:
                # work out why nothing matched
                cursor.execute(SELECT_SUBTOPIC, (subtopic_id,))
                if cursor.fetchone() is None:
                    raise ForeignKeyViolation()
                raise VideoNotFound()

        finally:
            cursor.close()

        return self.get_video(video_id)

    def delete_owned(self, video_id: str, user_id: str) -> DeletedVideo:
        """
        Delete an owned video and return what's needed to remove its bytes.

        Raises VideoNotFound when the video doesn't exist, isn't owned by
        user_id, or was deleted concurrently.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("BEGIN")
            cursor.execute(SELECT_OWNED_VIDEO_STORAGE, (video_id, user_id))
            row = cursor.fetchone()

            if row is None:
                self._conn.rollback()
                raise VideoNotFound()

            cursor.execute(DELETE_OWNED_VIDEO, (video_id, user_id))
            if cursor.rowcount == 0:
                self._conn.rollback()
                raise VideoNotFound()

            self._conn.commit()

        except VideoNotFound:
            raise
        except Exception as e:
            logger.error(
                "Failed to delete video",
                extra={"video_id": video_id, "error": str(e)}
            )
            self._conn.rollback()
            raise
        finally:
            cursor.close()

        return DeletedVideo(
            id=str(row[0]),
            filename=row[1] or "",
            storage_path=row[2] or "",
        )

    def ping(self) -> None:
        """Round-trip a trivial query; raises if the connection is unusable."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        finally:
            cursor.close()

    def _build_video(self, row: tuple) -> VideoAsset:
        """Construct a VideoAsset from a row in VIDEO_COLUMNS order."""
        (
            video_id,
            subtopic_id,
            user_id,
            original_name,
            filename,
            mime_type,
            size_bytes,
            storage_path,
            created_at,
        ) = row

        return VideoAsset(
            id=str(video_id),
            subtopic_id=str(subtopic_id),
            user_id=str(user_id),
            original_name=original_name,
            filename=filename,
            mime_type=mime_type,
            size_bytes=int(size_bytes),
            storage_path=storage_path,
            created_at=created_at,
        )
