"""
Shared fixtures for unit tests.

Everything runs in memory or under pytest's tmp_path: the Snowflake mock
stands in for the database and MockMediaClient for R2.
"""

import io
from datetime import datetime, timedelta, timezone

import pytest

from kbvideo.infrastructure.snowflake.client import MockSnowflakeConnection
from kbvideo.infrastructure.snowflake.repositories.videos import VideoRepository
from kbvideo.infrastructure.storage.client import MockMediaClient, StorageConfig
from kbvideo.infrastructure.storage.selector import LocalBackend, RemoteBackend


SUBTOPIC = "freestyle-drills"
OTHER_SUBTOPIC = "backstroke-basics"
OWNER = "user-1"
STRANGER = "user-2"
VIDEO_FOLDER = "research/videos"
MEDIA_DOMAIN = "media.test"


class BytesStream:
    """Async stream over in-memory bytes, shaped like UploadFile.read."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def mock_connection():
    conn = MockSnowflakeConnection()
    conn._add_subtopic(SUBTOPIC, topic_id="freestyle")
    conn._add_subtopic(OTHER_SUBTOPIC, topic_id="backstroke")
    yield conn
    conn._clear()


@pytest.fixture
def repository(mock_connection):
    return VideoRepository(mock_connection)


@pytest.fixture
def media_client():
    return MockMediaClient(public_domain=MEDIA_DOMAIN)


@pytest.fixture
def local_backend(upload_dir):
    return LocalBackend(upload_dir=upload_dir)


@pytest.fixture
def remote_backend(upload_dir):
    return RemoteBackend(
        config=StorageConfig(
            access_key_id="test-access-key",
            secret_access_key="test-secret-key",
            bucket_name="kb-videos",
            endpoint_url="https://account.r2.cloudflarestorage.com",
            public_domain=MEDIA_DOMAIN,
        ),
        folder=VIDEO_FOLDER,
        upload_dir=upload_dir,
    )


@pytest.fixture
def seed_videos(mock_connection, upload_dir):
    """
    Insert videos with strictly increasing timestamps.

    Returns the ids oldest first; newest-first order is the reverse.
    """
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _seed(count: int, subtopic_id: str = SUBTOPIC, user_id: str = OWNER, prefix: str = "video"):
        ids = []
        for i in range(count):
            video_id = f"{prefix}-{i:03d}"
            mock_connection._add_video(
                id=video_id,
                subtopic_id=subtopic_id,
                user_id=user_id,
                original_name=f"lap-{i}.mp4",
                filename=f"{video_id}.mp4",
                mime_type="video/mp4",
                size_bytes=1024 + i,
                storage_path=str(upload_dir / f"{video_id}.mp4"),
                created_at=base_time + timedelta(minutes=i),
            )
            ids.append(video_id)
        return ids

    return _seed
