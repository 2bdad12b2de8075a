"""
Unit tests for upload staging.

The receiver writes to pytest's tmp_path; streams are in-memory.
"""

import pytest

from conftest import BytesStream
from kbvideo.core.videos.errors import PayloadTooLarge
from kbvideo.infrastructure.uploads.receiver import UploadReceiver, staging_filename

ONE_MB = 1024 * 1024


class FailingStream:
    """Yields one chunk, then the connection drops."""

    def __init__(self) -> None:
        self._calls = 0

    async def read(self, size: int = -1) -> bytes:
        self._calls += 1
        if self._calls == 1:
            return b"x" * 128
        raise ConnectionResetError("client went away")


class TestStagingFilename:

    def test_keeps_original_extension(self):
        assert staging_filename("lap one.MOV").endswith(".MOV")

    def test_defaults_to_mp4(self):
        assert staging_filename(None).endswith(".mp4")
        assert staging_filename("no-extension").endswith(".mp4")

    def test_names_are_unique(self):
        names = {staging_filename("clip.mp4") for _ in range(50)}
        assert len(names) == 50


class TestUploadReceiver:

    @pytest.fixture
    def receiver(self, upload_dir):
        return UploadReceiver(upload_dir, max_size_bytes=ONE_MB, chunk_size=64 * 1024)

    async def test_stages_stream_to_disk(self, receiver, upload_dir):
        """Staged file holds exactly the streamed bytes."""
        data = b"\x00\x01video-bytes" * 1000

        staged = await receiver.receive(BytesStream(data), "Catch Drill.webm", "video/webm")

        assert staged.path.parent == upload_dir
        assert staged.path.suffix == ".webm"
        assert staged.path.read_bytes() == data
        assert staged.size_bytes == len(data)
        assert staged.mime_type == "video/webm"
        assert staged.original_name == "Catch Drill.webm"

    async def test_missing_metadata_gets_defaults(self, receiver):
        staged = await receiver.receive(BytesStream(b"abc"), None, None)

        assert staged.mime_type == "application/octet-stream"
        assert staged.path.suffix == ".mp4"
        assert staged.original_name == staged.filename

    async def test_upload_at_ceiling_is_accepted(self, receiver):
        staged = await receiver.receive(BytesStream(b"x" * ONE_MB), "clip.mp4", "video/mp4")
        assert staged.size_bytes == ONE_MB

    async def test_oversized_upload_is_rejected_and_removed(self, receiver, upload_dir):
        """Exceeding the ceiling leaves nothing behind."""
        with pytest.raises(PayloadTooLarge, match="Video exceeds 1MB limit"):
            await receiver.receive(BytesStream(b"x" * (ONE_MB + 1)), "clip.mp4", "video/mp4")

        assert list(upload_dir.iterdir()) == []

    async def test_stream_error_removes_partial_file(self, receiver, upload_dir):
        with pytest.raises(ConnectionResetError):
            await receiver.receive(FailingStream(), "clip.mp4", "video/mp4")

        assert list(upload_dir.iterdir()) == []

    def test_creates_missing_upload_dir(self, tmp_path):
        target = tmp_path / "nested" / "uploads"
        UploadReceiver(target, max_size_bytes=ONE_MB)
        assert target.is_dir()
