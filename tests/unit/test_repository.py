"""
Unit tests for VideoRepository against the in-memory Snowflake mock.

The mock executes the repository's own statements, including the
subtopic-guarded insert and update, so these tests cover the SQL
contracts as well as row mapping.
"""

import pytest

from conftest import OTHER_SUBTOPIC, OWNER, STRANGER, SUBTOPIC
from kbvideo.core.videos.errors import ForeignKeyViolation, VideoNotFound
from kbvideo.core.videos.models import Page
from kbvideo.infrastructure.snowflake.client import create_snowflake_connection
from kbvideo.infrastructure.snowflake.schema import SCHEMA_STATEMENTS, ensure_schema


def create(repository, subtopic_id=SUBTOPIC, user_id=OWNER, name="lap.mp4"):
    return repository.create_video(
        user_id=user_id,
        subtopic_id=subtopic_id,
        original_name=name,
        filename="3f2a9c1e.mp4",
        mime_type="video/mp4",
        size_bytes=4096,
        storage_path="/srv/app/uploads/3f2a9c1e.mp4",
    )


class TestCreateVideo:

    def test_persists_all_fields(self, repository):
        asset = create(repository)

        fetched = repository.get_video(asset.id)
        assert fetched == asset
        assert fetched.created_at.tzinfo is not None

    def test_unknown_subtopic_is_rejected(self, repository, mock_connection):
        """Snowflake doesn't enforce foreign keys; the insert guard does."""
        with pytest.raises(ForeignKeyViolation):
            create(repository, subtopic_id="no-such-subtopic")

        assert mock_connection._video_count() == 0

    def test_ids_are_unique(self, repository):
        assert create(repository).id != create(repository).id


class TestListVideos:

    def test_second_page_returns_items_eleven_to_twenty(self, repository, seed_videos):
        ids = seed_videos(25)
        newest_first = list(reversed(ids))

        items, total = repository.list_videos(None, Page(page=2, limit=10))

        assert [item.id for item in items] == newest_first[10:20]
        assert total == 25

    def test_last_page_is_partial(self, repository, seed_videos):
        seed_videos(25)

        items, total = repository.list_videos(None, Page(page=3, limit=10))

        assert len(items) == 5
        assert total == 25

    def test_filters_by_subtopic(self, repository, seed_videos):
        seed_videos(3, subtopic_id=SUBTOPIC, prefix="free")
        other_ids = seed_videos(2, subtopic_id=OTHER_SUBTOPIC, prefix="back")

        items, total = repository.list_videos(OTHER_SUBTOPIC, Page())

        assert [item.id for item in items] == list(reversed(other_ids))
        assert total == 2

    def test_equal_timestamps_are_ordered_by_id(self, repository, mock_connection, seed_videos):
        ids = seed_videos(1)
        row = dict(mock_connection._get_video(ids[0]))
        row["id"] = "video-zzz"
        mock_connection._add_video(**row)

        items, _ = repository.list_videos(None, Page())

        assert [item.id for item in items] == ["video-zzz", ids[0]]

    def test_list_by_subtopic_is_unpaginated(self, repository, seed_videos):
        ids = seed_videos(30)

        items = repository.list_by_subtopic(SUBTOPIC)

        assert [item.id for item in items] == list(reversed(ids))

    def test_empty_listing(self, repository):
        items, total = repository.list_videos(SUBTOPIC, Page())
        assert items == []
        assert total == 0


class TestGetVideo:

    def test_missing_video_raises_not_found(self, repository):
        with pytest.raises(VideoNotFound):
            repository.get_video("missing")


class TestReassignSubtopic:

    def test_owner_can_move_video(self, repository):
        asset = create(repository)

        moved = repository.reassign_subtopic(asset.id, OWNER, OTHER_SUBTOPIC)

        assert moved.subtopic_id == OTHER_SUBTOPIC
        assert repository.get_video(asset.id).subtopic_id == OTHER_SUBTOPIC

    def test_non_owner_gets_not_found(self, repository):
        asset = create(repository)

        with pytest.raises(VideoNotFound):
            repository.reassign_subtopic(asset.id, STRANGER, OTHER_SUBTOPIC)

        assert repository.get_video(asset.id).subtopic_id == SUBTOPIC

    def test_unknown_subtopic_is_rejected(self, repository):
        asset = create(repository)

        with pytest.raises(ForeignKeyViolation):
            repository.reassign_subtopic(asset.id, OWNER, "no-such-subtopic")

        assert repository.get_video(asset.id).subtopic_id == SUBTOPIC

    def test_missing_video_gets_not_found(self, repository):
        with pytest.raises(VideoNotFound):
            repository.reassign_subtopic("missing", OWNER, OTHER_SUBTOPIC)


class TestDeleteOwned:

    def test_returns_storage_info_and_removes_row(self, repository, mock_connection):
        asset = create(repository)

        deleted = repository.delete_owned(asset.id, OWNER)

        assert deleted.id == asset.id
        assert deleted.filename == asset.filename
        assert deleted.storage_path == asset.storage_path
        assert not deleted.is_remote
        assert mock_connection._get_video(asset.id) is None

    def test_non_owner_gets_not_found_and_row_survives(self, repository, mock_connection):
        asset = create(repository)

        with pytest.raises(VideoNotFound):
            repository.delete_owned(asset.id, STRANGER)

        assert mock_connection._get_video(asset.id) is not None

    def test_second_delete_gets_not_found(self, repository):
        """Only one caller ever receives the storage info."""
        asset = create(repository)
        repository.delete_owned(asset.id, OWNER)

        with pytest.raises(VideoNotFound):
            repository.delete_owned(asset.id, OWNER)


class TestSchema:

    def test_ensure_schema_runs_every_statement(self):
        with create_snowflake_connection(mock_mode=True) as conn:
            assert ensure_schema(conn) == len(SCHEMA_STATEMENTS)

    def test_videos_table_references_subtopics(self):
        videos_ddl = next(s for s in SCHEMA_STATEMENTS if "TABLE IF NOT EXISTS videos" in s)
        assert "REFERENCES subtopics (id)" in videos_ddl


class TestConnectionCheck:

    def test_ping_round_trips(self, repository):
        repository.ping()

    def test_mock_rejects_statements_it_does_not_model(self, mock_connection):
        """Subtopics are seeded through _add_subtopic, never through SQL."""
        cursor = mock_connection.cursor()

        with pytest.raises(NotImplementedError):
            cursor.execute(
                "INSERT INTO subtopics (id, topic_id, name) VALUES (%s, %s, %s)",
                ("new-subtopic", "freestyle", "New"),
            )
