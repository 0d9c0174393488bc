"""
Tests for snapshot file persistence.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from user_directory.errors import FileUnavailableError, RecordDecodeError, StoreIOError
from user_directory.models import UserRecord
from user_directory.persistence import SnapshotFile, temp_path_for


def make_user(n: int) -> UserRecord:
    return UserRecord(
        id=f"u{n}",
        email=f"user{n}@example.com",
        password=f"$argon2id$v=19$hash{n}",
        auth_token=f"tok{n}",
        auth_jwt_token=f"jwt{n}",
        client_ip_address_white_list=["100.100.100.100"],
    )


class TestSnapshotFileInitialization:
    """Test database file setup"""

    def test_temp_path_naming(self, tmp_path):
        """Temp file is the live name with a double underscore prefix"""
        assert temp_path_for(tmp_path / "usersDB.json") == tmp_path / "__usersDB.json"

    def test_creates_empty_live_file(self, tmp_path):
        """Test that a missing database is created empty"""
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.initialize()

        assert snapshot.path.exists()
        assert snapshot.path.read_text() == ""
        assert not snapshot.temp_path.exists()

    def test_creates_parent_directories(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "data" / "db" / "usersDB.json")
        snapshot.initialize()
        assert snapshot.path.exists()

    def test_deletes_stray_temp_file(self, tmp_path):
        """A temp file with no live file is left over from a crash and removed"""
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.temp_path.write_text("[]")

        snapshot.initialize()

        assert not snapshot.temp_path.exists()
        assert snapshot.path.exists()
        assert snapshot.path.read_text() == ""

    def test_keeps_existing_database(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.path.write_text('[{"id": "u1", "email": "a@b.c", "password": "x"}]')

        snapshot.initialize()

        assert "a@b.c" in snapshot.path.read_text()


class TestSnapshotFileReadWrite:
    """Test the write and read protocols"""

    @pytest.fixture
    def snapshot(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.initialize()
        return snapshot

    @pytest.mark.asyncio
    async def test_read_empty_file(self, snapshot):
        """Empty file is an empty database, not an error"""
        assert await snapshot.read() == []

    @pytest.mark.asyncio
    async def test_write_and_read(self, snapshot):
        """Test saving and loading records"""
        users = [make_user(1), make_user(2)]

        await snapshot.write(users)
        loaded = await snapshot.read()

        assert loaded == users

    @pytest.mark.asyncio
    async def test_written_format(self, snapshot):
        """File is a JSON array using the camelCase field names"""
        await snapshot.write([make_user(1)])

        data = json.loads(snapshot.path.read_text())
        assert isinstance(data, list)
        assert data == [
            {
                "id": "u1",
                "email": "user1@example.com",
                "password": "$argon2id$v=19$hash1",
                "authToken": "tok1",
                "authJwtToken": "jwt1",
                "clientIpAddressWhiteList": ["100.100.100.100"],
                "passwordResetToken": None,
                "passwordResetJwtToken": None,
            }
        ]

    @pytest.mark.asyncio
    async def test_write_replaces_whole_file(self, snapshot):
        await snapshot.write([make_user(1), make_user(2), make_user(3)])
        await snapshot.write([make_user(2)])

        loaded = await snapshot.read()
        assert [user.id for user in loaded] == ["u2"]

    @pytest.mark.asyncio
    async def test_temp_file_removed_after_write(self, snapshot):
        await snapshot.write([make_user(1)])

        assert snapshot.path.exists()
        assert not snapshot.temp_path.exists()

    @pytest.mark.asyncio
    async def test_write_goes_through_temp_file(self, snapshot):
        """Test that the snapshot is written under the temp name"""
        original_write = snapshot._write_snapshot_file
        written_paths = []

        def spy_write(path, data):
            written_paths.append(path)
            # Live path is absent while the write is in progress
            assert not snapshot.path.exists()
            return original_write(path, data)

        with patch.object(snapshot, "_write_snapshot_file", side_effect=spy_write):
            await snapshot.write([make_user(1)])

        assert written_paths == [snapshot.temp_path]
        assert snapshot.path.exists()

    @pytest.mark.asyncio
    async def test_failed_write_restores_live_file(self, snapshot):
        """The temp file is renamed back even when the write fails"""
        await snapshot.write([make_user(1)])
        before = snapshot.path.read_text()

        with patch.object(snapshot, "_write_snapshot_file", side_effect=OSError("disk full")):
            with pytest.raises(StoreIOError, match="disk full"):
                await snapshot.write([make_user(2)])

        assert snapshot.path.exists()
        assert not snapshot.temp_path.exists()
        assert snapshot.path.read_text() == before

    @pytest.mark.asyncio
    async def test_compact_json(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "usersDB.json", json_indent=None)
        snapshot.initialize()

        await snapshot.write([make_user(1)])

        assert "\n" not in snapshot.path.read_text()

    @pytest.mark.asyncio
    async def test_delete_removes_both_files(self, snapshot):
        await snapshot.write([make_user(1)])
        snapshot.temp_path.write_text("[]")

        await snapshot.delete()

        assert not snapshot.path.exists()
        assert not snapshot.temp_path.exists()
        assert not snapshot.exists()


class TestSnapshotFileDecoding:
    """Test handling of corrupt database files"""

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.initialize()
        snapshot.path.write_text("This is not valid JSON{]}")

        with pytest.raises(RecordDecodeError):
            await snapshot.read()

    @pytest.mark.asyncio
    async def test_invalid_utf8(self, tmp_path):
        snapshot = SnapshotFile(tmp_path / "usersDB.json")
        snapshot.initialize()
        snapshot.path.write_bytes(b"\xff\xfe[]")

        with pytest.raises(RecordDecodeError, match="UTF-8"):
            await snapshot.read()

    def test_wrongly_typed_token(self):
        with pytest.raises(RecordDecodeError, match="authToken"):
            SnapshotFile.decode('[{"id": "u1", "email": "a@b.c", "password": "p", "authToken": ["x"]}]')

    def test_top_level_must_be_array(self):
        with pytest.raises(RecordDecodeError, match="JSON array"):
            SnapshotFile.decode('{"id": "u1"}')

    def test_entry_missing_fields(self):
        with pytest.raises(RecordDecodeError, match="email"):
            SnapshotFile.decode('[{"id": "u1", "password": "x"}]')

    def test_whitespace_is_empty(self):
        assert SnapshotFile.decode("  \n") == []


class TestSnapshotFilePolling:
    """Test bounded polling for the live file"""

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_when_present(self, tmp_path):
        sleep = AsyncMock()
        snapshot = SnapshotFile(tmp_path / "usersDB.json", sleep=sleep)
        snapshot.initialize()

        assert await snapshot.wait_for_file() == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_gives_up_after_twenty_attempts(self, tmp_path):
        """Live and temp file absent for the whole window fails, it never hangs"""
        sleep = AsyncMock()
        snapshot = SnapshotFile(tmp_path / "usersDB.json", sleep=sleep)
        snapshot.initialize()
        snapshot.path.unlink()

        with pytest.raises(FileUnavailableError) as exc_info:
            await snapshot.read()

        assert exc_info.value.attempts == 20
        assert exc_info.value.path == snapshot.path
        assert sleep.await_count == 20
        sleep.assert_awaited_with(0.1)

    @pytest.mark.asyncio
    async def test_write_gives_up_after_twenty_attempts(self, tmp_path):
        sleep = AsyncMock()
        snapshot = SnapshotFile(tmp_path / "usersDB.json", sleep=sleep)
        snapshot.initialize()
        snapshot.path.unlink()

        with pytest.raises(FileUnavailableError, match="20 attempts"):
            await snapshot.write([make_user(1)])

        assert sleep.await_count == 20
        assert not snapshot.path.exists()

    @pytest.mark.asyncio
    async def test_read_never_initialized_fails_fast(self, tmp_path):
        """A database that was never created does not wait out the polling window"""
        sleep = AsyncMock()
        snapshot = SnapshotFile(tmp_path / "missing.json", sleep=sleep)

        with pytest.raises(FileUnavailableError) as exc_info:
            await snapshot.read()

        assert exc_info.value.attempts == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wait_picks_up_file_when_it_appears(self, tmp_path):
        path = tmp_path / "usersDB.json"

        def reappear(interval):
            if sleep.await_count == 3:
                path.write_text("")

        sleep = AsyncMock(side_effect=reappear)
        snapshot = SnapshotFile(path, sleep=sleep)

        assert await snapshot.wait_for_file() == 3

    @pytest.mark.asyncio
    async def test_reader_waits_for_writer_rename(self, tmp_path):
        """A reader that finds the live file renamed away waits for it to come back"""
        snapshot = SnapshotFile(tmp_path / "usersDB.json", poll_interval=0.01)
        snapshot.initialize()
        await snapshot.write([make_user(1)])

        # Simulate another writer holding the file under its temp name
        snapshot.path.rename(snapshot.temp_path)

        async def finish_write():
            await asyncio.sleep(0.05)
            snapshot.temp_path.rename(snapshot.path)

        writer = asyncio.create_task(finish_write())
        loaded = await snapshot.read()
        await writer

        assert [user.id for user in loaded] == ["u1"]

    @pytest.mark.asyncio
    async def test_custom_poll_budget(self, tmp_path):
        sleep = AsyncMock()
        snapshot = SnapshotFile(
            tmp_path / "usersDB.json", poll_interval=0.5, max_poll_attempts=3, sleep=sleep
        )

        with pytest.raises(FileUnavailableError):
            await snapshot.wait_for_file()

        assert sleep.await_count == 3
        sleep.assert_awaited_with(0.5)
