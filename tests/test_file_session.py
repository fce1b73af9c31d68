"""Tests for FileSession — dirty tracking, fingerprint conflicts, debounced autosave."""

import asyncio

import pytest

from editorsync.errors import ErrorKind, ServiceError
from editorsync.services.file_session import FileSession

AUTOSAVE_MS = 50


async def _loaded(remote, path="/a.txt", **kwargs) -> FileSession:
    session = FileSession(remote, path, **kwargs)
    await session.load()
    return session


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_sets_content_and_fingerprint(self, remote):
        session = await _loaded(remote)
        assert session.content == "hi"
        assert session.saved_content == "hi"
        assert session.fingerprint == "c1"
        assert session.language == "plaintext"
        assert session.dirty is False
        assert session.loading is False

    @pytest.mark.asyncio
    async def test_load_missing_file(self, remote):
        session = FileSession(remote, "/missing.txt")
        outcome = await session.load()
        assert outcome.kind == ErrorKind.NOT_FOUND
        assert session.error is outcome.error
        assert session.fingerprint is None

    @pytest.mark.asyncio
    async def test_superseded_load_is_discarded(self, remote):
        session = FileSession(remote, "/a.txt")
        gate = asyncio.Event()
        real_read = remote.read_file
        calls = []

        async def read_file(path):
            calls.append(path)
            response = await real_read(path)
            if len(calls) == 1:
                await gate.wait()
            return response

        remote.read_file = read_file
        first = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        remote.put("/a.txt", "newer")
        await session.load()
        gate.set()
        await first

        assert session.content == "newer"
        assert session.fingerprint == "c2"


class TestDirty:
    @pytest.mark.asyncio
    async def test_edit_marks_dirty(self, remote):
        session = await _loaded(remote)
        session.edit("hi there")
        assert session.dirty is True

    @pytest.mark.asyncio
    async def test_edit_back_to_saved_is_clean(self, remote):
        session = await _loaded(remote)
        session.edit("hi there")
        session.edit("hi")
        assert session.dirty is False

    @pytest.mark.asyncio
    async def test_save_when_clean_skips_network(self, remote):
        session = await _loaded(remote)
        session.edit("hi")
        outcome = await session.save()
        assert outcome.ok
        assert outcome.value == "c1"
        assert remote.update_calls == []


class TestSave:
    @pytest.mark.asyncio
    async def test_save_adopts_new_fingerprint(self, remote):
        session = await _loaded(remote)
        session.edit("hi there")
        outcome = await session.save()

        assert outcome.ok
        assert remote.update_calls == [("/a.txt", "hi there", "c1")]
        assert session.fingerprint == "c2"
        assert session.saved_content == "hi there"
        assert session.dirty is False
        assert session.saving is False

    @pytest.mark.asyncio
    async def test_stale_fingerprint_is_conflict(self, remote):
        mine = await _loaded(remote)
        theirs = await _loaded(remote)

        theirs.edit("their change")
        assert (await theirs.save()).ok
        assert theirs.fingerprint != "c1"

        mine.edit("my change")
        outcome = await mine.save()

        assert outcome.is_conflict
        assert mine.conflict is True
        assert mine.content == "my change"
        assert mine.saved_content == "hi"
        assert mine.dirty is True
        assert mine.fingerprint == "c1"
        assert remote.files["/a.txt"][0] == "their change"

    @pytest.mark.asyncio
    async def test_conflicted_session_refuses_to_save(self, remote):
        session = await _loaded(remote)
        remote.external_write("/a.txt", "external")
        session.edit("mine")
        await session.save()
        calls = len(remote.update_calls)

        outcome = await session.save()
        assert outcome.is_conflict
        assert len(remote.update_calls) == calls

    @pytest.mark.asyncio
    async def test_other_failure_keeps_dirty_for_retry(self, remote):
        session = await _loaded(remote)
        session.edit("hi there")
        remote.update_failure = ServiceError("disk full", path="/a.txt", status_code=500)

        outcome = await session.save()
        assert outcome.kind == ErrorKind.SERVICE_ERROR
        assert session.dirty is True
        assert session.conflict is False
        assert session.fingerprint == "c1"

        remote.update_failure = None
        assert (await session.save()).ok
        assert session.dirty is False

    @pytest.mark.asyncio
    async def test_concurrent_saves_race_and_second_conflicts(self, remote):
        session = await _loaded(remote)
        session.edit("hi there")
        remote.update_gate = asyncio.Event()

        first = asyncio.create_task(session.save())
        second = asyncio.create_task(session.save())
        await asyncio.sleep(0)
        assert session.saving is True
        remote.update_gate.set()
        results = await asyncio.gather(first, second)

        assert [r.ok for r in results] == [True, False]
        assert results[1].is_conflict
        assert [call[2] for call in remote.update_calls] == ["c1", "c1"]

    @pytest.mark.asyncio
    async def test_edit_during_save_stays_dirty(self, remote):
        session = await _loaded(remote)
        session.edit("v1")
        remote.update_gate = asyncio.Event()
        pending = asyncio.create_task(session.save())
        await asyncio.sleep(0)

        session.edit("v2")
        remote.update_gate.set()
        await pending

        assert session.saved_content == "v1"
        assert session.dirty is True


class TestReload:
    @pytest.mark.asyncio
    async def test_reload_clears_conflict_and_dirty(self, remote):
        session = await _loaded(remote)
        remote.external_write("/a.txt", "external")
        session.edit("mine")
        await session.save()
        assert session.conflict and session.dirty

        outcome = await session.reload()
        assert outcome.ok
        assert session.conflict is False
        assert session.dirty is False
        assert session.content == "external"
        assert session.fingerprint == "c2"

    @pytest.mark.asyncio
    async def test_reload_failure_still_clears_flags(self, remote):
        session = await _loaded(remote)
        remote.external_write("/a.txt", "external")
        session.edit("mine")
        await session.save()

        del remote.files["/a.txt"]
        outcome = await session.reload()
        assert outcome.kind == ErrorKind.NOT_FOUND
        assert session.conflict is False
        assert session.dirty is False

    @pytest.mark.asyncio
    async def test_save_landing_after_reload_is_ignored(self, remote):
        session = await _loaded(remote)
        session.edit("v1")
        remote.update_gate = asyncio.Event()
        pending = asyncio.create_task(session.save())
        await asyncio.sleep(0)

        await session.reload()
        assert (session.content, session.fingerprint) == ("hi", "c1")
        remote.update_gate.set()
        outcome = await pending

        assert outcome.ok
        assert session.saved_content == "hi"
        assert session.fingerprint == "c1"
        assert session.dirty is False

        remote.update_gate = None
        session.edit("after reload")
        assert (await session.save()).is_conflict
        assert remote.files["/a.txt"][0] == "v1"

    @pytest.mark.asyncio
    async def test_load_older_than_a_landed_save_is_dropped(self, remote):
        session = await _loaded(remote)
        session.edit("v1")
        gate = asyncio.Event()
        real_read = remote.read_file

        async def read_file(path):
            response = await real_read(path)
            await gate.wait()
            return response

        remote.read_file = read_file
        pending = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        assert (await session.save()).value == "c2"
        gate.set()
        await pending

        assert session.saved_content == "v1"
        assert session.fingerprint == "c2"
        assert session.loading is False


class TestAutosave:
    @pytest.mark.asyncio
    async def test_three_quick_edits_save_once(self, remote):
        session = await _loaded(remote, autosave=True, autosave_delay_ms=AUTOSAVE_MS)
        session.edit("h")
        await asyncio.sleep(0.01)
        session.edit("he")
        await asyncio.sleep(0.01)
        session.edit("hey")
        await asyncio.sleep(AUTOSAVE_MS / 1000 * 3)

        assert remote.update_calls == [("/a.txt", "hey", "c1")]
        assert session.dirty is False
        assert session.autosave_pending is False

    @pytest.mark.asyncio
    async def test_clean_edit_does_not_schedule(self, remote):
        session = await _loaded(remote, autosave=True, autosave_delay_ms=AUTOSAVE_MS)
        session.edit("changed")
        session.edit("hi")
        assert session.autosave_pending is False
        await asyncio.sleep(AUTOSAVE_MS / 1000 * 2)
        assert remote.update_calls == []

    @pytest.mark.asyncio
    async def test_disabled_autosave_never_saves(self, remote):
        session = await _loaded(remote, autosave=False)
        session.edit("changed")
        assert session.autosave_pending is False

    @pytest.mark.asyncio
    async def test_close_cancels_pending_autosave(self, remote):
        session = await _loaded(remote, autosave=True, autosave_delay_ms=AUTOSAVE_MS)
        session.edit("unsaved")
        session.close()
        await asyncio.sleep(AUTOSAVE_MS / 1000 * 2)

        assert remote.update_calls == []
        assert session.closed is True
        with pytest.raises(RuntimeError):
            session.edit("again")
